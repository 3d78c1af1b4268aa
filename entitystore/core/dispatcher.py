"""
Concurrent chunk dispatcher.

Runs one store call per planned chunk on a thread pool. Each worker
returns its chunk's outcomes through its future and the coordinating call
merges them into a single outcome list aligned with the input. The pool
is joined before dispatch returns, so no worker outlives the call.

Dependencies: concurrent.futures, entitystore.core, entitystore.boundary.store
System role: Fan-out/fan-in execution of batch operations
"""

import logging
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass
from enum import Enum
from typing import Any, Sequence

from entitystore.boundary.store.service import BatchService
from entitystore.core.chunking import plan_chunks
from entitystore.core.exceptions import MultiError
from entitystore.core.keys import Key
from entitystore.core.outcomes import Outcome

logger = logging.getLogger(__name__)


class BatchOperation(str, Enum):
    """Batch primitives a chunk can run."""

    PUT = "put"
    GET = "get"
    DELETE = "delete"


@dataclass
class ChunkResult:
    """Outcomes of a single chunk call."""

    chunk: range
    outcomes: list[Outcome]
    keys: list[Key] | None = None


@dataclass
class DispatchResult:
    """Merged outcomes of every chunk, in input order."""

    keys: list[Key]
    outcomes: list[Outcome]


class BatchDispatcher:
    """Executes batch operations as concurrent, size-limited chunk calls."""

    def __init__(self, service: BatchService, max_workers: int = 8) -> None:
        """
        Initialize dispatcher.

        Args:
            service: Store service (or transaction) to call
            max_workers: Upper bound on concurrent chunk calls
        """
        self.service = service
        self.max_workers = max_workers

    def dispatch(
        self,
        operation: BatchOperation,
        keys: Sequence[Key],
        entities: Sequence[Any] | None,
        limit: int,
    ) -> DispatchResult:
        """
        Run operation over keys/entities in chunks of at most limit items.

        Args:
            operation: Batch primitive to run
            keys: Resolved keys, one per item
            entities: Entities aligned with keys (None for deletes)
            limit: Maximum items per chunk call

        Returns:
            DispatchResult: Keys (with generated ids for puts) and outcomes
        """
        chunks = plan_chunks(len(keys), limit)

        if len(chunks) <= 1:
            results = [self._run_chunk(operation, keys, entities, c) for c in chunks]
        else:
            logger.debug(
                f"{__name__}:dispatch - {operation.value} of {len(keys)} items "
                f"in {len(chunks)} chunks"
            )
            workers = min(self.max_workers, len(chunks))
            with ThreadPoolExecutor(
                max_workers=workers, thread_name_prefix="entitystore-chunk"
            ) as executor:
                futures = [
                    executor.submit(self._run_chunk, operation, keys, entities, c)
                    for c in chunks
                ]
                results = [f.result() for f in futures]

        merged_keys = list(keys)
        outcomes: list[Outcome] = [None] * len(keys)
        for result in results:
            lo, hi = result.chunk.start, result.chunk.stop
            outcomes[lo:hi] = result.outcomes
            if result.keys is not None:
                merged_keys[lo:hi] = result.keys
        return DispatchResult(keys=merged_keys, outcomes=outcomes)

    def _run_chunk(
        self,
        operation: BatchOperation,
        keys: Sequence[Key],
        entities: Sequence[Any] | None,
        chunk: range,
    ) -> ChunkResult:
        lo, hi = chunk.start, chunk.stop
        chunk_keys = list(keys[lo:hi])
        try:
            if operation is BatchOperation.PUT:
                returned = self.service.put_multi(chunk_keys, entities[lo:hi])
                return ChunkResult(chunk, [None] * len(chunk), _aligned(returned, chunk))
            if operation is BatchOperation.GET:
                self.service.get_multi(chunk_keys, entities[lo:hi])
            else:
                self.service.delete_multi(chunk_keys)
            return ChunkResult(chunk, [None] * len(chunk))
        except MultiError as e:
            if len(e.errors) != len(chunk):
                logger.warning(
                    f"{__name__}:_run_chunk - itemized error of length {len(e.errors)} "
                    f"for chunk of {len(chunk)}, broadcasting"
                )
                return ChunkResult(chunk, [e] * len(chunk))
            return ChunkResult(chunk, list(e.errors), _aligned(e.keys, chunk))
        except Exception as e:
            logger.warning(
                f"{__name__}:_run_chunk - {operation.value} chunk [{lo}, {hi}) failed: "
                f"{type(e).__name__}: {e}"
            )
            return ChunkResult(chunk, [e] * len(chunk))


def _aligned(keys: Sequence[Key] | None, chunk: range) -> list[Key] | None:
    if keys is None or len(keys) != len(chunk):
        return None
    return list(keys)
