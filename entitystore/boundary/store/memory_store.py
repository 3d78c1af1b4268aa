"""
In-memory store service for development.

Provides a local, thread-safe store implementing StoreService so the
client can be exercised without AWS. Records are kept as property
dictionaries keyed by Key; transactions roll back on error.

Dependencies: entitystore.core, entitystore.models
System role: Development store backend (local testing only)
"""

import copy
import itertools
import logging
import operator
import threading
from typing import Any, Callable, Sequence, TypeVar

from entitystore.boundary.store.service import check_key
from entitystore.core.exceptions import (
    Done,
    FieldMismatchError,
    InvalidEntityTypeError,
    InvalidKeyError,
    MultiError,
    NoSuchEntityError,
    StoreServiceError,
    TransactionError,
)
from entitystore.core.keys import Key
from entitystore.models.batch import BatchLimits
from entitystore.models.query import Cursor, Query, QueryFilter

logger = logging.getLogger(__name__)

T = TypeVar("T")

_OPERATORS: dict[str, Callable[[Any, Any], bool]] = {
    "=": operator.eq,
    "!=": operator.ne,
    "<": operator.lt,
    "<=": operator.le,
    ">": operator.gt,
    ">=": operator.ge,
    "in": lambda a, b: a in b,
}


def _has_ancestor(key: Key, ancestor: Key) -> bool:
    current: Key | None = key
    while current is not None:
        if current == ancestor:
            return True
        current = current.parent
    return False


def _matches(properties: dict[str, Any], query_filter: QueryFilter) -> bool:
    if query_filter.field not in properties:
        return False
    try:
        return bool(_OPERATORS[query_filter.op](properties[query_filter.field], query_filter.value))
    except TypeError:
        return False


class MemoryQueryCursor:
    """Cursor over a snapshot of matching records."""

    def __init__(
        self,
        results: list[tuple[Key, dict[str, Any]]],
        start: int,
        keys_only: bool,
    ) -> None:
        self._results = results
        self._start = start
        self._position = 0
        self._keys_only = keys_only

    def next(self) -> tuple[Key, dict[str, Any] | None]:
        if self._position >= len(self._results):
            raise Done()
        key, properties = self._results[self._position]
        self._position += 1
        if self._keys_only:
            return key, None
        return key, copy.deepcopy(properties)

    def cursor(self) -> Cursor:
        return Cursor(value=str(self._start + self._position))


class _MemoryTransaction:
    """Batch primitives bound to an open transaction."""

    def __init__(self, store: "MemoryStoreService") -> None:
        self._store = store
        self.closed = False

    def _check_open(self) -> None:
        if self.closed:
            raise TransactionError("transaction has already finished")

    def put_multi(self, keys: Sequence[Key], entities: Sequence[Any]) -> list[Key]:
        self._check_open()
        return self._store._put(keys, entities)

    def get_multi(self, keys: Sequence[Key], entities: Sequence[Any]) -> None:
        self._check_open()
        self._store._get(keys, entities)

    def delete_multi(self, keys: Sequence[Key]) -> None:
        self._check_open()
        self._store._delete(keys)


class MemoryStoreService:
    """
    Thread-safe in-memory store.

    Transactions hold the store lock for their whole duration, so they are
    serialized with every other call and see no concurrent writes. Other
    threads wait for the transaction to finish; batch calls made on the
    transaction's own thread outside the transaction handle fail with
    TransactionError.
    """

    def __init__(self, limits: BatchLimits | None = None) -> None:
        """
        Initialize an empty store.

        Args:
            limits: Per-call batch limits (defaults to 500/1000/500)
        """
        self.limits = limits or BatchLimits()
        self._records: dict[Key, dict[str, Any]] = {}
        self._lock = threading.RLock()
        self._ids = itertools.count(1)
        self._tx_owner: int | None = None

    def __len__(self) -> int:
        return len(self._records)

    def _check_outside_transaction(self, operation: str) -> None:
        if self._tx_owner == threading.get_ident():
            raise TransactionError(
                "store is in a transaction on this thread; use the transaction handle",
                operation=operation,
            )

    def put_multi(self, keys: Sequence[Key], entities: Sequence[Any]) -> list[Key]:
        self._check_outside_transaction("put")
        return self._put(keys, entities)

    def get_multi(self, keys: Sequence[Key], entities: Sequence[Any]) -> None:
        self._check_outside_transaction("get")
        self._get(keys, entities)

    def delete_multi(self, keys: Sequence[Key]) -> None:
        self._check_outside_transaction("delete")
        self._delete(keys)

    def _put(self, keys: Sequence[Key], entities: Sequence[Any]) -> list[Key]:
        if len(keys) != len(entities):
            raise StoreServiceError(
                "keys and entities have different lengths",
                operation="put",
                details={"keys": len(keys), "entities": len(entities)},
            )
        errors: list[BaseException | None] = [None] * len(keys)
        result = list(keys)
        with self._lock:
            for i, (key, entity) in enumerate(zip(keys, entities)):
                invalid = check_key(key)
                if invalid is not None:
                    errors[i] = invalid
                    continue
                if not hasattr(entity, "to_properties"):
                    errors[i] = InvalidEntityTypeError()
                    continue
                if key.incomplete:
                    key = key.with_id(next(self._ids))
                    result[i] = key
                self._records[key] = copy.deepcopy(entity.to_properties())

        if any(e is not None for e in errors):
            raise MultiError(errors, keys=result)
        return result

    def _get(self, keys: Sequence[Key], entities: Sequence[Any]) -> None:
        if len(keys) != len(entities):
            raise StoreServiceError(
                "keys and entities have different lengths",
                operation="get",
                details={"keys": len(keys), "entities": len(entities)},
            )
        errors: list[BaseException | None] = [None] * len(keys)
        with self._lock:
            records = [self._records.get(key) for key in keys]

        for i, (key, entity, properties) in enumerate(zip(keys, entities, records)):
            invalid = check_key(key)
            if invalid is not None or key.incomplete:
                errors[i] = invalid or InvalidKeyError("key is incomplete")
            elif properties is None:
                errors[i] = NoSuchEntityError()
            elif not hasattr(entity, "load_properties"):
                errors[i] = InvalidEntityTypeError()
            else:
                skipped = entity.load_properties(copy.deepcopy(properties))
                if skipped:
                    errors[i] = FieldMismatchError(key.kind, *skipped[0])

        if any(e is not None for e in errors):
            raise MultiError(errors)

    def _delete(self, keys: Sequence[Key]) -> None:
        errors: list[BaseException | None] = [None] * len(keys)
        with self._lock:
            for i, key in enumerate(keys):
                invalid = check_key(key)
                if invalid is not None or key.incomplete:
                    errors[i] = invalid or InvalidKeyError("key is incomplete")
                    continue
                self._records.pop(key, None)

        if any(e is not None for e in errors):
            raise MultiError(errors)

    def run_in_transaction(self, fn: Callable[[_MemoryTransaction], T]) -> T:
        with self._lock:
            if self._tx_owner is not None:
                raise TransactionError("nested transactions are not supported")
            snapshot = dict(self._records)
            tx = _MemoryTransaction(self)
            self._tx_owner = threading.get_ident()
            try:
                return fn(tx)
            except BaseException:
                logger.info(f"{__name__}:run_in_transaction - Rolling back transaction")
                self._records = snapshot
                raise
            finally:
                tx.closed = True
                self._tx_owner = None

    def _select(self, query: Query) -> list[tuple[Key, dict[str, Any]]]:
        with self._lock:
            records = list(self._records.items())

        selected = [
            (key, properties)
            for key, properties in records
            if key.kind == query.kind
            and (query.ancestor is None or _has_ancestor(key, query.ancestor))
            and all(_matches(properties, f) for f in query.filters)
        ]
        for field in reversed(query.orders):
            descending = field.startswith("-")
            name = field.lstrip("-")
            selected = [r for r in selected if name in r[1]]
            try:
                selected.sort(key=lambda r: r[1][name], reverse=descending)
            except TypeError as e:
                raise StoreServiceError(
                    f"cannot order by {name!r}: mixed value types",
                    operation="query",
                ) from e
        return selected

    def _window(self, query: Query) -> tuple[int, list[tuple[Key, dict[str, Any]]]]:
        selected = self._select(query)
        start = query.offset
        if query.start_cursor is not None:
            try:
                start += int(query.start_cursor.value)
            except ValueError as e:
                raise StoreServiceError(
                    "invalid cursor", operation="query", details={"cursor": query.start_cursor.value}
                ) from e
        end = len(selected) if query.limit is None else start + query.limit
        return start, selected[start:end]

    def count(self, query: Query) -> int:
        _, results = self._window(query)
        return len(results)

    def run_query(self, query: Query) -> MemoryQueryCursor:
        start, results = self._window(query)
        return MemoryQueryCursor(results, start, query.keys_only_results)
