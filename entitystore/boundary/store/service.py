"""
Store service protocol.

The client talks to a backend only through this protocol. A service
exposes the backend's chunked multi-create, multi-read and multi-delete
calls, transactions, and cursor-based queries. Batch calls fail either
with a single exception or with a MultiError aligned to input order.

Dependencies: entitystore.core, entitystore.models
System role: Contract between the client and a store backend
"""

from typing import Any, Callable, Protocol, Sequence, TypeVar, runtime_checkable

from entitystore.core.exceptions import InvalidKeyError
from entitystore.core.keys import Key
from entitystore.models.batch import BatchLimits
from entitystore.models.query import Cursor, Query

T = TypeVar("T")


@runtime_checkable
class QueryCursor(Protocol):
    """Stream of query results."""

    def next(self) -> tuple[Key, dict[str, Any] | None]:
        """
        Advance one result.

        Returns:
            tuple: (key, properties); properties is None for keys-only queries

        Raises:
            Done: When the stream is exhausted
        """
        ...

    def cursor(self) -> Cursor:
        """Position after the last returned result."""
        ...


@runtime_checkable
class BatchService(Protocol):
    """Batch primitives shared by a store service and its transactions."""

    def put_multi(self, keys: Sequence[Key], entities: Sequence[Any]) -> list[Key]:
        """Store entities, returning keys with any generated ids filled in."""
        ...

    def get_multi(self, keys: Sequence[Key], entities: Sequence[Any]) -> None:
        """Load the stored properties for keys into entities."""
        ...

    def delete_multi(self, keys: Sequence[Key]) -> None:
        """Delete the entities for keys."""
        ...


@runtime_checkable
class StoreService(BatchService, Protocol):
    """Full store backend."""

    limits: BatchLimits

    def run_in_transaction(self, fn: Callable[[BatchService], T]) -> T:
        """Run fn against a transaction, committing if it returns."""
        ...

    def count(self, query: Query) -> int:
        ...

    def run_query(self, query: Query) -> QueryCursor:
        ...


def check_key(key: Key) -> InvalidKeyError | None:
    """Return why key cannot address a stored entity, or None if it can."""
    if not key.kind:
        return InvalidKeyError("key has no kind")
    parent = key.parent
    while parent is not None:
        if parent.incomplete:
            return InvalidKeyError("parent key is incomplete")
        if parent.namespace != key.namespace:
            return InvalidKeyError("parent key is in a different namespace")
        parent = parent.parent
    return None
