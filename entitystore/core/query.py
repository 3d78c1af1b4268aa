"""
Query result iteration.

Wraps a store service's result stream, loading each result into a
caller-supplied entity and stamping its key onto it.

Dependencies: entitystore.core, entitystore.boundary.store
System role: Cursor-based query iteration for the client
"""

from typing import Any, Iterator

from entitystore.boundary.store.service import QueryCursor
from entitystore.core.entity import new_entity
from entitystore.core.exceptions import Done, FieldMismatchError
from entitystore.core.key_resolver import KeyResolver
from entitystore.core.keys import Key
from entitystore.models.query import Cursor


def load_properties(
    entity: Any, key: Key, properties: dict[str, Any] | None
) -> FieldMismatchError | None:
    """Load properties into entity, returning the first field mismatch, if any."""
    if properties is None:
        return None
    skipped = entity.load_properties(properties)
    if not skipped:
        return None
    field_name, reason = skipped[0]
    return FieldMismatchError(key.kind, field_name, reason)


def load_into(
    entity: Any,
    key: Key,
    properties: dict[str, Any] | None,
    resolver: KeyResolver,
) -> FieldMismatchError | None:
    """
    Load properties into entity and stamp its key.

    Returns:
        The first field mismatch found while loading, if any
    """
    mismatch = load_properties(entity, key, properties)
    resolver.apply(entity, key)
    return mismatch


class EntityIterator:
    """Iterator over the results of a query."""

    def __init__(
        self,
        cursor: QueryCursor,
        resolver: KeyResolver,
        ignore_field_mismatch: bool,
        entity_type: type | None = None,
    ) -> None:
        self._cursor = cursor
        self._resolver = resolver
        self._ignore_field_mismatch = ignore_field_mismatch
        self._entity_type = entity_type
        self._done = False

    def next(self, destination: Any = None, ignore_field_mismatch: bool | None = None) -> Key:
        """
        Advance to the next result.

        Args:
            destination: Entity to load the result into, or None for the key only
            ignore_field_mismatch: Overrides the client's schema drift tolerance

        Returns:
            Key: Key of the result

        Raises:
            Done: When there are no more results
            FieldMismatchError: If a property could not be loaded and drift is not
                tolerated. The other properties are loaded into destination but its
                key fields are left untouched. The iterator still advances.
        """
        if self._done:
            raise Done()
        try:
            key, properties = self._cursor.next()
        except Done:
            self._done = True
            raise

        if destination is not None:
            mismatch = load_properties(destination, key, properties)
            ignore = (
                self._ignore_field_mismatch
                if ignore_field_mismatch is None
                else ignore_field_mismatch
            )
            if mismatch is not None and not ignore:
                raise mismatch
            self._resolver.apply(destination, key)
        return key

    def cursor(self) -> Cursor:
        """Snapshot the current position; resume with query.start_at(cursor)."""
        return self._cursor.cursor()

    def __iter__(self) -> Iterator[tuple[Key, Any]]:
        return self

    def __next__(self) -> tuple[Key, Any]:
        entity = new_entity(self._entity_type) if self._entity_type else None
        try:
            key = self.next(entity)
        except Done:
            raise StopIteration from None
        return key, entity
