"""
Exception hierarchy for the entity store client.

Provides layered exception structure for key derivation, input shape,
and store service failures. All exceptions carry a message plus a details
dictionary, and compare by type and payload so batch outcomes can be
checked for uniformity without rendering them to text.

Dependencies: None (pure domain layer)
System role: Centralized exception handling across the client
"""

from typing import Any, Iterator, Sequence


class EntityStoreError(Exception):
    """Base exception for all entity store client errors."""

    def __init__(self, message: str, details: dict[str, Any] | None = None) -> None:
        """
        Initialize base exception with message and optional context.

        Args:
            message: Human-readable error message
            details: Optional dictionary of additional context for debugging
        """
        self.message = message
        self.details = details or {}
        super().__init__(message)

    def __str__(self) -> str:
        """Return string representation including details."""
        if self.details:
            return f"{self.message} | Details: {self.details}"
        return self.message

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, EntityStoreError):
            return NotImplemented
        return (
            type(self) is type(other)
            and self.message == other.message
            and self.details == other.details
        )

    def __hash__(self) -> int:
        return hash((type(self), self.message))


class InvalidShapeError(EntityStoreError):
    """Raised when a value is not a single addressable entity."""

    def __init__(self, message: str, value_type: str | None = None) -> None:
        details = {}
        if value_type:
            details["value_type"] = value_type
        super().__init__(message, details)


class NotASequenceError(EntityStoreError):
    """Raised when a batch operation receives something other than a list of entities."""

    def __init__(self, value_type: str) -> None:
        super().__init__(
            "value must be a list or tuple of entities",
            {"value_type": value_type},
        )


class MissingIdentityError(EntityStoreError):
    """Raised when a read or delete needs a complete key but an entity has none."""

    def __init__(self, index: int, entity: Any) -> None:
        """
        Initialize missing identity error.

        Args:
            index: Position of the offending entity in the batch
            entity: The entity without an identity
        """
        super().__init__(
            f"cannot find a key for entity at index {index}",
            {"index": index, "entity": repr(entity)},
        )


class EmptyStringIdentityError(EntityStoreError):
    """Raised when an entity explicitly sets a blank string identity on put."""

    def __init__(self, index: int) -> None:
        super().__init__("empty string id on put", {"index": index})


class InvalidDestinationError(EntityStoreError):
    """Raised when query results cannot be materialized into the destination."""

    pass


class Done(EntityStoreError):
    """Signals that an iterator has no more results."""

    def __init__(self) -> None:
        super().__init__("no more items in iterator")


class StoreServiceError(EntityStoreError):
    """Raised when the underlying store service fails."""

    def __init__(
        self,
        message: str,
        operation: str | None = None,
        details: dict[str, Any] | None = None,
    ) -> None:
        """
        Initialize store service error.

        Args:
            message: Error message
            operation: Operation that failed (put, get, delete, query)
            details: Additional context
        """
        details = details or {}
        if operation:
            details["operation"] = operation
        super().__init__(message, details)


class NoSuchEntityError(StoreServiceError):
    """Raised when no entity exists for a key."""

    def __init__(self) -> None:
        super().__init__("no such entity")


class InvalidEntityTypeError(StoreServiceError):
    """Raised when a destination cannot hold a stored entity."""

    def __init__(self) -> None:
        super().__init__("invalid entity type")


class InvalidKeyError(StoreServiceError):
    """Raised when a key is malformed for the requested operation."""

    def __init__(self, reason: str = "invalid key") -> None:
        super().__init__(reason)


class FieldMismatchError(StoreServiceError):
    """
    Raised when a stored property cannot be loaded into an entity field.

    The remaining properties are still loaded, so the entity is usable.
    """

    def __init__(self, kind: str, field_name: str, reason: str) -> None:
        self.kind = kind
        self.field_name = field_name
        self.reason = reason
        super().__init__(
            f"cannot load field {field_name!r} into a {kind!r}: {reason}",
            details={"kind": kind, "field": field_name},
        )


class TransactionError(StoreServiceError):
    """Raised when a transaction cannot be committed."""

    pass


class MultiError(EntityStoreError):
    """
    Itemized batch outcome.

    Slot i holds None when operation i succeeded, or the exception that
    describes why it failed. Put operations also carry the keys known at
    the time of failure, including identifiers assigned by the store.
    """

    def __init__(
        self,
        errors: Sequence[BaseException | None],
        keys: list | None = None,
    ) -> None:
        self.errors = list(errors)
        self.keys = keys
        failed = [e for e in self.errors if e is not None]
        if not failed:
            message = "(0 errors)"
        elif len(failed) == 1:
            message = str(failed[0])
        else:
            message = f"{failed[0]} (and {len(failed) - 1} other errors)"
        super().__init__(message, {"count": len(failed)})

    def __len__(self) -> int:
        return len(self.errors)

    def __bool__(self) -> bool:
        return True

    def __getitem__(self, index: int) -> BaseException | None:
        return self.errors[index]

    def __iter__(self) -> Iterator[BaseException | None]:
        return iter(self.errors)

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, MultiError):
            return NotImplemented
        return self.errors == other.errors

    def __hash__(self) -> int:
        return hash((type(self), len(self.errors)))
