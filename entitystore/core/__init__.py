"""
Core client module.

Contains keys, the entity contract, the exception hierarchy and the
batch execution engine.
"""

from entitystore.core.exceptions import (
    EntityStoreError,
    InvalidShapeError,
    NotASequenceError,
    MissingIdentityError,
    EmptyStringIdentityError,
    InvalidDestinationError,
    Done,
    StoreServiceError,
    NoSuchEntityError,
    InvalidEntityTypeError,
    InvalidKeyError,
    FieldMismatchError,
    TransactionError,
    MultiError,
)
from entitystore.core.keys import Key

__all__ = [
    # Exceptions
    "EntityStoreError",
    "InvalidShapeError",
    "NotASequenceError",
    "MissingIdentityError",
    "EmptyStringIdentityError",
    "InvalidDestinationError",
    "Done",
    "StoreServiceError",
    "NoSuchEntityError",
    "InvalidEntityTypeError",
    "InvalidKeyError",
    "FieldMismatchError",
    "TransactionError",
    "MultiError",
    # Keys
    "Key",
]
