"""
Batch outcome handling.

A batch call produces one outcome per item: None on success, or the
exception describing the failure. This module filters tolerated schema
drift out of those outcomes and collapses them into what the caller sees:
nothing, one representative error, or the itemized MultiError.

Dependencies: entitystore.core.exceptions
System role: Error shaping for every batch operation
"""

from typing import Sequence

from entitystore.core.exceptions import (
    EntityStoreError,
    FieldMismatchError,
    InvalidEntityTypeError,
    MultiError,
    NoSuchEntityError,
)

Outcome = BaseException | None

# The store reports these per item even when every item failed the same way.
ITEMIZED_KINDS: tuple[type[EntityStoreError], ...] = (
    FieldMismatchError,
    InvalidEntityTypeError,
    NoSuchEntityError,
)


def same_outcome(a: Outcome, b: Outcome) -> bool:
    """Compare two outcomes by kind and payload."""
    if a is None or b is None:
        return a is b
    if isinstance(a, EntityStoreError) and isinstance(b, EntityStoreError):
        return a == b
    return type(a) is type(b) and str(a) == str(b)


def filter_field_mismatch(outcomes: Sequence[Outcome], ignore: bool) -> list[Outcome]:
    """Rewrite field mismatch outcomes to success when ignore is set."""
    if not ignore:
        return list(outcomes)
    return [None if isinstance(o, FieldMismatchError) else o for o in outcomes]


def collapse_outcomes(
    outcomes: Sequence[Outcome],
    keys: list | None = None,
) -> BaseException | None:
    """
    Reduce per-item outcomes to the error reported to the caller.

    Args:
        outcomes: One outcome per batch item
        keys: Keys to attach to an itemized result (put operations)

    Returns:
        None if every item succeeded, the shared error if every item failed
        the same way, otherwise a MultiError. Uniform failures of the kinds
        in ITEMIZED_KINDS stay itemized so callers can inspect each index.
    """
    if not outcomes:
        return None
    first = outcomes[0]
    if all(same_outcome(first, o) for o in outcomes[1:]):
        if first is None:
            return None
        if isinstance(first, ITEMIZED_KINDS):
            return MultiError(outcomes, keys=keys)
        return first
    return MultiError(outcomes, keys=keys)


def is_not_found(err: BaseException | None, index: int) -> bool:
    """True if err is itemized and item index was not found."""
    if not isinstance(err, MultiError):
        return False
    return 0 <= index < len(err) and isinstance(err[index], NoSuchEntityError)
