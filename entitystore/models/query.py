"""
Query models.

Immutable description of a query over one kind. Builder methods return
updated copies, so a base query can be shared and refined.

Dependencies: pydantic
System role: Query input passed to store services
"""

from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field

from entitystore.core.keys import Key

FilterOp = Literal["=", "!=", "<", "<=", ">", ">=", "in"]


class Cursor(BaseModel):
    """Opaque, resumable position in a query's results."""

    model_config = ConfigDict(frozen=True)

    value: str = Field(description="Backend-specific encoded position")

    def __str__(self) -> str:
        return self.value


class QueryFilter(BaseModel):
    """Single property filter."""

    model_config = ConfigDict(frozen=True)

    field: str
    op: FilterOp = "="
    value: Any = None


class Query(BaseModel):
    """Query over a single kind."""

    model_config = ConfigDict(frozen=True, arbitrary_types_allowed=True)

    kind: str = Field(description="Kind to query")
    filters: tuple[QueryFilter, ...] = ()
    orders: tuple[str, ...] = Field(
        default=(),
        description="Property names to sort by; prefix with '-' for descending",
    )
    ancestor: Key | None = None
    limit: int | None = Field(default=None, ge=0)
    offset: int = Field(default=0, ge=0)
    keys_only_results: bool = False
    start_cursor: Cursor | None = None
    entity_type: type | None = Field(
        default=None,
        description="Entity class results are loaded into by get_all",
    )

    def filter(self, field: str, op: FilterOp, value: Any) -> "Query":
        return self.model_copy(
            update={"filters": self.filters + (QueryFilter(field=field, op=op, value=value),)}
        )

    def order(self, field: str) -> "Query":
        return self.model_copy(update={"orders": self.orders + (field,)})

    def ancestor_of(self, key: Key) -> "Query":
        """Restrict results to descendants of key."""
        return self.model_copy(update={"ancestor": key})

    def with_limit(self, limit: int) -> "Query":
        return self.model_copy(update={"limit": limit})

    def with_offset(self, offset: int) -> "Query":
        return self.model_copy(update={"offset": offset})

    def keys_only(self) -> "Query":
        return self.model_copy(update={"keys_only_results": True})

    def start_at(self, cursor: Cursor) -> "Query":
        """Resume from a cursor returned by an iterator."""
        return self.model_copy(update={"start_cursor": cursor})
