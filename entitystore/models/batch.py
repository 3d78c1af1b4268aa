"""
Batch call limits.

Dependencies: pydantic
System role: Per-call capacity of a store backend
"""

from pydantic import BaseModel, Field


class BatchLimits(BaseModel):
    """Maximum number of items a single store call accepts, per operation."""

    put: int = Field(default=500, ge=1, description="Items per multi-create call")
    get: int = Field(default=1000, ge=1, description="Items per multi-read call")
    delete: int = Field(default=500, ge=1, description="Items per multi-delete call")
