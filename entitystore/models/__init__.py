"""
Shared models.

Pydantic models for queries, cursors and batch limits.
"""

from entitystore.models.batch import BatchLimits
from entitystore.models.query import Cursor, Query, QueryFilter

__all__ = ["BatchLimits", "Cursor", "Query", "QueryFilter"]
