"""
Store service boundary layer.

Provides the StoreService protocol and its backends:
- MemoryStoreService: In-process store for development and tests
- DynamoDBStoreService: Production DynamoDB store

Dependencies: boto3, tenacity
System role: Store adapters for the entity client
"""

from entitystore.boundary.store.service import (
    BatchService,
    QueryCursor,
    StoreService,
    check_key,
)
from entitystore.boundary.store.memory_store import MemoryStoreService


def get_dynamodb_store_service():
    """Lazy import for DynamoDBStoreService so the memory backend needs no AWS SDK setup."""
    from entitystore.boundary.store.dynamodb_store import DynamoDBStoreService
    return DynamoDBStoreService


__all__ = [
    "BatchService",
    "QueryCursor",
    "StoreService",
    "check_key",
    "MemoryStoreService",
    "get_dynamodb_store_service",
]
