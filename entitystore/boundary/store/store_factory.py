"""
Store service factory for selecting between memory (dev) and DynamoDB (prod).

Depends on ENTITYSTORE_BACKEND environment variable.
Provides consistent interface regardless of underlying implementation.

Dependencies: entitystore.boundary.store, entitystore.configs
System role: Store service instantiation and selection
"""

import logging

from entitystore.boundary.store.dynamodb_store import DYNAMODB_LIMITS, DynamoDBStoreService
from entitystore.boundary.store.memory_store import MemoryStoreService
from entitystore.boundary.store.service import StoreService
from entitystore.configs import get_settings
from entitystore.models.batch import BatchLimits

logger = logging.getLogger(__name__)


def get_store_service() -> StoreService:
    """
    Factory function to get a store service based on environment configuration.

    Returns:
        MemoryStoreService or DynamoDBStoreService: Configured store service

    Raises:
        ValueError: If ENTITYSTORE_BACKEND is invalid
    """
    settings = get_settings().store
    backend = settings.backend.lower()

    if backend == "memory":
        logger.info(f"{__name__}:get_store_service - Creating memory store (local dev mode)")
        return MemoryStoreService(limits=settings.batch_limits(BatchLimits()))

    elif backend == "dynamodb":
        logger.info(
            f"{__name__}:get_store_service - Creating DynamoDB store "
            f"(table={settings.table_name}, region={settings.aws_region})"
        )
        return DynamoDBStoreService(
            table_name=settings.table_name,
            region=settings.aws_region,
            endpoint_url=settings.endpoint_url,
            limits=settings.batch_limits(DYNAMODB_LIMITS),
            max_unprocessed_retries=settings.max_unprocessed_retries,
        )

    else:
        raise ValueError(
            f"Invalid ENTITYSTORE_BACKEND: {backend}. "
            f"Must be 'memory' (dev) or 'dynamodb' (production)."
        )
