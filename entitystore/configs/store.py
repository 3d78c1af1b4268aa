"""
Store configuration settings.

Selects the store backend and tunes batch execution: per-call limits,
worker concurrency and schema drift tolerance.

Dependencies: pydantic, pydantic_settings
System role: Store backend and batch engine configuration
"""

from typing import Literal

from pydantic import Field
from pydantic_settings import SettingsConfigDict

from entitystore.configs.base import BaseSettings
from entitystore.models.batch import BatchLimits


class StoreSettings(BaseSettings):
    """Store backend configuration (memory for dev, DynamoDB for prod)."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        env_prefix="ENTITYSTORE_",
        case_sensitive=False,
        extra="ignore",
    )

    backend: Literal["memory", "dynamodb"] = Field(
        default="memory",
        description="Store backend: 'memory' for local dev, 'dynamodb' for production",
    )
    table_name: str = Field(default="entities", description="DynamoDB table name")
    aws_region: str = Field(default="ap-southeast-2", description="AWS region for DynamoDB")
    endpoint_url: str | None = Field(
        default=None,
        description="Override DynamoDB endpoint (e.g. DynamoDB Local)",
    )

    put_limit: int | None = Field(
        default=None,
        ge=1,
        description="Items per put call; defaults to the backend's limit",
    )
    get_limit: int | None = Field(
        default=None,
        ge=1,
        description="Items per get call; defaults to the backend's limit",
    )
    delete_limit: int | None = Field(
        default=None,
        ge=1,
        description="Items per delete call; defaults to the backend's limit",
    )
    max_workers: int = Field(default=8, ge=1, description="Concurrent chunk calls per batch")

    ignore_field_mismatch: bool = Field(
        default=True,
        description="Load records with properties the entity no longer declares",
    )
    max_unprocessed_retries: int = Field(
        default=5,
        ge=1,
        description="Attempts to flush DynamoDB unprocessed batch items",
    )

    def batch_limits(self, defaults: BatchLimits) -> BatchLimits:
        """
        Apply configured overrides to a backend's default limits.

        Args:
            defaults: The backend's own per-call limits

        Returns:
            BatchLimits: Limits with any configured values substituted
        """
        return BatchLimits(
            put=self.put_limit or defaults.put,
            get=self.get_limit or defaults.get,
            delete=self.delete_limit or defaults.delete,
        )
