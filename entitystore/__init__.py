"""
Batched client for schemaless key-value entity stores.

Maps application entities to store keys and runs create, read and delete
batches of any size against a store service, chunked to the store's
per-call limits and executed concurrently.
"""

from entitystore.core.client import EntityStoreClient
from entitystore.core.entity import Entity, KeyedEntity
from entitystore.core.exceptions import MultiError, NoSuchEntityError
from entitystore.core.key_resolver import default_kind_name, set_default_kind_name_resolver
from entitystore.core.keys import Key
from entitystore.core.outcomes import is_not_found
from entitystore.models.query import Cursor, Query

__all__ = [
    "EntityStoreClient",
    "Entity",
    "KeyedEntity",
    "Key",
    "MultiError",
    "NoSuchEntityError",
    "Query",
    "Cursor",
    "default_kind_name",
    "set_default_kind_name_resolver",
    "is_not_found",
]
