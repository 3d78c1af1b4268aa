"""
Entity store client.

Public surface for storing, loading, deleting and querying entities.
Batch operations resolve keys, split the batch into store-sized chunks,
run the chunks concurrently and reshape per-item outcomes into a single
error (or an itemized MultiError) for the caller.

Dependencies: entitystore.core, entitystore.boundary.store, entitystore.configs
System role: Batched data-access layer over a store service
"""

import logging
import threading
from typing import Any, Callable, Sequence, TypeVar

from entitystore.boundary.store.service import BatchService, StoreService
from entitystore.configs import get_settings
from entitystore.core.dispatcher import BatchDispatcher, BatchOperation, DispatchResult
from entitystore.core.entity import KeyedEntity, new_entity
from entitystore.core.exceptions import (
    Done,
    InvalidDestinationError,
    InvalidShapeError,
    MissingIdentityError,
    MultiError,
    NotASequenceError,
    TransactionError,
)
from entitystore.core.key_resolver import KeyResolver, KindNameResolver
from entitystore.core.keys import Key
from entitystore.core.outcomes import collapse_outcomes, filter_field_mismatch
from entitystore.core.query import EntityIterator, load_into
from entitystore.models.batch import BatchLimits
from entitystore.models.query import Query

logger = logging.getLogger(__name__)

T = TypeVar("T")


class EntityStoreClient:
    """
    Batched client over a store service.

    Holds configuration only: the kind name resolver, schema drift
    tolerance, batch limits and whether it is bound to a transaction.
    There is no entity cache.
    """

    def __init__(
        self,
        service: StoreService,
        kind_name_resolver: KindNameResolver | None = None,
        ignore_field_mismatch: bool | None = None,
        limits: BatchLimits | None = None,
        max_workers: int | None = None,
    ) -> None:
        """
        Initialize client.

        Args:
            service: Store backend
            kind_name_resolver: Maps entity classes to kind names
            ignore_field_mismatch: Load records with unknown properties without error
            limits: Per-call batch limits; defaults to the service's limits
            max_workers: Maximum concurrent chunk calls per batch
        """
        settings = get_settings().store
        self.service = service
        self.resolver = KeyResolver(kind_name_resolver)
        self.ignore_field_mismatch = (
            settings.ignore_field_mismatch
            if ignore_field_mismatch is None
            else ignore_field_mismatch
        )
        self.limits = limits or getattr(service, "limits", None) or BatchLimits()
        self.max_workers = max_workers or settings.max_workers
        self.in_transaction = False
        self._batch: BatchService = service
        self._local = threading.local()

    @classmethod
    def from_settings(cls, **kwargs: Any) -> "EntityStoreClient":
        """Create a client over the store backend selected by settings."""
        from entitystore.boundary.store.store_factory import get_store_service

        return cls(get_store_service(), **kwargs)

    @property
    def kind_name_resolver(self) -> KindNameResolver:
        return self.resolver.kind_name_resolver

    @kind_name_resolver.setter
    def kind_name_resolver(self, resolver: KindNameResolver) -> None:
        self.resolver.kind_name_resolver = resolver

    # Keys

    def key_error(self, entity: Any) -> Key:
        """Return the key of entity based on its identity and parent."""
        return self.resolver.resolve(entity).key

    def key(self, entity: Any) -> Key | None:
        """Like key_error, but None on error or if the key is incomplete."""
        try:
            key = self.key_error(entity)
        except InvalidShapeError:
            return None
        return None if key.incomplete else key

    def kind(self, entity: Any) -> str:
        """Return the kind of entity, or "" on error."""
        try:
            return self.key_error(entity).kind
        except InvalidShapeError:
            return ""

    def query(self, entity_type: type) -> Query:
        """Start a query over the kind of entity_type."""
        return Query(kind=self.kind_name_resolver(entity_type), entity_type=entity_type)

    # Batch operations

    def _limit(self, limit: int, n: int) -> int:
        # A transaction is a single call; it is never split.
        return n if self.in_transaction else limit

    def _dispatch(
        self,
        operation: BatchOperation,
        keys: list[Key],
        entities: Sequence[Any] | None,
        limit: int,
    ) -> DispatchResult:
        if getattr(self._local, "transaction_open", False):
            raise TransactionError(
                "a transaction is open on this thread; use the client passed to its function",
                operation=operation.value,
            )
        dispatcher = BatchDispatcher(self._batch, max_workers=self.max_workers)
        return dispatcher.dispatch(operation, keys, entities, self._limit(limit, len(keys)))

    def put(self, entity: Any) -> Key:
        """
        Save entity. An incomplete key gets an id generated by the store.

        Returns:
            Key: The stored entity's complete key
        """
        try:
            keys = self.put_multi([entity])
        except MultiError as e:
            raise e[0] from None
        return keys[0]

    def put_multi(self, entities: Sequence[Any]) -> list[Key]:
        """
        Batch version of put.

        Generated keys are stamped onto the entities. When some items fail
        the raised MultiError carries the keys in its keys attribute.

        Raises:
            NotASequenceError, InvalidShapeError, EmptyStringIdentityError:
                Before any store call
            MultiError: Per-item failures
        """
        keys = self.resolver.resolve_all(entities, allow_incomplete=True)
        if not keys:
            return []

        result = self._dispatch(BatchOperation.PUT, keys, entities, self.limits.put)
        for entity, key in zip(entities, result.keys):
            if not key.incomplete:
                self.resolver.apply(entity, key)

        err = collapse_outcomes(result.outcomes, keys=result.keys)
        if err is not None:
            raise err
        logger.debug(f"{__name__}:put_multi - Stored {len(keys)} {keys[0].kind} entities")
        return result.keys

    def get(self, entity: Any, ignore_field_mismatch: bool | None = None) -> None:
        """
        Load the stored entity for entity's key into entity.

        Raises:
            NoSuchEntityError: If nothing is stored under the key
        """
        try:
            self.get_multi([entity], ignore_field_mismatch=ignore_field_mismatch)
        except MultiError as e:
            raise e[0] from None

    def get_multi(
        self,
        entities: Sequence[Any],
        ignore_field_mismatch: bool | None = None,
    ) -> None:
        """
        Batch version of get.

        Args:
            entities: Entities with complete keys; loaded in place
            ignore_field_mismatch: Overrides the client's schema drift tolerance

        Raises:
            MissingIdentityError: If an entity has no identity
            MultiError: Per-item failures; check with is_not_found(err, i)
        """
        keys = self.resolver.resolve_all(entities, allow_incomplete=False)
        if not keys:
            return

        result = self._dispatch(BatchOperation.GET, keys, entities, self.limits.get)
        ignore = (
            self.ignore_field_mismatch
            if ignore_field_mismatch is None
            else ignore_field_mismatch
        )
        err = collapse_outcomes(filter_field_mismatch(result.outcomes, ignore))
        if err is not None:
            raise err

    def delete(self, key: Key) -> None:
        """Delete the entity for key."""
        try:
            self.delete_multi([key])
        except MultiError as e:
            raise e[0] from None

    def delete_multi(self, keys: Sequence[Key]) -> None:
        """Batch version of delete."""
        if not isinstance(keys, (list, tuple)):
            raise NotASequenceError(type(keys).__name__)
        for index, key in enumerate(keys):
            if not isinstance(key, Key):
                raise InvalidShapeError(
                    f"expected a Key at index {index}", value_type=type(key).__name__
                )
            if key.incomplete:
                raise MissingIdentityError(index, key)
        if not keys:
            return

        result = self._dispatch(BatchOperation.DELETE, list(keys), None, self.limits.delete)
        err = collapse_outcomes(result.outcomes)
        if err is not None:
            raise err

    # Transactions

    def run_in_transaction(self, fn: Callable[["EntityStoreClient"], T]) -> T:
        """
        Run fn in a transaction.

        fn receives a client bound to the transaction and must use it for
        every batch operation. The transaction commits if fn returns and
        rolls back if it raises.

        Raises:
            TransactionError: If fn calls put, get or delete on this client
                (rather than the one it was given) or opens a nested transaction
        """
        if self.in_transaction or getattr(self._local, "transaction_open", False):
            raise TransactionError("nested transactions are not supported")

        def body(tx: BatchService) -> T:
            return fn(self._bind(tx))

        self._local.transaction_open = True
        try:
            return self.service.run_in_transaction(body)
        finally:
            self._local.transaction_open = False

    def _bind(self, tx: BatchService) -> "EntityStoreClient":
        bound = EntityStoreClient(
            self.service,
            kind_name_resolver=self.kind_name_resolver,
            ignore_field_mismatch=self.ignore_field_mismatch,
            limits=self.limits,
            max_workers=self.max_workers,
        )
        bound.in_transaction = True
        bound._batch = tx
        return bound

    # Queries

    def count(self, query: Query) -> int:
        """Return the number of results for query."""
        return self.service.count(query)

    def get_all(
        self,
        query: Query,
        destination: list | None = None,
        entity_type: type | None = None,
        ignore_field_mismatch: bool | None = None,
    ) -> list[Key]:
        """
        Run query and return the keys of all results.

        With a destination, one entity per result is appended to it with
        its key fields set. Without one, the query runs keys-only.

        Args:
            query: Query to run
            destination: List to append loaded entities to
            entity_type: Entity class to load into; defaults to query.entity_type
                or the type of destination's first element
            ignore_field_mismatch: Overrides the client's schema drift tolerance

        Raises:
            InvalidDestinationError: If destination cannot receive entities
        """
        if destination is None:
            return self._collect_keys(query.keys_only())

        if not isinstance(destination, list):
            raise InvalidDestinationError(
                "destination must be a list or None",
                {"destination_type": type(destination).__name__},
            )
        entity_type = entity_type or query.entity_type
        if entity_type is None and destination:
            entity_type = type(destination[0])
        if not (isinstance(entity_type, type) and issubclass(entity_type, KeyedEntity)):
            raise InvalidDestinationError(
                "cannot determine an entity type for the destination",
                {"entity_type": repr(entity_type)},
            )

        cursor = self.service.run_query(query)
        keys = []
        first_mismatch = None
        while True:
            try:
                key, properties = cursor.next()
            except Done:
                break
            entity = new_entity(entity_type)
            mismatch = load_into(entity, key, properties, self.resolver)
            destination.append(entity)
            keys.append(key)
            if first_mismatch is None:
                first_mismatch = mismatch

        ignore = (
            self.ignore_field_mismatch
            if ignore_field_mismatch is None
            else ignore_field_mismatch
        )
        if first_mismatch is not None and not ignore:
            raise first_mismatch
        return keys

    def _collect_keys(self, query: Query) -> list[Key]:
        cursor = self.service.run_query(query)
        keys = []
        while True:
            try:
                key, _ = cursor.next()
            except Done:
                return keys
            keys.append(key)

    def run(self, query: Query) -> EntityIterator:
        """Run query, returning an iterator over its results."""
        return EntityIterator(
            self.service.run_query(query),
            self.resolver,
            self.ignore_field_mismatch,
            entity_type=query.entity_type,
        )
