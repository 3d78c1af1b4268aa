"""
DynamoDB store service for production.

Stores each entity as one item in a single table:
- pk: encoded Key (partition key)
- kind: entity kind
- ancestors: encoded keys of the entity and every parent, for ancestor queries
- props: property map

Batch calls map onto BatchWriteItem / BatchGetItem, whose per-call caps
(25 writes, 100 reads) become this service's batch limits. Unprocessed
items are retried with exponential backoff; items still unprocessed after
the last attempt are reported per item. Queries are table scans filtered
by kind, so ordering is not supported.

Dependencies: boto3, botocore, tenacity, python-dotenv
System role: Production store backend
"""

import base64
import json
import logging
import uuid
from datetime import date, datetime
from decimal import Decimal
from typing import Any, Callable, Sequence, TypeVar

import boto3
from boto3.dynamodb.conditions import Attr, ConditionBase, ConditionExpressionBuilder
from boto3.dynamodb.types import TypeDeserializer, TypeSerializer
from botocore.exceptions import ClientError
from dotenv import load_dotenv
from tenacity import (
    Retrying,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential_jitter,
)
from tenacity.wait import wait_base

from entitystore.boundary.store.service import check_key
from entitystore.core.exceptions import (
    Done,
    FieldMismatchError,
    InvalidEntityTypeError,
    InvalidKeyError,
    MultiError,
    NoSuchEntityError,
    StoreServiceError,
    TransactionError,
)
from entitystore.core.keys import Key
from entitystore.models.batch import BatchLimits
from entitystore.models.query import Cursor, Query, QueryFilter

load_dotenv()
logger = logging.getLogger(__name__)

T = TypeVar("T")

DYNAMODB_LIMITS = BatchLimits(put=25, get=100, delete=25)
TRANSACTION_ITEM_LIMIT = 100

_FILTERS: dict[str, Callable[[Attr, Any], ConditionBase]] = {
    "=": lambda attr, value: attr.eq(value),
    "!=": lambda attr, value: attr.ne(value),
    "<": lambda attr, value: attr.lt(value),
    "<=": lambda attr, value: attr.lte(value),
    ">": lambda attr, value: attr.gt(value),
    ">=": lambda attr, value: attr.gte(value),
    "in": lambda attr, value: attr.is_in(list(value)),
}


class UnprocessedItemsError(StoreServiceError):
    """Raised when DynamoDB leaves batch items unprocessed."""

    def __init__(self, pending: dict[str, Any]) -> None:
        self.pending = pending
        super().__init__("batch items left unprocessed", details={"tables": list(pending)})


def _to_dynamo(value: Any) -> Any:
    if isinstance(value, bool) or value is None:
        return value
    if isinstance(value, float):
        return Decimal(str(value))
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    if isinstance(value, dict):
        return {str(k): _to_dynamo(v) for k, v in value.items()}
    if isinstance(value, (list, tuple)):
        return [_to_dynamo(v) for v in value]
    return value


def _from_dynamo(value: Any) -> Any:
    if isinstance(value, Decimal):
        return int(value) if value == value.to_integral_value() else float(value)
    if isinstance(value, dict):
        return {k: _from_dynamo(v) for k, v in value.items()}
    if isinstance(value, list):
        return [_from_dynamo(v) for v in value]
    return value


def _new_id() -> int:
    # 63-bit positive id, like the ids a datastore allocates
    return uuid.uuid4().int >> 65


class DynamoDBQueryCursor:
    """Pages through a filtered table scan."""

    def __init__(self, service: "DynamoDBStoreService", query: Query) -> None:
        self._service = service
        self._query = query
        self._scan_args = service._scan_args(query)
        self._start_key = service._decode_cursor(query.start_cursor)
        self._last_key = self._start_key
        self._buffer: list[dict[str, Any]] = []
        self._exhausted = False
        self._to_skip = query.offset
        self._remaining = query.limit

    def _fill(self) -> None:
        while not self._buffer and not self._exhausted:
            args = dict(self._scan_args)
            if self._start_key:
                args["ExclusiveStartKey"] = self._start_key
            response = self._service._call("scan", "query", **args)
            self._buffer = list(response.get("Items", []))
            self._start_key = response.get("LastEvaluatedKey")
            self._exhausted = not self._start_key

    def next(self) -> tuple[Key, dict[str, Any] | None]:
        while True:
            if self._remaining is not None and self._remaining <= 0:
                raise Done()
            self._fill()
            if not self._buffer:
                raise Done()
            item = self._buffer.pop(0)
            self._last_key = {"pk": item["pk"]}
            if self._to_skip > 0:
                self._to_skip -= 1
                continue
            if self._remaining is not None:
                self._remaining -= 1
            key = Key.decode(item["pk"]["S"])
            if self._query.keys_only_results:
                return key, None
            return key, self._service._properties(item)

    def cursor(self) -> Cursor:
        return self._service._encode_cursor(self._last_key)


class DynamoDBTransaction:
    """
    Buffers writes until commit.

    Reads go straight to the table with consistent reads and do not see
    the transaction's own buffered writes.
    """

    def __init__(self, service: "DynamoDBStoreService") -> None:
        self._service = service
        self._writes: dict[str, dict[str, Any]] = {}
        self.closed = False

    def _check_open(self) -> None:
        if self.closed:
            raise TransactionError("transaction has already finished")

    def put_multi(self, keys: Sequence[Key], entities: Sequence[Any]) -> list[Key]:
        self._check_open()
        result, errors, items = self._service._prepare_puts(keys, entities)
        for item in items:
            self._writes[item["pk"]["S"]] = {
                "Put": {"TableName": self._service.table_name, "Item": item}
            }
        if any(e is not None for e in errors):
            raise MultiError(errors, keys=result)
        return result

    def get_multi(self, keys: Sequence[Key], entities: Sequence[Any]) -> None:
        self._check_open()
        self._service.get_multi(keys, entities)

    def delete_multi(self, keys: Sequence[Key]) -> None:
        self._check_open()
        errors: list[BaseException | None] = [None] * len(keys)
        for i, key in enumerate(keys):
            invalid = check_key(key)
            if invalid is not None or key.incomplete:
                errors[i] = invalid or InvalidKeyError("key is incomplete")
                continue
            pk = key.encode()
            self._writes[pk] = {
                "Delete": {"TableName": self._service.table_name, "Key": {"pk": {"S": pk}}}
            }
        if any(e is not None for e in errors):
            raise MultiError(errors)

    def commit(self) -> None:
        self._check_open()
        if not self._writes:
            return
        if len(self._writes) > TRANSACTION_ITEM_LIMIT:
            raise TransactionError(
                f"transaction writes more than {TRANSACTION_ITEM_LIMIT} items",
                details={"items": len(self._writes)},
            )
        try:
            self._service._client.transact_write_items(TransactItems=list(self._writes.values()))
        except ClientError as e:
            raise TransactionError(
                "failed to commit transaction",
                operation="transaction",
                details={"error": str(e), "items": len(self._writes)},
            ) from e


class DynamoDBStoreService:
    """DynamoDB-backed store service."""

    def __init__(
        self,
        table_name: str = "entities",
        region: str = "ap-southeast-2",
        endpoint_url: str | None = None,
        limits: BatchLimits | None = None,
        max_unprocessed_retries: int = 5,
        client: Any = None,
        retry_wait: wait_base | None = None,
    ) -> None:
        """
        Initialize DynamoDB store service.

        Args:
            table_name: Table with string partition key "pk"
            region: AWS region
            endpoint_url: Endpoint override (e.g. DynamoDB Local)
            limits: Per-call batch limits, at most 25/100/25
            max_unprocessed_retries: Attempts to flush unprocessed items
            client: Preconfigured boto3 DynamoDB client
            retry_wait: Wait strategy between unprocessed-item retries
        """
        self.table_name = table_name
        self.limits = limits or DYNAMODB_LIMITS
        if (
            self.limits.put > DYNAMODB_LIMITS.put
            or self.limits.get > DYNAMODB_LIMITS.get
            or self.limits.delete > DYNAMODB_LIMITS.delete
        ):
            raise ValueError(f"DynamoDB batch limits cannot exceed {DYNAMODB_LIMITS}")
        self._client = client or boto3.client(
            "dynamodb", region_name=region, endpoint_url=endpoint_url
        )
        self._serializer = TypeSerializer()
        self._deserializer = TypeDeserializer()
        self._retrying = Retrying(
            retry=retry_if_exception_type(UnprocessedItemsError),
            stop=stop_after_attempt(max_unprocessed_retries),
            wait=retry_wait or wait_exponential_jitter(initial=0.05, max=2, jitter=0.1),
            before_sleep=lambda retry_state: logger.warning(
                f"{__name__}:_flush - Retry {retry_state.attempt_number}/"
                f"{max_unprocessed_retries} for unprocessed items"
            ),
            reraise=True,
        )

    # Helpers

    def _call(self, method: str, operation: str, **kwargs: Any) -> dict[str, Any]:
        try:
            return getattr(self._client, method)(**kwargs)
        except ClientError as e:
            raise StoreServiceError(
                f"DynamoDB {method} failed",
                operation=operation,
                details={"error": str(e), "table": self.table_name},
            ) from e

    def _item(self, key: Key, properties: dict[str, Any]) -> dict[str, Any]:
        ancestors = []
        current: Key | None = key
        while current is not None:
            ancestors.append({"S": current.encode()})
            current = current.parent
        return {
            "pk": {"S": key.encode()},
            "kind": {"S": key.kind},
            "ancestors": {"L": ancestors},
            "props": self._serializer.serialize(_to_dynamo(properties)),
        }

    def _properties(self, item: dict[str, Any]) -> dict[str, Any]:
        if "props" not in item:
            return {}
        return _from_dynamo(self._deserializer.deserialize(item["props"]))

    def _flush(
        self,
        operation: str,
        method: str,
        pending: dict[str, Any],
        unprocessed_field: str,
    ) -> list[dict[str, Any]]:
        """
        Send a batch request, retrying whatever DynamoDB leaves unprocessed.

        Returns:
            list: Responses of every attempt

        Raises:
            UnprocessedItemsError: If items remain after the last attempt
        """
        responses = []

        def attempt() -> None:
            response = self._call(method, operation, RequestItems=pending["items"])
            responses.append(response)
            unprocessed = response.get(unprocessed_field) or {}
            if unprocessed:
                pending["items"] = unprocessed
                raise UnprocessedItemsError(unprocessed)

        self._retrying(attempt)
        return responses

    def _prepare_puts(
        self, keys: Sequence[Key], entities: Sequence[Any]
    ) -> tuple[list[Key], list[BaseException | None], list[dict[str, Any]]]:
        if len(keys) != len(entities):
            raise StoreServiceError(
                "keys and entities have different lengths",
                operation="put",
                details={"keys": len(keys), "entities": len(entities)},
            )
        result = list(keys)
        errors: list[BaseException | None] = [None] * len(keys)
        items = []
        for i, (key, entity) in enumerate(zip(keys, entities)):
            invalid = check_key(key)
            if invalid is not None:
                errors[i] = invalid
                continue
            if not hasattr(entity, "to_properties"):
                errors[i] = InvalidEntityTypeError()
                continue
            if key.incomplete:
                key = key.with_id(_new_id())
                result[i] = key
            items.append(self._item(key, entity.to_properties()))
        return result, errors, items

    def _write(
        self,
        operation: str,
        requests: dict[str, dict[str, Any]],
        errors: list[BaseException | None],
        index_of: dict[str, list[int]],
    ) -> None:
        if not requests:
            return
        pending = {"items": {self.table_name: list(requests.values())}}
        try:
            self._flush(operation, "batch_write_item", pending, "UnprocessedItems")
        except UnprocessedItemsError as e:
            for request in e.pending.get(self.table_name, []):
                body = request.get("PutRequest", {}).get("Item") or request.get(
                    "DeleteRequest", {}
                ).get("Key", {})
                for i in index_of.get(body["pk"]["S"], []):
                    errors[i] = StoreServiceError(
                        "item left unprocessed after retries", operation=operation
                    )

    # StoreService

    def put_multi(self, keys: Sequence[Key], entities: Sequence[Any]) -> list[Key]:
        result, errors, items = self._prepare_puts(keys, entities)
        requests: dict[str, dict[str, Any]] = {}
        index_of: dict[str, list[int]] = {}
        for i, key in enumerate(result):
            if errors[i] is None:
                index_of.setdefault(key.encode(), []).append(i)
        for item in items:
            requests[item["pk"]["S"]] = {"PutRequest": {"Item": item}}

        self._write("put", requests, errors, index_of)
        if any(e is not None for e in errors):
            raise MultiError(errors, keys=result)
        return result

    def get_multi(self, keys: Sequence[Key], entities: Sequence[Any]) -> None:
        if len(keys) != len(entities):
            raise StoreServiceError(
                "keys and entities have different lengths",
                operation="get",
                details={"keys": len(keys), "entities": len(entities)},
            )
        errors: list[BaseException | None] = [None] * len(keys)
        wanted: dict[str, list[int]] = {}
        for i, key in enumerate(keys):
            invalid = check_key(key)
            if invalid is not None or key.incomplete:
                errors[i] = invalid or InvalidKeyError("key is incomplete")
                continue
            wanted.setdefault(key.encode(), []).append(i)

        found: dict[str, dict[str, Any]] = {}
        unprocessed: set[str] = set()
        if wanted:
            pending = {
                "items": {
                    self.table_name: {
                        "Keys": [{"pk": {"S": pk}} for pk in wanted],
                        "ConsistentRead": True,
                    }
                }
            }
            try:
                responses = self._flush("get", "batch_get_item", pending, "UnprocessedKeys")
            except UnprocessedItemsError as e:
                responses = []
                for table_request in e.pending.values():
                    unprocessed.update(k["pk"]["S"] for k in table_request.get("Keys", []))
            for response in responses:
                for item in response.get("Responses", {}).get(self.table_name, []):
                    found[item["pk"]["S"]] = item

        for pk, indexes in wanted.items():
            for i in indexes:
                if pk in unprocessed:
                    errors[i] = StoreServiceError(
                        "item left unprocessed after retries", operation="get"
                    )
                elif pk not in found:
                    errors[i] = NoSuchEntityError()
                elif not hasattr(entities[i], "load_properties"):
                    errors[i] = InvalidEntityTypeError()
                else:
                    skipped = entities[i].load_properties(self._properties(found[pk]))
                    if skipped:
                        errors[i] = FieldMismatchError(keys[i].kind, *skipped[0])

        if any(e is not None for e in errors):
            raise MultiError(errors)

    def delete_multi(self, keys: Sequence[Key]) -> None:
        errors: list[BaseException | None] = [None] * len(keys)
        requests: dict[str, dict[str, Any]] = {}
        index_of: dict[str, list[int]] = {}
        for i, key in enumerate(keys):
            invalid = check_key(key)
            if invalid is not None or key.incomplete:
                errors[i] = invalid or InvalidKeyError("key is incomplete")
                continue
            pk = key.encode()
            requests[pk] = {"DeleteRequest": {"Key": {"pk": {"S": pk}}}}
            index_of.setdefault(pk, []).append(i)

        self._write("delete", requests, errors, index_of)
        if any(e is not None for e in errors):
            raise MultiError(errors)

    def run_in_transaction(self, fn: Callable[[DynamoDBTransaction], T]) -> T:
        tx = DynamoDBTransaction(self)
        try:
            result = fn(tx)
            tx.commit()
        finally:
            tx.closed = True
        return result

    # Queries

    def _scan_args(self, query: Query) -> dict[str, Any]:
        if query.orders:
            raise StoreServiceError(
                "ordering is not supported by the DynamoDB backend",
                operation="query",
                details={"orders": list(query.orders)},
            )
        condition: ConditionBase = Attr("kind").eq(query.kind)
        if query.ancestor is not None:
            condition = condition & Attr("ancestors").contains(query.ancestor.encode())
        for query_filter in query.filters:
            condition = condition & self._filter_condition(query_filter)

        built = ConditionExpressionBuilder().build_expression(condition)
        args = {
            "TableName": self.table_name,
            "FilterExpression": built.condition_expression,
            "ExpressionAttributeNames": built.attribute_name_placeholders,
            "ExpressionAttributeValues": {
                name: self._serializer.serialize(_to_dynamo(value))
                for name, value in built.attribute_value_placeholders.items()
            },
            "ConsistentRead": True,
        }
        if query.keys_only_results:
            args["ProjectionExpression"] = "pk"
        return args

    @staticmethod
    def _filter_condition(query_filter: QueryFilter) -> ConditionBase:
        return _FILTERS[query_filter.op](Attr(f"props.{query_filter.field}"), query_filter.value)

    def _encode_cursor(self, start_key: dict[str, Any] | None) -> Cursor:
        if not start_key:
            return Cursor(value="")
        payload = json.dumps(start_key, separators=(",", ":")).encode("utf-8")
        return Cursor(value=base64.urlsafe_b64encode(payload).decode("ascii"))

    def _decode_cursor(self, cursor: Cursor | None) -> dict[str, Any] | None:
        if cursor is None or not cursor.value:
            return None
        try:
            return json.loads(base64.urlsafe_b64decode(cursor.value.encode("ascii")))
        except ValueError as e:
            raise StoreServiceError(
                "invalid cursor", operation="query", details={"cursor": cursor.value}
            ) from e

    def count(self, query: Query) -> int:
        args = self._scan_args(query)
        args.pop("ProjectionExpression", None)
        args["Select"] = "COUNT"
        start_key = self._decode_cursor(query.start_cursor)
        total = 0
        while True:
            if start_key:
                args["ExclusiveStartKey"] = start_key
            response = self._call("scan", "count", **args)
            total += response.get("Count", 0)
            start_key = response.get("LastEvaluatedKey")
            if not start_key:
                break
        total = max(0, total - query.offset)
        return total if query.limit is None else min(total, query.limit)

    def run_query(self, query: Query) -> DynamoDBQueryCursor:
        return DynamoDBQueryCursor(self, query)
