from __future__ import annotations

import json
from decimal import Decimal
from typing import Any, Callable, Iterable

from boto3.dynamodb.conditions import Key as KeyCondition
from boto3.dynamodb.types import TypeSerializer
from botocore.exceptions import ClientError

from ..observability.logging import get_logger
from ..settings import Settings, get_settings
from .adapter import MAX_TRANSACT_ITEMS, Adapter
from .calls import nosql_call
from .client import table_resource
from .dmp_item import DmpItem
from .errors import NosqlError, NosqlValidation
from .item import Item
from .keys import Key

MSG_INVALID_ITEM = "Invalid item. Expecting a NoSQL Item!"
MSG_INVALID_KEY = "Invalid key specified. Expecting a key containing `PK` and `SK`"
MSG_NO_TABLE_CREATE = "Cannot create a DynamoDB Table outside the local dev env!"
MSG_NO_TABLE_PURGE = "Cannot purge a DynamoDB Table outside the local dev env!"
MSG_TOO_MANY_WRITES = "A transaction can hold at most 100 writes!"

_serializer = TypeSerializer()

log = get_logger("nosql")


def _to_dynamo(value: Any) -> Any:
    # The boto3 resource layer rejects floats; round-trip through JSON into Decimals.
    return json.loads(json.dumps(value, default=_json_default), parse_float=Decimal)


def _json_default(value: Any) -> Any:
    if isinstance(value, Decimal):
        return int(value) if value == value.to_integral_value() else float(value)
    if isinstance(value, (set, frozenset)):
        return sorted(value)
    return str(value)


def _serialize_item(item: dict[str, Any]) -> dict[str, Any]:
    # The client API takes AttributeValue shapes ({"S": ...}), not plain values.
    return {k: _serializer.serialize(v) for k, v in item.items()}


def _from_dynamo(value: Any) -> Any:
    if isinstance(value, dict):
        return {k: _from_dynamo(v) for k, v in value.items()}
    if isinstance(value, (list, tuple)):
        return [_from_dynamo(v) for v in value]
    if isinstance(value, (set, frozenset)):
        return sorted(_from_dynamo(v) for v in value)
    if isinstance(value, Decimal):
        return int(value) if value == value.to_integral_value() else float(value)
    return value


class DynamodbAdapter(Adapter):
    """Adapter for a DynamoDB table keyed by `PK` (partition) and `SK` (sort)."""

    def __init__(
        self,
        *,
        table: str | None = None,
        item_class: type[Item] | None = None,
        dynamo_table: Any | None = None,
        settings: Settings | None = None,
    ):
        self.settings = settings or get_settings()
        super().__init__(table=table or self.settings.nosql_table, item_class=item_class or DmpItem)
        self._table = dynamo_table if dynamo_table is not None else table_resource(self.table_name)
        self._client = self._table.meta.client
        log.info("nosql_adapter_ready", table=self.table_name, item_class=self.item_class.__name__)

    @property
    def _consumed_capacity(self) -> str:
        return "TOTAL" if self.debug else "NONE"

    # --- basic operations ---

    def exists(self, key: Key | dict[str, Any]) -> bool:
        """Whether anything (latest, snapshot or tombstone) is stored under the key's partition."""
        pk: Any = None
        if isinstance(key, Key):
            pk = key.partition_key
        elif isinstance(key, dict):
            pk = key.get("PK")
        if not pk:
            return False

        resp = nosql_call(
            "Query",
            lambda: self._table.query(
                KeyConditionExpression=KeyCondition("PK").eq(str(pk)),
                ProjectionExpression="PK",
                Limit=1,
            ),
            table_name=self.table_name,
            key={"PK": str(pk)},
        )
        return bool(resp.get("Items"))

    def get(
        self,
        key: Key | dict[str, Any],
        *,
        projection_expression: str | None = None,
        item_class: type[Item] | None = None,
    ) -> Item | None:
        dkey = self._require_key(key, operation="GetItem")

        opts: dict[str, Any] = {
            "Key": dkey,
            "ConsistentRead": False,
            "ReturnConsumedCapacity": self._consumed_capacity,
        }
        if projection_expression:
            opts["ProjectionExpression"] = projection_expression

        log.info("nosql_get", table=self.table_name, key=dkey)
        resp = nosql_call("GetItem", lambda: self._table.get_item(**opts), table_name=self.table_name, key=dkey)
        log.debug("nosql_get_response", table=self.table_name, consumed=resp.get("ConsumedCapacity"))

        raw = resp.get("Item")
        if not raw:
            return None
        return self._to_items([raw], item_class)[0]

    def put(self, item: Item) -> bool:
        if not isinstance(item, Item):
            raise NosqlValidation(message=MSG_INVALID_ITEM, operation="PutItem", table_name=self.table_name)

        doc = item.to_nosql_hash()
        dkey = item.key.as_dynamo()
        log.info("nosql_put", table=self.table_name, key=dkey)
        nosql_call(
            "PutItem",
            lambda: self._table.put_item(Item=_to_dynamo(doc), ReturnConsumedCapacity=self._consumed_capacity),
            table_name=self.table_name,
            key=dkey,
        )
        return True

    def delete(self, key: Key | dict[str, Any]) -> bool:
        dkey = self._require_key(key, operation="DeleteItem")

        log.info("nosql_delete", table=self.table_name, key=dkey)
        nosql_call("DeleteItem", lambda: self._table.delete_item(Key=dkey), table_name=self.table_name, key=dkey)
        return True

    def transact_write(
        self,
        *,
        puts: Iterable[Item] = (),
        deletes: Iterable[Key | dict[str, Any]] = (),
    ) -> bool:
        """Write and delete several items in one all-or-nothing TransactWriteItems call."""
        entries: list[dict[str, Any]] = []
        for item in puts:
            if not isinstance(item, Item):
                raise NosqlValidation(
                    message=MSG_INVALID_ITEM, operation="TransactWriteItems", table_name=self.table_name
                )
            doc = _to_dynamo(item.to_nosql_hash())
            entries.append({"Put": {"TableName": self.table_name, "Item": _serialize_item(doc)}})
        for key in deletes:
            dkey = self._require_key(key, operation="TransactWriteItems")
            entries.append({"Delete": {"TableName": self.table_name, "Key": _serialize_item(dkey)}})

        if not entries:
            return True
        if len(entries) > MAX_TRANSACT_ITEMS:
            raise NosqlValidation(
                message=MSG_TOO_MANY_WRITES, operation="TransactWriteItems", table_name=self.table_name
            )

        log.info("nosql_transact_write", table=self.table_name, writes=len(entries))
        nosql_call(
            "TransactWriteItems",
            lambda: self._client.transact_write_items(TransactItems=entries),
            table_name=self.table_name,
        )
        return True

    # --- query ---

    def query(
        self,
        *,
        key_condition_expression: Any | None = None,
        filter_expression: Any | None = None,
        index_name: str | None = None,
        projection_expression: str | None = None,
        scan_index_forward: bool = True,
        item_class: type[Item] | None = None,
    ) -> list[Item]:
        """Run a paginated Query, or a full Scan when no key condition is given."""
        kwargs: dict[str, Any] = {"ReturnConsumedCapacity": self._consumed_capacity}
        if filter_expression is not None:
            kwargs["FilterExpression"] = filter_expression
        if projection_expression:
            kwargs["ProjectionExpression"] = projection_expression
        if index_name:
            kwargs["IndexName"] = index_name

        operation: str
        fn: Callable[..., dict[str, Any]]
        if key_condition_expression is None:
            # TODO: move listing onto a search index; scans read the whole table.
            operation, fn = "Scan", self._table.scan
        else:
            operation, fn = "Query", self._table.query
            kwargs["KeyConditionExpression"] = key_condition_expression
            kwargs["ScanIndexForward"] = bool(scan_index_forward)

        log.info("nosql_query", table=self.table_name, operation=operation, index=index_name)
        raw = self._paginate(operation, fn, kwargs)
        return self._to_items(raw, item_class)

    def versions(self, partition_key: str, *, item_class: type[Item] | None = None) -> list[Item]:
        return self.query(
            key_condition_expression=KeyCondition("PK").eq(partition_key),
            scan_index_forward=False,
            item_class=item_class,
        )

    # --- local dev env only ---

    def initialize_database(self) -> bool:
        """Create the table unless it already exists. Returns True when created."""
        if not self.settings.is_local:
            raise NosqlError(message=MSG_NO_TABLE_CREATE, operation="CreateTable", table_name=self.table_name)

        if nosql_call("DescribeTable", self._table_exists, table_name=self.table_name):
            log.info("nosql_table_exists", table=self.table_name)
            return False

        log.info("nosql_table_create", table=self.table_name)
        nosql_call(
            "CreateTable",
            lambda: self._client.create_table(
                TableName=self.table_name,
                AttributeDefinitions=[
                    {"AttributeName": "PK", "AttributeType": "S"},
                    {"AttributeName": "SK", "AttributeType": "S"},
                ],
                KeySchema=[
                    {"AttributeName": "PK", "KeyType": "HASH"},
                    {"AttributeName": "SK", "KeyType": "RANGE"},
                ],
                ProvisionedThroughput={"ReadCapacityUnits": 5, "WriteCapacityUnits": 5},
            ),
            table_name=self.table_name,
        )
        return True

    def purge_database(self) -> int:
        """Delete every item in the table. Returns the number of items deleted."""
        if not self.settings.is_local:
            raise NosqlError(message=MSG_NO_TABLE_PURGE, operation="Scan", table_name=self.table_name)

        log.info("nosql_purge", table=self.table_name)
        keys = self._paginate("Scan", self._table.scan, {"ProjectionExpression": "PK, SK"})
        for raw in keys:
            log.debug("nosql_purge_item", table=self.table_name, pk=raw.get("PK"), sk=raw.get("SK"))
            self.delete(Key.from_dynamo(raw))
        return len(keys)

    # --- helpers ---

    def _table_exists(self) -> bool:
        try:
            self._client.describe_table(TableName=self.table_name)
        except ClientError as e:
            if ((e.response or {}).get("Error") or {}).get("Code") == "ResourceNotFoundException":
                return False
            raise
        return True

    def _paginate(
        self, operation: str, fn: Callable[..., dict[str, Any]], kwargs: dict[str, Any]
    ) -> list[dict[str, Any]]:
        out: list[dict[str, Any]] = []
        opts = dict(kwargs)
        while True:
            resp = nosql_call(operation, lambda: fn(**opts), table_name=self.table_name)
            out.extend(resp.get("Items") or [])
            lek = resp.get("LastEvaluatedKey")
            # Important: only pass ExclusiveStartKey when present.
            if not lek:
                break
            opts["ExclusiveStartKey"] = lek
        return out

    def _to_items(self, raw: list[dict[str, Any]], item_class: type[Item] | None) -> list[Item]:
        cls = item_class or self.item_class
        if not raw:
            log.debug("nosql_no_items", table=self.table_name)
        return [cls(self, _from_dynamo(r)) for r in raw]

    @staticmethod
    def _dynamo_key(key: Key | dict[str, Any] | None) -> dict[str, str] | None:
        if isinstance(key, Key):
            return None if key.is_empty or not key.sort_key else key.as_dynamo()
        if isinstance(key, dict) and key.get("PK") and key.get("SK"):
            return {"PK": str(key["PK"]), "SK": str(key["SK"])}
        return None

    def _require_key(self, key: Key | dict[str, Any] | None, *, operation: str) -> dict[str, str]:
        dkey = self._dynamo_key(key)
        if dkey is None:
            raise NosqlValidation(message=MSG_INVALID_KEY, operation=operation, table_name=self.table_name)
        return dkey
