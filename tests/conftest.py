from __future__ import annotations

import copy
import itertools
from typing import Any

import pytest
from boto3.dynamodb.types import TypeDeserializer
from botocore.exceptions import ClientError

from dmphub.nosql.dynamodb_adapter import DynamodbAdapter
from dmphub.settings import get_settings

TEST_DOMAIN = "localhost:3001"
TEST_SHOULDER = "99.88888/7Z."
TEST_HOST = "http://localhost:3001"


@pytest.fixture(autouse=True)
def _env(monkeypatch):
    monkeypatch.setenv("APP_ENV", "test")
    monkeypatch.setenv("APPLICATION_NAME", "dmphub")
    monkeypatch.setenv("API_HOST", TEST_HOST)
    monkeypatch.setenv("DOI_BASE_DOMAIN", TEST_DOMAIN)
    monkeypatch.setenv("DOI_SHOULDER", TEST_SHOULDER)
    monkeypatch.setenv("NOSQL_TABLE", "dmphub-test")
    get_settings.cache_clear()
    yield
    get_settings.cache_clear()


def client_error(code: str, operation: str = "PutItem") -> ClientError:
    return ClientError(
        {"Error": {"Code": code, "Message": f"{code} raised"}, "ResponseMetadata": {"RequestId": "req-123"}},
        operation,
    )


class _FakeClient:
    def __init__(self, table: "FakeTable"):
        self._table = table
        self._deserializer = TypeDeserializer()

    def describe_table(self, *, TableName: str) -> dict[str, Any]:
        if not self._table.created:
            raise client_error("ResourceNotFoundException", "DescribeTable")
        return {"Table": {"TableName": TableName, "TableStatus": "ACTIVE"}}

    def create_table(self, **kwargs: Any) -> dict[str, Any]:
        self._table.created = True
        self._table.create_calls.append(kwargs)
        return {"TableDescription": {"TableName": kwargs.get("TableName")}}

    def _plain(self, value: dict[str, Any]) -> dict[str, Any]:
        return {k: self._deserializer.deserialize(v) for k, v in value.items()}

    def transact_write_items(self, *, TransactItems: list[dict[str, Any]]) -> dict[str, Any]:
        # All or nothing: a failure leaves the table untouched.
        self._table._maybe_fail("TransactWriteItems")
        self._table.transactions.append(TransactItems)
        for entry in TransactItems:
            if "Put" in entry:
                item = self._plain(entry["Put"]["Item"])
                self._table.items[(item["PK"], item["SK"])] = item
            else:
                key = self._plain(entry["Delete"]["Key"])
                self._table.items.pop((key["PK"], key["SK"]), None)
        return {}


class _FakeMeta:
    def __init__(self, table: "FakeTable"):
        self.client = _FakeClient(table)


class FakeTable:
    """In-memory stand-in for a boto3 `Table` resource keyed by PK/SK."""

    def __init__(self, *, page_size: int | None = None):
        self.items: dict[tuple[str, str], dict[str, Any]] = {}
        self.page_size = page_size
        self.created = False
        self.create_calls: list[dict[str, Any]] = []
        self.transactions: list[list[dict[str, Any]]] = []
        self.fail_with: str | None = None
        self.meta = _FakeMeta(self)

    def _maybe_fail(self, operation: str) -> None:
        if self.fail_with:
            raise client_error(self.fail_with, operation)

    @staticmethod
    def _project(item: dict[str, Any], projection: str | None) -> dict[str, Any]:
        if not projection:
            return copy.deepcopy(item)
        names = [n.strip() for n in projection.split(",")]
        return {n: copy.deepcopy(item[n]) for n in names if n in item}

    def get_item(self, *, Key: dict[str, str], ProjectionExpression: str | None = None, **_: Any) -> dict[str, Any]:
        self._maybe_fail("GetItem")
        item = self.items.get((Key["PK"], Key["SK"]))
        if item is None:
            return {}
        return {"Item": self._project(item, ProjectionExpression)}

    def put_item(self, *, Item: dict[str, Any], **_: Any) -> dict[str, Any]:
        self._maybe_fail("PutItem")
        self.items[(Item["PK"], Item["SK"])] = copy.deepcopy(Item)
        return {}

    def delete_item(self, *, Key: dict[str, str], **_: Any) -> dict[str, Any]:
        self._maybe_fail("DeleteItem")
        self.items.pop((Key["PK"], Key["SK"]), None)
        return {}

    def _page(self, keys: list[tuple[str, str]], opts: dict[str, Any]) -> dict[str, Any]:
        start = 0
        esk = opts.get("ExclusiveStartKey")
        if esk:
            start = keys.index((esk["PK"], esk["SK"])) + 1
        size = opts.get("Limit") or self.page_size
        end = len(keys) if not size else min(len(keys), start + size)

        page = keys[start:end]
        resp: dict[str, Any] = {
            "Items": [self._project(self.items[k], opts.get("ProjectionExpression")) for k in page]
        }
        if end < len(keys):
            resp["LastEvaluatedKey"] = {"PK": page[-1][0], "SK": page[-1][1]}
        return resp

    def scan(self, **opts: Any) -> dict[str, Any]:
        self._maybe_fail("Scan")
        return self._page(sorted(self.items), opts)

    def query(self, **opts: Any) -> dict[str, Any]:
        self._maybe_fail("Query")
        expr = opts["KeyConditionExpression"].get_expression()
        attr, value = expr["values"][0].name, expr["values"][1]
        assert attr == "PK" and expr["operator"] == "="
        keys = sorted((k for k in self.items if k[0] == value), reverse=not opts.get("ScanIndexForward", True))
        return self._page(keys, opts)


@pytest.fixture()
def fake_table():
    return FakeTable()


@pytest.fixture()
def adapter(fake_table):
    return DynamodbAdapter(dynamo_table=fake_table, settings=get_settings())


@pytest.fixture()
def clock(monkeypatch):
    """Deterministic, strictly increasing timestamps for DMP versioning."""
    ticks = (f"2024-03-01T10:{i // 60:02d}:{i % 60:02d}+00:00" for i in itertools.count())
    monkeypatch.setattr("dmphub.nosql.dmp_item._now_iso", lambda: next(ticks))
    return ticks
