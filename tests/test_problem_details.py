from __future__ import annotations

import pytest
from fastapi import FastAPI
from fastapi.testclient import TestClient

from dmphub.nosql.errors import (
    ItemError,
    NosqlConflict,
    NosqlInternal,
    NosqlNotFound,
    NosqlUnavailable,
    NosqlValidation,
)
from dmphub.problem_details import register_error_handlers
from dmphub.settings import get_settings

ERRORS = {
    "validation": NosqlValidation(message="bad key", operation="GetItem", table_name="dmphub-test"),
    "not-found": NosqlNotFound(message="no table", operation="GetItem", table_name="dmphub-test"),
    "conflict": NosqlConflict(message="check failed", operation="PutItem", key={"PK": "a", "SK": "b"}),
    "unavailable": NosqlUnavailable(message="throttled", operation="Query", aws_request_id="req-9"),
    "internal": NosqlInternal(message="boom", operation="Scan"),
    "item": ItemError(message="Only the current version of a DMP ID can be changed!", dmp_id="10.1/X"),
}


def _client() -> TestClient:
    app = register_error_handlers(FastAPI())

    @app.get("/raise/{name}")
    def _raise(name: str):
        raise ERRORS[name]

    return TestClient(app)


@pytest.mark.parametrize(
    "name,status",
    [
        ("validation", 400),
        ("not-found", 404),
        ("conflict", 409),
        ("unavailable", 503),
        ("internal", 500),
        ("item", 400),
    ],
)
def test_errors_are_problem_json(name, status):
    r = _client().get(f"/raise/{name}", headers={"X-Request-Id": "abc-123"})

    assert r.status_code == status
    assert r.headers.get("content-type", "").startswith("application/problem+json")
    body = r.json()
    assert body["status"] == status
    assert body["instance"] == f"/raise/{name}"
    assert body["requestId"] == "abc-123"
    assert body["detail"] == str(ERRORS[name])


def test_nosql_context_is_exposed_as_extensions():
    body = _client().get("/raise/conflict").json()
    assert body["title"] == "Conflict"
    assert body["extensions"] == {"operation": "PutItem", "key": {"PK": "a", "SK": "b"}}

    body = _client().get("/raise/unavailable").json()
    assert body["extensions"]["awsRequestId"] == "req-9"

    body = _client().get("/raise/item").json()
    assert body["extensions"] == {"dmpId": "10.1/X"}


def test_server_error_detail_is_hidden_in_production(monkeypatch):
    monkeypatch.setenv("APP_ENV", "production")
    get_settings.cache_clear()

    body = _client().get("/raise/internal").json()
    assert body["status"] == 500
    assert "detail" not in body

    body = _client().get("/raise/conflict").json()
    assert body["detail"] == "check failed"
