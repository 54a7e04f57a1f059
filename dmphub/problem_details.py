from __future__ import annotations

from typing import Any

from fastapi import FastAPI, Request
from fastapi.responses import ORJSONResponse

from .nosql.errors import (
    ItemError,
    NosqlConflict,
    NosqlError,
    NosqlNotFound,
    NosqlUnavailable,
    NosqlValidation,
)
from .observability.logging import get_logger
from .settings import get_settings

PROBLEM_JSON = "application/problem+json"

log = get_logger("problem_details")

_TITLES = {
    400: "Bad Request",
    404: "Not Found",
    409: "Conflict",
    503: "Service Unavailable",
}


def _default_title(status_code: int) -> str:
    if status_code in _TITLES:
        return _TITLES[status_code]
    if status_code >= 500:
        return "Internal Server Error"
    return "Error"


def _request_id(request: Request) -> str | None:
    rid = getattr(getattr(request, "state", None), "request_id", None)
    if rid:
        return str(rid)
    hdr = request.headers.get("x-request-id")
    return str(hdr) if hdr else None


def problem_payload(
    *,
    request: Request,
    status_code: int,
    title: str | None = None,
    detail: str | None = None,
    type: str = "about:blank",
    extensions: dict[str, Any] | None = None,
) -> dict[str, Any]:
    payload: dict[str, Any] = {
        "type": type or "about:blank",
        "title": title or _default_title(int(status_code)),
        "status": int(status_code),
    }
    if detail:
        payload["detail"] = str(detail)

    inst = str(getattr(request.url, "path", "") or "")
    if inst:
        payload["instance"] = inst

    rid = _request_id(request)
    if rid:
        payload["requestId"] = rid

    if extensions:
        # Extension members live under one key so they never shadow RFC7807 members.
        payload["extensions"] = extensions
    return payload


def problem_response(
    *,
    request: Request,
    status_code: int,
    title: str | None = None,
    detail: str | None = None,
    extensions: dict[str, Any] | None = None,
) -> ORJSONResponse:
    # No server error detail in production.
    safe_detail = detail
    if int(status_code) >= 500 and get_settings().is_production:
        safe_detail = None

    return ORJSONResponse(
        status_code=int(status_code),
        content=problem_payload(
            request=request,
            status_code=int(status_code),
            title=title,
            detail=safe_detail,
            extensions=extensions,
        ),
        media_type=PROBLEM_JSON,
    )


def status_for(exc: Exception) -> int:
    if isinstance(exc, (ItemError, NosqlValidation)):
        return 400
    if isinstance(exc, NosqlNotFound):
        return 404
    if isinstance(exc, NosqlConflict):
        return 409
    if isinstance(exc, NosqlUnavailable):
        return 503
    return 500


def _nosql_error_handler(request: Request, exc: NosqlError) -> ORJSONResponse:
    status_code = status_for(exc)
    extensions = {
        "operation": exc.operation,
        "table": exc.table_name,
        "key": exc.key,
        "awsRequestId": exc.aws_request_id,
    }
    extensions = {k: v for k, v in extensions.items() if v is not None}
    if status_code >= 500:
        log.error("nosql_request_failed", path=request.url.path, error=exc.message, status=status_code)
    return problem_response(
        request=request,
        status_code=status_code,
        detail=exc.message,
        extensions=extensions or None,
    )


def _item_error_handler(request: Request, exc: ItemError) -> ORJSONResponse:
    extensions = {"dmpId": exc.dmp_id} if exc.dmp_id else None
    return problem_response(request=request, status_code=400, detail=exc.message, extensions=extensions)


def register_error_handlers(app: FastAPI) -> FastAPI:
    """Render NoSQL and item errors as problem+json responses."""
    app.add_exception_handler(NosqlError, _nosql_error_handler)  # type: ignore[arg-type]
    app.add_exception_handler(ItemError, _item_error_handler)  # type: ignore[arg-type]
    return app
