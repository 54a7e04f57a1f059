from __future__ import annotations

from typing import Any, Callable, TypeVar

from botocore.exceptions import BotoCoreError, ClientError, ParamValidationError

from ..observability.logging import get_logger
from .errors import (
    NosqlConflict,
    NosqlError,
    NosqlInternal,
    NosqlNotFound,
    NosqlUnavailable,
    NosqlValidation,
)

T = TypeVar("T")

log = get_logger("nosql")

_CONFLICT_CODES = {
    "ConditionalCheckFailedException",
    "TransactionCanceledException",
    "TransactionConflictException",
}

_UNAVAILABLE_CODES = {
    "ProvisionedThroughputExceededException",
    "ThrottlingException",
    "RequestLimitExceeded",
    "ServiceUnavailable",
    "AccessDeniedException",
    "UnrecognizedClientException",
}


def _aws_request_id_from_client_error(e: ClientError) -> str | None:
    return ((e.response or {}).get("ResponseMetadata") or {}).get("RequestId")


def _err_code_from_client_error(e: ClientError) -> str | None:
    return ((e.response or {}).get("Error") or {}).get("Code")


def _map_botocore_error(
    *,
    operation: str,
    table_name: str | None,
    key: dict[str, Any] | None,
    exc: Exception,
) -> NosqlError:
    if isinstance(exc, NosqlError):
        return exc

    if isinstance(exc, ClientError):
        code = _err_code_from_client_error(exc) or ""
        aws_request_id = _aws_request_id_from_client_error(exc)
        error_cls: type[NosqlError] = NosqlInternal
        message = f"NoSQL Error - {exc}"

        if code in _CONFLICT_CODES:
            error_cls = NosqlConflict
            message = f"NoSQL write was rejected ({code})"
        elif code == "ValidationException":
            error_cls = NosqlValidation
            message = "NoSQL request validation failed"
        elif code == "ResourceNotFoundException":
            error_cls = NosqlNotFound
            message = f"NoSQL table {table_name} does not exist"
        elif code in _UNAVAILABLE_CODES:
            error_cls = NosqlUnavailable
            message = f"NoSQL table {table_name} is unavailable ({code})"

        return error_cls(
            message=message,
            operation=operation,
            table_name=table_name,
            key=key,
            aws_request_id=aws_request_id,
            cause=exc,
        )

    if isinstance(exc, ParamValidationError):
        return NosqlValidation(
            message="NoSQL request validation failed",
            operation=operation,
            table_name=table_name,
            key=key,
            cause=exc,
        )

    if isinstance(exc, BotoCoreError):
        return NosqlUnavailable(
            message=f"Unable to establish a connection to the NoSQL table {table_name}",
            operation=operation,
            table_name=table_name,
            key=key,
            cause=exc,
        )

    return NosqlInternal(
        message="Unexpected NoSQL error",
        operation=operation,
        table_name=table_name,
        key=key,
        cause=exc,
    )


def nosql_call(
    operation: str,
    fn: Callable[[], T],
    *,
    table_name: str | None = None,
    key: dict[str, Any] | None = None,
) -> T:
    """Run a single SDK call, mapping AWS failures onto `NosqlError` types.

    Calls are attempted once; failures surface immediately to the caller.
    """
    try:
        return fn()
    except (ClientError, BotoCoreError) as e:
        mapped = _map_botocore_error(
            operation=operation,
            table_name=table_name,
            key=key,
            exc=e,
        )
        log.error(
            "nosql_error",
            operation=operation,
            table=table_name,
            key=key,
            error=mapped.message,
            error_type=type(mapped).__name__,
            aws_request_id=mapped.aws_request_id,
        )
        raise mapped from e
