from __future__ import annotations

from dataclasses import dataclass
from typing import Any


@dataclass(slots=True)
class NosqlError(Exception):
    """Base error for NoSQL table operations.

    Raised for invalid arguments, missing configuration and AWS service
    failures. `problem_details.register_error_handlers` renders these as
    RFC7807 problem-details responses.
    """

    message: str
    operation: str | None = None
    table_name: str | None = None
    key: dict[str, Any] | None = None
    aws_request_id: str | None = None
    cause: Exception | None = None

    def __str__(self) -> str:
        return self.message


@dataclass(slots=True)
class NosqlNotFound(NosqlError):
    pass


@dataclass(slots=True)
class NosqlConflict(NosqlError):
    pass


@dataclass(slots=True)
class NosqlValidation(NosqlError):
    pass


@dataclass(slots=True)
class NosqlUnavailable(NosqlError):
    pass


@dataclass(slots=True)
class NosqlInternal(NosqlError):
    pass


@dataclass(slots=True)
class ItemError(Exception):
    """An item could not be built, keyed or changed."""

    message: str
    dmp_id: str | None = None

    def __str__(self) -> str:
        return self.message
