"""boto3 DynamoDB client/resource configuration.

The pool size and timeouts of the underlying HTTP connection pool come from
`NOSQL_POOL_SIZE` and `NOSQL_TIMEOUT`. Local environments additionally point
at the `NOSQL_HOST:NOSQL_PORT` endpoint with static credentials.
"""

from __future__ import annotations

from functools import lru_cache
from typing import Any

import boto3
from botocore.config import Config

from ..settings import get_settings


@lru_cache(maxsize=1)
def botocore_config() -> Config:
    settings = get_settings()
    # Retries are disabled; callers see failures immediately.
    return Config(
        retries={"max_attempts": 1, "mode": "standard"},
        max_pool_connections=max(1, int(settings.nosql_pool_size)),
        connect_timeout=settings.nosql_timeout,
        read_timeout=settings.nosql_timeout,
    )


def connection_args() -> dict[str, Any]:
    settings = get_settings()
    args: dict[str, Any] = {
        "region_name": settings.aws_region,
        "config": botocore_config(),
    }
    if settings.nosql_endpoint:
        args["endpoint_url"] = settings.nosql_endpoint
        if settings.nosql_access_key and settings.nosql_access_secret:
            args["aws_access_key_id"] = settings.nosql_access_key
            args["aws_secret_access_key"] = settings.nosql_access_secret
    return args


@lru_cache(maxsize=1)
def dynamodb_resource():
    return boto3.resource("dynamodb", **connection_args())


def table_resource(table_name: str):
    return dynamodb_resource().Table(table_name)
