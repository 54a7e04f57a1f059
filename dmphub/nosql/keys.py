"""DMP-ID <-> DynamoDB key translation.

A DMP-ID record lives under

    PK = DMP#<doi base domain>/<dmp id>       e.g. DMP#doi.org/10.48321/D1AB12cd34
    SK = VERSION#latest | VERSION#<timestamp> | VERSION#tombstone

The helpers here are pure string functions; everything that needs the
configured DOI base domain takes it as an argument.
"""

from __future__ import annotations

import re
import secrets
from dataclasses import dataclass
from typing import Any, Callable

from .errors import ItemError

PARTITION_KEY_DMP_PREFIX = "DMP#"
SORT_KEY_DMP_PREFIX = "VERSION#"
SORT_KEY_DMP_LATEST_VERSION = f"{SORT_KEY_DMP_PREFIX}latest"
SORT_KEY_DMP_TOMBSTONE_VERSION = f"{SORT_KEY_DMP_PREFIX}tombstone"
PROVENANCE_KEY_PREFIX = "PROVENANCE#"

MAX_ID_ATTEMPTS = 10

MSG_UNABLE_TO_ACQUIRE_NEW_ID = f"Unable to acquire a new DMP ID after {MAX_ID_ATTEMPTS} attempts!"

_PROTOCOL_RE = re.compile(r"https?://")


@dataclass(frozen=True, slots=True)
class Key:
    partition_key: str = ""
    sort_key: str = ""

    @property
    def is_empty(self) -> bool:
        return not self.partition_key

    def as_dynamo(self) -> dict[str, str]:
        return {"PK": self.partition_key, "SK": self.sort_key}

    @classmethod
    def from_dynamo(cls, item: dict[str, Any] | None) -> "Key":
        item = item or {}
        return cls(partition_key=str(item.get("PK") or ""), sort_key=str(item.get("SK") or ""))


def _strip_protocol(value: str) -> str:
    return _PROTOCOL_RE.sub("", value)


def _bare_domain(domain: str | None) -> str:
    return _strip_protocol(str(domain or "")).strip("/")


def remove_partition_key_prefixing(key: Any, domain: str | None) -> str | None:
    """Extract the DMP ID from a partition key."""
    if not isinstance(key, str):
        return None
    if not key.startswith(PARTITION_KEY_DMP_PREFIX):
        return key

    out = _strip_protocol(key.replace(PARTITION_KEY_DMP_PREFIX, ""))
    bare = _bare_domain(domain)
    if bare:
        out = out.replace(bare, "")
    if out.startswith("/"):
        out = out[1:]
    if out.endswith("/"):
        out = out[:-1]
    return out


def append_partition_key_prefixing(key: Any, domain: str | None) -> str | None:
    """Turn a DMP ID (bare, URL or already prefixed) into a partition key."""
    if not isinstance(key, str):
        return None

    out = _strip_protocol(remove_partition_key_prefixing(key, domain) or "")
    bare = _bare_domain(domain)
    if bare not in out:
        out = f"{bare}/{out}"
    return f"{PARTITION_KEY_DMP_PREFIX}{out}"


def remove_sort_key_prefixing(key: Any) -> str:
    """Extract the version from a sort key."""
    if key is None or key == SORT_KEY_DMP_LATEST_VERSION:
        return SORT_KEY_DMP_LATEST_VERSION
    key = str(key)
    if not key.startswith(SORT_KEY_DMP_PREFIX):
        return key
    return key[len(SORT_KEY_DMP_PREFIX):]


def append_sort_key_prefix(key: Any) -> str | None:
    if key is None:
        return None
    key = str(key)
    if key.startswith(SORT_KEY_DMP_PREFIX):
        return key
    return f"{SORT_KEY_DMP_PREFIX}{key}"


def dmp_id_and_version_to_key(dmp_id: str | None, version: str | None, domain: str | None) -> Key | None:
    if dmp_id is None:
        return None

    p_key = append_partition_key_prefixing(dmp_id, domain) or ""
    s_key = SORT_KEY_DMP_LATEST_VERSION if version is None else append_sort_key_prefix(version)
    return Key(partition_key=p_key, sort_key=s_key or SORT_KEY_DMP_LATEST_VERSION)


def key_to_dmp_id(key: Key | None, domain: str | None) -> str | None:
    if key is None or key.is_empty:
        return None

    out = remove_partition_key_prefixing(key.partition_key, domain)
    if out is None:
        return None
    out = out.replace("doi:", "")
    return out[1:] if out.startswith("/") else out


def dmp_id_from_identifier(identifier: Any, domain: str | None) -> str | None:
    """Extract the DMP ID from an RDA `dmp_id.identifier` (URL, `doi:` or bare)."""
    if not isinstance(identifier, str) or not identifier.strip():
        return None

    out = _strip_protocol(identifier.strip()).replace("doi:", "")
    bare = _bare_domain(domain)
    if bare:
        out = out.replace(f"{bare}/", "")
    return out[1:] if out.startswith("/") else out


def dmp_id_to_url(dmp_id: str | None, domain: str | None) -> str:
    return f"https://{_bare_domain(domain)}/{dmp_id or ''}"


def version_url(host: str | None, dmp_id: str | None, version: str) -> str:
    """Landing page URL of one version, e.g. `http://host/dmps/10.1%2FAB?version=...`."""
    base = str(host or "").rstrip("/")
    if base and not _PROTOCOL_RE.match(base):
        base = f"https://{base}"
    url_id = str(dmp_id or "").replace("/", "%2F")
    return f"{base}/dmps/{url_id}?version={version}"


def random_dmp_id(shoulder: str) -> str:
    return f"{shoulder}{secrets.token_hex(2).upper()}{secrets.token_hex(2)}"


def generate_unique_key(
    exists: Callable[[Key], bool],
    *,
    shoulder: str,
    domain: str | None,
    max_attempts: int = MAX_ID_ATTEMPTS,
) -> Key:
    """Mint a partition key that is not yet in use.

    Raises ItemError when every attempt collides with an existing record.
    """
    for _ in range(max(1, int(max_attempts))):
        candidate = Key(
            partition_key=append_partition_key_prefixing(random_dmp_id(shoulder), domain) or "",
            sort_key=SORT_KEY_DMP_LATEST_VERSION,
        )
        if not exists(candidate):
            return candidate

    raise ItemError(message=MSG_UNABLE_TO_ACQUIRE_NEW_ID)
