from __future__ import annotations

import copy
import json
from datetime import datetime, timedelta, timezone
from typing import Any

from ..settings import Settings, get_settings
from .adapter import Adapter
from .errors import ItemError
from .item import Item
from .keys import (
    PROVENANCE_KEY_PREFIX,
    SORT_KEY_DMP_LATEST_VERSION,
    SORT_KEY_DMP_TOMBSTONE_VERSION,
    Key,
    append_partition_key_prefixing,
    append_sort_key_prefix,
    dmp_id_and_version_to_key,
    dmp_id_from_identifier,
    dmp_id_to_url,
    generate_unique_key,
    key_to_dmp_id,
    version_url,
)

MSG_NO_API_HOST = "No API_HOST defined!"
MSG_NO_DOI_BASE_DOMAIN = "No DOI_BASE_DOMAIN defined!"
MSG_NO_DOI_SHOULDER = "No DOI_SHOULDER defined!"
MSG_NOT_CURRENT = "Only the current version of a DMP ID can be changed!"
MSG_TOMBSTONED = "This DMP ID has been tombstoned and can no longer be changed!"
MSG_NOT_REGISTERED = "Only registered DMP IDs can be tombstoned!"
MSG_NO_KEY = "This DMP ID has not been saved yet!"
MSG_BAD_TIMESTAMP = "The `modified` timestamp of this DMP ID is not an ISO-8601 timestamp!"

# Entries of the raw record that never land in metadata/extras.
_IDENTIFIER_FIELDS = ("adapter", "PK", "SK", "dmp_id")


def _now_iso() -> str:
    return datetime.now(timezone.utc).replace(microsecond=0).isoformat()


def _after(previous: str, now: str) -> str:
    """`now`, or one second past `previous` when the clock has not moved beyond it."""
    if now > previous:
        return now
    try:
        prev = datetime.fromisoformat(previous.replace("Z", "+00:00"))
    except ValueError as e:
        raise ItemError(message=MSG_BAD_TIMESTAMP) from e
    if prev.tzinfo is None:
        prev = prev.replace(tzinfo=timezone.utc)
    return (prev + timedelta(seconds=1)).isoformat()


def _json_normalize(value: Any) -> Any:
    return json.loads(json.dumps(value, default=str))


class DmpItem(Item):
    """A versioned DMP-ID record.

    Entries of the incoming data are mapped as follows:
      - `PK`/`SK` (internal records) or `dmp_id` (external documents) set the key
      - `dmphub_versions` timestamps populate `versions` (newest first)
      - `dmphub_modifications` are kept as-is in `modifications`
      - other `dmphub_` prefixed entries go to `extras`
      - everything else is the RDA Common Standard `metadata`
    """

    def __init__(
        self,
        adapter: Adapter,
        data: dict[str, Any] | None = None,
        *,
        settings: Settings | None = None,
    ):
        settings = settings or getattr(adapter, "settings", None) or get_settings()

        # RDA Common Standard content of the DMP
        self.metadata: dict[str, Any] = {}
        # Application specific `dmphub_` entries that are not part of the RDA standard
        self.extras: dict[str, Any] = {}
        # Timestamps of the available versions, newest first
        self.versions: list[str] = []
        # Programmatic augmentations that still need to be curated
        self.modifications: list[Any] = []
        self.dmp_id: str | None = None

        self._settings = settings
        self.api_host = settings.api_host
        self.doi_base_domain = settings.doi_base_domain
        self.doi_shoulder = settings.doi_shoulder
        self.application_name = settings.application_name
        if not self.api_host:
            raise ItemError(message=MSG_NO_API_HOST)
        if not self.doi_base_domain:
            raise ItemError(message=MSG_NO_DOI_BASE_DOMAIN)
        if not self.doi_shoulder:
            raise ItemError(message=MSG_NO_DOI_SHOULDER)

        super().__init__(adapter, data)

    # --- state ---

    @property
    def current_version(self) -> bool:
        if self.key.sort_key not in ("", SORT_KEY_DMP_LATEST_VERSION, SORT_KEY_DMP_TOMBSTONE_VERSION):
            return False
        return not self.versions or self.metadata.get("modified") == self.versions[0]

    @property
    def tombstoned(self) -> bool:
        return self.key.sort_key == SORT_KEY_DMP_TOMBSTONE_VERSION

    @property
    def editable(self) -> bool:
        # TODO: check the caller's permissions once users are attached to DMP IDs
        return self.current_version and not self.tombstoned

    @property
    def registered(self) -> bool:
        """Whether the DMP ID has been registered with a DOI registrar."""
        return bool(self.metadata.get("registered") or self.extras.get("dmphub_registered_at"))

    # --- serialization ---

    def to_nosql_hash(self) -> dict[str, Any]:
        if self.key.is_empty:
            self._generate_key()

        tstamp = _now_iso()
        # Stamp the record so repeated calls agree with what was written.
        if self.metadata.get("created") is None:
            self.metadata["created"] = tstamp
        if self.metadata.get("modified") is None:
            self.metadata["modified"] = tstamp
        created = self.metadata["created"]
        modified = self.metadata["modified"]
        defaults = {
            "dmphub_created_at": created,
            "dmphub_modification_day": str(modified)[:10],
            "dmphub_updated_at": modified,
            "dmphub_provenance_id": self._default_provenance(),
        }
        for name, value in defaults.items():
            if self.extras.get(name) is None:
                self.extras[name] = value
        self.extras.setdefault("dmphub_provenance_identifier", None)

        out = copy.deepcopy(self.metadata)
        out["PK"] = self.key.partition_key
        out["SK"] = self.key.sort_key
        out["dmp_id"] = self._dmp_id_json()
        if self.versions:
            out["dmphub_versions"] = self._versions_for_nosql()
        out.update(copy.deepcopy(self.extras))
        out["dmphub_modifications"] = copy.deepcopy(self.modifications)
        return _json_normalize(out)

    def to_json(self) -> dict[str, Any]:
        out = copy.deepcopy(self.metadata)
        out["dmp_id"] = self._dmp_id_json()
        return _json_normalize(out)

    # --- versioning ---

    def new_version(self, changes: dict[str, Any]) -> tuple[DmpItem, DmpItem]:
        """Build the records written when the current version is changed.

        Returns `(snapshot, latest)`: the snapshot is the current record keyed
        by its own `modified` timestamp, the latest is the changed record under
        `VERSION#latest` listing every version newest first.
        """
        self._ensure_editable()

        current = self.to_nosql_hash()
        previous = str(current["modified"])

        # Every version needs its own sort key, even for changes within one second.
        now = _after(previous, _now_iso())
        timestamps = sorted({*self.versions, previous, now}, reverse=True)
        history = [{"timestamp": ts} for ts in timestamps]

        snapshot = dict(current, SK=append_sort_key_prefix(previous), dmphub_versions=history)

        latest = dict(current)
        for name, value in (changes or {}).items():
            if name in _IDENTIFIER_FIELDS or name.startswith("dmphub_") or name == "created":
                continue
            latest[name] = value
        latest.update(
            {
                "SK": SORT_KEY_DMP_LATEST_VERSION,
                "modified": now,
                "dmphub_updated_at": now,
                "dmphub_modification_day": now[:10],
                "dmphub_versions": history,
            }
        )
        return self._sibling(snapshot), self._sibling(latest)

    def as_tombstone(self) -> DmpItem:
        """The terminal record written in place of a registered DMP ID."""
        if self.tombstoned:
            raise ItemError(message=MSG_TOMBSTONED, dmp_id=self.dmp_id)
        if not self.registered:
            raise ItemError(message=MSG_NOT_REGISTERED, dmp_id=self.dmp_id)
        if self.key.is_empty:
            raise ItemError(message=MSG_NO_KEY)

        doc = self.to_nosql_hash()
        now = _now_iso()
        doc.update(
            {
                "SK": SORT_KEY_DMP_TOMBSTONE_VERSION,
                "title": f"OBSOLETE: {doc.get('title') or ''}".strip(),
                "modified": now,
                "tombstoned": now,
                "dmphub_updated_at": now,
                "dmphub_modification_day": now[:10],
            }
        )
        return self._sibling(doc)

    # --- internals ---

    def _sibling(self, data: dict[str, Any]) -> DmpItem:
        return type(self)(self.adapter, data, settings=self._settings)

    def _ensure_editable(self) -> None:
        if self.key.is_empty:
            raise ItemError(message=MSG_NO_KEY)
        if self.tombstoned:
            raise ItemError(message=MSG_TOMBSTONED, dmp_id=self.dmp_id)
        if not self.current_version:
            raise ItemError(message=MSG_NOT_CURRENT, dmp_id=self.dmp_id)

    def _default_provenance(self) -> str:
        return f"{PROVENANCE_KEY_PREFIX}{str(self.application_name or '').strip().lower()}"

    def _dmp_id_json(self) -> dict[str, str]:
        return {"type": "doi", "identifier": dmp_id_to_url(self.dmp_id, self.doi_base_domain)}

    def _from_hash(self, data: dict[str, Any]) -> None:
        has_versions = False
        for name, value in data.items():
            if name in _IDENTIFIER_FIELDS:
                continue
            if name == "dmphub_versions":
                has_versions = True
                entries = value if isinstance(value, list) else []
                self.versions = [
                    str(v["timestamp"]) for v in entries if isinstance(v, dict) and v.get("timestamp")
                ]
            elif name == "dmphub_modifications":
                self.modifications = list(value or [])
            elif name.startswith("dmphub_"):
                self.extras[name] = value
            else:
                self.metadata[name] = value

        self.versions = sorted(set(self.versions), reverse=True)
        self._identifiers_from_hash(data)

        # The record's own timestamp is always one of its versions, except for
        # the tombstone which is not a navigable version.
        modified = data.get("modified")
        if has_versions and modified and not self.tombstoned and modified not in self.versions:
            self.versions.append(str(modified))
        self.versions = sorted(set(self.versions), reverse=True)

        if self.dmp_id is None:
            self.dmp_id = key_to_dmp_id(self.key, self.doi_base_domain)

    def _identifiers_from_hash(self, data: dict[str, Any]) -> bool:
        """Set the key and DMP ID from either the `PK`/`SK` or the `dmp_id` entry."""
        if not self.key.is_empty:
            return True
        if not isinstance(data, dict) or (not data.get("PK") and not data.get("dmp_id")):
            return False

        # Internal record
        pk = data.get("PK")
        if pk:
            self.key = Key(
                partition_key=append_partition_key_prefixing(str(pk), self.doi_base_domain) or "",
                sort_key=append_sort_key_prefix(data.get("SK") or SORT_KEY_DMP_LATEST_VERSION) or "",
            )
            self.dmp_id = key_to_dmp_id(self.key, self.doi_base_domain)
            if self.dmp_id is not None:
                return True

        # External document
        dmp_id = data.get("dmp_id")
        identifier = dmp_id.get("identifier") if isinstance(dmp_id, dict) else dmp_id
        self.dmp_id = dmp_id_from_identifier(identifier, self.doi_base_domain)
        version = self._detect_version(data.get("modified"))
        key = dmp_id_and_version_to_key(self.dmp_id, version, self.doi_base_domain)
        if key is not None:
            self.key = key
        return True

    def _generate_key(self) -> Key:
        if not self.key.is_empty:
            return self.key

        self.key = generate_unique_key(
            self.adapter.exists,
            shoulder=str(self.doi_shoulder),
            domain=self.doi_base_domain,
        )
        self.dmp_id = key_to_dmp_id(self.key, self.doi_base_domain)
        return self.key

    def _versions_for_nosql(self) -> list[dict[str, str]]:
        return [
            {"timestamp": v, "url": version_url(self.api_host, self.dmp_id, v)}
            for v in self.versions
        ]

    def _detect_version(self, modified: Any) -> str | None:
        """The `modified` timestamp if it names a historical version, else None."""
        if not self.versions or not modified:
            return None
        modified = str(modified)
        if modified in self.versions and modified != self.versions[0]:
            return modified
        return None
