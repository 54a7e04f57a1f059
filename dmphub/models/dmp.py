"""A Data Management Plan and its DMP ID lifecycle.

Changing a DMP ID never overwrites history: the current record is copied to
`VERSION#<modified>` before the new `VERSION#latest` is written. Deleting a
DMP ID that has been registered with a DOI registrar replaces it with a
`VERSION#tombstone` record instead, which can never be changed again.
"""

from __future__ import annotations

from typing import Any

from ..nosql.adapter import MAX_TRANSACT_ITEMS, Adapter
from ..nosql.dmp_item import MSG_TOMBSTONED, DmpItem
from ..nosql.errors import ItemError
from ..nosql.keys import (
    SORT_KEY_DMP_LATEST_VERSION,
    SORT_KEY_DMP_TOMBSTONE_VERSION,
    Key,
    append_partition_key_prefixing,
    append_sort_key_prefix,
    dmp_id_from_identifier,
)
from ..observability.logging import get_logger
from ..settings import Settings, get_settings

MSG_NO_DMP_ID_FOR_NEW = "No DMP IDs allowed when creating a new item!"

log = get_logger("dmp")


def _sort_key_for(version: str | None) -> str:
    v = str(version or "").strip()
    if not v or v in ("latest", SORT_KEY_DMP_LATEST_VERSION):
        return SORT_KEY_DMP_LATEST_VERSION
    if v in ("tombstone", SORT_KEY_DMP_TOMBSTONE_VERSION):
        return SORT_KEY_DMP_TOMBSTONE_VERSION
    return append_sort_key_prefix(v) or SORT_KEY_DMP_LATEST_VERSION


class Dmp(DmpItem):
    @classmethod
    def all(cls, adapter: Adapter) -> list[Dmp]:
        """The latest version of every DMP ID."""
        items = adapter.query(item_class=cls)
        return [i for i in items if isinstance(i, cls) and i.key.sort_key == SORT_KEY_DMP_LATEST_VERSION]

    @classmethod
    def find_by_dmp_id(
        cls,
        adapter: Adapter,
        dmp_id: str,
        version: str | None = None,
        *,
        settings: Settings | None = None,
    ) -> Dmp | None:
        """Fetch a DMP ID by any of its forms (bare, `doi:`, URL) and optional version.

        Without a version the latest record is returned, falling back to the
        tombstone when the DMP ID has been retired.
        """
        settings = settings or getattr(adapter, "settings", None) or get_settings()
        bare = dmp_id_from_identifier(dmp_id, settings.doi_base_domain)
        partition_key = append_partition_key_prefixing(bare, settings.doi_base_domain)
        if not partition_key:
            return None

        key = Key(partition_key=partition_key, sort_key=_sort_key_for(version))
        item = cls._get(adapter, key)
        if item is None and version is None:
            item = cls._get(adapter, Key(partition_key=partition_key, sort_key=SORT_KEY_DMP_TOMBSTONE_VERSION))
        return item

    @classmethod
    def create(cls, adapter: Adapter, document: dict[str, Any]) -> Dmp:
        """Mint a new DMP ID for `document` and save it."""
        document = dict(document or {})
        if document.get("dmp_id") or document.get("PK"):
            raise ItemError(message=MSG_NO_DMP_ID_FOR_NEW)

        dmp = cls(adapter, document)
        dmp.save()
        log.info("dmp_created", dmp_id=dmp.dmp_id)
        return dmp

    @classmethod
    def _get(cls, adapter: Adapter, key: Key) -> Dmp | None:
        item = adapter.get(key, item_class=cls)
        # Make sure it matches the record that was asked for!
        if not isinstance(item, cls) or item.key != key:
            return None
        return item

    def save(self) -> bool:
        """Write this record as-is (no versioning)."""
        if self.tombstoned and not self.key.is_empty:
            raise ItemError(message=MSG_TOMBSTONED, dmp_id=self.dmp_id)
        log.debug("dmp_pre_save", dmp=repr(self))
        return self.adapter.put(self)

    def update(self, changes: dict[str, Any]) -> Dmp:
        """Apply `changes` as a new version, keeping the previous one as a snapshot."""
        snapshot, latest = self.new_version(changes)
        self.adapter.transact_write(puts=[snapshot, latest])
        self._assign(latest)
        log.info("dmp_versioned", dmp_id=self.dmp_id, previous=snapshot.key.sort_key, versions=len(self.versions))
        return self

    def delete(self) -> bool:
        """Delete the DMP ID, or tombstone it when it has been registered."""
        self._ensure_editable()

        if self.registered:
            tombstone = self.as_tombstone()
            self.adapter.transact_write(
                puts=[tombstone],
                deletes=[Key(partition_key=self.key.partition_key, sort_key=SORT_KEY_DMP_LATEST_VERSION)],
            )
            self._assign(tombstone)
            log.info("dmp_tombstoned", dmp_id=self.dmp_id)
            return True

        # Oldest first, so `latest` goes in the last batch of a history too long for one transaction.
        keys = [item.key for item in reversed(self.adapter.versions(self.key.partition_key))]
        for start in range(0, len(keys), MAX_TRANSACT_ITEMS):
            self.adapter.transact_write(deletes=keys[start:start + MAX_TRANSACT_ITEMS])
        log.info("dmp_deleted", dmp_id=self.dmp_id, versions=len(keys))
        return True

    def _assign(self, other: DmpItem) -> None:
        self.key = other.key
        self.dmp_id = other.dmp_id
        self.metadata = other.metadata
        self.extras = other.extras
        self.versions = other.versions
        self.modifications = other.modifications
