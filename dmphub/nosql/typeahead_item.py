"""Typeahead items (e.g. institutions) used for lookups.

Every typeahead item has:
  - a `PK` naming the type of item (e.g. `INSTITUTION`) so items of a type are stored together
  - an `SK` holding the item's identifier (e.g. `https://ror.org/00dmfq477`)
  - a `_SOURCE` naming the system that created it (e.g. `ROR`)
  - a `_SOURCE_SYNCED_AT` timestamp of the last write by that source

Items created by another source cannot be changed here; record additional
information about them elsewhere, keyed by their identifier.
"""

from __future__ import annotations

import copy
from datetime import datetime, timezone
from typing import Any

from boto3.dynamodb.conditions import Key as KeyCondition

from ..settings import Settings, get_settings
from .adapter import Adapter
from .errors import ItemError
from .item import Item
from .keys import Key

INSTITUTION_ITEM_TYPE = "INSTITUTION"

MSG_NO_KEY = "Typeahead items require both a PK and an SK!"
MSG_READ_ONLY = "Typeahead items owned by another source cannot be changed!"


def _now_iso() -> str:
    return datetime.now(timezone.utc).replace(microsecond=0).isoformat()


class TypeaheadItem(Item):
    def __init__(
        self,
        adapter: Adapter,
        data: dict[str, Any] | None = None,
        *,
        settings: Settings | None = None,
    ):
        settings = settings or getattr(adapter, "settings", None) or get_settings()
        self.metadata: dict[str, Any] = {}
        self.source = str(settings.application_name or "").strip().upper().replace(" ", "-")
        super().__init__(adapter, data)

    @property
    def item_type(self) -> str:
        return self.key.partition_key

    @property
    def identifier(self) -> str:
        return self.key.sort_key

    @property
    def editable(self) -> bool:
        owner = self.metadata.get("_SOURCE")
        return not owner or owner == self.source

    def matches(self, term: str) -> bool:
        """Whether `term` appears in one of the item's searchable names."""
        needle = str(term or "").strip().lower()
        if not needle:
            return False
        names = self.metadata.get("searchable_names") or []
        return any(needle in str(name).lower() for name in names)

    def to_nosql_hash(self) -> dict[str, Any]:
        if self.key.is_empty or not self.key.sort_key:
            raise ItemError(message=MSG_NO_KEY)
        if not self.editable:
            raise ItemError(message=MSG_READ_ONLY)

        out = copy.deepcopy(self.metadata)
        out["PK"] = self.key.partition_key
        out["SK"] = self.key.sort_key
        if not out.get("_SOURCE"):
            out["_SOURCE"] = self.source
        out["_SOURCE_SYNCED_AT"] = _now_iso()
        return out

    def to_json(self) -> dict[str, Any]:
        out = {k: copy.deepcopy(v) for k, v in self.metadata.items() if not k.startswith("_")}
        out["id"] = self.identifier
        return out

    def _from_hash(self, data: dict[str, Any]) -> None:
        for name, value in data.items():
            if name in ("adapter", "PK", "SK"):
                continue
            self.metadata[name] = value

        pk = str(data.get("PK") or "").strip()
        sk = str(data.get("SK") or "").strip()
        if pk and sk:
            self.key = Key(partition_key=pk, sort_key=sk)


def find_institutions(adapter: Adapter, term: str) -> list[TypeaheadItem]:
    """Active institutions whose searchable names contain `term`."""
    items = adapter.query(
        key_condition_expression=KeyCondition("PK").eq(INSTITUTION_ITEM_TYPE),
        item_class=TypeaheadItem,
    )
    out = [i for i in items if isinstance(i, TypeaheadItem) and i.matches(term)]
    return [i for i in out if int(i.metadata.get("active", 1) or 0) == 1]
