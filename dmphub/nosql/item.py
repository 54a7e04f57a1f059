from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Any

from .adapter import Adapter
from .errors import ItemError
from .keys import Key

MSG_NO_ADAPTER = "An adapter must be defined"


class Item(ABC):
    """A NoSQL item/record.

    Subclasses parse `data` in `_from_hash`. The data may be an internal record
    (carrying `PK`/`SK`), an external document (e.g. an RDA Common Standard DMP
    with a `dmp_id`), or neither, in which case the subclass generates a key
    when the item is first written.
    """

    def __init__(self, adapter: Adapter, data: dict[str, Any] | None = None):
        if not isinstance(adapter, Adapter):
            raise ItemError(message=MSG_NO_ADAPTER)

        self.adapter = adapter
        self.key = Key()

        self._from_hash(dict(data or {}))

    @abstractmethod
    def to_nosql_hash(self) -> dict[str, Any]:
        """The item as stored in the table (with all of the NoSQL keys)."""

    @abstractmethod
    def to_json(self) -> dict[str, Any]:
        """The item as presented to API clients (without the NoSQL keys)."""

    @abstractmethod
    def _from_hash(self, data: dict[str, Any]) -> None:
        """Map a raw record onto this item's attributes."""

    def __repr__(self) -> str:
        return f"{type(self).__name__}(PK={self.key.partition_key!r}, SK={self.key.sort_key!r})"
