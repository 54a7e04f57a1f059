"""
Base NoSQL adapter interface.

All table adapters implement this interface. Items (see `item.Item`) hold a
reference to the adapter that loaded them so they can check key availability
when minting new identifiers.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import TYPE_CHECKING, Any, Iterable

from ..observability.logging import debug_enabled
from .errors import NosqlError

if TYPE_CHECKING:
    from .item import Item
    from .keys import Key

MSG_MISSING_TABLE = "No NoSQL table defined! A table name must be provided to the adapter!"

# Most writes a single transaction may hold (the DynamoDB TransactWriteItems limit).
MAX_TRANSACT_ITEMS = 100


class Adapter(ABC):
    """Client adapter for a single NoSQL table."""

    def __init__(self, *, table: str | None, item_class: type[Item] | None = None):
        if not table or not str(table).strip():
            raise NosqlError(message=MSG_MISSING_TABLE, operation="Config")
        self.table_name = str(table).strip()
        self.item_class = item_class
        self.debug = debug_enabled("nosql")

    @abstractmethod
    def exists(self, key: Key | dict[str, Any]) -> bool:
        """Whether any item is stored under the key's partition (fetches only the key)."""

    @abstractmethod
    def get(self, key: Key | dict[str, Any], **kwargs: Any) -> Item | None:
        """Fetch a single item."""

    @abstractmethod
    def query(self, **kwargs: Any) -> list[Item]:
        """Search for items."""

    @abstractmethod
    def versions(self, partition_key: str) -> list[Item]:
        """Every item stored under a partition key."""

    @abstractmethod
    def put(self, item: Item) -> bool:
        """Create or replace an item."""

    @abstractmethod
    def delete(self, key: Key | dict[str, Any]) -> bool:
        """Delete a single item."""

    @abstractmethod
    def transact_write(self, *, puts: Iterable[Item] = (), deletes: Iterable[Key | dict[str, Any]] = ()) -> bool:
        """Apply several puts and deletes atomically."""

    @abstractmethod
    def initialize_database(self) -> bool:
        """Create the table (local environments only)."""

    @abstractmethod
    def purge_database(self) -> int:
        """Delete every item in the table (local environments only)."""


def create_adapter(provider: str = "aws", **kwargs: Any) -> Adapter:
    p = str(provider or "").strip().lower()
    if p == "aws":
        from .dynamodb_adapter import DynamodbAdapter

        return DynamodbAdapter(**kwargs)
    raise ValueError(f"Unsupported NoSQL database provider: {provider!r}")
