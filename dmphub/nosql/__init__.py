from .adapter import Adapter, create_adapter
from .dmp_item import DmpItem
from .errors import (
    ItemError,
    NosqlConflict,
    NosqlError,
    NosqlInternal,
    NosqlNotFound,
    NosqlUnavailable,
    NosqlValidation,
)
from .item import Item
from .keys import Key
from .typeahead_item import TypeaheadItem, find_institutions

__all__ = [
    "Adapter",
    "DmpItem",
    "Item",
    "ItemError",
    "Key",
    "NosqlConflict",
    "NosqlError",
    "NosqlInternal",
    "NosqlNotFound",
    "NosqlUnavailable",
    "NosqlValidation",
    "TypeaheadItem",
    "create_adapter",
    "find_institutions",
]
