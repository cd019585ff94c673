# src/async_resource_storage/base/item.py

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, List, Optional

# Total reported by a list when the storage could not infer it for free.
UNKNOWN_TOTAL = -1


@dataclass
class Item:
    """
    A resource instance as seen by the resource framework.

    Attributes:
        id: Opaque, comparable identifier (an ObjectId, a string, an int...).
        etag: Change fingerprint used for optimistic concurrency.
        updated: Last modification time.
        payload: Field values of the item. When returned by a storage it also
                 contains the identifier under the "id" key.
    """

    id: Any
    etag: str = ""
    updated: Optional[datetime] = None
    payload: Dict[str, Any] = field(default_factory=dict)


@dataclass
class ItemList:
    """A page of items returned by a find operation."""

    total: int = UNKNOWN_TOTAL
    limit: int = -1
    items: List[Item] = field(default_factory=list)

    def __len__(self) -> int:
        return len(self.items)
