# src/async_resource_storage/mongodb/codec.py
"""
Conversion between framework items and MongoDB documents.

Stored documents keep the system fields next to the payload fields:

    {"_id": <id>, "_etag": <etag>, "_updated": <datetime>, **payload}

The payload "id" key is never stored; the id lives in "_id" only.
"""
from datetime import datetime, timezone
from typing import Any, Dict

from bson import ObjectId

from async_resource_storage.base.item import Item
from async_resource_storage.base.utils import prepare_for_storage

DB_ID_FIELD = "_id"
ETAG_FIELD = "_etag"
UPDATED_FIELD = "_updated"
APP_ID_FIELD = "id"

# Prefix of etags derived from the item id for documents stored without one.
ETAG_PREFIX = "p-"


def is_synthetic_etag(etag: str) -> bool:
    return bool(etag) and etag.startswith(ETAG_PREFIX)


def synthetic_etag(item_id: Any) -> str:
    """Builds the etag reported for a document that has no stored `_etag`."""
    if isinstance(item_id, ObjectId):
        return ETAG_PREFIX + item_id.binary.hex()
    return ETAG_PREFIX + str(item_id)


def to_stored(item: Item) -> Dict[str, Any]:
    """Converts an item into a MongoDB document. The item is left untouched."""
    doc: Dict[str, Any] = {
        k: prepare_for_storage(v)
        for k, v in item.payload.items()
        if k != APP_ID_FIELD
    }
    doc[DB_ID_FIELD] = item.id
    if item.etag:
        doc[ETAG_FIELD] = item.etag
    if item.updated is not None:
        doc[UPDATED_FIELD] = item.updated
    return doc


def from_stored(doc: Dict[str, Any]) -> Item:
    """
    Converts a MongoDB document into an item.

    The document is consumed: system fields are popped from it and the same
    mapping becomes the item payload, with the id added back under "id".
    """
    if doc is None:
        doc = {}
    item_id = doc.pop(DB_ID_FIELD, None)
    etag = doc.pop(ETAG_FIELD, None) or ""
    updated = doc.pop(UPDATED_FIELD, None)
    # The driver hands back naive UTC datetimes unless the client is tz_aware
    if isinstance(updated, datetime) and updated.tzinfo is None:
        updated = updated.replace(tzinfo=timezone.utc)

    doc[APP_ID_FIELD] = item_id
    if not etag:
        etag = synthetic_etag(item_id)
    return Item(id=item_id, etag=etag, updated=updated, payload=doc)
