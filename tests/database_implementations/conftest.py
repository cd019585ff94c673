# tests/database_implementations/conftest.py
from typing import Any, Dict, List
from unittest.mock import AsyncMock, MagicMock

import pytest

from async_resource_storage.db_implementations.mongodb_handler import \
    MongoDBHandler


class FakeCursor:
    """Async cursor over a fixed list of documents, recording whether it was closed."""

    def __init__(self, docs: List[Dict[str, Any]]):
        self._docs = [dict(d) for d in docs]
        self.closed = False

    def __aiter__(self):
        return self._iterate()

    async def _iterate(self):
        for doc in self._docs:
            yield doc

    async def close(self):
        self.closed = True


@pytest.fixture
def make_cursor():
    return FakeCursor


@pytest.fixture
def fake_collection():
    """A Motor-like collection whose methods are mocks; `find` serves an empty cursor by default."""
    collection = MagicMock()
    collection.find = MagicMock(return_value=FakeCursor([]))
    collection.find_one = AsyncMock(return_value=None)
    collection.insert_many = AsyncMock()
    collection.replace_one = AsyncMock(return_value=MagicMock(matched_count=1))
    collection.delete_one = AsyncMock(return_value=MagicMock(deleted_count=1))
    collection.delete_many = AsyncMock(return_value=MagicMock(deleted_count=0))
    collection.count_documents = AsyncMock(return_value=0)
    return collection


@pytest.fixture
def mock_handler(fake_collection) -> MongoDBHandler:
    return MongoDBHandler.from_collection_factory(lambda ctx: fake_collection, "items")
