# tests/conftest.py
import logging
import os
import uuid
from typing import Any, List, Optional

import motor.motor_asyncio
import pytest
import pytest_asyncio
from mongomock_motor import AsyncMongoMockClient
from pymongo.errors import ConnectionFailure

from async_resource_storage.base.context import OperationContext
from async_resource_storage.base.item import Item
from async_resource_storage.db_implementations.mongodb_handler import \
    MongoDBHandler

# Silence verbose loggers
logging.getLogger("pymongo").setLevel(logging.ERROR)
logging.getLogger("motor").setLevel(logging.ERROR)


# --- Constants ---
TEST_MONGO_DB_NAME = "pytest_async_resource_storage"
# When unset, tests run against mongomock-motor.
MONGO_URI = os.getenv("TEST_MONGO_URI")


# MongoDB Client Fixture (Function Scoped)
@pytest_asyncio.fixture(scope="function")
async def motor_client():
    """Provides a real Motor client when TEST_MONGO_URI is set, an in-memory mock otherwise."""
    if not MONGO_URI:
        yield AsyncMongoMockClient()
        return

    client = motor.motor_asyncio.AsyncIOMotorClient(
        MONGO_URI, serverSelectionTimeoutMS=2000
    )
    try:
        await client.admin.command("ping")
    except ConnectionFailure as e:
        client.close()
        pytest.skip(
            f"Skipping MongoDB test: Could not connect to MongoDB at {MONGO_URI}: {e}"
        )
    logging.debug("Motor client created for test function scope.")
    try:
        yield client
    finally:
        client.close()
        logging.debug("Motor client closed for test function scope.")


@pytest.fixture
def collection_name() -> str:
    return f"items_{uuid.uuid4().hex[:8]}"


@pytest_asyncio.fixture
async def collection(motor_client, collection_name):
    """The raw collection behind the handler, dropped after the test."""
    coll = motor_client[TEST_MONGO_DB_NAME][collection_name]
    yield coll
    await motor_client[TEST_MONGO_DB_NAME].drop_collection(collection_name)


@pytest.fixture
def handler(motor_client, collection_name, collection) -> MongoDBHandler:
    return MongoDBHandler(motor_client, TEST_MONGO_DB_NAME, collection_name)


# --- Logger and Context Fixtures ---


@pytest.fixture(scope="session")
def logger():
    """Create a test logger."""
    _logger = logging.getLogger("test_storage_logger")
    if not _logger.handlers:
        handler = logging.StreamHandler()
        formatter = logging.Formatter(
            "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
        )
        handler.setFormatter(formatter)
        handler.setLevel(logging.DEBUG)
        _logger.addHandler(handler)
        _logger.setLevel(logging.DEBUG)
        _logger.propagate = False
    return logging.LoggerAdapter(_logger, {})


@pytest.fixture
def ctx(logger) -> OperationContext:
    """A live context without deadline."""
    return OperationContext(logger=logger)


@pytest.fixture
def expired_ctx(logger) -> OperationContext:
    return OperationContext(timeout=0, logger=logger)


# --- Test Items ---


@pytest.fixture
def make_item():
    """Returns a factory building items with a fresh etag unless one is given."""

    def _make(
        item_id: Any,
        etag: Optional[str] = None,
        **payload: Any,
    ) -> Item:
        return Item(
            id=item_id,
            etag=etag if etag is not None else uuid.uuid4().hex,
            payload=dict(payload),
        )

    return _make


@pytest_asyncio.fixture
async def seeded(handler, ctx, make_item) -> List[Item]:
    """Five stored items with ids 1..5 and alternating groups."""
    items = [
        make_item(i, name=f"item-{i}", value=i * 10, group="even" if i % 2 == 0 else "odd")
        for i in range(1, 6)
    ]
    await handler.insert(ctx, items)
    return items
