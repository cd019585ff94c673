# src/async_resource_storage/db_implementations/mongodb_handler.py

import inspect
import logging
from contextlib import asynccontextmanager
from typing import (Any, AsyncGenerator, Awaitable, Callable, Dict, List,
                    NoReturn, Optional, Union)

# --- Motor Driver Import ---
from motor.motor_asyncio import AsyncIOMotorClient, AsyncIOMotorCollection
from pymongo.errors import BulkWriteError, PyMongoError, WriteError

# --- Framework Imports ---
from async_resource_storage.base.context import OperationContext
from async_resource_storage.base.exceptions import (ClearIncompleteException,
                                                    ConflictException,
                                                    ContextDoneException,
                                                    KeyAlreadyExistsException,
                                                    ObjectNotFoundException)
from async_resource_storage.base.interfaces import Reducer, Storer
from async_resource_storage.base.item import UNKNOWN_TOTAL, Item, ItemList
from async_resource_storage.base.query import NO_LIMIT, Query
from async_resource_storage.mongodb.codec import (DB_ID_FIELD, ETAG_FIELD,
                                                  from_stored,
                                                  is_synthetic_etag,
                                                  to_stored)
from async_resource_storage.mongodb.query import (apply_window, close_cursor,
                                                  get_projection, get_query,
                                                  get_sort, select_ids)
from async_resource_storage.mongodb.settings import MongoSettings

# --- Type Variables ---
DB_COLLECTION_TYPE = AsyncIOMotorCollection
CollectionFactory = Callable[
    [OperationContext], Union[DB_COLLECTION_TYPE, Awaitable[DB_COLLECTION_TYPE]]
]

DUPLICATE_KEY_CODE = 11000

base_logger = logging.getLogger(
    "async_resource_storage.db_implementations.mongodb_handler"
)


def is_duplicate_key_error(error: BaseException) -> bool:
    """Tells whether a write error reports a unique index violation, for single and bulk writes."""
    if isinstance(error, BulkWriteError):
        write_errors = (error.details or {}).get("writeErrors", [])
        return any(we.get("code") == DUPLICATE_KEY_CODE for we in write_errors)
    if isinstance(error, WriteError):
        return error.code == DUPLICATE_KEY_CODE
    return False


class MongoDBHandler(Storer):
    """
    Resource storage handler for a MongoDB collection, using Motor.

    Items are stored as documents holding `_id`, `_etag` and `_updated` next
    to the payload fields. Updates and deletes are conditional on the etag the
    caller read, so concurrent writers get a ConflictException instead of
    silently overwriting each other. The handler keeps no state between calls.
    """

    def __init__(
        self,
        client: AsyncIOMotorClient,
        database_name: str,
        collection_name: str,
    ):
        """
        Args:
            client: An AsyncIOMotorClient (or a compatible client).
            database_name: The name of the MongoDB database.
            collection_name: The name of the MongoDB collection.
        """
        self._setup(
            lambda ctx: client[database_name][collection_name], collection_name
        )
        base_logger.debug(
            "Initialized mongodb handler for database: %s, collection: %s",
            database_name,
            collection_name,
        )

    @classmethod
    def from_collection_factory(
        cls, factory: CollectionFactory, collection_name: str = "collection"
    ) -> "MongoDBHandler":
        """
        Creates a handler resolving its collection through `factory` on every call.

        The factory receives the operation context and returns the collection,
        or an awaitable resolving to it.
        """
        handler = cls.__new__(cls)
        handler._setup(factory, collection_name)
        return handler

    @classmethod
    def from_settings(
        cls, settings: MongoSettings, client: Optional[AsyncIOMotorClient] = None
    ) -> "MongoDBHandler":
        return cls(
            client or settings.create_client(), settings.database, settings.collection
        )

    def _setup(self, factory: CollectionFactory, collection_name: str) -> None:
        self._collection_factory = factory
        self._collection_name = collection_name
        self._logger = logging.getLogger(
            f"{__name__}.{self.__class__.__name__}[{collection_name}]"
        )

    @property
    def collection_name(self) -> str:
        return self._collection_name

    @asynccontextmanager
    async def _get_collection(
        self, ctx: OperationContext
    ) -> AsyncGenerator[DB_COLLECTION_TYPE, None]:
        """
        Acquires the collection for one operation. Fails fast when the context
        is already done. Lets operational exceptions propagate to the caller.
        """
        ctx.raise_if_done()
        collection = self._collection_factory(ctx)
        if inspect.isawaitable(collection):
            collection = await collection
        try:
            yield collection
        finally:
            ctx.logger.debug(f"Released collection '{self._collection_name}'.")

    # --- Core CRUD Methods ---

    async def insert(self, ctx: OperationContext, items: List[Item]) -> None:
        logger = ctx.logger
        if not items:
            logger.debug("Insert called without items, nothing to do.")
            return
        docs = [to_stored(item) for item in items]
        logger.debug(f"Inserting {len(docs)} item(s) into '{self._collection_name}'")

        async with self._get_collection(ctx) as collection:
            try:
                await collection.insert_many(docs)
            except Exception as e:
                if is_duplicate_key_error(e):
                    logger.warning(f"Duplicate key while inserting items: {e}")
                    raise KeyAlreadyExistsException(
                        f"An item with the same id already exists in '{self._collection_name}'."
                    ) from e
                self._handle_db_error(ctx, e, "inserting items")
            ctx.raise_if_done()
        logger.info(f"Inserted {len(docs)} item(s) into '{self._collection_name}'.")

    async def update(
        self, ctx: OperationContext, item: Item, original: Item
    ) -> None:
        logger = ctx.logger
        doc = to_stored(item)
        query_filter = self._guard_filter(original)
        logger.debug(f"MongoDB replace_one filter: {query_filter}")

        async with self._get_collection(ctx) as collection:
            try:
                result = await collection.replace_one(query_filter, doc)
            except Exception as e:
                self._handle_db_error(ctx, e, f"updating item {original.id!r}")
            if result.matched_count == 0:
                await self._raise_write_miss(ctx, collection, original.id, "update")
            ctx.raise_if_done()
        logger.info(f"Updated item {original.id!r} in '{self._collection_name}'.")

    async def delete(self, ctx: OperationContext, item: Item) -> None:
        logger = ctx.logger
        query_filter = self._guard_filter(item)
        logger.debug(f"MongoDB delete_one filter: {query_filter}")

        async with self._get_collection(ctx) as collection:
            try:
                result = await collection.delete_one(query_filter)
            except Exception as e:
                self._handle_db_error(ctx, e, f"deleting item {item.id!r}")
            if result.deleted_count == 0:
                await self._raise_write_miss(ctx, collection, item.id, "delete")
            ctx.raise_if_done()
        logger.info(f"Deleted item {item.id!r} from '{self._collection_name}'.")

    async def clear(self, ctx: OperationContext, query: Query) -> int:
        """
        Delete the items matching the query.

        `delete_many` accepts neither skip nor limit, so a windowed clear first
        selects the ids of the window (sorted like a find would) and then
        deletes by id. The two round-trips are not isolated: items deleted or
        inserted in between are not accounted for, and the id list must fit in
        a single BSON document (16MiB).
        """
        logger = ctx.logger
        query_filter = get_query(query)
        window = query.window
        if window is not None and window.limit == 0:
            ctx.raise_if_done()
            logger.debug("Clear called with a zero limit window, nothing to do.")
            return 0

        async with self._get_collection(ctx) as collection:
            if window is not None:
                find_kwargs = apply_window(
                    {"sort": get_sort(query), "projection": {DB_ID_FIELD: 1}}, window
                )
                self._apply_deadline(ctx, find_kwargs)
                logger.debug(
                    f"Selecting ids to clear with filter: {query_filter}, options: {find_kwargs}"
                )
                try:
                    ids = await select_ids(
                        ctx, collection.find(query_filter, **find_kwargs)
                    )
                except Exception as e:
                    self._handle_db_error(ctx, e, "selecting items to clear")
                if not ids:
                    logger.info("Clear window selected no items.")
                    return 0
                query_filter = {DB_ID_FIELD: {"$in": ids}}

            logger.debug(f"MongoDB delete_many filter: {query_filter}")
            try:
                result = await collection.delete_many(query_filter)
            except Exception as e:
                logger.error(f"MongoDB error during clear: {e}", exc_info=True)
                raise ClearIncompleteException(0) from (ctx.err() or e)
            removed = result.deleted_count
            ctx_error = ctx.err()
            if ctx_error is not None:
                raise ClearIncompleteException(removed) from ctx_error
        logger.info(f"Cleared {removed} item(s) from '{self._collection_name}'.")
        return removed

    async def find(self, ctx: OperationContext, query: Query) -> ItemList:
        logger = ctx.logger
        window = query.window
        # MongoDB reads limit=0 as "no limit": count instead of listing
        if window is not None and window.limit == 0:
            total = await self.count(ctx, query)
            return ItemList(total=total, limit=0, items=[])

        query_filter = get_query(query)
        find_kwargs = self._find_kwargs(query)
        limit = window.limit if window is not None else NO_LIMIT

        items: List[Item] = []
        async with self._get_collection(ctx) as collection:
            self._apply_deadline(ctx, find_kwargs)
            logger.debug(f"MongoDB find filter: {query_filter}, options: {find_kwargs}")
            try:
                cursor = collection.find(query_filter, **find_kwargs)
                try:
                    async for doc in cursor:
                        ctx.raise_if_done()
                        items.append(from_stored(doc))
                finally:
                    await close_cursor(cursor)
            except Exception as e:
                self._handle_db_error(ctx, e, "finding items")

        # The total comes for free when the page is not full
        total = UNKNOWN_TOTAL
        if limit < 0 or len(items) < limit:
            offset = window.offset if window is not None else 0
            if offset > 0:
                # An empty page past the offset may just be out of bounds
                if items:
                    total = offset + len(items)
            else:
                total = len(items)
        logger.info(f"Found {len(items)} item(s) in '{self._collection_name}' (total: {total}).")
        return ItemList(total=total, limit=limit, items=items)

    async def reduce(
        self, ctx: OperationContext, query: Query, reducer: Reducer
    ) -> None:
        logger = ctx.logger
        window = query.window
        if window is not None and window.limit == 0:
            ctx.raise_if_done()
            return

        query_filter = get_query(query)
        find_kwargs = self._find_kwargs(query)

        async with self._get_collection(ctx) as collection:
            self._apply_deadline(ctx, find_kwargs)
            logger.debug(f"MongoDB reduce filter: {query_filter}, options: {find_kwargs}")
            reduced = 0
            try:
                cursor = collection.find(query_filter, **find_kwargs)
                try:
                    async for doc in cursor:
                        ctx.raise_if_done()
                        result = reducer(from_stored(doc))
                        if inspect.isawaitable(result):
                            await result
                        reduced += 1
                finally:
                    await close_cursor(cursor)
            except PyMongoError as e:
                self._handle_db_error(ctx, e, "reducing items")
        logger.info(f"Reduced {reduced} item(s) from '{self._collection_name}'.")

    async def count(self, ctx: OperationContext, query: Query) -> int:
        logger = ctx.logger
        query_filter = get_query(query)
        count_kwargs: Dict[str, Any] = {}
        max_time_ms = ctx.max_time_ms()
        if max_time_ms is not None:
            count_kwargs["maxTimeMS"] = max_time_ms

        async with self._get_collection(ctx) as collection:
            logger.debug(f"MongoDB count filter: {query_filter}")
            try:
                count_val = await collection.count_documents(query_filter, **count_kwargs)
            except Exception as e:
                self._handle_db_error(ctx, e, "counting items")
        logger.info(f"Counted {count_val} item(s) in '{self._collection_name}'.")
        return int(count_val)

    # --- Helper Methods ---

    @staticmethod
    def _guard_filter(original: Item) -> Dict[str, Any]:
        """Matches the original id, and its etag as the concurrency guard."""
        query_filter: Dict[str, Any] = {DB_ID_FIELD: original.id}
        if is_synthetic_etag(original.etag):
            # A "p-<id>" etag was derived for a document stored without one
            query_filter[ETAG_FIELD] = {"$exists": False}
        else:
            query_filter[ETAG_FIELD] = original.etag
        return query_filter

    @staticmethod
    def _find_kwargs(query: Query) -> Dict[str, Any]:
        find_kwargs: Dict[str, Any] = {"sort": get_sort(query)}
        projection = get_projection(query)
        if projection is not None:
            find_kwargs["projection"] = projection
        if query.window is not None:
            apply_window(find_kwargs, query.window)
        return find_kwargs

    @staticmethod
    def _apply_deadline(ctx: OperationContext, find_kwargs: Dict[str, Any]) -> None:
        max_time_ms = ctx.max_time_ms()
        if max_time_ms is not None:
            find_kwargs["max_time_ms"] = max_time_ms

    async def _raise_write_miss(
        self,
        ctx: OperationContext,
        collection: DB_COLLECTION_TYPE,
        item_id: Any,
        operation: str,
    ) -> NoReturn:
        """Tells a missing item from an etag mismatch after a conditional write matched nothing."""
        try:
            existing = await collection.find_one(
                {DB_ID_FIELD: item_id}, projection={DB_ID_FIELD: 1}
            )
        except Exception as e:
            self._handle_db_error(ctx, e, f"checking item {item_id!r} after {operation}")
        ctx.raise_if_done()
        if existing is None:
            ctx.logger.warning(f"Item {item_id!r} not found for {operation}.")
            raise ObjectNotFoundException(
                f"Item with ID '{item_id}' not found in '{self._collection_name}'."
            )
        ctx.logger.warning(f"Etag mismatch for item {item_id!r} during {operation}.")
        raise ConflictException(
            f"Item with ID '{item_id}' was modified since it was read."
        )

    def _handle_db_error(
        self, ctx: OperationContext, error: Exception, context: str = "operation"
    ) -> NoReturn:
        """Re-raises a driver error, giving precedence to the context being done."""
        if isinstance(error, ContextDoneException):
            raise error
        ctx_error = ctx.err()
        if ctx_error is not None:
            ctx.logger.warning(f"Context done during {context}: {error}")
            raise ctx_error from error
        self._logger.error(f"MongoDB error during {context}: {error}", exc_info=True)
        raise error
