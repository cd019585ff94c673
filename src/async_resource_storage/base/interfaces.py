# src/async_resource_storage/base/interfaces.py

from abc import ABC, abstractmethod
from typing import Any, Awaitable, Callable, List, Union

from async_resource_storage.base.context import OperationContext
from async_resource_storage.base.item import Item, ItemList
from async_resource_storage.base.query import Query

# Callback fed one item at a time by `Storer.reduce`. May be sync or async.
Reducer = Callable[[Item], Union[None, Awaitable[Any]]]


class Storer(ABC):
    """
    Storage contract expected by the resource framework.

    Every operation takes an OperationContext first. Implementations hold no
    per-call state: concurrent callers are serialised only by the conditional
    writes of `update` and `delete`, which compare the stored entity tag with
    the one the caller last read.
    """

    @abstractmethod
    async def insert(self, ctx: OperationContext, items: List[Item]) -> None:
        """
        Store new items.

        Args:
            ctx: Operation context.
            items: Items to insert. Their payload is not modified.

        Raises:
            KeyAlreadyExistsException: If an item with the same id already exists.
        """
        pass

    @abstractmethod
    async def update(
        self, ctx: OperationContext, item: Item, original: Item
    ) -> None:
        """
        Replace `original` by `item`, provided the stored version is still `original`.

        Args:
            ctx: Operation context.
            item: The new version of the item.
            original: The version the caller read, whose id and etag guard the write.

        Raises:
            ObjectNotFoundException: If no item exists with the original id.
            ConflictException: If the stored item's etag differs from the original's.
        """
        pass

    @abstractmethod
    async def delete(self, ctx: OperationContext, item: Item) -> None:
        """
        Delete `item`, provided the stored version still has its etag.

        Raises:
            ObjectNotFoundException: If no item exists with this id.
            ConflictException: If the stored item's etag differs.
        """
        pass

    @abstractmethod
    async def clear(self, ctx: OperationContext, query: Query) -> int:
        """
        Delete every item matching the query, honouring its window if any.

        Returns:
            The number of items removed.

        Raises:
            ClearIncompleteException: If an error occurred once deletion started;
                                      carries the number of items removed.
        """
        pass

    @abstractmethod
    async def find(self, ctx: OperationContext, query: Query) -> ItemList:
        """
        Retrieve a page of items matching the query.

        Returns:
            An ItemList whose `total` is exact when it could be inferred without
            an extra round-trip, UNKNOWN_TOTAL otherwise.
        """
        pass

    @abstractmethod
    async def reduce(
        self, ctx: OperationContext, query: Query, reducer: Reducer
    ) -> None:
        """
        Stream the items matching the query into `reducer`, one at a time.

        The first exception raised by the reducer stops the stream and propagates.
        """
        pass

    @abstractmethod
    async def count(self, ctx: OperationContext, query: Query) -> int:
        """Count items matching the query predicate. Sort, projection and window are ignored."""
        pass
