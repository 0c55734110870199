# docmap/db/client.py
from __future__ import annotations

import asyncio
import logging
from abc import ABC, abstractmethod
from typing import Any, Awaitable, Dict, List, Optional, Set, TypeVar

from docmap.models.options import SortSpec

logger = logging.getLogger("docmap.db.client")

T = TypeVar("T")

Document = Dict[str, Any]
Filter = Dict[str, Any]


class StorageBackend(ABC):
    """
    Contract the mapping layer consumes for persistence, querying and indexes.

    Every logical operation issued through the mapping layer runs as a tracked
    task so that teardown (close/drop_database) can wait for in-flight writes.
    """

    def __init__(self, url: str = "") -> None:
        self.url = url
        self._tasks: Set[asyncio.Future] = set()

    # ---------- in-flight task tracking ---------- #

    async def track(self, aw: Awaitable[T]) -> T:
        task = asyncio.ensure_future(aw)
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return await task

    def spawn(self, aw: Awaitable[T]) -> "asyncio.Future[T]":
        """Start a background operation nobody awaits directly; failures are logged."""
        task = asyncio.ensure_future(aw)
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        task.add_done_callback(_report_failure)
        return task

    @property
    def pending(self) -> int:
        return len(self._tasks)

    async def wait_for_tasks(self) -> None:
        """Wait for every in-flight operation to finish, successfully or not."""
        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)

    # ---------- CRUD ---------- #

    @abstractmethod
    async def save(self, collection: str, id: Any, values: Document) -> Any:
        """Insert when ``id`` is None, else upsert by id. Returns the id."""

    @abstractmethod
    async def delete(self, collection: str, id: Any) -> int: ...

    @abstractmethod
    async def delete_one(self, collection: str, query: Filter) -> int: ...

    @abstractmethod
    async def delete_many(self, collection: str, query: Filter) -> int: ...

    @abstractmethod
    async def find_one(self, collection: str, query: Filter) -> Optional[Document]: ...

    @abstractmethod
    async def find(
        self,
        collection: str,
        query: Filter,
        *,
        sort: Optional[SortSpec] = None,
        skip: Optional[int] = None,
        limit: Optional[int] = None,
    ) -> List[Document]: ...

    @abstractmethod
    async def find_one_and_update(
        self,
        collection: str,
        query: Filter,
        values: Document,
        *,
        upsert: bool = False,
        on_insert: Optional[Document] = None,
    ) -> Optional[Document]: ...

    @abstractmethod
    async def find_one_and_delete(self, collection: str, query: Filter) -> int: ...

    @abstractmethod
    async def count(self, collection: str, query: Filter) -> int: ...

    # ---------- indexes ---------- #

    @abstractmethod
    async def create_index(self, collection: str, field: str, *, unique: bool = False, sparse: bool = False) -> None: ...

    @abstractmethod
    async def remove_index(self, collection: str, field: str) -> None: ...

    @abstractmethod
    async def list_indexes(self, collection: str) -> List[str]: ...

    # ---------- identity ---------- #

    @abstractmethod
    def is_native_id(self, value: Any) -> bool: ...

    @abstractmethod
    def native_id_type(self) -> type: ...

    def to_canonical_id(self, id: Any) -> str:
        return str(id)

    def to_native_id(self, id: Any) -> Any:
        return self.native_id_type()(id)

    # ---------- lifecycle ---------- #

    @abstractmethod
    async def clear_collection(self, collection: str) -> None: ...

    async def drop_database(self) -> None:
        await self.wait_for_tasks()
        await self._drop_database()

    async def close(self) -> None:
        await self.wait_for_tasks()
        await self._close()

    @abstractmethod
    async def _drop_database(self) -> None: ...

    @abstractmethod
    async def _close(self) -> None: ...


def _report_failure(task: "asyncio.Future[Any]") -> None:
    if task.cancelled():
        return
    exc = task.exception()
    if exc is not None:
        logger.error("Background storage operation failed: %s", exc, exc_info=exc)
