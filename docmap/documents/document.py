# docmap/documents/document.py
from __future__ import annotations

import asyncio
import logging
from collections.abc import Mapping
from typing import Any, ClassVar, Dict, List, Optional, Sequence, Union

from docmap.core import migration
from docmap.core import population
from docmap.core import schema as schema_engine
from docmap.core.schema import ID_FIELD
from docmap.documents.base import BaseDocument
from docmap.models.options import FindOptions

logger = logging.getLogger("docmap.documents.document")

Populate = Union[bool, List[str]]


class Document(BaseDocument):
    """
    A record kind with its own identity and collection.

    Every public operation runs as a tracked backend task, so closing the
    session waits for saves/deletes that are still in flight.
    """

    _document_class: ClassVar[str] = "document"
    _is_base_kind: ClassVar[bool] = True

    def __init__(self) -> None:
        self._id: Any = None
        super().__init__()

    # ---------- creation & indexes ---------- #

    @classmethod
    def create(cls, data: Union[Mapping, Sequence[Mapping], None] = None, **fields: Any):
        """The first creation of a kind inside a running loop also requests its unique indexes."""
        try:
            asyncio.get_running_loop()
        except RuntimeError:
            pass
        else:
            cls.create_indexes()
        return super().create(data, **fields)

    @classmethod
    def create_indexes(cls) -> "asyncio.Future[None]":
        """Memoized per kind; awaiting the returned task waits for the index requests."""
        task = cls.__dict__.get("_indexes_task")
        if task is None or (task.done() and (task.cancelled() or task.exception() is not None)):
            task = cls.backend().spawn(cls._ensure_indexes())
            cls._indexes_task = task
        return task

    @classmethod
    async def _ensure_indexes(cls) -> None:
        backend = cls.backend()
        for key, descriptor in cls.schema().items():
            if descriptor.unique:
                await backend.create_index(cls.collection_name(), key, unique=True, sparse=True)

    @classmethod
    def reset_indexes(cls) -> None:
        """Forget that indexes were ensured; the next creation requests them again."""
        cls._indexes_task = None

    @classmethod
    async def remove_indexes(cls) -> None:
        backend = cls.backend()
        for name in await backend.list_indexes(cls.collection_name()):
            await backend.remove_index(cls.collection_name(), name)
        cls.reset_indexes()

    # ---------- versioning ---------- #

    @classmethod
    def version(cls) -> int:
        return cls.session().version(cls.collection_name())

    @classmethod
    async def migrate(cls) -> int:
        return await cls.backend().track(migration.migrate(cls))

    # ---------- instance lifecycle ---------- #

    async def save(self) -> "Document":
        return await self.backend().track(self._save())

    async def _save(self) -> "Document":
        await self._run_hooks("pre_validate")

        schema_engine.fill_defaults(self)
        self.validate()
        self.canonicalize()

        await self._run_hooks("post_validate")
        await self._run_hooks("pre_save")

        payload = self._stored_form()
        payload[migration.VERSION_FIELD] = self.version()

        await type(self).create_indexes()
        id = await self.backend().save(self.collection_name(), self._id, payload)
        if self._id is None:
            self._id = id
        logger.debug("saved kind=%s id=%s", self.collection_name(), self._id)

        await self._run_hooks("post_save")
        return self

    async def delete(self) -> int:
        return await self.backend().track(self._delete())

    async def _delete(self) -> int:
        await self._run_hooks("pre_delete")
        deleted = await self.backend().delete(self.collection_name(), self._id)
        await self._run_hooks("post_delete")
        return deleted

    # ---------- queries ---------- #

    @classmethod
    async def find_one(cls, query: Optional[Dict[str, Any]] = None, *, populate: Populate = True) -> Optional["Document"]:
        return await cls.backend().track(cls._find_one(query, populate))

    @classmethod
    async def _find_one(cls, query: Optional[Dict[str, Any]], populate: Populate) -> Optional["Document"]:
        data = await cls.backend().find_one(cls.collection_name(), query or {})
        if data is None:
            return None
        return (await cls._load([data], populate))[0]

    @classmethod
    async def find_one_and_update(
        cls,
        query: Dict[str, Any],
        values: Dict[str, Any],
        *,
        populate: Populate = True,
        upsert: bool = False,
    ) -> Optional["Document"]:
        return await cls.backend().track(cls._find_one_and_update(query, values, populate, upsert))

    @classmethod
    async def _find_one_and_update(
        cls, query: Dict[str, Any], values: Dict[str, Any], populate: Populate, upsert: bool
    ) -> Optional["Document"]:
        backend = cls.backend()
        # stale documents must be migrated before they are written to
        current = await backend.find_one(cls.collection_name(), query or {})
        if current is not None:
            migration.check_versions(cls, [current])
            query = {ID_FIELD: current[ID_FIELD]}
        elif not upsert:
            return None

        data = await backend.find_one_and_update(
            cls.collection_name(),
            query or {},
            values,
            upsert=upsert,
            on_insert={migration.VERSION_FIELD: cls.version()},
        )
        if data is None:
            return None
        return (await cls._load([data], populate))[0]

    @classmethod
    async def find_one_and_delete(cls, query: Optional[Dict[str, Any]] = None) -> int:
        return await cls.backend().track(cls.backend().find_one_and_delete(cls.collection_name(), query or {}))

    @classmethod
    async def find(
        cls,
        query: Optional[Dict[str, Any]] = None,
        *,
        populate: Populate = True,
        sort: Union[str, List[Any], None] = None,
        skip: Optional[int] = None,
        limit: Optional[int] = None,
    ) -> List["Document"]:
        options = FindOptions(populate=populate, sort=sort, skip=skip, limit=limit)
        return await cls.backend().track(cls._find(query, options))

    @classmethod
    async def _find(cls, query: Optional[Dict[str, Any]], options: FindOptions) -> List["Document"]:
        datas = await cls.backend().find(
            cls.collection_name(),
            query or {},
            sort=options.sort,
            skip=options.skip,
            limit=options.limit,
        )
        return await cls._load(datas, options.populate)

    @classmethod
    async def _load(cls, datas: List[Dict[str, Any]], populate: Populate) -> List["Document"]:
        migration.check_versions(cls, datas)
        docs = [cls._from_data(d, stored=True) for d in datas]
        fields = FindOptions(populate=populate).populate_fields
        if docs and (fields is None or fields):
            await population.populate(cls, docs, fields)
        return docs

    @classmethod
    async def count(cls, query: Optional[Dict[str, Any]] = None) -> int:
        return await cls.backend().track(cls.backend().count(cls.collection_name(), query or {}))

    @classmethod
    async def delete_one(cls, query: Optional[Dict[str, Any]] = None) -> int:
        return await cls.backend().track(cls.backend().delete_one(cls.collection_name(), query or {}))

    @classmethod
    async def delete_many(cls, query: Optional[Dict[str, Any]] = None) -> int:
        return await cls.backend().track(cls.backend().delete_many(cls.collection_name(), query or {}))

    @classmethod
    async def clear_collection(cls) -> None:
        await cls.backend().track(cls.backend().clear_collection(cls.collection_name()))
        # dropping the collection drops its indexes too
        cls.reset_indexes()

    @classmethod
    async def populate(cls, records, fields: Optional[List[str]] = None):
        """Resolve one level of references on a record or a list of records, in place."""
        return await population.populate(cls, records, fields)
