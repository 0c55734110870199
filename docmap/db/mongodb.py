# docmap/db/mongodb.py
from __future__ import annotations

import logging
import re
from typing import Any, Dict, List, Optional

from bson import ObjectId
from motor.motor_asyncio import AsyncIOMotorClient, AsyncIOMotorDatabase
from pymongo import ASCENDING, ReturnDocument

from docmap.config import settings
from docmap.db.client import Document, Filter, StorageBackend
from docmap.models.options import SortSpec

logger = logging.getLogger("docmap.db.mongo")

ID_INDEX = "_id_"
_HEX_ID = re.compile(r"^[a-fA-F0-9]{24}$")


def _cast_id(value: Any) -> Any:
    if isinstance(value, str) and _HEX_ID.match(value):
        return ObjectId(value)
    return value


def cast_query_ids(query: Any) -> Any:
    """
    Copy of ``query`` where every ``_id`` given as a 24-hex string (directly or
    inside $in/$nin/$ne) is turned into an ObjectId.
    """
    if isinstance(query, list):
        return [cast_query_ids(q) for q in query]
    if not isinstance(query, dict):
        return query

    out: Dict[str, Any] = {}
    for key, value in query.items():
        if key == "_id":
            if isinstance(value, dict):
                value = {
                    op: ([_cast_id(v) for v in arg] if op in ("$in", "$nin") else _cast_id(arg))
                    for op, arg in value.items()
                }
            else:
                value = _cast_id(value)
            out[key] = value
        else:
            out[key] = cast_query_ids(value)
    return out


class MongoBackend(StorageBackend):
    """
    Storage backend over Motor. One instance per database.
    Collection: the record kind's collection name.
    """

    def __init__(self, client: AsyncIOMotorClient, db_name: str, url: str = "") -> None:
        super().__init__(url)
        self._client = client
        self._db: AsyncIOMotorDatabase = client[db_name]

    @classmethod
    async def connect(cls, url: str, **options: Any) -> "MongoBackend":
        client = AsyncIOMotorClient(url, **options)
        db = client.get_default_database(default=settings.mongo_db)
        logger.info("Mongo client created (db=%s)", db.name)
        return cls(client, db.name, url=url)

    @property
    def db(self) -> AsyncIOMotorDatabase:
        return self._db

    # ---------- CRUD ---------- #

    async def save(self, collection: str, id: Any, values: Document) -> Any:
        col = self._db[collection]
        if id is None:
            res = await col.insert_one(dict(values))
            if res.inserted_id is None:
                raise RuntimeError("Save failed to generate ID for object.")
            return res.inserted_id

        await col.replace_one({"_id": id}, dict(values), upsert=True)
        return id

    async def delete(self, collection: str, id: Any) -> int:
        if id is None:
            return 0
        res = await self._db[collection].delete_one({"_id": id})
        return res.deleted_count

    async def delete_one(self, collection: str, query: Filter) -> int:
        res = await self._db[collection].delete_one(cast_query_ids(query or {}))
        return res.deleted_count

    async def delete_many(self, collection: str, query: Filter) -> int:
        res = await self._db[collection].delete_many(cast_query_ids(query or {}))
        return res.deleted_count

    async def find_one(self, collection: str, query: Filter) -> Optional[Document]:
        return await self._db[collection].find_one(cast_query_ids(query or {}))

    async def find(
        self,
        collection: str,
        query: Filter,
        *,
        sort: Optional[SortSpec] = None,
        skip: Optional[int] = None,
        limit: Optional[int] = None,
    ) -> List[Document]:
        kwargs: Dict[str, Any] = {}
        if sort:
            kwargs["sort"] = list(sort)
        if skip is not None:
            kwargs["skip"] = skip
        if limit is not None:
            kwargs["limit"] = limit
        cursor = self._db[collection].find(cast_query_ids(query or {}), **kwargs)
        return await cursor.to_list(length=None)

    async def find_one_and_update(
        self,
        collection: str,
        query: Filter,
        values: Document,
        *,
        upsert: bool = False,
        on_insert: Optional[Document] = None,
    ) -> Optional[Document]:
        update: Dict[str, Any] = {"$set": dict(values)}
        if upsert and on_insert:
            update["$setOnInsert"] = {k: v for k, v in on_insert.items() if k not in values}
        return await self._db[collection].find_one_and_update(
            cast_query_ids(query or {}),
            update,
            upsert=upsert,
            return_document=ReturnDocument.AFTER,
        )

    async def find_one_and_delete(self, collection: str, query: Filter) -> int:
        doc = await self._db[collection].find_one_and_delete(cast_query_ids(query or {}))
        return 0 if doc is None else 1

    async def count(self, collection: str, query: Filter) -> int:
        return await self._db[collection].count_documents(cast_query_ids(query or {}))

    # ---------- indexes ---------- #

    async def create_index(self, collection: str, field: str, *, unique: bool = False, sparse: bool = False) -> None:
        # index name == field name
        await self._db[collection].create_index([(field, ASCENDING)], name=field, unique=unique, sparse=sparse)
        logger.debug("index ensured collection=%s field=%s unique=%s", collection, field, unique)

    async def remove_index(self, collection: str, field: str) -> None:
        # _id_ is never dropped
        if field == ID_INDEX:
            return
        await self._db[collection].drop_index(field)
        logger.debug("index dropped collection=%s field=%s", collection, field)

    async def list_indexes(self, collection: str) -> List[str]:
        info = await self._db[collection].index_information()
        return list(info.keys())

    # ---------- identity ---------- #

    def is_native_id(self, value: Any) -> bool:
        return isinstance(value, ObjectId) or (isinstance(value, str) and _HEX_ID.match(value) is not None)

    def native_id_type(self) -> type:
        return ObjectId

    # ---------- lifecycle ---------- #

    async def clear_collection(self, collection: str) -> None:
        await self._db.drop_collection(collection)

    async def _drop_database(self) -> None:
        await self._client.drop_database(self._db.name)
        logger.info("Mongo database dropped (db=%s)", self._db.name)

    async def _close(self) -> None:
        self._client.close()
        logger.info("Mongo client closed")
