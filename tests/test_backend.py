"""Tests for the Mongo backend and in-flight task tracking."""

from __future__ import annotations

import asyncio
import logging

import pytest
from bson import ObjectId
from pydantic import ValidationError as PydanticValidationError

from docmap.db.mongodb import cast_query_ids
from docmap.models.options import FindOptions
from docmap.session import Session

HEX = "5f43a1b2c3d4e5f6a7b8c9d0"


class TestCastQueryIds:
    def test_plain_id(self):
        assert cast_query_ids({"_id": HEX}) == {"_id": ObjectId(HEX)}

    def test_operators(self):
        out = cast_query_ids({"_id": {"$in": [HEX, "nothex"], "$ne": HEX}})
        assert out == {"_id": {"$in": [ObjectId(HEX), "nothex"], "$ne": ObjectId(HEX)}}

    def test_nested_logical_queries(self):
        out = cast_query_ids({"$or": [{"_id": HEX}, {"name": HEX}]})
        assert out == {"$or": [{"_id": ObjectId(HEX)}, {"name": HEX}]}

    def test_does_not_mutate_input(self):
        query = {"_id": HEX}
        cast_query_ids(query)
        assert query == {"_id": HEX}


class TestIdentity:
    def test_native_ids(self, backend):
        assert backend.is_native_id(ObjectId())
        assert backend.is_native_id(HEX)
        assert not backend.is_native_id("abc")
        assert not backend.is_native_id(12)
        assert backend.native_id_type() is ObjectId

    def test_canonical_round_trip(self, backend):
        oid = ObjectId()
        assert backend.to_canonical_id(oid) == str(oid)
        assert backend.to_native_id(str(oid)) == oid


class TestIndexes:
    async def test_named_after_field(self, backend):
        await backend.save("C", None, {"email": "a"})
        await backend.create_index("C", "email", unique=True, sparse=True)
        assert sorted(await backend.list_indexes("C")) == ["_id_", "email"]

        await backend.remove_index("C", "_id_")
        await backend.remove_index("C", "email")
        assert await backend.list_indexes("C") == ["_id_"]

    async def test_sparse_unique_allows_missing_values(self, backend):
        await backend.create_index("C", "email", unique=True, sparse=True)
        await backend.save("C", None, {"name": "a"})
        await backend.save("C", None, {"name": "b"})
        assert await backend.count("C", {}) == 2


class TestFindOptions:
    def test_sort_forms(self):
        assert FindOptions(sort="age").sort == [("age", 1)]
        assert FindOptions(sort="-age").sort == [("age", -1)]
        assert FindOptions(sort=["-age", "name"]).sort == [("age", -1), ("name", 1)]
        assert FindOptions(sort=[("age", -1)]).sort == [("age", -1)]
        assert FindOptions(sort=None).sort == []

    def test_populate_fields(self):
        assert FindOptions().populate_fields is None
        assert FindOptions(populate=False).populate_fields == []
        assert FindOptions(populate=["a"]).populate_fields == ["a"]

    def test_negative_paging_rejected(self):
        with pytest.raises(PydanticValidationError):
            FindOptions(skip=-1)
        with pytest.raises(PydanticValidationError):
            FindOptions(limit=-5)


class TestTaskTracking:
    async def test_close_waits_for_in_flight_saves(self, slow_backend, mongo_client):
        backend = slow_backend
        session = Session(backend)

        class Slow(session.Document):
            n = int

        saving = [asyncio.ensure_future(Slow.create(n=n).save()) for n in range(3)]
        await asyncio.sleep(0)
        assert backend.pending > 0

        await session.close()
        assert backend.pending == 0
        assert backend.closed
        assert await mongo_client["docmap_test"]["Slow"].count_documents({}) == 3

        saved = await asyncio.gather(*saving)
        assert all(s._id is not None for s in saved)

    async def test_wait_survives_failed_operations(self, backend):
        async def boom():
            raise RuntimeError("boom")

        with pytest.raises(RuntimeError):
            await backend.track(boom())
        await backend.wait_for_tasks()
        assert backend.pending == 0

    async def test_background_failure_is_logged(self, backend, caplog):
        async def boom():
            raise RuntimeError("index build failed")

        with caplog.at_level(logging.ERROR, logger="docmap.db.client"):
            task = backend.spawn(boom())
            await backend.wait_for_tasks()
        assert task.done()
        assert "index build failed" in caplog.text
