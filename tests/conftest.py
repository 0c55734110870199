from __future__ import annotations

import asyncio
from datetime import datetime, timezone

import pytest
from mongomock_motor import AsyncMongoMockClient

from docmap.db.mongodb import MongoBackend
from docmap.session import Session


class CountingBackend(MongoBackend):
    """MongoBackend that records every find() it serves."""

    def __init__(self, *args, **kwargs) -> None:
        super().__init__(*args, **kwargs)
        self.finds: list[tuple[str, dict]] = []

    async def find(self, collection, query, **kwargs):
        self.finds.append((collection, query))
        return await super().find(collection, query, **kwargs)

    async def _close(self) -> None:
        # the in-memory client is shared by every session of a test
        self.closed = True


class SlowBackend(CountingBackend):
    async def save(self, collection, id, values):
        await asyncio.sleep(0.05)
        return await super().save(collection, id, values)


@pytest.fixture
def mongo_client():
    return AsyncMongoMockClient()


@pytest.fixture
def backend(mongo_client):
    return CountingBackend(mongo_client, "docmap_test")


@pytest.fixture
def session(backend):
    return Session(backend)


@pytest.fixture
def Data(session):
    class Data(session.Document):
        number = int
        source = {
            "type": str,
            "choices": ["reddit", "hacker-news", "wired", "arstechnica"],
            "default": "reddit",
        }
        item = {"type": int, "min": 0, "max": 100}
        values = [int]
        date = {"type": datetime, "default": lambda: datetime.now(timezone.utc)}

    return Data


@pytest.fixture
def data1(Data):
    def make():
        d = Data.create()
        d.number = 1
        d.source = "arstechnica"
        d.item = 99
        d.values = [33, 101, -1]
        d.date = 1434304033
        return d

    return make


@pytest.fixture
def data2(Data):
    def make():
        return Data.create(number=2, source="reddit", item=26, values=[1, 2, 3, 4], date=1434304039)

    return make


@pytest.fixture
def reopen(mongo_client):
    """Open another session over the same database, as a newer release would."""

    def make(migrations=None):
        return Session(CountingBackend(mongo_client, "docmap_test"), migrations)

    return make


@pytest.fixture
def slow_backend(mongo_client):
    return SlowBackend(mongo_client, "docmap_test")
