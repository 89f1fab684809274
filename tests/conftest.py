"""Shared fixtures: an in-memory stand-in for the Motor collection API."""

import asyncio
from types import SimpleNamespace

import pytest
from pymongo.errors import DuplicateKeyError, OperationFailure

from mongoshift.core.config import MigrationSettings


class FakeCursor:
    """Async cursor over a snapshot of documents."""

    def __init__(self, docs):
        self.docs = list(docs)

    def sort(self, field, direction=1):
        self.docs.sort(key=lambda d: d.get(field), reverse=direction < 0)
        return self

    def __aiter__(self):
        self._iter = iter(self.docs)
        return self

    async def __anext__(self):
        try:
            return next(self._iter)
        except StopIteration:
            raise StopAsyncIteration


class FakeCollection:
    """
    Minimal async collection with unique index enforcement.

    No method awaits before mutating, so each call is atomic with respect to
    other tasks on the event loop, like a single MongoDB write. Setting
    `interleave` makes index reads and drops yield to the loop first, so two
    runners can observe the same index list.
    """

    def __init__(self, name):
        self.name = name
        self.docs = []
        self.indexes = {"_id_": {"key": [("_id", 1)], "v": 2}}
        self._next_id = 1
        self.interleave = False

    @staticmethod
    def _matches(doc, query):
        return all(doc.get(k) == v for k, v in query.items())

    def _check_unique(self, doc):
        for name, info in self.indexes.items():
            if not info.get("unique"):
                continue
            fields = [f for f, _ in info["key"]]
            values = [doc.get(f) for f in fields]
            for existing in self.docs:
                if [existing.get(f) for f in fields] == values:
                    raise DuplicateKeyError(f"E11000 duplicate key error index: {name}")

    async def insert_one(self, doc):
        doc = dict(doc)
        doc.setdefault("_id", self._next_id)
        self._check_unique(doc)
        self._next_id += 1
        self.docs.append(doc)
        return SimpleNamespace(inserted_id=doc["_id"])

    async def find_one(self, query):
        for doc in self.docs:
            if self._matches(doc, query):
                return dict(doc)
        return None

    def find(self, query=None):
        return FakeCursor(d for d in self.docs if self._matches(d, query or {}))

    async def delete_one(self, query):
        for i, doc in enumerate(self.docs):
            if self._matches(doc, query):
                del self.docs[i]
                return SimpleNamespace(deleted_count=1)
        return SimpleNamespace(deleted_count=0)

    async def count_documents(self, query):
        return sum(1 for d in self.docs if self._matches(d, query))

    async def index_information(self):
        if self.interleave:
            await asyncio.sleep(0)
        return {name: dict(info) for name, info in self.indexes.items()}

    async def create_index(self, keys, unique=False, name=None):
        if isinstance(keys, str):
            keys = [(keys, 1)]
        keys = list(keys)
        name = name or "_".join(f"{f}_{d}" for f, d in keys)
        if name in self.indexes:
            return name
        info = {"key": keys, "v": 2}
        if unique:
            info["unique"] = True
        self.indexes[name] = info
        return name

    async def drop_index(self, name):
        if self.interleave:
            await asyncio.sleep(0)
        if name not in self.indexes:
            raise OperationFailure(f"index not found with name [{name}]", code=27)
        del self.indexes[name]

    def change_indexes(self):
        return [
            info for info in self.indexes.values()
            if [f for f, _ in info["key"]] == ["changeId", "author"]
        ]


class FakeDatabase:
    def __init__(self, name="test_db"):
        self.name = name
        self.collections = {}

    def __getitem__(self, name):
        if name not in self.collections:
            self.collections[name] = FakeCollection(name)
        return self.collections[name]

    get_collection = __getitem__


class FakeClient:
    def __init__(self, db=None):
        self.db = db or FakeDatabase()
        self.closed = False

    def __getitem__(self, name):
        return self.db

    def get_default_database(self):
        return self.db

    def close(self):
        self.closed = True


@pytest.fixture
def fake_db():
    return FakeDatabase()


@pytest.fixture
def fake_client(fake_db):
    return FakeClient(fake_db)


@pytest.fixture
def settings():
    return MigrationSettings(
        database_name="test_db",
        lock_wait_timeout=0.2,
        lock_poll_interval=0.01,
        _env_file=None,
    )


@pytest.fixture
def ledger_collection(fake_db, settings):
    return fake_db[settings.changelog_collection]


@pytest.fixture
def lock_collection(fake_db, settings):
    return fake_db[settings.lock_collection]
