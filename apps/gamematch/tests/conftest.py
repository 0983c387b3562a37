"""
Shared pytest configuration for game-matching tests.

Store-backed tests run against an in-memory SQLite database through
aiosqlite; engine and route tests use a dict-backed store whose reads and
writes can be made to fail.
"""

import os

# Disable rate limits before the routes package is imported
os.environ.setdefault("ENV", "test")

from datetime import datetime, timedelta
from typing import Any, Dict, List, Optional, Sequence

import pytest
import pytest_asyncio
import pytz
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from gamematch.database.db import Base
from gamematch.models.schemas import Player
from gamematch.services.remote_store import CollectionStore, RemoteStore, RoleStore

T0 = datetime(2026, 1, 21, 10, 0, 0, tzinfo=pytz.UTC)


class FakeClock:
    """Callable clock that only moves when told to."""

    def __init__(self, now: datetime = T0):
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> datetime:
        self.now = self.now + timedelta(**kwargs)
        return self.now


class MemoryCollectionStore(CollectionStore):
    """Dict-backed collection; set ``fail_reads`` / ``fail_writes`` to simulate an outage."""

    def __init__(self, records: Optional[Sequence[Dict[str, Any]]] = None):
        self.records: Dict[str, Dict[str, Any]] = {r["id"]: dict(r) for r in records or []}
        self.fail_reads = False
        self.fail_writes = False

    def _check_write(self):
        if self.fail_writes:
            raise ConnectionError("store unavailable")

    async def get_all(self) -> List[Dict[str, Any]]:
        if self.fail_reads:
            raise ConnectionError("store unavailable")
        return [dict(r) for r in self.records.values()]

    async def add(self, record: Dict[str, Any]) -> None:
        self._check_write()
        self.records[record["id"]] = dict(record)

    async def update(self, record_id: str, fields: Dict[str, Any]) -> bool:
        self._check_write()
        if record_id not in self.records:
            return False
        self.records[record_id].update(fields)
        return True

    async def delete(self, record_id: str) -> bool:
        self._check_write()
        return self.records.pop(record_id, None) is not None


class MemoryRoleStore(RoleStore):
    def __init__(self, password: str = "secret"):
        self.password = password

    async def verify(self, password: str) -> bool:
        return password == self.password


def make_memory_store(players=None, teams=None, settings=None, members=None, password: str = "secret") -> RemoteStore:
    return RemoteStore(
        players=MemoryCollectionStore(players),
        teams=MemoryCollectionStore(teams),
        settings=MemoryCollectionStore(
            [{"id": key, "value": value} for key, value in (settings or {}).items()]
        ),
        roles=MemoryRoleStore(password),
        members=MemoryCollectionStore(members),
    )


def set_store_failing(store: RemoteStore, reads: bool = True, writes: bool = True) -> None:
    for collection in (store.players, store.teams, store.settings, store.members):
        collection.fail_reads = reads
        collection.fail_writes = writes


def make_player(player_id: str, **fields) -> Player:
    fields.setdefault("name", player_id.upper())
    fields.setdefault("created_at", T0)
    return Player(id=player_id, **fields)


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def memory_store():
    return make_memory_store()


@pytest_asyncio.fixture
async def session_factory():
    """Session factory bound to a fresh in-memory database."""
    engine = create_async_engine("sqlite+aiosqlite:///:memory:", echo=False, poolclass=StaticPool)
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)

    await engine.dispose()
