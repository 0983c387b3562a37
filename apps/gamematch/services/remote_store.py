"""
Interface of the remote collection store the engine persists to.

Five resource families: players, teams, settings (courts and session
configuration), the club member roster and a password-gated role check. Every write is idempotent so
it is safe to repeat or to apply twice; consistency comes from the engine
re-reading whole collections, not from the store.
"""

import asyncio
import logging
from abc import ABC, abstractmethod
from typing import Any, Dict, List, Sequence

from gamematch.models.schemas import RemoteEffect, RemoteSnapshot

logger = logging.getLogger(__name__)


class StoreError(Exception):
    """A remote read or write failed."""


class CollectionStore(ABC):
    """One remote collection of records keyed by ``id``."""

    @abstractmethod
    async def get_all(self) -> List[Dict[str, Any]]:
        ...

    @abstractmethod
    async def add(self, record: Dict[str, Any]) -> None:
        """Insert or replace a record."""

    @abstractmethod
    async def update(self, record_id: str, fields: Dict[str, Any]) -> bool:
        """Merge ``fields`` into a record. Returns False if it does not exist."""

    @abstractmethod
    async def delete(self, record_id: str) -> bool:
        """Delete a record. Deleting a missing record is not an error."""

    async def add_batch(self, records: Sequence[Dict[str, Any]]) -> int:
        for record in records:
            await self.add(record)
        return len(records)

    async def update_batch(self, updates: Sequence[Dict[str, Any]]) -> int:
        """Apply ``[{"id": ..., "updates": {...}}, ...]``; returns how many matched."""
        count = 0
        for item in updates:
            if await self.update(item["id"], item["updates"]):
                count += 1
        return count

    async def delete_batch(self, record_ids: Sequence[str]) -> int:
        count = 0
        for record_id in record_ids:
            if await self.delete(record_id):
                count += 1
        return count


class RoleStore(ABC):
    """Password-gated role check."""

    @abstractmethod
    async def verify(self, password: str) -> bool:
        ...


class RemoteStore:
    """The resource families the engine consumes."""

    def __init__(
        self,
        players: CollectionStore,
        teams: CollectionStore,
        settings: CollectionStore,
        roles: RoleStore,
        members: CollectionStore,
    ):
        self.players = players
        self.teams = teams
        self.settings = settings
        self.roles = roles
        self.members = members

    def collection(self, resource: str) -> CollectionStore:
        if resource not in ("players", "teams", "settings", "members"):
            raise ValueError(f"Unknown resource: {resource}")
        return getattr(self, resource)

    async def fetch_snapshot(self) -> RemoteSnapshot:
        """Re-read every collection the engine derives state from."""
        try:
            players, teams, settings, members = await asyncio.gather(
                self.players.get_all(),
                self.teams.get_all(),
                self.settings.get_all(),
                self.members.get_all(),
            )
        except StoreError:
            raise
        except Exception as e:
            raise StoreError(f"Failed to fetch snapshot: {e}") from e
        return RemoteSnapshot(
            players=players,
            teams=teams,
            settings={s["id"]: s["value"] for s in settings if s.get("value") is not None},
            members=members,
        )

    async def dispatch(self, effect: RemoteEffect) -> Any:
        """Issue one effect against its collection."""
        store = self.collection(effect.resource)
        try:
            if effect.op == "add":
                return await store.add(effect.payload)
            if effect.op == "update":
                return await store.update(effect.record_id, effect.payload)
            if effect.op == "delete":
                return await store.delete(effect.record_id)
            if effect.op == "add_batch":
                return await store.add_batch(effect.payload)
            if effect.op == "update_batch":
                return await store.update_batch(effect.payload)
            if effect.op == "delete_batch":
                return await store.delete_batch(effect.payload)
        except StoreError:
            raise
        except Exception as e:
            raise StoreError(f"{effect.resource}.{effect.op} failed: {e}") from e
        raise ValueError(f"Unknown operation: {effect.op}")
