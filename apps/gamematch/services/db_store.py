"""
SQLAlchemy implementation of the remote store.

Each collection maps onto one table. Records travel as JSON-ready dicts keyed
by ``id``; timestamp columns are parsed on the way in and written back out as
ISO strings.
"""

import logging
from typing import Any, Dict, List, Optional, Sequence

import bcrypt
from sqlalchemy import DateTime, delete, select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from gamematch.database.models import MemberRecord, PlayerRecord, RoleCredential, SettingRecord, TeamRecord
from gamematch.models.schemas import Role
from gamematch.services.remote_store import CollectionStore, RemoteStore, RoleStore
from gamematch.utils.datetime_utils import format_timestamp, parse_timestamp

logger = logging.getLogger(__name__)


class SqlCollectionStore(CollectionStore):
    """One table exposed as a collection of ``{"id": ..., ...}`` records."""

    def __init__(
        self,
        model,
        session_factory: async_sessionmaker,
        key_column: str = "id",
        read_only_columns: Sequence[str] = ("updated_at",),
    ):
        self.model = model
        self._session_factory = session_factory
        self._key_column = key_column
        columns = model.__table__.columns
        self._columns = {c.key for c in columns if c.key not in read_only_columns}
        self._datetime_columns = {c.key for c in columns if isinstance(c.type, DateTime)}

    @property
    def _key(self):
        return getattr(self.model, self._key_column)

    def _to_record(self, row) -> Dict[str, Any]:
        record = {}
        for name in self._columns:
            value = getattr(row, name)
            if name in self._datetime_columns:
                value = format_timestamp(value)
            record["id" if name == self._key_column else name] = value
        return record

    def _to_columns(self, fields: Dict[str, Any]) -> Dict[str, Any]:
        values = {}
        for name, value in fields.items():
            column = self._key_column if name == "id" else name
            if column not in self._columns:
                logger.debug(f"Ignoring unknown {self.model.__tablename__} field {name}")
                continue
            if column in self._datetime_columns:
                value = parse_timestamp(value)
            values[column] = value
        return values

    async def get_all(self) -> List[Dict[str, Any]]:
        async with self._session_factory() as session:
            result = await session.execute(select(self.model))
            return [self._to_record(row) for row in result.scalars().all()]

    async def _merge(self, session: AsyncSession, record: Dict[str, Any]) -> None:
        values = self._to_columns(record)
        if values.get(self._key_column) is None:
            raise ValueError(f"{self.model.__tablename__} record is missing an id")
        if "created_at" in values and values["created_at"] is None:
            # Server default fills it in
            del values["created_at"]
        await session.merge(self.model(**values))

    async def add(self, record: Dict[str, Any]) -> None:
        async with self._session_factory() as session:
            await self._merge(session, record)
            await session.commit()

    async def add_batch(self, records: Sequence[Dict[str, Any]]) -> int:
        async with self._session_factory() as session:
            for record in records:
                await self._merge(session, record)
            await session.commit()
        return len(records)

    async def _apply_update(self, session: AsyncSession, record_id: str, fields: Dict[str, Any]) -> bool:
        row = await session.get(self.model, record_id)
        if row is None:
            logger.debug(f"{self.model.__tablename__} {record_id} not found; skipping update")
            return False
        for name, value in self._to_columns(fields).items():
            if name != self._key_column:
                setattr(row, name, value)
        return True

    async def update(self, record_id: str, fields: Dict[str, Any]) -> bool:
        async with self._session_factory() as session:
            found = await self._apply_update(session, record_id, fields)
            await session.commit()
            return found

    async def update_batch(self, updates: Sequence[Dict[str, Any]]) -> int:
        count = 0
        async with self._session_factory() as session:
            for item in updates:
                if await self._apply_update(session, item["id"], item["updates"]):
                    count += 1
            await session.commit()
        return count

    async def delete(self, record_id: str) -> bool:
        return await self.delete_batch([record_id]) > 0

    async def delete_batch(self, record_ids: Sequence[str]) -> int:
        if not record_ids:
            return 0
        async with self._session_factory() as session:
            result = await session.execute(delete(self.model).where(self._key.in_(list(record_ids))))
            await session.commit()
            return result.rowcount or 0


class SqlRoleStore(RoleStore):
    """Admin role gated by a bcrypt hash in ``role_credentials``."""

    def __init__(self, session_factory: async_sessionmaker, role: Role = Role.ADMIN):
        self._session_factory = session_factory
        self.role = role

    async def _get_hash(self, session: AsyncSession) -> Optional[str]:
        result = await session.execute(
            select(RoleCredential).where(RoleCredential.role == self.role.value)
        )
        credential = result.scalar_one_or_none()
        return credential.password_hash if credential else None

    async def verify(self, password: str) -> bool:
        if not password:
            return False
        async with self._session_factory() as session:
            password_hash = await self._get_hash(session)
        if password_hash is None:
            logger.warning(f"No {self.role.value} password configured; denying role check")
            return False
        return bcrypt.checkpw(password.encode(), password_hash.encode())

    async def set_password(self, password: str) -> None:
        """Store (or replace) the role's password hash."""
        if not password:
            raise ValueError("Password is required")
        password_hash = bcrypt.hashpw(password.encode(), bcrypt.gensalt()).decode()
        async with self._session_factory() as session:
            await session.merge(RoleCredential(role=self.role.value, password_hash=password_hash))
            await session.commit()
        logger.info(f"Updated {self.role.value} password")

    async def ensure_password(self, password: Optional[str]) -> bool:
        """
        Seed the password if none is stored yet.

        Returns:
            True if a password was written
        """
        if not password:
            return False
        async with self._session_factory() as session:
            if await self._get_hash(session) is not None:
                return False
        await self.set_password(password)
        return True


def create_database_store(session_factory: Optional[async_sessionmaker] = None) -> RemoteStore:
    """Build a RemoteStore backed by the configured database."""
    if session_factory is None:
        from gamematch.database.db import AsyncSessionLocal
        session_factory = AsyncSessionLocal
    return RemoteStore(
        players=SqlCollectionStore(PlayerRecord, session_factory),
        teams=SqlCollectionStore(TeamRecord, session_factory),
        settings=SqlCollectionStore(SettingRecord, session_factory, key_column="key"),
        roles=SqlRoleStore(session_factory),
        members=SqlCollectionStore(MemberRecord, session_factory),
    )
