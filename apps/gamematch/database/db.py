"""
Async SQLAlchemy engine and session factory for the game-matching store.

Set DATABASE_URL to any async URL (``sqlite+aiosqlite:///./gamematch.db``
works for a single machine); otherwise a Postgres URL is assembled from the
POSTGRES_* variables.
"""

import os
from typing import Optional

from dotenv import load_dotenv
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.orm import DeclarativeBase

load_dotenv()


def _postgres_url() -> str:
    user = os.getenv("POSTGRES_USER", "gamematch")
    password = os.getenv("POSTGRES_PASSWORD", "gamematch")
    host = os.getenv("POSTGRES_HOST", "localhost")
    port = os.getenv("POSTGRES_PORT", "5432")
    name = os.getenv("POSTGRES_DB", "gamematch")
    return f"postgresql+asyncpg://{user}:{password}@{host}:{port}/{name}"


DATABASE_URL = os.getenv("DATABASE_URL") or _postgres_url()


def _engine_options(url: str) -> dict:
    options = {
        "echo": os.getenv("SQL_ECHO", "false").lower() == "true",
        "pool_pre_ping": True,
    }
    # SQLite uses a single-connection pool
    if not url.startswith("sqlite"):
        options.update(
            pool_size=int(os.getenv("DB_POOL_SIZE", "5")),
            max_overflow=int(os.getenv("DB_MAX_OVERFLOW", "10")),
        )
    return options


engine: AsyncEngine = create_async_engine(DATABASE_URL, **_engine_options(DATABASE_URL))

AsyncSessionLocal = async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)


class Base(DeclarativeBase):
    """Declarative base for the persisted records."""


# Registers the tables on Base.metadata; must follow the Base definition
from gamematch.database import models  # noqa: F401, E402


async def init_database(bind: Optional[AsyncEngine] = None) -> None:
    """Create any missing tables."""
    async with (bind or engine).begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
