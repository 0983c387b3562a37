"""
SQLAlchemy ORM models for the persisted game-matching records.
"""

from sqlalchemy import (
    Column,
    Integer,
    String,
    Text,
    DateTime,
    JSON,
    CheckConstraint,
    Index,
)
from sqlalchemy.sql import func
from gamematch.database.db import Base


class PlayerRecord(Base):
    """Session participant."""

    __tablename__ = "players"

    id = Column(String, primary_key=True)
    name = Column(String, nullable=False)
    state = Column(String(20), nullable=False, default="waiting")  # waiting/priority/resting/queued/playing
    rank = Column(String(1), nullable=True)  # S..F
    gender = Column(String(10), nullable=True)
    game_count = Column(Integer, nullable=False, default=0)
    last_game_end_at = Column(DateTime(timezone=True), nullable=True)
    teammate_history = Column(JSON, nullable=False, default=dict)  # {player_id: shared games}
    recent_teammates = Column(JSON, nullable=False, default=list)
    created_at = Column(DateTime(timezone=True), server_default=func.now())

    __table_args__ = (
        CheckConstraint("game_count >= 0", name="ck_players_game_count_non_negative"),
        Index("idx_players_state", "state"),
    )


class TeamRecord(Base):
    """Queued or playing team."""

    __tablename__ = "teams"

    id = Column(String, primary_key=True)
    name = Column(String, nullable=False, default="")
    player_ids = Column(JSON, nullable=False, default=list)
    state = Column(String(20), nullable=False, default="queued")  # queued/playing/finished
    assigned_court_id = Column(String, nullable=True)
    started_at = Column(DateTime(timezone=True), nullable=True)
    ended_at = Column(DateTime(timezone=True), nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())

    __table_args__ = (Index("idx_teams_state", "state"),)


class MemberRecord(Base):
    """Club roster entry; outlives sessions."""

    __tablename__ = "members"

    id = Column(String, primary_key=True)
    name = Column(String, nullable=False)
    rank = Column(String(1), nullable=True)
    gender = Column(String(10), nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())


class SettingRecord(Base):
    """Session and court configuration."""

    __tablename__ = "settings"

    key = Column(String, primary_key=True)
    value = Column(Text, nullable=False)
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())


class RoleCredential(Base):
    """Password hash gating a role."""

    __tablename__ = "role_credentials"

    role = Column(String(20), primary_key=True)
    password_hash = Column(Text, nullable=False)
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())
