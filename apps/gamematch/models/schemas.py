"""
Pydantic models for the game-matching engine.

Domain records (players, teams, courts, session), the state container the
engine operations transform, the remote effects they emit, and the request /
response bodies of the HTTP surface.
"""

import enum
from datetime import datetime
from typing import Any, Dict, List, Literal, NamedTuple, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator
from pydantic.alias_generators import to_camel

from gamematch.utils.constants import (
    DEFAULT_COURTS_COUNT,
    DEFAULT_GAME_DURATION_MIN,
    DEFAULT_SESSION_NAME,
    DEFAULT_TEAM_SIZE,
    MAX_COURTS,
    MIN_COURTS,
    MIN_TEAM_SIZE,
)
from gamematch.utils.datetime_utils import parse_timestamp, utcnow


class PlayerState(str, enum.Enum):
    """Participant lifecycle state."""

    WAITING = "waiting"
    PRIORITY = "priority"
    RESTING = "resting"
    QUEUED = "queued"
    PLAYING = "playing"


class TeamState(str, enum.Enum):
    """Team lifecycle state."""

    QUEUED = "queued"
    PLAYING = "playing"
    FINISHED = "finished"


class CourtStatus(str, enum.Enum):
    """Court occupancy."""

    AVAILABLE = "available"
    OCCUPIED = "occupied"


class Rank(str, enum.Enum):
    """Skill rank, S highest."""

    S = "S"
    A = "A"
    B = "B"
    C = "C"
    D = "D"
    E = "E"
    F = "F"


class Gender(str, enum.Enum):
    MALE = "male"
    FEMALE = "female"


class Role(str, enum.Enum):
    ADMIN = "admin"
    VIEWER = "viewer"


ACTIVE_TEAM_STATES = (TeamState.QUEUED, TeamState.PLAYING)
ELIGIBLE_STATES = (PlayerState.WAITING, PlayerState.PRIORITY)

# Labels found in older records
_LEGACY_GENDERS = {"남": "male", "녀": "female", "여": "female", "m": "male", "f": "female"}


def _normalize_gender(value):
    if not value:
        return None
    if isinstance(value, str):
        return _LEGACY_GENDERS.get(value.strip().lower(), value.strip().lower())
    return value


class RecordModel(BaseModel):
    """Base for persisted records: snake_case fields, camelCase accepted on input."""

    model_config = ConfigDict(populate_by_name=True, alias_generator=to_camel)

    def to_record(self, include: Optional[set] = None) -> Dict[str, Any]:
        """JSON-ready dict in the persisted (snake_case) shape."""
        return self.model_dump(mode="json", include=include)


# ---------------------------------------------------------------------------
# Domain records
# ---------------------------------------------------------------------------


class Player(RecordModel):
    """A session participant."""

    id: str
    name: str
    state: PlayerState = PlayerState.WAITING
    rank: Optional[Rank] = None
    gender: Optional[Gender] = None
    game_count: int = Field(default=0, ge=0)
    last_game_end_at: Optional[datetime] = None
    teammate_history: Dict[str, int] = Field(default_factory=dict)
    recent_teammates: List[str] = Field(default_factory=list)
    created_at: datetime = Field(default_factory=utcnow)

    @field_validator("rank", mode="before")
    @classmethod
    def _blank_rank(cls, value):
        return value or None

    @field_validator("gender", mode="before")
    @classmethod
    def _gender(cls, value):
        return _normalize_gender(value)

    @field_validator("teammate_history", mode="before")
    @classmethod
    def _history_default(cls, value):
        return value or {}

    @field_validator("teammate_history")
    @classmethod
    def _history_non_negative(cls, value: Dict[str, int]) -> Dict[str, int]:
        for other_id, count in value.items():
            if count < 0:
                raise ValueError(f"teammate_history[{other_id}] must be non-negative")
        return value

    @field_validator("recent_teammates", mode="before")
    @classmethod
    def _recent_default(cls, value):
        return value or []

    @field_validator("last_game_end_at", "created_at", mode="before")
    @classmethod
    def _parse_times(cls, value):
        return parse_timestamp(value) if value is not None else value


class Member(RecordModel):
    """A club roster entry; persists across sessions."""

    id: str
    name: str
    rank: Optional[Rank] = None
    gender: Optional[Gender] = None
    created_at: datetime = Field(default_factory=utcnow)

    @field_validator("rank", mode="before")
    @classmethod
    def _blank_rank(cls, value):
        return value or None

    @field_validator("gender", mode="before")
    @classmethod
    def _gender(cls, value):
        return _normalize_gender(value)

    @field_validator("created_at", mode="before")
    @classmethod
    def _parse_created(cls, value):
        return parse_timestamp(value) if value is not None else value


class Team(RecordModel):
    """A team of participants waiting for or playing on a court."""

    id: str
    name: str = ""
    player_ids: List[str] = Field(default_factory=list)
    state: TeamState = TeamState.QUEUED
    assigned_court_id: Optional[str] = None
    started_at: Optional[datetime] = None
    ended_at: Optional[datetime] = None
    created_at: datetime = Field(default_factory=utcnow)

    @field_validator("player_ids", mode="before")
    @classmethod
    def _ids_default(cls, value):
        return value or []

    @field_validator("player_ids")
    @classmethod
    def _unique_members(cls, value: List[str]) -> List[str]:
        if len(set(value)) != len(value):
            raise ValueError("Team members must be unique")
        return value

    @field_validator("started_at", "ended_at", "created_at", mode="before")
    @classmethod
    def _parse_times(cls, value):
        return parse_timestamp(value) if value is not None else value

    @property
    def is_active(self) -> bool:
        return self.state in ACTIVE_TEAM_STATES


class Court(RecordModel):
    """A physical court."""

    id: str
    index: int
    name: str
    status: CourtStatus = CourtStatus.AVAILABLE
    current_team_id: Optional[str] = None
    is_paused: bool = False
    timer_ms: int = 0

    @model_validator(mode="after")
    def _occupied_iff_team(self):
        if (self.status == CourtStatus.OCCUPIED) != (self.current_team_id is not None):
            raise ValueError("current_team_id must be set exactly when the court is occupied")
        return self


class SessionConfig(RecordModel):
    """Singleton session configuration."""

    id: str
    name: str = DEFAULT_SESSION_NAME
    date: str = ""
    courts_count: int = Field(default=DEFAULT_COURTS_COUNT, ge=MIN_COURTS, le=MAX_COURTS)
    team_size: int = Field(default=DEFAULT_TEAM_SIZE, ge=MIN_TEAM_SIZE)
    game_duration_min: int = Field(default=DEFAULT_GAME_DURATION_MIN, ge=1)
    auto_seat_next: bool = True
    created_at: datetime = Field(default_factory=utcnow)

    @field_validator("created_at", mode="before")
    @classmethod
    def _parse_times(cls, value):
        return parse_timestamp(value) if value is not None else value


class AuditLogEntry(RecordModel):
    """Immutable record of one mutating engine call."""

    model_config = ConfigDict(frozen=True, populate_by_name=True, alias_generator=to_camel)

    id: str
    type: str
    payload: Dict[str, Any] = Field(default_factory=dict)
    timestamp: datetime


# ---------------------------------------------------------------------------
# Engine state and effects
# ---------------------------------------------------------------------------


class GameState(BaseModel):
    """Explicit container for the evolving session snapshot."""

    session: SessionConfig
    players: List[Player] = Field(default_factory=list)
    teams: List[Team] = Field(default_factory=list)
    courts: List[Court] = Field(default_factory=list)
    members: List[Member] = Field(default_factory=list)

    def get_player(self, player_id: str) -> Optional[Player]:
        return next((p for p in self.players if p.id == player_id), None)

    def get_team(self, team_id: str) -> Optional[Team]:
        return next((t for t in self.teams if t.id == team_id), None)

    def get_court(self, court_id: str) -> Optional[Court]:
        return next((c for c in self.courts if c.id == court_id), None)

    def get_member(self, member_id: str) -> Optional[Member]:
        return next((m for m in self.members if m.id == member_id), None)

    def active_teams(self) -> List[Team]:
        return [t for t in self.teams if t.is_active]

    def queued_teams(self) -> List[Team]:
        return [t for t in self.teams if t.state == TeamState.QUEUED]


class RemoteSnapshot(BaseModel):
    """Full re-read of the remote collections."""

    players: List[Player] = Field(default_factory=list)
    teams: List[Team] = Field(default_factory=list)
    settings: Dict[str, str] = Field(default_factory=dict)
    members: List[Member] = Field(default_factory=list)


Resource = Literal["players", "teams", "settings", "members"]
Operation = Literal["add", "update", "delete", "add_batch", "update_batch", "delete_batch"]


class RemoteEffect(BaseModel):
    """One idempotent remote call an operation asks the engine to issue."""

    model_config = ConfigDict(frozen=True)

    resource: Resource
    op: Operation
    record_id: Optional[str] = None
    payload: Any = None


class Transition(NamedTuple):
    """Result of a pure engine operation."""

    state: GameState
    effects: List[RemoteEffect]


# ---------------------------------------------------------------------------
# HTTP request / response bodies
# ---------------------------------------------------------------------------


class CreateSessionRequest(BaseModel):
    """Request to start a fresh session."""

    name: str = DEFAULT_SESSION_NAME
    courts_count: int = DEFAULT_COURTS_COUNT
    team_size: int = DEFAULT_TEAM_SIZE
    game_duration_min: int = DEFAULT_GAME_DURATION_MIN


class UpdateSessionRequest(BaseModel):
    """Partial session update."""

    name: Optional[str] = None
    courts_count: Optional[int] = None
    team_size: Optional[int] = None
    game_duration_min: Optional[int] = None


class AddPlayerRequest(BaseModel):
    name: str = Field(min_length=1)
    rank: Optional[Rank] = None
    gender: Optional[Gender] = None


class AddPlayersRequest(BaseModel):
    players: List[AddPlayerRequest]


class UpdatePlayerRequest(BaseModel):
    name: Optional[str] = None
    rank: Optional[Rank] = None
    gender: Optional[Gender] = None


class DeletePlayersRequest(BaseModel):
    player_ids: List[str]


class AddMemberRequest(BaseModel):
    name: str = Field(min_length=1)
    rank: Optional[Rank] = None
    gender: Optional[Gender] = None


class AddMembersRequest(BaseModel):
    """Bulk add, or the new roster for a reset."""

    members: List[AddMemberRequest]


class UpdateMemberRequest(BaseModel):
    name: Optional[str] = None
    rank: Optional[Rank] = None
    gender: Optional[Gender] = None


class MembersToPlayersRequest(BaseModel):
    member_ids: List[str] = Field(min_length=1)


class SetPlayerStateRequest(BaseModel):
    player_ids: List[str]
    state: PlayerState


class AdjustGameCountRequest(BaseModel):
    delta: int


class ManualTeamRequest(BaseModel):
    player_ids: List[str]


class StartGameRequest(BaseModel):
    court_id: Optional[str] = None


class SwapWithWaitingRequest(BaseModel):
    queued_player_id: str
    waiting_player_id: str


class SwapBetweenTeamsRequest(BaseModel):
    source_team_id: str
    source_player_id: str
    target_team_id: str
    target_player_id: str


class ReturnToWaitingRequest(BaseModel):
    player_id: str


class RoleCheckRequest(BaseModel):
    password: str


class RoleCheckResponse(BaseModel):
    role: Role


class ElapsedResponse(BaseModel):
    court_id: str
    elapsed_ms: int
