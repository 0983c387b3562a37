"""
Session and court management as pure state transitions.

Every operation takes the current GameState and returns a Transition: the
new state plus the remote effects needed to persist it. Nothing here talks
to the store or reads the clock; validation errors are raised before any
state is built, so a rejected call leaves the caller's state untouched.
"""

import logging
import uuid
from datetime import datetime
from typing import Any, Callable, Dict, Iterable, List, Optional, Sequence, Set

from gamematch.models.schemas import (
    Court,
    CourtStatus,
    GameState,
    Member,
    Player,
    PlayerState,
    RemoteEffect,
    SessionConfig,
    Team,
    TeamState,
    Transition,
)
from gamematch.services import lifecycle_service, team_balancer
from gamematch.services.errors import (
    CourtIdleError,
    DuplicateAssignmentError,
    GameMatchError,
    InsufficientPlayersError,
    InvalidCourtsCountError,
    InvalidTeamError,
    NoAvailableCourtError,
    NoCapacityError,
    NotFoundError,
)
from gamematch.utils.constants import (
    DEFAULT_COURTS_COUNT,
    DEFAULT_GAME_DURATION_MIN,
    DEFAULT_SESSION_NAME,
    DEFAULT_TEAM_SIZE,
    MAX_COURTS,
    MAX_SWAP_PASSES,
    MIN_COURTS,
    MIN_TEAM_SIZE,
    SETTING_COURTS_COUNT,
    SETTING_GAME_DURATION,
    SETTING_SESSION_NAME,
    SETTING_TEAM_SIZE,
)
from gamematch.utils.datetime_utils import elapsed_ms as _elapsed_between

logger = logging.getLogger(__name__)

IdFactory = Callable[[], str]

GAME_RESULT_FIELDS = {"state", "game_count", "last_game_end_at", "teammate_history", "recent_teammates"}
EDITABLE_PLAYER_FIELDS = {"name", "rank", "gender"}
EDITABLE_MEMBER_FIELDS = {"name", "rank", "gender"}


def _new_id(prefix: str) -> str:
    return f"{prefix}-{uuid.uuid4().hex}"


# ---------------------------------------------------------------------------
# Effect helpers
# ---------------------------------------------------------------------------


def _player_update_effects(players: Sequence[Player], fields: set) -> List[RemoteEffect]:
    """One update for a single player, a batch for several."""
    if not players:
        return []
    if len(players) == 1:
        player = players[0]
        return [
            RemoteEffect(
                resource="players",
                op="update",
                record_id=player.id,
                payload=player.to_record(include=fields),
            )
        ]
    return [
        RemoteEffect(
            resource="players",
            op="update_batch",
            payload=[{"id": p.id, "updates": p.to_record(include=fields)} for p in players],
        )
    ]


def _team_update_effect(team: Team, fields: set) -> RemoteEffect:
    return RemoteEffect(
        resource="teams", op="update", record_id=team.id, payload=team.to_record(include=fields)
    )


def _team_delete_effect(team_id: str) -> RemoteEffect:
    return RemoteEffect(resource="teams", op="delete", record_id=team_id)


def _settings_effect(session: SessionConfig) -> RemoteEffect:
    values = {
        SETTING_SESSION_NAME: session.name,
        SETTING_COURTS_COUNT: str(session.courts_count),
        SETTING_TEAM_SIZE: str(session.team_size),
        SETTING_GAME_DURATION: str(session.game_duration_min),
    }
    return RemoteEffect(
        resource="settings",
        op="add_batch",
        payload=[{"id": key, "value": value} for key, value in values.items()],
    )


def _with_players(state: GameState, changed: Iterable[Player]) -> List[Player]:
    by_id = {p.id: p for p in changed}
    return [by_id.get(p.id, p) for p in state.players]


def _require_player(state: GameState, player_id: str) -> Player:
    player = state.get_player(player_id)
    if player is None:
        raise NotFoundError(f"Player {player_id} not found")
    return player


def _require_team(state: GameState, team_id: str) -> Team:
    team = state.get_team(team_id)
    if team is None:
        raise NotFoundError(f"Team {team_id} not found")
    return team


def _require_court(state: GameState, court_id: str) -> Court:
    court = state.get_court(court_id)
    if court is None:
        raise NotFoundError(f"Court {court_id} not found")
    return court


def _free_court(court: Court) -> Court:
    return court.model_copy(
        update={
            "status": CourtStatus.AVAILABLE,
            "current_team_id": None,
            "timer_ms": 0,
            "is_paused": False,
        }
    )


# ---------------------------------------------------------------------------
# Session and courts
# ---------------------------------------------------------------------------


def validate_courts_count(courts_count: int) -> None:
    if not MIN_COURTS <= courts_count <= MAX_COURTS:
        raise InvalidCourtsCountError(
            f"Courts count must be between {MIN_COURTS} and {MAX_COURTS}, got {courts_count}"
        )


def validate_team_size(team_size: int) -> None:
    if team_size < MIN_TEAM_SIZE:
        raise InvalidTeamError(f"Team size must be at least {MIN_TEAM_SIZE}, got {team_size}")


def _court_name(index: int) -> str:
    return f"Court {index}"


def _next_court_id(used: set) -> str:
    n = 1
    while f"court-{n}" in used:
        n += 1
    return f"court-{n}"


def _court_sort_key(court: Court):
    prefix, _, number = court.id.rpartition("-")
    return (0, int(number)) if prefix == "court" and number.isdigit() else (1, court.index)


def ensure_courts(courts: Sequence[Court], court_ids: Iterable[str]) -> List[Court]:
    """
    Add an available court for every id in ``court_ids`` not already present.

    When anything is added the list is put back into court-number order.
    """
    current = list(courts)
    known = {c.id for c in current}
    missing = [court_id for court_id in court_ids if court_id not in known]
    if not missing:
        return current
    for court_id in dict.fromkeys(missing):
        index = len(current) + 1
        current.append(Court(id=court_id, index=index, name=_court_name(index)))
    return sorted(current, key=_court_sort_key)


def provision_courts(
    courts: Sequence[Court], count: int, occupied_ids: Optional[Set[str]] = None
) -> List[Court]:
    """
    Grow or shrink the court list to ``count``.

    Growing appends fresh available courts. Shrinking keeps every occupied
    court (even if that leaves more than ``count``) and fills the remaining
    slots with available courts in their current order. Courts are then
    re-indexed and renamed.

    ``occupied_ids`` overrides the local court status when deciding which
    courts are in use.
    """
    current = list(courts)
    if occupied_ids is None:
        occupied_ids = {c.id for c in current if c.status == CourtStatus.OCCUPIED}
    if count > len(current):
        used = {c.id for c in current}
        for _ in range(count - len(current)):
            court_id = _next_court_id(used)
            used.add(court_id)
            index = len(current) + 1
            current.append(Court(id=court_id, index=index, name=_court_name(index)))
    elif count < len(current):
        occupied = sum(1 for c in current if c.id in occupied_ids)
        free_slots = max(0, count - occupied)
        kept = []
        for court in current:
            if court.id in occupied_ids:
                kept.append(court)
            elif free_slots > 0:
                kept.append(court)
                free_slots -= 1
        if occupied > count:
            logger.warning(f"{occupied} courts are occupied; keeping all of them despite count {count}")
        current = kept

    return [
        c.model_copy(update={"index": i, "name": _court_name(i)}) for i, c in enumerate(current, start=1)
    ]


def initial_state(
    now: datetime,
    name: str = DEFAULT_SESSION_NAME,
    courts_count: int = DEFAULT_COURTS_COUNT,
    team_size: int = DEFAULT_TEAM_SIZE,
    game_duration_min: int = DEFAULT_GAME_DURATION_MIN,
    session_id: Optional[str] = None,
    auto_seat_next: bool = True,
) -> GameState:
    """Empty state with a default session and freshly provisioned courts."""
    validate_courts_count(courts_count)
    validate_team_size(team_size)
    session = SessionConfig(
        id=session_id or _new_id("session"),
        name=name,
        date=now.date().isoformat(),
        courts_count=courts_count,
        team_size=team_size,
        game_duration_min=game_duration_min,
        auto_seat_next=auto_seat_next,
        created_at=now,
    )
    return GameState(session=session, courts=provision_courts([], courts_count))


def create_session(
    state: GameState,
    now: datetime,
    name: str = DEFAULT_SESSION_NAME,
    courts_count: int = DEFAULT_COURTS_COUNT,
    team_size: int = DEFAULT_TEAM_SIZE,
    game_duration_min: int = DEFAULT_GAME_DURATION_MIN,
) -> Transition:
    """Start a brand-new session: participants and teams are dropped, the roster stays."""
    new_state = initial_state(now, name, courts_count, team_size, game_duration_min)
    new_state = new_state.model_copy(update={"members": state.members})
    effects = [_settings_effect(new_state.session)]
    if state.players:
        effects.append(
            RemoteEffect(resource="players", op="delete_batch", payload=[p.id for p in state.players])
        )
    if state.teams:
        effects.append(
            RemoteEffect(resource="teams", op="delete_batch", payload=[t.id for t in state.teams])
        )
    return Transition(new_state, effects)


def update_session(
    state: GameState,
    name: Optional[str] = None,
    courts_count: Optional[int] = None,
    team_size: Optional[int] = None,
    game_duration_min: Optional[int] = None,
) -> Transition:
    """Change session settings; courts are re-provisioned when the count changes."""
    updates: Dict[str, Any] = {}
    if courts_count is not None:
        validate_courts_count(courts_count)
        updates["courts_count"] = courts_count
    if team_size is not None:
        validate_team_size(team_size)
        updates["team_size"] = team_size
    if game_duration_min is not None:
        if game_duration_min < 1:
            raise GameMatchError("Game duration must be at least one minute")
        updates["game_duration_min"] = game_duration_min
    if name is not None:
        updates["name"] = name

    session = state.session.model_copy(update=updates)
    courts = state.courts
    if courts_count is not None and courts_count != state.session.courts_count:
        courts = provision_courts(state.courts, courts_count)

    new_state = state.model_copy(update={"session": session, "courts": courts})
    return Transition(new_state, [_settings_effect(session)])


def toggle_court_pause(state: GameState, court_id: str) -> Transition:
    """Flip a court's pause flag. Local only."""
    court = _require_court(state, court_id)
    courts = [
        c.model_copy(update={"is_paused": not c.is_paused}) if c.id == court.id else c
        for c in state.courts
    ]
    return Transition(state.model_copy(update={"courts": courts}), [])


def elapsed_ms(state: GameState, court_id: str, now: datetime) -> int:
    """
    Time on court for the current game.

    Derived from the team's start time so it survives reloads; the court's
    stored accumulator is only used when no start time is known.
    """
    court = _require_court(state, court_id)
    if court.current_team_id is None:
        return 0
    team = state.get_team(court.current_team_id)
    if team is not None and team.started_at is not None:
        return _elapsed_between(team.started_at, now)
    return court.timer_ms


# ---------------------------------------------------------------------------
# Participants
# ---------------------------------------------------------------------------


def dedupe_name(name: str, existing: Sequence[Player]) -> str:
    """Suffix ``(N)`` when other participants' names already start with ``name``."""
    clashes = sum(1 for p in existing if p.name.startswith(name))
    return f"{name}({clashes + 1})" if clashes else name


def _build_player(
    name: str,
    existing: Sequence[Player],
    now: datetime,
    id_factory: IdFactory,
    rank=None,
    gender=None,
) -> Player:
    clean = (name or "").strip()
    if not clean:
        raise GameMatchError("Player name is required")
    return Player(
        id=id_factory(),
        name=dedupe_name(clean, existing),
        rank=rank,
        gender=gender,
        created_at=now,
    )


def add_player(
    state: GameState,
    name: str,
    now: datetime,
    rank=None,
    gender=None,
    id_factory: IdFactory = lambda: _new_id("player"),
) -> Transition:
    player = _build_player(name, state.players, now, id_factory, rank, gender)
    new_state = state.model_copy(update={"players": state.players + [player]})
    return Transition(
        new_state, [RemoteEffect(resource="players", op="add", record_id=player.id, payload=player.to_record())]
    )


def add_players(
    state: GameState,
    entries: Sequence[Dict[str, Any]],
    now: datetime,
    id_factory: IdFactory = lambda: _new_id("player"),
) -> Transition:
    """Bulk add. Each entry holds ``name`` and optionally ``rank`` / ``gender``."""
    players = list(state.players)
    added = []
    for entry in entries:
        player = _build_player(
            entry.get("name", ""), players, now, id_factory, entry.get("rank"), entry.get("gender")
        )
        players.append(player)
        added.append(player)
    if not added:
        return Transition(state, [])
    effect = RemoteEffect(resource="players", op="add_batch", payload=[p.to_record() for p in added])
    return Transition(state.model_copy(update={"players": players}), [effect])


def update_player(state: GameState, player_id: str, updates: Dict[str, Any]) -> Transition:
    """Edit a participant's name, rank or gender."""
    unknown = set(updates) - EDITABLE_PLAYER_FIELDS
    if unknown:
        raise GameMatchError(f"Cannot edit player fields: {', '.join(sorted(unknown))}")
    player = _require_player(state, player_id)
    if "name" in updates and not (updates["name"] or "").strip():
        raise GameMatchError("Player name is required")
    updated = Player.model_validate({**player.to_record(), **updates})
    new_state = state.model_copy(update={"players": _with_players(state, [updated])})
    return Transition(new_state, _player_update_effects([updated], set(updates)))


def set_player_state(state: GameState, player_ids: Sequence[str], target: PlayerState) -> Transition:
    """Admin cycle between waiting, priority and resting."""
    changed = []
    for player_id in player_ids:
        player = _require_player(state, player_id)
        team = lifecycle_service.active_team_for(state.teams, player_id)
        if team is not None:
            raise InvalidTeamError(f"Player {player.name} is in active team {team.name}")
        lifecycle_service.validate_transition(player.state, target, lifecycle_service.ADMIN)
        if player.state != target:
            changed.append(player.model_copy(update={"state": PlayerState(target)}))
    new_state = state.model_copy(update={"players": _with_players(state, changed)})
    return Transition(new_state, _player_update_effects(changed, {"state"}))


def adjust_game_count(state: GameState, player_id: str, delta: int) -> Transition:
    player = _require_player(state, player_id)
    updated = player.model_copy(update={"game_count": max(0, player.game_count + delta)})
    new_state = state.model_copy(update={"players": _with_players(state, [updated])})
    return Transition(new_state, _player_update_effects([updated], {"game_count"}))


def delete_players(state: GameState, player_ids: Sequence[str]) -> Transition:
    """
    Remove participants and pull them out of their teams.

    A team left without members is deleted, freeing its court if it was
    playing.
    """
    doomed = set(player_ids)
    for player_id in doomed:
        _require_player(state, player_id)

    effects: List[RemoteEffect] = []
    teams: List[Team] = []
    freed_courts = set()
    for team in state.teams:
        if not doomed.intersection(team.player_ids):
            teams.append(team)
            continue
        remaining = [pid for pid in team.player_ids if pid not in doomed]
        if remaining:
            shrunk = team.model_copy(update={"player_ids": remaining})
            teams.append(shrunk)
            effects.append(_team_update_effect(shrunk, {"player_ids"}))
        else:
            effects.append(_team_delete_effect(team.id))
            if team.assigned_court_id and team.state == TeamState.PLAYING:
                freed_courts.add(team.assigned_court_id)

    courts = [_free_court(c) if c.id in freed_courts else c for c in state.courts]
    players = [p for p in state.players if p.id not in doomed]

    if len(doomed) == 1:
        effects.insert(0, RemoteEffect(resource="players", op="delete", record_id=next(iter(doomed))))
    else:
        effects.insert(0, RemoteEffect(resource="players", op="delete_batch", payload=sorted(doomed)))

    new_state = state.model_copy(update={"players": players, "teams": teams, "courts": courts})
    return Transition(new_state, effects)


# ---------------------------------------------------------------------------
# Club roster
# ---------------------------------------------------------------------------


def _require_member(state: GameState, member_id: str) -> Member:
    member = state.get_member(member_id)
    if member is None:
        raise NotFoundError(f"Member {member_id} not found")
    return member


def _build_members(
    entries: Sequence[Dict[str, Any]], now: datetime, id_factory: IdFactory
) -> List[Member]:
    members = []
    for entry in entries:
        name = (entry.get("name") or "").strip()
        if not name:
            raise GameMatchError("Member name is required")
        members.append(
            Member(id=id_factory(), name=name, rank=entry.get("rank"), gender=entry.get("gender"), created_at=now)
        )
    return members


def add_member(
    state: GameState,
    name: str,
    now: datetime,
    rank=None,
    gender=None,
    id_factory: IdFactory = lambda: _new_id("member"),
) -> Transition:
    """Add someone to the club roster. Roster names are not de-duplicated."""
    (member,) = _build_members([{"name": name, "rank": rank, "gender": gender}], now, id_factory)
    new_state = state.model_copy(update={"members": state.members + [member]})
    return Transition(
        new_state, [RemoteEffect(resource="members", op="add", record_id=member.id, payload=member.to_record())]
    )


def add_members(
    state: GameState,
    entries: Sequence[Dict[str, Any]],
    now: datetime,
    id_factory: IdFactory = lambda: _new_id("member"),
) -> Transition:
    added = _build_members(entries, now, id_factory)
    if not added:
        return Transition(state, [])
    effect = RemoteEffect(resource="members", op="add_batch", payload=[m.to_record() for m in added])
    return Transition(state.model_copy(update={"members": state.members + added}), [effect])


def update_member(state: GameState, member_id: str, updates: Dict[str, Any]) -> Transition:
    unknown = set(updates) - EDITABLE_MEMBER_FIELDS
    if unknown:
        raise GameMatchError(f"Cannot edit member fields: {', '.join(sorted(unknown))}")
    member = _require_member(state, member_id)
    if "name" in updates and not (updates["name"] or "").strip():
        raise GameMatchError("Member name is required")
    updated = Member.model_validate({**member.to_record(), **updates})
    members = [updated if m.id == member_id else m for m in state.members]
    effect = RemoteEffect(
        resource="members", op="update", record_id=member_id, payload=updated.to_record(include=set(updates))
    )
    return Transition(state.model_copy(update={"members": members}), [effect])


def delete_member(state: GameState, member_id: str) -> Transition:
    """Remove a roster entry. Participants already added from it stay in the session."""
    _require_member(state, member_id)
    members = [m for m in state.members if m.id != member_id]
    return Transition(
        state.model_copy(update={"members": members}),
        [RemoteEffect(resource="members", op="delete", record_id=member_id)],
    )


def reset_members(
    state: GameState,
    entries: Sequence[Dict[str, Any]],
    now: datetime,
    id_factory: IdFactory = lambda: _new_id("member"),
) -> Transition:
    """
    Replace the whole roster.

    The old entries are deleted before the new ones are written; an empty
    ``entries`` clears the roster.
    """
    members = _build_members(entries, now, id_factory)
    effects = []
    if state.members:
        effects.append(
            RemoteEffect(resource="members", op="delete_batch", payload=[m.id for m in state.members])
        )
    if members:
        effects.append(
            RemoteEffect(resource="members", op="add_batch", payload=[m.to_record() for m in members])
        )
    return Transition(state.model_copy(update={"members": members}), effects)


def add_players_from_members(
    state: GameState,
    member_ids: Sequence[str],
    now: datetime,
    id_factory: IdFactory = lambda: _new_id("player"),
) -> Transition:
    """
    Add roster members to the session as waiting participants.

    Names go through the same ``(N)`` suffixing as a typed-in name, so adding
    the same member twice gives two distinct participants.
    """
    members = [_require_member(state, member_id) for member_id in member_ids]
    entries = [{"name": m.name, "rank": m.rank, "gender": m.gender} for m in members]
    return add_players(state, entries, now, id_factory=id_factory)


# ---------------------------------------------------------------------------
# Team formation
# ---------------------------------------------------------------------------


def queue_capacity(state: GameState) -> int:
    """How many more teams may be queued: never more queued teams than courts."""
    return max(0, state.session.courts_count - len(state.queued_teams()))


def auto_match(
    state: GameState,
    now: datetime,
    id_factory: IdFactory = lambda: _new_id("team"),
    max_passes: int = MAX_SWAP_PASSES,
    accept: team_balancer.AcceptSwap = team_balancer.strictly_lower,
) -> Transition:
    """Form balanced queued teams from the eligible pool."""
    team_size = state.session.team_size
    eligible = team_balancer.eligible_players(state.players)
    if len(eligible) < team_size:
        raise InsufficientPlayersError(
            f"At least {team_size} waiting participants are needed, found {len(eligible)}"
        )
    max_new = queue_capacity(state)
    if max_new == 0:
        raise NoCapacityError("As many teams as courts are already queued; start a game first")

    result = team_balancer.auto_match(
        state.players,
        team_size,
        max_new,
        now=now,
        id_factory=id_factory,
        first_team_number=len(state.active_teams()) + 1,
        max_passes=max_passes,
        accept=accept,
    )
    assigned = {pid for team in result.teams for pid in team.player_ids}
    queued = [p for p in result.players if p.id in assigned]

    new_state = state.model_copy(
        update={"players": result.players, "teams": state.teams + result.teams}
    )
    effects = [
        RemoteEffect(resource="teams", op="add_batch", payload=[t.to_record() for t in result.teams])
    ]
    effects.extend(_player_update_effects(queued, {"state"}))
    return Transition(new_state, effects)


def create_manual_team(
    state: GameState,
    player_ids: Sequence[str],
    now: datetime,
    id_factory: IdFactory = lambda: _new_id("team"),
) -> Transition:
    """Queue a hand-picked team of exactly ``team_size`` eligible participants."""
    team_size = state.session.team_size
    if len(player_ids) != team_size or len(set(player_ids)) != len(player_ids):
        raise InvalidTeamError(f"Select exactly {team_size} different participants")
    if queue_capacity(state) == 0:
        raise NoCapacityError("As many teams as courts are already queued; start a game first")

    members = [_require_player(state, pid) for pid in player_ids]
    for player in members:
        if not lifecycle_service.is_eligible(player):
            raise InvalidTeamError(f"Player {player.name} is {player.state.value} and cannot join a team")

    team = Team(
        id=id_factory(),
        name=f"Team {len(state.active_teams()) + 1}",
        player_ids=list(player_ids),
        state=TeamState.QUEUED,
        created_at=now,
    )
    queued = [p.model_copy(update={"state": PlayerState.QUEUED}) for p in members]
    new_state = state.model_copy(
        update={"players": _with_players(state, queued), "teams": state.teams + [team]}
    )
    effects = [RemoteEffect(resource="teams", op="add", record_id=team.id, payload=team.to_record())]
    effects.extend(_player_update_effects(queued, {"state"}))
    return Transition(new_state, effects)


# ---------------------------------------------------------------------------
# Games
# ---------------------------------------------------------------------------


def find_playing_conflicts(state: GameState, team: Team) -> List[str]:
    """Members of ``team`` that are already playing somewhere else."""
    conflicts = []
    for player_id in team.player_ids:
        player = state.get_player(player_id)
        elsewhere = lifecycle_service.active_team_for(state.teams, player_id, exclude_team_id=team.id)
        if (player is not None and player.state == PlayerState.PLAYING) or (
            elsewhere is not None and elsewhere.state == TeamState.PLAYING
        ):
            conflicts.append(player_id)
    return conflicts


def start_game(state: GameState, team_id: str, now: datetime, court_id: Optional[str] = None) -> Transition:
    """
    Put a queued team on a court.

    Fails without any change when no court resolves or when a member is
    already playing; callers should hand in the freshest state they have.
    """
    team = _require_team(state, team_id)
    if team.state != TeamState.QUEUED:
        raise InvalidTeamError(f"Team {team.name} is {team.state.value}, not queued")

    if court_id is not None:
        court = _require_court(state, court_id)
        if court.status != CourtStatus.AVAILABLE:
            raise NoAvailableCourtError(f"{court.name} is already in use")
    else:
        court = next((c for c in state.courts if c.status == CourtStatus.AVAILABLE), None)
        if court is None:
            raise NoAvailableCourtError("No court is available")

    conflicts = find_playing_conflicts(state, team)
    if conflicts:
        raise DuplicateAssignmentError(
            f"Players already playing on another court: {', '.join(conflicts)}"
        )

    started = team.model_copy(
        update={"state": TeamState.PLAYING, "assigned_court_id": court.id, "started_at": now}
    )
    occupied = court.model_copy(
        update={
            "status": CourtStatus.OCCUPIED,
            "current_team_id": team.id,
            "timer_ms": 0,
            "is_paused": False,
        }
    )
    playing = [
        p.model_copy(update={"state": PlayerState.PLAYING})
        for p in state.players
        if p.id in team.player_ids
    ]

    new_state = state.model_copy(
        update={
            "teams": [started if t.id == team.id else t for t in state.teams],
            "courts": [occupied if c.id == court.id else c for c in state.courts],
            "players": _with_players(state, playing),
        }
    )
    effects = [_team_update_effect(started, {"state", "assigned_court_id", "started_at"})]
    effects.extend(_player_update_effects(playing, {"state"}))
    return Transition(new_state, effects)


def start_queued_games(state: GameState, now: datetime) -> Transition:
    """
    Start queued teams, oldest first, on every available court.

    Teams that fail the duplicate-playing guard are skipped; the rest still
    start.
    """
    queued = sorted(state.queued_teams(), key=lambda t: t.created_at)
    if not queued:
        return Transition(state, [])
    if not any(c.status == CourtStatus.AVAILABLE for c in state.courts):
        raise NoAvailableCourtError("No court is available")

    effects: List[RemoteEffect] = []
    for team in queued:
        if not any(c.status == CourtStatus.AVAILABLE for c in state.courts):
            break
        try:
            state, team_effects = start_game(state, team.id, now)
        except DuplicateAssignmentError as e:
            logger.warning(f"Skipping team {team.id}: {e}")
            continue
        effects.extend(team_effects)
    return Transition(state, effects)


def end_game(state: GameState, court_id: str, now: datetime) -> Transition:
    """
    Finish the game on a court.

    Members get their game counted, teammate history updated and go back to
    waiting; the team record is deleted, the court freed, and priority is
    recomputed over the whole pool.
    """
    court = _require_court(state, court_id)
    if court.current_team_id is None:
        raise CourtIdleError(f"{court.name} has no game in progress")

    team = state.get_team(court.current_team_id)
    courts = [_free_court(c) if c.id == court.id else c for c in state.courts]
    if team is None:
        logger.warning(f"{court.name} pointed at missing team {court.current_team_id}; freeing it")
        return Transition(state.model_copy(update={"courts": courts}), [])

    finished = []
    for player in state.players:
        if player.id in team.player_ids:
            teammates = [pid for pid in team.player_ids if pid != player.id]
            finished.append(lifecycle_service.apply_game_result(player, teammates, now))

    players = _with_players(state, finished)
    players, promoted_ids = lifecycle_service.recompute_priority(players)
    promoted = [p for p in players if p.id in set(promoted_ids)]

    new_state = state.model_copy(
        update={
            "players": players,
            "teams": [t for t in state.teams if t.id != team.id],
            "courts": courts,
        }
    )
    effects = [_team_delete_effect(team.id)]
    effects.extend(_player_update_effects(finished, GAME_RESULT_FIELDS))
    effects.extend(_player_update_effects(promoted, {"state"}))
    return Transition(new_state, effects)


def end_all_games(state: GameState, now: datetime) -> Transition:
    """End every game in progress as one logical unit."""
    effects: List[RemoteEffect] = []
    for court in list(state.courts):
        if court.current_team_id is None:
            continue
        state, court_effects = end_game(state, court.id, now)
        effects.extend(court_effects)
    return Transition(state, effects)


# ---------------------------------------------------------------------------
# Manual roster edits
# ---------------------------------------------------------------------------


def _require_queued_member(state: GameState, team_id: str, player_id: str) -> Team:
    team = _require_team(state, team_id)
    if team.state != TeamState.QUEUED:
        raise InvalidTeamError(f"Team {team.name} is {team.state.value}; only queued teams can be edited")
    if player_id not in team.player_ids:
        raise InvalidTeamError(f"Player {player_id} is not in team {team.name}")
    return team


def _release(state: GameState, teams: List[Team], player_ids: Iterable[str]) -> List[Player]:
    """New states for participants leaving a team, given the updated team list."""
    released = []
    for player_id in player_ids:
        player = state.get_player(player_id)
        if player is None:
            continue
        target = lifecycle_service.released_state(teams, player_id)
        if player.state != target:
            released.append(player.model_copy(update={"state": target}))
    return released


def swap_with_waiting(
    state: GameState, team_id: str, queued_player_id: str, waiting_player_id: str
) -> Transition:
    """Replace a queued member with a waiting participant."""
    team = _require_queued_member(state, team_id, queued_player_id)
    incoming = _require_player(state, waiting_player_id)
    if not lifecycle_service.is_eligible(incoming) or lifecycle_service.active_team_for(
        state.teams, incoming.id
    ):
        raise InvalidTeamError(f"Player {incoming.name} is not waiting")

    swapped = team.model_copy(
        update={
            "player_ids": [waiting_player_id if pid == queued_player_id else pid for pid in team.player_ids]
        }
    )
    teams = [swapped if t.id == team.id else t for t in state.teams]
    changed = _release(state, teams, [queued_player_id])
    changed.append(incoming.model_copy(update={"state": PlayerState.QUEUED}))

    new_state = state.model_copy(update={"teams": teams, "players": _with_players(state, changed)})
    effects = [_team_update_effect(swapped, {"player_ids"})]
    effects.extend(_player_update_effects(changed, {"state"}))
    return Transition(new_state, effects)


def swap_between_teams(
    state: GameState,
    source_team_id: str,
    source_player_id: str,
    target_team_id: str,
    target_player_id: str,
) -> Transition:
    """Exchange one member between two queued teams."""
    if source_team_id == target_team_id:
        raise InvalidTeamError("Pick two different teams")
    source = _require_queued_member(state, source_team_id, source_player_id)
    target = _require_queued_member(state, target_team_id, target_player_id)
    if target_player_id in source.player_ids or source_player_id in target.player_ids:
        raise InvalidTeamError("Swap would put a participant in the same team twice")

    new_source = source.model_copy(
        update={"player_ids": [target_player_id if pid == source_player_id else pid for pid in source.player_ids]}
    )
    new_target = target.model_copy(
        update={"player_ids": [source_player_id if pid == target_player_id else pid for pid in target.player_ids]}
    )
    replaced = {new_source.id: new_source, new_target.id: new_target}
    teams = [replaced.get(t.id, t) for t in state.teams]
    return Transition(
        state.model_copy(update={"teams": teams}),
        [_team_update_effect(new_source, {"player_ids"}), _team_update_effect(new_target, {"player_ids"})],
    )


def return_to_waiting(state: GameState, team_id: str, player_id: str) -> Transition:
    """Take a member out of a queued team; an emptied team is deleted."""
    team = _require_queued_member(state, team_id, player_id)
    remaining = [pid for pid in team.player_ids if pid != player_id]

    if remaining:
        shrunk = team.model_copy(update={"player_ids": remaining})
        teams = [shrunk if t.id == team.id else t for t in state.teams]
        effects = [_team_update_effect(shrunk, {"player_ids"})]
    else:
        teams = [t for t in state.teams if t.id != team.id]
        effects = [_team_delete_effect(team.id)]

    changed = _release(state, teams, [player_id])
    effects.extend(_player_update_effects(changed, {"state"}))
    new_state = state.model_copy(update={"teams": teams, "players": _with_players(state, changed)})
    return Transition(new_state, effects)


def delete_team(state: GameState, team_id: str) -> Transition:
    """Disband a team; members not listed in another active team go back to waiting."""
    team = _require_team(state, team_id)
    teams = [t for t in state.teams if t.id != team.id]
    changed = _release(state, teams, team.player_ids)
    courts = [
        _free_court(c) if c.current_team_id == team.id else c for c in state.courts
    ]
    new_state = state.model_copy(
        update={"teams": teams, "courts": courts, "players": _with_players(state, changed)}
    )
    effects = [_team_delete_effect(team.id)]
    effects.extend(_player_update_effects(changed, {"state"}))
    return Transition(new_state, effects)


# ---------------------------------------------------------------------------
# Reset
# ---------------------------------------------------------------------------


def reset_session(state: GameState) -> Transition:
    """Everyone back to waiting with zeroed stats; teams dropped, courts re-provisioned."""
    players = [
        p.model_copy(
            update={
                "state": PlayerState.WAITING,
                "game_count": 0,
                "last_game_end_at": None,
                "teammate_history": {},
                "recent_teammates": [],
            }
        )
        for p in state.players
    ]
    courts = provision_courts([], state.session.courts_count)
    effects = _player_update_effects(players, GAME_RESULT_FIELDS)
    if state.teams:
        effects.append(
            RemoteEffect(resource="teams", op="delete_batch", payload=[t.id for t in state.teams])
        )
    new_state = state.model_copy(update={"players": players, "teams": [], "courts": courts})
    return Transition(new_state, effects)
