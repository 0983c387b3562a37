"""
Reconciliation: rebuild local derived state from a remote snapshot.

The remote team records are the source of truth. Court occupancy and
participant states are re-derived from them from scratch on every pass, which
is what heals "ghost" assignments left behind by a failed write or a stale
read. The pass is a pure function and idempotent: feeding its output back in
with the same snapshot changes nothing.
"""

import logging
from typing import Dict, List, Set

from gamematch.models.schemas import (
    ACTIVE_TEAM_STATES,
    Court,
    CourtStatus,
    GameState,
    Player,
    PlayerState,
    RemoteEffect,
    RemoteSnapshot,
    SessionConfig,
    Team,
    TeamState,
    Transition,
)
from gamematch.services import settings_service
from gamematch.services.session_service import ensure_courts, provision_courts

logger = logging.getLogger(__name__)


def reconcile_session(session: SessionConfig, settings: Dict[str, str]) -> SessionConfig:
    """Apply valid remote settings on top of the local session config."""
    updates = settings_service.session_values(settings)
    return session.model_copy(update=updates) if updates else session


def active_remote_teams(teams: List[Team]) -> List[Team]:
    """
    Queued/playing teams, oldest first, each participant kept in one team only.

    A participant listed in several active teams stays in the oldest one and
    is dropped from the others.
    """
    active = sorted((t for t in teams if t.state in ACTIVE_TEAM_STATES), key=lambda t: t.created_at)
    seen: Set[str] = set()
    result = []
    for team in active:
        members = [pid for pid in team.player_ids if pid not in seen]
        if len(members) != len(team.player_ids):
            logger.warning(f"Team {team.id} shares members with an older active team; dropping duplicates")
            team = team.model_copy(update={"player_ids": members})
        seen.update(members)
        result.append(team)
    return result


def playing_court_ids(teams: List[Team]) -> List[str]:
    """Courts the remote playing teams are assigned to, in team order."""
    return [t.assigned_court_id for t in teams if t.state == TeamState.PLAYING and t.assigned_court_id]


def provision_for_teams(courts: List[Court], count: int, teams: List[Team]) -> List[Court]:
    """
    Size the court list to ``count`` without losing a court that has a game on it.

    Occupancy is taken from the remote teams, not from the local court status,
    so a freshly started engine keeps the courts whose games are still
    running, and creates any such court it has not provisioned yet.
    """
    held = playing_court_ids(teams)
    current = ensure_courts(courts, held)
    if len(current) == count and len(current) == len(courts):
        return courts
    return provision_courts(current, count, occupied_ids=set(held))


def rebuild_courts(courts: List[Court], teams: List[Team]) -> List[Court]:
    """
    Reset every court to available, then occupy courts of playing teams.

    A court keeps its pause flag only when it stays on the same team.
    """
    by_id = {c.id: c for c in courts}
    occupant: Dict[str, Team] = {}
    for team in teams:
        if team.state != TeamState.PLAYING or not team.assigned_court_id:
            continue
        if team.assigned_court_id not in by_id:
            logger.warning(f"Team {team.id} is playing on unknown court {team.assigned_court_id}")
            continue
        if team.assigned_court_id in occupant:
            logger.warning(
                f"Court {team.assigned_court_id} already holds team "
                f"{occupant[team.assigned_court_id].id}; ignoring team {team.id}"
            )
            continue
        occupant[team.assigned_court_id] = team

    rebuilt = []
    for court in courts:
        team = occupant.get(court.id)
        if team is None:
            rebuilt.append(
                court.model_copy(
                    update={
                        "status": CourtStatus.AVAILABLE,
                        "current_team_id": None,
                        "is_paused": False,
                        "timer_ms": 0,
                    }
                )
            )
        else:
            rebuilt.append(
                court.model_copy(
                    update={
                        "status": CourtStatus.OCCUPIED,
                        "current_team_id": team.id,
                        "is_paused": court.is_paused and court.current_team_id == team.id,
                    }
                )
            )
    return rebuilt


def rebuild_players(players: List[Player], teams: List[Team]) -> List[Player]:
    """
    Force participant states to match team membership.

    Members of an active team take that team's state. Anyone else still
    marked queued or playing goes back to waiting.
    """
    membership: Dict[str, PlayerState] = {}
    for team in teams:
        team_state = PlayerState.PLAYING if team.state == TeamState.PLAYING else PlayerState.QUEUED
        for player_id in team.player_ids:
            membership.setdefault(player_id, team_state)

    rebuilt = []
    for player in players:
        target = membership.get(player.id)
        if target is None and player.state in (PlayerState.QUEUED, PlayerState.PLAYING):
            target = PlayerState.WAITING
        if target is not None and target != player.state:
            logger.info(f"Repairing player {player.id}: {player.state.value} -> {target.value}")
            player = player.model_copy(update={"state": target})
        rebuilt.append(player)
    return rebuilt


def reconcile(state: GameState, snapshot: RemoteSnapshot) -> Transition:
    """
    Rebuild local state from a full remote snapshot.

    Returns:
        Transition whose effects purge finished team records from the store
    """
    session = reconcile_session(state.session, snapshot.settings)
    teams = active_remote_teams(snapshot.teams)
    courts = provision_for_teams(list(state.courts), session.courts_count, teams)
    courts = rebuild_courts(courts, teams)
    players = rebuild_players(list(snapshot.players), teams)

    new_state = state.model_copy(
        update={
            "session": session,
            "players": players,
            "teams": teams,
            "courts": courts,
            "members": list(snapshot.members),
        }
    )

    finished = [t.id for t in snapshot.teams if t.state == TeamState.FINISHED]
    effects = []
    if finished:
        logger.info(f"Purging {len(finished)} finished team record(s)")
        effects.append(RemoteEffect(resource="teams", op="delete_batch", payload=finished))
    return Transition(new_state, effects)
