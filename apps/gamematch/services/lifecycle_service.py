"""
Player lifecycle state machine.

waiting / priority / resting are cycled by an admin; queued and playing are
only ever entered through team formation and game start, and left through
game end or release from a team.
"""

import logging
from datetime import datetime
from typing import Dict, FrozenSet, Iterable, List, Optional, Tuple

from gamematch.models.schemas import (
    ACTIVE_TEAM_STATES,
    ELIGIBLE_STATES,
    Player,
    PlayerState,
    Team,
    TeamState,
)
from gamematch.services.errors import InvalidTransitionError

logger = logging.getLogger(__name__)

ADMIN = "admin"
FORM_TEAM = "form_team"
START_GAME = "start_game"
END_GAME = "end_game"
RELEASE = "release"

_ADMIN_STATES = frozenset({PlayerState.WAITING, PlayerState.PRIORITY, PlayerState.RESTING})

# trigger -> {from_state: allowed target states}
TRANSITIONS: Dict[str, Dict[PlayerState, FrozenSet[PlayerState]]] = {
    ADMIN: {state: _ADMIN_STATES for state in _ADMIN_STATES},
    FORM_TEAM: {state: frozenset({PlayerState.QUEUED}) for state in ELIGIBLE_STATES},
    START_GAME: {PlayerState.QUEUED: frozenset({PlayerState.PLAYING})},
    END_GAME: {PlayerState.PLAYING: frozenset({PlayerState.WAITING})},
    RELEASE: {
        PlayerState.QUEUED: frozenset({PlayerState.WAITING}),
        PlayerState.PLAYING: frozenset({PlayerState.WAITING}),
    },
}


def can_transition(current: PlayerState, target: PlayerState, trigger: str) -> bool:
    allowed = TRANSITIONS.get(trigger, {}).get(PlayerState(current))
    return allowed is not None and PlayerState(target) in allowed


def validate_transition(current: PlayerState, target: PlayerState, trigger: str) -> None:
    """Raise InvalidTransitionError unless ``trigger`` may move ``current`` to ``target``."""
    if not can_transition(current, target, trigger):
        raise InvalidTransitionError(
            f"Cannot move player from {PlayerState(current).value} to "
            f"{PlayerState(target).value} via {trigger}"
        )


def is_eligible(player: Player) -> bool:
    """Candidate for auto-matching."""
    return player.state in ELIGIBLE_STATES


def active_team_for(
    teams: Iterable[Team], player_id: str, exclude_team_id: Optional[str] = None
) -> Optional[Team]:
    """The queued/playing team a participant belongs to, if any."""
    for team in teams:
        if team.id == exclude_team_id or team.state not in ACTIVE_TEAM_STATES:
            continue
        if player_id in team.player_ids:
            return team
    return None


def released_state(
    teams: Iterable[Team], player_id: str, exclude_team_id: Optional[str] = None
) -> PlayerState:
    """
    State for a participant leaving ``exclude_team_id``.

    Scans every other active team first: a participant still listed elsewhere
    keeps that team's state instead of dropping to waiting.
    """
    other = active_team_for(teams, player_id, exclude_team_id=exclude_team_id)
    if other is None:
        return PlayerState.WAITING
    logger.warning(
        f"Player {player_id} still belongs to active team {other.id}; not demoting to waiting"
    )
    return PlayerState.PLAYING if other.state == TeamState.PLAYING else PlayerState.QUEUED


def apply_game_result(player: Player, teammate_ids: List[str], now: datetime) -> Player:
    """Bookkeeping for a participant whose game just ended."""
    history = dict(player.teammate_history)
    for teammate_id in teammate_ids:
        history[teammate_id] = history.get(teammate_id, 0) + 1
    return player.model_copy(
        update={
            "state": PlayerState.WAITING,
            "game_count": player.game_count + 1,
            "last_game_end_at": now,
            "teammate_history": history,
            "recent_teammates": list(teammate_ids),
        }
    )


def recompute_priority(players: List[Player]) -> Tuple[List[Player], List[str]]:
    """
    Promote the least-played idle participants to priority.

    Recomputed from scratch over the whole pool every time: the minimum
    game_count is taken over participants that are not resting, queued or
    playing, and every waiting participant at that minimum with at least one
    game becomes priority. Nobody is demoted, so an admin-set priority is
    kept and repeated calls are no-ops.

    Returns:
        (updated players, ids of participants promoted by this call)
    """
    idle = [p for p in players if p.state in ELIGIBLE_STATES]
    if not idle:
        return list(players), []

    min_count = min(p.game_count for p in idle)
    if min_count == 0:
        return list(players), []

    promoted: List[str] = []
    updated: List[Player] = []
    for player in players:
        if player.state == PlayerState.WAITING and player.game_count == min_count:
            promoted.append(player.id)
            updated.append(player.model_copy(update={"state": PlayerState.PRIORITY}))
        else:
            updated.append(player)
    return updated, promoted
