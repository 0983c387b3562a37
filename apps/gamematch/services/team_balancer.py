"""
Team balancer: picks who plays next and splits them into teams.

1. Eligible participants (waiting / priority) are ordered by fairness:
   priority first, fewest games, longest rest; never-played participants sort
   after those who have played.
2. The first ``team_count * team_size`` of them form the candidate pool.
3. The pool is sorted by descending skill score and cut into contiguous
   blocks, so similarly skilled players share a team ("skill pods").
4. A bounded greedy local search swaps single members between teams to cut
   down on repeat teammates. It stops at a local minimum; there is no
   global-optimality guarantee.
"""

import logging
import uuid
from datetime import datetime
from typing import Callable, List, NamedTuple, Optional, Sequence

from gamematch.models.schemas import Player, PlayerState, Team, TeamState
from gamematch.services import lifecycle_service
from gamematch.services.scoring_service import score
from gamematch.utils.constants import MAX_SWAP_PASSES, OVERLAP_THRESHOLD
from gamematch.utils.datetime_utils import utcnow

logger = logging.getLogger(__name__)

# (overlap before swap, overlap after swap) -> keep the swap?
AcceptSwap = Callable[[int, int], bool]


def strictly_lower(before: int, after: int) -> bool:
    """Default acceptance criterion: keep a swap only if it reduces overlap."""
    return after < before


class MatchResult(NamedTuple):
    """Outcome of an auto-match run."""

    teams: List[Team]
    players: List[Player]
    remaining_player_ids: List[str]


def eligible_players(players: Sequence[Player]) -> List[Player]:
    return [p for p in players if lifecycle_service.is_eligible(p)]


def _fairness_key(player: Player):
    last_end = player.last_game_end_at
    return (
        0 if player.state == PlayerState.PRIORITY else 1,
        player.game_count,
        (0, last_end.timestamp()) if last_end is not None else (1, 0.0),
    )


def sort_by_fairness(players: Sequence[Player]) -> List[Player]:
    """Priority first, then ascending game count, then longest rest."""
    return sorted(players, key=_fairness_key)


def team_count(eligible_count: int, team_size: int, max_teams: int) -> int:
    if team_size <= 0 or max_teams <= 0:
        return 0
    return min(max_teams, eligible_count // team_size)


def balance_into_blocks(pool: Sequence[Player], team_size: int, num_teams: int) -> List[List[Player]]:
    """
    Sort by descending score and cut into contiguous blocks of ``team_size``.

    The sort is stable, so equally scored players keep their fairness order.
    """
    by_score = sorted(pool, key=score, reverse=True)
    blocks = []
    for i in range(num_teams):
        block = by_score[i * team_size:(i + 1) * team_size]
        if len(block) == team_size:
            blocks.append(list(block))
    return blocks


def _played_together(a: Player, b: Player) -> bool:
    return a.teammate_history.get(b.id, 0) > 0


def team_overlap(team: Sequence[Player]) -> int:
    """
    Number of member pairs who have played together before.

    Each pair is looked up in the earlier member's history only, so a
    one-sided history (a partially written game result) counts only when
    that member comes first.
    """
    count = 0
    for i, player in enumerate(team):
        for other in team[i + 1:]:
            if _played_together(player, other):
                count += 1
    return count


def total_overlap(teams: Sequence[Sequence[Player]]) -> int:
    return sum(team_overlap(t) for t in teams)


def optimize_teammates(
    blocks: Sequence[Sequence[Player]],
    max_passes: int = MAX_SWAP_PASSES,
    threshold: int = OVERLAP_THRESHOLD,
    accept: AcceptSwap = strictly_lower,
) -> List[List[Player]]:
    """
    Greedy pairwise swap search to reduce repeat-teammate overlap.

    Every team whose overlap exceeds ``threshold`` tries swapping each of its
    members with each member of every other team. A swap is kept when
    ``accept(before, after)`` holds for the combined overlap of the two
    teams, otherwise it is reverted. Passes repeat until one makes no swap
    or ``max_passes`` is reached.
    """
    teams = [list(block) for block in blocks]

    for pass_number in range(max_passes):
        swapped = False
        for i, team in enumerate(teams):
            if team_overlap(team) <= threshold:
                continue
            for j, other in enumerate(teams):
                if j == i:
                    continue
                for pi in range(len(team)):
                    for pj in range(len(other)):
                        before = team_overlap(team) + team_overlap(other)
                        team[pi], other[pj] = other[pj], team[pi]
                        after = team_overlap(team) + team_overlap(other)
                        if accept(before, after):
                            swapped = True
                        else:
                            team[pi], other[pj] = other[pj], team[pi]
        if not swapped:
            logger.debug(f"Teammate optimization converged after {pass_number + 1} pass(es)")
            break

    return teams


def _new_team_id() -> str:
    return f"team-{uuid.uuid4().hex}"


def auto_match(
    players: Sequence[Player],
    team_size: int,
    max_teams: int,
    now: Optional[datetime] = None,
    id_factory: Callable[[], str] = _new_team_id,
    first_team_number: int = 1,
    max_passes: int = MAX_SWAP_PASSES,
    accept: AcceptSwap = strictly_lower,
) -> MatchResult:
    """
    Form up to ``max_teams`` queued teams of ``team_size`` from the eligible pool.

    An empty result is valid when there are not enough eligible participants.

    Returns:
        MatchResult with the new teams, the full player list with assigned
        participants moved to queued, and the ids of eligible participants
        left over for the next cycle (in fairness order).
    """
    now = now or utcnow()
    ordered = sort_by_fairness(eligible_players(players))
    num_teams = team_count(len(ordered), team_size, max_teams)

    if num_teams == 0:
        return MatchResult([], list(players), [p.id for p in ordered])

    pool = ordered[:num_teams * team_size]
    remaining = ordered[num_teams * team_size:]

    blocks = balance_into_blocks(pool, team_size, num_teams)
    before = total_overlap(blocks)
    optimized = optimize_teammates(blocks, max_passes=max_passes, accept=accept)
    logger.info(
        f"Auto-match formed {len(optimized)} team(s) of {team_size}; "
        f"teammate overlap {before} -> {total_overlap(optimized)}"
    )

    teams = [
        Team(
            id=id_factory(),
            name=f"Team {first_team_number + idx}",
            player_ids=[p.id for p in members],
            state=TeamState.QUEUED,
            created_at=now,
        )
        for idx, members in enumerate(optimized)
    ]

    assigned = {pid for team in teams for pid in team.player_ids}
    updated = []
    for player in players:
        if player.id in assigned:
            lifecycle_service.validate_transition(
                player.state, PlayerState.QUEUED, lifecycle_service.FORM_TEAM
            )
            updated.append(player.model_copy(update={"state": PlayerState.QUEUED}))
        else:
            updated.append(player)

    return MatchResult(teams, updated, [p.id for p in remaining])
