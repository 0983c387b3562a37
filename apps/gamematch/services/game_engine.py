"""
Game engine: runs session operations against the remote store.

Every mutating call follows the same steps under one lock:

1. run the pure operation on the current local state (a rejected call raises
   before anything changes),
2. apply the new state locally,
3. send its remote effects in order; a failed write is logged and the next
   one is still attempted,
4. re-read the store and reconcile (a failed read keeps the local state),
5. append an audit entry, whatever the remote outcome was.
"""

import asyncio
import logging
from datetime import datetime
from typing import Any, Callable, Dict, List, Optional, Sequence, Tuple

from gamematch.models.schemas import (
    AuditLogEntry,
    GameState,
    Member,
    Player,
    PlayerState,
    RemoteEffect,
    Role,
    Team,
    TeamState,
    Transition,
)
from gamematch.services import reconciliation_service, session_service, settings_service, team_balancer
from gamematch.services.audit_service import AuditRecorder
from gamematch.services.remote_store import RemoteStore, StoreError
from gamematch.utils.constants import MAX_SWAP_PASSES
from gamematch.utils.datetime_utils import utcnow

logger = logging.getLogger(__name__)


class GameEngine:
    """Owns the session state and serializes every change to it."""

    def __init__(
        self,
        store: RemoteStore,
        state: Optional[GameState] = None,
        recorder: Optional[AuditRecorder] = None,
        clock: Callable[[], datetime] = utcnow,
        max_passes: int = MAX_SWAP_PASSES,
        accept: team_balancer.AcceptSwap = team_balancer.strictly_lower,
    ):
        self.store = store
        self.recorder = recorder or AuditRecorder()
        self._clock = clock
        self._max_passes = max_passes
        self._accept = accept
        self._lock = asyncio.Lock()
        self.state = state or session_service.initial_state(clock(), **settings_service.session_defaults())

    # ------------------------------------------------------------------
    # Store plumbing
    # ------------------------------------------------------------------

    async def _dispatch(self, effects: Sequence[RemoteEffect]) -> int:
        """Send effects in order. Returns how many failed."""
        failures = 0
        for effect in effects:
            try:
                await self.store.dispatch(effect)
            except StoreError as e:
                failures += 1
                logger.error(f"Remote write {effect.resource}.{effect.op} failed: {e}", exc_info=True)
        return failures

    async def _sync(self) -> GameState:
        try:
            snapshot = await self.store.fetch_snapshot()
        except StoreError as e:
            logger.warning(f"Could not refresh from store, keeping local state: {e}")
            return self.state
        self.state, effects = reconciliation_service.reconcile(self.state, snapshot)
        await self._dispatch(effects)
        return self.state

    async def _commit(
        self, entry_type: str, transition: Transition, payload: Dict[str, Any], sync: bool = True
    ) -> GameState:
        self.state = transition.state
        failures = await self._dispatch(transition.effects)
        if failures:
            logger.warning(f"{entry_type}: {failures} of {len(transition.effects)} remote write(s) failed")
        if sync:
            await self._sync()
        self.recorder.record(entry_type, payload, now=self._clock())
        return self.state

    async def load(self) -> GameState:
        """Initial sync with the store."""
        async with self._lock:
            state = await self._sync()
            logger.info(
                f"Loaded session {state.session.name}: {len(state.players)} player(s), "
                f"{len(state.teams)} active team(s), {len(state.courts)} court(s)"
            )
            return state

    async def sync(self) -> GameState:
        """Re-read the store and rebuild local state from it."""
        async with self._lock:
            return await self._sync()

    def audit_log(self) -> Tuple[AuditLogEntry, ...]:
        return self.recorder.entries()

    # ------------------------------------------------------------------
    # Session and courts
    # ------------------------------------------------------------------

    async def create_session(
        self,
        name: Optional[str] = None,
        courts_count: Optional[int] = None,
        team_size: Optional[int] = None,
        game_duration_min: Optional[int] = None,
    ) -> GameState:
        async with self._lock:
            defaults = settings_service.session_defaults()
            values = {
                "name": name if name is not None else defaults["name"],
                "courts_count": courts_count if courts_count is not None else defaults["courts_count"],
                "team_size": team_size if team_size is not None else defaults["team_size"],
                "game_duration_min": (
                    game_duration_min if game_duration_min is not None else defaults["game_duration_min"]
                ),
            }
            transition = session_service.create_session(self.state, self._clock(), **values)
            return await self._commit("session_created", transition, values)

    async def update_session(self, **changes) -> GameState:
        """Change any of ``name``, ``courts_count``, ``team_size``, ``game_duration_min``."""
        async with self._lock:
            changes = {k: v for k, v in changes.items() if v is not None}
            transition = session_service.update_session(self.state, **changes)
            return await self._commit("session_updated", transition, changes)

    async def toggle_court_pause(self, court_id: str) -> GameState:
        async with self._lock:
            transition = session_service.toggle_court_pause(self.state, court_id)
            court = transition.state.get_court(court_id)
            return await self._commit(
                "court_pause_toggled",
                transition,
                {"court_id": court_id, "is_paused": court.is_paused},
                sync=False,
            )

    def elapsed(self, court_id: str) -> int:
        """Milliseconds the current game on ``court_id`` has been running."""
        return session_service.elapsed_ms(self.state, court_id, self._clock())

    # ------------------------------------------------------------------
    # Participants
    # ------------------------------------------------------------------

    async def add_player(self, name: str, rank=None, gender=None) -> Player:
        async with self._lock:
            transition = session_service.add_player(self.state, name, self._clock(), rank=rank, gender=gender)
            player = transition.state.players[-1]
            await self._commit("player_added", transition, {"player_id": player.id, "name": player.name})
            return player

    async def add_players(self, entries: Sequence[Dict[str, Any]]) -> List[Player]:
        async with self._lock:
            before = {p.id for p in self.state.players}
            transition = session_service.add_players(self.state, entries, self._clock())
            added = [p for p in transition.state.players if p.id not in before]
            await self._commit("players_added", transition, {"player_ids": [p.id for p in added]})
            return added

    async def update_player(self, player_id: str, **updates) -> GameState:
        async with self._lock:
            transition = session_service.update_player(self.state, player_id, updates)
            payload = {"player_id": player_id, "updates": transition.state.get_player(player_id).to_record(set(updates))}
            return await self._commit("player_updated", transition, payload)

    async def delete_players(self, player_ids: Sequence[str]) -> GameState:
        async with self._lock:
            transition = session_service.delete_players(self.state, player_ids)
            return await self._commit("players_deleted", transition, {"player_ids": list(player_ids)})

    async def delete_player(self, player_id: str) -> GameState:
        return await self.delete_players([player_id])

    async def set_player_state(self, player_ids: Sequence[str], target: PlayerState) -> GameState:
        async with self._lock:
            transition = session_service.set_player_state(self.state, player_ids, target)
            return await self._commit(
                "player_state_changed",
                transition,
                {"player_ids": list(player_ids), "state": PlayerState(target).value},
            )

    async def adjust_game_count(self, player_id: str, delta: int) -> GameState:
        async with self._lock:
            transition = session_service.adjust_game_count(self.state, player_id, delta)
            return await self._commit(
                "game_count_adjusted", transition, {"player_id": player_id, "delta": delta}
            )

    # ------------------------------------------------------------------
    # Club roster
    # ------------------------------------------------------------------

    async def add_member(self, name: str, rank=None, gender=None) -> Member:
        async with self._lock:
            transition = session_service.add_member(self.state, name, self._clock(), rank=rank, gender=gender)
            member = transition.state.members[-1]
            await self._commit("member_added", transition, {"member_id": member.id, "name": member.name})
            return member

    async def add_members(self, entries: Sequence[Dict[str, Any]]) -> List[Member]:
        async with self._lock:
            before = {m.id for m in self.state.members}
            transition = session_service.add_members(self.state, entries, self._clock())
            added = [m for m in transition.state.members if m.id not in before]
            await self._commit("members_added", transition, {"member_ids": [m.id for m in added]})
            return added

    async def update_member(self, member_id: str, **updates) -> GameState:
        async with self._lock:
            transition = session_service.update_member(self.state, member_id, updates)
            payload = {"member_id": member_id, "updates": transition.state.get_member(member_id).to_record(set(updates))}
            return await self._commit("member_updated", transition, payload)

    async def delete_member(self, member_id: str) -> GameState:
        async with self._lock:
            transition = session_service.delete_member(self.state, member_id)
            return await self._commit("member_deleted", transition, {"member_id": member_id})

    async def reset_members(self, entries: Sequence[Dict[str, Any]]) -> List[Member]:
        async with self._lock:
            transition = session_service.reset_members(self.state, entries, self._clock())
            members = list(transition.state.members)
            await self._commit("members_reset", transition, {"member_ids": [m.id for m in members]})
            return members

    async def add_players_from_members(self, member_ids: Sequence[str]) -> List[Player]:
        async with self._lock:
            before = {p.id for p in self.state.players}
            transition = session_service.add_players_from_members(self.state, member_ids, self._clock())
            added = [p for p in transition.state.players if p.id not in before]
            await self._commit(
                "members_added_as_players",
                transition,
                {"member_ids": list(member_ids), "player_ids": [p.id for p in added]},
            )
            return added

    # ------------------------------------------------------------------
    # Teams and games
    # ------------------------------------------------------------------

    async def auto_match(self) -> List[Team]:
        async with self._lock:
            before = {t.id for t in self.state.teams}
            transition = session_service.auto_match(
                self.state, self._clock(), max_passes=self._max_passes, accept=self._accept
            )
            formed = [t for t in transition.state.teams if t.id not in before]
            await self._commit(
                "teams_matched",
                transition,
                {"teams": [{"team_id": t.id, "player_ids": t.player_ids} for t in formed]},
            )
            return formed

    async def create_manual_team(self, player_ids: Sequence[str]) -> Team:
        async with self._lock:
            transition = session_service.create_manual_team(self.state, player_ids, self._clock())
            team = transition.state.teams[-1]
            await self._commit("team_created", transition, {"team_id": team.id, "player_ids": team.player_ids})
            return team

    async def start_game(self, team_id: str, court_id: Optional[str] = None) -> GameState:
        """Start a queued team; the guard runs against freshly synced state."""
        async with self._lock:
            await self._sync()
            now = self._clock()
            transition = session_service.start_game(self.state, team_id, now, court_id=court_id)
            court_id = transition.state.get_team(team_id).assigned_court_id
            return await self._commit("game_started", transition, {"team_id": team_id, "court_id": court_id})

    async def start_queued_games(self) -> GameState:
        async with self._lock:
            await self._sync()
            before = {t.id for t in self.state.queued_teams()}
            transition = session_service.start_queued_games(self.state, self._clock())
            started = [t.id for t in transition.state.teams if t.id in before and t.state == TeamState.PLAYING]
            return await self._commit("games_started", transition, {"team_ids": started})

    async def end_game(self, court_id: str) -> GameState:
        async with self._lock:
            court = self.state.get_court(court_id)
            team_id = court.current_team_id if court is not None else None
            transition = session_service.end_game(self.state, court_id, self._clock())
            return await self._commit("game_ended", transition, {"court_id": court_id, "team_id": team_id})

    async def end_all_games(self) -> GameState:
        async with self._lock:
            courts = [c.id for c in self.state.courts if c.current_team_id is not None]
            transition = session_service.end_all_games(self.state, self._clock())
            return await self._commit("games_ended", transition, {"court_ids": courts})

    # ------------------------------------------------------------------
    # Roster edits
    # ------------------------------------------------------------------

    async def swap_with_waiting(self, team_id: str, queued_player_id: str, waiting_player_id: str) -> GameState:
        async with self._lock:
            transition = session_service.swap_with_waiting(
                self.state, team_id, queued_player_id, waiting_player_id
            )
            return await self._commit(
                "player_swapped",
                transition,
                {"team_id": team_id, "out": queued_player_id, "in": waiting_player_id},
            )

    async def swap_between_teams(
        self, source_team_id: str, source_player_id: str, target_team_id: str, target_player_id: str
    ) -> GameState:
        async with self._lock:
            transition = session_service.swap_between_teams(
                self.state, source_team_id, source_player_id, target_team_id, target_player_id
            )
            return await self._commit(
                "players_swapped",
                transition,
                {
                    "source_team_id": source_team_id,
                    "source_player_id": source_player_id,
                    "target_team_id": target_team_id,
                    "target_player_id": target_player_id,
                },
            )

    async def return_to_waiting(self, team_id: str, player_id: str) -> GameState:
        async with self._lock:
            transition = session_service.return_to_waiting(self.state, team_id, player_id)
            return await self._commit("player_returned", transition, {"team_id": team_id, "player_id": player_id})

    async def delete_team(self, team_id: str) -> GameState:
        async with self._lock:
            transition = session_service.delete_team(self.state, team_id)
            return await self._commit("team_deleted", transition, {"team_id": team_id})

    async def reset_session(self) -> GameState:
        """Zero every participant's stats and drop teams; the audit trail restarts."""
        async with self._lock:
            transition = session_service.reset_session(self.state)
            self.recorder.clear()
            return await self._commit(
                "session_reset", transition, {"player_count": len(transition.state.players)}
            )

    # ------------------------------------------------------------------
    # Roles
    # ------------------------------------------------------------------

    async def check_role(self, password: str) -> Role:
        """Admin on a matching password, viewer otherwise (including store failures)."""
        try:
            granted = await self.store.roles.verify(password)
        except Exception as e:
            logger.error(f"Role check failed: {e}", exc_info=True)
            granted = False
        return Role.ADMIN if granted else Role.VIEWER
