"""
Tests for the engine orchestrator: optimistic apply, remote writes, re-sync
and audit.
"""

from unittest.mock import AsyncMock

import pytest

from gamematch.models.schemas import CourtStatus, PlayerState, Role, TeamState
from gamematch.services import session_service
from gamematch.services.errors import InsufficientPlayersError, NoAvailableCourtError
from gamematch.services.game_engine import GameEngine
from conftest import T0, make_memory_store, set_store_failing


def _engine(store, clock, courts_count=2, team_size=2):
    state = session_service.initial_state(
        clock(), courts_count=courts_count, team_size=team_size, session_id="session-1"
    )
    return GameEngine(store, state=state, clock=clock)


async def _add_players(engine, count):
    return await engine.add_players([{"name": f"Player {i}", "rank": "B"} for i in range(count)])


@pytest.mark.asyncio
async def test_add_player_is_persisted_and_audited(memory_store, clock):
    engine = _engine(memory_store, clock)

    player = await engine.add_player("Kim", rank="A", gender="male")

    assert player.id in memory_store.players.records
    assert memory_store.players.records[player.id]["name"] == "Kim"
    assert engine.state.get_player(player.id) is not None
    assert [e.type for e in engine.audit_log()] == ["player_added"]


@pytest.mark.asyncio
async def test_rejected_call_changes_nothing(memory_store, clock):
    engine = _engine(memory_store, clock)
    await _add_players(engine, 1)
    before = engine.state

    with pytest.raises(InsufficientPlayersError):
        await engine.auto_match()

    assert engine.state is before
    assert [e.type for e in engine.audit_log()] == ["players_added"]


@pytest.mark.asyncio
async def test_remote_outage_keeps_local_change_and_audits(memory_store, clock):
    engine = _engine(memory_store, clock)
    set_store_failing(memory_store)

    player = await engine.add_player("Lee")

    assert engine.state.get_player(player.id) is not None
    assert memory_store.players.records == {}
    assert [e.type for e in engine.audit_log()] == ["player_added"]


@pytest.mark.asyncio
async def test_failed_write_is_repaired_from_the_store(memory_store, clock):
    engine = _engine(memory_store, clock)
    await _add_players(engine, 4)
    set_store_failing(memory_store, reads=False, writes=True)

    await engine.auto_match()

    # The team never reached the store, so the re-read drops it again
    assert engine.state.teams == []
    assert all(p.state == PlayerState.WAITING for p in engine.state.players)
    assert engine.audit_log()[-1].type == "teams_matched"


@pytest.mark.asyncio
async def test_full_game_cycle(memory_store, clock):
    engine = _engine(memory_store, clock)
    await _add_players(engine, 4)

    teams = await engine.auto_match()
    assert len(teams) == 2
    assert all(r["state"] == "queued" for r in memory_store.players.records.values())

    await engine.start_queued_games()
    assert all(c.status == CourtStatus.OCCUPIED for c in engine.state.courts)
    assert all(r["state"] == "playing" for r in memory_store.teams.records.values())

    clock.advance(minutes=3)
    assert engine.elapsed("court-1") == 180000

    await engine.end_game("court-1")
    assert engine.state.get_court("court-1").status == CourtStatus.AVAILABLE
    assert teams[0].id not in memory_store.teams.records
    for pid in teams[0].player_ids:
        assert memory_store.players.records[pid]["game_count"] == 1

    await engine.end_all_games()
    assert memory_store.teams.records == {}
    assert {p.state for p in engine.state.players} == {PlayerState.PRIORITY}
    assert [e.type for e in engine.audit_log()] == [
        "players_added",
        "teams_matched",
        "games_started",
        "game_ended",
        "games_ended",
    ]


@pytest.mark.asyncio
async def test_start_game_checks_the_store_first(memory_store, clock):
    first = _engine(memory_store, clock)
    await _add_players(first, 4)
    team_a, team_b = await first.auto_match()

    second = _engine(memory_store, clock)
    await second.load()
    await first.start_game(team_a.id, court_id="court-1")

    # The second client still thinks court-1 is free
    assert second.state.get_court("court-1").status == CourtStatus.AVAILABLE
    with pytest.raises(NoAvailableCourtError):
        await second.start_game(team_b.id, court_id="court-1")

    assert second.state.get_court("court-1").current_team_id == team_a.id
    assert memory_store.teams.records[team_b.id]["state"] == "queued"


@pytest.mark.asyncio
async def test_load_applies_store_settings_and_purges_finished(clock):
    store = make_memory_store(
        teams=[{"id": "t-old", "player_ids": [], "state": "finished", "created_at": T0.isoformat()}],
        settings={"courts_count": "3", "session_name": "Club night"},
    )
    engine = _engine(store, clock)

    state = await engine.load()

    assert len(state.courts) == 3
    assert state.session.name == "Club night"
    assert store.teams.records == {}


@pytest.mark.asyncio
async def test_update_session_writes_settings(memory_store, clock):
    engine = _engine(memory_store, clock)
    await engine.update_session(courts_count=4, team_size=None)
    assert memory_store.settings.records["courts_count"]["value"] == "4"
    assert len(engine.state.courts) == 4


@pytest.mark.asyncio
async def test_roster_edits(memory_store, clock):
    engine = _engine(memory_store, clock, courts_count=1)
    players = await _add_players(engine, 3)
    (team,) = await engine.auto_match()
    waiting = next(p for p in players if p.id not in team.player_ids)

    await engine.swap_with_waiting(team.id, team.player_ids[0], waiting.id)
    assert waiting.id in memory_store.teams.records[team.id]["player_ids"]

    await engine.return_to_waiting(team.id, waiting.id)
    assert memory_store.players.records[waiting.id]["state"] == "waiting"

    await engine.delete_team(team.id)
    assert engine.state.teams == []
    assert all(p.state == PlayerState.WAITING for p in engine.state.players)


@pytest.mark.asyncio
async def test_player_admin_operations(memory_store, clock):
    engine = _engine(memory_store, clock)
    kim, lee = await _add_players(engine, 2)

    await engine.set_player_state([kim.id], PlayerState.RESTING)
    await engine.adjust_game_count(lee.id, 2)
    await engine.update_player(lee.id, name="Lee")

    assert memory_store.players.records[kim.id]["state"] == "resting"
    assert memory_store.players.records[lee.id]["game_count"] == 2
    assert engine.state.get_player(lee.id).name == "Lee"

    await engine.delete_player(kim.id)
    assert kim.id not in memory_store.players.records


@pytest.mark.asyncio
async def test_reset_restarts_the_audit_trail(memory_store, clock):
    engine = _engine(memory_store, clock)
    await _add_players(engine, 4)
    await engine.auto_match()
    await engine.start_queued_games()

    await engine.reset_session()

    assert [e.type for e in engine.audit_log()] == ["session_reset"]
    assert engine.state.teams == []
    assert memory_store.teams.records == {}
    assert all(r["state"] == "waiting" and r["game_count"] == 0 for r in memory_store.players.records.values())


@pytest.mark.asyncio
async def test_create_session_clears_the_store(memory_store, clock):
    engine = _engine(memory_store, clock)
    await _add_players(engine, 4)
    await engine.auto_match()

    await engine.create_session(name="Saturday", courts_count=3, team_size=2)

    assert engine.state.players == []
    assert memory_store.players.records == {}
    assert memory_store.teams.records == {}
    assert memory_store.settings.records["session_name"]["value"] == "Saturday"
    assert len(engine.state.courts) == 3


@pytest.mark.asyncio
async def test_pause_toggle_stays_local(memory_store, clock):
    engine = _engine(memory_store, clock)
    memory_store.players.get_all = AsyncMock(return_value=[])
    await engine.toggle_court_pause("court-1")
    assert engine.state.get_court("court-1").is_paused
    memory_store.players.get_all.assert_not_awaited()
    assert engine.audit_log()[-1].payload == {"court_id": "court-1", "is_paused": True}


class TestRoleCheck:
    @pytest.mark.asyncio
    async def test_admin_and_viewer(self, memory_store, clock):
        engine = _engine(memory_store, clock)
        assert await engine.check_role("secret") == Role.ADMIN
        assert await engine.check_role("guess") == Role.VIEWER

    @pytest.mark.asyncio
    async def test_store_failure_means_viewer(self, memory_store, clock):
        engine = _engine(memory_store, clock)
        memory_store.roles.verify = AsyncMock(side_effect=ConnectionError("down"))
        assert await engine.check_role("secret") == Role.VIEWER


@pytest.mark.asyncio
async def test_teams_survive_reload(memory_store, clock):
    engine = _engine(memory_store, clock)
    await _add_players(engine, 4)
    team, _ = await engine.auto_match()
    await engine.start_game(team.id)

    reloaded = _engine(memory_store, clock)
    await reloaded.load()

    assert reloaded.state.get_team(team.id).state == TeamState.PLAYING
    court = reloaded.state.get_court(reloaded.state.get_team(team.id).assigned_court_id)
    assert court.current_team_id == team.id


@pytest.mark.parametrize("local_courts", [1, 2])
@pytest.mark.asyncio
async def test_reload_after_shrinking_courts_mid_game(memory_store, clock, local_courts):
    engine = _engine(memory_store, clock)
    await _add_players(engine, 4)
    await engine.auto_match()
    await engine.start_queued_games()
    await engine.update_session(courts_count=1)
    assert len(engine.state.courts) == 2

    reloaded = _engine(memory_store, clock, courts_count=local_courts)
    await reloaded.load()

    playing = {t.id for t in reloaded.state.teams if t.state == TeamState.PLAYING}
    assert playing == {c.current_team_id for c in reloaded.state.courts}

    await reloaded.end_game("court-2")
    assert [c.id for c in reloaded.state.courts] == ["court-1"]
    assert reloaded.state.get_court("court-1").status == CourtStatus.OCCUPIED


@pytest.mark.asyncio
async def test_roster_outlives_the_session(memory_store, clock):
    engine = _engine(memory_store, clock)
    kim = await engine.add_member("Kim", rank="A")
    lee, _ = await engine.add_members([{"name": "Lee"}, {"name": "Park"}])
    await engine.update_member(lee.id, gender="female")

    added = await engine.add_players_from_members([kim.id, kim.id])
    assert [p.name for p in added] == ["Kim", "Kim(2)"]
    assert {r["name"] for r in memory_store.players.records.values()} == {"Kim", "Kim(2)"}

    await engine.create_session(name="Next week")
    assert engine.state.players == []
    assert set(memory_store.members.records) == {m.id for m in engine.state.members}
    assert memory_store.members.records[lee.id]["gender"] == "female"

    reloaded = _engine(memory_store, clock)
    await reloaded.load()
    assert {m.name for m in reloaded.state.members} == {"Kim", "Lee", "Park"}

    await reloaded.delete_member(kim.id)
    members = await reloaded.reset_members([{"name": "Choi"}])
    assert [m.name for m in members] == ["Choi"]
    assert [r["name"] for r in memory_store.members.records.values()] == ["Choi"]
    assert [e.type for e in reloaded.audit_log()] == ["member_deleted", "members_reset"]
