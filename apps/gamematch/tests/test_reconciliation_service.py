"""
Tests for rebuilding local state from a remote snapshot.
"""

from datetime import timedelta

from gamematch.models.schemas import CourtStatus, Member, PlayerState, RemoteSnapshot, Team, TeamState
from gamematch.services import reconciliation_service, session_service
from conftest import T0, make_player


def _state(courts_count=2):
    return session_service.initial_state(T0, courts_count=courts_count, team_size=2, session_id="session-1")


def _playing(team_id, player_ids, court_id, created_at=T0):
    return Team(
        id=team_id,
        player_ids=player_ids,
        state=TeamState.PLAYING,
        assigned_court_id=court_id,
        started_at=created_at,
        created_at=created_at,
    )


def test_ghost_assignment_is_healed():
    state = _state()
    courts = list(state.courts)
    courts[0] = courts[0].model_copy(update={"status": CourtStatus.OCCUPIED, "current_team_id": "t-ghost"})
    state = state.model_copy(
        update={
            "courts": courts,
            "players": [make_player("p1", state=PlayerState.PLAYING)],
            "teams": [_playing("t-ghost", ["p1"], "court-1")],
        }
    )
    snapshot = RemoteSnapshot(players=[make_player("p1", state=PlayerState.PLAYING)], teams=[])

    healed, effects = reconciliation_service.reconcile(state, snapshot)

    assert healed.teams == []
    assert healed.get_court("court-1").status == CourtStatus.AVAILABLE
    assert healed.get_court("court-1").current_team_id is None
    assert healed.get_player("p1").state == PlayerState.WAITING
    assert effects == []


def test_playing_team_occupies_its_court_and_members():
    snapshot = RemoteSnapshot(
        players=[make_player("p1"), make_player("p2"), make_player("p3", state=PlayerState.QUEUED)],
        teams=[_playing("t1", ["p1", "p2"], "court-2")],
    )

    state, _ = reconciliation_service.reconcile(_state(), snapshot)

    assert state.get_court("court-2").current_team_id == "t1"
    assert state.get_court("court-1").status == CourtStatus.AVAILABLE
    assert state.get_player("p1").state == PlayerState.PLAYING
    assert state.get_player("p3").state == PlayerState.WAITING


def test_older_team_keeps_a_shared_member():
    snapshot = RemoteSnapshot(
        players=[make_player("p1"), make_player("p2"), make_player("p3")],
        teams=[
            Team(id="t-new", player_ids=["p1", "p3"], created_at=T0 + timedelta(minutes=1)),
            Team(id="t-old", player_ids=["p1", "p2"], created_at=T0),
        ],
    )

    state, _ = reconciliation_service.reconcile(_state(), snapshot)

    assert state.get_team("t-old").player_ids == ["p1", "p2"]
    assert state.get_team("t-new").player_ids == ["p3"]


def test_second_team_on_a_court_is_ignored():
    snapshot = RemoteSnapshot(
        players=[make_player(f"p{i}") for i in range(4)],
        teams=[
            _playing("t1", ["p0", "p1"], "court-1"),
            _playing("t2", ["p2", "p3"], "court-1", created_at=T0 + timedelta(seconds=5)),
        ],
    )
    state, _ = reconciliation_service.reconcile(_state(), snapshot)
    assert state.get_court("court-1").current_team_id == "t1"
    assert state.get_court("court-2").status == CourtStatus.AVAILABLE


def test_finished_teams_are_purged():
    snapshot = RemoteSnapshot(
        players=[make_player("p1"), make_player("p2")],
        teams=[Team(id="t-done", player_ids=["p1", "p2"], state=TeamState.FINISHED, created_at=T0)],
    )

    state, effects = reconciliation_service.reconcile(_state(), snapshot)

    assert state.teams == []
    assert len(effects) == 1
    assert (effects[0].resource, effects[0].op, effects[0].payload) == ("teams", "delete_batch", ["t-done"])


def test_reconcile_is_idempotent():
    snapshot = RemoteSnapshot(
        players=[make_player(f"p{i}") for i in range(5)],
        teams=[
            _playing("t1", ["p0", "p1"], "court-1"),
            Team(id="t2", player_ids=["p2", "p3"], created_at=T0),
        ],
        settings={"courts_count": "3"},
    )

    once, _ = reconciliation_service.reconcile(_state(), snapshot)
    twice, _ = reconciliation_service.reconcile(once, snapshot)

    assert twice.model_dump() == once.model_dump()


def test_pause_flag_survives_only_on_the_same_team():
    snapshot = RemoteSnapshot(players=[make_player("p0"), make_player("p1")], teams=[_playing("t1", ["p0", "p1"], "court-1")])
    state, _ = reconciliation_service.reconcile(_state(), snapshot)
    state, _ = session_service.toggle_court_pause(state, "court-1")

    again, _ = reconciliation_service.reconcile(state, snapshot)
    assert again.get_court("court-1").is_paused

    cleared, _ = reconciliation_service.reconcile(state, RemoteSnapshot(players=snapshot.players))
    assert not cleared.get_court("court-1").is_paused


def test_roster_is_taken_from_the_store():
    state = _state().model_copy(update={"members": [Member(id="m-stale", name="Gone", created_at=T0)]})
    snapshot = RemoteSnapshot(members=[Member(id="m1", name="Kim", created_at=T0)])

    state, effects = reconciliation_service.reconcile(state, snapshot)

    assert [m.id for m in state.members] == ["m1"]
    assert effects == []


class TestRunningGamesKeepTheirCourts:
    def _snapshot(self, courts_count, *teams):
        player_ids = [pid for team in teams for pid in team.player_ids]
        return RemoteSnapshot(
            players=[make_player(pid, state=PlayerState.PLAYING) for pid in player_ids],
            teams=list(teams),
            settings={"courts_count": str(courts_count)},
        )

    def test_lower_court_count_than_running_games(self):
        snapshot = self._snapshot(
            1,
            _playing("t1", ["p1", "p2"], "court-1"),
            _playing("t2", ["p3", "p4"], "court-2", created_at=T0 + timedelta(seconds=1)),
        )

        # Fresh state: both courts locally free
        state, _ = reconciliation_service.reconcile(_state(courts_count=2), snapshot)

        assert state.session.courts_count == 1
        assert {c.current_team_id for c in state.courts} == {"t1", "t2"}
        assert all(c.status == CourtStatus.OCCUPIED for c in state.courts)

        again, _ = reconciliation_service.reconcile(state, snapshot)
        assert again.model_dump() == state.model_dump()

    def test_court_missing_locally_is_created(self):
        snapshot = self._snapshot(2, _playing("t1", ["p1", "p2"], "court-3"))

        state, _ = reconciliation_service.reconcile(_state(courts_count=1), snapshot)

        assert [c.id for c in state.courts] == ["court-1", "court-3"]
        assert state.get_court("court-3").current_team_id == "t1"
        assert state.get_player("p1").state == PlayerState.PLAYING

    def test_extra_court_goes_once_its_game_is_over(self):
        running = self._snapshot(
            1,
            _playing("t1", ["p1", "p2"], "court-1"),
            _playing("t2", ["p3", "p4"], "court-2", created_at=T0 + timedelta(seconds=1)),
        )
        state, _ = reconciliation_service.reconcile(_state(courts_count=2), running)

        after = running.model_copy(update={"teams": [running.teams[0]]})
        state, _ = reconciliation_service.reconcile(state, after)

        assert [c.id for c in state.courts] == ["court-1"]
        assert state.get_court("court-1").current_team_id == "t1"


class TestSettings:
    def test_valid_settings_are_applied(self):
        snapshot = RemoteSnapshot(
            settings={"courts_count": "3", "team_size": "4", "game_duration_min": "12", "session_name": "Club"}
        )
        state, _ = reconciliation_service.reconcile(_state(), snapshot)
        assert len(state.courts) == 3
        assert state.session.team_size == 4
        assert state.session.game_duration_min == 12
        assert state.session.name == "Club"

    def test_invalid_settings_are_ignored(self):
        snapshot = RemoteSnapshot(settings={"courts_count": "12", "team_size": "x"})
        state, _ = reconciliation_service.reconcile(_state(), snapshot)
        assert len(state.courts) == 2
        assert state.session.team_size == 2
