"""
Tests for the SQLAlchemy-backed store against an in-memory SQLite database.
"""

import pytest
import pytest_asyncio

from gamematch.database.models import PlayerRecord, SettingRecord, TeamRecord
from gamematch.models.schemas import PlayerState, RemoteEffect, Team, TeamState
from gamematch.services.db_store import SqlCollectionStore, SqlRoleStore, create_database_store
from gamematch.utils.datetime_utils import parse_timestamp
from conftest import T0, make_player

# session_factory fixture is provided by conftest.py


@pytest_asyncio.fixture
async def players(session_factory):
    return SqlCollectionStore(PlayerRecord, session_factory)


@pytest_asyncio.fixture
async def teams(session_factory):
    return SqlCollectionStore(TeamRecord, session_factory)


@pytest.mark.asyncio
async def test_add_and_read_back_player(players):
    player = make_player("p1", rank="A", gender="female", game_count=2, last_game_end_at=T0, teammate_history={"p2": 1})
    await players.add(player.to_record())

    records = await players.get_all()

    assert len(records) == 1
    record = records[0]
    assert record["id"] == "p1"
    assert record["rank"] == "A"
    assert record["teammate_history"] == {"p2": 1}
    assert parse_timestamp(record["last_game_end_at"]) == T0
    restored = type(player).model_validate(record)
    assert restored.game_count == 2
    assert restored.created_at == T0


@pytest.mark.asyncio
async def test_add_is_an_upsert(players):
    await players.add(make_player("p1", name="Kim").to_record())
    await players.add(make_player("p1", name="Kim Jr").to_record())
    records = await players.get_all()
    assert [r["name"] for r in records] == ["Kim Jr"]


@pytest.mark.asyncio
async def test_update(players):
    await players.add(make_player("p1").to_record())

    assert await players.update("p1", {"state": "resting", "game_count": 3}) is True
    assert await players.update("missing", {"state": "resting"}) is False

    record = (await players.get_all())[0]
    assert record["state"] == "resting"
    assert record["game_count"] == 3


@pytest.mark.asyncio
async def test_delete_missing_is_not_an_error(players):
    await players.add(make_player("p1").to_record())
    assert await players.delete("p1") is True
    assert await players.delete("p1") is False
    assert await players.get_all() == []


@pytest.mark.asyncio
async def test_batches(players):
    await players.add_batch([make_player(f"p{i}").to_record() for i in range(3)])

    updated = await players.update_batch(
        [
            {"id": "p0", "updates": {"state": "queued"}},
            {"id": "p1", "updates": {"state": "queued"}},
            {"id": "nope", "updates": {"state": "queued"}},
        ]
    )
    assert updated == 2

    assert await players.delete_batch(["p0", "p2", "nope"]) == 2
    records = await players.get_all()
    assert [(r["id"], r["state"]) for r in records] == [("p1", "queued")]


@pytest.mark.asyncio
async def test_team_timestamps_round_trip(teams):
    team = Team(
        id="t1",
        name="Team 1",
        player_ids=["p1", "p2"],
        state=TeamState.PLAYING,
        assigned_court_id="court-1",
        started_at=T0,
        created_at=T0,
    )
    await teams.add(team.to_record())
    restored = Team.model_validate((await teams.get_all())[0])
    assert restored == team


@pytest.mark.asyncio
async def test_unknown_fields_are_ignored(teams):
    await teams.add({"id": "t1", "player_ids": [], "colour": "red"})
    assert "colour" not in (await teams.get_all())[0]


@pytest.mark.asyncio
async def test_settings_use_key_as_id(session_factory):
    settings = SqlCollectionStore(SettingRecord, session_factory, key_column="key")
    await settings.add_batch([{"id": "courts_count", "value": "3"}, {"id": "team_size", "value": "4"}])
    await settings.add({"id": "courts_count", "value": "5"})
    records = sorted(await settings.get_all(), key=lambda r: r["id"])
    assert records == [{"id": "courts_count", "value": "5"}, {"id": "team_size", "value": "4"}]


class TestRoleStore:
    @pytest.mark.asyncio
    async def test_verify(self, session_factory):
        roles = SqlRoleStore(session_factory)
        assert await roles.verify("secret") is False

        await roles.set_password("secret")

        assert await roles.verify("secret") is True
        assert await roles.verify("wrong") is False
        assert await roles.verify("") is False

    @pytest.mark.asyncio
    async def test_ensure_password_does_not_overwrite(self, session_factory):
        roles = SqlRoleStore(session_factory)
        assert await roles.ensure_password("first") is True
        assert await roles.ensure_password("second") is False
        assert await roles.ensure_password(None) is False
        assert await roles.verify("first") is True


@pytest.mark.asyncio
async def test_database_store_snapshot_and_dispatch(session_factory):
    store = create_database_store(session_factory)
    await store.dispatch(
        RemoteEffect(resource="players", op="add", record_id="p1", payload=make_player("p1").to_record())
    )
    await store.dispatch(
        RemoteEffect(resource="settings", op="add_batch", payload=[{"id": "courts_count", "value": "3"}])
    )
    await store.dispatch(
        RemoteEffect(resource="players", op="update", record_id="p1", payload={"state": "priority"})
    )
    await store.roles.set_password("secret")

    snapshot = await store.fetch_snapshot()

    assert [p.id for p in snapshot.players] == ["p1"]
    assert snapshot.players[0].state == PlayerState.PRIORITY
    assert snapshot.settings == {"courts_count": "3"}
    assert snapshot.teams == []


@pytest.mark.asyncio
async def test_members_round_trip_into_the_snapshot(session_factory):
    store = create_database_store(session_factory)
    await store.dispatch(
        RemoteEffect(
            resource="members",
            op="add_batch",
            payload=[
                {"id": "m1", "name": "Kim", "rank": "A", "gender": "male", "created_at": T0.isoformat()},
                {"id": "m2", "name": "Lee", "rank": None, "gender": "녀", "created_at": T0.isoformat()},
            ],
        )
    )
    await store.dispatch(RemoteEffect(resource="members", op="update", record_id="m1", payload={"rank": "S"}))
    await store.dispatch(RemoteEffect(resource="members", op="delete", record_id="m-missing"))

    snapshot = await store.fetch_snapshot()

    members = sorted(snapshot.members, key=lambda m: m.id)
    assert [(m.id, m.rank.value if m.rank else None) for m in members] == [("m1", "S"), ("m2", None)]
    assert members[1].gender.value == "female"
    assert parse_timestamp(members[0].created_at) == T0
