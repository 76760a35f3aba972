import pytest
from sqlalchemy.ext.asyncio import async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from bracketeer.core.database import create_all
from bracketeer.models.bracket_model import RoundRobinMatch, SingleElimMatch
from bracketeer.services.bracket_generator import generate_single_elimination
from bracketeer.services.match_store import SqlAlchemyMatchStore

from conftest import EVENT_ID, make_teams

pytestmark = pytest.mark.anyio


@pytest.fixture
async def store():
    engine = create_async_engine("sqlite+aiosqlite://", poolclass=StaticPool)
    await create_all(bind=engine)
    sql_store = SqlAlchemyMatchStore(async_sessionmaker(bind=engine, expire_on_commit=False))
    await sql_store.add_teams(make_teams("A", "B", "C", scores={"A": 4}))
    yield sql_store
    await engine.dispose()


class TestMatches:

    async def test_insert_assigns_ids_and_round_trips_variants(self, store):
        rr = RoundRobinMatch(event_id=EVENT_ID, round=0, position=0, team_a_id="A", team_b_id="B")
        se = SingleElimMatch(event_id=EVENT_ID, round=0, position=0, team_a_id="A", team_b_id="C", group_id="Playoffs")

        inserted = await store.insert_matches([rr, se])
        listed = await store.list_matches(EVENT_ID)

        assert all(m.id for m in inserted)
        assert {type(m) for m in listed} == {RoundRobinMatch, SingleElimMatch}
        assert next(m for m in listed if m.group_id == "Playoffs").team_b_id == "C"

    async def test_update_match(self, store):
        [match] = await store.insert_matches(
            [SingleElimMatch(event_id=EVENT_ID, round=1, position=0, team_a_id="A", team_b_id="B")]
        )

        updated = await store.update_match(match.id, {"winner_id": "B", "status": "completed", "next_match_slot": "a"})

        assert updated.winner_id == "B"
        assert updated.is_completed
        assert updated.next_match_slot == "a"

    async def test_update_missing_match(self, store):
        assert await store.update_match("missing", {"status": "live"}) is None

    async def test_update_rejects_unknown_fields(self, store):
        [match] = await store.insert_matches([RoundRobinMatch(event_id=EVENT_ID, round=0, position=0)])
        with pytest.raises(ValueError):
            await store.update_match(match.id, {"colour": "red"})

    async def test_delete_only_touches_the_event(self, store):
        await store.insert_matches(generate_single_elimination(EVENT_ID, make_teams("A", "B", "C")))
        await store.insert_matches([RoundRobinMatch(event_id="other", round=0, position=0)])

        deleted = await store.delete_matches(EVENT_ID)

        assert deleted == 3
        assert await store.list_matches(EVENT_ID) == []
        assert len(await store.list_matches("other")) == 1


class TestTeamsAndScores:

    async def test_list_teams(self, store):
        teams = await store.list_teams(EVENT_ID)
        assert [t.id for t in teams] == ["A", "B", "C"]
        assert teams[0].score == 4

    async def test_apply_score_delta(self, store):
        change = await store.apply_score_delta(EVENT_ID, "A", 3, "op-1", changed_by="judge")

        assert (change.points_before, change.points_after, change.delta) == (4, 7, 3)
        teams = await store.list_teams(EVENT_ID)
        assert teams[0].score == 7

    async def test_same_operation_applies_once(self, store):
        await store.apply_score_delta(EVENT_ID, "A", 3, "op-1")
        again = await store.apply_score_delta(EVENT_ID, "A", 3, "op-1")

        assert again.id == "op-1"
        assert (await store.list_teams(EVENT_ID))[0].score == 7

    async def test_unknown_team(self, store):
        assert await store.apply_score_delta(EVENT_ID, "Z", 1, "op-1") is None

    async def test_last_change_skips_undone(self, store):
        await store.apply_score_delta(EVENT_ID, "A", 3, "op-1")
        await store.apply_score_delta(EVENT_ID, "B", 2, "op-2")
        await store.apply_score_delta(EVENT_ID, "B", -2, "undo-op-2", undo_of="op-2")

        last = await store.last_score_change(EVENT_ID)

        assert last.id == "op-1"

    async def test_nothing_to_undo(self, store):
        assert await store.last_score_change(EVENT_ID) is None
