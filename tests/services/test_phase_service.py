import random

import pytest

from bracketeer.models.bracket_model import MatchStatus, SingleElimMatch
from bracketeer.services.advancement_service import advance_bracket
from bracketeer.services.bracket_generator import generate_round_robin, generate_single_elimination, generate_swiss
from bracketeer.services.phase_service import (
    NewRoundRequest,
    TeamSelectionMode,
    current_phase_matches,
    current_round_complete,
    default_round_request,
    next_round_number,
    plan_next_round,
    renumber_rounds,
)

from conftest import EVENT_ID, make_teams, with_ids


def complete(match, winner_id, score_a=0, score_b=0):
    return match.model_copy(update={
        "winner_id": winner_id, "status": "completed", "team_a_score": score_a, "team_b_score": score_b,
    })


@pytest.fixture
def teams():
    return make_teams("A", "B", "C", "D")


@pytest.fixture
def finished_group(teams):
    """Completed round robin: D wins everything, then C, then B."""
    results = {("A", "B"): "B", ("A", "C"): "C", ("A", "D"): "D", ("B", "C"): "C", ("B", "D"): "D", ("C", "D"): "D"}
    matches = with_ids(generate_round_robin(EVENT_ID, teams))
    return [complete(m, results[(m.team_a_id, m.team_b_id)]) for m in matches]


class TestRoundBookkeeping:

    def test_next_round_number(self, finished_group):
        assert next_round_number([]) == 0
        assert next_round_number(finished_group) == 1

    def test_current_round_complete(self, finished_group):
        assert current_round_complete([])
        assert current_round_complete(finished_group)
        unfinished = finished_group[:-1] + [finished_group[-1].model_copy(update={"status": "live"})]
        assert not current_round_complete(unfinished)

    def test_current_phase_is_the_latest_group(self, finished_group, teams):
        playoffs = renumber_rounds(generate_single_elimination(EVENT_ID, teams[:2]), "single_elim", 1, "Playoffs")
        phase = current_phase_matches(finished_group + playoffs)
        assert {m.group_id for m in phase} == {"Playoffs"}


class TestPlanNextRound:

    def test_top_two_into_single_elim(self, finished_group, teams):
        request = NewRoundRequest(
            bracket_type="single_elim", selection=TeamSelectionMode.TOP, top_n=2, phase_name="Playoffs",
        )
        result = plan_next_round(EVENT_ID, finished_group, teams, request)

        assert result.ok
        assert len(result.matches) == 1
        final = result.matches[0]
        assert final.round == 1
        assert final.group_id == "Playoffs"
        assert (final.team_a_id, final.team_b_id) == ("D", "C")
        assert result.round_number == 1
        assert result.audit.action == "bracket.new_round"
        assert result.audit.metadata["team_count"] == 2
        assert result.audit.metadata["team_selection"] == "top"

    def test_single_elim_rounds_ascend_after_existing(self, finished_group, teams):
        request = NewRoundRequest(bracket_type="single_elim", selection="all", phase_name="Playoffs")
        result = plan_next_round(EVENT_ID, finished_group, teams, request)

        rounds = sorted({m.round for m in result.matches})
        assert rounds == [1, 2]
        assert len([m for m in result.matches if m.round == 1]) == 2
        assert len([m for m in result.matches if m.round == 2]) == 1

    def test_round_robin_is_offset(self, finished_group, teams):
        request = NewRoundRequest(bracket_type="round_robin", selection="all", phase_name="Second leg")
        result = plan_next_round(EVENT_ID, finished_group, teams, request)
        assert {m.round for m in result.matches} == {1}
        assert len(result.matches) == 6

    def test_rejected_mid_round(self, finished_group, teams):
        matches = finished_group[:-1] + [finished_group[-1].model_copy(update={"winner_id": None, "status": "pending"})]
        request = NewRoundRequest(bracket_type="single_elim", selection="top", top_n=2)

        result = plan_next_round(EVENT_ID, matches, teams, request)

        assert not result.ok
        assert result.rejection.code == "round_incomplete"
        assert result.matches == []

    def test_rejected_with_one_team(self, finished_group, teams):
        request = NewRoundRequest(bracket_type="single_elim", selection="top", top_n=1)
        result = plan_next_round(EVENT_ID, finished_group, teams, request)
        assert result.rejection.code == "not_enough_teams"

    def test_top_without_count(self, finished_group, teams):
        request = NewRoundRequest(bracket_type="single_elim", selection="top")
        result = plan_next_round(EVENT_ID, finished_group, teams, request)
        assert result.rejection.code == "invalid_selection"

    def test_custom_with_unknown_team(self, finished_group, teams):
        request = NewRoundRequest(bracket_type="swiss", selection="custom", team_ids=["A", "Z"])
        result = plan_next_round(EVENT_ID, finished_group, teams, request)
        assert result.rejection.code == "unknown_teams"
        assert "Z" in result.rejection.message

    def test_custom_follows_standings_order(self, finished_group, teams):
        request = NewRoundRequest(bracket_type="single_elim", selection="custom", team_ids=["A", "B", "D"])
        result = plan_next_round(EVENT_ID, finished_group, teams, request)
        first_round = sorted([m for m in result.matches if m.round == 1], key=lambda m: m.position)
        assert (first_round[0].team_a_id, first_round[0].team_b_id) == ("D", "B")
        assert (first_round[1].team_a_id, first_round[1].team_b_id) == ("A", None)

    def test_default_phase_label(self, finished_group, teams):
        request = NewRoundRequest(bracket_type="single_elim", selection="top", top_n=2, phase_name="   ")
        result = plan_next_round(EVENT_ID, finished_group, teams, request)
        assert result.group_id == "Phase 2"
        assert result.matches[0].group_id == "Phase 2"

    def test_shuffle_keeps_the_selection(self, finished_group, teams):
        request = NewRoundRequest(bracket_type="round_robin", selection="top", top_n=3, shuffle=True)
        result = plan_next_round(EVENT_ID, finished_group, teams, request, rng=random.Random(3))
        playing = {t for m in result.matches for t in m.team_ids}
        assert playing == {"B", "C", "D"}

    def test_first_phase_without_matches(self, teams):
        request = NewRoundRequest(bracket_type="swiss", selection="all", phase_name="Groups")
        result = plan_next_round(EVENT_ID, [], teams, request)
        assert result.ok
        assert {m.round for m in result.matches} == {0}


class TestDefaultRoundRequest:

    def test_after_group_stage(self, finished_group, teams):
        request = default_round_request(finished_group, teams)
        assert request.bracket_type == "single_elim"
        assert request.selection == "top"
        assert request.top_n == 4
        assert request.phase_name == "Playoffs"

    @pytest.mark.parametrize("count,expected", [(2, 2), (3, 2), (5, 4), (12, 8)])
    def test_top_count(self, count, expected, finished_group):
        teams = make_teams(*[f"t{i:02d}" for i in range(count)])
        assert default_round_request(finished_group, teams).top_n == expected

    def test_after_single_elim_selects_latest_losers(self, teams):
        matches = with_ids(generate_single_elimination(EVENT_ID, teams))
        matches = [complete(m, m.team_a_id) if m.round == 1 else m for m in matches]

        request = default_round_request(matches, teams)

        assert request.selection == "custom"
        assert request.team_ids == ["B", "D"]
        assert request.phase_name == ""

    def test_no_matches_yet(self, teams):
        request = default_round_request([], teams)
        assert request.bracket_type == "swiss"
        assert request.selection == "all"

    def test_pending_final_does_not_count(self, teams):
        final = SingleElimMatch(event_id=EVENT_ID, round=0, position=0, status=MatchStatus.PENDING)
        request = default_round_request([final], teams)
        assert request.team_ids == []


class TestSwissContinuation:

    @pytest.fixture
    def first_swiss_round(self, teams):
        """Round 0 pairs A-D and B-C; A and B win."""
        matches = with_ids(generate_swiss(EVENT_ID, teams))
        return [complete(m, m.team_a_id) for m in matches]

    def test_pairs_by_record_without_rematches(self, first_swiss_round, teams):
        request = NewRoundRequest(bracket_type="swiss", selection="all")

        result = plan_next_round(EVENT_ID, first_swiss_round, teams, request)

        assert result.ok
        assert {m.round for m in result.matches} == {1}
        played = {frozenset(m.team_ids) for m in first_swiss_round}
        pairs = {frozenset(m.team_ids) for m in result.matches}
        assert pairs.isdisjoint(played)
        assert frozenset({"A", "B"}) in pairs

    def test_third_round_avoids_both_earlier_rounds(self, first_swiss_round, teams):
        request = NewRoundRequest(bracket_type="swiss", selection="all")
        second = plan_next_round(EVENT_ID, first_swiss_round, teams, request).matches
        history = first_swiss_round + [complete(m, m.team_a_id) for m in with_ids(second, prefix="s")]

        third = plan_next_round(EVENT_ID, history, teams, request)

        assert {m.round for m in third.matches} == {2}
        played = {frozenset(m.team_ids) for m in history}
        assert {frozenset(m.team_ids) for m in third.matches}.isdisjoint(played)

    def test_may_keep_the_current_swiss_label(self, teams):
        groups = plan_next_round(
            EVENT_ID, [], teams, NewRoundRequest(bracket_type="swiss", selection="all", phase_name="Groups"),
        )
        played = [complete(m, m.team_a_id) for m in with_ids(groups.matches)]

        result = plan_next_round(
            EVENT_ID, played, teams, NewRoundRequest(bracket_type="swiss", selection="all", phase_name="Groups"),
        )

        assert result.ok
        assert {m.group_id for m in result.matches} == {"Groups"}


class TestPhaseLabels:

    @pytest.fixture
    def played_playoffs(self, finished_group, teams):
        request = NewRoundRequest(bracket_type="single_elim", selection="top", top_n=4, phase_name="Playoffs")
        playoffs = with_ids(plan_next_round(EVENT_ID, finished_group, teams, request).matches, prefix="p")
        return finished_group + [complete(m, m.team_a_id) for m in playoffs]

    def test_reused_label_is_rejected(self, played_playoffs, teams):
        request = NewRoundRequest(bracket_type="single_elim", selection="all", phase_name="Playoffs")

        result = plan_next_round(EVENT_ID, played_playoffs, teams, request)

        assert result.rejection.code == "phase_exists"
        assert result.matches == []

    def test_default_label_is_unique(self, played_playoffs, teams):
        swiss = plan_next_round(
            EVENT_ID, played_playoffs, teams, NewRoundRequest(bracket_type="swiss", selection="all", phase_name="Swiss"),
        )
        history = played_playoffs + [complete(m, m.team_a_id) for m in with_ids(swiss.matches, prefix="s")]

        request = default_round_request(history, teams)

        assert request.phase_name == "Playoffs 2"
        assert plan_next_round(EVENT_ID, history, teams, request).ok

    def test_separate_playoffs_are_not_linked(self, teams):
        first = with_ids(renumber_rounds(generate_single_elimination(EVENT_ID, teams), "single_elim", 1, "Playoffs"), prefix="p")
        second = with_ids(renumber_rounds(generate_single_elimination(EVENT_ID, teams), "single_elim", 3, "Playoffs 2"), prefix="q")

        updated, _ = advance_bracket(first + second)

        final = next(m for m in updated if m.group_id == "Playoffs" and m.round == 2)
        assert final.next_match_id is None
        assert all(m.next_match_id.startswith("q") for m in updated if m.group_id == "Playoffs 2" and m.round == 3)
