"""
Standings per bracket format, plus the global ranking used for phase
transitions. Every function is pure over (matches, teams). Matches naming a
team that is not in the roster are ignored.
"""
from typing import Dict, Iterable, List, Sequence

from bracketeer.models.bracket_model import BracketType, MatchRecord, MatchStatus
from bracketeer.models.standings_model import StandingRecord
from bracketeer.models.team_model import TeamModel
from bracketeer.services.advancement_service import native_round_map

WIN_POINTS = 3
DRAW_POINTS = 1

Standings = Dict[str, StandingRecord]


def _empty_standings(teams: Sequence[TeamModel]) -> Standings:
    return {t.id: StandingRecord(team_id=t.id, name=t.name) for t in teams}


def _played(matches: Iterable[MatchRecord], standings: Standings) -> List[MatchRecord]:
    """Matches with both teams present and known."""
    return [m for m in matches if m.team_a_id in standings and m.team_b_id in standings]


def compute_single_elim_standings(matches: Iterable[MatchRecord], teams: Sequence[TeamModel]) -> Standings:
    """
    Wins and losses from completed matches; a loser is eliminated. The
    completed final sets placement 1 for its winner and 2 for its loser.
    """
    standings = _empty_standings(teams)
    matches = [m for m in matches if m.bracket_type == BracketType.SINGLE_ELIM.value]

    for match in _played(matches, standings):
        if match.status != MatchStatus.COMPLETED or not match.winner_id:
            continue
        loser_id = match.loser_id()
        standings[match.winner_id].wins += 1
        standings[loser_id].losses += 1
        standings[loser_id].is_eliminated = True

    native = native_round_map(matches)
    for match in matches:
        if native[(match.group_id, match.round)] != 0 or not match.is_completed or not match.winner_id:
            continue
        if match.winner_id in standings:
            standings[match.winner_id].placement = 1
        loser_id = match.loser_id()
        if loser_id in standings:
            standings[loser_id].placement = 2

    return standings


def compute_round_robin_standings(matches: Iterable[MatchRecord], teams: Sequence[TeamModel]) -> Standings:
    """
    Scores for/against count every match, completed or not. Results and
    points only count completed ones; equal scores without a winner is a draw.
    """
    standings = _empty_standings(teams)

    for match in _played(matches, standings):
        team_a, team_b = standings[match.team_a_id], standings[match.team_b_id]
        score_a, score_b = match.team_a_score or 0, match.team_b_score or 0

        team_a.score_for += score_a
        team_a.score_against += score_b
        team_b.score_for += score_b
        team_b.score_against += score_a

        if match.status != MatchStatus.COMPLETED:
            continue
        if match.winner_id == match.team_a_id:
            team_a.wins += 1
            team_a.points += WIN_POINTS
            team_b.losses += 1
        elif match.winner_id == match.team_b_id:
            team_b.wins += 1
            team_b.points += WIN_POINTS
            team_a.losses += 1
        elif score_a == score_b:
            team_a.draws += 1
            team_b.draws += 1
            team_a.points += DRAW_POINTS
            team_b.points += DRAW_POINTS

    return standings


def compute_swiss_standings(matches: Iterable[MatchRecord], teams: Sequence[TeamModel]) -> Standings:
    """Round-robin points without draws, plus a running score differential over all matches."""
    standings = _empty_standings(teams)

    for match in _played(matches, standings):
        team_a, team_b = standings[match.team_a_id], standings[match.team_b_id]
        score_a, score_b = match.team_a_score or 0, match.team_b_score or 0

        team_a.score_diff += score_a - score_b
        team_b.score_diff += score_b - score_a

        if match.status != MatchStatus.COMPLETED:
            continue
        if match.winner_id == match.team_a_id:
            team_a.wins += 1
            team_a.points += WIN_POINTS
            team_b.losses += 1
        elif match.winner_id == match.team_b_id:
            team_b.wins += 1
            team_b.points += WIN_POINTS
            team_a.losses += 1

    return standings


STANDINGS_CALCULATORS = {
    BracketType.SINGLE_ELIM.value: compute_single_elim_standings,
    BracketType.ROUND_ROBIN.value: compute_round_robin_standings,
    BracketType.SWISS.value: compute_swiss_standings,
}


def compute_standings(bracket_type: BracketType, matches: Iterable[MatchRecord], teams: Sequence[TeamModel]) -> Standings:
    calculator = STANDINGS_CALCULATORS[BracketType(bracket_type).value]
    return calculator(list(matches), teams)


def rank_standings(standings: Standings, teams: Sequence[TeamModel]) -> List[StandingRecord]:
    """
    Orders by points, wins, score differential, then the team's running
    score, all descending. Remaining ties keep roster order. Sets ``rank``
    on each record (1-based).
    """
    scores = {t.id: t.score or 0 for t in teams}
    in_roster_order = [standings[t.id] for t in teams if t.id in standings]
    ranked = sorted(
        in_roster_order,
        key=lambda s: (s.points, s.wins, s.score_diff, scores.get(s.team_id, 0)),
        reverse=True,
    )
    for i, record in enumerate(ranked, start=1):
        record.rank = i
    return ranked
