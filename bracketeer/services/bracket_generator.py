"""
Bracket generation for single elimination, round robin and Swiss.

All functions are pure: they take a team list and return unsaved match
records (``id`` is None until the store assigns one). Fewer than two teams
always produces an empty list.
"""
import random
from typing import Dict, Iterable, List, Optional, Sequence, Set

from bracketeer.models.bracket_model import (
    BracketType, MatchRecord, MatchStatus, RoundRobinMatch, SingleElimMatch, SwissMatch,
)
from bracketeer.models.team_model import TeamModel


def shuffle_teams(teams: Sequence[TeamModel], rng: Optional[random.Random] = None) -> List[TeamModel]:
    rng = rng or random
    return rng.sample(list(teams), len(teams))


def pad_to_power_of_two(teams: Sequence[Optional[TeamModel]]) -> List[Optional[TeamModel]]:
    """Pads with None up to the next power of two (no padding if already one)."""
    padded = list(teams)
    size = len(padded)
    if size == 0 or size & (size - 1) == 0:
        return padded
    target = 1
    while target < size:
        target *= 2
    padded.extend([None] * (target - size))
    return padded


def generate_single_elimination(event_id: str, teams: Sequence[TeamModel]) -> List[SingleElimMatch]:
    """
    Every (round, position) of the bracket, rounds counting down to the final
    at round 0. Only the first round (the highest round number) gets teams:
    position p takes seeds 2p and 2p+1 of the padded list, in input order.
    """
    if len(teams) < 2:
        return []

    padded = pad_to_power_of_two(teams)
    num_rounds = len(padded).bit_length() - 1 # log2 of a power of two
    first_round = num_rounds - 1

    matches: List[SingleElimMatch] = []
    for round_number in range(first_round, -1, -1):
        for position in range(2 ** round_number):
            match = SingleElimMatch(event_id=event_id, round=round_number, position=position)
            if round_number == first_round:
                team_a = padded[position * 2]
                team_b = padded[position * 2 + 1]
                match.team_a_id = team_a.id if team_a else None
                match.team_b_id = team_b.id if team_b else None
            matches.append(match)
    return matches


def generate_round_robin(event_id: str, teams: Sequence[TeamModel]) -> List[RoundRobinMatch]:
    """Every unordered pair (i, j), i < j, once; all in round 0."""
    if len(teams) < 2:
        return []

    team_ids = [t.id for t in teams]
    matches: List[RoundRobinMatch] = []
    for i in range(len(team_ids)):
        for j in range(i + 1, len(team_ids)):
            matches.append(RoundRobinMatch(
                event_id=event_id,
                round=0,
                position=len(matches),
                team_a_id=team_ids[i],
                team_b_id=team_ids[j],
            ))
    return matches


def generate_swiss(
    event_id: str,
    teams: Sequence[TeamModel],
    round_number: int = 0,
    existing_matches: Iterable[MatchRecord] = (),
) -> List[SwissMatch]:
    """
    Round 0 sorts the teams by id and pairs across the midpoint: first half
    in order against the second half reversed. With an odd count the last
    team of the first half gets a bye (``team_b_id`` None).

    Seeding by raw id rather than standing is the established behaviour and is
    kept as is. With ``round_number`` above 0, as a Swiss phase transition
    passes, pairing is record-based through generate_swiss_round.
    """
    if len(teams) < 2:
        return []
    if round_number > 0:
        return generate_swiss_round(event_id, teams, round_number, existing_matches)

    ordered = sorted(teams, key=lambda t: t.id)
    mid = (len(ordered) + 1) // 2
    first = ordered[:mid]
    second = list(reversed(ordered[mid:]))

    matches: List[SwissMatch] = []
    for i, team in enumerate(first):
        opponent = second[i] if i < len(second) else None
        matches.append(SwissMatch(
            event_id=event_id,
            round=round_number,
            position=i,
            team_a_id=team.id,
            team_b_id=opponent.id if opponent else None,
        ))
    return matches


def compute_swiss_records(teams: Sequence[TeamModel], existing_matches: Iterable[MatchRecord]) -> Dict[str, dict]:
    """Wins, losses, opponents met and strength of schedule (sum of opponents' wins)."""
    records = {t.id: {"wins": 0, "losses": 0, "sos": 0, "opponents": set()} for t in teams}
    played = [m for m in existing_matches
              if m.team_a_id in records and m.team_b_id in records]

    for match in played:
        if match.status != MatchStatus.COMPLETED:
            continue
        records[match.team_a_id]["opponents"].add(match.team_b_id)
        records[match.team_b_id]["opponents"].add(match.team_a_id)
        if match.winner_id == match.team_a_id:
            records[match.team_a_id]["wins"] += 1
            records[match.team_b_id]["losses"] += 1
        elif match.winner_id == match.team_b_id:
            records[match.team_b_id]["wins"] += 1
            records[match.team_a_id]["losses"] += 1

    for match in played:
        records[match.team_a_id]["sos"] += records[match.team_b_id]["wins"]
        records[match.team_b_id]["sos"] += records[match.team_a_id]["wins"]

    return records


def generate_swiss_round(
    event_id: str,
    teams: Sequence[TeamModel],
    round_number: int,
    existing_matches: Iterable[MatchRecord],
) -> List[SwissMatch]:
    """
    Greedy record-based pairing. Teams are ordered by wins then SOS; each
    unpaired team takes the next unpaired team with the same record that it
    has not met, else any unpaired team it has not met, else a bye.
    Rematch avoidance is best effort.
    """
    if len(teams) < 2:
        return []

    records = compute_swiss_records(teams, existing_matches)
    ordered = sorted(teams, key=lambda t: (-records[t.id]["wins"], -records[t.id]["sos"]))

    used: Set[str] = set()
    matches: List[SwissMatch] = []

    def add_match(team_a_id: str, team_b_id: Optional[str]) -> None:
        matches.append(SwissMatch(
            event_id=event_id,
            round=round_number,
            position=len(matches),
            team_a_id=team_a_id,
            team_b_id=team_b_id,
        ))

    for i, team in enumerate(ordered):
        if team.id in used:
            continue
        record = records[team.id]
        opponent = None

        for candidate in ordered[i + 1:]:
            if candidate.id in used:
                continue
            if records[candidate.id]["wins"] != record["wins"]:
                break
            if candidate.id in record["opponents"]:
                continue
            opponent = candidate
            break

        if opponent is None:
            for candidate in ordered[i + 1:]:
                if candidate.id in used or candidate.id in record["opponents"]:
                    continue
                opponent = candidate
                break

        used.add(team.id)
        if opponent is not None:
            used.add(opponent.id)
            add_match(team.id, opponent.id)
        else:
            add_match(team.id, None)

    return matches


def generate_bracket(
    bracket_type: BracketType,
    event_id: str,
    teams: Sequence[TeamModel],
    round_number: int = 0,
    existing_matches: Iterable[MatchRecord] = (),
) -> List[MatchRecord]:
    bracket_type = BracketType(bracket_type)
    if bracket_type == BracketType.SINGLE_ELIM:
        return generate_single_elimination(event_id, teams)
    elif bracket_type == BracketType.ROUND_ROBIN:
        return generate_round_robin(event_id, teams)
    elif bracket_type == BracketType.SWISS:
        return generate_swiss(event_id, teams, round_number, existing_matches)
    return []
