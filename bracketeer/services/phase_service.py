"""
Creating the next round or phase of an event.

``plan_next_round`` is pure: it validates the request against the current
matches and roster, then returns the new phase's matches already renumbered
and labelled, or a rejection. Persisting them is the caller's job.
"""
import logging
import random
from enum import Enum
from typing import List, Optional, Sequence, Set

from pydantic import BaseModel, Field

from bracketeer.models.bracket_model import BracketType, MatchRecord
from bracketeer.models.result_model import AuditEntry, BracketResult, RejectionCode
from bracketeer.models.standings_model import StandingRecord
from bracketeer.models.team_model import TeamModel
from bracketeer.services.bracket_generator import generate_bracket, shuffle_teams
from bracketeer.services.standings_service import compute_standings, rank_standings

logger = logging.getLogger(__name__)


class TeamSelectionMode(str, Enum):
    ALL = "all"
    TOP = "top"
    CUSTOM = "custom"


class NewRoundRequest(BaseModel):
    bracket_type: BracketType = BracketType.SINGLE_ELIM
    selection: TeamSelectionMode = TeamSelectionMode.TOP
    top_n: Optional[int] = None # Required for "top"
    team_ids: List[str] = Field(default_factory=list) # Required for "custom"
    shuffle: bool = False
    phase_name: str = ""

    class Config:
        use_enum_values = True
        validate_default = True


def next_round_number(matches: Sequence[MatchRecord]) -> int:
    if not matches:
        return 0
    return max(m.round for m in matches) + 1


def latest_round_matches(matches: Sequence[MatchRecord]) -> List[MatchRecord]:
    if not matches:
        return []
    latest = max(m.round for m in matches)
    return [m for m in matches if m.round == latest]


def current_round_complete(matches: Sequence[MatchRecord]) -> bool:
    """True when every match of the highest-numbered round is completed (vacuously, with no matches)."""
    return all(m.is_completed for m in latest_round_matches(matches))


def current_phase_matches(matches: Sequence[MatchRecord]) -> List[MatchRecord]:
    """
    Matches of the phase the latest round belongs to: same group_id and
    bracket_type as the first match of the highest-numbered round.
    """
    latest = latest_round_matches(matches)
    if not latest:
        return []
    group_id, bracket_type = latest[0].group_id, latest[0].bracket_type
    return [m for m in matches if m.group_id == group_id and m.bracket_type == bracket_type]


def current_bracket_type(matches: Sequence[MatchRecord]) -> Optional[str]:
    latest = latest_round_matches(matches)
    return latest[0].bracket_type if latest else None


def current_standings(matches: Sequence[MatchRecord], teams: Sequence[TeamModel]) -> List[StandingRecord]:
    """Ranked standings over the current phase. With no matches everyone is tied in roster order."""
    phase = current_phase_matches(matches)
    if not phase:
        return rank_standings({t.id: StandingRecord(team_id=t.id, name=t.name) for t in teams}, teams)
    return rank_standings(compute_standings(phase[0].bracket_type, phase, teams), teams)


def phase_labels(matches: Sequence[MatchRecord]) -> Set[str]:
    return {m.group_id for m in matches if m.group_id is not None}


def unique_phase_label(base: str, matches: Sequence[MatchRecord]) -> str:
    """``base`` if no phase uses it yet, else the first free "base 2", "base 3", ..."""
    taken = phase_labels(matches)
    label, n = base, 2
    while label in taken:
        label = f"{base} {n}"
        n += 1
    return label


def default_top_n(team_count: int) -> int:
    if team_count >= 8:
        return 8
    if team_count >= 4:
        return 4
    return min(2, team_count)


def default_round_request(matches: Sequence[MatchRecord], teams: Sequence[TeamModel]) -> NewRoundRequest:
    """Suggested settings for the next round, based on the format just played."""
    bracket_type = current_bracket_type(matches)

    if bracket_type in (BracketType.ROUND_ROBIN.value, BracketType.SWISS.value):
        return NewRoundRequest(
            bracket_type=BracketType.SINGLE_ELIM,
            selection=TeamSelectionMode.TOP,
            top_n=default_top_n(len(teams)),
            phase_name=unique_phase_label("Playoffs", matches),
        )

    if bracket_type == BracketType.SINGLE_ELIM.value:
        # Pre-select the losers of the most recent completed round, e.g. for a consolation bracket
        completed = [m for m in matches if m.is_completed]
        losers: List[str] = []
        if completed:
            latest = max(m.round for m in completed)
            for match in completed:
                loser_id = match.loser_id()
                if match.round == latest and loser_id and loser_id not in losers:
                    losers.append(loser_id)
        return NewRoundRequest(
            bracket_type=BracketType.SINGLE_ELIM,
            selection=TeamSelectionMode.CUSTOM,
            team_ids=losers,
        )

    return NewRoundRequest(bracket_type=BracketType.SWISS, selection=TeamSelectionMode.ALL)


def renumber_rounds(
    generated: Sequence[MatchRecord],
    bracket_type: BracketType,
    first_round: int,
    phase_label: str,
) -> List[MatchRecord]:
    """
    Shifts a freshly generated phase after the existing rounds. Single
    elimination is inverted so its first round lands on ``first_round`` and
    its final last.
    """
    if not generated:
        return []
    if BracketType(bracket_type) == BracketType.SINGLE_ELIM:
        max_generated = max(m.round for m in generated)
        return [m.model_copy(update={"round": first_round + (max_generated - m.round), "group_id": phase_label})
                for m in generated]
    return [m.model_copy(update={"round": m.round + first_round, "group_id": phase_label}) for m in generated]


def select_teams(
    request: NewRoundRequest,
    standings: Sequence[StandingRecord],
    teams: Sequence[TeamModel],
) -> List[TeamModel]:
    """Resolves the selection against the standings; result is in standings order."""
    by_id = {t.id: t for t in teams}
    ranked = [by_id[s.team_id] for s in standings if s.team_id in by_id]

    if request.selection == TeamSelectionMode.TOP.value:
        return ranked[:request.top_n]
    if request.selection == TeamSelectionMode.CUSTOM.value:
        wanted = set(request.team_ids)
        return [t for t in ranked if t.id in wanted]
    return ranked


def plan_next_round(
    event_id: str,
    matches: Sequence[MatchRecord],
    teams: Sequence[TeamModel],
    request: NewRoundRequest,
    rng: Optional[random.Random] = None,
) -> BracketResult:
    matches = list(matches)

    if request.selection == TeamSelectionMode.TOP.value and (request.top_n is None or request.top_n < 1):
        return BracketResult.rejected(RejectionCode.INVALID_SELECTION, "Top selection needs a team count of at least 1.")

    if request.selection == TeamSelectionMode.CUSTOM.value:
        roster = {t.id for t in teams}
        unknown = [team_id for team_id in request.team_ids if team_id not in roster]
        if unknown:
            return BracketResult.rejected(
                RejectionCode.UNKNOWN_TEAMS,
                f"Teams not in this event: {', '.join(unknown)}",
            )

    standings = current_standings(matches, teams)
    selected = select_teams(request, standings, teams)

    if len(selected) < 2:
        return BracketResult.rejected(RejectionCode.NOT_ENOUGH_TEAMS, "Select at least 2 teams for the new round.")

    if not current_round_complete(matches):
        return BracketResult.rejected(RejectionCode.ROUND_INCOMPLETE, "Complete all matches in the current round first.")

    if request.shuffle:
        selected = shuffle_teams(selected, rng)

    first_round = next_round_number(matches)
    phase_label = request.phase_name.strip() or f"Phase {first_round + 1}"

    phase = current_phase_matches(matches)
    continues_swiss = (request.bracket_type == BracketType.SWISS.value
                       and bool(phase) and phase[0].bracket_type == BracketType.SWISS.value)

    # A label names exactly one phase
    if phase_label in phase_labels(matches) and not (continues_swiss and phase_label == phase[0].group_id):
        return BracketResult.rejected(
            RejectionCode.PHASE_EXISTS,
            f"A phase named '{phase_label}' already exists; pick another name.",
        )

    if continues_swiss:
        # Record-based pairing over every Swiss round played so far
        history = [m for m in matches if m.bracket_type == BracketType.SWISS.value]
        generated = generate_bracket(request.bracket_type, event_id, selected, first_round, history)
        new_matches = [m.model_copy(update={"group_id": phase_label}) for m in generated]
    else:
        generated = generate_bracket(request.bracket_type, event_id, selected)
        new_matches = renumber_rounds(generated, request.bracket_type, first_round, phase_label)
    if not new_matches:
        return BracketResult.rejected(RejectionCode.NO_MATCHES_GENERATED, "Could not generate matches for the selected teams.")

    readable_type = request.bracket_type.replace("_", " ")
    logger.info("Event %s: new %s phase '%s' with %d teams from round %d",
                event_id, readable_type, phase_label, len(selected), first_round)

    return BracketResult(
        matches=new_matches,
        round_number=first_round,
        group_id=phase_label,
        audit=AuditEntry(
            action="bracket.new_round",
            message=f"Created new {readable_type} round with {len(selected)} teams",
            metadata={
                "round_type": request.bracket_type,
                "team_count": len(selected),
                "team_selection": request.selection,
                "round_number": first_round,
                "phase_name": phase_label,
            },
        ),
    )
