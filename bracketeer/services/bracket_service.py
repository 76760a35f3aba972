import asyncio
import logging
import random
from typing import Dict, List, Optional, Tuple

from bracketeer.core.retry import with_retry
from bracketeer.models.bracket_model import BracketType, MatchRecord, MatchStatus
from bracketeer.models.result_model import (
    AdvancementReport, AuditEntry, BracketResult, MatchResultOutcome, Rejection, RejectionCode,
)
from bracketeer.models.standings_model import StandingRecord
from bracketeer.models.team_model import TeamModel
from bracketeer.services import phase_service
from bracketeer.services.advancement_service import finalize_single_elim_bracket
from bracketeer.services.bracket_generator import generate_bracket, shuffle_teams
from bracketeer.services.match_store import MatchStore

logger = logging.getLogger(__name__)


class BracketService:
    """
    Runs bracket operations for events against a MatchStore.

    Validation failures come back as rejections on the result and nothing is
    written. Store failures surface as PersistenceError once retries run out.
    Writes that replace or extend an event's bracket are serialized per event.
    """

    def __init__(
        self,
        store: MatchStore,
        rng: Optional[random.Random] = None,
        locks: Optional[Dict[str, asyncio.Lock]] = None,
    ):
        self.store = store
        self.rng = rng
        # Pass a shared dict so short-lived service instances still serialize per event
        self._locks: Dict[str, asyncio.Lock] = locks if locks is not None else {}

    def _lock_for(self, event_id: str) -> asyncio.Lock:
        if event_id not in self._locks:
            self._locks[event_id] = asyncio.Lock()
        return self._locks[event_id]

    async def _load(self, event_id: str) -> Tuple[List[MatchRecord], List[TeamModel]]:
        matches = await with_retry(lambda: self.store.list_matches(event_id), description="list matches")
        teams = await with_retry(lambda: self.store.list_teams(event_id), description="list teams")
        return matches, teams

    async def _insert(self, matches: List[MatchRecord]) -> List[MatchRecord]:
        return await with_retry(lambda: self.store.insert_matches(matches), description="insert matches")

    def _build(self, event_id: str, bracket_type: BracketType, teams: List[TeamModel], shuffle: bool) -> BracketResult:
        if len(teams) < 2:
            return BracketResult.rejected(RejectionCode.NOT_ENOUGH_TEAMS, "At least 2 teams are needed to build a bracket.")
        seeded = shuffle_teams(teams, self.rng) if shuffle else list(teams)
        matches = generate_bracket(bracket_type, event_id, seeded)
        if not matches:
            return BracketResult.rejected(RejectionCode.NO_MATCHES_GENERATED, "No matches could be generated.")
        return BracketResult(matches=matches)

    async def _advance(self, event_id: str, bracket_type: BracketType) -> Optional[AdvancementReport]:
        if BracketType(bracket_type) != BracketType.SINGLE_ELIM:
            return None
        return await finalize_single_elim_bracket(self.store, event_id)

    async def generate_bracket(self, event_id: str, bracket_type: BracketType, shuffle: bool = True) -> BracketResult:
        """First bracket of an event. Rejected if the event already has matches."""
        bracket_type = BracketType(bracket_type)
        async with self._lock_for(event_id):
            existing, teams = await self._load(event_id)
            if existing:
                return BracketResult.rejected(
                    RejectionCode.BRACKET_EXISTS, "This event already has a bracket; regenerate it instead.",
                )
            result = self._build(event_id, bracket_type, teams, shuffle)
            if not result.ok:
                return result

            await self._insert(result.matches)
            advancement = await self._advance(event_id, bracket_type)
            matches = await with_retry(lambda: self.store.list_matches(event_id), description="list matches")

        logger.info("Event %s: generated %s bracket with %d teams", event_id, bracket_type.value, len(teams))
        return BracketResult(
            matches=matches,
            advancement=advancement,
            audit=AuditEntry(
                action="bracket.generate",
                message=f"Generated {bracket_type.value.replace('_', ' ')} bracket for {len(teams)} teams",
                metadata={"format": bracket_type.value, "team_count": len(teams), "match_count": len(matches)},
            ),
        )

    async def regenerate_bracket(self, event_id: str, bracket_type: BracketType, shuffle: bool = True) -> BracketResult:
        """
        Replaces every match of the event with a fresh bracket. The new bracket
        is built before anything is deleted, so a rejection leaves the old one
        untouched.
        """
        bracket_type = BracketType(bracket_type)
        async with self._lock_for(event_id):
            _, teams = await self._load(event_id)
            result = self._build(event_id, bracket_type, teams, shuffle)
            if not result.ok:
                return result

            deleted = await with_retry(lambda: self.store.delete_matches(event_id), description="delete matches")
            await self._insert(result.matches)
            advancement = await self._advance(event_id, bracket_type)
            matches = await with_retry(lambda: self.store.list_matches(event_id), description="list matches")

        logger.info("Event %s: regenerated %s bracket (%d matches replaced)", event_id, bracket_type.value, deleted)
        return BracketResult(
            matches=matches,
            advancement=advancement,
            broadcast_reload=True,
            audit=AuditEntry(
                action="bracket.regenerate",
                message=f"Regenerated {bracket_type.value.replace('_', ' ')} bracket for {len(teams)} teams",
                metadata={"format": bracket_type.value, "team_count": len(teams), "match_count": len(matches)},
            ),
        )

    async def finalize_bracket(self, event_id: str) -> AdvancementReport:
        """Links single-elimination matches and resolves byes. Safe to call at any time."""
        return await finalize_single_elim_bracket(self.store, event_id)

    async def get_standings(self, event_id: str) -> List[StandingRecord]:
        matches, teams = await self._load(event_id)
        return phase_service.current_standings(matches, teams)

    async def default_round_request(self, event_id: str) -> phase_service.NewRoundRequest:
        matches, teams = await self._load(event_id)
        return phase_service.default_round_request(matches, teams)

    async def create_next_round(self, event_id: str, request: phase_service.NewRoundRequest) -> BracketResult:
        async with self._lock_for(event_id):
            matches, teams = await self._load(event_id)
            result = phase_service.plan_next_round(event_id, matches, teams, request, rng=self.rng)
            if not result.ok:
                logger.info("Event %s: new round rejected (%s)", event_id, result.rejection.code)
                return result

            inserted = await self._insert(result.matches)
            advancement = await self._advance(event_id, request.bracket_type)

        if advancement is not None:
            inserted = [m for m in await with_retry(lambda: self.store.list_matches(event_id), description="list matches")
                        if m.group_id == result.group_id]
        return result.model_copy(update={"matches": inserted, "advancement": advancement})

    async def report_match_result(
        self,
        event_id: str,
        match_id: str,
        team_a_score: Optional[float] = None,
        team_b_score: Optional[float] = None,
        winner_id: Optional[str] = None,
        status: Optional[MatchStatus] = None,
    ) -> MatchResultOutcome:
        """
        Stores scores, winner and status for one match. A winner without a
        status completes the match. Single-elimination results are carried
        downstream straight away.
        """
        matches = await with_retry(lambda: self.store.list_matches(event_id), description="list matches")
        match = next((m for m in matches if m.id == match_id), None)
        if match is None:
            return MatchResultOutcome(rejection=Rejection(
                code=RejectionCode.MATCH_NOT_FOUND, message=f"Match {match_id} not found in event {event_id}.",
            ))

        if status is not None:
            status = MatchStatus(status)
        if match.is_completed and status is not None and status != MatchStatus.COMPLETED:
            return MatchResultOutcome(rejection=Rejection(
                code=RejectionCode.MATCH_COMPLETED, message="A completed match cannot be reopened.",
            ))
        if winner_id is not None and winner_id not in match.team_ids:
            return MatchResultOutcome(rejection=Rejection(
                code=RejectionCode.INVALID_WINNER, message="Winner must be one of the teams in the match.",
            ))
        if (match.bracket_type == BracketType.SINGLE_ELIM.value and status == MatchStatus.COMPLETED
                and not (winner_id or match.winner_id)):
            return MatchResultOutcome(rejection=Rejection(
                code=RejectionCode.INVALID_WINNER, message="A single elimination match needs a winner to be completed.",
            ))

        fields = {}
        if team_a_score is not None:
            fields["team_a_score"] = team_a_score
        if team_b_score is not None:
            fields["team_b_score"] = team_b_score
        if winner_id is not None:
            fields["winner_id"] = winner_id
            if status is None:
                status = MatchStatus.COMPLETED
        if status is not None:
            fields["status"] = status.value

        if fields:
            updated = await with_retry(lambda: self.store.update_match(match_id, fields), description=f"update match {match_id}")
            if updated is None:
                return MatchResultOutcome(rejection=Rejection(
                    code=RejectionCode.MATCH_NOT_FOUND, message=f"Match {match_id} no longer exists.",
                ))
        else:
            updated = match

        advancement = None
        if updated.bracket_type == BracketType.SINGLE_ELIM.value and updated.is_completed:
            advancement = await finalize_single_elim_bracket(self.store, event_id)

        return MatchResultOutcome(
            match=updated,
            advancement=advancement,
            audit=AuditEntry(
                action="match.result",
                message=f"Recorded result {updated.team_a_score:g}-{updated.team_b_score:g} for match {match_id}",
                metadata={"match_id": match_id, "round": updated.round, "winner_id": updated.winner_id,
                          "status": updated.status},
            ),
        )
