"""
Per-event running score ledger.

A ``ScoreSession`` keeps the confirmed total of every team plus the deltas
still in flight, keyed by operation id. Adjustments show up at once in
``score_of``; a failed write rolls back only its own delta, so rapid
sequential adjustments never clobber each other.
"""
import asyncio
import logging
import uuid
from typing import Dict, Optional, Set

from bracketeer.core.errors import PersistenceError
from bracketeer.core.retry import with_retry
from bracketeer.models.result_model import Rejection, RejectionCode, ScoreAdjustResult

logger = logging.getLogger(__name__)


class ScoreSession:
    def __init__(self, store, event_id: str):
        self.store = store
        self.event_id = event_id
        self.confirmed: Dict[str, float] = {}
        self.pending: Dict[str, Dict[str, float]] = {} # team id -> {op id: delta}
        self.applied: Set[str] = set() # op ids already counted in confirmed
        self._undo_lock = asyncio.Lock()

    async def load(self) -> None:
        teams = await with_retry(lambda: self.store.list_teams(self.event_id), description="list teams")
        self.confirmed = {t.id: float(t.score or 0) for t in teams}

    def pending_delta(self, team_id: str) -> float:
        return sum(self.pending.get(team_id, {}).values())

    def score_of(self, team_id: str) -> float:
        """Optimistic total: confirmed score plus every delta still in flight."""
        return self.confirmed.get(team_id, 0) + self.pending_delta(team_id)

    def _rejected(self, team_id: str) -> ScoreAdjustResult:
        return ScoreAdjustResult(
            team_id=team_id,
            rejection=Rejection(code=RejectionCode.UNKNOWN_TEAM, message=f"Team {team_id} is not in this event."),
        )

    async def adjust(
        self,
        team_id: str,
        delta: float,
        changed_by: Optional[str] = None,
        op_id: Optional[str] = None,
        undo_of: Optional[str] = None,
    ) -> ScoreAdjustResult:
        """
        Applies ``delta`` optimistically, then persists it. Raises
        PersistenceError once retries are exhausted, after rolling back this
        delta only.
        """
        if team_id not in self.confirmed:
            await self.load()
            if team_id not in self.confirmed:
                return self._rejected(team_id)

        if not delta:
            return ScoreAdjustResult(team_id=team_id, score=self.score_of(team_id))

        op_id = op_id or str(uuid.uuid4())
        self.pending.setdefault(team_id, {})[op_id] = delta

        try:
            change = await with_retry(
                lambda: self.store.apply_score_delta(
                    self.event_id, team_id, delta, op_id, changed_by=changed_by, undo_of=undo_of,
                ),
                description=f"score change for team {team_id}",
            )
        except PersistenceError:
            logger.warning("Score change %s for team %s failed; rolling back %+g", op_id, team_id, delta)
            raise
        finally:
            self.pending[team_id].pop(op_id, None)

        if change is None:
            # Team removed on the server since the ledger was loaded
            self.confirmed.pop(team_id, None)
            return self._rejected(team_id)

        if op_id not in self.applied:
            self.applied.add(op_id)
            self.confirmed[team_id] = self.confirmed.get(team_id, 0) + delta
        return ScoreAdjustResult(team_id=team_id, score=self.score_of(team_id), change=change)

    async def undo_last(self, changed_by: Optional[str] = None) -> Optional[ScoreAdjustResult]:
        """Reverses the latest change that is not itself an undo. Returns None when there is nothing to undo."""
        async with self._undo_lock:
            last = await with_retry(
                lambda: self.store.last_score_change(self.event_id), description="load last score change",
            )
            if last is None:
                return None
            logger.info("Event %s: undoing score change %s (%+g for team %s)",
                        self.event_id, last.id, last.delta, last.team_id)
            return await self.adjust(
                last.team_id,
                -last.delta,
                changed_by=changed_by,
                op_id=f"undo-{last.id}",
                undo_of=last.id,
            )
