import datetime
import itertools
from typing import Dict, List, Optional

import pytest

from bracketeer.core.config import settings
from bracketeer.models.bracket_model import MatchRecord, match_class_for
from bracketeer.models.team_model import ScoreChangeModel, TeamModel

EVENT_ID = "event-1"


class FakeMatchStore:
    """In-memory MatchStore. ``failures`` holds exceptions raised by the next calls, in order."""

    def __init__(self, teams=(), matches=()):
        self.teams: Dict[str, TeamModel] = {t.id: t for t in teams}
        self.matches: Dict[str, MatchRecord] = {}
        self.history: List[ScoreChangeModel] = []
        self.failures: List[Exception] = []
        self.calls: List[str] = []
        self._ids = itertools.count(1)
        for m in matches:
            self._put(m)

    def _record(self, name: str) -> None:
        self.calls.append(name)
        if self.failures:
            raise self.failures.pop(0)

    def _put(self, match: MatchRecord) -> MatchRecord:
        if match.id is None:
            match = match.model_copy(update={"id": f"m{next(self._ids)}"})
        self.matches[match.id] = match
        return match

    async def list_matches(self, event_id: str) -> List[MatchRecord]:
        self._record("list_matches")
        found = [m for m in self.matches.values() if m.event_id == event_id]
        return sorted(found, key=lambda m: (m.round, m.group_id or "", m.position))

    async def list_teams(self, event_id: str) -> List[TeamModel]:
        self._record("list_teams")
        return [t for t in self.teams.values() if t.event_id in (event_id, None)]

    async def add_teams(self, teams) -> List[TeamModel]:
        self._record("add_teams")
        for t in teams:
            self.teams[t.id] = t
        return list(teams)

    async def insert_matches(self, matches) -> List[MatchRecord]:
        self._record("insert_matches")
        return [self._put(m) for m in matches]

    async def update_match(self, match_id: str, fields) -> Optional[MatchRecord]:
        self._record("update_match")
        match = self.matches.get(match_id)
        if match is None:
            return None
        updated = match_class_for(match.bracket_type).model_validate({**match.model_dump(), **fields})
        self.matches[match_id] = updated
        return updated

    async def delete_matches(self, event_id: str) -> int:
        self._record("delete_matches")
        doomed = [i for i, m in self.matches.items() if m.event_id == event_id]
        for match_id in doomed:
            del self.matches[match_id]
        return len(doomed)

    async def apply_score_delta(self, event_id, team_id, delta, op_id, changed_by=None, undo_of=None):
        self._record("apply_score_delta")
        existing = next((c for c in self.history if c.id == op_id), None)
        if existing is not None:
            return existing
        team = self.teams.get(team_id)
        if team is None:
            return None
        before = team.score
        self.teams[team_id] = team.model_copy(update={"score": before + delta})
        change = ScoreChangeModel(
            id=op_id, event_id=event_id, team_id=team_id,
            points_before=before, points_after=before + delta, delta=delta,
            changed_by=changed_by, undo_of=undo_of,
            created_at=datetime.datetime(2024, 1, 1) + datetime.timedelta(seconds=len(self.history)),
        )
        self.history.append(change)
        return change

    async def last_score_change(self, event_id):
        self._record("last_score_change")
        undone = {c.undo_of for c in self.history if c.undo_of}
        for change in reversed(self.history):
            if change.event_id == event_id and change.undo_of is None and change.id not in undone:
                return change
        return None


def make_teams(*names, event_id=EVENT_ID, scores=None) -> List[TeamModel]:
    scores = scores or {}
    return [TeamModel(id=name, event_id=event_id, name=f"Team {name}", score=scores.get(name, 0)) for name in names]


def with_ids(matches, prefix="m") -> List[MatchRecord]:
    return [m.model_copy(update={"id": f"{prefix}{i}"}) for i, m in enumerate(matches, start=1)]


@pytest.fixture
def anyio_backend():
    return "asyncio"


@pytest.fixture
def five_teams():
    return make_teams("A", "B", "C", "D", "E")


@pytest.fixture
def fake_store(five_teams):
    return FakeMatchStore(teams=five_teams)


@pytest.fixture(autouse=True)
def no_retry_delay(monkeypatch):
    monkeypatch.setattr(settings, "PERSISTENCE_RETRY_BASE_DELAY", 0)
