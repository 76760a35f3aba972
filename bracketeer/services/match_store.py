"""
Persistence boundary for matches, teams and score history.

Services only talk to a ``MatchStore``. ``SqlAlchemyMatchStore`` is the bundled
implementation over an async SQLAlchemy session factory. Its methods raise the
driver's errors unchanged; retrying is the caller's job (see core.retry).
"""
import datetime
import uuid
from typing import Any, Dict, List, Optional, Protocol, Sequence

from sqlalchemy import delete, select, update
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker
from sqlalchemy.orm import aliased

from bracketeer.models.bracket_model import MatchRecord, match_class_for
from bracketeer.models.match import Match
from bracketeer.models.score_change import ScoreChange
from bracketeer.models.team import Team
from bracketeer.models.team_model import ScoreChangeModel, TeamModel

MATCH_FIELDS = (
    "event_id", "bracket_type", "round", "position", "group_id",
    "team_a_id", "team_b_id", "team_a_score", "team_b_score",
    "winner_id", "status", "next_match_id", "next_match_slot",
)


class MatchStore(Protocol):
    async def list_matches(self, event_id: str) -> List[MatchRecord]: ...

    async def list_teams(self, event_id: str) -> List[TeamModel]: ...

    async def insert_matches(self, matches: Sequence[MatchRecord]) -> List[MatchRecord]: ...

    async def update_match(self, match_id: str, fields: Dict[str, Any]) -> Optional[MatchRecord]: ...

    async def delete_matches(self, event_id: str) -> int: ...

    async def add_teams(self, teams: Sequence[TeamModel]) -> List[TeamModel]: ...

    async def apply_score_delta(
        self,
        event_id: str,
        team_id: str,
        delta: float,
        op_id: str,
        changed_by: Optional[str] = None,
        undo_of: Optional[str] = None,
    ) -> Optional[ScoreChangeModel]: ...

    async def last_score_change(self, event_id: str) -> Optional[ScoreChangeModel]: ...


def match_from_row(row: Match) -> MatchRecord:
    return match_class_for(row.bracket_type).model_validate(row)


def row_values(match: MatchRecord) -> Dict[str, Any]:
    data = match.model_dump()
    return {field: data.get(field) for field in MATCH_FIELDS}


class SqlAlchemyMatchStore:
    def __init__(self, session_factory: async_sessionmaker[AsyncSession]):
        self.session_factory = session_factory

    async def list_matches(self, event_id: str) -> List[MatchRecord]:
        async with self.session_factory() as session:
            result = await session.execute(
                select(Match)
                .where(Match.event_id == event_id)
                .order_by(Match.round, Match.group_id, Match.position)
            )
            return [match_from_row(row) for row in result.scalars().all()]

    async def list_teams(self, event_id: str) -> List[TeamModel]:
        async with self.session_factory() as session:
            result = await session.execute(
                select(Team).where(Team.event_id == event_id).order_by(Team.created_at, Team.id)
            )
            return [TeamModel.model_validate(row) for row in result.scalars().all()]

    async def add_teams(self, teams: Sequence[TeamModel]) -> List[TeamModel]:
        async with self.session_factory() as session:
            rows = [Team(id=t.id, event_id=t.event_id, name=t.name, score=t.score or 0) for t in teams]
            session.add_all(rows)
            await session.commit()
            return [TeamModel.model_validate(row) for row in rows]

    async def insert_matches(self, matches: Sequence[MatchRecord]) -> List[MatchRecord]:
        """Inserts in one transaction, assigning ids to matches that have none."""
        async with self.session_factory() as session:
            rows = [Match(id=m.id or str(uuid.uuid4()), **row_values(m)) for m in matches]
            session.add_all(rows)
            await session.commit()
            return [match_from_row(row) for row in rows]

    async def update_match(self, match_id: str, fields: Dict[str, Any]) -> Optional[MatchRecord]:
        """Partial update; returns the updated match, or None if it does not exist."""
        async with self.session_factory() as session:
            row = await session.get(Match, match_id)
            if row is None:
                return None
            for field, value in fields.items():
                if field not in MATCH_FIELDS:
                    raise ValueError(f"Unknown match field: {field}")
                setattr(row, field, value.value if hasattr(value, "value") else value)
            await session.commit()
            return match_from_row(row)

    async def delete_matches(self, event_id: str) -> int:
        async with self.session_factory() as session:
            result = await session.execute(delete(Match).where(Match.event_id == event_id))
            await session.commit()
            return result.rowcount

    async def apply_score_delta(
        self,
        event_id: str,
        team_id: str,
        delta: float,
        op_id: str,
        changed_by: Optional[str] = None,
        undo_of: Optional[str] = None,
    ) -> Optional[ScoreChangeModel]:
        """
        Adds ``delta`` to the team's score and records the history row, both in
        one transaction. A repeated ``op_id`` returns the existing row without
        applying the delta again. Returns None for an unknown team.
        """
        async with self.session_factory() as session:
            existing = await session.get(ScoreChange, op_id)
            if existing is not None:
                return ScoreChangeModel.model_validate(existing)

            team = await session.get(Team, team_id)
            if team is None or team.event_id != event_id:
                return None

            await session.execute(
                update(Team).where(Team.id == team_id).values(score=Team.score + delta)
            )
            await session.refresh(team)
            change = ScoreChange(
                id=op_id,
                event_id=event_id,
                team_id=team_id,
                points_before=team.score - delta,
                points_after=team.score,
                delta=delta,
                changed_by=changed_by,
                undo_of=undo_of,
                created_at=datetime.datetime.utcnow(),
            )
            session.add(change)
            await session.commit()
            return ScoreChangeModel.model_validate(change)

    async def last_score_change(self, event_id: str) -> Optional[ScoreChangeModel]:
        """Most recent change that is neither an undo nor already undone."""
        undo = aliased(ScoreChange)
        async with self.session_factory() as session:
            result = await session.execute(
                select(ScoreChange)
                .outerjoin(undo, undo.undo_of == ScoreChange.id)
                .where(
                    ScoreChange.event_id == event_id,
                    ScoreChange.undo_of.is_(None),
                    undo.id.is_(None),
                )
                .order_by(ScoreChange.created_at.desc())
                .limit(1)
            )
            row = result.scalars().first()
            return ScoreChangeModel.model_validate(row) if row else None
