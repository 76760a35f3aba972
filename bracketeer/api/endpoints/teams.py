import uuid
from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException, status

from bracketeer.api.dependencies import get_score_session, get_store, raise_for_rejection
from bracketeer.core.retry import with_retry
from bracketeer.models.result_model import ScoreAdjustResult
from bracketeer.models.team_model import TeamModel
from bracketeer.schemas import team_schemas
from bracketeer.services.match_store import MatchStore
from bracketeer.services.score_service import ScoreSession

router = APIRouter()

@router.get("/{event_id}/teams", response_model=List[TeamModel])
async def list_teams_endpoint(
    event_id: str,
    store: MatchStore = Depends(get_store),
):
    return await with_retry(lambda: store.list_teams(event_id), description="list teams")

@router.post("/{event_id}/teams", response_model=List[TeamModel], status_code=status.HTTP_201_CREATED)
async def add_teams_endpoint(
    event_id: str,
    teams_in: List[team_schemas.TeamCreate],
    store: MatchStore = Depends(get_store),
):
    teams = [
        TeamModel(id=t.id or str(uuid.uuid4()), event_id=event_id, name=t.name, score=t.score)
        for t in teams_in
    ]
    return await with_retry(lambda: store.add_teams(teams), description="add teams")

@router.post("/{event_id}/teams/{team_id}/score", response_model=ScoreAdjustResult)
async def adjust_score_endpoint(
    event_id: str,
    team_id: str,
    adjust_in: team_schemas.ScoreAdjustRequest,
    session: ScoreSession = Depends(get_score_session),
):
    result = await session.adjust(team_id, adjust_in.delta, changed_by=adjust_in.changed_by, op_id=adjust_in.op_id)
    raise_for_rejection(result.rejection)
    return result

@router.post("/{event_id}/scores/undo", response_model=ScoreAdjustResult)
async def undo_score_endpoint(
    event_id: str,
    undo_in: Optional[team_schemas.UndoRequest] = None,
    session: ScoreSession = Depends(get_score_session),
):
    result = await session.undo_last(changed_by=undo_in.changed_by if undo_in else None)
    if result is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail={"code": "nothing_to_undo", "message": "Nothing to undo."})
    raise_for_rejection(result.rejection)
    return result
