from typing import List

from fastapi import APIRouter, Depends

from bracketeer.api.dependencies import get_bracket_service, get_store, raise_for_rejection
from bracketeer.core.retry import with_retry
from bracketeer.models.bracket_model import MatchRecord
from bracketeer.schemas import bracket_schemas
from bracketeer.services.bracket_service import BracketService
from bracketeer.services.match_store import MatchStore

router = APIRouter()

@router.get("/{event_id}/matches", response_model=List[MatchRecord])
async def list_matches_endpoint(
    event_id: str,
    store: MatchStore = Depends(get_store),
):
    return await with_retry(lambda: store.list_matches(event_id), description="list matches")

@router.patch("/{event_id}/matches/{match_id}", response_model=bracket_schemas.MatchResultRead)
async def report_match_result_endpoint(
    event_id: str,
    match_id: str,
    result_in: bracket_schemas.MatchResultUpdate,
    service: BracketService = Depends(get_bracket_service),
):
    outcome = await service.report_match_result(
        event_id,
        match_id,
        team_a_score=result_in.team_a_score,
        team_b_score=result_in.team_b_score,
        winner_id=result_in.winner_id,
        status=result_in.status,
    )
    raise_for_rejection(outcome.rejection)
    return bracket_schemas.MatchResultRead(match=outcome.match, advancement=outcome.advancement, audit=outcome.audit)
