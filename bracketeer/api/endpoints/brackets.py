from typing import List

from fastapi import APIRouter, Depends, status

from bracketeer.api.dependencies import get_bracket_service, raise_for_rejection
from bracketeer.models.result_model import AdvancementReport
from bracketeer.models.standings_model import StandingRecord
from bracketeer.schemas import bracket_schemas
from bracketeer.services.bracket_service import BracketService
from bracketeer.services.phase_service import NewRoundRequest

router = APIRouter()

def _bracket_read(result) -> bracket_schemas.BracketRead:
    raise_for_rejection(result.rejection)
    return bracket_schemas.BracketRead(**result.model_dump(exclude={"rejection"}))

@router.post("/{event_id}/bracket", response_model=bracket_schemas.BracketRead, status_code=status.HTTP_201_CREATED)
async def generate_bracket_endpoint(
    event_id: str,
    request_in: bracket_schemas.GenerateBracketRequest,
    service: BracketService = Depends(get_bracket_service),
):
    result = await service.generate_bracket(event_id, request_in.bracket_type, shuffle=request_in.shuffle)
    return _bracket_read(result)

@router.post("/{event_id}/bracket/regenerate", response_model=bracket_schemas.BracketRead)
async def regenerate_bracket_endpoint(
    event_id: str,
    request_in: bracket_schemas.GenerateBracketRequest,
    service: BracketService = Depends(get_bracket_service),
):
    result = await service.regenerate_bracket(event_id, request_in.bracket_type, shuffle=request_in.shuffle)
    return _bracket_read(result)

@router.post("/{event_id}/bracket/advance", response_model=AdvancementReport)
async def advance_bracket_endpoint(
    event_id: str,
    service: BracketService = Depends(get_bracket_service),
):
    return await service.finalize_bracket(event_id)

@router.get("/{event_id}/standings", response_model=List[StandingRecord])
async def get_standings_endpoint(
    event_id: str,
    service: BracketService = Depends(get_bracket_service),
):
    return await service.get_standings(event_id)

@router.get("/{event_id}/rounds/defaults", response_model=NewRoundRequest)
async def get_round_defaults_endpoint(
    event_id: str,
    service: BracketService = Depends(get_bracket_service),
):
    return await service.default_round_request(event_id)

@router.post("/{event_id}/rounds", response_model=bracket_schemas.BracketRead, status_code=status.HTTP_201_CREATED)
async def create_round_endpoint(
    event_id: str,
    request_in: NewRoundRequest,
    service: BracketService = Depends(get_bracket_service),
):
    result = await service.create_next_round(event_id, request_in)
    return _bracket_read(result)
