from fastapi import Depends, HTTPException, Request, status

from bracketeer.models.result_model import Rejection, RejectionCode
from bracketeer.services.bracket_service import BracketService
from bracketeer.services.match_store import MatchStore
from bracketeer.services.score_service import ScoreSession

REJECTION_STATUS = {
    RejectionCode.MATCH_NOT_FOUND.value: status.HTTP_404_NOT_FOUND,
    RejectionCode.UNKNOWN_TEAM.value: status.HTTP_404_NOT_FOUND,
    RejectionCode.ROUND_INCOMPLETE.value: status.HTTP_409_CONFLICT,
    RejectionCode.BRACKET_EXISTS.value: status.HTTP_409_CONFLICT,
    RejectionCode.MATCH_COMPLETED.value: status.HTTP_409_CONFLICT,
    RejectionCode.PHASE_EXISTS.value: status.HTTP_409_CONFLICT,
}

def raise_for_rejection(rejection: Rejection) -> None:
    if rejection is None:
        return
    raise HTTPException(
        status_code=REJECTION_STATUS.get(rejection.code, status.HTTP_400_BAD_REQUEST),
        detail={"code": rejection.code, "message": rejection.message},
    )

def get_store(request: Request) -> MatchStore:
    return request.app.state.store

def get_bracket_service(request: Request, store: MatchStore = Depends(get_store)) -> BracketService:
    return BracketService(store, locks=request.app.state.event_locks)

async def get_score_session(
    event_id: str,
    request: Request,
    store: MatchStore = Depends(get_store),
) -> ScoreSession:
    # One ledger per event, kept for the lifetime of the app
    sessions = request.app.state.score_sessions
    session = sessions.get(event_id)
    if session is None or session.store is not store:
        session = ScoreSession(store, event_id)
        await session.load()
        sessions[event_id] = session
    return session
