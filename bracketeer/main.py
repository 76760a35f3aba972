import logging
from contextlib import asynccontextmanager

import uvicorn
from fastapi import FastAPI, Request, status
from fastapi.responses import JSONResponse

from bracketeer.api.endpoints import brackets as bracket_endpoints
from bracketeer.api.endpoints import matches as match_endpoints
from bracketeer.api.endpoints import teams as team_endpoints
from bracketeer.core.database import SessionLocal, create_all
from bracketeer.core.errors import PersistenceError
from bracketeer.core.logging_config import configure_logging
from bracketeer.services.match_store import SqlAlchemyMatchStore

logger = logging.getLogger(__name__)

@asynccontextmanager
async def lifespan(app: FastAPI):
    configure_logging()
    await create_all()
    yield

app = FastAPI(title="Bracketeer", lifespan=lifespan)

app.state.store = SqlAlchemyMatchStore(SessionLocal)
app.state.event_locks = {}
app.state.score_sessions = {}

@app.exception_handler(PersistenceError)
async def persistence_error_handler(request: Request, exc: PersistenceError):
    logger.error("Store failure on %s %s: %s", request.method, request.url.path, exc)
    return JSONResponse(
        status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
        content={"detail": {"code": "persistence_error", "message": str(exc), "retryable": exc.retryable}},
    )

# Include routers
app.include_router(bracket_endpoints.router, prefix="/events", tags=["Brackets"])
app.include_router(match_endpoints.router, prefix="/events", tags=["Matches"])
app.include_router(team_endpoints.router, prefix="/events", tags=["Teams"])


@app.get("/")
async def read_root():
    return {"message": "Bracketeer API"}


if __name__ == "__main__":
    uvicorn.run("bracketeer.main:app", host="0.0.0.0", port=8000, reload=True)
