from datetime import datetime
from typing import Optional

from pydantic import BaseModel, Field

class TeamModel(BaseModel):
    id: str
    event_id: Optional[str] = None
    name: str = ""
    score: float = 0 # Running leaderboard total, also the last ranking tiebreak

    class Config:
        from_attributes = True

class ScoreChangeModel(BaseModel):
    """One row of a team's score history."""
    id: str
    event_id: str
    team_id: str
    points_before: float
    points_after: float
    delta: float
    changed_by: Optional[str] = None
    undo_of: Optional[str] = None # Id of the change this entry reverses
    created_at: datetime = Field(default_factory=datetime.utcnow)

    class Config:
        from_attributes = True
