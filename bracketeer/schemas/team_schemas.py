from pydantic import BaseModel, Field
from typing import Optional

class TeamCreate(BaseModel):
    id: Optional[str] = None # Generated when omitted
    name: str = Field(..., min_length=1)
    score: float = 0

class ScoreAdjustRequest(BaseModel):
    delta: float
    changed_by: Optional[str] = None
    op_id: Optional[str] = None # Reuse to make a retried request idempotent

class UndoRequest(BaseModel):
    changed_by: Optional[str] = None
