from pydantic import BaseModel
from typing import List, Optional

from bracketeer.models.bracket_model import BracketType, MatchRecord, MatchStatus
from bracketeer.models.result_model import AdvancementReport, AuditEntry

class GenerateBracketRequest(BaseModel):
    bracket_type: BracketType = BracketType.SINGLE_ELIM
    shuffle: bool = True

    class Config:
        use_enum_values = True

class BracketRead(BaseModel):
    matches: List[MatchRecord] = []
    audit: Optional[AuditEntry] = None
    advancement: Optional[AdvancementReport] = None
    round_number: Optional[int] = None
    group_id: Optional[str] = None
    broadcast_reload: bool = False

class MatchResultUpdate(BaseModel):
    team_a_score: Optional[float] = None
    team_b_score: Optional[float] = None
    winner_id: Optional[str] = None
    status: Optional[MatchStatus] = None # Defaults to "completed" when a winner is given

class MatchResultRead(BaseModel):
    match: MatchRecord
    advancement: Optional[AdvancementReport] = None
    audit: Optional[AuditEntry] = None
