from enum import Enum
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field

from bracketeer.models.bracket_model import MatchRecord
from bracketeer.models.team_model import ScoreChangeModel

class RejectionCode(str, Enum):
    NOT_ENOUGH_TEAMS = "not_enough_teams"
    ROUND_INCOMPLETE = "round_incomplete"
    UNKNOWN_TEAMS = "unknown_teams"
    INVALID_SELECTION = "invalid_selection"
    BRACKET_EXISTS = "bracket_exists"
    NO_MATCHES_GENERATED = "no_matches_generated"
    MATCH_NOT_FOUND = "match_not_found"
    INVALID_WINNER = "invalid_winner"
    MATCH_COMPLETED = "match_completed"
    UNKNOWN_TEAM = "unknown_team"
    PHASE_EXISTS = "phase_exists"

class Rejection(BaseModel):
    """A caller error, reported before anything is written."""
    code: RejectionCode
    message: str

    class Config:
        use_enum_values = True

class AuditEntry(BaseModel):
    """Human-readable message plus structured metadata for an external audit sink."""
    action: str # e.g. "bracket.generate", "bracket.new_round"
    message: str
    metadata: Dict[str, Any] = Field(default_factory=dict)

class AdvancementReport(BaseModel):
    links_updated: int = 0
    winners_advanced: int = 0
    byes_resolved: List[str] = Field(default_factory=list) # Match ids auto-completed
    passes: int = 0
    converged: bool = True # False when the pass bound was hit with changes still pending
    audit: List[AuditEntry] = Field(default_factory=list)

class BracketResult(BaseModel):
    matches: List[MatchRecord] = Field(default_factory=list)
    audit: Optional[AuditEntry] = None
    rejection: Optional[Rejection] = None
    advancement: Optional[AdvancementReport] = None
    round_number: Optional[int] = None # First round of a newly created phase
    group_id: Optional[str] = None
    broadcast_reload: bool = False # Caller should tell other clients to refetch

    @property
    def ok(self) -> bool:
        return self.rejection is None

    @classmethod
    def rejected(cls, code: RejectionCode, message: str) -> "BracketResult":
        return cls(rejection=Rejection(code=code, message=message))

class MatchResultOutcome(BaseModel):
    match: Optional[MatchRecord] = None
    rejection: Optional[Rejection] = None
    advancement: Optional[AdvancementReport] = None
    audit: Optional[AuditEntry] = None

    @property
    def ok(self) -> bool:
        return self.rejection is None

class ScoreAdjustResult(BaseModel):
    team_id: str
    score: float = 0 # Optimistic display value after the adjustment
    change: Optional[ScoreChangeModel] = None
    rejection: Optional[Rejection] = None

    @property
    def ok(self) -> bool:
        return self.rejection is None
