from typing import Annotated, List, Literal, Optional, Union
from enum import Enum

from pydantic import BaseModel, Field, model_validator

class BracketType(str, Enum):
    SINGLE_ELIM = "single_elim"
    ROUND_ROBIN = "round_robin"
    SWISS = "swiss"

class MatchStatus(str, Enum):
    PENDING = "pending"
    LIVE = "live"
    COMPLETED = "completed"

class MatchSlot(str, Enum):
    A = "a"
    B = "b"

class MatchBase(BaseModel):
    id: Optional[str] = None # Assigned by the store on insert
    event_id: str
    round: int
    position: int
    group_id: Optional[str] = None # Phase label, e.g. "Group Stage" or "Playoffs"

    team_a_id: Optional[str] = None # None = to be determined, or a permanent bye slot
    team_b_id: Optional[str] = None

    team_a_score: float = 0
    team_b_score: float = 0

    winner_id: Optional[str] = None
    status: MatchStatus = MatchStatus.PENDING

    class Config:
        from_attributes = True
        use_enum_values = True

    @model_validator(mode="after")
    def winner_is_a_participant(self):
        if self.winner_id is not None and self.winner_id not in (self.team_a_id, self.team_b_id):
            raise ValueError("Winner must be one of the teams in the match.")
        return self

    @property
    def team_ids(self) -> List[str]:
        return [t for t in (self.team_a_id, self.team_b_id) if t]

    @property
    def is_completed(self) -> bool:
        return self.status == MatchStatus.COMPLETED

    def loser_id(self) -> Optional[str]:
        if self.winner_id is None:
            return None
        if self.winner_id == self.team_a_id:
            return self.team_b_id
        return self.team_a_id

class SingleElimMatch(MatchBase):
    bracket_type: Literal["single_elim"] = "single_elim"
    # Where this match's winner feeds; only single elimination links matches
    next_match_id: Optional[str] = None
    next_match_slot: Optional[MatchSlot] = None

class RoundRobinMatch(MatchBase):
    bracket_type: Literal["round_robin"] = "round_robin"

class SwissMatch(MatchBase):
    bracket_type: Literal["swiss"] = "swiss"

MatchRecord = Annotated[
    Union[SingleElimMatch, RoundRobinMatch, SwissMatch],
    Field(discriminator="bracket_type"),
]

MATCH_CLASSES = {
    BracketType.SINGLE_ELIM.value: SingleElimMatch,
    BracketType.ROUND_ROBIN.value: RoundRobinMatch,
    BracketType.SWISS.value: SwissMatch,
}

def match_class_for(bracket_type) -> type:
    return MATCH_CLASSES[BracketType(bracket_type).value]
