from typing import Optional

from pydantic import BaseModel

class StandingRecord(BaseModel):
    team_id: str
    name: str = ""

    wins: int = 0
    losses: int = 0
    draws: int = 0
    points: int = 0 # win = 3, draw = 1

    score_for: float = 0
    score_against: float = 0
    score_diff: float = 0

    # Single elimination only
    is_eliminated: bool = False
    placement: Optional[int] = None

    rank: Optional[int] = None # Filled in by rank_standings
