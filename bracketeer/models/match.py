from sqlalchemy import Column, Integer, String, Float, ForeignKey, Index
from bracketeer.core.database import Base

class Match(Base):
    __tablename__ = "matches"

    id = Column(String, primary_key=True, index=True)
    event_id = Column(String, index=True, nullable=False)
    bracket_type = Column(String, nullable=False) # "single_elim", "round_robin", "swiss"
    round = Column(Integer, nullable=False)
    position = Column(Integer, nullable=False)
    group_id = Column(String, nullable=True)

    team_a_id = Column(String, ForeignKey("teams.id", ondelete="SET NULL"), nullable=True)
    team_b_id = Column(String, ForeignKey("teams.id", ondelete="SET NULL"), nullable=True)
    team_a_score = Column(Float, default=0, nullable=False)
    team_b_score = Column(Float, default=0, nullable=False)
    winner_id = Column(String, ForeignKey("teams.id", ondelete="SET NULL"), nullable=True)
    status = Column(String, default="pending", nullable=False) # "pending", "live", "completed"

    # Single elimination only; no FK so a half-written bracket can still be stored
    next_match_id = Column(String, nullable=True)
    next_match_slot = Column(String, nullable=True) # "a" or "b"

    __table_args__ = (
        Index("ix_matches_event_round_position", "event_id", "round", "position"),
    )
