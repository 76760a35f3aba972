from sqlalchemy import Column, String, Float, ForeignKey, DateTime
from bracketeer.core.database import Base
import datetime

class ScoreChange(Base):
    __tablename__ = "score_history"

    # Client-chosen operation id, so a retried write is applied once
    id = Column(String, primary_key=True, index=True)
    event_id = Column(String, index=True, nullable=False)
    team_id = Column(String, ForeignKey("teams.id", ondelete="CASCADE"), nullable=False)
    points_before = Column(Float, nullable=False)
    points_after = Column(Float, nullable=False)
    delta = Column(Float, nullable=False)
    changed_by = Column(String, nullable=True)
    undo_of = Column(String, nullable=True) # Set on entries that reverse an earlier change
    created_at = Column(DateTime, default=datetime.datetime.utcnow, index=True)
