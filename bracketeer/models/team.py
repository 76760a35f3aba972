from sqlalchemy import Column, String, Float, DateTime
from bracketeer.core.database import Base
import datetime

class Team(Base):
    __tablename__ = "teams"

    id = Column(String, primary_key=True, index=True)
    event_id = Column(String, index=True, nullable=False)
    name = Column(String, nullable=False)
    score = Column(Float, default=0, nullable=False)
    created_at = Column(DateTime, default=datetime.datetime.utcnow)
