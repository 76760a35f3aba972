from bracketeer.core.database import Base

# Import all ORM models here to ensure they are registered with Base
from .team import Team
from .match import Match
from .score_change import ScoreChange
