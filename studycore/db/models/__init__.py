# SQLAlchemy models
from .base import Base
from .learning import (
    CuecardScheduling,
    LearningGapRow,
    LearningSessionRow,
    SessionResponseRow,
)

__all__ = [
    # Base
    "Base",
    # Adaptive learning core
    "CuecardScheduling",
    "LearningSessionRow",
    "SessionResponseRow",
    "LearningGapRow",
]
