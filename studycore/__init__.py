"""
studycore: adaptive learning core.

SM-2 cuecard scheduling, learning gap tracking, write-once session history
and fail-open analytics, behind a repository port with in-memory and
SQLAlchemy adapters.
"""

from studycore.analytics import AnalyticsReader
from studycore.domain import ContentType, LearningGap, LearningSession, SchedulingState
from studycore.errors import NotFound, StoreFailure, StudyCoreError, Unauthorized, ValidationError
from studycore.gaps import GapTracker
from studycore.results import Degraded, Ok
from studycore.review import ReviewCompletion
from studycore.scheduling import SchedulingService
from studycore.sessions import SessionRecorder

__version__ = "1.0.0"

__all__ = [
    "AnalyticsReader",
    "ContentType",
    "Degraded",
    "GapTracker",
    "LearningGap",
    "LearningSession",
    "NotFound",
    "Ok",
    "ReviewCompletion",
    "SchedulingService",
    "SchedulingState",
    "SessionRecorder",
    "StoreFailure",
    "StudyCoreError",
    "Unauthorized",
    "ValidationError",
]
