"""
Scheduling: SM-2 engine, per-card scheduling state and review queues.

- sm2: pure interval / ease factor functions
- service: SchedulingService (store adapter)
- selection: priority-based review queue building
"""

from studycore.scheduling.selection import build_review_queue
from studycore.scheduling.service import SchedulingService
from studycore.scheduling.sm2 import SM2Config, next_ease_factor, next_interval

__all__ = [
    "SM2Config",
    "SchedulingService",
    "build_review_queue",
    "next_ease_factor",
    "next_interval",
]
