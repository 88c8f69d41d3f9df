"""
Store: persistence port and adapters.

- repository: LearningRepository abstract port
- memory: in-memory adapter
- sql: SQLAlchemy adapter
- locks: per-key locks for read-compute-write sequences
"""

from studycore.store.locks import KeyedLocks
from studycore.store.memory import InMemoryRepository
from studycore.store.repository import ActiveGapConflict, LearningRepository
from studycore.store.sql import SqlRepository

__all__ = [
    "ActiveGapConflict",
    "InMemoryRepository",
    "KeyedLocks",
    "LearningRepository",
    "SqlRepository",
]
