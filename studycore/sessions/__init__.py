"""
Sessions: write-once review history.

- payloads: per-content-type response schemas
- recorder: SessionRecorder
"""

from studycore.sessions.payloads import parse_response_data
from studycore.sessions.recorder import SessionRecorder

__all__ = ["SessionRecorder", "parse_response_data"]
