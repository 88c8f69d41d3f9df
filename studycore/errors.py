"""
Error taxonomy for the adaptive learning core.

Writes propagate these errors to the caller; reads catch StoreFailure and
degrade to a documented default (see studycore.results).
"""

from __future__ import annotations


class StudyCoreError(Exception):
    """Base class for all studycore errors."""


class Unauthorized(StudyCoreError):
    """Raised when the caller does not own the resource being touched."""

    def __init__(self, caller_id: str, owner_id: str | None = None, action: str = ""):
        self.caller_id = caller_id
        self.owner_id = owner_id
        self.action = action
        super().__init__(f"{action or 'operation'}: caller {caller_id} is not the resource owner")


class NotFound(StudyCoreError):
    """Raised when a referenced session, gap or card does not exist."""

    def __init__(self, entity: str, entity_id: str):
        self.entity = entity
        self.entity_id = entity_id
        super().__init__(f"{entity} not found: {entity_id}")


class ValidationError(StudyCoreError):
    """Raised for malformed or missing input, before any store access."""


class StoreFailure(StudyCoreError):
    """Raised when the underlying persistence layer fails."""

    def __init__(self, action: str, message: str, **entity_ids: object):
        self.action = action
        self.entity_ids = entity_ids
        ids = ", ".join(f"{k}={v}" for k, v in entity_ids.items())
        super().__init__(f"{action} failed: {message}" + (f" ({ids})" if ids else ""))


def require_owner(caller_id: str, owner_id: str, action: str) -> None:
    """Raise Unauthorized unless caller_id matches owner_id."""
    if not caller_id or caller_id != owner_id:
        raise Unauthorized(caller_id, owner_id, action)
