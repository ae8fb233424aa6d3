"""
prodigyhub.errors — Domain Exception Hierarchy
===============================================

Typed failures raised by the services and translated to HTTP responses by
a single exception handler in :mod:`prodigyhub.api.main`.

Every exception carries:

- ``message`` — human-readable description
- ``details`` — structured context (ids, statuses) safe to return to clients
- ``error_code`` — stable identifier (defaults to the class name)
- ``http_status`` — status the API layer maps it to
"""

from __future__ import annotations

from typing import Any


class ProdigyError(Exception):
    """Base class for all domain-level errors."""

    http_status: int = 400

    def __init__(
        self,
        message: str,
        details: dict[str, Any] | None = None,
        error_code: str | None = None,
    ) -> None:
        self.message = message
        self.details: dict[str, Any] = details or {}
        self.error_code = error_code or self.__class__.__name__
        super().__init__(message)

    def to_dict(self) -> dict[str, Any]:
        return {
            "detail": self.message,
            "error_code": self.error_code,
            "details": self.details,
        }

    def __str__(self) -> str:
        details_str = f" | Details: {self.details}" if self.details else ""
        return f"[{self.error_code}] {self.message}{details_str}"


# ---------------------------------------------------------------------------
# Lookup failures
# ---------------------------------------------------------------------------
class NotFound(ProdigyError):
    """Referenced entity does not exist."""
    http_status = 404


class UserNotFound(NotFound):
    """Referenced user does not exist."""


# ---------------------------------------------------------------------------
# Authorization / state
# ---------------------------------------------------------------------------
class Forbidden(ProdigyError):
    """Caller lacks the role required for the operation (e.g. not creator)."""
    http_status = 403


class InvalidState(ProdigyError):
    """Operation is not valid for the project's current status."""
    http_status = 409


# ---------------------------------------------------------------------------
# Operation-specific precondition violations
# ---------------------------------------------------------------------------
class Full(ProdigyError):
    """Project roster is at ``max_participants``."""
    http_status = 409


class AlreadyMember(ProdigyError):
    """User already has a roster entry for the project."""
    http_status = 409


class AlreadyCompleted(InvalidState):
    """Project has already transitioned to ``completed``."""


class InvalidAmount(ProdigyError):
    """XP award amount is not a positive integer."""
    http_status = 422


# ---------------------------------------------------------------------------
# Downstream
# ---------------------------------------------------------------------------
class DownstreamUnavailable(ProdigyError):
    """Collaboration-channel adapter or notification subsystem failed."""
    http_status = 502
