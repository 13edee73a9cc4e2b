"""Exception taxonomy for the Semester Planner integration.

Defines a small hierarchy of exceptions used across services and the
WebSocket API. These extend Home Assistant's HomeAssistantError to ensure
consistent behavior when surfaced through the platform.

Invariant-rejected placement changes are not errors and never raise; only
field validation, unknown ids and storage failures do.
"""

from __future__ import annotations

from homeassistant.exceptions import HomeAssistantError


class PlannerError(HomeAssistantError):
    """Base exception for Semester Planner errors."""

    def __init__(self, message: str) -> None:
        super().__init__(message)


class ValidationError(PlannerError):
    """Raised when direct field edits fail validation."""


class NotFoundError(PlannerError):
    """Raised when a requested course, semester or group does not exist."""


class StorageError(PlannerError):
    """Raised when storage operations fail or data is corrupted."""
