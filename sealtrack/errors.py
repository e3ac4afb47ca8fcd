"""Error handling utilities."""

from typing import Any, Optional


class SealTrackError(Exception):
    """Base exception for the custody backend."""

    status_code = 400

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class ValidationError(SealTrackError):
    """Malformed input (coordinates, time window, enum value)."""

    status_code = 422


class TaskClosedError(ValidationError):
    """Task is completed or deactivated and accepts no more submissions."""


class DuplicatePackCodeError(ValidationError):
    """A task with this pack code already exists."""

    status_code = 409


class DuplicateError(SealTrackError):
    """Event type already recorded for this task; the existing record wins."""

    status_code = 409

    def __init__(self, message: str, existing: Optional[Any] = None):
        super().__init__(message)
        self.existing = existing


class EvidenceIntegrityError(SealTrackError):
    """Declared evidence hash does not match the received bytes."""

    status_code = 422


class ReferenceNotFoundError(SealTrackError):
    """Task or agent does not exist."""

    status_code = 404
