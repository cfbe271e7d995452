"""Error taxonomy shared by the sync engine and the HTTP routes."""

from __future__ import annotations

from fastapi import HTTPException

AUTH_ERROR_MARKERS = (
    "unauthorized",
    "invalid or expired session",
    "no session token",
    "session expired",
)


class VerseCoachError(Exception):
    """Base class for errors surfaced to the user."""

    status_code = 500


class ValidationError(VerseCoachError):
    status_code = 400


class AuthenticationError(VerseCoachError):
    status_code = 401


class NotFoundError(VerseCoachError):
    status_code = 404


class ConflictError(VerseCoachError):
    status_code = 409


class InvalidTransitionError(VerseCoachError):
    status_code = 409


class TransientSyncError(VerseCoachError):
    status_code = 503


class StoreUnavailableError(VerseCoachError):
    status_code = 500


def is_auth_error(message: str | None) -> bool:
    """Detect an expired or invalid session from the server's error text."""
    if not message:
        return False
    lowered = message.lower()
    return any(marker in lowered for marker in AUTH_ERROR_MARKERS)


def is_conflict_error(message: str | None, status_code: int | None = None) -> bool:
    if status_code == 409:
        return True
    if not message:
        return False
    return "already exists" in message.lower()


def to_http_exception(exc: VerseCoachError) -> HTTPException:
    return HTTPException(status_code=exc.status_code, detail=str(exc) or exc.__class__.__name__)
