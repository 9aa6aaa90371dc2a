"""Error taxonomy shared by the lifecycle manager, safety gate and API."""

from __future__ import annotations

from typing import Any, Dict, Optional


class DraftGateError(Exception):
    """Base class for every domain failure surfaced to callers."""

    code = "error"
    status_code = 400
    retryable = False

    def __init__(
        self,
        message: str,
        *,
        guidance: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.guidance = guidance
        self.details = dict(details or {})

    def to_dict(self) -> Dict[str, Any]:
        payload: Dict[str, Any] = {
            "code": self.code,
            "message": self.message,
            "retryable": self.retryable,
        }
        if self.guidance:
            payload["guidance"] = self.guidance
        if self.details:
            payload["details"] = self.details
        return payload


class Unauthorized(DraftGateError):
    code = "unauthorized"
    status_code = 403


class NotFound(DraftGateError):
    code = "not_found"
    status_code = 404


class AlreadyDecided(DraftGateError):
    code = "already_decided"
    status_code = 409


class AlreadyApproved(AlreadyDecided):
    code = "already_approved"


class AlreadyRejected(AlreadyDecided):
    code = "already_rejected"


class InvalidInput(DraftGateError):
    code = "invalid_input"
    status_code = 422


class Blocked(DraftGateError):
    """Policy rejection: the request names a substance this channel never handles."""

    code = "blocked"
    status_code = 422


class RequiresEscalation(DraftGateError):
    """Valid input that belongs in a full consultation instead of this channel."""

    code = "requires_consult"
    status_code = 422


class PersistenceFailure(DraftGateError):
    code = "persistence_failure"
    status_code = 503
    retryable = True


class GenerationFailure(DraftGateError):
    code = "generation_failed"
    status_code = 502
    retryable = True


class DownstreamSyncFailure(DraftGateError):
    """Recorded as a side-effect outcome of approval; never raised to callers."""

    code = "downstream_sync_failed"
    status_code = 500


__all__ = [
    "AlreadyApproved",
    "AlreadyDecided",
    "AlreadyRejected",
    "Blocked",
    "DownstreamSyncFailure",
    "DraftGateError",
    "GenerationFailure",
    "InvalidInput",
    "NotFound",
    "PersistenceFailure",
    "RequiresEscalation",
    "Unauthorized",
]
