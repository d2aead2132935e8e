"""Error taxonomy shared by the approval and administration handlers."""

from __future__ import annotations

from typing import Any, Dict, Optional


class ServiceError(Exception):
    """Base class for failures that map onto an HTTP response."""

    status_code = 500

    def __init__(self, message: str, *, details: Optional[Dict[str, Any]] = None) -> None:
        super().__init__(message)
        self.message = message
        self.details: Dict[str, Any] = dict(details or {})

    def to_payload(self) -> Dict[str, Any]:
        payload: Dict[str, Any] = {"error": self.message}
        payload.update(self.details)
        return payload


class AuthError(ServiceError):
    status_code = 401


class ForbiddenError(ServiceError):
    status_code = 403


class BadRequestError(ServiceError):
    status_code = 400


class NotFoundError(ServiceError):
    status_code = 404


class ConflictError(ServiceError):
    status_code = 409


class UpstreamError(ServiceError):
    """Raised when the hosted database, auth subsystem or email provider fails."""

    status_code = 500


__all__ = [
    "AuthError",
    "BadRequestError",
    "ConflictError",
    "ForbiddenError",
    "NotFoundError",
    "ServiceError",
    "UpstreamError",
]
