"""Typed domain errors raised by the funding core.

Every error is detected inside the enclosing transaction, which is rolled back
before the error reaches the caller. None of them is retried automatically.
"""
from datetime import datetime

from grantflow.core.clock import isoformat_utc


class DomainError(Exception):
    code = "domain_error"
    status_code = 400

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message

    def to_dict(self) -> dict:
        return {"detail": self.message, "error": self.code}


class NotFoundError(DomainError):
    code = "not_found"
    status_code = 404


class AuthorizationError(DomainError):
    code = "forbidden"
    status_code = 403


class WindowClosedError(DomainError):
    """Operation attempted outside the phase that allows it."""

    code = "window_closed"
    status_code = 409

    def __init__(self, message: str, boundary: datetime | None = None):
        super().__init__(message)
        self.boundary = boundary

    def to_dict(self) -> dict:
        data = super().to_dict()
        if self.boundary is not None:
            data["boundary"] = isoformat_utc(self.boundary)
        return data


class LimitExceededError(DomainError):
    code = "limit_exceeded"
    status_code = 409


class InvariantViolationError(DomainError):
    code = "invariant_violation"
    status_code = 422


class AlreadyProcessedError(DomainError):
    code = "already_processed"
    status_code = 409
