"""Error kinds surfaced by the signal engine.

Each error carries a stable ``code`` and a human readable ``message``. The
``status`` attribute is only a hint for the transport layer that maps errors
to responses; nothing in this package depends on it.
"""

from __future__ import annotations

from typing import Optional


class ServiceError(Exception):
    """Base class for expected, caller-visible failures."""

    code: str = "service_error"
    status: int = 400

    def __init__(self, message: str, code: Optional[str] = None) -> None:
        super().__init__(message)
        self.message = message
        if code is not None:
            self.code = code

    def __str__(self) -> str:
        return self.message

    def to_dict(self) -> dict[str, str]:
        return {"code": self.code, "message": self.message}


class RateLimitedError(ServiceError):
    code = "rate_limited"
    status = 429


class InvalidTagError(ServiceError):
    code = "invalid_tag"
    status = 400


class InvalidStatusTransitionError(ServiceError):
    code = "invalid_status_transition"
    status = 400

    def __init__(self, from_status: str, to_status: str) -> None:
        super().__init__(f"Cannot transition from {from_status} to {to_status}")
        self.from_status = from_status
        self.to_status = to_status


class NotFoundError(ServiceError):
    """Referenced entity is missing; ``code`` names which one."""

    code = "report_not_found"
    status = 404


class TokenError(ServiceError):
    code = "invalid_token"
    status = 403


class PeriodResolutionError(ServiceError):
    code = "period_resolution_failed"
    status = 500
