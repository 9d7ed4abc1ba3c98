"""
Error taxonomy shared by the session layer, the remote adapters and the fetch loop.
"""

from typing import Optional

AUTH_STATUS_CODES = frozenset({401, 403, 409})


class CasebotError(Exception):
    """Base class for all casebot errors."""


class AuthError(CasebotError):
    """Credentials missing from configuration or login rejected. Never retried."""


class PersistentIOError(CasebotError):
    """Session or cache file could not be written. Logged, never fatal to a batch."""


class ApiError(CasebotError):
    """A remote call failed.

    Args:
        message: Human-readable reason
        status_code: HTTP status, or None for transport failures
    """

    def __init__(self, message: str, status_code: Optional[int] = None) -> None:
        self.message = message
        self.status_code = status_code
        super().__init__(message if status_code is None else f"{message} (status {status_code})")


class AuthorizationExpiredError(ApiError):
    """Remote rejected the session (401, 403 or 409)."""


class RateLimitError(ApiError):
    """Remote signaled its request-rate ceiling."""


class TransientNetworkError(ApiError):
    """Transport failure, unexpected status or malformed payload."""
