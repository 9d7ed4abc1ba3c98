"""
Authenticated Request Wrapper

Runs one remote operation with the current session. An authorization-class
failure triggers exactly one forced refresh and one retry; nothing loops.

Usage:
    hits = await authenticated_request(manager, lambda session: client.search(session, "gst"))
"""

import enum
import logging
from dataclasses import dataclass
from typing import Awaitable, Callable, Generic, Optional, TypeVar

from casebot.apps.auth.session import SessionManager
from casebot.utils.errors import AUTH_STATUS_CODES, ApiError, AuthorizationExpiredError
from casebot.utils.schemas import Session

logger = logging.getLogger(__name__)

T = TypeVar("T")


class Outcome(enum.Enum):
    OK = "ok"
    NEEDS_REFRESH = "needs_refresh"
    FAILED = "failed"


@dataclass
class Attempt(Generic[T]):
    outcome: Outcome
    value: Optional[T] = None
    error: Optional[BaseException] = None


def is_authorization_failure(exc: BaseException) -> bool:
    if isinstance(exc, AuthorizationExpiredError):
        return True
    return isinstance(exc, ApiError) and exc.status_code in AUTH_STATUS_CODES


async def attempt(fn: Callable[[Session], Awaitable[T]], session: Session) -> Attempt[T]:
    """Run fn once and tag the result."""
    try:
        return Attempt(Outcome.OK, value=await fn(session))
    except Exception as e:
        if is_authorization_failure(e):
            return Attempt(Outcome.NEEDS_REFRESH, error=e)
        return Attempt(Outcome.FAILED, error=e)


async def authenticated_request(manager: SessionManager, fn: Callable[[Session], Awaitable[T]]) -> T:
    """
    Call fn with a valid session, refreshing once on an authorization failure.

    Args:
        manager: Owner of the current session
        fn: Async operation taking a Session and making one remote call

    Returns:
        Whatever fn returns

    Raises:
        AuthError: If a login is needed and fails
        Exception: fn's own error when it is not authorization-class, or the
            error of the retry after a refresh, unchanged
    """
    session = await manager.get_session()
    first = await attempt(fn, session)

    if first.outcome is Outcome.OK:
        return first.value
    if first.outcome is Outcome.FAILED:
        raise first.error

    status = getattr(first.error, "status_code", None)
    logger.warning("Auth error, refreshing token and retrying", extra={"status": status})
    session = await manager.force_refresh()

    second = await attempt(fn, session)
    if second.outcome is Outcome.OK:
        return second.value
    raise second.error
