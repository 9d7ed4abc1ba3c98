"""
Backoff Policy

Pure delay functions for the fetch loop and the single place where a fetch
failure is classified. Nothing here sleeps; the loop decides when to wait.
"""

import enum
import re
from dataclasses import dataclass
from typing import Optional

from casebot.utils.config import Settings, settings as default_settings
from casebot.utils.errors import ApiError, AuthError, AuthorizationExpiredError, RateLimitError

RATE_LIMIT_STATUS_CODES = frozenset({409, 429})

# The remote has no structured throttling code; these message fragments are
# what it has been seen to send. Not assumed to be complete.
RATE_LIMIT_PATTERN = re.compile(r"409|limit", re.IGNORECASE)


class FailureKind(enum.Enum):
    RATE_LIMITED = "rate_limited"
    PERMANENT = "permanent"
    FATAL = "fatal"


@dataclass(frozen=True)
class FetchPolicy:
    """Timing constants for the fetch loop, in seconds."""

    max_attempts: int = 3
    base_delay: float = 5.0
    cap_delay: float = 30.0
    failure_threshold: int = 5
    failure_cooldown: float = 30.0
    item_delay: float = 0.8
    cooldown_every: int = 30
    cooldown_delay: float = 15.0
    progress_every: int = 5

    @classmethod
    def from_settings(cls, config: Settings = default_settings) -> "FetchPolicy":
        return cls(
            max_attempts=config.FETCH_MAX_ATTEMPTS,
            base_delay=config.FETCH_BACKOFF_BASE,
            cap_delay=config.FETCH_BACKOFF_CAP,
            failure_threshold=config.FETCH_FAILURE_THRESHOLD,
            failure_cooldown=config.FETCH_FAILURE_COOLDOWN,
            item_delay=config.FETCH_ITEM_DELAY,
            cooldown_every=config.FETCH_COOLDOWN_EVERY,
            cooldown_delay=config.FETCH_COOLDOWN_DELAY,
            progress_every=config.FETCH_PROGRESS_EVERY,
        )


@dataclass
class BackoffState:
    retry_attempt: int = 0
    consecutive_failure_streak: int = 0

    def record_success(self) -> None:
        self.retry_attempt = 0
        self.consecutive_failure_streak = 0


def backoff_delay(attempt: int, policy: FetchPolicy) -> float:
    """Wait before retry number `attempt` (1-based) of a rate-limited item."""
    return min(policy.base_delay * 2 ** attempt, policy.cap_delay)


def failure_cooldown(consecutive_failures: int, policy: FetchPolicy) -> float:
    """Long pause once the failure streak reaches the threshold, else 0."""
    if consecutive_failures >= policy.failure_threshold:
        return policy.failure_cooldown
    return 0.0


def pacing_delay(index: int, total: int, policy: FetchPolicy) -> float:
    """Steady-state wait after item `index` (0-based); nothing after the last item."""
    if index >= total - 1:
        return 0.0
    return policy.item_delay


def periodic_cooldown(index: int, total: int, policy: FetchPolicy) -> float:
    """Proactive pause after every `cooldown_every` items, except after the last."""
    if policy.cooldown_every <= 0 or index >= total - 1:
        return 0.0
    if (index + 1) % policy.cooldown_every == 0:
        return policy.cooldown_delay
    return 0.0


def _remote_text(exc: BaseException) -> Optional[str]:
    """
    Text the remote supplied, if any.

    An ApiError without a status code was raised locally (transport failure,
    short document) and its message may embed a case id, so it is not scanned.
    """
    if isinstance(exc, ApiError):
        return exc.message if exc.status_code is not None else None
    return str(exc)


def classify_failure(exc: BaseException) -> FailureKind:
    """
    Decide what a failed fetch means for the loop.

    RATE_LIMITED: back off and retry the same item.
    FATAL: authentication is broken even after a refresh; stop the batch.
    PERMANENT: give up on this item only.
    """
    if isinstance(exc, RateLimitError):
        return FailureKind.RATE_LIMITED
    if isinstance(exc, ApiError) and exc.status_code in RATE_LIMIT_STATUS_CODES:
        return FailureKind.RATE_LIMITED
    if isinstance(exc, AuthError):
        return FailureKind.FATAL
    remote_text = _remote_text(exc)
    if remote_text is not None and RATE_LIMIT_PATTERN.search(remote_text):
        return FailureKind.RATE_LIMITED
    if isinstance(exc, AuthorizationExpiredError):
        return FailureKind.FATAL
    return FailureKind.PERMANENT
