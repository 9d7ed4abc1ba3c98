import pytest

from casebot.apps.fetcher.backoff import (
    FailureKind,
    FetchPolicy,
    backoff_delay,
    classify_failure,
    failure_cooldown,
    pacing_delay,
    periodic_cooldown,
)
from casebot.utils.errors import (
    ApiError,
    AuthError,
    AuthorizationExpiredError,
    RateLimitError,
    TransientNetworkError,
)

POLICY = FetchPolicy()


def test_backoff_doubles_and_caps():
    assert [backoff_delay(n, POLICY) for n in (1, 2, 3, 4)] == [10.0, 20.0, 30.0, 30.0]


def test_failure_cooldown_only_at_threshold():
    assert failure_cooldown(4, POLICY) == 0.0
    assert failure_cooldown(5, POLICY) == 30.0


def test_no_pacing_after_last_item():
    assert pacing_delay(0, 3, POLICY) == 0.8
    assert pacing_delay(2, 3, POLICY) == 0.0


def test_periodic_cooldown_every_thirty_items():
    assert periodic_cooldown(28, 100, POLICY) == 0.0
    assert periodic_cooldown(29, 100, POLICY) == 15.0
    assert periodic_cooldown(59, 100, POLICY) == 15.0
    assert periodic_cooldown(29, 30, POLICY) == 0.0


def test_policy_reads_settings(config):
    config = config.model_copy(update={"FETCH_MAX_ATTEMPTS": 5, "FETCH_ITEM_DELAY": 0.1})
    policy = FetchPolicy.from_settings(config)
    assert policy.max_attempts == 5
    assert policy.item_delay == 0.1
    assert policy.cap_delay == 30.0


@pytest.mark.parametrize(
    "error, kind",
    [
        (RateLimitError("too many requests", 429), FailureKind.RATE_LIMITED),
        (AuthorizationExpiredError("conflict", 409), FailureKind.RATE_LIMITED),
        (TransientNetworkError("Request failed: 409 Conflict", 400), FailureKind.RATE_LIMITED),
        (TransientNetworkError("Daily LIMIT reached", 200), FailureKind.RATE_LIMITED),
        (RuntimeError("upstream said 409"), FailureKind.RATE_LIMITED),
        (AuthorizationExpiredError("unauthorized", 401), FailureKind.FATAL),
        (AuthorizationExpiredError("forbidden", 403), FailureKind.FATAL),
        (AuthError("bad credentials"), FailureKind.FATAL),
        (TransientNetworkError("connection reset"), FailureKind.PERMANENT),
        (ApiError("server error", 500), FailureKind.PERMANENT),
        (ValueError("Case content too short"), FailureKind.PERMANENT),
    ],
)
def test_classify_failure(error, kind):
    assert classify_failure(error) is kind


@pytest.mark.parametrize(
    "error",
    [
        TransientNetworkError("Document 101010000409353754: HTML content too short (8 chars)"),
        TransientNetworkError("Failed to get document 10101000040935"),
        TransientNetworkError("Request to https://api.test/centax/getFileText failed: timed out"),
    ],
)
def test_locally_raised_errors_are_not_scanned_for_rate_limit_words(error):
    assert classify_failure(error) is FailureKind.PERMANENT
