"""
Backoff Fetch Loop

Pulls the text of each case in a work list, one at a time, from a remote that
enforces an undocumented rate limit. Rate-limited items are retried with
exponential backoff; other failures skip the item. A streak of failures, and
every Nth item, trigger a longer cooldown. Partial failure is a normal outcome:
the loop only raises for authentication that stays broken after a refresh.

Usage:
    report = await fetch_case_texts(hits, fetch_one, policy=FetchPolicy.from_settings())
"""

import asyncio
import logging
from typing import Awaitable, Callable, Optional, Sequence

from casebot.apps.fetcher.backoff import (
    BackoffState,
    FailureKind,
    FetchPolicy,
    backoff_delay,
    classify_failure,
    failure_cooldown,
    pacing_delay,
    periodic_cooldown,
)
from casebot.apps.progress import ProgressReporter
from casebot.utils.schemas import CaseText, FetchReport, SearchHit

logger = logging.getLogger(__name__)

Sleep = Callable[[float], Awaitable[None]]
FetchOne = Callable[[SearchHit], Awaitable[CaseText]]


class BatchFetcher:
    """Runs the fetch loop over one work list."""

    def __init__(
        self,
        fetch_one: FetchOne,
        policy: Optional[FetchPolicy] = None,
        sleep: Sleep = asyncio.sleep,
        reporter: Optional[ProgressReporter] = None,
    ) -> None:
        self.fetch_one = fetch_one
        self.policy = policy or FetchPolicy()
        self.sleep = sleep
        self.reporter = reporter or ProgressReporter()
        self.state = BackoffState()
        self.total = 0

    async def _fetch_item(self, case: SearchHit, report: FetchReport) -> Optional[CaseText]:
        """Try one item up to the attempt ceiling. None means skipped."""
        self.state.retry_attempt = 0

        while True:
            try:
                return await self.fetch_one(case)
            except Exception as e:
                kind = classify_failure(e)
                if kind is FailureKind.FATAL:
                    raise

                self.state.retry_attempt += 1
                attempt = self.state.retry_attempt

                if kind is FailureKind.RATE_LIMITED and attempt < self.policy.max_attempts:
                    delay = backoff_delay(attempt, self.policy)
                    logger.info(
                        "Rate limited, backing off",
                        extra={"case_id": case.id, "delay": delay, "attempt": attempt},
                    )
                    await self.reporter.emit(
                        "fetch_progress",
                        f"Rate limited: pausing {delay:g}s, then retrying... "
                        f"({len(report.texts)}/{self.total} read)",
                        progress=len(report.texts),
                    )
                    await self.sleep(delay)
                    continue

                logger.warning(
                    "Skipping case",
                    extra={"case_id": case.id, "kind": kind.value, "attempts": attempt, "error": str(e)},
                )
                return None

    async def run(self, cases: Sequence[SearchHit]) -> FetchReport:
        report = FetchReport()
        total = len(cases)
        self.total = total
        if total == 0:
            return report

        await self.reporter.emit("fetch", f"Reading case texts (0/{total})...", progress=0, total=total)

        for index, case in enumerate(cases):
            text = await self._fetch_item(case, report)
            report.processed += 1

            if text is not None:
                report.texts.append(text)
                self.state.record_success()
            else:
                report.skipped += 1
                report.skipped_ids.append(case.id)
                self.state.consecutive_failure_streak += 1
                await self.reporter.emit(
                    "fetch_progress",
                    f"Skipped case {case.id} ({len(report.texts)}/{total} read)",
                    progress=len(report.texts),
                    total=total,
                )

            completed = len(report.texts)
            if (text is not None and completed % self.policy.progress_every == 0) or index == total - 1:
                await self.reporter.emit(
                    "fetch_progress",
                    f"Reading case texts ({completed}/{total})...",
                    progress=completed,
                    total=total,
                )

            cooldown = failure_cooldown(self.state.consecutive_failure_streak, self.policy)
            if cooldown:
                await self.reporter.emit(
                    "fetch_progress",
                    f"API rate limit hit, cooling down {cooldown:g}s... ({completed} read so far)",
                    progress=completed,
                )
                await self.sleep(cooldown)
                self.state.consecutive_failure_streak = 0
                report.cooldowns += 1

            delay = pacing_delay(index, total, self.policy)
            if delay:
                await self.sleep(delay)

            extra = periodic_cooldown(index, total, self.policy)
            if extra:
                await self.reporter.emit(
                    "fetch_progress",
                    f"Cooldown pause after {index + 1} cases ({extra:g}s)...",
                    progress=completed,
                )
                await self.sleep(extra)
                report.cooldowns += 1

        if report.skipped:
            logger.warning("Some cases could not be fetched", extra={"skipped": report.skipped, "total": total})
        return report


async def fetch_case_texts(
    cases: Sequence[SearchHit],
    fetch_one: FetchOne,
    policy: Optional[FetchPolicy] = None,
    sleep: Sleep = asyncio.sleep,
    reporter: Optional[ProgressReporter] = None,
) -> FetchReport:
    """
    Fetch the text of every case in order, recovering from throttling.

    Args:
        cases: Ordered work list
        fetch_one: Async fetch of a single case's text
        policy: Retry and cooldown timings
        sleep: Wait primitive (injected by tests)
        reporter: Progress sink

    Returns:
        FetchReport with the texts read and the skipped count

    Raises:
        AuthError, AuthorizationExpiredError: If authentication fails after a refresh
    """
    fetcher = BatchFetcher(fetch_one, policy=policy, sleep=sleep, reporter=reporter)
    return await fetcher.run(cases)
