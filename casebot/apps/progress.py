"""
Progress Reporting

Fans progress events out to the log, an optional in-process callback (the
NDJSON stream of the HTTP API, the CLI printer) and an optional Redis channel.

Usage:
    reporter = ProgressReporter(callback=queue.put)
    await reporter.emit("fetch_progress", "Reading case texts (5/45)...", progress=5)
"""

import logging
from typing import Any, Awaitable, Callable, Optional

import redis.asyncio as redis

from casebot.utils.config import settings
from casebot.utils.mq import ProgressPublisher
from casebot.utils.schemas import ProgressEvent

logger = logging.getLogger(__name__)

ProgressCallback = Callable[[ProgressEvent], Awaitable[None]]


class ProgressReporter:
    """Collects and forwards progress events for one run."""

    def __init__(
        self,
        callback: Optional[ProgressCallback] = None,
        publisher: Optional[ProgressPublisher] = None,
    ) -> None:
        self.callback = callback
        self.publisher = publisher
        self.events: list[ProgressEvent] = []

    @classmethod
    def from_settings(cls, callback: Optional[ProgressCallback] = None) -> "ProgressReporter":
        """Reporter that also publishes to Redis when REDIS_URL is configured."""
        publisher = ProgressPublisher() if settings.REDIS_URL else None
        return cls(callback=callback, publisher=publisher)

    async def emit(self, step: str, message: str = "", **fields: Any) -> ProgressEvent:
        event = ProgressEvent(step=step, message=message, **fields)
        self.events.append(event)

        log = logger.error if step == "error" else logger.info
        log(message or step, extra={"step": step, "progress": event.progress})

        if self.callback is not None:
            await self.callback(event)

        if self.publisher is not None:
            try:
                await self.publisher.publish(event)
            except redis.RedisError as e:
                logger.warning(
                    "Failed to publish progress event",
                    extra={"channel": self.publisher.channel, "step": step, "error": str(e)},
                )

        return event

    async def close(self) -> None:
        if self.publisher is not None:
            await self.publisher.close()
