"""
Redis Pub/Sub for progress events.

A run publishes each ProgressEvent to one channel; `casebot watch` (or any
other process) follows the channel and gets the events back as models.

Usage:
    publisher = ProgressPublisher()
    await publisher.publish(event)

    async for event in ProgressSubscriber().events():
        print(event.message)
"""

import asyncio
import logging
from typing import AsyncIterator, Optional

import orjson
import redis.asyncio as redis
from pydantic import ValidationError
from tenacity import retry, retry_if_exception_type, stop_after_attempt, wait_exponential

from casebot.utils.config import settings
from casebot.utils.schemas import ProgressEvent

logger = logging.getLogger(__name__)


def _connect(redis_url: str) -> redis.Redis:
    return redis.from_url(
        redis_url,
        max_connections=settings.REDIS_MAX_CONNECTIONS,
        decode_responses=False,  # payloads are orjson bytes
    )


class ProgressPublisher:
    """Publishes progress events to a Redis channel, retrying dropped connections."""

    def __init__(self, redis_url: Optional[str] = None, channel: Optional[str] = None) -> None:
        """
        Args:
            redis_url: Redis connection URL, defaults to settings.REDIS_URL
            channel: Channel name, defaults to settings.REDIS_CHANNEL_PROGRESS
        """
        self.redis_url = redis_url or settings.REDIS_URL
        self.channel = channel or settings.REDIS_CHANNEL_PROGRESS
        self.client: Optional[redis.Redis] = None

    @retry(
        retry=retry_if_exception_type((redis.ConnectionError, redis.TimeoutError)),
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=1, min=1, max=5),
        reraise=True,
    )
    async def publish(self, event: ProgressEvent) -> None:
        """
        Raises:
            redis.RedisError: If publishing still fails after retries
        """
        if self.client is None:
            self.client = _connect(self.redis_url)
        await self.client.publish(self.channel, orjson.dumps(event.model_dump(mode="json")))

    async def close(self) -> None:
        if self.client:
            await self.client.aclose()
            self.client = None


class ProgressSubscriber:
    """Follows a progress channel until stopped."""

    def __init__(self, redis_url: Optional[str] = None, channel: Optional[str] = None) -> None:
        self.redis_url = redis_url or settings.REDIS_URL
        self.channel = channel or settings.REDIS_CHANNEL_PROGRESS
        self.client: Optional[redis.Redis] = None
        self.pubsub: Optional[redis.client.PubSub] = None
        self._stop_event = asyncio.Event()

    async def events(self) -> AsyncIterator[ProgressEvent]:
        """
        Yield events as they arrive. Undecodable messages are logged and skipped.
        """
        if self.pubsub is None:
            self.client = _connect(self.redis_url)
            self.pubsub = self.client.pubsub()
            await self.pubsub.subscribe(self.channel)
            logger.info("Watching progress channel", extra={"channel": self.channel})

        while not self._stop_event.is_set():
            try:
                message = await self.pubsub.get_message(ignore_subscribe_messages=True, timeout=1.0)
            except redis.RedisError as e:
                logger.error("Redis error while watching", extra={"channel": self.channel, "error": str(e)})
                await asyncio.sleep(1)
                continue

            if not message or message["type"] != "message":
                continue
            try:
                event = ProgressEvent(**orjson.loads(message["data"]))
            except (orjson.JSONDecodeError, TypeError, ValidationError) as e:
                logger.warning("Skipping undecodable progress message", extra={"error": str(e)})
                continue
            yield event

    def stop(self) -> None:
        self._stop_event.set()

    async def close(self) -> None:
        try:
            if self.pubsub:
                await self.pubsub.unsubscribe(self.channel)
                await self.pubsub.aclose()
                self.pubsub = None
        finally:
            if self.client:
                await self.client.aclose()
                self.client = None
