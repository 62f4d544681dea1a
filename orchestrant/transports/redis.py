"""Redis pub/sub transport for broadcasting engine events."""

from __future__ import annotations

import asyncio
import logging
from typing import Any, AsyncIterator, Optional

import redis.asyncio as redis
from pydantic import ValidationError

from ..constants import DEFAULT_REDIS_CHANNEL
from ..events import BaseEvent, parse_event
from ..persistence.codec import dump_json
from .base import EventTransport

logger = logging.getLogger(__name__)


class RedisEventTransport(EventTransport):
    """Publish events as JSON on a Redis channel."""

    def __init__(
        self,
        host: str = "localhost",
        port: int = 6379,
        db: int = 0,
        password: Optional[str] = None,
        channel: str = DEFAULT_REDIS_CHANNEL,
    ) -> None:
        self.host = host
        self.port = port
        self.db = db
        self.password = password
        self.channel = channel
        self._client: Optional[Any] = None

    async def connect(self) -> None:
        """Open the client and make sure the server answers."""
        self._client = redis.Redis(
            host=self.host,
            port=self.port,
            db=self.db,
            password=self.password,
            decode_responses=True,
        )
        await self._client.ping()

    async def disconnect(self) -> None:
        """Close the client if it was opened."""
        if self._client:
            await self._client.aclose()
            self._client = None

    async def publish(self, event: BaseEvent) -> None:
        if not self._client:
            await self.connect()
        await self._client.publish(self.channel, dump_json(event.model_dump()))

    async def subscribe(
        self, lifespan: Optional[float] = None
    ) -> AsyncIterator[BaseEvent]:
        if not self._client:
            await self.connect()

        pubsub = self._client.pubsub()
        await pubsub.subscribe(self.channel)
        loop = asyncio.get_running_loop()
        start_time = loop.time() if lifespan else None
        try:
            while True:
                if lifespan and start_time:
                    if loop.time() - start_time >= lifespan:
                        break

                message = await pubsub.get_message(
                    ignore_subscribe_messages=True, timeout=1.0
                )
                if not message:
                    continue
                try:
                    yield parse_event(message["data"])
                except ValidationError as e:
                    logger.warning(f"Failed to parse event from {self.channel}: {e}")
        finally:
            await pubsub.unsubscribe(self.channel)
            await pubsub.aclose()
