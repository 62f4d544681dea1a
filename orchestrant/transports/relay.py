"""Forward events from the in-process bus to an external transport."""

from __future__ import annotations

import asyncio
import logging
from typing import Iterable, Optional

from ..events import BaseEvent, EventBus
from .base import EventTransport

logger = logging.getLogger(__name__)


class EventRelay:
    """Queue bus events as they are published and ship them to a transport.

    The relay subscribes on construction, so no event published after that
    point is missed even if :meth:`run` starts later.
    """

    def __init__(
        self,
        bus: EventBus,
        transport: EventTransport,
        event_types: Optional[Iterable[str]] = None,
    ) -> None:
        self._transport = transport
        self._queue: asyncio.Queue[BaseEvent] = asyncio.Queue()
        self._unsubscribe = bus.subscribe(self._queue.put_nowait, event_types)
        self.forwarded = 0

    async def _forward(self, event: BaseEvent) -> None:
        try:
            await self._transport.publish(event)
        except Exception as e:
            logger.error(f"Failed to forward {event.type} event: {e}")
            raise
        self.forwarded += 1

    async def drain(self) -> int:
        """Forward every queued event and return how many were sent."""
        sent = 0
        while not self._queue.empty():
            await self._forward(self._queue.get_nowait())
            sent += 1
        return sent

    async def run(self, lifespan: Optional[float] = None) -> None:
        """Forward events until cancelled or ``lifespan`` seconds elapse."""

        async def _loop() -> None:
            while True:
                await self._forward(await self._queue.get())

        try:
            await asyncio.wait_for(_loop(), timeout=lifespan)
        except asyncio.TimeoutError:
            logger.debug("Event relay lifespan elapsed")

    def close(self) -> None:
        self._unsubscribe()
