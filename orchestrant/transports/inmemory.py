"""In-memory event transport for testing."""

from __future__ import annotations

import asyncio
from collections import deque
from typing import AsyncIterator, Deque, List, Optional

from ..events import BaseEvent
from .base import EventTransport


class InMemoryEventTransport(EventTransport):
    """Simple in-process queue for unit tests."""

    def __init__(self) -> None:
        self.published: List[BaseEvent] = []
        self._queue: Deque[BaseEvent] = deque()
        self._lock = asyncio.Lock()

    async def publish(self, event: BaseEvent) -> None:
        async with self._lock:
            self.published.append(event)
            self._queue.append(event)

    async def subscribe(
        self, lifespan: Optional[float] = None
    ) -> AsyncIterator[BaseEvent]:
        loop = asyncio.get_running_loop()
        start_time = loop.time() if lifespan else None

        while True:
            if lifespan and start_time:
                elapsed = loop.time() - start_time
                if elapsed >= lifespan:
                    break

            async with self._lock:
                if self._queue:
                    event = self._queue.popleft()
                else:
                    event = None
            if event is not None:
                yield event
                continue

            await asyncio.sleep(0.05)
