"""Base transport interface for forwarding engine events."""

from __future__ import annotations

import abc
from typing import AsyncIterator, Optional

from ..events import BaseEvent


class EventTransport(metaclass=abc.ABCMeta):
    """Abstract sink that carries bus events out of the process."""

    async def connect(self) -> None:
        """Prepare the sink before the first publish. Nothing to do by default."""
        pass

    async def disconnect(self) -> None:
        """Release the sink. Nothing to do by default."""
        pass

    @abc.abstractmethod
    async def publish(self, event: BaseEvent) -> None:
        """Send an event to listeners."""
        raise NotImplementedError

    @abc.abstractmethod
    async def subscribe(
        self, lifespan: Optional[float] = None
    ) -> AsyncIterator[BaseEvent]:
        """Yield events published by any engine.

        Args:
            lifespan: Maximum time in seconds to keep listening. If None, runs indefinitely.
        """
        raise NotImplementedError
