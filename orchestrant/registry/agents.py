"""Registry of agents keyed by name."""

from __future__ import annotations

import logging
from typing import Dict, Iterable, Iterator, Optional

from ..agent.base import BaseAgent
from ..contracts import AgentInfo
from ..errors import AgentNotFound, ValidationFailure
from ..events import EventBus

logger = logging.getLogger(__name__)


class AgentRegistry:
    """Name -> agent lookup, populated once at startup.

    Registered agents are attached to the registry's event bus so every
    agent publishes on the same channel.
    """

    def __init__(
        self, agents: Iterable[BaseAgent] = (), bus: Optional[EventBus] = None
    ) -> None:
        self._bus = bus or EventBus()
        self._agents: Dict[str, BaseAgent] = {}
        for agent in agents:
            self.register(agent)

    def register(self, agent: BaseAgent) -> BaseAgent:
        if agent.name in self._agents:
            raise ValidationFailure(
                f"Agent already registered: {agent.name}", code="duplicate_agent"
            )
        agent.attach(self._bus)
        self._agents[agent.name] = agent
        logger.debug(f"Registered agent {agent.name} ({agent.role})")
        return agent

    def get(self, name: str) -> BaseAgent:
        try:
            return self._agents[name]
        except KeyError:
            raise AgentNotFound(name) from None

    def __contains__(self, name: object) -> bool:
        return name in self._agents

    def __iter__(self) -> Iterator[BaseAgent]:
        return iter(self._agents.values())

    def __len__(self) -> int:
        return len(self._agents)

    def names(self) -> list[str]:
        return list(self._agents)

    def health(self) -> Dict[str, AgentInfo]:
        return {name: agent.info() for name, agent in self._agents.items()}
