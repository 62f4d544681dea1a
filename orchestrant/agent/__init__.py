"""Agent base classes."""

from .base import AgentConfig, BaseAgent, SideEffectAgent

__all__ = ["AgentConfig", "BaseAgent", "SideEffectAgent"]
