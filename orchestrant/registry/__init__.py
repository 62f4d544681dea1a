"""Agent and workflow definition registries."""

from __future__ import annotations

from .agents import AgentRegistry
from .workflows import WorkflowRegistry, load_workflow_definitions, parse_workflow

__all__ = [
    "AgentRegistry",
    "WorkflowRegistry",
    "load_workflow_definitions",
    "parse_workflow",
]
