"""Workflow definition registry and YAML loading."""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Any, Dict, Iterable, Iterator, List, Mapping, Optional, Union

import yaml
from pydantic import ValidationError

from ..contracts import WorkflowDefinition
from ..errors import ValidationFailure, WorkflowNotFound
from .agents import AgentRegistry

logger = logging.getLogger(__name__)


def _normalize_step(raw: Any, position: int) -> Dict[str, Any]:
    """Accept the compact ``{agent: ...}`` / ``{parallel: [...]}`` forms."""
    if not isinstance(raw, Mapping):
        raise ValidationFailure(
            f"Step {position} must be a mapping, got {type(raw).__name__}",
            code="invalid_workflow",
        )
    step = dict(raw)
    if "kind" in step:
        return step
    if "parallel" in step:
        members = []
        for member in step["parallel"] or []:
            if isinstance(member, str):
                members.append({"agent_name": member})
                continue
            member = dict(member)
            if "agent" in member:
                member["agent_name"] = member.pop("agent")
            members.append(member)
        return {"kind": "parallel", "members": members}
    if "agent" in step:
        step["agent_name"] = step.pop("agent")
    step["kind"] = "sequential"
    return step


def parse_workflow(name: str, data: Mapping[str, Any]) -> WorkflowDefinition:
    """Build a :class:`WorkflowDefinition` from a plain mapping."""
    steps = [
        _normalize_step(raw, i) for i, raw in enumerate(data.get("steps") or [])
    ]
    try:
        return WorkflowDefinition(
            name=data.get("name", name),
            description=data.get("description"),
            steps=steps,
        )
    except ValidationError as exc:
        raise ValidationFailure(
            f"Invalid workflow definition {name!r}: {exc}", code="invalid_workflow"
        ) from exc


def load_workflow_definitions(path: Union[str, Path]) -> List[WorkflowDefinition]:
    """Load workflow definitions from a YAML file.

    The file holds a top-level ``workflows`` mapping of name -> definition.
    """
    with open(path) as f:
        data = yaml.safe_load(f) or {}
    workflows = data.get("workflows", {})
    if not isinstance(workflows, Mapping):
        raise ValidationFailure(
            f"'workflows' in {path} must be a mapping", code="invalid_workflow"
        )
    definitions = [parse_workflow(name, body or {}) for name, body in workflows.items()]
    logger.info(f"Loaded {len(definitions)} workflow definitions from {path}")
    return definitions


class WorkflowRegistry:
    """Named workflow definitions; read-only once execution starts."""

    def __init__(
        self,
        definitions: Iterable[Union[WorkflowDefinition, Mapping[str, Any]]] = (),
        agents: Optional[AgentRegistry] = None,
    ) -> None:
        self._agents = agents
        self._definitions: Dict[str, WorkflowDefinition] = {}
        for definition in definitions:
            self.register(definition)

    def register(
        self, definition: Union[WorkflowDefinition, Mapping[str, Any]]
    ) -> WorkflowDefinition:
        if not isinstance(definition, WorkflowDefinition):
            definition = parse_workflow(definition.get("name", ""), definition)
        if definition.name in self._definitions:
            raise ValidationFailure(
                f"Workflow already registered: {definition.name}",
                code="duplicate_workflow",
            )
        if self._agents is not None:
            missing = [n for n in definition.agent_names() if n not in self._agents]
            if missing:
                raise ValidationFailure(
                    f"Workflow {definition.name} references unknown agents: {missing}",
                    code="unknown_agent",
                )
        self._definitions[definition.name] = definition
        logger.debug(
            f"Registered workflow {definition.name} with {len(definition.steps)} steps"
        )
        return definition

    def get(self, name: str) -> WorkflowDefinition:
        try:
            return self._definitions[name]
        except KeyError:
            raise WorkflowNotFound(name) from None

    def __contains__(self, name: object) -> bool:
        return name in self._definitions

    def __iter__(self) -> Iterator[WorkflowDefinition]:
        return iter(self._definitions.values())

    def __len__(self) -> int:
        return len(self._definitions)

    def names(self) -> List[str]:
        return list(self._definitions)
