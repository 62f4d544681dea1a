"""Orchestrator: the public invocation surface of the engine."""

from __future__ import annotations

import importlib
import logging
from typing import Any, Dict, Iterable, List, Mapping, Optional, Union

from .agent.base import BaseAgent
from .approvals import ApprovalCoordinator
from .config import OrchestrantConfig, load_config
from .contracts import (
    AgentInfo,
    ApprovalOutcome,
    CommitResult,
    WorkflowDefinition,
    WorkflowExecution,
    WriteRequest,
)
from .errors import ValidationFailure
from .events import EventBus
from .execute import WorkflowExecutor
from .persistence import StateRepository, get_repository
from .registry import AgentRegistry, WorkflowRegistry, load_workflow_definitions

logger = logging.getLogger(__name__)

WorkflowLike = Union[WorkflowDefinition, Mapping[str, Any]]


class Orchestrator:
    """Owns the agent and execution registries and exposes engine operations.

    Built explicitly with its dependencies; there is no process-wide
    instance.
    """

    def __init__(
        self,
        agents: AgentRegistry,
        workflows: WorkflowRegistry,
        repository: StateRepository,
        bus: EventBus,
        auto_commit: bool = True,
        follow_ups: Optional[Mapping[str, str]] = None,
    ) -> None:
        self.agents = agents
        self.workflows = workflows
        self.repository = repository
        self.bus = bus
        self.approvals = ApprovalCoordinator(
            repository, agents, bus, auto_commit=auto_commit, follow_ups=follow_ups
        )
        self.executor = WorkflowExecutor(
            agents, workflows, self.approvals, repository, bus
        )

    # ------------------------------------------------------------------
    # Registration
    def register_agent(self, agent: BaseAgent) -> BaseAgent:
        return self.agents.register(agent)

    def register_workflow(self, definition: WorkflowLike) -> WorkflowDefinition:
        return self.workflows.register(definition)

    # ------------------------------------------------------------------
    # Invocation surface
    async def execute_workflow(
        self, name: str, input: Optional[Mapping[str, Any]] = None
    ) -> Dict[str, Any]:
        return await self.executor.execute_workflow(name, input)

    async def execute_agent(self, agent_name: str, input: Any) -> Any:
        return await self.executor.execute_agent(agent_name, input)

    async def submit_approval(
        self,
        request_id: str,
        approver_id: str,
        decision: str,
        comment: Optional[str] = None,
    ) -> ApprovalOutcome:
        return await self.approvals.submit_approval(
            request_id, approver_id, decision, comment
        )

    async def retry_commit(
        self, request_id: str, raise_on_failure: bool = False
    ) -> CommitResult:
        return await self.approvals.retry_commit(request_id, raise_on_failure)

    async def get_workflow_status(self, execution_id: str) -> WorkflowExecution:
        return await self.executor.get_workflow_status(execution_id)

    async def list_pending_write_requests(self) -> List[WriteRequest]:
        return await self.approvals.list_pending()

    async def get_write_request(self, request_id: str) -> WriteRequest:
        return await self.approvals.get_write_request(request_id)

    def health_check(self) -> Dict[str, AgentInfo]:
        """Return ``{agent_name: {state, id}}`` for every registered agent."""
        return self.agents.health()

    async def reset_agents(self) -> None:
        for agent in self.agents:
            await agent.cleanup()


def import_object(path: str) -> Any:
    """Resolve ``package.module:attribute``."""
    module_name, sep, attr = path.partition(":")
    if not sep or not module_name or not attr:
        raise ValidationFailure(
            f"Expected 'module:attribute', got {path!r}", code="invalid_import_path"
        )
    module = importlib.import_module(module_name)
    try:
        return getattr(module, attr)
    except AttributeError:
        raise ValidationFailure(
            f"{module_name} has no attribute {attr!r}", code="invalid_import_path"
        ) from None


def create_orchestrator(
    agents: Optional[Iterable[BaseAgent]] = None,
    workflows: Iterable[WorkflowLike] = (),
    config: Optional[OrchestrantConfig] = None,
    repository: Optional[StateRepository] = None,
    bus: Optional[EventBus] = None,
) -> Orchestrator:
    """Build an orchestrator with injected dependencies.

    Missing pieces come from ``config``: the repository from
    ``database_url``, agents from the ``agents`` factory path and extra
    workflow definitions from ``workflows_file``.
    """
    config = config or load_config()
    bus = bus or EventBus()
    repository = repository or get_repository(config=config)

    if agents is None:
        agents = import_object(config.agents)() if config.agents else []
    agent_registry = AgentRegistry(agents, bus=bus)

    definitions: List[WorkflowLike] = list(workflows)
    if config.workflows_file:
        definitions.extend(load_workflow_definitions(config.workflows_file))
    workflow_registry = WorkflowRegistry(definitions, agents=agent_registry)

    follow_ups = config.approvals.follow_ups
    missing = [
        name
        for name in (*follow_ups.keys(), *follow_ups.values())
        if name not in agent_registry
    ]
    if missing:
        raise ValidationFailure(
            f"Commit follow-ups reference unknown agents: {missing}",
            code="unknown_agent",
        )

    logger.info(
        f"Orchestrator ready with {len(agent_registry)} agents and {len(workflow_registry)} workflows"
    )
    return Orchestrator(
        agent_registry,
        workflow_registry,
        repository,
        bus,
        auto_commit=config.approvals.auto_commit,
        follow_ups=follow_ups,
    )
