"""Orchestrant: agent orchestration with human-gated writes."""

from .agent import AgentConfig, BaseAgent, SideEffectAgent
from .contracts import (
    AgentState,
    Approval,
    ParallelGroup,
    ParallelMember,
    SequentialStep,
    WorkflowDefinition,
    WorkflowExecution,
    WriteIntent,
    WriteRequest,
)
from .engine import Orchestrator, create_orchestrator
from .errors import (
    AgentNotFound,
    AlreadyResolved,
    CommitFailure,
    ExecutionNotFound,
    NotFound,
    OrchestrantError,
    TaskFailure,
    ValidationFailure,
    WorkflowNotFound,
    WriteRequestNotFound,
)
from .events import EventBus
from .persistence import get_repository
from .transports import get_transport

__version__ = "0.1.0"
__all__ = [
    "AgentConfig",
    "AgentNotFound",
    "AgentState",
    "AlreadyResolved",
    "Approval",
    "BaseAgent",
    "CommitFailure",
    "EventBus",
    "ExecutionNotFound",
    "NotFound",
    "OrchestrantError",
    "Orchestrator",
    "ParallelGroup",
    "ParallelMember",
    "SequentialStep",
    "SideEffectAgent",
    "TaskFailure",
    "ValidationFailure",
    "WorkflowDefinition",
    "WorkflowExecution",
    "WorkflowNotFound",
    "WriteIntent",
    "WriteRequest",
    "WriteRequestNotFound",
    "create_orchestrator",
    "get_repository",
    "get_transport",
]
