"""Core data contracts for the orchestrant engine."""

from __future__ import annotations

import itertools
import time
import uuid
from datetime import datetime, timezone
from enum import Enum
from typing import Annotated, Any, Dict, List, Literal, Optional, Tuple, Union

from pydantic import BaseModel, ConfigDict, Field, field_validator

from .constants import (
    APPROVAL_PREFIX,
    WRITE_REQUEST_NAMESPACE,
    WRITE_REQUEST_PREFIX,
)
from .errors import ValidationFailure


WorkflowStatus = Literal["running", "completed", "failed"]
WriteRequestStatus = Literal["pending", "approved", "rejected"]
CommitStatus = Literal["not_attempted", "succeeded", "failed"]
Decision = Literal["approve", "reject"]

TERMINAL_WORKFLOW_STATUSES = frozenset({"completed", "failed"})

_execution_counter = itertools.count(1)


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class AgentState(str, Enum):
    """Lifecycle states of an agent."""

    IDLE = "idle"
    RUNNING = "running"
    PAUSED = "paused"
    COMPLETED = "completed"
    FAILED = "failed"


class AgentInfo(BaseModel):
    """Snapshot of an agent reported by health checks."""

    id: str
    state: AgentState


# ----------------------------------------------------------------------
# Workflow definitions


class SequentialStep(BaseModel):
    """Invoke a single agent with the accumulated context."""

    model_config = ConfigDict(frozen=True)

    kind: Literal["sequential"] = "sequential"
    agent_name: str
    streaming: bool = False
    requires_approval: bool = False

    @property
    def agent_names(self) -> Tuple[str, ...]:
        return (self.agent_name,)


class ParallelMember(BaseModel):
    model_config = ConfigDict(frozen=True)

    agent_name: str
    requires_approval: bool = False


class ParallelGroup(BaseModel):
    """Fan out to several agents over the same context snapshot."""

    model_config = ConfigDict(frozen=True)

    kind: Literal["parallel"] = "parallel"
    members: Tuple[ParallelMember, ...]

    @field_validator("members")
    @classmethod
    def _check_members(
        cls, v: Tuple[ParallelMember, ...]
    ) -> Tuple[ParallelMember, ...]:
        if not v:
            raise ValueError("parallel group needs at least one member")
        names = [m.agent_name for m in v]
        if len(set(names)) != len(names):
            raise ValueError(f"duplicate agents in parallel group: {names}")
        return v

    @property
    def agent_names(self) -> Tuple[str, ...]:
        return tuple(m.agent_name for m in self.members)


Step = Annotated[Union[SequentialStep, ParallelGroup], Field(discriminator="kind")]


class WorkflowDefinition(BaseModel):
    """Named, ordered composition of steps. Immutable once built."""

    model_config = ConfigDict(frozen=True)

    name: str
    description: Optional[str] = None
    steps: Tuple[Step, ...] = ()

    @field_validator("name")
    @classmethod
    def _ensure_name(cls, v: str) -> str:
        if not v:
            raise ValueError("workflow name must be a non-empty string")
        return v

    def agent_names(self) -> List[str]:
        """Return every agent referenced by the definition, in step order."""
        names: List[str] = []
        for step in self.steps:
            names.extend(step.agent_names)
        return names


# ----------------------------------------------------------------------
# Workflow executions


def new_execution_id(workflow_name: str) -> str:
    """Return ``<name>-<timestamp ms>-<counter>``; unique within the process."""
    return f"{workflow_name}-{int(time.time() * 1000)}-{next(_execution_counter)}"


class WorkflowExecution(BaseModel):
    """Record of a single run of a workflow definition."""

    execution_id: str
    workflow_name: str
    status: WorkflowStatus = "running"
    current_step_index: int = -1
    results: Dict[str, Any] = Field(default_factory=dict)
    error: Optional[str] = None
    failed_step: Optional[str] = None
    write_request_ids: List[str] = Field(default_factory=list)
    started_at: datetime = Field(default_factory=utcnow)
    ended_at: Optional[datetime] = None

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL_WORKFLOW_STATUSES

    def _ensure_running(self, action: str) -> None:
        if self.is_terminal:
            raise ValidationFailure(
                f"Cannot {action} execution {self.execution_id}: already {self.status}",
                code="execution_terminal",
            )

    def enter_step(self, index: int) -> None:
        self._ensure_running("advance")
        self.current_step_index = index

    def record_results(self, context: Dict[str, Any]) -> None:
        self._ensure_running("update")
        self.results = dict(context)

    def mark_completed(self, context: Dict[str, Any]) -> None:
        self.record_results(context)
        self.status = "completed"
        self.ended_at = utcnow()

    def mark_failed(self, error: BaseException, failed_step: Optional[str]) -> None:
        self._ensure_running("fail")
        self.status = "failed"
        self.error = str(error) or type(error).__name__
        self.failed_step = failed_step
        self.ended_at = utcnow()


# ----------------------------------------------------------------------
# Write requests and approvals


class WriteIntent(BaseModel):
    """What a side-effecting agent would write, before approval."""

    target: str
    payload: Any = None


def write_request_id(
    created_by: str, agent_name: str, target: str, step_index: Optional[int] = None
) -> str:
    """Deterministic id so that replaying a step yields the same request.

    ``step_index`` keeps two steps of one execution that invoke the same
    agent against the same target apart.
    """
    key = f"{created_by}:{agent_name}:{target}"
    if step_index is not None:
        key = f"{key}:{step_index}"
    return f"{WRITE_REQUEST_PREFIX}{uuid.uuid5(WRITE_REQUEST_NAMESPACE, key).hex}"


class WriteRequest(BaseModel):
    """Durable proposal for an external side effect."""

    id: str
    target: str
    payload: Any = None
    created_by: str
    agent_name: str
    created_at: datetime = Field(default_factory=utcnow)
    status: WriteRequestStatus = "pending"
    resolved_by: Optional[str] = None
    resolved_at: Optional[datetime] = None
    rejection_reason: Optional[str] = None
    commit_status: CommitStatus = "not_attempted"
    commit_attempts: int = 0
    last_commit_error: Optional[str] = None
    committed_at: Optional[datetime] = None

    @classmethod
    def propose(
        cls,
        intent: WriteIntent,
        *,
        created_by: str,
        agent_name: str,
        step_index: Optional[int] = None,
    ) -> "WriteRequest":
        return cls(
            id=write_request_id(created_by, agent_name, intent.target, step_index),
            target=intent.target,
            payload=intent.payload,
            created_by=created_by,
            agent_name=agent_name,
        )

    @property
    def is_pending(self) -> bool:
        return self.status == "pending"


class Approval(BaseModel):
    """A human decision resolving a write request."""

    id: str = Field(default_factory=lambda: f"{APPROVAL_PREFIX}{uuid.uuid4().hex}")
    request_id: str
    approver_id: str
    decision: Decision
    comment: Optional[str] = None
    created_at: datetime = Field(default_factory=utcnow)

    @property
    def approved(self) -> bool:
        return self.decision == "approve"


class CommitResult(BaseModel):
    """Outcome of executing an approved write."""

    request_id: str
    success: bool
    result: Any = None
    error: Optional[str] = None
    attempt: int = 1
    timestamp: datetime = Field(default_factory=utcnow)
    # Set when a follow-up agent ran after a successful commit
    follow_up: Optional[str] = None
    follow_up_result: Any = None
    follow_up_error: Optional[str] = None


class ApprovalOutcome(BaseModel):
    """Everything produced by resolving a write request."""

    approval: Approval
    write_request: WriteRequest
    commit: Optional[CommitResult] = None
