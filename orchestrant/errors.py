"""Error taxonomy for orchestrant.

Every error carries a short ``code`` so callers can tell user errors
(``not_found``, ``already_resolved``) apart from system failures.
"""

from __future__ import annotations

from typing import Any, Dict, Optional


class OrchestrantError(Exception):
    """Base class for all engine errors."""

    code = "orchestrant_error"

    def __init__(self, message: str, *, code: Optional[str] = None) -> None:
        super().__init__(message)
        self.message = message
        if code is not None:
            self.code = code

    def to_dict(self) -> Dict[str, Any]:
        return {"code": self.code, "message": self.message}


class NotFound(OrchestrantError):
    code = "not_found"


class WorkflowNotFound(NotFound):
    def __init__(self, name: str) -> None:
        super().__init__(f"Workflow not found: {name}")
        self.name = name


class AgentNotFound(NotFound):
    def __init__(self, name: str) -> None:
        super().__init__(f"Agent not found: {name}")
        self.name = name


class WriteRequestNotFound(NotFound):
    def __init__(self, request_id: str) -> None:
        super().__init__(f"Write request not found: {request_id}")
        self.request_id = request_id


class ExecutionNotFound(NotFound):
    def __init__(self, execution_id: str) -> None:
        super().__init__(f"Workflow execution not found: {execution_id}")
        self.execution_id = execution_id


class AlreadyResolved(OrchestrantError):
    """Raised when a decision is submitted for a request that is not pending."""

    code = "already_resolved"

    def __init__(self, request_id: str, status: str) -> None:
        super().__init__(f"Write request {request_id} already {status}")
        self.request_id = request_id
        self.status = status


class TaskFailure(OrchestrantError):
    """An agent's underlying operation failed."""

    code = "task_failure"

    def __init__(
        self,
        message: str,
        *,
        agent_name: Optional[str] = None,
        context: Optional[Dict[str, Any]] = None,
    ) -> None:
        super().__init__(message)
        self.agent_name = agent_name
        self.context = context or {}


class ValidationFailure(OrchestrantError):
    code = "validation_failure"


class CommitFailure(OrchestrantError):
    """The downstream side effect of an approved write request failed."""

    code = "commit_failure"

    def __init__(self, request_id: str, reason: str) -> None:
        super().__init__(f"Commit failed for write request {request_id}: {reason}")
        self.request_id = request_id
        self.reason = reason


__all__ = [
    "OrchestrantError",
    "NotFound",
    "WorkflowNotFound",
    "AgentNotFound",
    "WriteRequestNotFound",
    "ExecutionNotFound",
    "AlreadyResolved",
    "TaskFailure",
    "ValidationFailure",
    "CommitFailure",
]
