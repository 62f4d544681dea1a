"""In-memory implementation of the state repository."""

from __future__ import annotations

from datetime import datetime
from typing import Dict, List, Optional

from ..contracts import (
    Approval,
    CommitStatus,
    WorkflowExecution,
    WriteRequest,
    WriteRequestStatus,
)
from .repository import StateRepository


class InMemoryRepository(StateRepository):
    """Store engine state in local memory.

    Useful for tests or when no database is configured. Data is not
    persisted across process restarts. Records are copied in and out so
    callers never hold a reference to the stored object.
    """

    def __init__(self) -> None:
        self._write_requests: Dict[str, WriteRequest] = {}
        self._approvals: Dict[str, List[Approval]] = {}
        self._executions: Dict[str, WorkflowExecution] = {}

    # ------------------------------------------------------------------
    async def save_write_request(self, request: WriteRequest) -> WriteRequest:
        existing = self._write_requests.get(request.id)
        if existing is None:
            existing = request.model_copy(deep=True)
            self._write_requests[request.id] = existing
        return existing.model_copy(deep=True)

    async def find_write_request(self, request_id: str) -> WriteRequest | None:
        wr = self._write_requests.get(request_id)
        return wr.model_copy(deep=True) if wr else None

    async def update_write_request_status(
        self,
        request_id: str,
        status: WriteRequestStatus,
        resolver_id: str,
        resolved_at: datetime,
        reason: Optional[str] = None,
        expected_status: WriteRequestStatus = "pending",
    ) -> WriteRequest | None:
        wr = self._write_requests.get(request_id)
        if wr is None or wr.status != expected_status:
            return None
        wr.status = status
        wr.resolved_by = resolver_id
        wr.resolved_at = resolved_at
        wr.rejection_reason = reason if status == "rejected" else None
        return wr.model_copy(deep=True)

    async def record_commit(
        self,
        request_id: str,
        status: CommitStatus,
        error: Optional[str],
        at: datetime,
    ) -> WriteRequest | None:
        wr = self._write_requests.get(request_id)
        if wr is None:
            return None
        wr.commit_status = status
        wr.commit_attempts += 1
        wr.last_commit_error = error
        if status == "succeeded":
            wr.committed_at = at
        return wr.model_copy(deep=True)

    async def save_approval(self, approval: Approval) -> None:
        self._approvals.setdefault(approval.request_id, []).append(
            approval.model_copy(deep=True)
        )

    async def find_approval_for_request(self, request_id: str) -> Approval | None:
        approvals = self._approvals.get(request_id)
        return approvals[-1].model_copy(deep=True) if approvals else None

    async def list_pending(
        self, status: WriteRequestStatus = "pending"
    ) -> list[WriteRequest]:
        matching = [wr for wr in self._write_requests.values() if wr.status == status]
        matching.sort(key=lambda wr: wr.created_at)
        return [wr.model_copy(deep=True) for wr in matching]

    async def save_execution(self, execution: WorkflowExecution) -> None:
        self._executions[execution.execution_id] = execution.model_copy(deep=True)

    async def get_execution(self, execution_id: str) -> WorkflowExecution | None:
        execution = self._executions.get(execution_id)
        return execution.model_copy(deep=True) if execution else None

    async def list_executions(self) -> list[WorkflowExecution]:
        return [e.model_copy(deep=True) for e in self._executions.values()]
