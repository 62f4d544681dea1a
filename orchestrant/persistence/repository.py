"""Repository abstraction for durable engine state."""

from __future__ import annotations

from datetime import datetime
from typing import Optional, Protocol

from ..contracts import (
    Approval,
    CommitStatus,
    WorkflowExecution,
    WriteRequest,
    WriteRequestStatus,
)


class StateRepository(Protocol):
    """Protocol for durable state backends.

    The repository is the authority of record for write requests and
    approvals. Status updates are conditional on the expected current
    status so concurrent resolvers cannot both succeed.
    """

    async def save_write_request(self, request: WriteRequest) -> WriteRequest:
        """Insert ``request`` unless its id exists; return the stored record."""

    async def find_write_request(self, request_id: str) -> WriteRequest | None:
        """Return the write request or ``None``."""

    async def update_write_request_status(
        self,
        request_id: str,
        status: WriteRequestStatus,
        resolver_id: str,
        resolved_at: datetime,
        reason: Optional[str] = None,
        expected_status: WriteRequestStatus = "pending",
    ) -> WriteRequest | None:
        """Resolve the request if its status is ``expected_status``.

        Returns the updated record, or ``None`` when the request is
        missing or no longer in ``expected_status``.
        """

    async def record_commit(
        self,
        request_id: str,
        status: CommitStatus,
        error: Optional[str],
        at: datetime,
    ) -> WriteRequest | None:
        """Record a commit attempt for an approved request."""

    async def save_approval(self, approval: Approval) -> None:
        """Persist an approval decision."""

    async def find_approval_for_request(self, request_id: str) -> Approval | None:
        """Return the decision that resolved ``request_id``."""

    async def list_pending(
        self, status: WriteRequestStatus = "pending"
    ) -> list[WriteRequest]:
        """Return requests in ``status`` ordered by creation time."""

    async def save_execution(self, execution: WorkflowExecution) -> None:
        """Insert or replace a workflow execution snapshot."""

    async def get_execution(self, execution_id: str) -> WorkflowExecution | None:
        """Return a workflow execution snapshot."""

    async def list_executions(self) -> list[WorkflowExecution]:
        """Return all persisted workflow executions."""
