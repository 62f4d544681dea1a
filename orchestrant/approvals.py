"""Human-gated write requests: propose, resolve, commit."""

from __future__ import annotations

import logging
from typing import Any, Dict, List, Mapping, Optional

from .agent.base import SideEffectAgent
from .contracts import (
    Approval,
    ApprovalOutcome,
    CommitResult,
    WriteRequest,
    utcnow,
)
from .errors import (
    AlreadyResolved,
    CommitFailure,
    ValidationFailure,
    WriteRequestNotFound,
)
from .events import (
    CommitCompletedEvent,
    EventBus,
    WriteRequestCreatedEvent,
    WriteRequestResolvedEvent,
)
from .persistence import StateRepository
from .registry import AgentRegistry

logger = logging.getLogger(__name__)

_DECISION_STATUS = {"approve": "approved", "reject": "rejected"}


class ApprovalCoordinator:
    """Runs the three phases of an external write.

    Proposing only records a pending request. A decision resolves it
    exactly once, and an approved request is then committed by the agent
    that proposed it. Commit outcomes are tracked separately from the
    decision so a failed commit can be retried without re-approval.

    ``follow_ups`` maps a side-effect agent to an agent that runs after each
    of its successful commits, e.g. notifying the session's participants.
    """

    source = "orchestrator"

    def __init__(
        self,
        repository: StateRepository,
        agents: AgentRegistry,
        bus: EventBus,
        auto_commit: bool = True,
        follow_ups: Optional[Mapping[str, str]] = None,
    ) -> None:
        self._repository = repository
        self._agents = agents
        self._bus = bus
        self.auto_commit = auto_commit
        self.follow_ups: Dict[str, str] = dict(follow_ups or {})

    def _side_effect_agent(self, agent_name: str) -> SideEffectAgent:
        agent = self._agents.get(agent_name)
        if not isinstance(agent, SideEffectAgent):
            raise ValidationFailure(
                f"Agent {agent_name} does not perform external writes",
                code="not_side_effecting",
            )
        return agent

    # ------------------------------------------------------------------
    # Phase 1
    async def propose(
        self,
        agent_name: str,
        input: Any,
        created_by: str,
        step_index: Optional[int] = None,
    ) -> WriteRequest:
        """Have ``agent_name`` describe its write and persist it as pending."""
        agent = self._side_effect_agent(agent_name)
        intent = await agent.propose(input)
        request = WriteRequest.propose(
            intent, created_by=created_by, agent_name=agent_name, step_index=step_index
        )
        stored = await self._repository.save_write_request(request)
        logger.info(
            f"Write request {stored.id} for {stored.target} proposed by {agent_name} ({created_by})"
        )
        self._bus.publish(
            WriteRequestCreatedEvent(source=self.source, write_request=stored)
        )
        return stored

    # ------------------------------------------------------------------
    # Phase 2
    async def submit_approval(
        self,
        request_id: str,
        approver_id: str,
        decision: str,
        comment: Optional[str] = None,
    ) -> ApprovalOutcome:
        if decision not in _DECISION_STATUS:
            raise ValidationFailure(
                f"Decision must be 'approve' or 'reject', got {decision!r}",
                code="invalid_decision",
            )
        if not approver_id:
            raise ValidationFailure("Approver id is required", code="missing_approver")

        request = await self._repository.find_write_request(request_id)
        if request is None:
            raise WriteRequestNotFound(request_id)
        if not request.is_pending:
            logger.warning(
                f"Rejected {decision} from {approver_id}: {request_id} already {request.status}"
            )
            raise AlreadyResolved(request_id, request.status)

        approval = Approval(
            request_id=request_id,
            approver_id=approver_id,
            decision=decision,
            comment=comment,
        )
        resolved = await self._repository.update_write_request_status(
            request_id,
            _DECISION_STATUS[decision],
            approver_id,
            approval.created_at,
            reason=comment,
        )
        if resolved is None:
            # Someone else resolved it between our read and our update.
            current = await self._repository.find_write_request(request_id)
            status = current.status if current else "resolved"
            logger.warning(f"Lost resolution race for {request_id}: already {status}")
            raise AlreadyResolved(request_id, status)

        try:
            await self._repository.save_approval(approval)
        except Exception as exc:
            logger.error(
                f"Write request {request_id} {resolved.status} but the approval record was not saved: {exc}"
            )
            raise
        logger.info(f"Write request {request_id} {resolved.status} by {approver_id}")
        self._bus.publish(
            WriteRequestResolvedEvent(
                source=self.source, write_request=resolved, approval=approval
            )
        )

        commit = None
        if approval.approved and self.auto_commit:
            commit = await self._commit(resolved, approval)
            resolved = await self._repository.find_write_request(request_id) or resolved
        return ApprovalOutcome(approval=approval, write_request=resolved, commit=commit)

    # ------------------------------------------------------------------
    # Phase 3
    async def _commit(self, request: WriteRequest, approval: Approval) -> CommitResult:
        try:
            agent = self._side_effect_agent(request.agent_name)
            result = await agent.commit(request, approval)
        except Exception as exc:
            updated = await self._repository.record_commit(
                request.id, "failed", str(exc), utcnow()
            )
            logger.error(f"Commit of write request {request.id} failed: {exc}")
            commit = CommitResult(
                request_id=request.id,
                success=False,
                error=str(exc) or type(exc).__name__,
                attempt=updated.commit_attempts if updated else 1,
            )
        else:
            updated = await self._repository.record_commit(
                request.id, "succeeded", None, utcnow()
            )
            logger.info(f"Write request {request.id} committed to {request.target}")
            commit = CommitResult(
                request_id=request.id,
                success=True,
                result=result,
                attempt=updated.commit_attempts if updated else 1,
            )
        self._bus.publish(CommitCompletedEvent(source=self.source, commit=commit))
        if commit.success:
            commit = await self._run_follow_up(updated or request, commit)
        return commit

    async def _run_follow_up(
        self, request: WriteRequest, commit: CommitResult
    ) -> CommitResult:
        follow_up = self.follow_ups.get(request.agent_name)
        if not follow_up:
            return commit
        payload = {
            "write_request": request.model_dump(),
            "commit_result": commit.model_dump(),
        }
        try:
            agent = self._agents.get(follow_up)
            result = await agent.execute(payload)
        except Exception as exc:
            # The write itself stands; the follow-up outcome is reported with it.
            logger.error(f"Follow-up {follow_up} after commit of {request.id} failed: {exc}")
            return commit.model_copy(
                update={
                    "follow_up": follow_up,
                    "follow_up_error": str(exc) or type(exc).__name__,
                }
            )
        logger.info(f"Follow-up {follow_up} ran after commit of {request.id}")
        return commit.model_copy(
            update={"follow_up": follow_up, "follow_up_result": result}
        )

    async def retry_commit(
        self, request_id: str, raise_on_failure: bool = False
    ) -> CommitResult:
        """Run the side effect of an approved request that is not committed yet."""
        request = await self.get_write_request(request_id)
        if request.status != "approved":
            raise ValidationFailure(
                f"Write request {request_id} is {request.status}, not approved",
                code="not_approved",
            )
        if request.commit_status == "succeeded":
            raise ValidationFailure(
                f"Write request {request_id} was already committed at {request.committed_at}",
                code="already_committed",
            )
        approval = await self._repository.find_approval_for_request(request_id)
        if approval is None:
            # The decision was applied but its record never reached the store.
            approval = Approval(
                request_id=request_id,
                approver_id=request.resolved_by or "unknown",
                decision="approve",
                created_at=request.resolved_at or utcnow(),
            )
            await self._repository.save_approval(approval)
            logger.warning(
                f"Rebuilt missing approval for {request_id} from its resolution by {approval.approver_id}"
            )
        commit = await self._commit(request, approval)
        if not commit.success and raise_on_failure:
            raise CommitFailure(request_id, commit.error or "unknown error")
        return commit

    async def withdraw(self, request_id: str, reason: str) -> Optional[WriteRequest]:
        """Reject a still-pending request on the engine's behalf.

        Returns None when the request was already resolved.
        """
        approval = Approval(
            request_id=request_id,
            approver_id=self.source,
            decision="reject",
            comment=reason,
        )
        resolved = await self._repository.update_write_request_status(
            request_id, "rejected", self.source, approval.created_at, reason=reason
        )
        if resolved is None:
            return None
        await self._repository.save_approval(approval)
        logger.warning(f"Write request {request_id} withdrawn: {reason}")
        self._bus.publish(
            WriteRequestResolvedEvent(
                source=self.source, write_request=resolved, approval=approval
            )
        )
        return resolved

    # ------------------------------------------------------------------
    # Queries
    async def get_write_request(self, request_id: str) -> WriteRequest:
        request = await self._repository.find_write_request(request_id)
        if request is None:
            raise WriteRequestNotFound(request_id)
        return request

    async def list_pending(self) -> List[WriteRequest]:
        return await self._repository.list_pending()
