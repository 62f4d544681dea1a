"""Workflow execution engine for orchestrant."""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Dict, List, Mapping, Optional

from .approvals import ApprovalCoordinator
from .constants import WORKFLOW_FAILED_REASON
from .contracts import (
    ParallelGroup,
    SequentialStep,
    WorkflowDefinition,
    WorkflowExecution,
    new_execution_id,
)
from .errors import ExecutionNotFound, ValidationFailure
from .events import (
    EventBus,
    LogEvent,
    WorkflowCompletedEvent,
    WorkflowFailedEvent,
    WorkflowStartedEvent,
)
from .persistence import StateRepository
from .registry import AgentRegistry, WorkflowRegistry

logger = logging.getLogger(__name__)


class _StepError(Exception):
    """Carries the name of the agent whose invocation failed."""

    def __init__(self, agent_name: str, error: BaseException) -> None:
        super().__init__(str(error))
        self.agent_name = agent_name
        self.error = error


class WorkflowExecutor:
    """Walks workflow definitions, threading context from step to step.

    Sequential steps see every earlier result keyed by agent name. Members
    of a parallel group all receive the same snapshot and their results
    become visible only to later steps. The first failing step aborts the
    execution; nothing is retried.
    """

    source = "orchestrator"

    def __init__(
        self,
        agents: AgentRegistry,
        workflows: WorkflowRegistry,
        approvals: ApprovalCoordinator,
        repository: StateRepository,
        bus: EventBus,
    ) -> None:
        self._agents = agents
        self._workflows = workflows
        self._approvals = approvals
        self._repository = repository
        self._bus = bus
        self._executions: Dict[str, WorkflowExecution] = {}

    # ------------------------------------------------------------------
    async def execute_workflow(
        self, name: str, input: Optional[Mapping[str, Any]] = None
    ) -> Dict[str, Any]:
        """Run workflow ``name`` and return the final context."""
        definition = self._workflows.get(name)
        if input is None:
            input = {}
        if not isinstance(input, Mapping):
            raise ValidationFailure(
                f"Workflow input must be a mapping, got {type(input).__name__}",
                code="invalid_input",
            )

        context: Dict[str, Any] = dict(input)
        execution = WorkflowExecution(
            execution_id=new_execution_id(name),
            workflow_name=name,
            results=dict(context),
        )
        self._executions[execution.execution_id] = execution
        await self._repository.save_execution(execution)

        logger.info(f"Starting workflow {name} ({execution.execution_id})")
        self._bus.publish(
            WorkflowStartedEvent(
                source=self.source,
                execution_id=execution.execution_id,
                workflow_name=name,
            )
        )

        try:
            context = await self._run_steps(definition, execution, context)
        except _StepError as step_error:
            await self._fail(execution, step_error.error, step_error.agent_name)
            raise step_error.error from None
        except asyncio.CancelledError as exc:
            await self._fail(execution, exc, None)
            raise

        execution.mark_completed(context)
        await self._repository.save_execution(execution)
        logger.info(f"Workflow {name} completed ({execution.execution_id})")
        self._bus.publish(
            WorkflowCompletedEvent(
                source=self.source,
                execution_id=execution.execution_id,
                workflow_name=name,
                results=dict(context),
            )
        )
        return context

    async def _run_steps(
        self,
        definition: WorkflowDefinition,
        execution: WorkflowExecution,
        context: Dict[str, Any],
    ) -> Dict[str, Any]:
        for index, step in enumerate(definition.steps):
            execution.enter_step(index)
            self._bus.publish(
                LogEvent(
                    source=self.source,
                    level="debug",
                    message="step started",
                    data={
                        "execution_id": execution.execution_id,
                        "step_index": index,
                        "agents": list(step.agent_names),
                        "streaming": isinstance(step, SequentialStep) and step.streaming,
                    },
                )
            )

            if isinstance(step, ParallelGroup):
                updates = await self._run_parallel(step, context, execution, index)
            else:
                result = await self._invoke(
                    step.agent_name, step.requires_approval, dict(context), execution, index
                )
                updates = {step.agent_name: result}

            # The execution keeps the context as of the last successful step.
            context = {**context, **updates}
            execution.record_results(context)
            logger.debug(
                f"Step {index} of {definition.name} merged {list(updates)} ({execution.execution_id})"
            )
        return context

    async def _invoke(
        self,
        agent_name: str,
        requires_approval: bool,
        context: Dict[str, Any],
        execution: WorkflowExecution,
        step_index: int,
    ) -> Any:
        try:
            if requires_approval:
                request = await self._approvals.propose(
                    agent_name, context, execution.execution_id, step_index
                )
                execution.write_request_ids.append(request.id)
                return request.model_dump()
            agent = self._agents.get(agent_name)
            return await agent.execute(context)
        except Exception as exc:
            raise _StepError(agent_name, exc) from exc

    async def _run_parallel(
        self,
        group: ParallelGroup,
        context: Dict[str, Any],
        execution: WorkflowExecution,
        step_index: int,
    ) -> Dict[str, Any]:
        snapshot = dict(context)
        tasks = {
            asyncio.create_task(
                self._invoke(
                    member.agent_name,
                    member.requires_approval,
                    dict(snapshot),
                    execution,
                    step_index,
                )
            ): member.agent_name
            for member in group.members
        }
        try:
            done, pending = await asyncio.wait(
                tasks, return_when=asyncio.FIRST_EXCEPTION
            )
            first_failed = [t for t in tasks if t in done and t.exception() is not None]
            if first_failed and pending:
                # Siblings already in flight settle before the group reports.
                await asyncio.wait(pending)
        except asyncio.CancelledError:
            for task in tasks:
                task.cancel()
            await asyncio.gather(*tasks, return_exceptions=True)
            raise

        if first_failed:
            for task, agent_name in tasks.items():
                error = task.exception()
                if error is not None and task is not first_failed[0]:
                    logger.warning(
                        f"Parallel member {agent_name} also failed ({execution.execution_id}): {error}"
                    )
            raise first_failed[0].exception()

        return {agent_name: task.result() for task, agent_name in tasks.items()}

    async def _fail(
        self,
        execution: WorkflowExecution,
        error: BaseException,
        failed_step: Optional[str],
    ) -> None:
        execution.mark_failed(error, failed_step)
        await self._repository.save_execution(execution)
        await self._withdraw_proposals(execution)
        logger.error(
            f"Workflow {execution.workflow_name} failed at {failed_step or 'step'} "
            f"({execution.execution_id}): {execution.error}"
        )
        self._bus.publish(
            WorkflowFailedEvent(
                source=self.source,
                execution_id=execution.execution_id,
                workflow_name=execution.workflow_name,
                error=execution.error or "",
                failed_step=failed_step,
                results=dict(execution.results),
            )
        )

    async def _withdraw_proposals(self, execution: WorkflowExecution) -> None:
        """Reject the failed execution's write requests nobody decided yet."""
        for request_id in execution.write_request_ids:
            try:
                await self._approvals.withdraw(request_id, WORKFLOW_FAILED_REASON)
            except Exception as exc:
                # The step error is what the caller gets; this one is only logged.
                logger.error(
                    f"Could not withdraw write request {request_id} ({execution.execution_id}): {exc}"
                )

    # ------------------------------------------------------------------
    async def execute_agent(self, agent_name: str, input: Any) -> Any:
        """Invoke a single agent outside any workflow."""
        agent = self._agents.get(agent_name)
        logger.debug(f"Executing agent {agent_name}")
        return await agent.execute(input)

    async def get_workflow_status(self, execution_id: str) -> WorkflowExecution:
        execution = self._executions.get(execution_id)
        if execution is not None:
            return execution.model_copy(
                update={
                    "results": dict(execution.results),
                    "write_request_ids": list(execution.write_request_ids),
                }
            )
        stored = await self._repository.get_execution(execution_id)
        if stored is None:
            raise ExecutionNotFound(execution_id)
        return stored

    def active_executions(self) -> List[WorkflowExecution]:
        return [e for e in self._executions.values() if e.status == "running"]
