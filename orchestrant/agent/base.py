"""Agent lifecycle state machine."""

from __future__ import annotations

import abc
import asyncio
import logging
from typing import Any, Awaitable, Callable, Dict, Optional, TypeVar

from pydantic import BaseModel, Field

from ..constants import LAST_RESULT_KEY
from ..contracts import AgentInfo, AgentState, Approval, WriteIntent, WriteRequest
from ..errors import ValidationFailure
from ..events import ErrorEvent, EventBus, LogEvent, StateChangeEvent

logger = logging.getLogger(__name__)

T = TypeVar("T")

# Transitions the engine expects. Anything else is still applied and
# emitted, but logged as a warning (shared agents may be re-entered).
_EXPECTED_TRANSITIONS: Dict[AgentState, frozenset] = {
    AgentState.IDLE: frozenset({AgentState.RUNNING}),
    AgentState.RUNNING: frozenset(
        {AgentState.COMPLETED, AgentState.FAILED, AgentState.PAUSED}
    ),
    AgentState.PAUSED: frozenset({AgentState.RUNNING, AgentState.FAILED}),
    AgentState.COMPLETED: frozenset({AgentState.RUNNING}),
    AgentState.FAILED: frozenset({AgentState.RUNNING}),
}


class AgentConfig(BaseModel):
    """Construction parameters for an agent."""

    name: str
    agent_id: Optional[str] = None
    role: Optional[str] = None
    ready_event: Optional[str] = None
    settings: Dict[str, Any] = Field(default_factory=dict)


class BaseAgent(metaclass=abc.ABCMeta):
    """Stateful unit of work exposing ``execute(input) -> result``.

    Subclasses implement :meth:`run`. Every state transition is published
    on the event bus as a ``stateChange`` event.
    """

    role: str = "generic"
    ready_event: str = "result_ready"

    def __init__(
        self,
        name: str,
        *,
        agent_id: Optional[str] = None,
        role: Optional[str] = None,
        ready_event: Optional[str] = None,
        settings: Optional[Dict[str, Any]] = None,
        bus: Optional[EventBus] = None,
    ) -> None:
        self.name = name
        self.agent_id = agent_id or f"{name}-agent"
        if role:
            self.role = role
        if ready_event:
            self.ready_event = ready_event
        self.settings: Dict[str, Any] = dict(settings or {})
        self.state = AgentState.IDLE
        self._context: Dict[str, Any] = {}
        self._bus = bus or EventBus()

    @classmethod
    def from_config(
        cls, config: AgentConfig, bus: Optional[EventBus] = None
    ) -> "BaseAgent":
        return cls(
            config.name,
            agent_id=config.agent_id,
            role=config.role,
            ready_event=config.ready_event,
            settings=config.settings,
            bus=bus,
        )

    def __repr__(self) -> str:
        return f"<{type(self).__name__} {self.name!r} state={self.state.value}>"

    # ------------------------------------------------------------------
    # Wiring
    @property
    def bus(self) -> EventBus:
        return self._bus

    def attach(self, bus: EventBus) -> None:
        """Publish future events on ``bus`` (the engine's shared bus)."""
        self._bus = bus

    def info(self) -> AgentInfo:
        return AgentInfo(id=self.agent_id, state=self.state)

    # ------------------------------------------------------------------
    # State machine
    def set_state(self, new_state: AgentState, **metadata: Any) -> None:
        previous = self.state
        if new_state not in _EXPECTED_TRANSITIONS.get(previous, frozenset()):
            logger.warning(
                f"Agent {self.name} moving {previous.value} -> {new_state.value} outside the expected lifecycle"
            )
        self.state = new_state
        self._bus.publish(
            StateChangeEvent(
                source=self.agent_id,
                agent_name=self.name,
                previous_state=previous,
                new_state=new_state,
                metadata=metadata,
            )
        )

    def pause(self, reason: Optional[str] = None) -> None:
        if self.state is not AgentState.RUNNING:
            raise ValidationFailure(
                f"Agent {self.name} cannot pause while {self.state.value}",
                code="invalid_transition",
            )
        self.set_state(AgentState.PAUSED, reason=reason)

    def resume(self) -> None:
        if self.state is not AgentState.PAUSED:
            raise ValidationFailure(
                f"Agent {self.name} cannot resume while {self.state.value}",
                code="invalid_transition",
            )
        self.set_state(AgentState.RUNNING, resumed=True)

    def reset(self) -> None:
        """Return to ``idle`` and drop scratch context."""
        previous = self.state
        self._context = {}
        self.state = AgentState.IDLE
        self._bus.publish(
            StateChangeEvent(
                source=self.agent_id,
                agent_name=self.name,
                previous_state=previous,
                new_state=AgentState.IDLE,
                metadata={"reset": True},
            )
        )

    async def cleanup(self) -> None:
        """Release adapter resources. Subclasses extend, then call super."""
        self.reset()

    # ------------------------------------------------------------------
    # Scratch context
    def set_context(self, key: str, value: Any) -> None:
        self._context[key] = value
        self.log("debug", "context updated", key=key)

    def get_context(self, key: str, default: Any = None) -> Any:
        return self._context.get(key, default)

    @property
    def context(self) -> Dict[str, Any]:
        """Read-only copy of the scratch context."""
        return dict(self._context)

    # ------------------------------------------------------------------
    # Observability helpers
    def log(self, level: str, message: str, **data: Any) -> None:
        self._bus.publish(
            LogEvent(source=self.agent_id, level=level, message=message, data=data)
        )

    def handle_error(self, error: BaseException, context: Any = None) -> None:
        self.set_state(AgentState.FAILED, error=str(error))
        self._bus.publish(
            ErrorEvent(
                source=self.agent_id,
                error=str(error),
                error_type=type(error).__name__,
                context=context,
                exception=error,
            )
        )

    async def _track(
        self,
        operation: str,
        input: Any,
        call: Callable[[], Awaitable[T]],
        ready_event: str,
    ) -> T:
        self.set_state(AgentState.RUNNING, operation=operation)
        try:
            result = await call()
        except asyncio.CancelledError:
            self.set_state(AgentState.FAILED, operation=operation, cancelled=True)
            raise
        except Exception as exc:
            logger.error(f"Agent {self.name} failed during {operation}: {exc}")
            self.handle_error(exc, input)
            raise

        self.set_context(LAST_RESULT_KEY, result)
        self.set_state(AgentState.COMPLETED, operation=operation)
        self.log("info", ready_event, event=ready_event, result=result)
        return result

    # ------------------------------------------------------------------
    # Task entry point
    async def execute(self, input: Any) -> Any:
        """Run the agent's task with lifecycle tracking and re-raise failures."""
        return await self._track("execute", input, lambda: self.run(input), self.ready_event)

    @abc.abstractmethod
    async def run(self, input: Any) -> Any:
        """Perform the task. Implemented by each adapter."""
        raise NotImplementedError


class SideEffectAgent(BaseAgent):
    """Agent whose output is an external write gated behind approval.

    ``prepare_write`` describes the write without performing it and
    ``apply_write`` performs it once a human approved the request.
    """

    role = "external-write"

    async def run(self, input: Any) -> Any:
        raise ValidationFailure(
            f"Agent {self.name} performs external writes; run it in an approval step",
            code="approval_required",
        )

    async def propose(self, input: Any) -> WriteIntent:
        async def _prepare() -> WriteIntent:
            intent = await self.prepare_write(input)
            if not isinstance(intent, WriteIntent):
                intent = WriteIntent.model_validate(intent)
            return intent

        return await self._track("propose", input, _prepare, "write_proposed")

    async def commit(self, write_request: WriteRequest, approval: Approval) -> Any:
        if approval.request_id != write_request.id:
            raise ValidationFailure(
                f"Approval {approval.id} does not belong to {write_request.id}",
                code="approval_mismatch",
            )
        if not approval.approved or write_request.status != "approved":
            raise ValidationFailure(
                f"Write request {write_request.id} is not approved",
                code="not_approved",
            )
        return await self._track(
            "commit",
            {"write_request": write_request, "approval": approval},
            lambda: self.apply_write(write_request, approval),
            "write_committed",
        )

    @abc.abstractmethod
    async def prepare_write(self, input: Any) -> WriteIntent:
        """Describe the write this agent would perform for ``input``."""
        raise NotImplementedError

    @abc.abstractmethod
    async def apply_write(self, write_request: WriteRequest, approval: Approval) -> Any:
        """Perform the approved write."""
        raise NotImplementedError
