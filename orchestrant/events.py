"""Typed observability events and the in-process event bus."""

from __future__ import annotations

import asyncio
import logging
from datetime import datetime
from typing import (
    Annotated,
    Any,
    AsyncIterator,
    Callable,
    Dict,
    Iterable,
    List,
    Literal,
    Optional,
    Set,
    Tuple,
    Union,
)

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter

from .constants import (
    EVENT_COMMIT_COMPLETED,
    EVENT_ERROR,
    EVENT_LOG,
    EVENT_STATE_CHANGE,
    EVENT_WORKFLOW_COMPLETED,
    EVENT_WORKFLOW_FAILED,
    EVENT_WORKFLOW_STARTED,
    EVENT_WRITE_REQUEST_CREATED,
    EVENT_WRITE_REQUEST_RESOLVED,
)
from .contracts import AgentState, Approval, CommitResult, WriteRequest, utcnow

logger = logging.getLogger(__name__)


class BaseEvent(BaseModel):
    """Fields shared by every event on the bus."""

    model_config = ConfigDict(arbitrary_types_allowed=True)

    type: str
    source: str
    timestamp: datetime = Field(default_factory=utcnow)


class StateChangeEvent(BaseEvent):
    type: Literal["stateChange"] = EVENT_STATE_CHANGE
    agent_name: str
    previous_state: AgentState
    new_state: AgentState
    metadata: Dict[str, Any] = Field(default_factory=dict)


class LogEvent(BaseEvent):
    type: Literal["log"] = EVENT_LOG
    level: str = "info"
    message: str
    data: Dict[str, Any] = Field(default_factory=dict)


class ErrorEvent(BaseEvent):
    """Error raised by an agent, with the input that caused it."""

    type: Literal["error"] = EVENT_ERROR
    error: str
    error_type: str
    context: Any = None
    exception: Optional[BaseException] = Field(default=None, exclude=True)


class WorkflowStartedEvent(BaseEvent):
    type: Literal["workflowStarted"] = EVENT_WORKFLOW_STARTED
    execution_id: str
    workflow_name: str


class WorkflowCompletedEvent(BaseEvent):
    type: Literal["workflowCompleted"] = EVENT_WORKFLOW_COMPLETED
    execution_id: str
    workflow_name: str
    results: Dict[str, Any] = Field(default_factory=dict)


class WorkflowFailedEvent(BaseEvent):
    type: Literal["workflowFailed"] = EVENT_WORKFLOW_FAILED
    execution_id: str
    workflow_name: str
    error: str
    failed_step: Optional[str] = None
    results: Dict[str, Any] = Field(default_factory=dict)


class WriteRequestCreatedEvent(BaseEvent):
    type: Literal["writeRequestCreated"] = EVENT_WRITE_REQUEST_CREATED
    write_request: WriteRequest


class WriteRequestResolvedEvent(BaseEvent):
    type: Literal["writeRequestResolved"] = EVENT_WRITE_REQUEST_RESOLVED
    write_request: WriteRequest
    approval: Approval


class CommitCompletedEvent(BaseEvent):
    type: Literal["commitCompleted"] = EVENT_COMMIT_COMPLETED
    commit: CommitResult


Event = Annotated[
    Union[
        StateChangeEvent,
        LogEvent,
        ErrorEvent,
        WorkflowStartedEvent,
        WorkflowCompletedEvent,
        WorkflowFailedEvent,
        WriteRequestCreatedEvent,
        WriteRequestResolvedEvent,
        CommitCompletedEvent,
    ],
    Field(discriminator="type"),
]

_event_adapter: TypeAdapter = TypeAdapter(Event)


def parse_event(data: Union[str, bytes, Dict[str, Any]]) -> BaseEvent:
    """Rebuild a typed event from its JSON or dict form."""
    if isinstance(data, (str, bytes)):
        return _event_adapter.validate_json(data)
    return _event_adapter.validate_python(data)


Subscriber = Callable[[BaseEvent], Any]


class EventBus:
    """Publish/subscribe channel shared by agents and the engine.

    Subscribers are plain callables invoked synchronously on ``publish``;
    async consumers use :meth:`stream`. The bus never knows who listens.
    """

    def __init__(self) -> None:
        self._subscribers: List[Tuple[Subscriber, Optional[frozenset]]] = []
        self._queues: Set[Tuple[asyncio.Queue, Optional[frozenset]]] = set()

    def subscribe(
        self, callback: Subscriber, event_types: Optional[Iterable[str]] = None
    ) -> Callable[[], None]:
        """Register ``callback`` and return a function that removes it."""
        entry = (callback, frozenset(event_types) if event_types else None)
        self._subscribers.append(entry)

        def _unsubscribe() -> None:
            if entry in self._subscribers:
                self._subscribers.remove(entry)

        return _unsubscribe

    def publish(self, event: BaseEvent) -> None:
        for callback, types in list(self._subscribers):
            if types is not None and event.type not in types:
                continue
            try:
                callback(event)
            except Exception:
                logger.exception(
                    f"Event subscriber {callback!r} failed handling {event.type}"
                )

        for queue, types in list(self._queues):
            if types is None or event.type in types:
                queue.put_nowait(event)

    async def stream(
        self, event_types: Optional[Iterable[str]] = None
    ) -> AsyncIterator[BaseEvent]:
        """Yield published events until the consumer stops iterating."""
        entry = (asyncio.Queue(), frozenset(event_types) if event_types else None)
        self._queues.add(entry)
        try:
            while True:
                yield await entry[0].get()
        finally:
            self._queues.discard(entry)

    @property
    def subscriber_count(self) -> int:
        return len(self._subscribers) + len(self._queues)


class EventRecorder:
    """Subscriber that keeps every event it sees, mostly for tests and CLIs."""

    def __init__(self, bus: Optional[EventBus] = None) -> None:
        self.events: List[BaseEvent] = []
        if bus is not None:
            bus.subscribe(self)

    def __call__(self, event: BaseEvent) -> None:
        self.events.append(event)

    def of_type(self, event_type: str) -> List[BaseEvent]:
        return [e for e in self.events if e.type == event_type]


__all__ = [
    "BaseEvent",
    "StateChangeEvent",
    "LogEvent",
    "ErrorEvent",
    "WorkflowStartedEvent",
    "WorkflowCompletedEvent",
    "WorkflowFailedEvent",
    "WriteRequestCreatedEvent",
    "WriteRequestResolvedEvent",
    "CommitCompletedEvent",
    "Event",
    "EventBus",
    "EventRecorder",
    "parse_event",
]
