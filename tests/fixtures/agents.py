"""Agents used across the test suite."""

from __future__ import annotations

import asyncio
import inspect
from typing import Any, Callable, List, Optional, Tuple

from orchestrant import BaseAgent, SideEffectAgent, WriteIntent
from orchestrant.contracts import Approval, WriteRequest


class FunctionAgent(BaseAgent):
    """Returns ``fn(input)`` and remembers every input it received."""

    def __init__(
        self,
        name: str,
        fn: Optional[Callable[[Any], Any]] = None,
        *,
        delay: float = 0.0,
        **kwargs: Any,
    ) -> None:
        super().__init__(name, **kwargs)
        self._fn = fn or (lambda ctx: {"agent": name})
        self.delay = delay
        self.inputs: List[Any] = []

    async def run(self, input: Any) -> Any:
        self.inputs.append(dict(input) if isinstance(input, dict) else input)
        if self.delay:
            await asyncio.sleep(self.delay)
        result = self._fn(input)
        if inspect.isawaitable(result):
            result = await result
        return result


class FailingAgent(FunctionAgent):
    def __init__(self, name: str, message: str = "boom", **kwargs: Any) -> None:
        def _raise(ctx: Any) -> Any:
            raise RuntimeError(message)

        super().__init__(name, _raise, **kwargs)


class SheetWriter(SideEffectAgent):
    """Writes approved rows to an in-memory sheet."""

    ready_event = "sheet_written"

    def __init__(
        self,
        name: str = "sheets",
        *,
        target: str = "Gameplay Log",
        fail_times: int = 0,
        **kwargs: Any,
    ) -> None:
        super().__init__(name, **kwargs)
        self.target = target
        self.fail_times = fail_times
        self.writes: List[Tuple[str, Any]] = []
        self.proposed_inputs: List[Any] = []

    async def prepare_write(self, input: Any) -> WriteIntent:
        self.proposed_inputs.append(dict(input))
        return WriteIntent(target=self.target, payload={"rows": input.get("rows", [])})

    async def apply_write(self, write_request: WriteRequest, approval: Approval) -> Any:
        if self.fail_times > 0:
            self.fail_times -= 1
            raise ConnectionError("sheet api unavailable")
        self.writes.append((write_request.id, write_request.payload))
        return {"location": f"{write_request.target}!A{len(self.writes)}"}


def build_agents() -> List[BaseAgent]:
    """Factory referenced from CLI configuration files."""
    return [
        FunctionAgent("summarizer", lambda ctx: {"rows": [["session", "done"]]}),
        SheetWriter("sheets"),
    ]
