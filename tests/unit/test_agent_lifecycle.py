"""Agent state machine and event emission."""

import asyncio

import pytest

from fixtures.agents import FailingAgent, FunctionAgent, SheetWriter
from orchestrant import AgentConfig, AgentState, Approval, WriteRequest
from orchestrant.errors import TaskFailure, ValidationFailure


def _transitions(recorder, agent_name):
    return [
        (e.previous_state.value, e.new_state.value)
        for e in recorder.of_type("stateChange")
        if e.agent_name == agent_name
    ]


@pytest.mark.asyncio
async def test_successful_execution_walks_idle_running_completed(bus, recorder):
    agent = FunctionAgent("summarizer", lambda ctx: {"summary": ctx["text"]}, bus=bus)
    assert agent.state is AgentState.IDLE

    result = await agent.execute({"text": "hi"})

    assert result == {"summary": "hi"}
    assert agent.state is AgentState.COMPLETED
    assert _transitions(recorder, "summarizer") == [
        ("idle", "running"),
        ("running", "completed"),
    ]
    ready = [e for e in recorder.of_type("log") if e.message == "result_ready"]
    assert ready and ready[0].data["result"] == {"summary": "hi"}
    assert agent.get_context("last_result") == {"summary": "hi"}


@pytest.mark.asyncio
async def test_failure_emits_error_with_input_and_reraises(bus, recorder):
    agent = FailingAgent("transcriber", "audio missing", bus=bus)

    with pytest.raises(RuntimeError, match="audio missing"):
        await agent.execute({"file": "session.mp3"})

    assert agent.state is AgentState.FAILED
    errors = recorder.of_type("error")
    assert len(errors) == 1
    assert errors[0].error == "audio missing"
    assert errors[0].error_type == "RuntimeError"
    assert errors[0].context == {"file": "session.mp3"}
    assert isinstance(errors[0].exception, RuntimeError)


@pytest.mark.asyncio
async def test_task_failure_carries_agent_context(bus, recorder):
    def _fail(ctx):
        raise TaskFailure("quota exceeded", agent_name="sheets", context={"retry": False})

    agent = FunctionAgent("sheets-reader", _fail, bus=bus)
    with pytest.raises(TaskFailure) as exc_info:
        await agent.execute({})

    assert exc_info.value.code == "task_failure"
    assert exc_info.value.context == {"retry": False}
    assert recorder.of_type("error")[0].error_type == "TaskFailure"


@pytest.mark.asyncio
async def test_failed_agent_can_run_again(bus):
    calls = []

    def _flaky(ctx):
        calls.append(ctx)
        if len(calls) == 1:
            raise RuntimeError("first call fails")
        return "ok"

    agent = FunctionAgent("flaky", _flaky, bus=bus)
    with pytest.raises(RuntimeError):
        await agent.execute({})
    assert await agent.execute({}) == "ok"
    assert agent.state is AgentState.COMPLETED


@pytest.mark.asyncio
async def test_cancellation_marks_agent_failed(bus, recorder):
    agent = FunctionAgent("slow", delay=10, bus=bus)
    task = asyncio.create_task(agent.execute({}))
    await asyncio.sleep(0.01)
    task.cancel()

    with pytest.raises(asyncio.CancelledError):
        await task
    assert agent.state is AgentState.FAILED
    assert recorder.of_type("stateChange")[-1].metadata["cancelled"] is True


@pytest.mark.asyncio
async def test_pause_and_resume_only_while_running(bus, recorder):
    agent = FunctionAgent("a", bus=bus)
    with pytest.raises(ValidationFailure) as exc_info:
        agent.pause()
    assert exc_info.value.code == "invalid_transition"

    agent.set_state(AgentState.RUNNING)
    agent.pause("waiting for input")
    assert agent.state is AgentState.PAUSED
    agent.resume()
    assert agent.state is AgentState.RUNNING
    assert _transitions(recorder, "a")[-2:] == [
        ("running", "paused"),
        ("paused", "running"),
    ]


@pytest.mark.asyncio
async def test_cleanup_resets_to_idle_and_clears_context(bus, recorder):
    agent = FunctionAgent("a", bus=bus)
    await agent.execute({})
    agent.set_context("cursor", 3)

    await agent.cleanup()

    assert agent.state is AgentState.IDLE
    assert agent.context == {}
    last = recorder.of_type("stateChange")[-1]
    assert last.new_state is AgentState.IDLE
    assert last.metadata == {"reset": True}


def test_context_updates_are_logged_on_the_bus(bus, recorder):
    agent = FunctionAgent("a", bus=bus)
    agent.set_context("cursor", 3)

    [event] = [e for e in recorder.of_type("log") if e.message == "context updated"]
    assert event.data == {"key": "cursor"}
    assert agent.context == {"cursor": 3}


def test_unexpected_transition_is_applied_with_warning(bus, recorder, caplog):
    agent = FunctionAgent("a", bus=bus)
    agent.set_state(AgentState.COMPLETED)

    assert agent.state is AgentState.COMPLETED
    assert recorder.of_type("stateChange")[-1].previous_state is AgentState.IDLE
    assert "outside the expected lifecycle" in caplog.text


def test_agent_from_config_and_info():
    agent = FunctionAgent.from_config(
        AgentConfig(name="sessions", ready_event="sessions_ready", settings={"limit": 5})
    )
    assert agent.agent_id == "sessions-agent"
    assert agent.ready_event == "sessions_ready"
    assert agent.settings == {"limit": 5}
    info = agent.info()
    assert info.id == "sessions-agent"
    assert info.state is AgentState.IDLE


@pytest.mark.asyncio
async def test_side_effect_agent_refuses_direct_execution(bus):
    writer = SheetWriter(bus=bus)
    with pytest.raises(ValidationFailure) as exc_info:
        await writer.execute({"rows": []})
    assert exc_info.value.code == "approval_required"
    assert writer.writes == []


@pytest.mark.asyncio
async def test_side_effect_agent_commits_only_approved_requests(bus):
    writer = SheetWriter(bus=bus)
    intent = await writer.propose({"rows": [["a"]]})
    request = WriteRequest.propose(intent, created_by="wf-1", agent_name="sheets")

    approval = Approval(request_id=request.id, approver_id="dm", decision="approve")
    with pytest.raises(ValidationFailure) as exc_info:
        await writer.commit(request, approval)
    assert exc_info.value.code == "not_approved"

    other = Approval(request_id="wr_other", approver_id="dm", decision="approve")
    approved = request.model_copy(update={"status": "approved"})
    with pytest.raises(ValidationFailure) as exc_info:
        await writer.commit(approved, other)
    assert exc_info.value.code == "approval_mismatch"

    result = await writer.commit(approved, approval)
    assert result == {"location": "Gameplay Log!A1"}
    assert writer.writes == [(request.id, {"rows": [["a"]]})]
