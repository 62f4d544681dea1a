"""Session processing pipeline backed by SQLite, across an engine restart."""

import pytest

from fixtures.agents import FunctionAgent, SheetWriter
from orchestrant import create_orchestrator
from orchestrant.config import OrchestrantConfig
from orchestrant.events import EventRecorder
from orchestrant.persistence import SQLiteRepository
from orchestrant.transports import EventRelay, InMemoryEventTransport

WORKFLOWS_YAML = """
workflows:
  session-processing:
    description: Transcribe a recorded session and log it after review
    steps:
      - agent: transcriber
        streaming: true
      - parallel:
          - summarizer
          - state
      - agent: sheets
        requires_approval: true
"""


def _agents(writer):
    return [
        FunctionAgent("transcriber", lambda ctx: f"transcript of {ctx['recording']}"),
        FunctionAgent("summarizer", lambda ctx: {"summary": ctx["transcriber"][:13]}),
        FunctionAgent("state", lambda ctx: {"party_level": 4}),
        writer,
    ]


@pytest.mark.asyncio
async def test_session_processing_survives_restart(tmp_path):
    workflows_file = tmp_path / "workflows.yaml"
    workflows_file.write_text(WORKFLOWS_YAML)
    config = OrchestrantConfig(
        database_url=f"sqlite://{tmp_path / 'state.db'}",
        workflows_file=str(workflows_file),
    )

    repo = SQLiteRepository(tmp_path / "state.db")
    first_writer = SheetWriter("sheets")
    orchestrator = create_orchestrator(
        agents=_agents(first_writer), config=config, repository=repo
    )
    transport = InMemoryEventTransport()
    relay = EventRelay(orchestrator.bus, transport)

    context = await orchestrator.execute_workflow(
        "session-processing", {"recording": "session-12.mp3"}
    )

    assert context["summarizer"] == {"summary": "transcript of"}
    assert context["state"] == {"party_level": 4}
    request_id = context["sheets"]["id"]
    assert context["sheets"]["status"] == "pending"
    assert first_writer.writes == []

    await relay.drain()
    forwarded = [e.type for e in transport.published]
    assert forwarded[0] == "workflowStarted"
    assert "writeRequestCreated" in forwarded
    assert forwarded[-1] == "workflowCompleted"
    relay.close()
    repo.close()

    # Resolve the request from a fresh engine over the same database
    reopened = SQLiteRepository(tmp_path / "state.db")
    second_writer = SheetWriter("sheets")
    restarted = create_orchestrator(
        agents=_agents(second_writer), config=config, repository=reopened
    )
    recorder = EventRecorder(restarted.bus)

    pending = await restarted.list_pending_write_requests()
    assert [wr.id for wr in pending] == [request_id]

    outcome = await restarted.submit_approval(request_id, "dm", "approve")

    assert outcome.commit.success
    assert second_writer.writes == [(request_id, {"rows": []})]
    assert await restarted.list_pending_write_requests() == []
    assert [e.type for e in recorder.of_type("commitCompleted")] == ["commitCompleted"]

    [execution] = await reopened.list_executions()
    assert execution.status == "completed"
    assert execution.write_request_ids == [request_id]
    reopened.close()
