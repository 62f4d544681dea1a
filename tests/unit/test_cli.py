import asyncio

from typer.testing import CliRunner

import orchestrant.persistence as persistence
from orchestrant.cli import app
from orchestrant.contracts import WorkflowExecution, WriteIntent, WriteRequest
from orchestrant.persistence import InMemoryRepository

runner = CliRunner()


def _setup_repo() -> InMemoryRepository:
    repo = InMemoryRepository()
    persistence._repository_instance = repo
    return repo


def _write_config(tmp_path, monkeypatch) -> None:
    config_path = tmp_path / "config.yaml"
    config_path.write_text("agents: fixtures.agents:build_agents\n")
    monkeypatch.setenv("ORCHESTRANT_CONFIG", str(config_path))


def _pending_request(repo: InMemoryRepository) -> WriteRequest:
    request = WriteRequest.propose(
        WriteIntent(target="Gameplay Log", payload={"rows": [["s1", "done"]]}),
        created_by="session-processing-1",
        agent_name="sheets",
    )
    return asyncio.run(repo.save_write_request(request))


def test_workflow_list_and_show():
    repo = _setup_repo()
    done = WorkflowExecution(execution_id="wf-1", workflow_name="wf")
    done.mark_completed({"summarizer": {"summary": "ok"}})
    failed = WorkflowExecution(execution_id="wf-2", workflow_name="wf")
    failed.mark_failed(RuntimeError("sheet locked"), "sheets")
    asyncio.run(repo.save_execution(done))
    asyncio.run(repo.save_execution(failed))

    result = runner.invoke(app, ["workflow", "list"])
    assert result.exit_code == 0, result.output
    assert "wf-1\tcompleted" in result.output
    assert "wf-2\tfailed" in result.output

    result = runner.invoke(app, ["workflow", "show", "wf-2"])
    assert result.exit_code == 0, result.output
    assert "Error at sheets: sheet locked" in result.output

    result = runner.invoke(app, ["workflow", "show", "missing"])
    assert result.exit_code == 1
    assert "Workflow execution not found" in result.output


def test_workflow_list_empty():
    _setup_repo()
    result = runner.invoke(app, ["workflow", "list"])
    assert result.exit_code == 0
    assert "No workflow executions found" in result.output


def test_approval_pending_and_show():
    repo = _setup_repo()
    result = runner.invoke(app, ["approval", "pending"])
    assert "No pending write requests" in result.output

    request = _pending_request(repo)
    result = runner.invoke(app, ["approval", "pending"])
    assert result.exit_code == 0, result.output
    assert request.id in result.output
    assert "Gameplay Log" in result.output

    result = runner.invoke(app, ["approval", "show", request.id])
    assert result.exit_code == 0, result.output
    assert f"Write request {request.id}: pending" in result.output

    result = runner.invoke(app, ["approval", "show", "wr_missing"])
    assert result.exit_code == 1
    assert "Write request not found" in result.output


def test_approval_submit_commits_with_configured_agents(tmp_path, monkeypatch):
    _write_config(tmp_path, monkeypatch)
    repo = _setup_repo()
    request = _pending_request(repo)

    result = runner.invoke(
        app,
        ["approval", "submit", request.id, "--approver", "dm", "--decision", "approve"],
    )
    assert result.exit_code == 0, result.output
    assert "approved" in result.output
    assert "Committed: {'location': 'Gameplay Log!A1'}" in result.output

    stored = asyncio.run(repo.find_write_request(request.id))
    assert stored.commit_status == "succeeded"

    result = runner.invoke(
        app,
        ["approval", "submit", request.id, "--approver", "gm", "--decision", "reject"],
    )
    assert result.exit_code == 1
    assert "Error [already_resolved]" in result.output


def test_approval_submit_rejects_bad_decision(tmp_path, monkeypatch):
    _write_config(tmp_path, monkeypatch)
    repo = _setup_repo()
    request = _pending_request(repo)

    result = runner.invoke(
        app,
        ["approval", "submit", request.id, "--approver", "dm", "--decision", "maybe"],
    )
    assert result.exit_code == 1
    assert "invalid_decision" in result.output
    assert asyncio.run(repo.find_write_request(request.id)).is_pending


def test_approval_retry_requires_approved_request(tmp_path, monkeypatch):
    _write_config(tmp_path, monkeypatch)
    repo = _setup_repo()
    request = _pending_request(repo)

    result = runner.invoke(app, ["approval", "retry", request.id])
    assert result.exit_code == 1
    assert "Error [not_approved]" in result.output
