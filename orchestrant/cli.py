"""Command line interface for inspecting executions and resolving approvals."""

from __future__ import annotations

import asyncio
from typing import Optional

import typer

from orchestrant import create_orchestrator, get_repository
from orchestrant.config import configure_logging, load_config
from orchestrant.contracts import WriteRequest
from orchestrant.errors import OrchestrantError

app = typer.Typer(help="CLI for orchestrant workflows and approvals")

# Command groups
workflow_app = typer.Typer(help="Commands for inspecting workflow executions")
approval_app = typer.Typer(help="Commands for reviewing write requests")

app.add_typer(workflow_app, name="workflow")
app.add_typer(approval_app, name="approval")


@app.callback()
def main() -> None:
    """Orchestrant CLI entry point."""
    configure_logging()


def _fail(error: OrchestrantError) -> None:
    typer.secho(f"Error [{error.code}]: {error.message}", fg=typer.colors.RED)
    raise typer.Exit(code=1)


def _echo_write_request(wr: WriteRequest) -> None:
    typer.echo(f"Write request {wr.id}: {wr.status}")
    typer.echo(f"  Target: {wr.target}")
    typer.echo(f"  Agent: {wr.agent_name}")
    typer.echo(f"  Created by: {wr.created_by} at {wr.created_at}")
    if wr.resolved_by:
        typer.echo(f"  Resolved by: {wr.resolved_by} at {wr.resolved_at}")
    if wr.rejection_reason:
        typer.echo(f"  Reason: {wr.rejection_reason}")
    typer.echo(f"  Commit: {wr.commit_status} ({wr.commit_attempts} attempts)")
    if wr.last_commit_error:
        typer.echo(f"  Last commit error: {wr.last_commit_error}")


@workflow_app.command("list")
def workflow_list() -> None:
    """
    List persisted workflow executions with their status.

    Example:
        orchestrant workflow list
        # Output: session-processing-1760860800000-1    completed
    """
    repo = get_repository()
    executions = asyncio.run(repo.list_executions())
    if not executions:
        typer.echo("No workflow executions found")
        return
    for execution in executions:
        typer.echo(f"{execution.execution_id}\t{execution.status}")


@workflow_app.command("show")
def workflow_show(execution_id: str) -> None:
    """
    Show status, current step and results of a workflow execution.

    Args:
        execution_id: Execution to inspect (get from 'workflow list')
    """
    repo = get_repository()
    execution = asyncio.run(repo.get_execution(execution_id))
    if execution is None:
        typer.echo("Workflow execution not found")
        raise typer.Exit(code=1)
    typer.echo(f"Execution {execution.execution_id}: {execution.status}")
    typer.echo(f"Workflow: {execution.workflow_name}")
    typer.echo(f"Current step: {execution.current_step_index}")
    typer.echo(
        f"Started: {execution.started_at}"
        + (f" -> {execution.ended_at}" if execution.ended_at else "")
    )
    if execution.error:
        typer.echo(f"Error at {execution.failed_step}: {execution.error}")
    for key in execution.results:
        typer.echo(f"- {key}")
    for request_id in execution.write_request_ids:
        typer.echo(f"Write request: {request_id}")


@approval_app.command("pending")
def approval_pending() -> None:
    """List write requests waiting for a decision, oldest first."""
    repo = get_repository()
    pending = asyncio.run(repo.list_pending())
    if not pending:
        typer.echo("No pending write requests")
        return
    for wr in pending:
        typer.echo(f"{wr.id}\t{wr.target}\t{wr.created_by}\t{wr.created_at}")


@approval_app.command("show")
def approval_show(request_id: str) -> None:
    """Show a write request and its resolution."""
    repo = get_repository()
    wr = asyncio.run(repo.find_write_request(request_id))
    if wr is None:
        typer.echo("Write request not found")
        raise typer.Exit(code=1)
    _echo_write_request(wr)


@approval_app.command("submit")
def approval_submit(
    request_id: str,
    approver: str = typer.Option(..., help="Id of the person deciding"),
    decision: str = typer.Option(..., help="approve or reject"),
    comment: Optional[str] = typer.Option(None, help="Reason or note"),
) -> None:
    """
    Approve or reject a pending write request.

    Approved requests are committed by the agent that proposed them, using
    the agent factory named by ``agents`` in the configuration.

    Example:
        orchestrant approval submit wr_1234 --approver dm --decision approve
    """
    config = load_config()
    orchestrator = create_orchestrator(config=config, repository=get_repository())
    try:
        outcome = asyncio.run(
            orchestrator.submit_approval(request_id, approver, decision, comment)
        )
    except OrchestrantError as e:
        _fail(e)
        return
    _echo_write_request(outcome.write_request)
    if outcome.commit is not None:
        if outcome.commit.success:
            typer.echo(f"Committed: {outcome.commit.result}")
            _echo_follow_up(outcome.commit)
        else:
            typer.secho(f"Commit failed: {outcome.commit.error}", fg=typer.colors.RED)


def _echo_follow_up(commit) -> None:
    if commit.follow_up_error:
        typer.secho(
            f"Follow-up {commit.follow_up} failed: {commit.follow_up_error}",
            fg=typer.colors.YELLOW,
        )
    elif commit.follow_up:
        typer.echo(f"Follow-up {commit.follow_up}: {commit.follow_up_result}")


@approval_app.command("retry")
def approval_retry(request_id: str) -> None:
    """Retry the commit of an approved write request."""
    config = load_config()
    orchestrator = create_orchestrator(config=config, repository=get_repository())
    try:
        commit = asyncio.run(orchestrator.retry_commit(request_id))
    except OrchestrantError as e:
        _fail(e)
        return
    if commit.success:
        typer.echo(f"Committed on attempt {commit.attempt}: {commit.result}")
        _echo_follow_up(commit)
    else:
        typer.secho(
            f"Commit attempt {commit.attempt} failed: {commit.error}",
            fg=typer.colors.RED,
        )
        raise typer.Exit(code=1)


if __name__ == "__main__":  # pragma: no cover - CLI entry point
    app()
