"""PostgreSQL implementation of the state repository."""

from __future__ import annotations

from datetime import datetime
from typing import Optional

import asyncpg

from ..contracts import (
    Approval,
    CommitStatus,
    WorkflowExecution,
    WriteRequest,
    WriteRequestStatus,
)
from ..errors import WriteRequestNotFound
from .codec import (
    APPROVAL_COLUMNS,
    WRITE_REQUEST_COLUMNS,
    approval_from_row,
    dump_json,
    execution_from_json,
    execution_to_json,
    write_request_from_row,
)
from .repository import StateRepository

_WR_FIELDS = ", ".join(WRITE_REQUEST_COLUMNS)
_APPROVAL_FIELDS = ", ".join(APPROVAL_COLUMNS)


class PostgresRepository(StateRepository):
    """Persist engine state using PostgreSQL."""

    def __init__(self, dsn: str):
        self._dsn = dsn
        self._initialized = False

    async def _connect(self) -> asyncpg.Connection:
        conn = await asyncpg.connect(self._dsn)
        if not self._initialized:
            await self._ensure_schema(conn)
            self._initialized = True
        return conn

    async def _ensure_schema(self, conn: asyncpg.Connection) -> None:
        await conn.execute(
            """
            CREATE TABLE IF NOT EXISTS write_requests (
                id TEXT PRIMARY KEY,
                target TEXT NOT NULL,
                payload JSONB,
                created_by TEXT NOT NULL,
                agent_name TEXT NOT NULL,
                created_at TIMESTAMPTZ NOT NULL,
                status TEXT NOT NULL,
                resolved_by TEXT,
                resolved_at TIMESTAMPTZ,
                rejection_reason TEXT,
                commit_status TEXT NOT NULL DEFAULT 'not_attempted',
                commit_attempts INTEGER NOT NULL DEFAULT 0,
                last_commit_error TEXT,
                committed_at TIMESTAMPTZ
            )
            """
        )
        await conn.execute(
            """
            CREATE TABLE IF NOT EXISTS approvals (
                id TEXT PRIMARY KEY,
                request_id TEXT NOT NULL,
                approver_id TEXT NOT NULL,
                decision TEXT NOT NULL,
                comment TEXT,
                created_at TIMESTAMPTZ NOT NULL
            )
            """
        )
        await conn.execute(
            """
            CREATE TABLE IF NOT EXISTS executions (
                execution_id TEXT PRIMARY KEY,
                workflow_name TEXT NOT NULL,
                status TEXT NOT NULL,
                started_at TIMESTAMPTZ NOT NULL,
                data JSONB NOT NULL
            )
            """
        )

    # ------------------------------------------------------------------
    # Write requests
    async def save_write_request(self, request: WriteRequest) -> WriteRequest:
        conn = await self._connect()
        try:
            await conn.execute(
                f"""
                INSERT INTO write_requests ({_WR_FIELDS})
                VALUES ($1, $2, $3, $4, $5, $6, $7, $8, $9, $10, $11, $12, $13, $14)
                ON CONFLICT (id) DO NOTHING
                """,
                request.id,
                request.target,
                dump_json(request.payload),
                request.created_by,
                request.agent_name,
                request.created_at,
                request.status,
                request.resolved_by,
                request.resolved_at,
                request.rejection_reason,
                request.commit_status,
                request.commit_attempts,
                request.last_commit_error,
                request.committed_at,
            )
            row = await conn.fetchrow(
                f"SELECT {_WR_FIELDS} FROM write_requests WHERE id = $1", request.id
            )
        finally:
            await conn.close()
        if row is None:
            raise WriteRequestNotFound(request.id)
        return write_request_from_row(row)

    async def find_write_request(self, request_id: str) -> WriteRequest | None:
        conn = await self._connect()
        try:
            row = await conn.fetchrow(
                f"SELECT {_WR_FIELDS} FROM write_requests WHERE id = $1", request_id
            )
        finally:
            await conn.close()
        return write_request_from_row(row) if row else None

    async def update_write_request_status(
        self,
        request_id: str,
        status: WriteRequestStatus,
        resolver_id: str,
        resolved_at: datetime,
        reason: Optional[str] = None,
        expected_status: WriteRequestStatus = "pending",
    ) -> WriteRequest | None:
        conn = await self._connect()
        try:
            row = await conn.fetchrow(
                f"""
                UPDATE write_requests
                SET status = $1, resolved_by = $2, resolved_at = $3, rejection_reason = $4
                WHERE id = $5 AND status = $6
                RETURNING {_WR_FIELDS}
                """,
                status,
                resolver_id,
                resolved_at,
                reason if status == "rejected" else None,
                request_id,
                expected_status,
            )
        finally:
            await conn.close()
        return write_request_from_row(row) if row else None

    async def record_commit(
        self,
        request_id: str,
        status: CommitStatus,
        error: Optional[str],
        at: datetime,
    ) -> WriteRequest | None:
        conn = await self._connect()
        try:
            row = await conn.fetchrow(
                f"""
                UPDATE write_requests
                SET commit_status = $1,
                    commit_attempts = commit_attempts + 1,
                    last_commit_error = $2,
                    committed_at = CASE WHEN $1 = 'succeeded' THEN $3 ELSE committed_at END
                WHERE id = $4
                RETURNING {_WR_FIELDS}
                """,
                status,
                error,
                at,
                request_id,
            )
        finally:
            await conn.close()
        return write_request_from_row(row) if row else None

    async def list_pending(
        self, status: WriteRequestStatus = "pending"
    ) -> list[WriteRequest]:
        conn = await self._connect()
        try:
            rows = await conn.fetch(
                f"SELECT {_WR_FIELDS} FROM write_requests WHERE status = $1 ORDER BY created_at",
                status,
            )
        finally:
            await conn.close()
        return [write_request_from_row(r) for r in rows]

    # ------------------------------------------------------------------
    # Approvals
    async def save_approval(self, approval: Approval) -> None:
        conn = await self._connect()
        try:
            await conn.execute(
                f"INSERT INTO approvals ({_APPROVAL_FIELDS}) VALUES ($1, $2, $3, $4, $5, $6)",
                approval.id,
                approval.request_id,
                approval.approver_id,
                approval.decision,
                approval.comment,
                approval.created_at,
            )
        finally:
            await conn.close()

    async def find_approval_for_request(self, request_id: str) -> Approval | None:
        conn = await self._connect()
        try:
            row = await conn.fetchrow(
                f"""
                SELECT {_APPROVAL_FIELDS} FROM approvals
                WHERE request_id = $1 ORDER BY created_at DESC LIMIT 1
                """,
                request_id,
            )
        finally:
            await conn.close()
        return approval_from_row(row) if row else None

    # ------------------------------------------------------------------
    # Executions
    async def save_execution(self, execution: WorkflowExecution) -> None:
        conn = await self._connect()
        try:
            await conn.execute(
                """
                INSERT INTO executions (execution_id, workflow_name, status, started_at, data)
                VALUES ($1, $2, $3, $4, $5)
                ON CONFLICT (execution_id)
                DO UPDATE SET status = EXCLUDED.status, data = EXCLUDED.data
                """,
                execution.execution_id,
                execution.workflow_name,
                execution.status,
                execution.started_at,
                execution_to_json(execution),
            )
        finally:
            await conn.close()

    async def get_execution(self, execution_id: str) -> WorkflowExecution | None:
        conn = await self._connect()
        try:
            row = await conn.fetchrow(
                "SELECT data FROM executions WHERE execution_id = $1", execution_id
            )
        finally:
            await conn.close()
        return execution_from_json(row["data"]) if row else None

    async def list_executions(self) -> list[WorkflowExecution]:
        conn = await self._connect()
        try:
            rows = await conn.fetch("SELECT data FROM executions ORDER BY started_at")
        finally:
            await conn.close()
        return [execution_from_json(r["data"]) for r in rows]
