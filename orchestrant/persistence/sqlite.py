"""SQLite implementation of the state repository."""

from __future__ import annotations

import asyncio
import sqlite3
from datetime import datetime
from pathlib import Path
from typing import Any, Optional

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

_WR_SELECT = f"SELECT {', '.join(WRITE_REQUEST_COLUMNS)} FROM write_requests"
_APPROVAL_SELECT = f"SELECT {', '.join(APPROVAL_COLUMNS)} FROM approvals"


def _ts(value: Optional[datetime]) -> Optional[str]:
    return value.isoformat() if value else None


class SQLiteRepository(StateRepository):
    """Persist engine state using SQLite."""

    def __init__(self, db_path: str | Path):
        self.db_path = str(db_path)
        self._conn = sqlite3.connect(self.db_path, check_same_thread=False)
        self._conn.row_factory = sqlite3.Row
        self._ensure_schema()

    # ------------------------------------------------------------------
    # Schema management
    def _ensure_schema(self) -> None:
        cur = self._conn.cursor()
        cur.execute(
            """
            CREATE TABLE IF NOT EXISTS write_requests (
                id TEXT PRIMARY KEY,
                target TEXT NOT NULL,
                payload TEXT,
                created_by TEXT NOT NULL,
                agent_name TEXT NOT NULL,
                created_at TEXT NOT NULL,
                status TEXT NOT NULL,
                resolved_by TEXT,
                resolved_at TEXT,
                rejection_reason TEXT,
                commit_status TEXT NOT NULL DEFAULT 'not_attempted',
                commit_attempts INTEGER NOT NULL DEFAULT 0,
                last_commit_error TEXT,
                committed_at TEXT
            )
            """
        )
        cur.execute(
            """
            CREATE TABLE IF NOT EXISTS approvals (
                id TEXT PRIMARY KEY,
                request_id TEXT NOT NULL,
                approver_id TEXT NOT NULL,
                decision TEXT NOT NULL,
                comment TEXT,
                created_at TEXT NOT NULL
            )
            """
        )
        cur.execute(
            """
            CREATE TABLE IF NOT EXISTS executions (
                execution_id TEXT PRIMARY KEY,
                workflow_name TEXT NOT NULL,
                status TEXT NOT NULL,
                started_at TEXT NOT NULL,
                data TEXT NOT NULL
            )
            """
        )
        self._conn.commit()

    def close(self) -> None:
        self._conn.close()

    # ------------------------------------------------------------------
    # Helper methods
    def _execute(self, query: str, *params: Any) -> int:
        cur = self._conn.cursor()
        cur.execute(query, params)
        self._conn.commit()
        return cur.rowcount

    def _fetchone(self, query: str, *params: Any) -> sqlite3.Row | None:
        cur = self._conn.cursor()
        cur.execute(query, params)
        return cur.fetchone()

    def _fetchall(self, query: str, *params: Any) -> list[sqlite3.Row]:
        cur = self._conn.cursor()
        cur.execute(query, params)
        return cur.fetchall()

    # ------------------------------------------------------------------
    # Write requests
    async def save_write_request(self, request: WriteRequest) -> WriteRequest:
        await asyncio.to_thread(
            self._execute,
            f"INSERT OR IGNORE INTO write_requests ({', '.join(WRITE_REQUEST_COLUMNS)}) "
            f"VALUES ({', '.join('?' for _ in WRITE_REQUEST_COLUMNS)})",
            request.id,
            request.target,
            dump_json(request.payload),
            request.created_by,
            request.agent_name,
            _ts(request.created_at),
            request.status,
            request.resolved_by,
            _ts(request.resolved_at),
            request.rejection_reason,
            request.commit_status,
            request.commit_attempts,
            request.last_commit_error,
            _ts(request.committed_at),
        )
        stored = await self.find_write_request(request.id)
        if stored is None:
            raise WriteRequestNotFound(request.id)
        return stored

    async def find_write_request(self, request_id: str) -> WriteRequest | None:
        row = await asyncio.to_thread(
            self._fetchone, f"{_WR_SELECT} WHERE id = ?", request_id
        )
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
        updated = await asyncio.to_thread(
            self._execute,
            """
            UPDATE write_requests
            SET status = ?, resolved_by = ?, resolved_at = ?, rejection_reason = ?
            WHERE id = ? AND status = ?
            """,
            status,
            resolver_id,
            _ts(resolved_at),
            reason if status == "rejected" else None,
            request_id,
            expected_status,
        )
        if not updated:
            return None
        return await self.find_write_request(request_id)

    async def record_commit(
        self,
        request_id: str,
        status: CommitStatus,
        error: Optional[str],
        at: datetime,
    ) -> WriteRequest | None:
        await asyncio.to_thread(
            self._execute,
            """
            UPDATE write_requests
            SET commit_status = ?,
                commit_attempts = commit_attempts + 1,
                last_commit_error = ?,
                committed_at = CASE WHEN ? = 'succeeded' THEN ? ELSE committed_at END
            WHERE id = ?
            """,
            status,
            error,
            status,
            _ts(at),
            request_id,
        )
        return await self.find_write_request(request_id)

    async def list_pending(
        self, status: WriteRequestStatus = "pending"
    ) -> list[WriteRequest]:
        rows = await asyncio.to_thread(
            self._fetchall,
            f"{_WR_SELECT} WHERE status = ? ORDER BY created_at",
            status,
        )
        return [write_request_from_row(r) for r in rows]

    # ------------------------------------------------------------------
    # Approvals
    async def save_approval(self, approval: Approval) -> None:
        await asyncio.to_thread(
            self._execute,
            f"INSERT INTO approvals ({', '.join(APPROVAL_COLUMNS)}) VALUES (?, ?, ?, ?, ?, ?)",
            approval.id,
            approval.request_id,
            approval.approver_id,
            approval.decision,
            approval.comment,
            _ts(approval.created_at),
        )

    async def find_approval_for_request(self, request_id: str) -> Approval | None:
        row = await asyncio.to_thread(
            self._fetchone,
            f"{_APPROVAL_SELECT} WHERE request_id = ? ORDER BY created_at DESC LIMIT 1",
            request_id,
        )
        return approval_from_row(row) if row else None

    # ------------------------------------------------------------------
    # Executions
    async def save_execution(self, execution: WorkflowExecution) -> None:
        await asyncio.to_thread(
            self._execute,
            """
            INSERT INTO executions (execution_id, workflow_name, status, started_at, data)
            VALUES (?, ?, ?, ?, ?)
            ON CONFLICT(execution_id) DO UPDATE SET status = excluded.status, data = excluded.data
            """,
            execution.execution_id,
            execution.workflow_name,
            execution.status,
            _ts(execution.started_at),
            execution_to_json(execution),
        )

    async def get_execution(self, execution_id: str) -> WorkflowExecution | None:
        row = await asyncio.to_thread(
            self._fetchone,
            "SELECT data FROM executions WHERE execution_id = ?",
            execution_id,
        )
        return execution_from_json(row["data"]) if row else None

    async def list_executions(self) -> list[WorkflowExecution]:
        rows = await asyncio.to_thread(
            self._fetchall, "SELECT data FROM executions ORDER BY started_at"
        )
        return [execution_from_json(r["data"]) for r in rows]
