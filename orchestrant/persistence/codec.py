"""Row <-> model conversion shared by the SQL backends."""

from __future__ import annotations

import json
from datetime import datetime
from typing import Any, Mapping

from ..contracts import Approval, WorkflowExecution, WriteRequest

WRITE_REQUEST_COLUMNS = (
    "id",
    "target",
    "payload",
    "created_by",
    "agent_name",
    "created_at",
    "status",
    "resolved_by",
    "resolved_at",
    "rejection_reason",
    "commit_status",
    "commit_attempts",
    "last_commit_error",
    "committed_at",
)

APPROVAL_COLUMNS = (
    "id",
    "request_id",
    "approver_id",
    "decision",
    "comment",
    "created_at",
)


def _default(value: Any) -> Any:
    if isinstance(value, datetime):
        return value.isoformat()
    return str(value)


def dump_json(value: Any) -> str:
    return json.dumps(value, default=_default)


def load_json(raw: Any) -> Any:
    if raw is None or not isinstance(raw, (str, bytes)):
        return raw
    return json.loads(raw)


def write_request_from_row(row: Mapping[str, Any]) -> WriteRequest:
    data = {col: row[col] for col in WRITE_REQUEST_COLUMNS}
    data["payload"] = load_json(data["payload"])
    return WriteRequest.model_validate(data)


def approval_from_row(row: Mapping[str, Any]) -> Approval:
    return Approval.model_validate({col: row[col] for col in APPROVAL_COLUMNS})


def execution_to_json(execution: WorkflowExecution) -> str:
    return dump_json(execution.model_dump())


def execution_from_json(raw: Any) -> WorkflowExecution:
    return WorkflowExecution.model_validate(load_json(raw))
