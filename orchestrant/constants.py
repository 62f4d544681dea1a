"""Shared constants for orchestrant."""

from __future__ import annotations

import uuid

# Event types published on the event bus
EVENT_STATE_CHANGE = "stateChange"
EVENT_LOG = "log"
EVENT_ERROR = "error"
EVENT_WORKFLOW_STARTED = "workflowStarted"
EVENT_WORKFLOW_COMPLETED = "workflowCompleted"
EVENT_WORKFLOW_FAILED = "workflowFailed"
EVENT_WRITE_REQUEST_CREATED = "writeRequestCreated"
EVENT_WRITE_REQUEST_RESOLVED = "writeRequestResolved"
EVENT_COMMIT_COMPLETED = "commitCompleted"

WRITE_REQUEST_PREFIX = "wr_"
APPROVAL_PREFIX = "approval_"

# Namespace for deterministic write request ids
WRITE_REQUEST_NAMESPACE = uuid.UUID("6c1f0f7e-3b7a-4f0e-9d43-5a8f2f1d7c20")

LAST_RESULT_KEY = "last_result"

# Reason recorded when a failed workflow withdraws its pending write requests
WORKFLOW_FAILED_REASON = "workflow failed"

DEFAULT_REDIS_CHANNEL = "orchestrant:events"
DEFAULT_CONFIG_FILE = "config.yaml"
