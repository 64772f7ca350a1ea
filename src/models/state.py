"""State models for trigger instances and their execution history."""

from datetime import datetime
from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict


class InstanceStatus(str, Enum):
    """Trigger instance execution status."""

    PENDING = "pending"
    RUNNING = "running"
    WAITING = "waiting"
    COMPLETED = "completed"
    FAILED = "failed"
    CANCELLED = "cancelled"

    @property
    def is_terminal(self) -> bool:
        return self in TERMINAL_STATUSES

    @property
    def is_claimable(self) -> bool:
        return self in CLAIMABLE_STATUSES


TERMINAL_STATUSES = frozenset(
    {InstanceStatus.COMPLETED, InstanceStatus.FAILED, InstanceStatus.CANCELLED}
)
CLAIMABLE_STATUSES = frozenset({InstanceStatus.PENDING, InstanceStatus.WAITING})


class StepOutcome(str, Enum):
    """Why an instance changed state."""

    CREATED = "created"
    SENT = "sent"
    RETRY = "retry"
    EXHAUSTED = "exhausted"
    FATAL = "fatal"
    DELAYED = "delayed"
    FAULT = "fault"
    CLAIMED = "claimed"
    REAPED = "reaped"
    CANCELLED = "cancelled"


class TriggerInstance(BaseModel):
    """Persistent state of one workflow run."""

    id: str
    workflow_id: str
    workflow_version: int
    idempotency_key: str
    trigger_context: dict[str, Any] = {}
    cursor_current_node_id: str | None = None
    status: InstanceStatus
    attempts: int = 0
    available_at: datetime
    leased_until: datetime | None = None
    lease_id: str | None = None
    cancel_requested: bool = False
    last_error: str | None = None
    created_at: datetime
    updated_at: datetime


class NextState(BaseModel):
    """State computed by the step executor for a claimed instance."""

    model_config = ConfigDict(frozen=True)

    status: InstanceStatus
    cursor_current_node_id: str | None
    attempts: int
    available_at: datetime
    outcome: StepOutcome
    node_id: str | None = None
    error: str | None = None
    message_id: str | None = None
    input_context: dict[str, Any] | None = None
    output_context: dict[str, Any] | None = None


class TransitionEvent(BaseModel):
    """Audit record of a single status transition."""

    model_config = ConfigDict(frozen=True)

    instance_id: str
    workflow_id: str
    node_id: str | None = None
    from_status: InstanceStatus
    to_status: InstanceStatus
    attempt_number: int
    outcome: StepOutcome
    reason: str | None = None
    timestamp: datetime


class StepExecutionLog(BaseModel):
    """One executed attempt of one node."""

    model_config = ConfigDict(frozen=True)

    id: str
    instance_id: str
    workflow_id: str
    node_id: str | None = None
    attempt: int
    started_at: datetime
    finished_at: datetime
    success: bool
    outcome: StepOutcome
    message_id: str | None = None
    error_message: str | None = None
    input_context: dict[str, Any] | None = None
    output_context: dict[str, Any] | None = None


class Page(BaseModel):
    """Pagination metadata."""

    model_config = ConfigDict(frozen=True)

    current: int
    limit: int
    records: int
    pages: int
