"""Request and response models for REST API."""

from datetime import datetime
from typing import Any

from pydantic import BaseModel, ConfigDict, field_validator

from models.state import InstanceStatus, TriggerInstance
from models.workflow import NodeType, WorkflowNode


class TriggerRequest(BaseModel):
    """External event that starts a workflow run."""

    model_config = ConfigDict(extra="forbid")

    workflow_id: str
    idempotency_key: str
    trigger_context: dict[str, Any] = {}

    @field_validator("workflow_id")
    @classmethod
    def workflow_id_not_empty(cls, v: str) -> str:
        if not v or not v.strip():
            raise ValueError("workflow_id is required")
        return v

    @field_validator("idempotency_key")
    @classmethod
    def idempotency_key_not_empty(cls, v: str) -> str:
        if not v or not v.strip():
            raise ValueError("idempotency_key is required")
        return v


class TriggerResponse(BaseModel):
    """Response from trigger ingestion."""

    model_config = ConfigDict(frozen=True)

    instance_id: str
    status: InstanceStatus
    created: bool


class InstanceResponse(BaseModel):
    """Trigger instance as exposed to operators."""

    model_config = ConfigDict(frozen=True)

    id: str
    workflow_id: str
    workflow_version: int
    idempotency_key: str
    trigger_context: dict[str, Any]
    cursor_current_node_id: str | None
    status: InstanceStatus
    attempts: int
    available_at: datetime
    cancel_requested: bool
    last_error: str | None = None
    created_at: datetime
    updated_at: datetime

    @classmethod
    def from_instance(cls, instance: TriggerInstance) -> "InstanceResponse":
        return cls.model_validate(instance.model_dump(exclude={"lease_id", "leased_until"}))


class PaginationResponse(BaseModel):
    """Pagination block of list responses."""

    model_config = ConfigDict(frozen=True)

    current: int
    limit: int
    records: int
    pages: int


class InstanceListResponse(BaseModel):
    """Page of trigger instances."""

    model_config = ConfigDict(frozen=True)

    pagination: PaginationResponse
    data: list[InstanceResponse]


class WorkflowRequest(BaseModel):
    """Create or replace a workflow definition."""

    model_config = ConfigDict(extra="forbid")

    code: str
    name: str = ""
    is_active: bool = True
    entry_node_id: str | None = None
    nodes: list[WorkflowNode]

    @field_validator("code")
    @classmethod
    def code_not_empty(cls, v: str) -> str:
        if not v or not v.strip():
            raise ValueError("code is required")
        return v

    @field_validator("nodes")
    @classmethod
    def nodes_not_empty(cls, v: list) -> list:
        if not v:
            raise ValueError("nodes must not be empty")
        return v


class NodeTemplateRequest(BaseModel):
    """Create or replace a node template."""

    model_config = ConfigDict(extra="forbid")

    type: NodeType
    subject: str | None = None
    body: str = ""


class ErrorResponse(BaseModel):
    """Error response."""

    model_config = ConfigDict(frozen=True)

    detail: str


class HealthResponse(BaseModel):
    """Health check response."""

    model_config = ConfigDict(frozen=True)

    status: str
