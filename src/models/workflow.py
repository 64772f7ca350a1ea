"""Workflow definition models: workflows, nodes and reusable templates."""

from datetime import datetime
from enum import Enum
from typing import Annotated, Literal, Union

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from models.duration import parse_duration_ms

# Longest delay a node may schedule: ten years.
MAX_DELAY_MS = 10 * 365 * 86_400_000


class NodeType(str, Enum):
    """Kinds of workflow step."""

    EMAIL = "email"
    SMS = "sms"
    DELAY = "delay"


class _NodeBase(BaseModel):
    """Fields shared by every workflow node."""

    model_config = ConfigDict(frozen=True)

    id: str
    workflow_id: str = ""
    name: str = ""
    next_node_id: str | None = None
    template_code: str | None = None
    deleted_at: datetime | None = None

    @field_validator("id")
    @classmethod
    def id_not_empty(cls, v: str) -> str:
        if not v or not v.strip():
            raise ValueError("id is required")
        return v

    @property
    def is_deleted(self) -> bool:
        return self.deleted_at is not None


class EmailNode(_NodeBase):
    """Send one email rendered from templates."""

    node_type: Literal["email"] = "email"
    to_template: str | None = None
    subject_template: str | None = None
    body_template: str | None = None


class SmsNode(_NodeBase):
    """Send one SMS rendered from templates."""

    node_type: Literal["sms"] = "sms"
    to_template: str | None = None
    body_template: str | None = None


class DelayNode(_NodeBase):
    """Suspend the run for a fixed duration."""

    node_type: Literal["delay"] = "delay"
    delay_ms: int | None = None
    delay_duration: str | None = None

    @model_validator(mode="after")
    def validate_duration(self) -> "DelayNode":
        if self.delay_ms is None and self.delay_duration is None:
            raise ValueError("delay node requires delay_ms or delay_duration")
        if self.delay_ms is not None and self.delay_ms < 0:
            raise ValueError("delay_ms must be non-negative")
        if self.delay_duration is not None:
            # Fail at authoring time rather than when the run wakes up.
            parse_duration_ms(self.delay_duration)
        if self.duration_ms > MAX_DELAY_MS:
            raise ValueError(f"delay exceeds the maximum of {MAX_DELAY_MS} ms")
        return self

    @property
    def duration_ms(self) -> int:
        if self.delay_ms is not None:
            return self.delay_ms
        return parse_duration_ms(self.delay_duration)


WorkflowNode = Annotated[
    Union[EmailNode, SmsNode, DelayNode], Field(discriminator="node_type")
]


class Workflow(BaseModel):
    """A linked chain of notification steps."""

    model_config = ConfigDict(frozen=True)

    id: str
    code: str
    name: str = ""
    is_active: bool = True
    version: int = 1
    entry_node_id: str | None = None
    nodes: list[WorkflowNode] = []
    created_at: datetime | None = None
    updated_at: datetime | None = None

    @field_validator("id", "code")
    @classmethod
    def not_empty(cls, v: str, info) -> str:
        if not v or not v.strip():
            raise ValueError(f"{info.field_name} is required")
        return v

    @property
    def first_node_id(self) -> str | None:
        """Entry node, defaulting to the first node listed."""
        if self.entry_node_id:
            return self.entry_node_id
        if self.nodes:
            return self.nodes[0].id
        return None

    def get_node(self, node_id: str | None) -> EmailNode | SmsNode | DelayNode | None:
        if node_id is None:
            return None
        for node in self.nodes:
            if node.id == node_id:
                return node
        return None


class NodeTemplate(BaseModel):
    """Reusable message fragment referenced by workflow nodes."""

    model_config = ConfigDict(frozen=True)

    id: str
    code: str
    type: NodeType
    subject: str | None = None
    body: str = ""
    created_at: datetime | None = None

    @field_validator("code")
    @classmethod
    def code_not_empty(cls, v: str) -> str:
        if not v or not v.strip():
            raise ValueError("code is required")
        return v
