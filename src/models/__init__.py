"""Models package."""

from models.config import EngineConfig
from models.duration import DurationParseError, parse_duration_ms
from models.state import (
    CLAIMABLE_STATUSES,
    TERMINAL_STATUSES,
    InstanceStatus,
    NextState,
    Page,
    StepExecutionLog,
    StepOutcome,
    TransitionEvent,
    TriggerInstance,
)
from models.workflow import (
    DelayNode,
    EmailNode,
    NodeTemplate,
    NodeType,
    SmsNode,
    Workflow,
    WorkflowNode,
)

__all__ = [
    "CLAIMABLE_STATUSES",
    "TERMINAL_STATUSES",
    "DelayNode",
    "DurationParseError",
    "EmailNode",
    "EngineConfig",
    "InstanceStatus",
    "NextState",
    "NodeTemplate",
    "NodeType",
    "Page",
    "SmsNode",
    "StepExecutionLog",
    "StepOutcome",
    "TransitionEvent",
    "TriggerInstance",
    "Workflow",
    "WorkflowNode",
    "parse_duration_ms",
]
