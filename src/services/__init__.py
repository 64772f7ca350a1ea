# Services package

from services.audit import AuditSink, CompositeAuditSink, LoggingAuditSink, RedisAuditSink
from services.backoff import BackoffPolicy
from services.channels import ChannelDispatcher, DispatchResult, HttpChannelDispatcher
from services.clock import ManualClock, SystemClock
from services.executor import StepExecutor
from services.graph_service import GraphService, WorkflowValidationError
from services.log_service import SizeAndTimeRotatingHandler, configure_logging
from services.renderer import RenderError, TemplateRenderer
from services.scheduler import Scheduler
from services.state_store import (
    InstanceNotFoundError,
    InvalidTransitionError,
    LeaseLostError,
    RedisInstanceStore,
)
from services.trigger_service import TriggerService
from services.workflow_store import (
    NodeNotFoundError,
    RedisWorkflowStore,
    TemplateNotFoundError,
    WorkflowNotFoundError,
)

__all__ = [
    "AuditSink",
    "BackoffPolicy",
    "ChannelDispatcher",
    "CompositeAuditSink",
    "DispatchResult",
    "GraphService",
    "HttpChannelDispatcher",
    "InstanceNotFoundError",
    "InvalidTransitionError",
    "LeaseLostError",
    "LoggingAuditSink",
    "ManualClock",
    "NodeNotFoundError",
    "RedisAuditSink",
    "RedisInstanceStore",
    "RedisWorkflowStore",
    "RenderError",
    "Scheduler",
    "SizeAndTimeRotatingHandler",
    "StepExecutor",
    "SystemClock",
    "TemplateNotFoundError",
    "TemplateRenderer",
    "TriggerService",
    "WorkflowNotFoundError",
    "WorkflowValidationError",
    "configure_logging",
]
