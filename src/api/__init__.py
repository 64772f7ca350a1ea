# API package

from api.app import NotificationAPI
from api.models import (
    ErrorResponse,
    HealthResponse,
    InstanceListResponse,
    InstanceResponse,
    NodeTemplateRequest,
    PaginationResponse,
    TriggerRequest,
    TriggerResponse,
    WorkflowRequest,
)

__all__ = [
    "ErrorResponse",
    "HealthResponse",
    "InstanceListResponse",
    "InstanceResponse",
    "NodeTemplateRequest",
    "NotificationAPI",
    "PaginationResponse",
    "TriggerRequest",
    "TriggerResponse",
    "WorkflowRequest",
]
