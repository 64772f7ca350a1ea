"""Trigger ingestion and administrative control of trigger instances."""

import logging

from models.state import (
    InstanceStatus,
    Page,
    StepOutcome,
    TransitionEvent,
    TriggerInstance,
)
from services.audit import AuditSink, LoggingAuditSink
from services.clock import SystemClock
from services.state_store import RedisInstanceStore
from services.workflow_store import RedisWorkflowStore, WorkflowNotFoundError

logger = logging.getLogger(__name__)


class TriggerService:
    """Entry point for external events and operator actions."""

    def __init__(
        self,
        workflow_store: RedisWorkflowStore,
        instance_store: RedisInstanceStore,
        audit: AuditSink | None = None,
        clock=None,
    ):
        if workflow_store is None:
            raise ValueError("workflow_store is required")
        if instance_store is None:
            raise ValueError("instance_store is required")

        self._workflows = workflow_store
        self._instances = instance_store
        self._audit = audit or LoggingAuditSink()
        self._clock = clock or SystemClock()

    def ingest(
        self,
        workflow_id: str,
        idempotency_key: str,
        trigger_context: dict | None = None,
    ) -> tuple[TriggerInstance, bool]:
        """Start a run for an external event, at most once per key.

        Returns the instance and whether it was created by this call. A
        repeated key returns the existing instance untouched.
        """
        if not workflow_id or not workflow_id.strip():
            raise ValueError("workflow_id is required")
        if not idempotency_key or not idempotency_key.strip():
            raise ValueError("idempotency_key is required")

        existing = self._instances.find_by_idempotency_key(workflow_id, idempotency_key)
        if existing is not None:
            return existing, False

        workflow = self._workflows.get_workflow(workflow_id)
        if not workflow.is_active:
            raise WorkflowNotFoundError(workflow_id)

        now = self._clock.now()
        instance, created = self._instances.create_or_get(
            workflow_id=workflow.id,
            workflow_version=workflow.version,
            idempotency_key=idempotency_key,
            entry_node_id=workflow.first_node_id,
            trigger_context=trigger_context,
            now=now,
        )
        if created:
            self._record(instance, InstanceStatus.PENDING, StepOutcome.CREATED, "trigger received")
        return instance, created

    def get_instance(self, instance_id: str) -> TriggerInstance:
        return self._instances.get_instance(instance_id)

    def search(
        self,
        workflow_id: str | None = None,
        status: InstanceStatus | None = None,
        page: int = 1,
        limit: int = 20,
    ) -> tuple[list[TriggerInstance], Page]:
        return self._instances.search(workflow_id, status, page, limit)

    def cancel(self, instance_id: str) -> TriggerInstance:
        """Cancel a run; deferred to the worker if it is running right now."""
        before = self._instances.get_instance(instance_id)
        after = self._instances.cancel(instance_id, self._clock.now())
        if after.status == InstanceStatus.CANCELLED and before.status != InstanceStatus.CANCELLED:
            self._record(after, before.status, StepOutcome.CANCELLED, "cancelled by operator")
        elif after.status == InstanceStatus.RUNNING:
            logger.info(f"Cancellation of running instance {instance_id} deferred to its worker")
        return after

    def _record(
        self,
        instance: TriggerInstance,
        from_status: InstanceStatus,
        outcome: StepOutcome,
        reason: str,
    ) -> None:
        self._audit.record(
            TransitionEvent(
                instance_id=instance.id,
                workflow_id=instance.workflow_id,
                node_id=instance.cursor_current_node_id,
                from_status=from_status,
                to_status=instance.status,
                attempt_number=instance.attempts,
                outcome=outcome,
                reason=reason,
                timestamp=self._clock.now(),
            )
        )
