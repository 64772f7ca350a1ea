"""Step executor: runs the node at an instance's cursor."""

import logging

from models.config import EngineConfig
from models.duration import DurationParseError
from models.state import InstanceStatus, NextState, StepOutcome, TriggerInstance
from models.workflow import DelayNode, EmailNode, NodeTemplate, NodeType, SmsNode, Workflow
from services.backoff import BackoffPolicy
from services.channels import ChannelDispatcher, DispatchResult
from services.clock import SystemClock, add_ms
from services.renderer import RenderError, TemplateRenderer
from services.workflow_store import (
    RedisWorkflowStore,
    TemplateNotFoundError,
    WorkflowNotFoundError,
)

logger = logging.getLogger(__name__)


class StepFault(Exception):
    """The instance cannot proceed; it is failed with this reason."""

    def __init__(self, reason: str, node_id: str | None = None):
        self.reason = reason
        self.node_id = node_id
        super().__init__(reason)


class StepExecutor:
    """Computes the next state of a claimed trigger instance."""

    def __init__(
        self,
        workflow_store: RedisWorkflowStore,
        dispatcher: ChannelDispatcher,
        renderer: TemplateRenderer | None = None,
        backoff: BackoffPolicy | None = None,
        config: EngineConfig | None = None,
        clock=None,
    ):
        if workflow_store is None:
            raise ValueError("workflow_store is required")
        if dispatcher is None:
            raise ValueError("dispatcher is required")

        self._config = config or EngineConfig()
        self._workflows = workflow_store
        self._dispatcher = dispatcher
        self._renderer = renderer or TemplateRenderer(strict=self._config.strict_rendering)
        self._backoff = backoff or BackoffPolicy.from_config(self._config)
        self._clock = clock or SystemClock()

    def execute(self, instance: TriggerInstance) -> NextState:
        """Run the node at the cursor and return the state to persist.

        Never raises for problems with the instance itself; those become a
        ``failed`` state carrying the reason.
        """
        if instance is None:
            raise ValueError("instance is required")

        try:
            workflow = self._load_workflow(instance)
            node = self._current_node(instance, workflow)
            next_node_id = self._next_node_id(workflow, node)
        except StepFault as fault:
            return self._fault(instance, fault)

        match node:
            case EmailNode() | SmsNode():
                return self._run_message(instance, node, next_node_id)
            case DelayNode():
                return self._run_delay(instance, node, next_node_id)
            case _:
                return self._fault(
                    instance,
                    StepFault(f"unsupported node type: {getattr(node, 'node_type', node)!r}", node.id),
                )

    def _load_workflow(self, instance: TriggerInstance) -> Workflow:
        try:
            return self._workflows.get_workflow(
                instance.workflow_id, instance.workflow_version
            )
        except WorkflowNotFoundError as e:
            raise StepFault(str(e)) from e
        except ValueError as e:
            # Stored definition no longer parses (e.g. unknown node_type).
            raise StepFault(f"invalid workflow definition: {e}") from e

    def _current_node(self, instance: TriggerInstance, workflow: Workflow):
        node_id = instance.cursor_current_node_id or workflow.first_node_id
        node = workflow.get_node(node_id)
        if node is None:
            raise StepFault(f"cursor node not found in workflow: {node_id}", node_id)
        return node

    def _next_node_id(self, workflow: Workflow, node) -> str | None:
        if node.next_node_id is None:
            return None
        target = workflow.get_node(node.next_node_id)
        if target is None:
            raise StepFault(
                f"next node {node.next_node_id} of {node.id} does not exist", node.id
            )
        if target.is_deleted:
            raise StepFault(
                f"next node {node.next_node_id} of {node.id} is deleted", node.id
            )
        return target.id

    def _template(self, node) -> NodeTemplate | None:
        if not node.template_code:
            return None
        try:
            template = self._workflows.get_template(node.template_code)
        except TemplateNotFoundError as e:
            raise RenderError(str(e)) from e
        if template.type.value != node.node_type:
            raise RenderError(
                f"template {template.code} is a {template.type.value} template, "
                f"node {node.id} is {node.node_type}"
            )
        return template

    def _render_message(self, instance: TriggerInstance, node) -> dict[str, str]:
        template = self._template(node)
        body = node.body_template if node.body_template is not None else (
            template.body if template else None
        )
        if not node.to_template:
            raise RenderError(f"node {node.id} has no recipient template")
        if body is None:
            raise RenderError(f"node {node.id} has no body template")

        context = instance.trigger_context
        fields = {
            "to": self._renderer.render(node.to_template, context).strip(),
            "body": self._renderer.render(body, context),
        }
        if not fields["to"]:
            raise RenderError(f"node {node.id} rendered an empty recipient")

        if node.node_type == NodeType.EMAIL.value:
            subject = node.subject_template if node.subject_template is not None else (
                template.subject if template else None
            )
            fields["subject"] = self._renderer.render(subject or "", context)
        return fields

    def _dispatch(self, node, fields: dict[str, str]) -> DispatchResult:
        try:
            if node.node_type == NodeType.EMAIL.value:
                return self._dispatcher.send_email(fields["to"], fields["subject"], fields["body"])
            return self._dispatcher.send_sms(fields["to"], fields["body"])
        except Exception as e:
            logger.exception(f"Dispatcher raised while sending node {node.id}")
            return DispatchResult.retryable(f"dispatcher error: {e}")

    def _run_message(self, instance: TriggerInstance, node, next_node_id: str | None) -> NextState:
        now = self._clock.now()

        try:
            fields = self._render_message(instance, node)
        except RenderError as e:
            return NextState(
                status=InstanceStatus.FAILED,
                cursor_current_node_id=node.id,
                attempts=instance.attempts,
                available_at=instance.available_at,
                outcome=StepOutcome.FATAL,
                node_id=node.id,
                error=f"render failed: {e}",
            )

        result = self._dispatch(node, fields)
        output = result.model_dump(exclude_none=True)

        if result.status == "sent":
            return NextState(
                status=InstanceStatus.PENDING if next_node_id else InstanceStatus.COMPLETED,
                cursor_current_node_id=next_node_id,
                attempts=0,
                available_at=now,
                outcome=StepOutcome.SENT,
                node_id=node.id,
                input_context=fields,
                output_context=output,
                message_id=result.message_id,
            )

        if result.status == "fatal":
            return NextState(
                status=InstanceStatus.FAILED,
                cursor_current_node_id=node.id,
                attempts=instance.attempts,
                available_at=instance.available_at,
                outcome=StepOutcome.FATAL,
                node_id=node.id,
                input_context=fields,
                output_context=output,
                error=result.error,
            )

        attempts = instance.attempts + 1
        if attempts >= self._config.max_attempts:
            return NextState(
                status=InstanceStatus.FAILED,
                cursor_current_node_id=node.id,
                attempts=attempts,
                available_at=instance.available_at,
                outcome=StepOutcome.EXHAUSTED,
                node_id=node.id,
                input_context=fields,
                output_context=output,
                error=f"gave up after {attempts} attempts: {result.error}",
            )

        delay = self._backoff.with_seed(instance.id).delay_ms(attempts)
        return NextState(
            status=InstanceStatus.PENDING,
            cursor_current_node_id=node.id,
            attempts=attempts,
            available_at=add_ms(now, delay),
            outcome=StepOutcome.RETRY,
            node_id=node.id,
            input_context=fields,
            output_context=output,
            error=result.error,
        )

    def _run_delay(self, instance: TriggerInstance, node: DelayNode, next_node_id: str | None) -> NextState:
        now = self._clock.now()
        try:
            duration = node.duration_ms
        except DurationParseError as e:
            return self._fault(instance, StepFault(str(e), node.id))
        try:
            available_at = add_ms(now, duration)
        except OverflowError:
            return self._fault(
                instance, StepFault(f"delay of {duration} ms is out of range", node.id)
            )

        return NextState(
            status=InstanceStatus.WAITING if next_node_id else InstanceStatus.COMPLETED,
            cursor_current_node_id=next_node_id,
            attempts=0,
            available_at=available_at,
            outcome=StepOutcome.DELAYED,
            node_id=node.id,
            input_context={"delay_ms": duration},
            output_context={"available_at": available_at.isoformat()},
        )

    def _fault(self, instance: TriggerInstance, fault: StepFault) -> NextState:
        logger.error(f"Trigger instance {instance.id} faulted: {fault.reason}")
        return NextState(
            status=InstanceStatus.FAILED,
            cursor_current_node_id=instance.cursor_current_node_id,
            attempts=instance.attempts,
            available_at=instance.available_at,
            outcome=StepOutcome.FAULT,
            node_id=fault.node_id or instance.cursor_current_node_id,
            error=fault.reason,
        )
