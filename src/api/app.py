"""FastAPI REST API for trigger ingestion and workflow administration."""

import uuid

from fastapi import FastAPI, HTTPException, Query
from redis import Redis

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
from models.state import InstanceStatus, StepExecutionLog
from models.workflow import NodeTemplate, Workflow
from services.graph_service import WorkflowValidationError
from services.state_store import (
    InstanceNotFoundError,
    InvalidTransitionError,
    RedisInstanceStore,
)
from services.trigger_service import TriggerService
from services.workflow_store import (
    NodeNotFoundError,
    RedisWorkflowStore,
    TemplateNotFoundError,
    WorkflowNotFoundError,
)


class NotificationAPI:
    """REST API for the notification workflow engine."""

    def __init__(
        self,
        trigger_service: TriggerService,
        workflow_store: RedisWorkflowStore,
        instance_store: RedisInstanceStore,
        redis_client: Redis | None = None,
    ):
        """Initialize API with dependencies."""
        if trigger_service is None:
            raise ValueError("trigger_service is required")
        if workflow_store is None:
            raise ValueError("workflow_store is required")
        if instance_store is None:
            raise ValueError("instance_store is required")

        self._triggers = trigger_service
        self._workflows = workflow_store
        self._instances = instance_store
        self._redis = redis_client

    def create_app(self) -> FastAPI:
        """Create FastAPI application."""
        app = FastAPI(
            title="Notification Workflow Engine",
            description="Trigger ingestion and administration for notification workflows",
            version="1.0.0",
        )

        @app.post(
            "/triggers",
            response_model=TriggerResponse,
            responses={400: {"model": ErrorResponse}, 404: {"model": ErrorResponse}},
        )
        def ingest_trigger(request: TriggerRequest) -> TriggerResponse:
            """Start a workflow run; repeated idempotency keys return the same run."""
            try:
                instance, created = self._triggers.ingest(
                    request.workflow_id,
                    request.idempotency_key,
                    request.trigger_context,
                )
            except WorkflowNotFoundError:
                raise HTTPException(status_code=404, detail="Workflow not found")
            except ValueError as e:
                raise HTTPException(status_code=400, detail=str(e))

            return TriggerResponse(
                instance_id=instance.id, status=instance.status, created=created
            )

        @app.get("/triggers", response_model=InstanceListResponse)
        def search_triggers(
            workflow_id: str | None = None,
            status: InstanceStatus | None = None,
            page: int = Query(default=1, ge=1),
            limit: int = Query(default=20, ge=1, le=200),
        ) -> InstanceListResponse:
            """List trigger instances, newest first."""
            instances, pagination = self._triggers.search(workflow_id, status, page, limit)
            return InstanceListResponse(
                pagination=PaginationResponse(**pagination.model_dump()),
                data=[InstanceResponse.from_instance(i) for i in instances],
            )

        @app.get(
            "/triggers/{instance_id}",
            response_model=InstanceResponse,
            responses={404: {"model": ErrorResponse}},
        )
        def get_trigger(instance_id: str) -> InstanceResponse:
            """Get trigger instance state."""
            try:
                instance = self._triggers.get_instance(instance_id)
            except InstanceNotFoundError:
                raise HTTPException(status_code=404, detail="Trigger instance not found")
            return InstanceResponse.from_instance(instance)

        @app.post(
            "/triggers/{instance_id}/cancel",
            response_model=InstanceResponse,
            responses={404: {"model": ErrorResponse}, 409: {"model": ErrorResponse}},
        )
        def cancel_trigger(instance_id: str) -> InstanceResponse:
            """Cancel a trigger instance."""
            try:
                instance = self._triggers.cancel(instance_id)
            except InstanceNotFoundError:
                raise HTTPException(status_code=404, detail="Trigger instance not found")
            except InvalidTransitionError as e:
                raise HTTPException(status_code=409, detail=str(e))
            return InstanceResponse.from_instance(instance)

        @app.get(
            "/triggers/{instance_id}/steps",
            response_model=list[StepExecutionLog],
            responses={404: {"model": ErrorResponse}},
        )
        def get_trigger_steps(instance_id: str) -> list[StepExecutionLog]:
            """Execution history of a trigger instance."""
            try:
                self._triggers.get_instance(instance_id)
            except InstanceNotFoundError:
                raise HTTPException(status_code=404, detail="Trigger instance not found")
            return self._instances.get_step_logs(instance_id)

        @app.post(
            "/workflows",
            response_model=Workflow,
            responses={400: {"model": ErrorResponse}},
        )
        def create_workflow(request: WorkflowRequest) -> Workflow:
            """Create a workflow with a generated id."""
            workflow_id = f"wf-{uuid.uuid4().hex[:12]}"
            return self._save_workflow(workflow_id, request)

        @app.put(
            "/workflows/{workflow_id}",
            response_model=Workflow,
            responses={400: {"model": ErrorResponse}},
        )
        def save_workflow(workflow_id: str, request: WorkflowRequest) -> Workflow:
            """Create or replace a workflow; each save is a new version."""
            return self._save_workflow(workflow_id, request)

        @app.get(
            "/workflows/{workflow_id}",
            response_model=Workflow,
            responses={404: {"model": ErrorResponse}},
        )
        def get_workflow(workflow_id: str, version: int | None = None) -> Workflow:
            """Get the latest workflow, or a specific version."""
            try:
                return self._workflows.get_workflow(workflow_id, version)
            except WorkflowNotFoundError:
                raise HTTPException(status_code=404, detail="Workflow not found")

        @app.get(
            "/workflows/{workflow_id}/nodes",
            responses={404: {"model": ErrorResponse}},
        )
        def get_workflow_nodes(workflow_id: str) -> dict:
            """Node chain of a workflow in execution order."""
            try:
                workflow = self._workflows.get_workflow(workflow_id)
            except WorkflowNotFoundError:
                raise HTTPException(status_code=404, detail="Workflow not found")

            order = []
            node = workflow.get_node(workflow.first_node_id)
            while node is not None and node.id not in order:
                order.append(node.id)
                node = workflow.get_node(node.next_node_id)

            return {
                "workflow_id": workflow.id,
                "version": workflow.version,
                "entry_node_id": workflow.first_node_id,
                "order": order,
                "nodes": [n.model_dump(mode="json") for n in workflow.nodes],
            }

        @app.delete(
            "/workflows/{workflow_id}/nodes/{node_id}",
            response_model=Workflow,
            responses={400: {"model": ErrorResponse}, 404: {"model": ErrorResponse}},
        )
        def delete_workflow_node(workflow_id: str, node_id: str) -> Workflow:
            """Soft-delete a node; running instances keep their pinned version."""
            try:
                return self._workflows.delete_node(workflow_id, node_id)
            except WorkflowNotFoundError:
                raise HTTPException(status_code=404, detail="Workflow not found")
            except NodeNotFoundError:
                raise HTTPException(status_code=404, detail="Node not found")
            except WorkflowValidationError as e:
                raise HTTPException(status_code=400, detail=str(e))

        @app.put("/node-templates/{code}", response_model=NodeTemplate)
        def save_node_template(code: str, request: NodeTemplateRequest) -> NodeTemplate:
            """Create or replace a reusable node template."""
            try:
                existing = self._workflows.get_template(code)
                template_id, created_at = existing.id, existing.created_at
            except TemplateNotFoundError:
                template_id, created_at = str(uuid.uuid4()), None

            template = NodeTemplate(
                id=template_id,
                code=code,
                type=request.type,
                subject=request.subject,
                body=request.body,
                created_at=created_at,
            )
            return self._workflows.save_template(template)

        @app.get(
            "/node-templates/{code}",
            response_model=NodeTemplate,
            responses={404: {"model": ErrorResponse}},
        )
        def get_node_template(code: str) -> NodeTemplate:
            try:
                return self._workflows.get_template(code)
            except TemplateNotFoundError:
                raise HTTPException(status_code=404, detail="Node template not found")

        @app.get("/health", response_model=HealthResponse)
        def health_check() -> HealthResponse:
            """Health check endpoint."""
            if self._redis is not None:
                try:
                    self._redis.ping()
                except Exception:
                    raise HTTPException(status_code=503, detail="Store unavailable")
            return HealthResponse(status="ok")

        return app

    def _save_workflow(self, workflow_id: str, request: WorkflowRequest) -> Workflow:
        try:
            workflow = Workflow(
                id=workflow_id,
                code=request.code,
                name=request.name,
                is_active=request.is_active,
                entry_node_id=request.entry_node_id,
                nodes=request.nodes,
            )
            return self._workflows.save_workflow(workflow)
        except WorkflowValidationError as e:
            raise HTTPException(status_code=400, detail=str(e))
