"""Redis-based store for versioned workflow definitions and node templates."""

import logging
from datetime import datetime, timezone

from redis import Redis
from redis.exceptions import WatchError

from models.workflow import NodeTemplate, Workflow
from services.graph_service import GraphService, WorkflowValidationError

logger = logging.getLogger(__name__)


class WorkflowNotFoundError(Exception):
    """Raised when workflow is not found."""

    def __init__(self, workflow_id: str, version: int | None = None):
        self.workflow_id = workflow_id
        self.version = version
        if version is None:
            super().__init__(f"Workflow not found: {workflow_id}")
        else:
            super().__init__(f"Workflow not found: {workflow_id} v{version}")


class NodeNotFoundError(Exception):
    """Raised when a node is not part of a workflow."""

    def __init__(self, workflow_id: str, node_id: str):
        self.workflow_id = workflow_id
        self.node_id = node_id
        super().__init__(f"Node not found: {workflow_id}/{node_id}")


class TemplateNotFoundError(Exception):
    """Raised when node template is not found."""

    def __init__(self, code: str):
        self.code = code
        super().__init__(f"Node template not found: {code}")


class RedisWorkflowStore:
    """Stores workflows as immutable, numbered snapshots.

    Every save writes a new version; trigger instances pin the version they
    were created against, so editing a workflow never changes in-flight runs.
    """

    def __init__(self, redis_client: Redis, graph_service: GraphService | None = None):
        if redis_client is None:
            raise ValueError("redis_client is required")
        self._redis = redis_client
        self._graph = graph_service or GraphService()

    def _workflow_key(self, workflow_id: str) -> str:
        return f"workflow:{workflow_id}"

    def _version_key(self, workflow_id: str, version: int) -> str:
        return f"workflow:{workflow_id}:v{version}"

    def _code_key(self, code: str) -> str:
        return f"workflow_code:{code}"

    def _template_key(self, code: str) -> str:
        return f"node_template:{code}"

    def _workflows_key(self) -> str:
        return "workflows"

    def _utc_now(self) -> datetime:
        return datetime.now(timezone.utc)

    def save_workflow(self, workflow: Workflow) -> Workflow:
        """Validate and store a workflow, creating a new version."""
        if workflow is None:
            raise ValueError("workflow is required")

        # Nodes always belong to the workflow they are saved with.
        nodes = [
            node.model_copy(update={"workflow_id": workflow.id})
            if not node.workflow_id else node
            for node in workflow.nodes
        ]
        candidate = workflow.model_copy(update={"nodes": nodes})
        self._graph.validate(candidate)

        key = self._workflow_key(workflow.id)
        code_key = self._code_key(workflow.code)

        with self._redis.pipeline() as pipe:
            while True:
                try:
                    pipe.watch(key, code_key)

                    owner = pipe.get(code_key)
                    if isinstance(owner, bytes):
                        owner = owner.decode("utf-8")
                    if owner is not None and owner != workflow.id:
                        raise WorkflowValidationError(
                            workflow.id, f"code already in use: {workflow.code}"
                        )

                    current_data = pipe.get(key)
                    current = (
                        Workflow.model_validate_json(current_data)
                        if current_data is not None else None
                    )

                    now = self._utc_now()
                    saved = candidate.model_copy(
                        update={
                            "version": current.version + 1 if current else 1,
                            "created_at": current.created_at if current else now,
                            "updated_at": now,
                        }
                    )
                    data = saved.model_dump_json()

                    pipe.multi()
                    if current is not None and current.code != saved.code:
                        pipe.delete(self._code_key(current.code))
                    pipe.set(code_key, saved.id)
                    pipe.set(key, data)
                    pipe.set(self._version_key(saved.id, saved.version), data)
                    pipe.sadd(self._workflows_key(), saved.id)
                    pipe.execute()
                    break
                except WatchError:
                    # Concurrent save of the same workflow; recompute the version.
                    continue

        logger.info(f"Saved workflow {saved.id} v{saved.version}")
        return saved

    def get_workflow(self, workflow_id: str, version: int | None = None) -> Workflow:
        """Get the latest workflow, or a specific version snapshot."""
        if not workflow_id:
            raise ValueError("workflow_id is required")

        if version is None:
            key = self._workflow_key(workflow_id)
        else:
            key = self._version_key(workflow_id, version)

        data = self._redis.get(key)
        if data is None:
            raise WorkflowNotFoundError(workflow_id, version)
        return Workflow.model_validate_json(data)

    def get_workflow_by_code(self, code: str) -> Workflow:
        if not code:
            raise ValueError("code is required")
        workflow_id = self._redis.get(self._code_key(code))
        if workflow_id is None:
            raise WorkflowNotFoundError(code)
        if isinstance(workflow_id, bytes):
            workflow_id = workflow_id.decode("utf-8")
        return self.get_workflow(workflow_id)

    def list_workflows(self) -> list[Workflow]:
        ids = self._redis.smembers(self._workflows_key())
        workflows = []
        for workflow_id in ids:
            if isinstance(workflow_id, bytes):
                workflow_id = workflow_id.decode("utf-8")
            workflows.append(self.get_workflow(workflow_id))
        return sorted(workflows, key=lambda w: w.code)

    def set_active(self, workflow_id: str, is_active: bool) -> Workflow:
        """Enable or disable ingestion for a workflow."""
        workflow = self.get_workflow(workflow_id)
        if workflow.is_active == is_active:
            return workflow
        return self.save_workflow(workflow.model_copy(update={"is_active": is_active}))

    def delete_node(self, workflow_id: str, node_id: str) -> Workflow:
        """Soft-delete a node, relinking its predecessor to its successor.

        Earlier versions keep the node, so instances pinned to them can still
        resolve it.
        """
        if not node_id:
            raise ValueError("node_id is required")

        workflow = self.get_workflow(workflow_id)
        target = workflow.get_node(node_id)
        if target is None or target.is_deleted:
            raise NodeNotFoundError(workflow_id, node_id)

        now = self._utc_now()
        nodes = []
        for node in workflow.nodes:
            if node.id == node_id:
                nodes.append(node.model_copy(update={"deleted_at": now}))
            elif node.next_node_id == node_id and not node.is_deleted:
                nodes.append(node.model_copy(update={"next_node_id": target.next_node_id}))
            else:
                nodes.append(node)

        entry_id = workflow.first_node_id
        if entry_id == node_id:
            entry_id = target.next_node_id
            if entry_id is None:
                raise WorkflowValidationError(
                    workflow_id, "cannot delete the only remaining node"
                )

        return self.save_workflow(
            workflow.model_copy(update={"nodes": nodes, "entry_node_id": entry_id})
        )

    def save_template(self, template: NodeTemplate) -> NodeTemplate:
        if template is None:
            raise ValueError("template is required")
        if template.created_at is None:
            template = template.model_copy(update={"created_at": self._utc_now()})
        self._redis.set(self._template_key(template.code), template.model_dump_json())
        return template

    def get_template(self, code: str) -> NodeTemplate:
        if not code:
            raise ValueError("code is required")
        data = self._redis.get(self._template_key(code))
        if data is None:
            raise TemplateNotFoundError(code)
        return NodeTemplate.model_validate_json(data)
