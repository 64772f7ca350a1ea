"""Validation of workflow node chains."""

import logging

from models.workflow import Workflow


class WorkflowValidationError(Exception):
    """Raised when a workflow definition is not a valid chain."""

    def __init__(self, workflow_id: str, reason: str):
        self.workflow_id = workflow_id
        self.reason = reason
        super().__init__(f"Invalid workflow {workflow_id}: {reason}")


class GraphService:
    """Checks that a workflow is a well-formed singly-linked chain."""

    def __init__(self):
        self.logger = logging.getLogger(__name__)

    def validate(self, workflow: Workflow) -> list[str]:
        """Validate the chain and return node ids in execution order.

        Rejects duplicate ids, nodes owned by another workflow, dangling or
        deleted ``next`` references, multiple nodes pointing at the same
        successor, and cycles.
        """
        if workflow is None:
            raise ValueError("workflow is required")

        wf_id = workflow.id
        if not workflow.nodes:
            raise WorkflowValidationError(wf_id, "workflow must contain at least one node")

        nodes = {}
        for node in workflow.nodes:
            if node.id in nodes:
                raise WorkflowValidationError(wf_id, f"duplicate node id: {node.id}")
            if node.workflow_id and node.workflow_id != wf_id:
                raise WorkflowValidationError(
                    wf_id, f"node {node.id} belongs to workflow {node.workflow_id}"
                )
            nodes[node.id] = node

        entry_id = workflow.first_node_id
        entry = nodes.get(entry_id)
        if entry is None:
            raise WorkflowValidationError(wf_id, f"entry node not found: {entry_id}")
        if entry.is_deleted:
            raise WorkflowValidationError(wf_id, f"entry node is deleted: {entry_id}")

        predecessors: dict[str, str] = {}
        for node in nodes.values():
            if node.is_deleted or node.next_node_id is None:
                continue
            target = nodes.get(node.next_node_id)
            if target is None:
                raise WorkflowValidationError(
                    wf_id, f"node {node.id} points to unknown node {node.next_node_id}"
                )
            if target.is_deleted:
                raise WorkflowValidationError(
                    wf_id, f"node {node.id} points to deleted node {target.id}"
                )
            if target.id in predecessors:
                raise WorkflowValidationError(
                    wf_id,
                    f"node {target.id} is the next node of both "
                    f"{predecessors[target.id]} and {node.id}",
                )
            predecessors[target.id] = node.id

        # Every node is walked, so cycles off the main chain are caught too.
        for start in nodes.values():
            if not start.is_deleted:
                self._walk(wf_id, start.id, nodes)

        order = self._walk(wf_id, entry.id, nodes)
        visited = set(order)

        unreachable = [
            node_id for node_id, node in nodes.items()
            if node_id not in visited and not node.is_deleted
        ]
        if unreachable:
            self.logger.warning(
                f"Workflow {wf_id} has nodes unreachable from entry: {unreachable}"
            )

        return order

    def _walk(self, workflow_id: str, start_id: str, nodes: dict) -> list[str]:
        order = []
        visited: set[str] = set()
        current = nodes.get(start_id)
        while current is not None:
            if current.id in visited:
                raise WorkflowValidationError(
                    workflow_id, f"cycle detected at node {current.id}"
                )
            visited.add(current.id)
            order.append(current.id)
            current = nodes.get(current.next_node_id) if current.next_node_id else None
        return order
