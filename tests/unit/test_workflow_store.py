"""Unit tests for RedisWorkflowStore."""

import fakeredis
import pytest

from models.workflow import DelayNode, EmailNode, NodeTemplate, NodeType, SmsNode, Workflow
from services.graph_service import WorkflowValidationError
from services.workflow_store import (
    NodeNotFoundError,
    RedisWorkflowStore,
    TemplateNotFoundError,
    WorkflowNotFoundError,
)


@pytest.fixture
def redis_client():
    return fakeredis.FakeRedis(decode_responses=False)


@pytest.fixture
def store(redis_client):
    return RedisWorkflowStore(redis_client)


def make_workflow(workflow_id: str = "wf-1", code: str = "welcome", **kwargs) -> Workflow:
    nodes = kwargs.pop(
        "nodes",
        [
            EmailNode(id="email", next_node_id="wait", to_template="{{ email }}", body_template="Hi"),
            DelayNode(id="wait", next_node_id="sms", delay_ms=1000),
            SmsNode(id="sms", to_template="{{ phone }}", body_template="Reminder"),
        ],
    )
    return Workflow(id=workflow_id, code=code, nodes=nodes, **kwargs)


class TestRedisWorkflowStoreInit:
    """Tests for RedisWorkflowStore initialization."""

    def test_init_without_client_raises(self):
        with pytest.raises(ValueError, match="redis_client is required"):
            RedisWorkflowStore(None)


class TestSaveWorkflow:
    """Tests for saving and versioning workflows."""

    def test_first_save_is_version_one(self, store):
        saved = store.save_workflow(make_workflow())
        assert saved.version == 1
        assert saved.created_at is not None
        assert saved.updated_at == saved.created_at

    def test_nodes_stamped_with_workflow_id(self, store):
        saved = store.save_workflow(make_workflow())
        assert all(node.workflow_id == "wf-1" for node in saved.nodes)

    def test_resave_bumps_version_and_keeps_created_at(self, store):
        first = store.save_workflow(make_workflow())
        second = store.save_workflow(make_workflow(name="Welcome v2"))
        assert second.version == 2
        assert second.created_at == first.created_at
        assert store.get_workflow("wf-1").name == "Welcome v2"

    def test_old_versions_retained(self, store):
        store.save_workflow(make_workflow(name="first"))
        store.save_workflow(make_workflow(name="second"))
        assert store.get_workflow("wf-1", version=1).name == "first"
        assert store.get_workflow("wf-1", version=2).name == "second"

    def test_invalid_chain_not_stored(self, store):
        broken = make_workflow(nodes=[SmsNode(id="a", next_node_id="ghost")])
        with pytest.raises(WorkflowValidationError):
            store.save_workflow(broken)
        with pytest.raises(WorkflowNotFoundError):
            store.get_workflow("wf-1")

    def test_code_unique_across_workflows(self, store):
        store.save_workflow(make_workflow("wf-1", code="shared"))
        with pytest.raises(WorkflowValidationError, match="code already in use"):
            store.save_workflow(make_workflow("wf-2", code="shared"))

    def test_code_change_releases_old_code(self, store):
        store.save_workflow(make_workflow("wf-1", code="old"))
        store.save_workflow(make_workflow("wf-1", code="new"))
        store.save_workflow(make_workflow("wf-2", code="old"))
        assert store.get_workflow_by_code("old").id == "wf-2"
        assert store.get_workflow_by_code("new").id == "wf-1"

    def test_save_none_raises(self, store):
        with pytest.raises(ValueError, match="workflow is required"):
            store.save_workflow(None)


class TestGetWorkflow:
    """Tests for workflow lookups."""

    def test_not_found(self, store):
        with pytest.raises(WorkflowNotFoundError) as exc:
            store.get_workflow("nope")
        assert exc.value.workflow_id == "nope"

    def test_version_not_found(self, store):
        store.save_workflow(make_workflow())
        with pytest.raises(WorkflowNotFoundError) as exc:
            store.get_workflow("wf-1", version=9)
        assert exc.value.version == 9

    def test_empty_id_raises(self, store):
        with pytest.raises(ValueError, match="workflow_id is required"):
            store.get_workflow("")

    def test_by_code_not_found(self, store):
        with pytest.raises(WorkflowNotFoundError):
            store.get_workflow_by_code("missing")

    def test_list_sorted_by_code(self, store):
        store.save_workflow(make_workflow("wf-b", code="bravo"))
        store.save_workflow(make_workflow("wf-a", code="alpha"))
        assert [w.code for w in store.list_workflows()] == ["alpha", "bravo"]

    def test_set_active(self, store):
        store.save_workflow(make_workflow())
        disabled = store.set_active("wf-1", False)
        assert disabled.is_active is False
        assert disabled.version == 2

    def test_set_active_unchanged_does_not_bump(self, store):
        store.save_workflow(make_workflow())
        assert store.set_active("wf-1", True).version == 1


class TestDeleteNode:
    """Tests for soft node deletion."""

    def test_middle_node_relinks_predecessor(self, store):
        store.save_workflow(make_workflow())
        updated = store.delete_node("wf-1", "wait")

        assert updated.version == 2
        assert updated.get_node("wait").is_deleted
        assert updated.get_node("email").next_node_id == "sms"

    def test_previous_version_keeps_node(self, store):
        store.save_workflow(make_workflow())
        store.delete_node("wf-1", "wait")
        original = store.get_workflow("wf-1", version=1)
        assert not original.get_node("wait").is_deleted
        assert original.get_node("email").next_node_id == "wait"

    def test_entry_node_moves_entry(self, store):
        store.save_workflow(make_workflow())
        updated = store.delete_node("wf-1", "email")
        assert updated.first_node_id == "wait"

    def test_last_node_ends_chain(self, store):
        store.save_workflow(make_workflow())
        updated = store.delete_node("wf-1", "sms")
        assert updated.get_node("wait").next_node_id is None

    def test_only_node_cannot_be_deleted(self, store):
        store.save_workflow(make_workflow(nodes=[SmsNode(id="only", to_template="x")]))
        with pytest.raises(WorkflowValidationError, match="only remaining node"):
            store.delete_node("wf-1", "only")

    def test_unknown_node(self, store):
        store.save_workflow(make_workflow())
        with pytest.raises(NodeNotFoundError) as exc:
            store.delete_node("wf-1", "ghost")
        assert exc.value.node_id == "ghost"

    def test_already_deleted_node(self, store):
        store.save_workflow(make_workflow())
        store.delete_node("wf-1", "wait")
        with pytest.raises(NodeNotFoundError):
            store.delete_node("wf-1", "wait")


class TestTemplates:
    """Tests for node templates."""

    def test_save_and_get(self, store):
        store.save_template(
            NodeTemplate(id="t1", code="reminder", type=NodeType.SMS, body="Don't forget")
        )
        template = store.get_template("reminder")
        assert template.body == "Don't forget"
        assert template.created_at is not None

    def test_not_found(self, store):
        with pytest.raises(TemplateNotFoundError) as exc:
            store.get_template("missing")
        assert exc.value.code == "missing"
