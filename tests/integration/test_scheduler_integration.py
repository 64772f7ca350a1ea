"""Integration tests running the full engine against real Redis."""

import pytest
from pytest_httpx import HTTPXMock
from redis import Redis
from testcontainers.redis import RedisContainer

from models.config import EngineConfig
from models.state import InstanceStatus, StepOutcome
from models.workflow import DelayNode, EmailNode, SmsNode, Workflow
from services.audit import RedisAuditSink
from services.channels import HttpChannelDispatcher
from services.clock import ManualClock
from services.state_store import RedisInstanceStore
from services.trigger_service import TriggerService
from services.workflow_store import RedisWorkflowStore
from worker_daemon import build_scheduler

GATEWAY = "http://gateway:9000"


@pytest.fixture(scope="module")
def redis_container():
    with RedisContainer() as container:
        yield container


@pytest.fixture
def redis_client(redis_container):
    client = Redis(
        host=redis_container.get_container_host_ip(),
        port=redis_container.get_exposed_port(6379),
        decode_responses=True,
    )
    yield client
    client.flushdb()
    client.close()


@pytest.fixture
def clock():
    return ManualClock()


@pytest.fixture
def workflow(redis_client):
    return RedisWorkflowStore(redis_client).save_workflow(
        Workflow(
            id="wf-int",
            code="onboarding",
            nodes=[
                EmailNode(id="A", next_node_id="B", to_template="{{ user.email }}",
                          subject_template="Welcome {{ user.name }}", body_template="Hello"),
                DelayNode(id="B", next_node_id="C", delay_duration="1 second"),
                SmsNode(id="C", to_template="{{ user.phone }}", body_template="Reminder"),
            ],
        )
    )


@pytest.fixture
def triggers(redis_client, clock):
    return TriggerService(
        RedisWorkflowStore(redis_client),
        RedisInstanceStore(redis_client),
        RedisAuditSink(redis_client),
        clock,
    )


@pytest.fixture
def scheduler(redis_client, clock):
    config = EngineConfig(max_attempts=2, backoff_jitter=0, lease_ms=30_000)
    return build_scheduler(
        redis_client, HttpChannelDispatcher(GATEWAY), config, worker_id="it", clock=clock
    )


CONTEXT = {"user": {"name": "Ada", "email": "ada@example.com", "phone": "+15550100"}}


class TestEngineIntegration:
    """End-to-end runs through the HTTP dispatcher."""

    def test_workflow_runs_to_completion(
        self, workflow, triggers, scheduler, redis_client, clock, httpx_mock: HTTPXMock
    ):
        httpx_mock.add_response(method="POST", url=f"{GATEWAY}/email", json={"message_id": "m-1"})
        httpx_mock.add_response(method="POST", url=f"{GATEWAY}/sms", json={"message_id": "s-1"})

        instance, _ = triggers.ingest("wf-int", "signup-1", CONTEXT)

        assert scheduler.run_once() == 1  # email
        assert scheduler.run_once() == 1  # delay
        assert scheduler.run_once() == 0
        clock.advance(1000)
        assert scheduler.run_once() == 1  # sms

        store = RedisInstanceStore(redis_client)
        assert store.get_instance(instance.id).status == InstanceStatus.COMPLETED
        logs = store.get_step_logs(instance.id)
        assert [log.node_id for log in logs] == ["A", "B", "C"]
        assert [log.message_id for log in logs] == ["m-1", None, "s-1"]

        events = RedisAuditSink(redis_client).read(instance.id)
        assert events[0].outcome == StepOutcome.CREATED
        assert events[-1].to_status == InstanceStatus.COMPLETED

    def test_gateway_outage_exhausts_retries(
        self, workflow, triggers, scheduler, redis_client, clock, httpx_mock: HTTPXMock
    ):
        httpx_mock.add_response(method="POST", url=f"{GATEWAY}/email", status_code=503)
        httpx_mock.add_response(method="POST", url=f"{GATEWAY}/email", status_code=503)

        instance, _ = triggers.ingest("wf-int", "signup-2", CONTEXT)

        scheduler.run_once()
        clock.advance(1000)
        scheduler.run_once()

        state = RedisInstanceStore(redis_client).get_instance(instance.id)
        assert state.status == InstanceStatus.FAILED
        assert state.attempts == 2
        assert state.cursor_current_node_id == "A"
        assert "503" in state.last_error

    def test_rejected_recipient_fails_immediately(
        self, workflow, triggers, scheduler, redis_client, httpx_mock: HTTPXMock
    ):
        httpx_mock.add_response(
            method="POST", url=f"{GATEWAY}/email", status_code=422, text="invalid address"
        )

        instance, _ = triggers.ingest("wf-int", "signup-3", CONTEXT)
        scheduler.run_once()

        state = RedisInstanceStore(redis_client).get_instance(instance.id)
        assert state.status == InstanceStatus.FAILED
        assert state.attempts == 0
        assert RedisAuditSink(redis_client).read(instance.id)[-1].outcome == StepOutcome.FATAL
