"""Audit sinks for trigger instance state transitions."""

import logging
from abc import ABC, abstractmethod

from redis import Redis

from models.state import InstanceStatus, StepOutcome, TransitionEvent

logger = logging.getLogger(__name__)


class AuditSink(ABC):
    """Append-only receiver of transition events."""

    @abstractmethod
    def record(self, event: TransitionEvent) -> None:
        ...


class LoggingAuditSink(AuditSink):
    """Writes transitions to the application log."""

    def __init__(self, name: str = "audit"):
        self._logger = logging.getLogger(name)

    def record(self, event: TransitionEvent) -> None:
        level = logging.WARNING if event.to_status == InstanceStatus.FAILED else logging.INFO
        self._logger.log(
            level,
            f"instance={event.instance_id} workflow={event.workflow_id} "
            f"node={event.node_id} {event.from_status.value}->{event.to_status.value} "
            f"attempt={event.attempt_number} outcome={event.outcome.value}"
            + (f" reason={event.reason}" if event.reason else ""),
        )


class RedisAuditSink(AuditSink):
    """Appends transitions to a Redis stream."""

    def __init__(self, redis_client: Redis, stream: str = "audit:transitions", maxlen: int | None = None):
        if redis_client is None:
            raise ValueError("redis_client is required")
        if not stream:
            raise ValueError("stream is required")
        self._redis = redis_client
        self._stream = stream
        self._maxlen = maxlen

    def record(self, event: TransitionEvent) -> None:
        self._redis.xadd(
            self._stream,
            {"event": event.model_dump_json()},
            maxlen=self._maxlen,
            approximate=self._maxlen is not None,
        )
        if event.outcome in (StepOutcome.EXHAUSTED, StepOutcome.FATAL, StepOutcome.FAULT):
            logger.warning(
                f"Trigger instance {event.instance_id} failed at node "
                f"{event.node_id}: {event.reason}"
            )

    def read(self, instance_id: str | None = None, count: int | None = None) -> list[TransitionEvent]:
        """Events in append order, optionally for one instance."""
        entries = self._redis.xrange(self._stream, count=count)
        events = []
        for _, fields in entries:
            raw = fields.get(b"event", fields.get("event"))
            event = TransitionEvent.model_validate_json(raw)
            if instance_id is None or event.instance_id == instance_id:
                events.append(event)
        return events


class CompositeAuditSink(AuditSink):
    """Fans events out to several sinks."""

    def __init__(self, *sinks: AuditSink):
        self._sinks = list(sinks)

    def record(self, event: TransitionEvent) -> None:
        for sink in self._sinks:
            sink.record(event)
