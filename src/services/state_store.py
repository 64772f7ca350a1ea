"""Redis-based state store for trigger instances.

Every mutation of an instance is an optimistic transaction: the instance key
is WATCHed, its current state checked, and the new state written in a single
MULTI/EXEC together with the secondary indexes. A concurrent writer aborts
the transaction with ``WatchError``; for claims that simply means another
worker won the race.
"""

import logging
import math
import uuid
from datetime import datetime

from redis import Redis
from redis.exceptions import WatchError

from models.state import (
    InstanceStatus,
    NextState,
    Page,
    StepExecutionLog,
    TriggerInstance,
)
from services.clock import add_ms, to_epoch_ms

logger = logging.getLogger(__name__)


class InstanceNotFoundError(Exception):
    """Raised when trigger instance is not found."""

    def __init__(self, instance_id: str):
        self.instance_id = instance_id
        super().__init__(f"Trigger instance not found: {instance_id}")


class InvalidTransitionError(Exception):
    """Raised when an instance cannot move to the requested state."""

    def __init__(self, instance_id: str, status: InstanceStatus, action: str):
        self.instance_id = instance_id
        self.status = status
        self.action = action
        super().__init__(
            f"Cannot {action} trigger instance {instance_id} in status {status.value}"
        )


class LeaseLostError(Exception):
    """Raised when a worker persists a result for a claim it no longer holds."""

    def __init__(self, instance_id: str, lease_id: str):
        self.instance_id = instance_id
        self.lease_id = lease_id
        super().__init__(f"Lease {lease_id} no longer held on {instance_id}")


def _decode(value):
    if isinstance(value, bytes):
        return value.decode("utf-8")
    return value


class RedisInstanceStore:
    """Manages trigger instance state in Redis."""

    DUE_KEY = "instances:due"
    RUNNING_KEY = "instances:running"
    CREATED_KEY = "instances:created"

    def __init__(self, redis_client: Redis):
        if redis_client is None:
            raise ValueError("redis_client is required")
        self._redis = redis_client

    def _instance_key(self, instance_id: str) -> str:
        return f"instance:{instance_id}"

    def _idempotency_key(self, workflow_id: str, idempotency_key: str) -> str:
        return f"idempotency:{workflow_id}:{idempotency_key}"

    def _workflow_instances_key(self, workflow_id: str) -> str:
        return f"workflow:{workflow_id}:instances"

    def _status_key(self, status: InstanceStatus) -> str:
        return f"instances:status:{status.value}"

    def _steps_key(self, instance_id: str) -> str:
        return f"instance:{instance_id}:steps"

    def _load(self, client, instance_id: str) -> TriggerInstance:
        data = client.get(self._instance_key(instance_id))
        if data is None:
            raise InstanceNotFoundError(instance_id)
        return TriggerInstance.model_validate_json(data)

    def _write(self, pipe, before: TriggerInstance | None, after: TriggerInstance) -> None:
        """Queue the instance and its index entries on a MULTI pipeline."""
        pipe.set(self._instance_key(after.id), after.model_dump_json())

        if before is not None and before.status != after.status:
            pipe.srem(self._status_key(before.status), after.id)
        pipe.sadd(self._status_key(after.status), after.id)

        if after.status.is_claimable:
            pipe.zadd(self.DUE_KEY, {after.id: to_epoch_ms(after.available_at)})
        else:
            pipe.zrem(self.DUE_KEY, after.id)

        if after.status == InstanceStatus.RUNNING and after.leased_until is not None:
            pipe.zadd(self.RUNNING_KEY, {after.id: to_epoch_ms(after.leased_until)})
        else:
            pipe.zrem(self.RUNNING_KEY, after.id)

    def create_or_get(
        self,
        workflow_id: str,
        workflow_version: int,
        idempotency_key: str,
        entry_node_id: str | None,
        trigger_context: dict | None,
        now: datetime,
    ) -> tuple[TriggerInstance, bool]:
        """Create an instance unless one exists for the idempotency key.

        Returns the instance and whether this call created it.
        """
        if not workflow_id:
            raise ValueError("workflow_id is required")
        if not idempotency_key:
            raise ValueError("idempotency_key is required")

        idem_key = self._idempotency_key(workflow_id, idempotency_key)

        with self._redis.pipeline() as pipe:
            while True:
                try:
                    pipe.watch(idem_key)
                    existing_id = _decode(pipe.get(idem_key))
                    if existing_id is not None:
                        pipe.unwatch()
                        return self._load(self._redis, existing_id), False

                    instance = TriggerInstance(
                        id=str(uuid.uuid4()),
                        workflow_id=workflow_id,
                        workflow_version=workflow_version,
                        idempotency_key=idempotency_key,
                        trigger_context=trigger_context or {},
                        cursor_current_node_id=entry_node_id,
                        status=InstanceStatus.PENDING,
                        attempts=0,
                        available_at=now,
                        created_at=now,
                        updated_at=now,
                    )
                    created_score = to_epoch_ms(now)

                    pipe.multi()
                    pipe.set(idem_key, instance.id)
                    self._write(pipe, None, instance)
                    pipe.zadd(self.CREATED_KEY, {instance.id: created_score})
                    pipe.zadd(
                        self._workflow_instances_key(workflow_id),
                        {instance.id: created_score},
                    )
                    pipe.execute()
                    logger.info(
                        f"Created trigger instance {instance.id} for workflow "
                        f"{workflow_id} (key={idempotency_key})"
                    )
                    return instance, True
                except WatchError:
                    # Another ingest with the same key committed first.
                    continue

    def get_instance(self, instance_id: str) -> TriggerInstance:
        """Get trigger instance by ID."""
        if not instance_id:
            raise ValueError("instance_id is required")
        return self._load(self._redis, instance_id)

    def find_by_idempotency_key(
        self, workflow_id: str, idempotency_key: str
    ) -> TriggerInstance | None:
        instance_id = _decode(
            self._redis.get(self._idempotency_key(workflow_id, idempotency_key))
        )
        if instance_id is None:
            return None
        return self._load(self._redis, instance_id)

    def due_instance_ids(self, now: datetime, limit: int = 50) -> list[str]:
        """Ids of claimable instances due at ``now``, oldest-due first."""
        if limit <= 0:
            raise ValueError("limit must be positive")
        ids = self._redis.zrangebyscore(
            self.DUE_KEY, "-inf", to_epoch_ms(now), start=0, num=limit
        )
        return [_decode(i) for i in ids]

    def stale_instance_ids(self, now: datetime, limit: int = 100) -> list[str]:
        """Ids of running instances whose lease expired before ``now``."""
        if limit <= 0:
            raise ValueError("limit must be positive")
        ids = self._redis.zrangebyscore(
            self.RUNNING_KEY, "-inf", f"({to_epoch_ms(now)}", start=0, num=limit
        )
        return [_decode(i) for i in ids]

    def claim(
        self, instance_id: str, now: datetime, lease_ms: int
    ) -> tuple[TriggerInstance, TriggerInstance] | None:
        """Atomically move a due instance to running.

        Returns (before, claimed), or None when the instance is no longer
        claimable (already claimed, not yet due, terminal, or a concurrent
        write won).
        """
        if not instance_id:
            raise ValueError("instance_id is required")
        if lease_ms <= 0:
            raise ValueError("lease_ms must be positive")

        key = self._instance_key(instance_id)
        with self._redis.pipeline() as pipe:
            try:
                pipe.watch(key)
                current = self._load(pipe, instance_id)
                if not current.status.is_claimable or current.available_at > now:
                    pipe.unwatch()
                    return None

                claimed = current.model_copy(
                    update={
                        "status": InstanceStatus.RUNNING,
                        "lease_id": uuid.uuid4().hex,
                        "leased_until": add_ms(now, lease_ms),
                        "updated_at": now,
                    }
                )
                pipe.multi()
                self._write(pipe, current, claimed)
                pipe.execute()
                return current, claimed
            except WatchError:
                return None
            except InstanceNotFoundError:
                # Index entry without a record; drop it so it is not retried forever.
                self._redis.zrem(self.DUE_KEY, instance_id)
                return None

    def finish(
        self,
        instance_id: str,
        lease_id: str,
        next_state: NextState,
        now: datetime,
    ) -> tuple[TriggerInstance, TriggerInstance]:
        """Persist an executor result and release the claim.

        A deferred cancellation wins over the computed state. Returns the
        instance before and after the update.
        """
        if not instance_id:
            raise ValueError("instance_id is required")
        if not lease_id:
            raise ValueError("lease_id is required")
        if next_state is None:
            raise ValueError("next_state is required")

        key = self._instance_key(instance_id)
        with self._redis.pipeline() as pipe:
            while True:
                try:
                    pipe.watch(key)
                    current = self._load(pipe, instance_id)
                    if (
                        current.status != InstanceStatus.RUNNING
                        or current.lease_id != lease_id
                    ):
                        pipe.unwatch()
                        raise LeaseLostError(instance_id, lease_id)

                    update = {
                        "status": next_state.status,
                        "cursor_current_node_id": next_state.cursor_current_node_id,
                        "attempts": next_state.attempts,
                        "available_at": next_state.available_at,
                        "lease_id": None,
                        "leased_until": None,
                        "last_error": next_state.error,
                        "updated_at": now,
                    }
                    if current.cancel_requested and not next_state.status.is_terminal:
                        update["status"] = InstanceStatus.CANCELLED
                    updated = current.model_copy(update=update)

                    pipe.multi()
                    self._write(pipe, current, updated)
                    pipe.execute()
                    return current, updated
                except WatchError:
                    # A cancel request raced us; re-read and honour it.
                    continue

    def cancel(self, instance_id: str, now: datetime) -> TriggerInstance:
        """Cancel an instance.

        Idle instances are cancelled immediately. A running instance is only
        flagged; the worker holding it applies the cancellation when it
        persists its result (or the reaper does, if the worker died).
        """
        if not instance_id:
            raise ValueError("instance_id is required")

        key = self._instance_key(instance_id)
        with self._redis.pipeline() as pipe:
            while True:
                try:
                    pipe.watch(key)
                    current = self._load(pipe, instance_id)
                    if current.status == InstanceStatus.CANCELLED:
                        pipe.unwatch()
                        return current
                    if current.status.is_terminal:
                        pipe.unwatch()
                        raise InvalidTransitionError(
                            instance_id, current.status, "cancel"
                        )

                    if current.status == InstanceStatus.RUNNING:
                        updated = current.model_copy(
                            update={"cancel_requested": True, "updated_at": now}
                        )
                    else:
                        updated = current.model_copy(
                            update={
                                "status": InstanceStatus.CANCELLED,
                                "cancel_requested": True,
                                "updated_at": now,
                            }
                        )

                    pipe.multi()
                    self._write(pipe, current, updated)
                    pipe.execute()
                    return updated
                except WatchError:
                    continue

    def reap(
        self, instance_id: str, now: datetime
    ) -> tuple[TriggerInstance, TriggerInstance] | None:
        """Release an expired claim so the instance can be claimed again.

        Returns (before, after), or None when the lease is still valid or the
        instance is no longer running.
        """
        if not instance_id:
            raise ValueError("instance_id is required")

        key = self._instance_key(instance_id)
        with self._redis.pipeline() as pipe:
            try:
                pipe.watch(key)
                current = self._load(pipe, instance_id)
                if (
                    current.status != InstanceStatus.RUNNING
                    or current.leased_until is None
                    or current.leased_until >= now
                ):
                    pipe.unwatch()
                    return None

                status = (
                    InstanceStatus.CANCELLED
                    if current.cancel_requested
                    else InstanceStatus.PENDING
                )
                updated = current.model_copy(
                    update={
                        "status": status,
                        "available_at": now,
                        "lease_id": None,
                        "leased_until": None,
                        "updated_at": now,
                    }
                )
                pipe.multi()
                self._write(pipe, current, updated)
                pipe.execute()
                return current, updated
            except WatchError:
                return None
            except InstanceNotFoundError:
                self._redis.zrem(self.RUNNING_KEY, instance_id)
                return None

    def search(
        self,
        workflow_id: str | None = None,
        status: InstanceStatus | None = None,
        page: int = 1,
        limit: int = 20,
    ) -> tuple[list[TriggerInstance], Page]:
        """List instances newest first, optionally filtered."""
        if page < 1:
            raise ValueError("page must be at least 1")
        if limit < 1:
            raise ValueError("limit must be at least 1")

        index_key = (
            self._workflow_instances_key(workflow_id) if workflow_id else self.CREATED_KEY
        )
        start = (page - 1) * limit
        end = start + limit - 1

        if status is None:
            with self._redis.pipeline(transaction=False) as pipe:
                pipe.zcard(index_key)
                pipe.zrevrange(index_key, start, end)
                records, selected = pipe.execute()
        else:
            # Status sets carry no score; weight 0 keeps the creation-time order.
            result_key = f"search:{uuid.uuid4().hex}"
            with self._redis.pipeline() as pipe:
                pipe.zinterstore(result_key, {index_key: 1, self._status_key(status): 0})
                pipe.zrevrange(result_key, start, end)
                pipe.delete(result_key)
                records, selected, _ = pipe.execute()

        instances = [self._load(self._redis, _decode(i)) for i in selected]
        pagination = Page(
            current=page,
            limit=limit,
            records=records,
            pages=math.ceil(records / limit) if records else 0,
        )
        return instances, pagination

    def count_instances(self, workflow_id: str) -> int:
        return self._redis.zcard(self._workflow_instances_key(workflow_id))

    def add_step_log(self, log: StepExecutionLog) -> None:
        self._redis.rpush(self._steps_key(log.instance_id), log.model_dump_json())

    def get_step_logs(self, instance_id: str) -> list[StepExecutionLog]:
        """Execution history of an instance, oldest first."""
        if not instance_id:
            raise ValueError("instance_id is required")
        items = self._redis.lrange(self._steps_key(instance_id), 0, -1)
        return [StepExecutionLog.model_validate_json(item) for item in items]
