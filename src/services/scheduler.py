"""Claim loop that drives due trigger instances through the step executor."""

import logging
import time
import uuid
from datetime import datetime

import redis

from models.config import EngineConfig
from models.state import (
    InstanceStatus,
    NextState,
    StepExecutionLog,
    StepOutcome,
    TransitionEvent,
    TriggerInstance,
)
from services.audit import AuditSink, LoggingAuditSink
from services.clock import SystemClock
from services.executor import StepExecutor
from services.state_store import LeaseLostError, RedisInstanceStore

logger = logging.getLogger(__name__)

# Store connectivity failures stop the cycle; the run loop backs off on them.
STORE_ERRORS = (redis.ConnectionError, redis.TimeoutError)


class Scheduler:
    """Polls the store for due instances, claims and executes them.

    Any number of schedulers may run against the same Redis; the claim is
    the only coordination between them.
    """

    def __init__(
        self,
        store: RedisInstanceStore,
        executor: StepExecutor,
        audit: AuditSink | None = None,
        config: EngineConfig | None = None,
        clock=None,
        worker_id: str | None = None,
        sleep=time.sleep,
    ):
        if store is None:
            raise ValueError("store is required")
        if executor is None:
            raise ValueError("executor is required")

        self._store = store
        self._executor = executor
        self._audit = audit or LoggingAuditSink()
        self._config = config or EngineConfig()
        self._clock = clock or SystemClock()
        self._sleep = sleep
        self.worker_id = worker_id or f"worker-{uuid.uuid4().hex[:8]}"
        self.running = True
        self._last_reap: float | None = None

    def run_once(self) -> int:
        """Run one claim cycle. Returns the number of instances executed."""
        now = self._clock.now()
        candidates = self._store.due_instance_ids(now, limit=self._config.batch_size)
        processed = 0

        for instance_id in candidates:
            if not self.running:
                break

            result = self._store.claim(instance_id, self._clock.now(), self._config.lease_ms)
            if result is None:
                logger.debug(f"{self.worker_id} lost claim on {instance_id}")
                continue

            before, claimed = result
            self._record(claimed, before.status, claimed.status, StepOutcome.CLAIMED,
                         claimed.cursor_current_node_id)
            try:
                if self.process(claimed):
                    processed += 1
            except STORE_ERRORS:
                raise
            except Exception:
                # Claim stays held until the reaper releases it.
                logger.exception(f"Error processing trigger instance {instance_id}")

        return processed

    def process(self, claimed: TriggerInstance) -> bool:
        """Execute a claimed instance and persist the result.

        An unexpected executor exception fails the instance instead of leaving
        it to be reaped and retried forever. Returns False when the lease was
        lost before the result could be stored; the result is then discarded.
        """
        started_at = self._clock.now()
        try:
            next_state = self._executor.execute(claimed)
        except STORE_ERRORS:
            raise
        except Exception as e:
            logger.exception(f"Executor raised for trigger instance {claimed.id}")
            next_state = self._executor_error(claimed, e)
        finished_at = self._clock.now()

        try:
            before, after = self._store.finish(
                claimed.id, claimed.lease_id, next_state, finished_at
            )
        except LeaseLostError:
            logger.warning(
                f"{self.worker_id} lost lease on {claimed.id} before persisting; "
                f"result {next_state.outcome.value} discarded"
            )
            return False

        outcome = next_state.outcome
        if after.status != next_state.status:
            outcome = StepOutcome.CANCELLED

        self._store.add_step_log(self._step_log(claimed, next_state, started_at, finished_at))
        self._record(after, before.status, after.status, outcome, next_state.node_id,
                     attempt=claimed.attempts + 1, reason=next_state.error)
        logger.info(
            f"{self.worker_id} executed {claimed.id} node={next_state.node_id} "
            f"outcome={outcome.value} status={after.status.value}"
        )
        return True

    def reap_stale_claims(self) -> int:
        """Release claims whose lease has expired. Returns how many were reset."""
        now = self._clock.now()
        reset = 0
        for instance_id in self._store.stale_instance_ids(now):
            result = self._store.reap(instance_id, now)
            if result is None:
                continue
            before, after = result
            reset += 1
            logger.warning(
                f"Reaped stale claim on {instance_id} (lease {before.lease_id} expired "
                f"{before.leased_until.isoformat()}), now {after.status.value}"
            )
            self._record(after, before.status, after.status, StepOutcome.REAPED,
                         after.cursor_current_node_id, reason="lease expired")
        return reset

    def run(self) -> None:
        """Main worker loop."""
        logger.info(f"Scheduler {self.worker_id} started")
        failures = 0

        while self.running:
            try:
                if self._reap_due():
                    self.reap_stale_claims()
                processed = self.run_once()
                failures = 0
                if not processed:
                    self._sleep(self._config.poll_interval)
            except STORE_ERRORS as e:
                failures += 1
                delay = min(60.0, self._config.poll_interval * (2 ** min(failures, 6)))
                logger.error(f"Store unavailable ({e}); retrying in {delay:.1f}s")
                self._sleep(delay)

        logger.info(f"Scheduler {self.worker_id} stopped")

    def stop(self) -> None:
        """Signal the loop to stop after the current instance."""
        self.running = False

    def _reap_due(self) -> bool:
        now = time.monotonic()
        if self._last_reap is None or now - self._last_reap >= self._config.reap_interval:
            self._last_reap = now
            return True
        return False

    def _executor_error(self, claimed: TriggerInstance, error: Exception) -> NextState:
        node_id = claimed.cursor_current_node_id
        return NextState(
            status=InstanceStatus.FAILED,
            cursor_current_node_id=node_id,
            attempts=claimed.attempts,
            available_at=claimed.available_at,
            outcome=StepOutcome.FAULT,
            node_id=node_id,
            error=f"executor error: {type(error).__name__}: {error}",
        )

    def _step_log(
        self,
        claimed: TriggerInstance,
        next_state: NextState,
        started_at: datetime,
        finished_at: datetime,
    ) -> StepExecutionLog:
        return StepExecutionLog(
            id=str(uuid.uuid4()),
            instance_id=claimed.id,
            workflow_id=claimed.workflow_id,
            node_id=next_state.node_id,
            attempt=claimed.attempts + 1,
            started_at=started_at,
            finished_at=finished_at,
            success=next_state.outcome in (StepOutcome.SENT, StepOutcome.DELAYED),
            outcome=next_state.outcome,
            message_id=next_state.message_id,
            error_message=next_state.error,
            input_context=next_state.input_context,
            output_context=next_state.output_context,
        )

    def _record(
        self,
        instance: TriggerInstance,
        from_status: InstanceStatus,
        to_status: InstanceStatus,
        outcome: StepOutcome,
        node_id: str | None,
        attempt: int | None = None,
        reason: str | None = None,
    ) -> None:
        event = TransitionEvent(
            instance_id=instance.id,
            workflow_id=instance.workflow_id,
            node_id=node_id,
            from_status=from_status,
            to_status=to_status,
            attempt_number=instance.attempts if attempt is None else attempt,
            outcome=outcome,
            reason=reason,
            timestamp=self._clock.now(),
        )
        try:
            self._audit.record(event)
        except STORE_ERRORS:
            raise
        except Exception:
            logger.exception(f"Audit sink rejected event for {instance.id}")
