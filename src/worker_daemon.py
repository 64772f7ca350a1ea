"""Worker daemon that continuously claims and executes due trigger instances."""

import argparse
import logging
import os
import signal
import sys
import uuid

import redis

from models.config import EngineConfig
from services.audit import CompositeAuditSink, LoggingAuditSink, RedisAuditSink
from services.backoff import BackoffPolicy
from services.channels import ChannelDispatcher, HttpChannelDispatcher
from services.clock import SystemClock
from services.executor import StepExecutor
from services.log_service import configure_logging
from services.renderer import TemplateRenderer
from services.scheduler import Scheduler
from services.state_store import RedisInstanceStore
from services.workflow_store import RedisWorkflowStore

logger = logging.getLogger("worker_daemon")


def get_redis_client() -> redis.Redis:
    """Create Redis client from environment."""
    redis_url = os.environ.get("REDIS_URL", "redis://localhost:6379")
    return redis.Redis.from_url(redis_url, decode_responses=True)


def get_dispatcher(config: EngineConfig) -> ChannelDispatcher:
    """Create the HTTP channel dispatcher from environment."""
    gateway_url = os.environ.get("CHANNEL_GATEWAY_URL")
    if not gateway_url:
        raise ValueError("CHANNEL_GATEWAY_URL is required")
    return HttpChannelDispatcher(
        gateway_url,
        timeout=config.dispatch_timeout,
        api_key=os.environ.get("CHANNEL_GATEWAY_API_KEY"),
    )


def build_scheduler(
    redis_client: redis.Redis,
    dispatcher: ChannelDispatcher,
    config: EngineConfig,
    worker_id: str | None = None,
    clock=None,
) -> Scheduler:
    """Wire stores, executor and audit sinks into a scheduler."""
    clock = clock or SystemClock()
    workflow_store = RedisWorkflowStore(redis_client)
    instance_store = RedisInstanceStore(redis_client)
    executor = StepExecutor(
        workflow_store,
        dispatcher,
        renderer=TemplateRenderer(strict=config.strict_rendering),
        backoff=BackoffPolicy.from_config(config),
        config=config,
        clock=clock,
    )
    audit = CompositeAuditSink(RedisAuditSink(redis_client), LoggingAuditSink())
    return Scheduler(
        instance_store,
        executor,
        audit=audit,
        config=config,
        clock=clock,
        worker_id=worker_id,
    )


def main() -> int:
    parser = argparse.ArgumentParser(description="Notification Workflow Worker")
    parser.add_argument(
        "--worker-id",
        default=os.environ.get("WORKER_ID", f"worker-{uuid.uuid4().hex[:8]}"),
        help="Identifier used in logs (default: random)",
    )
    parser.add_argument(
        "--log-level",
        choices=["debug", "info", "warning", "error"],
        default=os.environ.get("LOG_LEVEL", "info").lower(),
        help="Log level (default: info)",
    )
    parser.add_argument(
        "--log-dir",
        default=os.environ.get("LOG_DIR", "logs"),
        help="Directory for rotating log files (default: logs)",
    )
    args = parser.parse_args()

    configure_logging(
        log_dir=args.log_dir,
        log_file="worker_daemon.log",
        level=getattr(logging, args.log_level.upper()),
        worker_id=args.worker_id,
    )

    try:
        config = EngineConfig.from_env()
        dispatcher = get_dispatcher(config)
    except ValueError as e:
        logger.error(f"Invalid configuration: {e}")
        return 2

    redis_url = os.environ.get("REDIS_URL", "redis://localhost:6379")
    logger.info(f"Connecting to Redis at {redis_url}")
    redis_client = get_redis_client()

    try:
        redis_client.ping()
        logger.info("Redis connection established")
    except redis.ConnectionError as e:
        logger.error(f"Failed to connect to Redis: {e}")
        return 1

    scheduler = build_scheduler(redis_client, dispatcher, config, worker_id=args.worker_id)

    def handle_signal(signum, frame):
        logger.info(f"Received signal {signum}, shutting down...")
        scheduler.stop()

    signal.signal(signal.SIGTERM, handle_signal)
    signal.signal(signal.SIGINT, handle_signal)

    scheduler.run()
    return 0


if __name__ == "__main__":
    sys.exit(main())
