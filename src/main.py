"""Main entry point for the trigger ingestion and admin API server."""

import argparse
import logging
import os
import sys

import redis
import uvicorn
from fastapi import FastAPI

from api.app import NotificationAPI
from services.audit import CompositeAuditSink, LoggingAuditSink, RedisAuditSink
from services.log_service import configure_logging
from services.state_store import RedisInstanceStore
from services.trigger_service import TriggerService
from services.workflow_store import RedisWorkflowStore

logger = logging.getLogger(__name__)


def get_redis_client() -> redis.Redis:
    """Create Redis client from environment."""
    redis_url = os.environ.get("REDIS_URL", "redis://localhost:6379")
    return redis.Redis.from_url(redis_url, decode_responses=True)


def create_app(redis_client: redis.Redis | None = None) -> FastAPI:
    """Create FastAPI application with all dependencies."""
    redis_client = redis_client or get_redis_client()
    workflow_store = RedisWorkflowStore(redis_client)
    instance_store = RedisInstanceStore(redis_client)
    audit = CompositeAuditSink(RedisAuditSink(redis_client), LoggingAuditSink())
    trigger_service = TriggerService(workflow_store, instance_store, audit)

    api = NotificationAPI(trigger_service, workflow_store, instance_store, redis_client)
    return api.create_app()


def main() -> int:
    """Run the API server."""
    parser = argparse.ArgumentParser(description="Notification Workflow API Server")
    parser.add_argument(
        "--host",
        default=os.environ.get("HOST", "0.0.0.0"),
        help="Host to bind to (default: 0.0.0.0)",
    )
    parser.add_argument(
        "--port",
        type=int,
        default=int(os.environ.get("PORT", "8000")),
        help="Port to bind to (default: 8000)",
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
        log_file="api.log",
        level=getattr(logging, args.log_level.upper()),
        worker_id="api",
    )

    logger.info("Starting notification workflow API server")
    logger.info(f"Redis: {os.environ.get('REDIS_URL', 'redis://localhost:6379')}")

    app = create_app()
    uvicorn.run(app, host=args.host, port=args.port, log_level=args.log_level)
    return 0


if __name__ == "__main__":
    sys.exit(main())
