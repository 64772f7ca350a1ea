"""Run a single claim cycle, for cron or serverless invocation."""

import argparse
import logging
import os
import sys

from models.config import EngineConfig
from worker_daemon import build_scheduler, get_dispatcher, get_redis_client

logger = logging.getLogger(__name__)


def main() -> int:
    """Reap expired claims, then execute every due instance once."""
    parser = argparse.ArgumentParser(description="Notification Workflow single-cycle worker")
    parser.add_argument(
        "--max-cycles",
        type=int,
        default=1,
        help="Claim cycles to run before exiting (default: 1)",
    )
    parser.add_argument(
        "--no-reap",
        action="store_true",
        help="Skip releasing expired claims",
    )
    parser.add_argument(
        "--log-level",
        choices=["debug", "info", "warning", "error"],
        default=os.environ.get("LOG_LEVEL", "info").lower(),
        help="Log level (default: info)",
    )
    args = parser.parse_args()

    if args.max_cycles < 1:
        parser.error("--max-cycles must be at least 1")

    logging.basicConfig(
        level=getattr(logging, args.log_level.upper()),
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )

    try:
        config = EngineConfig.from_env()
        dispatcher = get_dispatcher(config)
    except ValueError as e:
        logger.error(f"Invalid configuration: {e}")
        return 2

    scheduler = build_scheduler(get_redis_client(), dispatcher, config, worker_id="cli")

    if not args.no_reap:
        reset = scheduler.reap_stale_claims()
        if reset:
            logger.info(f"Released {reset} expired claims")

    total = 0
    for _ in range(args.max_cycles):
        processed = scheduler.run_once()
        total += processed
        if not processed:
            break

    logger.info(f"Executed {total} trigger instances")
    return 0


if __name__ == "__main__":
    sys.exit(main())
