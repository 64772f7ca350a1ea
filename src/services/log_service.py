"""Logging configuration for the API server and workers."""

import logging
import os
import time
from logging.handlers import TimedRotatingFileHandler

LOG_FORMAT = "%(asctime)s - %(levelname)s - [%(worker_id)s] %(name)s - %(message)s"


class WorkerIdFilter(logging.Filter):
    """Stamps every record with the id of the process that emitted it."""

    def __init__(self, worker_id: str = "-"):
        super().__init__()
        self.worker_id = worker_id

    def filter(self, record: logging.LogRecord) -> bool:
        if not hasattr(record, "worker_id"):
            record.worker_id = self.worker_id
        return True


class SizeAndTimeRotatingHandler(TimedRotatingFileHandler):
    """Rotates at midnight, or earlier once the file exceeds max_bytes."""

    def __init__(self, filename, max_bytes, backup_count=0, **kwargs):
        self.max_bytes = max_bytes
        super().__init__(filename, backupCount=backup_count, **kwargs)

    def shouldRollover(self, record):
        if int(time.time()) >= self.rolloverAt:
            return 1
        if self.stream and self.max_bytes > 0:
            self.stream.seek(0, os.SEEK_END)
            if self.stream.tell() >= self.max_bytes:
                return 1
        return 0

    def doRollover(self):
        super().doRollover()
        # Size-triggered rollovers must not push the next midnight rollover out.
        self.rolloverAt = self.computeRollover(int(time.time()))


def configure_logging(
    log_dir: str | None = "logs",
    log_file: str = "notification-engine.log",
    level: int = logging.INFO,
    worker_id: str = "-",
    max_bytes: int = 5 * 1024 * 1024,  # 5 MB
    backup_count: int = 7,
    console: bool = True,
) -> logging.Logger:
    """Configure the root logger.

    Args:
        log_dir: Directory for log files; None disables file logging.
        log_file: Log file name.
        level: Logging level.
        worker_id: Identifier added to every line, e.g. the scheduler id.
        max_bytes: Max file size before rotation.
        backup_count: Number of rotated files to keep.
        console: Whether to also log to the console.

    Returns:
        Configured root logger.
    """
    logger = logging.getLogger()
    logger.setLevel(level)
    logger.handlers.clear()

    formatter = logging.Formatter(LOG_FORMAT)
    id_filter = WorkerIdFilter(worker_id)

    if log_dir:
        os.makedirs(log_dir, exist_ok=True)
        file_handler = SizeAndTimeRotatingHandler(
            filename=os.path.join(log_dir, log_file),
            when="midnight",
            interval=1,
            max_bytes=max_bytes,
            backup_count=backup_count,
            encoding="utf-8",
        )
        file_handler.setFormatter(formatter)
        file_handler.addFilter(id_filter)
        logger.addHandler(file_handler)

    if console:
        console_handler = logging.StreamHandler()
        console_handler.setLevel(level)
        console_handler.setFormatter(formatter)
        console_handler.addFilter(id_filter)
        logger.addHandler(console_handler)

    return logger
