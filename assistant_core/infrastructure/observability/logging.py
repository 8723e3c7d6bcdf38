"""
structlog configuration for the assistant engine.

Every record is a single JSON line on stdout; job lifecycle events share a
fixed set of keys (`job_id`, `status`, `job_event`) so they can be followed
across the queue's retries.
"""

import logging
import sys
from typing import Any

import structlog
from structlog.stdlib import LoggerFactory

MAX_ID_LENGTH = 40

QUIET_LOGGERS = ("httpx", "httpcore", "openai", "psycopg.pool", "uvicorn.access")


def _truncate_ids(logger, method_name: str, event_dict: dict[str, Any]) -> dict[str, Any]:
    for key in ("job_id", "conversation_id", "thread_id"):
        value = event_dict.get(key)
        if isinstance(value, str) and len(value) > MAX_ID_LENGTH:
            event_dict[key] = value[:MAX_ID_LENGTH]
    return event_dict


def setup_logging(log_level: str = "INFO") -> None:
    """Route structlog through stdlib logging at `log_level`, rendered as JSON."""
    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.stdlib.add_log_level,
            structlog.stdlib.add_logger_name,
            structlog.processors.TimeStamper(fmt="iso", utc=True),
            _truncate_ids,
            structlog.processors.format_exc_info,
            structlog.processors.JSONRenderer(),
        ],
        wrapper_class=structlog.stdlib.BoundLogger,
        logger_factory=LoggerFactory(),
        context_class=dict,
        cache_logger_on_first_use=True,
    )

    logging.basicConfig(
        format="%(message)s",
        stream=sys.stdout,
        level=getattr(logging, log_level.upper(), logging.INFO),
    )

    for name in QUIET_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)


def get_logger(name: str | None = None) -> structlog.stdlib.BoundLogger:
    return structlog.get_logger(name)


def log_job_transition(job_id: str, status: str, **fields: Any) -> None:
    """Log a job lifecycle transition; failures at error, retries at warning."""
    logger = get_logger("assistant_core.jobs")
    log_data = {"job_id": job_id, "status": status, "job_event": "job_status", **fields}

    if status == "failed":
        logger.error("Response job status changed", **log_data)
    elif status == "retrying":
        logger.warning("Response job status changed", **log_data)
    else:
        logger.info("Response job status changed", **log_data)
