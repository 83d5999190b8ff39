# ============================================================================
# STRUCTURED LOGGING
# ============================================================================
# EPOCH: 1 - WORKFLOW ORCHESTRATION
# STATUS: Core - Job-scoped log context and output formats
# PURPOSE: Tag every log line emitted while a job runs with that job
# CREATED: 19 OCT 2026
# ============================================================================
"""
Structured Logging

Records emitted inside a ``log_context`` block carry the job being worked
(id, kind, queue, attempt), the worker that claimed it, and the workflow
metadata stamped on the job at submission (``datasetID`` or ``ident``).
That metadata is what ties the steps of one workflow together in the logs.

Context lives in a ContextVar, so each job task sees only its own fields.

Output is human-readable by default; LOG_FORMAT=json switches to one JSON
object per line. LOG_LEVEL sets the root level.

Usage:
    from core.logging import get_logger, log_context

    logger = get_logger(__name__)

    with log_context(job_id=job.id, kind=job.kind, workflow=job.metadata):
        logger.info("Working job")
"""

import json
import logging
import os
import sys
from contextlib import contextmanager
from contextvars import ContextVar
from dataclasses import dataclass, field, replace
from datetime import datetime, timezone
from typing import Any, Dict, Optional, Union

# Library loggers that are chatty at INFO
_QUIET_LOGGERS = ("psycopg.pool", "aiohttp.access", "uvicorn.access")


@dataclass(frozen=True)
class LogContext:
    job_id: Optional[int] = None
    kind: Optional[str] = None
    queue: Optional[str] = None
    attempt: Optional[int] = None
    worker_id: Optional[str] = None
    workflow: Dict[str, str] = field(default_factory=dict)

    def fields(self) -> Dict[str, Any]:
        """Flat mapping of the fields that are set; workflow keys inline."""
        out: Dict[str, Any] = {}
        for name in ("job_id", "kind", "queue", "attempt", "worker_id"):
            value = getattr(self, name)
            if value is not None:
                out[name] = value
        out.update(self.workflow)
        return out


_current_context: ContextVar[LogContext] = ContextVar("log_context", default=LogContext())


def get_current_context() -> LogContext:
    return _current_context.get()


@contextmanager
def log_context(**kwargs):
    """
    Narrow the logging context for the duration of the block.

    Unset fields are inherited from the enclosing block; ``workflow`` is
    merged with the enclosing workflow metadata rather than replacing it.
    """
    parent = get_current_context()
    workflow = {**parent.workflow, **(kwargs.pop("workflow", None) or {})}
    token = _current_context.set(replace(parent, workflow=workflow, **kwargs))
    try:
        yield _current_context.get()
    finally:
        _current_context.reset(token)


def _timestamp(record: logging.LogRecord) -> datetime:
    return datetime.fromtimestamp(record.created, tz=timezone.utc)


class StructuredFormatter(logging.Formatter):
    """One JSON object per record."""

    def format(self, record: logging.LogRecord) -> str:
        payload: Dict[str, Any] = {
            "timestamp": _timestamp(record).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            **get_current_context().fields(),
        }
        if record.exc_info:
            payload["exception"] = self.formatException(record.exc_info)
        if record.levelno >= logging.WARNING:
            payload["source"] = f"{record.pathname}:{record.lineno}"
        return json.dumps(payload, default=str)


class HumanFormatter(logging.Formatter):
    """``time LEVEL logger [queue job#id kind k=v]: message``"""

    def format(self, record: logging.LogRecord) -> str:
        context = get_current_context()
        tags = []
        if context.queue:
            tags.append(context.queue)
        if context.job_id is not None:
            tags.append(f"job#{context.job_id}")
        if context.kind:
            tags.append(context.kind)
        tags.extend(f"{key}={value}" for key, value in sorted(context.workflow.items()))
        tag_str = f" [{' '.join(tags)}]" if tags else ""

        line = (
            f"{_timestamp(record):%Y-%m-%d %H:%M:%S} {record.levelname:<8} "
            f"{record.name}{tag_str}: {record.getMessage()}"
        )
        if record.exc_info:
            line += "\n" + self.formatException(record.exc_info)
        return line


class ContextLogger(logging.LoggerAdapter):
    """Adapter that copies the job context onto the record as attributes."""

    def process(self, msg, kwargs):
        kwargs["extra"] = {**get_current_context().fields(), **kwargs.get("extra", {})}
        return msg, kwargs


def get_logger(name: str) -> ContextLogger:
    return ContextLogger(logging.getLogger(name), {})


def configure_logging(
    level: Union[str, int, None] = None,
    json_output: Optional[bool] = None,
) -> None:
    """
    Install a single stdout handler on the root logger.

    Args:
        level: Root level; defaults to LOG_LEVEL or INFO
        json_output: JSON lines; defaults to LOG_FORMAT == "json"
    """
    if level is None:
        level = os.environ.get("LOG_LEVEL", "INFO")
    if isinstance(level, str):
        level = logging.getLevelName(level.upper())
        if not isinstance(level, int):
            level = logging.INFO
    if json_output is None:
        json_output = os.environ.get("LOG_FORMAT", "").lower() == "json"

    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(StructuredFormatter() if json_output else HumanFormatter())

    root = logging.getLogger()
    root.handlers.clear()
    root.addHandler(handler)
    root.setLevel(level)

    if level > logging.DEBUG:
        for name in _QUIET_LOGGERS:
            logging.getLogger(name).setLevel(logging.WARNING)


__all__ = [
    "LogContext",
    "StructuredFormatter",
    "HumanFormatter",
    "ContextLogger",
    "get_logger",
    "configure_logging",
    "log_context",
    "get_current_context",
]
