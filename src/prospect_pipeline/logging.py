"""
Structured logging configuration for the Prospect Pipeline.

Uses structlog for structured, context-aware logging with:
- JSON output for production
- Pretty console output for development
- Per-stage timing
- Run / job / worker id propagation through ContextVars
"""

import logging
import sys
import time
from contextlib import contextmanager
from contextvars import ContextVar
from typing import Any, Generator

import structlog
from structlog.types import Processor

from .config import config

# Context variables for request-scoped data
_run_id: ContextVar[str | None] = ContextVar('run_id', default=None)
_job_id: ContextVar[str | None] = ContextVar('job_id', default=None)
_worker_id: ContextVar[str | None] = ContextVar('worker_id', default=None)


def get_run_id() -> str | None:
    """Get the current run ID from context."""
    return _run_id.get()


def get_job_id() -> str | None:
    return _job_id.get()


def get_worker_id() -> str | None:
    return _worker_id.get()


def add_context_info(
    logger: structlog.types.WrappedLogger,
    method_name: str,
    event_dict: dict[str, Any],
) -> dict[str, Any]:
    """Processor that adds context variables to log entries."""
    for key, var in (('run_id', _run_id), ('job_id', _job_id), ('worker_id', _worker_id)):
        value = var.get()
        if value and key not in event_dict:
            event_dict[key] = value
    return event_dict


def configure_logging(
    json_output: bool | None = None,
    log_level: str | None = None,
) -> None:
    """
    Configure structlog for the application.

    Args:
        json_output: If True, output JSON logs (for production).
                    If False, output pretty console logs (for development).
                    Defaults to config.LOG_JSON.
        log_level: Override log level (defaults to config.LOG_LEVEL)
    """
    if json_output is None:
        json_output = config.LOG_JSON
    level = log_level or config.LOG_LEVEL
    level_num = getattr(logging, level.upper(), logging.INFO)

    logging.basicConfig(
        format='%(message)s',
        stream=sys.stdout,
        level=level_num,
    )

    shared_processors: list[Processor] = [
        structlog.contextvars.merge_contextvars,
        add_context_info,
        structlog.processors.add_log_level,
        structlog.processors.TimeStamper(fmt='iso'),
        structlog.processors.StackInfoRenderer(),
    ]

    if json_output:
        processors: list[Processor] = [
            *shared_processors,
            structlog.processors.format_exc_info,
            structlog.processors.JSONRenderer(),
        ]
    else:
        processors = [
            *shared_processors,
            structlog.dev.ConsoleRenderer(colors=True),
        ]

    structlog.configure(
        processors=processors,
        wrapper_class=structlog.make_filtering_bound_logger(level_num),
        context_class=dict,
        logger_factory=structlog.PrintLoggerFactory(),
        cache_logger_on_first_use=True,
    )


def get_logger(name: str | None = None) -> structlog.stdlib.BoundLogger:
    """
    Get a structured logger instance.

    Args:
        name: Logger name (typically __name__)

    Returns:
        Configured structlog logger
    """
    return structlog.get_logger(name)


@contextmanager
def logging_context(
    run_id: str | None = None,
    job_id: str | None = None,
    worker_id: str | None = None,
) -> Generator[None, None, None]:
    """
    Context manager for setting logging context variables.

    Usage:
        with logging_context(run_id="0190...", job_id="0191..."):
            logger.info("job.started")  # Includes run_id and job_id

    Values are restored on exit, so nested contexts (a job handler running a
    mapping cycle for a run) compose.
    """
    tokens = []
    try:
        if run_id is not None:
            tokens.append((_run_id, _run_id.set(run_id)))
        if job_id is not None:
            tokens.append((_job_id, _job_id.set(job_id)))
        if worker_id is not None:
            tokens.append((_worker_id, _worker_id.set(worker_id)))
        yield
    finally:
        for var, token in reversed(tokens):
            var.reset(token)


class PipelineTimer:
    """
    Timer for tracking pipeline stage durations.

    Usage:
        timer = PipelineTimer()
        with timer.stage("personas"):
            ...
        print(timer.summary())
    """

    def __init__(self):
        self.stages: dict[str, float] = {}
        self.start_time: float = time.perf_counter()

    @contextmanager
    def stage(self, name: str) -> Generator[None, None, None]:
        """Time a pipeline stage."""
        started = time.perf_counter()
        try:
            yield
        finally:
            self.stages[name] = (time.perf_counter() - started) * 1000

    def record(self, name: str, duration_ms: float) -> None:
        """Manually record a stage duration."""
        self.stages[name] = duration_ms

    @property
    def total_ms(self) -> float:
        """Total elapsed time since timer creation in milliseconds."""
        return (time.perf_counter() - self.start_time) * 1000

    def summary(self) -> dict[str, Any]:
        """Get timing summary as a dictionary."""
        return {
            'total_ms': round(self.total_ms, 2),
            'stages': {k: round(v, 2) for k, v in self.stages.items()},
        }


# Development mode by default; LOG_JSON=true switches to JSON
configure_logging()
