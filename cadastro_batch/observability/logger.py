"""
Structured logging for cadastro-batch

Every record logged while a run is in progress carries the job name,
run id and step name of that run, in JSON (python-json-logger) or in
plain text for local development.
"""
import logging
import os
import sys
import time
from contextlib import contextmanager
from contextvars import ContextVar

from pythonjsonlogger import jsonlogger

# Fields bound by run_context(), in output order
CONTEXT_FIELDS = ("job", "run_id", "step")

_run_context: ContextVar[dict] = ContextVar("cadastro_batch_run_context", default={})


@contextmanager
def run_context(**fields):
    """
    Bind job/run/step fields to every log record emitted inside the block.

    Nested blocks add to the fields of the enclosing block:

        with run_context(job="job01", run_id=3):
            with run_context(step="step01"):
                logger.info("Committed chunk 1")   # job, run_id and step attached
    """
    token = _run_context.set({**_run_context.get(), **fields})
    try:
        yield
    finally:
        _run_context.reset(token)


def current_context() -> dict:
    """Fields bound by the innermost run_context(), empty outside a run."""
    return dict(_run_context.get())


class RunContextFilter(logging.Filter):
    """
    Copies the bound run fields onto each record.

    Sets one attribute per CONTEXT_FIELDS entry (None when unbound) and
    `context`, a compact "job=job01 run_id=3" string used by the text format.
    """

    def filter(self, record: logging.LogRecord) -> bool:
        context = _run_context.get()
        for field in CONTEXT_FIELDS:
            if not hasattr(record, field):
                setattr(record, field, context.get(field))
        record.context = " ".join(
            f"{field}={context[field]}" for field in CONTEXT_FIELDS if context.get(field) is not None
        )
        return True


class CustomJsonFormatter(jsonlogger.JsonFormatter):
    """
    JSON formatter with a fixed envelope and the run context

    Adds: timestamp, level, logger, module, function and, while a run is in
    progress, job, run_id and step
    """

    def add_fields(self, log_record: dict, record: logging.LogRecord, message_dict: dict) -> None:
        super().add_fields(log_record, record, message_dict)

        if not log_record.get("timestamp"):
            log_record["timestamp"] = self.formatTime(record, self.datefmt)
        log_record["level"] = record.levelname
        log_record["logger"] = record.name
        log_record["module"] = record.module
        log_record["function"] = record.funcName

        for field in CONTEXT_FIELDS:
            value = getattr(record, field, None)
            if value is None:
                log_record.pop(field, None)
            else:
                log_record[field] = value
        log_record.pop("context", None)


def setup_logger(
    name: str = "cadastro-batch",
    level: str | None = None,
    format_type: str | None = None,
) -> logging.Logger:
    """
    Setup and configure a logger

    Args:
        name: Logger name
        level: Log level name (defaults to env var LOG_LEVEL or INFO)
        format_type: "json" or "text" (defaults to env var LOG_FORMAT or json)

    Returns:
        Configured logger instance
    """
    level_name = (level or os.getenv("LOG_LEVEL", "INFO")).upper()
    log_level = logging.getLevelName(level_name)
    if not isinstance(log_level, int):
        log_level = logging.INFO
    format_type = format_type or os.getenv("LOG_FORMAT", "json")

    logger = logging.getLogger(name)
    logger.setLevel(log_level)
    logger.handlers.clear()

    handler = logging.StreamHandler(sys.stdout)
    handler.setLevel(log_level)
    handler.addFilter(RunContextFilter())

    if format_type == "json":
        formatter = CustomJsonFormatter(
            fmt="%(timestamp)s %(level)s %(logger)s %(message)s",
            datefmt="%Y-%m-%dT%H:%M:%S",
        )
    else:
        formatter = logging.Formatter(
            fmt="%(asctime)s %(levelname)-7s %(name)s [%(context)s] %(message)s",
            datefmt="%Y-%m-%d %H:%M:%S",
        )

    handler.setFormatter(formatter)
    logger.addHandler(handler)
    logger.propagate = False

    return logger


def get_logger(name: str = "cadastro-batch") -> logging.Logger:
    """Get a logger, configuring it on first use"""
    logger = logging.getLogger(name)

    if not logger.handlers:
        return setup_logger(name)

    return logger


class log_operation:
    """
    Context manager that logs the start, end and duration of an operation

    Extra fields are bound with run_context() for the duration of the
    block, so records logged inside it carry them too.

    Usage:
        with log_operation("Step step01", logger=logger, step="step01"):
            step.execute(step_execution)
    """

    def __init__(self, operation_name: str, logger: logging.Logger | None = None, **context_fields):
        self.operation_name = operation_name
        self.logger = logger or get_logger()
        self.context_fields = context_fields
        self.start_time = None
        self.duration = 0.0
        self._context = None

    def __enter__(self):
        self._context = run_context(**self.context_fields)
        self._context.__enter__()
        self.start_time = time.time()
        self.logger.info(f"Starting: {self.operation_name}", extra={"operation": self.operation_name})
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.duration = time.time() - self.start_time
        extra = {"operation": self.operation_name, "duration_seconds": round(self.duration, 3)}

        try:
            if exc_type is None:
                self.logger.info(f"Completed: {self.operation_name}", extra={**extra, "status": "success"})
            else:
                self.logger.error(
                    f"Failed: {self.operation_name}",
                    extra={**extra, "status": "error", "error_type": exc_type.__name__},
                    exc_info=(exc_type, exc_val, exc_tb),
                )
        finally:
            self._context.__exit__(exc_type, exc_val, exc_tb)
        return False
