"""
Structured JSON logging with run correlation IDs.

Every line logged while a run id is set (one export, one API call)
carries that id, so the lines of a bulk export can be grouped even
when rows are built on several threads.
"""

import json
import logging
import time
import uuid
from contextvars import ContextVar
from datetime import datetime, timezone
from typing import Any, Dict, Optional

run_id_ctx: ContextVar[Optional[str]] = ContextVar("run_id", default=None)

# LogRecord attributes that are never copied into the JSON payload
_RESERVED = frozenset(vars(logging.LogRecord("", 0, "", 0, "", None, None))) | {"message", "asctime"}


def _with_run_id(fields: Dict[str, Any]) -> Dict[str, Any]:
    run_id = run_id_ctx.get()
    if run_id:
        fields["run_id"] = run_id
    return fields


class StructuredFormatter(logging.Formatter):
    """
    Render records as one JSON object per line.

    Fields passed as extra={"extra_fields": {...}} are merged into the
    top level of the object.
    """

    def format(self, record: logging.LogRecord) -> str:
        payload: Dict[str, Any] = {
            "timestamp": datetime.fromtimestamp(record.created, timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "module": record.module,
            "function": record.funcName,
            "line": record.lineno,
        }
        _with_run_id(payload)

        if record.exc_info:
            payload["exception"] = self.formatException(record.exc_info)

        extra = getattr(record, "extra_fields", None)
        if isinstance(extra, dict):
            payload.update(extra)
        for key, value in vars(record).items():
            if key not in _RESERVED and key != "extra_fields" and key not in payload:
                payload[key] = value

        return json.dumps(payload, default=str)


class RunLogger:
    """
    Thin wrapper that turns keyword arguments into structured fields.

        log = get_structured_logger(__name__)
        log.info("Export finished", files=12)
    """

    def __init__(self, logger: logging.Logger):
        self.logger = logger

    def _log(self, level: int, msg: str, **fields):
        if self.logger.isEnabledFor(level):
            self.logger.log(level, msg, extra={"extra_fields": _with_run_id(dict(fields))})

    def debug(self, msg: str, **fields):
        self._log(logging.DEBUG, msg, **fields)

    def info(self, msg: str, **fields):
        self._log(logging.INFO, msg, **fields)

    def warning(self, msg: str, **fields):
        self._log(logging.WARNING, msg, **fields)

    def error(self, msg: str, **fields):
        self._log(logging.ERROR, msg, **fields)


class PerformanceTracker:
    """
    Time a block and log its outcome.

    A DEBUG line marks the start; completion is logged at `log_level`
    with `duration_ms`, failure at ERROR with the exception type. The
    exception itself is never suppressed.
    """

    def __init__(
        self,
        operation: str,
        logger: logging.Logger,
        log_level: int = logging.INFO,
        **extra_fields,
    ):
        self.operation = operation
        self.logger = logger
        self.log_level = log_level
        self.extra_fields = extra_fields
        self.start_time: Optional[float] = None
        self.duration_ms: Optional[float] = None

    def _fields(self, **more) -> Dict[str, Any]:
        return _with_run_id({"operation": self.operation, **self.extra_fields, **more})

    def __enter__(self):
        self.start_time = time.perf_counter()
        self.logger.debug(
            f"Starting operation: {self.operation}",
            extra={"extra_fields": self._fields()},
        )
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.duration_ms = (time.perf_counter() - self.start_time) * 1000
        fields = self._fields(duration_ms=round(self.duration_ms, 2))

        if exc_type is None:
            self.logger.log(
                self.log_level,
                f"Operation completed: {self.operation}",
                extra={"extra_fields": fields},
            )
            return False

        fields.update(error=str(exc_val), error_type=exc_type.__name__)
        self.logger.error(
            f"Operation failed: {self.operation}",
            extra={"extra_fields": fields},
        )
        return False


def setup_logging(log_level: str = "INFO", json_format: bool = True):
    """
    Configure the root logger with a single console handler.

    Args:
        log_level: Level name (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        json_format: JSON lines when True, plain text otherwise
    """
    level = getattr(logging, log_level.upper())
    root_logger = logging.getLogger()
    root_logger.setLevel(level)
    for handler in root_logger.handlers[:]:
        root_logger.removeHandler(handler)

    console_handler = logging.StreamHandler()
    console_handler.setLevel(level)
    console_handler.setFormatter(
        StructuredFormatter() if json_format
        else logging.Formatter("%(asctime)s - %(name)s - %(levelname)s - %(message)s")
    )
    root_logger.addHandler(console_handler)

    # Quiet the ASGI server's access log
    logging.getLogger("uvicorn.access").setLevel(logging.WARNING)


def set_run_id(run_id: Optional[str] = None) -> str:
    """Set (or generate) the run id of the current context and return it."""
    if run_id is None:
        run_id = str(uuid.uuid4())
    run_id_ctx.set(run_id)
    return run_id


def get_run_id() -> Optional[str]:
    return run_id_ctx.get()


def clear_run_id():
    run_id_ctx.set(None)


def get_structured_logger(name: str) -> RunLogger:
    return RunLogger(logging.getLogger(name))
