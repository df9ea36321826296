import json
import logging
import os
import secrets
import time
from contextvars import ContextVar
from datetime import datetime, timezone
from typing import Optional

SERVICE_NAME = "cmms-engine"

# Set per HTTP request by the trace middleware; None for scripts and jobs.
trace_id_var: ContextVar[Optional[str]] = ContextVar("trace_id", default=None)

_STANDARD_ATTRS = {
    "name", "msg", "args", "levelname", "levelno", "pathname", "filename", "module",
    "exc_info", "exc_text", "stack_info", "lineno", "funcName", "created", "msecs",
    "relativeCreated", "thread", "threadName", "processName", "process", "taskName",
}


def generate_trace_id() -> str:
    """Short sortable id: base-36 millisecond clock plus 8 random hex chars."""
    millis = int(time.time() * 1000)
    digits = "0123456789abcdefghijklmnopqrstuvwxyz"
    stamp = ""
    while millis:
        millis, rem = divmod(millis, 36)
        stamp = digits[rem] + stamp
    return f"{stamp}-{secrets.token_hex(4)}".upper()


class JsonFormatter(logging.Formatter):
    def format(self, record: logging.LogRecord) -> str:
        payload = {
            "timestamp": datetime.fromtimestamp(record.created, timezone.utc).isoformat(),
            "service": SERVICE_NAME,
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }

        trace_id = trace_id_var.get()
        if trace_id:
            payload["trace_id"] = trace_id

        # job_id, asset_id, etc. passed via logger.*(..., extra={...})
        extras = {k: v for k, v in record.__dict__.items() if k not in _STANDARD_ATTRS}
        if extras:
            payload["context"] = extras

        if record.exc_info:
            payload["exc_info"] = self.formatException(record.exc_info)

        if record.stack_info:
            payload["stack_info"] = record.stack_info

        return json.dumps(payload, default=str)


def configure_logging(level: Optional[str] = None) -> None:
    log_level = getattr(logging, (level or os.getenv("LOG_LEVEL", "INFO")).upper(), logging.INFO)

    logging.basicConfig(level=log_level, format="%(message)s")

    root_logger = logging.getLogger()
    root_logger.setLevel(log_level)
    for handler in root_logger.handlers:
        handler.setFormatter(JsonFormatter())
