# docanalysis/observability/logger.py

import json
import logging
import os
import sys
from contextvars import ContextVar
from datetime import datetime, timezone
from typing import Optional


SERVICE_NAME = "docanalysis"

# Set per HTTP request by the middleware; indexing and report logs inherit it
request_id_var: ContextVar[Optional[str]] = ContextVar("request_id", default=None)

# Reserved LogRecord attributes that cannot be overwritten
_RESERVED_ATTRS = {
    "name", "msg", "args", "levelname", "levelno",
    "pathname", "filename", "module", "exc_info",
    "exc_text", "stack_info", "lineno", "funcName",
    "created", "msecs", "relativeCreated", "thread",
    "threadName", "processName", "process", "message",
    "taskName",
}

_NOISY_LOGGERS = ("urllib3", "httpx", "httpcore", "openai", "qdrant_client", "posthog")


class RequestContextFilter(logging.Filter):
    """Attach the current request id to records that do not carry one."""

    def filter(self, record):
        if getattr(record, "request_id", None) is None:
            request_id = request_id_var.get()
            if request_id is not None:
                record.request_id = request_id
        return True


class JSONFormatter(logging.Formatter):
    """
    One JSON object per line for the document pipeline.

    Guarantees:
    • Never crashes on non-serializable extra fields (ids, datetimes, enums)
    • Spanish text is written as-is, not \\u-escaped
    • Extra fields never overwrite the base fields
    """

    def format(self, record: logging.LogRecord) -> str:

        log_data = {
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "service": SERVICE_NAME,
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "location": f"{record.module}.{record.funcName}:{record.lineno}",
        }

        for key, value in record.__dict__.items():

            if key.startswith("_") or key in _RESERVED_ATTRS:
                continue

            log_data[f"extra_{key}" if key in log_data else key] = value

        if record.exc_info:
            log_data["exception"] = self.formatException(record.exc_info)

        return json.dumps(log_data, default=str, ensure_ascii=False)


def _json_handler(handler: logging.Handler) -> logging.Handler:

    handler.setFormatter(JSONFormatter())
    handler.addFilter(RequestContextFilter())

    return handler


def setup_logging(log_level: str = "INFO", log_file: Optional[str] = None):
    """
    JSON logs to stdout, plus a file when `log_file` is set.
    """

    root_logger = logging.getLogger()
    root_logger.setLevel(getattr(logging, log_level.upper(), logging.INFO))

    root_logger.handlers = [_json_handler(logging.StreamHandler(sys.stdout))]

    if log_file:

        directory = os.path.dirname(log_file)

        if directory:
            os.makedirs(directory, exist_ok=True)

        root_logger.addHandler(_json_handler(logging.FileHandler(log_file, encoding="utf-8")))

    for name in _NOISY_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)
