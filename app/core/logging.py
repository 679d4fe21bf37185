import json
import logging
import sys
from contextlib import contextmanager
from contextvars import ContextVar
from datetime import datetime, timezone
from typing import Any, Iterator

_attempt_context: ContextVar[dict[str, Any]] = ContextVar("autoapply_attempt_context", default={})


class JsonFormatter(logging.Formatter):
    def format(self, record: logging.LogRecord) -> str:
        payload = {
            "timestamp": datetime.fromtimestamp(record.created, timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        payload.update(_attempt_context.get())
        extra = getattr(record, "extra", None)
        if isinstance(extra, dict):
            payload.update(extra)
        if record.exc_info:
            payload["exception"] = self.formatException(record.exc_info)
        return json.dumps(payload, default=str)


@contextmanager
def log_context(**fields: Any) -> Iterator[None]:
    """Stamp ``fields`` onto every record logged inside the block (e.g. the job being applied to)."""
    token = _attempt_context.set({**_attempt_context.get(), **fields})
    try:
        yield
    finally:
        _attempt_context.reset(token)


def current_log_context() -> dict[str, Any]:
    return dict(_attempt_context.get())


def setup_logging(level: int = logging.INFO) -> None:
    root = logging.getLogger()
    root.setLevel(level)
    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(JsonFormatter())
    root.handlers = [handler]
    # httpx logs every Oracle request at INFO.
    logging.getLogger("httpx").setLevel(logging.WARNING)


def get_logger(name: str) -> logging.Logger:
    return logging.getLogger(name)
