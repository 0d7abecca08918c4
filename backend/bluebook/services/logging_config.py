"""Structured logging configuration for hf.bluebook."""
import logging
import json
import sys
from datetime import datetime, timezone

# Extra record attributes copied into the JSON line when present
_CONTEXT_FIELDS = (
    "plan_id", "floor_id", "package_id", "task_id",
    "request_id", "http_method", "http_path", "http_status", "duration_ms",
)


class JSONFormatter(logging.Formatter):
    """One JSON object per line; bluebook context extras are lifted to top-level keys."""

    def format(self, record):
        log_entry = {
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "module": record.module,
            "function": record.funcName,
            "line": record.lineno,
        }
        if record.exc_info:
            log_entry["exception"] = self.formatException(record.exc_info)
        log_entry.update(
            (name, getattr(record, name)) for name in _CONTEXT_FIELDS if hasattr(record, name)
        )
        return json.dumps(log_entry, default=str)


def setup_logging(level: str = "INFO", json_output: bool = True):
    """Configure application logging."""
    root = logging.getLogger()
    root.setLevel(getattr(logging, level.upper(), logging.INFO))

    handler = logging.StreamHandler(sys.stdout)
    if json_output:
        handler.setFormatter(JSONFormatter())
    else:
        handler.setFormatter(logging.Formatter(
            "%(asctime)s [%(name)s] %(levelname)s: %(message)s"
        ))

    root.handlers = [handler]

    # Suppress noisy loggers
    for name in ["uvicorn.access", "httpcore", "httpx", "LiteLLM", "celery.redirected"]:
        logging.getLogger(name).setLevel(logging.WARNING)
