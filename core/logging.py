"""
Logging configuration

Failures raised by the pipeline are logged with their structured context
attached as ``extra={"error_context": exc.to_dict()}``. ErrorContextFilter
folds the interesting parts of that dict into the rendered line so a
plain stdout handler still shows the upstream status, URL and retry flag.
"""

import logging
import sys
from typing import Any, Dict, Optional

from core.config import settings

LOG_FORMAT = "%(asctime)s | %(levelname)-8s | %(name)s | %(message)s%(error_suffix)s"
DATE_FORMAT = "%Y-%m-%d %H:%M:%S"

NOISY_LOGGERS = ("sqlalchemy.engine", "sqlalchemy.pool", "httpx", "httpcore", "apscheduler")

# Context keys worth surfacing on a single log line
CONTEXT_KEYS = ("source", "status_code", "url", "retry_count", "retry_after", "attempts")


def format_error_context(error_context: Optional[Dict[str, Any]]) -> str:
    """Render an IngestionException.to_dict() payload as ' [k=v ...]'"""
    if not error_context:
        return ""

    parts = [f"type={error_context.get('error_type')}"]
    context = error_context.get("context") or {}
    parts.extend(f"{key}={context[key]}" for key in CONTEXT_KEYS if key in context)
    if error_context.get("retryable"):
        parts.append("retryable")

    return " [" + " ".join(parts) + "]"


class ErrorContextFilter(logging.Filter):
    """Adds ``error_suffix`` to every record so LOG_FORMAT always resolves"""

    def filter(self, record: logging.LogRecord) -> bool:
        record.error_suffix = format_error_context(getattr(record, "error_context", None))
        return True


def setup_logging(level: Optional[str] = None):
    """Configure application logging"""

    level_name = (level or settings.LOG_LEVEL).upper()
    log_level = getattr(logging, level_name, logging.INFO)

    handler = logging.StreamHandler(sys.stdout)
    handler.addFilter(ErrorContextFilter())
    handler.setFormatter(logging.Formatter(LOG_FORMAT, datefmt=DATE_FORMAT))

    logging.basicConfig(level=log_level, handlers=[handler], force=True)

    for name in NOISY_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)

    logging.getLogger(__name__).info(f"Logging configured at {level_name} level")
