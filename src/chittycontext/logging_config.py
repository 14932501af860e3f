"""
Logging configuration for ChittyContext.

Configures the root logger once per process with console and optional
rotating file handlers, in ``standard`` or ``json`` format. The boundary
middleware binds request correlation ids to a ContextVar; the
RequestContextFilter copies them onto every record logged while the request
is handled.
"""

import json
import logging
import sys
from contextvars import ContextVar, Token
from logging.handlers import RotatingFileHandler
from typing import Any, Optional

from chittycontext.config import Settings

REQUEST_FIELDS = ("request_id", "context_id", "chitty_id")

request_log_context: ContextVar[dict[str, str]] = ContextVar(
    "request_log_context", default={}
)

STANDARD_FORMAT = (
    "%(asctime)s %(levelname)-8s [%(name)s] "
    "[req=%(request_id)s ctx=%(context_id)s] %(message)s"
)

_configured = False


def bind_request_context(**fields: str) -> Token:
    """Attach correlation fields to log records for the current task."""
    return request_log_context.set({**request_log_context.get(), **fields})


def reset_request_context(token: Token) -> None:
    request_log_context.reset(token)


class RequestContextFilter(logging.Filter):
    """Inject request correlation fields ("-" when unbound)."""

    def filter(self, record: logging.LogRecord) -> bool:
        bound = request_log_context.get()
        for field in REQUEST_FIELDS:
            if not hasattr(record, field):
                setattr(record, field, bound.get(field, "-"))
        return True


class JsonFormatter(logging.Formatter):
    """One JSON object per line."""

    def format(self, record: logging.LogRecord) -> str:
        log_dict: dict[str, Any] = {
            "timestamp": self.formatTime(record, self.datefmt),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        for field in REQUEST_FIELDS:
            value = getattr(record, field, "-")
            if value != "-":
                log_dict[field] = value
        if record.exc_info:
            log_dict["exception"] = self.formatException(record.exc_info)
        return json.dumps(log_dict, ensure_ascii=False, default=str)


def _formatter(log_format: str) -> logging.Formatter:
    if log_format == "json":
        return JsonFormatter()
    return logging.Formatter(STANDARD_FORMAT)


def setup_logging(context: str = "api", settings: Optional[Settings] = None) -> None:
    """
    Configure process-wide logging.

    Safe to call more than once; only the first call has an effect.

    Args:
        context: Name of the running component, used for the log file name
        settings: Settings to read logging options from (module settings if None)
    """
    global _configured
    if _configured:
        return

    if settings is None:
        from chittycontext.config import settings as default_settings

        settings = default_settings

    root = logging.getLogger()
    root.setLevel(settings.log_level.upper())
    formatter = _formatter(settings.log_format)
    context_filter = RequestContextFilter()

    if settings.log_console_enabled:
        console = logging.StreamHandler(sys.stdout)
        console.setFormatter(formatter)
        console.addFilter(context_filter)
        root.addHandler(console)

    if settings.log_file_enabled:
        log_dir = settings.log_directory
        log_dir.mkdir(parents=True, exist_ok=True)
        file_handler = RotatingFileHandler(
            log_dir / f"{context}.log",
            maxBytes=settings.log_max_bytes,
            backupCount=settings.log_backup_count,
            encoding="utf-8",
        )
        file_handler.setFormatter(formatter)
        file_handler.addFilter(context_filter)
        root.addHandler(file_handler)

    _configured = True
    logging.getLogger(__name__).debug(
        f"Logging configured for {context} ({settings.log_format}, level {settings.log_level})"
    )
