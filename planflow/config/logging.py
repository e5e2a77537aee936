"""
planflow - Logging Configuration

One JSON object per line in production, colored one-liners on a dev console.
Session and step identifiers bound through `get_logger(...)` or passed in
`extra_data` are lifted to the top level of JSON records so a single plan run
can be followed across the driver, the runner and the API.
"""

import json
import logging
import sys
from contextvars import ContextVar
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, Optional, TYPE_CHECKING

if TYPE_CHECKING:
    from ..llm.models import LLMRequest, LLMResponse

ROOT_LOGGER = "planflow"

# Set by the API middleware, picked up by JSONFormatter
request_id_var: ContextVar[Optional[str]] = ContextVar("request_id", default=None)

# extra_data keys promoted to top-level JSON fields
CORRELATION_KEYS = ("session_id", "step_id")


class JSONFormatter(logging.Formatter):
    """Structured formatter: record fields, correlation ids, extra data."""

    def format(self, record: logging.LogRecord) -> str:
        entry: Dict[str, Any] = {
            "ts": datetime.fromtimestamp(record.created, timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "msg": record.getMessage(),
            "where": f"{record.module}:{record.funcName}:{record.lineno}",
        }

        request_id = request_id_var.get()
        if request_id:
            entry["request_id"] = request_id

        data = getattr(record, "extra_data", None)
        if data:
            data = dict(data)
            for key in CORRELATION_KEYS:
                if key in data:
                    entry[key] = data.pop(key)
            if data:
                entry["data"] = data

        if record.exc_info:
            entry["exception"] = self.formatException(record.exc_info)

        return json.dumps(entry, ensure_ascii=False, default=str)


class ColoredFormatter(logging.Formatter):
    """Console formatter that colors the level name."""

    LEVEL_COLORS = {
        logging.DEBUG: "36",
        logging.INFO: "32",
        logging.WARNING: "33",
        logging.ERROR: "31",
        logging.CRITICAL: "35",
    }

    def format(self, record: logging.LogRecord) -> str:
        code = self.LEVEL_COLORS.get(record.levelno)
        if code is None:
            return super().format(record)

        plain = record.levelname
        record.levelname = f"\033[{code}m{plain}\033[0m"
        try:
            return super().format(record)
        finally:
            record.levelname = plain


def _stream_handler(level: int, json_logs: bool) -> logging.Handler:
    handler = logging.StreamHandler(sys.stdout)
    handler.setLevel(level)
    if json_logs:
        handler.setFormatter(JSONFormatter())
    else:
        handler.setFormatter(ColoredFormatter(
            "%(asctime)s %(levelname)s [%(name)s] %(message)s",
            datefmt="%H:%M:%S",
        ))
    return handler


def _file_handler(path: str) -> logging.Handler:
    target = Path(path)
    target.parent.mkdir(parents=True, exist_ok=True)
    handler = logging.FileHandler(target, encoding="utf-8")
    handler.setLevel(logging.DEBUG)
    handler.setFormatter(JSONFormatter())
    return handler


def setup_logging(
    log_level: str = "INFO",
    json_logs: bool = False,
    log_file: Optional[str] = None,
) -> logging.Logger:
    """
    Configure the planflow logger tree.

    Args:
        log_level: Level name for the console (DEBUG, INFO, WARNING, ERROR)
        json_logs: JSON lines instead of colored text on the console
        log_file: Optional file that always receives JSON at DEBUG level

    Returns:
        The `planflow` logger
    """
    level = logging.getLevelName(log_level.upper())
    if not isinstance(level, int):
        level = logging.INFO

    logger = logging.getLogger(ROOT_LOGGER)
    logger.setLevel(logging.DEBUG if log_file else level)
    for handler in list(logger.handlers):
        logger.removeHandler(handler)
        handler.close()

    logger.addHandler(_stream_handler(level, json_logs))
    if log_file:
        logger.addHandler(_file_handler(log_file))
    return logger


class LoggerAdapter(logging.LoggerAdapter):
    """Merges the adapter's bound context into each record's extra_data."""

    def process(self, msg: str, kwargs: Dict[str, Any]) -> tuple:
        extra = dict(kwargs.get("extra") or {})
        if self.extra:
            extra["extra_data"] = {**self.extra, **extra.get("extra_data", {})}
        kwargs["extra"] = extra
        return msg, kwargs


def get_logger(name: str, **context) -> LoggerAdapter:
    """
    Logger under the planflow namespace, bound to context.

    get_logger("executor.driver", session_id="ab12cd34")
    """
    return LoggerAdapter(logging.getLogger(f"{ROOT_LOGGER}.{name}"), context)


def log_ai_request(
    logger: logging.LoggerAdapter,
    request: "LLMRequest",
    response: "LLMResponse",
    duration_ms: float,
) -> None:
    """Record one completed LLM call with its size and token usage."""
    logger.info(
        "LLM %s/%s answered %s in %.0fms",
        response.provider.value,
        response.model,
        request.purpose or "request",
        duration_ms,
        extra={"extra_data": {
            "provider": response.provider.value,
            "model": response.model,
            "purpose": request.purpose,
            "prompt_chars": request.prompt_length,
            "response_chars": len(response.content),
            "tokens": response.total_tokens,
            "duration_ms": duration_ms,
        }},
    )


def log_error(
    logger: logging.LoggerAdapter,
    error: Exception,
    context: str = "",
    **extra
) -> None:
    """Log an exception with traceback under a short context label."""
    logger.error(
        "%s failed: %s: %s",
        context or "operation",
        type(error).__name__,
        error,
        exc_info=error,
        extra={"extra_data": extra},
    )
