"""
planflow - Configuration
"""
from .settings import Settings, ExecutionSettings, LLMSettings, settings
from .logging import (
    setup_logging,
    get_logger,
    log_ai_request,
    log_error,
    request_id_var,
    JSONFormatter,
    ColoredFormatter,
)

__all__ = [
    "Settings",
    "ExecutionSettings",
    "LLMSettings",
    "settings",
    # Logging
    "setup_logging",
    "get_logger",
    "log_ai_request",
    "log_error",
    "request_id_var",
    "JSONFormatter",
    "ColoredFormatter",
]
