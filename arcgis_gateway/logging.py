"""
Structured logging for the ArcGIS gateway.
"""

import logging
import sys
import time
from contextvars import ContextVar
from typing import Any, Dict, Optional

import structlog

from .config import get_settings

# Context variable for correlating log events with the calling application
request_id_var: ContextVar[Optional[str]] = ContextVar('request_id', default=None)


def configure_logging(log_level: Optional[str] = None, json: bool = True) -> None:
    """Configure structured logging for applications using the gateway.

    ``log_level`` defaults to ``GatewaySettings.log_level`` (``ARCGIS_GATEWAY_LOG_LEVEL``).
    """
    if log_level is None:
        log_level = get_settings().log_level

    renderer = structlog.processors.JSONRenderer() if json else structlog.dev.ConsoleRenderer()

    structlog.configure(
        processors=[
            structlog.stdlib.filter_by_level,
            structlog.stdlib.add_logger_name,
            structlog.stdlib.add_log_level,
            structlog.stdlib.PositionalArgumentsFormatter(),
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            structlog.processors.UnicodeDecoder(),
            add_library_context,
            add_correlation_context,
            add_timestamp,
            renderer,
        ],
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )

    logging.basicConfig(
        format="%(message)s",
        stream=sys.stdout,
        level=getattr(logging, log_level.upper()),
    )


def add_library_context(logger: Any, method_name: str, event_dict: Dict[str, Any]) -> Dict[str, Any]:
    """Tag events emitted by this library with the component that logged them."""
    logger_name = event_dict.get("logger", "")
    if logger_name.startswith("arcgis_gateway."):
        event_dict["component"] = logger_name.split(".", 1)[1]
    return event_dict


def add_correlation_context(logger: Any, method_name: str, event_dict: Dict[str, Any]) -> Dict[str, Any]:
    """Add correlation context to log events."""
    request_id = request_id_var.get()
    if request_id:
        event_dict["request_id"] = request_id

    return event_dict


def add_timestamp(logger: Any, method_name: str, event_dict: Dict[str, Any]) -> Dict[str, Any]:
    """Add high-precision timestamp to log events."""
    event_dict["timestamp"] = time.time()
    return event_dict


def set_request_id(request_id: str) -> None:
    """Set the caller's request ID in context."""
    request_id_var.set(request_id)


def clear_context() -> None:
    """Clear all context variables."""
    request_id_var.set(None)


def get_logger(name: str) -> structlog.BoundLogger:
    """Get a structured logger instance."""
    return structlog.get_logger(name)
