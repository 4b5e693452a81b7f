"""
Shared logging configuration for the Feature Access SDK.
"""

import sys
import structlog
import logging
import time
from typing import Any, Dict, Optional
from contextvars import ContextVar

# Context variables for correlation
context_key_var: ContextVar[Optional[str]] = ContextVar('context_key', default=None)
client_id_var: ContextVar[Optional[str]] = ContextVar('client_id', default=None)


def configure_logging(sdk_name: str = "features_sdk", log_level: str = "info", json_logs: bool = True) -> None:
    """Configure structured logging for the SDK.

    Library code never calls this itself; applications opt in once at
    startup. Without it structlog's defaults apply.
    """

    renderer = structlog.processors.JSONRenderer() if json_logs else structlog.dev.ConsoleRenderer()

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
            add_sdk_context,
            add_correlation_context,
            add_timestamp,
            renderer
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
    logging.getLogger(sdk_name).setLevel(getattr(logging, log_level.upper()))


def add_sdk_context(logger: Any, method_name: str, event_dict: Dict[str, Any]) -> Dict[str, Any]:
    """Tag events with the SDK component derived from the logger name."""
    logger_name = event_dict.get("logger", "")
    if "." in logger_name:
        event_dict["component"] = logger_name.split(".", 1)[1]

    return event_dict


def add_correlation_context(logger: Any, method_name: str, event_dict: Dict[str, Any]) -> Dict[str, Any]:
    """Add the active context fingerprint and client id to log events."""
    context_key = context_key_var.get()
    if context_key:
        event_dict["context_key"] = context_key

    client_id = client_id_var.get()
    if client_id:
        event_dict["client_id"] = client_id

    return event_dict


def add_timestamp(logger: Any, method_name: str, event_dict: Dict[str, Any]) -> Dict[str, Any]:
    """Add high-precision timestamp to log events."""
    event_dict["timestamp"] = time.time()
    return event_dict


def set_context_key(context_key: Optional[str]) -> None:
    """Bind the context fingerprint being resolved."""
    context_key_var.set(context_key)


def set_client_id(client_id: Optional[str]) -> None:
    client_id_var.set(client_id)


def clear_context():
    """Clear all context variables."""
    context_key_var.set(None)
    client_id_var.set(None)


def get_logger(name: str) -> structlog.BoundLogger:
    """Get a structured logger instance."""
    return structlog.get_logger(name)
