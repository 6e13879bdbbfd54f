"""
Structured logging for the proxy and its client.

Events are rendered as one JSON object per line. Logger names follow
``<service>.<component>`` (``proxy.cache``, ``client.github``), and the
service part is lifted into its own field. Request and caller ids are
carried in contextvars so every event logged while serving a request is
correlated without threading them through call signatures.
"""

import logging
import re
import sys
import uuid
from contextvars import ContextVar
from typing import Any, Dict, Optional

import structlog

request_id_var: ContextVar[Optional[str]] = ContextVar("request_id", default=None)
caller_id_var: ContextVar[Optional[str]] = ContextVar("caller_id", default=None)

# Classic, OAuth, app and fine-grained GitHub token shapes
SECRET_PATTERN = re.compile(r"(gh[pousr]_[A-Za-z0-9_]{8,}|github_pat_[A-Za-z0-9_]{8,})")
SECRET_KEYS = frozenset({"token", "github_token", "authorization"})


def mask_secret(value: str) -> str:
    """Keep the first four characters of each secret-looking substring."""
    return SECRET_PATTERN.sub(lambda match: match.group(0)[:4] + "***", value)


def configure_logging(service_name: str, log_level: str = "info") -> None:
    """Configure structlog and the stdlib root logger for ``service_name``."""
    level = getattr(logging, log_level.upper(), logging.INFO)

    structlog.configure(
        processors=[
            structlog.stdlib.filter_by_level,
            structlog.stdlib.add_logger_name,
            structlog.stdlib.add_log_level,
            structlog.processors.TimeStamper(fmt="iso", utc=True, key="timestamp"),
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            add_service_context,
            add_correlation_context,
            redact_secrets,
            structlog.processors.JSONRenderer(),
        ],
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )

    logging.basicConfig(format="%(message)s", stream=sys.stdout, level=level)
    # basicConfig is a no-op once handlers exist; the level still applies
    logging.getLogger().setLevel(level)
    logging.getLogger(service_name).setLevel(level)


def add_service_context(logger: Any, method_name: str, event_dict: Dict[str, Any]) -> Dict[str, Any]:
    logger_name = event_dict.get("logger", "")
    if "." in logger_name:
        event_dict.setdefault("service", logger_name.split(".", 1)[0])
    return event_dict


def add_correlation_context(logger: Any, method_name: str, event_dict: Dict[str, Any]) -> Dict[str, Any]:
    """Attach the current request id and caller id, when set."""
    request_id = request_id_var.get()
    if request_id:
        event_dict.setdefault("request_id", request_id)

    caller_id = caller_id_var.get()
    if caller_id:
        event_dict.setdefault("caller_id", caller_id)

    return event_dict


def redact_secrets(logger: Any, method_name: str, event_dict: Dict[str, Any]) -> Dict[str, Any]:
    """Mask upstream credentials wherever they end up in an event."""
    for key, value in event_dict.items():
        if not isinstance(value, str):
            continue
        if key.lower() in SECRET_KEYS:
            event_dict[key] = value[:4] + "***" if value else value
        else:
            event_dict[key] = mask_secret(value)
    return event_dict


def set_request_id(request_id: Optional[str] = None) -> str:
    """Bind a request id (generated when absent) to the current context."""
    request_id = request_id or str(uuid.uuid4())
    request_id_var.set(request_id)
    return request_id


def set_caller_context(caller_id: Optional[str] = None) -> None:
    if caller_id:
        caller_id_var.set(caller_id)


def clear_context() -> None:
    request_id_var.set(None)
    caller_id_var.set(None)


def get_logger(name: str) -> structlog.BoundLogger:
    return structlog.get_logger(name)
