"""
Structured logging for the ScholarCheck API and deep-analysis worker.

Every event is rendered as JSON and carries the emitting process (``service``),
the deployment environment and, when one is active, the correlation id of the
request or job being handled.
"""

import logging
import uuid
from contextvars import ContextVar
from typing import Any, Dict, Optional

import structlog
from structlog.types import FilteringBoundLogger

# Request id in the API, job id in the worker
correlation_id_ctx: ContextVar[str] = ContextVar("correlation_id", default="")

# Process-wide fields stamped on every event, set once by setup_logging
_service_context: Dict[str, str] = {}

# Client libraries that log every request or heartbeat at INFO
CHATTY_LOGGERS = ("kafka", "httpx", "httpcore", "anthropic")


def get_correlation_id() -> str:
    return correlation_id_ctx.get()


def set_correlation_id(correlation_id: Optional[str] = None) -> str:
    """Set correlation ID in context. Generates new UUID if none provided."""
    if correlation_id is None:
        correlation_id = str(uuid.uuid4())
    correlation_id_ctx.set(correlation_id)
    return correlation_id


def add_correlation_id(logger: FilteringBoundLogger, method_name: str, event_dict: Dict[str, Any]) -> Dict[str, Any]:
    correlation_id = get_correlation_id()
    if correlation_id:
        event_dict["correlation_id"] = correlation_id
    return event_dict


def add_service_context(logger: FilteringBoundLogger, method_name: str, event_dict: Dict[str, Any]) -> Dict[str, Any]:
    """Stamp service and environment without overriding fields bound by the caller."""
    for key, value in _service_context.items():
        event_dict.setdefault(key, value)
    return event_dict


def setup_logging(
    log_level: str = "INFO",
    service_name: str = "scholarcheck-api",
    environment: str = "development",
) -> FilteringBoundLogger:
    """
    Configure structured logging for one ScholarCheck process.

    Args:
        log_level: Logging level (DEBUG, INFO, WARNING, ERROR)
        service_name: Process label, e.g. "scholarcheck-api" or "deep-analysis-worker"
        environment: Deployment environment from settings

    Returns:
        Logger bound to the service name
    """
    _service_context.clear()
    _service_context.update(service=service_name, environment=environment)

    structlog.configure(
        processors=[
            structlog.stdlib.filter_by_level,
            structlog.stdlib.add_logger_name,
            structlog.stdlib.add_log_level,
            structlog.stdlib.PositionalArgumentsFormatter(),
            add_service_context,
            add_correlation_id,
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            structlog.processors.UnicodeDecoder(),
            structlog.processors.JSONRenderer(),
        ],
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )

    level = getattr(logging, log_level.upper())
    logging.basicConfig(format="%(message)s", level=level)

    # Client chatter only shows up at DEBUG
    client_level = level if level <= logging.DEBUG else max(level, logging.WARNING)
    for name in CHATTY_LOGGERS:
        logging.getLogger(name).setLevel(client_level)

    return structlog.get_logger(service_name)


def get_logger(name: Optional[str] = None) -> FilteringBoundLogger:
    """Get a logger instance with optional name."""
    if name:
        return structlog.get_logger(name)
    return structlog.get_logger()
