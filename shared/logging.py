"""
Structured logging for the Credit Gateway.

Every event is rendered as one JSON line on stdout. Correlation fields
(request id on the introspection side, usage log id on the reconciler side,
plus the consumer and service being charged) are kept in context variables
and merged into each event while set.
"""

import sys
import structlog
import logging
import uuid
from typing import Any, Dict, Optional
from contextvars import ContextVar

request_id_var: ContextVar[Optional[str]] = ContextVar('request_id', default=None)
log_id_var: ContextVar[Optional[str]] = ContextVar('log_id', default=None)
consumer_id_var: ContextVar[Optional[str]] = ContextVar('consumer_id', default=None)
service_id_var: ContextVar[Optional[str]] = ContextVar('service_id', default=None)

_CORRELATION_VARS = (request_id_var, log_id_var, consumer_id_var, service_id_var)

_service_name = "gateway"


def configure_logging(service_name: str, log_level: str = "info") -> None:
    """Configure structured logging for a service.

    ``debug`` is the verbose mode: every query and decision step is logged.
    """
    global _service_name
    _service_name = service_name

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
            add_service_context,
            add_correlation_context,
            structlog.processors.JSONRenderer()
        ],
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )

    logging.basicConfig(
        format="%(message)s",
        stream=sys.stdout,
        level=getattr(logging, log_level.upper(), logging.INFO),
    )


def add_service_context(logger: Any, method_name: str, event_dict: Dict[str, Any]) -> Dict[str, Any]:
    """Tag events with the emitting service."""
    event_dict.setdefault("service", _service_name)
    return event_dict


def add_correlation_context(logger: Any, method_name: str, event_dict: Dict[str, Any]) -> Dict[str, Any]:
    """Merge the correlation fields that are currently set."""
    for var in _CORRELATION_VARS:
        value = var.get()
        if value:
            event_dict.setdefault(var.name, value)
    return event_dict


def set_request_id(request_id: Optional[str] = None) -> str:
    """Set request ID in context, generating one if the caller sent none."""
    if request_id is None:
        request_id = str(uuid.uuid4())
    request_id_var.set(request_id)
    return request_id


def set_usage_context(consumer_id: Optional[str] = None, service_id: Optional[str] = None,
                      log_id: Optional[str] = None):
    """Set the consumer, service and usage record being handled."""
    if consumer_id:
        consumer_id_var.set(consumer_id)
    if service_id:
        service_id_var.set(service_id)
    if log_id:
        log_id_var.set(log_id)


def clear_context():
    """Clear all correlation fields."""
    for var in _CORRELATION_VARS:
        var.set(None)


def get_logger(name: str) -> structlog.stdlib.BoundLogger:
    """Get a structured logger instance."""
    return structlog.get_logger(name)
