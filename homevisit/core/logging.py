"""
Structured logging with operation correlation IDs.

Every gesture commit, auto-arrange run and sync batch binds a short
operation id so the log lines it produces can be grouped together.
"""
import logging
import uuid
from contextvars import ContextVar
from typing import Any, Dict, Optional

import structlog

# Operation correlation context
operation_id: ContextVar[str] = ContextVar("operation_id", default="")
operation_context: ContextVar[Dict[str, Any]] = ContextVar("operation_context", default={})


class TokenEfficientProcessor:
    """Processor to keep logs concise."""

    def __init__(self, max_length: int = 200):
        self.max_length = max_length

    def __call__(self, logger, method_name, event_dict):
        if "event" in event_dict:
            event_dict["event"] = str(event_dict["event"])[:self.max_length]

        if "error" in event_dict:
            event_dict["error"] = str(event_dict["error"])[:self.max_length]

        return event_dict


class CorrelationProcessor:
    """Add operation ID and context to all logs."""

    def __call__(self, logger, method_name, event_dict):
        correlation_id = operation_id.get("")
        if correlation_id:
            event_dict["operation_id"] = correlation_id

        context = operation_context.get({})
        if context:
            for key, value in context.items():
                event_dict.setdefault(key, value)

        return event_dict


def setup_logging(debug: bool = False, max_log_length: int = 200, level: str = "INFO"):
    """Configure structured logging for the application."""
    log_level = logging.DEBUG if debug else getattr(logging, level.upper(), logging.INFO)

    processors = [
        structlog.stdlib.filter_by_level,
        CorrelationProcessor(),
        TokenEfficientProcessor(max_length=max_log_length),
        structlog.processors.add_log_level,
        structlog.processors.StackInfoRenderer(),
    ]

    if debug:
        processors.append(structlog.dev.ConsoleRenderer())
    else:
        processors.append(structlog.processors.JSONRenderer())

    structlog.configure(
        processors=processors,
        wrapper_class=structlog.stdlib.BoundLogger,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )

    logging.basicConfig(level=log_level, format="%(message)s")


def get_logger(name: str = __name__):
    """Get a structured logger instance."""
    return structlog.get_logger(name)


def new_operation_id() -> str:
    return str(uuid.uuid4())[:8]


def set_operation(kind: str, correlation_id: Optional[str] = None, **kwargs) -> str:
    """Start a correlated operation (gesture, arrange run, sync batch)."""
    correlation_id = correlation_id or new_operation_id()
    operation_id.set(correlation_id)
    context = {"operation": kind}
    context.update(kwargs)
    operation_context.set(context)
    return correlation_id


def clear_operation():
    """Clear operation ID and context."""
    operation_id.set("")
    operation_context.set({})
