"""
Shared logging configuration for the Storefront Access Layer.
"""

import logging
import sys
import time
from contextvars import ContextVar
from typing import Any, Dict, Mapping, Optional

import structlog

# Context variables for correlation
trace_id_var: ContextVar[Optional[str]] = ContextVar('trace_id', default=None)
locale_var: ContextVar[Optional[str]] = ContextVar('locale', default=None)

REDACTED = "[REDACTED]"
SENSITIVE_KEYS = frozenset({
    "authorization",
    "cookie",
    "cookies",
    "set-cookie",
    "password",
    "token",
    "auth_token",
    "x-application-token",
    "x-application-key",
})


def configure_logging(service_name: str, log_level: str = "info", json_logs: bool = True) -> None:
    """Configure structured logging for a service."""

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
            _service_context(service_name),
            add_correlation_context,
            redact_sensitive,
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


def _service_context(service_name: str):
    def add_service_context(logger: Any, method_name: str, event_dict: Dict[str, Any]) -> Dict[str, Any]:
        event_dict.setdefault("service", service_name)
        return event_dict
    return add_service_context


def add_correlation_context(logger: Any, method_name: str, event_dict: Dict[str, Any]) -> Dict[str, Any]:
    """Add trace id and locale of the current request to log events."""
    trace_id = trace_id_var.get()
    if trace_id and "trace_id" not in event_dict:
        event_dict["trace_id"] = trace_id

    locale = locale_var.get()
    if locale:
        event_dict.setdefault("locale", locale)

    return event_dict


def redact_sensitive(logger: Any, method_name: str, event_dict: Dict[str, Any]) -> Dict[str, Any]:
    """Replace credential and cookie values anywhere in the event."""
    return _redact(event_dict)


def _redact(value: Any) -> Any:
    if isinstance(value, Mapping):
        return {
            k: REDACTED if isinstance(k, str) and k.lower() in SENSITIVE_KEYS else _redact(v)
            for k, v in value.items()
        }
    if isinstance(value, (list, tuple)):
        return type(value)(_redact(v) for v in value)
    return value


def bind_request_context(trace_id: Optional[str], locale: Optional[str] = None) -> None:
    """Set correlation context for the current request."""
    trace_id_var.set(trace_id)
    locale_var.set(locale)


def clear_context():
    """Clear all context variables."""
    trace_id_var.set(None)
    locale_var.set(None)


def get_logger(name: str) -> structlog.stdlib.BoundLogger:
    """Get a structured logger instance."""
    return structlog.get_logger(name)


def summarize_variables(variables: Optional[Mapping[str, Any]]) -> str:
    """Describe operation variables by key names only."""
    keys = sorted(variables or {})
    return f"keys:[{','.join(keys)}]" if keys else "empty"


class OperationTimer:
    """Measures one operation from creation until end() or fail()."""

    def __init__(self, logger: structlog.stdlib.BoundLogger, operation: str):
        self.logger = logger
        self.operation = operation
        self._start = time.perf_counter()

    @property
    def elapsed_ms(self) -> float:
        return (time.perf_counter() - self._start) * 1000

    def end(self, **context: Any) -> float:
        duration = round(self.elapsed_ms, 2)
        self.logger.debug("Operation completed", operation=self.operation, duration_ms=duration, **context)
        return duration

    def fail(self, error: BaseException, **context: Any) -> float:
        duration = round(self.elapsed_ms, 2)
        self.logger.debug(
            "Operation failed",
            operation=self.operation,
            duration_ms=duration,
            error_type=type(error).__name__,
            **context
        )
        return duration


class GraphQLLogger:
    """Log events for outbound GraphQL operations."""

    logger = get_logger("storefront.graphql")

    @classmethod
    def _bound(cls, trace_id: Optional[str]):
        return cls.logger.bind(trace_id=trace_id) if trace_id else cls.logger

    @classmethod
    def start(cls, operation: str, variables: Optional[Mapping[str, Any]],
              trace_id: Optional[str] = None) -> OperationTimer:
        logger = cls._bound(trace_id)
        logger.debug(
            "GraphQL operation starting",
            operation=operation,
            variables=summarize_variables(variables),
        )
        return OperationTimer(logger, f"graphql.{operation}")

    @classmethod
    def success(cls, operation: str, duration_ms: float, trace_id: Optional[str] = None,
                cache_hit: bool = False) -> None:
        cls._bound(trace_id).info(
            "GraphQL operation completed",
            operation=operation,
            duration_ms=duration_ms,
            cache_hit=cache_hit,
        )

    @classmethod
    def error(cls, operation: str, error: BaseException, duration_ms: float,
              trace_id: Optional[str] = None) -> None:
        cls._bound(trace_id).error(
            "GraphQL operation failed",
            operation=operation,
            duration_ms=duration_ms,
            error_code=getattr(error, "code", type(error).__name__),
            error=str(error),
        )


class CacheLogger:
    """Log events for application cache access."""

    logger = get_logger("storefront.cache")

    @classmethod
    def _bound(cls, trace_id: Optional[str]):
        return cls.logger.bind(trace_id=trace_id) if trace_id else cls.logger

    @classmethod
    def hit(cls, key: str, operation: str, trace_id: Optional[str] = None) -> None:
        cls._bound(trace_id).debug("Cache hit", key=key, operation=operation)

    @classmethod
    def miss(cls, key: str, operation: str, trace_id: Optional[str] = None) -> None:
        cls._bound(trace_id).debug("Cache miss", key=key, operation=operation)

    @classmethod
    def set(cls, key: str, ttl_seconds: float, trace_id: Optional[str] = None) -> None:
        cls._bound(trace_id).debug("Cache set", key=key, ttl_seconds=ttl_seconds)

    @classmethod
    def error(cls, key: str, operation: str, error: BaseException, trace_id: Optional[str] = None) -> None:
        cls._bound(trace_id).warning(
            "Cache factory failed",
            key=key,
            operation=operation,
            error_type=type(error).__name__,
            error_code=getattr(error, "code", None),
        )
