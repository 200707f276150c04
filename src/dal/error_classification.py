"""Critical/ordinary classification for query failures."""

from __future__ import annotations

import logging
import socket
from dataclasses import dataclass
from typing import Optional

from opentelemetry import trace

from common.config.env import get_env_bool
from common.errors import QueryExecutionFailure, QueryInputError
from common.models.error_metadata import ErrorCategory, ErrorSeverity
from common.observability.metrics import query_metrics
from dal.error_patterns import match_critical_pattern

logger = logging.getLogger(__name__)

# OS-level connection failures whose messages do not carry the catalogued text.
_CRITICAL_EXCEPTION_TYPES: tuple[tuple[type[BaseException], str], ...] = (
    (ConnectionRefusedError, "connection_refused"),
    (socket.gaierror, "host_unreachable"),
)


@dataclass(frozen=True)
class ErrorClassification:
    """Severity plus the coarse category and matched catalogue entry."""

    severity: ErrorSeverity
    category: ErrorCategory
    matched_pattern: Optional[str] = None

    @property
    def is_critical(self) -> bool:
        """Return True when the failure should halt the calling workflow."""
        return self.severity == ErrorSeverity.CRITICAL


def _error_message(error: object) -> str:
    if isinstance(error, QueryExecutionFailure):
        return error.driver_message
    if isinstance(error, BaseException):
        return str(error)
    return "" if error is None else str(error)


def _classify_single(error: object) -> Optional[ErrorClassification]:
    message = _error_message(error)
    matched = match_critical_pattern(message)
    if matched is not None:
        return ErrorClassification(
            severity=ErrorSeverity.CRITICAL,
            category=matched.category,
            matched_pattern=matched.name,
        )
    for exc_type, name in _CRITICAL_EXCEPTION_TYPES:
        if isinstance(error, exc_type):
            return ErrorClassification(
                severity=ErrorSeverity.CRITICAL,
                category=ErrorCategory.CONNECTIVITY,
                matched_pattern=name,
            )
    return None


def classify_error_info(error: object) -> ErrorClassification:
    """Classify an error (or message) against the critical catalogue.

    The message of the error and of each chained cause is checked, so wrapped
    driver errors classify the same as the originals.
    """
    seen: set[int] = set()
    current: object = error
    while current is not None and id(current) not in seen:
        seen.add(id(current))
        classification = _classify_single(current)
        if classification is not None:
            return classification
        current = getattr(current, "__cause__", None)

    if isinstance(error, QueryInputError):
        return ErrorClassification(
            severity=ErrorSeverity.ORDINARY, category=ErrorCategory.VALIDATION
        )
    return ErrorClassification(severity=ErrorSeverity.ORDINARY, category=ErrorCategory.UNKNOWN)


def classify_error(error: object) -> ErrorSeverity:
    """Return ``CRITICAL`` when the error matches the catalogue, else ``ORDINARY``."""
    return classify_error_info(error).severity


def is_critical_error(error: object) -> bool:
    """Return True when the error should stop the calling workflow."""
    return classify_error(error) == ErrorSeverity.CRITICAL


def wrap_execution_error(
    error: BaseException, *, rollback_failed: bool = False
) -> QueryExecutionFailure:
    """Wrap a driver error as ``QueryExecutionFailure`` annotated with its classification."""
    if isinstance(error, QueryExecutionFailure):
        return error
    info = classify_error_info(error)
    driver_message = str(error) or error.__class__.__name__
    return QueryExecutionFailure(
        f"Vector search failed: {driver_message}",
        severity=info.severity,
        category=info.category,
        driver_message=driver_message,
        rollback_failed=rollback_failed,
    )


def emit_classified_error(operation: str, error: BaseException) -> ErrorClassification:
    """Emit structured telemetry for a classified error and return the classification."""
    info = classify_error_info(error)
    if not get_env_bool("VECTOR_TOOL_CLASSIFIED_ERROR_TELEMETRY", True):
        return info

    span = trace.get_current_span()
    if span is not None and span.is_recording():
        span.set_attribute("error.classification.severity", info.severity.value)
        span.set_attribute("error.classification.category", info.category.value)
        span.set_attribute("error.classification.operation", operation)
        if info.matched_pattern:
            span.set_attribute("error.classification.pattern", info.matched_pattern)
        span.add_event(
            "query.error.classified",
            {
                "severity": info.severity.value,
                "category": info.category.value,
                "operation": operation,
            },
        )

    query_metrics.record_error(
        operation,
        severity=info.severity,
        category=info.category,
        pattern=info.matched_pattern,
    )
    logger.error(
        "query_error_classified",
        extra={
            "event": "query_error_classified",
            "operation": operation,
            "severity": info.severity.value,
            "error_category": info.category.value,
            "matched_pattern": info.matched_pattern,
            "error_type": error.__class__.__name__,
        },
    )
    return info
