"""Canonical error-code taxonomy for query validation and execution."""

from __future__ import annotations

from enum import Enum
from typing import Any

from common.models.error_metadata import ErrorCategory


class ErrorCode(str, Enum):
    """Bounded canonical error codes for tool responses and observability."""

    INVALID_IDENTIFIER = "INVALID_IDENTIFIER"
    INVALID_ROLE = "INVALID_ROLE"
    INVALID_LIMIT = "INVALID_LIMIT"
    EMPTY_PLACEHOLDER = "EMPTY_PLACEHOLDER"
    INVALID_EMBEDDING = "INVALID_EMBEDDING"
    INVALID_TOOL_SETTINGS = "INVALID_TOOL_SETTINGS"
    QUERY_EXECUTION_FAILED = "QUERY_EXECUTION_FAILED"
    INTERNAL_ERROR = "INTERNAL_ERROR"


_CODE_GROUPS: dict[ErrorCode, str] = {
    ErrorCode.INVALID_IDENTIFIER: "VALIDATION",
    ErrorCode.INVALID_ROLE: "VALIDATION",
    ErrorCode.INVALID_LIMIT: "VALIDATION",
    ErrorCode.EMPTY_PLACEHOLDER: "VALIDATION",
    ErrorCode.INVALID_EMBEDDING: "VALIDATION",
    ErrorCode.INVALID_TOOL_SETTINGS: "VALIDATION",
    ErrorCode.QUERY_EXECUTION_FAILED: "DB",
    ErrorCode.INTERNAL_ERROR: "INTERNAL",
}

_CODE_CATEGORIES: dict[ErrorCode, ErrorCategory] = {
    ErrorCode.INVALID_IDENTIFIER: ErrorCategory.VALIDATION,
    ErrorCode.INVALID_ROLE: ErrorCategory.VALIDATION,
    ErrorCode.INVALID_LIMIT: ErrorCategory.VALIDATION,
    ErrorCode.EMPTY_PLACEHOLDER: ErrorCategory.VALIDATION,
    ErrorCode.INVALID_EMBEDDING: ErrorCategory.VALIDATION,
    ErrorCode.INVALID_TOOL_SETTINGS: ErrorCategory.CONFIGURATION,
}


def parse_error_code(
    value: Any,
    *,
    fallback: ErrorCode = ErrorCode.INTERNAL_ERROR,
) -> ErrorCode:
    """Parse string-like values to `ErrorCode` with safe fallback."""
    if isinstance(value, ErrorCode):
        return value
    if value is None:
        return fallback
    try:
        return ErrorCode(str(value).strip())
    except ValueError:
        return fallback


def error_code_group(value: Any) -> str:
    """Return a stable coarse grouping for telemetry dimensions."""
    parsed = parse_error_code(value)
    return _CODE_GROUPS.get(parsed, "INTERNAL")


def category_for_error_code(value: Any) -> ErrorCategory:
    """Return the error category implied by an input-validation code."""
    return _CODE_CATEGORIES.get(parse_error_code(value), ErrorCategory.UNKNOWN)
