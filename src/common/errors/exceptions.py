"""Exception taxonomy for query validation and execution failures."""

from __future__ import annotations

from typing import Any, Optional

from common.errors.error_codes import ErrorCode
from common.models.error_metadata import ErrorCategory, ErrorSeverity


class QueryInputError(ValueError):
    """Base class for input-validation failures raised before any database I/O."""

    code: ErrorCode = ErrorCode.INTERNAL_ERROR

    def __init__(self, message: str, *, value: Any = None) -> None:
        """Initialize with the offending value kept for diagnostics."""
        super().__init__(message)
        self.value = value


class InvalidIdentifier(QueryInputError):
    """Raised when a table/column/schema name is not a safe SQL identifier."""

    code = ErrorCode.INVALID_IDENTIFIER


class InvalidRole(QueryInputError):
    """Raised when a database role name cannot be safely interpolated."""

    code = ErrorCode.INVALID_ROLE


class InvalidLimit(QueryInputError):
    """Raised when a result limit is not a positive integer within the ceiling."""

    code = ErrorCode.INVALID_LIMIT


class EmptyPlaceholder(QueryInputError):
    """Raised when the custom-query placeholder token is blank."""

    code = ErrorCode.EMPTY_PLACEHOLDER


class InvalidEmbedding(QueryInputError):
    """Raised when an embedding vector is missing, empty, or non-numeric."""

    code = ErrorCode.INVALID_EMBEDDING


class InvalidToolSettings(QueryInputError):
    """Raised when tool settings are incomplete for the selected mode."""

    code = ErrorCode.INVALID_TOOL_SETTINGS


class QueryExecutionFailure(RuntimeError):
    """Driver failure during query or transaction execution, annotated with its severity."""

    code = ErrorCode.QUERY_EXECUTION_FAILED

    def __init__(
        self,
        message: str,
        *,
        severity: ErrorSeverity,
        category: ErrorCategory = ErrorCategory.UNKNOWN,
        driver_message: Optional[str] = None,
        rollback_failed: bool = False,
    ) -> None:
        """Initialize with classification details of the wrapped driver error."""
        super().__init__(message)
        self.severity = severity
        self.category = category
        self.driver_message = driver_message if driver_message is not None else message
        self.rollback_failed = rollback_failed

    @property
    def is_critical(self) -> bool:
        """Return True when the host should halt the surrounding workflow."""
        return self.severity == ErrorSeverity.CRITICAL
