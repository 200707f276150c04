"""Structured error metadata models."""

from __future__ import annotations

from enum import Enum
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field


class ErrorSeverity(str, Enum):
    """Whether a failure must halt the calling workflow."""

    CRITICAL = "critical"
    ORDINARY = "ordinary"


class ErrorCategory(str, Enum):
    """Coarse error categories used for telemetry and tool responses."""

    SCHEMA = "schema"
    AUTH = "auth"
    CONNECTIVITY = "connectivity"
    CONFIGURATION = "configuration"
    VALIDATION = "validation"
    UNKNOWN = "unknown"


class ToolError(BaseModel):
    """Failed tool-call payload surfaced to the agent or host."""

    model_config = ConfigDict(extra="forbid", populate_by_name=True)

    category: ErrorCategory = Field(..., description="Coarse error category")
    code: str = Field(..., description="Stable machine-readable error code")
    message: str = Field(
        ..., max_length=2048, description="Error message returned to the caller (bounded)"
    )
    severity: ErrorSeverity = Field(
        ErrorSeverity.ORDINARY, description="Whether the host should halt the workflow"
    )
    details: Optional[dict[str, Any]] = Field(None, description="Additional bounded details")

    @property
    def critical(self) -> bool:
        """Return True when the host should stop the workflow."""
        return self.severity == ErrorSeverity.CRITICAL

    def to_dict(self) -> dict:
        """Convert to dictionary for tool responses/telemetry."""
        payload = self.model_dump(mode="json", exclude_none=True)
        payload["critical"] = self.critical
        return payload
