"""Input/output capture for tool invocations.

Each invocation gets exactly one terminal event: ``complete`` or ``fail``.
The service calls the recorder directly, on both the row-returning path and
the agent-tool path.
"""

from __future__ import annotations

import json
import logging
import uuid
from contextlib import asynccontextmanager
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, AsyncIterator, Optional, Protocol, runtime_checkable

from opentelemetry import trace
from pydantic import BaseModel, Field

from common.errors import QueryExecutionFailure, QueryInputError
from common.errors.error_codes import ErrorCode, category_for_error_code, error_code_group
from common.models.error_metadata import ToolError
from dal.error_classification import classify_error_info

logger = logging.getLogger(__name__)


class InvocationStatus(str, Enum):
    """Lifecycle of one recorded invocation."""

    PENDING = "pending"
    COMPLETED = "completed"
    FAILED = "failed"


class InvocationRecord(BaseModel):
    """What a tool call received and returned."""

    invocation_id: str = Field(default_factory=lambda: uuid.uuid4().hex)
    tool_name: str
    input: dict[str, Any] = Field(default_factory=dict)
    status: InvocationStatus = InvocationStatus.PENDING
    output: Optional[list[dict[str, Any]]] = None
    error: Optional[ToolError] = None
    started_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    finished_at: Optional[datetime] = None


class InvocationAlreadyFinalized(RuntimeError):
    """Raised when a second terminal event is recorded for the same invocation."""


@dataclass
class InvocationHandle:
    """Opaque token returned by ``begin`` and consumed by ``complete``/``fail``."""

    record: InvocationRecord
    finalized: bool = field(default=False)


def normalize_output(output: Any) -> list[dict[str, Any]]:
    """Coerce a tool response into a list of row mappings.

    JSON array text becomes its rows, JSON objects and other values are wrapped
    as ``{"response": ...}``.
    """
    if isinstance(output, str):
        try:
            output = json.loads(output)
        except (TypeError, ValueError):
            return [{"response": output}]
    if isinstance(output, list):
        return [item if isinstance(item, dict) else {"response": item} for item in output]
    if output is None:
        return []
    return [{"response": output}]


def error_to_tool_error(error: BaseException) -> ToolError:
    """Build the tool-facing error payload for a failed invocation."""
    if isinstance(error, QueryExecutionFailure):
        return ToolError(
            category=error.category,
            code=error.code.value,
            message=str(error)[:2048],
            severity=error.severity,
            details={"rollback_failed": True} if error.rollback_failed else None,
        )
    info = classify_error_info(error)
    if isinstance(error, QueryInputError):
        code = error.code.value
        category = category_for_error_code(error.code)
    else:
        code = ErrorCode.INTERNAL_ERROR.value
        category = info.category
    return ToolError(
        category=category,
        code=code,
        message=(str(error) or error.__class__.__name__)[:2048],
        severity=info.severity,
    )


@runtime_checkable
class InvocationRecorder(Protocol):
    """Receives the start and the single terminal event of each invocation."""

    def begin(self, tool_name: str, payload: dict[str, Any]) -> InvocationHandle:
        """Record that an invocation started with ``payload``."""
        ...

    def complete(self, handle: InvocationHandle, output: Any) -> None:
        """Record the successful output of an invocation."""
        ...

    def fail(self, handle: InvocationHandle, error: BaseException) -> None:
        """Record the failure of an invocation."""
        ...


class BaseInvocationRecorder:
    """Enforces exactly-once finalization; subclasses implement the ``_on_*`` hooks."""

    def begin(self, tool_name: str, payload: dict[str, Any]) -> InvocationHandle:
        """Create a pending record for a new invocation."""
        handle = InvocationHandle(record=InvocationRecord(tool_name=tool_name, input=dict(payload)))
        self._safe_hook(self._on_begin, handle)
        return handle

    def complete(self, handle: InvocationHandle, output: Any) -> None:
        """Finalize the invocation as completed with normalized output rows."""
        self._claim(handle)
        handle.record = handle.record.model_copy(
            update={
                "status": InvocationStatus.COMPLETED,
                "output": normalize_output(output),
                "finished_at": datetime.now(timezone.utc),
            }
        )
        self._safe_hook(self._on_complete, handle)

    def fail(self, handle: InvocationHandle, error: BaseException) -> None:
        """Finalize the invocation as failed with a tool error payload."""
        self._claim(handle)
        handle.record = handle.record.model_copy(
            update={
                "status": InvocationStatus.FAILED,
                "error": error_to_tool_error(error),
                "finished_at": datetime.now(timezone.utc),
            }
        )
        self._safe_hook(self._on_fail, handle)

    @staticmethod
    def _claim(handle: InvocationHandle) -> None:
        if handle.finalized:
            raise InvocationAlreadyFinalized(
                f"Invocation {handle.record.invocation_id} was already finalized "
                f"as {handle.record.status.value}."
            )
        handle.finalized = True

    @staticmethod
    def _safe_hook(hook, handle: InvocationHandle) -> None:
        try:
            hook(handle)
        except Exception:
            logger.warning(
                "Invocation recorder hook failed",
                exc_info=True,
                extra={"event": "invocation_recorder_hook_failed"},
            )

    def _on_begin(self, handle: InvocationHandle) -> None:
        return None

    def _on_complete(self, handle: InvocationHandle) -> None:
        return None

    def _on_fail(self, handle: InvocationHandle) -> None:
        return None


class NullInvocationRecorder(BaseInvocationRecorder):
    """Default recorder: tracks finalization but emits nothing."""


class InMemoryInvocationRecorder(BaseInvocationRecorder):
    """Keeps finalized records in memory, in completion order."""

    def __init__(self) -> None:
        """Initialize empty record storage."""
        self.started: list[InvocationRecord] = []
        self.records: list[InvocationRecord] = []

    def _on_begin(self, handle: InvocationHandle) -> None:
        self.started.append(handle.record)

    def _on_complete(self, handle: InvocationHandle) -> None:
        self.records.append(handle.record)

    def _on_fail(self, handle: InvocationHandle) -> None:
        self.records.append(handle.record)


class LoggingInvocationRecorder(BaseInvocationRecorder):
    """Writes one structured log line per invocation event."""

    def __init__(self, logger: Optional[logging.Logger | logging.LoggerAdapter] = None) -> None:
        """Initialize with the logger to write to."""
        self._logger = logger or logging.getLogger(__name__)

    def _on_begin(self, handle: InvocationHandle) -> None:
        record = handle.record
        self._logger.info(
            "tool_invocation_started",
            extra={
                "event": "tool_invocation_started",
                "invocation_id": record.invocation_id,
                "tool_name": record.tool_name,
                "tool_input": record.input,
            },
        )

    def _on_complete(self, handle: InvocationHandle) -> None:
        record = handle.record
        self._logger.info(
            "tool_invocation_completed",
            extra={
                "event": "tool_invocation_completed",
                "invocation_id": record.invocation_id,
                "tool_name": record.tool_name,
                "result_count": len(record.output or []),
            },
        )

    def _on_fail(self, handle: InvocationHandle) -> None:
        record = handle.record
        error = record.error
        self._logger.error(
            "tool_invocation_failed",
            extra={
                "event": "tool_invocation_failed",
                "invocation_id": record.invocation_id,
                "tool_name": record.tool_name,
                "error_code": error.code if error else None,
                "error_group": error_code_group(error.code) if error else None,
                "severity": error.severity.value if error else None,
                "error_message": error.message if error else None,
            },
        )


class SpanInvocationRecorder(BaseInvocationRecorder):
    """Adds invocation events to the current OpenTelemetry span."""

    def _on_begin(self, handle: InvocationHandle) -> None:
        span = trace.get_current_span()
        if span is None or not span.is_recording():
            return
        record = handle.record
        span.set_attribute("tool.name", record.tool_name)
        span.set_attribute("tool.invocation_id", record.invocation_id)
        span.add_event(
            "tool.invocation.started",
            {"tool.input": json.dumps(record.input, default=str)[:4096]},
        )

    def _on_complete(self, handle: InvocationHandle) -> None:
        span = trace.get_current_span()
        if span is None or not span.is_recording():
            return
        span.set_attribute("tool.result_count", len(handle.record.output or []))
        span.add_event("tool.invocation.completed")

    def _on_fail(self, handle: InvocationHandle) -> None:
        span = trace.get_current_span()
        if span is None or not span.is_recording():
            return
        error = handle.record.error
        attributes = {}
        if error is not None:
            attributes = {
                "tool.error.code": error.code,
                "tool.error.group": error_code_group(error.code),
                "tool.error.severity": error.severity.value,
                "tool.error.category": error.category.value,
            }
        span.add_event("tool.invocation.failed", attributes)


class InvocationScope:
    """Collects the output produced inside ``record_invocation``."""

    def __init__(self, handle: InvocationHandle) -> None:
        """Wrap the handle being recorded."""
        self.handle = handle
        self.output: Any = None

    def set_output(self, output: Any) -> None:
        """Set the value recorded when the block exits normally."""
        self.output = output


@asynccontextmanager
async def record_invocation(
    recorder: InvocationRecorder, tool_name: str, payload: dict[str, Any]
) -> AsyncIterator[InvocationScope]:
    """Record one invocation around an ``async with`` block.

    Exactly one terminal event is written: ``fail`` when the block raises
    (even after ``set_output``), ``complete`` otherwise.
    """
    scope = InvocationScope(recorder.begin(tool_name, payload))
    try:
        yield scope
    except BaseException as exc:
        if not scope.handle.finalized:
            recorder.fail(scope.handle, exc)
        raise
    if not scope.handle.finalized:
        recorder.complete(scope.handle, scope.output)
