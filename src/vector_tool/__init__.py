"""Agent-facing pgvector search tool with role-scoped execution."""

import logging

from vector_tool.config import ToolMode, VectorToolSettings, resolve_role
from vector_tool.recorder import (
    InMemoryInvocationRecorder,
    InvocationAlreadyFinalized,
    InvocationRecorder,
    LoggingInvocationRecorder,
    NullInvocationRecorder,
    SpanInvocationRecorder,
    record_invocation,
)
from vector_tool.service import VectorStoreQueryService
from vector_tool.tool_logging import ToolLogger

logging.getLogger(__name__).addHandler(logging.NullHandler())

__all__ = [
    "InMemoryInvocationRecorder",
    "InvocationAlreadyFinalized",
    "InvocationRecorder",
    "LoggingInvocationRecorder",
    "NullInvocationRecorder",
    "SpanInvocationRecorder",
    "ToolLogger",
    "ToolMode",
    "VectorStoreQueryService",
    "VectorToolSettings",
    "record_invocation",
    "resolve_role",
]
