"""LangChain tool exposing the vector store query service to agents."""

from __future__ import annotations

import json
import logging
from typing import Any

from langchain_core.tools import StructuredTool, ToolException
from opentelemetry import trace
from pydantic import BaseModel, Field

from common.errors import QueryExecutionFailure, QueryInputError
from dal.error_classification import emit_classified_error, wrap_execution_error
from vector_tool.recorder import error_to_tool_error, record_invocation
from vector_tool.service import VectorStoreQueryService

logger = logging.getLogger(__name__)


class SearchToolInput(BaseModel):
    """Arguments the agent passes to the search tool."""

    query: str = Field(..., min_length=1, description="Text to search for")


async def embed_query(embeddings: Any, query: str) -> list[float]:
    """Embed ``query`` with the async API when available, else the sync one."""
    aembed = getattr(embeddings, "aembed_query", None)
    if aembed is not None:
        return await aembed(query)
    return embeddings.embed_query(query)


def build_search_tool(service: VectorStoreQueryService, embeddings: Any) -> StructuredTool:
    """Build the agent-facing search tool bound to ``service`` and ``embeddings``.

    Critical failures propagate (``QueryExecutionFailure`` or a catalogued input
    error such as an invalid identifier) so the host halts the workflow. Embedding
    provider errors are classified the same way as driver errors. Ordinary
    failures are raised as ``ToolException`` carrying the
    ``ToolError`` payload, which the agent sees as a failed call it may retry.
    """
    settings = service.settings
    tracer = trace.get_tracer("vector_tool.tool")

    async def _search(query: str) -> str:
        if not isinstance(query, str) or not query.strip():
            raise ToolException("Query must be a non-empty string.")

        with tracer.start_as_current_span(f"tool.{settings.tool_name}") as span:
            span.set_attribute("tool.mode", settings.mode.value)
            try:
                async with record_invocation(
                    service.recorder, settings.tool_name, {"query": query}
                ) as scope:
                    try:
                        vector = await embed_query(embeddings, query)
                    except Exception as exc:
                        emit_classified_error("embed_query", exc)
                        raise wrap_execution_error(exc) from exc
                    rows = await service.execute(vector)
                    response = json.dumps(rows, default=str)
                    scope.set_output(response)
            except QueryExecutionFailure as exc:
                if exc.is_critical:
                    logger.error(
                        "Critical vector search failure",
                        extra={
                            "event": "tool_critical_failure",
                            "tool_name": settings.tool_name,
                            "error_category": exc.category.value,
                        },
                    )
                    raise
                raise ToolException(json.dumps(error_to_tool_error(exc).to_dict())) from exc
            except QueryInputError as exc:
                error = error_to_tool_error(exc)
                if error.critical:
                    raise
                raise ToolException(json.dumps(error.to_dict())) from exc
            except Exception as exc:
                emit_classified_error("tool", exc)
                failure = wrap_execution_error(exc)
                if failure.is_critical:
                    raise failure from exc
                raise ToolException(json.dumps(error_to_tool_error(failure).to_dict())) from exc

            span.set_attribute("tool.result_count", len(rows))
            return response

    return StructuredTool.from_function(
        coroutine=_search,
        name=settings.tool_name,
        description=settings.description,
        args_schema=SearchToolInput,
        handle_tool_error=True,
    )
