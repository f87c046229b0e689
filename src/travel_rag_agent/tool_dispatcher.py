from __future__ import annotations

import asyncio
from typing import Any

from loguru import logger

from travel_rag_agent.errors import ToolExecutionFailure
from travel_rag_agent.provider import ToolInvocation
from travel_rag_agent.status import STEP_TOOL, StatusMessages, StatusTracker
from travel_rag_agent.tool import QueryContext, Tool, ToolSpec

_DEFAULT_TIMEOUT_SECONDS = 30


class ToolDispatcher:
    """Routes a model-proposed action to the tool registered for its type."""

    def __init__(self, tools: list[Tool], *, timeout_seconds: float = _DEFAULT_TIMEOUT_SECONDS):
        self._tools: dict[str, Tool] = {t.name: t for t in tools}
        self._timeout_seconds = timeout_seconds

    @property
    def tool_specs(self) -> list[ToolSpec]:
        return [t.spec for t in self._tools.values()]

    def handles(self, tool_type: str) -> bool:
        return tool_type in self._tools

    async def execute(
        self,
        invocation: ToolInvocation,
        query_context: QueryContext,
        status_tracker: StatusTracker,
    ) -> dict[str, Any]:
        """Run the action and return the invocation merged with its result.

        Unknown types are echoed back unchanged. A failing action is recorded
        as a failed tool step and raised as ToolExecutionFailure.
        """
        tool_type = invocation.type or "unknown"
        tool = self._tools.get(tool_type)
        if tool is None:
            logger.warning(f"Unknown tool type: {tool_type}, using default behavior")
            status_tracker.completed(STEP_TOOL, StatusMessages.default_behavior(tool_type), {"toolType": tool_type})
            return invocation.to_dict()

        status_tracker.executing(STEP_TOOL, StatusMessages.executing_tool(tool_type), {"toolType": tool_type})
        logger.info(f"Executing tool: {tool_type}")
        try:
            result = await asyncio.wait_for(
                tool.execute(dict(invocation.arguments), query_context),
                timeout=self._timeout_seconds,
            )
        except Exception as ex:
            if isinstance(ex, TimeoutError):
                error = f"timed out after {self._timeout_seconds:g}s"
            else:
                error = str(ex) or type(ex).__name__
            logger.error(f"Tool {tool_type} failed: {error}")
            status_tracker.failed(STEP_TOOL, StatusMessages.tool_failed(tool_type, error), {"error": error})
            raise ToolExecutionFailure(tool_type, error) from ex

        status_tracker.completed(STEP_TOOL, StatusMessages.tool_completed(tool_type), result)
        return {**invocation.to_dict(), **result}
