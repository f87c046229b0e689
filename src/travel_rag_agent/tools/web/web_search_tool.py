from typing import Any

from loguru import logger

from travel_rag_agent.tool import QueryContext, ToolSpec
from travel_rag_agent.tools.web.search_provider import SearchProvider

_DEFAULT_COUNT = 5
_MAX_QUERY_CHARS = 400


class WebSearchTool:
    """Services the model's ``web_search_call`` actions.

    Declared to the model as the built-in ``web_search_preview`` tool. With a
    search provider configured the query is also run locally and the results
    attached; without one the model has already resolved the search itself
    and the invocation is echoed back.
    """

    def __init__(self, provider: SearchProvider | None = None, count: int = _DEFAULT_COUNT) -> None:
        self._provider = provider
        self._count = max(1, min(20, count))

    @property
    def name(self) -> str:
        return "web_search_call"

    @property
    def spec(self) -> ToolSpec:
        return ToolSpec(name="web_search_preview", builtin=True)

    async def execute(self, tool_input: dict[str, Any], query_context: QueryContext) -> dict[str, Any]:
        query = str(tool_input.get("query") or query_context.query).strip()[:_MAX_QUERY_CHARS]
        if self._provider is None:
            return {"resolved_by": "model"}

        logger.info(f"Searching the web via {self._provider.provider_name}: {query!r}")
        results = await self._provider.search(query, self._count)
        return {
            "query": query,
            "provider": self._provider.provider_name,
            "results": [r.to_dict() for r in results],
        }
