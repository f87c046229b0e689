from typing import Any

from travel_rag_agent.retrieval import RetrievalService, build_context_prompt
from travel_rag_agent.tool import QueryContext, ToolSpec

_DEFAULT_TOP_K = 3


class DatabaseLookupTool:
    def __init__(self, retrieval: RetrievalService, top_k: int = _DEFAULT_TOP_K) -> None:
        self._retrieval = retrieval
        self._top_k = top_k

    @property
    def name(self) -> str:
        return "database_lookup"

    @property
    def spec(self) -> ToolSpec:
        return ToolSpec(
            name=self.name,
            description="Search the travel knowledge base for records about a place or topic.",
            input_schema={
                "type": "object",
                "properties": {
                    "query": {"type": "string", "description": "Place or topic to look up"},
                },
                "required": ["query"],
            },
        )

    async def execute(self, tool_input: dict[str, Any], query_context: QueryContext) -> dict[str, Any]:
        query = str(tool_input.get("query") or query_context.query)
        rows = await self._retrieval.retrieve_context(query, self._top_k)
        return {
            "result": build_context_prompt(rows),
            "rows": [row.to_dict() for row in rows],
            "found": bool(rows),
        }
