from typing import Any

import httpx
from loguru import logger

from travel_rag_agent.tool import QueryContext, ToolSpec

_TIMEOUT_SECONDS = 30


class CustomApiTool:
    def __init__(
        self,
        url: str,
        *,
        timeout: float = _TIMEOUT_SECONDS,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._url = url
        self._timeout = timeout
        self._transport = transport

    @property
    def name(self) -> str:
        return "custom_api_call"

    @property
    def spec(self) -> ToolSpec:
        return ToolSpec(
            name=self.name,
            description="Query the deployment's travel data API for supplementary information.",
            input_schema={
                "type": "object",
                "properties": {
                    "query": {"type": "string", "description": "What to look up"},
                },
                "required": ["query"],
            },
        )

    async def execute(self, tool_input: dict[str, Any], query_context: QueryContext) -> dict[str, Any]:
        query = str(tool_input.get("query") or query_context.query)
        logger.info(f"Calling custom API: url={self._url}")

        async with httpx.AsyncClient(timeout=self._timeout, transport=self._transport) as client:
            response = await client.get(self._url, params={"q": query})
        response.raise_for_status()

        content_type = response.headers.get("content-type", "")
        result: Any = response.json() if "json" in content_type else response.text
        return {"result": result, "query": query}
