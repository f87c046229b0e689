import asyncio
import unittest

import httpx

from travel_rag_agent.tool import QueryContext
from travel_rag_agent.tool_registry import declarations, get_all
from travel_rag_agent.tools.custom_api_tool import CustomApiTool
from travel_rag_agent.tools.database_lookup_tool import DatabaseLookupTool
from travel_rag_agent.tools.web.brave_search_provider import BraveSearchProvider
from travel_rag_agent.tools.web.search_provider import SearchResult
from travel_rag_agent.tools.web.web_search_tool import WebSearchTool
from tests.fakes import FakeRetrieval, context_rows

_CONTEXT = QueryContext(query="best ramen in Sapporo")


class _FakeSearchProvider:
    def __init__(self) -> None:
        self.calls: list[tuple[str, int]] = []

    @property
    def provider_name(self) -> str:
        return "Fake"

    async def search(self, query: str, count: int) -> list[SearchResult]:
        self.calls.append((query, count))
        return [SearchResult(title="Ramen Yokocho", url="https://example.com/ramen", description="Alley of ramen shops")]


class WebSearchToolTests(unittest.TestCase):
    def test_without_provider_the_model_resolved_the_search(self) -> None:
        result = asyncio.run(WebSearchTool().execute({"query": "x"}, _CONTEXT))
        self.assertEqual({"resolved_by": "model"}, result)

    def test_with_provider_results_are_attached(self) -> None:
        provider = _FakeSearchProvider()
        result = asyncio.run(WebSearchTool(provider, count=3).execute({}, _CONTEXT))
        self.assertEqual([("best ramen in Sapporo", 3)], provider.calls)
        self.assertEqual("Fake", result["provider"])
        self.assertEqual("Ramen Yokocho", result["results"][0]["title"])

    def test_declared_as_builtin_web_search(self) -> None:
        spec = WebSearchTool().spec
        self.assertEqual("web_search_preview", spec.name)
        self.assertTrue(spec.builtin)


class BraveSearchProviderTests(unittest.TestCase):
    def test_parses_web_results(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            self.assertEqual("secret", request.headers["X-Subscription-Token"])
            return httpx.Response(200, json={"web": {"results": [{"title": "T", "url": "https://u", "description": "D"}]}})

        provider = BraveSearchProvider("secret", transport=httpx.MockTransport(handler))
        results = asyncio.run(provider.search("q", 5))
        self.assertEqual([SearchResult(title="T", url="https://u", description="D")], results)

    def test_http_error_raises(self) -> None:
        provider = BraveSearchProvider("k", transport=httpx.MockTransport(lambda request: httpx.Response(429)))
        with self.assertRaises(httpx.HTTPStatusError):
            asyncio.run(provider.search("q", 5))


class CustomApiToolTests(unittest.TestCase):
    def test_json_body_becomes_result(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(200, json={"echo": request.url.params["q"]})

        tool = CustomApiTool("https://travel.example.com/lookup", transport=httpx.MockTransport(handler))
        result = asyncio.run(tool.execute({}, _CONTEXT))
        self.assertEqual({"echo": "best ramen in Sapporo"}, result["result"])

    def test_text_body_becomes_result(self) -> None:
        tool = CustomApiTool(
            "https://travel.example.com/lookup",
            transport=httpx.MockTransport(lambda request: httpx.Response(200, text="plain answer")),
        )
        result = asyncio.run(tool.execute({"query": "x"}, _CONTEXT))
        self.assertEqual("plain answer", result["result"])
        self.assertEqual("x", result["query"])

    def test_error_status_raises(self) -> None:
        tool = CustomApiTool(
            "https://travel.example.com/lookup",
            transport=httpx.MockTransport(lambda request: httpx.Response(500)),
        )
        with self.assertRaises(httpx.HTTPStatusError):
            asyncio.run(tool.execute({}, _CONTEXT))


class DatabaseLookupToolTests(unittest.TestCase):
    def test_returns_rendered_rows(self) -> None:
        retrieval = FakeRetrieval(context_rows("Sapporo ramen alley", "Susukino nightlife"))
        result = asyncio.run(DatabaseLookupTool(retrieval, top_k=2).execute({}, _CONTEXT))
        self.assertTrue(result["found"])
        self.assertEqual(2, len(result["rows"]))
        self.assertTrue(result["result"].startswith("Context 1:\nSapporo ramen alley"))
        self.assertEqual([("best ramen in Sapporo", 2)], retrieval.calls)

    def test_nothing_found(self) -> None:
        result = asyncio.run(DatabaseLookupTool(FakeRetrieval()).execute({"query": "Mars"}, _CONTEXT))
        self.assertFalse(result["found"])
        self.assertEqual("", result["result"])


class ToolRegistryTests(unittest.TestCase):
    def test_default_tools(self) -> None:
        tools = get_all()
        self.assertEqual(["web_search_call", "get_weather"], [t.name for t in tools])
        self.assertEqual(["web_search_preview", "get_weather"], [s.name for s in declarations(tools)])

    def test_optional_groups(self) -> None:
        tools = get_all(
            retrieval=FakeRetrieval(),
            brave_api_key="k",
            custom_api_url="https://travel.example.com/lookup",
        )
        self.assertEqual(
            ["web_search_call", "get_weather", "database_lookup", "custom_api_call"],
            [t.name for t in tools],
        )

    def test_weather_gives_up_before_the_dispatcher(self) -> None:
        weather = next(t for t in get_all(tool_timeout_seconds=10) if t.name == "get_weather")
        self.assertLess(weather.timeout, 10)
