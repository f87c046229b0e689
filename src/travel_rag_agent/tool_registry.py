from __future__ import annotations

from dataclasses import dataclass
from typing import Callable

from travel_rag_agent.tool import Tool, ToolSpec
from travel_rag_agent.tools.weather_tool import WeatherTool
from travel_rag_agent.tools.web.web_search_tool import WebSearchTool

# Tools that fall back on their own must give up before the dispatcher does
_FALLBACK_BUDGET_SHARE = 0.8


@dataclass(frozen=True)
class ToolGroup:
    enabled: Callable[[dict], bool]
    build: Callable[[dict], list[Tool]]


def _always(_: dict) -> bool:
    return True


def _base_tools(ctx: dict) -> list[Tool]:
    timeout = ctx["tool_timeout_seconds"]
    provider = None
    if ctx.get("brave_api_key"):
        from travel_rag_agent.tools.web.brave_search_provider import BraveSearchProvider

        provider = BraveSearchProvider(ctx["brave_api_key"], timeout=timeout)
    return [
        WebSearchTool(provider),
        WeatherTool(timeout=timeout * _FALLBACK_BUDGET_SHARE),
    ]


def _database_lookup_enabled(ctx: dict) -> bool:
    return ctx.get("retrieval") is not None


def _database_lookup_tools(ctx: dict) -> list[Tool]:
    from travel_rag_agent.tools.database_lookup_tool import DatabaseLookupTool

    return [DatabaseLookupTool(ctx["retrieval"])]


def _custom_api_enabled(ctx: dict) -> bool:
    return bool(ctx.get("custom_api_url"))


def _custom_api_tools(ctx: dict) -> list[Tool]:
    from travel_rag_agent.tools.custom_api_tool import CustomApiTool

    return [CustomApiTool(ctx["custom_api_url"], timeout=ctx["tool_timeout_seconds"])]


_GROUPS = [
    ToolGroup(enabled=_always, build=_base_tools),
    ToolGroup(enabled=_database_lookup_enabled, build=_database_lookup_tools),
    ToolGroup(enabled=_custom_api_enabled, build=_custom_api_tools),
]


def get_all(
    retrieval=None,
    brave_api_key: str | None = None,
    custom_api_url: str | None = None,
    tool_timeout_seconds: float = 30,
) -> list[Tool]:
    ctx = {
        "retrieval": retrieval,
        "brave_api_key": brave_api_key,
        "custom_api_url": custom_api_url,
        "tool_timeout_seconds": tool_timeout_seconds,
    }

    tools: list[Tool] = []
    for group in _GROUPS:
        if group.enabled(ctx):
            tools.extend(group.build(ctx))
    return tools


def declarations(tools: list[Tool]) -> list[ToolSpec]:
    return [t.spec for t in tools]
