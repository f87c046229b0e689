from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Protocol, runtime_checkable


@dataclass(frozen=True)
class ToolSpec:
    """A tool declaration offered to the model.

    Built-in specs name a tool the provider resolves natively (for example
    ``web_search_preview``) and carry no schema.
    """

    name: str
    description: str = ""
    input_schema: dict[str, Any] = field(default_factory=dict)
    builtin: bool = False


@dataclass(frozen=True)
class QueryContext:
    query: str
    context_text: str = ""


@runtime_checkable
class Tool(Protocol):
    @property
    def name(self) -> str:
        """Dispatch key: the invocation type this tool services."""
        ...

    @property
    def spec(self) -> ToolSpec: ...

    async def execute(self, tool_input: dict[str, Any], query_context: QueryContext) -> dict[str, Any]: ...
