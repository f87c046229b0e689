from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Protocol, runtime_checkable

from travel_rag_agent.tool import ToolSpec


@dataclass(frozen=True)
class ToolInvocation:
    type: str
    arguments: dict[str, Any] = field(default_factory=dict)
    call_id: str | None = None

    def to_dict(self) -> dict[str, Any]:
        payload: dict[str, Any] = {"type": self.type, "args": dict(self.arguments)}
        if self.call_id:
            payload["callId"] = self.call_id
        return payload


@dataclass(frozen=True)
class Completion:
    text: str
    proposed_action: ToolInvocation | None = None


@runtime_checkable
class LLMProvider(Protocol):
    async def complete(
        self,
        model: str,
        max_tokens: int,
        temperature: float,
        messages: list[dict],
        tools: list[ToolSpec],
    ) -> Completion:
        """Run one completion over internal-format messages.

        Messages are ``{"role", "content"}`` dicts. Extra keys mark special
        turns: ``"context": True`` for the retrieved context block and
        ``"tool_call": ToolInvocation`` on the assistant action and on the
        ``"tool"`` role result that answers it.

        Raises ModelCallFailure when the provider is unreachable or its
        output is malformed.
        """
        ...


def create_provider(provider_name: str, api_key: str) -> LLMProvider:
    """Factory: create an LLMProvider by name."""
    name = provider_name.strip().lower()
    if name == "anthropic":
        from travel_rag_agent.providers.anthropic_provider import AnthropicProvider
        return AnthropicProvider(api_key)
    if name == "openai":
        from travel_rag_agent.providers.openai_provider import OpenAIProvider
        return OpenAIProvider(api_key)
    raise ValueError(f"Unknown provider: {provider_name!r}. Supported: 'anthropic', 'openai'")
