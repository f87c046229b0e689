from typing import Any

import anthropic
from loguru import logger
from tenacity import retry

from travel_rag_agent.errors import ModelCallFailure
from travel_rag_agent.provider import Completion, ToolInvocation
from travel_rag_agent.providers.common import default_retry_kwargs, tool_result_text
from travel_rag_agent.tool import ToolSpec


def _to_anthropic_messages(messages: list[dict]) -> tuple[str, list[dict]]:
    """Split internal messages into (system prompt, Messages API turns).

    The context block is sent as a user turn; Anthropic would otherwise treat
    a trailing assistant turn as a prefill.
    """
    system_parts: list[str] = []
    out: list[dict] = []
    for msg in messages:
        role = msg["role"]
        content = msg.get("content", "")
        invocation = msg.get("tool_call")

        if role == "system":
            system_parts.append(content)
        elif msg.get("context"):
            out.append({"role": "user", "content": f"Context:\n{content}"})
        elif role == "tool":
            if invocation is not None and invocation.call_id:
                out.append({
                    "role": "user",
                    "content": [{
                        "type": "tool_result",
                        "tool_use_id": invocation.call_id,
                        "content": content,
                    }],
                })
            else:
                out.append({"role": "user", "content": tool_result_text(msg)})
        elif role == "assistant" and invocation is not None and invocation.call_id:
            blocks: list[dict] = []
            if content:
                blocks.append({"type": "text", "text": content})
            blocks.append({
                "type": "tool_use",
                "id": invocation.call_id,
                "name": invocation.type,
                "input": invocation.arguments,
            })
            out.append({"role": "assistant", "content": blocks})
        elif content:
            out.append({"role": role, "content": content})
    return "\n\n".join(system_parts), out


def _to_anthropic_tools(tools: list[ToolSpec]) -> list[dict]:
    # Built-in declarations are resolved by other providers only
    return [
        {
            "name": t.name,
            "description": t.description,
            "input_schema": t.input_schema,
        }
        for t in tools
        if not t.builtin
    ]


def _parse_message(response: Any) -> Completion:
    content = getattr(response, "content", None)
    if content is None:
        raise ModelCallFailure("Anthropic response carried no content")

    text_parts: list[str] = []
    proposed: ToolInvocation | None = None
    for block in content:
        if block.type == "text":
            text_parts.append(block.text)
        elif block.type == "tool_use" and proposed is None:
            proposed = ToolInvocation(type=block.name, arguments=dict(block.input or {}), call_id=block.id)
    return Completion(text="".join(text_parts), proposed_action=proposed)


class AnthropicProvider:
    def __init__(self, api_key: str):
        self._client = anthropic.AsyncAnthropic(api_key=api_key)

    async def complete(
        self,
        model: str,
        max_tokens: int,
        temperature: float,
        messages: list[dict],
        tools: list[ToolSpec],
    ) -> Completion:
        system_prompt, turns = _to_anthropic_messages(messages)
        kwargs: dict = dict(
            model=model,
            max_tokens=max_tokens,
            temperature=temperature,
            system=system_prompt,
            messages=turns,
        )
        anthropic_tools = _to_anthropic_tools(tools)
        if anthropic_tools:
            kwargs["tools"] = anthropic_tools

        logger.debug(
            f"API request: model={model}, max_tokens={max_tokens}, "
            f"messages={len(turns)}, tools={len(anthropic_tools)}"
        )
        try:
            response = await self._create(**kwargs)
        except anthropic.AnthropicError as ex:
            raise ModelCallFailure(f"Anthropic request failed: {ex}") from ex

        usage = getattr(response, "usage", None)
        if usage is not None:
            logger.debug(
                f"API response: stop_reason={response.stop_reason}, "
                f"input_tokens={usage.input_tokens}, output_tokens={usage.output_tokens}"
            )
        return _parse_message(response)

    @retry(**default_retry_kwargs((
        anthropic.RateLimitError,
        anthropic.APIConnectionError,
        anthropic.APITimeoutError,
    )))
    async def _create(self, **kwargs: Any) -> Any:
        return await self._client.messages.create(**kwargs)
