import json
from typing import Any

import openai
from loguru import logger
from tenacity import retry

from travel_rag_agent.errors import ModelCallFailure
from travel_rag_agent.provider import Completion, ToolInvocation
from travel_rag_agent.providers.common import default_retry_kwargs, parse_arguments, tool_result_text
from travel_rag_agent.tool import ToolSpec

# Output items that never represent a proposed action.
_NON_ACTION_TYPES = {"message", "reasoning"}


def _to_responses_input(messages: list[dict]) -> list[dict]:
    """Convert internal messages to Responses API input items."""
    out: list[dict] = []
    for msg in messages:
        role = msg["role"]
        content = msg.get("content", "")
        invocation = msg.get("tool_call")

        if role == "tool":
            if invocation is not None and invocation.call_id:
                out.append({
                    "type": "function_call_output",
                    "call_id": invocation.call_id,
                    "output": content,
                })
            else:
                # Built-in tool results go back as plain text
                out.append({"role": "user", "content": tool_result_text(msg)})
            continue

        if role == "assistant" and invocation is not None:
            if content:
                out.append({"role": "assistant", "content": content})
            if invocation.call_id:
                out.append({
                    "type": "function_call",
                    "call_id": invocation.call_id,
                    "name": invocation.type,
                    "arguments": json.dumps(invocation.arguments),
                })
            continue

        out.append({"role": role, "content": content if isinstance(content, str) else str(content)})
    return out


def _to_openai_tools(tools: list[ToolSpec]) -> list[dict]:
    out: list[dict] = []
    for t in tools:
        if t.builtin:
            out.append({"type": t.name})
        else:
            out.append({
                "type": "function",
                "name": t.name,
                "description": t.description,
                "parameters": t.input_schema,
                # Schemas are not written for strict mode (optional properties)
                "strict": False,
            })
    return out


def _to_invocation(item: Any) -> ToolInvocation:
    item_type = getattr(item, "type", None)
    if item_type == "function_call":
        return ToolInvocation(
            type=item.name,
            arguments=parse_arguments(getattr(item, "arguments", None)),
            call_id=getattr(item, "call_id", None),
        )
    arguments: dict[str, Any] = {}
    action = getattr(item, "action", None)
    query = getattr(action, "query", None)
    if query:
        arguments["query"] = query
    return ToolInvocation(type=str(item_type), arguments=arguments)


def _parse_response(response: Any) -> Completion:
    output = getattr(response, "output", None)
    if output is None:
        raise ModelCallFailure("OpenAI response carried no output")

    proposed: ToolInvocation | None = None
    for item in output:
        item_type = getattr(item, "type", None)
        if item_type and item_type not in _NON_ACTION_TYPES:
            proposed = _to_invocation(item)
            break

    text = getattr(response, "output_text", None) or ""
    return Completion(text=text, proposed_action=proposed)


class OpenAIProvider:
    def __init__(self, api_key: str):
        self._client = openai.AsyncOpenAI(api_key=api_key)

    async def complete(
        self,
        model: str,
        max_tokens: int,
        temperature: float,
        messages: list[dict],
        tools: list[ToolSpec],
    ) -> Completion:
        kwargs: dict = dict(
            model=model,
            max_output_tokens=max_tokens,
            temperature=temperature,
            input=_to_responses_input(messages),
        )
        oai_tools = _to_openai_tools(tools)
        if oai_tools:
            kwargs["tools"] = oai_tools

        logger.debug(
            f"API request: model={model}, max_tokens={max_tokens}, "
            f"input_items={len(kwargs['input'])}, tools={len(oai_tools)}"
        )
        try:
            response = await self._create(**kwargs)
        except openai.OpenAIError as ex:
            raise ModelCallFailure(f"OpenAI request failed: {ex}") from ex

        completion = _parse_response(response)
        logger.debug(
            f"API response: text_len={len(completion.text)}, "
            f"proposed_action={completion.proposed_action.type if completion.proposed_action else None}"
        )
        return completion

    @retry(**default_retry_kwargs((
        openai.RateLimitError,
        openai.APIConnectionError,
        openai.APITimeoutError,
    )))
    async def _create(self, **kwargs: Any) -> Any:
        return await self._client.responses.create(**kwargs)
