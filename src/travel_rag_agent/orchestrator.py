from __future__ import annotations

import asyncio
import json
from dataclasses import dataclass
from typing import Any, Callable

from loguru import logger

from travel_rag_agent.errors import ModelCallFailure
from travel_rag_agent.memory.models import Message
from travel_rag_agent.memory.store import MemoryStore
from travel_rag_agent.memory.utils import generate_session_id, generate_session_title
from travel_rag_agent.provider import Completion, LLMProvider
from travel_rag_agent.retrieval import DEFAULT_TOP_K, RetrievalService, build_context_prompt
from travel_rag_agent.status import (
    STEP_ANALYZE,
    STEP_FAILURE,
    STEP_FINALIZE,
    STEP_FOLLOW_UP,
    STEP_MODEL_CALL,
    STEP_PREPARE,
    StatusEvent,
    StatusMessages,
    StatusObserver,
    StatusTracker,
    epoch_ms,
)
from travel_rag_agent.system_prompt import build_system_prompt
from travel_rag_agent.tool import QueryContext
from travel_rag_agent.tool_dispatcher import ToolDispatcher

APOLOGY = "I apologize, but I encountered an error while processing your request."
DEFAULT_HISTORY_WINDOW = 8
DEFAULT_MODEL_TIMEOUT_SECONDS = 60


@dataclass(frozen=True)
class AnswerResult:
    success: bool
    response: str
    steps: list[StatusEvent]
    tools_used: list[str]
    execution_time_ms: int
    session_id: str | None = None

    def to_dict(self) -> dict[str, Any]:
        payload: dict[str, Any] = {
            "success": self.success,
            "response": self.response,
            "steps": [step.to_dict() for step in self.steps],
            "toolsUsed": list(self.tools_used),
            "executionTimeMs": self.execution_time_ms,
        }
        if self.session_id is not None:
            payload["sessionId"] = self.session_id
        return payload


class ConversationOrchestrator:
    """Answers one travel query per call.

    Pipeline: analyze (session + history), prepare (context + model input),
    model call, at most one tool round-trip, finalize. Every transition is
    recorded on a per-run StatusTracker. Any exception is caught here and
    turned into an unsuccessful AnswerResult carrying the apology text.
    """

    def __init__(
        self,
        *,
        provider: LLMProvider,
        retrieval: RetrievalService,
        dispatcher: ToolDispatcher,
        model: str,
        max_tokens: int,
        temperature: float,
        memory: MemoryStore | None = None,
        memory_enabled: bool = True,
        response_format: str = "json",
        history_window: int = DEFAULT_HISTORY_WINDOW,
        top_k: int = DEFAULT_TOP_K,
        model_timeout_seconds: float = DEFAULT_MODEL_TIMEOUT_SECONDS,
        clock: Callable[[], int] = epoch_ms,
        session_id_factory: Callable[[], str] = generate_session_id,
    ) -> None:
        self._provider = provider
        self._retrieval = retrieval
        self._dispatcher = dispatcher
        self._model = model
        self._max_tokens = max_tokens
        self._temperature = temperature
        self._memory = memory
        self._memory_enabled = memory_enabled and memory is not None
        self._system_prompt = build_system_prompt(response_format)
        self._history_window = history_window
        self._top_k = top_k
        self._model_timeout_seconds = model_timeout_seconds
        self._clock = clock
        self._session_id_factory = session_id_factory
        self._tool_specs = dispatcher.tool_specs

    @property
    def memory_enabled(self) -> bool:
        return self._memory_enabled

    async def answer(
        self,
        query: str,
        session_id: str | None = None,
        *,
        context: str | None = None,
        on_status: StatusObserver | None = None,
        top_k: int | None = None,
    ) -> AnswerResult:
        start = self._clock()
        status = StatusTracker(on_status, clock=self._clock)
        tools_used: list[str] = []
        if not self._memory_enabled:
            session_id = None

        try:
            status.executing(STEP_ANALYZE, StatusMessages.ANALYZING_QUERY)
            history: list[Message] = []
            if self._memory_enabled:
                if not session_id:
                    session_id = self._session_id_factory()
                    self._memory.create_session(session_id, generate_session_title(query))
                    status.completed(STEP_ANALYZE, StatusMessages.SESSION_CREATED, {"sessionId": session_id})
                history = self._append_and_load_history(session_id, query)
                status.completed(STEP_ANALYZE, StatusMessages.HISTORY_LOADED, {"messages": len(history)})
            else:
                status.completed(STEP_ANALYZE, StatusMessages.QUERY_ANALYZED)

            status.executing(STEP_PREPARE, StatusMessages.QUERY_PREPARED)
            if context is None:
                rows = await self._retrieval.retrieve_context(query, self._top_k if top_k is None else top_k)
                context = build_context_prompt(rows)
            messages = self._build_messages(history, query, context)
            status.completed(
                STEP_PREPARE,
                StatusMessages.QUERY_PREPARED,
                {"historyTurns": len(history), "contextChars": len(context)},
            )

            status.executing(STEP_MODEL_CALL, StatusMessages.WAITING_MODEL)
            completion = await self._complete(messages)
            action = completion.proposed_action
            status.completed(
                STEP_MODEL_CALL,
                StatusMessages.RECEIVED_RESPONSE,
                {"proposedAction": action.type if action else None},
            )

            response_text = completion.text
            if action is not None:
                tools_used.append(action.type)
                tool_result = await self._dispatcher.execute(action, QueryContext(query, context), status)
                messages.append({"role": "assistant", "content": completion.text, "tool_call": action})
                messages.append({"role": "tool", "content": json.dumps(tool_result, default=str), "tool_call": action})

                status.executing(STEP_FOLLOW_UP, StatusMessages.SENDING_TOOL_RESULTS)
                follow_up = await self._complete(messages)
                if follow_up.proposed_action is not None:
                    logger.warning(
                        f"Ignoring second proposed action {follow_up.proposed_action.type}: "
                        f"one tool round-trip per turn"
                    )
                response_text = follow_up.text
                status.completed(STEP_FOLLOW_UP, StatusMessages.RECEIVED_FINAL)

            if self._memory_enabled:
                self._memory.append_message(session_id, "assistant", response_text)
            status.completed(
                STEP_FINALIZE,
                StatusMessages.RESPONSE_COMPLETE if tools_used else StatusMessages.RESPONSE_COMPLETE_NO_TOOLS,
            )

            return AnswerResult(
                success=True,
                response=response_text,
                steps=status.get_steps(),
                tools_used=tools_used,
                execution_time_ms=self._clock() - start,
                session_id=session_id,
            )
        except Exception as ex:
            error = str(ex) or type(ex).__name__
            logger.error(f"Answer pipeline failed: {type(ex).__name__}: {error}")
            status.failed(
                STEP_FAILURE,
                StatusMessages.error_occurred(error),
                {"error": error, "errorType": type(ex).__name__},
            )
            return AnswerResult(
                success=False,
                response=APOLOGY,
                steps=status.get_steps(),
                tools_used=tools_used,
                execution_time_ms=self._clock() - start,
                session_id=session_id,
            )

    def _append_and_load_history(self, session_id: str, query: str) -> list[Message]:
        # The just-written user message is sent as the query turn, not as history
        user_message = self._memory.append_message(session_id, "user", query)
        recent = self._memory.recent_messages(session_id, self._history_window + 1)
        return [m for m in recent if m.id != user_message.id][-self._history_window:]

    def _build_messages(self, history: list[Message], query: str, context: str) -> list[dict]:
        messages: list[dict] = [{"role": "system", "content": self._system_prompt}]
        messages.extend({"role": m.role, "content": m.content} for m in history)
        messages.append({"role": "user", "content": query})
        if context:
            messages.append({"role": "assistant", "content": context, "context": True})
        return messages

    async def _complete(self, messages: list[dict]) -> Completion:
        try:
            return await asyncio.wait_for(
                self._provider.complete(
                    self._model,
                    self._max_tokens,
                    self._temperature,
                    list(messages),
                    self._tool_specs,
                ),
                timeout=self._model_timeout_seconds,
            )
        except TimeoutError as ex:
            raise ModelCallFailure(f"Model call timed out after {self._model_timeout_seconds:g}s") from ex
