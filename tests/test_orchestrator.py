import asyncio
import json
import unittest

import httpx

from travel_rag_agent.errors import ModelCallFailure, RetrievalFailure
from travel_rag_agent.memory import MemoryStore
from travel_rag_agent.orchestrator import APOLOGY, ConversationOrchestrator
from travel_rag_agent.provider import Completion, ToolInvocation
from travel_rag_agent.storage import Database
from travel_rag_agent.tool_dispatcher import ToolDispatcher
from travel_rag_agent.tools.weather_tool import WeatherTool
from tests.fakes import FakeClock, FakeProvider, FakeRetrieval, FakeTool, context_rows


class _SlowProvider(FakeProvider):
    async def complete(self, model, max_tokens, temperature, messages, tools):
        await asyncio.sleep(1)
        return Completion(text="late")


class _UnresolvableWeather(WeatherTool):
    """Weather tool whose geocoder never finds anything."""

    def __init__(self) -> None:
        super().__init__(transport=httpx.MockTransport(lambda request: httpx.Response(200, json={})))


def _stalled_forecast_transport() -> httpx.MockTransport:
    async def handler(request: httpx.Request) -> httpx.Response:
        if request.url.host == "geocoding-api.open-meteo.com":
            await asyncio.sleep(0.05)
            return httpx.Response(200, json={"results": [{"latitude": 35.0, "longitude": 135.7, "name": "Kyoto"}]})
        await asyncio.sleep(5)
        return httpx.Response(200, json={})

    return httpx.MockTransport(handler)


class OrchestratorTestCase(unittest.TestCase):
    def setUp(self) -> None:
        self._db = Database(":memory:")
        self._memory = MemoryStore(self._db)
        self._retrieval = FakeRetrieval(context_rows("Ueno Park is famous for cherry blossoms.", "Shinjuku Gyoen blends three garden styles."))

    def tearDown(self) -> None:
        self._db.close()

    def _orchestrator(self, provider, tools=None, **overrides) -> ConversationOrchestrator:
        kwargs = dict(
            provider=provider,
            retrieval=self._retrieval,
            dispatcher=ToolDispatcher(tools or []),
            model="gpt-4.1",
            max_tokens=512,
            temperature=0.7,
            memory=self._memory,
            clock=FakeClock(),
            session_id_factory=lambda: "chat_test_000001",
        )
        kwargs.update(overrides)
        return ConversationOrchestrator(**kwargs)


class AnswerScenarioTests(OrchestratorTestCase):
    def test_plain_answer_creates_session(self) -> None:
        provider = FakeProvider([Completion(text="Try Ueno Park and Shinjuku Gyoen.")])

        result = asyncio.run(self._orchestrator(provider).answer("best parks in Tokyo"))

        self.assertTrue(result.success)
        self.assertEqual("Try Ueno Park and Shinjuku Gyoen.", result.response)
        self.assertEqual([], result.tools_used)
        self.assertEqual("chat_test_000001", result.session_id)
        self.assertEqual("best parks in Tokyo", self._memory.get_session(result.session_id).title)
        self.assertEqual(1, len(provider.calls))
        steps = [s.step for s in result.steps]
        self.assertNotIn(4, steps)
        self.assertNotIn(5, steps)
        self.assertEqual(6, result.steps[-1].step)
        self.assertEqual("Response generation completed (no tools needed)", result.steps[-1].description)
        history = self._memory.recent_messages(result.session_id, 8)
        self.assertEqual(
            [("user", "best parks in Tokyo"), ("assistant", "Try Ueno Park and Shinjuku Gyoen.")],
            [(m.role, m.content) for m in history],
        )

    def test_model_input_layout(self) -> None:
        provider = FakeProvider([Completion(text="ok")])

        asyncio.run(self._orchestrator(provider, response_format="markdown").answer("best parks in Tokyo"))

        messages = provider.calls[0]["messages"]
        self.assertEqual(["system", "user", "assistant"], [m["role"] for m in messages])
        self.assertIn("Markdown", messages[0]["content"])
        self.assertEqual("best parks in Tokyo", messages[1]["content"])
        self.assertTrue(messages[2]["context"])
        self.assertTrue(messages[2]["content"].startswith("Context 1:\nUeno Park"))

    def test_web_search_round_trip(self) -> None:
        provider = FakeProvider([
            Completion(text="", proposed_action=ToolInvocation(type="web_search_call", arguments={"query": "Tokyo parks"})),
            Completion(text="Here are the parks."),
        ])
        search = FakeTool("web_search_call", {"resolved_by": "model"})

        result = asyncio.run(self._orchestrator(provider, tools=[search]).answer("best parks in Tokyo"))

        self.assertTrue(result.success)
        self.assertEqual(["web_search_call"], result.tools_used)
        self.assertEqual("Here are the parks.", result.response)
        self.assertEqual(2, len(provider.calls))
        tool_steps = [(s.status, s.description) for s in result.steps if s.step == 4]
        self.assertEqual(
            [("executing", "Executing web_search_call"), ("completed", "web_search_call completed successfully")],
            tool_steps,
        )
        follow_up = provider.calls[1]["messages"]
        self.assertEqual("tool", follow_up[-1]["role"])
        self.assertEqual("model", json.loads(follow_up[-1]["content"])["resolved_by"])
        self.assertEqual("web_search_call", follow_up[-1]["tool_call"].type)

    def test_existing_session_history_is_sent_in_order(self) -> None:
        self._memory.create_session("chat_existing_abcdef", "Kyoto")
        for role, content in [("user", "temples in Kyoto?"), ("assistant", "Kinkaku-ji."), ("user", "and gardens?")]:
            self._memory.append_message("chat_existing_abcdef", role, content)
        self.assertEqual(
            ["temples in Kyoto?", "Kinkaku-ji.", "and gardens?"],
            [m.content for m in self._memory.recent_messages("chat_existing_abcdef", 8)],
        )
        provider = FakeProvider([Completion(text="Ryoan-ji.")])

        result = asyncio.run(self._orchestrator(provider).answer("any zen ones?", "chat_existing_abcdef"))

        self.assertEqual("chat_existing_abcdef", result.session_id)
        messages = provider.calls[0]["messages"]
        self.assertEqual(
            ["temples in Kyoto?", "Kinkaku-ji.", "and gardens?", "any zen ones?"],
            [m["content"] for m in messages[1:5]],
        )
        self.assertNotIn("Chat session created", [s.description for s in result.steps])

    def test_weather_not_found_still_answers(self) -> None:
        provider = FakeProvider([
            Completion(text="", proposed_action=ToolInvocation(type="get_weather", arguments={"location": "Xyzzy"}, call_id="c1")),
            Completion(text="I couldn't find that place."),
        ])

        result = asyncio.run(self._orchestrator(provider, tools=[_UnresolvableWeather()]).answer("weather in Xyzzy"))

        self.assertTrue(result.success)
        self.assertEqual(["get_weather"], result.tools_used)
        tool_result = json.loads(provider.calls[1]["messages"][-1]["content"])
        self.assertEqual("Location not found", tool_result["error"])

    def test_hung_weather_service_answers_with_fallback(self) -> None:
        provider = FakeProvider([
            Completion(text="", proposed_action=ToolInvocation(type="get_weather", arguments={"location": "Kyoto"}, call_id="c1")),
            Completion(text="It should be mild in Kyoto."),
        ])
        weather = WeatherTool(timeout=0.1, transport=_stalled_forecast_transport())
        orchestrator = self._orchestrator(provider, dispatcher=ToolDispatcher([weather], timeout_seconds=0.2))

        result = asyncio.run(orchestrator.answer("weather in Kyoto"))

        self.assertTrue(result.success)
        self.assertEqual("It should be mild in Kyoto.", result.response)
        self.assertNotIn("failed", [s.status for s in result.steps])
        tool_result = json.loads(provider.calls[1]["messages"][-1]["content"])
        self.assertIn("fallbackTemp", tool_result)

    def test_vector_store_failure_returns_apology(self) -> None:
        self._retrieval = FakeRetrieval(error=RetrievalFailure("nearest() failed"))
        provider = FakeProvider([Completion(text="unused")])

        result = asyncio.run(self._orchestrator(provider).answer("best parks in Tokyo"))

        self.assertFalse(result.success)
        self.assertEqual(APOLOGY, result.response)
        failures = [s for s in result.steps if s.status == "failed"]
        self.assertEqual(1, len(failures))
        self.assertEqual(-1, failures[0].step)
        self.assertEqual("RetrievalFailure", failures[0].data["errorType"])
        self.assertEqual([], provider.calls)
        self.assertEqual("chat_test_000001", result.session_id)


class AnswerPropertyTests(OrchestratorTestCase):
    def test_failing_tool_degrades_gracefully(self) -> None:
        provider = FakeProvider([
            Completion(text="", proposed_action=ToolInvocation(type="custom_api_call")),
            Completion(text="unused"),
        ])
        tool = FakeTool("custom_api_call", error=RuntimeError("upstream down"))

        result = asyncio.run(self._orchestrator(provider, tools=[tool]).answer("hotel prices"))

        self.assertFalse(result.success)
        self.assertEqual(APOLOGY, result.response)
        self.assertEqual(["custom_api_call"], result.tools_used)
        self.assertEqual(1, len(provider.calls))
        self.assertEqual((-1, "failed"), (result.steps[-1].step, result.steps[-1].status))

    def test_second_proposed_action_is_not_serviced(self) -> None:
        provider = FakeProvider([
            Completion(text="", proposed_action=ToolInvocation(type="database_lookup")),
            Completion(text="done", proposed_action=ToolInvocation(type="get_weather")),
        ])
        lookup = FakeTool("database_lookup", {"found": True})
        weather = FakeTool("get_weather", {})

        result = asyncio.run(self._orchestrator(provider, tools=[lookup, weather]).answer("museums"))

        self.assertTrue(result.success)
        self.assertEqual(["database_lookup"], result.tools_used)
        self.assertEqual([], weather.calls)
        self.assertEqual(2, len(provider.calls))

    def test_unknown_tool_type_is_echoed(self) -> None:
        provider = FakeProvider([
            Completion(text="", proposed_action=ToolInvocation(type="image_generation_call")),
            Completion(text="final"),
        ])

        result = asyncio.run(self._orchestrator(provider).answer("draw Tokyo"))

        self.assertTrue(result.success)
        self.assertEqual(["image_generation_call"], result.tools_used)
        self.assertIn("Using default behavior for image_generation_call", [s.description for s in result.steps])

    def test_steps_are_ordered(self) -> None:
        provider = FakeProvider([
            Completion(text="", proposed_action=ToolInvocation(type="database_lookup")),
            Completion(text="final"),
        ])
        result = asyncio.run(
            self._orchestrator(provider, tools=[FakeTool("database_lookup", {})]).answer("q")
        )

        timestamps = [s.timestamp for s in result.steps]
        self.assertEqual(sorted(timestamps), timestamps)
        first_seen: list[int] = []
        for s in result.steps:
            if s.step not in first_seen:
                first_seen.append(s.step)
        self.assertEqual([1, 2, 3, 4, 5, 6], first_seen)

    def test_observer_sees_every_step(self) -> None:
        seen = []
        provider = FakeProvider([Completion(text="hi")])

        result = asyncio.run(self._orchestrator(provider).answer("q", on_status=seen.append))

        self.assertEqual(result.steps, seen)

    def test_raising_observer_does_not_escape_answer(self) -> None:
        def observer(event) -> None:
            raise RuntimeError("observer broke")

        provider = FakeProvider([Completion(text="hi")])

        result = asyncio.run(self._orchestrator(provider).answer("q", on_status=observer))

        self.assertTrue(result.success)
        self.assertEqual("hi", result.response)

    def test_memory_disabled(self) -> None:
        provider = FakeProvider([Completion(text="hi")])

        result = asyncio.run(self._orchestrator(provider, memory_enabled=False).answer("q", "chat_ignored_000000"))

        self.assertTrue(result.success)
        self.assertIsNone(result.session_id)
        self.assertNotIn("sessionId", result.to_dict())
        self.assertEqual([], self._memory.list_sessions())

    def test_supplied_context_skips_retrieval(self) -> None:
        provider = FakeProvider([Completion(text="hi")])

        asyncio.run(self._orchestrator(provider).answer("q", context="Context 1:\nprecomputed"))

        self.assertEqual([], self._retrieval.calls)
        self.assertEqual("Context 1:\nprecomputed", provider.calls[0]["messages"][-1]["content"])

    def test_unknown_session_id_fails_the_turn(self) -> None:
        provider = FakeProvider([Completion(text="hi")])

        result = asyncio.run(self._orchestrator(provider).answer("q", "chat_never_created"))

        self.assertFalse(result.success)
        self.assertEqual("UnknownSession", result.steps[-1].data["errorType"])

    def test_model_failure_returns_apology(self) -> None:
        provider = FakeProvider(error=ModelCallFailure("503 from provider"))

        result = asyncio.run(self._orchestrator(provider).answer("q"))

        self.assertFalse(result.success)
        self.assertEqual("Error occurred: 503 from provider", result.steps[-1].description)

    def test_model_timeout_becomes_failure(self) -> None:
        result = asyncio.run(self._orchestrator(_SlowProvider(), model_timeout_seconds=0.01).answer("q"))

        self.assertFalse(result.success)
        self.assertEqual("ModelCallFailure", result.steps[-1].data["errorType"])

    def test_history_window_limits_prior_turns(self) -> None:
        self._memory.create_session("s-long", "long")
        for i in range(12):
            self._memory.append_message("s-long", "user" if i % 2 == 0 else "assistant", f"m{i}")
        provider = FakeProvider([Completion(text="ok")])

        asyncio.run(self._orchestrator(provider, history_window=4).answer("latest", "s-long"))

        contents = [m["content"] for m in provider.calls[0]["messages"]]
        self.assertEqual(["m8", "m9", "m10", "m11", "latest"], contents[1:6])

    def test_to_dict_uses_wire_keys(self) -> None:
        provider = FakeProvider([Completion(text="hi")])
        result = asyncio.run(self._orchestrator(provider).answer("q"))
        self.assertEqual(
            {"success", "response", "steps", "toolsUsed", "executionTimeMs", "sessionId"},
            set(result.to_dict()),
        )
        self.assertGreater(result.execution_time_ms, 0)
