"""Tests for the chat orchestrator and its tool loop.

Covers:
  - Configuration gate (no API key, no model client)
  - Tool loop bound and routing
  - Concurrent tool execution with failure isolation
  - Kathmandu hotel search end to end, with pricing sanitised
  - Model failures on the first call and inside the loop
  - Malformed tool arguments
  - Personalisation, channel prompts and fire-and-forget side effects
"""

from __future__ import annotations

import json
from unittest.mock import MagicMock, patch

import pytest
from langchain_core.messages import AIMessage, HumanMessage, SystemMessage, ToolMessage

from expedition_chat.agent import (
    CONFIG_ERROR,
    MODEL_ERROR,
    ChatOrchestrator,
    ChatRequestParams,
    ChatState,
    _build_llm,
    _make_should_use_tools,
    run_tool_call,
)
from expedition_chat.config import Settings
from expedition_chat.guardrails import REDACTION_TEXT
from expedition_chat.memory import ClientPreferences, ClientProfile
from expedition_chat.sanitizer import EMPTY_RATES_HINT
from expedition_chat.scoring import LeadScorer


# ── Helpers ──────────────────────────────────────────────────────────


def _tool_calls(*calls: tuple[str, dict], content: str = "", prefix: str = "call") -> AIMessage:
    """An AIMessage asking for the given ``(name, args)`` tool calls."""
    return AIMessage(
        content=content,
        tool_calls=[
            {"name": name, "args": args, "id": f"{prefix}_{i}", "type": "tool_call"}
            for i, (name, args) in enumerate(calls)
        ],
    )


def _ask(text: str, **kwargs) -> ChatRequestParams:
    return ChatRequestParams(messages=[{"role": "user", "content": text}], **kwargs)


def _tool_messages(llm, call_index: int) -> list[ToolMessage]:
    """ToolMessages the LLM saw on its ``call_index``-th invocation."""
    sent = llm.invoke.call_args_list[call_index][0][0]
    return [m for m in sent if isinstance(m, ToolMessage)]


def _system_prompt(llm, call_index: int = 0) -> str:
    sent = llm.invoke.call_args_list[call_index][0][0]
    assert isinstance(sent[0], SystemMessage)
    return sent[0].content


@pytest.fixture
def orchestrator_factory(settings, registry, background):
    def _make(executor=None, **kwargs):
        kwargs.setdefault("background", background)
        return ChatOrchestrator(kwargs.pop("settings", settings), executor or registry, **kwargs)

    return _make


# ── Configuration gate ───────────────────────────────────────────────


class TestConfigurationGate:
    @patch("expedition_chat.agent._build_llm")
    def test_missing_key_refuses_without_building_client(self, mock_build, registry):
        orchestrator = ChatOrchestrator(Settings(deepseek_api_key=None), registry)
        result = orchestrator.process_chat_message(_ask("Hello"))

        assert result.success is False
        assert result.error == CONFIG_ERROR
        assert result.response == ""
        mock_build.assert_not_called()

    def test_ai_configured_reflects_settings(self, registry):
        assert ChatOrchestrator(Settings(deepseek_api_key="k"), registry).ai_configured
        assert not ChatOrchestrator(Settings(), registry).ai_configured

    @patch("expedition_chat.agent.ChatOpenAI")
    def test_model_client_makes_one_request_per_call_by_default(self, mock_chat_openai):
        _build_llm(Settings(deepseek_api_key="k"), "whatsapp")

        kwargs = mock_chat_openai.call_args.kwargs
        assert kwargs["max_retries"] == 0
        assert kwargs["max_tokens"] == 1500
        mock_chat_openai.return_value.bind_tools.assert_called_once()
        assert mock_chat_openai.return_value.bind_tools.call_args.kwargs["tool_choice"] == "auto"


# ── Routing ──────────────────────────────────────────────────────────


class TestShouldUseTools:
    def _state(self, message, iterations=0, halted=False) -> ChatState:
        return {"messages": [message], "system_prompt": "", "iterations": iterations, "halted": halted}

    def test_routes_to_tools_when_calls_present(self):
        route = _make_should_use_tools(10)
        assert route(self._state(_tool_calls(("get_destinations", {})))) == "tools"

    def test_routes_to_end_for_plain_text(self):
        route = _make_should_use_tools(10)
        assert route(self._state(AIMessage(content="Namaste!"))) == "__end__"

    def test_routes_to_end_at_iteration_cap(self):
        route = _make_should_use_tools(10)
        assert route(self._state(_tool_calls(("get_destinations", {})), iterations=10)) == "__end__"

    def test_routes_to_end_when_halted(self):
        route = _make_should_use_tools(10)
        state = self._state(_tool_calls(("get_destinations", {})), halted=True)
        assert route(state) == "__end__"


# ── Tool loop ────────────────────────────────────────────────────────


class TestToolLoop:
    @patch("expedition_chat.agent._build_llm")
    def test_loop_stops_after_ten_round_trips(self, mock_build, orchestrator_factory):
        """A model that never stops asking for tools gets 10 tool rounds and 11 calls."""
        responses = [
            _tool_calls(("get_categories", {}), content=f"Still checking ({i})", prefix=f"r{i}")
            for i in range(20)
        ]
        llm = MagicMock()
        llm.invoke.side_effect = responses
        mock_build.return_value = llm
        executor = MagicMock()
        executor.execute.return_value = {"categories": ["hotel"]}

        result = orchestrator_factory(executor).process_chat_message(_ask("Plan my trip"))

        assert result.success is True
        assert result.response == "Still checking (10)"
        assert llm.invoke.call_count == 11
        assert executor.execute.call_count == 10

    @patch("expedition_chat.agent._build_llm")
    def test_plain_answer_needs_one_call(self, mock_build, orchestrator_factory, scripted_llm):
        mock_build.return_value = scripted_llm(AIMessage(content="Namaste! Where would you like to go?"))
        executor = MagicMock()

        result = orchestrator_factory(executor).process_chat_message(_ask("Hi"))

        assert result.success is True
        assert result.response == "Namaste! Where would you like to go?"
        executor.execute.assert_not_called()

    @patch("expedition_chat.agent._build_llm")
    def test_one_failing_tool_does_not_abort_siblings(self, mock_build, orchestrator_factory, scripted_llm):
        llm = scripted_llm(
            _tool_calls(
                ("search_hotels", {"destination": "Kathmandu"}),
                ("get_booking_status", {"bookingReference": "CA-2026-0001"}),
                ("get_destinations", {"country": "Nepal"}),
            ),
            AIMessage(content="Here is what I found."),
        )
        mock_build.return_value = llm

        def execute(name, args):
            if name == "get_booking_status":
                raise ConnectionError("database unavailable")
            if name == "search_hotels":
                return {"rates": [{"name": "Dwarika's", "sellPrice": 450, "costPrice": 300}], "count": 1}
            return [{"country": "Nepal", "city": "Kathmandu"}]

        executor = MagicMock()
        executor.execute.side_effect = execute

        result = orchestrator_factory(executor).process_chat_message(_ask("Status and hotels please"))

        assert result.success is True
        results = {m.name: json.loads(m.content) for m in _tool_messages(llm, 1)}
        assert set(results) == {"search_hotels", "get_booking_status", "get_destinations"}
        assert results["search_hotels"]["rates"][0] == {"name": "Dwarika's", "sellPrice": 450}
        assert results["get_destinations"] == [{"country": "Nepal", "city": "Kathmandu"}]
        assert results["get_booking_status"]["error"] == "Tool execution failed"
        assert results["get_booking_status"]["message"] == "database unavailable"
        assert "fallback_hint" in results["get_booking_status"]

    @patch("expedition_chat.agent._build_llm")
    def test_tool_messages_keep_call_order_and_ids(self, mock_build, orchestrator_factory, scripted_llm):
        llm = scripted_llm(
            _tool_calls(("get_categories", {}), ("get_destinations", {}), ("get_categories", {"destination": "Paro"})),
            AIMessage(content="Done."),
        )
        mock_build.return_value = llm

        orchestrator_factory().process_chat_message(_ask("What can I book?"))

        assert [m.tool_call_id for m in _tool_messages(llm, 1)] == ["call_0", "call_1", "call_2"]

    @patch("expedition_chat.agent._build_llm")
    def test_unknown_tool_becomes_error_result(self, mock_build, orchestrator_factory, scripted_llm):
        llm = scripted_llm(
            _tool_calls(("book_everest_summit", {})),
            AIMessage(content="I can't do that, but here is an alternative."),
        )
        mock_build.return_value = llm

        result = orchestrator_factory().process_chat_message(_ask("Book the summit"))

        assert result.success is True
        (message,) = _tool_messages(llm, 1)
        payload = json.loads(message.content)
        assert payload["error"] == "Tool execution failed"
        assert "book_everest_summit" in payload["message"]


# ── End to end ───────────────────────────────────────────────────────


class TestKathmanduHotelSearch:
    @patch("expedition_chat.agent._build_llm")
    def test_pricing_is_sanitised_before_the_second_call(self, mock_build, orchestrator_factory, scripted_llm):
        llm = scripted_llm(
            _tool_calls(("search_hotels", {"destination": "Kathmandu", "starRating": 5})),
            AIMessage(content="X is a wonderful 5-star option in Kathmandu."),
        )
        mock_build.return_value = llm
        executor = MagicMock()
        executor.execute.return_value = [
            {"name": "X", "sellPrice": 500, "costPrice": 300, "marginPercent": 40},
        ]

        result = orchestrator_factory(executor).process_chat_message(
            ChatRequestParams(messages=[{"role": "user", "content": "Find 5-star hotels in Kathmandu"}])
        )

        assert result.success is True
        assert result.response == "X is a wonderful 5-star option in Kathmandu."
        executor.execute.assert_called_once_with("search_hotels", {"destination": "Kathmandu", "starRating": 5})
        (message,) = _tool_messages(llm, 1)
        assert json.loads(message.content) == [{"name": "X", "sellPrice": 500}]
        assert "costPrice" not in message.content
        assert "marginPercent" not in message.content

    @patch("expedition_chat.agent._build_llm")
    def test_registry_results_never_carry_cost_fields(self, mock_build, orchestrator_factory, scripted_llm):
        llm = scripted_llm(
            _tool_calls(("search_hotels", {"destination": "Kathmandu", "starRating": 5})),
            AIMessage(content="Two fine hotels."),
        )
        mock_build.return_value = llm

        orchestrator_factory().process_chat_message(_ask("Find 5-star hotels in Kathmandu"))

        (message,) = _tool_messages(llm, 1)
        payload = json.loads(message.content)
        assert payload["count"] == 2
        for forbidden in ("costDouble", "sellDouble", "marginPercent", "costSingle"):
            assert forbidden not in message.content

    @patch("expedition_chat.agent._build_llm")
    def test_empty_search_adds_fallback_hint(self, mock_build, orchestrator_factory, scripted_llm):
        llm = scripted_llm(
            _tool_calls(("search_hotels", {"destination": "Mustang"})),
            AIMessage(content="Let me give you an estimate."),
        )
        mock_build.return_value = llm

        orchestrator_factory().process_chat_message(_ask("Hotels in Mustang?"))

        (message,) = _tool_messages(llm, 1)
        assert json.loads(message.content)["fallback_hint"] == EMPTY_RATES_HINT

    @patch("expedition_chat.agent._build_llm")
    def test_history_precedes_new_messages(self, mock_build, orchestrator_factory, scripted_llm):
        llm = scripted_llm(AIMessage(content="Certainly."))
        mock_build.return_value = llm

        orchestrator_factory().process_chat_message(
            ChatRequestParams(
                messages=[{"role": "user", "content": "And in Pokhara?"}],
                conversation_history=[
                    {"role": "user", "content": "Hotels in Kathmandu?"},
                    {"role": "assistant", "content": "Dwarika's is lovely."},
                ],
            )
        )

        sent = llm.invoke.call_args_list[0][0][0]
        assert [type(m) for m in sent] == [SystemMessage, HumanMessage, AIMessage, HumanMessage]
        assert sent[-1].content == "And in Pokhara?"


# ── Model failures ───────────────────────────────────────────────────


class TestModelFailures:
    @patch("expedition_chat.agent._build_llm")
    def test_first_call_failure_fails_the_turn(self, mock_build, orchestrator_factory, scripted_llm):
        mock_build.return_value = scripted_llm(RuntimeError("503 Service Unavailable"))

        result = orchestrator_factory().process_chat_message(_ask("Hello"))

        assert result.success is False
        assert result.error == MODEL_ERROR

    @patch("expedition_chat.agent._build_llm")
    def test_mid_loop_failure_returns_last_answer(self, mock_build, orchestrator_factory, scripted_llm):
        llm = scripted_llm(
            _tool_calls(("get_destinations", {}), content="Let me look that up for you."),
            RuntimeError("connection reset"),
        )
        mock_build.return_value = llm

        result = orchestrator_factory().process_chat_message(_ask("Where do you operate?"))

        assert result.success is True
        assert result.response == "Let me look that up for you."
        assert llm.invoke.call_count == 2


# ── Malformed arguments ──────────────────────────────────────────────


class TestMalformedArguments:
    @patch("expedition_chat.agent._build_llm")
    def test_unparseable_arguments_become_error_result(self, mock_build, orchestrator_factory, scripted_llm):
        bad = AIMessage(
            content="",
            tool_calls=[{"name": "get_destinations", "args": {}, "id": "ok_0", "type": "tool_call"}],
            invalid_tool_calls=[
                {
                    "name": "search_rates",
                    "args": '{"destination": "Kath',
                    "id": "bad_0",
                    "error": "Unterminated string",
                    "type": "invalid_tool_call",
                }
            ],
        )
        llm = scripted_llm(bad, AIMessage(content="Sorry, let me try that again."))
        mock_build.return_value = llm
        executor = MagicMock()
        executor.execute.return_value = [{"country": "Nepal", "city": "Kathmandu"}]

        result = orchestrator_factory(executor).process_chat_message(_ask("Rates in Kathmandu"))

        assert result.success is True
        executor.execute.assert_called_once_with("get_destinations", {})
        by_id = {m.tool_call_id: json.loads(m.content) for m in _tool_messages(llm, 1)}
        assert by_id["ok_0"] == [{"country": "Nepal", "city": "Kathmandu"}]
        assert by_id["bad_0"]["error"] == "Tool execution failed"
        assert "search_rates" in by_id["bad_0"]["message"]


class TestRunToolCall:
    def test_json_string_results_are_decoded_then_sanitised(self):
        executor = MagicMock()
        executor.execute.return_value = json.dumps({"rates": [{"name": "Y", "costPrice": 10}]})

        content = run_tool_call(executor, "search_rates", {})

        assert json.loads(content) == {"rates": [{"name": "Y"}]}

    def test_invalid_json_string_is_a_tool_error(self):
        executor = MagicMock()
        executor.execute.return_value = "not json"

        payload = json.loads(run_tool_call(executor, "search_rates", {}))

        assert payload["error"] == "Tool execution failed"


# ── Prompt and channel ───────────────────────────────────────────────


class TestPromptAndChannel:
    @patch("expedition_chat.agent._build_llm")
    def test_whatsapp_uses_its_own_client_and_prompt(self, mock_build, orchestrator_factory, scripted_llm, settings):
        llm = scripted_llm(AIMessage(content="Hi!"))
        mock_build.return_value = llm

        result = orchestrator_factory().process_whatsapp_message("Hello from my phone")

        assert result.success is True
        mock_build.assert_called_once_with(settings, "whatsapp")
        assert "WhatsApp Communication Guidelines" in _system_prompt(llm)

    @patch("expedition_chat.agent._build_llm")
    def test_web_prompt_has_no_whatsapp_rules(self, mock_build, orchestrator_factory, scripted_llm):
        llm = scripted_llm(AIMessage(content="Hi!"))
        mock_build.return_value = llm

        orchestrator_factory().process_chat_message(_ask("Hello"))

        assert "WhatsApp" not in _system_prompt(llm)

    @patch("expedition_chat.agent._build_llm")
    def test_known_client_gets_personalised_prompt(self, mock_build, orchestrator_factory, scripted_llm, client_store):
        client_store.add_profile(
            ClientProfile(id=7, name="Asha", preferences=ClientPreferences(travel_style="luxury")),
        )
        llm = scripted_llm(AIMessage(content="Welcome back, Asha."))
        mock_build.return_value = llm

        orchestrator_factory(client_store=client_store).process_chat_message(_ask("Hi again", client_id=7))

        prompt = _system_prompt(llm)
        assert "## CLIENT CONTEXT" in prompt
        assert "Asha" in prompt
        assert "Travel Style: luxury" in prompt

    @patch("expedition_chat.agent._build_llm")
    def test_profile_failure_falls_back_to_base_prompt(self, mock_build, orchestrator_factory, scripted_llm):
        store = MagicMock()
        store.load_client_profile.side_effect = RuntimeError("profile DB down")
        llm = scripted_llm(AIMessage(content="Namaste!"))
        mock_build.return_value = llm

        result = orchestrator_factory(client_store=store).process_chat_message(_ask("Hello", client_id=3))

        assert result.success is True
        assert result.response == "Namaste!"
        assert "CLIENT CONTEXT" not in _system_prompt(llm)


# ── Output checks ────────────────────────────────────────────────────


class TestOutputChecks:
    LEAK = "Dwarika's is lovely. Our cost is $300 per night."

    @patch("expedition_chat.agent._build_llm")
    def test_leaks_are_logged_but_kept_by_default(self, mock_build, orchestrator_factory, scripted_llm):
        mock_build.return_value = scripted_llm(AIMessage(content=self.LEAK))

        result = orchestrator_factory().process_chat_message(_ask("Price?"))

        assert result.response == self.LEAK

    @patch("expedition_chat.agent._build_llm")
    def test_leaks_are_redacted_when_enabled(self, mock_build, orchestrator_factory, scripted_llm):
        mock_build.return_value = scripted_llm(AIMessage(content=self.LEAK))
        settings = Settings(deepseek_api_key="k", redact_output_leaks=True)

        result = orchestrator_factory(settings=settings).process_chat_message(_ask("Price?"))

        assert REDACTION_TEXT in result.response
        assert "$300" not in result.response

    @patch("expedition_chat.agent._build_llm")
    def test_estimates_get_a_disclaimer(self, mock_build, orchestrator_factory, scripted_llm):
        mock_build.return_value = scripted_llm(
            AIMessage(content="A luxury lodge in Mustang is approximately $400 per night."),
        )

        result = orchestrator_factory().process_chat_message(_ask("Mustang lodges?"))

        assert "subject to change" in result.response


# ── Side effects ─────────────────────────────────────────────────────


class TestSideEffects:
    @patch("expedition_chat.agent._build_llm")
    def test_known_client_turn_updates_memory_score_and_locale(
        self, mock_build, settings, registry, client_store, background, scripted_llm,
    ):
        client_store.add_profile(ClientProfile(id=11, name="Bishnu"))
        mock_build.return_value = scripted_llm(AIMessage(content="नमस्ते! Happy to help."))
        scorer = LeadScorer()
        orchestrator = ChatOrchestrator(
            settings, registry, client_store=client_store, lead_scorer=scorer, background=background,
        )

        result = orchestrator.process_chat_message(_ask("नमस्ते, I want a quote for 4 people", client_id=11))
        background.shutdown(wait=True)

        assert result.success is True
        roles = [m.role for m in client_store.history(11)]
        assert sorted(roles) == ["assistant", "user"]
        assert client_store.load_client_profile(11).preferences.preferred_language == "hi"
        assert scorer.store.get(11).current_score > 0

    @patch("expedition_chat.agent._build_llm")
    def test_anonymous_turn_spawns_nothing(self, mock_build, settings, registry, scripted_llm):
        mock_build.return_value = scripted_llm(AIMessage(content="Hello!"))
        background = MagicMock()

        ChatOrchestrator(settings, registry, background=background).process_chat_message(_ask("Hi"))

        background.spawn_detached.assert_not_called()

    @patch("expedition_chat.agent._build_llm")
    def test_failing_side_effect_does_not_fail_the_turn(self, mock_build, settings, registry, background, scripted_llm):
        mock_build.return_value = scripted_llm(AIMessage(content="Hello!"))
        store = MagicMock()
        store.save_conversation_message.side_effect = RuntimeError("disk full")
        store.load_client_profile.return_value = None
        store.load_conversation_memory.return_value = None

        result = ChatOrchestrator(
            settings, registry, client_store=store, background=background,
        ).process_chat_message(_ask("Hi", client_id=5))
        background.shutdown(wait=True)

        assert result.success is True
        assert result.response == "Hello!"
        assert store.save_conversation_message.call_count == 2

    @patch("expedition_chat.agent._build_llm")
    def test_scored_turn_reaches_the_next_prompt(self, mock_build, settings, registry, client_store, scripted_llm):
        llm = scripted_llm(AIMessage(content="Wonderful, let me prepare that."), AIMessage(content="Here it is."))
        mock_build.return_value = llm
        background = MagicMock()
        background.spawn_detached.side_effect = lambda name, fn, *args, **kwargs: fn(*args, **kwargs)
        orchestrator = ChatOrchestrator(settings, registry, client_store=client_store, background=background)

        orchestrator.process_chat_message(
            _ask("We are ready to book now, budget $50,000 for 6 people in Bhutan", client_id=7),
        )
        orchestrator.process_chat_message(_ask("What are the next steps?", client_id=7))

        profile = client_store.load_client_profile(7)
        assert profile.lead_score.status in ("ready_to_book", "qualified")
        prompt = _system_prompt(llm, 1)
        assert "high purchase intent" in prompt
        assert "- Group Size: 6 travelers" in prompt
        assert "- Detected Budget Interest: around 50000" in prompt

    @patch("expedition_chat.agent._build_llm")
    def test_non_latin_message_asks_for_a_reply_in_that_language(self, mock_build, orchestrator_factory, scripted_llm):
        llm = scripted_llm(AIMessage(content="こんにちは"))
        mock_build.return_value = llm

        orchestrator_factory().process_chat_message(_ask("エベレストのツアーはありますか"))

        assert "Reply in Japanese" in _system_prompt(llm)
