"""LangGraph chat orchestrator for the CuratedAscents Expedition Architect.

Architecture:
  One chat turn runs a small LangGraph ``StateGraph`` with two nodes:

    1. **chatbot** - DeepSeek (OpenAI-compatible) call with the full tool
                     palette bound and ``tool_choice="auto"``
    2. **tools**   - runs every tool call of the last model response
                     concurrently, sanitises each result and appends it as
                     a ``ToolMessage``

  Routing:
    chatbot → (tool calls and rounds left?) → tools → chatbot (loop)
            → (final text, round cap hit, or model failure) → END

  The loop is capped at ``max_tool_iterations`` tool rounds (10).  At the
  cap the turn ends with whatever the last assistant message says, even if
  it still asks for tools.

  Failure model:
    - no API key: the turn is refused before any client is built
    - first model call fails: the turn fails ("Failed to get AI response")
    - a later model call fails: the loop stops and the best answer so far
      is returned
    - a tool fails: that call gets a structured error result, its siblings
      are unaffected

  State:
    The graph has no checkpointer.  Continuity between turns lives in the
    client store; every turn rebuilds its message list from the request.
    Lead scoring, memory writes and locale updates are handed to the
    :class:`~expedition_chat.background.BackgroundTaskRunner` and never
    awaited.
"""

from __future__ import annotations

import json
import logging
import time
from collections.abc import Sequence
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from typing import Annotated, Any, Literal

from langchain_core.messages import (
    AIMessage,
    AnyMessage,
    HumanMessage,
    SystemMessage,
    ToolMessage,
)
from langchain_openai import ChatOpenAI
from langgraph.graph import END, StateGraph
from langgraph.graph.message import add_messages
from typing_extensions import TypedDict

from expedition_chat.background import BackgroundTaskRunner
from expedition_chat.config import Settings
from expedition_chat.guardrails import add_pricing_disclaimer, check_output_guardrails
from expedition_chat.language import detect_script_language
from expedition_chat.memory import ClientStore
from expedition_chat.prompts import assemble_system_prompt, get_base_system_prompt
from expedition_chat.sanitizer import sanitize_tool_result
from expedition_chat.scoring import LeadScorer
from expedition_chat.services.metrics import metrics
from expedition_chat.tools.definitions import TOOL_DEFINITIONS
from expedition_chat.tools.registry import ToolExecutor

logger = logging.getLogger(__name__)

Source = Literal["web", "whatsapp"]

CONFIG_ERROR = "DeepSeek API key not configured"
MODEL_ERROR = "Failed to get AI response"
TOOL_FALLBACK_HINT = (
    "Database query failed. Use your knowledge to provide approximate market rates."
)
MAX_TOOL_WORKERS = 8


class ModelCallError(Exception):
    """Raised when the first model call of a turn fails."""


# ── Request / result types ───────────────────────────────────────────


@dataclass
class ChatRequestParams:
    """One inbound chat turn.

    ``messages`` holds the new message(s) of this turn and
    ``conversation_history`` the earlier turns, both as
    ``{"role": ..., "content": ...}`` dicts.
    """

    messages: list[dict[str, str]]
    conversation_history: list[dict[str, str]] = field(default_factory=list)
    client_id: int | None = None
    conversation_id: str | None = None
    source: Source = "web"


@dataclass
class ChatResult:
    success: bool
    response: str = ""
    error: str | None = None


# ── State schema ─────────────────────────────────────────────────────


class ChatState(TypedDict):
    """The state that flows through the graph.

    ``messages`` uses the ``add_messages`` reducer so nodes only return what
    they append.  ``iterations`` counts completed tool rounds and ``halted``
    is set when a model call inside the loop fails.
    """

    messages: Annotated[list[AnyMessage], add_messages]
    system_prompt: str
    iterations: int
    halted: bool


# ── LLM builder ──────────────────────────────────────────────────────


def _build_llm(settings: Settings, source: str):
    """Build the DeepSeek chat model with the tool palette bound."""
    llm = ChatOpenAI(
        model=settings.deepseek_model,
        api_key=settings.deepseek_api_key,
        base_url=settings.deepseek_base_url,
        temperature=settings.temperature,
        max_tokens=settings.max_tokens_for(source),
        timeout=settings.request_timeout_seconds,
        max_retries=settings.max_retries,
    )
    return llm.bind_tools(TOOL_DEFINITIONS, tool_choice="auto")


def _error_body(exc: Exception) -> str:
    """Best-effort upstream response body for logging."""
    body = getattr(exc, "body", None)
    if body is None:
        response = getattr(exc, "response", None)
        body = getattr(response, "text", None)
    return str(body) if body is not None else str(exc)


# ── Node: chatbot ────────────────────────────────────────────────────


def _make_chatbot_node(llm_with_tools, source: str):
    """Create the chatbot node around one bound LLM client."""

    def chatbot_node(state: ChatState) -> dict:
        system = SystemMessage(content=state["system_prompt"])
        t0 = time.perf_counter()
        try:
            response = llm_with_tools.invoke([system] + state["messages"])
        except Exception as exc:
            elapsed = (time.perf_counter() - t0) * 1000
            metrics.record_failure(
                "deepseek", "chat_completion",
                error_type=type(exc).__name__, latency_ms=elapsed,
            )
            if state["iterations"] == 0:
                logger.error("[%s] DeepSeek API error: %s", source, _error_body(exc))
                raise ModelCallError(str(exc)) from exc
            logger.error(
                "[%s] DeepSeek API error in tool loop (round %d): %s",
                source, state["iterations"], _error_body(exc),
            )
            return {"halted": True}

        elapsed = (time.perf_counter() - t0) * 1000
        metrics.record_success("deepseek", "chat_completion", latency_ms=elapsed)
        logger.debug("[%s] chatbot responded in %.0fms", source, elapsed)
        return {"messages": [response]}

    return chatbot_node


# ── Node: tools ──────────────────────────────────────────────────────


def _tool_error(message: str) -> dict[str, str]:
    return {
        "error": "Tool execution failed",
        "message": message,
        "fallback_hint": TOOL_FALLBACK_HINT,
    }


def run_tool_call(executor: ToolExecutor, name: str, args: dict[str, Any]) -> str:
    """Execute one tool call and return the JSON content for its ToolMessage.

    Executor errors become a structured error payload.  Sanitisation runs
    outside the ``try``: a failure there is a bug, not a tool error.
    """
    t0 = time.perf_counter()
    try:
        result = executor.execute(name, args)
        if isinstance(result, str):
            result = json.loads(result)
    except Exception as exc:
        elapsed = (time.perf_counter() - t0) * 1000
        metrics.record_failure("tools", name, error_type=type(exc).__name__, latency_ms=elapsed)
        logger.warning("Tool %s failed: %s", name, exc)
        return json.dumps(_tool_error(str(exc)))

    elapsed = (time.perf_counter() - t0) * 1000
    metrics.record_success("tools", name, latency_ms=elapsed)
    return json.dumps(sanitize_tool_result(result), default=str)


def _make_tools_node(executor: ToolExecutor, source: str):
    """Create the tools node.  All calls of one response run in parallel."""

    def tools_node(state: ChatState) -> dict:
        last = state["messages"][-1]
        calls = [(c["id"], c["name"], c["args"], None) for c in last.tool_calls]
        # Arguments that were not valid JSON land here instead of tool_calls
        calls += [
            (c.get("id") or "", c.get("name") or "", None, c.get("error") or "Invalid JSON arguments")
            for c in getattr(last, "invalid_tool_calls", [])
        ]

        def run(call) -> ToolMessage:
            call_id, name, args, parse_error = call
            logger.info("[%s] Executing tool: %s", source, name)
            if parse_error is not None:
                content = json.dumps(_tool_error(f"Could not parse arguments for {name}: {parse_error}"))
            else:
                content = run_tool_call(executor, name, args)
            return ToolMessage(content=content, tool_call_id=call_id, name=name)

        with ThreadPoolExecutor(max_workers=min(len(calls), MAX_TOOL_WORKERS) or 1) as pool:
            tool_messages = list(pool.map(run, calls))

        return {"messages": tool_messages, "iterations": state["iterations"] + 1}

    return tools_node


# ── Conditional edge ─────────────────────────────────────────────────


def _make_should_use_tools(max_iterations: int):
    def should_use_tools(state: ChatState) -> str:
        """Route to tools while the model asks for them and rounds remain."""
        if state.get("halted"):
            return END
        last = state["messages"][-1]
        wants_tools = bool(getattr(last, "tool_calls", None) or getattr(last, "invalid_tool_calls", None))
        if wants_tools and state["iterations"] < max_iterations:
            return "tools"
        if wants_tools:
            logger.warning("Tool loop stopped after %d rounds", state["iterations"])
        return END

    return should_use_tools


# ── Graph assembly ───────────────────────────────────────────────────


def create_chat_graph(settings: Settings, executor: ToolExecutor, source: str = "web"):
    """Build and compile the chat graph for one channel.

    Returns a compiled graph that can be invoked with::

        graph.invoke(
            {"messages": [...], "system_prompt": "...", "iterations": 0, "halted": False},
            config={"recursion_limit": 2 * settings.max_tool_iterations + 5},
        )
    """
    graph = StateGraph(ChatState)
    graph.add_node("chatbot", _make_chatbot_node(_build_llm(settings, source), source))
    graph.add_node("tools", _make_tools_node(executor, source))
    graph.set_entry_point("chatbot")
    graph.add_conditional_edges(
        "chatbot",
        _make_should_use_tools(settings.max_tool_iterations),
        {"tools": "tools", END: END},
    )
    graph.add_edge("tools", "chatbot")

    compiled = graph.compile()
    logger.debug(
        "Chat graph compiled: model=%s source=%s tools=%d",
        settings.deepseek_model, source, len(TOOL_DEFINITIONS),
    )
    return compiled


# ── Message conversion ───────────────────────────────────────────────


def _to_langchain(messages: Sequence[dict[str, str]]) -> list[AnyMessage]:
    converted: list[AnyMessage] = []
    for msg in messages:
        role, content = msg.get("role"), msg.get("content") or ""
        if role == "user":
            converted.append(HumanMessage(content=content))
        elif role == "assistant":
            converted.append(AIMessage(content=content))
        elif role == "system":
            converted.append(SystemMessage(content=content))
    return converted


def _latest_user_text(messages: Sequence[dict[str, str]]) -> str | None:
    if messages and messages[-1].get("role") == "user":
        return messages[-1].get("content") or None
    return None


def _final_text(messages: Sequence[AnyMessage]) -> str:
    for msg in reversed(messages):
        if isinstance(msg, AIMessage):
            if isinstance(msg.content, str):
                return msg.content
            return "".join(
                part.get("text", "") if isinstance(part, dict) else str(part)
                for part in msg.content
            )
    return ""


# ── Orchestrator ─────────────────────────────────────────────────────


class ChatOrchestrator:
    """Runs chat turns for the web widget and the WhatsApp channel."""

    def __init__(
        self,
        settings: Settings,
        executor: ToolExecutor,
        client_store: ClientStore | None = None,
        lead_scorer: LeadScorer | None = None,
        background: BackgroundTaskRunner | None = None,
    ) -> None:
        self._settings = settings
        self._executor = executor
        self._client_store = client_store
        self._lead_scorer = lead_scorer or LeadScorer()
        self._background = background or BackgroundTaskRunner()
        self._graphs: dict[str, Any] = {}

    @property
    def ai_configured(self) -> bool:
        return self._settings.ai_configured

    def _graph_for(self, source: str):
        if source not in self._graphs:
            self._graphs[source] = create_chat_graph(self._settings, self._executor, source)
        return self._graphs[source]

    # ── Side effects ─────────────────────────────────────────────────

    def _score_lead(self, client_id: int, text: str, conversation_id: str | None) -> None:
        self._lead_scorer.process_conversation(client_id, text, conversation_id)
        if self._client_store is None:
            return
        record = self._lead_scorer.store.get(client_id)
        if record is not None:
            self._client_store.update_lead_score(client_id, record.to_summary())

    def _spawn_inbound_side_effects(
        self, client_id: int, text: str, conversation_id: str | None, language: str | None,
    ) -> None:
        self._background.spawn_detached(
            "lead-scoring", self._score_lead, client_id, text, conversation_id,
        )
        if self._client_store is None:
            return
        self._background.spawn_detached(
            "save-user-message", self._client_store.save_conversation_message,
            client_id, "user", text,
        )
        if language:
            self._background.spawn_detached(
                "update-locale", self._client_store.update_preferred_language,
                client_id, language,
            )

    # ── Prompt ───────────────────────────────────────────────────────

    def _system_prompt(
        self,
        source: str,
        client_id: int | None,
        conversation_id: str | None,
        language: str | None = None,
    ) -> str:
        base = get_base_system_prompt()
        if client_id is None or self._client_store is None:
            return assemble_system_prompt(base, source, reply_language=language)
        try:
            profile = self._client_store.load_client_profile(client_id)
            memory = self._client_store.load_conversation_memory(client_id, conversation_id)
        except Exception:
            logger.exception("[%s] Failed to load client profile for %s", source, client_id)
            return assemble_system_prompt(base, source, reply_language=language)

        logger.info(
            "[%s] Loaded profile for client %s: %s",
            source, client_id, profile.name if profile and profile.name else "Unknown",
        )
        return assemble_system_prompt(base, source, profile, memory, reply_language=language)

    def _finalise(self, text: str, source: str) -> str:
        check = check_output_guardrails(text)
        if not check.safe:
            logger.warning(
                "[%s] Output guardrail violations: %s",
                source, ", ".join(v.label for v in check.violations),
            )
            if self._settings.redact_output_leaks and check.sanitized_response is not None:
                text = check.sanitized_response
        return add_pricing_disclaimer(text)

    # ── Public API ───────────────────────────────────────────────────

    def process_chat_message(self, params: ChatRequestParams) -> ChatResult:
        """Run one chat turn and return the assistant's reply."""
        source = params.source
        if not self._settings.ai_configured:
            return ChatResult(success=False, error=CONFIG_ERROR)

        t0 = time.perf_counter()
        try:
            latest = _latest_user_text(params.messages)
            language = detect_script_language(latest)
            if params.client_id is not None and latest:
                self._spawn_inbound_side_effects(
                    params.client_id, latest, params.conversation_id, language,
                )

            system_prompt = self._system_prompt(
                source, params.client_id, params.conversation_id, language,
            )
            history = _to_langchain(params.conversation_history) + _to_langchain(params.messages)

            final_state = self._graph_for(source).invoke(
                {"messages": history, "system_prompt": system_prompt, "iterations": 0, "halted": False},
                config={"recursion_limit": 2 * self._settings.max_tool_iterations + 5},
            )
            text = _final_text(final_state["messages"])
            rounds = final_state["iterations"]
        except ModelCallError:
            metrics.record_turn(source, success=False)
            return ChatResult(success=False, error=MODEL_ERROR)
        except Exception as exc:
            logger.exception("[%s] Chat processing error", source)
            metrics.record_turn(source, success=False)
            return ChatResult(success=False, error=str(exc))

        elapsed = (time.perf_counter() - t0) * 1000
        metrics.record_turn(source, success=True, tool_rounds=rounds, latency_ms=elapsed)
        logger.info("[%s] Turn finished after %d tool round(s) in %.0fms", source, rounds, elapsed)

        text = self._finalise(text, source)
        if params.client_id is not None and text and self._client_store is not None:
            self._background.spawn_detached(
                "save-assistant-message", self._client_store.save_conversation_message,
                params.client_id, "assistant", text,
            )
        return ChatResult(success=True, response=text)

    def process_whatsapp_message(
        self,
        text: str,
        client_id: int | None = None,
        history: Sequence[dict[str, str]] = (),
    ) -> ChatResult:
        """Run one WhatsApp turn: a single inbound text plus prior history."""
        return self.process_chat_message(
            ChatRequestParams(
                messages=[{"role": "user", "content": text}],
                conversation_history=list(history),
                client_id=client_id,
                source="whatsapp",
            )
        )
