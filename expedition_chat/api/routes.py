"""FastAPI route definitions for the Expedition Chat API."""

from __future__ import annotations

import asyncio
import logging

from fastapi import APIRouter, HTTPException, Request

from expedition_chat.agent import ChatOrchestrator, ChatRequestParams
from expedition_chat.api.schemas import (
    ChatRequest,
    ChatResponse,
    HealthResponse,
    WhatsAppMessageRequest,
)
from expedition_chat.guardrails import check_input_guardrails

logger = logging.getLogger(__name__)

router = APIRouter()

UPSTREAM_ERROR_DETAIL = (
    "I'm having trouble connecting right now. Please try again in a moment."
)


def _get_orchestrator(request: Request) -> ChatOrchestrator:
    """Retrieve the chat orchestrator built by the lifespan in ``server.py``."""
    orchestrator = getattr(request.app.state, "orchestrator", None)
    if orchestrator is None:
        raise HTTPException(
            status_code=503,
            detail="The assistant is still starting up. Please try again in a moment.",
        )
    return orchestrator


# ── Endpoints ────────────────────────────────────────────────────────


@router.get("/health", response_model=HealthResponse)
async def health_check(http_request: Request):
    """Health check endpoint."""
    orchestrator = getattr(http_request.app.state, "orchestrator", None)
    return HealthResponse(ai_configured=bool(orchestrator and orchestrator.ai_configured))


@router.post("/chat", response_model=ChatResponse)
async def chat(request: ChatRequest, http_request: Request):
    """Run one web chat turn.

    Input guardrails see the latest user message first.  A blocked message
    is answered here with ``blocked: true`` and never reaches the model.

    ``process_chat_message`` blocks on the DeepSeek API and the tool
    executor, so it runs in the default thread pool via
    ``asyncio.to_thread``.
    """
    orchestrator = _get_orchestrator(http_request)
    request_id = getattr(http_request.state, "request_id", "?")

    messages = [m.model_dump() for m in request.messages]
    history = [m.model_dump() for m in request.conversation_history]

    latest = next((m["content"] for m in reversed(messages) if m["role"] == "user"), None)
    if latest is not None:
        check = check_input_guardrails(latest, history)
        if not check.allowed:
            logger.warning("[%s] Input blocked by guardrail %s", request_id, check.label)
            return ChatResponse(response=check.reason or "", blocked=True, request_id=request_id)
        if check.label:
            logger.warning("[%s] Input flagged by guardrail %s", request_id, check.label)

    params = ChatRequestParams(
        messages=messages,
        conversation_history=history,
        client_id=request.client_id,
        conversation_id=request.conversation_id,
        source="web",
    )
    result = await asyncio.to_thread(orchestrator.process_chat_message, params)

    if not result.success:
        # The internal error stays in the logs
        logger.error("[%s] Chat turn failed: %s", request_id, result.error)
        raise HTTPException(status_code=502, detail=UPSTREAM_ERROR_DETAIL)

    return ChatResponse(response=result.response, request_id=request_id)


@router.post("/whatsapp/message", response_model=ChatResponse)
async def whatsapp_message(request: WhatsAppMessageRequest, http_request: Request):
    """Run one WhatsApp turn for an inbound text.

    History comes from the client store, so only known clients get
    continuity across messages.
    """
    orchestrator = _get_orchestrator(http_request)
    request_id = getattr(http_request.state, "request_id", "?")
    logger.info("[%s] WhatsApp message from %s", request_id, request.from_number[-4:].rjust(8, "*"))

    check = check_input_guardrails(request.text)
    if not check.allowed:
        logger.warning("[%s] WhatsApp input blocked by guardrail %s", request_id, check.label)
        return ChatResponse(response=check.reason or "", blocked=True, request_id=request_id)

    history = []
    store = getattr(http_request.app.state, "client_store", None)
    if request.client_id is not None and store is not None:
        history = [
            {"role": m.role, "content": m.content}
            for m in store.history(request.client_id)
        ]

    result = await asyncio.to_thread(
        orchestrator.process_whatsapp_message, request.text, request.client_id, history,
    )
    if not result.success:
        logger.error("[%s] WhatsApp turn failed: %s", request_id, result.error)
        raise HTTPException(status_code=502, detail=UPSTREAM_ERROR_DETAIL)

    return ChatResponse(response=result.response, request_id=request_id)
