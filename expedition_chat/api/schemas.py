"""Pydantic schemas for the FastAPI endpoints."""

from __future__ import annotations

from typing import Literal

from pydantic import BaseModel, Field


class ChatMessage(BaseModel):
    """One message in the web widget's transcript."""

    role: Literal["user", "assistant"]
    content: str = Field(..., max_length=20_000)


class ChatRequest(BaseModel):
    """Incoming chat turn from the web widget."""

    messages: list[ChatMessage] = Field(..., min_length=1, description="The new message(s) of this turn")
    conversation_history: list[ChatMessage] = Field(
        default_factory=list, description="Earlier turns, oldest first",
    )
    client_id: int | None = Field(None, description="Known client, enables personalisation and memory")
    conversation_id: str | None = Field(None, max_length=100)


class ChatResponse(BaseModel):
    """Reply from the Expedition Architect."""

    response: str = Field(..., description="The assistant's message")
    blocked: bool = Field(False, description="True when input guardrails answered instead of the model")
    request_id: str | None = None


class WhatsAppMessageRequest(BaseModel):
    """One inbound WhatsApp text, already resolved to a client where possible."""

    from_number: str = Field(..., min_length=5, max_length=32)
    text: str = Field(..., min_length=1)
    client_id: int | None = None


class HealthResponse(BaseModel):
    """Health check response."""

    status: str = "ok"
    service: str = "expedition-chat"
    ai_configured: bool = False
