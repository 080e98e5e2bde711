"""Client profiles and per-client conversation memory.

The chat orchestrator reads a :class:`ClientProfile` and a
:class:`ConversationMemory` when building the system prompt, and appends
every user / assistant turn back to the store.  Persistence itself belongs
to the platform database; this module defines the contract
(:class:`ClientStore`) plus a thread-safe in-memory implementation used by
the CLI, the dev server and the tests.
"""

from __future__ import annotations

import logging
import re
import threading
from datetime import UTC, datetime
from typing import Any, Protocol

from pydantic import BaseModel, Field

logger = logging.getLogger(__name__)

MAX_STORED_MESSAGES = 100
MEMORY_WINDOW = 20


# ── Models ───────────────────────────────────────────────────────────


class SpecialOccasion(BaseModel):
    type: str
    date: str  # ISO date, e.g. "2026-11-02"


class ClientPreferences(BaseModel):
    travel_style: str | None = None
    interests: list[str] = Field(default_factory=list)
    dietary_restrictions: list[str] = Field(default_factory=list)
    accessibility_needs: list[str] = Field(default_factory=list)
    preferred_language: str = "en"
    formality_level: str = "professional"
    communication_style: str | None = "detailed"
    special_occasions: list[SpecialOccasion] = Field(default_factory=list)


class LeadScoreSummary(BaseModel):
    score: int = 0
    status: str = "new"
    detected_budget: str | None = None
    detected_destinations: list[str] = Field(default_factory=list)
    detected_group_size: int | None = None


class PastTrip(BaseModel):
    destination: str
    date: str
    type: str = "Trip"


class ActiveQuote(BaseModel):
    id: int
    name: str
    destination: str
    status: str
    total_price: str


class ClientProfile(BaseModel):
    id: int
    email: str | None = None
    name: str | None = None
    preferences: ClientPreferences = Field(default_factory=ClientPreferences)
    lead_score: LeadScoreSummary | None = None
    past_trips: list[PastTrip] = Field(default_factory=list)
    active_quotes: list[ActiveQuote] = Field(default_factory=list)


class StoredMessage(BaseModel):
    role: str
    content: str
    timestamp: str = Field(default_factory=lambda: datetime.now(UTC).isoformat())


class ExtractedContext(BaseModel):
    mentioned_destinations: list[str] = Field(default_factory=list)
    mentioned_dates: list[str] = Field(default_factory=list)
    mentioned_budget: str | None = None
    travelers_count: int | None = None
    trip_type: str | None = None
    interests: list[str] = Field(default_factory=list)


class ConversationMemory(BaseModel):
    recent_messages: list[StoredMessage] = Field(default_factory=list)
    extracted_context: ExtractedContext = Field(default_factory=ExtractedContext)


# ── Context extraction ───────────────────────────────────────────────

_DESTINATION_PATTERNS = [
    re.compile(r"\b(everest|annapurna|langtang|manaslu|mustang|dolpo)\b", re.I),
    re.compile(r"\b(kathmandu|pokhara|chitwan|lumbini|nagarkot)\b", re.I),
    re.compile(r"\b(bhutan|paro|thimphu|punakha)\b", re.I),
    re.compile(r"\b(tibet|lhasa|shigatse)\b", re.I),
    re.compile(r"\b(nepal|india|darjeeling|sikkim)\b", re.I),
]

_DATE_PATTERNS = [
    re.compile(
        r"\b(?:january|february|march|april|may|june|july|august|september"
        r"|october|november|december)(?:\s*\d{1,4})?\b",
        re.I,
    ),
    re.compile(r"\b\d{1,2}[/\-]\d{1,2}[/\-]\d{2,4}\b"),
    re.compile(r"\b(?:spring|summer|fall|autumn|winter)(?:\s*\d{4})?\b", re.I),
    re.compile(r"\b(?:next\s+)?(?:week|month|year)\b", re.I),
]

_BUDGET_PATTERNS = [
    re.compile(r"\$\s*[\d,]+(?:\s*-\s*\$?\s*[\d,]+)?"),
    re.compile(r"budget\s*(?:of|around|is)?\s*\$?\s*[\d,]+", re.I),
    re.compile(r"[\d,]+\s*(?:usd|dollars?)", re.I),
]

_TRAVELERS_PATTERNS = [
    re.compile(r"(\d+)\s*(?:people|persons?|travelers?|travellers?|pax|of us)", re.I),
    re.compile(r"(?:group of|party of|family of)\s*(\d+)", re.I),
    re.compile(r"(?:couple|two of us|just me|solo)", re.I),
]

_INTEREST_PATTERNS = [
    re.compile(r"\b(trekking|hiking|climbing|mountaineering)\b", re.I),
    re.compile(r"\b(cultural?|heritage|temples?|monasteries?)\b", re.I),
    re.compile(r"\b(wildlife|safari|jungle|nature)\b", re.I),
    re.compile(r"\b(photography|adventure|relaxation|spa)\b", re.I),
    re.compile(r"\b(luxury|budget|mid-range|comfortable)\b", re.I),
]


def _dedupe(items: list[str]) -> list[str]:
    return list(dict.fromkeys(items))


def extract_conversation_context(messages: list[Any]) -> ExtractedContext:
    """Pull trip-planning facts out of the client's own messages.

    Accepts :class:`StoredMessage` objects or plain ``{"role", "content"}``
    dicts.  Assistant messages are ignored.
    """
    ctx = ExtractedContext()

    for msg in messages:
        role = msg.get("role") if isinstance(msg, dict) else msg.role
        text = msg.get("content", "") if isinstance(msg, dict) else msg.content
        if role != "user" or not text:
            continue

        for pattern in _DESTINATION_PATTERNS:
            ctx.mentioned_destinations.extend(m.lower() for m in pattern.findall(text))

        for pattern in _DATE_PATTERNS:
            ctx.mentioned_dates.extend(m.group(0) for m in pattern.finditer(text))

        if ctx.mentioned_budget is None:
            for pattern in _BUDGET_PATTERNS:
                match = pattern.search(text)
                if match:
                    ctx.mentioned_budget = match.group(0)
                    break

        for pattern in _TRAVELERS_PATTERNS:
            match = pattern.search(text)
            if not match:
                continue
            if match.groups() and match.group(1):
                ctx.travelers_count = int(match.group(1))
            elif re.search(r"couple|two of us", match.group(0), re.I):
                ctx.travelers_count = 2
            elif re.search(r"just me|solo", match.group(0), re.I):
                ctx.travelers_count = 1

        for pattern in _INTEREST_PATTERNS:
            ctx.interests.extend(m.lower() for m in pattern.findall(text))

    ctx.mentioned_destinations = _dedupe(ctx.mentioned_destinations)
    ctx.mentioned_dates = _dedupe(ctx.mentioned_dates)
    ctx.interests = _dedupe(ctx.interests)
    return ctx


# ── Store contract ───────────────────────────────────────────────────


class ClientStore(Protocol):
    """Persistence operations the chat orchestrator relies on."""

    def load_client_profile(self, client_id: int) -> ClientProfile | None: ...

    def load_conversation_memory(
        self, client_id: int, conversation_id: str | None = None,
    ) -> ConversationMemory: ...

    def save_conversation_message(self, client_id: int, role: str, content: str) -> None: ...

    def update_preferred_language(self, client_id: int, language: str) -> None: ...

    def update_lead_score(self, client_id: int, lead_score: LeadScoreSummary) -> None: ...


class InMemoryClientStore:
    """Thread-safe, process-local :class:`ClientStore`.

    Keeps the last ``MAX_STORED_MESSAGES`` messages per client; memory reads
    return the last ``MEMORY_WINDOW`` of them.
    """

    def __init__(self, profiles: list[ClientProfile] | None = None) -> None:
        self._profiles: dict[int, ClientProfile] = {p.id: p for p in profiles or []}
        self._history: dict[int, list[StoredMessage]] = {}
        self._lock = threading.Lock()

    def add_profile(self, profile: ClientProfile) -> None:
        with self._lock:
            self._profiles[profile.id] = profile

    def load_client_profile(self, client_id: int) -> ClientProfile | None:
        with self._lock:
            profile = self._profiles.get(client_id)
            return profile.model_copy(deep=True) if profile else None

    def load_conversation_memory(
        self, client_id: int, conversation_id: str | None = None,
    ) -> ConversationMemory:
        with self._lock:
            recent = list(self._history.get(client_id, []))[-MEMORY_WINDOW:]
        return ConversationMemory(
            recent_messages=recent,
            extracted_context=extract_conversation_context(recent),
        )

    def save_conversation_message(self, client_id: int, role: str, content: str) -> None:
        with self._lock:
            history = self._history.setdefault(client_id, [])
            history.append(StoredMessage(role=role, content=content))
            del history[:-MAX_STORED_MESSAGES]

    def update_preferred_language(self, client_id: int, language: str) -> None:
        with self._lock:
            profile = self._profiles.get(client_id)
            if profile is None:
                logger.debug("No profile for client %s, locale update skipped", client_id)
                return
            if profile.preferences.preferred_language != language:
                logger.info(
                    "Client %s preferred language %s → %s",
                    client_id, profile.preferences.preferred_language, language,
                )
                profile.preferences.preferred_language = language

    def update_lead_score(self, client_id: int, lead_score: LeadScoreSummary) -> None:
        """Store the latest score on the profile, creating a bare profile if needed."""
        with self._lock:
            profile = self._profiles.setdefault(client_id, ClientProfile(id=client_id))
            previous = profile.lead_score.status if profile.lead_score else None
            profile.lead_score = lead_score.model_copy(deep=True)
        if previous != lead_score.status:
            logger.info(
                "Client %s lead status %s → %s (score %d)",
                client_id, previous, lead_score.status, lead_score.score,
            )

    def history(self, client_id: int) -> list[StoredMessage]:
        with self._lock:
            return list(self._history.get(client_id, []))
