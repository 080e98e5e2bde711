"""Lead scoring from chat messages.

Each user message is scanned for buying signals (budget, dates, group size,
destinations, intent keywords).  Every signal is recorded as a
:class:`LeadEvent` that moves the client's score, bounded to 0-100, and the
score determines the lead status:

    browsing (0-20) → comparing (21-40) → interested (41-60)
    → ready_to_book (61-79) → qualified (80+, high-value, human handoff)

The orchestrator calls :meth:`LeadScorer.process_conversation` in the
background for every incoming message.
"""

from __future__ import annotations

import logging
import re
import threading
from dataclasses import dataclass, field
from datetime import UTC, datetime
from typing import Any, Literal

from expedition_chat.memory import LeadScoreSummary

logger = logging.getLogger(__name__)

SCORING_RULES = {
    "BUDGET_MENTIONED_10K_PLUS": 30,
    "BUDGET_MENTIONED_5K_PLUS": 20,
    "BUDGET_MENTIONED_ANY": 10,
    "SPECIFIC_DATES_MENTIONED": 25,
    "MONTH_MENTIONED": 15,
    "SEASON_MENTIONED": 10,
    "ASKED_ABOUT_AVAILABILITY": 20,
    "REQUESTED_QUOTE": 40,
    "ASKED_ABOUT_BOOKING": 25,
    "ASKED_ABOUT_PAYMENT": 30,
}

HNW_THRESHOLD = 80  # high-net-worth handoff
MAX_RECORDED_EVENTS = 100

STATUS_THRESHOLDS = [
    ("ready_to_book", 61),
    ("interested", 41),
    ("comparing", 21),
    ("browsing", 0),
]

LeadEventType = Literal[
    "budget_mentioned",
    "dates_mentioned",
    "destination_mentioned",
    "pax_mentioned",
    "availability_asked",
    "quote_requested",
    "booking_asked",
    "payment_asked",
    "conversation_continued",
]

_MONTHS = (
    "january", "february", "march", "april", "may", "june", "july",
    "august", "september", "october", "november", "december",
)
_SEASONS = ("spring", "summer", "fall", "autumn", "winter", "monsoon")
_DESTINATIONS = (
    "nepal", "kathmandu", "pokhara", "everest", "annapurna", "chitwan", "lumbini",
    "bhutan", "paro", "thimphu", "punakha",
    "tibet", "lhasa", "shigatse",
    "india", "delhi", "agra", "jaipur", "varanasi", "darjeeling", "sikkim",
)

_BUDGET_PATTERNS = [
    re.compile(r"\$\s*([\d,]+)"),
    re.compile(r"budget[:\s]*([\d,]+)", re.I),
    re.compile(r"([\d,]+)\s*(?:usd|dollars?)", re.I),
    re.compile(r"around\s*([\d,]+)", re.I),
    re.compile(r"approximately\s*([\d,]+)", re.I),
]
_SPECIFIC_DATE_PATTERNS = [
    re.compile(
        r"(?:jan(?:uary)?|feb(?:ruary)?|mar(?:ch)?|apr(?:il)?|may|jun(?:e)?|jul(?:y)?"
        r"|aug(?:ust)?|sep(?:t(?:ember)?)?|oct(?:ober)?|nov(?:ember)?|dec(?:ember)?)"
        r"\s*\d{1,2}(?:st|nd|rd|th)?(?:\s*,?\s*\d{4})?",
        re.I,
    ),
    re.compile(r"\d{1,2}[-/]\d{1,2}[-/]\d{2,4}"),
]
_PAX_PATTERNS = [
    re.compile(r"(\d+)\s*(?:people|persons?|pax|travell?ers?|guests?)", re.I),
    re.compile(r"(?:for|group of)\s*(\d+)", re.I),
    re.compile(r"(\d+)\s*(?:of us|adults?)", re.I),
]

_INTENT_KEYWORDS: list[tuple[LeadEventType, tuple[str, ...]]] = [
    ("availability_asked", ("available", "availability", "open dates", "can you check")),
    ("quote_requested", ("quote", "price", "cost", "how much", "pricing", "estimate")),
    ("booking_asked", ("book", "booking", "reserve", "confirm", "proceed")),
    ("payment_asked", ("pay", "payment", "deposit", "card", "transfer", "invoice")),
]


@dataclass
class LeadEvent:
    type: LeadEventType
    data: dict[str, Any] = field(default_factory=dict)


@dataclass
class LeadScoreRecord:
    client_id: int
    current_score: int = 0
    status: str = "new"
    detected_budget: str | None = None
    detected_destinations: list[str] = field(default_factory=list)
    detected_pax: int | None = None
    quotes_requested: int = 0
    total_messages: int = 0
    is_high_value: bool = False
    requires_human_handoff: bool = False
    handoff_reason: str | None = None
    last_activity_at: datetime | None = None
    events: list[tuple[LeadEvent, int]] = field(default_factory=list)

    def to_summary(self) -> LeadScoreSummary:
        """The slice of the record that the client profile carries."""
        return LeadScoreSummary(
            score=self.current_score,
            status=self.status,
            detected_budget=self.detected_budget,
            detected_destinations=list(self.detected_destinations),
            detected_group_size=self.detected_pax,
        )


# ── Signal detection ─────────────────────────────────────────────────


def _first_budget_amount(text: str) -> int | None:
    """First amount of at least 1,000 found by the budget patterns, in order."""
    for pattern in _BUDGET_PATTERNS:
        for match in pattern.finditer(text):
            digits = match.group(1).replace(",", "")
            if digits and int(digits) >= 1000:
                return int(digits)
    return None


def analyze_conversation_for_signals(text: str) -> list[LeadEvent]:
    """Return the lead events found in a single user message."""
    events: list[LeadEvent] = []
    lower = text.lower()

    amount = _first_budget_amount(text)
    if amount is not None:
        events.append(LeadEvent("budget_mentioned", {"amount": amount, "currency": "USD"}))

    # Timeline: a specific date beats a month, which beats a season
    if any(p.search(text) for p in _SPECIFIC_DATE_PATTERNS):
        events.append(LeadEvent("dates_mentioned", {"dates": {"start": "detected"}}))
    else:
        month = next((m for m in _MONTHS if m in lower), None)
        season = next((s for s in _SEASONS if s in lower), None)
        if month:
            events.append(LeadEvent("dates_mentioned", {"month": month}))
        elif season:
            events.append(LeadEvent("dates_mentioned", {"season": season}))

    destinations = [d for d in _DESTINATIONS if d in lower]
    if destinations:
        events.append(LeadEvent("destination_mentioned", {"destinations": destinations}))

    for pattern in _PAX_PATTERNS:
        match = pattern.search(text)
        if match:
            pax = int(match.group(1))
            if 0 < pax <= 100:
                events.append(LeadEvent("pax_mentioned", {"pax": pax}))
                break

    for event_type, keywords in _INTENT_KEYWORDS:
        if any(k in lower for k in keywords):
            events.append(LeadEvent(event_type))

    return events


# ── Score arithmetic ─────────────────────────────────────────────────


def score_change(event: LeadEvent, record: LeadScoreRecord) -> int:
    """Apply *event* to *record*'s detected fields and return the score delta."""
    data = event.data

    if event.type == "budget_mentioned":
        amount = data.get("amount")
        if not amount:
            return 0
        record.detected_budget = str(amount)
        if amount >= 10_000:
            return SCORING_RULES["BUDGET_MENTIONED_10K_PLUS"]
        if amount >= 5_000:
            return SCORING_RULES["BUDGET_MENTIONED_5K_PLUS"]
        return SCORING_RULES["BUDGET_MENTIONED_ANY"]

    if event.type == "dates_mentioned":
        if data.get("dates", {}).get("start"):
            return SCORING_RULES["SPECIFIC_DATES_MENTIONED"]
        if data.get("month"):
            return SCORING_RULES["MONTH_MENTIONED"]
        if data.get("season"):
            return SCORING_RULES["SEASON_MENTIONED"]
        return 0

    if event.type == "destination_mentioned":
        destinations = data.get("destinations") or []
        record.detected_destinations = list(
            dict.fromkeys(record.detected_destinations + destinations)
        )
        return 5 * len(destinations)

    if event.type == "pax_mentioned":
        pax = data.get("pax")
        if not pax:
            return 0
        record.detected_pax = pax
        # Larger groups = higher value
        if pax >= 10:
            return 15
        if pax >= 4:
            return 10
        return 5

    if event.type == "availability_asked":
        return SCORING_RULES["ASKED_ABOUT_AVAILABILITY"]
    if event.type == "quote_requested":
        record.quotes_requested += 1
        return SCORING_RULES["REQUESTED_QUOTE"]
    if event.type == "booking_asked":
        return SCORING_RULES["ASKED_ABOUT_BOOKING"]
    if event.type == "payment_asked":
        return SCORING_RULES["ASKED_ABOUT_PAYMENT"]

    if event.type == "conversation_continued":
        record.total_messages += 1
        return 1

    return 0


def status_for_score(score: int) -> str:
    if score >= HNW_THRESHOLD:
        return "qualified"
    for status, minimum in STATUS_THRESHOLDS:
        if score >= minimum:
            return status
    return "browsing"


# ── Store + scorer ───────────────────────────────────────────────────


class InMemoryLeadScoreStore:
    """Process-local lead score records keyed by client id."""

    def __init__(self) -> None:
        self._records: dict[int, LeadScoreRecord] = {}
        self._lock = threading.Lock()

    def get_or_create(self, client_id: int) -> LeadScoreRecord:
        with self._lock:
            return self._records.setdefault(client_id, LeadScoreRecord(client_id=client_id))

    def get(self, client_id: int) -> LeadScoreRecord | None:
        with self._lock:
            return self._records.get(client_id)


class LeadScorer:
    """Turns chat messages into lead-score updates."""

    def __init__(self, store: InMemoryLeadScoreStore | None = None) -> None:
        self._store = store or InMemoryLeadScoreStore()
        self._lock = threading.Lock()

    @property
    def store(self) -> InMemoryLeadScoreStore:
        return self._store

    def record_event(
        self,
        client_id: int,
        event: LeadEvent,
        conversation_id: str | None = None,
    ) -> LeadScoreRecord:
        with self._lock:
            record = self._store.get_or_create(client_id)
            delta = score_change(event, record)
            record.current_score = max(0, min(100, record.current_score + delta))
            record.status = status_for_score(record.current_score)
            record.last_activity_at = datetime.now(UTC)
            if record.current_score >= HNW_THRESHOLD and not record.is_high_value:
                record.is_high_value = True
                record.requires_human_handoff = True
                record.handoff_reason = (
                    f"Lead score reached {record.current_score} "
                    f"(HNW threshold: {HNW_THRESHOLD})"
                )
                logger.info("Client %s flagged for human handoff", client_id)
            record.events.append((event, delta))
            del record.events[:-MAX_RECORDED_EVENTS]

        logger.debug(
            "Lead event %s for client %s (conversation %s): %+d → %d",
            event.type, client_id, conversation_id, delta, record.current_score,
        )
        return record

    def process_conversation(
        self,
        client_id: int,
        message_text: str,
        conversation_id: str | None = None,
    ) -> int:
        """Score one user message.  Returns the client's new score."""
        events = analyze_conversation_for_signals(message_text)
        if not events:
            events = [LeadEvent("conversation_continued")]

        record = None
        for event in events:
            record = self.record_event(client_id, event, conversation_id)
        return record.current_score
