"""Input and output guardrails for the chat channels.

Input guardrails run in the HTTP layer before a message reaches the
model: length limits, prompt-injection and cost-probing patterns, a small
content filter and repetition detection.

Output guardrails scan the model's final text for leaked cost/margin
figures and off-topic output.  The tool-result sanitiser already removes
those figures structurally; this scan is a second, text-level check whose
findings are logged, and only redacted when explicitly enabled.
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from typing import Literal

MAX_MESSAGE_LENGTH = 2000
MAX_CONVERSATION_LENGTH = 50

Severity = Literal["high", "medium", "low"]

REDIRECT_REPLY = (
    "I'm your Expedition Architect, here to help plan luxury adventures in "
    "Nepal, Bhutan, Tibet, and India. How can I assist with your travel plans?"
)
CONTENT_FILTER_REPLY = (
    "I specialize in luxury adventure travel. Let me know how I can help plan "
    "your journey to Nepal, Bhutan, Tibet, or India!"
)
REDACTION_TEXT = "[pricing details available upon request]"


def _p(pattern: str) -> re.Pattern[str]:
    return re.compile(pattern, re.IGNORECASE)


# ── Injection detection ──────────────────────────────────────────────

_INJECTION_PATTERNS: list[tuple[re.Pattern[str], Severity, str]] = [
    # Direct instruction override attempts
    (_p(r"ignore\s+(all\s+)?(previous|prior|above|earlier)\s+(instructions?|prompts?|rules?|guidelines?)"), "high", "instruction_override"),
    (_p(r"disregard\s+(all\s+)?(previous|prior|above|earlier)\s+(instructions?|prompts?|rules?)"), "high", "instruction_override"),
    (_p(r"forget\s+(all\s+)?(previous|prior|above|earlier)\s+(instructions?|prompts?|rules?)"), "high", "instruction_override"),
    (_p(r"override\s+(system|previous|prior)\s+(prompt|instructions?|rules?)"), "high", "instruction_override"),
    # Role manipulation
    (_p(r"you\s+are\s+now\s+(a|an|the)\s+"), "high", "role_manipulation"),
    (_p(r"pretend\s+(you\s+are|to\s+be|you're)\s+(a|an|the)\s+"), "high", "role_manipulation"),
    (_p(r"act\s+as\s+(a|an|if\s+you\s+are)\s+"), "medium", "role_manipulation"),
    (_p(r"switch\s+to\s+(developer|admin|debug|root|sudo|god)\s+mode"), "high", "role_manipulation"),
    (_p(r"enter\s+(developer|admin|debug|jailbreak|DAN)\s+mode"), "high", "role_manipulation"),
    # System prompt extraction
    (_p(r"what\s+(is|are)\s+(your|the)\s+(system\s+)?prompt"), "high", "prompt_extraction"),
    (_p(r"show\s+(me\s+)?(your|the)\s+(system\s+)?prompt"), "high", "prompt_extraction"),
    (_p(r"reveal\s+(your|the)\s+(system\s+)?prompt"), "high", "prompt_extraction"),
    (_p(r"print\s+(your|the)\s+(system\s+)?prompt"), "high", "prompt_extraction"),
    (_p(r"repeat\s+(your|the)\s+(system\s+)?(prompt|instructions?)\s+(back|verbatim|exactly)"), "high", "prompt_extraction"),
    (_p(r"what\s+were\s+you\s+told\s+to\s+do"), "medium", "prompt_extraction"),
    # Cost/margin probing
    (_p(r"what\s+(is|are)\s+(your|the)\s+(cost|margin|markup|profit|commission)"), "high", "cost_probing"),
    (_p(r"how\s+much\s+(do\s+you|does\s+it)\s+(mark\s*up|profit|earn|make)"), "high", "cost_probing"),
    (_p(r"show\s+(me\s+)?(the\s+)?(cost|supplier|wholesale)\s+price"), "high", "cost_probing"),
    (_p(r"what\s+does\s+(the\s+)?(hotel|supplier|vendor)\s+charge\s+you"), "high", "cost_probing"),
    (_p(r"break\s*down\s+(the\s+)?(cost|price|pricing)\s+(per|for\s+each|by)\s+(service|item|night|hotel)"), "medium", "cost_probing"),
    # Delimiter injection
    (_p(r"```\s*(system|assistant|prompt)"), "high", "delimiter_injection"),
    (_p(r"</?system>"), "high", "delimiter_injection"),
    (_p(r"\[INST\]|\[/INST\]"), "high", "delimiter_injection"),
    (_p(r"<<\s*SYS\s*>>|<<\s*/SYS\s*>>"), "high", "delimiter_injection"),
    (_p(r"\bBEGIN\s+SYSTEM\s+MESSAGE\b"), "high", "delimiter_injection"),
    # Encoded/obfuscated attempts
    (_p(r"base64[:\s]|atob\s*\(|btoa\s*\("), "medium", "encoding_attack"),
    (_p(r"\\u[0-9a-f]{4}"), "medium", "encoding_attack"),
    # DAN/jailbreak patterns
    (_p(r"\bDAN\b.*\bmode\b"), "high", "jailbreak"),
    (_p(r"\bjailbreak\b"), "high", "jailbreak"),
    (_p(r"do\s+anything\s+now"), "high", "jailbreak"),
]

_CONTENT_FILTER_PATTERNS: list[tuple[re.Pattern[str], str]] = [
    (_p(r"\b(bomb|explosive|weapon|firearm|gun)\s+(make|build|create|assemble)"), "violence"),
    (_p(r"\b(hack|exploit|breach|compromise)\s+(this|the|a)\s+(system|server|database|account)"), "hacking"),
    (_p(r"\b(steal|phish|scam|fraud)\b"), "fraud"),
]


@dataclass
class GuardrailResult:
    allowed: bool
    reason: str | None = None
    severity: Severity | None = None
    label: str | None = None


def check_input_guardrails(
    message: str,
    conversation_history: list[dict[str, str]] | None = None,
) -> GuardrailResult:
    """Decide whether a user message may be sent to the model.

    High-severity matches are blocked with a polite redirect as ``reason``;
    medium-severity matches are allowed but labelled so the caller can log
    them.
    """
    history = conversation_history or []

    if len(message) > MAX_MESSAGE_LENGTH:
        return GuardrailResult(
            allowed=False,
            reason=(
                f"Message too long ({len(message)} chars). Please keep messages "
                f"under {MAX_MESSAGE_LENGTH} characters."
            ),
            severity="low",
            label="message_too_long",
        )

    if not message.strip():
        return GuardrailResult(
            allowed=False, reason="Please enter a message.", severity="low", label="empty_message",
        )

    if len(history) > MAX_CONVERSATION_LENGTH:
        return GuardrailResult(
            allowed=False,
            reason=(
                "This conversation has reached its limit. Please start a new "
                "conversation to continue."
            ),
            severity="low",
            label="conversation_too_long",
        )

    for pattern, severity, label in _INJECTION_PATTERNS:
        if pattern.search(message):
            if severity == "high":
                return GuardrailResult(
                    allowed=False, reason=REDIRECT_REPLY, severity=severity, label=label,
                )
            return GuardrailResult(allowed=True, severity=severity, label=label)

    for pattern, label in _CONTENT_FILTER_PATTERNS:
        if pattern.search(message):
            return GuardrailResult(
                allowed=False,
                reason=CONTENT_FILTER_REPLY,
                severity="high",
                label=f"content_filter_{label}",
            )

    recent_user = [
        m.get("content", "").strip().lower()
        for m in history
        if m.get("role") == "user"
    ][-5:]
    if recent_user.count(message.strip().lower()) >= 3:
        return GuardrailResult(
            allowed=False,
            reason=(
                "It looks like you're sending the same message repeatedly. Could "
                "you rephrase your question? I'm happy to help!"
            ),
            severity="low",
            label="spam_repetition",
        )

    return GuardrailResult(allowed=True)


# ── Output scanning ──────────────────────────────────────────────────

_COST_LEAK_PATTERNS: list[tuple[re.Pattern[str], str]] = [
    (_p(r"\b(our|the)\s+cost\s+(is|was|would\s+be|comes?\s+to)\s*\$?[\d,]+"), "cost_disclosure"),
    (_p(r"\bcost\s*price\s*[:=]\s*\$?[\d,]+"), "cost_disclosure"),
    (_p(r"\bsupplier\s+(rate|price|cost|charge)\s*(is|of|:)\s*\$?[\d,]+"), "supplier_rate_leak"),
    (_p(r"\bwholesale\s+(rate|price|cost)\s*(is|of|:)\s*\$?[\d,]+"), "wholesale_leak"),
    (_p(r"\b(margin|markup|mark-up|profit)\s*(is|of|:)\s*\d+\s*%"), "margin_disclosure"),
    (_p(r"\bwe\s+(mark\s*up|add|charge)\s*(\d+\s*%|\$[\d,]+)\s*(on\s+top|above|over)"), "markup_disclosure"),
    (_p(r"\b(commission|profit\s+margin)\s*(is|of|:)\s*\d+"), "commission_disclosure"),
    (_p(r"\b(hotel|accommodation)\s*[:=]\s*\$[\d,]+\s*(per|/)\s*(night|room|person)"), "itemized_pricing"),
    (_p(r"\b(guide|porter|sherpa)\s*[:=]\s*\$[\d,]+\s*(per|/)\s*(day|trip)"), "itemized_pricing"),
    (_p(r"\b(transport|vehicle|jeep|flight)\s*[:=]\s*\$[\d,]+"), "itemized_pricing"),
    (_p(r"\b(permit|visa)\s*[:=]\s*\$[\d,]+"), "itemized_pricing"),
    (_p(r"\bcredit\s*limit\b"), "internal_term"),
    (_p(r"\bsell\s*price\b"), "internal_term"),
    (_p(r"\bprice\s*tier\b"), "internal_term"),
]

_OFF_TOPIC_PATTERNS: list[tuple[re.Pattern[str], str]] = [
    (_p(r"\b(here'?s?\s+(a\s+)?(python|javascript|java|c\+\+|ruby)\s+(code|script|program))"), "code_generation"),
    (_p(r"\b(def\s+\w+\s*\(|function\s+\w+\s*\(|class\s+\w+\s*[{:])"), "code_output"),
    (_p(r"\b(SELECT\s+\*?\s+FROM|INSERT\s+INTO|UPDATE\s+\w+\s+SET|DELETE\s+FROM)"), "sql_output"),
    (_p(r"\bsudo\s+(rm|apt|yum|chmod|chown)"), "system_commands"),
]


@dataclass
class GuardrailViolation:
    label: str
    category: Literal["cost_leak", "off_topic"]
    match: str


@dataclass
class OutputGuardrailResult:
    safe: bool
    violations: list[GuardrailViolation] = field(default_factory=list)
    sanitized_response: str | None = None


def check_output_guardrails(response: str) -> OutputGuardrailResult:
    """Scan a model answer for cost leaks and off-topic output.

    ``sanitized_response`` is only set when a cost leak was found.
    """
    violations: list[GuardrailViolation] = []

    for pattern, label in _COST_LEAK_PATTERNS:
        match = pattern.search(response)
        if match:
            violations.append(GuardrailViolation(label, "cost_leak", match.group(0)))

    for pattern, label in _OFF_TOPIC_PATTERNS:
        match = pattern.search(response)
        if match:
            violations.append(GuardrailViolation(label, "off_topic", match.group(0)))

    if not violations:
        return OutputGuardrailResult(safe=True)

    if any(v.category == "cost_leak" for v in violations):
        return OutputGuardrailResult(
            safe=False, violations=violations, sanitized_response=_redact_cost_leaks(response),
        )
    return OutputGuardrailResult(safe=False, violations=violations)


def _redact_cost_leaks(response: str) -> str:
    cleaned = response
    for pattern, _ in _COST_LEAK_PATTERNS:
        cleaned = pattern.sub(REDACTION_TEXT, cleaned)
    return cleaned


_ESTIMATE_LANGUAGE = _p(r"\b(estimated?|approximate(ly)?|rough(ly)?|ballpark|market\s+rate|typical(ly)?)\b")
_DISCLAIMER_LANGUAGE = _p(r"\b(subject\s+to\s+change|final\s+pricing|confirmed?\s+quote|exact\s+pricing)\b")
_PRICE_AMOUNT = re.compile(r"\$[\d,]+")

PRICING_DISCLAIMER = (
    "\n\n*Prices shown are estimates and subject to change based on travel dates, "
    "group size, and availability. Contact us for a confirmed quote.*"
)


def add_pricing_disclaimer(response: str) -> str:
    """Append a disclaimer to estimate-style answers that quote dollar amounts."""
    if (
        _ESTIMATE_LANGUAGE.search(response)
        and _PRICE_AMOUNT.search(response)
        and not _DISCLAIMER_LANGUAGE.search(response)
    ):
        return response + PRICING_DISCLAIMER
    return response
