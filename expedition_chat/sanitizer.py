"""Server-side pricing sanitiser for tool results.

Every tool result passes through :func:`sanitize_tool_result` before it is
placed in the conversation, so cost, margin and per-item sell figures never
reach the model (and therefore never reach the client).

Removed keys are dropped, not set to ``None``: the model cannot tell a
stripped field from one that was never there.

The sanitiser is total over JSON values and has no error path.  An exception
raised here is a bug and must not be swallowed by the caller.
"""

from __future__ import annotations

import re
from typing import Any

# Compared against ``key.lower()``.
SENSITIVE_FIELDS: frozenset[str] = frozenset(
    {
        # Cost fields
        "cost",
        "costprice",
        "costperday",
        "costpertrip",
        "costperseat",
        "costpercharter",
        "costperunit",
        "basecost",
        "costsingle",
        "costdouble",
        "costtriple",
        "costextrabed",
        "costchildwithbed",
        "costchildnobed",
        # Margin fields
        "margin",
        "margin_percent",
        "marginpercent",
        "margin%",
        "totalcostprice",
        "totalmargin",
        "commissionpercent",
        "creditlimit",
        # Per-unit and per-occupancy sell variants. The headline ``sellPrice``
        # is the client-facing price and stays.
        "sellsingle",
        "selldouble",
        "selltriple",
        "sellextrabed",
        "sellchildwithbed",
        "sellchildnobed",
        "sellperday",
        "sellperseat",
        "sellpercharter",
        "unitprice",
        "subtotal",
        "pricetiers",
        "pricingtiers",
        "singlesupplement",
    }
)

EMPTY_RATES_HINT = (
    "No rates found in database. Use your knowledge to provide approximate "
    "market rates. Clearly label as estimates and offer to get confirmed pricing."
)

# Service-detail lookups drop *every* price-like field so the model can only
# describe what is included, never quote a per-item figure.
_PRICE_FIELD_PATTERNS = [
    re.compile(p, re.IGNORECASE)
    for p in (
        r"^cost",
        r"^sell",
        r"^margin",
        r"^base_?cost",
        r"price",
        r"^unit_?price",
        r"^subtotal",
        r"^single_?supplement",
        r"^pricing_?tiers",
        r"^price_?tiers",
        r"^commission",
        r"^credit_?limit",
        r"^vat",
        r"^service_?charge",
    )
]


def sanitize_for_client(value: Any) -> Any:
    """Recursively remove :data:`SENSITIVE_FIELDS` keys from a JSON value."""
    if isinstance(value, dict):
        return {
            key: sanitize_for_client(val)
            for key, val in value.items()
            if str(key).lower() not in SENSITIVE_FIELDS
        }
    if isinstance(value, (list, tuple)):
        return [sanitize_for_client(item) for item in value]
    return value


def sanitize_tool_result(value: Any) -> Any:
    """Sanitise a tool result and flag an empty ``rates`` list.

    When the result is an object whose ``rates`` array is empty, a
    ``fallback_hint`` is added so the model offers labelled estimates
    instead of inventing exact prices.
    """
    clean = sanitize_for_client(value)
    if isinstance(clean, dict):
        rates = clean.get("rates")
        if isinstance(rates, list) and not rates:
            clean["fallback_hint"] = EMPTY_RATES_HINT
    return clean


def strip_all_pricing(value: Any) -> Any:
    """Remove every price-like key (pattern match), at any depth."""
    if isinstance(value, dict):
        return {
            key: strip_all_pricing(val)
            for key, val in value.items()
            if not any(p.search(str(key)) for p in _PRICE_FIELD_PATTERNS)
        }
    if isinstance(value, (list, tuple)):
        return [strip_all_pricing(item) for item in value]
    return value
