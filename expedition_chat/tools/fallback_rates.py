"""Market-rate estimates for services missing from the rate database.

The table holds approximate supplier costs (2024-2025).  Estimates are
always returned as sell prices: the margin multiplier is applied at lookup
time, so a cost figure never reaches the model.
"""

from __future__ import annotations

from typing import Any

MARGIN_MULTIPLIER = 1.5

DISCLAIMER = (
    "These are estimated rates for planning purposes only. Actual rates may vary "
    "based on season, availability, specific property/service, and current market conditions."
)
SUGGESTION = (
    "Would you like me to prepare a formal quote with confirmed rates from our partner suppliers?"
)

# service type → country → category → (low, high, note), supplier cost in USD
MARKET_RATES: dict[str, dict[str, dict[str, tuple[int, int, str]]]] = {
    "hotel": {
        "nepal": {
            "5-star": (200, 400, "Luxury hotels like Dwarika's, Hyatt, Marriott"),
            "4-star": (100, 200, "Business hotels, good quality"),
            "3-star": (50, 100, "Standard hotels, clean and comfortable"),
            "budget": (15, 50, "Guesthouses and budget hotels"),
            "teahouse": (15, 40, "Trekking tea houses with basic meals"),
        },
        "bhutan": {
            "5-star": (500, 1000, "Luxury lodges like Amankora, Six Senses"),
            "4-star": (350, 500, "Good quality hotels"),
            "3-star": (250, 350, "Standard tourist hotels"),
        },
        "tibet": {
            "4-star": (80, 150, "Best available in most areas"),
            "3-star": (50, 80, "Standard tourist hotels"),
        },
    },
    "transportation": {
        "nepal": {
            "ktm-pokhara": (100, 150, "Private car/SUV"),
            "ktm-chitwan": (120, 160, "Private car/SUV"),
            "airport-transfer": (15, 40, "Kathmandu airport"),
            "full-day-car": (60, 100, "In Kathmandu"),
            "land-cruiser": (150, 250, "For mountain roads"),
        },
    },
    "flight": {
        "nepal": {
            "ktm-lukla": (180, 220, "Foreigner rate, weather dependent"),
            "ktm-pokhara": (100, 130, "25 min scenic flight"),
            "mountain-flight": (200, 250, "Everest sightseeing"),
        },
    },
    "guide": {
        "nepal": {
            "trekking": (30, 50, "Licensed trekking guide per day"),
            "city": (40, 60, "City/cultural guide per day"),
            "mountaineering": (50, 100, "High altitude guide per day"),
        },
    },
    "porter": {
        "nepal": {"general": (20, 30, "Per day, carries up to 25kg")},
    },
    "helicopter": {
        "nepal": {
            "ebc-sharing": (1000, 1200, "Per seat, 4-5 hour tour"),
            "ebc-charter": (4500, 5500, "Whole helicopter"),
            "abc-sharing": (400, 600, "Per seat"),
            "langtang": (600, 800, "Per seat"),
        },
    },
    "permit": {
        "nepal": {
            "tims": (20, 20, "Trekkers Information Management System"),
            "sagarmatha": (30, 30, "Everest National Park"),
            "acap": (30, 30, "Annapurna Conservation Area"),
            "langtang": (30, 30, "Langtang National Park"),
            "manaslu": (100, 100, "Restricted area permit"),
        },
        "tibet": {"tibet-permit": (50, 100, "Varies by region")},
        "bhutan": {"sdf": (200, 200, "Per night Sustainable Development Fee")},
    },
    "package": {
        "nepal": {
            "ebc-trek": (1500, 2500, "12-14 days, all inclusive"),
            "annapurna-circuit": (1200, 2000, "14-18 days"),
            "langtang-trek": (800, 1200, "7-10 days"),
        },
        "bhutan": {"cultural-tour": (250, 500, "Per person per night, all inclusive")},
        "tibet": {
            "lhasa-tour": (1000, 1500, "5-7 days from Kathmandu"),
            "ebc-north": (1500, 2500, "8-10 days"),
            "kailash": (2000, 3500, "15-18 days"),
        },
    },
}

_NO_ESTIMATE = (0, 0, "Unable to estimate - please contact us for a custom quote")

_COUNTRY_KEYWORDS = [
    ("nepal", ("nepal", "kathmandu", "pokhara", "everest", "annapurna", "lukla", "namche", "chitwan")),
    ("bhutan", ("bhutan", "paro", "thimphu")),
    ("tibet", ("tibet", "lhasa")),
    ("india", ("india", "darjeeling", "sikkim")),
]

_PRICE_TYPES = {
    "hotel": "per night (double occupancy)",
    "guide": "per day",
    "porter": "per day",
    "transportation": "per vehicle",
    "flight": "per person/seat",
    "helicopter": "per person/seat",
    "permit": "per person",
    "package": "per person (total package)",
}

FALLBACK_SYSTEM_PROMPT = """
## Fallback Rate Behavior (IMPORTANT)

When a specific hotel, service, or package is NOT found in our database:

1. **DO NOT** say "I don't have information about this" or "This is not in our database"
2. **INSTEAD**, use the research_external_rates tool OR your knowledge to provide approximate market rates
3. **ALWAYS** clearly label these as "Estimated Rates" or "Approximate Market Rates"
4. **ALWAYS** provide a price RANGE (low to high), not a single number
5. **ALWAYS** include a disclaimer about confirming final rates
6. **ALWAYS** offer to get a formal quote with confirmed pricing

### Quick Reference - Nepal Sell Rates (2024-2025):
- 5-Star Hotels: $300-600/night
- 4-Star Hotels: $150-300/night
- 3-Star Hotels: $75-150/night
- Trekking Guides: $45-75/day
- Porters: $30-45/day
- KTM-Lukla Flight: $270-330
- EBC Heli (sharing): $1,500-1,800/seat

### Bhutan:
- SDF (mandatory): $200/person/night (government fee)
- 3-Star Package: $375-450/person/night (all-inclusive)
- 5-Star Package: $750-1,200/person/night (all-inclusive)

Remember: Never leave the client without useful information.
"""


def normalize_country(location: str) -> str:
    """Map a free-text location to a rate-table country; defaults to Nepal."""
    loc = location.lower()
    for country, keywords in _COUNTRY_KEYWORDS:
        if any(k in loc for k in keywords):
            return country
    return "nepal"


def normalize_category(category: str | None, service_type: str) -> str:
    if not category:
        return "general"
    cat = category.lower()

    if service_type == "hotel":
        if "5" in cat or "luxury" in cat or "deluxe" in cat:
            return "5-star"
        if "4" in cat or "business" in cat:
            return "4-star"
        if "3" in cat or "standard" in cat:
            return "3-star"
        if "budget" in cat or "cheap" in cat:
            return "budget"
        if "tea" in cat or "lodge" in cat:
            return "teahouse"

    if service_type == "guide":
        if "trek" in cat:
            return "trekking"
        if "city" in cat or "cultural" in cat:
            return "city"
        if "mountain" in cat or "climb" in cat:
            return "mountaineering"

    if service_type == "helicopter":
        if "ebc" in cat or "everest" in cat:
            return "ebc-charter" if "charter" in cat else "ebc-sharing"
        if "abc" in cat or "annapurna" in cat:
            return "abc-sharing"

    return "general"


def research_external_rates(
    service_type: str,
    service_name: str,
    location: str,
    category: str | None = None,
    additional_context: str | None = None,
) -> dict[str, Any]:
    """Estimated sell-price range for a service we have no contracted rate for."""
    country = normalize_country(location)
    rates = MARKET_RATES.get(service_type, {}).get(country, {})
    low, high, note = (
        rates.get(normalize_category(category, service_type)) or rates.get("general") or _NO_ESTIMATE
    )

    notes = [
        note,
        "Rates are approximate and may vary by season",
        "Final pricing subject to availability confirmation",
    ]
    if additional_context:
        notes.append(additional_context)

    return {
        "found": True,
        "source": "estimation",
        "confidence": "medium" if low > 0 else "low",
        "serviceType": service_type,
        "serviceName": service_name,
        "location": location,
        "estimatedRates": {
            "description": f"Estimated sell rates for {service_name} in {location}",
            "priceRange": {
                "low": round(low * MARGIN_MULTIPLIER),
                "high": round(high * MARGIN_MULTIPLIER),
            },
            "currency": "USD",
            "priceType": _PRICE_TYPES.get(service_type, "per service"),
            "notes": notes,
        },
        "disclaimer": DISCLAIMER,
        "suggestion": SUGGESTION,
    }
