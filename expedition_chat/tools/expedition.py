"""Expedition-planning checks that need no database.

Altitude acclimatisation, permit lead times and upsell suggestions are
computed from static tables.  Each function returns a JSON-compatible dict
that the registry hands straight back to the model.
"""

from __future__ import annotations

import logging
from datetime import date, datetime
from typing import Any

logger = logging.getLogger(__name__)

# Overnight altitude in metres, keyed by lower_snake_case location name
ALTITUDE_DATA: dict[str, int] = {
    "kathmandu": 1400,
    "lukla": 2860,
    "namche_bazaar": 3440,
    "tengboche": 3867,
    "dingboche": 4410,
    "lobuche": 4940,
    "gorak_shep": 5164,
    "everest_base_camp": 5364,
    "kala_patthar": 5545,
    "pokhara": 822,
    "jomsom": 2720,
    "muktinath": 3800,
    "thorong_la": 5416,
    "manang": 3540,
    "poon_hill": 3210,
    "annapurna_base_camp": 4130,
    "langtang_village": 3430,
    "kyanjin_gompa": 3870,
    "tserko_ri": 4984,
    "lhasa": 3650,
    "shigatse": 3840,
    "rongbuk": 5000,
    "paro": 2200,
    "thimphu": 2320,
    "punakha": 1200,
    "bumthang": 2600,
}

MAX_DAILY_GAIN_ABOVE_3000 = 500

# (permit name, lead time in days, restriction note)
PERMIT_REQUIREMENTS: dict[str, list[tuple[str, int, str | None]]] = {
    "tibet": [
        ("Tibet Travel Permit", 30, "Chinese group visa required"),
        ("Alien Travel Permit", 30, None),
        ("Military Permit (for border areas)", 45, None),
    ],
    "everest": [
        ("Sagarmatha National Park Entry", 1, None),
        ("TIMS Card", 1, None),
    ],
    "annapurna": [
        ("Annapurna Conservation Area Permit (ACAP)", 1, None),
        ("TIMS Card", 1, None),
    ],
    "mustang": [
        ("Upper Mustang Restricted Area Permit", 7, None),
        ("ACAP", 1, None),
        ("TIMS Card", 1, None),
    ],
    "dolpo": [
        ("Dolpo Restricted Area Permit", 14, None),
        ("Shey Phoksundo National Park Entry", 1, None),
    ],
    "manaslu": [
        ("Manaslu Restricted Area Permit", 7, None),
        ("Manaslu Conservation Area Permit", 1, None),
        ("TIMS Card", 1, None),
    ],
    "bhutan": [
        ("Bhutan Visa", 14, None),
        ("Sustainable Development Fee (SDF)", 7, None),
    ],
}


# ── Acclimatisation ──────────────────────────────────────────────────


def _altitude_for(day: dict[str, Any]) -> int:
    if day.get("overnightAltitude"):
        return int(day["overnightAltitude"])
    key = "_".join(str(day.get("location", "")).lower().split())
    return ALTITUDE_DATA.get(key, 0)


def validate_acclimatization(itinerary: list[dict[str, Any]]) -> dict[str, Any]:
    """Check a day-by-day trek itinerary against safe sleeping-altitude gains.

    Days whose altitude is unknown are skipped.  An itinerary is invalid when
    it gains more than 500 m in a night above 3000 m, or jumps from below
    2500 m to above 3500 m.  Three consecutive gains at or above 4000 m add
    a rest-day recommendation.
    """
    issues: list[str] = []
    recommendations: list[str] = []
    gains: list[dict[str, int]] = []
    max_altitude = 0
    previous = 0
    consecutive_high_gains = 0

    for day in itinerary:
        altitude = _altitude_for(day)
        if altitude == 0:
            continue
        day_number = day.get("day")
        max_altitude = max(max_altitude, altitude)
        gain = altitude - previous
        gains.append({"day": day_number, "gain": gain, "altitude": altitude})

        if previous >= 3000 and gain > MAX_DAILY_GAIN_ABOVE_3000:
            issues.append(
                f"Day {day_number}: Altitude gain of {gain}m exceeds recommended "
                f"{MAX_DAILY_GAIN_ABOVE_3000}m/day above 3000m"
            )

        if altitude >= 4000 and gain > 0:
            consecutive_high_gains += 1
            if consecutive_high_gains >= 3:
                recommendations.append(
                    f"Consider adding a rest day around Day {day_number} for acclimatization"
                )
                consecutive_high_gains = 0
        elif gain <= 0:
            consecutive_high_gains = 0

        if previous < 2500 and altitude > 3500:
            issues.append(f"Day {day_number}: Jumping from {previous}m to {altitude}m is too rapid")

        previous = altitude

    if max_altitude > 5000:
        recommendations.append("Consider carrying Diamox (Acetazolamide) for altitudes above 5000m")
        recommendations.append("Ensure adequate hydration (3-4 liters/day at high altitude)")
    if max_altitude > 4000:
        recommendations.append("Climb high, sleep low when possible")

    return {
        "valid": not issues,
        "issues": issues,
        "recommendations": recommendations,
        "maxAltitudeReached": max_altitude,
        "dailyAltitudeGains": gains,
    }


# ── Permits ──────────────────────────────────────────────────────────


def validate_permits(
    destination_region: str,
    trip_start_date: str,
    nationality: str | None = None,
    today: date | None = None,
) -> dict[str, Any]:
    """Report each permit the region needs and whether it can be issued in time.

    Unknown regions need no permits and are always valid.
    """
    today = today or date.today()
    start = datetime.strptime(trip_start_date[:10], "%Y-%m-%d").date()
    days_until_trip = (start - today).days

    requirements = PERMIT_REQUIREMENTS.get(destination_region.lower())
    if requirements is None:
        return {"valid": True, "permits": []}

    permits = []
    for name, lead_time, restriction in requirements:
        available = days_until_trip >= lead_time
        entry: dict[str, Any] = {
            "name": name,
            "required": True,
            "leadTimeDays": lead_time,
            "available": available,
        }
        if restriction:
            entry["restrictions"] = restriction
        if not available:
            entry["issue"] = (
                f"Requires {lead_time} days lead time (only {days_until_trip} days available)"
            )
        permits.append(entry)

    result: dict[str, Any] = {"valid": all(p["available"] for p in permits), "permits": permits}
    if nationality:
        result["nationality"] = nationality
    if not result["valid"]:
        result["overallIssue"] = (
            "Some permits cannot be obtained in time. Consider postponing the trip start date."
        )
    return result


# ── Upsells ──────────────────────────────────────────────────────────


def generate_upsell_suggestions(
    trip_type: str,
    destination: str,
    current_services: list[str] | None = None,
    travel_style: str | None = None,
    interests: list[str] | None = None,
) -> list[dict[str, Any]]:
    """Add-ons that fit the trip and the client's style, most relevant first.

    *travel_style* defaults to ``"comfort"``; *interests* come from the
    client's stored preferences when the model passes them along.
    """
    current = [s.lower() for s in current_services or []]
    trip_type = trip_type.lower()
    destination = destination.lower()
    travel_style = (travel_style or "comfort").lower()
    interests = [i.lower() for i in interests or []]

    suggestions: list[dict[str, Any]] = []

    if "trek" in trip_type and "helicopter" not in current:
        suggestions.append({
            "type": "helicopter",
            "title": "Scenic Helicopter Return",
            "description": "Skip the return trek with a helicopter flight back to Lukla or "
                           "Kathmandu. Save 3-4 days with panoramic Himalayan views.",
            "relevanceScore": 85,
            "priceRange": "$350-500/person",
        })

    if travel_style in ("luxury", "comfort") and "upgrade" not in current:
        suggestions.append({
            "type": "accommodation_upgrade",
            "title": "Premium Lodge Upgrade",
            "description": "Premium lodges with private bathrooms, heating and gourmet meals.",
            "relevanceScore": 80,
            "priceRange": "+$50-100/night",
        })

    if "photography" in interests and "photography" not in current:
        suggestions.append({
            "type": "photography",
            "title": "Professional Photography Package",
            "description": "A professional photographer for your journey, with edited photos "
                           "and a photo book.",
            "relevanceScore": 75,
            "priceRange": "$200-400",
        })

    if travel_style == "luxury" and "kathmandu" in destination:
        suggestions.append({
            "type": "wellness",
            "title": "Post-Trek Spa Recovery",
            "description": "A spa day at a 5-star Kathmandu hotel after your trek.",
            "relevanceScore": 70,
            "priceRange": "$100-200",
        })

    if "cultural" in interests or "heritage" in interests:
        suggestions.append({
            "type": "cultural",
            "title": "Private Cultural Guide",
            "description": "A cultural expert guide for temples, monasteries and local traditions.",
            "relevanceScore": 65,
            "priceRange": "$50-80/day",
        })

    if "wildlife" in interests and "chitwan" not in destination:
        suggestions.append({
            "type": "extension",
            "title": "Chitwan Wildlife Safari Extension",
            "description": "2-3 days at Chitwan National Park for jungle safaris and bird watching.",
            "relevanceScore": 60,
            "priceRange": "$300-500",
        })

    suggestions.sort(key=lambda s: s["relevanceScore"], reverse=True)
    logger.debug("Upsell suggestions for %s/%s: %d", trip_type, destination, len(suggestions))
    return suggestions
