"""Tool palette offered to the model, in OpenAI function-calling format.

:class:`ToolName` is the closed set of tools the orchestrator can execute;
:data:`TOOL_DEFINITIONS` holds one schema per member, in enum order.
Argument names are camelCase because they are part of the wire contract
with the model.
"""

from __future__ import annotations

from enum import Enum
from typing import Any


class ToolName(str, Enum):
    SEARCH_RATES = "search_rates"
    SEARCH_HOTELS = "search_hotels"
    SEARCH_PACKAGES = "search_packages"
    CALCULATE_QUOTE = "calculate_quote"
    GET_DESTINATIONS = "get_destinations"
    GET_SERVICE_DETAILS = "get_service_details"
    GET_CATEGORIES = "get_categories"
    RESEARCH_EXTERNAL_RATES = "research_external_rates"
    SAVE_QUOTE = "save_quote"
    GET_BOOKING_STATUS = "get_booking_status"
    GET_PAYMENT_SCHEDULE = "get_payment_schedule"
    CONVERT_QUOTE_TO_BOOKING = "convert_quote_to_booking"
    CHECK_SUPPLIER_CONFIRMATIONS = "check_supplier_confirmations"
    GET_TRIP_BRIEFING = "get_trip_briefing"
    CHECK_AVAILABILITY = "check_availability"
    VALIDATE_TREK_ACCLIMATIZATION = "validate_trek_acclimatization"
    VALIDATE_PERMITS = "validate_permits"
    GET_UPSELL_SUGGESTIONS = "get_upsell_suggestions"


SERVICE_TYPES = [
    "hotel",
    "transportation",
    "guide",
    "porter",
    "flight",
    "helicopter_sharing",
    "helicopter_charter",
    "permit",
    "package",
    "miscellaneous",
]
COUNTRIES = ["Nepal", "Tibet", "Bhutan", "India"]


def _function(
    name: ToolName,
    description: str,
    properties: dict[str, Any],
    required: list[str] | None = None,
) -> dict[str, Any]:
    parameters: dict[str, Any] = {"type": "object", "properties": properties}
    if required:
        parameters["required"] = required
    return {
        "type": "function",
        "function": {"name": name.value, "description": description, "parameters": parameters},
    }


def _string(description: str, enum: list[str] | None = None) -> dict[str, Any]:
    schema: dict[str, Any] = {"type": "string", "description": description}
    if enum:
        schema["enum"] = enum
    return schema


def _integer(description: str) -> dict[str, Any]:
    return {"type": "integer", "description": description}


_BOOKING_REFERENCE = {"bookingReference": _string("The booking reference number (e.g., CA-2025-0001)")}


TOOL_DEFINITIONS: list[dict[str, Any]] = [
    _function(
        ToolName.SEARCH_RATES,
        "Search for rates in the database: hotels, transportation, guides, porters, "
        "flights, helicopters, permits, packages and miscellaneous services. If this "
        "returns empty results, provide approximate market rates clearly labelled as estimates.",
        {
            "serviceType": _string("Type of service to search for", SERVICE_TYPES),
            "destination": _string("Location to search (e.g., Kathmandu, Everest Region, Pokhara)"),
            "category": _string("Category filter (e.g., luxury, 5-star, trekking, city)"),
            "maxPrice": {"type": "number", "description": "Maximum price filter"},
            "country": _string("Country to search in", COUNTRIES),
        },
        ["serviceType"],
    ),
    _function(
        ToolName.SEARCH_HOTELS,
        "Search for hotels by location, star rating, or category. If no hotels are "
        "found, provide approximate market rates for similar properties.",
        {
            "destination": _string("City or region to search (e.g., Kathmandu, Pokhara, Namche)"),
            "starRating": {"type": "integer", "minimum": 1, "maximum": 5, "description": "Star rating filter (1-5)"},
            "category": _string(
                "Hotel category",
                ["Luxury", "Boutique", "Heritage", "Business", "Resort", "Lodge", "Budget"],
            ),
            "hotelName": _string("Search by specific hotel name"),
        },
    ),
    _function(
        ToolName.SEARCH_PACKAGES,
        "Search for travel packages including treks, tours, and expeditions.",
        {
            "packageType": _string(
                "Type of package",
                [
                    "fixed_departure_trek",
                    "expedition",
                    "tibet_tour",
                    "bhutan_program",
                    "india_program",
                    "multi_country",
                ],
            ),
            "country": _string("Country", COUNTRIES),
            "difficulty": _string("Difficulty level", ["Easy", "Moderate", "Challenging", "Extreme"]),
            "maxDays": _integer("Maximum number of days"),
            "region": _string("Region (e.g., Everest, Annapurna, Langtang)"),
        },
    ),
    _function(
        ToolName.CALCULATE_QUOTE,
        "Calculate a quote for a client based on selected services and number of travelers.",
        {
            "services": {
                "type": "array",
                "description": "Services to include in the quote",
                "items": {
                    "type": "object",
                    "properties": {
                        "serviceType": _string("Type of service"),
                        "serviceId": _integer("ID of the specific service/rate"),
                        "quantity": _integer("Number of units (rooms, days, etc.)"),
                        "nights": _integer("Number of nights (for hotels)"),
                    },
                    "required": ["serviceType", "serviceId"],
                },
            },
            "numberOfPax": _integer("Number of travelers"),
            "numberOfRooms": _integer("Number of rooms needed"),
            "occupancyType": _string("Room occupancy type", ["single", "double", "triple"]),
        },
        ["services", "numberOfPax"],
    ),
    _function(
        ToolName.GET_DESTINATIONS,
        "Get the list of destinations we cover.",
        {"country": _string("Filter by country", COUNTRIES)},
    ),
    _function(
        ToolName.GET_SERVICE_DETAILS,
        "Get detailed information about a specific service by ID.",
        {
            "serviceType": _string("Type of service", SERVICE_TYPES),
            "serviceId": _integer("ID of the service"),
        },
        ["serviceType", "serviceId"],
    ),
    _function(
        ToolName.GET_CATEGORIES,
        "Get the available service categories (hotel, transportation, guide, etc.).",
        {"destination": _string("Optional destination to filter categories by")},
    ),
    _function(
        ToolName.RESEARCH_EXTERNAL_RATES,
        "Use when a specific hotel, service, or package is NOT in our database. Returns "
        "approximate market rates; always label them as ESTIMATES and offer confirmed pricing.",
        {
            "serviceType": _string(
                "Type of service to research",
                ["hotel", "transportation", "guide", "porter", "flight", "helicopter", "permit", "package", "activity"],
            ),
            "serviceName": _string("Name of the specific hotel, service, or package"),
            "location": _string("Location (city, region, or country)"),
            "category": _string("Category or star rating if applicable (e.g., '5-star', 'luxury', 'budget')"),
            "additionalContext": _string("Any additional context about the request"),
        },
        ["serviceType", "serviceName", "location"],
    ),
    _function(
        ToolName.SAVE_QUOTE,
        "Save a quote as a draft once the client confirms they want one, or when enough "
        "information has been gathered for a formal quote.",
        {
            "clientEmail": _string("Client's email address"),
            "clientName": _string("Client's name"),
            "quoteName": _string("Title for the quote (e.g., 'Everest Base Camp Trek - March 2025')"),
            "destination": _string("Primary destination"),
            "numberOfPax": _integer("Number of travelers"),
            "items": {
                "type": "array",
                "description": "Quote line items",
                "items": {
                    "type": "object",
                    "properties": {
                        "serviceType": _string("Type of service"),
                        "serviceId": _integer("Database ID of the service, from a search result"),
                        "serviceName": _string("Name of the service"),
                        "nights": _integer("Nights (hotels) or days (guides, porters)"),
                        "description": _string("Description of the line item"),
                        "quantity": _integer("Quantity"),
                        "sellPrice": {"type": "number", "description": "Sell price per unit when there is no serviceId"},
                    },
                    "required": ["serviceType", "serviceName"],
                },
            },
        },
        ["items"],
    ),
    _function(
        ToolName.GET_BOOKING_STATUS,
        "Get the status, dates, traveler count and payment summary of a booking.",
        _BOOKING_REFERENCE,
        ["bookingReference"],
    ),
    _function(
        ToolName.GET_PAYMENT_SCHEDULE,
        "Get the payment milestones (due dates, amounts, paid status) for a booking.",
        _BOOKING_REFERENCE,
        ["bookingReference"],
    ),
    _function(
        ToolName.CONVERT_QUOTE_TO_BOOKING,
        "Convert an accepted quote to a booking when the client confirms they want to proceed.",
        {
            "quoteNumber": _string("The quote number to convert (e.g., QT-2025-0001)"),
            "clientEmail": _string("Client's email address for confirmation"),
        },
        ["quoteNumber"],
    ),
    _function(
        ToolName.CHECK_SUPPLIER_CONFIRMATIONS,
        "Check which services of a booking are confirmed by suppliers (no supplier contact details).",
        _BOOKING_REFERENCE,
        ["bookingReference"],
    ),
    _function(
        ToolName.GET_TRIP_BRIEFING,
        "Get the client-facing trip briefing (itinerary, checklist, travel details) for a booking.",
        _BOOKING_REFERENCE,
        ["bookingReference"],
    ),
    _function(
        ToolName.CHECK_AVAILABILITY,
        "Check availability for a service on specific dates before confirming a booking.",
        {
            "serviceType": _string("Type of service to check", SERVICE_TYPES[:7] + ["package"]),
            "serviceId": _integer("ID of the specific service"),
            "startDate": _string("Start date in YYYY-MM-DD format"),
            "endDate": _string("End date in YYYY-MM-DD format"),
            "quantity": {"type": "integer", "description": "Number of units needed", "default": 1},
        },
        ["serviceType", "serviceId", "startDate", "endDate"],
    ),
    _function(
        ToolName.VALIDATE_TREK_ACCLIMATIZATION,
        "Validate a trek itinerary against safe altitude-gain guidelines.",
        {
            "itinerary": {
                "type": "array",
                "description": "Trek days with overnight locations and altitudes",
                "items": {
                    "type": "object",
                    "properties": {
                        "day": _integer("Day number of the trek"),
                        "location": _string("Overnight location (e.g., Namche Bazaar, Tengboche)"),
                        "overnightAltitude": _integer("Sleeping altitude in meters (optional if location is known)"),
                    },
                    "required": ["day", "location"],
                },
            },
        },
        ["itinerary"],
    ),
    _function(
        ToolName.VALIDATE_PERMITS,
        "Check permit requirements and lead times for restricted or protected regions.",
        {
            "destinationRegion": _string(
                "The destination region requiring permits",
                ["tibet", "everest", "annapurna", "mustang", "dolpo", "manaslu", "bhutan"],
            ),
            "tripStartDate": _string("Trip start date in YYYY-MM-DD format"),
            "nationality": _string("Traveler's nationality"),
        },
        ["destinationRegion", "tripStartDate"],
    ),
    _function(
        ToolName.GET_UPSELL_SUGGESTIONS,
        "Get relevant add-ons and upgrades for the trip and client preferences.",
        {
            "tripType": _string("Type of trip (e.g., trek, tour, expedition, cultural)"),
            "destination": _string("Primary destination"),
            "currentServices": {
                "type": "array",
                "items": {"type": "string"},
                "description": "Services already included in the trip",
            },
            "travelStyle": _string("Client's travel style from their profile (e.g., luxury, comfort)"),
            "interests": {
                "type": "array",
                "items": {"type": "string"},
                "description": "Client interests from their profile (e.g., photography, wildlife)",
            },
        },
        ["tripType", "destination"],
    ),
]
