"""Dispatch from tool name to handler.

The registry maps every :class:`ToolName` to a callable taking the model's
argument dict.  It refuses to build when a tool has no handler, so adding a
tool to the palette without wiring it up fails at start-up instead of at
the first call.
"""

from __future__ import annotations

import logging
from collections.abc import Callable, Mapping
from typing import Any, Protocol

from expedition_chat.sanitizer import strip_all_pricing
from expedition_chat.tools.backend import TravelBackend
from expedition_chat.tools.definitions import ToolName
from expedition_chat.tools.expedition import (
    generate_upsell_suggestions,
    validate_acclimatization,
    validate_permits,
)
from expedition_chat.tools.fallback_rates import research_external_rates

logger = logging.getLogger(__name__)

ToolHandler = Callable[[dict[str, Any]], Any]


class UnknownToolError(Exception):
    """Raised when the model asks for a tool that is not in :class:`ToolName`."""


class ToolExecutor(Protocol):
    """Anything that can run a named tool with JSON arguments.

    The result is a JSON-compatible value or a JSON string.  Implementations
    may raise; the orchestrator turns exceptions into error tool results.
    """

    def execute(self, tool_name: str, args: dict[str, Any]) -> Any: ...


class ToolRegistry:
    """:class:`ToolExecutor` backed by an exhaustive handler table."""

    def __init__(self, handlers: Mapping[ToolName, ToolHandler]) -> None:
        missing = [name.value for name in ToolName if name not in handlers]
        if missing:
            raise ValueError(f"No handler registered for tools: {', '.join(missing)}")
        self._handlers = dict(handlers)

    def execute(self, tool_name: str, args: dict[str, Any]) -> Any:
        try:
            name = ToolName(tool_name)
        except ValueError:
            raise UnknownToolError(f"Unknown tool: {tool_name}") from None
        logger.info("Executing tool %s", name.value)
        return self._handlers[name](args)


def build_tool_registry(backend: TravelBackend) -> ToolRegistry:
    """Wire every tool to *backend* or to a pure handler."""

    def search_rates(args: dict[str, Any]) -> dict[str, Any]:
        rates = backend.search_rates(
            service_type=args.get("serviceType"),
            destination=args.get("destination"),
            category=args.get("category"),
            max_price=args.get("maxPrice"),
            country=args.get("country"),
        )
        return {"rates": rates, "count": len(rates)}

    def search_hotels(args: dict[str, Any]) -> dict[str, Any]:
        rates = backend.search_rates(
            service_type="hotel",
            destination=args.get("destination"),
            category=args.get("category"),
            star_rating=args.get("starRating"),
            hotel_name=args.get("hotelName"),
        )
        return {"rates": rates, "count": len(rates)}

    def search_packages(args: dict[str, Any]) -> dict[str, Any]:
        rates = backend.search_rates(
            service_type="package",
            country=args.get("country"),
            package_type=args.get("packageType"),
            difficulty=args.get("difficulty"),
            max_days=args.get("maxDays"),
            region=args.get("region"),
        )
        return {"rates": rates, "count": len(rates)}

    def calculate_quote(args: dict[str, Any]) -> dict[str, Any]:
        return backend.calculate_quote(
            args["services"],
            int(args["numberOfPax"]),
            number_of_rooms=args.get("numberOfRooms"),
            occupancy_type=args.get("occupancyType") or "double",
        )

    def get_service_details(args: dict[str, Any]) -> Any:
        # The model describes services; it never quotes per-item figures
        rate = backend.get_rate(args.get("serviceType", ""), int(args["serviceId"]))
        if rate is None:
            return {"error": "Service not found", "serviceId": args["serviceId"]}
        return strip_all_pricing(rate)

    def save_quote(args: dict[str, Any]) -> dict[str, Any]:
        return backend.save_quote(
            args["items"],
            client_email=args.get("clientEmail"),
            client_name=args.get("clientName"),
            quote_name=args.get("quoteName"),
            destination=args.get("destination"),
            number_of_pax=args.get("numberOfPax"),
        )

    def research_rates(args: dict[str, Any]) -> dict[str, Any]:
        return research_external_rates(
            args["serviceType"],
            args["serviceName"],
            args["location"],
            category=args.get("category"),
            additional_context=args.get("additionalContext"),
        )

    def check_availability(args: dict[str, Any]) -> dict[str, Any]:
        return backend.check_availability(
            args["serviceType"],
            int(args["serviceId"]),
            args["startDate"],
            args["endDate"],
            quantity=int(args.get("quantity") or 1),
        )

    def upsells(args: dict[str, Any]) -> dict[str, Any]:
        suggestions = generate_upsell_suggestions(
            args["tripType"],
            args["destination"],
            current_services=args.get("currentServices"),
            travel_style=args.get("travelStyle"),
            interests=args.get("interests"),
        )
        return {"suggestions": suggestions}

    handlers: dict[ToolName, ToolHandler] = {
        ToolName.SEARCH_RATES: search_rates,
        ToolName.SEARCH_HOTELS: search_hotels,
        ToolName.SEARCH_PACKAGES: search_packages,
        ToolName.CALCULATE_QUOTE: calculate_quote,
        ToolName.GET_DESTINATIONS: lambda a: backend.get_destinations(a.get("country")),
        ToolName.GET_SERVICE_DETAILS: get_service_details,
        ToolName.GET_CATEGORIES: lambda a: backend.get_categories(a.get("destination")),
        ToolName.RESEARCH_EXTERNAL_RATES: research_rates,
        ToolName.SAVE_QUOTE: save_quote,
        ToolName.GET_BOOKING_STATUS: lambda a: backend.get_booking_status(a["bookingReference"]),
        ToolName.GET_PAYMENT_SCHEDULE: lambda a: backend.get_payment_schedule(a["bookingReference"]),
        ToolName.CONVERT_QUOTE_TO_BOOKING: lambda a: backend.convert_quote_to_booking(
            a["quoteNumber"], a.get("clientEmail"),
        ),
        ToolName.CHECK_SUPPLIER_CONFIRMATIONS: lambda a: backend.check_supplier_confirmations(
            a["bookingReference"],
        ),
        ToolName.GET_TRIP_BRIEFING: lambda a: backend.get_trip_briefing(a["bookingReference"]),
        ToolName.CHECK_AVAILABILITY: check_availability,
        ToolName.VALIDATE_TREK_ACCLIMATIZATION: lambda a: validate_acclimatization(a["itinerary"]),
        ToolName.VALIDATE_PERMITS: lambda a: validate_permits(
            a["destinationRegion"], a["tripStartDate"], a.get("nationality"),
        ),
        ToolName.GET_UPSELL_SUGGESTIONS: upsells,
    }
    return ToolRegistry(handlers)
