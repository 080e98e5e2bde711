"""Tests for the tool palette, the registry and the tool handlers."""

from __future__ import annotations

from datetime import date
from unittest.mock import MagicMock

import pytest

from expedition_chat.tools.backend import BASE_CAPACITY
from expedition_chat.tools.definitions import TOOL_DEFINITIONS, ToolName
from expedition_chat.tools.expedition import (
    generate_upsell_suggestions,
    validate_acclimatization,
    validate_permits,
)
from expedition_chat.tools.fallback_rates import (
    MARGIN_MULTIPLIER,
    normalize_category,
    normalize_country,
    research_external_rates,
)
from expedition_chat.tools.registry import ToolRegistry, UnknownToolError

TODAY = date(2026, 3, 1)


# ── Palette and registry ─────────────────────────────────────────────


class TestToolPalette:
    def test_one_definition_per_tool_in_enum_order(self):
        names = [d["function"]["name"] for d in TOOL_DEFINITIONS]
        assert names == [t.value for t in ToolName]

    def test_definitions_are_openai_function_schemas(self):
        for definition in TOOL_DEFINITIONS:
            assert definition["type"] == "function"
            assert definition["function"]["parameters"]["type"] == "object"
            assert definition["function"]["description"]

    def test_required_arguments_are_declared_properties(self):
        for definition in TOOL_DEFINITIONS:
            params = definition["function"]["parameters"]
            assert set(params.get("required", [])) <= set(params["properties"])


class TestToolRegistry:
    def test_every_tool_has_a_handler(self, registry):
        assert isinstance(registry, ToolRegistry)

    def test_missing_handler_is_rejected_at_construction(self):
        with pytest.raises(ValueError, match="get_trip_briefing"):
            ToolRegistry({t: MagicMock() for t in ToolName if t is not ToolName.GET_TRIP_BRIEFING})

    def test_unknown_tool_raises(self, registry):
        with pytest.raises(UnknownToolError, match="teleport"):
            registry.execute("teleport", {})

    def test_dispatches_by_name(self):
        handlers = {t: MagicMock(return_value=t.value) for t in ToolName}
        registry = ToolRegistry(handlers)
        assert registry.execute("validate_permits", {"x": 1}) == "validate_permits"
        handlers[ToolName.VALIDATE_PERMITS].assert_called_once_with({"x": 1})


# ── Registry handlers against the demo backend ───────────────────────


class TestRegistryHandlers:
    def test_search_hotels_filters_by_stars_and_city(self, registry):
        result = registry.execute("search_hotels", {"destination": "Kathmandu", "starRating": 5})
        assert result["count"] == 2
        assert {r["destination"] for r in result["rates"]} == {"Kathmandu"}

    def test_search_rates_by_type(self, registry):
        result = registry.execute("search_rates", {"serviceType": "guide"})
        assert {r["serviceType"] for r in result["rates"]} == {"guide"}

    def test_search_packages_by_country(self, registry):
        result = registry.execute("search_packages", {"country": "Bhutan"})
        assert [r["name"] for r in result["rates"]] == ["Bhutan Happiness Journey"]

    def test_search_rates_with_max_price(self, registry):
        result = registry.execute("search_rates", {"serviceType": "hotel", "maxPrice": 300})
        assert all(r["sellDouble"] <= 300 for r in result["rates"])

    def test_service_details_have_no_prices(self, registry):
        result = registry.execute("get_service_details", {"serviceType": "hotel", "serviceId": 1})
        assert result["name"].startswith("Dwarika's")
        assert not any("sell" in k.lower() or "cost" in k.lower() or "margin" in k.lower() for k in result)

    def test_missing_service_details(self, registry):
        result = registry.execute("get_service_details", {"serviceType": "hotel", "serviceId": 999})
        assert result["error"] == "Service not found"

    def test_calculate_quote_returns_totals_only(self, registry):
        result = registry.execute(
            "calculate_quote",
            {
                "services": [
                    {"serviceType": "hotel", "serviceId": 1, "nights": 3},
                    {"serviceType": "guide", "serviceId": 21, "quantity": 1, "nights": 2},
                    {"serviceType": "flight", "serviceId": 40},
                ],
                "numberOfPax": 2,
            },
        )
        # 450 x 1 room x 3 nights + 70 x 2 days + 285 x 2 pax
        assert result["grandTotal"] == 1350 + 140 + 570
        assert result["perPersonTotal"] == 1030
        assert all("price" not in k.lower() for item in result["servicesIncluded"] for k in item)

    def test_calculate_quote_unknown_rate(self, registry):
        result = registry.execute(
            "calculate_quote", {"services": [{"serviceType": "hotel", "serviceId": 999}], "numberOfPax": 2},
        )
        assert result["servicesIncluded"][0]["error"] == "Rate not found"
        assert result["grandTotal"] == 0

    def test_get_destinations_for_country(self, registry):
        result = registry.execute("get_destinations", {"country": "Bhutan"})
        assert result == [{"country": "Bhutan", "city": "Paro"}]

    def test_get_categories_for_destination(self, registry):
        categories = registry.execute("get_categories", {"destination": "Paro"})
        assert categories == ["hotel", "package"]

    def test_validate_permits_handler(self, registry):
        result = registry.execute(
            "validate_permits", {"destinationRegion": "Everest", "tripStartDate": "2099-01-01"},
        )
        assert result["valid"] is True
        assert len(result["permits"]) == 2

    def test_upsell_handler_wraps_suggestions(self, registry):
        result = registry.execute(
            "get_upsell_suggestions", {"tripType": "trek", "destination": "Everest"},
        )
        assert result["suggestions"][0]["type"] == "helicopter"


# ── Quotes and bookings ──────────────────────────────────────────────


class TestQuotesAndBookings:
    def test_save_quote_numbers_sequentially(self, backend):
        result = backend.save_quote(
            [{"serviceType": "hotel", "serviceId": 1, "serviceName": "Dwarika's", "nights": 2}],
            client_name="Asha",
            number_of_pax=2,
        )
        assert result["success"] is True
        assert result["quoteNumber"] == "QT-2026-0002"
        assert result["totalSellPrice"] == 900
        assert backend.quote("QT-2026-0002")["totalCostPrice"] == 600

    def test_save_quote_rejects_unknown_service_ids(self, backend):
        result = backend.save_quote([{"serviceType": "hotel", "serviceId": 999, "serviceName": "Ghost"}])
        assert "Cannot save quote" in result["error"]
        assert "Ghost" in result["message"]

    def test_save_quote_with_free_text_item(self, backend):
        result = backend.save_quote(
            [{"serviceType": "miscellaneous", "serviceName": "Cooking class", "sellPrice": 80, "quantity": 2}],
        )
        assert result["totalSellPrice"] == 160

    def test_convert_quote_to_booking(self, backend):
        number = backend.save_quote(
            [{"serviceType": "permit", "serviceId": 60, "serviceName": "SNP entry"}],
        )["quoteNumber"]
        result = backend.convert_quote_to_booking(number, client_email="asha@example.com")
        assert result["success"] is True
        assert backend.quote(number)["status"] == "accepted"
        assert backend.quote(number)["clientEmail"] == "asha@example.com"

    def test_already_converted_quote_reports_booking(self, backend):
        result = backend.convert_quote_to_booking("QT-2026-0001")
        assert result["bookingReference"] == "CA-2026-0001"

    def test_unknown_quote(self, backend):
        assert backend.convert_quote_to_booking("QT-1999-0001")["error"] == "Quote not found"

    def test_booking_status(self, backend):
        status = backend.get_booking_status("CA-2026-0001")
        assert status["balanceDue"] == 7200 - 2160
        assert status["operationsStatus"] == "We have contacted all service providers"

    @pytest.mark.parametrize(
        "method",
        ["get_booking_status", "get_payment_schedule", "check_supplier_confirmations", "get_trip_briefing"],
    )
    def test_unknown_booking(self, backend, method):
        assert getattr(backend, method)("CA-0000-0000") == {
            "error": "Booking not found", "bookingReference": "CA-0000-0000",
        }

    def test_payment_schedule_is_sorted_by_due_date(self, backend):
        schedule = backend.get_payment_schedule("CA-2026-0001")["paymentSchedule"]
        assert [m["type"] for m in schedule] == ["deposit", "balance"]
        assert schedule[0]["isPaid"] is True

    def test_supplier_confirmations_summary(self, backend):
        result = backend.check_supplier_confirmations("CA-2026-0001")
        assert result["allConfirmed"] is False
        assert result["summary"].startswith("1 of 2 services confirmed")

    def test_trip_briefing_checklist_mentions_destination(self, backend):
        briefing = backend.get_trip_briefing("CA-2026-0001")
        assert "Check visa requirements for Everest" in briefing["preDepartureChecklist"]

    def test_availability_with_holds(self, backend):
        backend.add_hold("hotel", 1, "2026-10-12", BASE_CAPACITY - 1)
        ok = backend.check_availability("hotel", 1, "2026-10-10", "2026-10-15", quantity=1)
        full = backend.check_availability("hotel", 1, "2026-10-10", "2026-10-15", quantity=2)
        assert ok["available"] is True
        assert full["available"] is False
        assert "Only 1 units available" in full["reason"]


# ── Expedition checks ────────────────────────────────────────────────


class TestAcclimatization:
    def test_classic_everest_itinerary_is_valid(self):
        itinerary = [
            {"day": 1, "location": "Lukla"},
            {"day": 2, "location": "Namche Bazaar"},
            {"day": 3, "location": "Namche Bazaar"},
            {"day": 4, "location": "Tengboche"},
        ]
        result = validate_acclimatization(itinerary)
        assert result["valid"] is True
        assert result["maxAltitudeReached"] == 3867

    def test_large_gain_above_3000m_is_flagged(self):
        result = validate_acclimatization(
            [{"day": 1, "location": "Namche Bazaar"}, {"day": 2, "location": "Lobuche"}],
        )
        assert result["valid"] is False
        assert "exceeds recommended 500m/day" in result["issues"][0]

    def test_rapid_jump_from_low_altitude_is_flagged(self):
        result = validate_acclimatization(
            [{"day": 1, "location": "Kathmandu"}, {"day": 2, "location": "Lhasa"}],
        )
        assert any("too rapid" in issue for issue in result["issues"])

    def test_explicit_altitude_and_unknown_places(self):
        result = validate_acclimatization(
            [{"day": 1, "location": "Somewhere"}, {"day": 2, "location": "Camp", "overnightAltitude": 5200}],
        )
        assert result["dailyAltitudeGains"] == [{"day": 2, "gain": 5200, "altitude": 5200}]
        assert any("Diamox" in r for r in result["recommendations"])


class TestPermits:
    def test_tibet_too_soon(self):
        result = validate_permits("Tibet", "2026-03-21", today=TODAY)
        assert result["valid"] is False
        assert all(p["available"] is False for p in result["permits"])
        assert "20 days available" in result["permits"][0]["issue"]
        assert "overallIssue" in result

    def test_mustang_with_enough_lead_time(self):
        result = validate_permits("mustang", "2026-04-01", nationality="IN", today=TODAY)
        assert result["valid"] is True
        assert result["nationality"] == "IN"

    def test_unknown_region_needs_nothing(self):
        assert validate_permits("Pokhara", "2026-03-02", today=TODAY) == {"valid": True, "permits": []}


class TestUpsells:
    def test_sorted_by_relevance(self):
        suggestions = generate_upsell_suggestions(
            "trek", "Kathmandu and Everest", travel_style="luxury",
            interests=["photography", "cultural", "wildlife"],
        )
        scores = [s["relevanceScore"] for s in suggestions]
        assert scores == sorted(scores, reverse=True)
        assert [s["type"] for s in suggestions][:2] == ["helicopter", "accommodation_upgrade"]
        assert len(suggestions) == 6

    def test_existing_services_are_not_suggested_again(self):
        suggestions = generate_upsell_suggestions("trek", "Everest", current_services=["Helicopter"])
        assert "helicopter" not in {s["type"] for s in suggestions}

    def test_budget_style_gets_no_upgrade(self):
        assert generate_upsell_suggestions("tour", "Paro", travel_style="budget") == []


# ── Fallback market rates ────────────────────────────────────────────


class TestFallbackRates:
    def test_luxury_hotel_in_kathmandu(self):
        result = research_external_rates("hotel", "Boutique heritage hotel", "Kathmandu", category="5-star")
        rates = result["estimatedRates"]
        assert result["source"] == "estimation"
        assert result["confidence"] == "medium"
        assert rates["priceRange"] == {"low": round(200 * MARGIN_MULTIPLIER), "high": round(400 * MARGIN_MULTIPLIER)}
        assert rates["currency"] == "USD"

    def test_unknown_service_has_low_confidence(self):
        result = research_external_rates("spaceflight", "Orbit", "Nepal")
        assert result["confidence"] == "low"

    def test_additional_context_is_added_to_notes(self):
        result = research_external_rates("hotel", "Lodge", "Paro", category="4-star", additional_context="Peak season")
        assert result["estimatedRates"]["notes"][-1] == "Peak season"

    @pytest.mark.parametrize(
        "location, country",
        [("Paro, Bhutan", "bhutan"), ("Lhasa", "tibet"), ("Pokhara", "nepal"), ("Somewhere", "nepal")],
    )
    def test_normalize_country(self, location, country):
        assert normalize_country(location) == country

    def test_normalize_category(self):
        assert normalize_category("Luxury", "hotel") == "5-star"
        assert normalize_category("trekking guide", "guide") == "trekking"
        assert normalize_category(None, "hotel") == "general"
