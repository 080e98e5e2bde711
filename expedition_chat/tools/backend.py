"""Rate, quote and booking lookups behind the travel tools.

:class:`TravelBackend` is what the tool registry needs from the platform
database.  :class:`InMemoryTravelBackend` implements it over a small seeded
catalogue so the CLI, the dev server and the tests run without a database.

Rate records carry their full supplier pricing (cost, sell, margin).  The
backend does not hide any of it: every tool result is sanitised before it
reaches the model.
"""

from __future__ import annotations

import copy
import logging
import math
import threading
from datetime import date
from typing import Any, Protocol

logger = logging.getLogger(__name__)

BASE_CAPACITY = 10
CATEGORIES = [
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

# Per-unit price field for each service type
_SELL_FIELD = {
    "guide": "sellPerDay",
    "porter": "sellPerDay",
    "helicopter_sharing": "sellPerSeat",
    "helicopter_charter": "sellPerCharter",
}
_COST_FIELD = {
    "guide": "costPerDay",
    "porter": "costPerDay",
    "helicopter_sharing": "costPerSeat",
    "helicopter_charter": "costPerCharter",
}
_PER_PAX_TYPES = {"flight", "helicopter_sharing", "permit", "package"}

_OPERATIONS_STATUS = {
    "pending": "We are processing your booking",
    "suppliers_contacted": "We have contacted all service providers",
    "all_confirmed": "All services are confirmed",
    "ready": "Your trip is fully prepared",
}
_CONFIRMATION_STATUS = {
    "pending": "Awaiting confirmation",
    "sent": "Confirmation requested",
    "confirmed": "Confirmed",
    "declined": "Alternative being arranged",
    "cancelled": "Cancelled",
}

PRE_DEPARTURE_CHECKLIST = [
    "Verify passport validity (6+ months from travel date)",
    "Check visa requirements for {destination}",
    "Review travel insurance coverage",
    "Pack appropriate clothing for climate and activities",
    "Inform bank of travel plans",
    "Download offline maps and essential apps",
    "Prepare copies of important documents",
]


class TravelBackend(Protocol):
    """Database operations the travel tools are built on."""

    def search_rates(
        self,
        service_type: str | None = None,
        destination: str | None = None,
        category: str | None = None,
        max_price: float | None = None,
        country: str | None = None,
        star_rating: int | None = None,
        hotel_name: str | None = None,
        package_type: str | None = None,
        difficulty: str | None = None,
        max_days: int | None = None,
        region: str | None = None,
    ) -> list[dict[str, Any]]: ...

    def get_rate(self, service_type: str, service_id: int) -> dict[str, Any] | None: ...

    def calculate_quote(
        self,
        services: list[dict[str, Any]],
        number_of_pax: int,
        number_of_rooms: int | None = None,
        occupancy_type: str = "double",
    ) -> dict[str, Any]: ...

    def get_destinations(self, country: str | None = None) -> list[dict[str, Any]]: ...

    def get_categories(self, destination: str | None = None) -> list[str]: ...

    def save_quote(
        self,
        items: list[dict[str, Any]],
        client_email: str | None = None,
        client_name: str | None = None,
        quote_name: str | None = None,
        destination: str | None = None,
        number_of_pax: int | None = None,
    ) -> dict[str, Any]: ...

    def get_booking_status(self, booking_reference: str) -> dict[str, Any]: ...

    def get_payment_schedule(self, booking_reference: str) -> dict[str, Any]: ...

    def convert_quote_to_booking(
        self, quote_number: str, client_email: str | None = None,
    ) -> dict[str, Any]: ...

    def check_supplier_confirmations(self, booking_reference: str) -> dict[str, Any]: ...

    def get_trip_briefing(self, booking_reference: str) -> dict[str, Any]: ...

    def check_availability(
        self,
        service_type: str,
        service_id: int,
        start_date: str,
        end_date: str,
        quantity: int = 1,
    ) -> dict[str, Any]: ...


def unit_sell_price(rate: dict[str, Any], occupancy_type: str = "double") -> float:
    if rate["serviceType"] == "hotel":
        field = "sellSingle" if occupancy_type == "single" else "sellDouble"
    else:
        field = _SELL_FIELD.get(rate["serviceType"], "sellPrice")
    return float(rate.get(field) or 0)


def unit_cost_price(rate: dict[str, Any], occupancy_type: str = "double") -> float:
    if rate["serviceType"] == "hotel":
        field = "costSingle" if occupancy_type == "single" else "costDouble"
    else:
        field = _COST_FIELD.get(rate["serviceType"], "costPrice")
    return float(rate.get(field) or 0)


def _rooms_for(number_of_pax: int, occupancy_type: str) -> int:
    return math.ceil(number_of_pax / (1 if occupancy_type == "single" else 2))


def _contains(value: Any, needle: str | None) -> bool:
    return needle is None or needle.lower() in str(value or "").lower()


def seed_rates() -> list[dict[str, Any]]:
    """Small Nepal / Bhutan / Tibet catalogue used for local runs."""
    return [
        {
            "id": 1, "serviceType": "hotel", "name": "Dwarika's Hotel - Heritage Suite (BB)",
            "hotelName": "Dwarika's Hotel", "destination": "Kathmandu", "country": "Nepal",
            "category": "Heritage", "starRating": 5, "roomType": "Heritage Suite", "mealPlan": "BB",
            "costSingle": 260, "costDouble": 300, "sellSingle": 390, "sellDouble": 450,
            "marginPercent": 50, "currency": "USD", "inclusions": "Breakfast, airport transfer",
        },
        {
            "id": 2, "serviceType": "hotel", "name": "Hyatt Regency - Deluxe Room (BB)",
            "hotelName": "Hyatt Regency Kathmandu", "destination": "Kathmandu", "country": "Nepal",
            "category": "Luxury", "starRating": 5, "roomType": "Deluxe Room", "mealPlan": "BB",
            "costSingle": 160, "costDouble": 180, "sellSingle": 240, "sellDouble": 270,
            "marginPercent": 50, "currency": "USD", "inclusions": "Breakfast",
        },
        {
            "id": 3, "serviceType": "hotel", "name": "Temple Tree Resort - Garden Room (BB)",
            "hotelName": "Temple Tree Resort", "destination": "Pokhara", "country": "Nepal",
            "category": "Boutique", "starRating": 4, "roomType": "Garden Room", "mealPlan": "BB",
            "costSingle": 90, "costDouble": 110, "sellSingle": 135, "sellDouble": 165,
            "marginPercent": 50, "currency": "USD", "inclusions": "Breakfast",
        },
        {
            "id": 4, "serviceType": "hotel", "name": "Uma Paro - Valley Room (HB)",
            "hotelName": "COMO Uma Paro", "destination": "Paro", "country": "Bhutan",
            "category": "Luxury", "starRating": 5, "roomType": "Valley Room", "mealPlan": "HB",
            "costSingle": 520, "costDouble": 600, "sellSingle": 780, "sellDouble": 900,
            "marginPercent": 50, "currency": "USD", "inclusions": "Breakfast and dinner",
        },
        {
            "id": 10, "serviceType": "transportation", "name": "Toyota Land Cruiser: Kathmandu → Pokhara",
            "vehicleType": "SUV", "routeFrom": "Kathmandu", "routeTo": "Pokhara",
            "destination": "Kathmandu", "country": "Nepal", "costPrice": 120, "sellPrice": 180,
            "currency": "USD",
        },
        {
            "id": 20, "serviceType": "guide", "name": "Licensed trekking guide",
            "guideType": "trekking", "destination": "Everest", "country": "Nepal",
            "costPerDay": 35, "sellPerDay": 55, "currency": "USD",
        },
        {
            "id": 21, "serviceType": "guide", "name": "Kathmandu heritage guide",
            "guideType": "city", "destination": "Kathmandu", "country": "Nepal",
            "costPerDay": 45, "sellPerDay": 70, "currency": "USD",
        },
        {
            "id": 30, "serviceType": "porter", "name": "Trekking porter",
            "destination": "Everest", "country": "Nepal",
            "costPerDay": 22, "sellPerDay": 35, "currency": "USD",
        },
        {
            "id": 40, "serviceType": "flight", "name": "Tara Air: Kathmandu - Lukla",
            "airlineName": "Tara Air", "flightSector": "KTM-LUA", "destination": "Lukla",
            "country": "Nepal", "costPrice": 190, "sellPrice": 285, "currency": "USD",
        },
        {
            "id": 50, "serviceType": "helicopter_sharing", "name": "Everest Base Camp heli tour (shared)",
            "routeName": "Kathmandu - Kala Patthar - Kathmandu", "destination": "Everest",
            "country": "Nepal", "costPerSeat": 1050, "sellPerSeat": 1600, "currency": "USD",
        },
        {
            "id": 51, "serviceType": "helicopter_charter", "name": "Everest Base Camp heli charter",
            "routeName": "Kathmandu - Kala Patthar - Kathmandu", "destination": "Everest",
            "country": "Nepal", "costPerCharter": 4800, "sellPerCharter": 7200, "currency": "USD",
        },
        {
            "id": 60, "serviceType": "permit", "name": "Sagarmatha National Park Entry",
            "destination": "Everest", "country": "Nepal", "costPrice": 30, "sellPrice": 30,
            "currency": "USD",
        },
        {
            "id": 70, "serviceType": "package", "name": "Everest Base Camp Luxury Lodge Trek",
            "packageType": "fixed_departure_trek", "destination": "Everest", "region": "Everest",
            "country": "Nepal", "difficulty": "Challenging", "durationDays": 14, "maxAltitude": 5545,
            "costPrice": 2400, "sellPrice": 3600, "currency": "USD",
            "inclusions": "Lodges, guide, porters, permits, Lukla flights",
        },
        {
            "id": 71, "serviceType": "package", "name": "Bhutan Happiness Journey",
            "packageType": "bhutan_program", "destination": "Paro", "region": "Western Bhutan",
            "country": "Bhutan", "difficulty": "Easy", "durationDays": 7,
            "costPrice": 3100, "sellPrice": 4650, "currency": "USD",
            "inclusions": "Hotels, guide, SDF, transfers",
        },
        {
            "id": 80, "serviceType": "miscellaneous", "name": "Private dinner at Krishnarpan",
            "category": "dining", "destination": "Kathmandu", "country": "Nepal",
            "costPrice": 90, "sellPrice": 140, "currency": "USD",
        },
    ]


class InMemoryTravelBackend:
    """Thread-safe :class:`TravelBackend` over in-process tables."""

    def __init__(
        self,
        rates: list[dict[str, Any]] | None = None,
        today: date | None = None,
    ) -> None:
        self._rates = seed_rates() if rates is None else rates
        self._today = today
        self._quotes: dict[str, dict[str, Any]] = {}
        self._bookings: dict[str, dict[str, Any]] = {}
        self._holds: list[dict[str, Any]] = []
        self._lock = threading.Lock()

    @classmethod
    def with_demo_data(cls, today: date | None = None) -> InMemoryTravelBackend:
        """Seeded catalogue plus one accepted quote and its booking."""
        backend = cls(today=today)
        backend.add_quote({
            "quoteNumber": "QT-2026-0001",
            "quoteName": "Everest Base Camp Luxury Lodge Trek - October 2026",
            "destination": "Everest",
            "numberOfPax": 2,
            "items": [],
            "totalSellPrice": 7200,
            "totalCostPrice": 4800,
            "totalMargin": 2400,
            "status": "accepted",
        })
        backend.add_booking({
            "bookingReference": "CA-2026-0001",
            "quoteNumber": "QT-2026-0001",
            "tripName": "Everest Base Camp Luxury Lodge Trek - October 2026",
            "destination": "Everest",
            "clientName": "Demo Client",
            "numberOfPax": 2,
            "status": "confirmed",
            "paymentStatus": "partial",
            "operationsStatus": "suppliers_contacted",
            "startDate": "2026-10-12",
            "endDate": "2026-10-26",
            "totalAmount": 7200,
            "paidAmount": 2160,
            "currency": "USD",
            "milestones": [
                {"type": "deposit", "description": "30% deposit", "amount": 2160,
                 "percentage": 30, "dueDate": "2026-06-01", "status": "paid", "paidDate": "2026-05-28"},
                {"type": "balance", "description": "Balance", "amount": 5040,
                 "percentage": 70, "dueDate": "2026-09-12", "status": "pending"},
            ],
            "confirmations": [
                {"serviceName": "Dwarika's Hotel", "serviceType": "hotel", "status": "confirmed"},
                {"serviceName": "Tara Air: Kathmandu - Lukla", "serviceType": "flight", "status": "sent"},
            ],
        })
        return backend

    def _now(self) -> date:
        return self._today or date.today()

    # ── Seeding helpers ──────────────────────────────────────────────

    def add_booking(self, booking: dict[str, Any]) -> None:
        """Store a booking record keyed by its ``bookingReference``."""
        with self._lock:
            self._bookings[booking["bookingReference"]] = booking

    def add_quote(self, quote: dict[str, Any]) -> None:
        with self._lock:
            self._quotes[quote["quoteNumber"]] = quote

    def add_hold(self, service_type: str, service_id: int, hold_date: str, quantity: int) -> None:
        with self._lock:
            self._holds.append({
                "serviceType": service_type,
                "serviceId": service_id,
                "holdDate": hold_date,
                "quantity": quantity,
            })

    def quote(self, quote_number: str) -> dict[str, Any] | None:
        with self._lock:
            return copy.deepcopy(self._quotes.get(quote_number))

    # ── Rates ────────────────────────────────────────────────────────

    def search_rates(
        self,
        service_type: str | None = None,
        destination: str | None = None,
        category: str | None = None,
        max_price: float | None = None,
        country: str | None = None,
        star_rating: int | None = None,
        hotel_name: str | None = None,
        package_type: str | None = None,
        difficulty: str | None = None,
        max_days: int | None = None,
        region: str | None = None,
    ) -> list[dict[str, Any]]:
        results = []
        for rate in self._rates:
            if service_type and rate["serviceType"] != service_type:
                continue
            if destination and not any(
                _contains(rate.get(f), destination) for f in ("destination", "region", "country", "name")
            ):
                continue
            if category and not (
                _contains(rate.get("category"), category) or _contains(rate.get("guideType"), category)
            ):
                continue
            if country and not _contains(rate.get("country"), country):
                continue
            if star_rating and rate.get("starRating") != star_rating:
                continue
            if hotel_name and not _contains(rate.get("hotelName"), hotel_name):
                continue
            if package_type and rate.get("packageType") != package_type:
                continue
            if difficulty and not _contains(rate.get("difficulty"), difficulty):
                continue
            if max_days and (rate.get("durationDays") or 0) > max_days:
                continue
            if region and not _contains(rate.get("region") or rate.get("destination"), region):
                continue
            if max_price is not None and unit_sell_price(rate) > max_price:
                continue
            results.append(copy.deepcopy(rate))
        return results[:15]

    def get_rate(self, service_type: str, service_id: int) -> dict[str, Any] | None:
        for rate in self._rates:
            if rate["id"] == service_id and (not service_type or rate["serviceType"] == service_type):
                return copy.deepcopy(rate)
        return None

    def get_destinations(self, country: str | None = None) -> list[dict[str, Any]]:
        seen: dict[tuple[str, str], dict[str, Any]] = {}
        for rate in self._rates:
            if country and not _contains(rate.get("country"), country):
                continue
            key = (rate["country"], rate["destination"])
            seen.setdefault(key, {"country": rate["country"], "city": rate["destination"]})
        return list(seen.values())

    def get_categories(self, destination: str | None = None) -> list[str]:
        if not destination:
            return list(CATEGORIES)
        present = {r["serviceType"] for r in self.search_rates(destination=destination)}
        return [c for c in CATEGORIES if c in present]

    # ── Quotes ───────────────────────────────────────────────────────

    def calculate_quote(
        self,
        services: list[dict[str, Any]],
        number_of_pax: int,
        number_of_rooms: int | None = None,
        occupancy_type: str = "double",
    ) -> dict[str, Any]:
        """Price the selected services for the group.

        Only the grand total and the per-person total are priced; line items
        describe what is included.
        """
        occupancy_type = occupancy_type or "double"
        line_items = []
        grand_total = 0.0

        for svc in services:
            service_type = svc.get("serviceType", "")
            service_id = svc.get("serviceId")
            rate = self.get_rate(service_type, service_id)
            if rate is None:
                line_items.append({
                    "serviceType": service_type, "serviceId": service_id, "error": "Rate not found",
                })
                continue

            qty = svc.get("quantity") or 1
            nights = svc.get("nights") or 1
            unit = unit_sell_price(rate, occupancy_type)
            item: dict[str, Any] = {"serviceType": service_type, "serviceId": service_id, "name": rate["name"]}

            if service_type == "hotel":
                rooms = number_of_rooms or _rooms_for(number_of_pax, occupancy_type)
                grand_total += unit * rooms * nights
                item.update(rooms=rooms, nights=nights)
            elif service_type in ("guide", "porter"):
                grand_total += unit * qty * nights
                item.update(quantity=qty, days=nights)
            elif service_type in _PER_PAX_TYPES:
                grand_total += unit * number_of_pax
                item.update(pax=number_of_pax)
            else:
                grand_total += unit * qty
                item.update(quantity=qty)
            line_items.append(item)

        return {
            "numberOfPax": number_of_pax,
            "occupancyType": occupancy_type,
            "servicesIncluded": line_items,
            "grandTotal": round(grand_total, 2),
            "perPersonTotal": round(grand_total / number_of_pax, 2) if number_of_pax > 0 else 0,
            "currency": "USD",
            "note": "This is an estimated quote. Final pricing subject to availability confirmation.",
        }

    def save_quote(
        self,
        items: list[dict[str, Any]],
        client_email: str | None = None,
        client_name: str | None = None,
        quote_name: str | None = None,
        destination: str | None = None,
        number_of_pax: int | None = None,
    ) -> dict[str, Any]:
        """Store a draft quote.  Items with a ``serviceId`` are priced from the rate table."""
        invalid = [
            i for i in items
            if i.get("serviceId") and self.get_rate(i.get("serviceType", ""), i["serviceId"]) is None
        ]
        if invalid:
            names = ", ".join(f"{i.get('serviceName')} ({i.get('serviceType')} #{i['serviceId']})" for i in invalid)
            return {
                "error": "Cannot save quote: some service IDs do not exist in the database.",
                "message": f"The following items have invalid serviceIds: {names}. "
                           "Use search_rates or search_packages to find valid records first.",
            }

        total_sell = 0.0
        total_cost = 0.0
        stored_items = []
        for item in items:
            qty = item.get("quantity") or 1
            nights = item.get("nights") or 1
            if item.get("serviceId"):
                rate = self.get_rate(item.get("serviceType", ""), item["serviceId"])
                unit_sell = unit_sell_price(rate)
                unit_cost = unit_cost_price(rate)
            else:
                unit_sell = float(item.get("sellPrice") or 0)
                unit_cost = 0.0
            effective = qty * nights if item.get("serviceType") in ("hotel", "guide", "porter", "miscellaneous") else qty
            total_sell += unit_sell * effective
            total_cost += unit_cost * effective
            stored_items.append({**item, "quantity": effective, "sellPrice": unit_sell, "costPrice": unit_cost})

        with self._lock:
            quote_number = f"QT-{self._now().year}-{len(self._quotes) + 1:04d}"
            self._quotes[quote_number] = {
                "quoteNumber": quote_number,
                "quoteName": quote_name,
                "destination": destination,
                "clientEmail": client_email,
                "clientName": client_name,
                "numberOfPax": number_of_pax,
                "items": stored_items,
                "totalSellPrice": round(total_sell, 2),
                "totalCostPrice": round(total_cost, 2) if total_cost else None,
                "totalMargin": round(total_sell - total_cost, 2) if total_cost else None,
                "status": "draft",
            }
        logger.info("Saved quote %s (%d items)", quote_number, len(items))
        return {
            "success": True,
            "quoteNumber": quote_number,
            "totalSellPrice": round(total_sell, 2),
            "perPersonPrice": round(total_sell / number_of_pax, 2) if number_of_pax else None,
            "message": f"Quote {quote_number} saved successfully.",
        }

    def convert_quote_to_booking(
        self, quote_number: str, client_email: str | None = None,
    ) -> dict[str, Any]:
        with self._lock:
            quote = self._quotes.get(quote_number)
            if quote is None:
                return {"error": "Quote not found", "quoteNumber": quote_number}
            if quote["status"] == "expired":
                return {"error": "This quote has expired. Please request a new quote."}
            existing = next(
                (b for b in self._bookings.values() if b.get("quoteNumber") == quote_number), None,
            )
            if existing is not None:
                return {
                    "message": "This quote has already been converted to a booking.",
                    "bookingReference": existing["bookingReference"],
                }
            quote["status"] = "accepted"
            if client_email and not quote.get("clientEmail"):
                quote["clientEmail"] = client_email

        return {
            "success": True,
            "quoteNumber": quote_number,
            "quoteName": quote.get("quoteName"),
            "totalAmount": quote["totalSellPrice"],
            "message": f"Your quote {quote_number} has been marked as accepted. Our team will "
                       "process your booking and send a confirmation email shortly.",
            "nextSteps": [
                "You will receive a booking confirmation email within 24 hours",
                "The email will include your booking reference number",
                "Payment instructions will be provided with deposit and balance deadlines",
            ],
        }

    # ── Bookings ─────────────────────────────────────────────────────

    def _booking(self, reference: str) -> dict[str, Any] | None:
        with self._lock:
            return copy.deepcopy(self._bookings.get(reference))

    def get_booking_status(self, booking_reference: str) -> dict[str, Any]:
        booking = self._booking(booking_reference)
        if booking is None:
            return {"error": "Booking not found", "bookingReference": booking_reference}
        return {
            "bookingReference": booking_reference,
            "status": booking.get("status"),
            "paymentStatus": booking.get("paymentStatus"),
            "tripName": booking.get("tripName"),
            "destination": booking.get("destination"),
            "startDate": booking.get("startDate"),
            "endDate": booking.get("endDate"),
            "numberOfTravelers": booking.get("numberOfPax"),
            "clientName": booking.get("clientName"),
            "totalAmount": booking.get("totalAmount"),
            "amountPaid": booking.get("paidAmount"),
            "balanceDue": booking.get("totalAmount", 0) - booking.get("paidAmount", 0),
            "currency": booking.get("currency", "USD"),
            "operationsStatus": _OPERATIONS_STATUS.get(booking.get("operationsStatus"), "Processing"),
        }

    def get_payment_schedule(self, booking_reference: str) -> dict[str, Any]:
        booking = self._booking(booking_reference)
        if booking is None:
            return {"error": "Booking not found", "bookingReference": booking_reference}
        milestones = sorted(booking.get("milestones", []), key=lambda m: m["dueDate"])
        return {
            "bookingReference": booking_reference,
            "totalAmount": booking.get("totalAmount"),
            "currency": booking.get("currency", "USD"),
            "paymentSchedule": [
                {
                    "type": m.get("type"),
                    "description": m.get("description"),
                    "amount": m.get("amount"),
                    "percentage": m.get("percentage"),
                    "dueDate": m["dueDate"],
                    "status": m.get("status"),
                    "isPaid": m.get("status") == "paid",
                    "paidDate": m.get("paidDate"),
                }
                for m in milestones
            ],
        }

    def check_supplier_confirmations(self, booking_reference: str) -> dict[str, Any]:
        booking = self._booking(booking_reference)
        if booking is None:
            return {"error": "Booking not found", "bookingReference": booking_reference}
        confirmations = booking.get("confirmations", [])
        confirmed = sum(1 for c in confirmations if c.get("status") == "confirmed")
        total = len(confirmations)
        all_confirmed = total > 0 and confirmed == total
        return {
            "bookingReference": booking_reference,
            "summary": (
                "All services are confirmed! Your trip is fully secured."
                if all_confirmed
                else f"{confirmed} of {total} services confirmed. "
                     "We are working on the remaining confirmations."
            ),
            "allConfirmed": all_confirmed,
            "services": [
                {
                    "serviceName": c.get("serviceName"),
                    "serviceType": c.get("serviceType"),
                    "isConfirmed": c.get("status") == "confirmed",
                    "status": _CONFIRMATION_STATUS.get(c.get("status"), "Processing"),
                }
                for c in confirmations
            ],
        }

    def get_trip_briefing(self, booking_reference: str) -> dict[str, Any]:
        booking = self._booking(booking_reference)
        if booking is None:
            return {"error": "Booking not found", "bookingReference": booking_reference}
        destination = booking.get("destination")
        confirmations = booking.get("confirmations", [])
        return {
            "bookingReference": booking_reference,
            "tripName": booking.get("tripName"),
            "destination": destination,
            "startDate": booking.get("startDate"),
            "endDate": booking.get("endDate"),
            "numberOfTravelers": booking.get("numberOfPax"),
            "services": [c.get("serviceName") for c in confirmations],
            "allServicesConfirmed": all(c.get("status") == "confirmed" for c in confirmations),
            "specialRequests": booking.get("specialRequests"),
            "preDepartureChecklist": [
                line.format(destination=destination or "your destination")
                for line in PRE_DEPARTURE_CHECKLIST
            ],
        }

    # ── Availability ─────────────────────────────────────────────────

    def check_availability(
        self,
        service_type: str,
        service_id: int,
        start_date: str,
        end_date: str,
        quantity: int = 1,
    ) -> dict[str, Any]:
        """Compare active holds in the date range against a fixed capacity."""
        with self._lock:
            held = sum(
                h["quantity"]
                for h in self._holds
                if h["serviceType"] == service_type
                and h["serviceId"] == service_id
                and start_date <= h["holdDate"] <= end_date
            )
        rate = self.get_rate(service_type, service_id)
        name = rate["name"] if rate else f"Service #{service_id}"
        remaining = BASE_CAPACITY - held
        result: dict[str, Any] = {
            "available": remaining >= quantity,
            "serviceType": service_type,
            "serviceName": name,
            "requestedDate": start_date,
        }
        if remaining < quantity:
            result["reason"] = f"Only {remaining} units available ({quantity} requested)"
            result["alternatives"] = [
                "Consider alternative dates",
                "Check similar services in the area",
            ]
        return result
