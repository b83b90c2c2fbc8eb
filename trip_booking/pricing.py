import logging
import math
from decimal import ROUND_HALF_UP, Decimal

from .domain import PriceBreakdown, PriceQuote
from .exceptions import ValidationError
from .geo import haversine_km
from .reference import load_pricing_inputs

logger = logging.getLogger(__name__)

CENT = Decimal("0.01")
ZERO = Decimal("0.00")


def quantize_money(value):
    return Decimal(value).quantize(CENT, rounding=ROUND_HALF_UP)


def count_nights(start_date, end_date):
    """Billable nights between two dates; never less than one."""
    return max(1, (end_date - start_date).days)


def itinerary_distance_km(days, pois):
    """
    Sum of great-circle legs between consecutive POIs of each day.

    A leg counts only when both of its stops have coordinates, so a day
    with stops A, (no coords), C contributes nothing.
    """
    total = 0.0
    for day in days:
        stops = sorted(day.pois, key=lambda p: p.visit_order)
        points = [pois[s.poi_id].point for s in stops]
        for a, b in zip(points, points[1:]):
            if a is None or b is None:
                continue
            total += haversine_km(a, b)
    return total


def price_draft(draft, inputs):
    """
    Price a draft against already-loaded reference data.

    Pure: no database access, so it can be re-run at booking time on
    fresh inputs and tested in isolation.
    """
    if draft.people <= 0:
        raise ValidationError("people must be greater than zero")
    if draft.end_date <= draft.start_date:
        raise ValidationError("End date must be after start date")

    nights = count_nights(draft.start_date, draft.end_date)
    people = Decimal(draft.people)
    warnings = []

    poi_units = sum((inputs.pois[pid].unit_price for pid in draft.poi_ids()), ZERO)
    poi_cost = poi_units * people

    lodging = ZERO
    rooms_used = 0
    room_type = inputs.room_type
    if draft.hotel_included and room_type is not None:
        if not room_type.is_active:
            raise ValidationError("Room type is not active")
        requested = draft.hotel.rooms_requested
        rooms_used = max(requested, math.ceil(draft.people / room_type.capacity))
        if rooms_used > requested:
            warnings.append(
                f"Rooms increased to {rooms_used} to cover {draft.people} people "
                f"(capacity {room_type.capacity}/room)."
            )
        lodging = room_type.base_nightly_rate * rooms_used * nights

    meals = ZERO
    if draft.with_meals:
        meals = inputs.city.meal_rate * people * nights

    distance_km = 0.0
    transport = ZERO
    if draft.with_transport:
        distance_km = itinerary_distance_km(draft.days, inputs.pois)
        transport = Decimal(str(distance_km)) * inputs.city.transport_rate_per_km

    guide_cost = ZERO
    if inputs.guide is not None:
        guide_cost = inputs.guide.price_per_day * nights

    breakdown = PriceBreakdown(
        poi=quantize_money(poi_cost),
        lodging=quantize_money(lodging),
        meals=quantize_money(meals),
        transport=quantize_money(transport),
        guide=quantize_money(guide_cost),
    )
    total = poi_cost + lodging + meals + transport + guide_cost

    return PriceQuote(
        total=quantize_money(total),
        per_person=quantize_money(total / people),
        per_person_poi=quantize_money(poi_cost / people),
        per_person_meals=quantize_money(meals / people),
        per_person_transport=quantize_money(transport / people),
        nights=nights,
        distance_km=round(distance_km, 3),
        rooms_used=rooms_used,
        breakdown=breakdown,
        warnings=warnings,
    )


def quote(draft):
    """Load reference data for ``draft`` and price it."""
    result = price_draft(draft, load_pricing_inputs(draft))
    logger.debug("Quoted city=%s people=%s total=%s", draft.city_id, draft.people, result.total)
    return result
