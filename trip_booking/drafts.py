"""
Turning a priced draft into a persisted trip, and the edit/delete paths
that keep the trip's guide and room holds in step with it.

A trip's holds are tagged with (source, trip id). Updates release what the
recorded reservation holds before reserving again, and deletes release
everything under the tag, so inventory never drifts across edits.
"""
import logging

from django.db import transaction

from .availability import active_seat_count, check_guide_availability, check_room_availability
from .booking import book_locked_trip, release_trip_holds, trip_tag
from .conf import booking_setting
from .domain import CreatedTrip, SeatPolicy
from .exceptions import Conflict, NotFound, ValidationError
from .inventory import clear_guide_hold, release_reservations, reserve_guide, reserve_rooms
from .models import Hotel, Trip, TripAttachment, TripDay, TripHotel, TripPoi
from .pricing import price_draft
from .reference import ensure_tags_exist, load_pricing_inputs
from .refunds import get_default_refund_policy

logger = logging.getLogger(__name__)


def validate_draft(draft):
    if draft.end_date <= draft.start_date:
        raise ValidationError("End date must be after start date")
    if draft.people <= 0:
        raise ValidationError("people must be greater than zero")

    if len(draft.hotels) > 1:
        raise ValidationError("A trip can include at most one hotel")
    if draft.hotel_included:
        hotel = draft.hotel
        if hotel is None:
            raise ValidationError("A hotel is required when hotel_included is set")
        if hotel.room_type_id is None:
            raise ValidationError("A hotel requires a room type")
        if hotel.rooms_requested < 1:
            raise ValidationError("At least one room must be requested")
        if not Hotel.objects.filter(pk=hotel.hotel_id).exists():
            raise NotFound(f"Hotel {hotel.hotel_id} not found")
    elif draft.hotels:
        raise ValidationError("Hotels were given but hotel_included is not set")

    day_numbers = [d.day_number for d in draft.days]
    if len(day_numbers) != len(set(day_numbers)):
        raise ValidationError("Day numbers must be unique")
    for day in draft.days:
        orders = [p.visit_order for p in day.pois]
        if len(orders) != len(set(orders)):
            raise ValidationError(f"Visit orders must be unique within day {day.day_number}")

    roles = [a.role for a in draft.attachments]
    if any(role not in TripAttachment.Role.values for role in roles):
        raise ValidationError("Attachment role must be MAIN or GALLERY")
    if roles.count(TripAttachment.Role.MAIN) > 1:
        raise ValidationError("A trip can have only one MAIN image")

    ensure_tags_exist(draft.tag_ids)


def resolve_seat_policy(trip_type, people, seat_policy=None):
    if trip_type == Trip.Type.CUSTOM:
        # One party takes the whole trip
        return SeatPolicy(min_people=people, max_people=people, min_seats_per_user=1, max_seats_per_user=people)

    policy = seat_policy or SeatPolicy(**booking_setting('DEFAULT_SEAT_POLICY'))
    if policy.min_people < 1 or policy.min_seats_per_user < 1:
        raise ValidationError("Seat policy minimums must be at least 1")
    if policy.min_people > policy.max_people:
        raise ValidationError("min_people cannot exceed max_people")
    if policy.min_seats_per_user > policy.max_seats_per_user:
        raise ValidationError("min_seats_per_user cannot exceed max_seats_per_user")
    return policy


def resolve_endpoints(draft, pois):
    """Meet and drop points, defaulting to the first and last located POI."""
    located = []
    for day in sorted(draft.days, key=lambda d: d.day_number):
        for stop in sorted(day.pois, key=lambda p: p.visit_order):
            info = pois[stop.poi_id]
            if info.point is not None:
                located.append(info.point)

    meet = draft.meet_point
    drop = draft.drop_point
    if meet is None:
        if not located:
            raise ValidationError("meet location is required when no selected POI has coordinates")
        meet_fields = dict(meet_latitude=located[0].latitude, meet_longitude=located[0].longitude, meet_address="")
    else:
        meet_fields = dict(meet_latitude=meet.latitude, meet_longitude=meet.longitude, meet_address=meet.address)
    if drop is None:
        if not located:
            raise ValidationError("drop location is required when no selected POI has coordinates")
        drop_fields = dict(drop_latitude=located[-1].latitude, drop_longitude=located[-1].longitude, drop_address="")
    else:
        drop_fields = dict(drop_latitude=drop.latitude, drop_longitude=drop.longitude, drop_address=drop.address)
    return {**meet_fields, **drop_fields}


def _precheck_resources(draft, rooms_used, exclude=None):
    if draft.guide_id:
        result = check_guide_availability(draft.guide_id, draft.start_date, draft.end_date, exclude=exclude)
        if not result.available:
            raise ValidationError(result.message)
    if draft.hotel_included:
        hotel = draft.hotel
        result = check_room_availability(
            hotel.hotel_id, hotel.room_type_id, draft.start_date, draft.end_date, rooms_used
        )
        if not result.available:
            raise ValidationError(result.message)


def _write_itinerary(trip, draft, rooms_used):
    for day in sorted(draft.days, key=lambda d: d.day_number):
        trip_day = TripDay.objects.create(trip=trip, day_number=day.day_number)
        TripPoi.objects.bulk_create([
            TripPoi(day=trip_day, poi_id=stop.poi_id, visit_order=stop.visit_order)
            for stop in day.pois
        ])

    if draft.hotel_included:
        hotel = draft.hotel
        TripHotel.objects.create(
            trip=trip,
            hotel_id=hotel.hotel_id,
            room_type_id=hotel.room_type_id,
            rooms_needed=rooms_used,
        )

    trip.tags.set(draft.tag_ids)
    TripAttachment.objects.bulk_create([
        TripAttachment(trip=trip, object_id=a.object_id, role=a.role, sort_order=i)
        for i, a in enumerate(draft.attachments)
    ])


def _clear_itinerary(trip):
    TripDay.objects.filter(trip=trip).delete()
    TripHotel.objects.filter(trip=trip).delete()
    TripAttachment.objects.filter(trip=trip).delete()


def _reserve_trip_rooms(trip, draft, rooms_used, user_id):
    hotel = draft.hotel
    reserve_rooms(
        hotel.hotel_id, hotel.room_type_id, draft.start_date, draft.end_date, rooms_used,
        trip_tag(trip),
        user_id=user_id,
        refund_policy=trip.refund_policy,
    )


@transaction.atomic
def create_trip_from_draft(user_id, draft, trip_type, book_now=False, seat_policy=None):
    """
    Validate, price and persist ``draft`` as a trip holding its guide and rooms.

    Custom trips are booked for the whole party in the same transaction.
    Predefined trips stay open for riders to book later unless ``book_now``
    is set, in which case the creator takes the minimum seats per rider.
    """
    if trip_type not in Trip.Type.values:
        raise ValidationError(f"Unknown trip type {trip_type!r}")
    if trip_type == Trip.Type.CUSTOM and not book_now:
        raise ValidationError("Custom trips must be booked when they are created")

    validate_draft(draft)
    policy = resolve_seat_policy(trip_type, draft.people, seat_policy)

    inputs = load_pricing_inputs(draft)
    price = price_draft(draft, inputs)
    endpoints = resolve_endpoints(draft, inputs.pois)
    _precheck_resources(draft, price.rooms_used)

    trip = Trip.objects.create(
        name=draft.name or f"Trip on {draft.start_date.isoformat()}",
        city_id=draft.city_id,
        created_by_id=user_id,
        trip_type=trip_type,
        start_date=draft.start_date,
        end_date=draft.end_date,
        price_per_person=price.per_person,
        min_people=policy.min_people,
        max_people=policy.max_people,
        min_seats_per_user=policy.min_seats_per_user,
        max_seats_per_user=policy.max_seats_per_user,
        with_meals=draft.with_meals,
        with_transport=draft.with_transport,
        hotel_included=draft.hotel_included,
        meal_price_per_person=price.per_person_meals,
        transport_price_per_person=price.per_person_transport,
        guide_id=draft.guide_id,
        refund_policy=get_default_refund_policy(),
        **endpoints,
    )
    _write_itinerary(trip, draft, price.rooms_used)

    if draft.guide_id:
        reserve_guide(draft.guide_id, draft.start_date, draft.end_date, trip_tag(trip))
    if draft.hotel_included:
        _reserve_trip_rooms(trip, draft, price.rooms_used, user_id)

    logger.info("Trip %s (%s) created by user %s at %s per person", trip.id, trip_type, user_id, price.per_person)

    booking = None
    if book_now:
        seats = draft.people if trip_type == Trip.Type.CUSTOM else policy.min_seats_per_user
        locked = Trip.objects.select_for_update().get(pk=trip.id)
        booking = book_locked_trip(locked, user_id, seats)

    return CreatedTrip(trip_id=trip.id, price=price, booking=booking)


@transaction.atomic
def update_trip(trip_id, draft, seat_policy=None):
    """
    Re-price and re-save a trip from a fresh draft.

    Existing bookings keep the totals they paid. The guide hold is replaced
    under the trip's tag; room holds are released and re-reserved only when
    the hotel, room type, room count or dates change.
    """
    try:
        trip = Trip.objects.select_for_update().get(pk=trip_id)
    except Trip.DoesNotExist:
        raise NotFound("Trip not found")

    validate_draft(draft)
    if seat_policy is None and trip.trip_type == Trip.Type.PREDEFINED:
        seat_policy = SeatPolicy(trip.min_people, trip.max_people, trip.min_seats_per_user, trip.max_seats_per_user)
    policy = resolve_seat_policy(trip.trip_type, draft.people, seat_policy)

    booked = active_seat_count(trip.id)
    if policy.max_people < booked:
        raise ValidationError(f"max_people cannot be lower than the {booked} seats already booked")

    inputs = load_pricing_inputs(draft)
    price = price_draft(draft, inputs)
    endpoints = resolve_endpoints(draft, inputs.pois)
    tag = trip_tag(trip)

    if draft.guide_id:
        reserve_guide(draft.guide_id, draft.start_date, draft.end_date, tag)
    else:
        clear_guide_hold(tag)

    current = trip.hotels.first()
    wanted = None
    if draft.hotel_included:
        wanted = (draft.hotel.hotel_id, draft.hotel.room_type_id, price.rooms_used)
    have = (current.hotel_id, current.room_type_id, current.rooms_needed) if current else None
    dates_changed = (trip.start_date, trip.end_date) != (draft.start_date, draft.end_date)
    if wanted != have or (wanted is not None and dates_changed):
        release_reservations(tag)
        if wanted is not None:
            _reserve_trip_rooms(trip, draft, price.rooms_used, trip.created_by_id)

    if draft.name:
        trip.name = draft.name
    trip.city_id = draft.city_id
    trip.start_date = draft.start_date
    trip.end_date = draft.end_date
    trip.price_per_person = price.per_person
    trip.min_people = policy.min_people
    trip.max_people = policy.max_people
    trip.min_seats_per_user = policy.min_seats_per_user
    trip.max_seats_per_user = policy.max_seats_per_user
    trip.with_meals = draft.with_meals
    trip.with_transport = draft.with_transport
    trip.hotel_included = draft.hotel_included
    trip.meal_price_per_person = price.per_person_meals
    trip.transport_price_per_person = price.per_person_transport
    trip.guide_id = draft.guide_id
    for attr, value in endpoints.items():
        setattr(trip, attr, value)
    trip.save()

    _clear_itinerary(trip)
    _write_itinerary(trip, draft, price.rooms_used)

    logger.info("Trip %s updated, now %s per person", trip.id, price.per_person)
    return price


@transaction.atomic
def delete_trip(trip_id):
    try:
        trip = Trip.objects.select_for_update().get(pk=trip_id)
    except Trip.DoesNotExist:
        raise NotFound("Trip not found")

    if active_seat_count(trip.id):
        raise Conflict("Trip has active bookings; cancel them before deleting the trip")

    release_trip_holds(trip)
    trip.delete()
    logger.info("Trip %s deleted", trip_id)
