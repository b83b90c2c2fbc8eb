from datetime import timedelta

from django.db.models import Sum
from django.db.models.functions import Coalesce

from .domain import AvailabilityResult
from .exceptions import NotFound
from .models import Guide, GuideAvailability, RoomInventory, RoomType, Trip, TripBooking


def iter_nights(start_date, end_date):
    """Yield each night in [start_date, end_date)."""
    current = start_date
    while current < end_date:
        yield current
        current += timedelta(days=1)


def active_seat_count(trip_id):
    return TripBooking.objects.filter(trip_id=trip_id, cancelled_at__isnull=True).aggregate(
        total=Coalesce(Sum('seats'), 0)
    )['total']


def seat_availability_for(trip, seats):
    if seats < trip.min_seats_per_user or seats > trip.max_seats_per_user:
        return AvailabilityResult.rejected(
            f"You must book between {trip.min_seats_per_user} and {trip.max_seats_per_user} seats"
        )

    booked = active_seat_count(trip.id)
    if booked + seats > trip.max_people:
        remaining = max(0, trip.max_people - booked)
        return AvailabilityResult.rejected(f"Only {remaining} seats remaining on this trip")
    return AvailabilityResult.ok()


def check_seat_availability(trip_id, seats):
    try:
        trip = Trip.objects.get(pk=trip_id)
    except Trip.DoesNotExist:
        raise NotFound("Trip not found")
    return seat_availability_for(trip, seats)


def check_room_availability(hotel_id, room_type_id, start_date, end_date, rooms_needed):
    """Every night in [start_date, end_date) must have ``rooms_needed`` rooms free."""
    try:
        room_type = RoomType.objects.get(pk=room_type_id)
    except RoomType.DoesNotExist:
        raise NotFound("Room type not found")

    if not room_type.is_active:
        return AvailabilityResult.rejected("Room type is not active")
    if room_type.hotel_id != hotel_id:
        return AvailabilityResult.rejected("Room type does not belong to the specified hotel")
    if end_date <= start_date:
        return AvailabilityResult.rejected("End date must be after start date")
    if rooms_needed < 1:
        return AvailabilityResult.rejected("At least one room must be requested")

    # Nights without an inventory row are fully available
    available_by_date = dict(
        RoomInventory.objects.filter(
            room_type=room_type,
            date__gte=start_date,
            date__lt=end_date,
        ).values_list('date', 'available_rooms')
    )
    for night in iter_nights(start_date, end_date):
        available = available_by_date.get(night, room_type.total_rooms)
        if available < rooms_needed:
            return AvailabilityResult.rejected(f"Only {available} rooms available on {night.isoformat()}")
    return AvailabilityResult.ok()


def check_guide_availability(guide_id, start_date, end_date, exclude=None):
    """
    A guide is free when no hold overlaps [start_date, end_date).

    ``exclude`` is a HoldTag whose own holds are ignored, so a trip being
    re-saved does not collide with itself.
    """
    if not Guide.objects.filter(pk=guide_id).exists():
        raise NotFound(f"Guide {guide_id} not found")

    overlapping = GuideAvailability.objects.filter(
        guide_id=guide_id,
        start_date__lt=end_date,
        end_date__gt=start_date,
    )
    if exclude is not None:
        overlapping = overlapping.exclude(source=exclude.source, source_id=exclude.source_id)

    if overlapping.exists():
        return AvailabilityResult.rejected(
            f"Guide is not available from {start_date.isoformat()} to {end_date.isoformat()}. "
            "Already booked for overlapping dates."
        )
    return AvailabilityResult.ok()
