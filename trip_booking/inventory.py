"""
Room-night and guide-calendar holds.

Room inventory rows are created lazily, one per (room type, night). A
missing row means the room type is fully available that night. Every
mutation goes through a single UPDATE with the capacity predicate in its
WHERE clause, so two racing allocations cannot both take the last room.
"""
import logging

from django.db import models, transaction
from django.db.models import F
from django.db.models.functions import Greatest, Least
from django.utils import timezone

from .availability import check_guide_availability, check_room_availability, iter_nights
from .exceptions import Conflict, NotFound, ValidationError
from .models import Guide, GuideAvailability, RoomInventory, RoomReservation, RoomType

logger = logging.getLogger(__name__)


def _inventory_row(room_type, night):
    row, _ = RoomInventory.objects.get_or_create(
        room_type=room_type,
        date=night,
        defaults=dict(
            total_rooms=room_type.total_rooms,
            booked_rooms=0,
            available_rooms=room_type.total_rooms,
        ),
    )
    return row


@transaction.atomic
def allocate_room_nights(room_type, start_date, end_date, rooms):
    for night in iter_nights(start_date, end_date):
        _inventory_row(room_type, night)
        updated = RoomInventory.objects.filter(
            room_type=room_type,
            date=night,
            available_rooms__gte=rooms,
        ).update(
            booked_rooms=F('booked_rooms') + rooms,
            available_rooms=F('available_rooms') - rooms,
        )
        if not updated:
            available = RoomInventory.objects.filter(room_type=room_type, date=night).values_list(
                'available_rooms', flat=True
            ).first()
            raise ValidationError(f"Only {available} rooms available on {night.isoformat()}")


@transaction.atomic
def release_room_nights(room_type, start_date, end_date, rooms):
    for night in iter_nights(start_date, end_date):
        _inventory_row(room_type, night)
        RoomInventory.objects.filter(room_type=room_type, date=night).update(
            booked_rooms=Greatest(F('booked_rooms') - rooms, 0, output_field=models.IntegerField()),
            available_rooms=Least(
                F('available_rooms') + rooms, F('total_rooms'), output_field=models.IntegerField()
            ),
        )


@transaction.atomic
def reserve_rooms(hotel_id, room_type_id, start_date, end_date, rooms, tag, user_id=None,
                  refund_policy=None, total_price=None):
    """Check, allocate and record a room reservation owned by ``tag``."""
    if RoomReservation.objects.filter(
        source=tag.source,
        source_id=tag.source_id,
        cancelled_at__isnull=True,
    ).exists():
        raise Conflict(f"Rooms are already reserved for {tag.source} #{tag.source_id}")

    result = check_room_availability(hotel_id, room_type_id, start_date, end_date, rooms)
    if not result.available:
        raise ValidationError(result.message)

    room_type = RoomType.objects.get(pk=room_type_id)
    allocate_room_nights(room_type, start_date, end_date, rooms)
    reservation = RoomReservation.objects.create(
        room_type=room_type,
        user_id=user_id,
        check_in=start_date,
        check_out=end_date,
        rooms_booked=rooms,
        source=tag.source,
        source_id=tag.source_id,
        refund_policy=refund_policy,
        total_price=total_price if total_price is not None else 0,
    )
    logger.info(
        "Reserved %s room(s) of type %s from %s to %s for %s #%s",
        rooms, room_type.id, start_date, end_date, tag.source, tag.source_id,
    )
    return reservation


@transaction.atomic
def release_reservation(reservation, keep_record=False):
    """
    Give back exactly the nights and rooms recorded on ``reservation``.

    The record is deleted, or stamped cancelled when ``keep_record`` is set.
    """
    release_room_nights(reservation.room_type, reservation.check_in, reservation.check_out, reservation.rooms_booked)
    logger.info(
        "Released %s room(s) of type %s from %s to %s for %s #%s",
        reservation.rooms_booked, reservation.room_type_id, reservation.check_in,
        reservation.check_out, reservation.source, reservation.source_id,
    )
    if keep_record:
        reservation.cancelled_at = timezone.now()
        reservation.save(update_fields=['cancelled_at'])
    else:
        reservation.delete()


@transaction.atomic
def release_reservations(tag):
    """Release every active reservation owned by ``tag``; returns how many."""
    reservations = list(
        RoomReservation.objects.select_for_update().select_related('room_type').filter(
            source=tag.source,
            source_id=tag.source_id,
            cancelled_at__isnull=True,
        )
    )
    for reservation in reservations:
        release_reservation(reservation)
    return len(reservations)


@transaction.atomic
def reserve_guide(guide_id, start_date, end_date, tag):
    """
    Replace ``tag``'s guide hold with one for the given dates.

    The guide row is locked for the check-then-insert so two trips cannot
    both pass the overlap check for the same guide.
    """
    try:
        Guide.objects.select_for_update().get(pk=guide_id)
    except Guide.DoesNotExist:
        raise NotFound(f"Guide {guide_id} not found")

    result = check_guide_availability(guide_id, start_date, end_date, exclude=tag)
    if not result.available:
        raise ValidationError(result.message)

    clear_guide_hold(tag)
    hold = GuideAvailability.objects.create(
        guide_id=guide_id,
        start_date=start_date,
        end_date=end_date,
        source=tag.source,
        source_id=tag.source_id,
    )
    logger.info("Guide %s held from %s to %s for %s #%s", guide_id, start_date, end_date, tag.source, tag.source_id)
    return hold


def clear_guide_hold(tag):
    # Only the exact tag; never by guide and dates
    deleted, _ = GuideAvailability.objects.filter(source=tag.source, source_id=tag.source_id).delete()
    return deleted
