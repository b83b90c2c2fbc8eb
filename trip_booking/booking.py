"""
Booking and cancelling seats on a trip.

Both operations run as one transaction: the wallet movement, order,
booking, ledger row, payment row and chat changes either all land or
none do.
"""
import logging

from django.db import transaction
from django.utils import timezone

from .availability import seat_availability_for
from .chat import cleanup_after_cancellation, ensure_trip_room
from .conf import booking_setting
from .domain import BookingResult, CancellationResult, HoldTag
from .exceptions import Conflict, NotFound, PermissionDenied, ValidationError
from .inventory import clear_guide_hold, release_reservations
from .models import Order, OrderItem, PaymentHistory, ReservationSource, Trip, TripBooking, UserTransaction
from .notifications import notify_on_commit
from .pricing import quantize_money
from .refunds import refund_for
from . import wallet

logger = logging.getLogger(__name__)


def source_for_trip(trip):
    if trip.trip_type == Trip.Type.CUSTOM:
        return ReservationSource.CUSTOM_TRIP
    return ReservationSource.PREDEFINED_TRIP


def trip_tag(trip):
    return HoldTag(source_for_trip(trip), trip.id)


def release_trip_holds(trip):
    """Drop the guide hold and room reservations owned by ``trip``."""
    tag = trip_tag(trip)
    guide_holds = clear_guide_hold(tag)
    reservations = release_reservations(tag)
    logger.info("Released holds for trip %s: %s guide hold(s), %s room reservation(s)", trip.id, guide_holds, reservations)


@transaction.atomic
def book_trip(user_id, trip_id, seats):
    """
    Book seats on a predefined trip.

    Custom trips are only booked by ``create_trip_from_draft`` in the
    transaction that creates them; once that booking is cancelled their
    holds are gone, so they cannot be booked again.
    """
    try:
        # Lock the trip row so concurrent bookings see each other's seats
        trip = Trip.objects.select_for_update().get(pk=trip_id)
    except Trip.DoesNotExist:
        raise NotFound("Trip not found")

    if trip.trip_type == Trip.Type.CUSTOM:
        raise ValidationError("Custom trips are booked when they are created and cannot be booked again")
    return book_locked_trip(trip, user_id, seats)


def book_locked_trip(trip, user_id, seats):
    """Book ``trip``, whose row the caller has locked inside a transaction."""
    # Never trust an earlier availability answer
    check = seat_availability_for(trip, seats)
    if not check.available:
        raise ValidationError(check.message)

    unit_price = trip.price_per_person
    total = quantize_money(unit_price * seats)

    change = wallet.debit(user_id, total)

    order = Order.objects.create(
        user_id=user_id,
        status=Order.Status.CONFIRMED,
        total_amount=total,
        currency=booking_setting('CURRENCY'),
    )
    OrderItem.objects.create(
        order=order,
        item_type=OrderItem.ItemType.TRIP,
        item_id=trip.id,
        quantity=seats,
        unit_price=unit_price,
        total_price=total,
        refund_policy_id=trip.refund_policy_id,
    )
    booking = TripBooking.objects.create(
        trip=trip,
        user_id=user_id,
        seats=seats,
        total_price=total,
        source=source_for_trip(trip),
        order=order,
        refund_policy_id=trip.refund_policy_id,
    )
    wallet.record_ledger(
        change,
        UserTransaction.Source.BOOKING,
        order=order,
        note=f"Trip#{trip.id} booking of {seats} seat(s)",
    )
    PaymentHistory.objects.create(
        order=order,
        amount=total,
        method=PaymentHistory.Method.WALLET,
        status=PaymentHistory.Status.POSTED,
    )

    # A confirmed booking needs its chat room; failure here rolls everything back
    chat = ensure_trip_room(trip, user_id)

    logger.info("User %s booked %s seat(s) on trip %s (order %s, total %s)", user_id, seats, trip.id, order.id, total)
    notify_on_commit(
        user_id,
        "Booking confirmed",
        f"Your booking of {seats} seat(s) on {trip.name} is confirmed.",
        {'booking_id': booking.id, 'order_id': order.id, 'trip_id': trip.id},
    )

    return BookingResult(
        booking_id=booking.id,
        order_id=order.id,
        chat_room_id=chat.chat_room_id,
        total_amount=total,
        seats=seats,
        chat_members_added=chat.inserted_members,
        missing_chat_user_ids=chat.missing_user_ids,
    )


def cancel_locked_booking(booking):
    """
    Cancel a booking whose row the caller has locked and checked.

    Refunds the owner by the booking's refund policy, tears down chat
    membership and, for custom trips, releases the trip's holds.
    """
    trip = booking.trip
    if timezone.localdate() > trip.start_date:
        raise ValidationError("Trip already started; cancellation not allowed after the start date.")

    now = timezone.now()
    booking.cancelled_at = now
    booking.save(update_fields=['cancelled_at'])

    order = booking.order
    order.status = Order.Status.CANCELLED
    order.save(update_fields=['status', 'updated_at'])

    refund_amount, fraction = refund_for(booking.total_price, booking.refund_policy, trip.start_date, now)
    OrderItem.objects.filter(
        order=order,
        item_type=OrderItem.ItemType.TRIP,
        item_id=trip.id,
    ).update(refund_amount=refund_amount)

    change = wallet.credit(booking.user_id, refund_amount)
    wallet.record_ledger(
        change,
        UserTransaction.Source.REFUND,
        order=order,
        note=f"Refund {fraction * 100:.0f}% for trip booking #{booking.id}",
    )
    PaymentHistory.objects.create(
        order=order,
        amount=refund_amount,
        method=PaymentHistory.Method.WALLET,
        status=PaymentHistory.Status.REFUNDED,
    )

    cleanup_after_cancellation(trip, booking.user_id)
    if trip.trip_type == Trip.Type.CUSTOM:
        release_trip_holds(trip)

    logger.info("Booking %s cancelled, refunded %s (%s)", booking.id, refund_amount, fraction)
    notify_on_commit(
        booking.user_id,
        "Booking cancelled",
        f"Your booking on {trip.name} was cancelled. Refund: {refund_amount}.",
        {'booking_id': booking.id, 'order_id': order.id, 'refund_amount': str(refund_amount)},
    )

    return CancellationResult(
        booking_id=booking.id,
        order_id=order.id,
        refunded_amount=refund_amount,
        refund_percentage=fraction,
    )


@transaction.atomic
def cancel_trip_booking(user_id, booking_id):
    try:
        booking = TripBooking.objects.select_for_update().get(pk=booking_id)
    except TripBooking.DoesNotExist:
        raise NotFound("Booking not found")

    if booking.user_id != user_id:
        raise PermissionDenied("You can only cancel your own bookings")
    if booking.cancelled_at is not None:
        raise Conflict("Booking is already cancelled")

    return cancel_locked_booking(booking)
