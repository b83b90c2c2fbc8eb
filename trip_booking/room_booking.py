"""Hotel rooms booked on their own, outside any trip."""
import logging

from django.db import transaction
from django.utils import timezone

from .availability import check_room_availability
from .conf import booking_setting
from .domain import CancellationResult, HoldTag, RoomBookingResult
from .exceptions import Conflict, NotFound, PermissionDenied, ValidationError
from .inventory import release_reservation, reserve_rooms
from .models import Order, OrderItem, PaymentHistory, ReservationSource, RoomReservation, UserTransaction
from .notifications import notify_on_commit
from .pricing import count_nights, quantize_money
from .reference import get_room_type
from .refunds import get_default_refund_policy, refund_for
from . import wallet

logger = logging.getLogger(__name__)


@transaction.atomic
def book_room(user_id, hotel_id, room_type_id, check_in, check_out, rooms):
    if rooms < 1:
        raise ValidationError("At least one room must be booked")

    check = check_room_availability(hotel_id, room_type_id, check_in, check_out, rooms)
    if not check.available:
        raise ValidationError(check.message)

    room_type = get_room_type(room_type_id)
    nights = count_nights(check_in, check_out)
    unit_price = quantize_money(room_type.base_nightly_rate * nights)
    total = quantize_money(unit_price * rooms)

    change = wallet.debit(user_id, total)

    policy = get_default_refund_policy()
    order = Order.objects.create(
        user_id=user_id,
        status=Order.Status.CONFIRMED,
        total_amount=total,
        currency=booking_setting('CURRENCY'),
    )
    OrderItem.objects.create(
        order=order,
        item_type=OrderItem.ItemType.ROOM,
        item_id=room_type.id,
        quantity=rooms,
        unit_price=unit_price,
        total_price=total,
        refund_policy=policy,
    )
    reservation = reserve_rooms(
        hotel_id, room_type_id, check_in, check_out, rooms,
        HoldTag(ReservationSource.HOTEL_ONLY, order.id),
        user_id=user_id,
        refund_policy=policy,
        total_price=total,
    )
    wallet.record_ledger(
        change,
        UserTransaction.Source.BOOKING,
        order=order,
        note=f"Room reservation #{reservation.id}: {rooms} room(s) x {nights} night(s)",
    )
    PaymentHistory.objects.create(
        order=order,
        amount=total,
        method=PaymentHistory.Method.WALLET,
        status=PaymentHistory.Status.POSTED,
    )

    logger.info("User %s reserved %s room(s) of type %s (order %s)", user_id, rooms, room_type.id, order.id)
    notify_on_commit(
        user_id,
        "Room reserved",
        f"{rooms} room(s) reserved from {check_in.isoformat()} to {check_out.isoformat()}.",
        {'reservation_id': reservation.id, 'order_id': order.id},
    )
    return RoomBookingResult(reservation_id=reservation.id, order_id=order.id, total_amount=total, nights=nights)


def cancel_locked_reservation(reservation):
    if reservation.source != ReservationSource.HOTEL_ONLY:
        raise ValidationError("Trip room reservations are cancelled together with their trip")
    if timezone.localdate() > reservation.check_in:
        raise ValidationError("Check-in date has passed; cancellation not allowed.")

    now = timezone.now()
    refund_amount, fraction = refund_for(reservation.total_price, reservation.refund_policy, reservation.check_in, now)
    release_reservation(reservation, keep_record=True)

    order = Order.objects.select_for_update().get(pk=reservation.source_id)
    order.status = Order.Status.CANCELLED
    order.save(update_fields=['status', 'updated_at'])
    OrderItem.objects.filter(order=order, item_type=OrderItem.ItemType.ROOM).update(refund_amount=refund_amount)

    change = wallet.credit(reservation.user_id, refund_amount)
    wallet.record_ledger(
        change,
        UserTransaction.Source.REFUND,
        order=order,
        note=f"Refund {fraction * 100:.0f}% for room reservation #{reservation.id}",
    )
    PaymentHistory.objects.create(
        order=order,
        amount=refund_amount,
        method=PaymentHistory.Method.WALLET,
        status=PaymentHistory.Status.REFUNDED,
    )

    logger.info("Room reservation %s cancelled, refunded %s", reservation.id, refund_amount)
    notify_on_commit(
        reservation.user_id,
        "Room reservation cancelled",
        f"Your room reservation was cancelled. Refund: {refund_amount}.",
        {'reservation_id': reservation.id, 'order_id': order.id, 'refund_amount': str(refund_amount)},
    )
    return CancellationResult(
        booking_id=reservation.id,
        order_id=order.id,
        refunded_amount=refund_amount,
        refund_percentage=fraction,
    )


@transaction.atomic
def cancel_room_reservation(user_id, reservation_id):
    try:
        reservation = RoomReservation.objects.select_for_update().get(pk=reservation_id)
    except RoomReservation.DoesNotExist:
        raise NotFound("Reservation not found")

    if reservation.user_id != user_id:
        raise PermissionDenied("You can only cancel your own reservations")
    if reservation.cancelled_at is not None:
        raise Conflict("Reservation is already cancelled")

    return cancel_locked_reservation(reservation)
