import logging

from django.db import transaction

from .booking import cancel_locked_booking
from .domain import OrderCancellation
from .exceptions import Conflict, NotFound, PermissionDenied
from .models import Order, ReservationSource, RoomReservation, TripBooking
from .notifications import notify_on_commit
from .pricing import ZERO
from .room_booking import cancel_locked_reservation

logger = logging.getLogger(__name__)


@transaction.atomic
def cancel_order(user, order_id):
    """
    Cancel everything still active on an order and mark it cancelled.

    Allowed for the order's owner and for staff.
    """
    try:
        order = Order.objects.select_for_update().get(pk=order_id)
    except Order.DoesNotExist:
        raise NotFound("Order not found")

    if order.user_id != user.id and not user.is_staff:
        raise PermissionDenied("You can only cancel your own orders")
    if order.status == Order.Status.CANCELLED:
        raise Conflict("Order is already cancelled")

    cancellations = []
    for booking in TripBooking.objects.select_for_update().filter(order=order, cancelled_at__isnull=True):
        cancellations.append(cancel_locked_booking(booking))
    reservations = RoomReservation.objects.select_for_update().filter(
        source=ReservationSource.HOTEL_ONLY,
        source_id=order.id,
        cancelled_at__isnull=True,
    )
    for reservation in reservations:
        cancellations.append(cancel_locked_reservation(reservation))

    order.refresh_from_db()
    if order.status != Order.Status.CANCELLED:
        order.status = Order.Status.CANCELLED
        order.save(update_fields=['status', 'updated_at'])

    refunded = sum((c.refunded_amount for c in cancellations), ZERO)
    logger.info("Order %s cancelled by user %s, %s item(s), refunded %s", order.id, user.id, len(cancellations), refunded)
    notify_on_commit(
        order.user_id,
        "Order cancelled",
        f"Order #{order.id} was cancelled.",
        {'order_id': order.id, 'refunded_amount': str(refunded)},
    )
    return OrderCancellation(order_id=order.id, refunded_amount=refunded, cancellations=cancellations)
