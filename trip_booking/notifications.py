"""
Fire-and-forget user notifications.

The sink is a dotted path in ``TRIP_BOOKING['NOTIFICATION_SINK']`` to a
callable taking ``(user_id, title, body, data)``. Sink errors are logged
and never reach the caller.
"""
import logging

from django.db import transaction
from django.utils.module_loading import import_string

from .conf import booking_setting
from .models import Notification

logger = logging.getLogger(__name__)


def store_notification(user_id, title, body, data):
    Notification.objects.create(user_id=user_id, title=title, body=body, data=data or {})


def notify(user_id, title, body, data=None):
    try:
        sink = import_string(booking_setting('NOTIFICATION_SINK'))
        sink(user_id, title, body, data or {})
    except Exception:
        logger.exception("Failed to deliver notification %r to user %s", title, user_id)


def notify_on_commit(user_id, title, body, data=None):
    """Send once the surrounding transaction commits; dropped on rollback."""
    transaction.on_commit(lambda: notify(user_id, title, body, data))
