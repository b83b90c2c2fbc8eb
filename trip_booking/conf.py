"""
App settings live under the ``TRIP_BOOKING`` dict in the Django settings
module. Missing keys fall back to the defaults below, so a project only
has to name what it overrides:

    TRIP_BOOKING = {
        'NOTIFICATION_SINK': 'myproject.push.send',
    }
"""
from django.conf import settings

DEFAULTS = {
    'CURRENCY': 'USD',
    'DEFAULT_REFUND_POLICY_NAME': 'Standard',
    'DEFAULT_REFUND_TIERS': [
        (7, '1.00'),
        (5, '0.80'),
        (3, '0.40'),
        (None, '0.00'),
    ],
    'NOTIFICATION_SINK': 'trip_booking.notifications.store_notification',
    'ADMIN_ROLE_KEYWORD': 'admin',
    'DEFAULT_SEAT_POLICY': {
        'min_people': 1,
        'max_people': 10,
        'min_seats_per_user': 1,
        'max_seats_per_user': 4,
    },
}


def booking_setting(name):
    user_settings = getattr(settings, 'TRIP_BOOKING', None) or {}
    if name in user_settings:
        return user_settings[name]
    try:
        return DEFAULTS[name]
    except KeyError:
        raise AttributeError(f"Invalid TRIP_BOOKING setting: '{name}'")
