"""
Refund policies.

A policy is a list of tiers, each saying "cancelled more than N days
before the start, refund this fraction". A tier without N catches
everything below the other tiers. Tiers are read from the database; the
default policy is seeded from ``TRIP_BOOKING['DEFAULT_REFUND_TIERS']``
the first time it is needed.
"""
from datetime import datetime, time
from decimal import Decimal

from django.db import transaction
from django.utils import timezone

from .conf import booking_setting
from .models import RefundPolicy, RefundTier
from .pricing import quantize_money

SECONDS_PER_DAY = 24 * 60 * 60


@transaction.atomic
def get_default_refund_policy():
    policy = RefundPolicy.objects.filter(is_default=True).order_by('id').first()
    if policy is not None:
        return policy

    policy, created = RefundPolicy.objects.get_or_create(
        name=booking_setting('DEFAULT_REFUND_POLICY_NAME'),
        defaults={'is_default': True},
    )
    if created:
        RefundTier.objects.bulk_create([
            RefundTier(policy=policy, min_days_before=days, percentage=Decimal(str(fraction)))
            for days, fraction in booking_setting('DEFAULT_REFUND_TIERS')
        ])
    elif not policy.is_default:
        policy.is_default = True
        policy.save(update_fields=['is_default'])
    return policy


def days_before_start(start_date, now=None):
    """Fractional days from ``now`` until midnight of ``start_date``."""
    now = now or timezone.now()
    start = timezone.make_aware(datetime.combine(start_date, time.min))
    return (start - now).total_seconds() / SECONDS_PER_DAY


def refund_fraction(policy, days_before):
    if policy is None:
        policy = get_default_refund_policy()

    tiers = list(policy.tiers.all())
    bounded = sorted((t for t in tiers if t.min_days_before is not None), key=lambda t: -t.min_days_before)
    for tier in bounded:
        if days_before > tier.min_days_before:
            return tier.percentage
    for tier in tiers:
        if tier.min_days_before is None:
            return tier.percentage
    return Decimal("0")


def refund_for(total, policy, start_date, now=None):
    """Return ``(refund_amount, fraction)`` for cancelling now."""
    fraction = refund_fraction(policy, days_before_start(start_date, now))
    return quantize_money(total * fraction), fraction
