from django.contrib.auth import get_user_model
from django.db import transaction
from django.db.models import Q

from .conf import booking_setting
from .domain import ChatProvisioning
from .models import ChatMember, ChatRoom, Trip


def admin_user_ids():
    """Superusers plus members of any group whose name contains the admin keyword."""
    keyword = booking_setting('ADMIN_ROLE_KEYWORD')
    User = get_user_model()
    return list(
        User.objects.filter(is_active=True)
        .filter(Q(is_superuser=True) | Q(groups__name__icontains=keyword))
        .distinct()
        .order_by('pk')
        .values_list('pk', flat=True)
    )


def add_member(room, user_id, role):
    _, created = ChatMember.objects.get_or_create(room=room, user_id=user_id, defaults={'role': role})
    return created


@transaction.atomic
def ensure_trip_room(trip, customer_id):
    """
    Make sure the trip has a chat room containing the customer, the guide
    and every admin. Safe to call repeatedly.
    """
    room, _ = ChatRoom.objects.get_or_create(
        trip=trip,
        defaults={'is_custom_trip': trip.trip_type == Trip.Type.CUSTOM},
    )

    candidates = [(customer_id, ChatMember.Role.CUSTOMER)]
    if trip.guide_id:
        candidates.append((trip.guide.user_id, ChatMember.Role.GUIDE))
    candidates.extend((uid, ChatMember.Role.SUPER_ADMIN) for uid in admin_user_ids())

    # First role listed for a user wins
    roles = {}
    for user_id, role in candidates:
        roles.setdefault(user_id, role)

    existing = set(get_user_model().objects.filter(pk__in=roles).values_list('pk', flat=True))
    missing = sorted(uid for uid in roles if uid not in existing)

    inserted = 0
    for user_id, role in roles.items():
        if user_id in existing and add_member(room, user_id, role):
            inserted += 1

    return ChatProvisioning(chat_room_id=room.id, inserted_members=inserted, missing_user_ids=missing)


def cleanup_after_cancellation(trip, user_id):
    room = ChatRoom.objects.filter(trip=trip).first()
    if room is None:
        return

    if trip.trip_type == Trip.Type.CUSTOM:
        room.delete()
        return

    ChatMember.objects.filter(room=room, user_id=user_id).delete()
    if not room.members.exists():
        room.delete()
