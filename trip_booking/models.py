from decimal import Decimal

from django.conf import settings
from django.core.validators import MinValueValidator
from django.db import models
from django.db.models import F, Q

ZERO = Decimal("0.00")


def money_field(**kwargs):
    kwargs.setdefault("max_digits", 12)
    kwargs.setdefault("decimal_places", 2)
    return models.DecimalField(**kwargs)


class ReservationSource(models.TextChoices):
    PREDEFINED_TRIP = "PREDEFINED_TRIP"
    CUSTOM_TRIP = "CUSTOM_TRIP"
    HOTEL_ONLY = "HOTEL_ONLY"


# Reference data

class City(models.Model):
    name = models.CharField(max_length=120)
    avg_meal_price = money_field(default=ZERO, validators=[MinValueValidator(ZERO)])
    is_active = models.BooleanField(default=True)

    def __str__(self):
        return self.name


class CityMealPrice(models.Model):
    city = models.ForeignKey(City, on_delete=models.CASCADE, related_name="meal_prices")
    meal_price_per_person = money_field(validators=[MinValueValidator(ZERO)])
    created_at = models.DateTimeField(auto_now_add=True)


class DistanceRate(models.Model):
    city = models.ForeignKey(City, on_delete=models.CASCADE, related_name="distance_rates")
    transport_rate_per_km = money_field(validators=[MinValueValidator(ZERO)])
    created_at = models.DateTimeField(auto_now_add=True)


class Hotel(models.Model):
    city = models.ForeignKey(City, on_delete=models.CASCADE, related_name="hotels")
    name = models.CharField(max_length=150)
    currency = models.CharField(max_length=3, default="USD")
    is_active = models.BooleanField(default=True)

    def __str__(self):
        return self.name


class RoomType(models.Model):
    hotel = models.ForeignKey(Hotel, on_delete=models.CASCADE, related_name="room_types")
    label = models.CharField(max_length=100)
    capacity = models.PositiveIntegerField(default=1, validators=[MinValueValidator(1)])
    total_rooms = models.PositiveIntegerField()
    base_nightly_rate = money_field(validators=[MinValueValidator(ZERO)])
    is_active = models.BooleanField(default=True)

    def __str__(self):
        return f"{self.hotel_id}:{self.label}"


class Poi(models.Model):
    city = models.ForeignKey(City, on_delete=models.CASCADE, related_name="pois")
    name = models.CharField(max_length=150)
    price = money_field(default=ZERO, validators=[MinValueValidator(ZERO)])
    discount_price = money_field(null=True, blank=True)
    latitude = models.FloatField(null=True, blank=True)
    longitude = models.FloatField(null=True, blank=True)

    def __str__(self):
        return self.name


class Tag(models.Model):
    name = models.CharField(max_length=60, unique=True)

    def __str__(self):
        return self.name


class Guide(models.Model):
    user = models.OneToOneField(settings.AUTH_USER_MODEL, on_delete=models.CASCADE, related_name="guide")
    city = models.ForeignKey(City, on_delete=models.SET_NULL, null=True, blank=True, related_name="guides")
    price_per_day = money_field(validators=[MinValueValidator(ZERO)])
    is_active = models.BooleanField(default=True)


class RefundPolicy(models.Model):
    name = models.CharField(max_length=100, unique=True)
    is_default = models.BooleanField(default=False)

    def __str__(self):
        return self.name


class RefundTier(models.Model):
    policy = models.ForeignKey(RefundPolicy, on_delete=models.CASCADE, related_name="tiers")
    # Exclusive lower bound; null marks the catch-all tier
    min_days_before = models.PositiveIntegerField(null=True, blank=True)
    percentage = models.DecimalField(max_digits=4, decimal_places=2)

    class Meta:
        constraints = [
            models.CheckConstraint(
                condition=Q(percentage__gte=0) & Q(percentage__lte=1),
                name="refund_tier_percentage_range",
            ),
        ]


# Trips

class Trip(models.Model):
    class Type(models.TextChoices):
        CUSTOM = "CUSTOM"
        PREDEFINED = "PREDEFINED"

    name = models.CharField(max_length=200)
    city = models.ForeignKey(City, on_delete=models.PROTECT, related_name="trips")
    created_by = models.ForeignKey(settings.AUTH_USER_MODEL, on_delete=models.CASCADE, related_name="created_trips")
    trip_type = models.CharField(max_length=12, choices=Type.choices)
    start_date = models.DateField()
    end_date = models.DateField()
    price_per_person = money_field(validators=[MinValueValidator(ZERO)])
    min_people = models.PositiveIntegerField(default=1)
    max_people = models.PositiveIntegerField(default=1)
    min_seats_per_user = models.PositiveIntegerField(default=1)
    max_seats_per_user = models.PositiveIntegerField(default=1)
    with_meals = models.BooleanField(default=False)
    with_transport = models.BooleanField(default=False)
    hotel_included = models.BooleanField(default=False)
    meal_price_per_person = money_field(default=ZERO)
    transport_price_per_person = money_field(default=ZERO)
    guide = models.ForeignKey(Guide, on_delete=models.SET_NULL, null=True, blank=True, related_name="trips")
    meet_latitude = models.FloatField()
    meet_longitude = models.FloatField()
    meet_address = models.CharField(max_length=255, blank=True)
    drop_latitude = models.FloatField()
    drop_longitude = models.FloatField()
    drop_address = models.CharField(max_length=255, blank=True)
    refund_policy = models.ForeignKey(RefundPolicy, on_delete=models.PROTECT, related_name="trips")
    tags = models.ManyToManyField(Tag, blank=True, related_name="trips")
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        constraints = [
            models.CheckConstraint(condition=Q(end_date__gt=F("start_date")), name="trip_end_after_start"),
            models.CheckConstraint(condition=Q(min_people__lte=F("max_people")), name="trip_people_bounds"),
            models.CheckConstraint(
                condition=Q(min_seats_per_user__lte=F("max_seats_per_user")),
                name="trip_seat_bounds",
            ),
        ]

    def __str__(self):
        return self.name


class TripDay(models.Model):
    trip = models.ForeignKey(Trip, on_delete=models.CASCADE, related_name="days")
    day_number = models.PositiveIntegerField()

    class Meta:
        ordering = ["day_number"]
        constraints = [
            models.UniqueConstraint(fields=["trip", "day_number"], name="trip_day_unique"),
        ]


class TripPoi(models.Model):
    day = models.ForeignKey(TripDay, on_delete=models.CASCADE, related_name="pois")
    poi = models.ForeignKey(Poi, on_delete=models.PROTECT, related_name="+")
    visit_order = models.PositiveIntegerField()

    class Meta:
        ordering = ["visit_order"]
        constraints = [
            models.UniqueConstraint(fields=["day", "visit_order"], name="trip_poi_visit_order_unique"),
        ]


class TripHotel(models.Model):
    # At most one per trip, enforced when the trip is compiled
    trip = models.ForeignKey(Trip, on_delete=models.CASCADE, related_name="hotels")
    hotel = models.ForeignKey(Hotel, on_delete=models.PROTECT, related_name="+")
    room_type = models.ForeignKey(RoomType, on_delete=models.PROTECT, related_name="+")
    rooms_needed = models.PositiveIntegerField(validators=[MinValueValidator(1)])


class TripAttachment(models.Model):
    class Role(models.TextChoices):
        MAIN = "MAIN"
        GALLERY = "GALLERY"

    trip = models.ForeignKey(Trip, on_delete=models.CASCADE, related_name="attachments")
    object_id = models.CharField(max_length=255)
    role = models.CharField(max_length=10, choices=Role.choices)
    sort_order = models.PositiveIntegerField(default=0)


# Holds

class RoomInventory(models.Model):
    room_type = models.ForeignKey(RoomType, on_delete=models.CASCADE, related_name="inventory")
    date = models.DateField()
    total_rooms = models.PositiveIntegerField()
    booked_rooms = models.IntegerField(default=0)
    available_rooms = models.IntegerField()

    class Meta:
        constraints = [
            models.UniqueConstraint(fields=["room_type", "date"], name="room_inventory_unique_date"),
            models.CheckConstraint(condition=Q(available_rooms__gte=0), name="room_inventory_available_non_negative"),
            models.CheckConstraint(condition=Q(booked_rooms__gte=0), name="room_inventory_booked_non_negative"),
            models.CheckConstraint(
                condition=Q(available_rooms=F("total_rooms") - F("booked_rooms")),
                name="room_inventory_balanced",
            ),
        ]


class RoomReservation(models.Model):
    room_type = models.ForeignKey(RoomType, on_delete=models.PROTECT, related_name="reservations")
    user = models.ForeignKey(
        settings.AUTH_USER_MODEL, on_delete=models.SET_NULL, null=True, blank=True, related_name="room_reservations"
    )
    check_in = models.DateField()
    check_out = models.DateField()  # exclusive
    rooms_booked = models.PositiveIntegerField(validators=[MinValueValidator(1)])
    source = models.CharField(max_length=20, choices=ReservationSource.choices)
    source_id = models.PositiveBigIntegerField()
    total_price = money_field(default=ZERO)
    refund_policy = models.ForeignKey(RefundPolicy, on_delete=models.PROTECT, null=True, blank=True, related_name="+")
    cancelled_at = models.DateTimeField(null=True, blank=True)
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        indexes = [models.Index(fields=["source", "source_id"])]
        constraints = [
            models.CheckConstraint(condition=Q(check_out__gt=F("check_in")), name="room_reservation_dates"),
        ]


class GuideAvailability(models.Model):
    guide = models.ForeignKey(Guide, on_delete=models.CASCADE, related_name="holds")
    start_date = models.DateField()
    end_date = models.DateField()
    source = models.CharField(max_length=20, choices=ReservationSource.choices)
    source_id = models.PositiveBigIntegerField()

    class Meta:
        indexes = [models.Index(fields=["source", "source_id"])]
        constraints = [
            models.CheckConstraint(condition=Q(end_date__gt=F("start_date")), name="guide_hold_dates"),
        ]


# Orders and bookings

class Order(models.Model):
    class Status(models.TextChoices):
        PENDING = "PENDING"
        CONFIRMED = "CONFIRMED"
        CANCELLED = "CANCELLED"

    user = models.ForeignKey(settings.AUTH_USER_MODEL, on_delete=models.CASCADE, related_name="orders")
    status = models.CharField(max_length=10, choices=Status.choices, default=Status.PENDING)
    total_amount = money_field(validators=[MinValueValidator(ZERO)])
    currency = models.CharField(max_length=3, default="USD")
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)


class OrderItem(models.Model):
    class ItemType(models.TextChoices):
        TRIP = "TRIP"
        ROOM = "ROOM"

    order = models.ForeignKey(Order, on_delete=models.CASCADE, related_name="items")
    item_type = models.CharField(max_length=10, choices=ItemType.choices)
    item_id = models.PositiveBigIntegerField()
    quantity = models.PositiveIntegerField()
    unit_price = money_field()
    total_price = money_field()
    refund_policy = models.ForeignKey(RefundPolicy, on_delete=models.PROTECT, null=True, blank=True, related_name="+")
    refund_amount = money_field(null=True, blank=True)


class TripBooking(models.Model):
    trip = models.ForeignKey(Trip, on_delete=models.CASCADE, related_name="bookings")
    user = models.ForeignKey(settings.AUTH_USER_MODEL, on_delete=models.CASCADE, related_name="trip_bookings")
    seats = models.PositiveIntegerField(validators=[MinValueValidator(1)])
    total_price = money_field()
    source = models.CharField(max_length=20, choices=ReservationSource.choices)
    order = models.ForeignKey(Order, on_delete=models.PROTECT, related_name="trip_bookings")
    refund_policy = models.ForeignKey(RefundPolicy, on_delete=models.PROTECT, null=True, blank=True, related_name="+")
    cancelled_at = models.DateTimeField(null=True, blank=True)
    created_at = models.DateTimeField(auto_now_add=True)


# Wallet

class Wallet(models.Model):
    user = models.OneToOneField(settings.AUTH_USER_MODEL, on_delete=models.CASCADE, related_name="wallet")
    balance = money_field(default=ZERO)
    currency = models.CharField(max_length=3, default="USD")
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        constraints = [
            models.CheckConstraint(condition=Q(balance__gte=0), name="wallet_balance_non_negative"),
        ]


class UserTransaction(models.Model):
    class Source(models.TextChoices):
        TOPUP = "TOPUP"
        BOOKING = "BOOKING"
        REFUND = "REFUND"
        ADMIN_ADJUST = "ADMIN_ADJUST"

    class Status(models.TextChoices):
        PENDING = "PENDING"
        POSTED = "POSTED"
        REJECTED = "REJECTED"

    wallet = models.ForeignKey(Wallet, on_delete=models.CASCADE, related_name="transactions")
    amount = money_field()  # signed
    source = models.CharField(max_length=15, choices=Source.choices)
    status = models.CharField(max_length=10, choices=Status.choices, default=Status.POSTED)
    balance_before = money_field()
    balance_after = money_field()
    order = models.ForeignKey(Order, on_delete=models.SET_NULL, null=True, blank=True, related_name="transactions")
    note = models.CharField(max_length=255, blank=True)
    created_at = models.DateTimeField(auto_now_add=True)


class PaymentHistory(models.Model):
    class Method(models.TextChoices):
        WALLET = "WALLET"

    class Status(models.TextChoices):
        POSTED = "POSTED"
        REFUNDED = "REFUNDED"

    order = models.ForeignKey(Order, on_delete=models.CASCADE, related_name="payments")
    amount = money_field()
    method = models.CharField(max_length=10, choices=Method.choices, default=Method.WALLET)
    status = models.CharField(max_length=10, choices=Status.choices)
    created_at = models.DateTimeField(auto_now_add=True)


# Chat and notifications

class ChatRoom(models.Model):
    trip = models.OneToOneField(Trip, on_delete=models.CASCADE, related_name="chat_room")
    is_custom_trip = models.BooleanField(default=False)
    created_at = models.DateTimeField(auto_now_add=True)


class ChatMember(models.Model):
    class Role(models.TextChoices):
        CUSTOMER = "Customer"
        GUIDE = "Guide"
        SUPER_ADMIN = "Super Admin"

    room = models.ForeignKey(ChatRoom, on_delete=models.CASCADE, related_name="members")
    user = models.ForeignKey(settings.AUTH_USER_MODEL, on_delete=models.CASCADE, related_name="chat_memberships")
    role = models.CharField(max_length=20, choices=Role.choices)
    joined_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        constraints = [
            models.UniqueConstraint(fields=["room", "user"], name="chat_member_unique"),
        ]


class Notification(models.Model):
    user = models.ForeignKey(settings.AUTH_USER_MODEL, on_delete=models.CASCADE, related_name="notifications")
    title = models.CharField(max_length=200)
    body = models.TextField()
    data = models.JSONField(default=dict, blank=True)
    is_read = models.BooleanField(default=False)
    created_at = models.DateTimeField(auto_now_add=True)
