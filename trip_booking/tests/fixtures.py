from datetime import timedelta
from decimal import Decimal

from django.contrib.auth import get_user_model
from django.utils import timezone

from trip_booking.domain import DraftDay, DraftHotel, DraftPoi, TripDraft
from trip_booking.models import (
    City,
    CityMealPrice,
    DistanceRate,
    Guide,
    Hotel,
    Poi,
    RoomInventory,
    RoomType,
    Trip,
    UserTransaction,
    Wallet,
)
from trip_booking.refunds import get_default_refund_policy
from trip_booking.wallet import top_up

User = get_user_model()


class MarketplaceMixin:
    """Reference data shared by the booking tests"""

    def create_marketplace(self):
        self.today = timezone.localdate()
        self.customer = User.objects.create_user('alice', 'alice@example.com', 'pw')
        self.other_customer = User.objects.create_user('bob', 'bob@example.com', 'pw')
        self.admin = User.objects.create_superuser('admin', 'admin@example.com', 'pw')

        self.city = City.objects.create(name='Lisbon', avg_meal_price=Decimal('15.00'))
        CityMealPrice.objects.create(city=self.city, meal_price_per_person=Decimal('20.00'))
        DistanceRate.objects.create(city=self.city, transport_rate_per_km=Decimal('1.00'))

        self.hotel = Hotel.objects.create(city=self.city, name='Riverside')
        self.other_hotel = Hotel.objects.create(city=self.city, name='Hilltop')
        self.room_type = RoomType.objects.create(
            hotel=self.hotel,
            label='Double',
            capacity=2,
            total_rooms=5,
            base_nightly_rate=Decimal('100.00'),
        )

        self.poi_a = Poi.objects.create(city=self.city, name='Tower', price=Decimal('10.00'),
                                        latitude=38.6916, longitude=-9.2160)
        self.poi_b = Poi.objects.create(city=self.city, name='Monastery', price=Decimal('12.00'),
                                        discount_price=Decimal('9.00'), latitude=38.6979, longitude=-9.2068)
        self.poi_c = Poi.objects.create(city=self.city, name='Street market', price=Decimal('0.00'))

        self.guide_user = User.objects.create_user('gus', 'gus@example.com', 'pw')
        self.guide = Guide.objects.create(user=self.guide_user, city=self.city, price_per_day=Decimal('50.00'))

        self.policy = get_default_refund_policy()

    def fund(self, user, amount):
        return top_up(user, Decimal(amount))

    def make_trip(self, start_in_days=10, length=3, **overrides):
        start = self.today + timedelta(days=start_in_days)
        fields = dict(
            name='City walk',
            city=self.city,
            created_by=self.admin,
            trip_type=Trip.Type.PREDEFINED,
            start_date=start,
            end_date=start + timedelta(days=length),
            price_per_person=Decimal('40.00'),
            min_people=1,
            max_people=6,
            min_seats_per_user=1,
            max_seats_per_user=2,
            meet_latitude=38.7,
            meet_longitude=-9.1,
            drop_latitude=38.7,
            drop_longitude=-9.1,
            refund_policy=self.policy,
        )
        fields.update(overrides)
        return Trip.objects.create(**fields)

    def make_draft(self, start_in_days=10, length=3, **overrides):
        start = self.today + timedelta(days=start_in_days)
        fields = dict(
            name='Custom Lisbon',
            city_id=self.city.id,
            start_date=start,
            end_date=start + timedelta(days=length),
            people=2,
            days=[
                DraftDay(day_number=1, pois=[
                    DraftPoi(poi_id=self.poi_a.id, visit_order=1),
                    DraftPoi(poi_id=self.poi_b.id, visit_order=2),
                ]),
                DraftDay(day_number=2, pois=[DraftPoi(poi_id=self.poi_c.id, visit_order=1)]),
            ],
        )
        fields.update(overrides)
        return TripDraft(**fields)

    def hotel_draft(self, rooms=1):
        return [DraftHotel(hotel_id=self.hotel.id, room_type_id=self.room_type.id, rooms_requested=rooms)]

    def assertInventoryBalanced(self):
        for row in RoomInventory.objects.all():
            self.assertGreaterEqual(row.available_rooms, 0)
            self.assertLessEqual(row.available_rooms, row.total_rooms)
            self.assertEqual(row.available_rooms + row.booked_rooms, row.total_rooms,
                             f"Inventory row for {row.date} is out of balance")

    def assertLedgerConsistent(self, user):
        wallet = Wallet.objects.get(user=user)
        entries = list(UserTransaction.objects.filter(wallet=wallet).order_by('id'))
        for entry in entries:
            self.assertEqual(entry.balance_before + entry.amount, entry.balance_after)
        self.assertEqual(sum((e.amount for e in entries), Decimal('0')), wallet.balance)
        if entries:
            self.assertEqual(entries[-1].balance_after, wallet.balance)
