from datetime import date
from decimal import Decimal

from django.test import SimpleTestCase, TestCase

from trip_booking.domain import DraftDay, DraftHotel, DraftPoi, TripDraft
from trip_booking.exceptions import NotFound, ValidationError
from trip_booking.geo import GeoPoint, haversine_km
from trip_booking.models import CityMealPrice
from trip_booking.pricing import count_nights, price_draft, quote
from trip_booking.reference import CityRates, GuideInfo, PoiInfo, PricingInputs, RoomTypeInfo

from .fixtures import MarketplaceMixin


def poi(poi_id, price, discount=None, point=None):
    return PoiInfo(id=poi_id, price=Decimal(price), discount_price=None if discount is None else Decimal(discount),
                   point=point)


class GeoTestCase(SimpleTestCase):
    def test_same_point_is_zero(self):
        p = GeoPoint(38.7, -9.1)
        self.assertEqual(haversine_km(p, p), 0.0)

    def test_one_degree_of_latitude(self):
        """One degree along a meridian is about 111.19 km"""
        d = haversine_km(GeoPoint(0.0, 0.0), GeoPoint(1.0, 0.0))
        self.assertAlmostEqual(d, 111.19, places=1)

    def test_antipodes_do_not_overflow(self):
        d = haversine_km(GeoPoint(0.0, 0.0), GeoPoint(0.0, 180.0))
        self.assertAlmostEqual(d, 6371.0 * 3.141592653589793, places=3)


class PriceDraftTestCase(SimpleTestCase):
    """Pure price calculation against hand-built reference data"""

    def setUp(self):
        self.city = CityRates(city_id=1, meal_rate=Decimal('20.00'), transport_rate_per_km=Decimal('2.00'))
        self.start = date(2030, 5, 1)

    def draft(self, **overrides):
        fields = dict(city_id=1, start_date=self.start, end_date=date(2030, 5, 5), people=2)
        fields.update(overrides)
        return TripDraft(**fields)

    def test_count_nights(self):
        self.assertEqual(count_nights(date(2030, 5, 1), date(2030, 5, 5)), 4)
        self.assertEqual(count_nights(date(2030, 5, 1), date(2030, 5, 1)), 1)

    def test_meals_for_four_nights(self):
        """4 nights, 2 people, $20 per person per day"""
        result = price_draft(self.draft(with_meals=True), PricingInputs(city=self.city, pois={}))
        self.assertEqual(result.nights, 4)
        self.assertEqual(result.breakdown.meals, Decimal('160.00'))
        self.assertEqual(result.per_person_meals, Decimal('80.00'))
        self.assertEqual(result.total, Decimal('160.00'))

    def test_rooms_raised_to_fit_party(self):
        room_type = RoomTypeInfo(id=7, hotel_id=3, capacity=2, total_rooms=10,
                                 base_nightly_rate=Decimal('100.00'), is_active=True)
        draft = self.draft(
            people=5,
            hotel_included=True,
            hotels=[DraftHotel(hotel_id=3, room_type_id=7, rooms_requested=2)],
        )
        result = price_draft(draft, PricingInputs(city=self.city, pois={}, room_type=room_type))

        self.assertEqual(result.rooms_used, 3)
        self.assertEqual(result.breakdown.lodging, Decimal('1200.00'))
        self.assertEqual(result.warnings, ["Rooms increased to 3 to cover 5 people (capacity 2/room)."])

    def test_requested_rooms_kept_when_enough(self):
        room_type = RoomTypeInfo(id=7, hotel_id=3, capacity=2, total_rooms=10,
                                 base_nightly_rate=Decimal('100.00'), is_active=True)
        draft = self.draft(hotel_included=True, hotels=[DraftHotel(hotel_id=3, room_type_id=7, rooms_requested=2)])
        result = price_draft(draft, PricingInputs(city=self.city, pois={}, room_type=room_type))
        self.assertEqual(result.rooms_used, 2)
        self.assertEqual(result.warnings, [])

    def test_inactive_room_type_rejected(self):
        room_type = RoomTypeInfo(id=7, hotel_id=3, capacity=2, total_rooms=10,
                                 base_nightly_rate=Decimal('100.00'), is_active=False)
        draft = self.draft(hotel_included=True, hotels=[DraftHotel(hotel_id=3, room_type_id=7)])
        with self.assertRaises(ValidationError):
            price_draft(draft, PricingInputs(city=self.city, pois={}, room_type=room_type))

    def test_poi_discount_rules(self):
        cases = [
            ('10.00', '7.50', Decimal('7.50')),
            ('10.00', '10.00', Decimal('10.00')),
            ('10.00', '12.00', Decimal('10.00')),
            ('10.00', '-1.00', Decimal('10.00')),
            ('10.00', None, Decimal('10.00')),
            ('10.00', '0.00', Decimal('0.00')),
        ]
        for price, discount, expected in cases:
            with self.subTest(price=price, discount=discount):
                self.assertEqual(poi(1, price, discount).unit_price, expected)

    def test_poi_total_multiplied_by_people(self):
        pois = {1: poi(1, '10.00'), 2: poi(2, '12.00', '9.00')}
        draft = self.draft(people=3, days=[
            DraftDay(day_number=1, pois=[DraftPoi(1, 1), DraftPoi(2, 2)]),
        ])
        result = price_draft(draft, PricingInputs(city=self.city, pois=pois))
        self.assertEqual(result.breakdown.poi, Decimal('57.00'))
        self.assertEqual(result.per_person_poi, Decimal('19.00'))

    def test_transport_follows_visit_order(self):
        a = GeoPoint(0.0, 0.0)
        b = GeoPoint(1.0, 0.0)
        c = GeoPoint(1.0, 1.0)
        pois = {1: poi(1, '0', point=a), 2: poi(2, '0', point=b), 3: poi(3, '0', point=c)}
        draft = self.draft(with_transport=True, days=[
            # Listed out of order on purpose
            DraftDay(day_number=1, pois=[DraftPoi(3, 3), DraftPoi(1, 1), DraftPoi(2, 2)]),
            DraftDay(day_number=2, pois=[DraftPoi(1, 1)]),
        ])
        result = price_draft(draft, PricingInputs(city=self.city, pois=pois))

        expected_km = haversine_km(a, b) + haversine_km(b, c)
        self.assertAlmostEqual(result.distance_km, expected_km, places=2)
        self.assertEqual(result.breakdown.transport, (Decimal(str(expected_km)) * 2).quantize(Decimal('0.01')))

    def test_legs_touching_a_stop_without_coordinates_are_skipped(self):
        a = GeoPoint(0.0, 0.0)
        c = GeoPoint(1.0, 0.0)
        d = GeoPoint(2.0, 0.0)
        pois = {1: poi(1, '0', point=a), 2: poi(2, '0', point=None), 3: poi(3, '0', point=c), 4: poi(4, '0', point=d)}
        cases = [
            ([DraftPoi(1, 1), DraftPoi(2, 2), DraftPoi(3, 3)], 0.0),
            ([DraftPoi(1, 1), DraftPoi(2, 2), DraftPoi(3, 3), DraftPoi(4, 4)], haversine_km(c, d)),
        ]
        for stops, expected_km in cases:
            with self.subTest(stops=len(stops)):
                draft = self.draft(with_transport=True, days=[DraftDay(day_number=1, pois=stops)])
                result = price_draft(draft, PricingInputs(city=self.city, pois=pois))
                self.assertAlmostEqual(result.distance_km, expected_km, places=2)
                self.assertEqual(result.breakdown.transport, (Decimal(str(expected_km)) * 2).quantize(Decimal('0.01')))

    def test_guide_charged_per_night(self):
        guide = GuideInfo(id=1, user_id=9, price_per_day=Decimal('50.00'))
        result = price_draft(self.draft(), PricingInputs(city=self.city, pois={}, guide=guide))
        self.assertEqual(result.breakdown.guide, Decimal('200.00'))

    def test_per_person_rounds_half_up(self):
        guide = GuideInfo(id=1, user_id=9, price_per_day=Decimal('25.00'))
        draft = self.draft(people=3, end_date=date(2030, 5, 2))
        result = price_draft(draft, PricingInputs(city=self.city, pois={}, guide=guide))
        self.assertEqual(result.total, Decimal('25.00'))
        self.assertEqual(result.per_person, Decimal('8.33'))

    def test_non_positive_people_rejected(self):
        for people in (0, -2):
            with self.subTest(people=people):
                with self.assertRaises(ValidationError):
                    price_draft(self.draft(people=people), PricingInputs(city=self.city, pois={}))

    def test_dates_must_be_ordered(self):
        with self.assertRaises(ValidationError):
            price_draft(self.draft(end_date=self.start), PricingInputs(city=self.city, pois={}))


class QuoteTestCase(MarketplaceMixin, TestCase):
    """Quotes loaded from the database"""

    def setUp(self):
        self.create_marketplace()

    def test_latest_meal_override_wins(self):
        CityMealPrice.objects.create(city=self.city, meal_price_per_person=Decimal('25.00'))
        result = quote(self.make_draft(with_meals=True, length=2))
        self.assertEqual(result.breakdown.meals, Decimal('100.00'))

    def test_city_default_meal_price_without_override(self):
        self.city.meal_prices.all().delete()
        result = quote(self.make_draft(with_meals=True, length=2))
        self.assertEqual(result.breakdown.meals, Decimal('60.00'))

    def test_no_distance_rate_means_free_transport(self):
        self.city.distance_rates.all().delete()
        result = quote(self.make_draft(with_transport=True))
        self.assertGreater(result.distance_km, 0)
        self.assertEqual(result.breakdown.transport, Decimal('0.00'))

    def test_full_quote(self):
        draft = self.make_draft(
            people=2,
            length=2,
            hotel_included=True,
            hotels=self.hotel_draft(rooms=1),
            guide_id=self.guide.id,
        )
        result = quote(draft)

        # POIs: (10 + 9 + 0) * 2; lodging: 100 * 1 * 2; guide: 50 * 2
        self.assertEqual(result.breakdown.poi, Decimal('38.00'))
        self.assertEqual(result.breakdown.lodging, Decimal('200.00'))
        self.assertEqual(result.breakdown.guide, Decimal('100.00'))
        self.assertEqual(result.total, Decimal('338.00'))
        self.assertEqual(result.per_person, Decimal('169.00'))

    def test_unknown_references(self):
        with self.subTest('poi'):
            draft = self.make_draft(days=[DraftDay(day_number=1, pois=[DraftPoi(poi_id=99999, visit_order=1)])])
            with self.assertRaises(NotFound):
                quote(draft)
        with self.subTest('city'):
            with self.assertRaises(NotFound):
                quote(self.make_draft(city_id=99999))
        with self.subTest('guide'):
            with self.assertRaises(NotFound):
                quote(self.make_draft(guide_id=99999))
        with self.subTest('room type'):
            draft = self.make_draft(hotel_included=True, hotels=[
                DraftHotel(hotel_id=self.hotel.id, room_type_id=99999),
            ])
            with self.assertRaises(NotFound):
                quote(draft)
