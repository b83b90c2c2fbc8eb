from datetime import timedelta
from decimal import Decimal

from rest_framework import status
from rest_framework.test import APITestCase

from trip_booking.booking import book_trip
from trip_booking.models import Order, RoomReservation, Trip, TripBooking

from .fixtures import MarketplaceMixin


class TripApiTestCase(MarketplaceMixin, APITestCase):
    def setUp(self):
        self.create_marketplace()
        self.fund(self.customer, '1000.00')
        self.client.force_authenticate(self.customer)

    def draft_payload(self, **overrides):
        start = self.today + timedelta(days=10)
        payload = {
            'name': 'Weekend in Lisbon',
            'city_id': self.city.id,
            'start_date': start.isoformat(),
            'end_date': (start + timedelta(days=2)).isoformat(),
            'people': 2,
            'with_meals': True,
            'days': [
                {'day_number': 1, 'pois': [
                    {'poi_id': self.poi_a.id, 'visit_order': 1},
                    {'poi_id': self.poi_b.id, 'visit_order': 2},
                ]},
            ],
        }
        payload.update(overrides)
        return payload

    def test_requires_authentication(self):
        self.client.force_authenticate(None)
        response = self.client.post('/api/trips/quote/', self.draft_payload(), format='json')
        self.assertIn(response.status_code, (status.HTTP_401_UNAUTHORIZED, status.HTTP_403_FORBIDDEN))

    def test_quote(self):
        response = self.client.post('/api/trips/quote/', self.draft_payload(), format='json')

        self.assertEqual(response.status_code, status.HTTP_200_OK)
        # POIs (10 + 9) * 2 + meals 20 * 2 * 2
        self.assertEqual(Decimal(response.data['total']), Decimal('118.00'))
        self.assertEqual(Decimal(response.data['breakdown']['meals']), Decimal('80.00'))
        self.assertEqual(response.data['nights'], 2)

    def test_quote_validation_error(self):
        payload = self.draft_payload(end_date=self.draft_payload()['start_date'])
        response = self.client.post('/api/trips/quote/', payload, format='json')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)

    def test_quote_unknown_poi(self):
        payload = self.draft_payload(days=[{'day_number': 1, 'pois': [{'poi_id': 99999, 'visit_order': 1}]}])
        response = self.client.post('/api/trips/quote/', payload, format='json')
        self.assertEqual(response.status_code, status.HTTP_404_NOT_FOUND)

    def test_create_and_book_custom_trip(self):
        payload = self.draft_payload(trip_type='CUSTOM', book_now=True)
        response = self.client.post('/api/trips/from-draft/', payload, format='json')

        self.assertEqual(response.status_code, status.HTTP_201_CREATED, response.data)
        self.assertIn('booking_id', response.data)
        trip = Trip.objects.get(pk=response.data['trip_id'])
        self.assertEqual(trip.created_by, self.customer)
        self.assertEqual(Decimal(response.data['total_amount']), Decimal('118.00'))

    def test_custom_trip_cannot_be_booked_through_the_book_action(self):
        created = self.client.post('/api/trips/from-draft/', self.draft_payload(trip_type='CUSTOM', book_now=True),
                                   format='json').data
        self.client.post(f"/api/bookings/{created['booking_id']}/cancel/")

        self.client.force_authenticate(self.other_customer)
        response = self.client.post(f"/api/trips/{created['trip_id']}/book/", {'seats': 2}, format='json')

        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
        self.assertEqual(TripBooking.objects.filter(trip_id=created['trip_id']).count(), 1)

    def test_predefined_trips_are_staff_only(self):
        response = self.client.post('/api/trips/from-draft/', self.draft_payload(trip_type='PREDEFINED'), format='json')
        self.assertEqual(response.status_code, status.HTTP_403_FORBIDDEN)

        self.client.force_authenticate(self.admin)
        payload = self.draft_payload(
            trip_type='PREDEFINED',
            seat_policy={'min_people': 1, 'max_people': 10, 'min_seats_per_user': 1, 'max_seats_per_user': 4},
        )
        response = self.client.post('/api/trips/from-draft/', payload, format='json')
        self.assertEqual(response.status_code, status.HTTP_201_CREATED, response.data)
        self.assertNotIn('booking_id', response.data)

    def test_list_shows_remaining_seats(self):
        trip = self.make_trip(max_people=5)
        book_trip(self.customer.id, trip.id, 2)

        response = self.client.get('/api/trips/')

        self.assertEqual(response.status_code, status.HTTP_200_OK)
        listed = {t['id']: t for t in response.data}
        self.assertEqual(listed[trip.id]['seats_remaining'], 3)

    def test_seat_availability(self):
        trip = self.make_trip(max_seats_per_user=2)
        response = self.client.get(f'/api/trips/{trip.id}/seat-availability/', {'seats': 3})
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertFalse(response.data['available'])
        self.assertEqual(response.data['message'], "You must book between 1 and 2 seats")

    def test_book_and_cancel(self):
        trip = self.make_trip()

        response = self.client.post(f'/api/trips/{trip.id}/book/', {'seats': 2}, format='json')
        self.assertEqual(response.status_code, status.HTTP_201_CREATED)
        booking_id = response.data['booking_id']

        response = self.client.get('/api/bookings/')
        self.assertEqual([b['id'] for b in response.data], [booking_id])

        response = self.client.post(f'/api/bookings/{booking_id}/cancel/')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(Decimal(response.data['refunded_amount']), Decimal('80.00'))

        response = self.client.post(f'/api/bookings/{booking_id}/cancel/')
        self.assertEqual(response.status_code, status.HTTP_409_CONFLICT)

    def test_booking_without_funds(self):
        trip = self.make_trip(price_per_person=Decimal('800.00'))
        response = self.client.post(f'/api/trips/{trip.id}/book/', {'seats': 2}, format='json')
        self.assertEqual(response.status_code, status.HTTP_402_PAYMENT_REQUIRED)
        self.assertFalse(TripBooking.objects.exists())

    def test_cannot_cancel_other_users_booking(self):
        trip = self.make_trip()
        self.fund(self.other_customer, '100.00')
        booked = book_trip(self.other_customer.id, trip.id, 1)

        response = self.client.post(f'/api/bookings/{booked.booking_id}/cancel/')
        self.assertEqual(response.status_code, status.HTTP_403_FORBIDDEN)

    def test_update_and_delete_are_staff_only(self):
        trip = self.make_trip()
        response = self.client.delete(f'/api/trips/{trip.id}/')
        self.assertEqual(response.status_code, status.HTTP_403_FORBIDDEN)

        self.client.force_authenticate(self.admin)
        response = self.client.put(f'/api/trips/{trip.id}/', self.draft_payload(), format='json')
        self.assertEqual(response.status_code, status.HTTP_200_OK, response.data)
        self.assertEqual(Decimal(response.data['trip']['price_per_person']), Decimal('59.00'))

        response = self.client.delete(f'/api/trips/{trip.id}/')
        self.assertEqual(response.status_code, status.HTTP_204_NO_CONTENT)
        self.assertFalse(Trip.objects.filter(pk=trip.id).exists())


class AvailabilityApiTestCase(MarketplaceMixin, APITestCase):
    def setUp(self):
        self.create_marketplace()
        self.client.force_authenticate(self.customer)
        self.start = self.today + timedelta(days=20)

    def test_room_availability(self):
        params = {
            'hotel_id': self.hotel.id,
            'room_type_id': self.room_type.id,
            'start_date': self.start.isoformat(),
            'end_date': (self.start + timedelta(days=2)).isoformat(),
            'rooms': 6,
        }
        response = self.client.get('/api/availability/rooms/', params)
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertFalse(response.data['available'])
        self.assertEqual(response.data['message'], f"Only 5 rooms available on {self.start.isoformat()}")

    def test_guide_availability(self):
        params = {
            'guide_id': self.guide.id,
            'start_date': self.start.isoformat(),
            'end_date': (self.start + timedelta(days=2)).isoformat(),
        }
        response = self.client.get('/api/availability/guides/', params)
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data, {'available': True})

    def test_missing_parameters(self):
        response = self.client.get('/api/availability/rooms/')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)


class RoomReservationAndOrderApiTestCase(MarketplaceMixin, APITestCase):
    def setUp(self):
        self.create_marketplace()
        self.fund(self.customer, '1000.00')
        self.client.force_authenticate(self.customer)
        self.check_in = self.today + timedelta(days=15)

    def reserve(self):
        payload = {
            'hotel_id': self.hotel.id,
            'room_type_id': self.room_type.id,
            'check_in': self.check_in.isoformat(),
            'check_out': (self.check_in + timedelta(days=1)).isoformat(),
            'rooms': 1,
        }
        return self.client.post('/api/room-reservations/', payload, format='json')

    def test_reserve_and_cancel_room(self):
        response = self.reserve()
        self.assertEqual(response.status_code, status.HTTP_201_CREATED, response.data)
        reservation_id = response.data['id']

        response = self.client.post(f'/api/room-reservations/{reservation_id}/cancel/')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(Decimal(response.data['refunded_amount']), Decimal('100.00'))
        self.assertIsNotNone(RoomReservation.objects.get(pk=reservation_id).cancelled_at)

    def test_orders_list_and_cancel(self):
        order_id = self.reserve().data['order_id']

        response = self.client.get('/api/orders/')
        self.assertEqual([o['id'] for o in response.data], [order_id])
        self.assertEqual(response.data[0]['items'][0]['item_type'], 'ROOM')

        response = self.client.post(f'/api/orders/{order_id}/cancel/')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(Order.objects.get(pk=order_id).status, Order.Status.CANCELLED)

        response = self.client.post(f'/api/orders/{order_id}/cancel/')
        self.assertEqual(response.status_code, status.HTTP_409_CONFLICT)


class HealthTestCase(APITestCase):
    def test_health_and_welcome(self):
        self.assertEqual(self.client.get('/health').json(), {'status': 'ok'})
        self.assertEqual(self.client.get('/').status_code, status.HTTP_200_OK)
