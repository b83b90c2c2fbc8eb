from decimal import Decimal

from django.contrib.auth import get_user_model
from django.core.management.base import BaseCommand
from django.db import transaction

from trip_booking.models import City, CityMealPrice, DistanceRate, Guide, Hotel, Poi, RoomType, Tag
from trip_booking.refunds import get_default_refund_policy
from trip_booking.wallet import top_up


class Command(BaseCommand):
    help = 'Populate database with a sample city, hotel, POIs, guide and a funded customer'

    def add_arguments(self, parser):
        parser.add_argument('--balance', type=Decimal, default=Decimal('1000.00'),
                            help='Wallet top-up for the demo customer')

    @transaction.atomic
    def handle(self, *args, **options):
        city, _ = City.objects.get_or_create(name='Lisbon', defaults={'avg_meal_price': Decimal('18.00')})
        if not city.meal_prices.exists():
            CityMealPrice.objects.create(city=city, meal_price_per_person=Decimal('20.00'))
        if not city.distance_rates.exists():
            DistanceRate.objects.create(city=city, transport_rate_per_km=Decimal('0.90'))

        hotel, _ = Hotel.objects.get_or_create(city=city, name='Alfama Riverside')
        room_types_data = [
            {'label': 'Double Room', 'capacity': 2, 'total_rooms': 12, 'base_nightly_rate': Decimal('95.00')},
            {'label': 'Family Suite', 'capacity': 4, 'total_rooms': 4, 'base_nightly_rate': Decimal('180.00')},
        ]
        for room_type_data in room_types_data:
            room_type, created = RoomType.objects.get_or_create(
                hotel=hotel,
                label=room_type_data['label'],
                defaults=room_type_data,
            )
            if created:
                self.stdout.write(f'Created room type: {room_type.label}')
            else:
                self.stdout.write(f'Room type {room_type.label} already exists')

        pois_data = [
            {'name': 'Belem Tower', 'price': Decimal('10.00'), 'latitude': 38.6916, 'longitude': -9.2160},
            {'name': 'Jeronimos Monastery', 'price': Decimal('12.00'), 'discount_price': Decimal('9.00'),
             'latitude': 38.6979, 'longitude': -9.2068},
            {'name': 'Sao Jorge Castle', 'price': Decimal('15.00'), 'latitude': 38.7139, 'longitude': -9.1335},
            {'name': 'Oceanarium', 'price': Decimal('25.00'), 'latitude': 38.7633, 'longitude': -9.0950},
        ]
        for poi_data in pois_data:
            poi, created = Poi.objects.get_or_create(city=city, name=poi_data['name'], defaults=poi_data)
            if created:
                self.stdout.write(f'Created POI: {poi.name}')

        for name in ('History', 'Family', 'Food'):
            Tag.objects.get_or_create(name=name)

        User = get_user_model()
        guide_user, created = User.objects.get_or_create(username='guide', defaults={'email': 'guide@example.com'})
        if created:
            guide_user.set_password('guide')
            guide_user.save()
        Guide.objects.get_or_create(user=guide_user, defaults={'city': city, 'price_per_day': Decimal('120.00')})

        customer, created = User.objects.get_or_create(username='customer', defaults={'email': 'customer@example.com'})
        if created:
            customer.set_password('customer')
            customer.save()
            top_up(customer, options['balance'], note='Demo balance')
            self.stdout.write(f"Funded customer wallet with {options['balance']}")

        policy = get_default_refund_policy()
        self.stdout.write(f'Default refund policy: {policy.name}')

        self.stdout.write(
            self.style.SUCCESS('Successfully populated database with sample data')
        )
