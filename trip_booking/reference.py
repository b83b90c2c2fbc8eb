"""
Read-only lookups over reference data (cities, rates, hotels, POIs, guides).

This is the only module the booking services use to read reference tables.
Every lookup returns a frozen snapshot instead of a model instance so the
price calculator works on plain values and can be tested without a database.
"""
from dataclasses import dataclass
from decimal import Decimal
from typing import Optional

from .exceptions import NotFound
from .geo import GeoPoint
from .models import City, Guide, Poi, RoomType, Tag


@dataclass(frozen=True)
class CityRates:
    city_id: int
    meal_rate: Decimal
    transport_rate_per_km: Decimal


@dataclass(frozen=True)
class RoomTypeInfo:
    id: int
    hotel_id: int
    capacity: int
    total_rooms: int
    base_nightly_rate: Decimal
    is_active: bool


@dataclass(frozen=True)
class PoiInfo:
    id: int
    price: Decimal
    discount_price: Optional[Decimal]
    point: Optional[GeoPoint]

    @property
    def unit_price(self):
        discount = self.discount_price
        if discount is not None and Decimal("0") <= discount < self.price:
            return discount
        return self.price


@dataclass(frozen=True)
class GuideInfo:
    id: int
    user_id: int
    price_per_day: Decimal


@dataclass(frozen=True)
class PricingInputs:
    city: CityRates
    pois: dict
    room_type: Optional[RoomTypeInfo] = None
    guide: Optional[GuideInfo] = None


def get_city_rates(city_id):
    try:
        city = City.objects.get(pk=city_id)
    except City.DoesNotExist:
        raise NotFound(f"City {city_id} not found")

    # Most recent override wins
    meal_override = city.meal_prices.order_by('-created_at', '-id').first()
    rate = city.distance_rates.order_by('-created_at', '-id').first()
    return CityRates(
        city_id=city.id,
        meal_rate=meal_override.meal_price_per_person if meal_override else city.avg_meal_price,
        transport_rate_per_km=rate.transport_rate_per_km if rate else Decimal("0"),
    )


def get_room_type(room_type_id):
    try:
        room_type = RoomType.objects.get(pk=room_type_id)
    except RoomType.DoesNotExist:
        raise NotFound("Room type not found")
    return RoomTypeInfo(
        id=room_type.id,
        hotel_id=room_type.hotel_id,
        capacity=room_type.capacity,
        total_rooms=room_type.total_rooms,
        base_nightly_rate=room_type.base_nightly_rate,
        is_active=room_type.is_active,
    )


def get_pois(poi_ids):
    wanted = set(poi_ids)
    pois = {}
    for poi in Poi.objects.filter(pk__in=wanted):
        point = None
        if poi.latitude is not None and poi.longitude is not None:
            point = GeoPoint(poi.latitude, poi.longitude)
        pois[poi.id] = PoiInfo(id=poi.id, price=poi.price, discount_price=poi.discount_price, point=point)

    missing = sorted(wanted - pois.keys())
    if missing:
        raise NotFound(f"POI(s) not found: {', '.join(str(i) for i in missing)}")
    return pois


def get_guide(guide_id):
    try:
        guide = Guide.objects.get(pk=guide_id)
    except Guide.DoesNotExist:
        raise NotFound(f"Guide {guide_id} not found")
    return GuideInfo(id=guide.id, user_id=guide.user_id, price_per_day=guide.price_per_day)


def ensure_tags_exist(tag_ids):
    wanted = set(tag_ids)
    found = set(Tag.objects.filter(pk__in=wanted).values_list('pk', flat=True))
    missing = sorted(wanted - found)
    if missing:
        raise NotFound(f"Tag(s) not found: {', '.join(str(i) for i in missing)}")


def load_pricing_inputs(draft):
    room_type = None
    hotel = draft.hotel
    if draft.hotel_included and hotel and hotel.room_type_id:
        room_type = get_room_type(hotel.room_type_id)

    return PricingInputs(
        city=get_city_rates(draft.city_id),
        pois=get_pois(draft.poi_ids()),
        room_type=room_type,
        guide=get_guide(draft.guide_id) if draft.guide_id else None,
    )
