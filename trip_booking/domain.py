"""
Typed records passed between the booking services.

Drafts come in from the API layer (or from code), results go back out.
Nothing in here touches the database.
"""
from dataclasses import dataclass, field
from datetime import date
from decimal import Decimal
from typing import Optional

from .geo import GeoPoint


@dataclass(frozen=True)
class HoldTag:
    """Identifies who owns a room reservation or guide hold."""
    source: str
    source_id: int


@dataclass
class DraftPoi:
    poi_id: int
    visit_order: int


@dataclass
class DraftDay:
    day_number: int
    pois: list[DraftPoi] = field(default_factory=list)


@dataclass
class DraftHotel:
    hotel_id: int
    room_type_id: Optional[int] = None
    rooms_requested: int = 1


@dataclass
class DraftLocation:
    latitude: float
    longitude: float
    address: str = ""

    @property
    def point(self):
        return GeoPoint(self.latitude, self.longitude)


@dataclass
class DraftAttachment:
    object_id: str
    role: str


@dataclass
class TripDraft:
    city_id: int
    start_date: date
    end_date: date
    people: int
    name: str = ""
    with_meals: bool = False
    with_transport: bool = False
    hotel_included: bool = False
    days: list[DraftDay] = field(default_factory=list)
    hotels: list[DraftHotel] = field(default_factory=list)
    guide_id: Optional[int] = None
    meet_point: Optional[DraftLocation] = None
    drop_point: Optional[DraftLocation] = None
    tag_ids: list[int] = field(default_factory=list)
    attachments: list[DraftAttachment] = field(default_factory=list)

    @property
    def hotel(self):
        return self.hotels[0] if self.hotels else None

    def poi_ids(self):
        return [p.poi_id for d in self.days for p in d.pois]


@dataclass
class SeatPolicy:
    min_people: int
    max_people: int
    min_seats_per_user: int
    max_seats_per_user: int


@dataclass
class PriceBreakdown:
    poi: Decimal
    lodging: Decimal
    meals: Decimal
    transport: Decimal
    guide: Decimal


@dataclass
class PriceQuote:
    total: Decimal
    per_person: Decimal
    per_person_poi: Decimal
    per_person_meals: Decimal
    per_person_transport: Decimal
    nights: int
    distance_km: float
    rooms_used: int
    breakdown: PriceBreakdown
    warnings: list[str] = field(default_factory=list)


@dataclass
class AvailabilityResult:
    available: bool
    message: Optional[str] = None

    @classmethod
    def ok(cls):
        return cls(True)

    @classmethod
    def rejected(cls, message):
        return cls(False, message)


@dataclass
class BalanceChange:
    wallet_id: int
    amount: Decimal  # signed
    balance_before: Decimal
    balance_after: Decimal


@dataclass
class ChatProvisioning:
    chat_room_id: int
    inserted_members: int
    missing_user_ids: list[int] = field(default_factory=list)


@dataclass
class BookingResult:
    booking_id: int
    order_id: int
    chat_room_id: int
    total_amount: Decimal
    seats: int
    chat_members_added: int = 0
    missing_chat_user_ids: list[int] = field(default_factory=list)


@dataclass
class CancellationResult:
    booking_id: int
    order_id: int
    refunded_amount: Decimal
    refund_percentage: Decimal


@dataclass
class CreatedTrip:
    trip_id: int
    price: PriceQuote
    booking: Optional[BookingResult] = None


@dataclass
class RoomBookingResult:
    reservation_id: int
    order_id: int
    total_amount: Decimal
    nights: int


@dataclass
class OrderCancellation:
    order_id: int
    refunded_amount: Decimal
    cancellations: list[CancellationResult] = field(default_factory=list)
