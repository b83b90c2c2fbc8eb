from rest_framework import serializers

from .domain import (
    DraftAttachment,
    DraftDay,
    DraftHotel,
    DraftLocation,
    DraftPoi,
    SeatPolicy,
    TripDraft,
)
from .models import (
    Order,
    OrderItem,
    RoomReservation,
    TripAttachment,
    TripBooking,
    TripDay,
    TripHotel,
    TripPoi,
    Trip,
)


class DraftPoiInput(serializers.Serializer):
    poi_id = serializers.IntegerField()
    visit_order = serializers.IntegerField(min_value=0)


class DraftDayInput(serializers.Serializer):
    day_number = serializers.IntegerField(min_value=1)
    pois = DraftPoiInput(many=True, required=False, default=list)


class DraftHotelInput(serializers.Serializer):
    hotel_id = serializers.IntegerField()
    room_type_id = serializers.IntegerField(required=False, allow_null=True, default=None)
    rooms_requested = serializers.IntegerField(min_value=1, default=1)


class LocationInput(serializers.Serializer):
    latitude = serializers.FloatField(min_value=-90, max_value=90)
    longitude = serializers.FloatField(min_value=-180, max_value=180)
    address = serializers.CharField(allow_blank=True, required=False, default="")


class AttachmentInput(serializers.Serializer):
    object_id = serializers.CharField(max_length=255)
    role = serializers.ChoiceField(choices=TripAttachment.Role.choices)


class SeatPolicyInput(serializers.Serializer):
    min_people = serializers.IntegerField(min_value=1)
    max_people = serializers.IntegerField(min_value=1)
    min_seats_per_user = serializers.IntegerField(min_value=1)
    max_seats_per_user = serializers.IntegerField(min_value=1)

    def validate(self, data):
        if data['min_people'] > data['max_people']:
            raise serializers.ValidationError("min_people cannot exceed max_people")
        if data['min_seats_per_user'] > data['max_seats_per_user']:
            raise serializers.ValidationError("min_seats_per_user cannot exceed max_seats_per_user")
        return data


class TripDraftInput(serializers.Serializer):
    name = serializers.CharField(max_length=200, required=False, allow_blank=True, default="")
    city_id = serializers.IntegerField()
    start_date = serializers.DateField()
    end_date = serializers.DateField()
    people = serializers.IntegerField(min_value=1)
    with_meals = serializers.BooleanField(default=False)
    with_transport = serializers.BooleanField(default=False)
    hotel_included = serializers.BooleanField(default=False)
    days = DraftDayInput(many=True, required=False, default=list)
    hotels = DraftHotelInput(many=True, required=False, default=list)
    guide_id = serializers.IntegerField(required=False, allow_null=True, default=None)
    meet_point = LocationInput(required=False, allow_null=True, default=None)
    drop_point = LocationInput(required=False, allow_null=True, default=None)
    tag_ids = serializers.ListField(child=serializers.IntegerField(), required=False, default=list)
    attachments = AttachmentInput(many=True, required=False, default=list)

    def validate(self, data):
        if data['end_date'] <= data['start_date']:
            raise serializers.ValidationError("end_date must be after start_date")
        return data

    def to_draft(self):
        data = self.validated_data
        meet = data.get('meet_point')
        drop = data.get('drop_point')
        return TripDraft(
            name=data.get('name', ""),
            city_id=data['city_id'],
            start_date=data['start_date'],
            end_date=data['end_date'],
            people=data['people'],
            with_meals=data['with_meals'],
            with_transport=data['with_transport'],
            hotel_included=data['hotel_included'],
            days=[
                DraftDay(day_number=d['day_number'], pois=[DraftPoi(**p) for p in d.get('pois', [])])
                for d in data.get('days', [])
            ],
            hotels=[DraftHotel(**h) for h in data.get('hotels', [])],
            guide_id=data.get('guide_id'),
            meet_point=DraftLocation(**meet) if meet else None,
            drop_point=DraftLocation(**drop) if drop else None,
            tag_ids=list(data.get('tag_ids', [])),
            attachments=[DraftAttachment(**a) for a in data.get('attachments', [])],
        )


class TripFromDraftInput(TripDraftInput):
    trip_type = serializers.ChoiceField(choices=Trip.Type.choices)
    book_now = serializers.BooleanField(default=False)
    seat_policy = SeatPolicyInput(required=False, allow_null=True, default=None)

    def to_seat_policy(self):
        policy = self.validated_data.get('seat_policy')
        return SeatPolicy(**policy) if policy else None


class TripUpdateInput(TripDraftInput):
    seat_policy = SeatPolicyInput(required=False, allow_null=True, default=None)

    def to_seat_policy(self):
        policy = self.validated_data.get('seat_policy')
        return SeatPolicy(**policy) if policy else None


class BookTripInput(serializers.Serializer):
    seats = serializers.IntegerField(min_value=1)


class RoomAvailabilityQuery(serializers.Serializer):
    hotel_id = serializers.IntegerField()
    room_type_id = serializers.IntegerField()
    start_date = serializers.DateField()
    end_date = serializers.DateField()
    rooms = serializers.IntegerField(min_value=1, default=1)


class GuideAvailabilityQuery(serializers.Serializer):
    guide_id = serializers.IntegerField()
    start_date = serializers.DateField()
    end_date = serializers.DateField()


class RoomReservationInput(serializers.Serializer):
    hotel_id = serializers.IntegerField()
    room_type_id = serializers.IntegerField()
    check_in = serializers.DateField()
    check_out = serializers.DateField()
    rooms = serializers.IntegerField(min_value=1, default=1)

    def validate(self, data):
        if data['check_out'] <= data['check_in']:
            raise serializers.ValidationError("check_out must be after check_in")
        return data


# Output

class PriceBreakdownSerializer(serializers.Serializer):
    poi = serializers.DecimalField(max_digits=12, decimal_places=2)
    lodging = serializers.DecimalField(max_digits=12, decimal_places=2)
    meals = serializers.DecimalField(max_digits=12, decimal_places=2)
    transport = serializers.DecimalField(max_digits=12, decimal_places=2)
    guide = serializers.DecimalField(max_digits=12, decimal_places=2)


class PriceQuoteSerializer(serializers.Serializer):
    total = serializers.DecimalField(max_digits=12, decimal_places=2)
    per_person = serializers.DecimalField(max_digits=12, decimal_places=2)
    per_person_poi = serializers.DecimalField(max_digits=12, decimal_places=2)
    per_person_meals = serializers.DecimalField(max_digits=12, decimal_places=2)
    per_person_transport = serializers.DecimalField(max_digits=12, decimal_places=2)
    nights = serializers.IntegerField()
    distance_km = serializers.FloatField()
    rooms_used = serializers.IntegerField()
    breakdown = PriceBreakdownSerializer()
    warnings = serializers.ListField(child=serializers.CharField())


class BookingResultSerializer(serializers.Serializer):
    booking_id = serializers.IntegerField()
    order_id = serializers.IntegerField()
    chat_room_id = serializers.IntegerField()
    total_amount = serializers.DecimalField(max_digits=12, decimal_places=2)
    seats = serializers.IntegerField()
    missing_chat_user_ids = serializers.ListField(child=serializers.IntegerField())


class CancellationResultSerializer(serializers.Serializer):
    booking_id = serializers.IntegerField()
    order_id = serializers.IntegerField()
    refunded_amount = serializers.DecimalField(max_digits=12, decimal_places=2)
    refund_percentage = serializers.DecimalField(max_digits=4, decimal_places=2)


class TripPoiSerializer(serializers.ModelSerializer):
    class Meta:
        model = TripPoi
        fields = ['poi', 'visit_order']


class TripDaySerializer(serializers.ModelSerializer):
    pois = TripPoiSerializer(many=True, read_only=True)

    class Meta:
        model = TripDay
        fields = ['day_number', 'pois']


class TripHotelSerializer(serializers.ModelSerializer):
    class Meta:
        model = TripHotel
        fields = ['hotel', 'room_type', 'rooms_needed']


class TripAttachmentSerializer(serializers.ModelSerializer):
    class Meta:
        model = TripAttachment
        fields = ['object_id', 'role', 'sort_order']


class TripSerializer(serializers.ModelSerializer):
    days = TripDaySerializer(many=True, read_only=True)
    hotels = TripHotelSerializer(many=True, read_only=True)
    attachments = TripAttachmentSerializer(many=True, read_only=True)

    class Meta:
        model = Trip
        fields = '__all__'

    def to_representation(self, instance):
        data = super().to_representation(instance)
        # Annotated by the viewset's queryset
        booked = getattr(instance, 'seats_booked', None)
        if booked is not None:
            data['seats_remaining'] = max(0, instance.max_people - booked)
        return data


class TripBookingSerializer(serializers.ModelSerializer):
    trip_name = serializers.CharField(source='trip.name', read_only=True)

    class Meta:
        model = TripBooking
        fields = ['id', 'trip', 'trip_name', 'seats', 'total_price', 'source', 'order', 'cancelled_at', 'created_at']


class RoomReservationSerializer(serializers.ModelSerializer):
    class Meta:
        model = RoomReservation
        fields = ['id', 'room_type', 'check_in', 'check_out', 'rooms_booked', 'source', 'source_id',
                  'total_price', 'cancelled_at', 'created_at']


class OrderItemSerializer(serializers.ModelSerializer):
    class Meta:
        model = OrderItem
        fields = ['item_type', 'item_id', 'quantity', 'unit_price', 'total_price', 'refund_amount']


class OrderSerializer(serializers.ModelSerializer):
    items = OrderItemSerializer(many=True, read_only=True)

    class Meta:
        model = Order
        fields = ['id', 'status', 'total_amount', 'currency', 'items', 'created_at']
