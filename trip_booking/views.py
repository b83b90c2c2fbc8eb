from django.db.models import Q, Sum
from django.db.models.functions import Coalesce
from django.http import JsonResponse
from rest_framework import mixins, status, viewsets
from rest_framework.decorators import action, api_view
from rest_framework.permissions import IsAdminUser
from rest_framework.response import Response

from . import availability, booking, drafts, orders, pricing, room_booking
from .exceptions import PermissionDenied
from .models import Order, ReservationSource, RoomReservation, Trip, TripBooking
from .serializers import (
    BookingResultSerializer,
    BookTripInput,
    CancellationResultSerializer,
    GuideAvailabilityQuery,
    OrderSerializer,
    PriceQuoteSerializer,
    RoomAvailabilityQuery,
    RoomReservationInput,
    RoomReservationSerializer,
    TripBookingSerializer,
    TripDraftInput,
    TripFromDraftInput,
    TripSerializer,
    TripUpdateInput,
)


def welcome(request):
    return JsonResponse({"message": "Welcome to the Trip Booking API"})


def health_check(request):
    return JsonResponse({"status": "ok"})


def availability_payload(result):
    payload = {'available': result.available}
    if result.message:
        payload['message'] = result.message
    return payload


@api_view(['GET'])
def room_availability(request):
    """Check a room type for every night of a date range"""
    query = RoomAvailabilityQuery(data=request.query_params)
    query.is_valid(raise_exception=True)
    data = query.validated_data
    result = availability.check_room_availability(
        data['hotel_id'], data['room_type_id'], data['start_date'], data['end_date'], data['rooms'],
    )
    return Response(availability_payload(result))


@api_view(['GET'])
def guide_availability(request):
    query = GuideAvailabilityQuery(data=request.query_params)
    query.is_valid(raise_exception=True)
    data = query.validated_data
    result = availability.check_guide_availability(data['guide_id'], data['start_date'], data['end_date'])
    return Response(availability_payload(result))


class TripViewSet(mixins.ListModelMixin, mixins.RetrieveModelMixin, viewsets.GenericViewSet):
    serializer_class = TripSerializer

    def get_queryset(self):
        return Trip.objects.annotate(
            seats_booked=Coalesce(Sum('bookings__seats', filter=Q(bookings__cancelled_at__isnull=True)), 0),
        ).order_by('start_date', 'id')

    def get_permissions(self):
        if self.action in ('update', 'destroy'):
            return [IsAdminUser()]
        return super().get_permissions()

    def list(self, request, *args, **kwargs):
        """List trips, optionally filtered by city and type"""
        queryset = self.get_queryset()
        city_id = request.query_params.get('city_id')
        trip_type = request.query_params.get('trip_type')
        if city_id:
            queryset = queryset.filter(city_id=city_id)
        if trip_type:
            queryset = queryset.filter(trip_type=trip_type)
        serializer = self.get_serializer(queryset, many=True)
        return Response(serializer.data)

    def update(self, request, pk=None):
        """Re-price and re-save a trip from a full draft (staff only)"""
        serializer = TripUpdateInput(data=request.data)
        serializer.is_valid(raise_exception=True)
        quote = drafts.update_trip(int(pk), serializer.to_draft(), serializer.to_seat_policy())
        trip = self.get_queryset().get(pk=pk)
        return Response({
            'trip': TripSerializer(trip).data,
            'price': PriceQuoteSerializer(quote).data,
        })

    def destroy(self, request, pk=None):
        drafts.delete_trip(int(pk))
        return Response(status=status.HTTP_204_NO_CONTENT)

    @action(detail=False, methods=['post'])
    def quote(self, request):
        """Price a draft without persisting anything"""
        serializer = TripDraftInput(data=request.data)
        serializer.is_valid(raise_exception=True)
        result = pricing.quote(serializer.to_draft())
        return Response(PriceQuoteSerializer(result).data)

    @action(detail=False, methods=['post'], url_path='from-draft')
    def from_draft(self, request):
        """Create a trip from a draft, optionally booking it right away"""
        serializer = TripFromDraftInput(data=request.data)
        serializer.is_valid(raise_exception=True)
        trip_type = serializer.validated_data['trip_type']
        if trip_type == Trip.Type.PREDEFINED and not request.user.is_staff:
            raise PermissionDenied("Only staff can publish predefined trips")

        created = drafts.create_trip_from_draft(
            request.user.id,
            serializer.to_draft(),
            trip_type,
            book_now=serializer.validated_data['book_now'],
            seat_policy=serializer.to_seat_policy(),
        )
        payload = {
            'trip_id': created.trip_id,
            'price': PriceQuoteSerializer(created.price).data,
        }
        if created.booking is not None:
            payload.update(BookingResultSerializer(created.booking).data)
        return Response(payload, status=status.HTTP_201_CREATED)

    @action(detail=True, methods=['get'], url_path='seat-availability')
    def seat_availability(self, request, pk=None):
        serializer = BookTripInput(data=request.query_params)
        serializer.is_valid(raise_exception=True)
        result = availability.check_seat_availability(int(pk), serializer.validated_data['seats'])
        return Response(availability_payload(result))

    @action(detail=True, methods=['post'])
    def book(self, request, pk=None):
        serializer = BookTripInput(data=request.data)
        serializer.is_valid(raise_exception=True)
        result = booking.book_trip(request.user.id, int(pk), serializer.validated_data['seats'])
        return Response(BookingResultSerializer(result).data, status=status.HTTP_201_CREATED)


class TripBookingViewSet(viewsets.ReadOnlyModelViewSet):
    serializer_class = TripBookingSerializer

    def get_queryset(self):
        """Current user's bookings, newest first"""
        queryset = TripBooking.objects.filter(user=self.request.user).select_related('trip').order_by('-created_at')
        if self.request.query_params.get('active') in ('1', 'true'):
            queryset = queryset.filter(cancelled_at__isnull=True)
        return queryset

    @action(detail=True, methods=['post'])
    def cancel(self, request, pk=None):
        result = booking.cancel_trip_booking(request.user.id, int(pk))
        return Response(CancellationResultSerializer(result).data)


class RoomReservationViewSet(mixins.CreateModelMixin, viewsets.ReadOnlyModelViewSet):
    serializer_class = RoomReservationSerializer

    def get_queryset(self):
        return RoomReservation.objects.filter(
            user=self.request.user,
            source=ReservationSource.HOTEL_ONLY,
        ).order_by('-created_at')

    def create(self, request, *args, **kwargs):
        serializer = RoomReservationInput(data=request.data)
        serializer.is_valid(raise_exception=True)
        data = serializer.validated_data
        result = room_booking.book_room(
            request.user.id, data['hotel_id'], data['room_type_id'], data['check_in'], data['check_out'], data['rooms'],
        )
        reservation = RoomReservation.objects.get(pk=result.reservation_id)
        payload = RoomReservationSerializer(reservation).data
        payload['order_id'] = result.order_id
        return Response(payload, status=status.HTTP_201_CREATED)

    @action(detail=True, methods=['post'])
    def cancel(self, request, pk=None):
        result = room_booking.cancel_room_reservation(request.user.id, int(pk))
        return Response(CancellationResultSerializer(result).data)


class OrderViewSet(viewsets.ReadOnlyModelViewSet):
    serializer_class = OrderSerializer

    def get_queryset(self):
        return Order.objects.filter(user=self.request.user).prefetch_related('items').order_by('-created_at')

    @action(detail=True, methods=['post'])
    def cancel(self, request, pk=None):
        """Cancel every active booking and reservation on an order"""
        result = orders.cancel_order(request.user, int(pk))
        return Response({
            'order_id': result.order_id,
            'refunded_amount': str(result.refunded_amount),
            'cancellations': CancellationResultSerializer(result.cancellations, many=True).data,
        })
