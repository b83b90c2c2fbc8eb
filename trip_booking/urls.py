from django.urls import path
from rest_framework.routers import DefaultRouter

from trip_booking.views import (
    OrderViewSet,
    RoomReservationViewSet,
    TripBookingViewSet,
    TripViewSet,
    guide_availability,
    room_availability,
)

router = DefaultRouter()
router.register(r'trips', TripViewSet, basename='trip')
router.register(r'bookings', TripBookingViewSet, basename='booking')
router.register(r'room-reservations', RoomReservationViewSet, basename='room-reservation')
router.register(r'orders', OrderViewSet, basename='order')

urlpatterns = [
    path('availability/rooms/', room_availability, name='room-availability'),
    path('availability/guides/', guide_availability, name='guide-availability'),
] + router.urls
