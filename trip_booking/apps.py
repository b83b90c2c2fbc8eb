from django.apps import AppConfig


class TripBookingConfig(AppConfig):
    default_auto_field = 'django.db.models.BigAutoField'
    name = 'trip_booking'
    verbose_name = 'Trip booking'
