# ============================= BOOKINGS/FILTERS.PY =============================
import django_filters
from .models import Booking


class BookingFilter(django_filters.FilterSet):
    """Booking history and admin booking filters"""

    start_date = django_filters.IsoDateTimeFilter(
        field_name='start_time',
        lookup_expr='gte',
        label='Starts on or after'
    )
    end_date = django_filters.IsoDateTimeFilter(
        field_name='end_time',
        lookup_expr='lte',
        label='Ends on or before'
    )
    vehicle_number = django_filters.CharFilter(
        field_name='vehicle_number',
        lookup_expr='icontains',
        label='Vehicle Number'
    )

    class Meta:
        model = Booking
        fields = ['status', 'parking_lot', 'parking_slot', 'vehicle_type']
