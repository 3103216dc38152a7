# ============================= PARKING/FILTERS.PY =============================
import django_filters
from django.db.models import Q
from .models import ParkingLot, ParkingSlot


class ParkingLotFilter(django_filters.FilterSet):
    """Lot search used by the listing screen"""

    city = django_filters.CharFilter(
        field_name='city',
        lookup_expr='icontains',
        label='City'
    )
    search = django_filters.CharFilter(
        method='filter_search',
        label='Name or address'
    )
    rate_min = django_filters.NumberFilter(
        field_name='hourly_rate',
        lookup_expr='gte',
        label='Minimum Hourly Rate'
    )
    rate_max = django_filters.NumberFilter(
        field_name='hourly_rate',
        lookup_expr='lte',
        label='Maximum Hourly Rate'
    )
    has_availability = django_filters.BooleanFilter(
        method='filter_has_availability',
        label='Has free slots'
    )

    class Meta:
        model = ParkingLot
        fields = ['city', 'state', 'status']

    def filter_search(self, queryset, name, value):
        return queryset.filter(Q(name__icontains=value) | Q(address__icontains=value))

    def filter_has_availability(self, queryset, name, value):
        if value:
            return queryset.filter(available_slots__gt=0)
        return queryset.filter(available_slots=0)


class ParkingSlotFilter(django_filters.FilterSet):

    class Meta:
        model = ParkingSlot
        fields = {
            'parking_lot': ['exact'],
            'slot_type': ['exact'],
            'status': ['exact'],
            'floor_level': ['exact'],
        }
