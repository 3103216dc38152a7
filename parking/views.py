# ============================= PARKING VIEWS =============================
import logging
from rest_framework import viewsets, status, permissions, filters
from rest_framework.decorators import action
from rest_framework.response import Response
from rest_framework.exceptions import ValidationError
from django.db import transaction, IntegrityError
from django.db.models import ProtectedError
from django_filters.rest_framework import DjangoFilterBackend

from .models import ParkingLot, ParkingSlot
from .serializers import (
    ParkingLotListSerializer,
    ParkingLotDetailSerializer,
    ParkingLotCreateUpdateSerializer,
    ParkingSlotSerializer,
    AvailabilityQuerySerializer,
    BulkSlotSerializer,
    NearbyQuerySerializer,
)
from .filters import ParkingLotFilter, ParkingSlotFilter
from .services import AvailabilityResolver, SlotProvisioner, LotStatistics
from utils.distance_calculator import DistanceCalculator
from utils.permissions import IsStaffOrReadOnly

logger = logging.getLogger(__name__)


class ParkingLotViewSet(viewsets.ModelViewSet):
    """Parking lot listing, search, availability and management"""

    filter_backends = [
        DjangoFilterBackend,  # For custom filters
        filters.OrderingFilter  # For sorting
    ]
    filterset_class = ParkingLotFilter
    ordering_fields = ['name', 'hourly_rate', 'available_slots', 'created_at']
    ordering = ['name']

    def get_queryset(self):
        queryset = ParkingLot.objects.all()
        # Public listing only shows lots that take bookings
        if not self.request.user.is_staff and self.action in ['list', 'nearby']:
            queryset = queryset.filter(status='active')
        if self.action == 'retrieve':
            queryset = queryset.prefetch_related('slots')
        return queryset

    def get_serializer_class(self):
        if self.action in ['list', 'nearby']:
            return ParkingLotListSerializer
        elif self.action in ['create', 'update', 'partial_update']:
            return ParkingLotCreateUpdateSerializer
        return ParkingLotDetailSerializer

    def get_permissions(self):
        if self.action in ['list', 'retrieve', 'nearby', 'available_slots', 'slots']:
            permission_classes = [permissions.AllowAny]
        elif self.action in ['dashboard', 'stats', 'bulk_create_slots', 'recount']:
            permission_classes = [permissions.IsAdminUser]
        else:
            permission_classes = [IsStaffOrReadOnly]
        return [permission() for permission in permission_classes]

    def perform_create(self, serializer):
        lot = serializer.save()
        logger.info(f"Parking lot {lot.id} created with {lot.total_slots} slots")

    def perform_destroy(self, instance):
        try:
            instance.delete()
        except ProtectedError:
            raise ValidationError('Parking lot has bookings; set its status to inactive instead')

    @action(detail=True, methods=['get'])
    def available_slots(self, request, pk=None):
        """Slots of a vehicle type that are free for a time window

        Query params: vehicle_type, start_time, end_time (ISO 8601)

        Example: /api/v1/parking-lots/1/available_slots/?vehicle_type=four_wheeler&start_time=2025-10-27T10:00:00Z&end_time=2025-10-27T12:00:00Z
        """
        lot = self.get_object()
        query = AvailabilityQuerySerializer(data=request.query_params)
        query.is_valid(raise_exception=True)

        result = AvailabilityResolver.search(
            lot,
            query.validated_data['vehicle_type'],
            query.validated_data['start_time'],
            query.validated_data['end_time'],
        )
        return Response({
            'parking_lot': lot.id,
            'degraded': result.degraded,
            'count': len(result.slots),
            'slots': ParkingSlotSerializer(result.slots, many=True).data,
        })

    @action(detail=True, methods=['get'])
    def slots(self, request, pk=None):
        """All slots of a lot, provisioning them on first access"""
        lot = self.get_object()
        SlotProvisioner.ensure_slots(lot)
        slots = lot.slots.order_by('slot_number')
        slot_type = request.query_params.get('slot_type')
        if slot_type:
            slots = slots.filter(slot_type=slot_type)
        return Response(ParkingSlotSerializer(slots, many=True).data)

    @action(detail=True, methods=['post'])
    def bulk_create_slots(self, request, pk=None):
        """Create a run of slots

        Body: { "prefix": "EV-", "start_number": 1, "count": 5, "slot_type": "ev_charging", "hourly_rate": 150 }
        """
        lot = self.get_object()
        serializer = BulkSlotSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)

        created = SlotProvisioner.bulk_create_slots(lot, **serializer.validated_data)
        return Response(ParkingSlotSerializer(created, many=True).data, status=status.HTTP_201_CREATED)

    @action(detail=True, methods=['post'])
    def recount(self, request, pk=None):
        """Rebuild available_slots from live slot statuses"""
        lot = self.get_object()
        previous = lot.available_slots
        current = lot.recount_available_slots()
        if previous != current:
            logger.warning(f"Lot {lot.id} available_slots corrected from {previous} to {current}")
        return Response({'previous': previous, 'available_slots': current})

    @action(detail=True, methods=['get'])
    def stats(self, request, pk=None):
        """Booking and occupancy statistics for one lot"""
        lot = self.get_object()
        return Response(LotStatistics.for_lot(lot))

    @action(detail=False, methods=['get'])
    def dashboard(self, request):
        """Admin dashboard figures across all lots"""
        return Response(LotStatistics.dashboard())

    @action(detail=False, methods=['get'])
    def nearby(self, request):
        """Search parking lots near a location
        Query params: lat, lng, radius (in km)

        Example: /api/v1/parking-lots/nearby/?lat=28.6139&lng=77.2090&radius=5
        """
        query = NearbyQuerySerializer(data=request.query_params)
        if not query.is_valid():
            return Response(
                {'error': 'Invalid latitude, longitude, or radius'},
                status=status.HTTP_400_BAD_REQUEST
            )

        nearby = DistanceCalculator.lots_within_radius(
            self.filter_queryset(self.get_queryset()),
            query.validated_data['lat'],
            query.validated_data['lng'],
            query.validated_data['radius'],
        )
        lots = [lot for lot, _ in nearby]
        distances = {lot.id: distance for lot, distance in nearby}
        serializer = self.get_serializer(lots, many=True, context={'request': request, 'distances': distances})
        return Response(serializer.data)


class ParkingSlotViewSet(viewsets.ModelViewSet):
    """Slot management for staff"""
    serializer_class = ParkingSlotSerializer
    permission_classes = [permissions.IsAdminUser]
    filter_backends = [DjangoFilterBackend, filters.OrderingFilter]
    filterset_class = ParkingSlotFilter
    ordering_fields = ['slot_number', 'status']
    ordering = ['slot_number']

    def get_queryset(self):
        return ParkingSlot.objects.select_related('parking_lot')

    def perform_create(self, serializer):
        lot = serializer.validated_data['parking_lot']
        SlotProvisioner.ensure_slots(lot)
        try:
            with transaction.atomic():
                slot = serializer.save()
                lot.add_capacity(1, available=slot.status == 'available')
        except IntegrityError:
            raise ValidationError({'slot_number': 'Slot number already exists in this lot'})
        logger.info(f"Slot {slot.id} added to lot {lot.id} by staff")

    def perform_update(self, serializer):
        previous_status = serializer.instance.status
        slot = serializer.save()
        if previous_status == slot.status:
            return

        # Keep the lot's cached counter in step with manual status edits
        if previous_status == 'available':
            slot.parking_lot.decrement_available()
        elif slot.status == 'available':
            slot.parking_lot.increment_available()
        logger.info(f"Slot {slot.id} status changed from {previous_status} to {slot.status} by staff")

    def perform_destroy(self, instance):
        try:
            instance.delete()
        except ProtectedError:
            raise ValidationError('Slot has bookings; set its status to maintenance instead')
        instance.parking_lot.remove_capacity(was_available=instance.status == 'available')
