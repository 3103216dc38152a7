# ============================= BOOKINGS VIEWS =============================
import logging
from django.core.exceptions import ValidationError as DjangoValidationError
from rest_framework import viewsets, mixins, status, permissions, filters
from rest_framework.decorators import action
from rest_framework.response import Response
from django_filters.rest_framework import DjangoFilterBackend

from bookings.models import Booking
from bookings.filters import BookingFilter
from bookings.qr import validate_token
from bookings.services import BookingService
from bookings.serializers import (
    BookingCreateSerializer,
    BookingListSerializer,
    BookingDetailSerializer,
    BookingStatusUpdateSerializer,
    QRTokenSerializer,
)
from utils.permissions import IsBookingOwnerOrStaff

logger = logging.getLogger(__name__)


class BookingViewSet(mixins.CreateModelMixin,
                     mixins.ListModelMixin,
                     mixins.RetrieveModelMixin,
                     viewsets.GenericViewSet):
    """Booking creation, cancellation and QR entry/exit.

    Bookings are never deleted; they end as completed or cancelled.
    """

    filter_backends = [
        DjangoFilterBackend,  # For filtering
        filters.SearchFilter,  # For searching
        filters.OrderingFilter  # For ordering
    ]
    filterset_class = BookingFilter
    search_fields = ['parking_lot__name', 'parking_lot__address', 'vehicle_number', 'parking_slot__slot_number']
    ordering_fields = ['created_at', 'start_time', 'total_amount']
    ordering = ['-created_at']

    def get_serializer_class(self):
        if self.action == 'create':
            return BookingCreateSerializer
        elif self.action == 'list':
            return BookingListSerializer
        return BookingDetailSerializer

    def get_permissions(self):
        if self.action in ['update_status', 'validate_entry', 'validate_exit']:
            permission_classes = [permissions.IsAdminUser]
        else:
            permission_classes = [permissions.IsAuthenticated, IsBookingOwnerOrStaff]
        return [permission() for permission in permission_classes]

    def get_queryset(self):
        queryset = Booking.objects.select_related('parking_lot', 'parking_slot', 'user')
        # Staff see every booking, users see their own
        if self.request.user.is_staff:
            return queryset
        return queryset.filter(user=self.request.user)

    def create(self, request, *args, **kwargs):
        serializer = self.get_serializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        booking = serializer.save()
        return Response(BookingDetailSerializer(booking).data, status=status.HTTP_201_CREATED)

    @action(detail=True, methods=['post'])
    def cancel(self, request, pk=None):
        """Cancel a confirmed booking"""
        booking = self.get_object()
        owner = None if request.user.is_staff else request.user
        booking = BookingService.cancel(booking.pk, user=owner)
        return Response({
            'message': 'Booking cancelled successfully',
            'booking': BookingDetailSerializer(booking).data,
        })

    @action(detail=True, methods=['post'])
    def update_status(self, request, pk=None):
        """Update booking status (staff)

        Body: { "status": "confirmed|active|completed|cancelled" }
        """
        booking = self.get_object()
        serializer = BookingStatusUpdateSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)

        booking = BookingService.update_status(
            booking.pk,
            serializer.validated_data['status'],
            extra_fields=serializer.extra_fields(),
        )
        return Response(BookingDetailSerializer(booking).data)

    @action(detail=True, methods=['get'])
    def qr(self, request, pk=None):
        """Token to render as the booking's QR code"""
        booking = self.get_object()
        return Response({'booking_id': str(booking.id), 'qr_code': booking.qr_code})

    @action(detail=False, methods=['post'])
    def validate_entry(self, request):
        """Gate scan on entry

        Body: { "qr_code": "<token>" }
        """
        serializer = QRTokenSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)

        booking = BookingService.validate_entry(serializer.validated_data['qr_code'])
        return Response({
            'valid': True,
            'action': 'entry',
            'booking': BookingDetailSerializer(booking).data,
        })

    @action(detail=False, methods=['post'])
    def validate_exit(self, request):
        """Gate scan on exit

        Body: { "qr_code": "<token>" }
        """
        serializer = QRTokenSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)

        booking = BookingService.validate_exit(serializer.validated_data['qr_code'])
        return Response({
            'valid': True,
            'action': 'exit',
            'booking': BookingDetailSerializer(booking).data,
        })

    @action(detail=False, methods=['post'])
    def verify_qr(self, request):
        """Check a token's shape and age without changing the booking"""
        serializer = QRTokenSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)

        result = validate_token(serializer.validated_data['qr_code'])
        if result['valid']:
            try:
                booking = self.get_queryset().filter(pk=result['data']['bookingId']).first()
            except (DjangoValidationError, ValueError):
                booking = None
            if booking is None or booking.qr_code != serializer.validated_data['qr_code']:
                return Response({'valid': False, 'error': 'Invalid QR code', 'code': 'invalid_token'})
            result['booking'] = BookingListSerializer(booking).data
        return Response(result)
