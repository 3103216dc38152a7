# ==================== PARKING/SERVICES.PY ====================
import math
import logging
from collections import namedtuple
from decimal import Decimal

from django.conf import settings
from django.db import transaction, DatabaseError, IntegrityError
from django.db.models import Count, Q, Sum
from django.utils import timezone
from rest_framework.exceptions import ValidationError

from .models import ParkingLot, ParkingSlot
from bookings.models import Booking
from utils.exceptions import ParkingLotNotFound

logger = logging.getLogger(__name__)

SLOT_TYPES = [choice[0] for choice in ParkingSlot.SLOT_TYPE_CHOICES]

AvailabilityResult = namedtuple('AvailabilityResult', ['slots', 'degraded'])


def get_lot(lot_or_id):
    if isinstance(lot_or_id, ParkingLot):
        return lot_or_id
    try:
        return ParkingLot.objects.get(pk=lot_or_id)
    except (ParkingLot.DoesNotExist, ValueError):
        raise ParkingLotNotFound()


class SlotProvisioner:
    """Builds the initial slot inventory of a lot from its capacity"""

    @staticmethod
    def slot_plan(total_slots, hourly_rate):
        """Return (slot_number, slot_type, hourly_rate) rows for a fresh lot"""
        ratio = Decimal(str(getattr(settings, 'PARKING_TWO_WHEELER_RATIO', 0.4)))
        rate_factor = Decimal(str(getattr(settings, 'PARKING_TWO_WHEELER_RATE_FACTOR', 0.6)))
        hourly_rate = Decimal(hourly_rate)

        two_wheeler_count = min(math.ceil(total_slots * ratio), total_slots)
        four_wheeler_count = total_slots - two_wheeler_count
        two_wheeler_rate = (hourly_rate * rate_factor).quantize(Decimal('0.01'))

        plan = []
        for i in range(1, two_wheeler_count + 1):
            plan.append((f'TW-{i:02d}', 'two_wheeler', two_wheeler_rate))
        for i in range(1, four_wheeler_count + 1):
            plan.append((f'FW-{i:02d}', 'four_wheeler', hourly_rate))
        return plan

    @staticmethod
    def ensure_slots(lot):
        """Provision slots for a lot that has none. Safe to call repeatedly.

        Returns the list of created slots (empty when the lot was already
        provisioned, including when a concurrent caller won the race).
        """
        if lot.slots.exists():
            return []

        slots = [
            ParkingSlot(
                parking_lot=lot,
                slot_number=slot_number,
                slot_type=slot_type,
                hourly_rate=rate,
                status='available',
                floor_level=1,
            )
            for slot_number, slot_type, rate in SlotProvisioner.slot_plan(lot.total_slots, lot.hourly_rate)
        ]

        try:
            with transaction.atomic():
                created = ParkingSlot.objects.bulk_create(slots)
        except IntegrityError:
            # unique (lot, slot_number) rejected a concurrent provisioning
            logger.warning(f"Slots for lot {lot.id} were provisioned concurrently; keeping existing inventory")
            return []

        logger.info(f"Provisioned {len(created)} slots for lot {lot.id}")
        return created

    @staticmethod
    def bulk_create_slots(lot, prefix, start_number, count, slot_type, hourly_rate=None):
        """Admin bulk creation: slot numbers are prefix + sequential number"""
        if slot_type not in SLOT_TYPES:
            raise ValidationError({'slot_type': f'Unknown slot type: {slot_type}'})
        if count < 1:
            raise ValidationError({'count': 'Count must be at least 1'})

        # Base inventory first, so total_slots keeps matching the slot rows
        SlotProvisioner.ensure_slots(lot)

        numbers = [f'{prefix}{start_number + i}' for i in range(count)]
        taken = list(
            lot.slots.filter(slot_number__in=numbers).values_list('slot_number', flat=True)
        )
        if taken:
            raise ValidationError({'slot_number': f"Slot numbers already exist: {', '.join(sorted(taken))}"})

        try:
            with transaction.atomic():
                created = ParkingSlot.objects.bulk_create([
                    ParkingSlot(
                        parking_lot=lot,
                        slot_number=number,
                        slot_type=slot_type,
                        hourly_rate=hourly_rate,
                        status='available',
                    )
                    for number in numbers
                ])
                lot.add_capacity(len(created))
        except IntegrityError:
            raise ValidationError({'slot_number': 'Slot numbers were created concurrently, please retry'})

        logger.info(f"Bulk created {len(created)} {slot_type} slots for lot {lot.id}")
        return created


class AvailabilityResolver:
    """Finds slots that are free for a requested time window"""

    @staticmethod
    def validate_query(vehicle_type, start_time, end_time):
        if vehicle_type not in SLOT_TYPES:
            raise ValidationError({'vehicle_type': f'Unknown vehicle type: {vehicle_type}'})
        if start_time is None or end_time is None:
            raise ValidationError('start_time and end_time are required')
        if end_time <= start_time:
            raise ValidationError('End time must be after start time')

    @staticmethod
    def search(lot_id, vehicle_type, start_time, end_time):
        """Return an AvailabilityResult for the window [start_time, end_time).

        If the booking conflict lookup fails the unfiltered candidates are
        returned with degraded=True.
        """
        AvailabilityResolver.validate_query(vehicle_type, start_time, end_time)
        lot = get_lot(lot_id)

        if lot.status != 'active':
            logger.info(f"Availability requested for inactive lot {lot.id}")
            return AvailabilityResult(slots=[], degraded=False)

        SlotProvisioner.ensure_slots(lot)

        candidates = list(
            ParkingSlot.objects.filter(
                parking_lot=lot,
                slot_type=vehicle_type,
                status='available',
            ).order_by('slot_number')
        )

        try:
            conflicted = set(
                Booking.objects.filter(
                    parking_lot=lot,
                    status__in=Booking.HOLDING_STATUSES,
                    start_time__lt=end_time,
                    end_time__gt=start_time,
                ).values_list('parking_slot_id', flat=True)
            )
        except DatabaseError as e:
            logger.warning(
                f"availability degraded: conflict lookup failed for lot {lot.id} "
                f"({start_time} - {end_time}): {str(e)}"
            )
            return AvailabilityResult(slots=candidates, degraded=True)

        slots = [slot for slot in candidates if slot.id not in conflicted]
        return AvailabilityResult(slots=slots, degraded=False)

    @staticmethod
    def find_available(lot_id, vehicle_type, start_time, end_time):
        return AvailabilityResolver.search(lot_id, vehicle_type, start_time, end_time).slots


class LotStatistics:

    @staticmethod
    def for_lot(lot):
        """Booking and occupancy figures for a single lot"""
        bookings = lot.bookings.all()
        counts = bookings.aggregate(
            total=Count('id'),
            completed=Count('id', filter=Q(status='completed')),
            active=Count('id', filter=Q(status='active')),
            confirmed=Count('id', filter=Q(status='confirmed')),
            cancelled=Count('id', filter=Q(status='cancelled')),
        )
        revenue = bookings.exclude(status='cancelled').aggregate(total=Sum('total_amount'))['total']

        return {
            'total_bookings': counts['total'],
            'completed_bookings': counts['completed'],
            'active_bookings': counts['active'],
            'confirmed_bookings': counts['confirmed'],
            'cancelled_bookings': counts['cancelled'],
            'total_revenue': revenue or Decimal('0'),
            'available_slots': lot.available_slots,
            'total_slots': lot.total_slots,
            'occupancy_rate': round(
                (lot.total_slots - lot.available_slots) / lot.total_slots * 100, 2
            ) if lot.total_slots > 0 else 0,
        }

    @staticmethod
    def dashboard():
        """System-wide figures for the admin dashboard"""
        slot_counts = ParkingSlot.objects.aggregate(
            total=Count('id'),
            available=Count('id', filter=Q(status='available')),
            occupied=Count('id', filter=Q(status='occupied')),
        )
        today = timezone.localdate()
        today_revenue = Booking.objects.filter(
            created_at__date=today,
        ).exclude(status='cancelled').aggregate(total=Sum('total_amount'))['total']

        total_slots = slot_counts['total']
        return {
            'total_lots': ParkingLot.objects.filter(status='active').count(),
            'total_slots': total_slots,
            'available_slots': slot_counts['available'],
            'occupied_slots': slot_counts['occupied'],
            'active_bookings': Booking.objects.filter(status__in=Booking.HOLDING_STATUSES).count(),
            'today_revenue': today_revenue or Decimal('0'),
            'occupancy_rate': round(slot_counts['occupied'] / total_slots * 100) if total_slots else 0,
        }
