# ==================== BOOKINGS/SERVICES.PY ====================
import logging
from django.conf import settings
from django.core.exceptions import ValidationError as DjangoValidationError
from django.db import transaction, DatabaseError
from django.utils import timezone
from rest_framework.exceptions import ValidationError

from .models import Booking
from .qr import encode_booking, decode_token
from parking.models import ParkingLot, ParkingSlot
from utils.exceptions import (
    ParkingLotNotFound, ParkingSlotNotFound, BookingNotFound, SlotUnavailable,
    InvalidTransition, NotCancellable, NotYetStarted, BookingExpired, AlreadyUsed,
    NotConfirmed, NotActive, InvalidToken, StoreUnavailable,
)

logger = logging.getLogger(__name__)

STATUSES = [choice[0] for choice in Booking.STATUS_CHOICES]
ADMIN_UPDATABLE_FIELDS = ('vehicle_number', 'actual_start_time', 'actual_end_time')


def normalize_vehicle_number(vehicle_number):
    return ''.join((vehicle_number or '').split()).upper()


def restore_on_complete():
    return getattr(settings, 'PARKING_RESTORE_AVAILABILITY_ON_COMPLETE', True)


class BookingService:
    """Creates bookings and drives them through their lifecycle.

    Each operation runs in one transaction. Slot status and the lot's
    available_slots counter are written before the booking status, and the
    counter only moves when a slot enters or leaves the 'available' status.
    """

    # ---------- slot bookkeeping ----------

    @staticmethod
    def _set_slot_status(slot, new_status, adjust_counter=True):
        old_status = slot.status
        if old_status == new_status:
            return
        slot.set_status(new_status)
        if not adjust_counter:
            return

        lot = slot.parking_lot
        if old_status == 'available':
            if not lot.decrement_available():
                logger.warning(f"Lot {lot.id} available_slots already 0 while reserving slot {slot.slot_number}")
        elif new_status == 'available':
            if not lot.increment_available():
                logger.warning(f"Lot {lot.id} available_slots already at capacity while releasing slot {slot.slot_number}")

    @staticmethod
    def _release_slot(booking, adjust_counter=True):
        """Put the slot back into the state implied by its other holding bookings"""
        slot = booking.parking_slot
        if slot.status == 'maintenance':
            return

        others = Booking.objects.filter(
            parking_slot=slot,
            status__in=Booking.HOLDING_STATUSES,
        ).exclude(pk=booking.pk)

        if others.filter(status='active').exists():
            new_status = 'occupied'
        elif others.exists():
            new_status = 'reserved'
        else:
            new_status = 'available'

        BookingService._set_slot_status(slot, new_status, adjust_counter=adjust_counter)

    @staticmethod
    def _locked_booking(booking_id, user=None):
        queryset = Booking.objects.select_for_update().select_related(
            'parking_slot', 'parking_slot__parking_lot', 'parking_lot'
        )
        if user is not None:
            queryset = queryset.filter(user=user)
        try:
            return queryset.get(pk=booking_id)
        except (Booking.DoesNotExist, DjangoValidationError, ValueError):
            raise BookingNotFound()

    @staticmethod
    def _booking_for_token(token, data):
        try:
            booking = BookingService._locked_booking(data['bookingId'])
        except BookingNotFound:
            logger.warning(f"QR token references unknown booking {data['bookingId']}")
            raise InvalidToken()

        if booking.qr_code != token:
            logger.warning(f"QR token does not match the one issued for booking {booking.id}")
            raise InvalidToken()
        return booking

    # ---------- lifecycle ----------

    @staticmethod
    def create(user, lot, slot, vehicle_number, vehicle_type, start_time, end_time):
        """Reserve a slot for [start_time, end_time) and return the confirmed booking"""
        if start_time is None or end_time is None:
            raise ValidationError('start_time and end_time are required')
        if end_time <= start_time:
            raise ValidationError('End time must be after start time')

        vehicle_number = normalize_vehicle_number(vehicle_number)
        if not vehicle_number:
            raise ValidationError({'vehicle_number': 'Vehicle number is required'})

        try:
            with transaction.atomic():
                lot_id = lot.pk if isinstance(lot, ParkingLot) else lot
                slot_id = slot.pk if isinstance(slot, ParkingSlot) else slot
                try:
                    lot = ParkingLot.objects.get(pk=lot_id)
                except (ParkingLot.DoesNotExist, ValueError):
                    raise ParkingLotNotFound()
                try:
                    # Row lock on the slot serializes competing reservations
                    slot = ParkingSlot.objects.select_for_update().get(pk=slot_id)
                except (ParkingSlot.DoesNotExist, ValueError):
                    raise ParkingSlotNotFound()

                if slot.parking_lot_id != lot.id:
                    raise ValidationError({'parking_slot': 'Slot does not belong to this parking lot'})
                if lot.status != 'active':
                    raise ValidationError({'parking_lot': 'Parking lot is not accepting bookings'})
                if slot.status == 'maintenance':
                    raise ValidationError({'parking_slot': 'Slot is under maintenance'})
                if slot.slot_type != vehicle_type:
                    raise ValidationError({'vehicle_type': f'Slot {slot.slot_number} is for {slot.slot_type} vehicles'})

                overlapping = Booking.objects.filter(
                    parking_slot=slot,
                    status__in=Booking.HOLDING_STATUSES,
                    start_time__lt=end_time,
                    end_time__gt=start_time,
                ).exists()
                if overlapping:
                    logger.info(f"Rejected overlapping booking on slot {slot.id} for {start_time} - {end_time}")
                    raise SlotUnavailable()

                slot.parking_lot = lot
                booking = Booking(
                    user=user,
                    parking_lot=lot,
                    parking_slot=slot,
                    vehicle_number=vehicle_number,
                    vehicle_type=vehicle_type,
                    start_time=start_time,
                    end_time=end_time,
                    status='confirmed',
                )
                booking.calculate_amount()
                booking.qr_code = encode_booking(booking)

                if slot.status == 'available':
                    BookingService._set_slot_status(slot, 'reserved')
                booking.save(force_insert=True)
        except DatabaseError as e:
            logger.error(f"Error creating booking on slot {slot}: {str(e)}")
            raise StoreUnavailable() from e

        logger.info(f"Booking {booking.id} confirmed: slot {slot.slot_number} at lot {lot.id}, amount {booking.total_amount}")
        return booking

    @staticmethod
    def cancel(booking_id, user=None):
        """Cancel a confirmed booking. With a user, only that user's booking is found"""
        try:
            with transaction.atomic():
                booking = BookingService._locked_booking(booking_id, user=user)
                if booking.status != 'confirmed':
                    raise NotCancellable(f'Cannot cancel a {booking.status} booking')

                BookingService._release_slot(booking)
                booking.status = 'cancelled'
                booking.save(update_fields=['status', 'updated_at'])
        except DatabaseError as e:
            logger.error(f"Error cancelling booking {booking_id}: {str(e)}")
            raise StoreUnavailable() from e

        logger.info(f"Booking {booking.id} cancelled")
        return booking

    @staticmethod
    def validate_entry(token, now=None):
        """Scan at the gate on the way in: confirmed -> active"""
        now = now or timezone.now()
        # Gate scans are bounded by the booking window, not by token age
        data = decode_token(token, now=now, check_age=False)

        try:
            with transaction.atomic():
                booking = BookingService._booking_for_token(token, data)

                if booking.status in ('active', 'completed'):
                    raise AlreadyUsed()
                if booking.status != 'confirmed':
                    raise NotConfirmed()
                if now < booking.start_time:
                    raise NotYetStarted()
                if now >= booking.end_time:
                    raise BookingExpired()

                BookingService._set_slot_status(booking.parking_slot, 'occupied')
                booking.status = 'active'
                booking.actual_start_time = now
                booking.save(update_fields=['status', 'actual_start_time', 'updated_at'])
        except DatabaseError as e:
            logger.error(f"Error validating entry for booking {data['bookingId']}: {str(e)}")
            raise StoreUnavailable() from e

        logger.info(f"Entry granted for booking {booking.id} at slot {booking.parking_slot.slot_number}")
        return booking

    @staticmethod
    def validate_exit(token, now=None):
        """Scan at the gate on the way out: active -> completed"""
        now = now or timezone.now()
        data = decode_token(token, now=now, check_age=False)

        try:
            with transaction.atomic():
                booking = BookingService._booking_for_token(token, data)

                if booking.status != 'active':
                    raise NotActive()

                BookingService._release_slot(booking, adjust_counter=restore_on_complete())
                booking.status = 'completed'
                booking.actual_end_time = now
                booking.save(update_fields=['status', 'actual_end_time', 'updated_at'])
        except DatabaseError as e:
            logger.error(f"Error validating exit for booking {data['bookingId']}: {str(e)}")
            raise StoreUnavailable() from e

        logger.info(f"Exit recorded for booking {booking.id}")
        return booking

    @staticmethod
    def update_status(booking_id, status, extra_fields=None, now=None):
        """Admin-driven transition. Follows the state machine but skips the entry-window check"""
        if status not in STATUSES:
            raise ValidationError({'status': f'Invalid status: {status}'})

        extra_fields = extra_fields or {}
        unknown = set(extra_fields) - set(ADMIN_UPDATABLE_FIELDS)
        if unknown:
            raise ValidationError({'extra_fields': f"Fields cannot be updated: {', '.join(sorted(unknown))}"})

        now = now or timezone.now()

        try:
            with transaction.atomic():
                booking = BookingService._locked_booking(booking_id)
                previous = booking.status

                if status != previous and not booking.can_transition_to(status):
                    raise InvalidTransition(f'Cannot move booking from {previous} to {status}')

                for field, value in extra_fields.items():
                    if field == 'vehicle_number':
                        value = normalize_vehicle_number(value)
                    setattr(booking, field, value)

                if status != previous:
                    if status == 'active':
                        BookingService._set_slot_status(booking.parking_slot, 'occupied')
                        if 'actual_start_time' not in extra_fields:
                            booking.actual_start_time = now
                    elif status == 'completed':
                        BookingService._release_slot(booking, adjust_counter=restore_on_complete())
                        if 'actual_end_time' not in extra_fields:
                            booking.actual_end_time = now
                    elif status == 'cancelled':
                        BookingService._release_slot(booking)

                booking.status = status
                booking.save()
        except DatabaseError as e:
            logger.error(f"Error updating booking {booking_id} to {status}: {str(e)}")
            raise StoreUnavailable() from e

        logger.info(f"Booking {booking.id} moved from {previous} to {status} by admin")
        return booking

    # ---------- queries ----------

    @staticmethod
    def bookings_for_user(user, status=None):
        bookings = Booking.objects.filter(user=user).select_related(
            'parking_lot', 'parking_slot'
        ).order_by('-start_time')
        if status:
            bookings = bookings.filter(status=status)
        return bookings

    @staticmethod
    def get_by_qr_code(token):
        try:
            return Booking.objects.select_related('parking_lot', 'parking_slot', 'user').get(qr_code=token)
        except Booking.DoesNotExist:
            raise BookingNotFound()
        except Booking.MultipleObjectsReturned:
            raise InvalidToken()
