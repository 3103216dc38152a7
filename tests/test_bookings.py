import json
import uuid
from datetime import timedelta
from decimal import Decimal
from unittest.mock import patch

from django.contrib.auth import get_user_model
from django.db import DatabaseError
from django.test import TestCase, override_settings
from django.utils import timezone
from rest_framework import status
from rest_framework.exceptions import ValidationError
from rest_framework.test import APIClient

from bookings.models import Booking
from bookings.qr import decode_token, validate_token
from bookings.services import BookingService
from parking.models import ParkingLot
from parking.services import SlotProvisioner
from utils.exceptions import (
    SlotUnavailable, InvalidTransition, NotCancellable, NotYetStarted, BookingExpired,
    AlreadyUsed, NotConfirmed, NotActive, BookingNotFound, InvalidToken, MalformedToken,
    StoreUnavailable,
)

User = get_user_model()


class BookingServiceTestCase(TestCase):

    def setUp(self):
        self.user = User.objects.create_user(username='driver1', password='testpass123')
        self.other = User.objects.create_user(username='driver2', password='testpass123')
        self.lot = ParkingLot.objects.create(
            name='City Centre Parking',
            address='12 MG Road',
            city='Pune',
            total_slots=10,
            hourly_rate=Decimal('100.00'),
        )
        SlotProvisioner.ensure_slots(self.lot)
        self.fw1 = self.lot.slots.get(slot_number='FW-01')
        self.tw1 = self.lot.slots.get(slot_number='TW-01')
        self.start = timezone.now().replace(microsecond=0) + timedelta(hours=1)

    def book(self, start=None, hours=2, slot=None, user=None, vehicle_type='four_wheeler'):
        start = start or self.start
        return BookingService.create(
            user=user or self.user,
            lot=self.lot,
            slot=slot or self.fw1,
            vehicle_number='MH12AB1234',
            vehicle_type=vehicle_type,
            start_time=start,
            end_time=start + timedelta(hours=hours),
        )

    def assertSlot(self, slot, slot_status):
        slot.refresh_from_db()
        self.assertEqual(slot.status, slot_status)

    def assertAvailable(self, count):
        self.lot.refresh_from_db()
        self.assertEqual(self.lot.available_slots, count)

    # ---------- create ----------

    def test_create_two_hour_booking(self):
        booking = self.book()

        self.assertEqual(booking.status, 'confirmed')
        self.assertEqual(booking.total_amount, Decimal('200.00'))
        self.assertSlot(self.fw1, 'reserved')
        self.assertAvailable(9)

        booking.refresh_from_db()
        data = json.loads(booking.qr_code)
        self.assertEqual(data['bookingId'], str(booking.id))
        self.assertEqual(data['slotId'], self.fw1.id)
        self.assertEqual(data['vehicleNumber'], 'MH12AB1234')

    def test_partial_hours_are_billed_as_full_hours(self):
        start = self.start
        booking = BookingService.create(
            self.user, self.lot, self.fw1, 'MH12AB1234', 'four_wheeler',
            start, start + timedelta(hours=2, minutes=30),
        )
        self.assertEqual(booking.total_amount, Decimal('300.00'))

    def test_slot_rate_overrides_lot_rate(self):
        booking = self.book(hours=1, slot=self.tw1, vehicle_type='two_wheeler')
        self.assertEqual(booking.total_amount, Decimal('60.00'))

    def test_vehicle_number_is_normalized(self):
        start = self.start
        booking = BookingService.create(
            self.user, self.lot, self.fw1, 'mh 12 ab 1234', 'four_wheeler', start, start + timedelta(hours=1),
        )
        self.assertEqual(booking.vehicle_number, 'MH12AB1234')

    def test_end_before_start_is_rejected(self):
        with self.assertRaises(ValidationError):
            self.book(hours=0)
        self.assertFalse(Booking.objects.exists())
        self.assertSlot(self.fw1, 'available')

    def test_vehicle_type_must_match_slot(self):
        with self.assertRaises(ValidationError):
            self.book(vehicle_type='two_wheeler')

    def test_overlapping_booking_is_rejected(self):
        self.book()
        with self.assertRaises(SlotUnavailable):
            self.book(start=self.start + timedelta(hours=1), user=self.other)
        self.assertEqual(Booking.objects.count(), 1)
        self.assertAvailable(9)

    def test_adjacent_booking_on_reserved_slot(self):
        self.book()
        second = self.book(start=self.start + timedelta(hours=2), user=self.other)
        self.assertEqual(second.status, 'confirmed')
        self.assertSlot(self.fw1, 'reserved')
        # The slot only left 'available' once
        self.assertAvailable(9)

    def test_counter_stays_at_zero(self):
        self.lot.available_slots = 0
        self.lot.save()
        booking = self.book()
        self.assertEqual(booking.status, 'confirmed')
        self.assertAvailable(0)

    def test_store_failure_rolls_back(self):
        with patch.object(Booking, 'save', side_effect=DatabaseError('connection lost')):
            with self.assertRaises(StoreUnavailable):
                self.book()
        self.assertSlot(self.fw1, 'available')
        self.assertAvailable(10)

    # ---------- cancel ----------

    def test_cancel_releases_slot(self):
        booking = self.book()
        booking = BookingService.cancel(booking.id, user=self.user)

        self.assertEqual(booking.status, 'cancelled')
        self.assertSlot(self.fw1, 'available')
        self.assertAvailable(10)

    def test_cancel_keeps_slot_reserved_for_other_bookings(self):
        first = self.book()
        self.book(start=self.start + timedelta(hours=3), user=self.other)
        BookingService.cancel(first.id)
        self.assertSlot(self.fw1, 'reserved')
        self.assertAvailable(9)

    def test_cancel_other_users_booking(self):
        booking = self.book()
        with self.assertRaises(BookingNotFound):
            BookingService.cancel(booking.id, user=self.other)

    def test_cancel_active_booking_is_rejected(self):
        booking = self.book()
        BookingService.validate_entry(booking.qr_code, now=self.start + timedelta(minutes=5))

        with self.assertRaises(NotCancellable):
            BookingService.cancel(booking.id, user=self.user)

        booking.refresh_from_db()
        self.assertEqual(booking.status, 'active')
        self.assertSlot(self.fw1, 'occupied')
        self.assertAvailable(9)

    def test_cancel_twice(self):
        booking = self.book()
        BookingService.cancel(booking.id)
        with self.assertRaises(NotCancellable):
            BookingService.cancel(booking.id)
        self.assertAvailable(10)

    # ---------- entry ----------

    def test_entry_before_start(self):
        booking = self.book()
        with self.assertRaises(NotYetStarted):
            BookingService.validate_entry(booking.qr_code, now=self.start - timedelta(minutes=10))
        booking.refresh_from_db()
        self.assertEqual(booking.status, 'confirmed')
        self.assertSlot(self.fw1, 'reserved')

    def test_entry_after_end(self):
        booking = self.book()
        with self.assertRaises(BookingExpired):
            BookingService.validate_entry(booking.qr_code, now=booking.end_time + timedelta(minutes=1))

    def test_entry_at_end_time_is_expired(self):
        booking = self.book()
        with self.assertRaises(BookingExpired):
            BookingService.validate_entry(booking.qr_code, now=booking.end_time)

    def test_entry_within_window(self):
        booking = self.book()
        now = self.start + timedelta(minutes=5)
        booking = BookingService.validate_entry(booking.qr_code, now=now)

        self.assertEqual(booking.status, 'active')
        self.assertEqual(booking.actual_start_time, now)
        self.assertSlot(self.fw1, 'occupied')
        self.assertAvailable(9)

    def test_entry_twice(self):
        booking = self.book()
        now = self.start + timedelta(minutes=5)
        BookingService.validate_entry(booking.qr_code, now=now)
        with self.assertRaises(AlreadyUsed):
            BookingService.validate_entry(booking.qr_code, now=now + timedelta(minutes=1))

    def test_entry_on_cancelled_booking(self):
        booking = self.book()
        BookingService.cancel(booking.id)
        with self.assertRaises(NotConfirmed):
            BookingService.validate_entry(booking.qr_code, now=self.start + timedelta(minutes=5))

    def test_entry_with_altered_token(self):
        booking = self.book()
        data = json.loads(booking.qr_code)
        data['vehicleNumber'] = 'KA01XY9999'
        with self.assertRaises(InvalidToken):
            BookingService.validate_entry(json.dumps(data), now=self.start + timedelta(minutes=5))

    def test_entry_with_unknown_booking(self):
        booking = self.book()
        data = json.loads(booking.qr_code)
        data['bookingId'] = str(uuid.uuid4())
        with self.assertRaises(InvalidToken):
            BookingService.validate_entry(json.dumps(data), now=self.start + timedelta(minutes=5))

    def test_entry_with_garbage_token(self):
        with self.assertRaises(MalformedToken):
            BookingService.validate_entry('not a token')

    def test_entry_for_booking_made_days_ahead(self):
        start = self.start + timedelta(days=2)
        booking = self.book(start=start)
        now = start + timedelta(minutes=5)

        # A preview scan still applies the issue-time age limit
        self.assertEqual(validate_token(booking.qr_code, now=now)['code'], 'token_expired')

        booking = BookingService.validate_entry(booking.qr_code, now=now)
        self.assertEqual(booking.status, 'active')
        self.assertSlot(self.fw1, 'occupied')

    def test_entry_with_non_finite_timestamp(self):
        booking = self.book()
        data = json.loads(booking.qr_code)
        data['timestamp'] = float('nan')
        with self.assertRaises(MalformedToken):
            BookingService.validate_entry(json.dumps(data), now=self.start + timedelta(minutes=5))

    # ---------- exit ----------

    def test_exit_completes_booking(self):
        booking = self.book()
        BookingService.validate_entry(booking.qr_code, now=self.start + timedelta(minutes=5))
        now = self.start + timedelta(minutes=90)
        booking = BookingService.validate_exit(booking.qr_code, now=now)

        self.assertEqual(booking.status, 'completed')
        self.assertEqual(booking.actual_end_time, now)
        self.assertSlot(self.fw1, 'available')
        self.assertAvailable(10)

    @override_settings(PARKING_RESTORE_AVAILABILITY_ON_COMPLETE=False)
    def test_exit_without_restoring_counter(self):
        booking = self.book()
        BookingService.validate_entry(booking.qr_code, now=self.start + timedelta(minutes=5))
        BookingService.validate_exit(booking.qr_code, now=self.start + timedelta(minutes=90))

        self.assertSlot(self.fw1, 'available')
        self.assertAvailable(9)

    def test_exit_without_entry(self):
        booking = self.book()
        with self.assertRaises(NotActive):
            BookingService.validate_exit(booking.qr_code, now=self.start + timedelta(minutes=5))
        booking.refresh_from_db()
        self.assertEqual(booking.status, 'confirmed')

    def test_exit_twice(self):
        booking = self.book()
        BookingService.validate_entry(booking.qr_code, now=self.start + timedelta(minutes=5))
        BookingService.validate_exit(booking.qr_code, now=self.start + timedelta(minutes=30))
        with self.assertRaises(NotActive):
            BookingService.validate_exit(booking.qr_code, now=self.start + timedelta(minutes=31))

    def test_exit_after_long_stay(self):
        booking = self.book(hours=30)
        BookingService.validate_entry(booking.qr_code, now=self.start + timedelta(minutes=5))
        booking = BookingService.validate_exit(booking.qr_code, now=self.start + timedelta(hours=29))

        self.assertEqual(booking.status, 'completed')
        self.assertSlot(self.fw1, 'available')
        self.assertAvailable(10)

    def test_exit_after_window_has_ended(self):
        booking = self.book()
        BookingService.validate_entry(booking.qr_code, now=self.start + timedelta(minutes=5))
        booking = BookingService.validate_exit(booking.qr_code, now=booking.end_time + timedelta(days=3))
        self.assertEqual(booking.status, 'completed')

    # ---------- admin status updates ----------

    def test_admin_activates_booking_before_start(self):
        booking = self.book()
        booking = BookingService.update_status(booking.id, 'active')
        self.assertEqual(booking.status, 'active')
        self.assertIsNotNone(booking.actual_start_time)
        self.assertSlot(self.fw1, 'occupied')

    def test_admin_cannot_skip_states(self):
        booking = self.book()
        with self.assertRaises(InvalidTransition):
            BookingService.update_status(booking.id, 'completed')

        BookingService.update_status(booking.id, 'active')
        with self.assertRaises(InvalidTransition):
            BookingService.update_status(booking.id, 'cancelled')

    def test_terminal_bookings_cannot_move(self):
        booking = self.book()
        BookingService.update_status(booking.id, 'cancelled')
        self.assertAvailable(10)
        with self.assertRaises(InvalidTransition):
            BookingService.update_status(booking.id, 'confirmed')

    def test_admin_updates_vehicle_number(self):
        booking = self.book()
        booking = BookingService.update_status(booking.id, 'confirmed', extra_fields={'vehicle_number': 'ka 01 xy 9999'})
        self.assertEqual(booking.vehicle_number, 'KA01XY9999')
        # Token stays as issued
        self.assertEqual(json.loads(booking.qr_code)['vehicleNumber'], 'MH12AB1234')

    def test_admin_cannot_update_other_fields(self):
        booking = self.book()
        with self.assertRaises(ValidationError):
            BookingService.update_status(booking.id, 'confirmed', extra_fields={'total_amount': 1})

    def test_unknown_status(self):
        booking = self.book()
        with self.assertRaises(ValidationError):
            BookingService.update_status(booking.id, 'parked')

    # ---------- queries ----------

    def test_bookings_for_user(self):
        mine = self.book()
        self.book(start=self.start + timedelta(hours=3), user=self.other)

        self.assertEqual(list(BookingService.bookings_for_user(self.user)), [mine])
        self.assertEqual(list(BookingService.bookings_for_user(self.user, status='cancelled')), [])

    def test_get_by_qr_code(self):
        booking = self.book()
        self.assertEqual(BookingService.get_by_qr_code(booking.qr_code), booking)
        with self.assertRaises(BookingNotFound):
            BookingService.get_by_qr_code('{}')


class BookingAPITestCase(TestCase):

    def setUp(self):
        self.client = APIClient()
        self.user = User.objects.create_user(username='driver1', password='testpass123')
        self.other = User.objects.create_user(username='driver2', password='testpass123')
        self.staff = User.objects.create_user(username='gate1', password='testpass123', is_staff=True)
        self.lot = ParkingLot.objects.create(
            name='City Centre Parking',
            address='12 MG Road',
            city='Pune',
            total_slots=10,
            hourly_rate=Decimal('100.00'),
        )
        SlotProvisioner.ensure_slots(self.lot)
        self.fw1 = self.lot.slots.get(slot_number='FW-01')
        self.start = timezone.now().replace(microsecond=0) + timedelta(hours=1)

    def booking_data(self, **kwargs):
        data = {
            'parking_lot': self.lot.id,
            'parking_slot': self.fw1.id,
            'vehicle_number': 'MH 12 AB 1234',
            'vehicle_type': 'four_wheeler',
            'start_time': self.start.isoformat(),
            'end_time': (self.start + timedelta(hours=2)).isoformat(),
        }
        data.update(kwargs)
        return data

    def create_booking(self):
        self.client.force_authenticate(user=self.user)
        response = self.client.post('/api/v1/bookings/', self.booking_data())
        self.assertEqual(response.status_code, status.HTTP_201_CREATED)
        return Booking.objects.get(pk=response.data['id'])

    def test_create_booking(self):
        self.client.force_authenticate(user=self.user)
        response = self.client.post('/api/v1/bookings/', self.booking_data())

        self.assertEqual(response.status_code, status.HTTP_201_CREATED)
        self.assertEqual(response.data['status'], 'confirmed')
        self.assertEqual(response.data['total_amount'], '200.00')
        self.assertEqual(response.data['vehicle_number'], 'MH12AB1234')
        self.assertEqual(response.data['parking_slot']['status'], 'reserved')

    def test_create_requires_authentication(self):
        response = self.client.post('/api/v1/bookings/', self.booking_data())
        self.assertEqual(response.status_code, status.HTTP_401_UNAUTHORIZED)

    def test_invalid_vehicle_number(self):
        self.client.force_authenticate(user=self.user)
        response = self.client.post('/api/v1/bookings/', self.booking_data(vehicle_number='A-1'))
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
        self.assertIn('vehicle_number', response.data)

    def test_end_before_start(self):
        self.client.force_authenticate(user=self.user)
        response = self.client.post('/api/v1/bookings/', self.booking_data(end_time=self.start.isoformat()))
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)

    def test_double_booking_conflict(self):
        self.create_booking()
        self.client.force_authenticate(user=self.other)
        response = self.client.post('/api/v1/bookings/', self.booking_data())
        self.assertEqual(response.status_code, status.HTTP_409_CONFLICT)
        self.assertEqual(response.data['detail'].code, 'slot_unavailable')

    def test_users_see_only_their_bookings(self):
        booking = self.create_booking()

        self.client.force_authenticate(user=self.other)
        response = self.client.get('/api/v1/bookings/')
        self.assertEqual(response.data['results'], [])
        response = self.client.get(f'/api/v1/bookings/{booking.id}/')
        self.assertEqual(response.status_code, status.HTTP_404_NOT_FOUND)

        self.client.force_authenticate(user=self.user)
        response = self.client.get('/api/v1/bookings/')
        self.assertEqual(len(response.data['results']), 1)

    def test_cancel_endpoint(self):
        booking = self.create_booking()
        response = self.client.post(f'/api/v1/bookings/{booking.id}/cancel/')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data['booking']['status'], 'cancelled')

        response = self.client.post(f'/api/v1/bookings/{booking.id}/cancel/')
        self.assertEqual(response.status_code, status.HTTP_409_CONFLICT)
        self.assertEqual(response.data['detail'].code, 'not_cancellable')

    def test_gate_endpoints_require_staff(self):
        booking = self.create_booking()
        response = self.client.post('/api/v1/bookings/validate_entry/', {'qr_code': booking.qr_code})
        self.assertEqual(response.status_code, status.HTTP_403_FORBIDDEN)

    def test_entry_before_start_over_api(self):
        booking = self.create_booking()
        self.client.force_authenticate(user=self.staff)
        response = self.client.post('/api/v1/bookings/validate_entry/', {'qr_code': booking.qr_code})
        self.assertEqual(response.status_code, status.HTTP_409_CONFLICT)
        self.assertEqual(response.data['detail'].code, 'not_yet_started')

    def test_exit_over_api(self):
        booking = self.create_booking()
        BookingService.validate_entry(booking.qr_code, now=self.start + timedelta(minutes=5))

        self.client.force_authenticate(user=self.staff)
        response = self.client.post('/api/v1/bookings/validate_exit/', {'qr_code': booking.qr_code})
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data['action'], 'exit')
        self.assertEqual(response.data['booking']['status'], 'completed')

    def test_malformed_token_over_api(self):
        self.client.force_authenticate(user=self.staff)
        response = self.client.post('/api/v1/bookings/validate_entry/', {'qr_code': '[1, 2]'})
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
        self.assertEqual(response.data['detail'].code, 'malformed_token')

    def test_verify_qr(self):
        booking = self.create_booking()
        response = self.client.post('/api/v1/bookings/verify_qr/', {'qr_code': booking.qr_code})
        self.assertTrue(response.data['valid'])
        self.assertEqual(response.data['booking']['id'], str(booking.id))

        data = json.loads(booking.qr_code)
        data['bookingId'] = 'not-a-uuid'
        response = self.client.post('/api/v1/bookings/verify_qr/', {'qr_code': json.dumps(data)})
        self.assertFalse(response.data['valid'])
        self.assertEqual(response.data['code'], 'invalid_token')

    def test_qr_endpoint_returns_issued_token(self):
        booking = self.create_booking()
        response = self.client.get(f'/api/v1/bookings/{booking.id}/qr/')
        self.assertEqual(response.data['qr_code'], booking.qr_code)
        self.assertEqual(decode_token(response.data['qr_code'])['bookingId'], str(booking.id))

    def test_staff_status_update(self):
        booking = self.create_booking()
        self.client.force_authenticate(user=self.staff)
        response = self.client.post(f'/api/v1/bookings/{booking.id}/update_status/', {'status': 'completed'})
        self.assertEqual(response.status_code, status.HTTP_409_CONFLICT)

        response = self.client.post(f'/api/v1/bookings/{booking.id}/update_status/', {'status': 'active'})
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data['status'], 'active')
