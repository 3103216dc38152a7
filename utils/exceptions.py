# ==================== UTILS/EXCEPTIONS.PY ====================
from rest_framework.exceptions import APIException
from rest_framework import status


class ParkingLotNotFound(APIException):
    status_code = status.HTTP_404_NOT_FOUND
    default_detail = 'Parking lot not found.'
    default_code = 'parking_lot_not_found'


class ParkingSlotNotFound(APIException):
    status_code = status.HTTP_404_NOT_FOUND
    default_detail = 'Parking slot not found.'
    default_code = 'parking_slot_not_found'


class BookingNotFound(APIException):
    status_code = status.HTTP_404_NOT_FOUND
    default_detail = 'Booking not found.'
    default_code = 'booking_not_found'


class SlotUnavailable(APIException):
    status_code = status.HTTP_409_CONFLICT
    default_detail = 'Parking slot is not available for the selected time.'
    default_code = 'slot_unavailable'


class InvalidTransition(APIException):
    """Booking is not in a state that allows the requested transition."""
    status_code = status.HTTP_409_CONFLICT
    default_detail = 'Booking cannot move to the requested status.'
    default_code = 'invalid_transition'


class NotCancellable(InvalidTransition):
    default_detail = 'Only confirmed bookings can be cancelled.'
    default_code = 'not_cancellable'


class NotYetStarted(InvalidTransition):
    default_detail = 'Booking time has not started yet.'
    default_code = 'not_yet_started'


class BookingExpired(InvalidTransition):
    default_detail = 'Booking time has expired.'
    default_code = 'expired'


class AlreadyUsed(InvalidTransition):
    default_detail = 'QR code has already been used for entry.'
    default_code = 'already_used'


class NotConfirmed(InvalidTransition):
    default_detail = 'Booking is not confirmed.'
    default_code = 'not_confirmed'


class NotActive(InvalidTransition):
    default_detail = 'No active booking found.'
    default_code = 'not_active'


class MalformedToken(APIException):
    status_code = status.HTTP_400_BAD_REQUEST
    default_detail = 'Invalid QR code format.'
    default_code = 'malformed_token'


class TokenExpired(APIException):
    status_code = status.HTTP_400_BAD_REQUEST
    default_detail = 'QR code has expired.'
    default_code = 'token_expired'


class InvalidToken(APIException):
    status_code = status.HTTP_400_BAD_REQUEST
    default_detail = 'Invalid QR code.'
    default_code = 'invalid_token'


class StoreUnavailable(APIException):
    status_code = status.HTTP_503_SERVICE_UNAVAILABLE
    default_detail = 'Booking store is temporarily unavailable. Please try again.'
    default_code = 'store_unavailable'
