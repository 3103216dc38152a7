# ==================== BOOKINGS/QR.PY ====================
"""QR token payloads for booking entry and exit.

A token is a JSON object bound to the booking's identifying fields plus the
time it was issued. It is not signed: a decoded token only says which booking
is being presented, the booking record itself is the source of truth.

The issue-time age limit applies to previews. Gate scans are bounded by the
booking window instead, since a booking may be made days ahead.
"""
import json
import logging
import math

from django.conf import settings
from django.utils import timezone

from utils.exceptions import MalformedToken, TokenExpired

logger = logging.getLogger(__name__)

REQUIRED_FIELDS = ['bookingId', 'parkingLotId', 'slotId', 'userId', 'vehicleNumber', 'startTime', 'endTime']


def _json_id(value):
    if isinstance(value, int):
        return value
    return str(value)


def _epoch_ms(moment):
    return int(moment.timestamp() * 1000)


def max_age_ms():
    hours = getattr(settings, 'PARKING_QR_TOKEN_MAX_AGE_HOURS', 24)
    return hours * 60 * 60 * 1000


def build_payload(booking, timestamp=None):
    return {
        'bookingId': str(booking.id),
        'parkingLotId': _json_id(booking.parking_lot_id),
        'slotId': _json_id(booking.parking_slot_id),
        'userId': _json_id(booking.user_id),
        'vehicleNumber': booking.vehicle_number,
        'startTime': booking.start_time.isoformat(),
        'endTime': booking.end_time.isoformat(),
        'timestamp': timestamp if timestamp is not None else _epoch_ms(timezone.now()),
    }


def encode_booking(booking, timestamp=None):
    """Serialize the booking's token; timestamp is epoch milliseconds"""
    return json.dumps(build_payload(booking, timestamp), separators=(',', ':'))


def decode_token(token, now=None, check_age=True):
    """Parse and shape-check a token, raising MalformedToken or TokenExpired.

    With check_age=False the issue-time age limit is skipped.
    """
    try:
        data = json.loads(token)
    except (TypeError, ValueError):
        raise MalformedToken()

    if not isinstance(data, dict):
        raise MalformedToken()

    missing = [field for field in REQUIRED_FIELDS if data.get(field) in (None, '')]
    if missing:
        raise MalformedToken(f"Invalid QR code format: missing {', '.join(missing)}")

    # A token without a timestamp is treated as issued at the epoch
    issued_at = data.get('timestamp') or 0
    if isinstance(issued_at, bool) or not isinstance(issued_at, (int, float)):
        raise MalformedToken('Invalid QR code format: bad timestamp')
    # json accepts NaN and Infinity
    if not math.isfinite(issued_at):
        raise MalformedToken('Invalid QR code format: bad timestamp')

    if not check_age:
        return data

    now_ms = _epoch_ms(now or timezone.now())
    if now_ms - issued_at > max_age_ms():
        raise TokenExpired()

    return data


def validate_token(token, now=None):
    """Non-raising form of decode_token for scanner previews"""
    try:
        data = decode_token(token, now=now)
    except (MalformedToken, TokenExpired) as e:
        logger.info(f"QR token rejected: {e.detail}")
        return {'valid': False, 'error': str(e.detail), 'code': e.default_code}
    return {'valid': True, 'data': data}
