import math
import uuid
from decimal import Decimal
from django.conf import settings
from django.db import models
from parking.models import ParkingLot, ParkingSlot


class Booking(models.Model):
    STATUS_CHOICES = (
        ('confirmed', 'Confirmed'),
        ('active', 'Active - Vehicle Parked'),
        ('completed', 'Completed'),
        ('cancelled', 'Cancelled'),
    )
    # Bookings that hold their slot for the booked window
    HOLDING_STATUSES = ('confirmed', 'active')
    TERMINAL_STATUSES = ('completed', 'cancelled')
    TRANSITIONS = {
        'confirmed': ('active', 'cancelled'),
        'active': ('completed',),
        'completed': (),
        'cancelled': (),
    }

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)

    # Relations
    user = models.ForeignKey(settings.AUTH_USER_MODEL, on_delete=models.CASCADE, related_name='parking_bookings')
    parking_lot = models.ForeignKey(ParkingLot, on_delete=models.PROTECT, related_name='bookings')
    parking_slot = models.ForeignKey(ParkingSlot, on_delete=models.PROTECT, related_name='bookings')

    # Vehicle
    vehicle_number = models.CharField(max_length=20, db_index=True)
    vehicle_type = models.CharField(max_length=20, choices=ParkingSlot.SLOT_TYPE_CHOICES)

    # Booked window, end is exclusive
    start_time = models.DateTimeField(db_index=True)
    end_time = models.DateTimeField()
    actual_start_time = models.DateTimeField(null=True, blank=True)
    actual_end_time = models.DateTimeField(null=True, blank=True)

    total_amount = models.DecimalField(max_digits=10, decimal_places=2)
    status = models.CharField(max_length=20, choices=STATUS_CHOICES, default='confirmed', db_index=True)

    # Entry/exit token, never rewritten after creation
    qr_code = models.TextField(editable=False)

    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        ordering = ['-created_at']
        indexes = [
            models.Index(fields=['user', 'status'], name='booking_user_status_idx'),
            models.Index(fields=['parking_lot', 'status'], name='booking_lot_status_idx'),
            models.Index(fields=['parking_slot', 'status'], name='booking_slot_status_idx'),
        ]

    def __str__(self):
        return f"Booking {self.id} - {self.vehicle_number} at {self.parking_slot.slot_number}"

    @property
    def is_terminal(self):
        return self.status in self.TERMINAL_STATUSES

    def can_transition_to(self, status):
        return status in self.TRANSITIONS.get(self.status, ())

    def overlaps(self, start_time, end_time):
        """Half-open overlap: [a, b) and [c, d) overlap iff a < d and c < b"""
        return self.start_time < end_time and start_time < self.end_time

    def duration_hours(self):
        """Billable hours, any started hour counts as a full hour"""
        seconds = (self.end_time - self.start_time).total_seconds()
        return math.ceil(seconds / 3600)

    def calculate_amount(self):
        rate = self.parking_slot.effective_hourly_rate
        self.total_amount = (Decimal(self.duration_hours()) * Decimal(rate)).quantize(Decimal('0.01'))
        return self.total_amount
