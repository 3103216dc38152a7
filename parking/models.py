# ==================== PARKING/MODELS.PY ====================
from django.db import models
from django.db.models import F
from django.core.validators import MinValueValidator


class ParkingLot(models.Model):
    STATUS_CHOICES = (
        ('active', 'Active'),
        ('inactive', 'Inactive'),
    )

    # Location info
    name = models.CharField(max_length=200)
    address = models.CharField(max_length=500)
    city = models.CharField(max_length=100, db_index=True)
    state = models.CharField(max_length=100, blank=True)
    latitude = models.FloatField(null=True, blank=True)
    longitude = models.FloatField(null=True, blank=True)

    # Capacity
    total_slots = models.PositiveIntegerField(validators=[MinValueValidator(1)])
    # Cached count of free slots, kept in [0, total_slots]
    available_slots = models.PositiveIntegerField(blank=True)

    # Pricing
    hourly_rate = models.DecimalField(max_digits=10, decimal_places=2, validators=[MinValueValidator(0)])

    status = models.CharField(max_length=20, choices=STATUS_CHOICES, default='active', db_index=True)

    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        ordering = ['name']

    def __str__(self):
        return f"{self.name} - {self.address}"

    def save(self, *args, **kwargs):
        if self.available_slots is None:
            self.available_slots = self.total_slots
        self.available_slots = max(0, min(self.available_slots, self.total_slots))
        super().save(*args, **kwargs)

    def decrement_available(self):
        """Atomically take one slot off the cached counter, never below zero.

        Returns False when the counter was already at zero.
        """
        updated = ParkingLot.objects.filter(pk=self.pk, available_slots__gt=0).update(
            available_slots=F('available_slots') - 1
        )
        self.refresh_from_db(fields=['available_slots'])
        return bool(updated)

    def increment_available(self):
        """Atomically give one slot back to the cached counter, never above total_slots.

        Returns False when the counter was already full.
        """
        updated = ParkingLot.objects.filter(pk=self.pk, available_slots__lt=F('total_slots')).update(
            available_slots=F('available_slots') + 1
        )
        self.refresh_from_db(fields=['available_slots'])
        return bool(updated)

    def add_capacity(self, count, available=True):
        """Grow total_slots by count, and available_slots too when the new slots are free"""
        updates = {'total_slots': F('total_slots') + count}
        if available:
            updates['available_slots'] = F('available_slots') + count
        ParkingLot.objects.filter(pk=self.pk).update(**updates)
        self.refresh_from_db(fields=['total_slots', 'available_slots'])

    def remove_capacity(self, was_available):
        """Shrink total_slots by one after a slot is deleted"""
        ParkingLot.objects.filter(pk=self.pk, total_slots__gt=0).update(
            total_slots=F('total_slots') - 1
        )
        if was_available:
            self.decrement_available()
        # Keep available_slots within the new total
        ParkingLot.objects.filter(pk=self.pk, available_slots__gt=F('total_slots')).update(
            available_slots=F('total_slots')
        )
        self.refresh_from_db(fields=['total_slots', 'available_slots'])

    def recount_available_slots(self):
        """Rebuild the cached counter from live slot statuses"""
        count = self.slots.filter(status='available').count()
        if not self.slots.exists():
            # Not provisioned yet; every slot is free
            count = self.total_slots
        self.available_slots = count
        self.save(update_fields=['available_slots', 'updated_at'])
        return self.available_slots


class ParkingSlot(models.Model):
    SLOT_TYPE_CHOICES = (
        ('two_wheeler', 'Two Wheeler'),
        ('four_wheeler', 'Four Wheeler'),
        ('ev_charging', 'EV Charging'),
    )
    STATUS_CHOICES = (
        ('available', 'Available'),
        ('reserved', 'Reserved'),
        ('occupied', 'Occupied'),
        ('maintenance', 'Maintenance'),
    )

    parking_lot = models.ForeignKey(ParkingLot, on_delete=models.CASCADE, related_name='slots')
    slot_number = models.CharField(max_length=20)
    slot_type = models.CharField(max_length=20, choices=SLOT_TYPE_CHOICES, db_index=True)
    # Falls back to the lot rate when empty
    hourly_rate = models.DecimalField(max_digits=10, decimal_places=2, null=True, blank=True)
    floor_level = models.PositiveSmallIntegerField(default=1)
    status = models.CharField(max_length=20, choices=STATUS_CHOICES, default='available', db_index=True)

    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        ordering = ['parking_lot', 'slot_number']
        constraints = [
            models.UniqueConstraint(fields=['parking_lot', 'slot_number'], name='unique_slot_number_per_lot'),
        ]
        indexes = [
            models.Index(fields=['parking_lot', 'slot_type', 'status'], name='slot_lot_type_status_idx'),
        ]

    def __str__(self):
        return f"{self.slot_number} at {self.parking_lot.name}"

    @property
    def effective_hourly_rate(self):
        if self.hourly_rate is not None:
            return self.hourly_rate
        return self.parking_lot.hourly_rate

    def set_status(self, status):
        self.status = status
        self.save(update_fields=['status', 'updated_at'])
