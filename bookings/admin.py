# ==================== BOOKINGS/ADMIN.PY ====================
from django.contrib import admin
from .models import Booking


@admin.register(Booking)
class BookingAdmin(admin.ModelAdmin):
    list_display = ['id', 'user', 'parking_lot', 'parking_slot', 'vehicle_number', 'status', 'start_time',
                    'end_time', 'total_amount', 'created_at']
    list_filter = ['status', 'vehicle_type', 'parking_lot', 'created_at']
    search_fields = ['user__username', 'parking_lot__name', 'vehicle_number', 'parking_slot__slot_number']
    # Status changes go through the API so slot and lot counters stay in step
    readonly_fields = ['status', 'qr_code', 'total_amount', 'actual_start_time', 'actual_end_time',
                       'created_at', 'updated_at']
