# ==================== PARKING/ADMIN.PY ====================
from django.contrib import admin
from .models import ParkingLot, ParkingSlot


class ParkingSlotInline(admin.TabularInline):
    model = ParkingSlot
    extra = 0
    fields = ['slot_number', 'slot_type', 'hourly_rate', 'floor_level', 'status']


@admin.register(ParkingLot)
class ParkingLotAdmin(admin.ModelAdmin):
    list_display = ['name', 'city', 'status', 'total_slots', 'available_slots', 'hourly_rate', 'created_at']
    list_filter = ['status', 'city', 'created_at']
    search_fields = ['name', 'address', 'city']
    readonly_fields = ['created_at', 'updated_at']
    inlines = [ParkingSlotInline]
    fieldsets = (
        ('Basic Info', {'fields': ('name', 'address', 'city', 'state', 'status')}),
        ('Location', {'fields': ('latitude', 'longitude')}),
        ('Capacity & Pricing', {'fields': ('total_slots', 'available_slots', 'hourly_rate')}),
        ('Timestamps', {'fields': ('created_at', 'updated_at'), 'classes': ('collapse',)}),
    )


@admin.register(ParkingSlot)
class ParkingSlotAdmin(admin.ModelAdmin):
    list_display = ['slot_number', 'parking_lot', 'slot_type', 'status', 'hourly_rate', 'floor_level']
    list_filter = ['slot_type', 'status', 'parking_lot']
    search_fields = ['slot_number', 'parking_lot__name']
    readonly_fields = ['created_at', 'updated_at']
