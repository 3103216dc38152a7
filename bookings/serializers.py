# ==================== BOOKINGS/SERIALIZERS.PY ====================
import re
from rest_framework import serializers
from .models import Booking
from .services import BookingService, normalize_vehicle_number
from parking.serializers import ParkingLotListSerializer, ParkingSlotSerializer

VEHICLE_NUMBER_PATTERN = re.compile(r'^[A-Z0-9]{4,10}$')


class BookingCreateSerializer(serializers.ModelSerializer):

    class Meta:
        model = Booking
        fields = ['id', 'parking_lot', 'parking_slot', 'vehicle_number', 'vehicle_type', 'start_time', 'end_time']
        read_only_fields = ['id']

    def validate_vehicle_number(self, value):
        cleaned = normalize_vehicle_number(value)
        if not VEHICLE_NUMBER_PATTERN.match(cleaned):
            raise serializers.ValidationError("Enter a valid vehicle number (4-10 letters or digits)")
        return cleaned

    def validate(self, data):
        if data['end_time'] <= data['start_time']:
            raise serializers.ValidationError("End time must be after start time")

        if data['parking_slot'].parking_lot_id != data['parking_lot'].id:
            raise serializers.ValidationError("Parking slot does not belong to the selected parking lot")

        return data

    def create(self, validated_data):
        user = self.context['request'].user
        return BookingService.create(
            user=user,
            lot=validated_data['parking_lot'],
            slot=validated_data['parking_slot'],
            vehicle_number=validated_data['vehicle_number'],
            vehicle_type=validated_data['vehicle_type'],
            start_time=validated_data['start_time'],
            end_time=validated_data['end_time'],
        )


class BookingListSerializer(serializers.ModelSerializer):
    parking_lot_name = serializers.CharField(source='parking_lot.name', read_only=True)
    parking_lot_city = serializers.CharField(source='parking_lot.city', read_only=True)
    slot_number = serializers.CharField(source='parking_slot.slot_number', read_only=True)

    class Meta:
        model = Booking
        fields = ['id', 'parking_lot', 'parking_lot_name', 'parking_lot_city', 'parking_slot', 'slot_number',
                  'vehicle_number', 'vehicle_type', 'start_time', 'end_time', 'status', 'total_amount',
                  'created_at']
        read_only_fields = fields


class BookingDetailSerializer(serializers.ModelSerializer):
    parking_lot = ParkingLotListSerializer(read_only=True)
    parking_slot = ParkingSlotSerializer(read_only=True)
    duration_hours = serializers.IntegerField(read_only=True)

    class Meta:
        model = Booking
        fields = '__all__'
        read_only_fields = ['user', 'qr_code', 'created_at', 'updated_at']


class BookingStatusUpdateSerializer(serializers.Serializer):
    status = serializers.ChoiceField(choices=Booking.STATUS_CHOICES)
    vehicle_number = serializers.CharField(max_length=20, required=False)
    actual_start_time = serializers.DateTimeField(required=False)
    actual_end_time = serializers.DateTimeField(required=False)

    def extra_fields(self):
        return {key: value for key, value in self.validated_data.items() if key != 'status'}


class QRTokenSerializer(serializers.Serializer):
    qr_code = serializers.CharField(trim_whitespace=False)
