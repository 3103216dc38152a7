# ==================== PARKING/SERIALIZERS.PY ====================
from rest_framework import serializers
from .models import ParkingLot, ParkingSlot


class ParkingSlotSerializer(serializers.ModelSerializer):
    effective_hourly_rate = serializers.DecimalField(max_digits=10, decimal_places=2, read_only=True)

    class Meta:
        model = ParkingSlot
        fields = ['id', 'parking_lot', 'slot_number', 'slot_type', 'hourly_rate', 'effective_hourly_rate',
                  'floor_level', 'status', 'created_at', 'updated_at']
        read_only_fields = ['created_at', 'updated_at']


class ParkingLotListSerializer(serializers.ModelSerializer):
    """Simplified serializer for listing parking lots"""
    distance = serializers.SerializerMethodField()

    class Meta:
        model = ParkingLot
        fields = ['id', 'name', 'address', 'city', 'state', 'latitude', 'longitude', 'total_slots',
                  'available_slots', 'hourly_rate', 'status', 'distance']

    def get_distance(self, obj):
        """Distance from the searched location, set by the nearby search"""
        distances = self.context.get('distances') or {}
        return distances.get(obj.id)


class ParkingLotDetailSerializer(serializers.ModelSerializer):
    """Detailed serializer for a parking lot with its slots"""
    slots = ParkingSlotSerializer(many=True, read_only=True)

    class Meta:
        model = ParkingLot
        fields = '__all__'


class ParkingLotCreateUpdateSerializer(serializers.ModelSerializer):
    """For creating/updating parking lots"""

    class Meta:
        model = ParkingLot
        fields = ['id', 'name', 'address', 'city', 'state', 'latitude', 'longitude', 'total_slots',
                  'available_slots', 'hourly_rate', 'status']
        read_only_fields = ['id']
        extra_kwargs = {'available_slots': {'required': False}}

    def validate(self, data):
        total_slots = data.get('total_slots', getattr(self.instance, 'total_slots', None))
        available_slots = data.get('available_slots')
        if available_slots is not None and total_slots is not None and available_slots > total_slots:
            raise serializers.ValidationError("Available slots cannot exceed total slots")
        return data


class AvailabilityQuerySerializer(serializers.Serializer):
    vehicle_type = serializers.ChoiceField(choices=ParkingSlot.SLOT_TYPE_CHOICES)
    start_time = serializers.DateTimeField()
    end_time = serializers.DateTimeField()

    def validate(self, data):
        if data['end_time'] <= data['start_time']:
            raise serializers.ValidationError("End time must be after start time")
        return data


class BulkSlotSerializer(serializers.Serializer):
    prefix = serializers.CharField(max_length=10)
    start_number = serializers.IntegerField(min_value=0, default=1)
    count = serializers.IntegerField(min_value=1, max_value=500)
    slot_type = serializers.ChoiceField(choices=ParkingSlot.SLOT_TYPE_CHOICES)
    hourly_rate = serializers.DecimalField(max_digits=10, decimal_places=2, required=False, allow_null=True)


class NearbyQuerySerializer(serializers.Serializer):
    lat = serializers.FloatField(min_value=-90, max_value=90)
    lng = serializers.FloatField(min_value=-180, max_value=180)
    radius = serializers.FloatField(min_value=0, default=5)
