from rest_framework import serializers

from locations.models import Location
from .constants import MAX_SEATS, MIN_SEATS, STATUS_CHOICES
from .models import Passenger, Ride

PHONE_REGEX = r'^[\d\-\+\(\)\s]+$'


class PassengerSerializer(serializers.ModelSerializer):
    """Serializer for a ride's roster entry"""

    class Meta:
        model = Passenger
        fields = ['id', 'name', 'phone', 'joined_at']
        read_only_fields = fields


class RideSerializer(serializers.ModelSerializer):
    """Serializer for Rides, with both locations inlined"""
    origin = serializers.SerializerMethodField()
    destination = serializers.SerializerMethodField()
    available_seats = serializers.IntegerField(read_only=True, allow_null=True)
    passengers = PassengerSerializer(many=True, read_only=True)

    class Meta:
        model = Ride
        fields = ['id', 'origin', 'destination', 'departure_time', 'status',
                  'creator_name', 'max_passengers', 'seats_taken', 'available_seats',
                  'notes', 'passengers', 'created_at', 'updated_at']

    def _location(self, ride, attr):
        # Orphaned rides keep their ids but the location row is gone
        try:
            location = getattr(ride, attr)
        except Location.DoesNotExist:
            location = None
        location_id = getattr(ride, f'{attr}_id')
        if location is None:
            return {'id': location_id, 'name': None}
        return {
            'id': location.id,
            'name': location.name,
            'address': location.address,
            'coordinates': location.coordinates,
        }

    def get_origin(self, ride):
        return self._location(ride, 'origin')

    def get_destination(self, ride):
        return self._location(ride, 'destination')


class RideRequestInputSerializer(serializers.Serializer):
    """Serializer for a find-or-create ride request"""
    name = serializers.CharField(min_length=2, max_length=50, trim_whitespace=True)
    phone = serializers.RegexField(
        PHONE_REGEX,
        min_length=10,
        max_length=15,
        error_messages={'invalid': 'Phone number can only contain digits, spaces and + - ( ).'}
    )
    origin = serializers.IntegerField(min_value=1)
    destination = serializers.IntegerField(min_value=1)
    departure_time = serializers.DateTimeField()
    idempotency_key = serializers.CharField(max_length=100, required=False, allow_blank=True)

    def validate(self, attrs):
        if attrs['origin'] == attrs['destination']:
            raise serializers.ValidationError(
                {'destination': 'Origin and destination must be different.'}
            )
        return attrs


class RideCreateSerializer(RideRequestInputSerializer):
    """Serializer for explicitly posting a ride"""
    phone = serializers.RegexField(PHONE_REGEX, min_length=10, max_length=15, required=False, allow_blank=True)
    max_passengers = serializers.IntegerField(
        min_value=MIN_SEATS, max_value=MAX_SEATS, required=False, allow_null=True
    )
    notes = serializers.CharField(max_length=500, required=False, allow_blank=True)
    idempotency_key = None


class JoinRideSerializer(serializers.Serializer):
    """Serializer for joining a specific ride"""
    name = serializers.CharField(min_length=2, max_length=50, trim_whitespace=True)
    phone = serializers.RegexField(PHONE_REGEX, min_length=10, max_length=15)
    idempotency_key = serializers.CharField(max_length=100, required=False, allow_blank=True)


class RideStatusSerializer(serializers.Serializer):
    """Serializer for explicit status changes"""
    status = serializers.ChoiceField(choices=STATUS_CHOICES)


class SweepSerializer(serializers.Serializer):
    retention_days = serializers.IntegerField(min_value=0, required=False, allow_null=True)


class ArchivedRidesQuerySerializer(serializers.Serializer):
    limit = serializers.IntegerField(min_value=1, max_value=500, default=100)
