from rest_framework import serializers

from .models import Location


class LocationSerializer(serializers.ModelSerializer):
    """Serializer for Locations"""
    coordinates = serializers.SerializerMethodField()

    class Meta:
        model = Location
        fields = ['id', 'name', 'address', 'latitude', 'longitude', 'coordinates',
                  'is_active', 'created_at', 'updated_at']
        read_only_fields = ['id', 'is_active', 'created_at', 'updated_at']

    def get_coordinates(self, location):
        return location.coordinates


class LocationCreateSerializer(serializers.Serializer):
    """Serializer for creating locations from the admin API"""
    name = serializers.CharField(min_length=2, max_length=100, trim_whitespace=True)
    address = serializers.CharField(max_length=200, required=False, allow_blank=True)
    latitude = serializers.DecimalField(
        max_digits=9, decimal_places=6, min_value=-90, max_value=90,
        required=False, allow_null=True
    )
    longitude = serializers.DecimalField(
        max_digits=9, decimal_places=6, min_value=-180, max_value=180,
        required=False, allow_null=True
    )
    is_active = serializers.BooleanField(required=False, default=True)
