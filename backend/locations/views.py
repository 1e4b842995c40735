from rest_framework import status
from rest_framework.decorators import api_view, permission_classes
from rest_framework.permissions import AllowAny, IsAdminUser
from rest_framework.response import Response

from services.factory import build_event_bus
from services.locations import (
    create_location,
    delete_location,
    list_locations,
    toggle_active,
)

from .serializers import LocationCreateSerializer, LocationSerializer


@api_view(['GET'])
@permission_classes([AllowAny])
def active_locations(request):
    """Locations riders can pick from"""
    return Response(LocationSerializer(list_locations(active_only=True), many=True).data)


# ==================== Admin APIs ====================

@api_view(['GET', 'POST'])
@permission_classes([IsAdminUser])
def admin_locations(request):
    """
    GET: every location, active or not
    POST: create a location
    """
    if request.method == 'GET':
        return Response(LocationSerializer(list_locations(), many=True).data)

    serializer = LocationCreateSerializer(data=request.data)
    if not serializer.is_valid():
        return Response(serializer.errors, status=status.HTTP_400_BAD_REQUEST)

    location = create_location(**serializer.validated_data)
    return Response(LocationSerializer(location).data, status=status.HTTP_201_CREATED)


@api_view(['POST'])
@permission_classes([IsAdminUser])
def admin_toggle_location(request, location_id):
    location = toggle_active(location_id)
    return Response(LocationSerializer(location).data)


@api_view(['DELETE'])
@permission_classes([IsAdminUser])
def admin_delete_location(request, location_id):
    """Delete a location; refused while active rides use it"""
    result = delete_location(location_id, events=build_event_bus())
    return Response({
        'success': True,
        'id': result.location_id,
        'name': result.name,
        'purged_rides': result.purged_rides,
    })
