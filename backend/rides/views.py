import logging

from django.conf import settings
from rest_framework import status
from rest_framework.decorators import api_view, permission_classes, throttle_classes
from rest_framework.permissions import AllowAny, IsAdminUser
from rest_framework.response import Response
from rest_framework.throttling import AnonRateThrottle, UserRateThrottle

from services.factory import build_lifecycle_manager, build_matching_engine
from services.ride_management.cache import RouteCache
from services.ride_management.exceptions import InvalidRequestError
from services.ride_management import queries

from .serializers import (
    ArchivedRidesQuerySerializer,
    JoinRideSerializer,
    RideCreateSerializer,
    RideRequestInputSerializer,
    RideSerializer,
    RideStatusSerializer,
    SweepSerializer,
)
from .throttles import RideWriteThrottle

logger = logging.getLogger(__name__)

WRITE_THROTTLES = [AnonRateThrottle, UserRateThrottle, RideWriteThrottle]


def _route_filter(request, name):
    value = request.query_params.get(name)
    if value in (None, ''):
        return None
    try:
        return int(value)
    except ValueError:
        raise InvalidRequestError(f"'{name}' must be a location id.")


def _listing_cache():
    return RouteCache(timeout=getattr(settings, 'RIDE_LIST_CACHE_SECONDS', 60))


# ==================== Public Ride APIs ====================

@api_view(['GET', 'POST'])
@permission_classes([AllowAny])
@throttle_classes(WRITE_THROTTLES)
def rides_collection(request):
    """
    GET: waiting rides that have not departed yet (optional origin/destination filters)
    POST: post a new ride explicitly
    """
    if request.method == 'POST':
        return _create_ride(request)

    origin_id = _route_filter(request, 'origin')
    destination_id = _route_filter(request, 'destination')

    # Keep the listing honest: archive departed rides and drop orphans first
    build_lifecycle_manager().run_opportunistic_sweeps()

    rides = _listing_cache().get_or_set(
        origin_id,
        destination_id,
        lambda: list(RideSerializer(
            queries.list_available_rides(origin_id, destination_id), many=True
        ).data)
    )
    return Response(rides)


def _create_ride(request):
    serializer = RideCreateSerializer(data=request.data)
    if not serializer.is_valid():
        return Response(serializer.errors, status=status.HTTP_400_BAD_REQUEST)

    data = serializer.validated_data
    ride = build_matching_engine().create_ride(
        creator_name=data['name'],
        creator_phone=data.get('phone', ''),
        origin_id=data['origin'],
        destination_id=data['destination'],
        departure_time=data['departure_time'],
        max_passengers=data.get('max_passengers'),
        notes=data.get('notes', ''),
    )
    return Response(
        {'success': True, 'ride': RideSerializer(ride).data},
        status=status.HTTP_201_CREATED
    )


@api_view(['POST'])
@permission_classes([AllowAny])
@throttle_classes(WRITE_THROTTLES)
def request_ride(request):
    """
    Join the best matching waiting ride or open a new one.

    201 when a ride was created, 200 when the passenger joined an existing one.
    """
    serializer = RideRequestInputSerializer(data=request.data)
    if not serializer.is_valid():
        return Response(serializer.errors, status=status.HTTP_400_BAD_REQUEST)

    data = serializer.validated_data
    result = build_matching_engine().request_ride(
        passenger_name=data['name'],
        passenger_phone=data['phone'],
        origin_id=data['origin'],
        destination_id=data['destination'],
        departure_time=data['departure_time'],
        idempotency_key=data.get('idempotency_key') or None,
    )

    return Response({
        'success': True,
        'created': result.created,
        'message': 'New ride created' if result.created else 'Joined an existing ride',
        'ride': RideSerializer(result.ride).data,
    }, status=status.HTTP_201_CREATED if result.created else status.HTTP_200_OK)


@api_view(['GET'])
@permission_classes([AllowAny])
def ride_detail(request, ride_id):
    ride = queries.get_ride(ride_id)
    return Response(RideSerializer(ride).data)


@api_view(['POST'])
@permission_classes([AllowAny])
@throttle_classes(WRITE_THROTTLES)
def join_ride(request, ride_id):
    """Join a specific ride by id"""
    serializer = JoinRideSerializer(data=request.data)
    if not serializer.is_valid():
        return Response(serializer.errors, status=status.HTTP_400_BAD_REQUEST)

    data = serializer.validated_data
    ride = build_matching_engine().add_passenger(
        ride_id,
        name=data['name'],
        phone=data['phone'],
        idempotency_key=data.get('idempotency_key') or None,
    )
    return Response({'success': True, 'ride': RideSerializer(ride).data})


@api_view(['PUT'])
@permission_classes([AllowAny])
@throttle_classes(WRITE_THROTTLES)
def update_ride_status(request, ride_id):
    serializer = RideStatusSerializer(data=request.data)
    if not serializer.is_valid():
        return Response(serializer.errors, status=status.HTTP_400_BAD_REQUEST)

    ride = build_lifecycle_manager().update_status(ride_id, serializer.validated_data['status'])
    return Response({'success': True, 'ride': RideSerializer(ride).data})


# ==================== Admin APIs ====================

@api_view(['GET'])
@permission_classes([IsAdminUser])
def admin_dashboard(request):
    """Today's rides and every upcoming waiting / in-progress ride"""
    data = queries.dashboard()
    return Response({
        'today': RideSerializer(data['today'], many=True).data,
        'upcoming': RideSerializer(data['upcoming'], many=True).data,
    })


@api_view(['GET'])
@permission_classes([IsAdminUser])
def admin_archived_rides(request):
    serializer = ArchivedRidesQuerySerializer(data=request.query_params)
    if not serializer.is_valid():
        return Response(serializer.errors, status=status.HTTP_400_BAD_REQUEST)

    rides = queries.archived_rides(limit=serializer.validated_data['limit'])
    return Response(RideSerializer(rides, many=True).data)


@api_view(['POST'])
@permission_classes([IsAdminUser])
def admin_run_sweeps(request):
    """Run archive, purge and orphan sweeps now"""
    serializer = SweepSerializer(data=request.data)
    if not serializer.is_valid():
        return Response(serializer.errors, status=status.HTTP_400_BAD_REQUEST)

    result = build_lifecycle_manager().run_sweeps(serializer.validated_data.get('retention_days'))
    logger.info("Manual sweep by %s: %s", request.user, result)
    return Response(result)
