import logging

from rest_framework import status
from rest_framework.decorators import api_view
from rest_framework.response import Response

from services.matching.dispatcher import assign_next_driver
from services.quoting.pricing import estimate_fare_cents
from services.quoting.quote_engine import Location, QuoteEngine
from services.ride_management import ride_lifecycle
from .models import PricingConfig
from .serializers import (
    AssignDriverSerializer,
    DriverActionSerializer,
    OfferResponseSerializer,
    QuoteRequestSerializer,
    RideCancelSerializer,
    RideCreateSerializer,
    RideDocumentSerializer,
)

logger = logging.getLogger(__name__)

# error_code -> HTTP status for failed ride operations; anything else is a 409
ERROR_STATUS = {
    'driver_not_found': status.HTTP_404_NOT_FOUND,
    'store_unavailable': status.HTTP_503_SERVICE_UNAVAILABLE,
}


def _failure_response(result):
    return Response(
        {
            'success': False,
            'error': result.message,
            'code': result.error_code,
        },
        status=ERROR_STATUS.get(result.error_code, status.HTTP_409_CONFLICT),
    )


# ==================== Offer Responses (driver app) ====================

@api_view(['POST'])
def accept_ride(request):
    """Accept the offer currently targeted at this driver."""
    serializer = OfferResponseSerializer(data=request.data)
    if not serializer.is_valid():
        return Response(serializer.errors, status=status.HTTP_400_BAD_REQUEST)

    data = serializer.validated_data
    result = ride_lifecycle.handle_accept(data['rideId'], data['driverId'])
    if not result.success:
        return _failure_response(result)

    return Response({
        'success': True,
        'rideId': data['rideId'],
        'status': result.ride['status'],
        'assigned_driver_name': result.ride.get('assigned_driver_name'),
        'message': result.message,
    })


@api_view(['POST'])
def decline_ride(request):
    """Decline the offer; the ride is re-targeted at the next driver if one is eligible."""
    serializer = OfferResponseSerializer(data=request.data)
    if not serializer.is_valid():
        return Response(serializer.errors, status=status.HTTP_400_BAD_REQUEST)

    data = serializer.validated_data
    result = ride_lifecycle.handle_decline(data['rideId'], data['driverId'])
    if not result.success:
        return _failure_response(result)

    extra = result.extra or {}
    response = {
        'success': True,
        'declined': True,
        'reassigned': extra.get('reassigned', False),
    }
    driver = extra.get('dispatch', {}).get('driver')
    if response['reassigned'] and driver:
        response['nextDriver'] = driver
    return Response(response)


# ==================== Quotes ====================

@api_view(['POST'])
def quote(request):
    """
    Distance and drive time for a trip, plus a fare when ``rideType`` is given.

    Quoting failures are reported in the body with a 200 so the caller can
    degrade gracefully; only a malformed body is a 400.
    """
    serializer = QuoteRequestSerializer(data=request.data)
    if not serializer.is_valid():
        return Response(serializer.errors, status=status.HTTP_400_BAD_REQUEST)

    data = serializer.validated_data
    result = QuoteEngine().compute_quote(
        Location.from_payload(data['origin']),
        Location.from_payload(data['destination']),
    )
    payload = result.as_payload()

    ride_type = data.get('rideType')
    if result.success and ride_type:
        try:
            payload['fareCents'] = estimate_fare_cents(
                result.distance_miles,
                result.drive_minutes,
                ride_type,
                PricingConfig.load(),
            )
        except Exception:
            logger.exception('Could not price quote for ride type %s', ride_type)

    return Response(payload, status=status.HTTP_200_OK)


# ==================== Passenger Ride APIs ====================

@api_view(['POST'])
def create_ride_request(request):
    """Create a ride waiting for a driver and target the closest eligible one."""
    serializer = RideCreateSerializer(data=request.data)
    if not serializer.is_valid():
        return Response(serializer.errors, status=status.HTTP_400_BAD_REQUEST)

    ride, dispatch = ride_lifecycle.create_ride_request(dict(serializer.validated_data))
    return Response(
        {
            **RideDocumentSerializer(ride).data,
            'dispatch': dispatch.as_payload(),
        },
        status=status.HTTP_201_CREATED,
    )


@api_view(['POST'])
def assign_driver(request):
    """Target the ride at the next eligible driver (idempotent per X-Idempotency-Key)."""
    serializer = AssignDriverSerializer(data=request.data)
    if not serializer.is_valid():
        return Response(serializer.errors, status=status.HTTP_400_BAD_REQUEST)

    idempotency_key = request.headers.get('X-Idempotency-Key') or None
    result = assign_next_driver(serializer.validated_data['rideId'], idempotency_key)

    if result.error_code == 'ride_not_found':
        return Response(result.as_payload(), status=status.HTTP_404_NOT_FOUND)
    if result.error_code == 'store_unavailable':
        return Response(result.as_payload(), status=status.HTTP_503_SERVICE_UNAVAILABLE)
    if result.error_code:
        return Response(result.as_payload(), status=status.HTTP_409_CONFLICT)
    return Response(result.as_payload())


# ==================== Ride Progress ====================

def _progress_response(result):
    if not result.success:
        return _failure_response(result)
    return Response({
        'success': True,
        'rideId': result.ride['id'],
        'status': result.ride['status'],
        'message': result.message,
    })


@api_view(['POST'])
def start_ride(request, ride_id):
    serializer = DriverActionSerializer(data=request.data)
    if not serializer.is_valid():
        return Response(serializer.errors, status=status.HTTP_400_BAD_REQUEST)
    return _progress_response(
        ride_lifecycle.handle_start(ride_id, serializer.validated_data['driverId'])
    )


@api_view(['POST'])
def complete_ride(request, ride_id):
    serializer = DriverActionSerializer(data=request.data)
    if not serializer.is_valid():
        return Response(serializer.errors, status=status.HTTP_400_BAD_REQUEST)
    return _progress_response(
        ride_lifecycle.handle_complete(ride_id, serializer.validated_data['driverId'])
    )


@api_view(['POST'])
def cancel_ride(request, ride_id):
    """Cancel from any non-terminal state (passenger or driver)."""
    serializer = RideCancelSerializer(data=request.data)
    if not serializer.is_valid():
        return Response(serializer.errors, status=status.HTTP_400_BAD_REQUEST)
    return _progress_response(
        ride_lifecycle.handle_cancel(ride_id, serializer.validated_data['reason'] or 'No reason provided')
    )
