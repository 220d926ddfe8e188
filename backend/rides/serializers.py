from rest_framework import serializers

from .models import RideRequest
from .states import RideStatus, DriverAcceptance


class RideDocumentSerializer(serializers.Serializer):
    """Read-only view of an offer document (dict from the offer store)."""
    id = serializers.CharField()
    passenger_id = serializers.CharField(required=False, allow_blank=True)
    status = serializers.ChoiceField(choices=RideStatus.choices)
    driver_id = serializers.CharField(required=False, allow_blank=True)
    driver_acceptance = serializers.ChoiceField(choices=DriverAcceptance.choices, required=False, allow_blank=True)
    declined_driver_ids = serializers.ListField(child=serializers.CharField(), required=False)

    origin_latitude = serializers.FloatField(required=False, allow_null=True)
    origin_longitude = serializers.FloatField(required=False, allow_null=True)
    origin_address = serializers.CharField(required=False, allow_blank=True)
    destination_latitude = serializers.FloatField(required=False, allow_null=True)
    destination_longitude = serializers.FloatField(required=False, allow_null=True)
    destination_address = serializers.CharField(required=False, allow_blank=True)

    ride_type = serializers.CharField(required=False)
    traveling_with_pet = serializers.BooleanField(required=False)
    is_scheduled = serializers.BooleanField(required=False)
    scheduled_for = serializers.DateTimeField(required=False, allow_null=True)

    requested_driver_name = serializers.CharField(required=False, allow_blank=True)
    requested_driver_car = serializers.CharField(required=False, allow_blank=True)
    driver_distance_km = serializers.FloatField(required=False, allow_null=True)
    request_expires_at = serializers.DateTimeField(required=False, allow_null=True)

    assigned_driver_name = serializers.CharField(required=False, allow_blank=True)
    assigned_driver_car = serializers.CharField(required=False, allow_blank=True)
    assigned_driver_seats = serializers.IntegerField(required=False, allow_null=True)

    requested_at = serializers.DateTimeField(required=False, allow_null=True)
    accepted_at = serializers.DateTimeField(required=False, allow_null=True)
    started_at = serializers.DateTimeField(required=False, allow_null=True)
    completed_at = serializers.DateTimeField(required=False, allow_null=True)
    cancelled_at = serializers.DateTimeField(required=False, allow_null=True)
    cancellation_reason = serializers.CharField(required=False, allow_blank=True)


class OfferResponseSerializer(serializers.Serializer):
    """Body of accept-ride / decline-ride."""
    rideId = serializers.CharField(max_length=64)
    driverId = serializers.CharField(max_length=128)


class DriverActionSerializer(serializers.Serializer):
    """Body of start / complete."""
    driverId = serializers.CharField(max_length=128)


class RideCancelSerializer(serializers.Serializer):
    """Serializer for ride cancellation"""
    reason = serializers.CharField(required=False, allow_blank=True, default="No reason provided")


class AssignDriverSerializer(serializers.Serializer):
    rideId = serializers.CharField(max_length=64)


class LocationSerializer(serializers.Serializer):
    """
    One endpoint of a quote: ``{lat, lng}``, ``{address}`` or ``{placeId}``
    (any mix is accepted; at least one form is required).
    """
    lat = serializers.FloatField(required=False, min_value=-90, max_value=90)
    lng = serializers.FloatField(required=False, min_value=-180, max_value=180)
    address = serializers.CharField(required=False, allow_blank=True)
    placeId = serializers.CharField(required=False, allow_blank=True)

    def validate(self, attrs):
        has_coords = attrs.get("lat") is not None and attrs.get("lng") is not None
        if not (has_coords or attrs.get("address") or attrs.get("placeId")):
            raise serializers.ValidationError("Provide lat/lng, an address or a placeId.")
        return attrs


class QuoteRequestSerializer(serializers.Serializer):
    origin = LocationSerializer()
    destination = LocationSerializer()
    rideType = serializers.ChoiceField(choices=RideRequest.RIDE_TYPE_CHOICES, required=False)


class RideCreateSerializer(serializers.ModelSerializer):
    """Serializer for creating ride requests"""

    class Meta:
        model = RideRequest
        fields = [
            'passenger_id',
            'origin_latitude', 'origin_longitude', 'origin_address',
            'destination_latitude', 'destination_longitude', 'destination_address',
            'ride_type', 'traveling_with_pet', 'is_scheduled', 'scheduled_for',
        ]
        extra_kwargs = {
            'passenger_id': {'required': True, 'allow_blank': False},
            'origin_latitude': {'required': True, 'allow_null': False},
            'origin_longitude': {'required': True, 'allow_null': False},
        }

    def validate(self, attrs):
        if attrs.get('is_scheduled') and not attrs.get('scheduled_for'):
            raise serializers.ValidationError({'scheduled_for': 'Required for a scheduled ride.'})
        has_destination = (
            attrs.get('destination_latitude') is not None and attrs.get('destination_longitude') is not None
        ) or attrs.get('destination_address')
        if not has_destination:
            raise serializers.ValidationError({'destination': 'Provide destination coordinates or an address.'})
        return attrs
