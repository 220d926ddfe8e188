from rest_framework import serializers
from drivers.models import DriverProfile


class DriverProfileSerializer(serializers.ModelSerializer):
    """
    Driver document as seen by the driver app.
    """
    display_name = serializers.CharField(read_only=True)
    car_label = serializers.CharField(read_only=True)

    class Meta:
        model = DriverProfile
        fields = [
            "external_id",
            "display_name",
            "car_label",
            "car_seats",
            "pets",
            "status",
            "latitude",
            "longitude",
            "last_online",
            "last_offline",
        ]
        read_only_fields = fields


class DriverIdentitySerializer(serializers.Serializer):
    driverId = serializers.CharField(max_length=128)


class LocationUpdateSerializer(DriverIdentitySerializer):
    """
    Serializer for updating driver GPS location.
    """
    latitude = serializers.FloatField(min_value=-90, max_value=90)
    longitude = serializers.FloatField(min_value=-180, max_value=180)
    permission = serializers.BooleanField()
