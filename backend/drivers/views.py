from rest_framework.views import APIView
from rest_framework.response import Response

from drivers.serializers import (
    DriverIdentitySerializer,
    DriverProfileSerializer,
    LocationUpdateSerializer,
)
from drivers import services
from drivers.models import DriverProfile
from drivers.presence import DriverPresenceTracker


# Utility: resolve the driver's document or build the 404
def require_driver(external_id):
    profile = services.get_driver_by_external_id(external_id)
    if profile is None:
        return False, Response({"success": False, "error": "Driver profile not found"}, status=404)
    return True, profile


#    HTTP fallback for the presence WebSocket, under the same permission rules.
class DriverLocationUpdateView(APIView):

    def post(self, request):
        serializer = LocationUpdateSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        data = serializer.validated_data

        tracker = DriverPresenceTracker(data["driverId"])
        if not tracker.start(permission_granted=data["permission"]):
            if tracker.profile_id is None:
                return Response({"success": False, "error": "Driver profile not found"}, status=404)
            return Response({"success": False, "error": "Location permission not granted"}, status=403)

        if not tracker.record_position(data["latitude"], data["longitude"]):
            return Response({"success": False, "error": "Could not update location right now"}, status=503)

        profile = DriverProfile.objects.get(pk=tracker.profile_id)
        return Response({
            "success": True,
            "message": "Location updated",
            "driver": DriverProfileSerializer(profile).data,
        })


class DriverOfflineView(APIView):

    def post(self, request):
        serializer = DriverIdentitySerializer(data=request.data)
        serializer.is_valid(raise_exception=True)

        ok, profile = require_driver(serializer.validated_data["driverId"])
        if ok is False:
            return profile

        services.mark_driver_offline(profile.pk)
        return Response({"success": True, "status": False})
