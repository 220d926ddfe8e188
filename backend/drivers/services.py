from typing import Optional

from django.utils import timezone

from drivers.models import DriverProfile


def get_driver_by_external_id(external_id: str) -> Optional[DriverProfile]:
    """Resolve a driver's document from the identity provider's account id."""
    if not external_id:
        return None
    return DriverProfile.objects.filter(external_id=external_id).first()


def assignment_fields(profile: DriverProfile) -> dict:
    """Driver details copied onto a ride when the driver accepts it."""
    return {
        "assigned_driver_name": profile.display_name,
        "assigned_driver_car": profile.car_label,
        "assigned_driver_seats": profile.car_seats or 4,
    }


# DRIVER LOCATION / PRESENCE
def mark_driver_online(profile_id: int, lat: float, lon: float) -> int:
    """
    Merge the latest position into the driver's document and flag them online.
    Returns the number of rows updated (0 if the document vanished).
    """
    return DriverProfile.objects.filter(pk=profile_id).update(
        latitude=lat,
        longitude=lon,
        status=True,
        last_online=timezone.now(),
    )


def mark_driver_offline(profile_id: int) -> int:
    return DriverProfile.objects.filter(pk=profile_id).update(
        status=False,
        last_offline=timezone.now(),
    )
