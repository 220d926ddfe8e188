from django.db import models


class DriverProfile(models.Model):
    """Driver details plus the live location/availability document."""

    # Account id issued by the external identity provider
    external_id = models.CharField(max_length=128, unique=True)

    first_name = models.CharField(max_length=100, blank=True, default='')
    last_name = models.CharField(max_length=100, blank=True, default='')

    # Vehicle details
    vehicle_make = models.CharField(max_length=100, blank=True, default='')
    car_seats = models.PositiveSmallIntegerField(default=4)
    pets = models.BooleanField(default=False)

    # Presence & location (written only by the driver's own session)
    status = models.BooleanField(default=False)  # online / available
    latitude = models.FloatField(null=True, blank=True)
    longitude = models.FloatField(null=True, blank=True)
    last_online = models.DateTimeField(null=True, blank=True)
    last_offline = models.DateTimeField(null=True, blank=True)

    class Meta:
        db_table = 'driver_profiles'

    def __str__(self):
        return f"{self.display_name} ({self.external_id})"

    @property
    def display_name(self) -> str:
        name = " ".join(part for part in [self.first_name, self.last_name] if part).strip()
        return name or "Driver"

    @property
    def car_label(self) -> str:
        return self.vehicle_make or "Vehicle"
