from django.db import models
from django.conf import settings

from .states import RideStatus, DriverAcceptance


class RideRequest(models.Model):
    """
    One ride request document (the "offer").

    Targeted at a single driver at a time through ``driver_id``; drivers who
    declined are kept in ``declined_driver_ids`` and never re-targeted.
    """

    RIDE_TYPE_CHOICES = [
        ('standard', 'Standard'),
        ('comfort', 'Comfort'),
        ('xl', 'XL'),
    ]

    # Opaque, stable id used by both apps
    id = models.CharField(primary_key=True, max_length=64)

    # External account id of the passenger (identity provider)
    passenger_id = models.CharField(max_length=128, blank=True, default='')

    # Origin
    origin_latitude = models.FloatField(null=True, blank=True)
    origin_longitude = models.FloatField(null=True, blank=True)
    origin_address = models.TextField(blank=True, default='')

    # Destination
    destination_latitude = models.FloatField(null=True, blank=True)
    destination_longitude = models.FloatField(null=True, blank=True)
    destination_address = models.TextField(blank=True, default='')

    # Dispatch constraints
    ride_type = models.CharField(max_length=16, choices=RIDE_TYPE_CHOICES, default='standard')
    traveling_with_pet = models.BooleanField(default=False)
    is_scheduled = models.BooleanField(default=False)
    scheduled_for = models.DateTimeField(null=True, blank=True)

    # Offer state
    status = models.CharField(
        max_length=32,
        choices=RideStatus.choices,
        default=RideStatus.REQUESTED_PENDING_DRIVER,
    )
    driver_id = models.CharField(max_length=128, blank=True, default='')
    declined_driver_ids = models.JSONField(default=list, blank=True)
    driver_acceptance = models.CharField(
        max_length=16,
        choices=DriverAcceptance.choices,
        blank=True,
        default=DriverAcceptance.UNSET,
    )

    # Current target details
    requested_driver_name = models.CharField(max_length=255, blank=True, default='')
    requested_driver_car = models.CharField(max_length=255, blank=True, default='')
    driver_distance_km = models.FloatField(null=True, blank=True)
    targeted_at = models.DateTimeField(null=True, blank=True)
    request_expires_at = models.DateTimeField(null=True, blank=True)
    last_assignment_request_id = models.CharField(max_length=128, blank=True, default='')

    # Accepted driver details
    assigned_driver_name = models.CharField(max_length=255, blank=True, default='')
    assigned_driver_car = models.CharField(max_length=255, blank=True, default='')
    assigned_driver_seats = models.PositiveSmallIntegerField(null=True, blank=True)

    # Timestamps (each set once)
    created_at = models.DateTimeField(auto_now_add=True)
    requested_at = models.DateTimeField(null=True, blank=True)
    accepted_at = models.DateTimeField(null=True, blank=True)
    started_at = models.DateTimeField(null=True, blank=True)
    completed_at = models.DateTimeField(null=True, blank=True)
    cancelled_at = models.DateTimeField(null=True, blank=True)
    processed_at = models.DateTimeField(null=True, blank=True)

    cancellation_reason = models.TextField(blank=True, default='')

    class Meta:
        db_table = 'ride_requests'
        ordering = ['-created_at']
        indexes = [
            models.Index(fields=['status', 'request_expires_at']),
        ]

    def __str__(self):
        return f"Ride {self.id} - {self.status} - driver {self.driver_id or '-'}"


class PricingConfig(models.Model):
    """Single-row fare configuration, edited from the admin."""

    base_fare_cents = models.PositiveIntegerField()
    per_mile_cents = models.PositiveIntegerField()
    per_minute_cents = models.PositiveIntegerField()
    minimum_fare_cents = models.PositiveIntegerField()
    surge_multiplier = models.FloatField(default=1.0)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        db_table = 'pricing_config'

    def __str__(self):
        return f"Pricing (base={self.base_fare_cents}c, surge={self.surge_multiplier}x)"

    @classmethod
    def load(cls) -> "PricingConfig":
        config = cls.objects.order_by('id').first()
        if config is None:
            config = cls.objects.create(**settings.PRICING_DEFAULTS)
        return config
