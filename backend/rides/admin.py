"""Tells what to show in the Django admin interface for rides app"""

from django.contrib import admin
from .models import RideRequest, PricingConfig


@admin.register(RideRequest)
class RideRequestAdmin(admin.ModelAdmin):
    """Ride Request admin"""
    list_display = ['id', 'passenger_id', 'driver_id', 'status', 'ride_type', 'request_expires_at', 'created_at']
    list_filter = ['status', 'ride_type', 'is_scheduled']
    search_fields = ['id', 'passenger_id', 'driver_id', 'origin_address', 'destination_address']
    readonly_fields = ['created_at', 'requested_at', 'accepted_at', 'started_at', 'completed_at', 'cancelled_at', 'processed_at']
    date_hierarchy = 'created_at'


@admin.register(PricingConfig)
class PricingConfigAdmin(admin.ModelAdmin):
    list_display = ("base_fare_cents", "per_mile_cents", "per_minute_cents", "minimum_fare_cents", "surge_multiplier", "updated_at")
