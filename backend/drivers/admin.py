from django.contrib import admin
from drivers.models import DriverProfile


@admin.register(DriverProfile)
class DriverProfileAdmin(admin.ModelAdmin):
    """Admin panel for managing Driver Profiles"""

    list_display = [
        "external_id",
        "first_name",
        "last_name",
        "vehicle_make",
        "car_seats",
        "pets",
        "status",
        "last_online",
    ]

    list_filter = [
        "status",
        "pets",
        "car_seats",
    ]

    search_fields = [
        "external_id",
        "first_name",
        "last_name",
        "vehicle_make",
    ]

    readonly_fields = [
        "last_online",
        "last_offline",
    ]

    ordering = ("external_id",)
