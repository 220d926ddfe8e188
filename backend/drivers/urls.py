from django.urls import path
from .views import (
    DriverLocationUpdateView,
    DriverOfflineView,
)

urlpatterns = [
    path("location/", DriverLocationUpdateView.as_view(), name="driver-location"),
    path("offline/", DriverOfflineView.as_view(), name="driver-offline"),
]
