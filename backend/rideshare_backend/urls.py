from django.contrib import admin
from django.urls import path, include

from .views import health_check

urlpatterns = [
    path('admin/', admin.site.urls),
    path("health/", health_check), # Health check endpoint

    # Driver APIs (location fallback, offline flag)
    path('api/driver/', include('drivers.urls')),

    # Rides endpoints (at /api/rides/): offers, quotes, dispatch, progress
    path('api/rides/', include('rides.urls')),
]
