"""WebSocket URL routing for the realtime app."""

from django.urls import re_path

from .consumers.driver_consumer import DriverConsumer
from .consumers.eta_consumer import ETAConsumer

websocket_urlpatterns = [
    # Driver session: presence, ride offers, ride watching
    # URL: ws://localhost:8000/ws/driver/<driver_id>/
    re_path(
        r"ws/driver/(?P<driver_id>[^/]+)/$",
        DriverConsumer.as_asgi(),
        name="driver-ws"
    ),

    # Live ETA for one origin/destination pair
    # URL: ws://localhost:8000/ws/eta/
    re_path(
        r"ws/eta/$",
        ETAConsumer.as_asgi(),
        name="eta-ws"
    ),
]
