"""Settings used by the test suite: in-memory everything, no network."""

from .base import *

DEBUG = False

DATABASES = {
    'default': {
        'ENGINE': 'django.db.backends.sqlite3',
        'NAME': ':memory:',
    }
}

CHANNEL_LAYERS = {
    "default": {
        "BACKEND": "channels.layers.InMemoryChannelLayer",
    }
}

CELERY_TASK_ALWAYS_EAGER = True
CELERY_TASK_EAGER_PROPAGATES = False
CELERY_BROKER_URL = "memory://"
CELERY_RESULT_BACKEND = "cache+memory://"

DIRECTIONS_API_KEY = "test-directions-key"
OFFER_EXPIRY_SECONDS = 120
ETA_POLL_SECONDS = 20

LOGGING["root"]["level"] = "WARNING"
