from .settings import *

DEBUG = False
SECRET_KEY = "test-secret-key"

DATABASES = {
    'default': {
        'ENGINE': 'django.db.backends.sqlite3',
        'NAME': ':memory:',
    }
}

CACHES = {
    'default': {
        'BACKEND': 'django.core.cache.backends.locmem.LocMemCache',
        'LOCATION': 'carpool-tests',
    }
}

CHANNEL_LAYERS = {
    "default": {
        "BACKEND": "channels.layers.InMemoryChannelLayer",
    }
}

PASSWORD_HASHERS = ['django.contrib.auth.hashers.MD5PasswordHasher']

RIDE_SERVICE_HOURS = ""
RIDE_DEFAULT_MAX_PASSENGERS = 4
RIDE_MATCH_WINDOW_MINUTES = 30

CELERY_TASK_ALWAYS_EAGER = True
CELERY_TASK_EAGER_PROPAGATES = True
CELERY_BROKER_URL = "memory://"
CELERY_RESULT_BACKEND = "cache+memory://"

LOGGING['loggers']['services']['level'] = 'CRITICAL'
LOGGING['loggers']['rides']['level'] = 'CRITICAL'
LOGGING['loggers']['locations']['level'] = 'CRITICAL'
LOGGING['loggers']['realtime']['level'] = 'CRITICAL'
LOGGING['loggers']['app_backend']['level'] = 'CRITICAL'

REDIS_URL = ""

REST_FRAMEWORK = {
    **REST_FRAMEWORK,
    'DEFAULT_THROTTLE_RATES': {
        'anon': '10000/minute',
        'user': '10000/minute',
        'ride_writes': '10000/minute',
    },
}
