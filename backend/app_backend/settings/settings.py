"""
Django settings for app_backend project.

Values that differ between environments come from the environment, with a
``.env`` file next to ``backend/`` loaded first.
"""

import os
from pathlib import Path

from celery.schedules import crontab
from dotenv import load_dotenv

BASE_DIR = Path(__file__).resolve().parent.parent.parent
load_dotenv(os.path.join(BASE_DIR, '..', '.env'))


def env_bool(name, default=False):
    return os.getenv(name, str(default)).strip().lower() in ("1", "true", "yes", "on")


SECRET_KEY = os.getenv("SECRET_KEY", "django-insecure-carpool-dev-key-change-me")
DEBUG = env_bool("DEBUG", True)
ALLOWED_HOSTS = os.getenv("ALLOWED_HOSTS", "*").split(',')


INSTALLED_APPS = [
    'daphne',
    'django.contrib.admin',
    'django.contrib.auth',
    'django.contrib.contenttypes',
    'django.contrib.sessions',
    'django.contrib.messages',
    'django.contrib.staticfiles',

    # Third party
    'rest_framework',
    'corsheaders',
    'channels',

    # Local apps
    'locations',
    'rides',
    'realtime',
]

MIDDLEWARE = [
    'corsheaders.middleware.CorsMiddleware',
    'django.middleware.security.SecurityMiddleware',
    'django.contrib.sessions.middleware.SessionMiddleware',
    'django.middleware.common.CommonMiddleware',
    'django.middleware.csrf.CsrfViewMiddleware',
    'django.contrib.auth.middleware.AuthenticationMiddleware',
    'django.contrib.messages.middleware.MessageMiddleware',
    'django.middleware.clickjacking.XFrameOptionsMiddleware',
]

ROOT_URLCONF = 'app_backend.urls'

TEMPLATES = [
    {
        'BACKEND': 'django.template.backends.django.DjangoTemplates',
        'DIRS': [],
        'APP_DIRS': True,
        'OPTIONS': {
            'context_processors': [
                'django.template.context_processors.request',
                'django.contrib.auth.context_processors.auth',
                'django.contrib.messages.context_processors.messages',
            ],
        },
    },
]

WSGI_APPLICATION = 'app_backend.wsgi.application'
ASGI_APPLICATION = 'app_backend.asgi.application'


# Database
# SQLite by default; set DB_ENGINE=postgresql (and DB_NAME, DB_USER, ...) for Postgres.

DB_TIMEOUT_SECONDS = int(os.getenv("DB_TIMEOUT_SECONDS", 8))

if os.getenv("DB_ENGINE", "sqlite") == "postgresql":
    DATABASES = {
        'default': {
            'ENGINE': 'django.db.backends.postgresql',
            'NAME': os.getenv("DB_NAME", "carpool"),
            'USER': os.getenv("DB_USER", "postgres"),
            'PASSWORD': os.getenv("DB_PASSWORD", ""),
            'HOST': os.getenv("DB_HOST", "localhost"),
            'PORT': os.getenv("DB_PORT", "5432"),
            'CONN_MAX_AGE': 60,
            'OPTIONS': {
                'connect_timeout': DB_TIMEOUT_SECONDS,
                'options': f"-c statement_timeout={DB_TIMEOUT_SECONDS * 1000}",
            },
        }
    }
else:
    DATABASES = {
        'default': {
            'ENGINE': 'django.db.backends.sqlite3',
            'NAME': os.getenv("DB_NAME", str(BASE_DIR / 'db.sqlite3')),
            'OPTIONS': {
                'timeout': DB_TIMEOUT_SECONDS,
            },
        }
    }

DEFAULT_AUTO_FIELD = 'django.db.models.BigAutoField'


# Cache and channel layer

REDIS_URL = os.getenv("REDIS_URL", "")

if REDIS_URL:
    CACHES = {
        'default': {
            'BACKEND': 'django.core.cache.backends.redis.RedisCache',
            'LOCATION': REDIS_URL,
        }
    }
else:
    CACHES = {
        'default': {
            'BACKEND': 'django.core.cache.backends.locmem.LocMemCache',
            'LOCATION': 'carpool',
        }
    }

CHANNEL_LAYERS = {
    "default": {
        "BACKEND": "channels.layers.InMemoryChannelLayer",
    }
}


AUTH_PASSWORD_VALIDATORS = [
    {'NAME': 'django.contrib.auth.password_validation.UserAttributeSimilarityValidator'},
    {'NAME': 'django.contrib.auth.password_validation.MinimumLengthValidator'},
    {'NAME': 'django.contrib.auth.password_validation.CommonPasswordValidator'},
    {'NAME': 'django.contrib.auth.password_validation.NumericPasswordValidator'},
]


REST_FRAMEWORK = {
    'DEFAULT_AUTHENTICATION_CLASSES': [
        'rest_framework.authentication.SessionAuthentication',
        'rest_framework.authentication.BasicAuthentication',
    ],
    'DEFAULT_PERMISSION_CLASSES': [
        'rest_framework.permissions.AllowAny',
    ],
    'DEFAULT_THROTTLE_CLASSES': [
        'rest_framework.throttling.AnonRateThrottle',
        'rest_framework.throttling.UserRateThrottle',
    ],
    'DEFAULT_THROTTLE_RATES': {
        'anon': os.getenv("API_RATE_ANON", "400/hour"),
        'user': os.getenv("API_RATE_USER", "2000/hour"),
        'ride_writes': os.getenv("API_RATE_RIDE_WRITES", "200/hour"),
    },
    'EXCEPTION_HANDLER': 'app_backend.exceptions.api_exception_handler',
}

CORS_ALLOW_ALL_ORIGINS = DEBUG


# Internationalization
# Service hours are checked against the local hour of departure.

LANGUAGE_CODE = 'en-us'
TIME_ZONE = os.getenv("TIME_ZONE", "Asia/Kolkata")
USE_I18N = True
USE_TZ = True

STATIC_URL = 'static/'
STATIC_ROOT = BASE_DIR / 'staticfiles'


# Logging

LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")

LOGGING = {
    'version': 1,
    'disable_existing_loggers': False,
    'formatters': {
        'verbose': {
            'format': '{asctime} {levelname} {name} {message}',
            'style': '{',
        },
    },
    'handlers': {
        'console': {
            'class': 'logging.StreamHandler',
            'formatter': 'verbose',
        },
    },
    'root': {
        'handlers': ['console'],
        'level': 'WARNING',
    },
    'loggers': {
        'django': {'handlers': ['console'], 'level': 'INFO', 'propagate': False},
        'services': {'handlers': ['console'], 'level': LOG_LEVEL, 'propagate': False},
        'rides': {'handlers': ['console'], 'level': LOG_LEVEL, 'propagate': False},
        'locations': {'handlers': ['console'], 'level': LOG_LEVEL, 'propagate': False},
        'realtime': {'handlers': ['console'], 'level': LOG_LEVEL, 'propagate': False},
        'app_backend': {'handlers': ['console'], 'level': LOG_LEVEL, 'propagate': False},
    },
}


# Ride policy

RIDE_MATCH_WINDOW_MINUTES = int(os.getenv("RIDE_MATCH_WINDOW_MINUTES", 30))
RIDE_DEFAULT_MAX_PASSENGERS = int(os.getenv("RIDE_DEFAULT_MAX_PASSENGERS", 4) or 0)
RIDE_SERVICE_HOURS = os.getenv("RIDE_SERVICE_HOURS", "")
RIDE_ARCHIVE_RETENTION_DAYS = int(os.getenv("RIDE_ARCHIVE_RETENTION_DAYS", 30))
RIDE_SWEEP_THROTTLE_SECONDS = int(os.getenv("RIDE_SWEEP_THROTTLE_SECONDS", 60))
RIDE_SWEEP_HOUR = int(os.getenv("RIDE_SWEEP_HOUR", 3))
RIDE_LIST_CACHE_SECONDS = int(os.getenv("RIDE_LIST_CACHE_SECONDS", 60))


# Celery

CELERY_BROKER_URL = os.getenv("CELERY_BROKER_URL", REDIS_URL or "redis://localhost:6379/0")
CELERY_RESULT_BACKEND = os.getenv("CELERY_RESULT_BACKEND", CELERY_BROKER_URL)
CELERY_ACCEPT_CONTENT = ["json"]
CELERY_TASK_SERIALIZER = "json"
CELERY_RESULT_SERIALIZER = "json"
CELERY_TIMEZONE = TIME_ZONE

CELERY_BEAT_SCHEDULE = {
    "run-ride-sweeps": {
        "task": "rides.tasks.run_ride_sweeps_task",
        "schedule": crontab(hour=RIDE_SWEEP_HOUR, minute=0),
    },
}
