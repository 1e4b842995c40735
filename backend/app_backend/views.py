import redis
from django.conf import settings
from django.core.cache import cache
from django.utils import timezone
from rest_framework.decorators import api_view
from rest_framework.response import Response
from rest_framework import status
from channels.layers import get_channel_layer

from locations.models import Location
from rides.tasks import run_ride_sweeps_task


def _database():
    Location.objects.exists()


def _redis():
    redis.Redis.from_url(settings.REDIS_URL, socket_timeout=3).ping()


def _cache():
    cache.set("health:ping", "pong", 5)
    if cache.get("health:ping") != "pong":
        raise RuntimeError("value not stored")


def _channels():
    if get_channel_layer() is None:
        raise RuntimeError("no channel layer")


def _celery():
    if run_ride_sweeps_task.name not in run_ride_sweeps_task.app.tasks:
        raise RuntimeError("task not registered")


@api_view(["GET"])
def health_check(request):
    """Health check endpoint for monitoring system status"""
    checks = [("database", _database), ("cache", _cache), ("channels", _channels), ("celery", _celery)]
    # Redis is optional in local development
    if settings.REDIS_URL:
        checks.insert(1, ("redis", _redis))

    services = {}
    healthy = True
    for name, check in checks:
        try:
            check()
            services[name] = "healthy"
        except Exception as e:
            services[name] = f"unhealthy: {e}"
            healthy = False

    return Response(
        {
            "status": "healthy" if healthy else "unhealthy",
            "timestamp": timezone.now().isoformat(),
            "services": services,
        },
        status=status.HTTP_200_OK if healthy else status.HTTP_503_SERVICE_UNAVAILABLE,
    )
