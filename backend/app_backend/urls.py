from django.contrib import admin
from django.urls import path, include

from .views import health_check

urlpatterns = [
    path('admin/', admin.site.urls),
    path("health/", health_check), # Health check endpoint

    # Public and admin ride endpoints (at /api/rides/ and /api/admin/)
    path('api/', include('rides.urls')),

    # Location registry endpoints (at /api/locations/ and /api/admin/locations/)
    path('api/', include('locations.urls')),
]
