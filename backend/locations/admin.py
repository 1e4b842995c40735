"""Django admin for locations; deletes go through the registry guard"""

from django.contrib import admin, messages

from services.factory import build_event_bus
from services.locations import delete_location
from services.ride_management.exceptions import LocationInUseError
from .models import Location


@admin.register(Location)
class LocationAdmin(admin.ModelAdmin):
    list_display = ['name', 'address', 'latitude', 'longitude', 'is_active', 'created_at']
    list_filter = ['is_active']
    search_fields = ['name', 'address']
    readonly_fields = ['created_at', 'updated_at']
    actions = ['activate_locations', 'deactivate_locations']

    def delete_model(self, request, obj):
        try:
            result = delete_location(obj.pk, events=build_event_bus())
        except LocationInUseError as exc:
            self.message_user(request, exc.message, level=messages.ERROR)
            return
        if result.purged_rides:
            self.message_user(
                request,
                f"Removed {result.purged_rides} past ride(s) that used {result.name}.",
                level=messages.INFO
            )

    def delete_queryset(self, request, queryset):
        for location in queryset:
            self.delete_model(request, location)

    @admin.action(description="Mark selected locations as active")
    def activate_locations(self, request, queryset):
        queryset.update(is_active=True)

    @admin.action(description="Mark selected locations as inactive")
    def deactivate_locations(self, request, queryset):
        queryset.update(is_active=False)
