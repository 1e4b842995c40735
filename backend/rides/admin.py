"""Tells what to show in the Django admin interface for rides app"""

from django.contrib import admin
from .models import Passenger, Ride


class PassengerInline(admin.TabularInline):
    """Roster is view-only here; seats are claimed through the matching engine"""
    model = Passenger
    extra = 0
    fields = ['name', 'phone', 'joined_at']
    readonly_fields = fields
    can_delete = False

    def has_add_permission(self, request, obj=None):
        return False

    def has_change_permission(self, request, obj=None):
        return False

    def has_delete_permission(self, request, obj=None):
        return False


@admin.register(Ride)
class RideAdmin(admin.ModelAdmin):
    """Ride admin"""
    list_display = ['id', 'origin_id', 'destination_id', 'departure_time', 'status',
                    'seats_taken', 'max_passengers', 'creator_name', 'created_at']
    list_filter = ['status', 'departure_time']
    search_fields = ['creator_name', 'creator_phone', 'passengers__phone']
    readonly_fields = ['seats_taken', 'created_at', 'updated_at']
    date_hierarchy = 'departure_time'
    inlines = [PassengerInline]
