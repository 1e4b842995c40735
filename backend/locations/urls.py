from django.urls import path
from . import views

app_name = 'locations'

urlpatterns = [
    path('locations/', views.active_locations, name='location-list'),

    # Admin APIs
    path('admin/locations/', views.admin_locations, name='admin-locations'),
    path('admin/locations/<int:location_id>/', views.admin_delete_location, name='admin-delete-location'),
    path('admin/locations/<int:location_id>/toggle/', views.admin_toggle_location, name='admin-toggle-location'),
]
