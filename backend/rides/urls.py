from django.urls import path
from . import views

app_name = 'rides'

urlpatterns = [
    # Public ride APIs
    path('rides/', views.rides_collection, name='ride-list'),
    path('rides/request/', views.request_ride, name='request-ride'),
    path('rides/<int:ride_id>/', views.ride_detail, name='ride-detail'),
    path('rides/<int:ride_id>/join/', views.join_ride, name='join-ride'),
    path('rides/<int:ride_id>/status/', views.update_ride_status, name='ride-status'),

    # Admin APIs
    path('admin/dashboard/', views.admin_dashboard, name='admin-dashboard'),
    path('admin/rides/archived/', views.admin_archived_rides, name='admin-archived-rides'),
    path('admin/sweeps/', views.admin_run_sweeps, name='admin-run-sweeps'),
]
