from datetime import timedelta
from io import StringIO

from django.contrib import admin
from django.contrib.auth import get_user_model
from django.core.management import call_command
from django.test import RequestFactory, TestCase
from django.utils import timezone
from rest_framework.test import APIClient
from unittest.mock import patch

from rides.constants import STATUS_CANCELLED, STATUS_COMPLETED, STATUS_WAITING
from rides.models import Passenger, Ride
from services.events import RIDE_PURGED, RecordingEventSink
from services.locations import (
	create_location,
	delete_location,
	get_location,
	list_locations,
	seed_locations,
	toggle_active,
)
from services.ride_management import (
	DuplicateNameError,
	InvalidRequestError,
	LocationInUseError,
	LocationNotFoundError,
)
from .management.commands.seed_locations import SAMPLE_LOCATIONS
from .models import Location

User = get_user_model()


class LocationRegistryTests(TestCase):
	def test_create_location(self):
		location = create_location('  Nayi PG ', address='Sector 2', latitude='12.9716', longitude=77.5946)

		self.assertEqual(location.name, 'Nayi PG')
		self.assertTrue(location.is_active)
		self.assertEqual(location.coordinates, {'lat': 12.9716, 'lng': 77.5946})

	def test_duplicate_name_is_rejected(self):
		create_location('Main Office')

		with self.assertRaises(DuplicateNameError):
			create_location('Main Office')

	def test_invalid_input_is_rejected(self):
		with self.assertRaises(InvalidRequestError):
			create_location('X')
		with self.assertRaises(InvalidRequestError):
			create_location('North Pole', latitude=91, longitude=0)
		with self.assertRaises(InvalidRequestError):
			create_location('Nowhere', latitude='abc')
		self.assertFalse(Location.objects.exists())

	def test_toggle_active(self):
		location = create_location('Branch Office')

		self.assertFalse(toggle_active(location.pk).is_active)
		self.assertTrue(toggle_active(location.pk).is_active)

		with self.assertRaises(LocationNotFoundError):
			toggle_active(12345)

	def test_list_and_get(self):
		create_location('Gym')
		hidden = create_location('Closed Cafe', is_active=False)

		self.assertEqual([loc.name for loc in list_locations(active_only=True)], ['Gym'])
		self.assertEqual(len(list_locations()), 2)
		self.assertEqual(get_location(hidden.pk).name, 'Closed Cafe')
		with self.assertRaises(LocationNotFoundError):
			get_location(12345)


class LocationDeletionTests(TestCase):
	def setUp(self):
		self.now = timezone.now()
		self.pg = create_location('Puraani PG')
		self.office = create_location('Corporate Office')

	def ride(self, status, hours=1):
		return Ride.objects.create(
			origin=self.pg,
			destination=self.office,
			departure_time=self.now + timedelta(hours=hours),
			status=status,
			max_passengers=4,
		)

	def test_active_ride_blocks_delete(self):
		waiting = self.ride(STATUS_WAITING)

		with self.assertRaises(LocationInUseError) as ctx:
			delete_location(self.office.pk)

		self.assertEqual(ctx.exception.details['ride_ids'], [waiting.pk])
		self.assertTrue(Location.objects.filter(pk=self.office.pk).exists())
		self.assertTrue(Ride.objects.filter(pk=waiting.pk).exists())

	def test_delete_purges_historical_rides(self):
		done = self.ride(STATUS_COMPLETED, hours=-5)
		Passenger.objects.create(ride=done, name='P1', phone='9000000001')
		cancelled = self.ride(STATUS_CANCELLED)
		events = RecordingEventSink()

		with self.captureOnCommitCallbacks(execute=True):
			result = delete_location(self.office.pk, events=events)

		self.assertEqual(result.purged_rides, 2)
		self.assertEqual(result.name, 'Corporate Office')
		self.assertFalse(Location.objects.filter(pk=self.office.pk).exists())
		self.assertFalse(Ride.objects.filter(pk__in=[done.pk, cancelled.pk]).exists())
		self.assertFalse(Passenger.objects.exists())
		self.assertEqual(events.kinds(), [RIDE_PURGED, RIDE_PURGED])

	def test_delete_unknown_location(self):
		with self.assertRaises(LocationNotFoundError):
			delete_location(12345)


class SeedLocationsTests(TestCase):
	def test_seed_is_repeatable(self):
		created, skipped = seed_locations(SAMPLE_LOCATIONS)
		self.assertEqual((created, skipped), (len(SAMPLE_LOCATIONS), 0))

		created, skipped = seed_locations(SAMPLE_LOCATIONS)
		self.assertEqual((created, skipped), (0, len(SAMPLE_LOCATIONS)))

	def test_replace_keeps_locations_in_use(self):
		busy = create_location('Busy Stop')
		create_location('Unused Stop')
		Ride.objects.create(
			origin=busy,
			destination=create_location('Elsewhere'),
			departure_time=timezone.now() + timedelta(hours=1),
		)

		seed_locations([{'name': 'Fresh Stop'}], replace=True)

		names = set(Location.objects.values_list('name', flat=True))
		self.assertIn('Busy Stop', names)
		self.assertIn('Elsewhere', names)
		self.assertIn('Fresh Stop', names)
		self.assertNotIn('Unused Stop', names)

	def test_seed_command(self):
		out = StringIO()
		call_command('seed_locations', stdout=out)

		self.assertIn(f'Created {len(SAMPLE_LOCATIONS)} locations', out.getvalue())
		self.assertTrue(Location.objects.filter(name='PG Main Gate').exists())


class LocationApiTests(TestCase):
	def setUp(self):
		self.client = APIClient()
		self.admin = User.objects.create_user(username='admin', password='admin1234', is_staff=True)
		self.active = create_location('Main Office')
		self.inactive = create_location('Old Office', is_active=False)

	def test_public_list_shows_active_only(self):
		response = self.client.get('/api/locations/')

		self.assertEqual(response.status_code, 200)
		self.assertEqual([loc['name'] for loc in response.data], ['Main Office'])

	def test_admin_list_requires_staff(self):
		response = self.client.get('/api/admin/locations/')
		self.assertIn(response.status_code, (401, 403))

		self.client.force_authenticate(user=self.admin)
		response = self.client.get('/api/admin/locations/')
		self.assertEqual(response.status_code, 200)
		self.assertEqual(len(response.data), 2)

	def test_admin_create_and_duplicate(self):
		self.client.force_authenticate(user=self.admin)

		response = self.client.post(
			'/api/admin/locations/',
			{'name': 'Nayi PG', 'address': 'Sector 2', 'latitude': '12.971600', 'longitude': '77.594600'},
			format='json'
		)
		self.assertEqual(response.status_code, 201)
		self.assertEqual(response.data['coordinates'], {'lat': 12.9716, 'lng': 77.5946})

		response = self.client.post('/api/admin/locations/', {'name': 'Nayi PG'}, format='json')
		self.assertEqual(response.status_code, 409)
		self.assertEqual(response.data['error'], 'duplicate_name')

	def test_admin_toggle(self):
		self.client.force_authenticate(user=self.admin)

		response = self.client.post(f'/api/admin/locations/{self.inactive.pk}/toggle/')

		self.assertEqual(response.status_code, 200)
		self.assertTrue(response.data['is_active'])

	def test_admin_delete_conflict_then_success(self):
		self.client.force_authenticate(user=self.admin)
		ride = Ride.objects.create(
			origin=self.active,
			destination=self.inactive,
			departure_time=timezone.now() + timedelta(hours=1),
		)

		response = self.client.delete(f'/api/admin/locations/{self.active.pk}/')
		self.assertEqual(response.status_code, 409)
		self.assertEqual(response.data['error'], 'location_in_use')
		self.assertEqual(response.data['ride_ids'], [ride.pk])

		Ride.objects.filter(pk=ride.pk).update(status=STATUS_CANCELLED)
		response = self.client.delete(f'/api/admin/locations/{self.active.pk}/')
		self.assertEqual(response.status_code, 200)
		self.assertEqual(response.data['purged_rides'], 1)

	def test_admin_delete_missing(self):
		self.client.force_authenticate(user=self.admin)

		response = self.client.delete('/api/admin/locations/12345/')

		self.assertEqual(response.status_code, 404)


class LocationAdminTests(TestCase):
	def setUp(self):
		self.model_admin = admin.site._registry[Location]
		self.request = RequestFactory().post('/admin/locations/location/')
		self.request.user = User.objects.create_superuser(username='root', password='root1234')

	@patch('locations.admin.LocationAdmin.message_user')
	def test_admin_delete_is_guarded(self, mock_message_user):
		location = create_location('Main Gate')
		Ride.objects.create(
			origin=location,
			destination=create_location('Tech Park'),
			departure_time=timezone.now() + timedelta(hours=1),
		)

		self.model_admin.delete_model(self.request, location)

		self.assertTrue(Location.objects.filter(pk=location.pk).exists())
		mock_message_user.assert_called_once()
