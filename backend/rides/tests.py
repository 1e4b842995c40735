import random
import threading
import time
from concurrent.futures import ThreadPoolExecutor
from datetime import timedelta
from io import StringIO

from django.contrib import admin
from django.contrib.auth import get_user_model
from django.core.cache import cache
from django.core.exceptions import ImproperlyConfigured
from django.core.management import call_command
from django.db import OperationalError, connection
from django.test import RequestFactory, SimpleTestCase, TestCase, TransactionTestCase, override_settings
from django.utils import timezone
from rest_framework.test import APIClient
from unittest.mock import patch

from locations.models import Location
from services.events import (
	PASSENGER_JOINED,
	RIDE_CREATED,
	RIDE_PURGED,
	RIDE_STATUS_CHANGED,
	RecordingEventSink,
)
from services.matching import RideMatchingEngine, rules
from services.ride_management import (
	DuplicatePassengerError,
	InvalidRequestError,
	LocationInactiveError,
	OutsideServiceHoursError,
	PastDepartureError,
	RideFullError,
	RideLifecycleManager,
	RideNotFoundError,
	RidePolicy,
	StorageUnavailableError,
	UnknownLocationError,
)
from services.ride_management import parse_service_hours, queries
from .constants import (
	STATUS_ARCHIVED,
	STATUS_CANCELLED,
	STATUS_COMPLETED,
	STATUS_IN_PROGRESS,
	STATUS_WAITING,
)
from .models import Passenger, Ride
from .tasks import run_ride_sweeps_task
from .throttles import RideWriteThrottle

User = get_user_model()


def make_ride(origin, destination, departure_time, **kwargs):
	kwargs.setdefault('status', STATUS_WAITING)
	kwargs.setdefault('max_passengers', 4)
	return Ride.objects.create(
		origin_id=origin.pk if hasattr(origin, 'pk') else origin,
		destination_id=destination.pk if hasattr(destination, 'pk') else destination,
		departure_time=departure_time,
		**kwargs
	)


class RideMatchingEngineTests(TestCase):
	def setUp(self):
		self.now = timezone.now()
		self.pg = Location.objects.create(name='PG')
		self.office = Location.objects.create(name='Office')
		self.events = RecordingEventSink()
		self.engine = RideMatchingEngine(events=self.events, clock=lambda: self.now)

	def request(self, name, phone, minutes=60, engine=None, **kwargs):
		return (engine or self.engine).request_ride(
			name,
			phone,
			self.pg.pk,
			self.office.pk,
			self.now + timedelta(minutes=minutes),
			**kwargs
		)

	def test_second_request_within_window_joins_first_ride(self):
		first = self.request('P1', '9000000001', minutes=60)
		self.assertTrue(first.created)
		self.assertEqual(first.ride.passengers.count(), 1)
		self.assertEqual(first.ride.status, STATUS_WAITING)

		second = self.request('P2', '9000000002', minutes=70)
		self.assertFalse(second.created)
		self.assertEqual(second.ride.pk, first.ride.pk)
		self.assertEqual(second.ride.seats_taken, 2)
		self.assertEqual(
			list(second.ride.passengers.values_list('phone', flat=True)),
			['9000000001', '9000000002']
		)

	def test_request_outside_window_creates_new_ride(self):
		first = self.request('P1', '9000000001', minutes=60)
		second = self.request('P2', '9000000002', minutes=91)

		self.assertTrue(second.created)
		self.assertNotEqual(second.ride.pk, first.ride.pk)
		self.assertEqual(Ride.objects.count(), 2)

	def test_window_boundary_is_inclusive(self):
		first = self.request('P1', '9000000001', minutes=60)
		second = self.request('P2', '9000000002', minutes=90)

		self.assertFalse(second.created)
		self.assertEqual(second.ride.pk, first.ride.pk)

	def test_full_ride_rejects_request(self):
		engine = RideMatchingEngine(
			policy=RidePolicy(default_max_passengers=2),
			events=self.events,
			clock=lambda: self.now
		)
		ride = self.request('P1', '9000000001', engine=engine).ride
		self.request('P2', '9000000002', engine=engine)

		with self.assertRaises(RideFullError):
			self.request('P3', '9000000003', engine=engine)

		ride.refresh_from_db()
		self.assertEqual(ride.seats_taken, 2)
		self.assertEqual(ride.passengers.count(), 2)
		self.assertEqual(Ride.objects.count(), 1)

	def test_duplicate_phone_leaves_ride_unchanged(self):
		ride = self.request('P1', '9000000001').ride

		with self.assertRaises(DuplicatePassengerError):
			self.request('Someone Else', '9000000001', minutes=65)

		ride.refresh_from_db()
		self.assertEqual(ride.seats_taken, 1)
		self.assertEqual(ride.passengers.count(), 1)

	def test_oldest_ride_wins_tie_break(self):
		older = make_ride(
			self.pg, self.office, self.now + timedelta(minutes=75),
			created_at=self.now - timedelta(minutes=10)
		)
		make_ride(
			self.pg, self.office, self.now + timedelta(minutes=60),
			created_at=self.now - timedelta(minutes=5)
		)

		result = self.request('P1', '9000000001', minutes=60)

		self.assertFalse(result.created)
		self.assertEqual(result.ride.pk, older.pk)

	def test_equal_created_at_falls_back_to_lowest_id(self):
		created_at = self.now - timedelta(minutes=5)
		first = make_ride(self.pg, self.office, self.now + timedelta(hours=1), created_at=created_at)
		make_ride(self.pg, self.office, self.now + timedelta(hours=1), created_at=created_at)

		result = self.request('P1', '9000000001')

		self.assertEqual(result.ride.pk, first.pk)

	def test_departed_and_closed_rides_are_not_matched(self):
		make_ride(self.pg, self.office, self.now - timedelta(minutes=5))
		make_ride(self.pg, self.office, self.now + timedelta(minutes=15), status=STATUS_IN_PROGRESS)
		make_ride(self.pg, self.office, self.now + timedelta(minutes=15), status=STATUS_CANCELLED)

		result = self.request('P1', '9000000001', minutes=10)

		self.assertTrue(result.created)

	def test_reverse_route_is_a_different_route(self):
		make_ride(self.office, self.pg, self.now + timedelta(hours=1))

		result = self.request('P1', '9000000001')

		self.assertTrue(result.created)

	def test_past_departure_is_rejected(self):
		with self.assertRaises(PastDepartureError):
			self.request('P1', '9000000001', minutes=-1)
		with self.assertRaises(PastDepartureError):
			self.request('P1', '9000000001', minutes=0)
		self.assertFalse(Ride.objects.exists())

	def test_same_origin_and_destination_is_rejected(self):
		with self.assertRaises(InvalidRequestError):
			self.engine.request_ride(
				'P1', '9000000001', self.pg.pk, self.pg.pk, self.now + timedelta(hours=1)
			)

	def test_unknown_location_is_rejected(self):
		with self.assertRaises(UnknownLocationError):
			self.engine.request_ride(
				'P1', '9000000001', self.pg.pk, 99999, self.now + timedelta(hours=1)
			)
		self.assertFalse(Ride.objects.exists())

	def test_inactive_location_is_rejected(self):
		self.office.is_active = False
		self.office.save()

		with self.assertRaises(LocationInactiveError):
			self.request('P1', '9000000001')
		self.assertFalse(Ride.objects.exists())

	def test_service_hours_are_enforced(self):
		engine = RideMatchingEngine(
			policy=RidePolicy(service_hours=(6, 22)),
			clock=lambda: self.now
		)
		tomorrow = timezone.localtime(self.now) + timedelta(days=1)

		with self.assertRaises(OutsideServiceHoursError):
			engine.request_ride(
				'P1', '9000000001', self.pg.pk, self.office.pk,
				tomorrow.replace(hour=23, minute=0)
			)

		result = engine.request_ride(
			'P1', '9000000001', self.pg.pk, self.office.pk,
			tomorrow.replace(hour=9, minute=0)
		)
		self.assertTrue(result.created)

	def test_idempotency_key_replays_original_result(self):
		first = self.request('P1', '9000000001', idempotency_key='req-1')
		retry = self.request('P1', '9000000001', idempotency_key='req-1')

		self.assertTrue(first.created)
		self.assertFalse(retry.created)
		self.assertTrue(retry.replayed)
		self.assertEqual(retry.ride.pk, first.ride.pk)
		self.assertEqual(Passenger.objects.count(), 1)

	def test_joined_at_is_non_decreasing(self):
		ride = self.request('P1', '9000000001').ride
		self.now = self.now - timedelta(seconds=30)
		self.request('P2', '9000000002')

		joined = list(ride.passengers.values_list('joined_at', flat=True))
		self.assertEqual(joined, sorted(joined))

	def test_events_are_published_after_commit(self):
		with self.captureOnCommitCallbacks(execute=True):
			self.request('P1', '9000000001')
		with self.captureOnCommitCallbacks(execute=True):
			self.request('P2', '9000000002')

		self.assertEqual(self.events.kinds(), [RIDE_CREATED, PASSENGER_JOINED])
		self.assertEqual(self.events.events[1].payload['seats_taken'], 2)

	def test_failed_request_publishes_nothing(self):
		self.request('P1', '9000000001')
		with self.captureOnCommitCallbacks(execute=True):
			with self.assertRaises(DuplicatePassengerError):
				self.request('P1', '9000000001')

		self.assertEqual(self.events.kinds(), [])

	def test_storage_failure_is_retried_then_reported(self):
		with patch.object(Location.objects, 'filter', side_effect=OperationalError('database is locked')) as mock_filter:
			with self.assertRaises(StorageUnavailableError):
				self.request('P1', '9000000001')

		self.assertEqual(mock_filter.call_count, 2)
		self.assertFalse(Ride.objects.exists())

	def test_find_match_is_read_only(self):
		self.assertIsNone(self.engine.find_match(self.pg.pk, self.office.pk, self.now + timedelta(hours=1)))
		ride = self.request('P1', '9000000001').ride

		match = self.engine.find_match(self.pg.pk, self.office.pk, self.now + timedelta(minutes=80))
		self.assertEqual(match.pk, ride.pk)
		self.assertEqual(Passenger.objects.count(), 1)


class AddPassengerTests(TestCase):
	def setUp(self):
		self.now = timezone.now()
		self.pg = Location.objects.create(name='PG')
		self.office = Location.objects.create(name='Office')
		self.engine = RideMatchingEngine(clock=lambda: self.now)

	def test_create_ride_seats_creator(self):
		ride = self.engine.create_ride(
			'Creator', '9000000001', self.pg.pk, self.office.pk,
			self.now + timedelta(hours=2), max_passengers=3, notes='Leaving from gate 2'
		)

		self.assertEqual(ride.max_passengers, 3)
		self.assertEqual(ride.seats_taken, 1)
		self.assertEqual(ride.available_seats, 2)
		self.assertEqual(ride.notes, 'Leaving from gate 2')
		self.assertEqual(ride.passengers.get().name, 'Creator')

	def test_create_ride_rejects_bad_capacity(self):
		for max_passengers in (0, 9):
			with self.assertRaises(InvalidRequestError):
				self.engine.create_ride(
					'Creator', '9000000001', self.pg.pk, self.office.pk,
					self.now + timedelta(hours=2), max_passengers=max_passengers
				)

	def test_join_until_full(self):
		ride = self.engine.create_ride(
			'Creator', '9000000001', self.pg.pk, self.office.pk,
			self.now + timedelta(hours=2), max_passengers=2
		)
		ride = self.engine.add_passenger(ride.pk, 'P2', '9000000002')
		self.assertTrue(ride.is_full())

		with self.assertRaises(RideFullError):
			self.engine.add_passenger(ride.pk, 'P3', '9000000003')

		ride.refresh_from_db()
		self.assertEqual(ride.seats_taken, 2)
		self.assertEqual(ride.passengers.count(), 2)

	def test_unlimited_ride_never_fills(self):
		engine = RideMatchingEngine(policy=RidePolicy(default_max_passengers=None), clock=lambda: self.now)
		ride = engine.create_ride('Creator', '', self.pg.pk, self.office.pk, self.now + timedelta(hours=1))

		for index in range(10):
			ride = engine.add_passenger(ride.pk, f'P{index}', f'90000000{index:02d}')

		self.assertIsNone(ride.max_passengers)
		self.assertEqual(ride.seats_taken, 10)
		self.assertIsNone(ride.available_seats)

	def test_join_closed_ride_is_rejected(self):
		ride = make_ride(self.pg, self.office, self.now + timedelta(hours=1), status=STATUS_IN_PROGRESS)

		with self.assertRaises(InvalidRequestError):
			self.engine.add_passenger(ride.pk, 'P1', '9000000001')

	def test_join_departed_ride_is_rejected(self):
		ride = make_ride(self.pg, self.office, self.now - timedelta(minutes=1))

		with self.assertRaises(InvalidRequestError):
			self.engine.add_passenger(ride.pk, 'P1', '9000000001')

	def test_join_unknown_ride(self):
		with self.assertRaises(RideNotFoundError):
			self.engine.add_passenger(12345, 'P1', '9000000001')

	def test_idempotency_key_is_bound_to_its_ride(self):
		first = make_ride(self.pg, self.office, self.now + timedelta(hours=1))
		second = make_ride(self.pg, self.office, self.now + timedelta(hours=2))
		self.engine.add_passenger(first.pk, 'P1', '9000000001', idempotency_key='join-1')

		retry = self.engine.add_passenger(first.pk, 'P1', '9000000001', idempotency_key='join-1')
		self.assertEqual(retry.pk, first.pk)
		self.assertEqual(retry.seats_taken, 1)

		with self.assertRaises(InvalidRequestError):
			self.engine.add_passenger(second.pk, 'P1', '9000000001', idempotency_key='join-1')
		self.assertEqual(second.passengers.count(), 0)


class RideLifecycleTests(TestCase):
	def setUp(self):
		cache.clear()
		self.now = timezone.now()
		self.pg = Location.objects.create(name='PG')
		self.office = Location.objects.create(name='Office')
		self.events = RecordingEventSink()
		self.manager = RideLifecycleManager(events=self.events, clock=lambda: self.now)

	def test_sweep_archive_archives_departed_rides(self):
		ride = make_ride(
			self.pg, self.office, self.now - timedelta(minutes=1),
			updated_at=self.now - timedelta(hours=2)
		)

		self.assertEqual(self.manager.sweep_archive(), 1)

		ride.refresh_from_db()
		self.assertEqual(ride.status, STATUS_ARCHIVED)
		self.assertEqual(ride.updated_at, self.now)

	def test_sweep_archive_is_idempotent(self):
		ride = make_ride(self.pg, self.office, self.now - timedelta(minutes=1))
		self.manager.sweep_archive()
		ride.refresh_from_db()
		archived_at = ride.updated_at

		self.now = self.now + timedelta(minutes=5)
		self.assertEqual(self.manager.sweep_archive(), 0)

		ride.refresh_from_db()
		self.assertEqual(ride.updated_at, archived_at)

	def test_sweep_archive_covers_every_non_archived_status(self):
		for status in (STATUS_WAITING, STATUS_IN_PROGRESS, STATUS_COMPLETED, STATUS_CANCELLED):
			make_ride(self.pg, self.office, self.now - timedelta(hours=1), status=status)
		upcoming = make_ride(self.pg, self.office, self.now + timedelta(hours=1))

		self.assertEqual(self.manager.sweep_archive(), 4)

		upcoming.refresh_from_db()
		self.assertEqual(upcoming.status, STATUS_WAITING)

	def test_sweep_archive_publishes_status_changes(self):
		make_ride(self.pg, self.office, self.now - timedelta(minutes=1))

		with self.captureOnCommitCallbacks(execute=True):
			self.manager.sweep_archive()

		self.assertEqual(self.events.kinds(), [RIDE_STATUS_CHANGED])
		self.assertEqual(self.events.events[0].status, STATUS_ARCHIVED)
		self.assertEqual(self.events.events[0].payload['previous_status'], STATUS_WAITING)

	def test_purge_removes_expired_archives(self):
		expired = make_ride(
			self.pg, self.office, self.now - timedelta(days=40),
			status=STATUS_ARCHIVED, updated_at=self.now - timedelta(days=31)
		)
		Passenger.objects.create(ride=expired, name='P1', phone='9000000001')
		recent = make_ride(
			self.pg, self.office, self.now - timedelta(days=30),
			status=STATUS_ARCHIVED, updated_at=self.now - timedelta(days=29)
		)

		with self.captureOnCommitCallbacks(execute=True):
			self.assertEqual(self.manager.sweep_purge_expired(30), 1)

		self.assertFalse(Ride.objects.filter(pk=expired.pk).exists())
		self.assertFalse(Passenger.objects.filter(ride_id=expired.pk).exists())
		self.assertTrue(Ride.objects.filter(pk=recent.pk).exists())
		self.assertEqual(self.events.kinds(), [RIDE_PURGED])

	def test_purge_uses_policy_retention_by_default(self):
		manager = RideLifecycleManager(policy=RidePolicy(retention_days=10), clock=lambda: self.now)
		make_ride(
			self.pg, self.office, self.now - timedelta(days=12),
			status=STATUS_ARCHIVED, updated_at=self.now - timedelta(days=11)
		)

		self.assertEqual(manager.sweep_purge_expired(), 1)

	def test_purge_only_touches_archived_rides(self):
		make_ride(
			self.pg, self.office, self.now - timedelta(days=40),
			status=STATUS_COMPLETED, updated_at=self.now - timedelta(days=40)
		)

		self.assertEqual(self.manager.sweep_purge_expired(30), 0)

	def test_purge_rejects_negative_retention(self):
		with self.assertRaises(InvalidRequestError):
			self.manager.sweep_purge_expired(-1)

	def test_orphan_sweep_purges_history_and_reports_active(self):
		gone = Location.objects.create(name='Old Office')
		finished = make_ride(self.pg, gone, self.now - timedelta(days=1), status=STATUS_COMPLETED)
		waiting = make_ride(gone, self.office, self.now + timedelta(hours=1))
		healthy = make_ride(self.pg, self.office, self.now - timedelta(days=1), status=STATUS_ARCHIVED)
		Location.objects.filter(pk=gone.pk).delete()

		result = self.manager.sweep_orphans()

		self.assertEqual(result.purged, 1)
		self.assertEqual(result.blocking, [waiting.pk])
		self.assertFalse(Ride.objects.filter(pk=finished.pk).exists())
		self.assertTrue(Ride.objects.filter(pk=waiting.pk).exists())
		self.assertTrue(Ride.objects.filter(pk=healthy.pk).exists())

	def test_run_sweeps_reports_every_sweep(self):
		make_ride(self.pg, self.office, self.now - timedelta(minutes=1))

		result = self.manager.run_sweeps()

		self.assertEqual(result, {'archived': 1, 'purged': 0, 'orphans_purged': 0, 'blocking': []})

	def test_opportunistic_sweeps_are_throttled(self):
		manager = RideLifecycleManager(policy=RidePolicy(sweep_throttle_seconds=60), clock=lambda: self.now)
		make_ride(self.pg, self.office, self.now - timedelta(minutes=1))

		self.assertEqual(manager.run_opportunistic_sweeps()['archived'], 1)
		self.assertIsNone(manager.run_opportunistic_sweeps())

	def test_sweep_storage_failure_counts_as_zero(self):
		with patch.object(Ride.objects, 'filter', side_effect=OperationalError('connection lost')):
			self.assertEqual(self.manager.sweep_archive(), 0)

	def test_preview_counts_without_changing(self):
		ride = make_ride(self.pg, self.office, self.now - timedelta(minutes=1))

		preview = self.manager.preview_sweeps()

		self.assertEqual(preview, {'archive': 1, 'purge': 0, 'orphans': 0, 'blocking': 0})
		ride.refresh_from_db()
		self.assertEqual(ride.status, STATUS_WAITING)

	def test_status_transitions(self):
		ride = make_ride(self.pg, self.office, self.now + timedelta(hours=1))

		with self.captureOnCommitCallbacks(execute=True):
			ride = self.manager.update_status(ride.pk, STATUS_IN_PROGRESS)
		self.assertEqual(ride.status, STATUS_IN_PROGRESS)
		self.assertEqual(self.events.events[-1].payload['previous_status'], STATUS_WAITING)

		with self.assertRaises(InvalidRequestError):
			self.manager.update_status(ride.pk, STATUS_WAITING)

		ride = self.manager.update_status(ride.pk, STATUS_COMPLETED)
		self.assertEqual(ride.status, STATUS_COMPLETED)

		with self.assertRaises(InvalidRequestError):
			self.manager.update_status(ride.pk, STATUS_CANCELLED)

	def test_archived_rides_cannot_be_moved(self):
		ride = make_ride(self.pg, self.office, self.now - timedelta(hours=1), status=STATUS_ARCHIVED)

		with self.assertRaises(InvalidRequestError):
			self.manager.update_status(ride.pk, STATUS_WAITING)

	def test_status_update_validation(self):
		ride = make_ride(self.pg, self.office, self.now + timedelta(hours=1))

		with self.assertRaises(InvalidRequestError):
			self.manager.update_status(ride.pk, 'flying')
		with self.assertRaises(RideNotFoundError):
			self.manager.update_status(12345, STATUS_CANCELLED)


class RideQueryTests(TestCase):
	def setUp(self):
		self.now = timezone.now()
		self.pg = Location.objects.create(name='PG')
		self.office = Location.objects.create(name='Office')
		self.gym = Location.objects.create(name='Gym')

	def test_listing_hides_departed_closed_and_orphaned_rides(self):
		visible = make_ride(self.pg, self.office, self.now + timedelta(hours=1))
		make_ride(self.pg, self.office, self.now - timedelta(hours=1))
		make_ride(self.pg, self.office, self.now + timedelta(hours=1), status=STATUS_CANCELLED)
		make_ride(self.pg, 99999, self.now + timedelta(hours=1))

		rides = queries.list_available_rides(now=self.now)

		self.assertEqual([ride.pk for ride in rides], [visible.pk])

	def test_listing_filters_by_route(self):
		to_office = make_ride(self.pg, self.office, self.now + timedelta(hours=1))
		make_ride(self.pg, self.gym, self.now + timedelta(hours=1))

		rides = queries.list_available_rides(destination_id=self.office.pk, now=self.now)

		self.assertEqual([ride.pk for ride in rides], [to_office.pk])

	def test_dashboard_splits_today_and_upcoming(self):
		noon = timezone.localtime(self.now).replace(hour=12, minute=0, second=0, microsecond=0)
		later_today = make_ride(self.pg, self.office, noon + timedelta(hours=2))
		tomorrow = make_ride(self.pg, self.office, noon + timedelta(days=1))
		this_morning = make_ride(self.pg, self.office, noon - timedelta(hours=2), status=STATUS_COMPLETED)

		data = queries.dashboard(now=noon)

		self.assertEqual([ride.pk for ride in data['today']], [this_morning.pk, later_today.pk])
		self.assertEqual([ride.pk for ride in data['upcoming']], [later_today.pk, tomorrow.pk])

	def test_get_ride_not_found(self):
		with self.assertRaises(RideNotFoundError):
			queries.get_ride(12345)

	def test_get_ride_includes_orphans(self):
		ride = make_ride(self.pg, self.gym, self.now + timedelta(hours=1))
		Location.objects.filter(pk=self.gym.pk).delete()

		self.assertEqual(queries.get_ride(ride.pk).pk, ride.pk)

	def test_archived_rides_rejects_non_positive_limit(self):
		with self.assertRaises(InvalidRequestError):
			queries.archived_rides(limit=0)


class RideApiTests(TestCase):
	def setUp(self):
		cache.clear()
		self.client = APIClient()
		self.pg = Location.objects.create(name='PG')
		self.office = Location.objects.create(name='Office')
		self.departure = timezone.now() + timedelta(hours=1)
		self.admin = User.objects.create_user(username='admin', password='admin1234', is_staff=True)

	def payload(self, name='Passenger One', phone='9000000001', **overrides):
		data = {
			'name': name,
			'phone': phone,
			'origin': self.pg.pk,
			'destination': self.office.pk,
			'departure_time': self.departure.isoformat(),
		}
		data.update(overrides)
		return data

	def test_request_creates_then_joins(self):
		response = self.client.post('/api/rides/request/', self.payload(), format='json')
		self.assertEqual(response.status_code, 201)
		self.assertTrue(response.data['created'])
		ride_id = response.data['ride']['id']
		self.assertEqual(response.data['ride']['origin']['name'], 'PG')

		response = self.client.post(
			'/api/rides/request/',
			self.payload(name='Passenger Two', phone='9000000002'),
			format='json'
		)
		self.assertEqual(response.status_code, 200)
		self.assertFalse(response.data['created'])
		self.assertEqual(response.data['ride']['id'], ride_id)
		self.assertEqual(len(response.data['ride']['passengers']), 2)

	def test_request_validation_errors(self):
		response = self.client.post('/api/rides/request/', self.payload(phone='call me'), format='json')
		self.assertEqual(response.status_code, 400)
		self.assertIn('phone', response.data)

		response = self.client.post('/api/rides/request/', self.payload(name='A'), format='json')
		self.assertEqual(response.status_code, 400)
		self.assertIn('name', response.data)

		response = self.client.post(
			'/api/rides/request/', self.payload(destination=self.pg.pk), format='json'
		)
		self.assertEqual(response.status_code, 400)

	def test_service_errors_use_error_body(self):
		response = self.client.post('/api/rides/request/', self.payload(destination=99999), format='json')

		self.assertEqual(response.status_code, 400)
		self.assertEqual(response.data['error'], 'unknown_location')
		self.assertIn('message', response.data)

	def test_duplicate_and_full_rides(self):
		response = self.client.post('/api/rides/', {
			**self.payload(name='Creator'),
			'max_passengers': 1,
		}, format='json')
		self.assertEqual(response.status_code, 201)
		ride_id = response.data['ride']['id']

		response = self.client.post(
			f'/api/rides/{ride_id}/join/', {'name': 'Creator', 'phone': '9000000001'}, format='json'
		)
		self.assertEqual(response.status_code, 400)
		self.assertEqual(response.data['error'], 'duplicate_passenger')

		response = self.client.post(
			f'/api/rides/{ride_id}/join/', {'name': 'Late Comer', 'phone': '9000000009'}, format='json'
		)
		self.assertEqual(response.status_code, 400)
		self.assertEqual(response.data['error'], 'ride_full')

	def test_create_ride_rejects_bad_capacity(self):
		response = self.client.post('/api/rides/', {**self.payload(), 'max_passengers': 9}, format='json')

		self.assertEqual(response.status_code, 400)
		self.assertIn('max_passengers', response.data)

	def test_listing_is_cached_and_invalidated_by_events(self):
		response = self.client.get('/api/rides/')
		self.assertEqual(response.status_code, 200)
		self.assertEqual(response.data, [])

		with self.captureOnCommitCallbacks(execute=True):
			self.client.post('/api/rides/request/', self.payload(), format='json')

		response = self.client.get('/api/rides/', {'origin': self.pg.pk})
		self.assertEqual(len(response.data), 1)
		response = self.client.get('/api/rides/')
		self.assertEqual(len(response.data), 1)

	def test_listing_rejects_bad_filter(self):
		response = self.client.get('/api/rides/', {'origin': 'pg'})

		self.assertEqual(response.status_code, 400)
		self.assertEqual(response.data['error'], 'invalid_request')

	def test_ride_detail_and_status(self):
		ride = make_ride(self.pg, self.office, self.departure)

		response = self.client.get(f'/api/rides/{ride.pk}/')
		self.assertEqual(response.status_code, 200)
		self.assertEqual(response.data['status'], STATUS_WAITING)

		response = self.client.put(f'/api/rides/{ride.pk}/status/', {'status': STATUS_IN_PROGRESS}, format='json')
		self.assertEqual(response.status_code, 200)
		self.assertEqual(response.data['ride']['status'], STATUS_IN_PROGRESS)

		response = self.client.put(f'/api/rides/{ride.pk}/status/', {'status': STATUS_WAITING}, format='json')
		self.assertEqual(response.status_code, 400)
		self.assertEqual(response.data['error'], 'invalid_request')

	def test_missing_ride_is_404(self):
		response = self.client.get('/api/rides/12345/')

		self.assertEqual(response.status_code, 404)
		self.assertEqual(response.data['error'], 'not_found')

	@patch('rides.views.queries.get_ride')
	def test_storage_outage_is_503(self, mock_get_ride):
		mock_get_ride.side_effect = StorageUnavailableError()

		response = self.client.get('/api/rides/1/')

		self.assertEqual(response.status_code, 503)
		self.assertEqual(response.data['error'], 'storage_unavailable')

	@patch('rides.views.queries.get_ride')
	def test_unexpected_error_is_generic_500(self, mock_get_ride):
		mock_get_ride.side_effect = RuntimeError('secret internals')

		response = self.client.get('/api/rides/1/')

		self.assertEqual(response.status_code, 500)
		self.assertEqual(response.data['error'], 'internal_error')
		self.assertNotIn('secret', response.data['message'])

	def test_admin_endpoints_require_staff(self):
		for url in ('/api/admin/dashboard/', '/api/admin/rides/archived/'):
			response = self.client.get(url)
			self.assertIn(response.status_code, (401, 403))

		response = self.client.post('/api/admin/sweeps/', {}, format='json')
		self.assertIn(response.status_code, (401, 403))

	def test_admin_dashboard_and_archive(self):
		make_ride(self.pg, self.office, self.departure)
		make_ride(
			self.pg, self.office, timezone.now() - timedelta(days=2), status=STATUS_ARCHIVED
		)
		self.client.force_authenticate(user=self.admin)

		response = self.client.get('/api/admin/dashboard/')
		self.assertEqual(response.status_code, 200)
		self.assertEqual(len(response.data['upcoming']), 1)

		response = self.client.get('/api/admin/rides/archived/')
		self.assertEqual(response.status_code, 200)
		self.assertEqual(len(response.data), 1)

	def test_archived_limit_is_validated(self):
		make_ride(self.pg, self.office, timezone.now() - timedelta(days=2), status=STATUS_ARCHIVED)
		self.client.force_authenticate(user=self.admin)

		for limit in ('-1', '0', '501', 'many'):
			response = self.client.get('/api/admin/rides/archived/', {'limit': limit})
			self.assertEqual(response.status_code, 400)
			self.assertIn('limit', response.data)

		response = self.client.get('/api/admin/rides/archived/', {'limit': 1})
		self.assertEqual(response.status_code, 200)
		self.assertEqual(len(response.data), 1)

	def test_orphaned_ride_detail_shows_missing_location(self):
		gone = Location.objects.create(name='Old Office')
		ride = make_ride(self.pg, gone, self.departure)
		Location.objects.filter(pk=gone.pk).delete()

		response = self.client.get(f'/api/rides/{ride.pk}/')

		self.assertEqual(response.status_code, 200)
		self.assertEqual(response.data['origin']['name'], 'PG')
		self.assertEqual(response.data['destination'], {'id': gone.pk, 'name': None})

	@patch.object(RideWriteThrottle, 'THROTTLE_RATES', {'ride_writes': '2/minute'})
	def test_ride_writes_are_throttled(self):
		ride = make_ride(self.pg, self.office, self.departure)

		for index in range(2):
			response = self.client.post(
				f'/api/rides/{ride.pk}/join/',
				{'name': f'Rider {index}', 'phone': f'900000001{index}'},
				format='json'
			)
			self.assertEqual(response.status_code, 200)

		response = self.client.post(
			f'/api/rides/{ride.pk}/join/', {'name': 'Rider 2', 'phone': '9000000012'}, format='json'
		)
		self.assertEqual(response.status_code, 429)
		ride.refresh_from_db()
		self.assertEqual(ride.seats_taken, 2)

		response = self.client.get('/api/rides/')
		self.assertEqual(response.status_code, 200)

	def test_admin_runs_sweeps(self):
		make_ride(self.pg, self.office, timezone.now() - timedelta(minutes=5))
		self.client.force_authenticate(user=self.admin)

		response = self.client.post('/api/admin/sweeps/', {'retention_days': 30}, format='json')

		self.assertEqual(response.status_code, 200)
		self.assertEqual(response.data['archived'], 1)

	def test_health_check(self):
		response = self.client.get('/health/')

		self.assertEqual(response.status_code, 200)
		self.assertEqual(response.data['services']['database'], 'healthy')
		self.assertEqual(response.data['services']['cache'], 'healthy')


class RideAdminTests(TestCase):
	def setUp(self):
		self.superuser = User.objects.create_superuser(username='root', password='root1234')
		self.pg = Location.objects.create(name='PG')
		self.office = Location.objects.create(name='Office')
		self.ride = RideMatchingEngine().create_ride(
			'Creator', '9000000001', self.pg.pk, self.office.pk,
			timezone.now() + timedelta(hours=2), max_passengers=2
		)

	def test_roster_inline_is_read_only(self):
		request = RequestFactory().get(f'/admin/rides/ride/{self.ride.pk}/change/')
		request.user = self.superuser
		inline = admin.site._registry[Ride].get_inline_instances(request, self.ride)[0]

		self.assertFalse(inline.has_add_permission(request, self.ride))
		self.assertFalse(inline.has_change_permission(request, self.ride))
		self.assertFalse(inline.has_delete_permission(request, self.ride))
		self.assertFalse(inline.get_formset(request, self.ride).can_delete)

	def test_change_page_shows_roster_without_inputs(self):
		self.client.force_login(self.superuser)

		response = self.client.get(f'/admin/rides/ride/{self.ride.pk}/change/')

		self.assertEqual(response.status_code, 200)
		self.assertContains(response, 'Creator')
		self.assertNotContains(response, 'name="passengers-0-DELETE"')
		self.assertNotContains(response, 'name="passengers-0-phone"')
		self.ride.refresh_from_db()
		self.assertEqual(self.ride.seats_taken, self.ride.passengers.count())


class ConcurrentSeatClaimTests(TransactionTestCase):
	"""Threads race for one ride, each on its own database connection"""

	def setUp(self):
		self.pg = Location.objects.create(name='PG')
		self.office = Location.objects.create(name='Office')
		self.departure = timezone.now() + timedelta(hours=1)

	def race(self, count, attempt):
		barrier = threading.Barrier(count, timeout=10)

		def run(index):
			barrier.wait()
			try:
				for _ in range(500):
					try:
						attempt(index)
						return 'joined'
					except RideFullError:
						return 'full'
					except StorageUnavailableError:
						# SQLite reports lock contention instead of waiting on it
						time.sleep(random.uniform(0.001, 0.01))
				return 'gave up'
			finally:
				connection.close()

		with ThreadPoolExecutor(max_workers=count) as pool:
			return list(pool.map(run, range(count)))

	def test_only_max_passengers_win_a_seat_race(self):
		engine = RideMatchingEngine()
		ride = make_ride(self.pg, self.office, self.departure, max_passengers=3)

		results = self.race(
			8, lambda index: engine.add_passenger(ride.pk, f'Rider {index}', f'91000000{index:02d}')
		)

		self.assertEqual(results.count('joined'), 3)
		self.assertEqual(results.count('full'), 5)
		ride.refresh_from_db()
		self.assertEqual(ride.seats_taken, 3)
		self.assertEqual(ride.passengers.count(), 3)

	def test_concurrent_requests_share_one_ride(self):
		engine = RideMatchingEngine(policy=RidePolicy(default_max_passengers=None))

		results = self.race(6, lambda index: engine.request_ride(
			f'Rider {index}', f'91000000{index:02d}', self.pg.pk, self.office.pk, self.departure
		))

		self.assertEqual(results, ['joined'] * 6)
		ride = Ride.objects.get()
		self.assertEqual(ride.seats_taken, 6)
		self.assertEqual(ride.passengers.count(), 6)

	def test_request_race_fills_one_ride_then_reports_full(self):
		engine = RideMatchingEngine(policy=RidePolicy(default_max_passengers=2))

		results = self.race(5, lambda index: engine.request_ride(
			f'Rider {index}', f'91000000{index:02d}', self.pg.pk, self.office.pk, self.departure
		))

		self.assertEqual(results.count('joined'), 2)
		self.assertEqual(results.count('full'), 3)
		ride = Ride.objects.get()
		self.assertEqual(ride.seats_taken, 2)
		self.assertEqual(ride.passengers.count(), 2)


class SweepCommandTests(TestCase):
	def setUp(self):
		cache.clear()
		self.pg = Location.objects.create(name='PG')
		self.office = Location.objects.create(name='Office')
		self.ride = make_ride(self.pg, self.office, timezone.now() - timedelta(minutes=10))

	def test_dry_run_changes_nothing(self):
		out = StringIO()
		call_command('sweep_rides', '--dry-run', stdout=out)

		self.assertIn('DRY RUN', out.getvalue())
		self.ride.refresh_from_db()
		self.assertEqual(self.ride.status, STATUS_WAITING)

	def test_sweep_archives_and_purges(self):
		stale = make_ride(
			self.pg, self.office, timezone.now() - timedelta(days=20),
			status=STATUS_ARCHIVED, updated_at=timezone.now() - timedelta(days=8)
		)
		out = StringIO()
		call_command('sweep_rides', '--retention-days', '7', stdout=out)

		self.assertIn('Archived 1 rides', out.getvalue())
		self.ride.refresh_from_db()
		self.assertEqual(self.ride.status, STATUS_ARCHIVED)
		self.assertFalse(Ride.objects.filter(pk=stale.pk).exists())

	def test_scheduled_task_runs_all_sweeps(self):
		result = run_ride_sweeps_task()

		self.assertEqual(result['archived'], 1)
		self.assertEqual(result['blocking'], [])


class RidePolicyTests(SimpleTestCase):
	def test_parse_service_hours(self):
		self.assertIsNone(parse_service_hours(''))
		self.assertEqual(parse_service_hours('6-22'), (6, 22))
		self.assertEqual(parse_service_hours('22-6'), (22, 6))
		for bad in ('6', 'six-ten', '5-5', '25-3'):
			with self.assertRaises(ImproperlyConfigured):
				parse_service_hours(bad)

	def test_service_hours_wrap_midnight(self):
		late = timezone.localtime(timezone.now()).replace(hour=23, minute=30)
		noon = late.replace(hour=12)

		self.assertTrue(rules.within_service_hours(late, (22, 6)))
		self.assertFalse(rules.within_service_hours(noon, (22, 6)))
		self.assertTrue(rules.within_service_hours(noon, (6, 22)))
		self.assertTrue(rules.within_service_hours(late, None))

	@override_settings(
		RIDE_MATCH_WINDOW_MINUTES=45,
		RIDE_DEFAULT_MAX_PASSENGERS=0,
		RIDE_SERVICE_HOURS='7-21',
		RIDE_ARCHIVE_RETENTION_DAYS=14,
	)
	def test_policy_from_settings(self):
		policy = RidePolicy.from_settings()

		self.assertEqual(policy.match_window, timedelta(minutes=45))
		self.assertIsNone(policy.default_max_passengers)
		self.assertEqual(policy.service_hours, (7, 21))
		self.assertEqual(policy.retention_days, 14)
