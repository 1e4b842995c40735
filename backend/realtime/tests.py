from channels.layers import get_channel_layer
from channels.testing import WebsocketCommunicator
from django.test import SimpleTestCase
from django.utils import timezone
from unittest.mock import AsyncMock, MagicMock

from services.events import EventBus, RIDE_CREATED, RideEvent
from .consumers import RideFeedConsumer
from .notifications import FEED_GROUP, ChannelLayerEventSink, build_message, route_group


def make_event(kind=RIDE_CREATED, origin_id=1, destination_id=2):
	return RideEvent(
		kind=kind,
		ride_id=10,
		origin_id=origin_id,
		destination_id=destination_id,
		status='waiting',
		occurred_at=timezone.now(),
	)


class ChannelLayerEventSinkTests(SimpleTestCase):
	def test_publishes_to_feed_and_route_groups(self):
		layer = MagicMock()
		layer.group_send = AsyncMock()
		event = make_event()

		ChannelLayerEventSink(channel_layer=layer).publish(event)

		layer.group_send.assert_any_await(FEED_GROUP, build_message(event))
		layer.group_send.assert_any_await(route_group(1, 2), build_message(event))
		self.assertEqual(layer.group_send.await_count, 2)

	def test_message_type_is_event_kind(self):
		message = build_message(make_event())

		self.assertEqual(message['type'], RIDE_CREATED)
		self.assertEqual(message['event']['ride_id'], 10)

	def test_bus_survives_failing_sink(self):
		layer = MagicMock()
		layer.group_send = AsyncMock(side_effect=RuntimeError('redis down'))
		received = []

		class ListSink:
			def publish(self, event):
				received.append(event)

		with self.assertLogs('services.events', level='ERROR'):
			EventBus([ChannelLayerEventSink(channel_layer=layer), ListSink()]).publish(make_event())

		self.assertEqual(len(received), 1)


class RideFeedConsumerTests(SimpleTestCase):
	databases = {'default'}

	async def connect(self):
		communicator = WebsocketCommunicator(RideFeedConsumer.as_asgi(), '/ws/rides/')
		connected, _ = await communicator.connect()
		self.assertTrue(connected)
		greeting = await communicator.receive_json_from()
		self.assertEqual(greeting['type'], 'connection_established')
		return communicator

	async def test_feed_forwards_ride_events(self):
		communicator = await self.connect()

		await get_channel_layer().group_send(FEED_GROUP, build_message(make_event()))
		message = await communicator.receive_json_from()

		self.assertEqual(message['type'], RIDE_CREATED)
		self.assertEqual(message['ride_id'], 10)
		await communicator.disconnect()

	async def test_watch_route_narrows_the_feed(self):
		communicator = await self.connect()

		await communicator.send_json_to({'type': 'watch_route', 'origin_id': 3, 'destination_id': 4})
		reply = await communicator.receive_json_from()
		self.assertEqual(reply['type'], 'route_watched')

		await get_channel_layer().group_send(FEED_GROUP, build_message(make_event()))
		self.assertTrue(await communicator.receive_nothing())

		await get_channel_layer().group_send(route_group(3, 4), build_message(make_event(origin_id=3, destination_id=4)))
		message = await communicator.receive_json_from()
		self.assertEqual(message['event']['origin_id'], 3)
		await communicator.disconnect()

	async def test_bad_messages_get_errors(self):
		communicator = await self.connect()

		await communicator.send_json_to({'type': 'watch_route'})
		self.assertEqual((await communicator.receive_json_from())['type'], 'error')

		await communicator.send_json_to({'type': 'dance'})
		self.assertEqual((await communicator.receive_json_from())['type'], 'error')

		await communicator.send_json_to({'type': 'ping'})
		self.assertEqual((await communicator.receive_json_from())['type'], 'pong')
		await communicator.disconnect()
