import asyncio
import threading
import time
from types import SimpleNamespace
from unittest.mock import MagicMock

import requests
from django.test import SimpleTestCase, override_settings

from .directions import DirectionsClient, DirectionsError
from .pricing import estimate_fare_cents, seat_requirement
from .quote_engine import Location, Quote, QuoteEngine, drive_minutes_from_seconds, miles_from_meters
from .realtime_eta import RealtimeETAPoller


def leg_response(meters, seconds, traffic_seconds=None):
	leg = {'distance': {'value': meters}, 'duration': {'value': seconds}}
	if traffic_seconds is not None:
		leg['duration_in_traffic'] = {'value': traffic_seconds}
	return {'status': 'OK', 'routes': [{'legs': [leg]}]}


class FakeDirectionsClient:
	"""Replays canned provider answers and records every call."""

	def __init__(self, responses, place_ids=None):
		self.responses = list(responses)
		self.place_ids = place_ids or {}
		self.direction_calls = []
		self.geocode_calls = []

	def directions(self, origin, destination, traffic_model='best_guess'):
		self.direction_calls.append((origin, destination))
		response = self.responses.pop(0)
		if isinstance(response, Exception):
			raise response
		return response

	def geocode_place_id(self, address):
		self.geocode_calls.append(address)
		return self.place_ids.get(address)


class DurationAndDistanceTests(SimpleTestCase):
	def test_minutes_round_half_up(self):
		self.assertEqual(drive_minutes_from_seconds(754), 13)
		self.assertEqual(drive_minutes_from_seconds(900), 15)
		self.assertEqual(drive_minutes_from_seconds(90), 2)

	def test_minutes_never_below_one(self):
		for seconds in (0, 1, 29, 30):
			self.assertEqual(drive_minutes_from_seconds(seconds), 1)

	def test_miles_one_decimal(self):
		self.assertEqual(miles_from_meters(8046), 5.0)
		self.assertEqual(miles_from_meters(0), 0.0)


class QuoteEngineTests(SimpleTestCase):
	def test_prefers_traffic_duration(self):
		client = FakeDirectionsClient([leg_response(8046, 1200, traffic_seconds=900)])

		quote = QuoteEngine(client=client, traffic_model='best_guess').compute_quote(
			Location(lat=40.0, lng=-74.0),
			Location(address='Penn Station'),
		)

		self.assertTrue(quote.success)
		self.assertEqual(quote.distance_miles, 5.0)
		self.assertEqual(quote.drive_minutes, 15)
		self.assertEqual(quote.traffic_model, 'best_guess')
		self.assertEqual(client.direction_calls, [('40.0,-74.0', 'Penn Station')])

	def test_base_duration_without_traffic(self):
		client = FakeDirectionsClient([leg_response(1609, 754)])

		quote = QuoteEngine(client=client).compute_quote(Location(address='a'), Location(address='b'))

		self.assertEqual(quote.drive_minutes, 13)
		self.assertEqual(quote.distance_miles, 1.0)

	def test_zero_traffic_duration_is_used(self):
		client = FakeDirectionsClient([leg_response(100, 600, traffic_seconds=0)])

		quote = QuoteEngine(client=client).compute_quote(Location(address='a'), Location(address='b'))

		self.assertEqual(quote.drive_minutes, 1)

	def test_place_reference_wins_over_address_and_coordinates(self):
		location = Location(lat=1.0, lng=2.0, address='Main St', place_id='abc')
		self.assertEqual(location.to_provider_param(), 'place_id:abc')
		self.assertEqual(Location(lat=1.0, lng=2.0, address='Main St').to_provider_param(), 'Main St')
		self.assertEqual(Location(lat=1.0, lng=2.0).to_provider_param(), '1.0,2.0')

	def test_location_from_payload(self):
		location = Location.from_payload({'latitude': '40.5', 'longitude': -74, 'placeId': ' xyz '})

		self.assertEqual(location.lat, 40.5)
		self.assertEqual(location.lng, -74.0)
		self.assertEqual(location.place_id, 'xyz')

	def test_geocode_fallback_retries_exactly_once(self):
		client = FakeDirectionsClient(
			[{'status': 'NOT_FOUND', 'routes': []}, leg_response(3200, 480)],
			place_ids={'Old Town': 'p-old', 'New Town': 'p-new'},
		)

		quote = QuoteEngine(client=client).compute_quote(Location(address='Old Town'), Location(address='New Town'))

		self.assertTrue(quote.success)
		self.assertEqual(client.geocode_calls, ['Old Town', 'New Town'])
		self.assertEqual(
			client.direction_calls,
			[('Old Town', 'New Town'), ('place_id:p-old', 'place_id:p-new')],
		)

	def test_fallback_only_geocodes_address_only_endpoints(self):
		client = FakeDirectionsClient(
			[{'status': 'NOT_FOUND', 'routes': []}, leg_response(3200, 480)],
			place_ids={'Old Town': 'p-old'},
		)

		QuoteEngine(client=client).compute_quote(Location(address='Old Town'), Location(lat=1.0, lng=2.0))

		self.assertEqual(client.geocode_calls, ['Old Town'])
		self.assertEqual(client.direction_calls[1], ('place_id:p-old', '1.0,2.0'))

	def test_failure_reports_provider_status(self):
		client = FakeDirectionsClient([
			{'status': 'ZERO_RESULTS', 'routes': []},
			{'status': 'ZERO_RESULTS', 'routes': []},
		])

		quote = QuoteEngine(client=client).compute_quote(Location(address='a'), Location(address='b'))

		self.assertFalse(quote.success)
		self.assertEqual(quote.reason, 'ZERO_RESULTS')
		self.assertEqual(len(client.direction_calls), 2)
		self.assertEqual(quote.as_payload()['reason'], 'ZERO_RESULTS')

	def test_failure_without_status_is_no_leg(self):
		client = FakeDirectionsClient([{}, {}])

		quote = QuoteEngine(client=client).compute_quote(Location(place_id='x'), Location(place_id='y'))

		self.assertEqual(quote.reason, 'NO_LEG')
		self.assertEqual(client.geocode_calls, [])

	def test_provider_error_does_not_raise(self):
		client = FakeDirectionsClient([DirectionsError('PROVIDER_TIMEOUT')])

		quote = QuoteEngine(client=client).compute_quote(Location(address='a'), Location(address='b'))

		self.assertFalse(quote.success)
		self.assertEqual(quote.reason, 'PROVIDER_TIMEOUT')

	def test_empty_location_is_invalid(self):
		client = FakeDirectionsClient([])

		quote = QuoteEngine(client=client).compute_quote(Location(), Location(address='b'))

		self.assertEqual(quote.reason, 'INVALID_LOCATION')
		self.assertEqual(client.direction_calls, [])


class DirectionsClientTests(SimpleTestCase):
	def test_missing_api_key(self):
		client = DirectionsClient(api_key='', session=MagicMock())

		with self.assertRaises(DirectionsError) as ctx:
			client.directions('a', 'b')

		self.assertEqual(ctx.exception.reason, 'MISSING_API_KEY')
		client.session.get.assert_not_called()

	@override_settings(DIRECTIONS_API_KEY='')
	def test_quote_without_api_key_fails_gracefully(self):
		quote = QuoteEngine(client=DirectionsClient(session=MagicMock())).compute_quote(
			Location(address='a'),
			Location(address='b'),
		)

		self.assertFalse(quote.success)
		self.assertEqual(quote.reason, 'MISSING_API_KEY')

	def test_directions_request_parameters(self):
		session = MagicMock()
		session.get.return_value.json.return_value = {'status': 'OK', 'routes': []}
		client = DirectionsClient(api_key='k', base_url='https://maps.example/api/', timeout=3, session=session)

		client.directions('place_id:a', '1.0,2.0', 'pessimistic')

		args, kwargs = session.get.call_args
		self.assertEqual(args[0], 'https://maps.example/api/directions/json')
		self.assertEqual(kwargs['timeout'], 3)
		self.assertEqual(kwargs['params']['mode'], 'driving')
		self.assertEqual(kwargs['params']['departure_time'], 'now')
		self.assertEqual(kwargs['params']['traffic_model'], 'pessimistic')
		self.assertEqual(kwargs['params']['key'], 'k')

	def test_timeout_maps_to_reason(self):
		session = MagicMock()
		session.get.side_effect = requests.Timeout()
		client = DirectionsClient(api_key='k', session=session)

		with self.assertRaises(DirectionsError) as ctx:
			client.directions('a', 'b')
		self.assertEqual(ctx.exception.reason, 'PROVIDER_TIMEOUT')

	def test_geocode_returns_first_place_id(self):
		session = MagicMock()
		session.get.return_value.json.return_value = {'results': [{'place_id': 'p1'}, {'place_id': 'p2'}]}
		client = DirectionsClient(api_key='k', session=session)

		self.assertEqual(client.geocode_place_id('Main St'), 'p1')


class PricingTests(SimpleTestCase):
	def setUp(self):
		self.config = SimpleNamespace(
			base_fare_cents=100,
			per_mile_cents=100,
			per_minute_cents=10,
			minimum_fare_cents=500,
			surge_multiplier=1.0,
		)

	def test_fare_by_ride_type(self):
		self.assertEqual(estimate_fare_cents(5.0, 15, 'standard', self.config), 750)
		self.assertEqual(estimate_fare_cents(5.0, 15, 'comfort', self.config), 900)
		self.assertEqual(estimate_fare_cents(5.0, 15, 'xl', self.config), 1125)

	def test_minimum_fare(self):
		self.assertEqual(estimate_fare_cents(0.5, 1, 'standard', self.config), 500)

	def test_surge(self):
		self.config.surge_multiplier = 1.5
		self.assertEqual(estimate_fare_cents(5.0, 15, 'standard', self.config), 1125)

	def test_seat_requirement(self):
		self.assertEqual(seat_requirement('xl'), 7)
		self.assertEqual(seat_requirement('comfort'), 6)
		self.assertEqual(seat_requirement('standard'), 4)
		self.assertEqual(seat_requirement('unknown'), 4)


class RealtimeETAPollerTests(SimpleTestCase):
	def _quote(self, minutes):
		return Quote(success=True, distance_miles=1.0, drive_minutes=minutes)

	async def test_stale_response_is_discarded(self):
		release_slow = threading.Event()
		applied = []

		def quote_fn(origin, destination):
			if destination.address == 'slow':
				release_slow.wait(timeout=5)
				return self._quote(99)
			return self._quote(7)

		poller = RealtimeETAPoller(Location(address='o'), Location(address='slow'), applied.append, quote_fn=quote_fn)

		slow = asyncio.ensure_future(poller.refresh())
		await asyncio.sleep(0.05)

		poller.destination = Location(address='fast')
		fast_result = await poller.refresh()
		release_slow.set()
		slow_result = await slow

		self.assertIsNone(slow_result)
		self.assertEqual(fast_result.drive_minutes, 7)
		self.assertEqual([q.drive_minutes for q in applied], [7])

	async def test_stop_discards_inflight_result(self):
		release = threading.Event()
		applied = []

		def quote_fn(origin, destination):
			release.wait(timeout=5)
			return self._quote(5)

		poller = RealtimeETAPoller(Location(address='o'), Location(address='d'), applied.append, quote_fn=quote_fn)
		pending = asyncio.ensure_future(poller.refresh())
		await asyncio.sleep(0.05)

		await poller.stop()
		release.set()

		self.assertIsNone(await pending)
		self.assertEqual(applied, [])

	async def test_polls_on_interval_until_stopped(self):
		calls = []

		def quote_fn(origin, destination):
			calls.append(time.monotonic())
			return self._quote(len(calls))

		received = []

		async def on_update(quote):
			received.append(quote.drive_minutes)

		poller = RealtimeETAPoller(
			Location(address='o'),
			Location(address='d'),
			on_update,
			poll_seconds=0.05,
			quote_fn=quote_fn,
		)
		await poller.start()
		await asyncio.sleep(0.2)
		await poller.stop()
		count = len(received)
		await asyncio.sleep(0.1)

		self.assertGreaterEqual(count, 2)
		self.assertEqual(len(received), count)
		self.assertFalse(poller.running)

	async def test_failed_fetch_is_not_applied(self):
		applied = []

		def quote_fn(origin, destination):
			raise RuntimeError('boom')

		poller = RealtimeETAPoller(Location(address='o'), Location(address='d'), applied.append, quote_fn=quote_fn)

		self.assertIsNone(await poller.refresh())
		self.assertEqual(applied, [])

	async def test_failed_delivery_keeps_polling(self):
		received = []

		async def on_update(quote):
			received.append(quote.drive_minutes)
			if len(received) == 1:
				raise ConnectionError('send failed')

		poller = RealtimeETAPoller(
			Location(address='o'),
			Location(address='d'),
			on_update,
			poll_seconds=0.02,
			quote_fn=lambda origin, destination: self._quote(4),
		)
		with self.assertLogs('services.quoting.realtime_eta', level='ERROR'):
			await poller.start()
			await asyncio.sleep(0.3)

		self.assertTrue(poller.running)
		self.assertGreaterEqual(len(received), 2)
		await poller.stop()
		self.assertFalse(poller.running)
