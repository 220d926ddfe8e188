from django.test import TestCase, override_settings
from unittest.mock import patch

from drivers.models import DriverProfile
from rides.states import RideStatus
from services.ride_management.offer_store import InMemoryOfferStore
from services.ride_management.ride_lifecycle import handle_decline
from .candidates import find_candidate_drivers
from .dispatcher import assign_next_driver


def pending_ride(**overrides):
	ride = {
		'id': 'r1',
		'status': RideStatus.REQUESTED_PENDING_DRIVER,
		'driver_id': '',
		'declined_driver_ids': [],
		'origin_latitude': 40.7128,
		'origin_longitude': -74.0060,
		'ride_type': 'standard',
		'traveling_with_pet': False,
		'is_scheduled': False,
	}
	ride.update(overrides)
	return ride


@patch('services.matching.dispatcher.expire_ride_offer_task')
@patch('services.matching.dispatcher.notify_ride_event')
@patch('services.matching.dispatcher.notify_driver_offer')
class DispatcherTests(TestCase):
	def setUp(self):
		self.near = DriverProfile.objects.create(
			external_id='near', car_seats=4, status=True, latitude=40.7130, longitude=-74.0062,
		)
		self.mid = DriverProfile.objects.create(
			external_id='mid', car_seats=6, status=True, latitude=40.7300, longitude=-74.0000,
		)
		self.far = DriverProfile.objects.create(
			external_id='far', car_seats=7, pets=True, status=True, latitude=40.8000, longitude=-73.9000,
		)
		DriverProfile.objects.create(external_id='offline', car_seats=7, pets=True, status=False, latitude=40.7128, longitude=-74.0060)
		DriverProfile.objects.create(external_id='nowhere', car_seats=7, pets=True, status=True)

	def test_candidates_closest_first(self, *mocks):
		ids = [c.external_id for c in find_candidate_drivers(pending_ride())]

		self.assertEqual(ids, ['near', 'mid', 'far'])

	def test_candidates_filters(self, *mocks):
		self.assertEqual([c.external_id for c in find_candidate_drivers(pending_ride(ride_type='comfort'))], ['mid', 'far'])
		self.assertEqual([c.external_id for c in find_candidate_drivers(pending_ride(ride_type='xl'))], ['far'])
		self.assertEqual([c.external_id for c in find_candidate_drivers(pending_ride(traveling_with_pet=True))], ['far'])
		self.assertEqual(
			[c.external_id for c in find_candidate_drivers(pending_ride(declined_driver_ids=['near'], driver_id='mid'))],
			['far'],
		)

	@override_settings(OFFER_EXPIRY_SECONDS=45)
	def test_targets_nearest_driver(self, notify_offer, notify_event, expiry_task):
		store = InMemoryOfferStore([pending_ride()])

		result = assign_next_driver('r1', store=store)

		self.assertTrue(result.assigned)
		self.assertEqual(result.code, 'REQUESTED_DRIVER_PENDING')
		ride = store.get('r1')
		self.assertEqual(ride['status'], RideStatus.REQUESTED)
		self.assertEqual(ride['driver_id'], 'near')
		self.assertEqual(ride['requested_driver_name'], 'Driver')
		self.assertEqual(ride['requested_driver_car'], 'Vehicle')
		self.assertEqual(ride['driver_acceptance'], '')
		self.assertAlmostEqual(ride['driver_distance_km'], 0.03, places=2)
		self.assertEqual((ride['request_expires_at'] - ride['targeted_at']).total_seconds(), 45)
		self.assertEqual(ride['requested_at'], ride['targeted_at'])

		notify_offer.assert_called_once()
		self.assertEqual(notify_offer.call_args[0][0], 'near')
		expiry_task.apply_async.assert_called_once_with(('r1', 'near'), countdown=45)

	def test_scheduled_ride_uses_scheduled_status(self, *mocks):
		store = InMemoryOfferStore([pending_ride(is_scheduled=True)])

		assign_next_driver('r1', store=store)

		self.assertEqual(store.get('r1')['status'], RideStatus.SCHEDULED_REQUESTED)

	def test_requested_at_is_kept_on_retarget(self, *mocks):
		store = InMemoryOfferStore([pending_ride()])
		assign_next_driver('r1', store=store)
		first_requested_at = store.get('r1')['requested_at']

		handle_decline('r1', 'near', store=store)

		ride = store.get('r1')
		self.assertEqual(ride['driver_id'], 'mid')
		self.assertEqual(ride['requested_at'], first_requested_at)
		self.assertEqual(ride['declined_driver_ids'], ['near'])

	def test_no_drivers_leaves_ride_waiting(self, notify_offer, notify_event, expiry_task):
		DriverProfile.objects.update(status=False)
		store = InMemoryOfferStore([pending_ride()])

		result = assign_next_driver('r1', store=store)

		self.assertFalse(result.assigned)
		self.assertEqual(result.code, 'NO_ACTIVE_DRIVERS')
		self.assertEqual(store.get('r1')['status'], RideStatus.REQUESTED_PENDING_DRIVER)
		notify_offer.assert_not_called()
		expiry_task.apply_async.assert_not_called()

	def test_idempotent_repeat_does_not_write(self, notify_offer, notify_event, expiry_task):
		store = InMemoryOfferStore([pending_ride()])
		assign_next_driver('r1', idempotency_key='req-1', store=store)
		before = store.get('r1')

		result = assign_next_driver('r1', idempotency_key='req-1', store=store)

		self.assertEqual(result.code, 'IDEMPOTENT_REPEAT')
		self.assertEqual(result.driver.external_id, 'near')
		self.assertEqual(store.get('r1'), before)
		self.assertEqual(expiry_task.apply_async.call_count, 1)

	def test_refuses_targeted_or_accepted_rides(self, *mocks):
		store = InMemoryOfferStore([
			pending_ride(id='targeted', status=RideStatus.REQUESTED, driver_id='near'),
			pending_ride(id='taken', status=RideStatus.ACCEPTED, driver_id='near'),
		])

		self.assertEqual(assign_next_driver('targeted', store=store).error_code, 'invalid_transition')
		self.assertEqual(assign_next_driver('taken', store=store).error_code, 'ride_already_accepted')
		self.assertEqual(assign_next_driver('missing', store=store).error_code, 'ride_not_found')
		self.assertEqual(store.get('targeted')['driver_id'], 'near')

	def test_expiry_scheduling_failure_keeps_target(self, notify_offer, notify_event, expiry_task):
		expiry_task.apply_async.side_effect = ConnectionError('broker down')
		store = InMemoryOfferStore([pending_ride()])

		with self.assertLogs('services.matching.dispatcher', level='ERROR'):
			result = assign_next_driver('r1', store=store)

		self.assertTrue(result.assigned)
		self.assertEqual(store.get('r1')['driver_id'], 'near')
