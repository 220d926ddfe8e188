from datetime import timedelta

from django.core.management import call_command
from django.test import TestCase
from django.utils import timezone
from rest_framework.test import APIRequestFactory
from unittest.mock import patch

from drivers.models import DriverProfile
from services.quoting.quote_engine import Quote
from .models import RideRequest
from .views import (
	accept_ride,
	assign_driver,
	cancel_ride,
	complete_ride,
	create_ride_request,
	decline_ride,
	quote,
	start_ride,
)


class RideOfferFlowTests(TestCase):
	def setUp(self):
		self.factory = APIRequestFactory()

		self.driver_one = DriverProfile.objects.create(
			external_id='d1',
			first_name='Asha',
			last_name='Rao',
			vehicle_make='Toyota Prius',
			car_seats=4,
			status=True,
			latitude=40.7130,
			longitude=-74.0062,
		)
		self.driver_two = DriverProfile.objects.create(
			external_id='d2',
			first_name='Ben',
			vehicle_make='Honda Odyssey',
			car_seats=7,
			status=True,
			latitude=40.7300,
			longitude=-74.0000,
		)

		now = timezone.now()
		self.ride = RideRequest.objects.create(
			id='r1',
			passenger_id='p1',
			origin_latitude=40.7128,
			origin_longitude=-74.0060,
			origin_address='City Hall',
			destination_address='Penn Station',
			status='requested',
			driver_id='d1',
			requested_driver_name='Asha Rao',
			requested_driver_car='Toyota Prius',
			requested_at=now,
			targeted_at=now,
			request_expires_at=now + timedelta(seconds=120),
		)

	def test_accept_by_targeted_driver(self):
		request = self.factory.post('/accept-ride/', {'rideId': 'r1', 'driverId': 'd1'}, format='json')
		response = accept_ride(request)

		self.assertEqual(response.status_code, 200)
		self.assertTrue(response.data['success'])
		self.assertEqual(response.data['assigned_driver_name'], 'Asha Rao')

		self.ride.refresh_from_db()
		self.assertEqual(self.ride.status, 'accepted')
		self.assertEqual(self.ride.driver_acceptance, 'accepted')
		self.assertEqual(self.ride.driver_id, 'd1')
		self.assertEqual(self.ride.assigned_driver_car, 'Toyota Prius')
		self.assertEqual(self.ride.assigned_driver_seats, 4)
		self.assertIsNotNone(self.ride.accepted_at)

	def test_accept_by_other_driver_is_conflict(self):
		request = self.factory.post('/accept-ride/', {'rideId': 'r1', 'driverId': 'd2'}, format='json')
		response = accept_ride(request)

		self.assertEqual(response.status_code, 409)
		self.assertFalse(response.data['success'])
		self.assertEqual(response.data['code'], 'not_targeted_to_driver')

		self.ride.refresh_from_db()
		self.assertEqual(self.ride.status, 'requested')
		self.assertEqual(self.ride.driver_id, 'd1')
		self.assertEqual(self.ride.driver_acceptance, '')

	def test_second_accept_reports_ride_taken(self):
		body = {'rideId': 'r1', 'driverId': 'd1'}
		accept_ride(self.factory.post('/accept-ride/', body, format='json'))
		response = accept_ride(self.factory.post('/accept-ride/', body, format='json'))

		self.assertEqual(response.status_code, 409)
		self.assertEqual(response.data['code'], 'ride_already_accepted')
		self.assertEqual(response.data['error'], 'Ride already taken')

	def test_accept_unknown_driver_is_not_found(self):
		request = self.factory.post('/accept-ride/', {'rideId': 'r1', 'driverId': 'ghost'}, format='json')
		response = accept_ride(request)

		self.assertEqual(response.status_code, 404)
		self.ride.refresh_from_db()
		self.assertEqual(self.ride.status, 'requested')

	def test_accept_missing_field_is_bad_request(self):
		request = self.factory.post('/accept-ride/', {'rideId': 'r1'}, format='json')
		response = accept_ride(request)

		self.assertEqual(response.status_code, 400)
		self.assertIn('driverId', response.data)

	def test_accept_unknown_ride_is_conflict(self):
		request = self.factory.post('/accept-ride/', {'rideId': 'nope', 'driverId': 'd1'}, format='json')
		response = accept_ride(request)

		self.assertEqual(response.status_code, 409)
		self.assertEqual(response.data['code'], 'ride_not_found')

	def test_decline_reassigns_to_next_driver(self):
		request = self.factory.post('/decline-ride/', {'rideId': 'r1', 'driverId': 'd1'}, format='json')
		response = decline_ride(request)

		self.assertEqual(response.status_code, 200)
		self.assertTrue(response.data['declined'])
		self.assertTrue(response.data['reassigned'])
		self.assertEqual(response.data['nextDriver']['id'], 'd2')

		self.ride.refresh_from_db()
		self.assertEqual(self.ride.declined_driver_ids, ['d1'])
		self.assertEqual(self.ride.driver_id, 'd2')
		self.assertEqual(self.ride.status, 'requested')
		self.assertEqual(self.ride.driver_acceptance, '')
		self.assertEqual(self.ride.requested_driver_car, 'Honda Odyssey')

	def test_decline_without_other_drivers_waits(self):
		DriverProfile.objects.filter(external_id='d2').update(status=False)

		request = self.factory.post('/decline-ride/', {'rideId': 'r1', 'driverId': 'd1'}, format='json')
		response = decline_ride(request)

		self.assertEqual(response.status_code, 200)
		self.assertFalse(response.data['reassigned'])
		self.assertNotIn('nextDriver', response.data)

		self.ride.refresh_from_db()
		self.assertEqual(self.ride.status, 'requested_pending_driver')
		self.assertEqual(self.ride.driver_id, '')
		self.assertEqual(self.ride.driver_acceptance, 'declined')
		self.assertIsNone(self.ride.request_expires_at)

	def test_decline_by_untargeted_driver_is_conflict(self):
		request = self.factory.post('/decline-ride/', {'rideId': 'r1', 'driverId': 'd2'}, format='json')
		response = decline_ride(request)

		self.assertEqual(response.status_code, 409)
		self.assertEqual(response.data['code'], 'not_targeted_to_driver')
		self.ride.refresh_from_db()
		self.assertEqual(self.ride.declined_driver_ids, [])

	def test_retried_decline_records_driver_once(self):
		DriverProfile.objects.filter(external_id='d2').update(status=False)
		body = {'rideId': 'r1', 'driverId': 'd1'}

		decline_ride(self.factory.post('/decline-ride/', body, format='json'))
		response = decline_ride(self.factory.post('/decline-ride/', body, format='json'))

		self.assertEqual(response.status_code, 409)
		self.assertEqual(response.data['code'], 'ride_not_requested')
		self.ride.refresh_from_db()
		self.assertEqual(self.ride.declined_driver_ids, ['d1'])

	def test_ride_progress_start_complete(self):
		accept_ride(self.factory.post('/accept-ride/', {'rideId': 'r1', 'driverId': 'd1'}, format='json'))

		response = start_ride(self.factory.post('/r1/start/', {'driverId': 'd1'}, format='json'), ride_id='r1')
		self.assertEqual(response.status_code, 200)
		self.assertEqual(response.data['status'], 'in_progress')

		response = complete_ride(self.factory.post('/r1/complete/', {'driverId': 'd1'}, format='json'), ride_id='r1')
		self.assertEqual(response.status_code, 200)
		self.assertEqual(response.data['status'], 'completed')

		self.ride.refresh_from_db()
		self.assertIsNotNone(self.ride.started_at)
		self.assertIsNotNone(self.ride.completed_at)
		self.assertIsNotNone(self.ride.processed_at)

	def test_complete_before_start_is_conflict(self):
		accept_ride(self.factory.post('/accept-ride/', {'rideId': 'r1', 'driverId': 'd1'}, format='json'))

		response = complete_ride(self.factory.post('/r1/complete/', {'driverId': 'd1'}, format='json'), ride_id='r1')

		self.assertEqual(response.status_code, 409)
		self.assertEqual(response.data['code'], 'invalid_transition')

	def test_cancel_then_accept_is_rejected(self):
		response = cancel_ride(self.factory.post('/r1/cancel/', {'reason': 'Changed plans'}, format='json'), ride_id='r1')
		self.assertEqual(response.status_code, 200)
		self.assertEqual(response.data['status'], 'cancelled')

		response = accept_ride(self.factory.post('/accept-ride/', {'rideId': 'r1', 'driverId': 'd1'}, format='json'))
		self.assertEqual(response.status_code, 409)
		self.assertEqual(response.data['code'], 'ride_not_requested')

		self.ride.refresh_from_db()
		self.assertEqual(self.ride.cancellation_reason, 'Changed plans')
		self.assertIsNotNone(self.ride.cancelled_at)

	def test_cancel_completed_ride_is_conflict(self):
		RideRequest.objects.filter(pk='r1').update(status='completed')

		response = cancel_ride(self.factory.post('/r1/cancel/', {}, format='json'), ride_id='r1')

		self.assertEqual(response.status_code, 409)

	def test_process_offer_timeouts_expires_and_dispatches(self):
		RideRequest.objects.filter(pk='r1').update(request_expires_at=timezone.now() - timedelta(seconds=5))

		call_command('process_offer_timeouts')

		self.ride.refresh_from_db()
		self.assertEqual(self.ride.declined_driver_ids, ['d1'])
		self.assertEqual(self.ride.driver_id, 'd2')
		self.assertEqual(self.ride.status, 'requested')
		self.assertGreater(self.ride.request_expires_at, timezone.now())

	def test_process_offer_timeouts_leaves_open_offers(self):
		call_command('process_offer_timeouts')

		self.ride.refresh_from_db()
		self.assertEqual(self.ride.driver_id, 'd1')
		self.assertEqual(self.ride.declined_driver_ids, [])


class RideRequestTests(TestCase):
	def setUp(self):
		self.factory = APIRequestFactory()
		DriverProfile.objects.create(
			external_id='near',
			vehicle_make='Kia Niro',
			car_seats=4,
			status=True,
			latitude=40.7130,
			longitude=-74.0062,
		)
		DriverProfile.objects.create(
			external_id='far',
			vehicle_make='Ford Transit',
			car_seats=7,
			pets=True,
			status=True,
			latitude=40.8000,
			longitude=-73.9000,
		)

	def _create(self, **overrides):
		body = {
			'passenger_id': 'p1',
			'origin_latitude': 40.7128,
			'origin_longitude': -74.0060,
			'destination_address': 'Penn Station',
			**overrides,
		}
		return create_ride_request(self.factory.post('/request/', body, format='json'))

	def test_create_ride_targets_nearest_driver(self):
		response = self._create()

		self.assertEqual(response.status_code, 201)
		self.assertEqual(response.data['status'], 'requested')
		self.assertEqual(response.data['driver_id'], 'near')
		self.assertEqual(response.data['dispatch']['code'], 'REQUESTED_DRIVER_PENDING')

		ride = RideRequest.objects.get(pk=response.data['id'])
		self.assertIsNotNone(ride.requested_at)
		self.assertIsNotNone(ride.request_expires_at)

	def test_create_ride_respects_seats_and_pets(self):
		response = self._create(ride_type='xl')
		self.assertEqual(response.data['driver_id'], 'far')

		response = self._create(traveling_with_pet=True)
		self.assertEqual(response.data['driver_id'], 'far')

	def test_create_scheduled_ride_without_driver_is_queued(self):
		DriverProfile.objects.update(status=False)

		response = self._create(is_scheduled=True, scheduled_for=(timezone.now() + timedelta(hours=2)).isoformat())

		self.assertEqual(response.status_code, 201)
		self.assertEqual(response.data['status'], 'requested_pending_driver')
		self.assertEqual(response.data['dispatch']['code'], 'QUEUED_AWAITING_DRIVER')

	def test_create_ride_requires_origin(self):
		request = self.factory.post('/request/', {'passenger_id': 'p1', 'destination_address': 'x'}, format='json')
		response = create_ride_request(request)

		self.assertEqual(response.status_code, 400)
		self.assertEqual(RideRequest.objects.count(), 0)

	def test_assign_driver_is_idempotent_per_key(self):
		DriverProfile.objects.update(status=False)
		ride_id = self._create().data['id']
		DriverProfile.objects.update(status=True)

		request = self.factory.post('/assign-driver/', {'rideId': ride_id}, format='json', HTTP_X_IDEMPOTENCY_KEY='k1')
		first = assign_driver(request)
		self.assertEqual(first.status_code, 200)
		self.assertEqual(first.data['code'], 'REQUESTED_DRIVER_PENDING')
		self.assertEqual(first.data['driver']['id'], 'near')

		request = self.factory.post('/assign-driver/', {'rideId': ride_id}, format='json', HTTP_X_IDEMPOTENCY_KEY='k1')
		repeat = assign_driver(request)
		self.assertEqual(repeat.status_code, 200)
		self.assertEqual(repeat.data['code'], 'IDEMPOTENT_REPEAT')
		self.assertEqual(repeat.data['driver']['id'], 'near')

	def test_assign_driver_on_targeted_ride_is_conflict(self):
		ride_id = self._create().data['id']

		response = assign_driver(self.factory.post('/assign-driver/', {'rideId': ride_id}, format='json'))

		self.assertEqual(response.status_code, 409)
		self.assertEqual(RideRequest.objects.get(pk=ride_id).driver_id, 'near')

	def test_assign_driver_unknown_ride(self):
		response = assign_driver(self.factory.post('/assign-driver/', {'rideId': 'missing'}, format='json'))

		self.assertEqual(response.status_code, 404)


class QuoteViewTests(TestCase):
	def setUp(self):
		self.factory = APIRequestFactory()
		self.body = {
			'origin': {'lat': 40.7128, 'lng': -74.0060},
			'destination': {'address': 'Penn Station, New York'},
		}

	@patch('rides.views.QuoteEngine')
	def test_quote_with_fare(self, mock_engine):
		mock_engine.return_value.compute_quote.return_value = Quote(
			success=True,
			distance_miles=5.0,
			drive_minutes=15,
			drive_seconds=900,
			computed_at=timezone.now(),
			traffic_model='best_guess',
		)

		response = quote(self.factory.post('/quote/', {**self.body, 'rideType': 'standard'}, format='json'))

		self.assertEqual(response.status_code, 200)
		self.assertTrue(response.data['success'])
		self.assertEqual(response.data['distanceMiles'], 5.0)
		self.assertEqual(response.data['driveMin'], 15)
		self.assertEqual(response.data['trafficModel'], 'best_guess')
		# 100 base + 5.0 * 100 + 15 * 10
		self.assertEqual(response.data['fareCents'], 750)

	@patch('rides.views.QuoteEngine')
	def test_quote_failure_is_reported_in_body(self, mock_engine):
		mock_engine.return_value.compute_quote.return_value = Quote(success=False, reason='ZERO_RESULTS')

		response = quote(self.factory.post('/quote/', self.body, format='json'))

		self.assertEqual(response.status_code, 200)
		self.assertEqual(response.data, {'success': False, 'reason': 'ZERO_RESULTS'})

	def test_quote_without_destination_is_bad_request(self):
		response = quote(self.factory.post('/quote/', {'origin': {'lat': 1, 'lng': 2}}, format='json'))

		self.assertEqual(response.status_code, 400)

	def test_quote_empty_location_is_bad_request(self):
		response = quote(self.factory.post('/quote/', {'origin': {}, 'destination': {'address': 'x'}}, format='json'))

		self.assertEqual(response.status_code, 400)
