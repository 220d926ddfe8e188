from django.test import TestCase
from rest_framework.test import APIRequestFactory
from unittest.mock import patch

from drivers.models import DriverProfile
from drivers.presence import DriverPresenceTracker
from drivers.views import DriverLocationUpdateView, DriverOfflineView


class DriverPresenceTrackerTests(TestCase):
	def setUp(self):
		self.profile = DriverProfile.objects.create(external_id='d1', first_name='Asha', vehicle_make='Prius')

	def test_start_with_permission_publishes_positions(self):
		tracker = DriverPresenceTracker('d1')

		self.assertTrue(tracker.start(permission_granted=True))
		self.assertTrue(tracker.record_position(40.71, -74.0))

		self.profile.refresh_from_db()
		self.assertTrue(self.profile.status)
		self.assertEqual(self.profile.latitude, 40.71)
		self.assertEqual(self.profile.longitude, -74.0)
		self.assertIsNotNone(self.profile.last_online)

	def test_denied_permission_stays_offline(self):
		tracker = DriverPresenceTracker('d1')

		self.assertFalse(tracker.start(permission_granted=False))
		self.assertFalse(tracker.record_position(40.71, -74.0))

		self.profile.refresh_from_db()
		self.assertFalse(self.profile.status)
		self.assertIsNone(self.profile.latitude)
		self.assertIsNone(self.profile.last_online)

	def test_unknown_driver_does_not_start(self):
		tracker = DriverPresenceTracker('ghost')

		self.assertFalse(tracker.start(permission_granted=True))
		self.assertIsNone(tracker.profile_id)

	def test_stop_marks_offline(self):
		tracker = DriverPresenceTracker('d1')
		tracker.start(permission_granted=True)
		tracker.record_position(40.71, -74.0)

		tracker.stop()

		self.profile.refresh_from_db()
		self.assertFalse(self.profile.status)
		self.assertIsNotNone(self.profile.last_offline)
		# Last known position is kept
		self.assertEqual(self.profile.latitude, 40.71)

	def test_permission_revoked_ends_session(self):
		tracker = DriverPresenceTracker('d1')
		tracker.start(permission_granted=True)

		tracker.permission_changed(False)

		self.assertFalse(tracker.active)
		self.assertFalse(tracker.record_position(1.0, 2.0))

		tracker.permission_changed(True)
		self.assertTrue(tracker.record_position(1.0, 2.0))

	def test_offline_failure_is_swallowed(self):
		tracker = DriverPresenceTracker('d1')
		tracker.start(permission_granted=True)

		with patch('drivers.presence.services.mark_driver_offline', side_effect=RuntimeError('store down')):
			with self.assertLogs('drivers.presence', level='ERROR'):
				tracker.stop()

		self.assertFalse(tracker.active)

	def test_position_failure_is_swallowed(self):
		tracker = DriverPresenceTracker('d1')
		tracker.start(permission_granted=True)

		with patch('drivers.presence.services.mark_driver_online', side_effect=RuntimeError('store down')):
			self.assertFalse(tracker.record_position(1.0, 2.0))


class DriverLocationViewTests(TestCase):
	def setUp(self):
		self.factory = APIRequestFactory()
		DriverProfile.objects.create(external_id='d1')

	def test_location_update_marks_online(self):
		request = self.factory.post('/location/', {'driverId': 'd1', 'latitude': 40.7, 'longitude': -74.0, 'permission': True}, format='json')
		response = DriverLocationUpdateView.as_view()(request)

		self.assertEqual(response.status_code, 200)
		self.assertTrue(response.data['driver']['status'])
		self.assertEqual(response.data['driver']['latitude'], 40.7)

	def test_location_update_validates_range(self):
		request = self.factory.post('/location/', {'driverId': 'd1', 'latitude': 120, 'longitude': 0, 'permission': True}, format='json')
		response = DriverLocationUpdateView.as_view()(request)

		self.assertEqual(response.status_code, 400)

	def test_location_update_requires_permission(self):
		request = self.factory.post('/location/', {'driverId': 'd1', 'latitude': 40.7, 'longitude': -74.0, 'permission': False}, format='json')
		response = DriverLocationUpdateView.as_view()(request)

		self.assertEqual(response.status_code, 403)
		profile = DriverProfile.objects.get(external_id='d1')
		self.assertFalse(profile.status)
		self.assertIsNone(profile.latitude)

	def test_location_update_for_unknown_driver(self):
		request = self.factory.post('/location/', {'driverId': 'ghost', 'latitude': 40.7, 'longitude': -74.0, 'permission': True}, format='json')
		response = DriverLocationUpdateView.as_view()(request)

		self.assertEqual(response.status_code, 404)

	def test_unknown_driver(self):
		request = self.factory.post('/offline/', {'driverId': 'ghost'}, format='json')
		response = DriverOfflineView.as_view()(request)

		self.assertEqual(response.status_code, 404)

	def test_offline(self):
		DriverProfile.objects.filter(external_id='d1').update(status=True)

		request = self.factory.post('/offline/', {'driverId': 'd1'}, format='json')
		response = DriverOfflineView.as_view()(request)

		self.assertEqual(response.status_code, 200)
		self.assertFalse(DriverProfile.objects.get(external_id='d1').status)
