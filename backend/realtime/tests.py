from django.test import SimpleTestCase
from unittest.mock import AsyncMock, MagicMock, patch

from realtime.notifications import (
	driver_group,
	notify_driver_offer,
	notify_offer_withdrawn,
	notify_ride_event,
	ride_group,
)


class NotificationTests(SimpleTestCase):
	def setUp(self):
		self.layer = MagicMock()
		self.layer.group_send = AsyncMock()
		patcher = patch('realtime.notifications.get_channel_layer', return_value=self.layer)
		patcher.start()
		self.addCleanup(patcher.stop)

		self.ride = {'id': 'r1', 'status': 'requested', 'driver_id': 'd1'}

	def test_group_names_are_channel_safe(self):
		self.assertEqual(driver_group('user_2ab'), 'driver_user_2ab')
		self.assertEqual(driver_group('auth0|abc def'), 'driver_auth0_abc_def')
		self.assertEqual(ride_group('r1'), 'ride_r1')

	def test_offer_goes_to_driver_group(self):
		self.assertTrue(notify_driver_offer('d1', self.ride, expires_in=120))

		group, payload = self.layer.group_send.call_args[0]
		self.assertEqual(group, 'driver_d1')
		self.assertEqual(payload['type'], 'ride_offer')
		self.assertEqual(payload['ride_data']['id'], 'r1')
		self.assertEqual(payload['expires_in'], 120)

	def test_withdrawal(self):
		notify_offer_withdrawn('d1', 'r1', reason='declined')

		group, payload = self.layer.group_send.call_args[0]
		self.assertEqual(group, 'driver_d1')
		self.assertEqual(payload, {'type': 'ride_offer_withdrawn', 'ride_id': 'r1', 'reason': 'declined'})

	def test_ride_event_goes_to_ride_group(self):
		notify_ride_event('ride_accepted', {**self.ride, 'status': 'accepted'}, message='On the way')

		group, payload = self.layer.group_send.call_args[0]
		self.assertEqual(group, 'ride_r1')
		self.assertEqual(payload['status'], 'accepted')
		self.assertEqual(payload['message'], 'On the way')

	def test_missing_driver_is_skipped(self):
		self.assertFalse(notify_driver_offer('', self.ride))
		self.layer.group_send.assert_not_called()

	def test_send_failure_is_logged_not_raised(self):
		self.layer.group_send.side_effect = RuntimeError('redis down')

		with self.assertLogs('realtime.notifications', level='ERROR'):
			self.assertFalse(notify_ride_event('ride_cancelled', self.ride))

	def test_no_channel_layer(self):
		with patch('realtime.notifications.get_channel_layer', return_value=None):
			self.assertFalse(notify_offer_withdrawn('d1', 'r1', reason='expired'))
