import threading
from contextlib import contextmanager
from datetime import timedelta

from django.db import OperationalError, connection
from django.test import SimpleTestCase, TransactionTestCase
from django.utils import timezone

from rides.models import RideRequest
from rides.states import TERMINAL_STATUSES, RideEvent, RideStatus, can_transition, next_status
from .exceptions import InvalidTransitionError, RideNotFoundError
from .offer_guard import accept_ride, cancel_ride, complete_ride, decline_ride, expire_offer, start_ride
from .offer_store import LOCK_RETRY_ATTEMPTS, DjangoOfferStore, InMemoryOfferStore, OfferStore


def make_offer(**overrides):
	offer = {
		'id': 'r1',
		'status': RideStatus.REQUESTED,
		'driver_id': 'd1',
		'declined_driver_ids': [],
		'driver_acceptance': '',
		'request_expires_at': timezone.now() + timedelta(seconds=120),
	}
	offer.update(overrides)
	return offer


class BrokenStore(OfferStore):
	"""Store whose backend is down."""

	def get(self, ride_id):
		raise ConnectionError('store down')

	@contextmanager
	def transaction(self, ride_id):
		raise ConnectionError('store down')
		yield  # pragma: no cover


class LockedStore(InMemoryOfferStore):
	"""In-memory store whose first `locked_times` transactions hit a busy database."""

	def __init__(self, documents, locked_times):
		super().__init__(documents)
		self.locked_times = locked_times
		self.attempts = 0

	@contextmanager
	def transaction(self, ride_id):
		self.attempts += 1
		if self.attempts <= self.locked_times:
			raise OperationalError('database is locked')
		with super().transaction(ride_id) as tx:
			yield tx


class TransitionTableTests(SimpleTestCase):
	def test_offer_transitions(self):
		self.assertEqual(next_status(RideStatus.REQUESTED, RideEvent.ACCEPT), RideStatus.ACCEPTED)
		self.assertEqual(next_status(RideStatus.SCHEDULED_REQUESTED, RideEvent.DECLINE), RideStatus.REQUESTED_PENDING_DRIVER)
		self.assertEqual(next_status(RideStatus.REQUESTED_PENDING_DRIVER, RideEvent.RETARGET), RideStatus.REQUESTED)
		self.assertEqual(
			next_status(RideStatus.REQUESTED_PENDING_DRIVER, RideEvent.RETARGET_SCHEDULED),
			RideStatus.SCHEDULED_REQUESTED,
		)

	def test_unlisted_transitions_are_rejected(self):
		with self.assertRaises(InvalidTransitionError):
			next_status(RideStatus.REQUESTED_PENDING_DRIVER, RideEvent.ACCEPT)
		with self.assertRaises(InvalidTransitionError):
			next_status(RideStatus.COMPLETED, RideEvent.CANCEL)
		self.assertFalse(can_transition(RideStatus.CANCELLED, RideEvent.ACCEPT))

	def test_only_terminal_rides_cannot_be_cancelled(self):
		for status in RideStatus:
			self.assertEqual(can_transition(status, RideEvent.CANCEL), status not in TERMINAL_STATUSES, status)
		self.assertEqual(TERMINAL_STATUSES, {RideStatus.COMPLETED, RideStatus.CANCELLED})

	def test_legacy_declined_status_can_only_be_cancelled(self):
		self.assertTrue(can_transition(RideStatus.DECLINED, RideEvent.CANCEL))
		self.assertFalse(can_transition(RideStatus.DECLINED, RideEvent.ACCEPT))
		self.assertFalse(can_transition(RideStatus.DECLINED, RideEvent.RETARGET))


class OfferGuardTests(SimpleTestCase):
	def setUp(self):
		self.store = InMemoryOfferStore([make_offer()])

	def test_accept_by_target(self):
		result = accept_ride('r1', 'd1', assignment={'assigned_driver_name': 'Asha'}, store=self.store)

		self.assertTrue(result.success)
		offer = self.store.get('r1')
		self.assertEqual(offer['status'], RideStatus.ACCEPTED)
		self.assertEqual(offer['driver_acceptance'], 'accepted')
		self.assertEqual(offer['assigned_driver_name'], 'Asha')
		self.assertIsNotNone(offer['accepted_at'])
		self.assertIsNone(offer['request_expires_at'])

	def test_rejected_accept_writes_nothing(self):
		before = self.store.get('r1')

		result = accept_ride('r1', 'd2', store=self.store)

		self.assertFalse(result.success)
		self.assertEqual(result.error_code, 'not_targeted_to_driver')
		self.assertEqual(self.store.get('r1'), before)

	def test_accept_missing_offer(self):
		result = accept_ride('nope', 'd1', store=self.store)

		self.assertFalse(result.success)
		self.assertEqual(result.error_code, 'ride_not_found')

	def test_accept_after_accept_reports_taken(self):
		accept_ride('r1', 'd1', store=self.store)
		result = accept_ride('r1', 'd1', store=self.store)

		self.assertEqual(result.error_code, 'ride_already_accepted')
		self.assertEqual(result.message, 'Ride already taken')

	def test_accept_scheduled_offer(self):
		store = InMemoryOfferStore([make_offer(status=RideStatus.SCHEDULED_REQUESTED)])

		self.assertTrue(accept_ride('r1', 'd1', store=store).success)
		self.assertEqual(store.get('r1')['status'], RideStatus.ACCEPTED)

	def test_decline_then_accept_fails(self):
		result = decline_ride('r1', 'd1', store=self.store)
		self.assertTrue(result.success)

		offer = self.store.get('r1')
		self.assertEqual(offer['status'], RideStatus.REQUESTED_PENDING_DRIVER)
		self.assertEqual(offer['driver_id'], '')
		self.assertEqual(offer['declined_driver_ids'], ['d1'])
		self.assertEqual(offer['driver_acceptance'], 'declined')

		result = accept_ride('r1', 'd1', store=self.store)
		self.assertFalse(result.success)
		self.assertEqual(self.store.get('r1')['status'], RideStatus.REQUESTED_PENDING_DRIVER)

	def test_decline_failures_are_distinct(self):
		self.assertEqual(decline_ride('r1', 'd2', store=self.store).error_code, 'not_targeted_to_driver')
		self.assertEqual(decline_ride('nope', 'd1', store=self.store).error_code, 'ride_not_found')

		decline_ride('r1', 'd1', store=self.store)
		self.assertEqual(decline_ride('r1', 'd1', store=self.store).error_code, 'ride_not_requested')

	def test_decline_keeps_declined_ids_a_set(self):
		store = InMemoryOfferStore([make_offer(declined_driver_ids=['d1', 'd0'])])

		decline_ride('r1', 'd1', store=store)

		self.assertEqual(store.get('r1')['declined_driver_ids'], ['d1', 'd0'])

	def test_expire_waits_for_deadline(self):
		result = expire_offer('r1', 'd1', store=self.store)
		self.assertEqual(result.error_code, 'offer_not_expired')
		self.assertEqual(self.store.get('r1')['driver_id'], 'd1')

		later = timezone.now() + timedelta(seconds=121)
		result = expire_offer('r1', 'd1', now=later, store=self.store)
		self.assertTrue(result.success)
		self.assertEqual(self.store.get('r1')['declined_driver_ids'], ['d1'])

	def test_ride_progress(self):
		self.assertEqual(start_ride('r1', 'd1', store=self.store).error_code, 'invalid_transition')

		accept_ride('r1', 'd1', store=self.store)
		self.assertEqual(start_ride('r1', 'd2', store=self.store).error_code, 'not_targeted_to_driver')
		self.assertTrue(start_ride('r1', 'd1', store=self.store).success)
		self.assertTrue(complete_ride('r1', 'd1', store=self.store).success)

		offer = self.store.get('r1')
		self.assertEqual(offer['status'], RideStatus.COMPLETED)
		self.assertIsNotNone(offer['processed_at'])
		self.assertEqual(cancel_ride('r1', store=self.store).error_code, 'invalid_transition')

	def test_cancel_sets_reason(self):
		result = cancel_ride('r1', 'Passenger left', store=self.store)

		self.assertTrue(result.success)
		offer = self.store.get('r1')
		self.assertEqual(offer['status'], RideStatus.CANCELLED)
		self.assertEqual(offer['cancellation_reason'], 'Passenger left')
		self.assertIsNotNone(offer['cancelled_at'])

	def test_store_failure_becomes_result(self):
		with self.assertLogs('services.ride_management.offer_guard', level='ERROR'):
			result = accept_ride('r1', 'd1', store=BrokenStore())

		self.assertFalse(result.success)
		self.assertEqual(result.error_code, 'store_unavailable')


class InMemoryOfferStoreTests(SimpleTestCase):
	def test_raising_inside_transaction_aborts(self):
		store = InMemoryOfferStore([make_offer()])

		with self.assertRaises(RideNotFoundError):
			with store.transaction('r1') as tx:
				tx.update(status=RideStatus.ACCEPTED)
				tx.array_union('declined_driver_ids', 'd1')
				raise RideNotFoundError()

		offer = store.get('r1')
		self.assertEqual(offer['status'], RideStatus.REQUESTED)
		self.assertEqual(offer['declined_driver_ids'], [])

	def test_reads_are_copies(self):
		store = InMemoryOfferStore([make_offer()])

		store.get('r1')['declined_driver_ids'].append('x')

		self.assertEqual(store.get('r1')['declined_driver_ids'], [])


class ConcurrentOfferTests(SimpleTestCase):
	"""Races run with real threads against the in-memory store."""

	ROUNDS = 25

	def _race(self, store, *calls):
		barrier = threading.Barrier(len(calls))
		results = [None] * len(calls)

		def run(index, fn):
			barrier.wait()
			results[index] = fn()

		threads = [threading.Thread(target=run, args=(i, fn)) for i, fn in enumerate(calls)]
		for thread in threads:
			thread.start()
		for thread in threads:
			thread.join(timeout=10)
		return results

	def test_duplicate_accepts_succeed_once(self):
		for _ in range(self.ROUNDS):
			store = InMemoryOfferStore([make_offer()])
			results = self._race(store, *[lambda: accept_ride('r1', 'd1', store=store)] * 4)

			self.assertEqual(sum(r.success for r in results), 1)
			self.assertEqual(
				sorted(r.error_code for r in results if not r.success),
				['ride_already_accepted'] * 3,
			)

	def test_accept_and_decline_race_has_one_winner(self):
		for _ in range(self.ROUNDS):
			store = InMemoryOfferStore([make_offer()])
			accepted, declined = self._race(
				store,
				lambda: accept_ride('r1', 'd1', store=store),
				lambda: decline_ride('r1', 'd1', store=store),
			)

			self.assertEqual(accepted.success + declined.success, 1)
			offer = store.get('r1')
			if accepted.success:
				self.assertEqual(offer['status'], RideStatus.ACCEPTED)
				self.assertEqual(offer['driver_id'], 'd1')
				self.assertEqual(offer['declined_driver_ids'], [])
			else:
				self.assertEqual(offer['status'], RideStatus.REQUESTED_PENDING_DRIVER)
				self.assertEqual(offer['driver_id'], '')
				self.assertEqual(offer['declined_driver_ids'], ['d1'])

	def test_retried_declines_record_driver_once(self):
		for _ in range(self.ROUNDS):
			store = InMemoryOfferStore([make_offer()])
			results = self._race(store, *[lambda: decline_ride('r1', 'd1', store=store)] * 3)

			self.assertEqual(sum(r.success for r in results), 1)
			self.assertEqual(store.get('r1')['declined_driver_ids'], ['d1'])


class LockRetryTests(SimpleTestCase):
	def test_locked_database_is_retried(self):
		store = LockedStore([make_offer()], locked_times=2)

		with self.assertLogs('services.ride_management.offer_store', level='WARNING'):
			result = accept_ride('r1', 'd1', store=store)

		self.assertTrue(result.success)
		self.assertEqual(store.attempts, 3)
		self.assertEqual(store.get('r1')['status'], RideStatus.ACCEPTED)

	def test_gives_up_after_retry_limit(self):
		store = LockedStore([make_offer()], locked_times=LOCK_RETRY_ATTEMPTS)

		with self.assertLogs('services.ride_management', level='WARNING'):
			result = accept_ride('r1', 'd1', store=store)

		self.assertEqual(result.error_code, 'store_unavailable')
		self.assertEqual(store.attempts, LOCK_RETRY_ATTEMPTS)
		self.assertEqual(store.get('r1')['status'], RideStatus.REQUESTED)


class DjangoStoreConcurrencyTests(TransactionTestCase):
	"""Races against the database-backed store, one connection per thread."""

	ROUNDS = 10

	def _race(self, *calls):
		barrier = threading.Barrier(len(calls))
		results = [None] * len(calls)

		def run(index, fn):
			try:
				barrier.wait()
				results[index] = fn()
			finally:
				connection.close()

		threads = [threading.Thread(target=run, args=(i, fn)) for i, fn in enumerate(calls)]
		for thread in threads:
			thread.start()
		for thread in threads:
			thread.join(timeout=30)
		return results

	def test_duplicate_accepts_succeed_once(self):
		store = DjangoOfferStore()
		for n in range(self.ROUNDS):
			ride_id = f'r{n}'
			RideRequest.objects.create(
				id=ride_id,
				passenger_id='p1',
				status=RideStatus.REQUESTED,
				driver_id='d1',
				request_expires_at=timezone.now() + timedelta(seconds=120),
			)

			results = self._race(*[lambda: accept_ride(ride_id, 'd1', store=store)] * 2)

			self.assertEqual(
				sorted((r.success, r.error_code or '') for r in results),
				[(False, 'ride_already_accepted'), (True, '')],
			)
			self.assertEqual(RideRequest.objects.get(pk=ride_id).status, RideStatus.ACCEPTED)
