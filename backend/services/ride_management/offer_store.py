"""
Ride offer document store.

Handlers never touch a concrete store client directly: they receive an
``OfferStore`` and mutate an offer only inside ``store.transaction(ride_id)``.
The block sees a private copy of the document, stages changes with
``tx.update()`` / ``tx.array_union()``, and the changes are written only if the
block exits normally. Raising inside the block aborts with no write.

Two implementations:
    - DjangoOfferStore: rows in ``rides.RideRequest`` locked with
      ``select_for_update`` inside ``transaction.atomic``
    - InMemoryOfferStore: dict documents guarded by a per-document lock,
      used by tests and local tooling
"""

from __future__ import annotations

import copy
import logging
import random
import threading
import time
from contextlib import contextmanager
from typing import Any, Callable, Dict, Iterator, List, Optional, Tuple

from django.db import OperationalError, transaction
from django.forms.models import model_to_dict

logger = logging.getLogger(__name__)

LOCK_RETRY_ATTEMPTS = 5
LOCK_RETRY_DELAY = 0.02


class OfferTransaction:
    """Staged read-check-write against one offer document."""

    def __init__(self, ride_id: str, data: Optional[Dict[str, Any]]):
        self.ride_id = ride_id
        self.data = data
        self.changes: Dict[str, Any] = {}

    @property
    def exists(self) -> bool:
        return self.data is not None

    def get(self, field: str, default: Any = None) -> Any:
        if field in self.changes:
            return self.changes[field]
        if self.data is None:
            return default
        return self.data.get(field, default)

    def update(self, **fields: Any) -> None:
        self.changes.update(fields)

    def array_union(self, field: str, *values: Any) -> None:
        """Append values to a list field, skipping ones already present."""
        merged = list(self.get(field) or [])
        for value in values:
            if value not in merged:
                merged.append(value)
        self.changes[field] = merged

    def result(self) -> Optional[Dict[str, Any]]:
        """Document as it reads after the staged changes."""
        if self.data is None:
            return None
        return {**self.data, **self.changes}


class OfferStore:
    """Interface every offer store implements."""

    def get(self, ride_id: str) -> Optional[Dict[str, Any]]:
        raise NotImplementedError

    def create(self, document: Dict[str, Any]) -> Dict[str, Any]:
        raise NotImplementedError

    def transaction(self, ride_id: str):
        """Context manager yielding an ``OfferTransaction``."""
        raise NotImplementedError


class DjangoOfferStore(OfferStore):
    """Offer documents stored as ``rides.RideRequest`` rows."""

    def _model(self):
        from rides.models import RideRequest
        return RideRequest

    def _to_document(self, ride) -> Dict[str, Any]:
        document = model_to_dict(ride)
        # model_to_dict skips non-editable fields
        document["id"] = ride.pk
        document["created_at"] = ride.created_at
        document["declined_driver_ids"] = list(ride.declined_driver_ids or [])
        return document

    def get(self, ride_id: str) -> Optional[Dict[str, Any]]:
        ride = self._model().objects.filter(pk=ride_id).first()
        return self._to_document(ride) if ride else None

    def create(self, document: Dict[str, Any]) -> Dict[str, Any]:
        ride = self._model().objects.create(**document)
        return self._to_document(ride)

    @contextmanager
    def transaction(self, ride_id: str) -> Iterator[OfferTransaction]:
        with transaction.atomic():
            ride = (
                self._model().objects
                .select_for_update()
                .filter(pk=ride_id)
                .first()
            )
            tx = OfferTransaction(ride_id, self._to_document(ride) if ride else None)
            yield tx

            if ride is not None and tx.changes:
                for field, value in tx.changes.items():
                    setattr(ride, field, value)
                ride.save(update_fields=list(tx.changes))


class InMemoryOfferStore(OfferStore):
    """Dict-backed store with the same all-or-nothing transaction guarantee."""

    def __init__(self, documents: Optional[List[Dict[str, Any]]] = None):
        self._documents: Dict[str, Dict[str, Any]] = {}
        self._locks: Dict[str, threading.Lock] = {}
        self._registry_lock = threading.Lock()
        for document in documents or []:
            self.create(document)

    def _lock_for(self, ride_id: str) -> threading.Lock:
        with self._registry_lock:
            return self._locks.setdefault(ride_id, threading.Lock())

    def get(self, ride_id: str) -> Optional[Dict[str, Any]]:
        with self._lock_for(ride_id):
            document = self._documents.get(ride_id)
            return copy.deepcopy(document) if document is not None else None

    def create(self, document: Dict[str, Any]) -> Dict[str, Any]:
        ride_id = document["id"]
        stored = {"declined_driver_ids": [], "driver_id": "", "driver_acceptance": ""}
        stored.update(copy.deepcopy(document))
        with self._lock_for(ride_id):
            self._documents[ride_id] = stored
            return copy.deepcopy(stored)

    @contextmanager
    def transaction(self, ride_id: str) -> Iterator[OfferTransaction]:
        with self._lock_for(ride_id):
            current = self._documents.get(ride_id)
            tx = OfferTransaction(ride_id, copy.deepcopy(current) if current is not None else None)
            yield tx

            if current is not None and tx.changes:
                current.update(copy.deepcopy(tx.changes))


_offer_store: Optional[OfferStore] = None


def get_offer_store() -> OfferStore:
    """Get the process-wide offer store (Django-backed)."""
    global _offer_store
    if _offer_store is None:
        _offer_store = DjangoOfferStore()
    return _offer_store


def is_lock_contention(exc: BaseException) -> bool:
    """SQLite reports a clashing writer as "database is locked" / "table is locked"."""
    return isinstance(exc, OperationalError) and "locked" in str(exc).lower()


def run_transaction(
    store: OfferStore,
    ride_id: str,
    mutate: Callable[[OfferTransaction], Any],
) -> Tuple[OfferTransaction, Any]:
    """
    Run ``mutate(tx)`` in one store transaction and return ``(tx, value)``.

    When the database refuses the write because another transaction holds the
    lock, the whole block is re-run from a fresh read, up to
    ``LOCK_RETRY_ATTEMPTS`` times. Any other exception propagates unchanged.
    """
    attempt = 1
    while True:
        try:
            with store.transaction(ride_id) as tx:
                value = mutate(tx)
            return tx, value
        except OperationalError as e:
            if not is_lock_contention(e) or attempt >= LOCK_RETRY_ATTEMPTS:
                raise
            logger.warning(
                "Ride %s is locked by another writer, retrying (%d/%d)",
                ride_id, attempt, LOCK_RETRY_ATTEMPTS,
            )
            time.sleep(LOCK_RETRY_DELAY * attempt + random.uniform(0, LOCK_RETRY_DELAY))
            attempt += 1
