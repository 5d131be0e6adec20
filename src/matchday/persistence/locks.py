"""Per-fixture mutual exclusion for store transactions."""

from __future__ import annotations

import logging
import threading
from contextlib import contextmanager
from typing import Dict, Iterator, List, Tuple

from matchday.errors import OperationTimeoutError


logger = logging.getLogger(__name__)

LockKey = Tuple[str, str]


class FixtureLockRegistry:
    """Hands out one lock per (tenant, fixture) key.

    Entries are reference counted and dropped once no holder or waiter needs
    them, so the registry does not grow with the number of fixtures ever seen.
    """

    def __init__(self) -> None:
        self._guard = threading.Lock()
        self._locks: Dict[LockKey, List] = {}

    def _checkout(self, key: LockKey) -> threading.Lock:
        with self._guard:
            entry = self._locks.get(key)
            if entry is None:
                entry = [threading.Lock(), 0]
                self._locks[key] = entry
            entry[1] += 1
            return entry[0]

    def _checkin(self, key: LockKey) -> None:
        with self._guard:
            entry = self._locks.get(key)
            if entry is None:
                return
            entry[1] -= 1
            if entry[1] <= 0:
                del self._locks[key]

    @contextmanager
    def hold(self, tenant_id: str, fixture_id: str, timeout: float) -> Iterator[None]:
        key = (tenant_id, fixture_id)
        lock = self._checkout(key)
        acquired = False
        try:
            acquired = lock.acquire(timeout=timeout)
            if not acquired:
                logger.warning("Timed out after %.1fs waiting for fixture %s lock", timeout, fixture_id)
                raise OperationTimeoutError(
                    f"Fixture {fixture_id} is busy; gave up after {timeout:.1f}s"
                )
            yield
        finally:
            if acquired:
                lock.release()
            self._checkin(key)

    def active_keys(self) -> List[LockKey]:
        with self._guard:
            return list(self._locks)
