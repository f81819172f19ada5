"""
Version snapshot cache plus the run lease that serializes checks.

Both live in the shared store so that checks started from different processes
see each other. The lease carries an expiry: a check that dies before
releasing it only blocks others until the lease runs out.
"""

import logging
import time
from dataclasses import dataclass
from typing import Any, Callable, Optional

from config import LEASE_SECONDS
from services.storage import KeyValueStore

logger = logging.getLogger(__name__)

CACHE_PREFIX = "version_cache_"
LEASE_KEY = "is_running"


@dataclass(frozen=True)
class CacheEntry:
    source_id: str
    payload: Any
    fetched_at: float

    def age(self, now: float) -> float:
        return now - self.fetched_at


def _is_number(value) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool)


class LeasedCache:
    def __init__(
        self,
        store: KeyValueStore,
        lease_seconds: float = LEASE_SECONDS,
        clock: Callable[[], float] = time.time,
    ):
        self.store = store
        self.lease_seconds = lease_seconds
        self.clock = clock

    # -- Snapshot cache --------------------------------------------------------

    def get(self, source_id: str) -> Optional[CacheEntry]:
        """Return the cached snapshot for *source_id*, or None if absent/malformed."""
        raw = self.store.get(CACHE_PREFIX + source_id)
        if not isinstance(raw, dict) or "payload" not in raw or not _is_number(raw.get("fetched_at")):
            return None
        return CacheEntry(source_id=source_id, payload=raw["payload"], fetched_at=float(raw["fetched_at"]))

    def put(self, source_id: str, payload: Any) -> CacheEntry:
        entry = CacheEntry(source_id=source_id, payload=payload, fetched_at=self.clock())
        self.store.set(
            CACHE_PREFIX + source_id,
            {"source_id": source_id, "payload": payload, "fetched_at": entry.fetched_at},
        )
        return entry

    # -- Run lease -------------------------------------------------------------

    @staticmethod
    def _lease_live(lease, now: float) -> bool:
        return isinstance(lease, dict) and _is_number(lease.get("expires_at")) and lease["expires_at"] > now

    def lease_active(self) -> bool:
        return self._lease_live(self.store.get(LEASE_KEY), self.clock())

    def acquire_lease(self) -> bool:
        """Take the lease unless a live one exists. Returns True when acquired."""
        now = self.clock()
        acquired = False

        def _take(current):
            nonlocal acquired
            if self._lease_live(current, now):
                return current
            acquired = True
            return {"expires_at": now + self.lease_seconds}

        self.store.update(LEASE_KEY, _take)
        if acquired:
            logger.debug("Run lease acquired, expires in %ss", self.lease_seconds)
        else:
            logger.debug("Run lease already held")
        return acquired

    def release_lease(self) -> None:
        self.store.remove(LEASE_KEY)
        logger.debug("Run lease released")
