"""
Retrieval of remote version snapshots: TTL cache first, then a leased,
timeout-bounded, retried HTTP fetch with exponential backoff and jitter.
"""

import logging
import random
import time
from dataclasses import dataclass
from typing import Any, Callable, Optional

import requests

from config import (
    CACHE_TTL_SECONDS,
    FETCH_BACKOFF_BASE_SECONDS,
    FETCH_BACKOFF_MAX_JITTER,
    FETCH_MAX_RETRIES,
    FETCH_TIMEOUT_SECONDS,
    USER_AGENT,
)
from services.cache import LeasedCache

logger = logging.getLogger(__name__)

TIMED_OUT = "timedout"
PARSE_ERROR = "parse"


@dataclass(frozen=True)
class RetryPolicy:
    """Attempt budget and backoff curve for one fetch."""

    max_retries: int = FETCH_MAX_RETRIES
    base_seconds: float = FETCH_BACKOFF_BASE_SECONDS
    max_jitter: float = FETCH_BACKOFF_MAX_JITTER

    def delay(self, failures: int, rand: Callable[[], float] = random.random) -> float:
        """Seconds to wait after *failures* failed attempts."""
        return self.base_seconds * (2 ** failures) + rand() * self.max_jitter


@dataclass(frozen=True)
class FetchOutcome:
    """
    Result of one fetch.

    ``snapshot`` is None either because another context holds the run lease
    (``contended``) or because every attempt failed (``error`` is set).
    """

    snapshot: Any = None
    error: Optional[str] = None
    contended: bool = False
    from_cache: bool = False


class FetchPipeline:
    def __init__(
        self,
        cache: LeasedCache,
        policy: Optional[RetryPolicy] = None,
        session=None,
        sleep: Callable[[float], None] = time.sleep,
        rand: Callable[[], float] = random.random,
    ):
        self.cache = cache
        self.policy = policy or RetryPolicy()
        self.session = session
        self.sleep = sleep
        self.rand = rand

    def fetch(
        self,
        source_id: str,
        url: str,
        timeout: float = FETCH_TIMEOUT_SECONDS,
        ttl: float = CACHE_TTL_SECONDS,
    ) -> FetchOutcome:
        entry = self.cache.get(source_id)
        if entry is not None and entry.age(self.cache.clock()) < ttl:
            logger.debug("Using cached %s snapshot fetched at %s", source_id, entry.fetched_at)
            return FetchOutcome(snapshot=entry.payload, from_cache=True)

        if not self.cache.acquire_lease():
            logger.info("A check is already in progress, skipping fetch of %s", source_id)
            return FetchOutcome(contended=True)

        try:
            return self._fetch_with_retries(source_id, url, timeout)
        finally:
            self.cache.release_lease()

    def _get(self, url: str, timeout: float):
        http = self.session or requests
        return http.get(
            url,
            timeout=timeout,
            headers={
                "User-Agent": USER_AGENT,
                "Accept": "application/json",
                "Cache-Control": "no-cache",
            },
        )

    def _fetch_with_retries(self, source_id: str, url: str, timeout: float) -> FetchOutcome:
        last_error: Optional[str] = None
        attempts = self.policy.max_retries + 1

        for attempt in range(attempts):
            if attempt:
                backoff = self.policy.delay(attempt, self.rand)
                logger.debug("Retrying %s in %.1fs...", source_id, backoff)
                self.sleep(backoff)

            logger.debug("Fetching %s from %s, attempt %d", source_id, url, attempt + 1)
            try:
                resp = self._get(url, timeout)
            except requests.Timeout:
                last_error = TIMED_OUT
                logger.warning("%s attempt %d timed out after %ss", source_id, attempt + 1, timeout)
                continue
            except requests.RequestException as exc:
                last_error = str(exc) or exc.__class__.__name__
                logger.warning("%s attempt %d failed: %s", source_id, attempt + 1, exc)
                continue

            if not resp.ok:
                last_error = f"HTTP {resp.status_code}: {resp.reason}"
                logger.warning("%s attempt %d: %s for %s", source_id, attempt + 1, last_error, url)
                continue

            try:
                data = resp.json()
            except ValueError as exc:
                logger.error("%s returned a body that is not JSON: %s", source_id, exc)
                return FetchOutcome(error=PARSE_ERROR)
            if data is None:
                logger.error("%s returned an empty JSON document", source_id)
                return FetchOutcome(error=PARSE_ERROR)

            self.cache.put(source_id, data)
            return FetchOutcome(snapshot=data)

        logger.error("%s: max retries exceeded (%s)", source_id, last_error)
        return FetchOutcome(error=last_error)
