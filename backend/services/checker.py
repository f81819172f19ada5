"""
Update check orchestration – identify the running software, fetch its latest
release, compare, and publish a single CheckResult shared by every observer.
"""

import logging
import threading
import time
from enum import Enum
from typing import Callable, Mapping, Optional

from pydantic import BaseModel, ConfigDict, ValidationError

from config import CACHE_TTL_SECONDS, FETCH_TIMEOUT_SECONDS
from services.fetcher import PARSE_ERROR, FetchPipeline
from services.sources import SOURCES, SourceSpec, extract_latest, resolve_source
from services.storage import KeyValueStore
from services.versions import UnsupportedVersionError, compare

logger = logging.getLogger(__name__)

RESULT_KEY = "is_latest"
UNSUPPORTED = UnsupportedVersionError.cause

IdentityResolver = Callable[[], tuple[str, str]]
Listener = Callable[[str, dict], None]


class CheckStatus(str, Enum):
    UNKNOWN = "unknown"
    UP_TO_DATE = "up_to_date"
    UPDATE_AVAILABLE = "update_available"
    ERROR = "error"


class CheckResult(BaseModel):
    """Outcome of one update check. Immutable; replaced whole on every check."""

    model_config = ConfigDict(frozen=True)

    status: CheckStatus = CheckStatus.UNKNOWN
    software_name: Optional[str] = None
    current_version: Optional[str] = None
    latest_version: Optional[str] = None
    checked_at: Optional[float] = None
    error_cause: Optional[str] = None

    @property
    def alertable(self) -> bool:
        return self.status in (CheckStatus.ERROR, CheckStatus.UPDATE_AVAILABLE)

    def to_store(self) -> dict:
        return self.model_dump(mode="json")

    @classmethod
    def from_store(cls, data) -> Optional["CheckResult"]:
        if not isinstance(data, dict):
            return None
        try:
            return cls.model_validate(data)
        except ValidationError:
            logger.warning("Discarding malformed stored check result")
            return None


# ---------------------------------------------------------------------------
# Change notification for observers (SSE streams, alert dispatch, UIs)
# ---------------------------------------------------------------------------

class ResultBroadcaster:
    def __init__(self):
        self._listeners: list[Listener] = []
        self._lock = threading.Lock()
        self._latest: Optional[CheckResult] = None

    def subscribe(self, listener: Listener) -> Callable[[], None]:
        """Register *listener*; returns a function that unregisters it."""
        with self._lock:
            self._listeners.append(listener)

        def _unsubscribe():
            with self._lock:
                if listener in self._listeners:
                    self._listeners.remove(listener)

        return _unsubscribe

    def latest(self) -> Optional[CheckResult]:
        with self._lock:
            return self._latest

    def publish(self, event: str, payload: dict, result: Optional[CheckResult] = None) -> None:
        with self._lock:
            if result is not None:
                self._latest = result
            listeners = list(self._listeners)
        for listener in listeners:
            try:
                listener(event, payload)
            except Exception:
                logger.exception("Check result listener failed")


# ---------------------------------------------------------------------------
# Orchestrator
# ---------------------------------------------------------------------------

class CheckOrchestrator:
    def __init__(
        self,
        store: KeyValueStore,
        identity: IdentityResolver,
        pipeline: FetchPipeline,
        sources: Mapping[str, SourceSpec] = SOURCES,
        broadcaster: Optional[ResultBroadcaster] = None,
        clock: Callable[[], float] = time.time,
        timeout: float = FETCH_TIMEOUT_SECONDS,
        ttl: float = CACHE_TTL_SECONDS,
    ):
        self.store = store
        self.identity = identity
        self.pipeline = pipeline
        self.sources = sources
        self.broadcaster = broadcaster or ResultBroadcaster()
        self.clock = clock
        self.timeout = timeout
        self.ttl = ttl

    def persisted(self) -> Optional[CheckResult]:
        """Last stored result, or None if no check has completed since it was cleared."""
        return CheckResult.from_store(self.store.get(RESULT_KEY))

    def last_checked(self) -> Optional[float]:
        result = self.persisted()
        return result.checked_at if result else None

    def _announce(self, result: CheckResult) -> CheckResult:
        self.broadcaster.publish("result", result.to_store(), result=result)
        return result

    def _publish(self, result: CheckResult, persist: bool) -> CheckResult:
        if persist:
            self.store.set(RESULT_KEY, result.to_store())
        logger.info(
            "Check finished: %s %s -> %s (latest %s%s)",
            result.software_name,
            result.current_version,
            result.status.value,
            result.latest_version,
            f", cause {result.error_cause}" if result.error_cause else "",
        )
        return self._announce(result)

    def run_check(self, use_cache: bool = False) -> CheckResult:
        """
        Run one update check.

        use_cache=True returns the stored result when one exists (passive UI
        refreshes); otherwise the stored result is cleared and a fresh verdict
        is computed. Returns an UNKNOWN result without touching shared state
        when another check is in flight or no identity is configured yet.
        Every returned result is also published to the broadcaster.
        """
        name, version = self.identity()
        base = {"software_name": name, "current_version": version}

        if not name or not version:
            logger.warning("Software identity not configured, nothing to check")
            return self._announce(CheckResult(**base))

        if self.pipeline.cache.lease_active():
            logger.info("Check already running elsewhere, returning unknown")
            return self._announce(CheckResult(**base))

        if not use_cache:
            self.store.remove(RESULT_KEY)

        spec = resolve_source(name, self.sources)
        if spec is None:
            logger.error("Unsupported software: %r", name)
            return self._publish(
                CheckResult(
                    status=CheckStatus.ERROR,
                    checked_at=self.clock(),
                    error_cause=UNSUPPORTED,
                    **base,
                ),
                persist=False,
            )
        logger.debug("Detected %s %s, source %s, use_cache=%s", name, version, spec.url, use_cache)

        if use_cache:
            cached = self.persisted()
            if cached is not None:
                logger.debug("Returning stored result from %s", cached.checked_at)
                return self._announce(cached)

        outcome = self.pipeline.fetch(spec.source_id, spec.url, timeout=self.timeout, ttl=self.ttl)
        if outcome.contended:
            return self._announce(CheckResult(**base))
        if outcome.snapshot is None:
            self.store.remove(RESULT_KEY)
            return self._publish(
                CheckResult(
                    status=CheckStatus.ERROR,
                    checked_at=self.clock(),
                    error_cause=outcome.error or PARSE_ERROR,
                    **base,
                ),
                persist=False,
            )

        return self._publish(self._classify(spec, outcome.snapshot, base), persist=True)

    def _classify(self, spec: SourceSpec, snapshot, base: dict) -> CheckResult:
        now = self.clock()
        try:
            latest = extract_latest(spec, snapshot, base["current_version"])
        except UnsupportedVersionError as exc:
            logger.error("%s", exc)
            return CheckResult(status=CheckStatus.ERROR, checked_at=now, error_cause=UNSUPPORTED, **base)

        comparison = compare(base["current_version"], latest) if latest else None
        if comparison is None:
            logger.error("Could not read a comparable version from the %s snapshot", spec.source_id)
            return CheckResult(
                status=CheckStatus.ERROR,
                latest_version=latest,
                checked_at=now,
                error_cause=PARSE_ERROR,
                **base,
            )

        status = CheckStatus.UP_TO_DATE if comparison >= 0 else CheckStatus.UPDATE_AVAILABLE
        return CheckResult(status=status, latest_version=latest, checked_at=now, **base)
