"""
Wiring of the check engine for the running service.

The API routes and the lifespan hook share one Engine, built lazily on first
use from the data directory. Tests build their own with build() and install it
with set_engine().
"""

import logging
import threading
from dataclasses import dataclass
from typing import Optional

from services import settings
from services.alerts import AlertDispatcher
from services.cache import LEASE_KEY, LeasedCache
from services.checker import RESULT_KEY, CheckOrchestrator, CheckResult, ResultBroadcaster
from services.fetcher import FetchPipeline
from services.identity import resolve_identity
from services.scheduler import AlarmClock, ScheduleConfig, ScheduleReconciler
from services.sources import build_source_table
from services.storage import KeyValueStore, SqliteStore
from utils.paths import state_db_path

logger = logging.getLogger(__name__)


@dataclass
class Engine:
    store: KeyValueStore
    cache: LeasedCache
    pipeline: FetchPipeline
    broadcaster: ResultBroadcaster
    orchestrator: CheckOrchestrator
    alarms: AlarmClock
    reconciler: ScheduleReconciler
    dispatcher: AlertDispatcher


def build(store: Optional[KeyValueStore] = None, session=None, identity=resolve_identity, **pipeline_kwargs) -> Engine:
    store = store if store is not None else SqliteStore(state_db_path())
    cache = LeasedCache(store)
    pipeline = FetchPipeline(cache, session=session, **pipeline_kwargs)
    broadcaster = ResultBroadcaster()
    orchestrator = CheckOrchestrator(
        store,
        identity,
        pipeline,
        sources=build_source_table(settings.get_extra_sources()),
        broadcaster=broadcaster,
    )
    alarms = AlarmClock()
    dispatcher = AlertDispatcher(broadcaster=broadcaster)
    reconciler = ScheduleReconciler(alarms, orchestrator, dispatcher)
    dispatcher.reconciler = reconciler
    return Engine(store, cache, pipeline, broadcaster, orchestrator, alarms, reconciler, dispatcher)


_engine: Optional[Engine] = None
_engine_lock = threading.Lock()


def get_engine() -> Engine:
    global _engine
    with _engine_lock:
        if _engine is None:
            _engine = build()
        return _engine


def set_engine(engine: Optional[Engine]) -> None:
    global _engine
    with _engine_lock:
        _engine = engine


def schedule_config() -> ScheduleConfig:
    return ScheduleConfig(settings.get_alarm_schedule())


def refresh_sources(engine: Engine) -> None:
    engine.orchestrator.sources = build_source_table(settings.get_extra_sources())


def reapply_schedule(engine: Engine, force_recreate: bool = False) -> None:
    engine.reconciler.apply(schedule_config(), force_recreate=force_recreate)


def reset_state(engine: Engine) -> None:
    """Forget the last verdict and any lease left behind by a previous run."""
    engine.store.remove(RESULT_KEY)
    engine.store.remove(LEASE_KEY)


def startup_check(engine: Engine) -> CheckResult:
    """Repair settings, clear stale state, then run a fresh check and alert on it."""
    settings.repair()
    reset_state(engine)
    refresh_sources(engine)
    result = engine.orchestrator.run_check(use_cache=False)
    engine.dispatcher.dispatch(result)
    return result
