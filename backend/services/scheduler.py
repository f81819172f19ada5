"""
Periodic check scheduling.

AlarmClock keeps named wall-clock triggers on the asyncio loop. The
ScheduleReconciler owns the single update-check trigger: it keeps the
trigger's period in line with the stored schedule and turns each firing into
a check plus alert dispatch.
"""

import asyncio
import logging
import threading
import time
from dataclasses import dataclass
from typing import Any, Callable, Optional

from config import ALARM_DEFAULT_MINUTES, ALARM_NAME

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Trigger:
    name: str
    period_minutes: int
    scheduled_time: float

    @property
    def period_seconds(self) -> float:
        return self.period_minutes * 60.0


@dataclass(frozen=True)
class ScheduleConfig:
    """Stored schedule; interval_minutes of 0 disables checks."""

    interval_minutes: Any = ALARM_DEFAULT_MINUTES


TriggerCallback = Callable[[Trigger], Any]


class AlarmClock:
    """
    Named repeating triggers driven by an asyncio event loop.

    Each trigger first fires one period after creation and then every period
    after its previous firing. Callbacks run in a worker thread so a slow
    check never blocks the loop. create/clear may be called from any thread
    once start() has bound the loop.
    """

    def __init__(self, clock: Callable[[], float] = time.time):
        self.clock = clock
        self._triggers: dict[str, Trigger] = {}
        self._tasks: dict[str, asyncio.Task] = {}
        self._callback: Optional[TriggerCallback] = None
        self._loop: Optional[asyncio.AbstractEventLoop] = None
        self._lock = threading.Lock()

    def on_fire(self, callback: TriggerCallback) -> None:
        self._callback = callback

    def start(self, loop: Optional[asyncio.AbstractEventLoop] = None) -> None:
        """Bind to *loop* (default: the running loop) and arm recorded triggers."""
        self._loop = loop or asyncio.get_running_loop()
        with self._lock:
            names = list(self._triggers)
        for name in names:
            self._arm(name)

    def stop(self) -> None:
        with self._lock:
            tasks = list(self._tasks.values())
            self._tasks.clear()
        for task in tasks:
            self._cancel(task)
        self._loop = None

    def get(self, name: str) -> Optional[Trigger]:
        with self._lock:
            return self._triggers.get(name)

    def create(self, name: str, period_minutes: int) -> Trigger:
        self.clear(name)
        trigger = Trigger(name, period_minutes, self.clock() + period_minutes * 60.0)
        with self._lock:
            self._triggers[name] = trigger
        self._arm(name)
        logger.info("Trigger %s set to every %d min", name, period_minutes)
        return trigger

    def clear(self, name: str) -> bool:
        with self._lock:
            existed = self._triggers.pop(name, None) is not None
            task = self._tasks.pop(name, None)
        if task is not None:
            self._cancel(task)
        if existed:
            logger.info("Trigger %s cleared", name)
        return existed

    def _arm(self, name: str) -> None:
        loop = self._loop
        if loop is None:
            logger.debug("Clock not started, trigger %s recorded but not armed", name)
            return

        def _spawn():
            with self._lock:
                if name in self._triggers and name not in self._tasks:
                    self._tasks[name] = loop.create_task(self._run(name))

        if _in_loop(loop):
            _spawn()
        else:
            loop.call_soon_threadsafe(_spawn)

    def _cancel(self, task: asyncio.Task) -> None:
        loop = self._loop
        if loop is None or _in_loop(loop):
            task.cancel()
        else:
            loop.call_soon_threadsafe(task.cancel)

    async def _run(self, name: str) -> None:
        while True:
            trigger = self.get(name)
            if trigger is None:
                return
            await asyncio.sleep(max(0.0, trigger.scheduled_time - self.clock()))
            with self._lock:
                if self._triggers.get(name) is not trigger:
                    return
                self._triggers[name] = Trigger(
                    name, trigger.period_minutes, self.clock() + trigger.period_seconds
                )
            if self._callback is None:
                continue
            try:
                await asyncio.to_thread(self._callback, trigger)
            except Exception:
                logger.exception("Trigger %s callback failed", name)


def _in_loop(loop: asyncio.AbstractEventLoop) -> bool:
    try:
        return asyncio.get_running_loop() is loop
    except RuntimeError:
        return False


class ScheduleReconciler:
    def __init__(
        self,
        alarms: AlarmClock,
        orchestrator,
        dispatcher=None,
        use_cache_on_fire: bool = True,
        name: str = ALARM_NAME,
    ):
        self.alarms = alarms
        self.orchestrator = orchestrator
        self.dispatcher = dispatcher
        self.use_cache_on_fire = use_cache_on_fire
        self.name = name
        alarms.on_fire(self.on_fire)

    @staticmethod
    def effective_interval(config: ScheduleConfig) -> int:
        value = config.interval_minutes
        if isinstance(value, bool):
            value = None
        try:
            minutes = int(value)
        except (TypeError, ValueError):
            minutes = -1
        if minutes < 0:
            logger.warning("Invalid check interval %r, using %d min", config.interval_minutes, ALARM_DEFAULT_MINUTES)
            return ALARM_DEFAULT_MINUTES
        return minutes

    def apply(self, config: ScheduleConfig, force_recreate: bool = False) -> Optional[Trigger]:
        """Bring the trigger in line with *config*. Returns the live trigger, if any."""
        minutes = self.effective_interval(config)
        existing = self.alarms.get(self.name)
        if existing is not None and existing.period_minutes == minutes and not force_recreate:
            return existing
        self.alarms.clear(self.name)
        if minutes == 0:
            logger.info("Scheduled checks disabled")
            return None
        return self.alarms.create(self.name, minutes)

    def on_fire(self, trigger: Trigger):
        if trigger.name != self.name:
            return None
        last = self.orchestrator.last_checked()
        missed = last is None or last < trigger.scheduled_time - trigger.period_seconds
        use_cache = False if missed else self.use_cache_on_fire
        if missed:
            logger.info("Missed scheduled check detected, forcing a fresh check")
        result = self.orchestrator.run_check(use_cache=use_cache)
        if self.dispatcher is not None:
            self.dispatcher.dispatch(result)
        return result


