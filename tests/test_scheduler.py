import asyncio
import threading

from services.checker import CheckResult, CheckStatus
from services.scheduler import AlarmClock, ScheduleConfig, ScheduleReconciler, Trigger


class RecordingOrchestrator:
    def __init__(self, last_checked=None):
        self._last = last_checked
        self.calls = []

    def last_checked(self):
        return self._last

    def run_check(self, use_cache=False):
        self.calls.append(use_cache)
        return CheckResult(status=CheckStatus.UP_TO_DATE)


class RecordingDispatcher:
    def __init__(self):
        self.results = []

    def dispatch(self, result):
        self.results.append(result)


def make_reconciler(clock, last_checked=None):
    alarms = AlarmClock(clock=clock)
    orchestrator = RecordingOrchestrator(last_checked)
    dispatcher = RecordingDispatcher()
    return ScheduleReconciler(alarms, orchestrator, dispatcher), orchestrator, dispatcher


def test_effective_interval_falls_back_on_bad_values():
    assert ScheduleReconciler.effective_interval(ScheduleConfig("720")) == 720
    assert ScheduleReconciler.effective_interval(ScheduleConfig("0")) == 0
    assert ScheduleReconciler.effective_interval(ScheduleConfig("soon")) == 480
    assert ScheduleReconciler.effective_interval(ScheduleConfig(-5)) == 480
    assert ScheduleReconciler.effective_interval(ScheduleConfig(None)) == 480


def test_apply_creates_and_keeps_matching_trigger(clock):
    reconciler, _, _ = make_reconciler(clock)
    first = reconciler.apply(ScheduleConfig("720"))
    clock.advance(10)
    again = reconciler.apply(ScheduleConfig("720"))
    assert again is first
    assert first.period_minutes == 720
    assert first.scheduled_time == clock() - 10 + 720 * 60


def test_apply_recreates_on_change_or_force(clock):
    reconciler, _, _ = make_reconciler(clock)
    first = reconciler.apply(ScheduleConfig("720"))
    clock.advance(10)
    forced = reconciler.apply(ScheduleConfig("720"), force_recreate=True)
    changed = reconciler.apply(ScheduleConfig("240"))
    assert forced is not first
    assert changed.period_minutes == 240


def test_zero_interval_clears_trigger(clock):
    reconciler, _, _ = make_reconciler(clock)
    reconciler.apply(ScheduleConfig("720"))
    assert reconciler.apply(ScheduleConfig("0")) is None
    assert reconciler.alarms.get(reconciler.name) is None


def test_on_time_fire_uses_cache(clock):
    period = 480 * 60
    scheduled = clock()
    reconciler, orchestrator, dispatcher = make_reconciler(clock, last_checked=scheduled - period + 5)
    reconciler.on_fire(Trigger(reconciler.name, 480, scheduled))
    assert orchestrator.calls == [True]
    assert len(dispatcher.results) == 1


def test_missed_fire_forces_fresh_check(clock):
    period = 480 * 60
    scheduled = clock()
    reconciler, orchestrator, _ = make_reconciler(clock, last_checked=scheduled - period - 3600)
    reconciler.on_fire(Trigger(reconciler.name, 480, scheduled))
    assert orchestrator.calls == [False]


def test_fire_without_previous_check_is_fresh(clock):
    reconciler, orchestrator, _ = make_reconciler(clock)
    reconciler.on_fire(Trigger(reconciler.name, 480, clock()))
    assert orchestrator.calls == [False]


def test_foreign_triggers_are_ignored(clock):
    reconciler, orchestrator, _ = make_reconciler(clock)
    assert reconciler.on_fire(Trigger("other", 480, clock())) is None
    assert orchestrator.calls == []


def test_alarm_clock_fires_in_worker_thread(clock):
    fired = []

    async def scenario():
        alarms = AlarmClock(clock=clock)
        alarms.on_fire(lambda trigger: fired.append((trigger, threading.current_thread())))
        alarms.start()
        created = alarms.create("check", 1)
        clock.advance(61)
        for _ in range(100):
            if fired:
                break
            await asyncio.sleep(0.01)
        rescheduled = alarms.get("check")
        alarms.stop()
        return created, rescheduled

    created, rescheduled = asyncio.run(scenario())

    assert len(fired) == 1
    trigger, thread = fired[0]
    assert trigger == created
    assert thread is not threading.main_thread()
    assert rescheduled.scheduled_time == clock() + 60
