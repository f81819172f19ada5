import pytest
import requests

from services.cache import LeasedCache
from services.fetcher import FetchPipeline, RetryPolicy
from services.storage import MemoryStore

URL = "https://example.invalid/versions.json"


@pytest.fixture
def cache(clock):
    return LeasedCache(MemoryStore(), clock=clock)


def make_pipeline(cache, session, sleeps):
    return FetchPipeline(cache, session=session, sleep=sleeps.append, rand=lambda: 0.5)


def test_retry_delay_doubles_with_jitter():
    policy = RetryPolicy(max_retries=2, base_seconds=1.0, max_jitter=1.0)
    assert policy.delay(1, lambda: 0.0) == 2.0
    assert policy.delay(2, lambda: 0.5) == 4.5


def test_successful_fetch_is_cached(cache, clock, session_factory, response_factory):
    session = session_factory(response_factory({"LATEST": "2.0.0"}))
    pipeline = make_pipeline(cache, session, [])

    first = pipeline.fetch("Demo", URL)
    clock.advance(60)
    second = pipeline.fetch("Demo", URL)

    assert first.snapshot == {"LATEST": "2.0.0"} and not first.from_cache
    assert second.snapshot == {"LATEST": "2.0.0"} and second.from_cache
    assert len(session.calls) == 1
    assert session.calls[0]["headers"]["Cache-Control"] == "no-cache"
    assert not cache.lease_active()


def test_expired_cache_is_refreshed(cache, clock, session_factory, response_factory):
    session = session_factory(response_factory({"LATEST": "1.0"}), response_factory({"LATEST": "1.1"}))
    pipeline = make_pipeline(cache, session, [])

    pipeline.fetch("Demo", URL, ttl=300)
    clock.advance(301)
    outcome = pipeline.fetch("Demo", URL, ttl=300)

    assert outcome.snapshot == {"LATEST": "1.1"}
    assert cache.get("Demo").payload == {"LATEST": "1.1"}
    assert len(session.calls) == 2


def test_transient_failures_are_retried(cache, session_factory, response_factory):
    sleeps = []
    session = session_factory(
        requests.ConnectionError("connection reset"),
        response_factory(status_code=503, reason="Service Unavailable"),
        response_factory({"LATEST": "2.0"}),
    )
    outcome = make_pipeline(cache, session, sleeps).fetch("Demo", URL)

    assert outcome.snapshot == {"LATEST": "2.0"}
    assert sleeps == [2.5, 4.5]


def test_exhausted_retries_report_last_error(cache, session_factory, response_factory):
    sleeps = []
    session = session_factory(response_factory(status_code=500, reason="Server Error"))
    outcome = make_pipeline(cache, session, sleeps).fetch("Demo", URL)

    assert outcome.snapshot is None
    assert outcome.error == "HTTP 500: Server Error"
    assert len(session.calls) == 3
    assert len(sleeps) == 2
    assert not cache.lease_active()


def test_timeouts_report_timedout(cache, session_factory):
    session = session_factory(requests.Timeout("read timed out"))
    outcome = make_pipeline(cache, session, []).fetch("Demo", URL, timeout=5)

    assert outcome.error == "timedout"
    assert session.calls[0]["timeout"] == 5


def test_invalid_json_is_not_retried(cache, session_factory, response_factory):
    session = session_factory(response_factory(body_error=True))
    outcome = make_pipeline(cache, session, []).fetch("Demo", URL)

    assert outcome.error == "parse"
    assert len(session.calls) == 1
    assert cache.get("Demo") is None


def test_held_lease_short_circuits(cache, session_factory, response_factory):
    session = session_factory(response_factory({"LATEST": "2.0"}))
    cache.acquire_lease()
    outcome = make_pipeline(cache, session, []).fetch("Demo", URL)

    assert outcome.contended
    assert outcome.snapshot is None and outcome.error is None
    assert session.calls == []
    assert cache.lease_active()
