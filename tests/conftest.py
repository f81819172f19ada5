from __future__ import annotations

import sys
from pathlib import Path

import pytest
import requests

BACKEND = Path(__file__).resolve().parents[1] / "backend"
if str(BACKEND) not in sys.path:
    sys.path.insert(0, str(BACKEND))


class FakeClock:
    def __init__(self, now: float = 1_700_000_000.0):
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class FakeResponse:
    def __init__(self, payload=None, status_code=200, reason="OK", body_error=False):
        self.payload = payload
        self.status_code = status_code
        self.reason = reason
        self.body_error = body_error

    @property
    def ok(self) -> bool:
        return 200 <= self.status_code < 300

    def json(self):
        if self.body_error:
            raise ValueError("Expecting value: line 1 column 1 (char 0)")
        return self.payload

    def raise_for_status(self):
        if not self.ok:
            raise requests.HTTPError(f"{self.status_code} {self.reason}")


class FakeSession:
    """Returns (or raises) the queued items in order; repeats the last one."""

    def __init__(self, *items):
        self.items = list(items)
        self.calls = []

    def get(self, url, timeout=None, headers=None):
        self.calls.append({"url": url, "timeout": timeout, "headers": headers})
        item = self.items.pop(0) if len(self.items) > 1 else self.items[0]
        if isinstance(item, BaseException):
            raise item
        return item


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def session_factory():
    return FakeSession


@pytest.fixture
def response_factory():
    return FakeResponse


@pytest.fixture(autouse=True)
def data_home(tmp_path, monkeypatch):
    """Point every test at its own data directory with fresh settings."""
    from services import engine, settings

    home = tmp_path / "data"
    monkeypatch.setenv("UPDATE_SENTINEL_HOME", str(home))
    monkeypatch.delenv("UPDATE_SENTINEL_DEBUG", raising=False)
    monkeypatch.setattr(settings, "_cache", None)
    engine.set_engine(None)
    yield home
    engine.set_engine(None)
