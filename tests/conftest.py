import os
import sys

import pytest

ROOT_DIR = os.path.dirname(os.path.dirname(os.path.abspath(__file__)))
if ROOT_DIR not in sys.path:
    sys.path.insert(0, ROOT_DIR)

import travis_build_times as tbt


class FakeHandle:
    def __init__(self, timers, due, callback):
        self._timers = timers
        self.due = due
        self.callback = callback
        self.cancelled = False

    def cancel(self):
        self.cancelled = True


class FakeTimers:
    """Manual clock standing in for ``loop.call_later``."""

    def __init__(self):
        self.now = 0.0
        self.handles = []

    def call_later(self, delay, callback):
        handle = FakeHandle(self, self.now + delay, callback)
        self.handles.append(handle)
        return handle

    @property
    def pending(self):
        return [h for h in self.handles if not h.cancelled and h.callback is not None]

    def advance(self, seconds):
        self.now += seconds
        for handle in sorted(self.pending, key=lambda h: h.due):
            if handle.due <= self.now:
                callback, handle.callback = handle.callback, None
                callback()


@pytest.fixture
def fake_timers():
    return FakeTimers()


@pytest.fixture
def spawned():
    """Collect coroutines the controller schedules instead of running them."""
    captured = []
    yield captured
    for coro in captured:
        coro.close()


@pytest.fixture(autouse=True)
def isolated_log(monkeypatch, tmp_path):
    monkeypatch.setattr(tbt, "LOG_PATH", str(tmp_path / "travis_build_times.log"))
    yield
    for h in list(tbt.logger.handlers):
        tbt.logger.removeHandler(h)
        h.close()
