import logging
import threading
from dataclasses import replace

import pytest

from osqtool.backend import ExecutionBackend
from osqtool.directives import parse


class FakeClock:
    """Clock advanced by FakeBackend; deterministic with one worker."""

    def __init__(self):
        self.now = 0.0

    def __call__(self):
        return self.now


class FakeBackend(ExecutionBackend):
    """Backend returning canned rows keyed by query text."""

    def __init__(self, results=None, durations=None, clock=None, default_rows=None):
        self.results = results or {}
        self.durations = durations or {}
        self.clock = clock
        self.default_rows = default_rows if default_rows is not None else [{"ok": "1"}]
        self.calls = []
        self._lock = threading.Lock()

    def run(self, query):
        with self._lock:
            self.calls.append(query)
        if self.clock is not None:
            self.clock.now += self.durations.get(query, 0.0)
        result = self.results.get(query, self.default_rows)
        if isinstance(result, Exception):
            raise result
        return result


@pytest.fixture
def make_record():
    """Factory: parse a query source, then override fields."""
    def _make(name, sql=None, **fields):
        record = parse(name, sql if sql is not None else f"SELECT * FROM {name.replace('-', '_')};")
        return replace(record, **fields) if fields else record
    return _make


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def fake_backend_cls():
    return FakeBackend


@pytest.fixture(autouse=True)
def isolate_osqtool_home(monkeypatch, tmp_path):
    """Never read the developer's real policy file."""
    monkeypatch.setenv("OSQTOOL_HOME", str(tmp_path / "osqtool-home"))


@pytest.fixture(autouse=True)
def reset_osqtool_logger():
    logger = logging.getLogger("osqtool")
    handlers, level = list(logger.handlers), logger.level
    yield
    logger.handlers = handlers
    logger.setLevel(level)
