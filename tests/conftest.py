"""Shared fakes: transport, clock and background runner."""

import sys
from pathlib import Path

import pytest

sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

from cache.snapshot import ResponseSnapshot
from cache.store import MemoryCacheStore
from offline.config import OfflineConfig
from offline.errors import TransportFailure

ORIGIN = "http://localhost:3000"


def page(body: str, status: int = 200, url: str = "") -> ResponseSnapshot:
    return ResponseSnapshot(
        status=status,
        body=body.encode(),
        headers={"Content-Type": "text/html"},
        reason="OK" if status < 400 else "Error",
        url=url,
    )


class FakeTransport:
    """
    Serves canned responses by URL. Unknown URLs, and everything while
    `online` is False, fail like an unreachable network.
    """

    def __init__(self, routes=None):
        self.routes = dict(routes or {})
        self.online = True
        self.calls = []

    def url(self, path: str) -> str:
        return ORIGIN + path

    def serve(self, path: str, body: str, status: int = 200) -> ResponseSnapshot:
        url = self.url(path) if path.startswith("/") else path
        response = page(body, status, url)
        self.routes[url] = response
        return response

    def fail(self, path: str) -> None:
        url = self.url(path) if path.startswith("/") else path
        self.routes[url] = TransportFailure(url, "connection refused")

    def fetch(self, request):
        self.calls.append(request.url)
        if not self.online:
            raise TransportFailure(request.url, "offline")
        outcome = self.routes.get(request.url)
        if outcome is None:
            raise TransportFailure(request.url, "no route")
        if isinstance(outcome, Exception):
            raise outcome
        return outcome

    def close(self):
        pass


class FakeClock:
    def __init__(self, now: float = 1_700_000_000.0):
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class DeferredBackground:
    """Collects background tasks; the test decides when they run."""

    def __init__(self):
        self.tasks = []

    def __call__(self, task):
        self.tasks.append(task)

    def run_all(self):
        tasks, self.tasks = self.tasks, []
        for task in tasks:
            task()
        return len(tasks)


@pytest.fixture
def transport():
    return FakeTransport()


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def background():
    return DeferredBackground()


@pytest.fixture
def store(clock):
    return MemoryCacheStore(clock=clock)


@pytest.fixture
def make_config():
    def _make(version="v1", manifest=("/index.html", "/offline.html"), **overrides):
        data = dict(
            version=version,
            origin=ORIGIN,
            manifest=tuple(manifest),
            offline_page="/offline.html",
        )
        data.update(overrides)
        return OfflineConfig(**data)
    return _make
