import os

# console-only logging under test; must be set before any module builds a logger
os.environ["LIVEWALL_LOG_DIR"] = ""

import httpx
import pytest

from shared.config.liveness import ExternalConfig, YouTubeConfig
from shared.runtime.ttl_cache import TTLCache


class FakeClock:
    def __init__(self, start: float = 1000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


def route_transport(routes, *, default_status=404):
    """
    MockTransport answering by URL path (or full URL when present).

    Route values are httpx.Response objects or callables taking the request.
    Every request is appended to ``transport.calls``.
    """
    calls = []

    def handler(request: httpx.Request) -> httpx.Response:
        calls.append(request)
        url = str(request.url).split("?")[0]
        target = routes.get(url, routes.get(request.url.path))
        if target is None:
            return httpx.Response(default_status, text="not found")
        if callable(target):
            return target(request)
        # fresh response per request so routes can be hit repeatedly
        return httpx.Response(
            target.status_code,
            headers=target.headers,
            content=target.content,
        )

    transport = httpx.MockTransport(handler)
    transport.calls = calls
    return transport


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def youtube_config():
    return YouTubeConfig(
        api_key=None,
        request_timeout=2.0,
        concurrency=4,
        batch_cache_ttl=15.0,
        last_known_good_ttl=600.0,
    )


@pytest.fixture
def external_config():
    return ExternalConfig(request_timeout=2.0, batch_cache_ttl=15.0)


@pytest.fixture
def caches(clock):
    return TTLCache(name="batch", clock=clock), TTLCache(name="last_known_good", clock=clock)
