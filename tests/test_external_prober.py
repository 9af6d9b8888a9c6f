import asyncio
import time

import httpx

from services.external.models import ExternalSource, ExternalState
from services.external.prober import ExternalStatusProber
from shared.config.liveness import ExternalConfig
from shared.runtime.ttl_cache import TTLCache
from tests.conftest import route_transport

ON_AIR_URL = "https://radio.example.com/live"
QUIET_URL = "https://radio.example.com/quiet"
BROKEN_URL = "https://broken.example.com/"


def _prober(external_config, clock, transport):
    return ExternalStatusProber(
        external_config,
        cache=TTLCache(name="batch", clock=clock),
        transport=transport,
    )


def _transport():
    return route_transport({
        ON_AIR_URL: httpx.Response(200, text='<div class="badge">ON AIR</div>'),
        QUIET_URL: httpx.Response(200, text="<div>Back tomorrow at 9</div>"),
        BROKEN_URL: httpx.Response(500, text="boom"),
    })


def test_marker_text_classifies_live(external_config, clock):
    prober = _prober(external_config, clock, _transport())

    [item] = asyncio.run(prober.probe([ExternalSource(id="a", url=ON_AIR_URL)]))

    assert item.state is ExternalState.LIVE
    assert item.reason == "Indicator text found (ON AIR)."
    assert item.to_dict() == {
        "id": "a",
        "url": ON_AIR_URL,
        "state": "LIVE",
        "reason": "Indicator text found (ON AIR).",
    }


def test_missing_marker_is_offline(external_config, clock):
    prober = _prober(external_config, clock, _transport())

    [item] = asyncio.run(prober.probe([ExternalSource(id="q", url=QUIET_URL)]))

    assert item.state is ExternalState.OFFLINE
    assert item.reason == "Indicator text not found."


def test_server_error_is_error_with_status(external_config, clock):
    prober = _prober(external_config, clock, _transport())

    [item] = asyncio.run(prober.probe([ExternalSource(id="b", url=BROKEN_URL)]))

    assert item.state is ExternalState.ERROR
    assert "500" in item.reason


def test_marker_match_falls_back_to_case_insensitive(external_config, clock):
    transport = route_transport({ON_AIR_URL: httpx.Response(200, text="<p>24/7 live broadcast</p>")})
    prober = _prober(external_config, clock, transport)

    [item] = asyncio.run(prober.probe([ExternalSource(id="a", url=ON_AIR_URL)]))

    assert item.state is ExternalState.LIVE
    assert item.reason == "Indicator text found (24/7 Live Broadcast)."


def test_network_failure_is_error(external_config, clock):
    def refuse(request):
        raise httpx.ConnectError("connection refused", request=request)

    prober = _prober(external_config, clock, httpx.MockTransport(refuse))

    [item] = asyncio.run(prober.probe([ExternalSource(id="x", url=ON_AIR_URL)]))

    assert item.state is ExternalState.ERROR
    assert "connection refused" in item.reason


def test_missing_url_is_error_without_fetch(external_config, clock):
    transport = _transport()
    prober = _prober(external_config, clock, transport)

    [item] = asyncio.run(prober.probe([ExternalSource.from_payload({"PK": "7"})]))

    assert item.id == "7"
    assert item.state is ExternalState.ERROR
    assert transport.calls == []


def test_results_keep_input_order_and_batch_is_cached(external_config, clock):
    transport = _transport()
    prober = _prober(external_config, clock, transport)
    sources = [
        ExternalSource(id="b", url=BROKEN_URL),
        ExternalSource(id="a", url=ON_AIR_URL),
        ExternalSource(id="q", url=QUIET_URL),
    ]

    first = asyncio.run(prober.probe(sources))
    assert [i.id for i in first] == ["b", "a", "q"]
    assert len(transport.calls) == 3

    clock.advance(5)
    second = asyncio.run(prober.probe(sources))
    assert second == first
    assert len(transport.calls) == 3

    clock.advance(20)
    asyncio.run(prober.probe(sources))
    assert len(transport.calls) == 6


def test_empty_batch(external_config, clock):
    transport = _transport()
    prober = _prober(external_config, clock, transport)
    assert asyncio.run(prober.probe([])) == []
    assert transport.calls == []


def _sleeping_transport(seconds):
    async def slow(request):
        await asyncio.sleep(seconds)
        return httpx.Response(200, text="ON AIR")

    return httpx.MockTransport(slow)


def test_slow_page_times_out_per_fetch(clock):
    config = ExternalConfig(request_timeout=0.05, batch_cache_ttl=15.0)
    prober = ExternalStatusProber(
        config,
        cache=TTLCache(name="batch", clock=clock),
        transport=_sleeping_transport(1.0),
    )

    [item] = asyncio.run(prober.probe([ExternalSource(id="slow", url=ON_AIR_URL)]))

    assert item.state is ExternalState.ERROR
    assert item.reason == "timeout"


def test_batch_deadline_abandons_queued_sources(clock):
    config = ExternalConfig(request_timeout=5.0, batch_cache_ttl=15.0)
    prober = ExternalStatusProber(
        config,
        cache=TTLCache(name="batch", clock=clock),
        concurrency=1,
        batch_deadline=0.1,
        transport=_sleeping_transport(1.0),
    )
    sources = [ExternalSource(id=str(i), url=f"{ON_AIR_URL}/{i}") for i in range(4)]

    started = time.monotonic()
    items = asyncio.run(prober.probe(sources))

    assert time.monotonic() - started < 1.0
    assert [i.id for i in items] == ["0", "1", "2", "3"]
    assert all(i.state is ExternalState.ERROR and i.reason == "timeout" for i in items)
