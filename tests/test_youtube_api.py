import asyncio

import httpx
import pytest

from services.youtube.api.livestream import YouTubeApiError, YouTubeLivestreamAPI
from shared.runtime.quotas import QuotaExceeded, QuotaPolicy, QuotaTracker
from tests.conftest import route_transport

CHANNEL_ID = "UC0123456789abcdefghijkl"


def _search(request: httpx.Request) -> httpx.Response:
    params = request.url.params
    if params.get("type") == "channel":
        return httpx.Response(200, json={"items": [
            {"id": {"channelId": "UCwrongwrongwrongwrong00"}, "snippet": {"channelTitle": "Someone Else"}},
            {"id": {"channelId": CHANNEL_ID}, "snippet": {"channelTitle": "Creator"}},
        ]})
    assert params.get("eventType") == "live"
    assert params.get("channelId") == CHANNEL_ID
    return httpx.Response(200, json={"items": [
        {"id": {"videoId": "OlderStream"}},
        {"id": {"videoId": "NewerStream"}},
        {"id": {"videoId": "EndedStream"}},
    ]})


def _videos(request: httpx.Request) -> httpx.Response:
    return httpx.Response(200, json={"items": [
        {
            "id": "OlderStream",
            "snippet": {"channelId": CHANNEL_ID, "title": "older", "liveBroadcastContent": "live"},
            "liveStreamingDetails": {"actualStartTime": "2026-10-17T08:00:00Z"},
        },
        {
            "id": "NewerStream",
            "snippet": {"channelId": CHANNEL_ID, "title": "newer", "liveBroadcastContent": "live"},
            "liveStreamingDetails": {"actualStartTime": "2026-10-17T09:30:00Z"},
        },
        {
            "id": "EndedStream",
            "snippet": {"channelId": CHANNEL_ID, "title": "ended", "liveBroadcastContent": "none"},
            "liveStreamingDetails": {
                "actualStartTime": "2026-10-17T10:00:00Z",
                "actualEndTime": "2026-10-17T11:00:00Z",
            },
        },
    ]})


def _quota_error(request: httpx.Request) -> httpx.Response:
    return httpx.Response(403, json={"error": {
        "code": 403,
        "message": "The request cannot be completed because you have exceeded your quota.",
        "errors": [{"reason": "quotaExceeded"}],
    }})


def test_live_candidate_with_latest_start_wins():
    transport = route_transport({
        "/youtube/v3/channels": httpx.Response(200, json={"items": [{"id": CHANNEL_ID}]}),
        "/youtube/v3/search": _search,
        "/youtube/v3/videos": _videos,
    })
    api = YouTubeLivestreamAPI(api_key="k", transport=transport)

    best = asyncio.run(api.get_active_livestream(handle="Creator"))

    assert best.video_id == "NewerStream"
    assert best.channel_id == CHANNEL_ID
    assert best.title == "newer"
    assert all(call.url.params.get("key") == "k" for call in transport.calls)


def test_for_handle_miss_falls_back_to_best_title_match():
    transport = route_transport({
        "/youtube/v3/channels": httpx.Response(200, json={"items": []}),
        "/youtube/v3/search": _search,
    })
    api = YouTubeLivestreamAPI(api_key="k", transport=transport)

    assert asyncio.run(api.resolve_channel_id("@creator")) == CHANNEL_ID


def test_no_live_candidates_returns_none():
    transport = route_transport({
        "/youtube/v3/search": httpx.Response(200, json={"items": []}),
    })
    api = YouTubeLivestreamAPI(api_key="k", transport=transport)

    assert asyncio.run(api.get_active_livestream(channel_id=CHANNEL_ID)) is None


def test_quota_error_is_distinct_from_not_live():
    quota = QuotaTracker(policy=QuotaPolicy(max_units=10_000, buffer_units=500))
    transport = route_transport({"/youtube/v3/channels": _quota_error})
    api = YouTubeLivestreamAPI(api_key="k", quota=quota, transport=transport)

    with pytest.raises(QuotaExceeded):
        asyncio.run(api.get_active_livestream(handle="creator"))
    assert quota.status() == "exhausted"


def test_other_http_errors_raise_api_error():
    transport = route_transport({
        "/youtube/v3/search": httpx.Response(500, json={"error": {"message": "backend"}}),
    })
    api = YouTubeLivestreamAPI(api_key="k", transport=transport)

    with pytest.raises(YouTubeApiError) as exc:
        asyncio.run(api.find_live_candidates(CHANNEL_ID))
    assert exc.value.status == 500


def test_local_budget_blocks_calls_before_spending():
    quota = QuotaTracker(policy=QuotaPolicy(max_units=50, buffer_units=0))
    transport = route_transport({})
    api = YouTubeLivestreamAPI(api_key="k", quota=quota, transport=transport)

    with pytest.raises(QuotaExceeded):
        asyncio.run(api.find_live_candidates(CHANNEL_ID))
    assert transport.calls == []


def test_api_key_required():
    with pytest.raises(RuntimeError):
        YouTubeLivestreamAPI(api_key="")


def test_rate_limit_fails_one_call_without_spending_the_day():
    quota = QuotaTracker(policy=QuotaPolicy(max_units=10_000, buffer_units=500))
    responses = [
        httpx.Response(403, json={"error": {
            "message": "slow down", "errors": [{"reason": "rateLimitExceeded"}],
        }}),
        httpx.Response(200, json={"items": [{"id": CHANNEL_ID}]}),
    ]
    transport = route_transport({"/youtube/v3/channels": lambda request: responses.pop(0)})
    api = YouTubeLivestreamAPI(api_key="k", quota=quota, transport=transport)

    with pytest.raises(QuotaExceeded):
        asyncio.run(api.resolve_channel_id("creator"))
    assert quota.status() == "ok"

    assert asyncio.run(api.resolve_channel_id("creator")) == CHANNEL_ID
    assert len(transport.calls) == 2


def test_daily_limit_reason_exhausts_local_budget():
    quota = QuotaTracker()
    transport = route_transport({
        "/youtube/v3/channels": httpx.Response(403, json={"error": {
            "message": "daily", "errors": [{"reason": "dailyLimitExceeded"}],
        }}),
    })
    api = YouTubeLivestreamAPI(api_key="k", quota=quota, transport=transport)

    with pytest.raises(QuotaExceeded):
        asyncio.run(api.resolve_channel_id("creator"))
    assert quota.status() == "exhausted"
