import httpx
from datetime import datetime
from typing import Any, Dict, List, Optional

from services.youtube.models.stream import LiveCandidate
from shared.logging.logger import get_logger
from shared.runtime.quotas import (
    UNIT_COSTS,
    QuotaBufferWarning,
    QuotaExceeded,
    QuotaTracker,
)

log = get_logger("youtube.livestream")

# the daily budget is spent until UTC midnight
DAILY_QUOTA_REASONS = {
    "quotaExceeded",
    "dailyLimitExceeded",
}
# short throttles; the next request may succeed
RATE_LIMIT_REASONS = {
    "rateLimitExceeded",
    "userRateLimitExceeded",
}
QUOTA_REASONS = DAILY_QUOTA_REASONS | RATE_LIMIT_REASONS


class YouTubeApiError(RuntimeError):
    def __init__(self, status: int, message: str):
        super().__init__(f"HTTP {status}: {message}")
        self.status = status


def _parse_time(value: Any) -> Optional[datetime]:
    if not value or not isinstance(value, str):
        return None
    try:
        return datetime.fromisoformat(value.replace("Z", "+00:00"))
    except ValueError:
        return None


def _normalize_title(value: Any) -> str:
    return str(value or "").strip().lstrip("@").lower()


class YouTubeLivestreamAPI:
    """
    YouTube livestream discovery API (Data API v3).

    Responsibilities:
    - Resolve channel ID from a channel ID or handle
    - Find broadcasts the channel currently flags as live
    - Verify candidates against liveStreamingDetails timestamps

    Quota errors raise QuotaExceeded so callers can fall back to HTML
    strategies instead of reporting the channel offline.
    """

    CHANNELS_URL = "https://www.googleapis.com/youtube/v3/channels"
    SEARCH_URL = "https://www.googleapis.com/youtube/v3/search"
    VIDEOS_URL = "https://www.googleapis.com/youtube/v3/videos"

    def __init__(
        self,
        *,
        api_key: str,
        quota: Optional[QuotaTracker] = None,
        timeout: float = 8.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        if not api_key:
            raise RuntimeError("YouTube API key is required")
        self.api_key = api_key
        self.quota = quota
        self.timeout = timeout
        self._transport = transport

    # ------------------------------------------------------------

    async def get_active_livestream(
        self,
        *,
        handle: Optional[str] = None,
        channel_id: Optional[str] = None,
    ) -> Optional[LiveCandidate]:
        """
        Return the live broadcast for a channel, or None when nothing is live.

        Either `handle` (without "@") or `channel_id` (UCxxxx) is required.
        """
        resolved = channel_id or await self.resolve_channel_id(handle or "")
        if not resolved:
            log.info(f"YouTube channel not found: {handle}")
            return None

        candidates = await self.find_live_candidates(resolved)
        if not candidates:
            log.debug(f"[YouTube] No live candidates for channel {resolved}")
            return None

        best = await self.verify_live(candidates)
        if best and not best.channel_id:
            best = LiveCandidate(
                video_id=best.video_id,
                channel_id=resolved,
                title=best.title,
                actual_start=best.actual_start,
            )
        return best

    # ------------------------------------------------------------
    # Transport
    # ------------------------------------------------------------

    def _charge(self, endpoint: str) -> None:
        if not self.quota:
            return
        try:
            self.quota.consume(UNIT_COSTS.get(endpoint, 1))
        except QuotaBufferWarning as e:
            log.warning(f"YouTube quota: {e}")

    async def _get(self, endpoint: str, url: str, params: Dict[str, Any]) -> Dict[str, Any]:
        self._charge(endpoint)
        params = dict(params, key=self.api_key)

        async with httpx.AsyncClient(
            timeout=self.timeout,
            transport=self._transport,
            headers={"Accept": "application/json"},
        ) as client:
            r = await client.get(url, params=params)

        if r.is_success:
            data = r.json()
            return data if isinstance(data, dict) else {}

        reason, message = self._error_details(r)
        if reason in QUOTA_REASONS:
            if self.quota and reason in DAILY_QUOTA_REASONS:
                self.quota.mark_exhausted()
            raise QuotaExceeded(f"{endpoint}.list: {reason}")
        raise YouTubeApiError(r.status_code, f"{endpoint}.list {reason or message}")

    @staticmethod
    def _error_details(r: httpx.Response) -> tuple[Optional[str], str]:
        try:
            error = r.json().get("error") or {}
        except ValueError:
            return None, r.text[:160]
        errors = error.get("errors") or [{}]
        return errors[0].get("reason"), str(error.get("message") or r.reason_phrase)

    # ------------------------------------------------------------
    # Channel resolution
    # ------------------------------------------------------------

    async def resolve_channel_id(self, handle: str) -> Optional[str]:
        """
        Resolve a channel ID from a handle: forHandle lookup first, then a
        channel search picking the best title match.
        """
        handle = handle.lstrip("@")
        if not handle:
            return None

        try:
            data = await self._get("channels", self.CHANNELS_URL, {
                "part": "id",
                "forHandle": handle,
            })
            items = data.get("items") or []
            if items and items[0].get("id"):
                return items[0]["id"]
        except YouTubeApiError as e:
            log.warning(f"channels.list(forHandle={handle}) failed: {e}")

        data = await self._get("search", self.SEARCH_URL, {
            "part": "snippet",
            "type": "channel",
            "maxResults": 5,
            "q": f"@{handle}",
        })
        items = data.get("items") or []
        return self._best_channel_match(handle, items)

    @staticmethod
    def _best_channel_match(handle: str, items: List[Dict[str, Any]]) -> Optional[str]:
        wanted = _normalize_title(handle)
        fallback = None
        for item in items:
            snippet = item.get("snippet") or {}
            cid = (item.get("id") or {}).get("channelId") or snippet.get("channelId")
            if not cid:
                continue
            if fallback is None:
                fallback = cid
            titles = {
                _normalize_title(snippet.get("channelTitle")),
                _normalize_title(snippet.get("title")),
                _normalize_title(snippet.get("customUrl")),
            }
            if wanted in titles:
                return cid
        return fallback

    # ------------------------------------------------------------
    # Live video discovery
    # ------------------------------------------------------------

    async def find_live_candidates(self, channel_id: str) -> List[str]:
        data = await self._get("search", self.SEARCH_URL, {
            "part": "id",
            "channelId": channel_id,
            "eventType": "live",
            "type": "video",
            "maxResults": 5,
            "order": "date",
        })
        ids = []
        for item in data.get("items") or []:
            video_id = (item.get("id") or {}).get("videoId")
            if isinstance(video_id, str) and video_id:
                ids.append(video_id)
        return ids

    async def verify_live(self, video_ids: List[str]) -> Optional[LiveCandidate]:
        """
        Keep candidates with a start time and no end time (or flagged live),
        preferring the most recent start.
        """
        if not video_ids:
            return None

        data = await self._get("videos", self.VIDEOS_URL, {
            "part": "snippet,liveStreamingDetails",
            "id": ",".join(video_ids),
        })

        best: Optional[LiveCandidate] = None
        for item in data.get("items") or []:
            video_id = item.get("id")
            if not isinstance(video_id, str):
                continue

            snippet = item.get("snippet") or {}
            details = item.get("liveStreamingDetails") or {}
            started = _parse_time(details.get("actualStartTime"))
            ended = _parse_time(details.get("actualEndTime"))

            is_live = (started is not None and ended is None) or (
                snippet.get("liveBroadcastContent") == "live"
            )
            if not is_live:
                continue

            candidate = LiveCandidate(
                video_id=video_id,
                channel_id=snippet.get("channelId"),
                title=snippet.get("title"),
                actual_start=started,
            )
            if best is None or _later(candidate, best):
                best = candidate

        return best


def _later(a: LiveCandidate, b: LiveCandidate) -> bool:
    if a.actual_start is None:
        return False
    if b.actual_start is None:
        return True
    return a.actual_start > b.actual_start
