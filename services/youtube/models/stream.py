from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Any, Dict, Optional

from services.youtube.normalizer import embed_url, thumbnail_url, watch_url


class FoundBy(Enum):
    API = "api"
    REDIRECT = "redirect"
    STRUCTURED_DATA = "structured_data"
    KEYWORDS = "keywords"
    STREAMS_PAGE = "streams_page"
    DIRECT = "direct"
    LAST_KNOWN_GOOD = "last_known_good"
    NONE = "none"


@dataclass(frozen=True)
class LiveCandidate:
    """
    A broadcast the Data API reports as live for a channel.
    """

    video_id: str
    channel_id: Optional[str] = None
    title: Optional[str] = None
    actual_start: Optional[datetime] = None


@dataclass(frozen=True)
class LivenessResult:
    """
    Outcome of resolving one source.

    "Not live" and "could not determine" both report is_live=False;
    found_by and error keep the distinction recoverable.
    """

    handle: str
    is_live: bool
    found_by: FoundBy = FoundBy.NONE
    video_id: Optional[str] = None
    watch_url: Optional[str] = None
    error: Optional[str] = None
    channel_id: Optional[str] = None
    title: Optional[str] = None

    @classmethod
    def live(
        cls,
        handle: str,
        video_id: str,
        found_by: FoundBy,
        *,
        channel_id: Optional[str] = None,
        title: Optional[str] = None,
    ) -> "LivenessResult":
        return cls(
            handle=handle,
            is_live=True,
            found_by=found_by,
            video_id=video_id,
            watch_url=watch_url(video_id),
            channel_id=channel_id,
            title=title,
        )

    @classmethod
    def offline(
        cls,
        handle: str,
        *,
        error: Optional[str] = None,
        channel_id: Optional[str] = None,
    ) -> "LivenessResult":
        return cls(handle=handle, is_live=False, error=error, channel_id=channel_id)

    def to_dict(self) -> Dict[str, Any]:
        payload: Dict[str, Any] = {
            "handle": self.handle,
            "isLive": self.is_live,
            "foundBy": self.found_by.value,
        }
        if self.video_id:
            payload["videoId"] = self.video_id
            payload["watchUrl"] = self.watch_url or watch_url(self.video_id)
            payload["embedUrl"] = embed_url(self.video_id)
            payload["thumbnailUrl"] = thumbnail_url(self.video_id)
        if self.channel_id:
            payload["channelId"] = self.channel_id
        if self.title:
            payload["title"] = self.title
        if self.error:
            payload["error"] = self.error
        return payload
