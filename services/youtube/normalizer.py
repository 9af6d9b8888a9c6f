"""
Free-form source parsing for YouTube liveness lookups.

Accepts bare handles, @handles, channel URLs (/@handle, /channel/UC...) and
direct watch / short / live URLs. Pure functions only.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Iterable, List, Optional, Tuple

HANDLE_RE = re.compile(r"^@?([A-Za-z0-9._-]+)$")
HANDLE_URL_RE = re.compile(r"youtube\.com/@([A-Za-z0-9._-]+)", re.IGNORECASE)
CHANNEL_URL_RE = re.compile(r"/channel/(UC[A-Za-z0-9_-]{22})(?![A-Za-z0-9_-])")

# an id is exactly 11 chars: the lookahead rejects 12-char runs
_ID = r"([A-Za-z0-9_-]{11})(?![A-Za-z0-9_-])"
VIDEO_ID_PATTERNS = (
    re.compile(r"[?&]v=" + _ID),
    re.compile(r"youtu\.be/" + _ID, re.IGNORECASE),
    re.compile(r"/live/" + _ID),
)
VIDEO_ID_RE = re.compile(r"^[A-Za-z0-9_-]{11}$")

KIND_HANDLE = "handle"
KIND_VIDEO = "video"
KIND_CHANNEL = "channel"


@dataclass(frozen=True)
class SourceRef:
    kind: str
    value: str
    raw: str

    @property
    def key(self) -> str:
        # handles never contain ":", so prefixed ids cannot collide with them
        if self.kind == KIND_HANDLE:
            return self.value
        return f"{self.kind}:{self.value}"

    @property
    def dedupe_key(self) -> Tuple[str, str]:
        # handles are case-insensitive; video and channel ids are not
        if self.kind == KIND_HANDLE:
            return self.kind, self.value.lower()
        return self.kind, self.value


def is_valid_video_id(value: Optional[str]) -> bool:
    return bool(value) and bool(VIDEO_ID_RE.match(value))


def extract_video_id(text: str) -> Optional[str]:
    for pattern in VIDEO_ID_PATTERNS:
        m = pattern.search(text or "")
        if m:
            return m.group(1)
    return None


def normalize_source(text: Optional[str]) -> Optional[SourceRef]:
    s = (text or "").strip()
    if not s:
        return None

    m = HANDLE_RE.match(s)
    if m:
        return SourceRef(KIND_HANDLE, m.group(1), s)

    m = HANDLE_URL_RE.search(s)
    if m:
        return SourceRef(KIND_HANDLE, m.group(1), s)

    video_id = extract_video_id(s)
    if video_id:
        return SourceRef(KIND_VIDEO, video_id, s)

    m = CHANNEL_URL_RE.search(s)
    if m:
        return SourceRef(KIND_CHANNEL, m.group(1), s)

    return None


def dedupe_sources(inputs: Iterable[str]) -> Tuple[List[SourceRef], List[str]]:
    """
    Normalize a batch. Returns (unique refs in first-seen order, unparseable inputs).
    """
    seen = set()
    refs: List[SourceRef] = []
    rejected: List[str] = []

    for raw in inputs:
        ref = normalize_source(raw)
        if ref is None:
            if (raw or "").strip():
                rejected.append(raw.strip())
            continue
        if ref.dedupe_key in seen:
            continue
        seen.add(ref.dedupe_key)
        refs.append(ref)

    return refs, rejected


def split_source_list(*values: Optional[str]) -> List[str]:
    items: List[str] = []
    for value in values:
        if not value:
            continue
        items.extend(part.strip() for part in value.split(",") if part.strip())
    return items


# ------------------------------------------------------------
# URL builders
# ------------------------------------------------------------

def channel_base_url(ref: SourceRef) -> str:
    if ref.kind == KIND_CHANNEL:
        return f"https://www.youtube.com/channel/{ref.value}"
    return f"https://www.youtube.com/@{ref.value}"


def live_page_url(ref: SourceRef) -> str:
    return channel_base_url(ref) + "/live"


def streams_page_url(ref: SourceRef) -> str:
    return channel_base_url(ref) + "/streams"


def watch_url(video_id: str) -> str:
    return f"https://www.youtube.com/watch?v={video_id}"


def embed_url(video_id: str) -> str:
    return f"https://www.youtube-nocookie.com/embed/{video_id}"


def thumbnail_url(video_id: str) -> str:
    return f"https://i.ytimg.com/vi/{video_id}/hqdefault.jpg"
