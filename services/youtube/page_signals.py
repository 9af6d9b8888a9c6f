"""
Markup assumptions for YouTube channel pages.

Every key name, marker substring and phrase the HTML strategies rely on lives
here so upstream markup changes only touch this module. Nothing in this file
performs I/O.
"""

from __future__ import annotations

import json
import re
from dataclasses import dataclass
from typing import Any, Dict, Iterator, Optional

from services.youtube.normalizer import extract_video_id, is_valid_video_id

# ------------------------------------------------------------
# Markers
# ------------------------------------------------------------

# consent walls and bot checks; pages carrying these can show unrelated
# trending videos, so no id extracted from them is trusted
INTERSTITIAL_MARKERS = (
    "consent.youtube.com",
    "before you continue to youtube",
    "our systems have detected unusual traffic",
    "/sorry/index",
    "g-recaptcha",
)
INTERSTITIAL_URL_MARKERS = (
    "consent.youtube.com",
    "consent.google.com",
    "google.com/sorry",
)

PLAYER_RESPONSE_KEYS = (
    "var ytInitialPlayerResponse =",
    "ytInitialPlayerResponse =",
    'window["ytInitialPlayerResponse"] =',
)
INITIAL_DATA_KEYS = (
    "var ytInitialData =",
    "ytInitialData =",
    'window["ytInitialData"] =',
)

VIDEO_RENDERER_KEYS = ("videoRenderer", "gridVideoRenderer", "compactVideoRenderer")
LIVE_OVERLAY_STYLES = {"LIVE"}
LIVE_BADGE_STYLES = {"BADGE_STYLE_TYPE_LIVE_NOW"}

POSITIVE_RE = re.compile(
    r'"isLiveNow"\s*:\s*true|\bwatching now\b|"style"\s*:\s*"LIVE"|BADGE_STYLE_TYPE_LIVE_NOW',
    re.IGNORECASE,
)
NEGATIVE_RE = re.compile(
    r'"isLiveNow"\s*:\s*false|\b(?:streamed|premiered|upcoming|ended)\b',
    re.IGNORECASE,
)
CANONICAL_RE = re.compile(
    r'<link[^>]+rel="canonical"[^>]+href="([^"]+)"', re.IGNORECASE
)
VIDEO_ID_JSON_RE = re.compile(r'"videoId"\s*:\s*"([A-Za-z0-9_-]{11})"')


@dataclass(frozen=True)
class PageVerdict:
    """
    is_live=None means the page gave no verdict either way.
    """

    is_live: Optional[bool]
    video_id: Optional[str] = None
    title: Optional[str] = None
    source: str = "none"

    @property
    def decided(self) -> bool:
        return self.is_live is not None


NO_VERDICT = PageVerdict(is_live=None)


# ------------------------------------------------------------
# Interstitials
# ------------------------------------------------------------

def is_interstitial(body: Optional[str], url: Optional[str] = None) -> bool:
    if url:
        lowered_url = url.lower()
        if any(marker in lowered_url for marker in INTERSTITIAL_URL_MARKERS):
            return True
    if not body:
        return False
    lowered = body.lower()
    return any(marker in lowered for marker in INTERSTITIAL_MARKERS)


# ------------------------------------------------------------
# Embedded JSON
# ------------------------------------------------------------

def extract_json_object(body: str, key: str) -> Optional[Dict[str, Any]]:
    """
    Locate ``key`` and parse the object literal that follows it.

    The end of the object is found by a balanced-brace scan that ignores
    braces inside string literals (honouring backslash escapes), so trailing
    script noise after the literal does not matter.
    """
    if not body or not key:
        return None

    anchor = body.find(key)
    if anchor < 0:
        return None
    start = body.find("{", anchor + len(key))
    if start < 0:
        return None

    depth = 0
    in_string = False
    escaped = False
    for i in range(start, len(body)):
        ch = body[i]
        if in_string:
            if escaped:
                escaped = False
            elif ch == "\\":
                escaped = True
            elif ch == '"':
                in_string = False
            continue

        if ch == '"':
            in_string = True
        elif ch == "{":
            depth += 1
        elif ch == "}":
            depth -= 1
            if depth == 0:
                try:
                    data = json.loads(body[start : i + 1])
                except json.JSONDecodeError:
                    return None
                return data if isinstance(data, dict) else None

    return None


def find_embedded_object(body: str, keys) -> Optional[Dict[str, Any]]:
    for key in keys:
        obj = extract_json_object(body, key)
        if obj is not None:
            return obj
    return None


# ------------------------------------------------------------
# Player response (/live watch pages)
# ------------------------------------------------------------

def classify_player_response(player: Dict[str, Any]) -> PageVerdict:
    details = player.get("videoDetails") or {}
    micro = (player.get("microformat") or {}).get("playerMicroformatRenderer") or {}
    broadcast = micro.get("liveBroadcastDetails") or {}
    playability = (player.get("playabilityStatus") or {}).get("status")

    video_id = details.get("videoId")
    title = details.get("title")
    if not is_valid_video_id(video_id):
        video_id = None

    if details.get("isUpcoming") or playability == "LIVE_STREAM_OFFLINE":
        return PageVerdict(False, video_id, title, "structured_data")

    flagged_live = details.get("isLive") is True or broadcast.get("isLiveNow") is True
    open_broadcast = (
        bool(broadcast.get("startTimestamp"))
        and not broadcast.get("endTimestamp")
        and broadcast.get("isLiveNow") is not False
    )

    if flagged_live or open_broadcast:
        if not video_id:
            return NO_VERDICT
        return PageVerdict(True, video_id, title, "structured_data")

    return PageVerdict(False, video_id, title, "structured_data")


# ------------------------------------------------------------
# Initial data (/streams listings)
# ------------------------------------------------------------

def _iter_video_renderers(node: Any) -> Iterator[Dict[str, Any]]:
    stack = [node]
    while stack:
        current = stack.pop()
        if isinstance(current, dict):
            for key, value in current.items():
                if key in VIDEO_RENDERER_KEYS and isinstance(value, dict):
                    yield value
                stack.append(value)
        elif isinstance(current, list):
            stack.extend(reversed(current))


def _text(node: Any) -> str:
    if not isinstance(node, dict):
        return ""
    if "simpleText" in node:
        return str(node.get("simpleText") or "")
    runs = node.get("runs") or []
    return "".join(str(r.get("text", "")) for r in runs if isinstance(r, dict))


def _renderer_is_live(renderer: Dict[str, Any]) -> bool:
    if renderer.get("upcomingEventData"):
        return False
    for overlay in renderer.get("thumbnailOverlays") or []:
        status = (overlay or {}).get("thumbnailOverlayTimeStatusRenderer") or {}
        if status.get("style") in LIVE_OVERLAY_STYLES:
            return True
    for badge in renderer.get("badges") or []:
        meta = (badge or {}).get("metadataBadgeRenderer") or {}
        if meta.get("style") in LIVE_BADGE_STYLES:
            return True
    return "watching" in _text(renderer.get("viewCountText")).lower()


def classify_initial_data(data: Dict[str, Any]) -> PageVerdict:
    seen_any = False
    for renderer in _iter_video_renderers(data):
        seen_any = True
        video_id = renderer.get("videoId")
        if _renderer_is_live(renderer) and is_valid_video_id(video_id):
            return PageVerdict(True, video_id, _text(renderer.get("title")) or None, "structured_data")

    if seen_any:
        return PageVerdict(False, source="structured_data")
    return NO_VERDICT


# ------------------------------------------------------------
# Keyword fallback
# ------------------------------------------------------------

def _video_id_near(body: str, position: int) -> Optional[str]:
    m = CANONICAL_RE.search(body)
    if m:
        video_id = extract_video_id(m.group(1))
        if video_id:
            return video_id

    before = None
    for match in VIDEO_ID_JSON_RE.finditer(body, 0, position):
        before = match.group(1)
    if before:
        return before

    m = VIDEO_ID_JSON_RE.search(body, position)
    return m.group(1) if m else None


def classify_keywords(body: str) -> PageVerdict:
    if not body:
        return NO_VERDICT

    positive = POSITIVE_RE.search(body)
    if positive:
        video_id = _video_id_near(body, positive.start())
        if video_id:
            return PageVerdict(True, video_id, source="keywords")
        return NO_VERDICT

    if NEGATIVE_RE.search(body):
        return PageVerdict(False, source="keywords")

    return NO_VERDICT


# ------------------------------------------------------------
# Whole-page classification
# ------------------------------------------------------------

def classify_page(body: str, url: Optional[str] = None, *, listing: bool = False) -> PageVerdict:
    """
    Classify a fetched channel page.

    Interstitials are a confident not-live. Structured data wins over
    keywords. ``listing`` selects ytInitialData parsing for /streams tabs.
    """
    if is_interstitial(body, url):
        return PageVerdict(False, source="interstitial")

    if listing:
        data = find_embedded_object(body, INITIAL_DATA_KEYS)
        if data is not None:
            verdict = classify_initial_data(data)
            if verdict.decided:
                return verdict
    else:
        player = find_embedded_object(body, PLAYER_RESPONSE_KEYS)
        if player is not None:
            return classify_player_response(player)

    return classify_keywords(body)
