"""
Liveness service configuration loader.

Sources, in order of precedence:
- Environment (YOUTUBE_API_KEY, LIVEWALL_HOST, LIVEWALL_PORT)
- JSON file (LIVEWALL_CONFIG, else shared/config/liveness.json)
- Dataclass defaults

Design rules:
- Import-safe (no side effects)
- Schema problems are logged as warnings; defaults apply per-key
- Out-of-range values are clamped, never fatal
"""

from __future__ import annotations

import json
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional

from jsonschema import Draft7Validator

from shared.logging.logger import get_logger
from shared.runtime.quotas import QuotaPolicy

log = get_logger("shared.config.liveness")

_CONFIG_PATH = Path(__file__).parent / "liveness.json"
SCHEMA_PATH = Path(__file__).parent / "liveness.schema.json"


@dataclass
class ApiServerConfig:
    host: str = "0.0.0.0"
    port: int = 8220
    allow_origins: List[str] = field(default_factory=lambda: ["*"])
    request_deadline: float = 25.0


@dataclass
class YouTubeConfig:
    api_key: Optional[str] = None
    request_timeout: float = 8.0
    concurrency: int = 6
    batch_cache_ttl: float = 15.0
    last_known_good_ttl: float = 600.0
    quota: QuotaPolicy = field(default_factory=QuotaPolicy)


@dataclass
class ExternalConfig:
    request_timeout: float = 10.0
    batch_cache_ttl: float = 15.0
    live_markers: List[str] = field(
        default_factory=lambda: ["ON AIR", "24/7 Live Broadcast"]
    )


@dataclass
class LivenessConfig:
    api: ApiServerConfig = field(default_factory=ApiServerConfig)
    youtube: YouTubeConfig = field(default_factory=YouTubeConfig)
    external: ExternalConfig = field(default_factory=ExternalConfig)


# ------------------------------------------------------------
# Helpers
# ------------------------------------------------------------

def _load_json(path: Path) -> Dict[str, Any]:
    if not path.exists():
        log.warning(f"{path.name} not found at {path}; using defaults")
        return {}

    try:
        with path.open("r", encoding="utf-8") as f:
            data = json.load(f)
            if isinstance(data, dict):
                return data
            log.warning(f"{path.name} root is not an object; ignoring")
    except Exception as e:
        log.warning(f"Failed to load {path.name} ({e}); using defaults")

    return {}


def validation_errors(payload: Dict[str, Any]) -> List[str]:
    """Return human-readable schema violations for a config document."""
    schema = json.loads(SCHEMA_PATH.read_text(encoding="utf-8"))
    validator = Draft7Validator(schema)
    errors = sorted(validator.iter_errors(payload), key=lambda e: list(e.path))
    messages = []
    for err in errors:
        loc = "/".join(str(p) for p in err.path) or "<root>"
        messages.append(f"'{loc}': {err.message}")
    return messages


def _number(raw: Dict[str, Any], key: str, default: float, *, low: float, high: float) -> float:
    value = raw.get(key, default)
    try:
        number = float(value)
    except (TypeError, ValueError):
        log.warning(f"{key} must be numeric; defaulting to {default}")
        return default
    if number < low or number > high:
        clamped = min(max(number, low), high)
        log.warning(f"{key}={number} out of range; clamped to {clamped}")
        return clamped
    return number


def _integer(raw: Dict[str, Any], key: str, default: int, *, low: int, high: int) -> int:
    return int(_number(raw, key, default, low=low, high=high))


def _section(raw: Dict[str, Any], name: str) -> Dict[str, Any]:
    value = raw.get(name, {})
    if isinstance(value, dict):
        return value
    log.warning(f"'{name}' section is not an object; using defaults")
    return {}


def _load_api(raw: Dict[str, Any]) -> ApiServerConfig:
    origins = raw.get("allow_origins", ["*"])
    if not isinstance(origins, list):
        origins = ["*"]

    host = os.getenv("LIVEWALL_HOST") or str(raw.get("host", ApiServerConfig.host))
    port = _integer(raw, "port", ApiServerConfig.port, low=0, high=65535)
    env_port = os.getenv("LIVEWALL_PORT")
    if env_port:
        try:
            port = int(env_port)
        except ValueError:
            log.warning(f"LIVEWALL_PORT={env_port!r} is not an integer; ignoring")

    return ApiServerConfig(
        host=host,
        port=port,
        allow_origins=[str(o) for o in origins],
        request_deadline=_number(
            raw, "request_deadline_seconds", ApiServerConfig.request_deadline,
            low=1.0, high=300.0,
        ),
    )


def _load_youtube(raw: Dict[str, Any]) -> YouTubeConfig:
    quota_raw = _section(raw, "quota")
    quota = QuotaPolicy(
        max_units=_integer(quota_raw, "max_units", QuotaPolicy.max_units, low=0, high=10_000_000),
        buffer_units=_integer(quota_raw, "buffer_units", QuotaPolicy.buffer_units, low=0, high=10_000_000),
    )

    api_key = (os.getenv("YOUTUBE_API_KEY") or "").strip() or None
    if not api_key:
        log.info("YOUTUBE_API_KEY not set; Data API strategy disabled")

    return YouTubeConfig(
        api_key=api_key,
        request_timeout=_number(raw, "request_timeout_seconds", YouTubeConfig.request_timeout, low=1.0, high=60.0),
        concurrency=_integer(raw, "concurrency", YouTubeConfig.concurrency, low=1, high=16),
        batch_cache_ttl=_number(raw, "batch_cache_ttl_seconds", YouTubeConfig.batch_cache_ttl, low=1.0, high=60.0),
        last_known_good_ttl=_number(
            raw, "last_known_good_ttl_seconds", YouTubeConfig.last_known_good_ttl, low=0.0, high=900.0,
        ),
        quota=quota,
    )


def _load_external(raw: Dict[str, Any]) -> ExternalConfig:
    markers = raw.get("live_markers")
    if not isinstance(markers, list) or not markers or not all(isinstance(m, str) and m for m in markers):
        markers = ExternalConfig().live_markers

    return ExternalConfig(
        request_timeout=_number(raw, "request_timeout_seconds", ExternalConfig.request_timeout, low=1.0, high=60.0),
        batch_cache_ttl=_number(raw, "batch_cache_ttl_seconds", ExternalConfig.batch_cache_ttl, low=1.0, high=60.0),
        live_markers=list(markers),
    )


# ------------------------------------------------------------
# Public API
# ------------------------------------------------------------

def load_liveness_config(raw: Optional[Dict[str, Any]] = None) -> LivenessConfig:
    if raw is None:
        override = os.getenv("LIVEWALL_CONFIG")
        raw = _load_json(Path(override) if override else _CONFIG_PATH)

    if not isinstance(raw, dict):
        raw = {}

    for problem in validation_errors(raw):
        log.warning(f"liveness config validation warning at {problem}")

    return LivenessConfig(
        api=_load_api(_section(raw, "api")),
        youtube=_load_youtube(_section(raw, "youtube")),
        external=_load_external(_section(raw, "external")),
    )
