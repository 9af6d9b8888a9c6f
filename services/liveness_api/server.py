"""HTTP API server for YouTube and external liveness checks."""

from __future__ import annotations

import asyncio
import json
import threading
from http import HTTPStatus
from http.server import BaseHTTPRequestHandler, ThreadingHTTPServer
from typing import Any, Dict, List, Optional
from urllib.parse import parse_qs, urlparse

from runtime import version
from services.external.models import ExternalSource
from services.external.prober import ExternalStatusProber
from services.youtube.models.stream import LivenessResult
from services.youtube.normalizer import embed_url, normalize_source, split_source_list
from services.youtube.resolver import LivenessResolver
from shared.config.liveness import ApiServerConfig
from shared.logging.logger import get_logger
from shared.runtime.quotas import QuotaTracker

log = get_logger("services.liveness_api")


class MalformedRequest(ValueError):
    """Request body is not valid JSON (or not a JSON object)."""


def channel_status_item(channel: Dict[str, Any], result: Optional[LivenessResult]) -> Dict[str, Any]:
    """Shape one entry of the /api/youtube/status response."""
    item: Dict[str, Any] = {
        "id": str(channel.get("id") or ""),
        "inputUrl": str(channel.get("url") or ""),
        "handle": None,
        "channelId": None,
        "state": "ERROR",
        "liveVideoId": None,
        "watchUrl": None,
        "embedUrl": None,
    }
    if result is None:
        item["reason"] = "Could not parse channel URL."
        return item

    item["handle"] = result.handle
    item["channelId"] = result.channel_id
    if result.is_live and result.video_id:
        item.update(
            state="LIVE",
            liveVideoId=result.video_id,
            watchUrl=result.watch_url,
            embedUrl=embed_url(result.video_id),
        )
    elif result.error:
        item["reason"] = result.error
    else:
        item["state"] = "OFFLINE"
    return item


class LivenessApiServer:
    def __init__(
        self,
        config: ApiServerConfig,
        *,
        resolver: LivenessResolver,
        prober: ExternalStatusProber,
        quota: Optional[QuotaTracker] = None,
    ) -> None:
        self._config = config
        self._resolver = resolver
        self._prober = prober
        self._quota = quota
        self._thread: Optional[threading.Thread] = None
        self._server: Optional[ThreadingHTTPServer] = None

    @property
    def address(self) -> tuple:
        if not self._server:
            return (self._config.host, int(self._config.port))
        return self._server.server_address[:2]

    def start(self) -> None:
        if self._thread and self._thread.is_alive():
            return

        handler = self._build_handler()
        self._server = ThreadingHTTPServer(
            (self._config.host, int(self._config.port)),
            handler,
        )
        self._server.daemon_threads = True
        self._thread = threading.Thread(target=self._server.serve_forever, daemon=True)
        self._thread.start()
        host, port = self.address
        log.info(f"Liveness API server running on {host}:{port}")

    def stop(self) -> None:
        if not self._server:
            return
        self._server.shutdown()
        self._server.server_close()
        self._server = None
        log.info("Liveness API server stopped")

    # ------------------------------------------------------------------
    # Operations (sync wrappers; one event loop per request thread)
    # ------------------------------------------------------------------

    def youtube_live(self, inputs: List[str]) -> Dict[str, Any]:
        results = asyncio.run(self._resolver.resolve_batch(inputs))
        return {
            "ok": True,
            "results": {key: result.to_dict() for key, result in results.items()},
        }

    def youtube_status(self, channels: List[Dict[str, Any]]) -> Dict[str, Any]:
        channels = [c for c in channels if isinstance(c, dict)]
        urls = [str(c.get("url") or "").strip() for c in channels]
        results = asyncio.run(self._resolver.resolve_batch([u for u in urls if u]))

        # results are keyed by canonical key; map inputs back through the normalizer
        by_lower = {key.lower(): result for key, result in results.items()}
        items = []
        for channel, url in zip(channels, urls):
            ref = normalize_source(url)
            result = None
            if ref is not None:
                result = results.get(ref.key) or by_lower.get(ref.key.lower())
            items.append(channel_status_item(channel, result))
        return {"items": items}

    def external_status(self, payload: Dict[str, Any]) -> Dict[str, Any]:
        raw = payload.get("sources")
        if raw is None:
            raw = payload.get("items")
        sources = [ExternalSource.from_payload(s) for s in raw or []] if isinstance(raw, list) else []
        items = asyncio.run(self._prober.probe(sources))
        return {"items": [item.to_dict() for item in items]}

    def health(self) -> Dict[str, Any]:
        payload: Dict[str, Any] = {"ok": True, "version": version.as_dict()}
        if self._quota is not None:
            payload["quota"] = dict(self._quota.snapshot(), status=self._quota.status())
        return payload

    # ------------------------------------------------------------------
    # Handler
    # ------------------------------------------------------------------

    def _build_handler(self):
        config = self._config
        server = self

        class Handler(BaseHTTPRequestHandler):
            def log_message(self, format: str, *args) -> None:  # noqa: A002 - stdlib signature
                log.debug(f"{self.address_string()} - {format % args}")

            def _send_json(self, status: int, payload: Dict[str, Any]) -> None:
                body = json.dumps(payload).encode("utf-8")
                self.send_response(status)
                self.send_header("Content-Type", "application/json; charset=utf-8")
                self.send_header("Content-Length", str(len(body)))
                self.send_header("Cache-Control", "no-store")
                self._apply_cors()
                self.end_headers()
                self.wfile.write(body)

            def _apply_cors(self) -> None:
                origins = config.allow_origins
                if not origins:
                    return
                origin = self.headers.get("Origin")
                if "*" in origins:
                    self.send_header("Access-Control-Allow-Origin", "*")
                elif origin and origin in origins:
                    self.send_header("Access-Control-Allow-Origin", origin)
                self.send_header("Access-Control-Allow-Headers", "Content-Type")
                self.send_header("Access-Control-Allow-Methods", "GET, POST, OPTIONS")

            def _read_json_body(self) -> Dict[str, Any]:
                try:
                    length = int(self.headers.get("Content-Length", 0) or 0)
                except ValueError as e:
                    raise MalformedRequest("invalid Content-Length") from e
                if length <= 0:
                    raise MalformedRequest("empty body")
                raw = self.rfile.read(length)
                try:
                    payload = json.loads(raw.decode("utf-8"))
                except (UnicodeDecodeError, json.JSONDecodeError) as e:
                    raise MalformedRequest(str(e)) from e
                if not isinstance(payload, dict):
                    raise MalformedRequest("body must be a JSON object")
                return payload

            def do_OPTIONS(self) -> None:  # noqa: N802 - stdlib signature
                self.send_response(HTTPStatus.NO_CONTENT)
                self.send_header("Cache-Control", "no-store")
                self._apply_cors()
                self.end_headers()

            def do_GET(self) -> None:  # noqa: N802 - stdlib signature
                self._dispatch(self._handle_get)

            def do_POST(self) -> None:  # noqa: N802 - stdlib signature
                self._dispatch(self._handle_post)

            def _dispatch(self, handler) -> None:
                parsed = urlparse(self.path)
                try:
                    handler(parsed)
                except MalformedRequest as e:
                    log.info(f"Malformed request to {parsed.path}: {e}")
                    self._send_json(HTTPStatus.BAD_REQUEST, {"error": "Invalid JSON body."})
                except Exception as e:
                    log.error(f"Unhandled error serving {parsed.path}: {e}")
                    self._send_json(HTTPStatus.INTERNAL_SERVER_ERROR, {"error": "internal error"})

            def _handle_get(self, parsed) -> None:
                query = parse_qs(parsed.query)

                if parsed.path == "/api/youtube/live":
                    inputs = split_source_list(
                        *(query.get("handles") or []),
                        *(query.get("inputs") or []),
                    )
                    return self._send_json(HTTPStatus.OK, server.youtube_live(inputs))

                if parsed.path == "/api/health":
                    return self._send_json(HTTPStatus.OK, server.health())

                self._send_json(HTTPStatus.NOT_FOUND, {"error": "Unknown endpoint"})

            def _handle_post(self, parsed) -> None:
                if parsed.path == "/api/youtube/status":
                    payload = self._read_json_body()
                    channels = payload.get("channels")
                    if not isinstance(channels, list):
                        channels = []
                    return self._send_json(HTTPStatus.OK, server.youtube_status(channels))

                if parsed.path == "/api/external/status":
                    payload = self._read_json_body()
                    return self._send_json(HTTPStatus.OK, server.external_status(payload))

                self._send_json(HTTPStatus.NOT_FOUND, {"error": "Unknown endpoint"})

        return Handler
