"""
Ordered liveness resolution for YouTube sources.

Strategy order per source:
  1. Data API (only when an API key is configured)
  2. /live redirect to a concrete watch URL
  3. /live page HTML (embedded player data, then keywords)
  4. /streams listing HTML

The first confident verdict wins. Strategy failures never escape the chain:
they fall through to the next strategy and, if every strategy failed, to the
last-known-good cache.
"""

from __future__ import annotations

import asyncio
import json
from dataclasses import replace
from typing import Dict, List, Optional, Tuple

import httpx

from services.youtube.api.live_page import LivePageClient
from services.youtube.api.livestream import YouTubeLivestreamAPI
from services.youtube.models.stream import FoundBy, LivenessResult
from services.youtube.normalizer import (
    KIND_CHANNEL,
    KIND_VIDEO,
    SourceRef,
    dedupe_sources,
    live_page_url,
    streams_page_url,
)
from services.youtube.page_signals import PageVerdict
from shared.config.liveness import YouTubeConfig
from shared.logging.logger import get_logger
from shared.runtime.quotas import QuotaExceeded, QuotaTracker
from shared.runtime.ttl_cache import TTLCache

log = get_logger("youtube.resolver")

# forHandle + search + videos on the usual path
_API_CALLS_PER_LOOKUP = 3

_FOUND_BY_SOURCE = {
    "redirect": FoundBy.REDIRECT,
    "structured_data": FoundBy.STRUCTURED_DATA,
    "keywords": FoundBy.KEYWORDS,
}


def _describe(exc: BaseException) -> str:
    if isinstance(exc, (asyncio.TimeoutError, httpx.TimeoutException)):
        return "timeout"
    return str(exc) or exc.__class__.__name__


class LivenessResolver:
    def __init__(
        self,
        config: YouTubeConfig,
        *,
        batch_cache: TTLCache,
        last_good_cache: TTLCache,
        quota: Optional[QuotaTracker] = None,
        batch_deadline: float = 25.0,
        api: Optional[YouTubeLivestreamAPI] = None,
        pages: Optional[LivePageClient] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.config = config
        self.batch_cache = batch_cache
        self.last_good_cache = last_good_cache
        self.batch_deadline = batch_deadline

        if api is None and config.api_key:
            api = YouTubeLivestreamAPI(
                api_key=config.api_key,
                quota=quota,
                timeout=config.request_timeout,
                transport=transport,
            )
        if api is None:
            log.warning("No YouTube API key configured; resolving with HTML strategies only")
        self._api = api
        self._pages = pages or LivePageClient(
            timeout=config.request_timeout,
            transport=transport,
        )

    # ------------------------------------------------------------------
    # Batch
    # ------------------------------------------------------------------

    async def resolve_batch(self, inputs: List[str]) -> Dict[str, LivenessResult]:
        batch_key = "youtube:batch:" + json.dumps(list(inputs))
        cached = self.batch_cache.get(batch_key, self.config.batch_cache_ttl)
        if cached is not None:
            log.debug(f"Batch cache hit ({len(cached)} source(s))")
            return dict(cached)

        refs, rejected = dedupe_sources(inputs)
        results = await self._resolve_all(refs)

        for raw in rejected:
            log.info(f"Unparseable source input dropped: {raw!r}")
            results.setdefault(raw, LivenessResult.offline(raw, error="unparseable_input"))

        self.batch_cache.set(batch_key, dict(results))
        return results

    async def _resolve_all(self, refs: List[SourceRef]) -> Dict[str, LivenessResult]:
        if not refs:
            return {}

        semaphore = asyncio.Semaphore(self.config.concurrency)

        async def bounded(ref: SourceRef) -> LivenessResult:
            async with semaphore:
                return await self.resolve(ref)

        tasks = [(ref, asyncio.create_task(bounded(ref))) for ref in refs]
        _, pending = await asyncio.wait(
            [task for _, task in tasks],
            timeout=self.batch_deadline,
        )
        for task in pending:
            task.cancel()
        if pending:
            log.warning(f"Batch deadline reached; abandoning {len(pending)} source(s)")
            await asyncio.gather(*pending, return_exceptions=True)

        results: Dict[str, LivenessResult] = {}
        for ref, task in tasks:
            if task.cancelled():
                results[ref.key] = LivenessResult.offline(ref.value, error="timeout")
            elif task.exception() is not None:
                results[ref.key] = LivenessResult.offline(ref.value, error=_describe(task.exception()))
            else:
                results[ref.key] = task.result()
        return results

    # ------------------------------------------------------------------
    # Single source
    # ------------------------------------------------------------------

    async def resolve(self, ref: SourceRef) -> LivenessResult:
        if ref.kind == KIND_VIDEO:
            return LivenessResult.live(ref.value, ref.value, FoundBy.DIRECT)

        failures: List[str] = []
        completed = False
        channel_id = ref.value if ref.kind == KIND_CHANNEL else None

        # 1. Data API
        if self._api is not None:
            try:
                candidate = await asyncio.wait_for(
                    self._api_lookup(ref),
                    timeout=self.config.request_timeout * _API_CALLS_PER_LOOKUP,
                )
                completed = True
                if candidate is not None:
                    return self._remember(ref, LivenessResult.live(
                        ref.value,
                        candidate.video_id,
                        FoundBy.API,
                        channel_id=candidate.channel_id,
                        title=candidate.title,
                    ))
            except QuotaExceeded as e:
                log.warning(f"[{ref.key}] Data API quota exhausted ({e}); falling back to HTML")
                failures.append("quota_exceeded")
            except Exception as e:
                log.warning(f"[{ref.key}] Data API lookup failed: {_describe(e)}")
                failures.append(_describe(e))

        # 2 + 3. /live redirect, then /live HTML
        verdict, error = await self._page_verdict(ref, live_page_url(ref), listing=False)
        if error:
            failures.append(error)
        else:
            completed = True
            if verdict.decided:
                return self._remember(ref, self._from_verdict(ref, verdict, channel_id, listing=False))

        # 4. /streams listing
        verdict, error = await self._page_verdict(ref, streams_page_url(ref), listing=True)
        if error:
            failures.append(error)
        else:
            completed = True
            if verdict.decided:
                return self._remember(ref, self._from_verdict(ref, verdict, channel_id, listing=True))

        if completed:
            return self._remember(ref, LivenessResult.offline(ref.value, channel_id=channel_id))

        return self._fallback(ref, failures)

    async def _api_lookup(self, ref: SourceRef):
        if ref.kind == KIND_CHANNEL:
            return await self._api.get_active_livestream(channel_id=ref.value)
        return await self._api.get_active_livestream(handle=ref.value)

    async def _page_verdict(
        self,
        ref: SourceRef,
        url: str,
        *,
        listing: bool,
    ) -> Tuple[Optional[PageVerdict], Optional[str]]:
        try:
            page = await asyncio.wait_for(
                self._pages.fetch(url),
                timeout=self.config.request_timeout,
            )
        except Exception as e:
            log.warning(f"[{ref.key}] Page fetch failed for {url}: {_describe(e)}")
            return None, _describe(e)

        if not listing:
            redirect = self._pages.redirect_verdict(page)
            if redirect is not None:
                return redirect, None
        return self._pages.html_verdict(page, listing=listing), None

    @staticmethod
    def _from_verdict(
        ref: SourceRef,
        verdict: PageVerdict,
        channel_id: Optional[str],
        *,
        listing: bool,
    ) -> LivenessResult:
        found_by = _FOUND_BY_SOURCE.get(verdict.source, FoundBy.NONE)
        if verdict.is_live and verdict.video_id:
            if listing:
                found_by = FoundBy.STREAMS_PAGE
            return LivenessResult.live(
                ref.value,
                verdict.video_id,
                found_by,
                channel_id=channel_id,
                title=verdict.title,
            )
        return LivenessResult(
            handle=ref.value,
            is_live=False,
            found_by=found_by,
            channel_id=channel_id,
        )

    # ------------------------------------------------------------------
    # Last-known-good holdover
    # ------------------------------------------------------------------

    @staticmethod
    def _holdover_key(ref: SourceRef) -> str:
        kind, value = ref.dedupe_key
        return f"{kind}:{value}"

    def _remember(self, ref: SourceRef, result: LivenessResult) -> LivenessResult:
        if not result.error:
            self.last_good_cache.set(self._holdover_key(ref), result)
        return result

    def _fallback(self, ref: SourceRef, failures: List[str]) -> LivenessResult:
        held = self.last_good_cache.get(self._holdover_key(ref), self.config.last_known_good_ttl)
        if held is not None:
            log.info(f"[{ref.key}] All strategies failed; serving last known good result")
            return replace(held, handle=ref.value, found_by=FoundBy.LAST_KNOWN_GOOD)

        reason = failures[-1] if failures else "unavailable"
        log.warning(f"[{ref.key}] Liveness unavailable: {', '.join(failures) or reason}")
        return LivenessResult.offline(ref.value, error=reason)
