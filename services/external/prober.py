import asyncio
import json
from typing import List, Optional, Sequence

import httpx

from services.external.models import ExternalSource, ExternalState, ExternalStatusResult
from services.youtube.api.live_page import BROWSER_HEADERS
from shared.config.liveness import ExternalConfig
from shared.logging.logger import get_logger
from shared.runtime.ttl_cache import TTLCache

log = get_logger("external.prober")


def _describe(exc: BaseException) -> str:
    if isinstance(exc, (asyncio.TimeoutError, httpx.TimeoutException)):
        return "timeout"
    return str(exc) or exc.__class__.__name__


class ExternalStatusProber:
    """
    ON AIR style status checks for non-YouTube live pages.

    Each publisher needs its own marker text; this is a per-site text match,
    not a general liveness detector.
    """

    def __init__(
        self,
        config: ExternalConfig,
        *,
        cache: TTLCache,
        concurrency: int = 6,
        batch_deadline: float = 25.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.config = config
        self.cache = cache
        self.concurrency = max(1, concurrency)
        self.batch_deadline = batch_deadline
        self._transport = transport

    # ------------------------------------------------------------

    async def probe(self, sources: Sequence[ExternalSource]) -> List[ExternalStatusResult]:
        if not sources:
            return []

        batch_key = "external:batch:" + json.dumps([s.url for s in sources])
        cached = self.cache.get(batch_key, self.config.batch_cache_ttl)
        if cached is not None:
            return list(cached)

        semaphore = asyncio.Semaphore(self.concurrency)

        async with httpx.AsyncClient(
            timeout=self.config.request_timeout,
            follow_redirects=True,
            headers=BROWSER_HEADERS,
            transport=self._transport,
        ) as client:

            async def bounded(source: ExternalSource) -> ExternalStatusResult:
                async with semaphore:
                    return await self._probe_one(client, source)

            tasks = [asyncio.create_task(bounded(s)) for s in sources]
            _, pending = await asyncio.wait(tasks, timeout=self.batch_deadline)
            for task in pending:
                task.cancel()
            if pending:
                log.warning(f"Batch deadline reached; abandoning {len(pending)} external source(s)")
                await asyncio.gather(*pending, return_exceptions=True)

        items = []
        for source, task in zip(sources, tasks):
            if task.cancelled():
                items.append(ExternalStatusResult(source.id, source.url, ExternalState.ERROR, "timeout"))
            else:
                items.append(task.result())

        self.cache.set(batch_key, list(items))
        return items

    async def _probe_one(
        self,
        client: httpx.AsyncClient,
        source: ExternalSource,
    ) -> ExternalStatusResult:
        if not source.url:
            return ExternalStatusResult(source.id, source.url, ExternalState.ERROR, "missing url")

        try:
            resp = await asyncio.wait_for(
                client.get(source.url),
                timeout=self.config.request_timeout,
            )
        except Exception as e:
            reason = _describe(e)
            log.error(f"[{source.id}] External status fetch failed: {reason}")
            return ExternalStatusResult(source.id, source.url, ExternalState.ERROR, reason)

        if not resp.is_success:
            reason = f"HTTP {resp.status_code} for {source.url}"
            log.error(f"[{source.id}] External status fetch failed: {reason}")
            return ExternalStatusResult(source.id, source.url, ExternalState.ERROR, reason)

        marker = self.find_marker(resp.text)
        if marker:
            log.debug(f"[{source.id}] LIVE (marker {marker!r})")
            return ExternalStatusResult(
                source.id, source.url, ExternalState.LIVE,
                f"Indicator text found ({marker}).",
            )

        return ExternalStatusResult(
            source.id, source.url, ExternalState.OFFLINE, "Indicator text not found."
        )

    def find_marker(self, html: str) -> Optional[str]:
        """Exact marker first, then a case-insensitive pass."""
        for marker in self.config.live_markers:
            if marker in html:
                return marker
        lowered = html.lower()
        for marker in self.config.live_markers:
            if marker.lower() in lowered:
                return marker
        return None
