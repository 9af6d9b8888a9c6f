import httpx
from dataclasses import dataclass
from typing import Optional

from services.youtube import page_signals
from services.youtube.normalizer import extract_video_id
from services.youtube.page_signals import PageVerdict
from shared.logging.logger import get_logger

log = get_logger("youtube.live_page")

BROWSER_HEADERS = {
    "User-Agent": (
        "Mozilla/5.0 (Windows NT 10.0; Win64; x64) "
        "AppleWebKit/537.36 (KHTML, like Gecko) "
        "Chrome/120.0.0.0 Safari/537.36"
    ),
    "Accept": (
        "text/html,application/xhtml+xml,application/xml;"
        "q=0.9,image/avif,image/webp,*/*;q=0.8"
    ),
    "Accept-Language": "en-US,en;q=0.9",
}

WATCH_PATH_MARKERS = ("/watch", "/live/", "youtu.be/")


class PageFetchError(RuntimeError):
    def __init__(self, url: str, status: int):
        super().__init__(f"HTTP {status} for {url}")
        self.url = url
        self.status = status


@dataclass(frozen=True)
class PageFetch:
    requested_url: str
    final_url: str
    status: int
    body: str
    redirected: bool


class LivePageClient:
    """
    Fetches channel /live and /streams pages the way a browser would.

    The redirect check and the HTML heuristics both run on a single fetch.
    """

    def __init__(
        self,
        *,
        timeout: float = 8.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.timeout = timeout
        self._transport = transport

    async def fetch(self, url: str) -> PageFetch:
        async with httpx.AsyncClient(
            timeout=self.timeout,
            follow_redirects=True,
            headers=BROWSER_HEADERS,
            transport=self._transport,
        ) as client:
            resp = await client.get(url)

        if not resp.is_success:
            raise PageFetchError(url, resp.status_code)

        return PageFetch(
            requested_url=url,
            final_url=str(resp.url),
            status=resp.status_code,
            body=resp.text,
            redirected=bool(resp.history),
        )

    # ------------------------------------------------------------

    @staticmethod
    def redirect_verdict(page: PageFetch) -> Optional[PageVerdict]:
        """
        Live iff upstream redirected /live to a concrete watch URL.

        A redirect that lands on a consent or bot-check wall (by URL or by
        body) is a confident not-live.
        """
        if not page.redirected:
            return None
        if page_signals.is_interstitial(page.body, page.final_url):
            log.info(f"Interstitial page served for {page.requested_url}; treating as not live")
            return PageVerdict(False, source="interstitial")
        if not any(marker in page.final_url for marker in WATCH_PATH_MARKERS):
            return None

        video_id = extract_video_id(page.final_url)
        if not video_id:
            return None
        return PageVerdict(True, video_id, source="redirect")

    @staticmethod
    def html_verdict(page: PageFetch, *, listing: bool = False) -> PageVerdict:
        verdict = page_signals.classify_page(page.body, page.final_url, listing=listing)
        if verdict.source == "interstitial":
            log.info(f"Interstitial page served for {page.requested_url}; treating as not live")
        return verdict
