"""Paginated Ads Library crawler driven by a Playwright session.

The crawler owns exactly one browser session and walks the search results
page by page::

    IDLE -> INITIALIZED -> NAVIGATING -> EXTRACTING -> (PAGINATING <-> EXTRACTING)* -> CLOSED

Any error releases the session, moves the crawler to ``CLOSED`` and is
re-raised. A closed crawler may be initialized again. Only raw
:class:`RawAdSnapshot` values leave this module; validation and hashing are
done by :mod:`adlib_scraper.normalize`.
"""

from __future__ import annotations

import asyncio
from collections.abc import Awaitable, Callable
from enum import Enum
from typing import Any

from playwright.async_api import Error as PlaywrightError
from playwright.async_api import Page
from playwright.async_api import TimeoutError as PlaywrightTimeoutError

from .debug import dump_page_html
from .errors import CrawlerStateError, ExtractionError, InitializationError, NavigationError
from .logging import jlog
from .models import RawAdSnapshot, ScrapingConfig
from .playwright import BrowserSession, element_is_disabled, launch_chromium_session
from .urls import build_search_url

RESULT_SELECTOR = '[data-testid="ad-archive-result"]'
NEXT_PAGE_SELECTOR = '[data-testid="next-page-button"]'

EXTRACT_ADS_JS = """
(selector) => {
  const text = (root, sel) => {
    const el = root.querySelector(sel);
    return el && el.textContent ? el.textContent.trim() : '';
  };
  const attr = (root, sel, name) => {
    const el = root.querySelector(sel);
    return el ? (el.getAttribute(name) || '') : '';
  };
  const out = [];
  document.querySelectorAll(selector).forEach((card, index) => {
    try {
      out.push({
        index,
        headline: text(card, '[data-testid="ad-creative-title"]'),
        description: text(card, '[data-testid="ad-creative-body"]'),
        thumbnailUrl: attr(card, 'img[data-testid="ad-image"]', 'src'),
        videoUrl: attr(card, 'video', 'src'),
        destinationUrl: attr(card, '[data-testid="ad-link"]', 'href'),
        callToAction: text(card, '[data-testid="ad-cta"]'),
        pageName: text(card, '[data-testid="page-name"]'),
        startDateText: text(card, '[data-testid="ad-start-date"]'),
        hasCarousel: !!card.querySelector('[data-testid="carousel-indicator"]'),
      });
    } catch (err) {
      out.push({ index, error: String(err) });
    }
  });
  return out;
}
"""

FIRST_RESULT_JS = """
(selector) => {
  const card = document.querySelector(selector);
  return card ? card.innerHTML : null;
}
"""

# Truthy once the first result card no longer matches the one seen before the click.
RESULTS_REPLACED_JS = """
([selector, before]) => {
  const card = document.querySelector(selector);
  return !!card && card.innerHTML !== before;
}
"""

SessionLauncher = Callable[[], Awaitable[BrowserSession]]
Sleep = Callable[[float], Awaitable[Any]]


class CrawlerState(str, Enum):
    IDLE = "idle"
    INITIALIZED = "initialized"
    NAVIGATING = "navigating"
    EXTRACTING = "extracting"
    PAGINATING = "paginating"
    CLOSED = "closed"


def snapshot_from_payload(item: Any) -> RawAdSnapshot:
    """Convert one entry of the page script's output, or raise ExtractionError."""

    if not isinstance(item, dict):
        raise ExtractionError(f"unexpected extraction payload: {item!r}")
    if item.get("error"):
        raise ExtractionError(f"ad #{item.get('index')}: {item['error']}")
    return RawAdSnapshot.from_page_payload(item)


class PageCrawler:
    """Single-flight crawler over the Ads Library search results."""

    def __init__(
        self,
        config: ScrapingConfig,
        *,
        launcher: SessionLauncher | None = None,
        country: str = "BR",
        result_timeout_ms: int = 10_000,
        navigation_timeout_ms: int = 30_000,
        headless: bool = True,
        proxy_server: str | None = None,
        debug_html: bool = False,
        sleep: Sleep = asyncio.sleep,
    ) -> None:
        self.config = config
        self.country = country
        self.result_timeout_ms = result_timeout_ms
        self.navigation_timeout_ms = navigation_timeout_ms
        self.debug_html = debug_html
        self._sleep = sleep
        self._launcher = launcher or self._default_launcher(headless, proxy_server if config.use_proxy else None)
        self._session: BrowserSession | None = None
        self._state = CrawlerState.IDLE
        self._lock = asyncio.Lock()

    def _default_launcher(self, headless: bool, proxy_server: str | None) -> SessionLauncher:
        async def _launch() -> BrowserSession:
            return await launch_chromium_session(
                user_agent=self.config.user_agent,
                headless=headless,
                timeout_ms=self.navigation_timeout_ms,
                proxy_server=proxy_server,
            )

        return _launch

    @property
    def state(self) -> CrawlerState:
        return self._state

    def _set_state(self, state: CrawlerState, **fields: Any) -> None:
        if state is not self._state:
            jlog("debug", event="crawler_state", previous=self._state.value, state=state.value, **fields)
        self._state = state

    async def __aenter__(self) -> "PageCrawler":
        await self.initialize()
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        await self.close()

    async def initialize(self) -> None:
        """Acquire a headless browser session with resource blocking installed."""

        if self._state not in (CrawlerState.IDLE, CrawlerState.CLOSED):
            raise CrawlerStateError(f"cannot initialize a crawler in state {self._state.value}")
        try:
            self._session = await self._launcher()
        except Exception as exc:
            self._session = None
            self._set_state(CrawlerState.CLOSED)
            jlog("error", event="crawler_init_failed", error=str(exc))
            raise InitializationError(f"Failed to start browser session: {exc}") from exc
        self._set_state(CrawlerState.INITIALIZED)
        jlog("info", event="crawler_initialized", user_agent=self.config.user_agent)

    async def crawl(self, search_term: str = "", max_pages: int | None = None) -> list[RawAdSnapshot]:
        """Walk up to ``max_pages`` result pages and return every ad snapshot."""

        if self._session is None or self._state is not CrawlerState.INITIALIZED:
            if self._lock.locked():
                raise CrawlerStateError("a crawl is already running on this crawler")
            raise CrawlerStateError("Crawler not initialized. Call initialize() first.")
        limit = max_pages if max_pages is not None else self.config.max_pages
        async with self._lock:
            try:
                snapshots = await self._crawl(self._session.page, search_term, limit)
            except BaseException:
                await self.close()
                raise
            self._set_state(CrawlerState.INITIALIZED)
        return snapshots

    async def _crawl(self, page: Page, search_term: str, max_pages: int) -> list[RawAdSnapshot]:
        url = build_search_url(search_term, country=self.country)
        self._set_state(CrawlerState.NAVIGATING, url=url)
        jlog("info", event="crawl_start", search_term=search_term, url=url, max_pages=max_pages)
        try:
            await page.goto(url, wait_until="domcontentloaded", timeout=self.navigation_timeout_ms)
        except PlaywrightError as exc:
            raise NavigationError(f"could not open {url}: {exc}") from exc

        snapshots: list[RawAdSnapshot] = []
        pages_done = 0
        while pages_done < max_pages:
            self._set_state(CrawlerState.EXTRACTING, page=pages_done + 1)
            try:
                await page.wait_for_selector(RESULT_SELECTOR, timeout=self.result_timeout_ms)
            except PlaywrightTimeoutError as exc:
                if self.debug_html:
                    await dump_page_html(page, search_term, pages_done + 1)
                if pages_done == 0:
                    raise NavigationError(f"result list never loaded for search term {search_term!r}") from exc
                jlog("warning", event="results_not_loaded", search_term=search_term, page=pages_done + 1)
                break

            page_snapshots = await self._extract_page(page)
            snapshots.extend(page_snapshots)
            pages_done += 1
            jlog(
                "info",
                event="page_extracted",
                search_term=search_term,
                page=pages_done,
                max_pages=max_pages,
                ads=len(page_snapshots),
            )
            if pages_done >= max_pages:
                break

            self._set_state(CrawlerState.PAGINATING, page=pages_done)
            if not await self._advance(page):
                jlog("info", event="no_more_pages", search_term=search_term, pages=pages_done)
                break
            await self._sleep(self.config.delay_between_requests / 1000.0)

        jlog("info", event="crawl_done", search_term=search_term, pages=pages_done, ads=len(snapshots))
        return snapshots

    async def _extract_page(self, page: Page) -> list[RawAdSnapshot]:
        try:
            payload = await page.evaluate(EXTRACT_ADS_JS, RESULT_SELECTOR)
        except PlaywrightError as exc:
            jlog("error", event="page_extraction_failed", error=str(exc))
            return []

        snapshots: list[RawAdSnapshot] = []
        for item in payload or []:
            try:
                snapshots.append(snapshot_from_payload(item))
            except ExtractionError as exc:
                jlog("warning", event="ad_extraction_skipped", error=str(exc))
        return snapshots

    async def _advance(self, page: Page) -> bool:
        """Click the next-page control and wait until the result list is replaced.

        False when the control is absent, disabled or broken, or when the old
        results are still shown after the navigation timeout.
        """

        try:
            button = await page.query_selector(NEXT_PAGE_SELECTOR)
            if await element_is_disabled(button):
                return False
            before = await page.evaluate(FIRST_RESULT_JS, RESULT_SELECTOR)
            await button.click()
            await page.wait_for_function(
                RESULTS_REPLACED_JS,
                arg=[RESULT_SELECTOR, before],
                timeout=self.navigation_timeout_ms,
            )
        except PlaywrightTimeoutError:
            jlog("warning", event="results_not_replaced", timeout_ms=self.navigation_timeout_ms)
            return False
        except PlaywrightError as exc:
            jlog("warning", event="pagination_failed", error=str(exc))
            return False
        return True

    async def close(self) -> None:
        """Release the page and browser; safe to call repeatedly."""

        session, self._session = self._session, None
        if session is not None:
            try:
                await session.close()
            except Exception as exc:
                jlog("warning", event="crawler_close_error", error=str(exc))
            jlog("info", event="crawler_closed")
        self._set_state(CrawlerState.CLOSED)


__all__ = [
    "CrawlerState",
    "EXTRACT_ADS_JS",
    "FIRST_RESULT_JS",
    "NEXT_PAGE_SELECTOR",
    "PageCrawler",
    "RESULT_SELECTOR",
    "RESULTS_REPLACED_JS",
    "snapshot_from_payload",
]
