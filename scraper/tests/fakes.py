"""Test doubles for the browser session, the classifier and the crawler."""

from __future__ import annotations

import json
from datetime import datetime

from playwright.async_api import TimeoutError as PlaywrightTimeoutError

from adlib_scraper.crawler import FIRST_RESULT_JS, RESULTS_REPLACED_JS, CrawlerState
from adlib_scraper.errors import AnalysisError
from adlib_scraper.models import UTC, Creative, RawAdSnapshot
from adlib_scraper.normalize import normalize_snapshot

NOW = datetime(2025, 1, 15, 12, 0, tzinfo=UTC)


def ad_payload(index: int, **overrides) -> dict:
    payload = {
        "index": index,
        "headline": f"Headline {index}",
        "description": "Body copy",
        "thumbnailUrl": "https://cdn.example.com/t.jpg",
        "videoUrl": "",
        "destinationUrl": f"https://shop.example.com/p/{index}",
        "callToAction": "Shop now",
        "pageName": "Example Page",
        "startDateText": "Started running on Jan 5, 2025",
        "hasCarousel": False,
    }
    payload.update(overrides)
    return payload


class FakeButton:
    def __init__(self, page: "FakePage", disabled: bool):
        self.page = page
        self.disabled = disabled

    async def evaluate(self, _js):
        return self.disabled

    async def click(self):
        self.page.clicks += 1
        self.page.pending = self.page.current + 1


class FakePage:
    """Serves one payload list per result page; the next button follows the page count.

    A click only queues the next page. It replaces the shown results once the
    crawler waits for them to change, unless ``stale_after_click`` is set.
    """

    def __init__(self, pages, *, timeout_on=(), missing_next=False, stale_after_click=False):
        self.pages = pages
        self.timeout_on = set(timeout_on)
        self.missing_next = missing_next
        self.stale_after_click = stale_after_click
        self.current = 0
        self.pending = None
        self.clicks = 0
        self.visited: list[str] = []
        self.evaluated = 0

    async def goto(self, url, **_kw):
        self.visited.append(url)

    async def wait_for_selector(self, _selector, **_kw):
        if self.current in self.timeout_on:
            raise PlaywrightTimeoutError("Timeout 10000ms exceeded.")

    async def evaluate(self, js, _arg=None):
        if js == FIRST_RESULT_JS:
            return f"first-card-of-page-{self.current}"
        self.evaluated += 1
        return self.pages[self.current]

    async def query_selector(self, _selector):
        if self.missing_next:
            return None
        return FakeButton(self, disabled=self.current >= len(self.pages) - 1)

    async def wait_for_function(self, js, *, arg=None, timeout=None):
        assert js == RESULTS_REPLACED_JS
        assert arg[1] == f"first-card-of-page-{self.current}"
        if self.stale_after_click or self.pending is None:
            raise PlaywrightTimeoutError(f"Timeout {timeout}ms exceeded.")
        self.current, self.pending = self.pending, None

    async def content(self):
        return "<html></html>"


class FakeSession:
    def __init__(self, page):
        self.page = page
        self.closed = 0

    async def close(self):
        self.closed += 1


def launcher_for(*sessions):
    remaining = list(sessions)
    launched = []

    async def _launch():
        session = remaining.pop(0)
        launched.append(session)
        return session

    _launch.launched = launched
    return _launch


async def no_sleep(_seconds):
    return None


def analysis_json(**overrides) -> str:
    payload = {
        "hookType": "curiosity",
        "niche": "fitness",
        "tags": ["emagrecimento", "dieta"],
        "sentiment": "positive",
        "urgencyLevel": "medium",
        "emotionalTriggers": ["hope"],
        "suggestions": ["Add social proof"],
        "confidence": 0.82,
    }
    payload.update(overrides)
    return json.dumps(payload)


class FakeClassifier:
    """Returns queued responses in order; exceptions in the queue are raised."""

    def __init__(self, *responses):
        self.responses = list(responses)
        self.requests = []

    async def complete(self, request):
        self.requests.append(request)
        if not self.responses:
            return analysis_json()
        item = self.responses.pop(0)
        if isinstance(item, BaseException):
            raise item
        return item


class FailingClassifier:
    async def complete(self, request):
        raise AnalysisError("provider unavailable")


class FakeCrawler:
    """Crawler double: per-keyword snapshot lists, or exceptions to raise."""

    def __init__(self, results, *, init_error=None):
        self.results = results
        self.init_error = init_error
        self.state = CrawlerState.IDLE
        self.initialized = 0
        self.closed = 0
        self.crawled: list[tuple[str, int | None]] = []

    async def initialize(self):
        if self.init_error is not None:
            self.state = CrawlerState.CLOSED
            raise self.init_error
        self.initialized += 1
        self.state = CrawlerState.INITIALIZED

    async def crawl(self, search_term="", max_pages=None):
        self.crawled.append((search_term, max_pages))
        outcome = self.results.get(search_term, [])
        if isinstance(outcome, BaseException):
            self.state = CrawlerState.CLOSED
            raise outcome
        return outcome

    async def close(self):
        self.closed += 1
        self.state = CrawlerState.CLOSED


def make_creative(index: int = 1, *, now: datetime = NOW, **overrides) -> Creative:
    snapshot = RawAdSnapshot.from_page_payload(ad_payload(index, **overrides))
    creative = normalize_snapshot(snapshot, now=now)
    assert creative is not None
    return creative
