"""Playwright session helpers used by the crawler."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any

from playwright.async_api import ElementHandle, Page, Route, async_playwright

from .logging import jlog

CHROMIUM_LAUNCH_ARGS = [
    "--no-sandbox",
    "--disable-setuid-sandbox",
    "--disable-dev-shm-usage",
    "--disable-accelerated-2d-canvas",
    "--no-first-run",
    "--no-zygote",
    "--disable-gpu",
]

VIEWPORT = {"width": 1920, "height": 1080}
BLOCKED_RESOURCE_TYPES = frozenset({"image", "stylesheet", "font", "media"})


@dataclass
class BrowserSession:
    """One driver/browser/context/page tuple owned by a single crawler."""

    page: Page | None = None
    context: Any = None
    browser: Any = None
    driver: Any = None

    async def close(self) -> None:
        await cleanup_playwright(self)


async def block_heavy_resources(route: Route) -> None:
    """Abort image, stylesheet, font and media fetches to save bandwidth."""

    if route.request.resource_type in BLOCKED_RESOURCE_TYPES:
        await route.abort()
    else:
        await route.continue_()


async def launch_chromium_session(
    *,
    user_agent: str,
    headless: bool = True,
    timeout_ms: int = 30_000,
    proxy_server: str | None = None,
) -> BrowserSession:
    """Start Playwright, launch Chromium and open a filtered page."""

    driver = await async_playwright().start()
    browser = context = None
    launch_kwargs: dict[str, Any] = {"headless": headless, "args": CHROMIUM_LAUNCH_ARGS}
    if proxy_server:
        launch_kwargs["proxy"] = {"server": proxy_server}
    try:
        browser = await driver.chromium.launch(**launch_kwargs)
        context = await browser.new_context(user_agent=user_agent, viewport=VIEWPORT)
        context.set_default_timeout(timeout_ms)
        await context.route("**/*", block_heavy_resources)
        page = await context.new_page()
    except BaseException:
        await cleanup_playwright(BrowserSession(page=None, context=context, browser=browser, driver=driver))
        raise
    return BrowserSession(page=page, context=context, browser=browser, driver=driver)


async def element_is_disabled(handle: ElementHandle | None) -> bool:
    """Return True for a missing control or one flagged as disabled."""

    if not handle:
        return True
    return await handle.evaluate(
        "(el) => el.getAttribute('aria-disabled') === 'true' || el.hasAttribute('disabled')"
    )


async def cleanup_playwright(session: BrowserSession) -> None:
    """Close page, context, browser and driver; errors are logged only."""

    steps = (
        ("page", session.page, "close"),
        ("context", session.context, "close"),
        ("browser", session.browser, "close"),
        ("driver", session.driver, "stop"),
    )
    for label, resource, method in steps:
        if not resource:
            continue
        try:
            await getattr(resource, method)()
        except Exception as exc:
            jlog("warning", event="session_close_error", resource=label, error=str(exc))


__all__ = [
    "BLOCKED_RESOURCE_TYPES",
    "BrowserSession",
    "CHROMIUM_LAUNCH_ARGS",
    "VIEWPORT",
    "block_heavy_resources",
    "cleanup_playwright",
    "element_is_disabled",
    "launch_chromium_session",
]
