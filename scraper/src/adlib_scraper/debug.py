"""Debug artifact helpers for crawls that stall."""

from __future__ import annotations

import os
import re

from playwright.async_api import Page

from .logging import jlog

DEBUG_DIR = "media/debug"


def ensure_debug_dir() -> str:
    """Create the debug directory if it does not exist and return the path."""

    os.makedirs(DEBUG_DIR, exist_ok=True)
    return DEBUG_DIR


def debug_filename(search_term: str, page_number: int) -> str:
    slug = re.sub(r"[^a-z0-9]+", "-", (search_term or "all").lower()).strip("-") or "all"
    return f"results_{slug}_p{page_number}.html"


async def dump_page_html(page: Page, search_term: str, page_number: int) -> str | None:
    """Persist the current page HTML for later debugging (best effort)."""

    try:
        path = os.path.join(ensure_debug_dir(), debug_filename(search_term, page_number))
        html = await page.content()
        with open(path, "w", encoding="utf-8") as fh:
            fh.write(html)
    except Exception as exc:  # pragma: no cover - logging only
        jlog("error", event="debug_save_html_error", search_term=search_term, page=page_number, error=str(exc))
        return None
    jlog("info", event="debug_html_saved", search_term=search_term, page=page_number, path=path)
    return path


__all__ = ["DEBUG_DIR", "debug_filename", "dump_page_html", "ensure_debug_dir"]
