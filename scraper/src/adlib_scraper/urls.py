"""URL helpers for the Meta Ads Library."""

from __future__ import annotations

import urllib.parse

ADS_LIBRARY_URL = "https://www.facebook.com/ads/library/"

_TRACKERS = {"fbclid", "gclid", "dclid", "gclsrc", "mc_eid", "mc_cid", "_hsenc", "_hsmi"}


def build_search_url(search_term: str = "", *, country: str = "BR") -> str:
    """Return the Ads Library results URL, keyword-qualified when a term is given."""

    params: list[tuple[str, str]] = []
    if search_term:
        params.append(("search_type", "keyword_unordered"))
        params.append(("search_term", search_term))
    params.append(("country", country))
    return f"{ADS_LIBRARY_URL}?{urllib.parse.urlencode(params, quote_via=urllib.parse.quote)}"


def normalize_destination_url(url: str | None) -> str:
    """Unwrap ``l.facebook.com`` redirects and drop tracking parameters.

    Returns an empty string for anything that is not an http(s) link.
    """

    try:
        if not url:
            return ""
        parsed = urllib.parse.urlparse(url.strip())
        if parsed.scheme not in ("http", "https", ""):
            return ""
        host = (parsed.netloc or "").lower()
        qs = urllib.parse.parse_qs(parsed.query)

        if host in ("l.facebook.com", "lm.facebook.com") and parsed.path.startswith("/l.php"):
            target = qs.get("u", [None])[0]
            if not target:
                return ""
            return normalize_destination_url(target)

        clean_qs = {k: v for k, v in qs.items() if (k not in _TRACKERS and not k.startswith("utm_"))}
        clean_query = urllib.parse.urlencode([(k, vv) for k, vs in clean_qs.items() for vv in vs], doseq=True)

        scheme = parsed.scheme or "https"
        return urllib.parse.urlunparse((scheme, parsed.netloc, parsed.path, parsed.params, clean_query, parsed.fragment))
    except ValueError:
        return ""


__all__ = ["ADS_LIBRARY_URL", "build_search_url", "normalize_destination_url"]
