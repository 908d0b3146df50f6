"""
Listing URL canonicalization.

The canonical URL is a listing's identity key in both the scrape queue and
the listing store, so the same page reached through different tracking
links must always map to one string.
"""

from __future__ import annotations

from urllib.parse import parse_qsl, urlencode, urlsplit, urlunsplit

TRACKING_PARAMS = frozenset(
    {
        "gclid",
        "gbraid",
        "wbraid",
        "fbclid",
        "msclkid",
        "ref",
        "source",
    }
)
TRACKING_PREFIXES = ("utm_", "gad_")
_DEFAULT_PORTS = {"http": 80, "https": 443}


def _is_tracking_param(name: str) -> bool:
    lowered = name.lower()
    return lowered in TRACKING_PARAMS or lowered.startswith(TRACKING_PREFIXES)


def canonicalize_url(raw_url: str) -> str:
    """
    Lowercase scheme and host, drop fragment, default port and tracking
    parameters, and strip the trailing slash unless the path is "/".

    Input that is not an absolute http(s) URL is returned trimmed.
    """

    candidate = (raw_url or "").strip()
    try:
        parts = urlsplit(candidate)
        port = parts.port
    except ValueError:
        return candidate

    scheme = parts.scheme.lower()
    host = (parts.hostname or "").lower()
    if scheme not in _DEFAULT_PORTS or not host:
        return candidate

    netloc = host
    if port is not None and port != _DEFAULT_PORTS[scheme]:
        netloc = f"{host}:{port}"

    path = parts.path or "/"
    if len(path) > 1 and path.endswith("/"):
        path = path.rstrip("/") or "/"

    query_pairs = [
        (key, value)
        for key, value in parse_qsl(parts.query, keep_blank_values=True)
        if not _is_tracking_param(key)
    ]
    query = urlencode(query_pairs, doseq=True)

    return urlunsplit((scheme, netloc, path, query, ""))


def url_slug(url: str) -> str:
    """
    Human-readable words from a URL path, used as a weak classification hint.
    """

    try:
        path = urlsplit(url).path
    except ValueError:
        return ""
    return " ".join(segment for segment in path.replace("-", " ").replace("_", " ").split("/") if segment)
