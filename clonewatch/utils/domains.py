"""Domain normalization utilities."""

from __future__ import annotations

from urllib.parse import urlparse


def canonicalize_domain(value: str) -> str:
    """
    Normalize a domain/URL to a canonical host key.

    - Lowercase
    - Strip leading "www."
    - Preserve port (if present)
    - Ignore path/query/fragment
    """
    raw = (value or "").strip()
    if not raw:
        return ""

    candidate = raw if "://" in raw else f"https://{raw}"
    try:
        parsed = urlparse(candidate)
        port = parsed.port
    except ValueError:
        return ""
    host = (parsed.hostname or raw.split("/")[0]).strip().lower().strip(".")
    if not host:
        return ""

    if host.startswith("www.") and len(host) > 4:
        host = host[4:]

    if port:
        host = f"{host}:{port}"

    return host


def target_url(domain: str) -> str:
    """URL to render for a watchlist entry (literal URLs are kept as-is)."""
    raw = (domain or "").strip()
    if raw.lower().startswith(("http://", "https://")):
        return raw
    return f"https://{raw}"
