"""Shared URL utilities -- resolve page paths and derive stable test IDs."""

from __future__ import annotations

import hashlib
from urllib.parse import urljoin, urlparse


def normalize_url(url: str) -> str:
    """Normalize a URL so the same page always gets the same test ID."""
    parsed = urlparse(url)
    path = parsed.path.rstrip("/") or "/"
    query = ""
    if parsed.query:
        params = sorted(parsed.query.split("&"))
        query = "?" + "&".join(params)
    return f"{parsed.scheme}://{parsed.netloc}{path}{query}"


def resolve_url(base_url: str, path: str) -> str:
    """Resolve a page path against the base URL; absolute URLs pass through."""
    if urlparse(path).scheme:
        return path
    return urljoin(base_url.rstrip("/") + "/", path.lstrip("/"))


def page_test_id(url: str, project_name: str) -> str:
    """Stable ID for one page under one project."""
    digest = hashlib.md5(normalize_url(url).encode()).hexdigest()[:12]
    return f"{project_name}-{digest}"
