"""Sitemap reader -- turns a sitemap.xml file into the list of pages to capture."""

from __future__ import annotations

import logging
import xml.etree.ElementTree as ET
from pathlib import Path
from urllib.parse import urlparse

logger = logging.getLogger(__name__)

DEFAULT_SITEMAP_PATH = "public/sitemap.xml"


class SitemapParseError(ValueError):
    """The sitemap is missing, malformed, or lists something that isn't a URL."""


def _local_name(tag: str) -> str:
    return tag.rsplit("}", 1)[-1]


def _validate_url(loc: str) -> str:
    parsed = urlparse(loc)
    if parsed.scheme not in ("http", "https") or not parsed.netloc:
        raise SitemapParseError(f"Invalid URL in sitemap: {loc!r}")
    return loc


def urls_from_sitemap(sitemap_path: str | Path = DEFAULT_SITEMAP_PATH) -> list[str]:
    """Return the URLs listed in ``sitemap_path``, in document order.

    This is deliberately synchronous: the list of targets is built before the
    event loop starts, so every test in a run is known up front.

    Relative paths are relative to the current working directory.
    """
    path = Path(sitemap_path)
    try:
        data = path.read_bytes()
    except OSError as e:
        raise SitemapParseError(f"Cannot read sitemap {path}: {e}") from e

    try:
        root = ET.fromstring(data)
    except ET.ParseError as e:
        raise SitemapParseError(f"Malformed sitemap {path}: {e}") from e

    if _local_name(root.tag) != "urlset":
        raise SitemapParseError(
            f"Expected <urlset> as the root of {path}, found <{_local_name(root.tag)}>"
        )

    urls = []
    for url_el in root:
        if _local_name(url_el.tag) != "url":
            continue
        for child in url_el:
            if _local_name(child.tag) == "loc":
                loc = (child.text or "").strip()
                urls.append(_validate_url(loc))
                break

    logger.debug("Read %d URLs from %s", len(urls), path)
    return urls
