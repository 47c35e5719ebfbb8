"""Paginated capture engine -- one full-page screenshot, then one per screenful.

Two sets of screenshots are taken for every page:

* ``full``: the whole document at whatever height it needs.
* ``page1`` .. ``pageN``: a screenshot at the top of the viewport, then the
  browser pages down; if that revealed more content another screenshot is
  taken, until the bottom of the document is in view.

The paginated set is belt and braces. A full-page screenshot is usually
enough, but some CSS errors only show up in shorter viewports, sticky headers
get exercised, and a change that touches part of a page without changing its
height only produces new images for the screens it touches.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Sequence
from urllib.parse import urlparse

from playwright.async_api import Page

from sitesnap.models.config import CaptureConfig
from sitesnap.snapshot.comparator import SnapshotComparator

from .gif_stabilizer import freeze_gifs
from .retry import with_retries

logger = logging.getLogger(__name__)

SCROLL_Y_SCRIPT = "() => window.scrollY"
SCROLL_STATE_SCRIPT = """() => ({
    scrollY: window.scrollY,
    visualHeight: document.documentElement.clientHeight,
    layoutHeight: document.documentElement.scrollHeight,
})"""


class PaginationStalledError(RuntimeError):
    """Paging down did not move the document, so the loop would never end."""


@dataclass
class ScrollState:
    scroll_y: float
    visual_height: float  # visible viewport, px
    layout_height: float  # whole scrollable document, px

    @property
    def more_below(self) -> bool:
        return self.scroll_y + self.visual_height < self.layout_height


async def read_scroll_state(page: Page) -> ScrollState:
    state = await page.evaluate(SCROLL_STATE_SCRIPT)
    return ScrollState(
        scroll_y=state["scrollY"],
        visual_height=state["visualHeight"],
        layout_height=state["layoutHeight"],
    )


async def expect_screenshot_with_retries(
    comparator: SnapshotComparator,
    page: Page,
    name_parts: Sequence[str],
    *,
    full_page: bool = False,
    max_attempts: int = 5,
    delay_ms: int = 1000,
):
    """Compare a screenshot against its baseline, retrying on failure.

    Names are always explicit: an auto-generated name can pick up a ``-1``,
    ``-2`` suffix on repeated captures, which breaks baseline lookup.
    """
    return await with_retries(
        lambda: comparator.assert_matches(page, name_parts, full_page=full_page),
        max_attempts=max_attempts,
        delay_ms=delay_ms,
    )


class PaginatedCaptureEngine:
    """Captures the full-page and paged screenshots of an already loaded page."""

    def __init__(
        self,
        comparator: SnapshotComparator,
        *,
        paginate: bool = True,
        full_page_name: str = "full",
        page_name_format: str = "page{n}",
        extension: str = ".png",
        max_attempts: int = 5,
        retry_delay_ms: int = 1000,
        settle_interval_ms: int = 50,
        settle_polls: int = 10,
    ):
        self.comparator = comparator
        self.paginate = paginate
        self.full_page_name = full_page_name
        self.page_name_format = page_name_format
        self.extension = extension
        self.max_attempts = max_attempts
        self.retry_delay_ms = retry_delay_ms
        self.settle_interval_ms = settle_interval_ms
        self.settle_polls = settle_polls

    @classmethod
    def from_config(cls, comparator: SnapshotComparator, config: CaptureConfig) -> "PaginatedCaptureEngine":
        return cls(
            comparator,
            paginate=config.paginate,
            full_page_name=config.full_page_name,
            page_name_format=config.page_name_format,
            extension=config.extension,
            max_attempts=config.max_attempts,
            retry_delay_ms=config.retry_delay_ms,
            settle_interval_ms=config.settle_interval_ms,
            settle_polls=config.settle_polls,
        )

    async def _snap(self, page: Page, base_name_parts: Sequence[str], name: str, full_page: bool) -> str:
        name_parts = [*base_name_parts, f"{name}{self.extension}"]
        await expect_screenshot_with_retries(
            self.comparator, page, name_parts,
            full_page=full_page,
            max_attempts=self.max_attempts,
            delay_ms=self.retry_delay_ms,
        )
        return "/".join(name_parts)

    async def _settled_scroll_y(self, page: Page) -> float:
        """Read scrollY once it stops changing (smooth scrolling)."""
        scroll_y = await page.evaluate(SCROLL_Y_SCRIPT)
        for _ in range(self.settle_polls):
            await page.wait_for_timeout(self.settle_interval_ms)
            latest = await page.evaluate(SCROLL_Y_SCRIPT)
            if latest == scroll_y:
                break
            scroll_y = latest
        return scroll_y

    async def capture(self, page: Page, base_name_parts: Sequence[str]) -> list[str]:
        """Capture every screenshot for ``page``; returns identifiers in order."""
        captured = [await self._snap(page, base_name_parts, self.full_page_name, full_page=True)]
        if not self.paginate:
            return captured

        state = await read_scroll_state(page)
        logger.debug("Scroll state for %s: %s", page.url, state)

        page_count = 0
        while state.more_below:
            page_count += 1
            name = self.page_name_format.format(n=page_count)
            captured.append(await self._snap(page, base_name_parts, name, full_page=False))

            # PageDown rather than scrolling by exactly clientHeight: a real
            # PageDown leaves some overlap, so content that was just below the
            # fold doesn't end up hidden under a sticky header.
            prev_scroll_y = state.scroll_y
            await page.keyboard.press("PageDown")
            state.scroll_y = await self._settled_scroll_y(page)

            if state.more_below and state.scroll_y <= prev_scroll_y:
                raise PaginationStalledError(
                    f"Pagination stalled after {name}: scrollY stayed at {state.scroll_y} "
                    f"(viewport {state.visual_height}px, document {state.layout_height}px)"
                )

        logger.debug("Captured %d screenshot(s) for %s", len(captured), page.url)
        return captured


def snapshot_name_parts(url: str) -> list[str]:
    """Directory parts for a URL's screenshots: ``/blog/post/`` -> ``["blog", "post"]``."""
    return [segment for segment in urlparse(url).path.split("/") if segment]


async def screenshot_url(
    page: Page,
    url: str,
    engine: PaginatedCaptureEngine,
    *,
    base_name_parts: Sequence[str] | None = None,
    wait_until: str = "load",
    stabilize_gifs: bool = True,
) -> list[str]:
    """Open ``url`` and take every screenshot for it."""
    await page.goto(url, wait_until=wait_until)

    # Animated GIFs make screenshots nondeterministic, there's no telling which
    # frame is showing when the screenshot is taken.
    if stabilize_gifs:
        await freeze_gifs(page)

    if base_name_parts is None:
        base_name_parts = snapshot_name_parts(url)
    return await engine.capture(page, base_name_parts)
