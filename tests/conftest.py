"""Pytest configuration and shared fixtures."""

import io
from pathlib import Path
from unittest.mock import AsyncMock, Mock

import pytest
from PIL import Image

from sitesnap.capture.engine import SCROLL_STATE_SCRIPT, SCROLL_Y_SCRIPT
from sitesnap.capture.gif_stabilizer import FREEZE_GIFS_SCRIPT
from sitesnap.models.config import (
    CaptureConfig,
    ComparisonConfig,
    FrameworkConfig,
    ProjectConfig,
    ViewportConfig,
)
from sitesnap.models.test_result import CaptureRecord, RunResult, TestResult


# ============================================================================
# Images
# ============================================================================


def png_bytes(size=(20, 10), color=(255, 255, 255, 255), paint=None) -> bytes:
    """Encode a solid PNG, optionally painting ``{(x, y): color}`` pixels."""
    img = Image.new("RGBA", size, color)
    for xy, c in (paint or {}).items():
        img.putpixel(xy, c)
    buf = io.BytesIO()
    img.save(buf, format="PNG")
    return buf.getvalue()


@pytest.fixture
def white_png() -> bytes:
    return png_bytes()


# ============================================================================
# Fake page
# ============================================================================


class FakeKeyboard:
    def __init__(self, page: "FakePage"):
        self.page = page

    async def press(self, key: str) -> None:
        self.page.presses.append(key)
        if key == "PageDown":
            self.page.page_down()


class FakePage:
    """A scripted stand-in for a Playwright page.

    ``page_down_step`` is how far one PageDown scrolls; scrolling is clamped
    at the bottom of the document. ``stall_after`` makes every PageDown after
    that many presses a no-op. ``smooth_steps`` makes the scroll position
    arrive in that many intermediate reads.
    """

    def __init__(
        self,
        layout_height: int = 720,
        visual_height: int = 720,
        page_down_step: int | None = None,
        stall_after: int | None = None,
        smooth_steps: int = 0,
        image: bytes | None = None,
        gifs: int = 0,
        url: str = "about:blank",
    ):
        self.layout_height = layout_height
        self.visual_height = visual_height
        self.page_down_step = page_down_step or int(visual_height * 0.875)
        self.stall_after = stall_after
        self.smooth_steps = smooth_steps
        self.image = image if image is not None else png_bytes()
        self.gifs = gifs
        self.url = url
        self.scroll_y = 0
        self._in_flight: list[int] = []
        self.presses: list[str] = []
        self.screenshots: list[dict] = []
        self.goto_calls: list[tuple[str, str]] = []
        self.keyboard = FakeKeyboard(self)
        self.closed = False

    @property
    def max_scroll(self) -> int:
        return max(0, self.layout_height - self.visual_height)

    def page_down(self) -> None:
        if self.stall_after is not None and len(self.presses) > self.stall_after:
            return
        target = min(self.scroll_y + self.page_down_step, self.max_scroll)
        if self.smooth_steps:
            start = self.scroll_y
            self._in_flight = [
                start + (target - start) * (i + 1) // (self.smooth_steps + 1)
                for i in range(self.smooth_steps)
            ] + [target]
        else:
            self.scroll_y = target

    def _read_scroll_y(self) -> int:
        if self._in_flight:
            self.scroll_y = self._in_flight.pop(0)
        return self.scroll_y

    async def evaluate(self, script, *args):
        if script == SCROLL_STATE_SCRIPT:
            return {
                "scrollY": self._read_scroll_y(),
                "visualHeight": self.visual_height,
                "layoutHeight": self.layout_height,
            }
        if script == SCROLL_Y_SCRIPT:
            return self._read_scroll_y()
        if script == FREEZE_GIFS_SCRIPT:
            return self.gifs
        raise AssertionError(f"Unexpected script: {script!r}")

    async def screenshot(self, **kwargs) -> bytes:
        self.screenshots.append({**kwargs, "scroll_y": self.scroll_y})
        return self.image

    async def goto(self, url: str, wait_until: str = "load"):
        self.url = url
        self.goto_calls.append((url, wait_until))

    async def wait_for_timeout(self, ms: float) -> None:
        return None

    async def close(self) -> None:
        self.closed = True


@pytest.fixture
def fake_page() -> FakePage:
    return FakePage()


# ============================================================================
# Configuration Fixtures
# ============================================================================


@pytest.fixture
def framework_config(tmp_path: Path) -> FrameworkConfig:
    """A config whose every on-disk path lives under tmp_path."""
    return FrameworkConfig(
        base_url="http://localhost:1313",
        sitemap_path=str(tmp_path / "public" / "sitemap.xml"),
        projects=[
            ProjectConfig(name="chromium", device="Desktop Chrome",
                          viewport=ViewportConfig(width=1280, height=1024)),
        ],
        ci=False,
        retries=0,
        workers=2,
        trace="off",
        snapshot_dir=str(tmp_path / ".screenshots"),
        output_dir=str(tmp_path / "test-results"),
        update_snapshots="missing",
        capture=CaptureConfig(retry_delay_ms=0, settle_interval_ms=0),
        comparison=ComparisonConfig(stable_interval_ms=0, screenshot_timeout_ms=1000),
        web_server=None,
        report_output_dir=str(tmp_path / "report"),
    )


@pytest.fixture
def temp_config_file(framework_config: FrameworkConfig, tmp_path: Path) -> Path:
    config_file = tmp_path / "sitesnap.json"
    framework_config.save(config_file)
    return config_file


# ============================================================================
# Sitemap Fixtures
# ============================================================================


SITEMAP_XML = """<?xml version="1.0" encoding="utf-8" standalone="yes"?>
<urlset xmlns="http://www.sitemaps.org/schemas/sitemap/0.9"
        xmlns:xhtml="http://www.w3.org/1999/xhtml">
  <url>
    <loc>http://localhost:1313/</loc>
    <lastmod>2025-05-01T10:00:00+00:00</lastmod>
  </url>
  <url>
    <loc>http://localhost:1313/about/</loc>
  </url>
  <url>
    <loc>http://localhost:1313/blog/first-post/</loc>
  </url>
</urlset>
"""


@pytest.fixture
def sitemap_file(tmp_path: Path) -> Path:
    path = tmp_path / "public" / "sitemap.xml"
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(SITEMAP_XML, encoding="utf-8")
    return path


# ============================================================================
# Mock Comparator
# ============================================================================


@pytest.fixture
def mock_comparator():
    """A comparator whose assert_matches always passes and records its calls."""
    comparator = Mock()
    comparator.assert_matches = AsyncMock(return_value=None)
    return comparator


# ============================================================================
# Result Fixtures
# ============================================================================


def make_test_result(**kwargs) -> TestResult:
    defaults = {
        "test_id": "chromium-abc123",
        "title": "http://localhost:1313/about/",
        "url": "http://localhost:1313/about/",
        "project": "chromium",
        "result": "pass",
        "duration_seconds": 1.5,
        "captures": [CaptureRecord(identifier="about/full.png")],
    }
    defaults.update(kwargs)
    return TestResult(**defaults)


@pytest.fixture
def run_result() -> RunResult:
    failing = make_test_result(
        test_id="firefox-def456",
        project="firefox",
        result="fail",
        failure_reason="about/page2.png: Screenshot comparison failed",
        failed_identifier="about/page2.png",
        captures=[
            CaptureRecord(identifier="about/full.png"),
            CaptureRecord(identifier="about/page1.png"),
            CaptureRecord(identifier="about/page2.png", status="fail", attempts=6,
                          message="12 pixels (0.01%) are different."),
        ],
    )
    return RunResult(
        run_id="run_test01",
        started_at="2025-01-01T00:00:00Z",
        completed_at="2025-01-01T00:01:00Z",
        base_url="http://localhost:1313",
        projects=["chromium", "firefox"],
        total_tests=2,
        passed=1,
        failed=1,
        duration_seconds=60.0,
        test_results=[make_test_result(), failing],
    )
