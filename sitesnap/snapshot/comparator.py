"""Snapshot comparator -- captures a screenshot and checks it against its baseline."""

from __future__ import annotations

import asyncio
import logging
import time
from pathlib import Path
from typing import Sequence

from playwright.async_api import Page

from sitesnap.models.config import FrameworkConfig
from sitesnap.models.test_result import SnapshotResult

from .image_diff import ImageDiff, compare_images
from .paths import resolve_snapshot_path, snapshot_identifier, split_name

logger = logging.getLogger(__name__)


class SnapshotError(AssertionError):
    """A screenshot could not be matched against its baseline."""

    def __init__(self, identifier: str, message: str):
        super().__init__(f"{identifier}: {message}")
        self.identifier = identifier


class ScreenshotMismatchError(SnapshotError):
    def __init__(self, identifier: str, diff: ImageDiff, expected_path: Path,
                 actual_path: Path | None = None, diff_path: Path | None = None):
        super().__init__(identifier, f"Screenshot comparison failed: {diff.describe()}")
        self.diff_pixels = diff.diff_pixels
        self.diff_ratio = diff.diff_ratio
        self.expected_path = expected_path
        self.actual_path = actual_path
        self.diff_path = diff_path


class SnapshotMissingError(SnapshotError):
    def __init__(self, identifier: str, expected_path: Path, written: bool):
        suffix = ", writing actual." if written else "."
        super().__init__(identifier, f"A snapshot doesn't exist at {expected_path}{suffix}")
        self.expected_path = expected_path
        self.written = written


class CaptureTimeoutError(SnapshotError):
    def __init__(self, identifier: str, timeout_ms: int):
        super().__init__(
            identifier,
            f"Timeout {timeout_ms}ms exceeded while waiting for two consecutive stable screenshots",
        )


class SnapshotComparator:
    """Compares page screenshots with stored baselines for one test execution.

    Every call to :meth:`assert_matches` appends a :class:`SnapshotResult` to
    ``results``, one per attempt, so callers can tell how many tries each
    identifier took.
    """

    def __init__(
        self,
        config: FrameworkConfig,
        project_name: str,
        output_dir: Path,
        test_file_path: str | None = None,
    ):
        self.config = config
        self.project_name = project_name
        self.output_dir = output_dir
        self.test_file_path = test_file_path or config.test_file_path
        self.results: list[SnapshotResult] = []

    def baseline_path(self, name_parts: Sequence[str]) -> Path:
        return resolve_snapshot_path(
            self.config.snapshot_path_template,
            name_parts,
            snapshot_dir=self.config.snapshot_dir,
            test_file_path=self.test_file_path,
            project_name=self.project_name,
        )

    def _artifact_path(self, name_parts: Sequence[str], kind: str) -> Path:
        arg, ext = split_name(name_parts)
        return self.output_dir / f"{arg}-{kind}{ext}"

    async def _capture_stable(self, page: Page, identifier: str, full_page: bool) -> bytes:
        """Screenshot until two consecutive captures are identical."""
        cmp = self.config.comparison
        deadline = time.monotonic() + cmp.screenshot_timeout_ms / 1000
        previous: bytes | None = None
        while True:
            shot = await page.screenshot(
                full_page=full_page,
                animations=cmp.animations,
                caret=cmp.caret,
            )
            if previous is not None and shot == previous:
                return shot
            previous = shot
            if time.monotonic() >= deadline:
                raise CaptureTimeoutError(identifier, cmp.screenshot_timeout_ms)
            await asyncio.sleep(cmp.stable_interval_ms / 1000)

    def _write(self, path: Path, data: bytes) -> None:
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_bytes(data)

    async def assert_matches(
        self, page: Page, name_parts: Sequence[str], *, full_page: bool = False,
    ) -> SnapshotResult:
        """Capture ``page`` and compare it to the baseline named by ``name_parts``."""
        identifier = snapshot_identifier(name_parts)
        expected_path = self.baseline_path(name_parts)
        mode = self.config.update_snapshots

        try:
            actual = await self._capture_stable(page, identifier, full_page)
        except CaptureTimeoutError as e:
            self._record(identifier, False, str(e), expected_path=expected_path)
            raise

        if not expected_path.exists():
            written = mode != "none"
            if written:
                self._write(expected_path, actual)
                logger.info("Wrote new baseline %s", expected_path)
            if mode in ("all", "changed"):
                return self._record(identifier, True, "Baseline created",
                                    expected_path=expected_path, baseline_written=True)
            error = SnapshotMissingError(identifier, expected_path, written)
            self._record(identifier, False, str(error), expected_path=expected_path,
                         baseline_written=written)
            raise error

        cmp = self.config.comparison
        diff = compare_images(
            expected_path.read_bytes(),
            actual,
            threshold=cmp.threshold,
            max_diff_pixels=cmp.max_diff_pixels,
            max_diff_pixel_ratio=cmp.max_diff_pixel_ratio,
        )
        if diff.passed:
            if mode == "all":
                self._write(expected_path, actual)
            return self._record(identifier, True, diff.describe(), expected_path=expected_path,
                                diff=diff, baseline_written=mode == "all")

        if mode in ("all", "changed"):
            self._write(expected_path, actual)
            logger.info("Updated baseline %s (%s)", expected_path, diff.describe())
            return self._record(identifier, True, f"Baseline updated: {diff.describe()}",
                                expected_path=expected_path, diff=diff, baseline_written=True)

        actual_path = self._artifact_path(name_parts, "actual")
        diff_path = self._artifact_path(name_parts, "diff")
        self._write(self._artifact_path(name_parts, "expected"), expected_path.read_bytes())
        self._write(actual_path, actual)
        diff_path.parent.mkdir(parents=True, exist_ok=True)
        diff.diff_image.save(diff_path)

        error = ScreenshotMismatchError(identifier, diff, expected_path, actual_path, diff_path)
        self._record(identifier, False, str(error), expected_path=expected_path,
                     actual_path=actual_path, diff_path=diff_path, diff=diff)
        raise error

    def _record(
        self,
        identifier: str,
        passed: bool,
        message: str,
        *,
        expected_path: Path | None = None,
        actual_path: Path | None = None,
        diff_path: Path | None = None,
        diff: ImageDiff | None = None,
        baseline_written: bool = False,
    ) -> SnapshotResult:
        result = SnapshotResult(
            identifier=identifier,
            passed=passed,
            message=message,
            expected_path=str(expected_path) if expected_path else None,
            actual_path=str(actual_path) if actual_path else None,
            diff_path=str(diff_path) if diff_path else None,
            diff_pixels=diff.diff_pixels if diff else 0,
            diff_ratio=diff.diff_ratio if diff else 0.0,
            baseline_written=baseline_written,
        )
        self.results.append(result)
        return result
