"""Test executor -- runs every capture target under every browser/device project."""

from __future__ import annotations

import asyncio
import logging
import time
import uuid
from pathlib import Path

from playwright.async_api import Browser, BrowserContext, Playwright

from sitesnap.capture.engine import PaginatedCaptureEngine, PaginationStalledError, screenshot_url
from sitesnap.models.config import FrameworkConfig, ProjectConfig
from sitesnap.models.test_result import (
    CaptureRecord,
    CaptureTarget,
    RunResult,
    SnapshotResult,
    TestResult,
)
from sitesnap.snapshot.comparator import SnapshotComparator, SnapshotError
from sitesnap.snapshot.paths import sanitize_segment
from sitesnap.url_utils import page_test_id
from sitesnap.utils.browser import create_project_context, launch_browser, project_browser_name

logger = logging.getLogger(__name__)


def fold_snapshot_results(results: list[SnapshotResult]) -> list[CaptureRecord]:
    """Collapse per-attempt snapshot results into one record per identifier."""
    records: dict[str, CaptureRecord] = {}
    for r in results:
        record = records.get(r.identifier)
        if record is None:
            record = records[r.identifier] = CaptureRecord(identifier=r.identifier, attempts=0)
        record.attempts += 1
        record.status = "pass" if r.passed else "fail"
        record.message = r.message
        record.expected_path = r.expected_path
        record.actual_path = r.actual_path
        record.diff_path = r.diff_path
    return list(records.values())


class _AttemptOutcome:
    def __init__(self, result: str, failure_reason: str | None = None,
                 failed_identifier: str | None = None):
        self.result = result
        self.failure_reason = failure_reason
        self.failed_identifier = failed_identifier


class Executor:
    """Executes capture targets against a live site using Playwright.

    Every test attempt runs in its own browser context; browsers are shared
    per engine and launched on first use.
    """

    def __init__(
        self,
        config: FrameworkConfig,
        output_dir: Path,
        projects: list[ProjectConfig] | None = None,
    ):
        self.config = config
        self.projects = projects if projects is not None else list(config.projects)
        self.run_id = f"run_{uuid.uuid4().hex[:8]}"
        self.output_dir = output_dir
        self.output_dir.mkdir(parents=True, exist_ok=True)
        self._browsers: dict[str, Browser] = {}
        self._browser_lock = asyncio.Lock()

    async def execute(self, playwright: Playwright, targets: list[CaptureTarget]) -> RunResult:
        """Run every target under every project and return the aggregated result."""
        started_at = time.strftime("%Y-%m-%dT%H:%M:%SZ")
        start_time = time.time()
        jobs = [(project, target) for project in self.projects for target in targets]
        workers = self.config.effective_workers
        logger.info("Running %d tests (%d pages x %d projects) using %d worker(s)",
                    len(jobs), len(targets), len(self.projects), workers)

        semaphore = asyncio.Semaphore(workers)

        async def _run_one(index: int, project: ProjectConfig, target: CaptureTarget) -> TestResult:
            async with semaphore:
                logger.info("Running test [%d/%d]: [%s] %s",
                            index + 1, len(jobs), project.name, target.title)
                result = await self._run_test(playwright, project, target)
                logger.info("[%s] [%s] %s (%.1fs)", result.result.upper(),
                            project.name, target.title, result.duration_seconds)
                return result

        try:
            test_results = list(await asyncio.gather(
                *(_run_one(i, project, target) for i, (project, target) in enumerate(jobs))
            ))
        finally:
            await self._close_browsers()

        duration = time.time() - start_time
        run_result = RunResult(
            run_id=self.run_id,
            started_at=started_at,
            completed_at=time.strftime("%Y-%m-%dT%H:%M:%SZ"),
            base_url=self.config.base_url,
            projects=[p.name for p in self.projects],
            total_tests=len(test_results),
            passed=sum(1 for r in test_results if r.result == "pass"),
            failed=sum(1 for r in test_results if r.result == "fail"),
            errors=sum(1 for r in test_results if r.result == "error"),
            flaky=sum(1 for r in test_results if r.flaky),
            duration_seconds=round(duration, 2),
            test_results=test_results,
        )
        logger.info(
            "Execution complete: %d passed, %d failed, %d errors, %d flaky (%.1fs)",
            run_result.passed, run_result.failed, run_result.errors, run_result.flaky, duration,
        )
        return run_result

    async def _browser_for(self, playwright: Playwright, project: ProjectConfig) -> Browser:
        name = project_browser_name(playwright, project)
        async with self._browser_lock:
            browser = self._browsers.get(name)
            if browser is None:
                logger.debug("Launching %s", name)
                browser = await launch_browser(playwright, name, headless=self.config.headless)
                self._browsers[name] = browser
            return browser

    async def _close_browsers(self) -> None:
        for browser in self._browsers.values():
            await browser.close()
        self._browsers.clear()

    def _test_dir(self, project: ProjectConfig, target: CaptureTarget, retry: int) -> Path:
        slug = "-".join(sanitize_segment(p) for p in target.name_parts) or "index"
        name = f"{slug}-{sanitize_segment(project.name)}"
        if retry:
            name += f"-retry{retry}"
        return self.output_dir / name

    def _trace_enabled(self, retry: int) -> bool:
        mode = self.config.trace
        if mode == "off":
            return False
        if mode == "on-first-retry":
            return retry == 1
        return True

    async def _run_test(
        self, playwright: Playwright, project: ProjectConfig, target: CaptureTarget,
    ) -> TestResult:
        """Run one target under one project, with test-level retries."""
        test_start = time.time()
        max_retries = self.config.effective_retries
        outcome = _AttemptOutcome("error", "Test did not run")
        captures: list[CaptureRecord] = []
        trace_path: str | None = None
        retry = 0

        for retry in range(max_retries + 1):
            if retry:
                logger.info("Retrying [%s] %s (retry #%d)", project.name, target.title, retry)
            test_dir = self._test_dir(project, target, retry)
            comparator = SnapshotComparator(self.config, project.name, test_dir)

            context: BrowserContext | None = None
            tracing = False
            try:
                browser = await self._browser_for(playwright, project)
                context = await create_project_context(
                    playwright, browser, project, base_url=self.config.base_url,
                )
                tracing = self._trace_enabled(retry)
                if tracing:
                    await context.tracing.start(screenshots=True, snapshots=True)
                outcome = await self._run_attempt(context, target, comparator)
            except Exception as e:
                # Browser launch and context setup; the attempt itself reports its own errors.
                logger.error("Could not set up [%s] for %s: %s", project.name, target.title, e)
                outcome = _AttemptOutcome("error", str(e))
            finally:
                if context is not None:
                    if tracing:
                        keep = self.config.trace != "retain-on-failure" or outcome.result != "pass"
                        if keep:
                            path = test_dir / "trace.zip"
                            path.parent.mkdir(parents=True, exist_ok=True)
                            await context.tracing.stop(path=str(path))
                            trace_path = str(path)
                        else:
                            await context.tracing.stop()
                    await context.close()

            captures = fold_snapshot_results(comparator.results)
            if outcome.result == "pass":
                break

        return TestResult(
            test_id=page_test_id(target.url, project.name),
            title=target.title,
            url=target.url,
            project=project.name,
            result=outcome.result,
            duration_seconds=round(time.time() - test_start, 2),
            retry=retry,
            flaky=outcome.result == "pass" and retry > 0,
            failure_reason=outcome.failure_reason,
            failed_identifier=outcome.failed_identifier,
            captures=captures,
            trace_path=trace_path,
        )

    async def _run_attempt(
        self, context: BrowserContext, target: CaptureTarget, comparator: SnapshotComparator,
    ) -> _AttemptOutcome:
        capture_cfg = self.config.capture
        engine = PaginatedCaptureEngine.from_config(comparator, capture_cfg)
        page = await context.new_page()
        timeout = self.config.timeout_seconds
        try:
            await asyncio.wait_for(
                screenshot_url(
                    page, target.url, engine,
                    base_name_parts=target.name_parts,
                    wait_until=capture_cfg.wait_until,
                    stabilize_gifs=capture_cfg.freeze_gifs,
                ),
                timeout=timeout,
            )
            return _AttemptOutcome("pass")
        except asyncio.TimeoutError:
            return _AttemptOutcome("fail", f"Test timeout of {timeout}s exceeded.")
        except SnapshotError as e:
            attempts = capture_cfg.max_attempts + 1
            return _AttemptOutcome(
                "fail", f"{e} (after {attempts} attempts)", failed_identifier=e.identifier,
            )
        except PaginationStalledError as e:
            return _AttemptOutcome("fail", str(e))
        except Exception as e:
            logger.error("Test %s crashed: %s", target.title, e)
            return _AttemptOutcome("error", str(e))
        finally:
            await page.close()
