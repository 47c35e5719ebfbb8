"""Run orchestrator -- enumerate pages, start the site, capture, report."""

from __future__ import annotations

import asyncio
import contextlib
import json
import logging
import re
import time
from pathlib import Path

from playwright.async_api import async_playwright

from sitesnap.capture.engine import snapshot_name_parts
from sitesnap.crawler.sitemap import urls_from_sitemap
from sitesnap.executor.executor import Executor
from sitesnap.executor.web_server import WebServer
from sitesnap.models.config import FrameworkConfig, ProjectConfig
from sitesnap.models.test_result import CaptureTarget, RunResult
from sitesnap.reporter.reporter import Reporter
from sitesnap.snapshot.paths import sanitize_segment
from sitesnap.url_utils import resolve_url

logger = logging.getLogger(__name__)


def collect_targets(
    config: FrameworkConfig,
    sitemap_path: str | None = None,
    grep: str | None = None,
) -> list[CaptureTarget]:
    """Build the list of pages to capture, one per sitemap URL plus named pages.

    Synchronous so the whole run is known before the event loop starts; a
    broken sitemap fails here, before any browser is launched.
    """
    targets: list[CaptureTarget] = []
    if config.use_sitemap:
        for url in urls_from_sitemap(sitemap_path or config.sitemap_path):
            targets.append(CaptureTarget(url=url, name_parts=snapshot_name_parts(url), title=url))

    for page in config.pages:
        url = resolve_url(config.base_url, page.path)
        targets.append(CaptureTarget(url=url, name_parts=[page.name], title=page.name))

    targets = _unique_names(targets)

    if grep:
        pattern = re.compile(grep)
        targets = [t for t in targets if pattern.search(t.title)]

    logger.debug("Collected %d capture targets", len(targets))
    return targets


def _name_key(name_parts: list[str]) -> str:
    # Output directories flatten the parts with "-", so compare on that.
    return "-".join(sanitize_segment(p) for p in name_parts) or "index"


def _unique_names(targets: list[CaptureTarget]) -> list[CaptureTarget]:
    """Drop repeated targets and give pages whose names collide a numeric suffix.

    Two targets with one name would share a baseline and an output directory.
    """
    seen: set[tuple[str, tuple[str, ...]]] = set()
    taken: set[str] = set()
    unique: list[CaptureTarget] = []
    for target in targets:
        identity = (target.url, tuple(target.name_parts))
        if identity in seen:
            logger.warning("Skipping duplicate page %s", target.url)
            continue
        seen.add(identity)

        name_parts = list(target.name_parts)
        n = 1
        while _name_key(name_parts) in taken:
            n += 1
            base = list(target.name_parts) or ["index"]
            name_parts = [*base[:-1], f"{base[-1]}-{n}"]
        if n > 1:
            logger.warning("%s has the same screenshot name as an earlier page, using %s",
                           target.url, "/".join(name_parts))
            target = target.model_copy(update={"name_parts": name_parts})
        taken.add(_name_key(name_parts))
        unique.append(target)
    return unique


class Orchestrator:
    """Coordinates a full visual regression run."""

    def __init__(self, config: FrameworkConfig, projects: list[ProjectConfig] | None = None):
        self.config = config
        self.projects = projects if projects is not None else list(config.projects)
        self.output_dir = Path(config.output_dir)

    def run(self, sitemap_path: str | None = None, grep: str | None = None) -> dict:
        """Execute the complete enumerate -> capture -> report pipeline."""
        targets = collect_targets(self.config, sitemap_path=sitemap_path, grep=grep)
        return asyncio.run(self._run(targets))

    async def _run(self, targets: list[CaptureTarget]) -> dict:
        start = time.time()
        logger.info("=== Capturing %d page(s) from %s ===", len(targets), self.config.base_url)

        async with async_playwright() as p:
            async with contextlib.AsyncExitStack() as stack:
                if self.config.web_server is not None:
                    await stack.enter_async_context(
                        WebServer(self.config.web_server, p, self.config.reuse_existing_server)
                    )
                executor = Executor(self.config, self.output_dir, projects=self.projects)
                run_result = await executor.execute(p, targets)

        self._save_run_result(run_result)
        reporter = Reporter(self.config)
        reports = reporter.generate_reports(run_result, output_dir=Path(self.config.report_output_dir))

        duration = time.time() - start
        logger.info("=== Run complete in %.1fs ===", duration)

        return {
            "run_id": run_result.run_id,
            "duration": round(duration, 2),
            "results": {
                "total": run_result.total_tests,
                "passed": run_result.passed,
                "failed": run_result.failed,
                "errors": run_result.errors,
                "flaky": run_result.flaky,
            },
            "summary": reporter.summarize(run_result),
            "run_result": run_result,
            "reports": reports,
        }

    def _save_run_result(self, run_result: RunResult) -> None:
        path = self.output_dir / run_result.run_id / "run_result.json"
        path.parent.mkdir(parents=True, exist_ok=True)
        logger.debug("Saving run result to %s", path)
        with open(path, "w") as f:
            json.dump(run_result.model_dump(), f, indent=2, default=str)
