"""Report generation orchestration."""

from __future__ import annotations

import logging
from pathlib import Path

from sitesnap.models.config import FrameworkConfig
from sitesnap.models.test_result import RunResult

from .html_report import generate_html_report
from .json_report import generate_json_report

logger = logging.getLogger(__name__)


class Reporter:
    """Generates reports from run results."""

    def __init__(self, config: FrameworkConfig):
        self.config = config

    def generate_reports(
        self,
        run_result: RunResult,
        output_dir: Path | None = None,
    ) -> dict[str, str]:
        """Generate all configured report formats. Returns format -> file path."""
        out_dir = output_dir or Path(self.config.report_output_dir)
        out_dir.mkdir(parents=True, exist_ok=True)
        generated = {}
        logger.debug("Report output directory: %s", out_dir)

        if "html" in self.config.report_formats:
            path = out_dir / f"report_{run_result.run_id}.html"
            generate_html_report(run_result, path)
            generated["html"] = str(path)
            logger.info("HTML report: %s", path)

        if "json" in self.config.report_formats:
            path = out_dir / f"report_{run_result.run_id}.json"
            generate_json_report(run_result, path)
            generated["json"] = str(path)
            logger.info("JSON report: %s", path)

        return generated

    def summarize(self, run_result: RunResult) -> str:
        """One-paragraph plain-text summary of a run."""
        parts = [
            f"Captured {run_result.base_url}: {run_result.total_tests} tests "
            f"across {len(run_result.projects)} project(s) in {run_result.duration_seconds:.1f}s.",
            f"Results: {run_result.passed} passed, {run_result.failed} failed, "
            f"{run_result.errors} errors, {run_result.flaky} flaky.",
        ]
        failures = [r for r in run_result.test_results if r.result in ("fail", "error")]
        if failures:
            parts.append("Failures: " + ", ".join(f"[{f.project}] {f.title}" for f in failures[:5]))
        return " ".join(parts)
