"""Tests for HTML report generation -- capture rows, diff images and flaky badge."""

from sitesnap.models.test_result import CaptureRecord
from sitesnap.reporter.html_report import _build_capture_row, _build_test_card, generate_html_report

from conftest import make_test_result, png_bytes


class TestFlakyBadge:
    """Tests for the flaky badge in test cards."""

    def test_card_shows_flaky_badge(self):
        card = _build_test_card(make_test_result(flaky=True, retry=1))
        assert "badge flaky" in card
        assert "FLAKY" in card
        assert "passed on retry #1" in card

    def test_card_no_flaky_badge_when_false(self):
        card = _build_test_card(make_test_result(result="fail"))
        assert "FLAKY" not in card
        assert "flaky-banner" not in card


class TestTestCard:

    def test_project_badge_and_title(self):
        card = _build_test_card(make_test_result(project="ios", title="<About>"))
        assert '<span class="badge project">ios</span>' in card
        assert "&lt;About&gt;" in card

    def test_failure_banner(self):
        card = _build_test_card(make_test_result(result="fail", failure_reason="about/page2.png: boom"))
        assert "failure-banner" in card
        assert "about/page2.png: boom" in card

    def test_trace_command(self, tmp_path):
        trace = tmp_path / "trace.zip"
        card = _build_test_card(make_test_result(trace_path=str(trace)))
        assert f"playwright show-trace {trace.resolve()}" in card


class TestCaptureRow:

    def test_passing_row_has_no_images(self):
        row = _build_capture_row(CaptureRecord(identifier="about/full.png"))
        assert "capture-pass" in row
        assert "<img" not in row
        assert "attempts" not in row

    def test_failing_row_embeds_expected_actual_diff(self, tmp_path):
        paths = {}
        for kind in ("expected", "actual", "diff"):
            p = tmp_path / f"page1-{kind}.png"
            p.write_bytes(png_bytes())
            paths[kind] = str(p)
        row = _build_capture_row(CaptureRecord(
            identifier="about/page1.png", status="fail", attempts=6,
            message="3 pixels (1.50%) are different.",
            expected_path=paths["expected"], actual_path=paths["actual"], diff_path=paths["diff"],
        ))
        assert row.count('src="data:image/png;base64,') == 3
        for label in ("Expected", "Actual", "Diff"):
            assert f'alt="{label}"' in row
        assert "6 attempts" in row
        assert "3 pixels (1.50%) are different." in row

    def test_missing_artifacts_are_skipped(self, tmp_path):
        row = _build_capture_row(CaptureRecord(
            identifier="full.png", status="fail", expected_path=str(tmp_path / "gone.png"),
        ))
        assert "<img" not in row


class TestGenerateHtmlReport:

    def test_writes_file(self, run_result, tmp_path):
        path = tmp_path / "report.html"
        generate_html_report(run_result, path)
        content = path.read_text(encoding="utf-8")
        assert content.startswith("<!DOCTYPE html>")
        assert "Visual Regression Report" in content
        assert "run_test01" in content
        assert content.count('class="test-card"') == 2
        assert "about/page2.png" in content
