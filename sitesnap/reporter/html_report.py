"""HTML report generator -- a self-contained page with every test and its diffs."""

from __future__ import annotations

import base64
import html
import logging
from pathlib import Path

from sitesnap.models.test_result import CaptureRecord, RunResult, TestResult

logger = logging.getLogger(__name__)


def _embed_image(path: str | None) -> str:
    """Read an image file and return a base64 data URI, or empty string on failure."""
    if not path:
        return ""
    try:
        p = Path(path)
        if not p.exists() or p.stat().st_size == 0:
            return ""
        with open(p, "rb") as f:
            data = base64.b64encode(f.read()).decode()
        suffix = p.suffix.lower()
        mime = "image/png" if suffix == ".png" else "image/jpeg" if suffix in (".jpg", ".jpeg") else "image/webp"
        return f"data:{mime};base64,{data}"
    except OSError as e:
        logger.debug("Could not embed %s: %s", path, e)
        return ""


def _status_icon(status: str) -> str:
    if status == "pass":
        return '<span class="step-icon pass-icon">&#10003;</span>'
    return '<span class="step-icon fail-icon">&#10007;</span>'


def _build_capture_row(c: CaptureRecord) -> str:
    """One row per screenshot identifier, with diff images when it failed."""
    retries = f'<span class="attempts">{c.attempts} attempts</span>' if c.attempts > 1 else ""
    msg = f'<div class="capture-msg">{html.escape(c.message)}</div>' if c.status == "fail" and c.message else ""

    images = ""
    if c.status == "fail":
        for label, path in (("Expected", c.expected_path), ("Actual", c.actual_path), ("Diff", c.diff_path)):
            data_uri = _embed_image(path)
            if data_uri:
                images += f'''
                <div class="screenshot-item">
                  <img src="{data_uri}" alt="{label}" loading="lazy" onclick="this.classList.toggle('zoomed')"/>
                  <div class="screenshot-label">{label}</div>
                </div>'''
    if images:
        images = f'<div class="screenshots-grid">{images}</div>'

    return f'''
    <div class="capture-row capture-{c.status}">
      {_status_icon(c.status)}
      <div class="capture-content">
        <code>{html.escape(c.identifier)}</code> {retries}
        {msg}
        {images}
      </div>
    </div>'''


def _build_test_card(r: TestResult) -> str:
    """Build a collapsible HTML card for a single test result."""
    border_color = {"pass": "#22c55e", "fail": "#ef4444", "error": "#f97316"}.get(r.result, "#94a3b8")
    retry_note = f" &middot; retry #{r.retry}" if r.retry else ""

    card = f'''
    <div class="test-card" id="test-{html.escape(r.test_id)}">
      <div class="test-header" style="border-left: 4px solid {border_color};" onclick="this.parentElement.classList.toggle('expanded')">
        <div class="test-header-left">
          <span class="badge {r.result}">{r.result.upper()}</span>
          {'<span class="badge flaky">FLAKY</span>' if r.flaky else ''}
          <strong>{html.escape(r.title)}</strong>
          <span class="badge project">{html.escape(r.project)}</span>
          <span class="test-meta">{r.duration_seconds:.1f}s &middot; {len(r.captures)} screenshots{retry_note}</span>
        </div>
        <span class="expand-arrow">&#9660;</span>
      </div>
      <div class="test-body">
    '''

    if r.failure_reason:
        card += f'<div class="failure-banner"><strong>Failure:</strong> {html.escape(r.failure_reason)}</div>'

    if r.flaky:
        card += ('<div class="flaky-banner"><strong>Flaky:</strong> '
                 f'This test failed at first and passed on retry #{r.retry}.</div>')

    if r.captures:
        card += '<div class="section"><h4>Screenshots</h4><div class="captures-list">'
        for c in r.captures:
            card += _build_capture_row(c)
        card += '</div></div>'

    if r.trace_path:
        trace = html.escape(str(Path(r.trace_path).resolve()))
        card += (f'<div class="section"><h4>Trace</h4>'
                 f'<code>playwright show-trace {trace}</code></div>')

    card += '</div></div>'
    return card


def generate_html_report(run_result: RunResult, output_path: Path) -> None:
    """Generate a self-contained HTML report with one card per test."""
    test_cards = [_build_test_card(r) for r in run_result.test_results]
    projects = ", ".join(html.escape(p) for p in run_result.projects)

    report_html = f'''<!DOCTYPE html>
<html lang="en">
<head>
<meta charset="UTF-8">
<meta name="viewport" content="width=device-width, initial-scale=1.0">
<title>Visual Regression Report &mdash; {html.escape(run_result.run_id)}</title>
<style>
  :root {{ --pass: #22c55e; --fail: #ef4444; --flaky: #eab308; --error: #f97316; --bg: #f8fafc; --card: white; --border: #e2e8f0; --text: #1e293b; --muted: #64748b; --accent: #6366f1; }}
  * {{ margin: 0; padding: 0; box-sizing: border-box; }}
  body {{ font-family: -apple-system, BlinkMacSystemFont, 'Segoe UI', Roboto, sans-serif; background: var(--bg); color: var(--text); line-height: 1.6; padding: 1.5rem; }}
  .container {{ max-width: 1400px; margin: 0 auto; }}
  h1 {{ font-size: 1.8rem; margin-bottom: 0.3rem; }}
  .meta {{ color: var(--muted); margin-bottom: 1.5rem; font-size: 0.9rem; }}
  .summary {{ display: grid; grid-template-columns: repeat(auto-fit, minmax(130px, 1fr)); gap: 0.8rem; margin-bottom: 1.5rem; }}
  .stat {{ background: var(--card); border-radius: 8px; padding: 1rem; box-shadow: 0 1px 3px rgba(0,0,0,0.08); text-align: center; }}
  .stat .value {{ font-size: 1.8rem; font-weight: 700; }}
  .stat .label {{ font-size: 0.8rem; color: var(--muted); }}
  .stat.pass .value {{ color: var(--pass); }}
  .stat.fail .value {{ color: var(--fail); }}
  .stat.flaky .value {{ color: var(--flaky); }}
  .stat.error .value {{ color: var(--error); }}
  .badge {{ display: inline-block; padding: 0.15rem 0.55rem; border-radius: 9999px; font-size: 0.7rem; font-weight: 600; text-transform: uppercase; white-space: nowrap; }}
  .badge.pass {{ background: #dcfce7; color: #166534; }}
  .badge.fail {{ background: #fecaca; color: #991b1b; }}
  .badge.error {{ background: #fed7aa; color: #9a3412; }}
  .badge.project {{ background: #e0e7ff; color: #3730a3; }}
  .badge.flaky {{ background: #fef3c7; color: #92400e; border: 1px dashed #f59e0b; }}
  .test-card {{ background: var(--card); border-radius: 8px; margin-bottom: 0.6rem; box-shadow: 0 1px 3px rgba(0,0,0,0.08); overflow: hidden; }}
  .test-header {{ display: flex; justify-content: space-between; align-items: center; padding: 0.7rem 1rem; cursor: pointer; user-select: none; }}
  .test-header:hover {{ background: #f8fafc; }}
  .test-header-left {{ display: flex; align-items: center; gap: 0.5rem; flex-wrap: wrap; }}
  .test-meta {{ font-size: 0.78rem; color: var(--muted); }}
  .expand-arrow {{ color: var(--muted); font-size: 0.7rem; transition: transform 0.2s; }}
  .test-card.expanded .expand-arrow {{ transform: rotate(180deg); }}
  .test-body {{ display: none; padding: 0 1rem 1rem 1rem; }}
  .test-card.expanded .test-body {{ display: block; }}
  .failure-banner {{ background: #fef2f2; border: 1px solid #fecaca; color: #991b1b; border-radius: 6px; padding: 0.6rem 0.8rem; margin-bottom: 0.8rem; font-size: 0.88rem; }}
  .flaky-banner {{ background: #fefce8; border: 1px solid #fde68a; color: #92400e; border-radius: 6px; padding: 0.6rem 0.8rem; margin-bottom: 0.8rem; font-size: 0.88rem; }}
  .section {{ margin-bottom: 1rem; }}
  .section h4 {{ font-size: 0.85rem; color: var(--muted); text-transform: uppercase; letter-spacing: 0.05em; margin-bottom: 0.4rem; padding-bottom: 0.25rem; border-bottom: 1px solid var(--border); }}
  .section code {{ background: #f1f5f9; padding: 0.1rem 0.3rem; border-radius: 3px; font-size: 0.8rem; }}
  .capture-row {{ display: flex; align-items: flex-start; gap: 0.5rem; padding: 0.35rem 0; border-bottom: 1px solid #f1f5f9; font-size: 0.85rem; }}
  .capture-row:last-child {{ border-bottom: none; }}
  .capture-fail {{ background: #fef8f8; }}
  .capture-content {{ flex: 1; }}
  .capture-msg {{ color: var(--fail); font-size: 0.82rem; margin-top: 0.15rem; }}
  .attempts {{ color: var(--muted); font-size: 0.78rem; }}
  .step-icon {{ width: 18px; height: 18px; display: inline-flex; align-items: center; justify-content: center; border-radius: 50%; font-size: 0.7rem; flex-shrink: 0; margin-top: 2px; }}
  .pass-icon {{ background: #dcfce7; color: #166534; }}
  .fail-icon {{ background: #fecaca; color: #991b1b; }}
  .screenshots-grid {{ display: grid; grid-template-columns: repeat(auto-fill, minmax(200px, 1fr)); gap: 0.6rem; margin-top: 0.4rem; }}
  .screenshot-item {{ text-align: center; }}
  .screenshot-item img {{ width: 100%; border-radius: 6px; border: 1px solid var(--border); cursor: pointer; }}
  .screenshot-item img.zoomed {{ position: fixed; top: 5%; left: 5%; width: 90%; height: 90%; object-fit: contain; z-index: 1000; background: rgba(0,0,0,0.85); border: none; border-radius: 8px; padding: 1rem; }}
  .screenshot-label {{ font-size: 0.75rem; color: var(--muted); margin-top: 0.2rem; }}
  .filter-bar {{ display: flex; gap: 0.5rem; margin-bottom: 1rem; flex-wrap: wrap; }}
  .filter-btn {{ padding: 0.3rem 0.8rem; border-radius: 6px; border: 1px solid var(--border); background: var(--card); cursor: pointer; font-size: 0.82rem; }}
  .filter-btn.active {{ background: var(--accent); color: white; border-color: var(--accent); }}
</style>
</head>
<body>
<div class="container">
  <h1>Visual Regression Report</h1>
  <p class="meta">Run: {html.escape(run_result.run_id)} &middot; Base URL: {html.escape(run_result.base_url)} &middot; Projects: {projects} &middot; {html.escape(run_result.started_at)} &middot; Duration: {run_result.duration_seconds}s</p>

  <div class="summary">
    <div class="stat"><div class="value">{run_result.total_tests}</div><div class="label">Total Tests</div></div>
    <div class="stat pass"><div class="value">{run_result.passed}</div><div class="label">Passed</div></div>
    <div class="stat fail"><div class="value">{run_result.failed}</div><div class="label">Failed</div></div>
    <div class="stat error"><div class="value">{run_result.errors}</div><div class="label">Errors</div></div>
    <div class="stat flaky"><div class="value">{run_result.flaky}</div><div class="label">Flaky</div></div>
  </div>

  <div class="filter-bar">
    <button class="filter-btn active" onclick="filterTests('all')">All</button>
    <button class="filter-btn" onclick="filterTests('fail')">Failed</button>
    <button class="filter-btn" onclick="filterTests('error')">Errors</button>
    <button class="filter-btn" onclick="filterTests('pass')">Passed</button>
    <button class="filter-btn" onclick="expandAll()">Expand All</button>
    <button class="filter-btn" onclick="collapseAll()">Collapse All</button>
  </div>

  <div id="test-list">
    {"".join(test_cards)}
  </div>
</div>

<script>
function filterTests(status) {{
  document.querySelectorAll('.filter-btn').forEach(b => b.classList.remove('active'));
  event.target.classList.add('active');
  document.querySelectorAll('.test-card').forEach(card => {{
    if (status === 'all') {{ card.style.display = ''; return; }}
    const badge = card.querySelector('.test-header .badge');
    card.style.display = badge && badge.textContent.trim().toLowerCase() === status ? '' : 'none';
  }});
}}
function expandAll() {{
  document.querySelectorAll('.test-card').forEach(c => c.classList.add('expanded'));
}}
function collapseAll() {{
  document.querySelectorAll('.test-card').forEach(c => c.classList.remove('expanded'));
}}
</script>
</body>
</html>'''

    with open(output_path, "w", encoding="utf-8") as f:
        f.write(report_html)
