"""CLI entry point for sitesnap."""

from __future__ import annotations

import json
import logging
import sys
from pathlib import Path

import click
from pydantic import ValidationError
from rich.console import Console
from rich.logging import RichHandler
from rich.markup import escape
from rich.table import Table

from sitesnap.crawler.sitemap import SitemapParseError, urls_from_sitemap
from sitesnap.executor.web_server import WebServerError
from sitesnap.models.config import FrameworkConfig
from sitesnap.orchestrator import Orchestrator

console = Console()

DEFAULT_CONFIG = "sitesnap.json"


def setup_logging(verbose: bool = False) -> None:
    level = logging.DEBUG if verbose else logging.INFO
    logging.basicConfig(
        level=level,
        format="%(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(console=console, rich_tracebacks=True)],
    )


def _load_config(path: str) -> FrameworkConfig:
    """Load the config file, or fall back to defaults when it doesn't exist."""
    try:
        return FrameworkConfig.load(path)
    except FileNotFoundError:
        if path != DEFAULT_CONFIG:
            console.print(f"[red]Config file not found: {path}[/red]")
            console.print("Run 'sitesnap init' to create a default config.")
            sys.exit(1)
        return FrameworkConfig()
    except (ValidationError, json.JSONDecodeError) as e:
        console.print(f"[red]Invalid config {path}:[/red]\n{escape(str(e))}")
        sys.exit(1)


@click.group()
@click.option("--verbose", "-v", is_flag=True, help="Enable debug logging")
def cli(verbose: bool) -> None:
    """Visual regression screenshots for every page in a sitemap."""
    setup_logging(verbose)


@cli.command()
@click.option("--config", "-c", default=DEFAULT_CONFIG, help="Config file path")
@click.option("--project", "-p", "projects", multiple=True, help="Only run these projects")
@click.option("--grep", "-g", default=None, help="Only run pages whose title matches this regex")
@click.option(
    "--update-snapshots", "-u",
    type=click.Choice(["none", "missing", "changed", "all"]),
    default=None,
    help="Baseline update mode",
)
@click.option("--sitemap", default=None, help="Sitemap path (overrides config)")
def run(config: str, projects: tuple[str, ...], grep: str | None,
        update_snapshots: str | None, sitemap: str | None) -> None:
    """Capture every page and compare against baselines."""
    cfg = _load_config(config)
    if update_snapshots:
        cfg.update_snapshots = update_snapshots

    try:
        selected = cfg.select_projects(projects)
    except ValueError as e:
        console.print(f"[red]{escape(str(e))}[/red]")
        sys.exit(1)

    orchestrator = Orchestrator(cfg, projects=selected)
    try:
        results = orchestrator.run(sitemap_path=sitemap, grep=grep)
    except SitemapParseError as e:
        console.print(f"[red]Sitemap error:[/red] {escape(str(e))}")
        sys.exit(1)
    except WebServerError as e:
        console.print(f"[red]Web server error:[/red] {escape(str(e))}")
        sys.exit(1)

    console.print("\n[bold green]Run Complete[/bold green]")
    table = Table(title="Results Summary")
    table.add_column("Metric", style="bold")
    table.add_column("Value")
    table.add_row("Run ID", results["run_id"])
    table.add_row("Duration", f"{results['duration']}s")
    table.add_row("Total Tests", str(results["results"]["total"]))
    table.add_row("Passed", f"[green]{results['results']['passed']}[/green]")
    table.add_row("Failed", f"[red]{results['results']['failed']}[/red]")
    table.add_row("Errors", f"[red]{results['results']['errors']}[/red]")
    table.add_row("Flaky", f"[yellow]{results['results']['flaky']}[/yellow]")
    console.print(table)

    run_result = results["run_result"]
    for r in run_result.test_results:
        if r.result in ("fail", "error"):
            detail = escape(f"[{r.project}] {r.title}: {r.failure_reason}")
            console.print(f"  [red]{r.result.upper()}[/red] {detail}")

    for fmt, path in results["reports"].items():
        console.print(f"  {fmt.upper()} report: [blue]{path}[/blue]")

    if results["results"]["failed"] or results["results"]["errors"]:
        sys.exit(1)


@cli.command()
@click.option("--config", "-c", default=DEFAULT_CONFIG, help="Config file path")
@click.option("--sitemap", default=None, help="Sitemap path (overrides config)")
def urls(config: str, sitemap: str | None) -> None:
    """List the URLs in the sitemap."""
    cfg = _load_config(config)
    try:
        found = urls_from_sitemap(sitemap or cfg.sitemap_path)
    except SitemapParseError as e:
        console.print(f"[red]Sitemap error:[/red] {escape(str(e))}")
        sys.exit(1)
    for url in found:
        console.print(url, highlight=False)
    console.print(f"[green]{len(found)} URL(s)[/green]")


@cli.command()
@click.option("--config", "-c", default=DEFAULT_CONFIG, help="Config file path")
def projects(config: str) -> None:
    """List the browser/device matrix."""
    cfg = _load_config(config)
    table = Table(title="Projects")
    table.add_column("Name", style="bold")
    table.add_column("Device")
    table.add_column("Browser")
    table.add_column("Viewport")
    for p in cfg.projects:
        viewport = f"{p.viewport.width}x{p.viewport.height}" if p.viewport else "device default"
        table.add_row(p.name, p.device or "-", p.browser or "device default", viewport)
    console.print(table)


@cli.command()
@click.option("--base-url", "-b", default="http://localhost:1313", help="Base URL of the site under test")
@click.option("--config", "-c", default=DEFAULT_CONFIG, help="Config file path")
def init(base_url: str, config: str) -> None:
    """Create a default configuration file."""
    config_path = Path(config)
    if config_path.exists():
        if not click.confirm(f"{config_path} already exists. Overwrite?"):
            return

    cfg = FrameworkConfig(base_url=base_url)
    if cfg.web_server is not None:
        cfg.web_server.url = base_url
    cfg.save(config_path)
    console.print(f"[green]Created {config_path}[/green]")
    console.print("\nYou can now customize this file and run:")
    console.print("  [blue]sitesnap run[/blue]")
    console.print("\nTo accept the current rendering as the new baselines:")
    console.print("  [blue]sitesnap run --update-snapshots all[/blue]")


if __name__ == "__main__":
    cli()
