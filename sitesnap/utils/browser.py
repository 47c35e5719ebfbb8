"""Browser utilities -- launch engines and build per-project contexts."""

from __future__ import annotations

from typing import Optional

from playwright.async_api import Browser, BrowserContext, Playwright

from sitesnap.models.config import ProjectConfig

DEFAULT_BROWSER = "chromium"


def project_browser_name(playwright: Playwright, project: ProjectConfig) -> str:
    """Engine a project runs on: explicit choice, else the device's default."""
    if project.browser:
        return project.browser
    if project.device:
        return device_descriptor(playwright, project.device).get("default_browser_type", DEFAULT_BROWSER)
    return DEFAULT_BROWSER


def device_descriptor(playwright: Playwright, device: str) -> dict:
    try:
        return dict(playwright.devices[device])
    except KeyError:
        raise ValueError(f"Unknown device descriptor: {device!r}") from None


async def launch_browser(playwright: Playwright, browser_name: str, headless: bool = True) -> Browser:
    """Launch one of chromium, firefox or webkit."""
    browser_type = getattr(playwright, browser_name)
    return await browser_type.launch(headless=headless)


def context_options(
    playwright: Playwright,
    project: ProjectConfig,
    base_url: Optional[str] = None,
) -> dict:
    """Keyword arguments for ``browser.new_context`` under ``project``."""
    options: dict = {}
    if project.device:
        options.update(device_descriptor(playwright, project.device))
        options.pop("default_browser_type", None)
    if project.viewport:
        options["viewport"] = project.viewport.model_dump()
    # Firefox has no mobile emulation; Playwright refuses the option outright.
    if project_browser_name(playwright, project) == "firefox":
        options.pop("is_mobile", None)
    if base_url:
        options["base_url"] = base_url
    return options


async def create_project_context(
    playwright: Playwright,
    browser: Browser,
    project: ProjectConfig,
    base_url: Optional[str] = None,
) -> BrowserContext:
    """Create an isolated context emulating the project's device."""
    return await browser.new_context(**context_options(playwright, project, base_url))
