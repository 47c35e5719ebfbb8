"""Configuration models for the visual regression suite."""

from __future__ import annotations

import json
import os
import re
from pathlib import Path
from typing import Literal, Optional

from pydantic import BaseModel, Field, field_validator, model_validator


def _running_on_ci() -> bool:
    return bool(os.environ.get("CI"))


# Tokens understood by the snapshot path template.
TEMPLATE_TOKENS = {"snapshotDir", "testFilePath", "arg", "projectName", "platform", "ext"}

UpdateSnapshotsMode = Literal["none", "missing", "changed", "all"]
TraceMode = Literal["off", "on", "on-first-retry", "retain-on-failure"]


class ViewportConfig(BaseModel):
    width: int = Field(default=1280, gt=0)
    height: int = Field(default=1024, gt=0)


# Playwright's default is 1280x720, slightly taller makes more sense for
# content pages.
DESKTOP_VIEWPORT = ViewportConfig(width=1280, height=1024)


class ProjectConfig(BaseModel):
    """One column of the browser/device matrix."""
    name: str
    device: Optional[str] = None  # key into playwright.devices
    browser: Optional[Literal["chromium", "firefox", "webkit"]] = None
    viewport: Optional[ViewportConfig] = None


def default_projects() -> list[ProjectConfig]:
    return [
        ProjectConfig(name="chromium", device="Desktop Chrome", viewport=DESKTOP_VIEWPORT),
        ProjectConfig(name="firefox", device="Desktop Firefox", viewport=DESKTOP_VIEWPORT),
        ProjectConfig(name="webkit", device="Desktop Safari", viewport=DESKTOP_VIEWPORT),
        ProjectConfig(name="android", device="Pixel 5"),
        ProjectConfig(name="ios", device="iPhone 12"),
    ]


class PageTarget(BaseModel):
    """A page captured under an explicit name instead of its URL path."""
    name: str
    path: str = "/"


class CaptureConfig(BaseModel):
    paginate: bool = True
    full_page_name: str = "full"
    page_name_format: str = "page{n}"
    extension: str = ".png"
    max_attempts: int = Field(default=5, ge=0)
    retry_delay_ms: int = Field(default=1000, ge=0)
    settle_interval_ms: int = Field(default=50, ge=0)
    settle_polls: int = Field(default=10, ge=0)
    wait_until: Literal["load", "domcontentloaded", "networkidle", "commit"] = "load"
    freeze_gifs: bool = True

    @field_validator("page_name_format")
    @classmethod
    def check_page_name_format(cls, v: str) -> str:
        if "{n}" not in v:
            raise ValueError("page_name_format must contain '{n}'")
        return v

    @field_validator("extension")
    @classmethod
    def check_extension(cls, v: str) -> str:
        if not v.startswith("."):
            raise ValueError("extension must start with '.'")
        return v


class ComparisonConfig(BaseModel):
    threshold: float = Field(default=0.2, ge=0.0, le=1.0)
    max_diff_pixels: Optional[int] = Field(default=None, ge=0)
    max_diff_pixel_ratio: Optional[float] = Field(default=None, ge=0.0, le=1.0)
    screenshot_timeout_ms: int = Field(default=5000, gt=0)
    stable_interval_ms: int = Field(default=100, ge=0)
    animations: Literal["disabled", "allow"] = "disabled"
    caret: Literal["hide", "initial"] = "hide"


class WebServerConfig(BaseModel):
    command: str = "make dev"
    url: str = "http://localhost:1313"
    reuse_existing_server: Optional[bool] = None  # None -> not on CI
    timeout_seconds: int = Field(default=60, gt=0)
    cwd: Optional[str] = None


class FrameworkConfig(BaseModel):
    # Target
    base_url: str = "http://localhost:1313"
    sitemap_path: str = "public/sitemap.xml"
    use_sitemap: bool = True
    pages: list[PageTarget] = Field(default_factory=list)

    # Browser/device matrix
    projects: list[ProjectConfig] = Field(default_factory=default_projects)
    headless: bool = True

    # Execution
    ci: bool = Field(default_factory=_running_on_ci)
    retries: Optional[int] = Field(default=None, ge=0)
    workers: Optional[int] = Field(default=None, gt=0)
    timeout_seconds: int = Field(default=300, gt=0)
    trace: TraceMode = "on-first-retry"

    # Snapshots
    snapshot_dir: str = ".screenshots"
    snapshot_path_template: str = "{snapshotDir}/{testFilePath}/{arg}-{projectName}-{platform}{ext}"
    test_file_path: str = "screenshot.spec"
    output_dir: str = "test-results"
    update_snapshots: UpdateSnapshotsMode = "missing"
    capture: CaptureConfig = Field(default_factory=CaptureConfig)
    comparison: ComparisonConfig = Field(default_factory=ComparisonConfig)

    # Local dev server
    web_server: Optional[WebServerConfig] = Field(default_factory=WebServerConfig)

    # Reporting
    report_formats: list[Literal["html", "json"]] = Field(default_factory=lambda: ["html", "json"])
    report_output_dir: str = "./sitesnap-report"

    @field_validator("snapshot_path_template")
    @classmethod
    def check_template_tokens(cls, v: str) -> str:
        unknown = set(re.findall(r"\{(\w+)\}", v)) - TEMPLATE_TOKENS
        if unknown:
            raise ValueError(f"Unknown snapshot path template token(s): {', '.join(sorted(unknown))}")
        if "{arg}" not in v:
            raise ValueError("snapshot_path_template must contain '{arg}'")
        return v

    @model_validator(mode="after")
    def check_unique_projects(self) -> "FrameworkConfig":
        names = [p.name for p in self.projects]
        dupes = sorted({n for n in names if names.count(n) > 1})
        if dupes:
            raise ValueError(f"Duplicate project name(s): {', '.join(dupes)}")
        return self

    @property
    def effective_retries(self) -> int:
        """Retry on CI only, unless set explicitly."""
        if self.retries is not None:
            return self.retries
        return 2 if self.ci else 0

    @property
    def effective_workers(self) -> int:
        """Opt out of parallel tests on CI, unless set explicitly."""
        if self.workers is not None:
            return self.workers
        if self.ci:
            return 1
        return max(1, (os.cpu_count() or 2) // 2)

    @property
    def reuse_existing_server(self) -> bool:
        if self.web_server is None:
            return False
        if self.web_server.reuse_existing_server is not None:
            return self.web_server.reuse_existing_server
        return not self.ci

    def select_projects(self, names: list[str] | tuple[str, ...] | None) -> list[ProjectConfig]:
        """Return the configured projects, narrowed to ``names`` if given."""
        if not names:
            return list(self.projects)
        known = {p.name for p in self.projects}
        missing = [n for n in names if n not in known]
        if missing:
            raise ValueError(
                f"Project(s) not found: {', '.join(missing)}. "
                f"Available: {', '.join(sorted(known))}"
            )
        return [p for p in self.projects if p.name in names]

    @classmethod
    def load(cls, path: str | Path) -> "FrameworkConfig":
        """Load config from a JSON file."""
        path = Path(path)
        if not path.exists():
            raise FileNotFoundError(f"Config file not found: {path}")
        with open(path) as f:
            data = json.load(f)
        return cls(**data)

    def save(self, path: str | Path) -> None:
        """Save config to a JSON file."""
        path = Path(path)
        path.parent.mkdir(parents=True, exist_ok=True)
        # ``ci`` comes from the environment, never from the file.
        with open(path, "w") as f:
            json.dump(self.model_dump(exclude={"ci"}), f, indent=2)
