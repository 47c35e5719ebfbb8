"""Tests for configuration models."""

import json
from pathlib import Path

import pytest
from pydantic import ValidationError

from sitesnap.models.config import (
    CaptureConfig,
    ComparisonConfig,
    FrameworkConfig,
    ProjectConfig,
    ViewportConfig,
    WebServerConfig,
    default_projects,
)


class TestViewportConfig:
    """Tests for ViewportConfig model."""

    def test_default_values(self):
        config = ViewportConfig()
        assert (config.width, config.height) == (1280, 1024)

    def test_rejects_zero_size(self):
        with pytest.raises(ValidationError):
            ViewportConfig(width=0, height=100)


class TestDefaultProjects:
    """The default browser/device matrix."""

    def test_five_projects(self):
        names = [p.name for p in default_projects()]
        assert names == ["chromium", "firefox", "webkit", "android", "ios"]

    def test_desktop_projects_use_taller_viewport(self):
        desktop = [p for p in default_projects() if p.name in ("chromium", "firefox", "webkit")]
        assert all(p.viewport == ViewportConfig(width=1280, height=1024) for p in desktop)

    def test_mobile_projects_use_device_viewport(self):
        mobile = {p.name: p for p in default_projects() if p.name in ("android", "ios")}
        assert mobile["android"].device == "Pixel 5"
        assert mobile["ios"].device == "iPhone 12"
        assert mobile["android"].viewport is None


class TestCaptureConfig:
    """Tests for CaptureConfig model."""

    def test_default_values(self):
        config = CaptureConfig()
        assert config.paginate is True
        assert config.full_page_name == "full"
        assert config.page_name_format == "page{n}"
        assert config.extension == ".png"
        assert config.max_attempts == 5
        assert config.retry_delay_ms == 1000
        assert config.freeze_gifs is True

    def test_page_name_format_needs_counter(self):
        with pytest.raises(ValidationError, match="must contain"):
            CaptureConfig(page_name_format="page")

    def test_extension_needs_dot(self):
        with pytest.raises(ValidationError, match="must start with"):
            CaptureConfig(extension="png")

    def test_negative_attempts_rejected(self):
        with pytest.raises(ValidationError):
            CaptureConfig(max_attempts=-1)


class TestComparisonConfig:

    def test_default_values(self):
        config = ComparisonConfig()
        assert config.threshold == 0.2
        assert config.max_diff_pixels is None
        assert config.max_diff_pixel_ratio is None
        assert config.animations == "disabled"
        assert config.caret == "hide"

    def test_threshold_bounds(self):
        with pytest.raises(ValidationError):
            ComparisonConfig(threshold=1.5)


class TestFrameworkConfig:
    """Tests for FrameworkConfig model."""

    def test_default_values(self, monkeypatch):
        monkeypatch.delenv("CI", raising=False)
        config = FrameworkConfig()
        assert config.base_url == "http://localhost:1313"
        assert config.sitemap_path == "public/sitemap.xml"
        assert config.ci is False
        assert config.snapshot_dir == ".screenshots"
        assert config.snapshot_path_template == (
            "{snapshotDir}/{testFilePath}/{arg}-{projectName}-{platform}{ext}"
        )
        assert config.update_snapshots == "missing"
        assert config.trace == "on-first-retry"
        assert config.web_server == WebServerConfig()
        assert config.web_server.command == "make dev"
        assert len(config.projects) == 5

    def test_ci_from_environment(self, monkeypatch):
        monkeypatch.setenv("CI", "true")
        assert FrameworkConfig().ci is True

    def test_unknown_template_token_rejected(self):
        with pytest.raises(ValidationError, match="browserName"):
            FrameworkConfig(snapshot_path_template="{snapshotDir}/{arg}-{browserName}{ext}")

    def test_template_needs_arg(self):
        with pytest.raises(ValidationError, match="must contain"):
            FrameworkConfig(snapshot_path_template="{snapshotDir}/shot{ext}")

    def test_duplicate_projects_rejected(self):
        with pytest.raises(ValidationError, match="Duplicate project name"):
            FrameworkConfig(projects=[ProjectConfig(name="a"), ProjectConfig(name="a")])

    def test_invalid_update_mode(self):
        with pytest.raises(ValidationError):
            FrameworkConfig(update_snapshots="sometimes")


class TestCiDefaults:
    """Retries, workers and server reuse depend on CI unless set explicitly."""

    def test_local_defaults(self):
        config = FrameworkConfig(ci=False)
        assert config.effective_retries == 0
        assert config.effective_workers >= 1
        assert config.reuse_existing_server is True

    def test_ci_defaults(self):
        config = FrameworkConfig(ci=True)
        assert config.effective_retries == 2
        assert config.effective_workers == 1
        assert config.reuse_existing_server is False

    def test_explicit_values_win(self):
        config = FrameworkConfig(
            ci=True, retries=1, workers=4,
            web_server=WebServerConfig(reuse_existing_server=True),
        )
        assert config.effective_retries == 1
        assert config.effective_workers == 4
        assert config.reuse_existing_server is True

    def test_no_web_server(self):
        assert FrameworkConfig(web_server=None).reuse_existing_server is False


class TestSelectProjects:

    def test_all_when_no_names(self):
        config = FrameworkConfig()
        assert config.select_projects(None) == config.projects
        assert config.select_projects(()) == config.projects

    def test_keeps_configured_order(self):
        config = FrameworkConfig()
        selected = config.select_projects(["ios", "chromium"])
        assert [p.name for p in selected] == ["chromium", "ios"]

    def test_unknown_project(self):
        with pytest.raises(ValueError, match="Project\\(s\\) not found: opera"):
            FrameworkConfig().select_projects(["opera"])


class TestLoadSave:

    def test_round_trip(self, framework_config, tmp_path):
        path = tmp_path / "nested" / "sitesnap.json"
        framework_config.save(path)
        loaded = FrameworkConfig.load(path)
        assert loaded.base_url == framework_config.base_url
        assert loaded.projects == framework_config.projects
        assert loaded.capture == framework_config.capture

    def test_ci_not_saved(self, temp_config_file):
        data = json.loads(Path(temp_config_file).read_text())
        assert "ci" not in data
        assert data["update_snapshots"] == "missing"

    def test_load_missing_file(self, tmp_path):
        with pytest.raises(FileNotFoundError):
            FrameworkConfig.load(tmp_path / "nope.json")

    def test_load_partial_file(self, tmp_path):
        path = tmp_path / "sitesnap.json"
        path.write_text(json.dumps({"base_url": "http://example.test", "projects": [{"name": "chromium"}]}))
        config = FrameworkConfig.load(path)
        assert config.base_url == "http://example.test"
        assert [p.name for p in config.projects] == ["chromium"]
        assert config.capture == CaptureConfig()
