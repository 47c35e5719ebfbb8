"""Snapshot path template -- where baselines live on disk.

The default layout is ``{snapshotDir}/{testFilePath}/{arg}-{projectName}-{platform}{ext}``.
Changing it orphans every existing baseline, so treat it as fixed once a
suite has baselines checked in.
"""

from __future__ import annotations

import re
import sys
from pathlib import Path, PurePosixPath
from typing import Sequence

_UNSAFE_CHARS = re.compile(r"[^A-Za-z0-9._-]+")


def sanitize_segment(segment: str) -> str:
    """Make one path segment safe for every filesystem we run on."""
    cleaned = _UNSAFE_CHARS.sub("-", segment)
    if cleaned in ("", ".", ".."):
        raise ValueError(f"Invalid snapshot name segment: {segment!r}")
    return cleaned


def split_name(name_parts: Sequence[str], default_ext: str = ".png") -> tuple[str, str]:
    """Split snapshot name parts into ``(arg, ext)``.

    ``["blog", "post", "page1.png"]`` becomes ``("blog/post/page1", ".png")``.
    """
    if not name_parts:
        raise ValueError("Snapshot name must have at least one part")
    segments = [sanitize_segment(p) for p in name_parts]
    last = PurePosixPath(segments[-1])
    ext = last.suffix or default_ext
    segments[-1] = last.stem if last.suffix else segments[-1]
    return "/".join(segments), ext


def snapshot_identifier(name_parts: Sequence[str], default_ext: str = ".png") -> str:
    """The stable identifier for a screenshot, e.g. ``blog/post/page1.png``."""
    arg, ext = split_name(name_parts, default_ext)
    return f"{arg}{ext}"


def current_platform() -> str:
    # linux, darwin or win32; baselines are kept per platform.
    return sys.platform


def resolve_snapshot_path(
    template: str,
    name_parts: Sequence[str],
    *,
    snapshot_dir: str,
    test_file_path: str,
    project_name: str,
    platform: str | None = None,
) -> Path:
    """Render ``template`` for one screenshot of one project."""
    arg, ext = split_name(name_parts)
    rendered = template.format(
        snapshotDir=snapshot_dir,
        testFilePath=test_file_path,
        arg=arg,
        projectName=sanitize_segment(project_name),
        platform=platform or current_platform(),
        ext=ext,
    )
    return Path(rendered)
