"""Pixel comparison between a baseline image and a fresh capture."""

from __future__ import annotations

import io
from dataclasses import dataclass
from typing import Optional

from PIL import Image, ImageChops

_DIFF_COLOR = (255, 0, 0, 255)


@dataclass
class ImageDiff:
    passed: bool
    diff_pixels: int
    total_pixels: int
    expected_size: tuple[int, int]
    actual_size: tuple[int, int]
    diff_image: Optional[Image.Image] = None

    @property
    def diff_ratio(self) -> float:
        return self.diff_pixels / self.total_pixels if self.total_pixels else 0.0

    @property
    def size_mismatch(self) -> bool:
        return self.expected_size != self.actual_size

    def describe(self) -> str:
        if self.size_mismatch:
            ew, eh = self.expected_size
            aw, ah = self.actual_size
            return f"Expected an image {ew}px by {eh}px, received {aw}px by {ah}px."
        return f"{self.diff_pixels} pixels ({self.diff_ratio:.2%}) are different."


def _load_rgba(data: bytes) -> Image.Image:
    with Image.open(io.BytesIO(data)) as img:
        return img.convert("RGBA")


def _pad(img: Image.Image, size: tuple[int, int]) -> Image.Image:
    if img.size == size:
        return img
    padded = Image.new("RGBA", size, (0, 0, 0, 0))
    padded.paste(img, (0, 0))
    return padded


def _render_diff(expected: Image.Image, mask: Image.Image) -> Image.Image:
    faded = expected.convert("L").point(lambda v: 192 + v // 4).convert("RGBA")
    red = Image.new("RGBA", expected.size, _DIFF_COLOR)
    return Image.composite(red, faded, mask)


def compare_images(
    expected: bytes,
    actual: bytes,
    *,
    threshold: float = 0.2,
    max_diff_pixels: int | None = None,
    max_diff_pixel_ratio: float | None = None,
) -> ImageDiff:
    """Compare two encoded images.

    A pixel counts as different when any RGBA channel moved by more than
    ``threshold * 255``. Images of different sizes are padded to the same
    canvas and never pass.
    """
    exp = _load_rgba(expected)
    act = _load_rgba(actual)

    size = (max(exp.width, act.width), max(exp.height, act.height))
    exp_padded = _pad(exp, size)
    act_padded = _pad(act, size)

    delta = ImageChops.difference(exp_padded, act_padded)
    channel_max = delta.getchannel(0)
    for band in range(1, 4):
        channel_max = ImageChops.lighter(channel_max, delta.getchannel(band))

    cutoff = int(threshold * 255)
    mask = channel_max.point(lambda v: 255 if v > cutoff else 0)
    if exp.size != act.size:
        # Everything outside the common area is a difference.
        outside = Image.new("L", size, 255)
        outside.paste(0, (0, 0, min(exp.width, act.width), min(exp.height, act.height)))
        mask = ImageChops.lighter(mask, outside)
    diff_pixels = mask.histogram()[255]
    total = size[0] * size[1]

    if exp.size != act.size:
        passed = False
    elif diff_pixels == 0:
        passed = True
    else:
        passed = (
            (max_diff_pixels is not None and diff_pixels <= max_diff_pixels)
            or (max_diff_pixel_ratio is not None and total and diff_pixels / total <= max_diff_pixel_ratio)
        )

    return ImageDiff(
        passed=bool(passed),
        diff_pixels=diff_pixels,
        total_pixels=total,
        expected_size=exp.size,
        actual_size=act.size,
        diff_image=None if passed else _render_diff(exp_padded, mask),
    )
