"""Freeze animated GIFs so screenshots don't depend on which frame is showing."""

from __future__ import annotations

import logging
import re

from playwright.async_api import Page

logger = logging.getLogger(__name__)

# Must stay in sync with the regex inside FREEZE_GIFS_SCRIPT.
_GIF_SRC_RE = re.compile(r"^(?!data:).*\.gif", re.IGNORECASE)

# Runs in the page. Draws the current frame of every .gif <img> onto a canvas,
# then either points the <img> at the canvas data URL or, when the canvas is
# tainted by a cross-origin image, swaps the <img> for the canvas itself.
FREEZE_GIFS_SCRIPT = """async () => {
    const LOAD_TIMEOUT_MS = 5000;

    function isGif(img) {
        return /^(?!data:).*\\.gif/i.test(img.src);
    }

    function replaceGif(img) {
        const canvas = document.createElement('canvas');
        const width = canvas.width = img.width;
        const height = canvas.height = img.height;
        canvas.getContext('2d').drawImage(img, 0, 0, width, height);

        try {
            img.src = canvas.toDataURL('image/gif');
        } catch (e) {
            for (const attribute of img.attributes) {
                canvas.setAttribute(attribute.name, attribute.value);
            }
            img.parentNode.replaceChild(canvas, img);
        }
    }

    function whenLoaded(img) {
        // Lazy images below the fold are not fetched until scrolled to, so
        // they would start animating mid-pagination. Load them up front.
        img.loading = 'eager';
        const timeout = new Promise(resolve => setTimeout(resolve, LOAD_TIMEOUT_MS));
        return Promise.race([img.decode().catch(() => {}), timeout]);
    }

    const gifs = Array.from(document.images).filter(isGif);
    await Promise.all(gifs.map(whenLoaded));

    // Drawing a broken image throws, skip those.
    const loaded = gifs.filter(img => img.complete && img.naturalWidth > 0);
    loaded.forEach(replaceGif);
    return loaded.length;
}"""


def is_animated_gif_source(src: str) -> bool:
    """True for image sources the stabilizer will freeze."""
    return bool(_GIF_SRC_RE.match(src or ""))


async def freeze_gifs(page: Page) -> int:
    """Replace every animated GIF on ``page`` with a still of its current frame."""
    frozen = await page.evaluate(FREEZE_GIFS_SCRIPT)
    if frozen:
        logger.debug("Froze %d GIF(s) on %s", frozen, page.url)
    return frozen or 0
