"""Local dev server management -- start the site before capturing, stop it after."""

from __future__ import annotations

import asyncio
import logging
import os
import signal
import time

from playwright.async_api import Error as PlaywrightError
from playwright.async_api import Playwright

from sitesnap.models.config import WebServerConfig

logger = logging.getLogger(__name__)


class WebServerError(RuntimeError):
    """The dev server could not be started, or something else holds its URL."""


async def is_url_available(playwright: Playwright, url: str, timeout_ms: int = 5000) -> bool:
    """True when ``url`` answers with a status below 404."""
    request = await playwright.request.new_context(ignore_https_errors=True)
    try:
        response = await request.get(url, timeout=timeout_ms, max_redirects=5)
        return 200 <= response.status < 404
    except PlaywrightError:
        return False
    finally:
        await request.dispose()


class WebServer:
    """Async context manager around the site's dev server process."""

    def __init__(self, config: WebServerConfig, playwright: Playwright, reuse_existing: bool):
        self.config = config
        self.playwright = playwright
        self.reuse_existing = reuse_existing
        self.process: asyncio.subprocess.Process | None = None

    async def __aenter__(self) -> "WebServer":
        await self.start()
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.stop()

    async def start(self) -> None:
        url = self.config.url
        if await is_url_available(self.playwright, url):
            if self.reuse_existing:
                logger.info("Reusing existing server at %s", url)
                return
            raise WebServerError(
                f"{url} is already used, make sure that nothing is running on the port/url "
                "or set web_server.reuse_existing_server to true."
            )

        logger.info("Starting web server: %s", self.config.command)
        self.process = await asyncio.create_subprocess_shell(
            self.config.command,
            cwd=self.config.cwd,
            stdout=asyncio.subprocess.DEVNULL,
            stderr=asyncio.subprocess.DEVNULL,
            start_new_session=True,
        )

        deadline = time.monotonic() + self.config.timeout_seconds
        while time.monotonic() < deadline:
            if self.process.returncode is not None:
                raise WebServerError(
                    f"Web server command exited early with code {self.process.returncode}: "
                    f"{self.config.command}"
                )
            if await is_url_available(self.playwright, url):
                logger.info("Web server ready at %s", url)
                return
            await asyncio.sleep(0.5)

        await self.stop()
        raise WebServerError(
            f"Timed out waiting {self.config.timeout_seconds}s for {url} "
            f"(command: {self.config.command})"
        )

    async def stop(self) -> None:
        process = self.process
        if process is None or process.returncode is not None:
            return
        logger.debug("Stopping web server (pid %d)", process.pid)
        # The command usually spawns children (make -> hugo); signal the group.
        try:
            if hasattr(os, "killpg"):
                os.killpg(process.pid, signal.SIGTERM)
            else:
                process.terminate()
        except ProcessLookupError:
            pass
        try:
            await asyncio.wait_for(process.wait(), timeout=5)
        except asyncio.TimeoutError:
            process.kill()
            await process.wait()
        self.process = None
