# Copyright (C) 2025-2026 Retio AI
# SPDX-License-Identifier: AGPL-3.0-only

"""Playwright browser session for gphotosdl.

One Chromium process bound to a persistent profile directory, so the
Google login survives restarts. The session keeps one home tab, used only
to observe authentication state, and hands out short-lived tabs for
downloads.
"""

from __future__ import annotations

import asyncio
import logging
import sys
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager, suppress
from dataclasses import dataclass
from pathlib import Path

from playwright.async_api import BrowserContext, Page, Playwright, async_playwright
from playwright.async_api import Error as PlaywrightError

from .errors import LaunchError, NavigationError

logger = logging.getLogger(__name__)

# Google Photos addresses
GPHOTOS_URL = "https://photos.google.com/"
LOGIN_URL = "https://photos.google.com/login"

# Automation banner flag blocks Google sign-in
_IGNORED_DEFAULT_ARGS = ["--enable-automation"]


@dataclass(frozen=True)
class BrowserConfig:
    """Browser launch configuration."""

    profile_dir: Path
    download_dir: Path
    start_url: str = GPHOTOS_URL
    headless: bool = True
    executable_path: str | None = None
    timeout_ms: int = 30000
    slow_mo_ms: int = 100


# ── Chromium auto-install ─────────────────────────────────────────

_chromium_install_attempted = False
_AUTO_INSTALL_TIMEOUT = 300  # seconds


async def _auto_install_chromium() -> bool:
    """Run ``playwright install chromium`` once per process.

    Returns True if install succeeded, False otherwise.
    """
    global _chromium_install_attempted  # noqa: PLW0603
    if _chromium_install_attempted:
        return False
    _chromium_install_attempted = True

    logger.info("Chromium not found, running 'playwright install chromium'")
    try:
        proc = await asyncio.create_subprocess_exec(
            sys.executable,
            "-m",
            "playwright",
            "install",
            "chromium",
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.PIPE,
        )
        _stdout, stderr = await asyncio.wait_for(proc.communicate(), timeout=_AUTO_INSTALL_TIMEOUT)
    except TimeoutError:
        logger.warning("Chromium install timed out after %ds", _AUTO_INSTALL_TIMEOUT)
        return False
    except OSError:
        logger.warning("Chromium auto-install failed", exc_info=True)
        return False
    if proc.returncode == 0:
        logger.info("Chromium installed successfully")
        return True
    logger.warning(
        "playwright install chromium failed (rc=%d): %s",
        proc.returncode,
        stderr.decode(errors="replace")[:500],
    )
    return False


def chromium_launch_args() -> list[str]:
    """Return the Chromium command-line switches used for every launch."""
    return [
        "--disable-blink-features=AutomationControlled",
        "--disable-gpu",
        "--disable-audio-output",
        "--disable-dev-shm-usage",
        "--disable-background-networking",
        "--disable-sync",
        "--no-first-run",
        "--no-default-browser-check",
        "--disable-breakpad",
        "--disable-component-update",
        "--noerrdialogs",
    ]


class BrowserSession:
    """Owns the Playwright driver, the persistent browser context and the home tab."""

    def __init__(self, config: BrowserConfig):
        self.config = config
        self._playwright: Playwright | None = None
        self._context: BrowserContext | None = None
        self._home_page: Page | None = None
        self._tabs: set[Page] = set()

    @property
    def home_page(self) -> Page:
        if self._home_page is None:
            raise RuntimeError("Browser session not started. Use async with or call start().")
        return self._home_page

    @property
    def context(self) -> BrowserContext:
        if self._context is None:
            raise RuntimeError("Browser session not started.")
        return self._context

    @property
    def download_dir(self) -> Path:
        return self.config.download_dir

    @property
    def tab_count(self) -> int:
        """Number of ephemeral tabs currently open."""
        return len(self._tabs)

    def _launch_kwargs(self) -> dict:
        kwargs: dict = {
            "headless": self.config.headless,
            "args": chromium_launch_args(),
            "ignore_default_args": _IGNORED_DEFAULT_ARGS,
            "accept_downloads": True,
            "downloads_path": str(self.config.download_dir),
            "no_viewport": True,
            "slow_mo": self.config.slow_mo_ms,
        }
        if self.config.executable_path:
            kwargs["executable_path"] = self.config.executable_path
        return kwargs

    async def _launch_context(self) -> None:
        """Launch Chromium with the persistent profile, auto-installing once if missing."""
        chromium = self._playwright.chromium
        user_data_dir = str(self.config.profile_dir)
        try:
            self._context = await chromium.launch_persistent_context(user_data_dir, **self._launch_kwargs())
            return
        except PlaywrightError as exc:
            missing = "executable doesn't exist" in str(exc).lower()
            if not missing or self.config.executable_path:
                raise LaunchError(f"browser launch: {exc}") from exc
            if not await _auto_install_chromium():
                raise LaunchError(
                    "Chromium is not installed and auto-install failed. Please run: playwright install chromium"
                ) from exc
        try:
            self._context = await chromium.launch_persistent_context(user_data_dir, **self._launch_kwargs())
        except PlaywrightError as exc:
            raise LaunchError(f"browser launch after install: {exc}") from exc

    async def start(self) -> None:
        """Launch the browser and load the start URL in the home tab.

        Raises:
            LaunchError: the driver or the browser could not be started.
            NavigationError: the start URL did not finish loading.
        """
        try:
            self._playwright = await async_playwright().start()
        except Exception as exc:
            raise LaunchError(f"failed to start browser driver: {exc}") from exc
        try:
            await self._launch_context()
            pages = self._context.pages
            self._home_page = pages[0] if pages else await self._context.new_page()
            logger.debug("Opening start URL %s", self.config.start_url)
            try:
                await self._home_page.goto(
                    self.config.start_url,
                    wait_until="load",
                    timeout=self.config.timeout_ms,
                )
            except PlaywrightError as exc:
                raise NavigationError(f"initial page load: {exc}") from exc
        except BaseException:
            await self.stop()
            raise
        logger.info(
            "Browser session started (headless=%s, profile=%s)",
            self.config.headless,
            self.config.profile_dir,
        )

    async def stop(self) -> None:
        """Close tabs, the browser and the driver. Safe to call on a crashed browser."""
        for page in list(self._tabs):
            await self.close_tab(page)

        if self._context is not None:
            try:
                await self._context.close()
                logger.debug("Closed browser")
            except PlaywrightError:
                logger.error("Failed to close browser", exc_info=True)
            self._context = None
        self._home_page = None

        if self._playwright is not None:
            with suppress(Exception):
                await self._playwright.stop()
            self._playwright = None

        logger.info("Browser session stopped")

    async def __aenter__(self) -> BrowserSession:
        await self.start()
        return self

    async def __aexit__(self, *args) -> None:
        await self.stop()

    async def current_url(self) -> str:
        """Return the home tab's location as the page itself reports it.

        Raises PlaywrightError while the tab is between documents.
        """
        return await self.home_page.evaluate("() => window.location.href")

    async def new_tab(self) -> Page:
        """Open a new blank tab for a single download."""
        page = await self.context.new_page()
        self._tabs.add(page)
        return page

    async def close_tab(self, page: Page) -> None:
        """Close an ephemeral tab. Failures are logged, not raised."""
        self._tabs.discard(page)
        if page.is_closed():
            return
        try:
            await page.close()
        except PlaywrightError:
            logger.error("Error closing tab", exc_info=True)


@asynccontextmanager
async def create_session(config: BrowserConfig) -> AsyncGenerator[BrowserSession, None]:
    """Context manager to create and manage a browser session."""
    session = BrowserSession(config)
    await session.start()
    try:
        yield session
    finally:
        await session.stop()
