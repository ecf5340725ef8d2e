# Copyright (C) 2025-2026 Retio AI
# SPDX-License-Identifier: AGPL-3.0-only

"""Tests for BrowserSession lifecycle.

Playwright is mocked throughout; no Chromium is launched.
"""

from __future__ import annotations

from unittest.mock import AsyncMock, MagicMock, patch

import pytest
from playwright.async_api import Error as PlaywrightError

import gphotosdl.browser_session as bs
from gphotosdl.browser_session import (
    GPHOTOS_URL,
    BrowserConfig,
    BrowserSession,
    chromium_launch_args,
    create_session,
)
from gphotosdl.errors import LaunchError, NavigationError


@pytest.fixture
def config(tmp_path):
    return BrowserConfig(profile_dir=tmp_path / "profile", download_dir=tmp_path / "dl")


def _mock_page():
    page = AsyncMock()
    page.is_closed = MagicMock(return_value=False)
    return page


@pytest.fixture
def mock_pw():
    """Patch async_playwright; yields (playwright, context, home_page)."""
    home = _mock_page()
    context = AsyncMock()
    context.pages = [home]
    pw = AsyncMock()
    pw.chromium.launch_persistent_context = AsyncMock(return_value=context)
    with patch("gphotosdl.browser_session.async_playwright") as mock_apw:
        mock_apw.return_value.start = AsyncMock(return_value=pw)
        yield pw, context, home


@pytest.fixture(autouse=True)
def _reset_install_flag():
    bs._chromium_install_attempted = False
    yield
    bs._chromium_install_attempted = False


# ── Config and launch args ─────────────────────────────────────────


class TestBrowserConfig:
    def test_defaults(self, config):
        assert config.headless is True
        assert config.start_url == GPHOTOS_URL
        assert config.executable_path is None
        assert config.timeout_ms == 30000
        assert config.slow_mo_ms == 100


class TestLaunchArgs:
    def test_disables_gpu_and_audio(self):
        args = chromium_launch_args()
        assert "--disable-gpu" in args
        assert "--disable-audio-output" in args

    def test_hides_automation(self):
        assert "--disable-blink-features=AutomationControlled" in chromium_launch_args()


class TestPropertyGuards:
    def test_home_page_raises_before_start(self, config):
        with pytest.raises(RuntimeError, match="not started"):
            _ = BrowserSession(config).home_page

    def test_context_raises_before_start(self, config):
        with pytest.raises(RuntimeError, match="not started"):
            _ = BrowserSession(config).context

    def test_download_dir(self, config):
        assert BrowserSession(config).download_dir == config.download_dir


# ── start / stop ───────────────────────────────────────────────────


class TestStart:
    async def test_launches_persistent_profile(self, config, mock_pw):
        pw, context, home = mock_pw
        session = BrowserSession(config)
        await session.start()
        args, kwargs = pw.chromium.launch_persistent_context.call_args
        assert args[0] == str(config.profile_dir)
        assert kwargs["headless"] is True
        assert kwargs["accept_downloads"] is True
        assert kwargs["downloads_path"] == str(config.download_dir)
        assert kwargs["ignore_default_args"] == ["--enable-automation"]
        assert "executable_path" not in kwargs
        assert session.home_page is home

    async def test_waits_for_start_url_load(self, config, mock_pw):
        _, _, home = mock_pw
        await BrowserSession(config).start()
        home.goto.assert_awaited_once_with(GPHOTOS_URL, wait_until="load", timeout=30000)

    async def test_opens_page_when_context_has_none(self, config, mock_pw):
        _, context, _ = mock_pw
        context.pages = []
        new_page = _mock_page()
        context.new_page = AsyncMock(return_value=new_page)
        session = BrowserSession(config)
        await session.start()
        assert session.home_page is new_page

    async def test_explicit_executable(self, tmp_path, mock_pw):
        pw, _, _ = mock_pw
        cfg = BrowserConfig(profile_dir=tmp_path, download_dir=tmp_path, executable_path="/usr/bin/chromium")
        await BrowserSession(cfg).start()
        _, kwargs = pw.chromium.launch_persistent_context.call_args
        assert kwargs["executable_path"] == "/usr/bin/chromium"

    async def test_launch_failure_is_launch_error(self, config, mock_pw):
        pw, _, _ = mock_pw
        pw.chromium.launch_persistent_context = AsyncMock(side_effect=PlaywrightError("crashed"))
        with pytest.raises(LaunchError, match="browser launch"):
            await BrowserSession(config).start()
        pw.stop.assert_awaited()

    async def test_driver_failure_is_launch_error(self, config):
        with patch("gphotosdl.browser_session.async_playwright") as mock_apw:
            mock_apw.return_value.start = AsyncMock(side_effect=OSError("no driver"))
            with pytest.raises(LaunchError, match="driver"):
                await BrowserSession(config).start()

    async def test_missing_chromium_auto_installs_once(self, config, mock_pw):
        pw, context, _ = mock_pw
        pw.chromium.launch_persistent_context = AsyncMock(
            side_effect=[PlaywrightError("Executable doesn't exist at /x/chrome"), context]
        )
        with patch("gphotosdl.browser_session._auto_install_chromium", AsyncMock(return_value=True)) as inst:
            await BrowserSession(config).start()
        inst.assert_awaited_once()
        assert pw.chromium.launch_persistent_context.await_count == 2

    async def test_missing_chromium_install_fails(self, config, mock_pw):
        pw, _, _ = mock_pw
        pw.chromium.launch_persistent_context = AsyncMock(
            side_effect=PlaywrightError("Executable doesn't exist at /x/chrome")
        )
        with (
            patch("gphotosdl.browser_session._auto_install_chromium", AsyncMock(return_value=False)),
            pytest.raises(LaunchError, match="playwright install chromium"),
        ):
            await BrowserSession(config).start()

    async def test_initial_load_failure_is_navigation_error(self, config, mock_pw):
        _, context, home = mock_pw
        home.goto = AsyncMock(side_effect=PlaywrightError("Timeout 30000ms exceeded"))
        session = BrowserSession(config)
        with pytest.raises(NavigationError, match="initial page load"):
            await session.start()
        context.close.assert_awaited_once()
        with pytest.raises(RuntimeError):
            _ = session.context


class TestStop:
    async def test_stop_closes_context_and_driver(self, config, mock_pw):
        pw, context, _ = mock_pw
        session = BrowserSession(config)
        await session.start()
        await session.stop()
        context.close.assert_awaited_once()
        pw.stop.assert_awaited_once()

    async def test_stop_closes_open_tabs(self, config, mock_pw):
        _, context, _ = mock_pw
        tab = _mock_page()
        context.new_page = AsyncMock(return_value=tab)
        session = BrowserSession(config)
        await session.start()
        await session.new_tab()
        assert session.tab_count == 1
        await session.stop()
        tab.close.assert_awaited_once()
        assert session.tab_count == 0

    async def test_stop_tolerates_crashed_browser(self, config, mock_pw):
        _, context, _ = mock_pw
        context.close = AsyncMock(side_effect=PlaywrightError("Browser has been closed"))
        session = BrowserSession(config)
        await session.start()
        await session.stop()

    async def test_stop_before_start(self, config):
        await BrowserSession(config).stop()

    async def test_create_session_context_manager(self, config, mock_pw):
        pw, context, _ = mock_pw
        async with create_session(config) as session:
            assert session.home_page is not None
        context.close.assert_awaited_once()


# ── Tabs and URL ───────────────────────────────────────────────────


class TestTabs:
    async def test_close_tab_swallows_errors(self, config, mock_pw):
        _, context, _ = mock_pw
        tab = _mock_page()
        tab.close = AsyncMock(side_effect=PlaywrightError("Target closed"))
        context.new_page = AsyncMock(return_value=tab)
        session = BrowserSession(config)
        await session.start()
        page = await session.new_tab()
        await session.close_tab(page)
        assert session.tab_count == 0

    async def test_close_tab_skips_closed_page(self, config, mock_pw):
        _, context, _ = mock_pw
        tab = _mock_page()
        tab.is_closed = MagicMock(return_value=True)
        context.new_page = AsyncMock(return_value=tab)
        session = BrowserSession(config)
        await session.start()
        await session.close_tab(await session.new_tab())
        tab.close.assert_not_awaited()

    async def test_current_url_reads_location(self, config, mock_pw):
        _, _, home = mock_pw
        home.evaluate = AsyncMock(return_value=GPHOTOS_URL)
        session = BrowserSession(config)
        await session.start()
        assert await session.current_url() == GPHOTOS_URL
