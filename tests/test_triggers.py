# Copyright (C) 2025-2026 Retio AI
# SPDX-License-Identifier: AGPL-3.0-only

"""Tests for download triggers."""

from __future__ import annotations

from unittest.mock import AsyncMock, MagicMock

from gphotosdl.downloader import DownloadOrchestrator, DownloadSettings
from gphotosdl.triggers import DEFAULT_DOWNLOAD_SHORTCUT, DownloadTrigger, KeyboardShortcutTrigger
from tests._browser_fakes import FakeSession, photo_page


class TestKeyboardShortcutTrigger:
    def test_default_is_shift_d(self):
        assert KeyboardShortcutTrigger().shortcut == DEFAULT_DOWNLOAD_SHORTCUT == "Shift+D"

    def test_satisfies_protocol(self):
        assert isinstance(KeyboardShortcutTrigger(), DownloadTrigger)

    async def test_presses_on_page(self):
        page = MagicMock()
        page.keyboard.press = AsyncMock()
        await KeyboardShortcutTrigger("Control+S").trigger(page)
        page.keyboard.press.assert_awaited_once_with("Control+S")


class TestCustomTrigger:
    async def test_orchestrator_uses_injected_trigger(self, download_dir):
        class EmitTrigger:
            def __init__(self):
                self.pages = []

            async def trigger(self, page):
                self.pages.append(page)
                page.emit("download", page.download)

        trigger = EmitTrigger()
        session = FakeSession(download_dir, lambda n: photo_page(download_dir))
        orch = DownloadOrchestrator(session, DownloadSettings(settle_delay=0, download_timeout=0.1), trigger)
        photo = await orch.download("abc")
        assert trigger.pages == [session.opened[0]]
        assert session.opened[0].keyboard.pressed == []
        assert photo.path.exists()
