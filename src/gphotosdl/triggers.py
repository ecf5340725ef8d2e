# Copyright (C) 2025-2026 Retio AI
# SPDX-License-Identifier: AGPL-3.0-only

"""Ways of asking the photo page to start a native file download."""

from __future__ import annotations

from typing import Protocol, runtime_checkable

from playwright.async_api import Page

# Google Photos: Shift+D downloads the photo being viewed
DEFAULT_DOWNLOAD_SHORTCUT = "Shift+D"


@runtime_checkable
class DownloadTrigger(Protocol):
    """Trigger a native download on the active tab."""

    async def trigger(self, page: Page) -> None: ...


class KeyboardShortcutTrigger:
    """Press a key combination (Playwright ``keyboard.press`` syntax) on the page."""

    def __init__(self, shortcut: str = DEFAULT_DOWNLOAD_SHORTCUT) -> None:
        self.shortcut = shortcut

    def __repr__(self) -> str:
        return f"KeyboardShortcutTrigger({self.shortcut!r})"

    async def trigger(self, page: Page) -> None:
        await page.keyboard.press(self.shortcut)
