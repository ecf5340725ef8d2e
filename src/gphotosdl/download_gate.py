# Copyright (C) 2025-2026 Retio AI
# SPDX-License-Identifier: AGPL-3.0-only

"""Single-flight guard for browser downloads.

One browser session and one download directory cannot run two downloads
at once. Every download runs inside ``DownloadGate.run``; callers arriving
while a download is in flight wait on the lock (asyncio.Lock wakes waiters
in FIFO order).
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable
from typing import TypeVar

logger = logging.getLogger(__name__)

T = TypeVar("T")


class DownloadGate:
    """Mutual exclusion for download attempts, held for the process lifetime."""

    def __init__(self) -> None:
        self._lock = asyncio.Lock()
        self._waiting = 0

    @property
    def busy(self) -> bool:
        return self._lock.locked()

    @property
    def waiting(self) -> int:
        """Callers blocked behind the current download."""
        return self._waiting

    async def run(self, fn: Callable[[], Awaitable[T]]) -> T:
        """Await ``fn()`` while holding the lock. Released on error and cancellation."""
        if self._lock.locked():
            logger.debug("Download in progress, waiting (queued=%d)", self._waiting + 1)
        self._waiting += 1
        try:
            await self._lock.acquire()
        finally:
            self._waiting -= 1
        try:
            return await fn()
        finally:
            self._lock.release()
