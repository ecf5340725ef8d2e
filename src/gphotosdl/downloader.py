# Copyright (C) 2025-2026 Retio AI
# SPDX-License-Identifier: AGPL-3.0-only

"""Per-request photo download state machine.

Each download runs on its own short-lived tab:

1. open a blank tab
2. watch network responses for the photo resource
3. navigate to the photo page and wait for ``load``
4. confirm the resource answered 200
5. watch for a download, let the page settle, press the download shortcut
6. wait for the file to land in the download directory and stat it

The tab is closed whatever happens. Downloads are serialized through the
orchestrator's ``DownloadGate``; nothing here retries.
"""

from __future__ import annotations

import asyncio
import functools
import logging
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from pathlib import Path
from typing import TYPE_CHECKING, Generic, TypeVar

from playwright.async_api import Download, Page, Response
from playwright.async_api import Error as PlaywrightError

from .download_gate import DownloadGate
from .errors import (
    DownloadTriggerError,
    DownloadVerificationError,
    InvalidPhotoIDError,
    NavigationError,
    ResourceNotFoundError,
    UpstreamError,
)
from .triggers import DownloadTrigger, KeyboardShortcutTrigger

if TYPE_CHECKING:
    from .browser_session import BrowserSession

logger = logging.getLogger(__name__)

T = TypeVar("T")
E = TypeVar("E")

# Both forms resolve to the same photo. The "lr" form redirects to the
# direct form, which uses a different ID.
PHOTO_URL_DIRECT = "https://photos.google.com/photo/"
PHOTO_URL_REDIRECT = "https://photos.google.com/lr/photo/"
PHOTO_URL_FORMS = {"direct": PHOTO_URL_DIRECT, "redirect": PHOTO_URL_REDIRECT}
RESOURCE_PREFIXES = (PHOTO_URL_DIRECT, PHOTO_URL_REDIRECT)

HTTP_OK = 200


@dataclass(frozen=True)
class DownloadSettings:
    """Per-download tuning. Timeouts are in seconds except ``navigation_timeout_ms``."""

    photo_url_form: str = "redirect"
    navigation_timeout_ms: int = 30000
    response_timeout: float = 30.0
    download_timeout: float = 300.0
    settle_delay: float = 1.0
    resource_prefixes: tuple[str, ...] = RESOURCE_PREFIXES

    def __post_init__(self) -> None:
        if self.photo_url_form not in PHOTO_URL_FORMS:
            raise ValueError(f"unknown photo URL form: {self.photo_url_form!r}")

    @property
    def photo_base_url(self) -> str:
        return PHOTO_URL_FORMS[self.photo_url_form]

    def photo_url(self, photo_id: str) -> str:
        return self.photo_base_url + photo_id


@dataclass(frozen=True, slots=True)
class ResponseEvent:
    """A network response seen on the download tab."""

    url: str
    status: int


@dataclass(frozen=True, slots=True)
class DownloadedPhoto:
    """A finished download. The caller owns ``path`` and must delete it."""

    photo_id: str
    path: Path
    filename: str
    size: int


class _FirstEvent(Generic[E]):
    """Page event listener that keeps the first accepted event."""

    def __init__(self) -> None:
        self._future: asyncio.Future[E] = asyncio.get_running_loop().create_future()

    @property
    def matched(self) -> E | None:
        # wait_for cancels the future on timeout
        if self._future.done() and not self._future.cancelled():
            return self._future.result()
        return None

    def _accept(self, event: E) -> None:
        if not self._future.done():
            self._future.set_result(event)

    async def wait(self, timeout: float | None) -> E | None:
        """Return the first accepted event, or None after *timeout* seconds."""
        try:
            return await asyncio.wait_for(self._future, timeout)
        except TimeoutError:
            return None


class NetworkResponseFilter(_FirstEvent[ResponseEvent]):
    """``response`` listener matching the photo resource by URL prefix.

    Redirect hops (3xx) are skipped; the response they lead to is the one
    that says whether the photo exists.
    """

    def __init__(self, prefixes: tuple[str, ...] = RESOURCE_PREFIXES) -> None:
        super().__init__()
        self.prefixes = tuple(prefixes)

    def __call__(self, response: Response) -> None:
        url = response.url
        status = response.status
        logger.debug("network response url=%s status=%d", url, status)
        if not url.startswith(self.prefixes) or 300 <= status < 400:
            return
        self._accept(ResponseEvent(url=url, status=status))


class DownloadWaiter(_FirstEvent[Download]):
    """``download`` listener keeping the first download the tab starts."""

    def __call__(self, download: Download) -> None:
        logger.debug("download started: %s", download.suggested_filename)
        self._accept(download)


@dataclass
class DownloadTicket:
    """State of one download call. Never shared between requests."""

    photo_id: str
    url: str
    page: Page
    responses: NetworkResponseFilter
    path: Path | None = field(default=None)


def validate_photo_id(photo_id: str) -> None:
    """Reject identifiers that are not a single non-empty path segment."""
    if not photo_id or "/" in photo_id or photo_id.strip() != photo_id:
        raise InvalidPhotoIDError("invalid photo identifier", photo_id=photo_id)


class DownloadOrchestrator:
    """Downloads photos one at a time through a shared ``BrowserSession``."""

    def __init__(
        self,
        session: BrowserSession,
        settings: DownloadSettings | None = None,
        trigger: DownloadTrigger | None = None,
    ) -> None:
        self._session = session
        self.settings = settings or DownloadSettings()
        self._trigger = trigger or KeyboardShortcutTrigger()
        self._gate = DownloadGate()

    @property
    def busy(self) -> bool:
        """True while a download holds the gate."""
        return self._gate.busy

    async def with_exclusive_download(self, fn: Callable[[], Awaitable[T]]) -> T:
        """Run *fn* while no other download is in flight."""
        return await self._gate.run(fn)

    async def download(self, photo_id: str) -> DownloadedPhoto:
        """Download the photo with the given ID.

        Returns the downloaded file, which the caller must delete after use.

        Raises:
            PhotoRequestError: any subclass, carrying ``photo_id``.
        """
        validate_photo_id(photo_id)
        return await self.with_exclusive_download(functools.partial(self._download, photo_id))

    async def _download(self, photo_id: str) -> DownloadedPhoto:
        logger.debug("Open new tab for photo %s", photo_id)
        try:
            page = await self._session.new_tab()
        except PlaywrightError as exc:
            raise NavigationError(f"failed to open browser tab: {exc}", photo_id=photo_id) from exc
        try:
            ticket = DownloadTicket(
                photo_id=photo_id,
                url=self.settings.photo_url(photo_id),
                page=page,
                responses=NetworkResponseFilter(self.settings.resource_prefixes),
            )
            return await self._run(ticket)
        finally:
            await self._session.close_tab(page)

    async def _run(self, ticket: DownloadTicket) -> DownloadedPhoto:
        await self._confirm_resource(ticket)
        download = await self._trigger_download(ticket)
        return await self._verify(ticket, download)

    async def _confirm_resource(self, ticket: DownloadTicket) -> ResponseEvent:
        page = ticket.page
        page.on("response", ticket.responses)
        try:
            logger.debug("Navigate to %s", ticket.url)
            try:
                await page.goto(ticket.url, wait_until="load", timeout=self.settings.navigation_timeout_ms)
            except PlaywrightError as exc:
                raise NavigationError(f"photo page load: {exc}", photo_id=ticket.photo_id) from exc
            logger.debug("Wait for network response")
            event = await ticket.responses.wait(self.settings.response_timeout)
        finally:
            page.remove_listener("response", ticket.responses)

        if event is None:
            raise ResourceNotFoundError(
                "did not receive the expected network response for the photo",
                photo_id=ticket.photo_id,
            )
        if event.status != HTTP_OK:
            raise UpstreamError(event.status, photo_id=ticket.photo_id)
        return event

    async def _trigger_download(self, ticket: DownloadTicket) -> Download:
        page = ticket.page
        waiter = DownloadWaiter()
        page.on("download", waiter)
        try:
            await asyncio.sleep(self.settings.settle_delay)
            try:
                await self._trigger.trigger(page)
            except PlaywrightError as exc:
                raise DownloadTriggerError(
                    f"failed to send download keypress: {exc}", photo_id=ticket.photo_id
                ) from exc
            logger.debug("Wait for download")
            download = await waiter.wait(self.settings.download_timeout)
        finally:
            page.remove_listener("download", waiter)

        if download is None:
            raise DownloadVerificationError("download did not start", photo_id=ticket.photo_id)
        return download

    async def _verify(self, ticket: DownloadTicket, download: Download) -> DownloadedPhoto:
        try:
            saved = await asyncio.wait_for(download.path(), self.settings.download_timeout)
        except TimeoutError as exc:
            raise DownloadVerificationError("download did not finish", photo_id=ticket.photo_id) from exc
        except PlaywrightError as exc:
            raise DownloadVerificationError(f"download failed: {exc}", photo_id=ticket.photo_id) from exc

        ticket.path = self._session.download_dir / Path(saved).name
        try:
            size = ticket.path.stat().st_size
        except FileNotFoundError as exc:
            raise DownloadVerificationError("download failed, file not found", photo_id=ticket.photo_id) from exc

        logger.debug("Download successful size=%d path=%s", size, ticket.path)
        return DownloadedPhoto(
            photo_id=ticket.photo_id,
            path=ticket.path,
            filename=download.suggested_filename,
            size=size,
        )
