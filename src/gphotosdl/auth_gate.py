# Copyright (C) 2025-2026 Retio AI
# SPDX-License-Identifier: AGPL-3.0-only

"""Authentication gate: wait until the home tab shows the signed-in landing page.

Two states, UNAUTHENTICATED and AUTHENTICATED. The gate polls the home
tab's location once per interval. A ``LoginPolicy`` decides whether the
loop gives up (bounded, the default) or waits for a human to finish
signing in (unbounded, ``--login``).

Dependencies: errors.py and a session exposing ``async current_url()``.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from enum import Enum
from typing import Protocol

from playwright.async_api import Error as PlaywrightError

from .browser_session import GPHOTOS_URL
from .errors import NotAuthenticatedError

logger = logging.getLogger(__name__)

DEFAULT_LOGIN_ATTEMPTS = 60
DEFAULT_POLL_INTERVAL = 1.0


class AuthState(Enum):
    UNAUTHENTICATED = "unauthenticated"
    AUTHENTICATED = "authenticated"


class UrlSource(Protocol):
    async def current_url(self) -> str: ...


@dataclass(frozen=True)
class LoginPolicy:
    """How long to keep polling. ``max_attempts=None`` polls forever."""

    max_attempts: int | None = DEFAULT_LOGIN_ATTEMPTS
    interval: float = DEFAULT_POLL_INTERVAL

    @classmethod
    def bounded(cls, attempts: int = DEFAULT_LOGIN_ATTEMPTS, interval: float = DEFAULT_POLL_INTERVAL) -> LoginPolicy:
        if attempts < 1:
            raise ValueError("attempts must be >= 1")
        return cls(max_attempts=attempts, interval=interval)

    @classmethod
    def unbounded(cls, interval: float = DEFAULT_POLL_INTERVAL) -> LoginPolicy:
        return cls(max_attempts=None, interval=interval)

    @property
    def is_bounded(self) -> bool:
        return self.max_attempts is not None

    def allows(self, attempt: int) -> bool:
        """True if poll number *attempt* (1-based) may run."""
        return self.max_attempts is None or attempt <= self.max_attempts


@dataclass(frozen=True)
class UrlMatcher:
    """Decides whether a location is the signed-in landing page.

    ``mode="exact"`` requires string equality, ``mode="prefix"`` accepts any
    location under the landing address (e.g. ``/u/1/``, ``/?pli=1``).
    """

    landing_url: str = GPHOTOS_URL
    mode: str = "exact"

    def __post_init__(self) -> None:
        if self.mode not in ("exact", "prefix"):
            raise ValueError(f"unknown match mode: {self.mode!r}")

    def matches(self, url: str) -> bool:
        if self.mode == "prefix":
            return url.startswith(self.landing_url)
        return url == self.landing_url


class AuthenticationGate:
    """Polls the session's home tab until it reaches the landing page."""

    def __init__(
        self,
        session: UrlSource,
        policy: LoginPolicy | None = None,
        matcher: UrlMatcher | None = None,
    ) -> None:
        self._session = session
        self.policy = policy or LoginPolicy.bounded()
        self.matcher = matcher or UrlMatcher()
        self.state = AuthState.UNAUTHENTICATED
        self.attempts = 0

    async def _poll(self) -> AuthState:
        try:
            url = await self._session.current_url()
        except PlaywrightError as exc:
            logger.warning("Could not read page URL, retrying: %s", exc)
            return AuthState.UNAUTHENTICATED
        logger.debug("Current URL %s", url)
        if self.matcher.matches(url):
            return AuthState.AUTHENTICATED
        return AuthState.UNAUTHENTICATED

    async def wait_for_login(self) -> None:
        """Block until authenticated.

        Raises:
            NotAuthenticatedError: bounded policy exhausted.
        """
        if not self.policy.is_bounded:
            logger.info(
                "A browser window is open. Please log in to your Google account. "
                "The server will start automatically once login is complete."
            )

        while self.state is AuthState.UNAUTHENTICATED and self.policy.allows(self.attempts + 1):
            await asyncio.sleep(self.policy.interval)
            self.attempts += 1
            self.state = await self._poll()
            if self.state is AuthState.UNAUTHENTICATED and self.attempts == 1 and self.policy.is_bounded:
                logger.info(
                    "Not authenticated. Trying for %d attempts. If this fails, re-run with the --login flag.",
                    self.policy.max_attempts,
                )

        if self.state is AuthState.AUTHENTICATED:
            logger.info("Authentication successful (attempt %d)", self.attempts)
            return
        raise NotAuthenticatedError(
            "browser is not logged in - rerun with the --login flag",
            attempts=self.attempts,
        )
