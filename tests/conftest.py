# Copyright (C) 2025-2026 Retio AI
# SPDX-License-Identifier: AGPL-3.0-only

"""Shared test configuration and fixtures."""

try:
    import gphotosdl  # noqa: F401
except ImportError:
    raise ImportError("gphotosdl is not installed. Run: pip install -e '.[dev]'") from None

import pytest

from tests._browser_fakes import FakeSession, photo_page


@pytest.fixture(autouse=True)
def _block_real_browser(request, monkeypatch):
    """Safety net: prevent real Playwright drivers in unit tests.

    Tests that need a driver patch ``gphotosdl.browser_session.async_playwright``
    themselves; that patch takes priority over this fixture. Opt out with::

        @pytest.mark.allow_real_browser
    """
    if "allow_real_browser" in request.keywords:
        return

    def _no_real_playwright():
        raise RuntimeError(
            "Test tried to start a real Playwright driver. Patch 'gphotosdl.browser_session.async_playwright'."
        )

    monkeypatch.setattr("gphotosdl.browser_session.async_playwright", _no_real_playwright)


@pytest.fixture
def download_dir(tmp_path):
    d = tmp_path / "downloads"
    d.mkdir()
    return d


@pytest.fixture
def fake_session(download_dir):
    """Session whose n-th tab resolves the photo and downloads ``guid-<n>``."""
    return FakeSession(download_dir, lambda n: photo_page(download_dir, guid=f"guid-{n}"))
