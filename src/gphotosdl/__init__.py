# Copyright (C) 2025-2026 Retio AI
# SPDX-License-Identifier: AGPL-3.0-only

"""gphotosdl: download full resolution Google Photos through a browser.

Drives one signed-in Chromium (Playwright) and republishes original photo
files at ``GET /id/{photo_id}`` on a local HTTP server, for rclone.
"""

from __future__ import annotations

from .downloader import DownloadedPhoto, DownloadOrchestrator
from .errors import (
    DownloadTriggerError,
    DownloadVerificationError,
    GphotosdlError,
    LaunchError,
    NavigationError,
    NotAuthenticatedError,
    PhotoRequestError,
    ResourceNotFoundError,
    UpstreamError,
)

__all__ = [
    "DownloadOrchestrator",
    "DownloadTriggerError",
    "DownloadVerificationError",
    "DownloadedPhoto",
    "GphotosdlError",
    "LaunchError",
    "NavigationError",
    "NotAuthenticatedError",
    "PhotoRequestError",
    "ResourceNotFoundError",
    "UpstreamError",
]
