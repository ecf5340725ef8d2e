# Copyright (C) 2025-2026 Retio AI
# SPDX-License-Identifier: AGPL-3.0-only

"""gphotosdl exception hierarchy.

Startup errors (launch, initial navigation, authentication) are fatal and
end the process. Per-request errors derive from PhotoRequestError, carry the
photo identifier and the HTTP status the request handler should answer with.
"""

from __future__ import annotations


class GphotosdlError(Exception):
    """Base exception for all gphotosdl errors."""


class ConfigError(GphotosdlError):
    """Configuration or directory setup failure."""


class LaunchError(GphotosdlError):
    """Browser could not be launched or the driver connection failed."""


class NotAuthenticatedError(GphotosdlError):
    """Bounded authentication wait exhausted without reaching the landing page."""

    def __init__(self, message: str, *, attempts: int = 0) -> None:
        super().__init__(message)
        self.attempts = attempts


class PhotoRequestError(GphotosdlError):
    """A single photo download failed."""

    status_code: int = 500

    def __init__(self, message: str, *, photo_id: str = "") -> None:
        if photo_id:
            message = f"photo {photo_id!r}: {message}"
        super().__init__(message)
        self.photo_id = photo_id


class NavigationError(PhotoRequestError):
    """A page did not load (initial home tab or per-download tab)."""


class InvalidPhotoIDError(PhotoRequestError):
    """Photo identifier is not a usable path segment."""

    status_code = 400


class ResourceNotFoundError(PhotoRequestError):
    """No network response for the photo resource was observed."""

    status_code = 404


class UpstreamError(PhotoRequestError):
    """The photo resource answered with a non-success HTTP status."""

    def __init__(self, status: int, *, photo_id: str = "") -> None:
        super().__init__(f"HTTP Error {status}", photo_id=photo_id)
        self.status = status
        self.status_code = status


class DownloadTriggerError(PhotoRequestError):
    """The native download could not be triggered on the tab."""


class DownloadVerificationError(PhotoRequestError):
    """The triggered download did not materialize a file."""
