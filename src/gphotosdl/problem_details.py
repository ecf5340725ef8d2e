# Copyright (C) 2025-2026 Retio AI
# SPDX-License-Identifier: AGPL-3.0-only

"""RFC 9457 Problem Details for the photo endpoint.

Maps gphotosdl exceptions to a status code and a small
``application/problem+json`` body. The status is what matters to rclone;
the body is for humans reading logs or curl output.

Type URI namespace: ``https://github.com/rclone/gphotosdl/errors/{slug}``
"""

from __future__ import annotations

import json
import re
from dataclasses import dataclass, field
from enum import StrEnum
from typing import Any

_ERROR_BASE = "https://github.com/rclone/gphotosdl/errors"

MAX_DETAIL_LENGTH = 200


class ProblemType(StrEnum):
    """Error taxonomy for photo requests."""

    INVALID_PHOTO_ID = "invalid-photo-id"
    PHOTO_NOT_FOUND = "photo-not-found"
    UPSTREAM_ERROR = "upstream-error"
    NAVIGATION_FAILED = "navigation-failed"
    DOWNLOAD_FAILED = "download-failed"
    INTERNAL_ERROR = "internal-error"

    @property
    def uri(self) -> str:
        """Full type URI for RFC 9457 ``type`` field."""
        return f"{_ERROR_BASE}/{self.value}"


# Default (status, title) per type. UPSTREAM_ERROR takes its status from the exception.
_TYPE_METADATA: dict[ProblemType, tuple[int, str]] = {
    ProblemType.INVALID_PHOTO_ID: (400, "Invalid Photo ID"),
    ProblemType.PHOTO_NOT_FOUND: (404, "Photo Not Found"),
    ProblemType.UPSTREAM_ERROR: (502, "Upstream Error"),
    ProblemType.NAVIGATION_FAILED: (500, "Navigation Failed"),
    ProblemType.DOWNLOAD_FAILED: (500, "Download Failed"),
    ProblemType.INTERNAL_ERROR: (500, "Internal Server Error"),
}

# Local paths leak the download directory and the user's home
_PATH_PATTERN = re.compile(
    r"(/(?:Users|home|tmp|var|private|root|opt|srv|mnt|media)/[\w./-]+"
    r"|[A-Z]:\\[\w.\\-]+)"
)


def sanitize_detail(text: str) -> str:
    """Scrub filesystem paths from *text* and cap its length."""
    text = _PATH_PATTERN.sub("<path>", text)
    if len(text) > MAX_DETAIL_LENGTH:
        text = text[:MAX_DETAIL_LENGTH] + "..."
    return text


_STANDARD_FIELDS = frozenset({"type", "title", "status", "detail", "instance"})


@dataclass(frozen=True, slots=True)
class ProblemDetail:
    """RFC 9457 Problem Detail object."""

    type: str = "about:blank"
    title: str = ""
    status: int = 500
    detail: str = ""
    instance: str = ""
    extensions: dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        """JSON dict. Empty optional fields omitted, extensions merged at top level."""
        d: dict[str, Any] = {"type": self.type, "status": self.status}
        if self.title:
            d["title"] = self.title
        if self.detail:
            d["detail"] = self.detail
        if self.instance:
            d["instance"] = self.instance
        for k, v in self.extensions.items():
            if k not in _STANDARD_FIELDS:
                d[k] = v
        return d

    def to_json(self) -> str:
        return json.dumps(self.to_dict(), ensure_ascii=False)

    def to_response(self):
        """Starlette ``JSONResponse`` with ``application/problem+json``."""
        from starlette.responses import JSONResponse

        return JSONResponse(
            content=self.to_dict(),
            status_code=self.status,
            media_type="application/problem+json",
            headers={"Cache-Control": "no-store"},
        )


def _exception_type_map() -> dict[type, ProblemType]:
    """Lazy-build mapping from exception classes to ProblemType."""
    from .errors import (
        DownloadTriggerError,
        DownloadVerificationError,
        InvalidPhotoIDError,
        NavigationError,
        ResourceNotFoundError,
        UpstreamError,
    )

    return {
        InvalidPhotoIDError: ProblemType.INVALID_PHOTO_ID,
        ResourceNotFoundError: ProblemType.PHOTO_NOT_FOUND,
        UpstreamError: ProblemType.UPSTREAM_ERROR,
        NavigationError: ProblemType.NAVIGATION_FAILED,
        DownloadTriggerError: ProblemType.DOWNLOAD_FAILED,
        DownloadVerificationError: ProblemType.DOWNLOAD_FAILED,
    }


def from_exception(exc: Exception, *, instance: str = "") -> ProblemDetail:
    """Build a ProblemDetail from an exception.

    Exceptions that carry an HTTP status (``status_code``) keep it; anything
    unknown becomes a generic 500 without the exception text.
    """
    from .errors import PhotoRequestError

    ext: dict[str, Any] = {}
    photo_id = getattr(exc, "photo_id", "")
    if photo_id:
        ext["photo_id"] = photo_id

    problem_type = _exception_type_map().get(type(exc))
    if problem_type is None and isinstance(exc, PhotoRequestError):
        problem_type = ProblemType.DOWNLOAD_FAILED
    if problem_type is None:
        status, title = _TYPE_METADATA[ProblemType.INTERNAL_ERROR]
        return ProblemDetail(
            type=ProblemType.INTERNAL_ERROR.uri,
            title=title,
            status=status,
            detail="Unexpected error while downloading the photo",
            instance=instance,
            extensions=ext,
        )

    status, title = _TYPE_METADATA[problem_type]
    exc_status = getattr(exc, "status_code", status)
    # A non-error upstream status (204, 3xx) is replaced so the caller never reads it as success
    if 400 <= exc_status <= 599:
        status = exc_status
    return ProblemDetail(
        type=problem_type.uri,
        title=title,
        status=status,
        detail=sanitize_detail(str(exc)),
        instance=instance,
        extensions=ext,
    )
