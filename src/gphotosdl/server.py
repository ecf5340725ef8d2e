# Copyright (C) 2025-2026 Retio AI
# SPDX-License-Identifier: AGPL-3.0-only

"""gphotosdl HTTP server.

Routes:
- ``GET /``: informational page
- ``GET /id/{photo_id}``: download the photo through the browser and stream it
- ``GET /health``: liveness check

Startup order: config, logging, browser session, authentication gate, and
only then the web server. Startup failures exit with status 2. All logging
goes to stderr.
"""

from __future__ import annotations

import asyncio
import logging
import mimetypes
import os
import sys
from pathlib import Path

import structlog
from starlette.applications import Starlette
from starlette.background import BackgroundTask
from starlette.requests import Request
from starlette.responses import FileResponse, HTMLResponse, JSONResponse, Response
from starlette.routing import Route

from .auth_gate import AuthenticationGate
from .browser_session import BrowserSession
from .config import PROGRAM, ServiceConfig, build_config, parse_args, program_version, remove_download_directory
from .downloader import DownloadOrchestrator
from .errors import GphotosdlError, PhotoRequestError
from .problem_details import from_exception
from .triggers import KeyboardShortcutTrigger

logger = logging.getLogger("gphotosdl.server")

EXIT_STARTUP_FAILURE = 2

ROOT_PAGE = f"""
<!DOCTYPE html>
<html lang="en">

<head>
  <meta charset="utf-8">
  <meta name="viewport" content="width=device-width, initial-scale=1">
  <title>{PROGRAM}</title>
</head>

<body>
  <h1>{PROGRAM}</h1>
  <p>{PROGRAM} is used to download full resolution Google Photos in combination with rclone.</p>
</body>

</html>"""


def _remove_photo(path: Path, photo_id: str) -> None:
    """Delete a served photo. Runs after the response body has been sent."""
    try:
        os.remove(path)
        logger.debug("Removed downloaded photo id=%s path=%s", photo_id, path)
    except OSError:
        logger.error("Failed to remove downloaded photo id=%s path=%s", photo_id, path, exc_info=True)


async def _root(request: Request) -> Response:
    logger.info("got / request")
    return HTMLResponse(ROOT_PAGE)


async def _health(request: Request) -> Response:
    orchestrator: DownloadOrchestrator = request.app.state.orchestrator
    return JSONResponse({"status": "ok", "downloading": orchestrator.busy})


async def _photo(request: Request) -> Response:
    photo_id = request.path_params["photo_id"]
    orchestrator: DownloadOrchestrator = request.app.state.orchestrator
    with structlog.contextvars.bound_contextvars(photo_id=photo_id):
        logger.info("got photo request id=%s", photo_id)
        try:
            photo = await orchestrator.download(photo_id)
        except PhotoRequestError as exc:
            logger.error("Download image failed id=%s: %s", photo_id, exc)
            return from_exception(exc, instance=request.url.path).to_response()
        except Exception as exc:
            logger.exception("Download image failed id=%s", photo_id)
            return from_exception(exc, instance=request.url.path).to_response()
        logger.info("Downloaded photo id=%s path=%s size=%d", photo_id, photo.path, photo.size)

    return FileResponse(
        photo.path,
        filename=photo.filename or None,
        media_type=mimetypes.guess_type(photo.filename)[0] or "application/octet-stream",
        content_disposition_type="inline",
        background=BackgroundTask(_remove_photo, photo.path, photo_id),
    )


def create_app(orchestrator: DownloadOrchestrator) -> Starlette:
    """Build the ASGI app around an already-authenticated orchestrator."""
    app = Starlette(
        routes=[
            Route("/", _root, methods=["GET"]),
            Route("/health", _health, methods=["GET"]),
            Route("/id/{photo_id}", _photo, methods=["GET"]),
        ],
    )
    app.state.orchestrator = orchestrator
    return app


async def _run(config: ServiceConfig) -> None:
    """Start the browser, wait for login, then serve until a shutdown signal."""
    import uvicorn

    async with BrowserSession(config.browser_config()) as session:
        gate = AuthenticationGate(session, config.login_policy(), config.url_matcher())
        await gate.wait_for_login()

        orchestrator = DownloadOrchestrator(
            session,
            config.download_settings(),
            KeyboardShortcutTrigger(config.download_shortcut),
        )
        app = create_app(orchestrator)

        logger.info("Starting web server address=%s:%d", config.host, config.port)
        server = uvicorn.Server(
            uvicorn.Config(
                app,
                host=config.host,
                port=config.port,
                log_config=None,
                log_level="debug" if config.debug else "info",
                timeout_graceful_shutdown=config.shutdown_timeout,
            )
        )
        logger.info("Server is running. Press CTRL-C (or kill) to quit.")
        await server.serve()
        logger.info("Signal received - shutting down")


def main(argv: list[str] | None = None) -> None:
    """Entry point for ``gphotosdl``."""
    from .logging_config import configure as configure_logging

    args = parse_args(argv if argv is not None else sys.argv[1:])

    # Configure structlog BEFORE any log output
    configure_logging(json_output=args.json, level="DEBUG" if args.debug else "INFO")
    logger.debug("%s version %s", PROGRAM, program_version())

    try:
        config = build_config(args)
    except GphotosdlError as exc:
        logger.error("Configuration failed: %s", exc)
        sys.exit(EXIT_STARTUP_FAILURE)

    try:
        asyncio.run(_run(config))
    except GphotosdlError as exc:
        logger.error("Failed to start application: %s", exc)
        sys.exit(EXIT_STARTUP_FAILURE)
    except KeyboardInterrupt:
        logger.info("Interrupted - shutting down")
    finally:
        remove_download_directory(config.download_dir)


if __name__ == "__main__":
    main()
