# Copyright (C) 2025-2026 Retio AI
# SPDX-License-Identifier: AGPL-3.0-only

"""Command-line flags, environment overrides and the startup config value.

``parse_args`` reads flags and ``GPHOTOSDL_*`` environment variables.
``build_config`` creates the directories the browser needs and returns a
frozen ``ServiceConfig``, which is passed explicitly to every component.
"""

from __future__ import annotations

import argparse
import logging
import os
import shutil
import tempfile
from dataclasses import dataclass
from pathlib import Path

from .auth_gate import DEFAULT_LOGIN_ATTEMPTS, LoginPolicy, UrlMatcher
from .browser_session import GPHOTOS_URL, LOGIN_URL, BrowserConfig
from .downloader import PHOTO_URL_FORMS, DownloadSettings
from .errors import ConfigError
from .triggers import DEFAULT_DOWNLOAD_SHORTCUT

logger = logging.getLogger(__name__)

PROGRAM = "gphotosdl"
DEFAULT_HOST = "localhost"
DEFAULT_PORT = 8282
DEFAULT_SHUTDOWN_TIMEOUT = 5

_TRUE_VALUES = ("1", "true", "yes")


def program_version() -> str:
    try:
        from importlib.metadata import version as _pkg_version

        return _pkg_version(PROGRAM)
    except Exception:
        return "DEV"


def default_config_root() -> Path:
    """``$XDG_CONFIG_HOME/gphotosdl``, falling back to ``~/.config/gphotosdl``."""
    base = os.environ.get("XDG_CONFIG_HOME", "").strip()
    root = Path(base) if base else Path.home() / ".config"
    return root / PROGRAM


@dataclass(frozen=True)
class ServiceConfig:
    """Everything the service needs at startup, resolved once."""

    config_root: Path
    download_dir: Path
    host: str = DEFAULT_HOST
    port: int = DEFAULT_PORT
    debug: bool = False
    login: bool = False
    show: bool = False
    json_logs: bool = False
    browser_path: str | None = None
    auth_match: str = "exact"
    photo_url_form: str = "redirect"
    login_attempts: int = DEFAULT_LOGIN_ATTEMPTS
    download_shortcut: str = DEFAULT_DOWNLOAD_SHORTCUT
    shutdown_timeout: int = DEFAULT_SHUTDOWN_TIMEOUT

    @property
    def profile_dir(self) -> Path:
        return self.config_root / "browser"

    @property
    def headless(self) -> bool:
        # --login implies a visible browser for the user to interact with
        return not self.show and not self.login

    @property
    def start_url(self) -> str:
        return LOGIN_URL if self.login else GPHOTOS_URL

    def browser_config(self) -> BrowserConfig:
        return BrowserConfig(
            profile_dir=self.profile_dir,
            download_dir=self.download_dir,
            start_url=self.start_url,
            headless=self.headless,
            executable_path=self.browser_path,
        )

    def login_policy(self) -> LoginPolicy:
        if self.login:
            return LoginPolicy.unbounded()
        return LoginPolicy.bounded(self.login_attempts)

    def url_matcher(self) -> UrlMatcher:
        return UrlMatcher(landing_url=GPHOTOS_URL, mode=self.auth_match)

    def download_settings(self) -> DownloadSettings:
        return DownloadSettings(photo_url_form=self.photo_url_form)


def _env_int(name: str, current: int) -> int:
    """Integer override from the environment; malformed values are ignored with a warning."""
    raw = os.environ.get(name, "").strip()
    if not raw:
        return current
    try:
        return int(raw)
    except ValueError:
        logger.warning("Ignoring %s=%r: not an integer", name, raw)
        return current


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    """Parse CLI args, then apply ``GPHOTOSDL_*`` environment overrides."""
    parser = argparse.ArgumentParser(
        prog=PROGRAM,
        description="Download full resolution Google Photos over a local HTTP endpoint (for rclone).",
        epilog=f"{PROGRAM} version {program_version()}",
    )
    parser.add_argument("--debug", action="store_true", default=False, help="set to see debug messages")
    parser.add_argument(
        "--login",
        action="store_true",
        default=False,
        help="set to launch a visible browser for login, then start the server",
    )
    parser.add_argument("--show", action="store_true", default=False, help="set to show the browser (not headless)")
    parser.add_argument("--host", default=DEFAULT_HOST, help=f"web server host (default: {DEFAULT_HOST})")
    parser.add_argument("--port", type=int, default=DEFAULT_PORT, help=f"web server port (default: {DEFAULT_PORT})")
    parser.add_argument("--json", action="store_true", default=False, help="log in JSON format")
    parser.add_argument("--browser", default=None, help="path to the Chromium/Chrome binary (default: bundled)")
    parser.add_argument("--config-dir", default=None, help=f"config directory (default: ~/.config/{PROGRAM})")
    parser.add_argument(
        "--auth-match",
        choices=["exact", "prefix"],
        default="exact",
        help="how the landing page URL is compared when checking login (default: exact)",
    )
    parser.add_argument(
        "--photo-url",
        choices=sorted(PHOTO_URL_FORMS),
        default="redirect",
        help="photo URL form to navigate to (default: redirect)",
    )
    parser.add_argument(
        "--login-timeout",
        type=int,
        default=DEFAULT_LOGIN_ATTEMPTS,
        help=f"login checks (one per second) before giving up without --login (default: {DEFAULT_LOGIN_ATTEMPTS})",
    )
    parser.add_argument(
        "--shutdown-timeout",
        type=int,
        default=DEFAULT_SHUTDOWN_TIMEOUT,
        help=f"seconds requests may run on shutdown before being abandoned (default: {DEFAULT_SHUTDOWN_TIMEOUT})",
    )
    parser.add_argument("--version", action="version", version=f"%(prog)s {program_version()}")
    args = parser.parse_args(argv)

    for flag in ("debug", "login", "show", "json"):
        env = os.environ.get(f"GPHOTOSDL_{flag.upper()}", "").strip().lower()
        setattr(args, flag, getattr(args, flag) or env in _TRUE_VALUES)

    env_host = os.environ.get("GPHOTOSDL_HOST", "").strip()
    if env_host:
        args.host = env_host

    args.port = _env_int("GPHOTOSDL_PORT", args.port)

    env_browser = os.environ.get("GPHOTOSDL_BROWSER", "").strip()
    if env_browser and not args.browser:
        args.browser = env_browser

    env_config = os.environ.get("GPHOTOSDL_CONFIG_DIR", "").strip()
    if env_config and not args.config_dir:
        args.config_dir = env_config

    env_match = os.environ.get("GPHOTOSDL_AUTH_MATCH", "").strip().lower()
    if env_match in ("exact", "prefix"):
        args.auth_match = env_match

    env_form = os.environ.get("GPHOTOSDL_PHOTO_URL", "").strip().lower()
    if env_form in PHOTO_URL_FORMS:
        args.photo_url = env_form

    args.login_timeout = _env_int("GPHOTOSDL_LOGIN_TIMEOUT", args.login_timeout)
    args.shutdown_timeout = _env_int("GPHOTOSDL_SHUTDOWN_TIMEOUT", args.shutdown_timeout)

    if args.login_timeout < 1:
        parser.error("--login-timeout must be at least 1")
    if args.shutdown_timeout < 0:
        parser.error("--shutdown-timeout must not be negative")

    return args


def build_config(args: argparse.Namespace) -> ServiceConfig:
    """Create the profile and download directories and return the config.

    Raises:
        ConfigError: a directory could not be created.
    """
    config_root = Path(args.config_dir).expanduser() if args.config_dir else default_config_root()
    profile_dir = config_root / "browser"
    try:
        profile_dir.mkdir(mode=0o700, parents=True, exist_ok=True)
    except OSError as exc:
        raise ConfigError(f"config directory creation: {exc}") from exc
    logger.debug("Configured config config_root=%s browser_config=%s", config_root, profile_dir)

    try:
        download_dir = Path(tempfile.mkdtemp(prefix=PROGRAM))
    except OSError as exc:
        raise ConfigError(f"download directory creation: {exc}") from exc
    logger.debug("Created download directory %s", download_dir)

    return ServiceConfig(
        config_root=config_root,
        download_dir=download_dir,
        host=args.host,
        port=args.port,
        debug=args.debug,
        login=args.login,
        show=args.show,
        json_logs=args.json,
        browser_path=args.browser,
        auth_match=args.auth_match,
        photo_url_form=args.photo_url,
        login_attempts=args.login_timeout,
        shutdown_timeout=args.shutdown_timeout,
    )


def remove_download_directory(download_dir: Path | None) -> None:
    """Remove the download directory and its contents."""
    if download_dir is None:
        return
    try:
        shutil.rmtree(download_dir)
        logger.debug("Removed download directory")
    except OSError:
        logger.error("Failed to remove download directory %s", download_dir, exc_info=True)
