"""Runtime logging helpers."""

from __future__ import annotations

import sys
from logging import Handler
from typing import Literal

import loguru
from loguru import logger
from rich.console import Console
from rich.logging import RichHandler

from reprise.config import get_settings

LogProfile = Literal["default", "cli"]

_PROFILE_FORMATS: dict[LogProfile, str] = {
    "cli": "{level} | {extra[run]} | {message}",
    "default": "{time:YYYY-MM-DD HH:mm:ss.SSS} | {level:<6} | {name}:{function}:{line} | {extra[run]} | {message}",
}
_DEFAULT_LEVELS: dict[LogProfile, str] = {"cli": "WARNING", "default": "INFO"}
_CONFIGURED_PROFILE: LogProfile | None = None


def _build_cli_handler() -> Handler:
    return RichHandler(
        console=Console(stderr=True),
        show_level=True,
        show_time=False,
        show_path=False,
        markup=False,
        rich_tracebacks=False,
    )


def configure_logging(*, profile: LogProfile = "default", level: str | None = None) -> None:
    """Configure process-level logging once.

    The level is ``level`` when given, else ``Settings.log_level`` (``REPRISE_LOG_LEVEL``),
    else the profile default.
    """
    from reprise.runner import current_run

    def inject_context(record: loguru.Record) -> None:
        record["extra"]["run"] = current_run()

    global _CONFIGURED_PROFILE
    if profile == _CONFIGURED_PROFILE:
        return

    resolved_level = (level or get_settings().log_level or _DEFAULT_LEVELS[profile]).upper()
    logger.remove()
    if profile == "cli":
        logger.add(
            _build_cli_handler(),
            level=resolved_level,
            format=_PROFILE_FORMATS[profile],
            backtrace=False,
            diagnose=False,
        )
    else:
        logger.add(
            sys.stderr,
            level=resolved_level,
            format=_PROFILE_FORMATS[profile],
            backtrace=False,
            diagnose=False,
        )
    logger.configure(patcher=inject_context)
    _CONFIGURED_PROFILE = profile
