"""Logging setup shared by the CLI and library entry points.

Modules log through ``logging.getLogger(__name__)``; nothing is emitted until
``configure_logging`` installs a handler (the CLI does this on startup).
"""

from __future__ import annotations

import logging
import os

from rich.console import Console
from rich.logging import RichHandler

LOG_LEVEL_ENV = "TOOLSTASH_LOG_LEVEL"
DEFAULT_LEVEL = logging.WARNING
ROOT_LOGGER = "toolstash"

_configured = False


def resolve_level(value: str | int | None) -> int:
    """Translate a level name or number into a ``logging`` level."""

    if value is None or value == "":
        return DEFAULT_LEVEL
    if isinstance(value, int):
        return value
    token = value.strip().upper()
    if token.isdigit():
        return int(token)
    level = logging.getLevelName(token)
    if isinstance(level, int):
        return level
    return DEFAULT_LEVEL


def configure_logging(level: str | int | None = None, *, force: bool = False) -> None:
    """Attach a Rich handler on stderr to the package logger."""

    global _configured
    if _configured and not force:
        return
    if level is None:
        level = os.environ.get(LOG_LEVEL_ENV)
    logger = logging.getLogger(ROOT_LOGGER)
    for handler in list(logger.handlers):
        logger.removeHandler(handler)
    handler = RichHandler(
        console=Console(stderr=True),
        show_path=False,
        rich_tracebacks=False,
    )
    handler.setFormatter(logging.Formatter("%(name)s: %(message)s"))
    logger.addHandler(handler)
    logger.setLevel(resolve_level(level))
    _configured = True
