"""Logging helpers and the reporter sink used by the screenshot pipeline."""

from __future__ import annotations

import logging
from typing import Protocol

LOGGER = logging.getLogger("screenshots")

_LOG_FORMAT = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"


class Reporter(Protocol):
    """Logging collaborator supplied by the caller.

    Any :class:`logging.Logger` or :class:`logging.LoggerAdapter` satisfies it.
    """

    def debug(self, msg: str, *args: object) -> None:
        ...

    def info(self, msg: str, *args: object) -> None:
        ...

    def warning(self, msg: str, *args: object) -> None:
        ...

    def error(self, msg: str, *args: object) -> None:
        ...


def resolve_reporter(reporter: Reporter | None) -> Reporter:
    return reporter if reporter is not None else LOGGER


def configure_logging(level: int = logging.INFO) -> None:
    logging.basicConfig(level=level, format=_LOG_FORMAT)
    # httpx logs every request at INFO.
    logging.getLogger("httpx").setLevel(logging.WARNING)
