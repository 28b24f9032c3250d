"""Logging wiring for ``cashflow_analysis``.

Every logger the package uses lives under ``"cashflow_analysis"``. Library
code only asks for loggers through :func:`get_logger`; the process entrypoint
(the CLI) owns output and calls :func:`configure_logging` at startup.

The level is taken from the ``level`` argument, then from
``CASHFLOW_ANALYSIS_LOG_LEVEL``, then defaults to ``INFO``. Pipeline progress
lines come from :class:`cashflow_analysis.telemetry.LoggingObserver`, which
writes to ``cashflow_analysis.pipeline``.
"""

from __future__ import annotations

import logging
import os
import sys
from collections.abc import Mapping
from typing import IO

PACKAGE_LOGGER = "cashflow_analysis"
LEVEL_ENV_VAR = "CASHFLOW_ANALYSIS_LOG_LEVEL"
DEFAULT_FORMAT = "%(asctime)s %(levelname)s %(name)s %(message)s"


class _PackageHandler(logging.StreamHandler):
    """The stream handler installed by :func:`configure_logging`."""


def resolve_level(
    level: int | str | None = None,
    environ: Mapping[str, str] | None = None,
) -> int:
    """Return a numeric logging level.

    Integers pass through. Strings may be level names in any case or decimal
    numbers. An unrecognized ``level`` falls back to the environment variable,
    and an unrecognized environment value falls back to ``INFO``.
    """

    if isinstance(level, int):
        return level
    env = os.environ if environ is None else environ
    names = logging.getLevelNamesMapping()
    for candidate in (level, env.get(LEVEL_ENV_VAR)):
        token = (candidate or "").strip().upper()
        if token.isdigit():
            return int(token)
        if token in names:
            return names[token]
    return logging.INFO


def configure_logging(
    level: int | str | None = None,
    *,
    fmt: str | None = None,
    stream: IO[str] | None = None,
) -> logging.Logger:
    """Send package log records to ``stream`` (stderr by default).

    Repeated calls leave the first configuration in place. Records do not
    propagate to the root logger once configured.
    """

    pkg = logging.getLogger(PACKAGE_LOGGER)
    if any(isinstance(h, _PackageHandler) for h in pkg.handlers):
        return pkg

    for h in [h for h in pkg.handlers if isinstance(h, logging.NullHandler)]:
        pkg.removeHandler(h)

    handler = _PackageHandler(stream or sys.stderr)
    handler.setFormatter(logging.Formatter(fmt or DEFAULT_FORMAT))
    pkg.addHandler(handler)
    pkg.setLevel(resolve_level(level))
    pkg.propagate = False
    return pkg


def get_logger(name: str) -> logging.Logger:
    pkg = logging.getLogger(PACKAGE_LOGGER)
    if not pkg.handlers:
        pkg.addHandler(logging.NullHandler())
    return logging.getLogger(name)
