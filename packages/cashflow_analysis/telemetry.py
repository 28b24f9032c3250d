"""Observer interface for pipeline progress.

The orchestration layers report progress through an injected
:class:`PipelineObserver` instead of writing to a logger directly. The default
:class:`LoggingObserver` renders each event as one concise, grep-able line
(``"<event> key=value ..."``) on the ``cashflow_analysis.pipeline`` logger.
"""

from __future__ import annotations

import logging
from typing import Any, Protocol

from .logging_setup import get_logger


class PipelineObserver(Protocol):
    def emit(self, event: str, *, level: int = logging.INFO, **fields: Any) -> None: ...


class NullObserver:
    def emit(self, event: str, *, level: int = logging.INFO, **fields: Any) -> None:
        return None


class LoggingObserver:
    def __init__(self, logger: logging.Logger | None = None) -> None:
        self._logger = logger or get_logger("cashflow_analysis.pipeline")

    def emit(self, event: str, *, level: int = logging.INFO, **fields: Any) -> None:
        if not self._logger.isEnabledFor(level):
            return
        parts = [event]
        for key, value in fields.items():
            if isinstance(value, float):
                parts.append(f"{key}={value:.2f}")
            elif isinstance(value, str) and (" " in value or not value):
                parts.append(f'{key}="{value}"')
            else:
                parts.append(f"{key}={value}")
        self._logger.log(level, " ".join(parts))


class RecordingObserver:
    """Collects ``(event, fields)`` pairs; handy for tests and dry runs."""

    def __init__(self) -> None:
        self.events: list[tuple[str, dict[str, Any]]] = []

    def emit(self, event: str, *, level: int = logging.INFO, **fields: Any) -> None:
        self.events.append((event, dict(fields)))

    def names(self) -> list[str]:
        return [name for name, _ in self.events]
