"""Exception types raised by the statement-analysis pipeline.

Parsing/validation problems stay ``ValueError`` subclasses (terminal, never
retried); pipeline-level failures surfaced to callers derive from
:class:`AnalysisError`.
"""

from __future__ import annotations

from collections.abc import Sequence
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from .models import FileFailure


class AnalysisError(RuntimeError):
    """Base class for failures of the top-level analysis call."""


class SchemaError(ValueError):
    """Collaborator JSON is missing fields or carries mistyped values."""

    def __init__(self, message: str, *, field: str | None = None) -> None:
        super().__init__(message)
        self.field = field


class CallTimeoutError(TimeoutError):
    """An external call did not settle before its deadline."""

    def __init__(self, what: str, seconds: float) -> None:
        super().__init__(f"{what} timed out after {seconds:g} seconds")
        self.what = what
        self.seconds = seconds


class UnsupportedFileTypeError(ValueError):
    def __init__(self, filename: str, extension: str) -> None:
        super().__init__(f"Unsupported file type {extension!r} for {filename}")
        self.filename = filename
        self.extension = extension


class ExtractionError(AnalysisError):
    """A single statement file could not be turned into transactions."""


class AllFilesFailedError(AnalysisError):
    def __init__(self, failures: Sequence[FileFailure]) -> None:
        self.failures = tuple(failures)
        detail = "; ".join(f"{f.filename}: {f.error}" for f in self.failures)
        super().__init__(f"All {len(self.failures)} statement file(s) failed to process: {detail}")


class ChunkAnalysisError(AnalysisError):
    """One categorization chunk failed (timeout, transport, or bad output)."""

    def __init__(self, chunk_index: int, cause: BaseException) -> None:
        self.chunk_index = chunk_index
        self.cause = cause
        self.timed_out = isinstance(cause, TimeoutError)
        super().__init__(f"chunk {chunk_index} failed: {cause}")


class ChunkBatchError(AnalysisError):
    """The chunk batch produced no usable result under the active policy."""

    def __init__(self, message: str, failures: Sequence[ChunkAnalysisError]) -> None:
        super().__init__(message)
        self.failures = tuple(failures)

    @property
    def timed_out(self) -> bool:
        return any(f.timed_out for f in self.failures)


__all__ = [
    "AllFilesFailedError",
    "AnalysisError",
    "CallTimeoutError",
    "ChunkAnalysisError",
    "ChunkBatchError",
    "ExtractionError",
    "SchemaError",
    "UnsupportedFileTypeError",
]
