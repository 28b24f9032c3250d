"""Public interface for the ``cashflow_analysis`` package.

This module exposes the package's API functions and public models/types as the
stable import surface. There is no runtime logic here, only symbol re-exports.
"""

from .api import analyze_statements, analyze_statements_sync, load_statement_files
from .config import AnalysisSettings, ChunkFailurePolicy
from .errors import (
    AllFilesFailedError,
    AnalysisError,
    CallTimeoutError,
    ChunkAnalysisError,
    ChunkBatchError,
    ExtractionError,
    SchemaError,
    UnsupportedFileTypeError,
)
from .models import (
    CashFlowAnalysis,
    ChunkFailure,
    FileFailure,
    MonthlyBreakdownEntry,
    StatementFile,
    Transaction,
)

__all__ = [
    # API
    "analyze_statements",
    "analyze_statements_sync",
    "load_statement_files",
    # Configuration
    "AnalysisSettings",
    "ChunkFailurePolicy",
    # Errors
    "AllFilesFailedError",
    "AnalysisError",
    "CallTimeoutError",
    "ChunkAnalysisError",
    "ChunkBatchError",
    "ExtractionError",
    "SchemaError",
    "UnsupportedFileTypeError",
    # Models
    "CashFlowAnalysis",
    "ChunkFailure",
    "FileFailure",
    "MonthlyBreakdownEntry",
    "StatementFile",
    "Transaction",
]
