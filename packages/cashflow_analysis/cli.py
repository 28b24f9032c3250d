"""CLI for the ``cashflow_analysis`` package.

This module exposes a callable command handler
(:func:`cmd_analyze_statements`) and a Typer-based console interface.
Environment variables (notably ``OPENAI_API_KEY`` and the ``CASHFLOW_*``
tunables) are loaded from a local ``.env`` using ``python-dotenv`` before
delegating to command logic. Business logic lives in
``cashflow_analysis.api`` and related modules.
"""

from __future__ import annotations

import json
from dataclasses import replace
from pathlib import Path
from typing import Annotated

import typer
from dotenv import load_dotenv
from typer.models import ArgumentInfo

from .config import ChunkFailurePolicy
from .logging_setup import configure_logging


def cmd_analyze_statements(
    paths: list[Path],
    housing_payment: float,
    *,
    failure_policy: ChunkFailurePolicy | None = None,
    output: Path | None = None,
) -> int:
    """Analyze statement files and emit the result as JSON.

    Writes the camelCase JSON document to ``output`` when given, otherwise to
    stdout. Errors are written to stderr and the function returns a non-zero
    exit status. On success, returns ``0``.
    """

    import os
    import sys

    # Local imports to keep CLI startup fast
    from .api import analyze_statements_sync, load_statement_files
    from .config import AnalysisSettings
    from .errors import AnalysisError

    # Validate environment early so failures are clear
    if not os.getenv("OPENAI_API_KEY"):
        print("Error: OPENAI_API_KEY is not set in the environment.", file=sys.stderr)
        return 1

    try:
        settings = AnalysisSettings.from_env()
    except ValueError as e:
        print(f"Error: invalid configuration: {e}", file=sys.stderr)
        return 1
    if failure_policy is not None:
        settings = replace(settings, chunk_failure_policy=failure_policy)

    try:
        files = load_statement_files(paths)
    except FileNotFoundError as e:
        print(f"Error: File not found: {e.filename}", file=sys.stderr)
        return 1
    except PermissionError as e:
        print(f"Error: Permission denied: {e.filename}", file=sys.stderr)
        return 1

    try:
        analysis = analyze_statements_sync(files, housing_payment, settings=settings)
    except (AnalysisError, ValueError) as e:
        print(f"Error: analyze_statements failed: {e}", file=sys.stderr)
        return 1

    document = json.dumps(analysis.to_dict(), indent=2)
    if output is None:
        print(document)
    else:
        output.write_text(document + "\n", encoding="utf-8")
    return 0


# ---- Typer-based console interface -------------------------------------------


app = typer.Typer(
    no_args_is_help=True,
    add_completion=False,
    help=(
        "Analyze bank statements (PDF, CSV, XLSX, images) into a monthly cash-flow "
        "summary using OpenAI. Loads OPENAI_API_KEY from a local .env before running."
    ),
)


# Module-level argument object to satisfy ruff B008 (no calls in parameter
# defaults).
STATEMENT_FILES_ARGUMENT: ArgumentInfo = typer.Argument(
    ...,
    help="Statement files to analyze, in upload order",
    dir_okay=False,
    file_okay=True,
    exists=False,  # the handler reports missing files
)


@app.command("analyze-statements")
def analyze_statements_cmd(
    files: Annotated[list[Path], STATEMENT_FILES_ARGUMENT],
    *,
    housing_payment: float = typer.Option(
        ..., "--housing-payment", help="Reference monthly housing payment (rent or mortgage)."
    ),
    failure_policy: ChunkFailurePolicy | None = typer.Option(
        None,
        "--failure-policy",
        help="How failed chunks are handled (falls back to CASHFLOW_CHUNK_FAILURE_POLICY).",
    ),
    output: Path | None = typer.Option(
        None, "--output", "-o", help="Write the JSON result here instead of stdout."
    ),
) -> None:
    """Analyze statements and print the cash-flow summary as JSON."""

    code = cmd_analyze_statements(
        list(files), housing_payment, failure_policy=failure_policy, output=output
    )
    if code:
        raise typer.Exit(code)


@app.callback()
def _root() -> None:
    """Root command.

    Loads ``.env`` from the current working directory (without overriding any
    already-set environment variables) and configures package logging.
    """

    load_dotenv(dotenv_path=Path.cwd() / ".env", override=False)
    configure_logging()


if __name__ == "__main__":  # pragma: no cover
    app()
