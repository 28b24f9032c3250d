"""Pytest configuration for test isolation.

Makes the workspace ``packages/`` directory (and ``tests/`` for the shared
helpers) importable, and strips ``CASHFLOW_*`` overrides from the environment
so settings resolved via ``AnalysisSettings.from_env()`` always start from the
documented defaults. Each test also starts with an unconfigured package logger.
"""

from __future__ import annotations

import logging
import os
import sys
from pathlib import Path

import pytest

_ROOT = Path(__file__).resolve().parents[1]
_PKG_DIR = _ROOT / "packages"
_TESTS_DIR = _ROOT / "tests"
# Ensure `packages/` precedes the repo root on sys.path so local packages resolve first.
sys.path[:0] = [p for p in [str(_PKG_DIR), str(_TESTS_DIR)] if p not in sys.path]


@pytest.fixture(autouse=True)
def _isolate_env(monkeypatch: pytest.MonkeyPatch) -> None:
    """Remove pipeline tunables inherited from the developer's shell or ``.env``."""

    for name in list(os.environ):
        if name.startswith("CASHFLOW_"):
            monkeypatch.delenv(name, raising=False)


@pytest.fixture(autouse=True)
def package_logger():
    """Give each test a bare ``cashflow_analysis`` logger and restore it afterwards."""

    pkg = logging.getLogger("cashflow_analysis")
    saved = (list(pkg.handlers), pkg.level, pkg.propagate)
    pkg.handlers.clear()
    yield pkg
    pkg.handlers[:] = saved[0]
    pkg.setLevel(saved[1])
    pkg.propagate = saved[2]
