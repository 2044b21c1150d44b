"""Pytest configuration shared by unit and integration tests."""

from __future__ import annotations

import os
import sys
from pathlib import Path

import pytest


def pytest_sessionstart() -> None:
    """Make the src layout importable without an installed package."""
    src_path = Path(__file__).resolve().parent.parent / "src"
    if str(src_path) not in sys.path:
        sys.path.insert(0, str(src_path))


@pytest.fixture(autouse=True)
def isolated_repodb_env(monkeypatch: pytest.MonkeyPatch) -> None:
    """Drop REPODB_* variables so defaults apply unless a test sets them."""
    for variable in list(os.environ):
        if variable.startswith("REPODB_"):
            monkeypatch.delenv(variable)
