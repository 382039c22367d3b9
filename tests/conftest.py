from __future__ import annotations

"""
Global Pytest Configuration and Fixtures.

This module sets up the testing environment, including:
1. Path manipulation to ensure the 'src' directory is importable.
2. Shared fixtures: configuration dictionaries, fake operation owners and
   on-disk module trees used by the resolver and session tests.
"""

import io
import os
import sys
import types
from pathlib import Path
from typing import Any, Dict, List

import pytest

# -----------------------------------------------------------------------------
# Path Configuration
# -----------------------------------------------------------------------------
_SRC_PATH = os.path.abspath(os.path.join(os.path.dirname(__file__), "..", "src"))
if _SRC_PATH not in sys.path:
    sys.path.insert(0, _SRC_PATH)

from rich.console import Console  # noqa: E402

from opwatch.core.export.exporter import Exporter  # noqa: E402
from opwatch.core.interception.registry import WatchedOperation  # noqa: E402

FIXED_TIME = "2024-05-01T12:00:00.000Z"


# -----------------------------------------------------------------------------
# Shared Fixtures
# -----------------------------------------------------------------------------
@pytest.fixture
def mock_config_dict() -> Dict[str, Any]:
    """
    Return a valid, complete configuration dictionary for testing.

    Reflects the structure defined in 'opwatch.domain.config'.

    Returns:
        Dict[str, Any]: A sample configuration dictionary.
    """
    return {
        # Sinks
        "output": "report.log",
        "require_tree_output": "tree.json",

        # Formatting
        "structured": True,
        "frequency": True,
        "summary": True,

        # Scope
        "modules": ["fs", "import"],
        "dependencies": False,
    }


@pytest.fixture
def fake_storage() -> types.SimpleNamespace:
    """
    A stand-in for a platform module with two storage primitives.

    ``read`` returns a value derived from its argument; ``fail`` always raises.
    ``calls`` records every invocation reaching the real implementation.
    """
    calls: List[str] = []

    def read(path: str, mode: str = "r") -> str:
        calls.append(path)
        return f"content:{path}:{mode}"

    def fail(path: str) -> None:
        calls.append(path)
        raise FileNotFoundError(path)

    return types.SimpleNamespace(read=read, fail=fail, calls=calls)


@pytest.fixture
def storage_operations(fake_storage: types.SimpleNamespace) -> List[WatchedOperation]:
    """Instrumentation table over ``fake_storage`` under the 'fs' subsystem."""
    def first_arg(args: Any, kwargs: Any) -> str:
        return str(args[0] if args else kwargs.get("path"))

    return [
        WatchedOperation(subsystem="fs", name="read", owner=fake_storage, attribute="read", describe=first_arg),
        WatchedOperation(subsystem="fs", name="fail", owner=fake_storage, attribute="fail", describe=first_arg),
    ]


@pytest.fixture
def console_buffer() -> io.StringIO:
    return io.StringIO()


@pytest.fixture
def exporter(tmp_path: Path, console_buffer: io.StringIO) -> Exporter:
    """Exporter bound to ``tmp_path`` with a captured console and a fixed clock."""
    console = Console(file=console_buffer, width=200, color_system=None)
    return Exporter(base_dir=str(tmp_path), console=console, clock=lambda: FIXED_TIME)


@pytest.fixture
def module_tree(tmp_path: Path) -> Path:
    """
    Create a small importable project.

    Structure:
    /project
      main.py
      samplehelper.py
      /sampleapp
        __init__.py
        core.py
        /sub
          __init__.py
          leaf.py
      /samplevendor
        __init__.py
    """
    root = tmp_path / "project"
    (root / "sampleapp" / "sub").mkdir(parents=True)
    (root / "samplevendor").mkdir()

    (root / "main.py").write_text("import samplehelper\n", encoding="utf-8")
    (root / "samplehelper.py").write_text("from sampleapp import core\n", encoding="utf-8")
    (root / "sampleapp" / "__init__.py").write_text("", encoding="utf-8")
    (root / "sampleapp" / "core.py").write_text("from .sub import leaf\n", encoding="utf-8")
    (root / "sampleapp" / "sub" / "__init__.py").write_text("", encoding="utf-8")
    (root / "sampleapp" / "sub" / "leaf.py").write_text("VALUE = 1\n", encoding="utf-8")
    (root / "samplevendor" / "__init__.py").write_text("", encoding="utf-8")
    return root


@pytest.fixture
def fixed_time() -> str:
    """Timestamp produced by the ``exporter`` fixture's clock."""
    return FIXED_TIME
