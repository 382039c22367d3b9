from __future__ import annotations

"""
Unit tests for the Instrumentation Session (composition root).

Sessions are built over fake instrumentation tables so the test process's
real platform operations are never rebound.
"""

import json
import os
import types
from pathlib import Path
from unittest.mock import patch

import pytest

from opwatch.core.interception.catalog import describe_import
from opwatch.core.interception.registry import WatchedOperation
from opwatch.core.session import InstrumentationSession, instrument
from opwatch.domain.config import InstrumentConfig
from opwatch.domain.errors import ResolutionError, SessionError


@pytest.fixture
def entry(module_tree: Path) -> str:
    return str(module_tree / "main.py")


@pytest.fixture
def make_session(storage_operations, exporter, entry, tmp_path: Path):
    def factory(operations=None, **config) -> InstrumentationSession:
        return InstrumentationSession(
            InstrumentConfig(**config),
            entry_point=entry,
            operations=storage_operations if operations is None else operations,
            cwd=str(tmp_path),
            exporter=exporter,
        )
    return factory


@pytest.fixture
def fake_importer():
    """Owner of an ``__import__``-compatible callable that imports nothing."""
    def load(name, globals=None, locals=None, fromlist=(), level=0):
        return None
    return types.SimpleNamespace(load=load)


@pytest.fixture
def import_operation(fake_importer) -> WatchedOperation:
    return WatchedOperation(
        subsystem="import",
        name=None,
        owner=fake_importer,
        attribute="load",
        describe=describe_import,
        opaque=False,
    )


# -----------------------------------------------------------------------------
# Lifecycle
# -----------------------------------------------------------------------------

def test_shutdown_before_install_raises(make_session) -> None:
    with pytest.raises(SessionError):
        make_session().shutdown()


def test_duplicate_reads_are_summarized(make_session, fake_storage, console_buffer) -> None:
    session = make_session(modules=frozenset({"fs"}))
    session.install()

    assert fake_storage.read("./a.txt") == "content:./a.txt:r"
    fake_storage.read("./a.txt")
    summary = session.shutdown()

    assert summary.get("fs", "read") == ("./a.txt",)
    assert "./a.txt" in console_buffer.getvalue()


def test_frequency_mode_counts_duplicates(make_session, fake_storage) -> None:
    session = make_session(frequency=True)
    session.install()

    fake_storage.read("./a.txt")
    fake_storage.read("./a.txt")

    assert dict(session.shutdown().get("fs", "read")) == {"./a.txt": 2}


def test_shutdown_runs_once(make_session, fake_storage, console_buffer) -> None:
    session = make_session()
    session.install()
    fake_storage.read("a")

    first = session.shutdown()
    written = console_buffer.getvalue()
    fake_storage.read("late")

    assert session.shutdown() is first
    assert session.closed
    assert console_buffer.getvalue() == written
    assert first.get("fs", "read") == ("a",)


def test_summary_written_to_configured_file(make_session, fake_storage, tmp_path: Path) -> None:
    session = make_session(output="report.log", structured=True)
    session.install()
    fake_storage.read("x")
    session.shutdown()

    record = json.loads((tmp_path / "report.log").read_text(encoding="utf-8"))
    assert record["summary"]["fs"] == {"read": ["x"]}


def test_export_failure_propagates(make_session) -> None:
    session = make_session(output=os.path.join("missing-dir", "report.log"))
    session.install()

    with pytest.raises(OSError):
        session.shutdown()


def test_shutdown_after_failed_export_returns_summary(make_session, fake_storage) -> None:
    session = make_session(output=os.path.join("missing-dir", "report.log"))
    session.install()
    fake_storage.read("a")

    with pytest.raises(OSError):
        session.shutdown()

    summary = session.shutdown()
    assert session.closed
    assert summary.get("fs", "read") == ("a",)


def test_disabled_subsystems_are_not_wrapped(make_session, fake_storage) -> None:
    read = fake_storage.read
    session = make_session(modules=frozenset({"http"}))

    assert session.install() == []
    assert fake_storage.read is read
    assert session.shutdown().to_dict() == {"http": {}}


def test_live_mode_writes_each_call(make_session, fake_storage, console_buffer, fixed_time) -> None:
    session = make_session(summary=False)
    session.install()

    fake_storage.read("a.txt")
    session.shutdown()

    assert console_buffer.getvalue() == f"{fixed_time} - fs.read | a.txt\n"


# -----------------------------------------------------------------------------
# Load events
# -----------------------------------------------------------------------------

def test_dependency_tree_is_reconstructed(make_session, module_tree: Path, entry: str, tmp_path: Path) -> None:
    helper = str(module_tree / "samplehelper.py")
    core = str(module_tree / "sampleapp" / "core.py")
    leaf = str(module_tree / "sampleapp" / "sub" / "leaf.py")

    session = make_session(require_tree_output="tree.json")
    session.install()
    session.load(".", "samplehelper", entry)
    session.load(helper, "sampleapp.core", helper)
    session.load(core, ".sub.leaf", core)
    session.load(".", "pytest", entry)
    assert session.load("/elsewhere/mod.py", "json") is None
    summary = session.shutdown()

    tree = json.loads((tmp_path / "tree.json").read_text(encoding="utf-8"))
    assert tree == {
        "name": entry,
        "children": [
            {"name": helper, "children": [
                {"name": core, "children": [
                    {"name": leaf, "children": []},
                ]},
            ]},
            {"name": "pytest", "children": []},
        ],
    }
    assert summary.get("import") == (helper, core, leaf, os.path.abspath(pytest.__file__))


def test_external_package_withholds_path_without_dependencies(make_session, entry: str) -> None:
    session = make_session()
    session.install()

    node = session.load(".", "pytest", entry)

    assert node.display_name == "pytest"
    assert node.canonical_path is None


def test_external_package_keeps_path_with_dependencies(make_session, entry: str) -> None:
    session = make_session(dependencies=True)
    session.install()

    node = session.load(".", "pytest", entry)

    assert node.canonical_path == os.path.abspath(pytest.__file__)


def test_unresolvable_request_raises(make_session, entry: str) -> None:
    session = make_session()
    session.install()

    with pytest.raises(ResolutionError):
        session.load(".", "no_such_package_anywhere", entry)


def test_import_hook_positions_modules(make_session, import_operation, fake_importer, module_tree, entry) -> None:
    helper = str(module_tree / "samplehelper.py")
    core = str(module_tree / "sampleapp" / "core.py")
    session = make_session(operations=[import_operation], modules=frozenset({"import"}))
    session.install()

    fake_importer.load("samplehelper", {"__name__": "__main__", "__file__": entry})
    fake_importer.load("sampleapp", {"__name__": "samplehelper", "__file__": helper}, None, ("core",), 0)
    fake_importer.load("sampleapp.core", {"__name__": "samplehelper", "__file__": helper})
    fake_importer.load("", {"__name__": "sampleapp.core", "__file__": core}, None, ("sub", "VALUE"), 1)

    root = session.tree.root
    assert [c.canonical_path for c in root.children] == [helper]
    helper_node = root.children[0]
    assert [c.canonical_path for c in helper_node.children] == [
        str(module_tree / "sampleapp" / "__init__.py"),
        core,
    ]
    # "from . import sub, VALUE" keeps only the name that is a module
    core_node = helper_node.children[1]
    assert [c.canonical_path for c in core_node.children] == [
        str(module_tree / "sampleapp" / "sub" / "__init__.py"),
    ]


def test_import_hook_falls_back_to_package_for_attribute_imports(
        make_session, import_operation, fake_importer, module_tree, entry) -> None:
    session = make_session(operations=[import_operation], modules=frozenset({"import"}))
    session.install()
    core = str(module_tree / "sampleapp" / "core.py")

    fake_importer.load("sampleapp.core", {"__name__": "__main__", "__file__": entry})
    fake_importer.load("", {"__name__": "sampleapp.core", "__file__": core}, None, ("VALUE",), 1)

    core_node = session.tree.root.children[0]
    assert [c.canonical_path for c in core_node.children] == [
        str(module_tree / "sampleapp" / "__init__.py"),
    ]


# -----------------------------------------------------------------------------
# Library entry point
# -----------------------------------------------------------------------------

def test_instrument_validates_before_installing(tmp_path: Path) -> None:
    with pytest.raises(TypeError):
        instrument({"frequency": "yes"}, cwd=str(tmp_path))

    with pytest.raises(ValueError):
        instrument({"modules": ["storage"]}, cwd=str(tmp_path))


def test_instrument_with_nothing_enabled_binds_nothing(tmp_path: Path, entry: str) -> None:
    with patch("opwatch.core.session.atexit.register") as register:
        session = instrument(
            {"modules": []},
            entry_point=entry,
            cwd=str(tmp_path),
            register_exit_hook=True,
        )

    assert session.registry.installed
    assert session.entry_point == entry
    register.assert_called_once_with(session.shutdown)


def test_package_in_project_virtualenv_is_external(make_session, module_tree: Path, entry: str, monkeypatch) -> None:
    site = module_tree / ".venv" / "lib" / "python3" / "site-packages"
    (site / "samplevenvpkg").mkdir(parents=True)
    (site / "samplevenvpkg" / "__init__.py").write_text("from . import inner\n", encoding="utf-8")
    (site / "samplevenvpkg" / "inner.py").write_text("", encoding="utf-8")
    monkeypatch.syspath_prepend(str(site))
    helper = str(module_tree / "samplehelper.py")
    pkg_index = str(site / "samplevenvpkg" / "__init__.py")

    session = make_session(require_tree_output="tree.json")
    session.install()
    session.load(".", "samplehelper", entry)
    node = session.load(helper, "samplevenvpkg", helper)
    assert session.load(pkg_index, ".inner", pkg_index) is None
    session.shutdown()

    assert node.canonical_path is None
    assert node.display_name == "samplevenvpkg"
    assert session.tree.to_document(entry)["children"] == [
        {"name": helper, "children": [{"name": "samplevenvpkg", "children": []}]},
    ]
