from __future__ import annotations

"""
Module Identity Resolver.

Classifies an import request into builtin, package or relative-file form
and canonicalizes it into an absolute identity, so that the dependency tree
can position every import unambiguously. Resolution never imports anything:
it asks the path-based finder the same questions the import system would,
searching the entry unit's directory first, then the requester's directory,
then the interpreter search path.
"""

import importlib.machinery
import importlib.util
import logging
import os
import sys
from enum import Enum
from importlib.machinery import ModuleSpec, PathFinder
from typing import Callable, Iterable, List, Optional

from opwatch.domain.constants import PACKAGE_INDEX_FILE, VENDORED_TREE_MARKERS
from opwatch.domain.errors import ResolutionError

logger = logging.getLogger(__name__)

# Closed list of platform-provided module names
BUILTIN_MODULES = frozenset(sys.stdlib_module_names) | frozenset(sys.builtin_module_names)

# Suffixes that mark a request as a file rather than a module name
FILE_SUFFIXES = tuple(importlib.machinery.all_suffixes())

_NON_LOCATION_ORIGINS = ("built-in", "frozen", "namespace")


class RequestKind(str, Enum):
    BUILTIN = "builtin"
    PACKAGE = "package"
    RELATIVE_FILE = "relative-file"


# -----------------------------------------------------------------------------
# PUBLIC API
# -----------------------------------------------------------------------------

def classify(request: str) -> RequestKind:
    """
    Classify an import request string.

    Args:
        request: Module name, optionally prefixed with relative-import dots,
                 or a file path.

    Returns:
        RequestKind: Exactly one of builtin, package or relative-file.
    """
    if request.startswith(".") or os.path.isabs(request) or request.endswith(FILE_SUFFIXES):
        return RequestKind.RELATIVE_FILE
    if request.split(".", 1)[0] in BUILTIN_MODULES:
        return RequestKind.BUILTIN
    return RequestKind.PACKAGE


def strip_identity(path: str) -> str:
    """
    Reduce a module identity to its extension-less, index-less form.

    ``/app/pkg/__init__.py`` and ``/app/pkg`` both become ``/app/pkg``;
    ``/app/mod.py`` becomes ``/app/mod``.
    """
    index_suffix = os.sep + PACKAGE_INDEX_FILE
    if path.endswith(index_suffix):
        return path[: -len(index_suffix)]
    root, ext = os.path.splitext(path)
    if ext and path.endswith(FILE_SUFFIXES):
        return root
    return path


class IdentityResolver:
    """
    Canonicalizes import requests into absolute module identities.

    Args:
        entry_dir: Directory of the process entry unit, searched first.
        search_path: Provider of the interpreter search path. Read on every
                     resolution so runtime sys.path changes are honored.
    """

    def __init__(
            self,
            entry_dir: str,
            search_path: Optional[Callable[[], List[str]]] = None,
    ) -> None:
        self._entry_dir = os.path.abspath(entry_dir)
        self._search_path = search_path or (lambda: list(sys.path))

    @property
    def entry_dir(self) -> str:
        return self._entry_dir

    def classify(self, request: str) -> RequestKind:
        return classify(request)

    def is_external(self, identity: str) -> bool:
        """
        True if a resolved identity lies outside the entry unit's directory
        or inside an install tree (a virtualenv kept in the project folder).

        Absolute imports of the project's own modules look exactly like
        package requests; only their location tells them apart.
        """
        if not os.path.isabs(identity):
            return True
        try:
            if os.path.commonpath([self._entry_dir, identity]) != self._entry_dir:
                return True
        except ValueError:
            # Different drives
            return True
        parts = os.path.relpath(identity, self._entry_dir).split(os.sep)
        return any(marker in parts for marker in VENDORED_TREE_MARKERS)

    def resolve(self, request: str, requester_file: Optional[str] = None) -> str:
        """
        Resolve a request issued by the unit at ``requester_file``.

        Args:
            request: Raw import request.
            requester_file: Source file of the requesting unit, if known.

        Returns:
            str: Canonical identity (the bare name for builtin modules).

        Raises:
            ResolutionError: If a package request matches no candidate.
        """
        kind = classify(request)
        if kind is RequestKind.BUILTIN:
            return request
        if kind is RequestKind.RELATIVE_FILE:
            return self._resolve_relative(request, requester_file)
        return self._resolve_package(request, requester_file)

    # -------------------------------------------------------------------------
    # PRIVATE HELPERS
    # -------------------------------------------------------------------------

    def _requester_dir(self, requester_file: Optional[str]) -> str:
        if requester_file:
            return os.path.dirname(os.path.abspath(requester_file))
        return os.getcwd()

    def _resolve_relative(self, request: str, requester_file: Optional[str]) -> str:
        base = self._requester_dir(requester_file)
        # Path form ("./data.py", "/abs/mod.py") as opposed to dotted module form
        if not request.startswith(".") or "/" in request or os.sep in request or request.endswith(FILE_SUFFIXES):
            return os.path.abspath(os.path.join(base, request))

        level = len(request) - len(request.lstrip("."))
        name = request[level:]
        # One dot is the requester's own package, every extra dot climbs a level
        for _ in range(level - 1):
            base = os.path.dirname(base)
        target = os.path.join(base, *name.split(".")) if name else base
        return _module_file(target)

    def _resolve_package(self, request: str, requester_file: Optional[str]) -> str:
        loaded = sys.modules.get(request)
        loaded_spec = getattr(loaded, "__spec__", None)
        if loaded_spec is not None and loaded_spec.origin not in (None, *_NON_LOCATION_ORIGINS):
            return _spec_identity(loaded_spec)

        locations = _unique([
            self._entry_dir,
            self._requester_dir(requester_file),
            *self._search_path(),
        ])
        spec = _find_spec(request, locations)
        if spec is None:
            logger.debug(f"No candidate resolved '{request}' in {len(locations)} locations")
            raise ResolutionError(request, requester_file or "")
        return _spec_identity(spec)


# -----------------------------------------------------------------------------
# PRIVATE HELPERS (FINDER LOOKUP)
# -----------------------------------------------------------------------------

def _find_spec(request: str, locations: List[str]) -> Optional[ModuleSpec]:
    """Walk a dotted name through the path finder without importing anything."""
    parts = request.split(".")
    spec = PathFinder.find_spec(parts[0], locations) or _loaded_spec(parts[0])

    for depth in range(2, len(parts) + 1):
        if spec is None:
            return None
        name = ".".join(parts[:depth])
        sub_locations = spec.submodule_search_locations
        found = PathFinder.find_spec(name, list(sub_locations)) if sub_locations else None
        spec = found or _loaded_spec(name)

    return spec


def _loaded_spec(name: str) -> Optional[ModuleSpec]:
    """
    Fallback for names served by meta-path finders.

    Only consulted when answering does not require importing a parent
    package: the module is already loaded, or its parent is.
    """
    module = sys.modules.get(name)
    if module is not None:
        spec = getattr(module, "__spec__", None)
        if spec is not None:
            return spec
        return ModuleSpec(name, None, origin=getattr(module, "__file__", None))

    parent = name.rpartition(".")[0]
    if parent and parent not in sys.modules:
        return None
    try:
        return importlib.util.find_spec(name)
    except (ImportError, ValueError):
        return None


def _spec_identity(spec: ModuleSpec) -> str:
    origin = spec.origin
    if origin and origin not in _NON_LOCATION_ORIGINS:
        return os.path.abspath(origin)
    locations = list(spec.submodule_search_locations or [])
    if locations:
        return os.path.abspath(locations[0])
    return spec.name


def _module_file(target: str) -> str:
    """Best-effort file for a module path: ``target.py``, then ``target/__init__.py``."""
    module_file = target + ".py"
    if os.path.isfile(module_file):
        return os.path.abspath(module_file)
    index_file = os.path.join(target, PACKAGE_INDEX_FILE)
    if os.path.isfile(index_file):
        return os.path.abspath(index_file)
    return os.path.abspath(target)


def _unique(paths: Iterable[str]) -> List[str]:
    seen = set()
    out: List[str] = []
    for p in paths:
        key = os.path.abspath(p) if p else os.getcwd()
        if key not in seen:
            seen.add(key)
            out.append(key)
    return out
