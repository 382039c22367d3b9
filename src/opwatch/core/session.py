from __future__ import annotations

"""
Instrumentation Session.

Composition root of the engine. Owns the shared context (tracker, tree
builder, resolver, registry and exporter), injects it into each component,
routes every observed call to the right collaborator and runs the one-shot
finalization when the host calls ``shutdown()``.
"""

import atexit
import logging
import os
import sys
import threading
from typing import IO, Any, Dict, Iterable, List, Optional, Tuple, Union

from opwatch.core.config.loader import resolve_config
from opwatch.core.export.exporter import Exporter
from opwatch.core.interception.catalog import build_operations, describe_import
from opwatch.core.interception.registry import InterceptionRegistry, WatchedOperation
from opwatch.core.resolution.resolver import IdentityResolver, RequestKind
from opwatch.core.tracking.tracker import Tracker
from opwatch.core.tree.builder import DependencyTreeBuilder
from opwatch.domain.config import InstrumentConfig
from opwatch.domain.constants import ROOT_IDENTITY, SUBSYSTEM_FS, SUBSYSTEM_IMPORT
from opwatch.domain.errors import ResolutionError, SessionError
from opwatch.domain.tracking_models import AggregatedSummary
from opwatch.domain.tree_models import LoadEvent, ModuleNode

logger = logging.getLogger(__name__)

# Instrumentation table key of the storage write primitive used for exports
OPEN_OPERATION_KEY = f"{SUBSYSTEM_FS}.open"


class InstrumentationSession:
    """
    Context object shared by every instrumentation component.

    Args:
        config: Immutable configuration snapshot.
        entry_point: Path of the process entry unit. Defaults to ``sys.argv[0]``.
        operations: Instrumentation table. Defaults to the watched operation catalog.
        cwd: Directory relative sink paths are resolved against.
        exporter: Artifact writer. Defaults to one bound to the original ``open``.
    """

    def __init__(
            self,
            config: InstrumentConfig,
            *,
            entry_point: Optional[str] = None,
            operations: Optional[Iterable[WatchedOperation]] = None,
            cwd: Optional[str] = None,
            exporter: Optional[Exporter] = None,
    ) -> None:
        self.config = config
        self._cwd = os.path.abspath(cwd or os.getcwd())
        self.entry_point = _entry_path(entry_point, self._cwd)

        self._lock = threading.RLock()
        self.resolver = IdentityResolver(os.path.dirname(self.entry_point))
        self.tree = DependencyTreeBuilder(dependencies=config.dependencies, lock=self._lock)
        self.tracker = Tracker(
            config.modules,
            dependencies=config.dependencies,
            lock=self._lock,
            live_sink=None if config.summary else self._write_live,
        )
        self.registry = InterceptionRegistry(
            operations if operations is not None else build_operations(),
            self._on_call,
            config.modules,
        )
        self.exporter = exporter or Exporter(self._open_original, base_dir=self._cwd)

        self._summary: Optional[AggregatedSummary] = None
        self._closed = False

    # -------------------------------------------------------------------------
    # LIFECYCLE
    # -------------------------------------------------------------------------

    @property
    def closed(self) -> bool:
        return self._closed

    def install(self) -> List[str]:
        """Bind the instrumentation table. Safe to call more than once."""
        keys = self.registry.install()
        if keys:
            logger.info(f"Instrumentation active for: {', '.join(sorted(self.tracker.enabled))}")
        return keys

    def shutdown(self) -> Optional[AggregatedSummary]:
        """
        Finalize tracking state and write the configured artifacts.

        Runs once; later calls return the first result without writing again.
        The summary is finalized before any artifact is written, so when an
        export fails the error is raised by that first call only and later
        calls return the summary without retrying the export.

        Returns:
            Optional[AggregatedSummary]: The terminal summary.

        Raises:
            SessionError: If the session was never installed.
            OSError: If an artifact sink cannot be written.
        """
        if not self.registry.installed:
            raise SessionError("Cannot shut down a session that was never installed.")
        if self._closed:
            return self._summary
        self._closed = True

        with self.registry.suppressed():
            self.tree.freeze()
            self._summary = self.tracker.finalize(self.config.frequency)

            if self.config.summary:
                self.exporter.write_summary(
                    self._summary,
                    output=self.config.output,
                    structured=self.config.structured,
                )
            if self.config.require_tree_output:
                self.exporter.write_tree(
                    self.tree.to_document(self.entry_point),
                    self.config.require_tree_output,
                )

        logger.debug("Instrumentation session finalized.")
        return self._summary

    # -------------------------------------------------------------------------
    # LOAD EVENTS
    # -------------------------------------------------------------------------

    def load(self, requester: str, request: str, requester_file: Optional[str] = None) -> Optional[ModuleNode]:
        """
        Resolve one load request and position it in the dependency tree.

        Args:
            requester: Identity of the importing unit ("." for the entry unit).
            request: Raw request string.
            requester_file: Source file of the importing unit, for relative requests.

        Returns:
            Optional[ModuleNode]: Node of the loaded unit, None if dropped.

        Raises:
            ResolutionError: If the request cannot be resolved.
        """
        kind = self.resolver.classify(request)
        resolved = self.resolver.resolve(request, requester_file)
        node = self.tree.add_load(LoadEvent(
            requester=requester,
            request=request,
            resolved=resolved,
            is_package=kind is RequestKind.PACKAGE and self.resolver.is_external(resolved),
        ))
        if node is not None:
            self.tracker.record(SUBSYSTEM_IMPORT, None, resolved)
        return node

    # -------------------------------------------------------------------------
    # PRIVATE HELPERS
    # -------------------------------------------------------------------------

    def _on_call(self, operation: WatchedOperation, args: Tuple[Any, ...], kwargs: Dict[str, Any]) -> None:
        if operation.subsystem == SUBSYSTEM_IMPORT:
            self._on_import(args, kwargs)
            return
        self.tracker.record(
            operation.target_subsystem(args, kwargs),
            operation.name,
            operation.describe(args, kwargs),
        )

    def _on_import(self, args: Tuple[Any, ...], kwargs: Dict[str, Any]) -> None:
        module_globals = args[1] if len(args) > 1 else kwargs.get("globals")
        fromlist = args[3] if len(args) > 3 else kwargs.get("fromlist")
        module_globals = module_globals if isinstance(module_globals, dict) else {}

        requester_file = module_globals.get("__file__")
        requester = _requester_identity(module_globals)
        for request in self._import_requests(describe_import(args, kwargs), fromlist, requester_file):
            self.load(requester, request, requester_file)

    def _import_requests(self, request: str, fromlist: Any, requester_file: Optional[str]) -> List[str]:
        """
        Expand ``from pkg import a, b`` with the submodules it names.

        Submodules named in a fromlist are loaded by the import system itself,
        without another ``__import__`` call. A bare relative package (``from .
        import x``) is the requester's own package, so it is only reported when
        none of the names is a module.
        """
        if not request:
            return []
        if not fromlist:
            return [request]

        own_package = not request.strip(".")
        submodules: List[str] = []
        for item in fromlist:
            if not isinstance(item, str) or item == "*":
                continue
            candidate = f"{request}{item}" if own_package else f"{request}.{item}"
            try:
                resolved = self.resolver.resolve(candidate, requester_file)
            except ResolutionError:
                # Attribute, not a module
                continue
            if os.path.isfile(resolved):
                submodules.append(candidate)

        if own_package:
            return submodules or [request]
        return [request, *submodules]

    def _write_live(self, line: str) -> None:
        self.exporter.write_event(line, output=self.config.output, structured=self.config.structured)

    def _open_original(self, *args: Any, **kwargs: Any) -> IO[str]:
        if OPEN_OPERATION_KEY in self.registry.operations:
            return self.registry.original(OPEN_OPERATION_KEY)(*args, **kwargs)
        return open(*args, **kwargs)


# -----------------------------------------------------------------------------
# PUBLIC API
# -----------------------------------------------------------------------------

def instrument(
        config: Union[InstrumentConfig, Dict[str, Any], None] = None,
        *,
        entry_point: Optional[str] = None,
        cwd: Optional[str] = None,
        register_exit_hook: bool = False,
) -> InstrumentationSession:
    """
    Validate the configuration, then instrument the current process.

    Validation completes before anything is installed, so an invalid
    configuration never leaves the process partially instrumented.

    Args:
        config: Snapshot, or a dict of overrides merged over the defaults and
                the discovered ``instrument.config.json``.
        entry_point: Path of the entry unit. Defaults to ``sys.argv[0]``.
        cwd: Working directory for configuration discovery and sink paths.
        register_exit_hook: Call ``shutdown()`` automatically at interpreter exit.

    Returns:
        InstrumentationSession: The installed session.

    Raises:
        TypeError: On configuration type mismatches.
        ValueError: On unknown subsystem names.
        ConfigFileError: If the discovered configuration file is malformed.
    """
    if isinstance(config, InstrumentConfig):
        snapshot = config
    else:
        snapshot, _ = resolve_config(config, cwd=cwd, strict=True)

    session = InstrumentationSession(snapshot, entry_point=entry_point, cwd=cwd)
    session.install()
    if register_exit_hook:
        atexit.register(session.shutdown)
    return session


def _entry_path(entry_point: Optional[str], cwd: str) -> str:
    candidate = entry_point or (sys.argv[0] if sys.argv and sys.argv[0] not in ("", "-c") else "")
    if not candidate:
        return cwd
    return os.path.abspath(os.path.join(cwd, candidate))


def _requester_identity(module_globals: Dict[str, Any]) -> str:
    if module_globals.get("__name__") == "__main__":
        return ROOT_IDENTITY
    module_file = module_globals.get("__file__")
    if module_file:
        return os.path.abspath(module_file)
    return str(module_globals.get("__name__") or "")
