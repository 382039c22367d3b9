from __future__ import annotations

"""
Interception Registry.

Holds the instrumentation table (one WatchedOperation per platform
operation) and turns it into transparent wrappers. A wrapper forwards the
call to the recorder, then delegates to the original callable with
unmodified arguments and hands its result or exception back untouched.

Originals are captured in OriginalHandle value objects before any binding
happens, so wrappers never end up wrapping each other and the exporter can
always reach the un-instrumented primitives.
"""

import functools
import logging
import threading
from contextlib import contextmanager
from dataclasses import dataclass
from typing import Any, Callable, Dict, Iterable, Iterator, List, Optional, Tuple

logger = logging.getLogger(__name__)

# Attribute set on every wrapper; its value is the operation key
WRAPPED_MARKER = "__opwatch_operation__"

ArgsDescriber = Callable[[Tuple[Any, ...], Dict[str, Any]], str]
ArgsRouter = Callable[[Tuple[Any, ...], Dict[str, Any]], str]


def _no_summary(args: Tuple[Any, ...], kwargs: Dict[str, Any]) -> str:
    return ""


# -----------------------------------------------------------------------------
# INSTRUMENTATION TABLE MODELS
# -----------------------------------------------------------------------------

@dataclass(frozen=True)
class WatchedOperation:
    """
    Declaration of one watched platform operation.

    Attributes:
        subsystem: Primary subsystem the operation belongs to.
        name: Operation name within the subsystem. None for subsystem-level
              operations (module loading).
        owner: Object holding the implementation (module or class).
        attribute: Attribute name of the implementation on the owner.
        describe: Builds the short argument summary from (args, kwargs).
        route: Optional per-call subsystem selector for operations shared by
               several subsystems (plain vs secure transport).
        routes: Additional subsystems ``route`` may return.
        opaque: If True, watched calls made by the original callable
                itself are not recorded.
        after_install: Optional hook called with (original, wrapper) after
                       binding, to keep owner-side bookkeeping consistent.
        alias: Distinguishes the key of an operation exposed under another
               owner (``io.open`` next to ``builtins.open``). Records keep
               the plain operation name.
    """
    subsystem: str
    name: Optional[str]
    owner: Any
    attribute: str
    describe: ArgsDescriber = _no_summary
    route: Optional[ArgsRouter] = None
    routes: Tuple[str, ...] = ()
    opaque: bool = True
    after_install: Optional[Callable[[Any, Any], None]] = None
    alias: Optional[str] = None

    @property
    def key(self) -> str:
        key = f"{self.subsystem}.{self.name}" if self.name else self.subsystem
        return f"{key}:{self.alias}" if self.alias else key

    @property
    def subsystems(self) -> Tuple[str, ...]:
        return (self.subsystem,) + tuple(self.routes)

    def target_subsystem(self, args: Tuple[Any, ...], kwargs: Dict[str, Any]) -> str:
        if self.route is None:
            return self.subsystem
        return self.route(args, kwargs)


@dataclass(frozen=True)
class OriginalHandle:
    """Reference to the un-instrumented implementation of an operation."""
    operation: WatchedOperation
    implementation: Callable[..., Any]

    def __call__(self, *args: Any, **kwargs: Any) -> Any:
        return self.implementation(*args, **kwargs)


Recorder = Callable[[WatchedOperation, Tuple[Any, ...], Dict[str, Any]], None]


# -----------------------------------------------------------------------------
# REGISTRY
# -----------------------------------------------------------------------------

class InterceptionRegistry:
    """
    Builds and binds wrappers for an instrumentation table.

    Args:
        operations: The instrumentation table.
        recorder: Called with (operation, args, kwargs) for every observed call.
        enabled: Enabled subsystem names. Operations whose subsystems are all
                 disabled are never wrapped.
    """

    def __init__(
            self,
            operations: Iterable[WatchedOperation],
            recorder: Recorder,
            enabled: Iterable[str],
    ) -> None:
        self._table: Dict[str, WatchedOperation] = {}
        for op in operations:
            if op.key in self._table:
                raise ValueError(f"Duplicate watched operation '{op.key}'")
            self._table[op.key] = op

        self._recorder = recorder
        self._enabled = frozenset(enabled)
        self._originals: Dict[str, OriginalHandle] = {}
        self._installed = False
        self._guard = threading.local()

    # -------------------------------------------------------------------------
    # PUBLIC API
    # -------------------------------------------------------------------------

    @property
    def installed(self) -> bool:
        return self._installed

    @property
    def operations(self) -> Dict[str, WatchedOperation]:
        return dict(self._table)

    def is_active(self, operation: WatchedOperation) -> bool:
        return any(s in self._enabled for s in operation.subsystems)

    def wrap(self, operation: WatchedOperation, implementation: Callable[..., Any]) -> Callable[..., Any]:
        """
        Build a transparent recording wrapper around an implementation handle.

        Args:
            operation: Declaration of the watched operation.
            implementation: The callable the wrapper delegates to.

        Returns:
            Callable: Wrapper with the implementation's calling convention.
        """
        registry = self

        @functools.wraps(implementation)
        def wrapper(*args: Any, **kwargs: Any) -> Any:
            if registry.is_suppressed():
                return implementation(*args, **kwargs)

            with registry.suppressed():
                registry._recorder(operation, args, kwargs)

            if not operation.opaque:
                return implementation(*args, **kwargs)
            with registry.suppressed():
                return implementation(*args, **kwargs)

        setattr(wrapper, WRAPPED_MARKER, operation.key)
        return wrapper

    def install(self) -> List[str]:
        """
        Bind wrappers for every active operation. Idempotent.

        Returns:
            List[str]: Keys of the operations bound by this call.
        """
        if self._installed:
            logger.debug("Interception already installed; skipping.")
            return []

        # 1. Snapshot every original before binding anything
        for op in self._table.values():
            if not self.is_active(op):
                continue
            current = getattr(op.owner, op.attribute)
            if getattr(current, WRAPPED_MARKER, None) is not None:
                logger.warning(f"Operation '{op.key}' is already instrumented; left as is.")
                continue
            self._originals[op.key] = OriginalHandle(op, current)

        # 2. Bind wrappers
        for key, handle in self._originals.items():
            op = handle.operation
            wrapper = self.wrap(op, handle.implementation)
            setattr(op.owner, op.attribute, wrapper)
            if op.after_install is not None:
                op.after_install(handle.implementation, wrapper)

        self._installed = True
        logger.debug(f"Installed {len(self._originals)} watched operations.")
        return list(self._originals)

    def original(self, key: str) -> Callable[..., Any]:
        """
        Return the un-instrumented implementation of an operation.

        Raises:
            KeyError: If the key is not part of the instrumentation table.
        """
        handle = self._originals.get(key)
        if handle is not None:
            return handle
        op = self._table[key]
        return getattr(op.owner, op.attribute)

    def is_suppressed(self) -> bool:
        return getattr(self._guard, "depth", 0) > 0

    @contextmanager
    def suppressed(self) -> Iterator[None]:
        """Scope in which watched calls on this thread are not recorded."""
        depth = getattr(self._guard, "depth", 0)
        self._guard.depth = depth + 1
        try:
            yield
        finally:
            self._guard.depth = depth
