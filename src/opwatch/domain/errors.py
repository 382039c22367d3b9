from __future__ import annotations

"""
Domain Exceptions.

Typed failures raised by the instrumentation engine. Resolution failures
derive from ModuleNotFoundError so host code that guards optional imports
with ``except ImportError`` keeps its behavior under instrumentation.
"""


class ResolutionError(ModuleNotFoundError):
    """Raised when an import request cannot be mapped to a module identity."""

    def __init__(self, request: str, requester: str = "") -> None:
        msg = f"Unable to resolve '{request}'"
        if requester:
            msg += f" requested by '{requester}'"
        super().__init__(msg, name=request.lstrip(".") or None)
        self.request = request
        self.requester = requester


class ConfigFileError(ValueError):
    """Raised when a discovered configuration file cannot be read or parsed."""

    def __init__(self, path: str, reason: str) -> None:
        super().__init__(f"Invalid configuration file '{path}': {reason}")
        self.path = path
        self.reason = reason


class SessionError(RuntimeError):
    """Raised on lifecycle misuse of an instrumentation session."""
