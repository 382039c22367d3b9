from __future__ import annotations

"""
opwatch: observe what a Python program touches.

Records filesystem, HTTP/HTTPS, subprocess and import activity of the
running interpreter, and reports it as an aggregated summary and an import
dependency tree when the session shuts down.

    import opwatch
    session = opwatch.instrument({"frequency": True})
    ...
    session.shutdown()
"""

from opwatch.core.session import InstrumentationSession, instrument
from opwatch.domain.config import InstrumentConfig
from opwatch.domain.errors import ConfigFileError, ResolutionError, SessionError

__version__ = "0.1.0"

__all__ = [
    "instrument",
    "InstrumentationSession",
    "InstrumentConfig",
    "ConfigFileError",
    "ResolutionError",
    "SessionError",
]
