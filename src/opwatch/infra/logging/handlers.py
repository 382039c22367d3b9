from __future__ import annotations

"""
Diagnostic Handler Factories.

Every handler built here is tagged, so a reconfiguration only ever removes
what the runner installed.
"""

import logging
import os
import sys
from logging.handlers import RotatingFileHandler
from typing import List, Optional

from opwatch.infra.logging.config import LoggingConfig

_HANDLER_TAG_ATTR: str = "_opwatch_handler"


def tag(handler: logging.Handler) -> logging.Handler:
    setattr(handler, _HANDLER_TAG_ATTR, True)
    return handler


def is_tagged(handler: logging.Handler) -> bool:
    return bool(getattr(handler, _HANDLER_TAG_ATTR, False))


def build_sink_handlers(cfg: LoggingConfig) -> List[logging.Handler]:
    """
    Create the sink handlers requested by ``cfg``.

    Returns:
        List[logging.Handler]: Console and/or file handlers. A file that
        cannot be opened is reported on stderr and skipped.
    """
    level = cfg.level_number()
    sinks: List[logging.Handler] = []

    if cfg.console:
        console = _StderrHandler()
        console.setLevel(level)
        console.setFormatter(logging.Formatter(cfg.console_fmt))
        sinks.append(tag(console))

    if cfg.log_file:
        fh = _rotating_file_handler(cfg.log_file, cfg.max_bytes, cfg.backup_count)
        if fh is not None:
            fh.setLevel(level)
            fh.setFormatter(logging.Formatter(cfg.file_fmt, datefmt=cfg.datefmt))
            sinks.append(tag(fh))

    return sinks


class _StderrHandler(logging.StreamHandler):
    """Writes to whatever ``sys.stderr`` is at emit time (targets may swap it)."""

    def __init__(self) -> None:
        super().__init__(sys.stderr)

    @property
    def stream(self):
        return sys.stderr

    @stream.setter
    def stream(self, value) -> None:
        pass


def _rotating_file_handler(log_file: str, max_bytes: int, backup_count: int) -> Optional[RotatingFileHandler]:
    path = os.path.abspath(os.path.expanduser(log_file))
    try:
        os.makedirs(os.path.dirname(path), exist_ok=True)
        return RotatingFileHandler(
            path,
            maxBytes=int(max_bytes),
            backupCount=int(backup_count),
            encoding="utf-8",
        )
    except OSError as e:
        sys.stderr.write(f"WARNING: Cannot open diagnostic log '{log_file}': {e}\n")
        return None
