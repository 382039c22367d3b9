from __future__ import annotations

"""
Logging Configuration Models.

The runner shares its interpreter with the program it observes, so its
diagnostics live under their own logger namespace and never touch the root
logger the target may configure for itself.
"""

import logging
from dataclasses import dataclass
from typing import Dict, Optional

# Logger namespace owned by the runner
LOGGER_NAMESPACE = "opwatch"

_LEVEL_MAP: Dict[str, int] = {
    "DEBUG": logging.DEBUG,
    "INFO": logging.INFO,
    "WARNING": logging.WARNING,
    "WARN": logging.WARNING,
    "ERROR": logging.ERROR,
    "CRITICAL": logging.CRITICAL,
}


@dataclass(frozen=True)
class LoggingConfig:
    """
    Settings for the runner's diagnostic output.

    Attributes:
        level: Minimum severity for the namespace.
        console: Write diagnostics to stderr.
        log_file: Optional rotating diagnostic file.
        max_bytes: Rollover threshold of the diagnostic file.
        backup_count: Rotated diagnostic files to keep.
        namespace: Logger that receives the handlers.
    """
    level: str = "WARNING"
    console: bool = True
    log_file: Optional[str] = None

    max_bytes: int = 1024 * 1024
    backup_count: int = 2

    namespace: str = LOGGER_NAMESPACE

    console_fmt: str = "opwatch %(levelname)s | %(message)s"
    file_fmt: str = "%(asctime)s | %(threadName)s | %(levelname)s | %(name)s | %(message)s"
    datefmt: str = "%Y-%m-%d %H:%M:%S"

    def level_number(self) -> int:
        """Numeric level, WARNING for unknown names."""
        return _LEVEL_MAP.get(str(self.level or "").strip().upper(), logging.WARNING)
