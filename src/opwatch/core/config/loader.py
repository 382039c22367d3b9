from __future__ import annotations

"""
Configuration Resolution.

Merges the configuration sources in precedence order (domain defaults, then
the discovered project file, then explicit overrides) and freezes the result
into an InstrumentConfig snapshot.
"""

import logging
from typing import Any, Dict, List, Optional, Tuple

from opwatch.core.config.validator import validate_config
from opwatch.domain.config import InstrumentConfig, find_config_file, load_config_file

logger = logging.getLogger(__name__)


def resolve_config(
        overrides: Optional[Dict[str, Any]] = None,
        *,
        cwd: Optional[str] = None,
        config_file: Optional[str] = None,
        discover: bool = True,
        strict: bool = True,
) -> Tuple[InstrumentConfig, List[str]]:
    """
    Build the immutable configuration snapshot.

    Args:
        overrides: Explicit settings, applied last.
        cwd: Directory searched for the project configuration file.
        config_file: Explicit configuration file, bypassing discovery.
        discover: Look for the project configuration file when no explicit
                  file is given.
        strict: Raise on type mismatches in the overrides instead of coercing.
                The configuration file is always validated strictly.

    Returns:
        Tuple[InstrumentConfig, List[str]]: Snapshot and validation warnings.

    Raises:
        ConfigFileError: If the configuration file is unreadable or malformed.
        TypeError: On type mismatch (file, or overrides in strict mode).
        ValueError: On unknown subsystem names (same conditions).
    """
    warnings: List[str] = []

    path = config_file or (find_config_file(cwd) if discover else None)
    base: Optional[Dict[str, Any]] = None
    if path:
        base, file_warnings = validate_config(load_config_file(path), strict=True)
        warnings.extend(f"{path}: {w}" for w in file_warnings)

    merged, override_warnings = validate_config(overrides, strict=strict, base=base)
    warnings.extend(override_warnings)

    for w in warnings:
        logger.warning(f"Configuration Constraint: {w}")

    return InstrumentConfig.from_dict(merged), warnings
