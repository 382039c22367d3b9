from __future__ import annotations

"""
Configuration Validation Service.

Acts as the gatekeeper between raw configuration sources (discovered file,
library arguments, command line) and the instrumentation session. Runs
before anything is installed so a bad configuration can never leave the
host process partially instrumented.
"""

import logging
from typing import Any, Dict, List, Optional, Tuple

from opwatch.domain.config import get_default_config, normalize_keys
from opwatch.domain.constants import ALL_SUBSYSTEMS

logger = logging.getLogger(__name__)


# -----------------------------------------------------------------------------
# PUBLIC API
# -----------------------------------------------------------------------------

def validate_config(
        config: Any,
        *,
        strict: bool = False,
        base: Optional[Dict[str, Any]] = None,
) -> Tuple[Dict[str, Any], List[str]]:
    """
    Validate and normalize an instrumentation configuration.

    Args:
        config: Raw configuration data. None means "no overrides".
        strict: If True, raise on type mismatch instead of coercing.
        base: Already validated configuration the overrides apply to.
              Defaults to the domain defaults.

    Returns:
        Tuple[Dict[str, Any], List[str]]: Normalized configuration and warnings.

    Raises:
        TypeError: In strict mode, on any type mismatch.
        ValueError: In strict mode, on unknown subsystem names.
    """
    warnings: List[str] = []
    defaults = dict(base) if base is not None else get_default_config()

    if config is None:
        return defaults, warnings

    # 1. Base Type Validation
    if not isinstance(config, dict):
        msg = f"Invalid config type: expected dict, received {type(config).__name__}."
        if strict:
            raise TypeError(msg)
        warnings.append(f"{msg} Using defaults.")
        logger.warning(msg)
        return defaults, warnings

    raw = normalize_keys(config)
    unknown = sorted(k for k in raw if k not in defaults)
    for key in unknown:
        warnings.append(f"Unknown field '{key}' ignored.")

    merged: Dict[str, Any] = dict(defaults)
    merged.update({k: v for k, v in raw.items() if k in defaults})

    # 2. Schema Definition (Declarative mapping)
    optional_path_fields = ["output", "require_tree_output"]
    bool_fields = ["structured", "frequency", "summary", "dependencies"]

    # 3. Field Processing & Normalization
    for field in optional_path_fields:
        merged[field] = _as_optional_str(merged.get(field), field, warnings, strict)

    for field in bool_fields:
        merged[field] = _as_bool(
            merged.get(field), bool(defaults.get(field, False)), field, warnings, strict
        )

    merged["modules"] = _as_subsystems(
        merged.get("modules"), list(defaults.get("modules", ALL_SUBSYSTEMS)), warnings, strict
    )

    return merged, warnings


# -----------------------------------------------------------------------------
# PRIVATE HELPERS: TYPE COERCION
# -----------------------------------------------------------------------------

def _as_optional_str(value: Any, field: str, warnings: List[str], strict: bool) -> Optional[str]:
    """Validate an optional path; blank strings mean 'not set'."""
    if value is None:
        return None
    if isinstance(value, str):
        v = value.strip()
        return v if v else None

    msg = f"Invalid field '{field}': expected str, received {type(value).__name__}."
    if strict:
        raise TypeError(msg)
    warnings.append(f"{msg} Field unset.")
    return None


def _as_bool(value: Any, fallback: bool, field: str, warnings: List[str], strict: bool) -> bool:
    """Coerce various input types into native booleans."""
    if isinstance(value, bool):
        return value
    if value is None:
        return fallback

    if not strict:
        if isinstance(value, (int, float)) and value in (0, 1):
            warnings.append(f"Field '{field}' converted from number {value} to bool.")
            return bool(value)
        if isinstance(value, str):
            s = value.strip().lower()
            if s in ("true", "1", "yes", "y", "on"):
                warnings.append(f"Field '{field}' converted from '{value}' to True.")
                return True
            if s in ("false", "0", "no", "n", "off"):
                warnings.append(f"Field '{field}' converted from '{value}' to False.")
                return False

    msg = f"Invalid field '{field}': expected bool, received {type(value).__name__}."
    if strict:
        raise TypeError(msg)
    warnings.append(f"{msg} Using fallback.")
    return fallback


def _as_subsystems(value: Any, fallback: List[str], warnings: List[str], strict: bool) -> List[str]:
    """
    Ensure the enabled subsystem list holds known names only.

    The result is always in canonical subsystem order and free of duplicates.
    """
    if value is None:
        return list(fallback)

    items: List[Any]
    if isinstance(value, str) and not strict:
        items = [x.strip() for x in value.split(",") if x.strip()]
        warnings.append("Field 'modules' converted from CSV string to list.")
    elif isinstance(value, (list, tuple, set, frozenset)):
        items = list(value)
    else:
        msg = f"Invalid field 'modules': expected list[str], received {type(value).__name__}."
        if strict:
            raise TypeError(msg)
        warnings.append(f"{msg} Using fallback.")
        return list(fallback)

    selected = set()
    for i, item in enumerate(items):
        if not isinstance(item, str):
            msg = f"Invalid item in 'modules[{i}]': expected str."
            if strict:
                raise TypeError(msg)
            warnings.append(f"{msg} Item discarded.")
            continue
        name = item.strip()
        if name not in ALL_SUBSYSTEMS:
            msg = f"Unknown subsystem '{name}' in 'modules'. Known: {', '.join(ALL_SUBSYSTEMS)}."
            if strict:
                raise ValueError(msg)
            warnings.append(f"{msg} Item discarded.")
            continue
        selected.add(name)

    return [s for s in ALL_SUBSYSTEMS if s in selected]
