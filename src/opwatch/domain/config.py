from __future__ import annotations

"""
Configuration Domain Management.

Defines the default instrumentation settings, discovers the optional
project-level configuration file and freezes the validated result into an
immutable snapshot consumed by the instrumentation session.
"""

import json
import logging
import os
from dataclasses import asdict, dataclass, field
from typing import Any, Dict, FrozenSet, Optional

from opwatch.domain.constants import ALL_SUBSYSTEMS, CONFIG_FILE_NAME
from opwatch.domain.errors import ConfigFileError

logger = logging.getLogger(__name__)

# Accepted spellings for keys written in the original camelCase schema
KEY_ALIASES: Dict[str, str] = {
    "requireTreeOutput": "require_tree_output",
}


# -----------------------------------------------------------------------------
# Configuration Models
# -----------------------------------------------------------------------------

def get_default_config() -> Dict[str, Any]:
    """
    Generate the default instrumentation configuration.

    Returns:
        Dict[str, Any]: Default configuration values.
    """
    return {
        # Sinks
        "output": None,
        "require_tree_output": None,

        # Formatting
        "structured": False,
        "frequency": False,
        "summary": True,

        # Scope
        "modules": list(ALL_SUBSYSTEMS),
        "dependencies": False,
    }


@dataclass(frozen=True)
class InstrumentConfig:
    """
    Immutable snapshot of the instrumentation settings.

    Attributes:
        output: Summary sink path. None targets the interactive console.
        structured: Emit a JSON object instead of a positional text record.
        frequency: Aggregate into occurrence counts instead of unique sets.
        modules: Enabled watched subsystems.
        require_tree_output: Optional path for the dependency tree document.
        dependencies: Retain calls attributable to vendored packages.
        summary: Aggregate at shutdown. When False, each call is written live.
    """
    output: Optional[str] = None
    structured: bool = False
    frequency: bool = False
    modules: FrozenSet[str] = field(default_factory=lambda: frozenset(ALL_SUBSYSTEMS))
    require_tree_output: Optional[str] = None
    dependencies: bool = False
    summary: bool = True

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "InstrumentConfig":
        """Build a snapshot from an already validated configuration dict."""
        return cls(
            output=data.get("output"),
            structured=bool(data.get("structured", False)),
            frequency=bool(data.get("frequency", False)),
            modules=frozenset(data.get("modules", ALL_SUBSYSTEMS)),
            require_tree_output=data.get("require_tree_output"),
            dependencies=bool(data.get("dependencies", False)),
            summary=bool(data.get("summary", True)),
        )

    def to_dict(self) -> Dict[str, Any]:
        """Serialize to a JSON-compatible dict (subsystems in canonical order)."""
        data = asdict(self)
        data["modules"] = [m for m in ALL_SUBSYSTEMS if m in self.modules]
        return data

    def is_enabled(self, subsystem: str) -> bool:
        return subsystem in self.modules


# -----------------------------------------------------------------------------
# File Discovery
# -----------------------------------------------------------------------------

def find_config_file(cwd: Optional[str] = None) -> Optional[str]:
    """
    Locate the project configuration file in the working directory.

    Args:
        cwd: Directory to inspect. Defaults to the process working directory.

    Returns:
        Optional[str]: Absolute path of the file, or None if absent.
    """
    base = cwd or os.getcwd()
    candidate = os.path.join(base, CONFIG_FILE_NAME)
    if os.path.isfile(candidate):
        return os.path.abspath(candidate)
    return None


def load_config_file(path: str) -> Dict[str, Any]:
    """
    Read a JSON configuration file into a raw (unvalidated) dict.

    Args:
        path: Path to the configuration file.

    Returns:
        Dict[str, Any]: Raw configuration with key aliases normalized.

    Raises:
        ConfigFileError: If the file is unreadable, malformed or not an object.
    """
    try:
        with open(path, "r", encoding="utf-8") as f:
            data = json.load(f)
    except OSError as e:
        raise ConfigFileError(path, str(e)) from e
    except json.JSONDecodeError as e:
        raise ConfigFileError(path, f"malformed JSON ({e.msg} at line {e.lineno})") from e

    if not isinstance(data, dict):
        raise ConfigFileError(path, f"expected a JSON object, found {type(data).__name__}")

    logger.debug(f"Configuration file loaded from {path}")
    return normalize_keys(data)


def normalize_keys(data: Dict[str, Any]) -> Dict[str, Any]:
    """Rewrite aliased keys to their canonical snake_case names."""
    out: Dict[str, Any] = {}
    for key, value in data.items():
        out[KEY_ALIASES.get(key, key)] = value
    return out
