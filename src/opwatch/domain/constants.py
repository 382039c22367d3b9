from __future__ import annotations

"""
Domain Constants.

Centralizes the closed vocabularies shared by the instrumentation engine:
subsystem identifiers, tree identities, configuration discovery names and
the markers used by the vendored-tree heuristic.
"""

from typing import FrozenSet, Tuple

# -----------------------------------------------------------------------------
# SUBSYSTEMS
# -----------------------------------------------------------------------------

SUBSYSTEM_FS = "fs"
SUBSYSTEM_HTTP = "http"
SUBSYSTEM_HTTPS = "https"
SUBSYSTEM_SUBPROCESS = "subprocess"
SUBSYSTEM_IMPORT = "import"

# Declaration order is also the order of the exported summary
ALL_SUBSYSTEMS: Tuple[str, ...] = (
    SUBSYSTEM_FS,
    SUBSYSTEM_HTTP,
    SUBSYSTEM_HTTPS,
    SUBSYSTEM_SUBPROCESS,
    SUBSYSTEM_IMPORT,
)

# Subsystems whose summaries are subject to the vendored-tree heuristic
VENDORED_FILTERED_SUBSYSTEMS: FrozenSet[str] = frozenset({SUBSYSTEM_FS})

# Substrings identifying third-party install trees
VENDORED_TREE_MARKERS: Tuple[str, ...] = ("site-packages", "dist-packages")

# -----------------------------------------------------------------------------
# DEPENDENCY TREE
# -----------------------------------------------------------------------------

ROOT_IDENTITY = "."
PACKAGE_INDEX_FILE = "__init__.py"

# -----------------------------------------------------------------------------
# CONFIGURATION
# -----------------------------------------------------------------------------

CONFIG_FILE_NAME = "instrument.config.json"
