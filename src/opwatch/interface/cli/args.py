from __future__ import annotations

"""
CLI Argument Definition and Mapping.

Defines the command-line schema of the runner and translates the parsed
namespace into configuration overrides understood by the validator.
"""

import argparse
from typing import Any, Dict, List, Optional

from opwatch.domain.constants import ALL_SUBSYSTEMS, CONFIG_FILE_NAME

# -----------------------------------------------------------------------------
# ARGUMENT DEFINITION
# -----------------------------------------------------------------------------

def build_parser() -> argparse.ArgumentParser:
    """
    Construct the argument parser for the opwatch runner.

    Returns:
        argparse.ArgumentParser: Configured parser instance.
    """
    p = argparse.ArgumentParser(
        prog="opwatch",
        usage="%(prog)s [options] (script.py | -m module) [args ...]",
        description=(
            "Run a Python program with its filesystem, network, subprocess and "
            "import activity observed, then report what it touched."
        ),
    )

    # --- Target Selection ---
    p.add_argument(
        "-m",
        dest="module",
        metavar="MODULE",
        default=None,
        help="Run a library module as a script, like 'python -m'.",
    )
    p.add_argument(
        "target_args",
        nargs=argparse.REMAINDER,
        help="Script path followed by its arguments (only the arguments with -m).",
    )

    # --- Sinks ---
    p.add_argument(
        "-o", "--output",
        dest="output",
        default=None,
        help="Append the report to this file instead of printing it.",
    )
    p.add_argument(
        "--tree-output",
        dest="require_tree_output",
        default=None,
        help="Write the import dependency tree as JSON to this file.",
    )

    # --- Report Shape ---
    p.add_argument(
        "--structured",
        action="store_true",
        help="Emit JSON objects ({time, summary}) instead of positional records.",
    )
    p.add_argument(
        "--frequency",
        action="store_true",
        help="Count occurrences of each call summary instead of listing unique ones.",
    )
    p.add_argument(
        "--live",
        action="store_true",
        help="Write every observed call as it happens instead of a final summary.",
    )

    # --- Scope ---
    p.add_argument(
        "--modules",
        dest="modules",
        default=None,
        help=f"Comma-separated subsystems to watch ({','.join(ALL_SUBSYSTEMS)}).",
    )
    p.add_argument(
        "--dependencies",
        action="store_true",
        help="Keep activity of installed third-party packages in the report.",
    )

    # --- Configuration and Diagnostic Tools ---
    p.add_argument(
        "--config",
        dest="config_file",
        default=None,
        help=f"Configuration file to use instead of ./{CONFIG_FILE_NAME}.",
    )
    p.add_argument(
        "--use-defaults",
        action="store_true",
        help=f"Ignore ./{CONFIG_FILE_NAME}.",
    )
    p.add_argument(
        "--dump-config",
        action="store_true",
        help="Print the effective configuration as JSON and exit.",
    )
    p.add_argument(
        "--debug",
        action="store_true",
        help="Elevate logging verbosity to DEBUG.",
    )
    p.add_argument(
        "--log-file",
        dest="log_file",
        default=None,
        help="Also write diagnostic logs to this file.",
    )

    return p

# -----------------------------------------------------------------------------
# ARGUMENT MAPPING
# -----------------------------------------------------------------------------

def args_to_overrides(args: argparse.Namespace) -> Dict[str, Any]:
    """
    Translate the argparse Namespace into a configuration override dictionary.

    Only flags given on the command line are included, so the configuration
    file keeps control of everything else.

    Args:
        args: Parsed command-line arguments.

    Returns:
        Dict[str, Any]: Configuration overrides subset.
    """
    overrides: Dict[str, Any] = {}

    if args.output:
        overrides["output"] = args.output
    if args.require_tree_output:
        overrides["require_tree_output"] = args.require_tree_output

    if args.structured:
        overrides["structured"] = True
    if args.frequency:
        overrides["frequency"] = True
    if args.live:
        overrides["summary"] = False

    if args.modules is not None:
        overrides["modules"] = _split_csv(args.modules)
    if args.dependencies:
        overrides["dependencies"] = True

    return overrides

# -----------------------------------------------------------------------------
# HELPERS
# -----------------------------------------------------------------------------

def _split_csv(value: Optional[str]) -> Optional[List[str]]:
    """
    Convert a comma-separated string into a list of sanitized strings.
    """
    if value is None:
        return None
    parts = [x.strip() for x in value.split(",")]
    return [x for x in parts if x]
