from __future__ import annotations

"""
Command Line Interface (CLI) Application Controller.

Orchestrates the runner lifecycle: logging bootstrap, configuration
resolution (defaults, project file, command-line overrides), instrumentation
of the current interpreter, execution of the target program as ``__main__``
and the final report once the target returns or exits.
"""

import importlib.util
import json
import os
import runpy
import sys
import traceback
from typing import List, Optional, Tuple

from opwatch.core.config.loader import resolve_config
from opwatch.core.session import InstrumentationSession
from opwatch.domain.errors import ConfigFileError
from opwatch.infra.logging import LoggingConfig, configure_logging, get_logger
from opwatch.interface.cli import args as cli_args

logger = get_logger(__name__)

# -----------------------------------------------------------------------------
# ENTRYPOINT ORCHESTRATOR
# -----------------------------------------------------------------------------

def main(argv: Optional[List[str]] = None) -> int:
    """
    Execute the main CLI application workflow.

    Args:
        argv: Optional list of command line arguments. Defaults to sys.argv.

    Returns:
        int: The target's exit code, 2 for usage or configuration errors.
    """
    # 1. Argument parsing phase
    parser = cli_args.build_parser()
    args = parser.parse_args(argv)

    # 2. Logging bootstrap (console stderr, optional file)
    log_level = "DEBUG" if args.debug else "WARNING"
    configure_logging(LoggingConfig(level=log_level, console=True, log_file=args.log_file))

    logger.debug("CLI execution initiated. Resolving configuration hierarchy...")

    # 3. Configuration resolution (file strict, command line lenient)
    overrides = cli_args.args_to_overrides(args)
    try:
        config, _ = resolve_config(
            overrides,
            config_file=args.config_file,
            discover=not args.use_defaults,
            strict=False,
        )
    except (ConfigFileError, TypeError, ValueError) as e:
        logger.error(str(e))
        print(f"ERROR: {e}", file=sys.stderr)
        return 2

    # Short-circuit if configuration dump is requested
    if args.dump_config:
        print(json.dumps(config.to_dict(), ensure_ascii=False, indent=2))
        return 0

    # 4. Target resolution
    target_args = list(args.target_args)
    if args.module is None and not target_args:
        parser.print_usage(sys.stderr)
        print("ERROR: a script path or -m MODULE is required.", file=sys.stderr)
        return 2

    try:
        entry_point, target_argv = _resolve_target(args.module, target_args)
    except (ImportError, FileNotFoundError) as e:
        logger.error(str(e))
        print(f"ERROR: {e}", file=sys.stderr)
        return 2

    # 5. Instrumented execution phase
    session = InstrumentationSession(config, entry_point=entry_point)
    logger.info(f"Running target: {entry_point}")
    exit_code = _run_target(session, args.module, entry_point, target_argv)

    # 6. Final report
    try:
        session.shutdown()
    except OSError as e:
        logger.error(f"Failed to write instrumentation report: {e}")
        print(f"ERROR: {e}", file=sys.stderr)
        return exit_code or 1

    return exit_code

# -----------------------------------------------------------------------------
# TARGET EXECUTION
# -----------------------------------------------------------------------------

def _resolve_target(module: Optional[str], target_args: List[str]) -> Tuple[str, List[str]]:
    """
    Locate the entry unit without executing it.

    Returns:
        Tuple[str, List[str]]: Entry file path and the target's ``sys.argv``.

    Raises:
        FileNotFoundError: If the script does not exist.
        ImportError: If the module cannot be found.
    """
    if module is None:
        script = os.path.abspath(target_args[0])
        if not os.path.exists(script):
            raise FileNotFoundError(f"Target script not found: {target_args[0]}")
        return script, [script, *target_args[1:]]

    # Same search path ``python -m`` starts with
    cwd = os.getcwd()
    if cwd not in sys.path:
        sys.path.insert(0, cwd)

    spec = importlib.util.find_spec(module)
    if spec is not None and spec.submodule_search_locations is not None:
        spec = importlib.util.find_spec(f"{module}.__main__")
    if spec is None or not spec.origin:
        raise ImportError(f"No module named '{module}'")
    return os.path.abspath(spec.origin), [spec.origin, *target_args]


def _run_target(
        session: InstrumentationSession,
        module: Optional[str],
        entry_point: str,
        target_argv: List[str],
) -> int:
    """Run the target as ``__main__`` under instrumentation and map its exit status."""
    saved_argv = sys.argv[:]
    saved_path0 = sys.path[0] if sys.path else None

    sys.argv = target_argv
    entry_dir = os.getcwd() if module else os.path.dirname(entry_point)
    if sys.path:
        sys.path[0] = entry_dir
    else:
        sys.path.insert(0, entry_dir)

    session.install()
    try:
        if module:
            runpy.run_module(module, run_name="__main__", alter_sys=True)
        else:
            runpy.run_path(entry_point, run_name="__main__")
        return 0
    except SystemExit as e:
        return _exit_code(e.code)
    except KeyboardInterrupt:
        logger.warning("Target interrupted by user.")
        return 130
    except Exception:
        # Same report the interpreter prints for an uncaught exception
        traceback.print_exc()
        return 1
    finally:
        sys.argv = saved_argv
        if saved_path0 is not None and sys.path:
            sys.path[0] = saved_path0


def _exit_code(code: object) -> int:
    if code is None:
        return 0
    if isinstance(code, int):
        return code
    print(code, file=sys.stderr)
    return 1

# -----------------------------------------------------------------------------
# CLI ENTRYPOINT
# -----------------------------------------------------------------------------

if __name__ == "__main__":
    sys.exit(main())
