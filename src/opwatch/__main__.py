from __future__ import annotations

"""
Module Entry Point.

Allows ``python -m opwatch [options] script.py [args ...]``.
"""

import sys

from opwatch.interface.cli.app import main

if __name__ == "__main__":
    sys.exit(main())
