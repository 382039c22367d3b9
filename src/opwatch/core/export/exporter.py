from __future__ import annotations

"""
Artifact Exporter.

Serializes the aggregated summary and the reconstructed dependency tree at
shutdown. Every write goes through an injected opener, which the session
sets to the un-instrumented ``open`` so exporting never re-enters the
interception layer.
"""

import json
import logging
import os
from datetime import datetime, timezone
from typing import IO, Any, Callable, Optional

from rich.console import Console

from opwatch.domain.tracking_models import AggregatedSummary
from opwatch.domain.tree_models import TreeDocument

logger = logging.getLogger(__name__)

Opener = Callable[..., IO[str]]


def utc_timestamp() -> str:
    """ISO 8601 UTC timestamp with millisecond precision (``...T12:00:00.000Z``)."""
    now = datetime.now(timezone.utc)
    return now.isoformat(timespec="milliseconds").replace("+00:00", "Z")


class Exporter:
    """
    Writes session artifacts to files or to the interactive console.

    Args:
        opener: ``open``-compatible callable used for every file write.
        base_dir: Directory relative sink paths are resolved against.
        console: Console for the interactive surface. Created on demand
                 against the current ``sys.stdout`` when omitted.
        clock: Timestamp provider.
    """

    def __init__(
            self,
            opener: Opener = open,
            *,
            base_dir: Optional[str] = None,
            console: Optional[Console] = None,
            clock: Callable[[], str] = utc_timestamp,
    ) -> None:
        self._opener = opener
        self._base_dir = base_dir or os.getcwd()
        self._console = console
        self._clock = clock

    # -------------------------------------------------------------------------
    # PUBLIC API
    # -------------------------------------------------------------------------

    def resolve_path(self, path: str) -> str:
        return os.path.abspath(os.path.join(self._base_dir, os.path.expanduser(path)))

    def write_summary(
            self,
            summary: AggregatedSummary,
            *,
            output: Optional[str] = None,
            structured: bool = False,
    ) -> None:
        """
        Write the one timestamped summary record.

        Args:
            summary: The finalized summary.
            output: File to append to. None targets the console.
            structured: JSON object record instead of a positional record.

        Raises:
            OSError: If the sink cannot be written.
        """
        self._emit("summary", summary.to_dict(), output, structured)

    def write_event(self, message: str, *, output: Optional[str] = None, structured: bool = False) -> None:
        """Write one live-mode line (a single observed call)."""
        self._emit("message", message, output, structured)

    def write_tree(self, document: TreeDocument, path: str) -> str:
        """
        Write the dependency tree document, replacing any previous file.

        Args:
            document: ``{name, children}`` tree document.
            path: Destination, relative paths resolved against ``base_dir``.

        Returns:
            str: Absolute path written.

        Raises:
            OSError: If the destination cannot be written.
        """
        target = self.resolve_path(path)
        with self._opener(target, "w", encoding="utf-8") as f:
            f.write(json.dumps(document, ensure_ascii=False))
        logger.info(f"Dependency tree saved to file: {target}")
        return target

    # -------------------------------------------------------------------------
    # PRIVATE HELPERS
    # -------------------------------------------------------------------------

    def _emit(self, prop_name: str, message: Any, output: Optional[str], structured: bool) -> None:
        now = self._clock()
        if output:
            if structured:
                line = json.dumps({"time": now, prop_name: message}, ensure_ascii=False)
            else:
                text = message if isinstance(message, str) else json.dumps(message, ensure_ascii=False)
                line = f"{now} - {text}"
            target = self.resolve_path(output)
            with self._opener(target, "a", encoding="utf-8") as f:
                f.write(line + "\n")
            return

        console = self._console or Console()
        if structured:
            console.print_json(data={"time": now, prop_name: message})
            return

        # Positional record: scalar tokens flat, nested values pretty-printed
        if isinstance(message, (dict, list)):
            console.print(f"{now} -", markup=False, highlight=False, soft_wrap=True)
            console.print_json(data=message)
        else:
            console.print(f"{now} - {message}", markup=False, highlight=False, soft_wrap=True)
