from __future__ import annotations

"""
Call Tracker and Aggregator.

Collects one argument summary per observed call, keyed by subsystem and
operation, and collapses the collected sequences into an immutable summary
exactly once, when the session shuts down.
"""

import logging
import threading
from collections import Counter
from typing import Callable, Dict, Iterable, List, Optional

from opwatch.domain.constants import (
    ALL_SUBSYSTEMS,
    SUBSYSTEM_IMPORT,
    VENDORED_FILTERED_SUBSYSTEMS,
    VENDORED_TREE_MARKERS,
)
from opwatch.domain.tracking_models import AggregatedSummary, AggregatedValues, RecordKey

logger = logging.getLogger(__name__)

LiveSink = Callable[[str], None]


class Tracker:
    """
    Process-wide store of tracking records.

    Args:
        enabled: Enabled subsystem names. Records for other subsystems are dropped.
        dependencies: When False, apply the vendored-tree heuristic.
        lock: Lock shared with the tree builder to serialize mutations.
        live_sink: If set, every accepted record is emitted immediately as one
                   line instead of being stored for aggregation.
    """

    def __init__(
            self,
            enabled: Iterable[str],
            *,
            dependencies: bool = False,
            lock: Optional[threading.RLock] = None,
            live_sink: Optional[LiveSink] = None,
    ) -> None:
        wanted = set(enabled)
        self._enabled = tuple(s for s in ALL_SUBSYSTEMS if s in wanted)
        self._dependencies = dependencies
        self._lock = lock or threading.RLock()
        self._live_sink = live_sink
        self._records: Dict[RecordKey, List[str]] = {}
        self._summary: Optional[AggregatedSummary] = None

        if SUBSYSTEM_IMPORT in self._enabled:
            self._records[(SUBSYSTEM_IMPORT, None)] = []

    @property
    def enabled(self) -> tuple:
        return self._enabled

    @property
    def finalized(self) -> bool:
        return self._summary is not None

    def is_enabled(self, subsystem: str) -> bool:
        return subsystem in self._enabled

    def record(self, subsystem: str, operation: Optional[str], summary: str) -> bool:
        """
        Append one call summary.

        Args:
            subsystem: Subsystem of the watched operation.
            operation: Operation name, or None for subsystem-level records.
            summary: Short argument summary of the call.

        Returns:
            bool: True if the record was kept (or emitted live).
        """
        if not self.is_enabled(subsystem):
            return False
        if self._is_vendored(subsystem, summary):
            return False

        with self._lock:
            if self._summary is not None:
                logger.debug(f"Record for '{subsystem}' after finalization ignored.")
                return False
            if self._live_sink is not None:
                trigger = f"{subsystem}.{operation}" if operation else subsystem
                self._live_sink(f"{trigger} | {summary}")
                return True
            self._records.setdefault((subsystem, operation), []).append(summary)
        return True

    def records(self, subsystem: str, operation: Optional[str] = None) -> List[str]:
        """Copy of the raw sequence for a key (empty once finalized)."""
        with self._lock:
            return list(self._records.get((subsystem, operation), []))

    def finalize(self, frequency: bool) -> AggregatedSummary:
        """
        Collapse every sequence into unique values or occurrence counts.

        Destructive: raw sequences are released. Only the first call does any
        work; later calls return the same summary.

        Args:
            frequency: True for value -> count, False for ordered unique values.

        Returns:
            AggregatedSummary: The immutable, terminal summary.
        """
        with self._lock:
            if self._summary is not None:
                logger.debug("Tracker already finalized; returning existing summary.")
                return self._summary

            entries: Dict[RecordKey, AggregatedValues] = {}
            for key, values in self._records.items():
                if frequency:
                    entries[key] = dict(Counter(values))
                else:
                    entries[key] = tuple(dict.fromkeys(values))

            self._records = {}
            self._summary = AggregatedSummary.build(frequency, self._enabled, entries)
            return self._summary

    # -------------------------------------------------------------------------
    # PRIVATE HELPERS
    # -------------------------------------------------------------------------

    def _is_vendored(self, subsystem: str, summary: str) -> bool:
        """Substring match against install-tree markers."""
        if self._dependencies or subsystem not in VENDORED_FILTERED_SUBSYSTEMS:
            return False
        return any(marker in summary for marker in VENDORED_TREE_MARKERS)
