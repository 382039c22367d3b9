from __future__ import annotations

"""
Tracking Domain Data Models.

Defines the record keys collected while the host program runs and the
immutable summary derived from them once, at finalization.
"""

from dataclasses import dataclass
from types import MappingProxyType
from typing import Any, Dict, Mapping, Optional, Sequence, Tuple, Union

# (subsystem, operation). Operation is None for subsystem-level records (imports)
RecordKey = Tuple[str, Optional[str]]

# Dedup mode: ordered unique summaries. Frequency mode: summary -> count.
AggregatedValues = Union[Tuple[str, ...], Mapping[str, int]]


# -----------------------------------------------------------------------------
# CORE DATA MODELS
# -----------------------------------------------------------------------------

@dataclass(frozen=True)
class AggregatedSummary:
    """
    Terminal, read-only view of every tracking record.

    Attributes:
        frequency: True if values are occurrence counts, False for unique sets.
        subsystems: Enabled subsystems, in export order.
        entries: Aggregated values per record key, in first-recorded order.
    """
    frequency: bool
    subsystems: Tuple[str, ...]
    entries: Mapping[RecordKey, AggregatedValues]

    @classmethod
    def build(
            cls,
            frequency: bool,
            subsystems: Sequence[str],
            entries: Dict[RecordKey, AggregatedValues],
    ) -> "AggregatedSummary":
        frozen: Dict[RecordKey, AggregatedValues] = {}
        for key, value in entries.items():
            if isinstance(value, Mapping):
                frozen[key] = MappingProxyType(dict(value))
            else:
                frozen[key] = tuple(value)
        return cls(
            frequency=frequency,
            subsystems=tuple(subsystems),
            entries=MappingProxyType(frozen),
        )

    def get(self, subsystem: str, operation: Optional[str] = None) -> Optional[AggregatedValues]:
        return self.entries.get((subsystem, operation))

    def to_dict(self) -> Dict[str, Any]:
        """
        Nest the summary by subsystem for serialization.

        Subsystem-level records (operation None) map the subsystem directly to
        its values; operation records map subsystem -> operation -> values.
        Enabled subsystems without any record appear as empty objects.
        """
        out: Dict[str, Any] = {s: {} for s in self.subsystems}
        for (subsystem, operation), values in self.entries.items():
            plain: Any = dict(values) if isinstance(values, Mapping) else list(values)
            if operation is None:
                out[subsystem] = plain
                continue
            bucket = out.setdefault(subsystem, {})
            if isinstance(bucket, dict):
                bucket[operation] = plain
        return out
