from __future__ import annotations

"""
Dependency Tree Data Models.

Provides the node type used by the tree builder to reconstruct which loaded
module caused which other module to be imported, and the plain-dict document
shape produced for export.
"""

import weakref
from dataclasses import dataclass, field
from typing import Any, Dict, Iterator, List, Optional

# Exported tree document: {"name": str, "children": [TreeDocument, ...]}
TreeDocument = Dict[str, Any]


# -----------------------------------------------------------------------------
# EVENTS
# -----------------------------------------------------------------------------

@dataclass(frozen=True)
class LoadEvent:
    """
    Observation that a requesting unit caused another unit to be imported.

    Attributes:
        requester: Canonical identity of the importing unit ("." for the entry unit).
        request: Raw request string as written in the import statement.
        resolved: Canonical identity of the imported unit.
        is_package: True if the request named an external package.
    """
    requester: str
    request: str
    resolved: str
    is_package: bool = False


# -----------------------------------------------------------------------------
# STRUCTURAL COMPONENTS
# -----------------------------------------------------------------------------

@dataclass(eq=False)
class ModuleNode:
    """
    A loaded unit in the reconstructed dependency tree.

    Attributes:
        canonical_path: Absolute identity of the unit. None when the unit is
                        an external package and dependency detail is disabled.
        display_name: Human-readable label (bare request for packages).
        children: Child nodes in first-observed order.
    """
    canonical_path: Optional[str]
    display_name: str
    children: List["ModuleNode"] = field(default_factory=list)
    _parent_ref: Optional["weakref.ReferenceType[ModuleNode]"] = field(
        default=None, repr=False
    )

    @property
    def parent(self) -> Optional["ModuleNode"]:
        """Back reference for lookups only. The parent owns the child."""
        if self._parent_ref is None:
            return None
        return self._parent_ref()

    def add_child(self, child: "ModuleNode") -> "ModuleNode":
        child._parent_ref = weakref.ref(self)
        self.children.append(child)
        return child

    def represents(self, resolved: str, request: str) -> bool:
        """True if this node stands for the resolved identity or the raw request."""
        if self.canonical_path is None:
            # Withheld package paths are only known by their request string
            return self.display_name == request
        return self.canonical_path in (resolved, request)

    def walk(self) -> Iterator["ModuleNode"]:
        """Depth-first pre-order iteration over this subtree."""
        yield self
        for child in self.children:
            yield from child.walk()

    def to_document(self) -> TreeDocument:
        """Deep copy of the subtree without bookkeeping fields."""
        return {
            "name": self.display_name,
            "children": [c.to_document() for c in self.children],
        }
