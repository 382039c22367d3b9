from __future__ import annotations

"""
Dependency Tree Builder.

Incrementally reconstructs the import tree from an unordered stream of load
events. Events are positioned by matching the requester against nodes that
already exist, so the tree grows top-down from the entry unit; events whose
requester is not in the tree yet are dropped.
"""

import logging
import threading
from collections import deque
from typing import Callable, Deque, Dict, Optional

from opwatch.core.resolution.resolver import strip_identity
from opwatch.domain.constants import ROOT_IDENTITY
from opwatch.domain.tree_models import LoadEvent, ModuleNode, TreeDocument

logger = logging.getLogger(__name__)

# predicate(node, matches_so_far) -> bool
MatchPredicate = Callable[[ModuleNode, Dict[str, Optional[ModuleNode]]], bool]

PARENT = "parent"
PARENT_STRIPPED = "parent_stripped"


# -----------------------------------------------------------------------------
# TRAVERSAL
# -----------------------------------------------------------------------------

def traverse_with_criteria(
        root: ModuleNode,
        criteria: Dict[str, MatchPredicate],
) -> Dict[str, Optional[ModuleNode]]:
    """
    Evaluate several named predicates in one breadth-first pass.

    Each predicate keeps its first matching node and is not evaluated again
    once satisfied. The walk stops as soon as every predicate is satisfied.
    Predicates receive the matches found so far, so a predicate can depend on
    another one (a node is always visited after its parent).

    Args:
        root: Node to start from.
        criteria: Predicates by name.

    Returns:
        Dict[str, Optional[ModuleNode]]: First match per predicate name.
    """
    matches: Dict[str, Optional[ModuleNode]] = {name: None for name in criteria}
    pending = dict(criteria)
    queue: Deque[ModuleNode] = deque([root])

    while queue and pending:
        node = queue.popleft()
        for name, predicate in list(pending.items()):
            if predicate(node, matches):
                matches[name] = node
                del pending[name]
        queue.extend(node.children)

    return matches


# -----------------------------------------------------------------------------
# BUILDER
# -----------------------------------------------------------------------------

class DependencyTreeBuilder:
    """
    Owns the reconstructed tree of module identities.

    Args:
        dependencies: When False, package nodes withhold their canonical path.
        lock: Lock shared with the tracker to serialize mutations.
    """

    def __init__(self, *, dependencies: bool = False, lock: Optional[threading.RLock] = None) -> None:
        self._dependencies = dependencies
        self._lock = lock or threading.RLock()
        self._root = ModuleNode(canonical_path=ROOT_IDENTITY, display_name=ROOT_IDENTITY)
        self._frozen = False

    @property
    def root(self) -> ModuleNode:
        return self._root

    @property
    def frozen(self) -> bool:
        return self._frozen

    def add_load(self, event: LoadEvent) -> Optional[ModuleNode]:
        """
        Position a load event in the tree.

        Args:
            event: The observed load.

        Returns:
            Optional[ModuleNode]: The node representing the loaded unit under
            the matched parent (new or pre-existing), or None if the event was
            dropped because its requester is not in the tree.
        """
        with self._lock:
            if self._frozen:
                return None

            matches = traverse_with_criteria(self._root, self._criteria(event))
            parent = matches[PARENT] or matches[PARENT_STRIPPED]
            if parent is None:
                logger.debug(f"Dropped load of '{event.request}': requester '{event.requester}' not in tree")
                return None

            existing = next(
                (c for c in parent.children if c.represents(event.resolved, event.request)),
                None,
            )
            if existing is not None:
                return existing

            withhold = event.is_package and not self._dependencies
            node = ModuleNode(
                canonical_path=None if withhold else event.resolved,
                display_name=event.request if event.is_package else event.resolved,
            )
            return parent.add_child(node)

    def freeze(self) -> None:
        """Make the tree terminal. Later events are ignored."""
        with self._lock:
            self._frozen = True

    def node_count(self) -> int:
        with self._lock:
            return sum(1 for _ in self._root.walk())

    def to_document(self, entry_name: str) -> TreeDocument:
        """
        Export the tree as ``{name, children}`` with the root named after the entry unit.
        """
        with self._lock:
            document = self._root.to_document()
        document["name"] = entry_name
        return document

    # -------------------------------------------------------------------------
    # PRIVATE HELPERS
    # -------------------------------------------------------------------------

    def _criteria(self, event: LoadEvent) -> Dict[str, MatchPredicate]:
        requester = event.requester
        stripped_requester = strip_identity(requester)

        def is_parent(node: ModuleNode, matches: Dict[str, Optional[ModuleNode]]) -> bool:
            return node.canonical_path == requester

        def is_parent_stripped(node: ModuleNode, matches: Dict[str, Optional[ModuleNode]]) -> bool:
            # Heuristic: first unit sharing the extension-less form, may be the wrong one
            path = node.canonical_path
            return path is not None and strip_identity(path) == stripped_requester

        return {
            PARENT: is_parent,
            PARENT_STRIPPED: is_parent_stripped,
        }
