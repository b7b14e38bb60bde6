"""
Closure of "must keep" declarations over the use-graph.

Roots are accepted unconditionally; everything a used declaration uses is
used as well. Traversal is a breadth-first worklist, so cycles and self
loops terminate and the cost is linear in the size of the graph.
"""
from __future__ import annotations

import logging
from collections import deque
from typing import Dict, Iterable, Iterator, Optional, Set

from .source_model import Declaration, UseGraph, iter_declarations

logger = logging.getLogger(__name__)


class UsedDeclarations:
    """Used set plus the registry of used declarations written in the main file.

    Only the main-file registry matters to the removal passes: declarations
    living elsewhere are never candidates for removal.
    """

    def __init__(self) -> None:
        self._used: Set[str] = set()
        self._in_main_file: Set[str] = set()

    def add(self, key: str) -> bool:
        if key in self._used:
            return False
        self._used.add(key)
        return True

    def add_if_in_main_file(self, key: str, in_main_file: bool) -> None:
        if in_main_file:
            self._in_main_file.add(key)

    def contains(self, key: str) -> bool:
        return key in self._used

    def in_main_file(self, key: str) -> bool:
        return key in self._in_main_file

    @property
    def kept_in_main_file(self) -> Set[str]:
        return set(self._in_main_file)

    def __contains__(self, key: object) -> bool:
        return key in self._used

    def __len__(self) -> int:
        return len(self._used)

    def __iter__(self) -> Iterator[str]:
        return iter(sorted(self._used))


def _main_file_map(declarations: Optional[Iterable[Declaration]]) -> Dict[str, bool]:
    membership: Dict[str, bool] = {}
    if declarations is None:
        return membership
    for decl in iter_declarations(list(declarations)):
        key = decl.graph_key
        # a canonical entity is "in file" if any of its occurrences is
        membership[key] = membership.get(key, False) or decl.in_main_file
    return membership


def compute_used(
    roots: Iterable[str],
    use_graph: UseGraph,
    declarations: Optional[Iterable[Declaration]] = None,
) -> UsedDeclarations:
    """Return every identity reachable from ``roots`` through ``use_graph``.

    ``roots`` must already be graph identities: canonical keys, or the
    occurrence key for namespace blocks. ``declarations`` supplies main-file
    membership; identities it does not mention are treated as external.
    """
    membership = _main_file_map(declarations)
    used = UsedDeclarations()
    queue = deque(roots)
    while queue:
        key = queue.popleft()
        if not used.add(key):
            continue
        used.add_if_in_main_file(key, membership.get(key, False))
        for dep in use_graph.get(key, ()):
            if dep not in used:
                queue.append(dep)

    logger.debug("closure: %d used, %d in main file", len(used), len(used.kept_in_main_file))
    return used
