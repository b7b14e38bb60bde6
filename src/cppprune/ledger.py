"""
Range removal ledger: the single arbiter for deletions over one file.

Independent passes (whole-declaration removal, preprocessor pruning,
declarator splitting) submit candidate deletions without coordinating. The
ledger accepts a request only if it does not partially overlap anything
already accepted, so accepted ranges always form a nested-or-disjoint
family. Rejected requests are dropped silently: the text is left
under-pruned rather than corrupted.

Nesting policy: when one accepted range contains another, both are kept.
Rendering takes the union of all accepted ranges, so the inner one is
simply redundant.

Accepted ranges are also kept as a forest ordered by start, each node
holding the ranges it contains. An overlap check descends one chain of
containing ranges and looks at no more than two siblings per level.
"""
from __future__ import annotations

import logging
from bisect import bisect_left, bisect_right
from dataclasses import dataclass, field
from typing import List, Tuple

from .errors import LedgerAlreadyMaterialized, MissingBufferError
from .source_model import SourceRange

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class RemoveOptions:
    # Drop the whole line (and its newline) when it is blank after removal
    collapse_empty_line: bool = False


@dataclass(frozen=True)
class RewriteItem:
    range: SourceRange
    options: RemoveOptions = field(default_factory=RemoveOptions)

    @property
    def sort_key(self) -> Tuple[int, int]:
        return (self.range.start, self.range.end)


class _Node:
    __slots__ = ("start", "end", "starts", "children")

    def __init__(self, start: int, end: int):
        self.start = start
        self.end = end
        self.starts: List[int] = []
        self.children: List[_Node] = []

    def contains(self, start: int, end: int) -> bool:
        return self.start <= start and end <= self.end


class RemovalLedger:
    """Accumulates non-overlapping deletions and renders the surviving text.

    Not thread-safe: passes must call can_remove/remove sequentially, the
    pair being one atomic decision.
    """

    def __init__(self, text: str, file_name: str = "<input>"):
        self._text = text
        self.file_name = file_name
        self._keys: List[Tuple[int, int]] = []
        self._items: List[RewriteItem] = []
        self._root = _Node(-1, -1)
        self._materialized = False
        self.rejected = 0

    @property
    def materialized(self) -> bool:
        return self._materialized

    @property
    def items(self) -> Tuple[RewriteItem, ...]:
        return tuple(self._items)

    def __len__(self) -> int:
        return len(self._items)

    def can_remove(self, rng: SourceRange) -> bool:
        if not rng.is_valid:
            return False
        if rng.is_empty:
            return True
        node = self._root
        while True:
            # siblings are disjoint: those overlapping rng form a run [lo, hi)
            lo = bisect_right(node.starts, rng.start) - 1
            if lo < 0 or node.children[lo].end <= rng.start:
                lo += 1
            hi = bisect_left(node.starts, rng.end)
            if lo >= hi:
                return True
            first = node.children[lo]
            if first.contains(rng.start, rng.end):
                node = first
                continue
            # everything strictly between first and last lies inside rng
            return all(
                rng.start <= child.start and child.end <= rng.end
                for child in (first, node.children[hi - 1])
            )

    def remove(self, rng: SourceRange, options: RemoveOptions = RemoveOptions()) -> bool:
        if self._materialized:
            raise LedgerAlreadyMaterialized(f"{self.file_name}: ledger already materialized")
        if not self.can_remove(rng):
            self.rejected += 1
            logger.debug("%s: rejected removal of [%d, %d)", self.file_name, rng.start, rng.end)
            return False
        if rng.is_empty:
            return True
        item = RewriteItem(rng, options)
        idx = bisect_left(self._keys, item.sort_key)
        self._keys.insert(idx, item.sort_key)
        self._items.insert(idx, item)
        self._insert_node(rng)
        return True

    def materialize(self) -> str:
        if self._materialized:
            raise LedgerAlreadyMaterialized(f"{self.file_name}: ledger already materialized")
        self._materialized = True
        if not self._items:
            return self._text
        try:
            spans = self._deleted_spans()
        except MissingBufferError as e:
            logger.warning("%s: %s; returning source unchanged", self.file_name, e)
            return self._text
        return _render(self._text, spans)

    # --- internals ---
    def _insert_node(self, rng: SourceRange) -> None:
        node = self._root
        while True:
            idx = bisect_right(node.starts, rng.start) - 1
            if idx < 0 or not node.children[idx].contains(rng.start, rng.end):
                break
            node = node.children[idx]
            if (node.start, node.end) == (rng.start, rng.end):
                return
        lo = bisect_left(node.starts, rng.start)
        hi = bisect_left(node.starts, rng.end)
        new = _Node(rng.start, rng.end)
        new.starts = node.starts[lo:hi]
        new.children = node.children[lo:hi]
        node.starts[lo:hi] = [rng.start]
        node.children[lo:hi] = [new]

    def _deleted_spans(self) -> List[Tuple[int, int]]:
        size = len(self._text)
        for item in self._items:
            if item.range.end > size:
                raise MissingBufferError(
                    f"range [{item.range.start}, {item.range.end}) exceeds buffer of {size} chars"
                )
        base = _merge([item.sort_key for item in self._items])
        extra: List[Tuple[int, int]] = []
        for item in self._items:
            if not item.options.collapse_empty_line:
                continue
            line = self._blank_line_after(item.range, base)
            if line is not None:
                extra.append(line)
        if not extra:
            return base
        return _merge(base + extra)

    def _blank_line_after(self, rng: SourceRange, spans: List[Tuple[int, int]]):
        """Span of the lines touched by rng when nothing but whitespace survives on them."""
        text = self._text
        line_start = text.rfind("\n", 0, rng.start) + 1
        last = rng.end - 1 if rng.end > rng.start else rng.start
        line_end = text.find("\n", last)
        if line_end == -1:
            line_end = len(text)
        pos = line_start
        idx = max(0, bisect_left(spans, (line_start, -1)) - 1)
        for start, end in spans[idx:]:
            if start >= line_end:
                break
            if end <= pos:
                continue
            if start > pos and text[pos:start].strip():
                return None
            pos = max(pos, end)
        if pos < line_end and text[pos:line_end].strip():
            return None
        return (line_start, min(line_end + 1, len(text)))


def _merge(spans: List[Tuple[int, int]]) -> List[Tuple[int, int]]:
    merged: List[Tuple[int, int]] = []
    for start, end in sorted(spans):
        if merged and start <= merged[-1][1]:
            if end > merged[-1][1]:
                merged[-1] = (merged[-1][0], end)
            continue
        merged.append((start, end))
    return merged


def _render(text: str, spans: List[Tuple[int, int]]) -> str:
    out: List[str] = []
    pos = 0
    for start, end in spans:
        out.append(text[pos:start])
        pos = end
    out.append(text[pos:])
    return "".join(out)
