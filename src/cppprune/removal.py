"""
Whole-declaration removal for declarations outside the used set.
"""
from __future__ import annotations

import logging
from typing import Iterable, List

from .ledger import RemovalLedger, RemoveOptions
from .reachability import UsedDeclarations
from .source_model import Declaration

logger = logging.getLogger(__name__)


class UnusedDeclarationRemover:
    """Walks top-level declarations and requests removal of the unused ones.

    Namespace blocks are judged per occurrence: an unused block goes as a
    whole, a used one is descended into. Variables in declarator groups are
    left for the declarator splitter. Keep decisions read the main-file
    registry of ``used``.
    """

    def __init__(self, used: UsedDeclarations, ledger: RemovalLedger, collapse_empty_lines: bool = True):
        self.used = used
        self.ledger = ledger
        self.options = RemoveOptions(collapse_empty_line=collapse_empty_lines)
        self.removed: List[Declaration] = []

    def visit(self, declarations: Iterable[Declaration]) -> int:
        for decl in declarations:
            self._visit_one(decl)
        return len(self.removed)

    def _visit_one(self, decl: Declaration) -> None:
        if not decl.in_main_file or decl.grouped:
            return
        if self.used.in_main_file(decl.graph_key):
            if decl.is_namespace:
                self.visit(decl.children)
            return
        if self.ledger.remove(decl.range, self.options):
            self.removed.append(decl)
        else:
            logger.debug("removal of %s %r conflicted; kept", decl.kind.value, decl.name)


def remove_unused_declarations(
    declarations: Iterable[Declaration],
    used: UsedDeclarations,
    ledger: RemovalLedger,
    collapse_empty_lines: bool = True,
) -> List[Declaration]:
    remover = UnusedDeclarationRemover(used, ledger, collapse_empty_lines)
    remover.visit(declarations)
    return remover.removed
