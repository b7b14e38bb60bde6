"""
Optimizer: drives one dead-code elimination run over one file.

Pipeline:
  analysis (declarations, use-graph, roots)
    -> closure of used declarations
    -> whole-declaration removal
    -> preprocessor pruning (inactive branches, unused macros)
    -> declarator splitting
    -> flush of still-open conditionals
    -> materialization of the ledger

All passes write to one RemovalLedger in this fixed order. Only analysis
failures abort a run; every other problem leaves more code in place.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, Iterable, List, Optional, Union

from .config_loader import PruneConfig
from .declarators import remove_unused_variables
from .ledger import RemovalLedger, RemoveOptions
from .preprocessor import InactiveBlockTracker, MacroTable, defines_from_args, remove_unused_macros, scan_directives
from .reachability import UsedDeclarations, compute_used
from .removal import remove_unused_declarations
from .source_model import TranslationUnitAnalysis, iter_declarations
from .tokens import TextTokenLocator

logger = logging.getLogger(__name__)


@dataclass
class OptimizeResult:
    file_name: str
    text: str
    used: UsedDeclarations
    removed_declarations: List[str] = field(default_factory=list)
    removed_declarators: int = 0
    removed_conditionals: int = 0
    removed_macros: List[str] = field(default_factory=list)
    rejected_removals: int = 0
    declarations_total: int = 0
    analysis: Optional[TranslationUnitAnalysis] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "version": "1.0",
            "file": self.file_name,
            "summary": {
                "declarations": self.declarations_total,
                "used": len(self.used),
                "kept_in_file": len(self.used.kept_in_main_file),
                "removed_declarations": len(self.removed_declarations),
                "removed_declarators": self.removed_declarators,
                "removed_conditionals": self.removed_conditionals,
                "removed_macros": len(self.removed_macros),
                "rejected_removals": self.rejected_removals,
            },
            "removed_declarations": sorted(self.removed_declarations),
            "removed_macros": sorted(self.removed_macros),
        }


def run_passes(
    analysis: TranslationUnitAnalysis,
    macros_to_keep: Iterable[str] = (),
    defines: Optional[MacroTable] = None,
    collapse_empty_lines: bool = True,
    prune_macros: bool = True,
) -> OptimizeResult:
    """Run every removal pass over an already analyzed file."""
    keep_macros = set(macros_to_keep)
    text = analysis.text

    used = compute_used(analysis.roots, analysis.use_graph, analysis.declarations)
    ledger = RemovalLedger(text, analysis.file_name)

    removed = remove_unused_declarations(analysis.declarations, used, ledger, collapse_empty_lines)

    tracker = InactiveBlockTracker(ledger, keep_macros)
    scan_directives(text, tracker, defines if defines is not None else MacroTable())
    macros: List[str] = []
    if prune_macros:
        macros = remove_unused_macros(text, ledger, keep_macros)

    options = RemoveOptions(collapse_empty_line=collapse_empty_lines)
    locator = analysis.token_locator or TextTokenLocator(text)
    declarators = remove_unused_variables(analysis.groups, used.contains, ledger, locator, options)

    tracker.finalize(len(text))
    output = ledger.materialize()

    result = OptimizeResult(
        file_name=analysis.file_name,
        text=output,
        used=used,
        removed_declarations=[d.name for d in removed],
        removed_declarators=declarators,
        removed_conditionals=tracker.removed_chains,
        removed_macros=macros,
        rejected_removals=ledger.rejected,
        declarations_total=sum(1 for _ in iter_declarations(analysis.declarations)),
        analysis=analysis,
    )
    logger.info(
        "%s: removed %d declarations, %d declarator spans, %d conditionals, %d macros (%d conflicts)",
        analysis.file_name,
        len(result.removed_declarations),
        result.removed_declarators,
        result.removed_conditionals,
        len(result.removed_macros),
        result.rejected_removals,
    )
    return result


class Optimizer:
    """Removes everything in a flattened C++ file that ``main`` does not need."""

    def __init__(
        self,
        compile_args: Iterable[str] = (),
        macros_to_keep: Iterable[str] = (),
        keep_names: Iterable[str] = (),
        config: Optional[PruneConfig] = None,
        analyzer: Any = None,
    ):
        base = config or PruneConfig()
        self.config = base.merged(list(compile_args), list(macros_to_keep), list(keep_names))
        self._analyzer = analyzer

    @property
    def analyzer(self):
        if self._analyzer is None:
            # libclang is imported on first use
            from .frontend import ClangAnalyzer

            self._analyzer = ClangAnalyzer(self.config.compile_args, self.config.keep_names)
        return self._analyzer

    def optimize_result(self, cpp_file: Union[str, Path]) -> OptimizeResult:
        analysis = self.analyzer.analyze(str(cpp_file))
        return run_passes(
            analysis,
            macros_to_keep=self.config.macros_to_keep,
            defines=defines_from_args(self.config.compile_args),
            collapse_empty_lines=self.config.collapse_empty_lines,
            prune_macros=self.config.remove_unused_macros,
        )

    def optimize(self, cpp_file: Union[str, Path]) -> str:
        return self.optimize_result(cpp_file).text


def optimize_file(
    cpp_file: Union[str, Path],
    compile_args: Iterable[str] = (),
    macros_to_keep: Iterable[str] = (),
    keep_names: Iterable[str] = (),
    config: Optional[PruneConfig] = None,
) -> str:
    """Optimize one file and return the surviving text."""
    return Optimizer(compile_args, macros_to_keep, keep_names, config).optimize(cpp_file)
