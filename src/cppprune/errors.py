"""
Exception types raised by cppprune.

Only AnalysisFailure is meant to reach callers of the optimizer; the other
conditions are handled inside the passes by pruning less.
"""
from __future__ import annotations

from typing import List, Optional


class CppPruneError(Exception):
    """Base class for all cppprune errors."""


class AnalysisFailure(CppPruneError):
    """The C++ front end could not parse or analyze the input."""

    def __init__(self, message: str, diagnostics: Optional[List[str]] = None):
        super().__init__(message)
        self.diagnostics: List[str] = list(diagnostics or [])

    def __str__(self) -> str:
        base = super().__str__()
        if not self.diagnostics:
            return base
        return base + "\n" + "\n".join(f"  {d}" for d in self.diagnostics)


class LedgerAlreadyMaterialized(CppPruneError, RuntimeError):
    """materialize() was called a second time on the same ledger."""


class MissingBufferError(CppPruneError):
    """Accepted removals do not fit the buffer they are applied to."""
