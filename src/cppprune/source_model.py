"""
Source model shared by the front end and the pruning passes.

Ranges are half-open character offsets into the text of the file being
optimized. Declarations carry two identities: ``key`` names one physical
occurrence, ``canonical_key`` the merged logical entity (forward declaration
and definition share it). Namespace blocks are the exception and are always
tracked per occurrence.
"""
from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import TYPE_CHECKING, Dict, Iterator, List, Optional, Set

if TYPE_CHECKING:
    from .declarators import TokenLocator


@dataclass(frozen=True, order=True)
class SourceRange:
    start: int
    end: int

    @property
    def is_valid(self) -> bool:
        return self.start >= 0 and self.end >= self.start

    @property
    def is_empty(self) -> bool:
        return self.start == self.end

    def __len__(self) -> int:
        return max(0, self.end - self.start)

    def contains(self, other: "SourceRange") -> bool:
        return self.start <= other.start and other.end <= self.end

    def overlaps(self, other: "SourceRange") -> bool:
        return self.start < other.end and other.start < self.end

    def partially_overlaps(self, other: "SourceRange") -> bool:
        """Share some positions while neither range contains the other."""
        if not self.overlaps(other):
            return False
        return not (self.contains(other) or other.contains(self))


class DeclKind(Enum):
    NAMESPACE = "namespace"
    FUNCTION = "function"
    VARIABLE = "variable"
    TYPE = "type"
    TYPEDEF = "typedef"
    TEMPLATE = "template"
    USING = "using"
    OTHER = "other"


# Maps identity -> identities it uses
UseGraph = Dict[str, Set[str]]


@dataclass
class Declaration:
    key: str
    canonical_key: str
    kind: DeclKind
    name: str
    range: SourceRange
    in_main_file: bool = True
    grouped: bool = False  # namespace-scope variable handled by the declarator splitter
    children: List["Declaration"] = field(default_factory=list)

    @property
    def is_namespace(self) -> bool:
        return self.kind == DeclKind.NAMESPACE

    @property
    def graph_key(self) -> str:
        return self.key if self.is_namespace else self.canonical_key


def iter_declarations(declarations: List[Declaration]) -> Iterator[Declaration]:
    """Depth-first walk over declarations and their lexical children."""
    stack = list(reversed(declarations))
    while stack:
        decl = stack.pop()
        yield decl
        stack.extend(reversed(decl.children))


@dataclass
class Declarator:
    key: str
    name: str
    name_start: Optional[int]
    end: Optional[int]  # end of initializer (exclusive)

    @property
    def has_location(self) -> bool:
        return (
            self.name_start is not None
            and self.end is not None
            and 0 <= self.name_start <= self.end
        )


@dataclass
class DeclaratorGroup:
    """One statement declaring several names that share a base type."""

    type_start: int
    declarators: List[Declarator] = field(default_factory=list)

    def __len__(self) -> int:
        return len(self.declarators)


@dataclass
class TranslationUnitAnalysis:
    file_name: str
    text: str
    declarations: List[Declaration] = field(default_factory=list)
    use_graph: UseGraph = field(default_factory=dict)
    roots: Set[str] = field(default_factory=set)
    groups: List[DeclaratorGroup] = field(default_factory=list)
    diagnostics: List[str] = field(default_factory=list)
    # token queries from the front end; None falls back to the text lexer
    token_locator: Optional[TokenLocator] = None
