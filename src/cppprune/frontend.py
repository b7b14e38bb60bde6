"""
libclang front end: turns one C++ file into a TranslationUnitAnalysis.

Graph nodes are the namespace-scope declarations of the main file. Every
reference found anywhere inside a declaration becomes an edge from that
declaration. Declarations nested inside another one (members, locals,
enumerators) are tied to their owner in both directions, so a reference to
a member keeps its class and a kept class keeps all of its members.

Template instantiations are not visible through the cursor API, so a few
kinds of declarations that are typically only used from instantiated
library code (overloaded operators, explicit specializations) are treated
as roots.
"""
from __future__ import annotations

import logging
import os
from bisect import bisect_left
from collections import defaultdict
from itertools import islice
from pathlib import Path
from typing import Dict, Iterable, Iterator, List, Optional, Sequence, Set, Tuple

from clang import cindex

from .errors import AnalysisFailure
from .source_model import (
    Declaration,
    Declarator,
    DeclaratorGroup,
    DeclKind,
    SourceRange,
    TranslationUnitAnalysis,
)
from .tokens import Token, char_before, find_at_depth_zero, iter_directive_spans, skip_horizontal_space

logger = logging.getLogger(__name__)

_KIND_MAP: Dict[str, DeclKind] = {
    "NAMESPACE": DeclKind.NAMESPACE,
    "FUNCTION_DECL": DeclKind.FUNCTION,
    "CXX_METHOD": DeclKind.FUNCTION,
    "CONSTRUCTOR": DeclKind.FUNCTION,
    "DESTRUCTOR": DeclKind.FUNCTION,
    "CONVERSION_FUNCTION": DeclKind.FUNCTION,
    "VAR_DECL": DeclKind.VARIABLE,
    "STRUCT_DECL": DeclKind.TYPE,
    "CLASS_DECL": DeclKind.TYPE,
    "UNION_DECL": DeclKind.TYPE,
    "ENUM_DECL": DeclKind.TYPE,
    "TYPEDEF_DECL": DeclKind.TYPEDEF,
    "TYPE_ALIAS_DECL": DeclKind.TYPEDEF,
    "TYPE_ALIAS_TEMPLATE_DECL": DeclKind.TEMPLATE,
    "FUNCTION_TEMPLATE": DeclKind.TEMPLATE,
    "CLASS_TEMPLATE": DeclKind.TEMPLATE,
    "CLASS_TEMPLATE_PARTIAL_SPECIALIZATION": DeclKind.TEMPLATE,
    "USING_DIRECTIVE": DeclKind.USING,
    "USING_DECLARATION": DeclKind.USING,
    "NAMESPACE_ALIAS": DeclKind.USING,
}

# Kinds whose bodies are analyzed only on instantiation
_TEMPLATE_KINDS = {"FUNCTION_TEMPLATE", "CLASS_TEMPLATE", "CLASS_TEMPLATE_PARTIAL_SPECIALIZATION"}

# References resolved by name when libclang cannot resolve them
_NAME_REF_KINDS = {"OVERLOADED_DECL_REF", "DECL_REF_EXPR", "MEMBER_REF_EXPR", "CALL_EXPR"}

_RECORD_KINDS = {"STRUCT_DECL", "CLASS_DECL", "UNION_DECL"}

_FAILING_SEVERITIES = (cindex.Diagnostic.Error, cindex.Diagnostic.Fatal)


class _OffsetMap:
    """Byte offsets (libclang) to character offsets (Python text)."""

    def __init__(self, text: str):
        data = text.encode("utf-8")
        self._size = len(text)
        self._table: Optional[List[int]] = None
        if len(data) != len(text):
            table: List[int] = []
            for idx, ch in enumerate(text):
                table.extend([idx] * len(ch.encode("utf-8")))
            table.append(len(text))
            self._table = table

    def __call__(self, offset: int) -> int:
        if self._table is None:
            return min(offset, self._size)
        return self._table[min(offset, len(self._table) - 1)]


def _norm(path: str) -> str:
    return os.path.normcase(os.path.abspath(path))


class ClangTokenLocator:
    """Token queries answered from libclang's token stream of the main file.

    Comments and tokens on directive lines are dropped.
    """

    def __init__(self, text: str, tokens: List[Token]):
        self.text = text
        self._tokens = tokens
        self._starts = [pos for pos, _ in tokens]

    @classmethod
    def from_translation_unit(
        cls,
        tu: cindex.TranslationUnit,
        main_file: str,
        text: str,
        offsets: _OffsetMap,
    ) -> "ClangTokenLocator":
        directives = list(iter_directive_spans(text))
        tokens: List[Token] = []
        in_main: Dict[str, bool] = {}
        d = 0
        for tok in tu.get_tokens(extent=tu.cursor.extent):
            if tok.kind == cindex.TokenKind.COMMENT:
                continue
            loc = tok.location
            if loc.file is None:
                continue
            name = loc.file.name
            if name not in in_main:
                in_main[name] = _norm(name) == main_file
            if not in_main[name]:
                continue
            pos = offsets(loc.offset)
            while d < len(directives) and directives[d][1] <= pos:
                d += 1
            if d < len(directives) and directives[d][0] <= pos:
                continue
            tokens.append((pos, tok.spelling))
        return cls(text, tokens)

    def tokens_from(self, offset: int) -> Iterator[Token]:
        return islice(self._tokens, bisect_left(self._starts, offset), None)

    def next_token(self, offset: int) -> Optional[Token]:
        return next(self.tokens_from(offset), None)

    def find_token_after(self, offset: int, spelling: str) -> Optional[int]:
        return find_at_depth_zero(self.tokens_from(offset), spelling)

    def find_semicolon_after(self, offset: int) -> Optional[int]:
        return find_at_depth_zero(self.tokens_from(offset), ";")

    def skip_horizontal_space(self, offset: int) -> int:
        return skip_horizontal_space(self.text, offset)

    def char_before(self, offset: int) -> str:
        return char_before(self.text, offset)


class _Builder:
    def __init__(self, main_file: str, keep_names: Set[str], tokens: ClangTokenLocator, offsets: _OffsetMap):
        self.main_file = _norm(main_file)
        self.keep_names = keep_names
        self.tokens = tokens
        self.offsets = offsets
        self.graph: Dict[str, Set[str]] = defaultdict(set)
        self.roots: Set[str] = set()
        self.groups: Dict[int, DeclaratorGroup] = {}
        self.template_ranges: List[SourceRange] = []
        self.known: Set[str] = set()
        self.by_location: Dict[Tuple[str, int], str] = {}
        self.by_name: Dict[str, Set[str]] = defaultdict(set)
        # (owner, key, location, spelling) collected before resolution
        self.refs: List[Tuple[str, Optional[str], Optional[Tuple[str, int]], str]] = []
        self.flat: List[Declaration] = []

    # --- identity ---
    def in_main_file(self, cursor: cindex.Cursor) -> bool:
        f = cursor.location.file
        return f is not None and _norm(f.name) == self.main_file

    @staticmethod
    def _location(cursor: cindex.Cursor) -> Optional[Tuple[str, int]]:
        loc = cursor.location
        if loc.file is None:
            return None
        return (_norm(loc.file.name), loc.offset)

    def location_key(self, cursor: cindex.Cursor) -> str:
        loc = self._location(cursor)
        where = f"{loc[0]}:{loc[1]}" if loc else "?"
        return f"{cursor.kind.name}@{where}"

    def canonical_key(self, cursor: cindex.Cursor) -> str:
        if cursor.kind.name == "NAMESPACE":
            return self.location_key(cursor)
        canon = cursor.canonical
        usr = canon.get_usr()
        return usr if usr else self.location_key(canon)

    def _register(self, cursor: cindex.Cursor, key: str) -> None:
        self.known.add(key)
        loc = self._location(cursor)
        if loc is not None:
            self.by_location.setdefault(loc, key)

    # --- ranges ---
    def extent(self, cursor: cindex.Cursor) -> SourceRange:
        ext = cursor.extent
        return SourceRange(self.offsets(ext.start.offset), self.offsets(ext.end.offset))

    def removal_range(self, cursor: cindex.Cursor) -> SourceRange:
        rng = self.extent(cursor)
        nxt = self.tokens.next_token(rng.end)
        if nxt is not None and nxt[1] == ";":
            return SourceRange(rng.start, nxt[0] + 1)
        return rng

    # --- traversal ---
    def visit_scope(self, cursors: Iterable[cindex.Cursor], namespace: Optional[str]) -> List[Declaration]:
        out: List[Declaration] = []
        for cursor in cursors:
            if not cursor.kind.is_declaration() or not self.in_main_file(cursor):
                continue
            kind_name = cursor.kind.name
            if kind_name == "NAMESPACE":
                key = self.location_key(cursor)
                decl = Declaration(key, key, DeclKind.NAMESPACE, cursor.spelling, self.removal_range(cursor))
                if namespace:
                    self.graph[key].add(namespace)
                decl.children = self.visit_scope(cursor.get_children(), key)
                out.append(decl)
                continue
            out.append(self._visit_declaration(cursor, namespace))
        return out

    def _visit_declaration(self, cursor: cindex.Cursor, namespace: Optional[str]) -> Declaration:
        kind_name = cursor.kind.name
        kind = _KIND_MAP.get(kind_name, DeclKind.OTHER)
        key = self.canonical_key(cursor)
        decl = Declaration(
            key=self.location_key(cursor),
            canonical_key=key,
            kind=kind,
            name=cursor.spelling,
            range=self.removal_range(cursor),
        )
        self._register(cursor, key)
        self.flat.append(decl)
        self.by_name[cursor.spelling].add(key)
        if namespace:
            self.graph[key].add(namespace)

        if self._is_root(cursor, kind, namespace):
            self.roots.add(key)
        if kind_name in _TEMPLATE_KINDS:
            self.template_ranges.append(self.extent(cursor))
        if kind == DeclKind.VARIABLE:
            decl.grouped = True
            self._add_to_group(cursor, key)

        for node in cursor.walk_preorder():
            if node == cursor:
                continue
            if node.kind.is_declaration():
                inner = self.canonical_key(node)
                self._register(node, inner)
                if inner != key:
                    self.graph[key].add(inner)
                    self.graph[inner].add(key)
                continue
            self._collect_reference(key, node, kind == DeclKind.USING)
        return decl

    def _is_root(self, cursor: cindex.Cursor, kind: DeclKind, namespace: Optional[str]) -> bool:
        name = cursor.spelling
        if kind in (DeclKind.USING, DeclKind.OTHER):
            return True
        if name in self.keep_names:
            return True
        if kind == DeclKind.FUNCTION and name == "main" and namespace is None:
            return True
        if name.startswith("operator"):
            return True
        if cursor.kind.name in _RECORD_KINDS and "<" in cursor.displayname:
            # explicit specialization, e.g. std::hash<T>
            return True
        return False

    def _add_to_group(self, cursor: cindex.Cursor, key: str) -> None:
        rng = self.extent(cursor)
        name_start: Optional[int] = self.offsets(cursor.location.offset)
        end: Optional[int] = rng.end
        if not (rng.start <= name_start <= rng.end):
            name_start, end = None, None
        group = self.groups.setdefault(rng.start, DeclaratorGroup(type_start=rng.start))
        group.declarators.append(Declarator(key=key, name=cursor.spelling, name_start=name_start, end=end))

    def _collect_reference(self, owner: str, node: cindex.Cursor, names_namespaces: bool) -> None:
        kind_name = node.kind.name
        if not (node.kind.is_reference() or node.kind.is_expression()):
            return
        ref = node.referenced
        if ref is None or ref.kind.name == "OVERLOADED_DECL_REF":
            if kind_name in _NAME_REF_KINDS and node.spelling:
                self.refs.append((owner, None, None, node.spelling))
            return
        if ref == node:
            return
        if ref.kind.name == "NAMESPACE" and not names_namespaces:
            # a qualifier such as A:: does not use any particular block of A
            return
        self.refs.append((owner, self.canonical_key(ref), self._location(ref), ref.spelling))

    # --- resolution ---
    def link_nested_siblings(self) -> None:
        """Declarations sharing text (``struct S {} s;``) live and die together."""
        ordered = sorted(self.flat, key=lambda d: (d.range.start, -d.range.end))
        stack: List[Declaration] = []
        for decl in ordered:
            while stack and stack[-1].range.end <= decl.range.start:
                stack.pop()
            for outer in stack:
                if outer.grouped and decl.grouped:
                    continue
                self.graph[outer.canonical_key].add(decl.canonical_key)
                self.graph[decl.canonical_key].add(outer.canonical_key)
            stack.append(decl)

    def resolve_references(self) -> None:
        for owner, key, loc, spelling in self.refs:
            if key is None:
                for target in self.by_name.get(spelling, ()):
                    if target != owner:
                        self.graph[owner].add(target)
                continue
            if key not in self.known and loc is not None and loc in self.by_location:
                key = self.by_location[loc]
            if key != owner:
                self.graph[owner].add(key)


class ClangAnalyzer:
    """Parses one file with libclang and extracts the pruning inputs."""

    def __init__(
        self,
        compile_args: Sequence[str] = (),
        keep_names: Iterable[str] = (),
        suppress_template_body_diagnostics: bool = True,
        index: Optional[cindex.Index] = None,
    ):
        self.compile_args = list(compile_args)
        self.keep_names = set(keep_names)
        self.suppress_template_body_diagnostics = suppress_template_body_diagnostics
        self._index = index

    @property
    def index(self) -> cindex.Index:
        if self._index is None:
            self._index = cindex.Index.create()
        return self._index

    def parse_args(self) -> List[str]:
        args = ["-x", "c++"]
        if not any(a.startswith("-std=") for a in self.compile_args):
            args.append("-std=c++17")
        args.extend(self.compile_args)
        args.extend(force_template_bodies())
        return args

    def analyze(self, path: str, text: Optional[str] = None) -> TranslationUnitAnalysis:
        if text is None:
            try:
                with open(path, "r", encoding="utf-8", newline="") as f:
                    text = f.read()
            except OSError as e:
                raise AnalysisFailure(f"cannot read {path}: {e}") from e

        try:
            tu = self.index.parse(
                path,
                args=self.parse_args(),
                unsaved_files=[(path, text)],
            )
        except cindex.TranslationUnitLoadError as e:
            raise AnalysisFailure(f"libclang could not parse {path}: {e}") from e

        offsets = _OffsetMap(text)
        main_file = _norm(path)
        tokens = ClangTokenLocator.from_translation_unit(tu, main_file, text, offsets)
        builder = _Builder(main_file, self.keep_names, tokens, offsets)
        declarations = builder.visit_scope(tu.cursor.get_children(), None)
        builder.link_nested_siblings()
        builder.resolve_references()

        diagnostics = self._check_diagnostics(tu, builder)
        groups = [builder.groups[k] for k in sorted(builder.groups)]
        logger.debug(
            "%s: %d top-level declarations, %d roots, %d variable groups",
            path, len(declarations), len(builder.roots), len(groups),
        )
        return TranslationUnitAnalysis(
            file_name=path,
            text=text,
            declarations=declarations,
            use_graph=dict(builder.graph),
            roots=builder.roots,
            groups=groups,
            diagnostics=diagnostics,
            token_locator=tokens,
        )

    def _check_diagnostics(self, tu: cindex.TranslationUnit, builder: _Builder) -> List[str]:
        messages: List[str] = []
        errors: List[str] = []
        for diag in tu.diagnostics:
            loc = diag.location
            where = f"{loc.file.name if loc.file else '<unknown>'}:{loc.line}:{loc.column}"
            message = f"{where}: {diag.spelling}"
            messages.append(message)
            if diag.severity not in _FAILING_SEVERITIES:
                continue
            if self.suppress_template_body_diagnostics and _inside_template(loc, builder):
                logger.debug("suppressed diagnostic in template body: %s", message)
                continue
            errors.append(message)
        if errors:
            raise AnalysisFailure("Compilation error", errors)
        return messages


def force_template_bodies() -> List[str]:
    """Arguments that make the front end analyze template bodies eagerly.

    Without them, MSVC-compatible targets delay parsing of function template
    bodies and report a declaration-only source range.
    """
    return ["-fno-delayed-template-parsing"]


def _inside_template(loc: cindex.SourceLocation, builder: _Builder) -> bool:
    if loc.file is None or _norm(loc.file.name) != builder.main_file:
        return False
    offset = builder.offsets(loc.offset)
    return any(r.start <= offset < r.end for r in builder.template_ranges)


def analyze_file(
    path: Path,
    compile_args: Sequence[str] = (),
    keep_names: Iterable[str] = (),
) -> TranslationUnitAnalysis:
    return ClangAnalyzer(compile_args, keep_names).analyze(str(path))
