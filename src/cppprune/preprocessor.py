"""
Preprocessor pruning: inactive conditional branches and unused macros.

The tracker receives directive events (#if/#elif/#else/#endif) in source
order, the way a preprocessor callback would, and removes the directives
plus every inactive branch of a conditional chain once the chain closes.
Only chains whose every condition could be decided are touched, and never
chains whose conditions mention a protected macro.

Condition values come from a small evaluator over a macro table built from
-D/-U arguments and the #define/#undef lines met in active regions. Names the
table knows nothing about (compiler predefines, system headers) make a
condition undecidable rather than false.
"""
from __future__ import annotations

import logging
import re
from collections import Counter
from dataclasses import dataclass, field
from typing import Dict, Iterable, Iterator, List, Optional, Sequence, Set, Tuple

from .ledger import RemovalLedger, RemoveOptions
from .source_model import SourceRange
from .tokens import iter_directive_spans, strip_comments

logger = logging.getLogger(__name__)

_IDENT_RE = re.compile(r"[A-Za-z_]\w*")
_DIRECTIVE_RE = re.compile(r"^[ \t]*#[ \t]*([A-Za-z_]\w*)?(.*)$", re.DOTALL)
_DEFINE_RE = re.compile(r"^([A-Za-z_]\w*)(\()?(.*)$", re.DOTALL)
_EXPR_TOKEN_RE = re.compile(
    r"\s*(?:"
    r"(?P<num>(?:0[xX][0-9a-fA-F]+|0[bB][01]+|\d+)[uUlL]*)"
    r"|(?P<id>[A-Za-z_]\w*)"
    r"|(?P<op>&&|\|\||==|!=|<=|>=|<<|>>|[-+*/%()!~<>&|^?:])"
    r")"
)


# --- macro table ---------------------------------------------------------

class MacroTable:
    """What is known about macro definitions at a point in the file.

    ``defined`` maps a name to its replacement text (None for function-like
    macros); ``undefined`` holds names known to be absent. Anything else is
    unknown.
    """

    def __init__(self) -> None:
        self.defined: Dict[str, Optional[str]] = {}
        self.undefined: Set[str] = set()

    @classmethod
    def from_args(cls, args: Sequence[str]) -> "MacroTable":
        table = cls()
        args = list(args)
        i = 0
        while i < len(args):
            arg = args[i]
            flag, value = None, None
            if arg in ("-D", "-U") and i + 1 < len(args):
                flag, value = arg, args[i + 1]
                i += 1
            elif arg.startswith("-D") or arg.startswith("-U"):
                flag, value = arg[:2], arg[2:]
            i += 1
            if not flag or not value:
                continue
            if flag == "-D":
                name, _, body = value.partition("=")
                table.define(name, body if "=" in value else "1")
            else:
                table.undef(value)
        return table

    def define(self, name: str, value: Optional[str]) -> None:
        self.defined[name] = value
        self.undefined.discard(name)

    def undef(self, name: str) -> None:
        self.defined.pop(name, None)
        self.undefined.add(name)

    def forget(self, name: str) -> None:
        self.defined.pop(name, None)
        self.undefined.discard(name)

    def is_known(self, name: str) -> bool:
        return name in self.defined or name in self.undefined

    def is_defined(self, name: str) -> Optional[bool]:
        if name in self.defined:
            return True
        if name in self.undefined:
            return False
        return None


def defines_from_args(args: Sequence[str]) -> MacroTable:
    return MacroTable.from_args(args)


# --- condition evaluation ------------------------------------------------

class _Unknown(Exception):
    pass


_BINARY_PRECEDENCE = {
    "||": 1,
    "&&": 2,
    "|": 3,
    "^": 4,
    "&": 5,
    "==": 6, "!=": 6,
    "<": 7, "<=": 7, ">": 7, ">=": 7,
    "<<": 8, ">>": 8,
    "+": 9, "-": 9,
    "*": 10, "/": 10, "%": 10,
}


def _tokenize(expr: str) -> List[Tuple[str, str]]:
    tokens: List[Tuple[str, str]] = []
    pos = 0
    expr = expr.strip()
    while pos < len(expr):
        m = _EXPR_TOKEN_RE.match(expr, pos)
        if not m or m.end() == pos:
            raise _Unknown(expr[pos:])
        kind = m.lastgroup or ""
        tokens.append((kind, m.group(kind)))
        pos = m.end()
        while pos < len(expr) and expr[pos].isspace():
            pos += 1
    return tokens


def _int_literal(text: str) -> int:
    digits = text.rstrip("uUlL")
    if digits[:2] in ("0x", "0X"):
        return int(digits, 16)
    if digits[:2] in ("0b", "0B"):
        return int(digits, 2)
    if len(digits) > 1 and digits.startswith("0"):
        return int(digits, 8)
    return int(digits)


class _ExprParser:
    def __init__(self, tokens: List[Tuple[str, str]], table: MacroTable, depth: int):
        self.tokens = tokens
        self.pos = 0
        self.table = table
        self.depth = depth

    def _peek(self) -> Optional[Tuple[str, str]]:
        return self.tokens[self.pos] if self.pos < len(self.tokens) else None

    def _take(self) -> Tuple[str, str]:
        tok = self._peek()
        if tok is None:
            raise _Unknown("unexpected end of expression")
        self.pos += 1
        return tok

    def _expect(self, op: str) -> None:
        kind, val = self._take()
        if kind != "op" or val != op:
            raise _Unknown(f"expected {op!r}")

    def parse(self) -> int:
        value = self._ternary()
        if self._peek() is not None:
            raise _Unknown("trailing tokens")
        return value

    def _ternary(self) -> int:
        cond = self._binary(1)
        tok = self._peek()
        if tok == ("op", "?"):
            self.pos += 1
            yes = self._ternary()
            self._expect(":")
            no = self._ternary()
            return yes if cond else no
        return cond

    def _binary(self, min_prec: int) -> int:
        left = self._unary()
        while True:
            tok = self._peek()
            if tok is None or tok[0] != "op" or tok[1] not in _BINARY_PRECEDENCE:
                return left
            prec = _BINARY_PRECEDENCE[tok[1]]
            if prec < min_prec:
                return left
            self.pos += 1
            right = self._binary(prec + 1)
            left = _apply(tok[1], left, right)

    def _unary(self) -> int:
        kind, val = self._take()
        if kind == "op":
            if val == "!":
                return int(not self._unary())
            if val == "~":
                return ~self._unary()
            if val == "-":
                return -self._unary()
            if val == "+":
                return self._unary()
            if val == "(":
                inner = self._ternary()
                self._expect(")")
                return inner
            raise _Unknown(val)
        if kind == "num":
            return _int_literal(val)
        if val == "defined":
            return self._defined()
        return self._identifier(val)

    def _defined(self) -> int:
        paren = self._peek() == ("op", "(")
        if paren:
            self.pos += 1
        kind, name = self._take()
        if kind != "id":
            raise _Unknown("defined without a name")
        if paren:
            self._expect(")")
        state = self.table.is_defined(name)
        if state is None:
            raise _Unknown(name)
        return int(state)

    def _identifier(self, name: str) -> int:
        if name == "true":
            return 1
        if name == "false":
            return 0
        if name in self.table.undefined:
            return 0
        if name not in self.table.defined:
            raise _Unknown(name)
        body = self.table.defined[name]
        if body is None or not body.strip() or self.depth > 32:
            raise _Unknown(name)
        return _evaluate(body, self.table, self.depth + 1)


def _apply(op: str, a: int, b: int) -> int:
    if op == "||":
        return int(bool(a) or bool(b))
    if op == "&&":
        return int(bool(a) and bool(b))
    if op in ("/", "%"):
        if b == 0:
            raise _Unknown("division by zero")
        return int(a / b) if op == "/" else a - b * int(a / b)
    return {
        "|": lambda: a | b,
        "^": lambda: a ^ b,
        "&": lambda: a & b,
        "==": lambda: int(a == b),
        "!=": lambda: int(a != b),
        "<": lambda: int(a < b),
        "<=": lambda: int(a <= b),
        ">": lambda: int(a > b),
        ">=": lambda: int(a >= b),
        "<<": lambda: a << b if b >= 0 else a >> -b,
        ">>": lambda: a >> b if b >= 0 else a << -b,
        "+": lambda: a + b,
        "-": lambda: a - b,
        "*": lambda: a * b,
    }[op]()


def _evaluate(expr: str, table: MacroTable, depth: int = 0) -> int:
    return _ExprParser(_tokenize(expr), table, depth).parse()


class ConditionEvaluator:
    def __init__(self, table: MacroTable):
        self.table = table

    def evaluate(self, expr: str) -> Optional[bool]:
        """Truth value of an #if expression, or None when it cannot be decided."""
        try:
            return bool(_evaluate(expr, self.table))
        except (_Unknown, ValueError, OverflowError) as e:
            logger.debug("undecidable condition %r (%s)", expr.strip(), e)
            return None

    def evaluate_ifdef(self, name: str, negate: bool = False) -> Optional[bool]:
        state = self.table.is_defined(name)
        if state is None:
            return None
        return (not state) if negate else state


# --- conditional chains --------------------------------------------------

@dataclass
class _Branch:
    directive: SourceRange
    value: Optional[bool]


@dataclass
class _Chain:
    start_active: Optional[bool]
    branches: List[_Branch] = field(default_factory=list)
    macros: Set[str] = field(default_factory=set)
    taken: bool = False
    unknown: bool = False

    @property
    def current(self) -> Optional[bool]:
        return self.branches[-1].value if self.branches else None

    def add(self, directive: SourceRange, value: Optional[bool]) -> None:
        if self.taken:
            eff: Optional[bool] = False
        elif self.unknown:
            eff = None
        else:
            eff = value
        if eff is None:
            self.unknown = True
        elif eff:
            self.taken = True
        self.branches.append(_Branch(directive, eff))


class InactiveBlockTracker:
    """Removes inactive branches of decidable conditional chains."""

    def __init__(self, ledger: RemovalLedger, macros_to_keep: Iterable[str] = ()):
        self.ledger = ledger
        self.macros_to_keep: Set[str] = set(macros_to_keep)
        self.options = RemoveOptions(collapse_empty_line=True)
        self._stack: List[_Chain] = []
        self.removed_chains = 0
        self.skipped_chains = 0

    @property
    def region_active(self) -> Optional[bool]:
        """True if the current position is definitely compiled, None if unknown."""
        state: Optional[bool] = True
        for chain in self._stack:
            cur = chain.current
            if cur is False:
                return False
            if cur is None:
                state = None
        return state

    def on_if(self, directive: SourceRange, value: Optional[bool], macros: Iterable[str] = ()) -> None:
        chain = _Chain(start_active=self.region_active)
        chain.macros.update(macros)
        chain.add(directive, value if chain.start_active else None)
        self._stack.append(chain)

    def on_elif(self, directive: SourceRange, value: Optional[bool], macros: Iterable[str] = ()) -> None:
        if not self._stack:
            logger.debug("#elif without #if at %d", directive.start)
            return
        chain = self._stack[-1]
        chain.macros.update(macros)
        chain.add(directive, value if chain.start_active else None)

    def on_else(self, directive: SourceRange) -> None:
        if not self._stack:
            logger.debug("#else without #if at %d", directive.start)
            return
        chain = self._stack[-1]
        chain.add(directive, True if chain.start_active else None)

    def on_endif(self, directive: SourceRange) -> None:
        if not self._stack:
            logger.debug("#endif without #if at %d", directive.start)
            return
        chain = self._stack.pop()
        self._close(chain, directive.start, directive)

    def finalize(self, end_of_text: int) -> None:
        """Close chains still open at end of file."""
        while self._stack:
            chain = self._stack.pop()
            self._close(chain, end_of_text, None)

    def _close(self, chain: _Chain, body_end: int, endif: Optional[SourceRange]) -> None:
        if chain.start_active is not True or chain.unknown:
            self.skipped_chains += 1
            return
        protected = chain.macros & self.macros_to_keep
        if protected:
            logger.debug("keeping conditional guarded by %s", ", ".join(sorted(protected)))
            self.skipped_chains += 1
            return

        spans: List[SourceRange] = []
        for i, branch in enumerate(chain.branches):
            nxt = chain.branches[i + 1].directive.start if i + 1 < len(chain.branches) else body_end
            if branch.value:
                spans.append(branch.directive)
            else:
                spans.append(SourceRange(branch.directive.start, max(branch.directive.end, nxt)))
        if endif is not None:
            spans.append(endif)

        # a chain is removed whole or not at all
        if not all(self.ledger.can_remove(s) for s in spans):
            logger.debug("conditional at %d conflicts with earlier removals", chain.branches[0].directive.start)
            self.skipped_chains += 1
            return
        for s in spans:
            self.ledger.remove(s, self.options)
        self.removed_chains += 1


# --- directive scanning ----------------------------------------------------

@dataclass
class Directive:
    range: SourceRange  # whole logical line including its newline
    name: str
    rest: str  # text after the directive name, comments stripped


def iter_directives(text: str) -> Iterator[Directive]:
    """Yield the preprocessor directives of ``text`` in order.

    Lines continued with a backslash are joined. Comment markers inside
    string and character literals are not comments, so a ``"/*"`` in code
    does not hide the directives after it.
    """
    n = len(text)
    for hash_pos, end in iter_directive_spans(text):
        start = text.rfind("\n", 0, hash_pos) + 1
        next_pos = n if end >= n else end + 1
        m = _DIRECTIVE_RE.match(text[start:end])
        if m and m.group(1):
            rest = strip_comments(m.group(2).replace("\\\r\n", " ").replace("\\\n", " "))
            yield Directive(SourceRange(start, next_pos), m.group(1), rest.strip())


def _condition_macros(rest: str) -> Set[str]:
    return {name for name in _IDENT_RE.findall(rest) if name != "defined"}


def scan_directives(
    text: str,
    tracker: InactiveBlockTracker,
    table: Optional[MacroTable] = None,
) -> MacroTable:
    """Feed the conditionals of ``text`` to ``tracker``; returns the final macro table.

    Chains still open at the end are left to ``tracker.finalize()``.
    """
    table = table if table is not None else MacroTable()
    evaluator = ConditionEvaluator(table)
    for d in iter_directives(text):
        if d.name in ("ifdef", "ifndef"):
            m = _IDENT_RE.match(d.rest)
            value = evaluator.evaluate_ifdef(m.group(0), negate=d.name == "ifndef") if m else None
            tracker.on_if(d.range, value, _condition_macros(d.rest))
        elif d.name == "if":
            tracker.on_if(d.range, evaluator.evaluate(d.rest), _condition_macros(d.rest))
        elif d.name == "elif":
            tracker.on_elif(d.range, evaluator.evaluate(d.rest), _condition_macros(d.rest))
        elif d.name == "else":
            tracker.on_else(d.range)
        elif d.name == "endif":
            tracker.on_endif(d.range)
        elif d.name in ("define", "undef"):
            _track_definition(d, table, tracker.region_active)
    return table


def _track_definition(d: Directive, table: MacroTable, region: Optional[bool]) -> None:
    m = _DEFINE_RE.match(d.rest)
    if not m:
        return
    name = m.group(1)
    if region is False:
        return
    if region is None:
        table.forget(name)
    elif d.name == "undef":
        table.undef(name)
    elif m.group(2):
        table.define(name, None)
    else:
        table.define(name, m.group(3).strip())


# --- unused macros ----------------------------------------------------------

def remove_unused_macros(
    text: str,
    ledger: RemovalLedger,
    macros_to_keep: Iterable[str] = (),
) -> List[str]:
    """Remove #define lines whose macro name appears nowhere else in the text.

    Definitions placed before the last #include are kept: they may configure
    the included headers.
    """
    keep = set(macros_to_keep)
    counts = Counter(_IDENT_RE.findall(text))
    options = RemoveOptions(collapse_empty_line=True)
    directives = list(iter_directives(text))
    last_include = max((d.range.end for d in directives if d.name == "include"), default=0)
    removed: List[str] = []
    for d in directives:
        if d.name != "define" or d.range.start < last_include:
            continue
        m = _DEFINE_RE.match(d.rest)
        if not m:
            continue
        name = m.group(1)
        if name in keep:
            continue
        own = _IDENT_RE.findall(text[d.range.start:d.range.end]).count(name)
        if counts[name] - own > 0:
            continue
        if ledger.remove(d.range, options):
            removed.append(name)
    return removed
