"""
Token-level lookups over raw C++ text.

The front end answers token queries from libclang's token stream; the lexer
here serves hand-built analyses and the preprocessor scanner, which needs
directive lines with comments and literals taken into account (a ``"/*"``
inside a string does not open a comment).

Punctuator searches only match at bracket depth zero and give up at the end
of the statement.
"""
from __future__ import annotations

from typing import Iterable, Iterator, Optional, Tuple

_OPEN = "([{"
_CLOSE = ")]}"
_RAW_PREFIXES = ("R", "u8R", "uR", "UR", "LR")

Token = Tuple[int, str]


def _is_ident_start(ch: str) -> bool:
    return ch.isalpha() or ch == "_"


def _is_ident_char(ch: str) -> bool:
    return ch.isalnum() or ch == "_"


def continued(text: str, newline: int) -> bool:
    """True if the newline at ``newline`` is escaped by a backslash."""
    i = newline - 1
    if i >= 0 and text[i] == "\r":
        i -= 1
    return i >= 0 and text[i] == "\\"


def _skip_quoted(text: str, pos: int, quote: str) -> int:
    """pos points at the opening quote; returns offset after the closing one.

    An unterminated literal ends before the newline.
    """
    n = len(text)
    i = pos + 1
    while i < n:
        ch = text[i]
        if ch == "\\":
            i += 2
            continue
        if ch == quote:
            return i + 1
        if ch == "\n":
            return i
        i += 1
    return n


def _skip_raw_string(text: str, pos: int) -> int:
    """pos points at the opening quote of R"delim( ... )delim"."""
    paren = text.find("(", pos)
    if paren == -1:
        return len(text)
    delim = text[pos + 1:paren]
    close = text.find(")" + delim + '"', paren)
    if close == -1:
        return len(text)
    return close + len(delim) + 2


def _skip_line(text: str, pos: int) -> int:
    """Offset of the newline ending the (possibly continued) line at pos."""
    n = len(text)
    i = pos
    while i < n:
        nl = text.find("\n", i)
        if nl == -1:
            return n
        if continued(text, nl):
            i = nl + 1
            continue
        return nl
    return n


def _skip_directive(text: str, pos: int) -> int:
    """Offset of the newline ending the directive at pos.

    Block comments may carry a directive over several lines; literals are
    skipped so comment markers inside them do not count.
    """
    n = len(text)
    i = pos
    while i < n:
        ch = text[i]
        if ch == "\n":
            if continued(text, i):
                i += 1
                continue
            return i
        if text.startswith("/*", i):
            end = text.find("*/", i + 2)
            if end == -1:
                return n
            i = end + 2
            continue
        if text.startswith("//", i):
            return _skip_line(text, i)
        if ch in "\"'":
            i = _skip_quoted(text, i, ch)
            continue
        i += 1
    return n


def _at_line_start(text: str, pos: int) -> bool:
    i = pos - 1
    while i >= 0 and text[i] in " \t":
        i -= 1
    return i < 0 or text[i] == "\n"


def _lex(text: str, offset: int) -> Iterator[Tuple[int, str, bool]]:
    """Yield (offset, spelling, is_directive); directives come as whole lines."""
    n = len(text)
    i = max(0, offset)
    while i < n:
        ch = text[i]
        if ch.isspace():
            i += 1
            continue
        if text.startswith("//", i):
            i = _skip_line(text, i)
            continue
        if text.startswith("/*", i):
            end = text.find("*/", i + 2)
            i = n if end == -1 else end + 2
            continue
        if ch == "#" and _at_line_start(text, i):
            end = _skip_directive(text, i)
            yield i, text[i:end], True
            i = end
            continue
        if _is_ident_start(ch):
            j = i + 1
            while j < n and _is_ident_char(text[j]):
                j += 1
            word = text[i:j]
            if j < n and text[j] == '"' and word in _RAW_PREFIXES:
                end = _skip_raw_string(text, j)
                yield i, text[i:end], False
                i = end
                continue
            if j < n and text[j] in "\"'" and word in ("L", "u", "U", "u8"):
                end = _skip_quoted(text, j, text[j])
                yield i, text[i:end], False
                i = end
                continue
            yield i, word, False
            i = j
            continue
        if ch.isdigit() or (ch == "." and i + 1 < n and text[i + 1].isdigit()):
            j = i + 1
            while j < n:
                c = text[j]
                if _is_ident_char(c) or c in ".'":
                    j += 1
                elif c in "+-" and text[j - 1] in "eEpP":
                    j += 1
                else:
                    break
            yield i, text[i:j], False
            i = j
            continue
        if ch in "\"'":
            end = _skip_quoted(text, i, ch)
            yield i, text[i:end], False
            i = end
            continue
        yield i, ch, False
        i += 1


def iter_tokens(text: str, offset: int = 0) -> Iterator[Token]:
    """Yield (offset, spelling) for each token from ``offset`` on.

    Punctuators are yielded one character at a time; literals are yielded
    with their full spelling. Comments and directive lines are skipped.
    """
    for pos, spelling, is_directive in _lex(text, offset):
        if not is_directive:
            yield pos, spelling


def iter_directive_spans(text: str) -> Iterator[Tuple[int, int]]:
    """Yield (start, end) of each directive; end is its terminating newline."""
    for pos, spelling, is_directive in _lex(text, 0):
        if is_directive:
            yield pos, pos + len(spelling)


def strip_comments(text: str) -> str:
    """Replace comments by a space, leaving literals alone."""
    out = []
    n = len(text)
    i = 0
    while i < n:
        if text.startswith("/*", i):
            end = text.find("*/", i + 2)
            out.append(" ")
            i = n if end == -1 else end + 2
            continue
        if text.startswith("//", i):
            nl = text.find("\n", i)
            i = n if nl == -1 else nl
            continue
        ch = text[i]
        if ch in "\"'":
            end = _skip_quoted(text, i, ch)
            out.append(text[i:end])
            i = end
            continue
        out.append(ch)
        i += 1
    return "".join(out)


def find_at_depth_zero(tokens: Iterable[Token], spelling: str) -> Optional[int]:
    """Offset of the first ``spelling`` at bracket depth zero, or None.

    The search stops at ``;`` and at a closing bracket without an opener.
    """
    depth = 0
    for pos, tok in tokens:
        if depth == 0 and tok == spelling:
            return pos
        if tok in _OPEN:
            depth += 1
        elif tok in _CLOSE:
            if depth == 0:
                return None
            depth -= 1
        elif tok == ";" and depth == 0:
            return None
    return None


def skip_horizontal_space(text: str, offset: int) -> int:
    n = len(text)
    i = offset
    while i < n and text[i] in " \t":
        i += 1
    return i


def char_before(text: str, offset: int) -> str:
    """Last non-blank character before ``offset``, or "" at start of text."""
    i = offset - 1
    while i >= 0 and text[i].isspace():
        i -= 1
    return text[i] if i >= 0 else ""


class TextTokenLocator:
    """Token queries used by the declarator splitter."""

    def __init__(self, text: str):
        self.text = text

    def find_token_after(self, offset: int, spelling: str) -> Optional[int]:
        return find_at_depth_zero(iter_tokens(self.text, offset), spelling)

    def find_semicolon_after(self, offset: int) -> Optional[int]:
        return find_at_depth_zero(iter_tokens(self.text, offset), ";")

    def skip_horizontal_space(self, offset: int) -> int:
        return skip_horizontal_space(self.text, offset)

    def char_before(self, offset: int) -> str:
        return char_before(self.text, offset)
