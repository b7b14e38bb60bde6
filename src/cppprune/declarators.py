"""
Partial removal of multi-declarator statements.

A statement such as ``int a = 1, b = 2, c = 3;`` declares several variables
sharing one base type. Whole-declaration removal cannot express "drop only
``b``", so unused declarators are cut out here one span at a time:

  - nothing used: the whole statement, type specifier through ``;``
  - unused before the last used one: name through initializer plus the
    following comma
  - everything after the last used one: from the comma that follows it
    through the end of the last declarator

A declarator whose name is preceded by pointer, reference or parenthesis
tokens (``int *p, q;``) cannot be cut out before the last used one without
handing those tokens to its neighbour, so it is left in place.
"""
from __future__ import annotations

import logging
from typing import Callable, Iterable, Optional, Protocol

from .ledger import RemovalLedger, RemoveOptions
from .source_model import DeclaratorGroup, SourceRange

logger = logging.getLogger(__name__)


class TokenLocator(Protocol):
    def find_token_after(self, offset: int, spelling: str) -> Optional[int]:
        ...

    def find_semicolon_after(self, offset: int) -> Optional[int]:
        ...

    def skip_horizontal_space(self, offset: int) -> int:
        ...

    def char_before(self, offset: int) -> str:
        ...


def _has_plain_prefix(locator: TokenLocator, name_start: int, first: bool) -> bool:
    prev = locator.char_before(name_start)
    if first:
        return prev != "" and (prev.isalnum() or prev in "_>)}")
    return prev == ","


def _submit(ledger: RemovalLedger, start: int, end: int, options: RemoveOptions) -> int:
    return 1 if ledger.remove(SourceRange(start, end), options) else 0


def split_and_remove(
    group: DeclaratorGroup,
    is_used: Callable[[str], bool],
    ledger: RemovalLedger,
    locator: TokenLocator,
    options: Optional[RemoveOptions] = None,
) -> int:
    """Submit the removals for one group; returns how many the ledger accepted."""
    opts = options or RemoveOptions(collapse_empty_line=True)
    decls = group.declarators
    n = len(decls)
    if n == 0:
        return 0

    flags = [bool(is_used(d.key)) for d in decls]
    last_used = max((i for i, u in enumerate(flags) if u), default=None)

    if last_used is None:
        end_of_last = decls[-1].end
        semi = locator.find_semicolon_after(end_of_last) if end_of_last is not None else None
        if semi is None:
            logger.debug("no terminator for group at %d; left intact", group.type_start)
            return 0
        return _submit(ledger, group.type_start, semi + 1, opts)

    accepted = 0
    for i in range(last_used):
        if flags[i]:
            continue
        d = decls[i]
        if not d.has_location:
            logger.debug("skipping declarator %r without a usable location", d.name)
            continue
        if not _has_plain_prefix(locator, d.name_start, i == 0):
            logger.debug("declarator %r has its own type tokens; left intact", d.name)
            continue
        end = d.end
        if i + 1 < n:
            comma = locator.find_token_after(end, ",")
            if comma is None:
                logger.debug("no separator after declarator %r", d.name)
                continue
            end = locator.skip_horizontal_space(comma + 1)
        accepted += _submit(ledger, d.name_start, end, opts)

    if last_used + 1 != n:
        anchor_end = decls[last_used].end
        tail_end = decls[-1].end
        comma = locator.find_token_after(anchor_end, ",") if anchor_end is not None else None
        if comma is None or tail_end is None:
            logger.debug("cannot locate tail of group at %d", group.type_start)
        else:
            accepted += _submit(ledger, comma, tail_end, opts)
    return accepted


def remove_unused_variables(
    groups: Iterable[DeclaratorGroup],
    is_used: Callable[[str], bool],
    ledger: RemovalLedger,
    locator: TokenLocator,
    options: Optional[RemoveOptions] = None,
) -> int:
    total = 0
    for group in groups:
        total += split_and_remove(group, is_used, ledger, locator, options)
    return total
