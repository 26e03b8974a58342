"""Removal of typed callouts from Markdown text.

Callouts are blockquotes whose first line starts with ``[!type]``. They have no
closing marker, so their extent is reconstructed from quote depth and blank
lines: an excluded callout swallows every following line that is nested deeper,
plus same-depth lines up to a blank-line-separated sibling callout or the first
shallower line.
"""

from __future__ import annotations

import re
from collections.abc import Iterable
from dataclasses import dataclass
from typing import Final

# Leading run of quote markers; '>>' and '> >' both count as depth 2
QUOTE_RUN_PATTERN = re.compile(r"^(?:>\s*)*")

# Callout header: quote run immediately followed by [!type]
CALLOUT_HEADER_PATTERN = re.compile(r"^((?:>\s*)+)\[!([\w-]+)\]")


class _NotSkipping:
    def __repr__(self) -> str:
        return "NOT_SKIPPING"


NOT_SKIPPING: Final = _NotSkipping()


@dataclass(frozen=True)
class SkippingAtDepth:
    """Inside an excluded callout whose header sits at this quote depth."""

    depth: int


def quote_depth(line: str) -> int:
    """Count the '>' markers in the line's leading quote run."""
    match = QUOTE_RUN_PATTERN.match(line.lstrip())
    return match.group(0).count(">") if match else 0


def callout_type(line: str) -> str | None:
    """Return the lowercased callout type if the line is a callout header."""
    match = CALLOUT_HEADER_PATTERN.match(line)
    return match.group(2).lower() if match else None


def filter_callouts(text: str, callout_types: Iterable[str] | None) -> str:
    """Remove callouts of the given types, and everything nested inside them.

    Args:
        text: Markdown text.
        callout_types: Callout types to exclude (case-insensitive).

    Returns:
        The text with excluded regions removed. Unchanged when no types are given.
    """
    excluded = {t.lower() for t in callout_types or ()}
    if not excluded:
        return text

    kept: list[str] = []
    state: _NotSkipping | SkippingAtDepth = NOT_SKIPPING
    previous_line_blank = False

    for line in text.split("\n"):
        depth = quote_depth(line)
        is_blank = depth == 0 and not line.strip()
        header_type = callout_type(line)

        if isinstance(state, SkippingAtDepth):
            if depth > state.depth or (depth == state.depth and header_type is None):
                previous_line_blank = is_blank
                continue
            # An unseparated sibling callout continues the excluded region
            if depth == state.depth and not previous_line_blank:
                previous_line_blank = is_blank
                continue
            state = NOT_SKIPPING

        if header_type is not None and header_type in excluded:
            state = SkippingAtDepth(depth)
            previous_line_blank = is_blank
            continue

        kept.append(line)
        previous_line_blank = is_blank

    return "\n".join(kept)
