"""Link reference parsing and exclusion patterns."""

from __future__ import annotations

import re
from collections.abc import Sequence
from typing import NamedTuple

from ..models import LinkRecord


class ParsedReference(NamedTuple):
    """A link target split into document path and optional subpath."""

    path: str
    subpath: str | None


def parse_link_reference(link: str) -> ParsedReference:
    """Split a link target at the first '#'.

    Args:
        link: Raw link target (e.g. "note#Heading", "note#^block", "note").

    Returns:
        ParsedReference with subpath None when the link has no '#'.

    Examples:
        "note#Heading" -> ("note", "Heading")
        "note" -> ("note", None)
        "#Local" -> ("", "Local")
    """
    path, sep, subpath = link.partition("#")
    if not sep:
        return ParsedReference(link, None)
    return ParsedReference(path, subpath)


def render_link(record: LinkRecord) -> str:
    """Render a link as "[display](target)" for exclusion matching.

    A record without display text shows its target, as an unaliased wikilink does.
    """
    display = record.display_text if record.display_text is not None else record.link
    return f"[{display}]({record.link})"


def should_exclude_link(record: LinkRecord, patterns: Sequence[re.Pattern[str]]) -> bool:
    """Check whether any exclusion pattern matches the rendered link."""
    if not patterns:
        return False
    text = render_link(record)
    return any(pattern.search(text) for pattern in patterns)


def compile_exclude_patterns(raw: str | Sequence[str] | None) -> list[re.Pattern[str]]:
    """Compile exclusion patterns.

    Args:
        raw: Newline-delimited string or list of regular expressions.

    Returns:
        Compiled patterns in input order. Invalid expressions are skipped.
    """
    if not raw:
        return []
    if isinstance(raw, str):
        sources = [item.strip() for item in raw.split("\n")]
    else:
        sources = [str(item).strip() for item in raw]

    compiled: list[re.Pattern[str]] = []
    for source in sources:
        if not source:
            continue
        try:
            compiled.append(re.compile(source))
        except re.error:
            continue
    return compiled
