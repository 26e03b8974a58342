"""Structural index extraction from raw Markdown.

Produces the headings, block anchors, links and embeds of a note together with
their character offsets in the raw text. The expansion code only consumes this
index; nothing here builds a syntax tree or renders Markdown.
"""

from __future__ import annotations

import logging
import re
from urllib.parse import unquote

import frontmatter

from ..models import BlockInfo, DocumentMetadata, HeadingInfo, LinkRecord

log = logging.getLogger(__name__)

# ATX heading: 1-6 '#' followed by whitespace; optional closing '#' run is dropped
HEADING_PATTERN = re.compile(r"^(#{1,6})[ \t]+(.+?)(?:[ \t]+#+)?[ \t]*$")

# Block anchor at the end of a line, or alone on its own line
BLOCK_ANCHOR_PATTERN = re.compile(r"(?:^|\s)\^([A-Za-z0-9-]+)\s*$")

# [[target]], [[target|display]], and their ![[...]] embed forms
WIKILINK_PATTERN = re.compile(r"(!?)\[\[([^\[\]|]+)(?:\|([^\[\]]*))?\]\]")

# [text](target) and ![alt](target); target without whitespace
MDLINK_PATTERN = re.compile(r"(!?)\[([^\[\]]*)\]\(([^()\s]+)\)")

# Targets with a URL scheme (http:, mailto:, obsidian:) are external
URL_SCHEME_PATTERN = re.compile(r"^[A-Za-z][A-Za-z0-9+.-]*:")

# Bullet or ordered list item marker; each item is its own block
LIST_ITEM_PATTERN = re.compile(r"^\s*(?:[-*+]|\d+[.)])\s")

FENCE_PATTERN = re.compile(r"^ {0,3}(`{3,}|~{3,})")
INLINE_CODE_PATTERN = re.compile(r"`[^`\n]*`")


def frontmatter_end(text: str) -> int:
    """Offset just past the closing frontmatter delimiter, or 0 if none."""
    if not text.startswith("---"):
        return 0
    first_newline = text.find("\n")
    if first_newline < 0 or text[:first_newline].strip() != "---":
        return 0
    offset = first_newline + 1
    while offset < len(text):
        newline = text.find("\n", offset)
        line_end = len(text) if newline < 0 else newline
        if text[offset:line_end].strip() in ("---", "..."):
            return len(text) if newline < 0 else newline + 1
        offset = line_end + 1
    return 0


def _parse_frontmatter(text: str) -> dict:
    try:
        post = frontmatter.loads(text)
    except Exception as e:
        log.debug("Ignoring unparseable frontmatter: %s", e)
        return {}
    return dict(post.metadata)


def _extract_links(line: str, links: list[LinkRecord], embeds: list[LinkRecord]) -> None:
    line = INLINE_CODE_PATTERN.sub("", line)

    for match in WIKILINK_PATTERN.finditer(line):
        bang, target, display = match.groups()
        target = target.strip()
        if not target:
            continue
        record = LinkRecord(link=target, display_text=display.strip() if display else target)
        (embeds if bang else links).append(record)

    for match in MDLINK_PATTERN.finditer(line):
        bang, display, target = match.groups()
        if URL_SCHEME_PATTERN.match(target):
            continue
        target = unquote(target)
        record = LinkRecord(link=target, display_text=display)
        (embeds if bang else links).append(record)


def parse_document_metadata(text: str) -> DocumentMetadata:
    """Build the structural index of a Markdown document.

    Args:
        text: Raw file content, frontmatter included.

    Returns:
        DocumentMetadata with offsets into ``text``.
    """
    body_start = frontmatter_end(text)
    metadata = DocumentMetadata(frontmatter=_parse_frontmatter(text) if body_start else {})

    fence: str | None = None
    paragraph_start: int | None = None
    block_start: int | None = None
    previous_paragraph_start: int | None = None
    offset = body_start

    for raw_line in text[body_start:].splitlines(keepends=True):
        line_start = offset
        offset += len(raw_line)
        line = raw_line.rstrip("\r\n")
        line_end = line_start + len(line)

        fence_match = FENCE_PATTERN.match(line)
        if fence is not None:
            if fence_match and fence_match.group(1)[0] == fence[0] and len(fence_match.group(1)) >= len(fence):
                fence = None
            continue
        if fence_match:
            fence = fence_match.group(1)
            paragraph_start = None
            continue

        if not line.strip():
            if paragraph_start is not None:
                previous_paragraph_start = paragraph_start
            paragraph_start = None
            continue

        heading_match = HEADING_PATTERN.match(line)
        if heading_match:
            metadata.headings.append(
                HeadingInfo(
                    heading=heading_match.group(2),
                    level=len(heading_match.group(1)),
                    start=line_start,
                    end=line_end,
                )
            )
            paragraph_start = None
            previous_paragraph_start = None
            _extract_links(line, metadata.links, metadata.embeds)
            continue

        if paragraph_start is None:
            paragraph_start = line_start
            block_start = line_start
        elif LIST_ITEM_PATTERN.match(line):
            block_start = line_start

        anchor_match = BLOCK_ANCHOR_PATTERN.search(line)
        if anchor_match:
            block_id = anchor_match.group(1)
            start = block_start
            # An anchor alone on its own line labels the preceding block
            standalone = paragraph_start == line_start and not line[: anchor_match.start()].strip()
            if standalone and previous_paragraph_start is not None:
                start = previous_paragraph_start
            if block_id not in metadata.blocks:
                metadata.blocks[block_id] = BlockInfo(id=block_id, start=start, end=line_end)

        _extract_links(line, metadata.links, metadata.embeds)

    return metadata
