"""Linked-note expansion.

Walks the embed (and optionally link) graph of a note breadth-first, up to
MAX_LINK_DEPTH, and appends the referenced notes, or the referenced sections of
them, to the note's own text.

Nothing in here raises for missing content: unresolved links, unreadable files
and absent headings or block anchors are logged at debug level and left out.
"""

from __future__ import annotations

import logging
import re
from collections import deque
from collections.abc import Mapping, Sequence
from dataclasses import dataclass, field

from .config import (
    ENTRY_BEGIN_TEMPLATE,
    ENTRY_END_MARKER,
    EXPANDED_CONTENT_HEADER,
    MAX_LINK_DEPTH,
    SUPPORTED_EXTENSIONS,
)
from .models import DocumentMetadata
from .parser.links import parse_link_reference, should_exclude_link
from .vault import ContentStore, Document, DocumentIndex

log = logging.getLogger(__name__)


@dataclass(eq=False)
class TraversalEntry:
    """Everything referenced in one target document.

    Owned by the map returned from walk_links. Later links to the same document
    update this instance in place, even after it has been expanded.
    """

    document: Document | None  # None for links that did not resolve
    depth: int
    has_full_reference: bool = False
    subpaths: dict[str, None] = field(default_factory=dict)  # insertion-ordered set


def walk_links(
    source: Document,
    index: DocumentIndex,
    *,
    include_links: bool = False,
    exclude_patterns: Sequence[re.Pattern[str]] = (),
    max_depth: int = MAX_LINK_DEPTH,
) -> dict[str, TraversalEntry]:
    """Collect every document reachable from ``source``.

    Args:
        source: Starting document.
        index: Supplies metadata and resolves link paths.
        include_links: Follow plain links as well as embeds.
        exclude_patterns: Links whose "[display](target)" rendering matches any
            pattern are ignored.
        max_depth: Entries at this depth are recorded but not expanded.

    Returns:
        Map from document path (or raw link text, for unresolved links) to its
        entry, in discovery order. The source itself is not included.
    """
    origin = TraversalEntry(document=source, depth=0, has_full_reference=True)
    entries: dict[str, TraversalEntry] = {source.path: origin}
    queue: deque[TraversalEntry] = deque([origin])

    while queue:
        current = queue.popleft()
        if current.document is None or current.depth >= max_depth:
            continue

        metadata = index.get_metadata(current.document)
        if metadata is None:
            continue

        candidates = [*(metadata.links if include_links else ()), *metadata.embeds]
        for record in candidates:
            if should_exclude_link(record, exclude_patterns):
                continue

            # Unresolved links are keyed by their raw text
            seen = entries.get(record.link)
            if seen is not None and seen.document is None:
                continue

            path, subpath = parse_link_reference(record.link)
            target = index.resolve_link(path, current.document.path)
            if target is None:
                log.debug("Link target not found: %s (from %s)", record.link, current.document.path)
                entries[record.link] = TraversalEntry(document=None, depth=current.depth + 1)
                continue

            entry = entries.get(target.path)
            if entry is None:
                entry = TraversalEntry(document=target, depth=current.depth + 1)
                entries[target.path] = entry
                queue.append(entry)
                log.debug("Link %s -> %s", current.document.path, target.path)

            if subpath:
                entry.subpaths[subpath] = None
            else:
                entry.has_full_reference = True

    del entries[source.path]
    return entries


def extract_subpath(text: str, metadata: DocumentMetadata, subpath: str) -> str:
    """Extract a heading section or a block from a document.

    Args:
        text: Raw document text the metadata offsets refer to.
        metadata: Structural index of the document.
        subpath: "^block-id" or a heading name (``%20`` stands for a space).

    Returns:
        The stripped section or block text; empty if the subpath is not found.
    """
    if subpath.startswith("^"):
        block = metadata.blocks.get(subpath[1:])
        if block is None:
            log.debug("Block reference not found: %s", subpath)
            return ""
        return text[block.start : block.end].strip()

    target = subpath.replace("%20", " ")
    for position, heading in enumerate(metadata.headings):
        if heading.heading != target:
            continue
        end = len(text)
        for following in metadata.headings[position + 1 :]:
            if following.level <= heading.level:
                end = following.start
                break
        return text[heading.end : end].strip()

    log.debug("Subpath not found: #%s", subpath)
    return ""


def _is_assemblable(entry: TraversalEntry) -> bool:
    return entry.document is not None and entry.document.extension in SUPPORTED_EXTENSIONS


def assemble_content(
    text: str,
    entries: Mapping[str, TraversalEntry],
    contents: Mapping[str, str],
    index: DocumentIndex,
) -> str:
    """Append the referenced content to ``text``.

    Args:
        text: The source document's own text.
        entries: Result of walk_links.
        contents: Raw text per entry key. Entries without content are skipped.
        index: Supplies the metadata needed for subpath extraction.

    Returns:
        ``text`` unchanged if nothing was appended, otherwise ``text``, a header
        line and one sentinel-wrapped block per document or subpath.
    """
    blocks: list[str] = []

    for key, entry in entries.items():
        if not _is_assemblable(entry) or key not in contents:
            continue
        document = entry.document
        content = contents[key]

        if entry.has_full_reference:
            blocks.append(ENTRY_BEGIN_TEMPLATE.format(name=document.path))
            blocks.append(content)
            blocks.append(ENTRY_END_MARKER)
            continue

        metadata = index.get_metadata(document) or DocumentMetadata()
        for subpath in entry.subpaths:
            blocks.append(ENTRY_BEGIN_TEMPLATE.format(name=f"{document.path}#{subpath}"))
            blocks.append(extract_subpath(content, metadata, subpath))
            blocks.append(ENTRY_END_MARKER)

    if not blocks:
        return text
    return text + EXPANDED_CONTENT_HEADER + "\n".join(blocks)


async def expand_linked_documents(
    source: Document,
    text: str,
    index: DocumentIndex,
    store: ContentStore,
    *,
    exclude_patterns: Sequence[re.Pattern[str]] = (),
    include_links: bool = False,
) -> str:
    """Append the notes linked from ``source`` to its text.

    Args:
        source: The note being expanded.
        text: Its current text (may differ from what is on disk).
        index: Document index for metadata and link resolution.
        store: Reads linked documents.
        exclude_patterns: Compiled link exclusion patterns.
        include_links: Follow plain links, not just embeds.

    Returns:
        The expanded text.
    """
    if index.get_metadata(source) is None:
        return text

    entries = walk_links(
        source,
        index,
        include_links=include_links,
        exclude_patterns=exclude_patterns,
    )
    log.debug("Collecting content from %d linked files", len(entries))

    contents: dict[str, str] = {}
    for key, entry in entries.items():
        if not _is_assemblable(entry):
            continue
        try:
            contents[key] = await store.read(entry.document)
        except (OSError, UnicodeDecodeError) as e:
            log.debug("Could not read %s: %s", entry.document.path, e)

    return assemble_content(text, entries, contents, index)
