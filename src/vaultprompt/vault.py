"""Notes folder access: document handles, structural index and content reads.

The expansion code talks to two collaborators, declared here as protocols:
a ``DocumentIndex`` that supplies structural metadata and resolves link paths,
and a ``ContentStore`` that reads raw text. ``Vault`` implements both over a
directory tree.
"""

from __future__ import annotations

import asyncio
import logging
import posixpath
from dataclasses import dataclass
from pathlib import Path, PurePosixPath
from typing import Protocol

from .models import DocumentMetadata
from .parser.markdown import parse_document_metadata

log = logging.getLogger(__name__)

# Extension appended to link paths that carry none
DEFAULT_LINK_EXTENSION = "md"


@dataclass(frozen=True)
class Document:
    """Handle to a file in the vault, identified by its vault-relative POSIX path."""

    path: str

    @property
    def name(self) -> str:
        return PurePosixPath(self.path).name

    @property
    def basename(self) -> str:
        return PurePosixPath(self.path).stem

    @property
    def extension(self) -> str:
        return PurePosixPath(self.path).suffix.lstrip(".").lower()

    @property
    def parent(self) -> str:
        parent = str(PurePosixPath(self.path).parent)
        return "" if parent == "." else parent


class DocumentIndex(Protocol):
    def get_metadata(self, document: Document) -> DocumentMetadata | None: ...

    def resolve_link(self, linkpath: str, source_path: str) -> Document | None: ...


class ContentStore(Protocol):
    async def read(self, document: Document) -> str: ...


class Vault:
    """A directory of Markdown notes.

    Args:
        root: Vault root directory.
        case_sensitive: Match link paths case-sensitively. Off by default, matching
            how wiki-style links behave on case-insensitive filesystems.
    """

    def __init__(self, root: Path, *, case_sensitive: bool = False) -> None:
        self.root = Path(root)
        self.case_sensitive = case_sensitive
        self._metadata_cache: dict[str, tuple[float, DocumentMetadata]] = {}
        self._files: list[str] | None = None

    # ─────────────────────────────────────────────────────────────────────────
    # Files
    # ─────────────────────────────────────────────────────────────────────────

    def _scan(self) -> list[str]:
        if self._files is None:
            files = []
            if self.root.is_dir():
                for path in self.root.rglob("*"):
                    rel = path.relative_to(self.root)
                    # Hidden folders hold tool state, not notes
                    if any(part.startswith(".") for part in rel.parts):
                        continue
                    if path.is_file():
                        files.append(rel.as_posix())
            self._files = sorted(files)
        return self._files

    def refresh(self) -> None:
        """Forget the file listing and cached metadata."""
        self._files = None
        self._metadata_cache.clear()

    def _key(self, path: str) -> str:
        return path if self.case_sensitive else path.lower()

    def get_document(self, path: str | Path) -> Document | None:
        """Look up a document by vault-relative or absolute path."""
        candidate = Path(path)
        if candidate.is_absolute():
            try:
                candidate = candidate.resolve().relative_to(self.root.resolve())
            except ValueError:
                return None
        wanted = self._key(candidate.as_posix())
        for rel in self._scan():
            if self._key(rel) == wanted:
                return Document(rel)
        return None

    def documents(self) -> list[Document]:
        return [Document(rel) for rel in self._scan()]

    def full_path(self, document: Document) -> Path:
        return self.root / document.path

    # ─────────────────────────────────────────────────────────────────────────
    # DocumentIndex
    # ─────────────────────────────────────────────────────────────────────────

    def get_metadata(self, document: Document) -> DocumentMetadata | None:
        """Return the structural index of a Markdown document.

        Parsed lazily and cached until the file's mtime changes. Files that are
        not Markdown, or cannot be read, have no metadata.
        """
        if document.extension != DEFAULT_LINK_EXTENSION:
            return None

        path = self.full_path(document)
        try:
            mtime = path.stat().st_mtime
            cached = self._metadata_cache.get(document.path)
            if cached and cached[0] == mtime:
                return cached[1]
            text = path.read_text(encoding="utf-8")
        except (OSError, UnicodeDecodeError) as e:
            log.debug("No metadata for %s: %s", document.path, e)
            return None

        metadata = parse_document_metadata(text)
        self._metadata_cache[document.path] = (mtime, metadata)
        return metadata

    def resolve_link(self, linkpath: str, source_path: str) -> Document | None:
        """Resolve a link path to a document.

        Attempts resolution in order:
        1. Empty path -> the source document itself ("#Heading" links)
        2. Path relative to the source's folder
        3. Path relative to the vault root
        4. Filename match anywhere, preferring the source's folder, then the
           shortest path

        Each step is tried with ".md" appended first, then with the path as
        written, so dotted note names ("Meeting 2024.01.15") resolve to notes
        while "diagram.png" still resolves to the attachment.

        Args:
            linkpath: Link target without its subpath.
            source_path: Vault-relative path of the linking document.

        Returns:
            The resolved Document, or None if nothing matches.
        """
        normalized = linkpath.strip().replace("\\", "/")
        if not normalized:
            return self.get_document(source_path)

        names = [normalized]
        if PurePosixPath(normalized).suffix.lower() != f".{DEFAULT_LINK_EXTENSION}":
            names.insert(0, f"{normalized}.{DEFAULT_LINK_EXTENSION}")

        files = {self._key(rel): rel for rel in self._scan()}
        source_dir = posixpath.dirname(source_path)

        for name in names:
            match = self._match_path(name, source_dir, files)
            if match is not None:
                return Document(match)
        return None

    def _match_path(self, linkpath: str, source_dir: str, files: dict[str, str]) -> str | None:
        candidates = []
        if not linkpath.startswith("/"):
            candidates.append(posixpath.normpath(posixpath.join(source_dir, linkpath)))
        candidates.append(posixpath.normpath(linkpath.lstrip("/")))
        for candidate in candidates:
            match = files.get(self._key(candidate))
            if match is not None:
                return match

        name = self._key(posixpath.basename(linkpath))
        suffix_key = self._key(linkpath.lstrip("/"))
        matches = [
            rel
            for key, rel in files.items()
            if posixpath.basename(key) == name and (key == suffix_key or key.endswith("/" + suffix_key))
        ]
        if not matches:
            return None

        source_dir_key = self._key(source_dir)
        matches.sort(
            key=lambda rel: (
                self._key(posixpath.dirname(rel)) != source_dir_key,
                rel.count("/"),
                rel,
            )
        )
        return matches[0]

    # ─────────────────────────────────────────────────────────────────────────
    # ContentStore
    # ─────────────────────────────────────────────────────────────────────────

    async def read(self, document: Document) -> str:
        """Read a document's raw text.

        Raises:
            OSError: If the file cannot be read.
            UnicodeDecodeError: If the file is not UTF-8.
        """
        return await asyncio.to_thread(self.full_path(document).read_text, encoding="utf-8")
