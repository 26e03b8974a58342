"""Markdown structure extraction, link parsing and callout filtering."""

from ..models import BlockInfo, DocumentMetadata, HeadingInfo, LinkRecord
from .callouts import filter_callouts
from .links import (
    ParsedReference,
    compile_exclude_patterns,
    parse_link_reference,
    render_link,
    should_exclude_link,
)
from .markdown import parse_document_metadata

__all__ = [
    "BlockInfo",
    "DocumentMetadata",
    "HeadingInfo",
    "LinkRecord",
    "ParsedReference",
    "compile_exclude_patterns",
    "filter_callouts",
    "parse_document_metadata",
    "parse_link_reference",
    "render_link",
    "should_exclude_link",
]
