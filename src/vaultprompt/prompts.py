"""Prompt resolution from prompt notes and settings.

A prompt note is a Markdown file whose body is the system prompt and whose
frontmatter tunes generation:

    ---
    model: llama3.1
    temperature: 0.7
    includeLinks: true
    excludeCalloutTypes:
      - private
    ---
    You are a careful editor...

A note can point at a prompt note of its own with ``prompt-file``, either as a
plain path or as a mapping keyed by prompt name.
"""

from __future__ import annotations

import logging
import math
from collections.abc import Callable, Sequence
from typing import Any

import frontmatter

from .config import DEFAULT_PROMPT
from .models import ResolvedPrompt, Settings
from .parser.links import compile_exclude_patterns
from .vault import Document, Vault

log = logging.getLogger(__name__)


class PromptError(Exception):
    """Raised when a prompt cannot be resolved."""

    pass


# =============================================================================
# Frontmatter value helpers
# =============================================================================


def normalize_to_array(value: str | Sequence[str] | None) -> list[str] | None:
    """Normalize a newline-delimited string or a list to a list of strings.

    Returns:
        Trimmed non-empty items, or None for empty input. Lists pass through.
    """
    if not value:
        return None
    if isinstance(value, str):
        return [item.strip() for item in value.split("\n") if item.strip()]
    return list(value)


def parse_boolean(value: Any) -> bool | None:
    """Parse a bool, or the strings "true"/"false" in any case."""
    if value is None:
        return None
    if isinstance(value, bool):
        return value
    if isinstance(value, str):
        normalized = value.strip().lower()
        if normalized == "true":
            return True
        if normalized == "false":
            return False
    return None


def parse_finite_number(value: Any) -> float | None:
    """Parse a finite number from a number or numeric string."""
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        parsed = float(value)
    elif isinstance(value, str):
        try:
            parsed = float(value.strip())
        except ValueError:
            return None
    else:
        return None
    return parsed if math.isfinite(parsed) else None


def parse_positive_integer(value: Any) -> int | None:
    """Parse a strictly positive integer; 3.0 is accepted, 3.5 is not."""
    parsed = parse_finite_number(value)
    if parsed is None or not parsed.is_integer() or parsed <= 0:
        return None
    return int(parsed)


def get_frontmatter_value(fm: dict[str, Any] | None, keys: Sequence[str]) -> Any:
    """Return the value of the first key present with a non-None value."""
    if not fm:
        return None
    for key in keys:
        if fm.get(key) is not None:
            return fm[key]
    return None


def extract_frontmatter_value(fm: dict[str, Any] | None, key: str, prompt_key: str) -> str | None:
    """Get a string value, or its per-prompt override from a nested mapping.

    Examples:
        {"prompt-file": "p.md"} -> "p.md" for any prompt
        {"prompt-file": {"reflect": "r.md"}} -> "r.md" for "reflect" only
    """
    if not fm or not fm.get(key):
        return None
    value = fm[key]
    if isinstance(value, str):
        return value
    if isinstance(value, dict):
        prompt_value = value.get(prompt_key)
        if isinstance(prompt_value, str):
            return prompt_value
    return None


def parse_parameter_with_constraint(
    fm: dict[str, Any] | None,
    keys: Sequence[str],
    constraint: Callable[[float], bool],
) -> float | None:
    candidate = parse_finite_number(get_frontmatter_value(fm, keys))
    if candidate is not None and constraint(candidate):
        return candidate
    return None


def format_as_blockquote(content: str, callout_heading: str | None = None) -> str:
    """Prefix every line with "> ", optionally under a callout heading line."""
    lines = [f"> {line}" for line in content.split("\n")]
    if callout_heading:
        lines.insert(0, f"> {callout_heading}")
    return "\n".join(lines)


# =============================================================================
# Resolver
# =============================================================================


class PromptResolver:
    """Merge prompt note, settings and defaults into a ResolvedPrompt."""

    def __init__(self, vault: Vault, settings: Settings) -> None:
        self.vault = vault
        self.settings = settings

    async def resolve(self, document: Document, prompt_key: str) -> ResolvedPrompt:
        """Resolve the prompt for a note.

        Prompt note selection:
        1. The note's ``prompt-file`` frontmatter value (highest priority)
        2. The prompt's ``prompt_file`` in settings

        Raises:
            PromptError: If the prompt key is not configured.
        """
        prompt_config = self.settings.prompts.get(prompt_key)
        if prompt_config is None:
            raise PromptError(f"Unknown prompt key: {prompt_key}")

        metadata = self.vault.get_metadata(document)
        note_frontmatter = metadata.frontmatter if metadata else {}
        prompt_file = (
            extract_frontmatter_value(note_frontmatter, "prompt-file", prompt_key)
            or prompt_config.prompt_file
        )

        resolved = await self.read_prompt_file(prompt_file) if prompt_file else None
        if resolved is None:
            return ResolvedPrompt(prompt=DEFAULT_PROMPT, connection=prompt_config.connection)

        if resolved.connection is None:
            resolved.connection = prompt_config.connection
        return resolved

    async def read_prompt_file(self, path: str) -> ResolvedPrompt | None:
        """Read a prompt note.

        Returns:
            The prompt parameters, or None if the file is missing or unreadable.
        """
        document = self.vault.get_document(path)
        if document is None:
            log.warning("Prompt file not found: %s", path)
            return None

        try:
            post = frontmatter.loads(await self.vault.read(document))
        except Exception as e:
            log.error("Error reading prompt file %s: %s", path, e)
            return None

        fm = dict(post.metadata)
        model = fm.get("model")
        callout_heading = fm.get("calloutHeading")
        connection = fm.get("connection")

        return ResolvedPrompt(
            prompt=post.content.strip() or DEFAULT_PROMPT,
            connection=connection if isinstance(connection, str) else None,
            model=model if isinstance(model, str) else None,
            num_ctx=parse_positive_integer(fm.get("num_ctx")),
            temperature=parse_parameter_with_constraint(fm, ["temperature", "temp"], lambda v: v >= 0),
            top_p=parse_parameter_with_constraint(fm, ["top_p", "topP", "top-p"], lambda v: v > 0),
            top_k=parse_positive_integer(get_frontmatter_value(fm, ["top_k", "topK", "top-k"])),
            repeat_penalty=parse_parameter_with_constraint(
                fm, ["repeat_penalty", "repeatPenalty", "repeat-penalty"], lambda v: v > 0
            ),
            is_continuous=parse_boolean(
                get_frontmatter_value(fm, ["isContinuous", "is_continuous", "is-continuous", "continuous"])
            ),
            include_links=parse_boolean(fm.get("includeLinks")),
            exclude_patterns=compile_exclude_patterns(fm.get("excludePatterns")),
            exclude_callout_types=normalize_to_array(fm.get("excludeCalloutTypes")),
            filters=normalize_to_array(fm.get("filters")),
            wrap_in_blockquote=parse_boolean(fm.get("wrapInBlockquote")),
            callout_heading=callout_heading if isinstance(callout_heading, str) else None,
            replace_selected_text=parse_boolean(fm.get("replaceSelectedText")),
            source_path=document.path,
        )
