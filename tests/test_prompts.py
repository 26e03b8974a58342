"""Tests for prompt note parsing and resolution (vaultprompt.prompts)."""

from pathlib import Path

import pytest

from conftest import write_note
from vaultprompt.config import DEFAULT_PROMPT
from vaultprompt.models import PromptConfig, Settings
from vaultprompt.prompts import (
    PromptError,
    PromptResolver,
    extract_frontmatter_value,
    format_as_blockquote,
    get_frontmatter_value,
    normalize_to_array,
    parse_boolean,
    parse_finite_number,
    parse_parameter_with_constraint,
    parse_positive_integer,
)
from vaultprompt.vault import Vault


# ─────────────────────────────────────────────────────────────────────────────
# Value helpers
# ─────────────────────────────────────────────────────────────────────────────


class TestNormalizeToArray:
    def test_empty_values(self):
        assert normalize_to_array(None) is None
        assert normalize_to_array("") is None
        assert normalize_to_array([]) is None

    def test_newline_delimited(self):
        assert normalize_to_array("a\n  b \n\nc") == ["a", "b", "c"]

    def test_list_passthrough(self):
        assert normalize_to_array(["x", "y"]) == ["x", "y"]


class TestParseBoolean:
    @pytest.mark.parametrize(
        "value,expected",
        [
            (True, True),
            (False, False),
            ("true", True),
            ("TRUE", True),
            (" false ", False),
            ("yes", None),
            (1, None),
            (None, None),
        ],
    )
    def test_values(self, value, expected):
        assert parse_boolean(value) is expected


class TestNumbers:
    def test_finite_number(self):
        assert parse_finite_number(0.5) == 0.5
        assert parse_finite_number("  2.5 ") == 2.5
        assert parse_finite_number("abc") is None
        assert parse_finite_number(float("inf")) is None
        assert parse_finite_number("nan") is None
        assert parse_finite_number(True) is None
        assert parse_finite_number([1]) is None

    def test_positive_integer(self):
        assert parse_positive_integer(4096) == 4096
        assert parse_positive_integer("40") == 40
        assert parse_positive_integer(3.0) == 3
        assert parse_positive_integer(3.5) is None
        assert parse_positive_integer(0) is None
        assert parse_positive_integer(-2) is None

    def test_constraint(self):
        fm = {"temp": "0"}
        assert parse_parameter_with_constraint(fm, ["temperature", "temp"], lambda v: v >= 0) == 0.0
        assert parse_parameter_with_constraint(fm, ["temperature", "temp"], lambda v: v > 0) is None


class TestFrontmatterLookup:
    def test_first_present_key_wins(self):
        fm = {"topK": 5, "top_k": None, "top-k": 9}
        assert get_frontmatter_value(fm, ["top_k", "topK", "top-k"]) == 5

    def test_missing(self):
        assert get_frontmatter_value(None, ["a"]) is None
        assert get_frontmatter_value({}, ["a"]) is None

    def test_string_value_applies_to_every_prompt(self):
        fm = {"prompt-file": "prompts/p.md"}
        assert extract_frontmatter_value(fm, "prompt-file", "any") == "prompts/p.md"

    def test_mapping_value_is_per_prompt(self):
        fm = {"prompt-file": {"reflect": "r.md", "count": 3}}
        assert extract_frontmatter_value(fm, "prompt-file", "reflect") == "r.md"
        assert extract_frontmatter_value(fm, "prompt-file", "summary") is None
        assert extract_frontmatter_value(fm, "prompt-file", "count") is None


class TestFormatAsBlockquote:
    def test_every_line_prefixed(self):
        assert format_as_blockquote("a\n\nb") == "> a\n> \n> b"

    def test_callout_heading(self):
        assert format_as_blockquote("body", "[!ai]- Answer") == "> [!ai]- Answer\n> body"


# ─────────────────────────────────────────────────────────────────────────────
# Resolver
# ─────────────────────────────────────────────────────────────────────────────


PROMPT_NOTE = """---
model: mistral
connection: remote
num_ctx: 8192
temp: 0.2
topP: 0.9
top-k: 40
repeat_penalty: "1.1"
continuous: "true"
includeLinks: true
excludePatterns: |
  \\(private/
  [unclosed
excludeCalloutTypes:
  - secret
filters:
  - strip-frontmatter
wrapInBlockquote: false
calloutHeading: "[!ai] Reply"
replaceSelectedText: true
---
You are a terse editor.
"""


def _resolver(root: Path, settings: Settings) -> PromptResolver:
    return PromptResolver(Vault(root), settings)


class TestPromptResolver:
    @pytest.mark.asyncio
    async def test_unknown_prompt_key(self, tmp_path):
        write_note(tmp_path, "note.md", "x")
        resolver = _resolver(tmp_path, Settings())
        with pytest.raises(PromptError, match="Unknown prompt key"):
            await resolver.resolve(resolver.vault.get_document("note.md"), "missing")

    @pytest.mark.asyncio
    async def test_default_prompt_without_prompt_file(self, tmp_path):
        write_note(tmp_path, "note.md", "x")
        settings = Settings(prompts={"default": PromptConfig(connection="local-ollama")})
        resolver = _resolver(tmp_path, settings)

        resolved = await resolver.resolve(resolver.vault.get_document("note.md"), "default")

        assert resolved.prompt == DEFAULT_PROMPT
        assert resolved.connection == "local-ollama"
        assert resolved.source_path is None

    @pytest.mark.asyncio
    async def test_settings_prompt_file(self, tmp_path):
        write_note(tmp_path, "note.md", "x")
        write_note(tmp_path, "prompts/editor.md", PROMPT_NOTE)
        settings = Settings(prompts={"edit": PromptConfig(prompt_file="prompts/editor.md")})
        resolver = _resolver(tmp_path, settings)

        resolved = await resolver.resolve(resolver.vault.get_document("note.md"), "edit")

        assert resolved.prompt == "You are a terse editor."
        assert resolved.model == "mistral"
        assert resolved.connection == "remote"
        assert resolved.num_ctx == 8192
        assert resolved.temperature == 0.2
        assert resolved.top_p == 0.9
        assert resolved.top_k == 40
        assert resolved.repeat_penalty == 1.1
        assert resolved.is_continuous is True
        assert resolved.include_links is True
        assert [p.pattern for p in resolved.exclude_patterns] == ["\\(private/"]
        assert resolved.exclude_callout_types == ["secret"]
        assert resolved.filters == ["strip-frontmatter"]
        assert resolved.wrap_in_blockquote is False
        assert resolved.callout_heading == "[!ai] Reply"
        assert resolved.replace_selected_text is True
        assert resolved.source_path == "prompts/editor.md"

    @pytest.mark.asyncio
    async def test_note_prompt_file_overrides_settings(self, tmp_path):
        write_note(tmp_path, "note.md", "---\nprompt-file:\n  edit: prompts/mine.md\n---\nbody")
        write_note(tmp_path, "prompts/mine.md", "Mine")
        write_note(tmp_path, "prompts/editor.md", "Theirs")
        settings = Settings(
            prompts={"edit": PromptConfig(prompt_file="prompts/editor.md", connection="fallback")}
        )
        resolver = _resolver(tmp_path, settings)

        resolved = await resolver.resolve(resolver.vault.get_document("note.md"), "edit")

        assert resolved.prompt == "Mine"
        assert resolved.connection == "fallback"

    @pytest.mark.asyncio
    async def test_missing_prompt_file_falls_back(self, tmp_path):
        write_note(tmp_path, "note.md", "x")
        settings = Settings(prompts={"edit": PromptConfig(prompt_file="prompts/gone.md")})
        resolver = _resolver(tmp_path, settings)

        resolved = await resolver.resolve(resolver.vault.get_document("note.md"), "edit")

        assert resolved.prompt == DEFAULT_PROMPT

    @pytest.mark.asyncio
    async def test_invalid_values_are_dropped(self, tmp_path):
        write_note(tmp_path, "p.md", "---\ntemperature: -1\ntop_k: 2.5\nnum_ctx: abc\n---\n")
        resolver = _resolver(tmp_path, Settings())

        resolved = await resolver.read_prompt_file("p.md")

        assert resolved.temperature is None
        assert resolved.top_k is None
        assert resolved.num_ctx is None
        assert resolved.prompt == DEFAULT_PROMPT
