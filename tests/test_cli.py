"""Tests for the vp CLI.

Uses tmp_vault from conftest.py (sets VAULTPROMPT_VAULT_ROOT) and click's
CliRunner. Generation goes through a stubbed openai client.
"""

import json
from types import SimpleNamespace

import pytest

from conftest import write_note
from vaultprompt.cli import cli


class StubClient:
    def __init__(self):
        self.chat = SimpleNamespace(completions=SimpleNamespace(create=self._create))
        self.models = SimpleNamespace(list=self._list)
        self.requests = []

    async def _create(self, **kwargs):
        self.requests.append(kwargs)
        return SimpleNamespace(choices=[SimpleNamespace(message=SimpleNamespace(content="Generated"))])

    async def _list(self):
        return SimpleNamespace(data=[SimpleNamespace(id="qwen"), SimpleNamespace(id="llama3.1")])


@pytest.fixture
def stub_client(monkeypatch):
    client = StubClient()
    monkeypatch.setattr("vaultprompt.llm_providers._get_async_openai_client", lambda base_url, api_key: client)
    return client


class TestExpand:
    def test_prints_note_with_embeds(self, runner, tmp_vault):
        write_note(tmp_vault, "today.md", "Today ![[plan#Goals]]")
        write_note(tmp_vault, "plan.md", "# Plan\n## Goals\nShip\n## Later\nRest\n")

        result = runner.invoke(cli, ["expand", "today.md"])

        assert result.exit_code == 0, result.output
        assert result.output.startswith("Today ![[plan#Goals]]\n----- EMBEDDED/LINKED CONTENT -----\n")
        assert "===== BEGIN ENTRY: plan.md#Goals =====\nShip\n===== END ENTRY =====\n" in result.output
        assert "Rest" not in result.output

    def test_include_links_and_exclusions(self, runner, tmp_vault):
        write_note(tmp_vault, "today.md", "[[a]] [[archive/b]]")
        write_note(tmp_vault, "a.md", "A body")
        write_note(tmp_vault, "archive/b.md", "B body")

        plain = runner.invoke(cli, ["expand", "today.md"])
        linked = runner.invoke(cli, ["expand", "today.md", "-l", "-x", "archive/"])

        assert "A body" not in plain.output
        assert "A body" in linked.output
        assert "B body" not in linked.output

    def test_settings_exclude_patterns(self, runner, tmp_vault):
        (tmp_vault / ".vpconfig").write_text("exclude_patterns: |\n  private\n")
        write_note(tmp_vault, "today.md", "![[private]] ![[public]]")
        write_note(tmp_vault, "private.md", "hidden")
        write_note(tmp_vault, "public.md", "shown")

        result = runner.invoke(cli, ["expand", "today.md"])

        assert "hidden" not in result.output
        assert "shown" in result.output

    def test_exclude_callouts(self, runner, tmp_vault):
        write_note(tmp_vault, "today.md", "Keep\n> [!private] Drop\n> drop\nKeep too")

        result = runner.invoke(cli, ["expand", "today.md", "-c", "private"])

        assert result.output == "Keep\nKeep too\n"

    def test_unknown_note(self, runner, tmp_vault):
        result = runner.invoke(cli, ["expand", "missing.md"])
        assert result.exit_code == 1
        assert "Note not found" in result.output

    def test_explicit_vault_option(self, runner, tmp_path, monkeypatch):
        monkeypatch.delenv("VAULTPROMPT_VAULT_ROOT", raising=False)
        write_note(tmp_path, "n.md", "hello")

        result = runner.invoke(cli, ["--vault", str(tmp_path), "expand", "n.md"])

        assert result.output == "hello\n"

    def test_invalid_settings(self, runner, tmp_vault):
        (tmp_vault / ".vpconfig").write_text("- not a mapping\n")
        write_note(tmp_vault, "n.md", "hello")

        result = runner.invoke(cli, ["expand", "n.md"])

        assert result.exit_code == 1
        assert "expected a mapping" in result.output


class TestFilterCallouts:
    def test_file_argument(self, runner, tmp_path):
        source = write_note(tmp_path, "n.md", "A\n> [!todo] x\n> y\nB\n")
        result = runner.invoke(cli, ["filter-callouts", str(source), "-t", "todo"])
        assert result.output == "A\nB\n"

    def test_stdin(self, runner):
        result = runner.invoke(cli, ["filter-callouts", "-t", "draft", "-t", "todo"], input="> [!DRAFT] d\nkeep")
        assert result.output == "keep"

    def test_type_is_required(self, runner):
        result = runner.invoke(cli, ["filter-callouts"], input="x")
        assert result.exit_code == 2


class TestIndex:
    def test_json(self, runner, tmp_vault):
        write_note(tmp_vault, "n.md", "# Title\nPara ^p1\n![[other]] [[ghost]]\n")
        write_note(tmp_vault, "other.md", "")

        result = runner.invoke(cli, ["index", "n.md", "--json"])

        data = json.loads(result.output)
        assert data["headings"][0]["heading"] == "Title"
        assert "p1" in data["blocks"]
        assert data["embeds"][0]["link"] == "other"
        assert data["links"][0]["link"] == "ghost"

    def test_text(self, runner, tmp_vault):
        write_note(tmp_vault, "n.md", "## Part\n![[other#x]] [[ghost]]\n")
        write_note(tmp_vault, "other.md", "")

        result = runner.invoke(cli, ["index", "n.md"])

        assert "## Part" in result.output
        assert "other#x -> other.md" in result.output
        assert "ghost -> (unresolved)" in result.output

    def test_non_markdown(self, runner, tmp_vault):
        write_note(tmp_vault, "data.csv", "a,b")
        result = runner.invoke(cli, ["index", "data.csv"])
        assert result.exit_code == 1
        assert "Not a readable Markdown note" in result.output


class TestGenerate:
    def test_prints_blockquote(self, runner, tmp_vault, stub_client):
        write_note(tmp_vault, "n.md", "Question ![[ref]]")
        write_note(tmp_vault, "ref.md", "Reference")

        result = runner.invoke(cli, ["generate", "n.md"])

        assert result.exit_code == 0, result.output
        assert result.output == "> Generated\n"
        user_message = stub_client.requests[0]["messages"][-1]["content"]
        assert "===== BEGIN ENTRY: ref.md =====\nReference\n" in user_message

    def test_write_appends(self, runner, tmp_vault, stub_client):
        note = write_note(tmp_vault, "n.md", "Question\n")

        result = runner.invoke(cli, ["generate", "n.md", "--write"])

        assert result.exit_code == 0, result.output
        assert note.read_text() == "Question\n\n> Generated\n"

    def test_write_replaces_body_when_prompt_asks(self, runner, tmp_vault, stub_client):
        write_note(tmp_vault, "prompts/rewrite.md", "---\nreplaceSelectedText: true\nwrapInBlockquote: false\n---\nRewrite.")
        note = write_note(tmp_vault, "n.md", "---\nprompt-file: prompts/rewrite.md\n---\nDraft text\n")

        result = runner.invoke(cli, ["generate", "n.md", "-w"])

        assert result.exit_code == 0, result.output
        assert note.read_text() == "---\nprompt-file: prompts/rewrite.md\n---\nGenerated\n"
        assert stub_client.requests[0]["messages"][0]["content"] == "Rewrite."

    def test_unknown_prompt(self, runner, tmp_vault, stub_client):
        write_note(tmp_vault, "n.md", "Question")
        result = runner.invoke(cli, ["generate", "n.md", "-p", "nope"])
        assert result.exit_code == 1
        assert "Unknown prompt key" in result.output

    def test_empty_note(self, runner, tmp_vault, stub_client):
        write_note(tmp_vault, "n.md", "")
        result = runner.invoke(cli, ["generate", "n.md"])
        assert result.exit_code == 1
        assert "Nothing was generated" in result.output


class TestModels:
    def test_lists_sorted_models(self, runner, tmp_vault, stub_client):
        result = runner.invoke(cli, ["models"])
        assert result.output == "llama3.1\nqwen\n"

    def test_unknown_connection(self, runner, tmp_vault):
        result = runner.invoke(cli, ["models", "--connection", "nope"])
        assert result.exit_code == 1
        assert "Connection 'nope' not found" in result.output
