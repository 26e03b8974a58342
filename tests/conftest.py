"""Shared test fixtures for vaultprompt test suite.

Design:
- tmp_vault: Creates isolated vault in temp directory
- runner: CliRunner with proper isolation
- Async tests use pytest-asyncio (@pytest.mark.asyncio)
"""

import os
from pathlib import Path
from typing import Generator

import pytest
from click.testing import CliRunner


# ─────────────────────────────────────────────────────────────────────────────
# Core Fixtures
# ─────────────────────────────────────────────────────────────────────────────


@pytest.fixture
def runner() -> CliRunner:
    """CLI runner with isolated environment."""
    return CliRunner()


@pytest.fixture
def tmp_vault(tmp_path: Path) -> Generator[Path, None, None]:
    """Create isolated vault directory with an empty settings file.

    Sets VAULTPROMPT_VAULT_ROOT to the temp directory, yields the path, then
    restores the environment.

    Usage:
        def test_something(tmp_vault):
            write_note(tmp_vault, "a.md", "# A")
    """
    vault_root = tmp_path / "vault"
    vault_root.mkdir()
    (vault_root / ".vpconfig").write_text("")

    original = os.environ.get("VAULTPROMPT_VAULT_ROOT")
    os.environ["VAULTPROMPT_VAULT_ROOT"] = str(vault_root)

    yield vault_root

    if original is not None:
        os.environ["VAULTPROMPT_VAULT_ROOT"] = original
    else:
        os.environ.pop("VAULTPROMPT_VAULT_ROOT", None)


# ─────────────────────────────────────────────────────────────────────────────
# Helper Functions (for test code, not fixtures)
# ─────────────────────────────────────────────────────────────────────────────


def write_note(vault_root: Path, path: str, content: str) -> Path:
    """Helper to create a note (parent folders included).

    Usage in tests:
        from conftest import write_note
        write_note(tmp_vault, "folder/note.md", "Body ![[other]]")
    """
    note_path = vault_root / path
    note_path.parent.mkdir(parents=True, exist_ok=True)
    note_path.write_text(content, encoding="utf-8")
    return note_path
