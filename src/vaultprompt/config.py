"""Configuration management for vaultprompt.

This module contains all configurable constants for link expansion and
generation. Magic numbers are documented here rather than scattered throughout
the codebase.
"""

import os
from pathlib import Path

import yaml
from pydantic import ValidationError

from .models import Settings

# Settings filename (marks a directory as a vault root)
SETTINGS_FILENAME = ".vpconfig"


class ConfigurationError(Exception):
    """Raised when required configuration is missing or invalid."""

    pass


def get_vault_root(start_dir: Path | None = None) -> Path:
    """Get the vault root directory.

    Discovery order:
    1. VAULTPROMPT_VAULT_ROOT environment variable (explicit override)
    2. Walk up from start_dir (or cwd) looking for a .vpconfig file
    3. Error with helpful message

    Raises:
        ConfigurationError: If no vault can be found.
    """
    root = os.environ.get("VAULTPROMPT_VAULT_ROOT")
    if root:
        return Path(root)

    discovered = _discover_settings_file(start_dir)
    if discovered:
        return discovered.parent

    raise ConfigurationError(
        "No vault found. Options:\n"
        f"  1. Create a {SETTINGS_FILENAME} file at the root of your notes folder\n"
        "  2. Set VAULTPROMPT_VAULT_ROOT to an existing notes folder"
    )


def _discover_settings_file(
    start_dir: Path | None = None, max_depth: int | None = None
) -> Path | None:
    """Walk up from start_dir looking for a settings file.

    Args:
        start_dir: Directory to start from (defaults to cwd)
        max_depth: Maximum directories to traverse up

    Returns:
        Path of the settings file if found, None otherwise.
    """
    current = Path(start_dir or os.getcwd()).resolve()
    depth = max_depth if max_depth is not None else MAX_CONFIG_SEARCH_DEPTH

    for _ in range(depth):
        candidate = current / SETTINGS_FILENAME
        if candidate.is_file():
            return candidate

        parent = current.parent
        if parent == current:  # Reached filesystem root
            break
        current = parent

    return None


def load_settings(vault_root: Path) -> Settings:
    """Load vault settings from its .vpconfig file.

    A missing file yields the built-in defaults. An empty file does too.

    Args:
        vault_root: Root directory of the vault.

    Returns:
        Validated Settings.

    Raises:
        ConfigurationError: If the file is unreadable, not YAML, or invalid.
    """
    config_file = vault_root / SETTINGS_FILENAME
    if not config_file.exists():
        return Settings()

    try:
        data = yaml.safe_load(config_file.read_text(encoding="utf-8"))
    except (OSError, yaml.YAMLError) as e:
        raise ConfigurationError(f"{config_file}: could not be read: {e}") from e

    if data is None:
        return Settings()

    if not isinstance(data, dict):
        raise ConfigurationError(f"{config_file}: expected a mapping at the top level")

    try:
        return Settings.model_validate(data)
    except ValidationError as e:
        errors = []
        for error in e.errors():
            loc = ".".join(str(x) for x in error["loc"])
            errors.append(f"  - {loc}: {error['msg']}")
        raise ConfigurationError(f"{config_file}: invalid settings:\n" + "\n".join(errors)) from e


# =============================================================================
# Link Expansion
# =============================================================================

# Maximum link depth followed from the source note.
# Depth 1 = notes the source links to, depth 2 = notes those link to.
# Entries discovered at the cap are recorded but never expanded further.
MAX_LINK_DEPTH = 2

# File extensions whose content is appended to the expanded text.
# Links to images, PDFs, canvases etc. are walked past but never inlined.
SUPPORTED_EXTENSIONS = frozenset({"md"})

# Sentinel markers wrapping each appended block
ENTRY_BEGIN_TEMPLATE = "===== BEGIN ENTRY: {name} ====="
ENTRY_END_MARKER = "===== END ENTRY =====\n"

# Header separating the source text from the appended blocks
EXPANDED_CONTENT_HEADER = "\n----- EMBEDDED/LINKED CONTENT -----\n"

# Maximum directory traversal depth when searching for .vpconfig files.
# Prevents infinite loops on circular symlinks or unusual filesystems.
MAX_CONFIG_SEARCH_DEPTH = 50


# =============================================================================
# Generation
# =============================================================================

DEFAULT_PROMPT = """You are a helpful assistant. You will be given the content of a note as markdown.
Your job is to respond based on the content provided.
Keep your response concise and relevant."""

# Continuation contexts for continuous prompts expire after an hour of inactivity
CONTEXT_TTL_SECONDS = 60 * 60
