"""Pydantic models for vaultprompt."""

from typing import Any, Literal

from pydantic import BaseModel, Field

# Built-in connection used when the settings file names none
DEFAULT_CONNECTION_KEY = "local-ollama"

# Fallback model when neither the prompt nor the connection names one
DEFAULT_MODEL = "llama3.1"


class LinkRecord(BaseModel):
    """An outbound link or embed as recorded in a document's index."""

    link: str  # Raw target, e.g. "folder/note#Heading"
    display_text: str | None = None  # Alias text, defaults to the target


class HeadingInfo(BaseModel):
    """A heading and its character offsets in the raw document text."""

    heading: str
    level: int = Field(ge=1, le=6)
    start: int  # Offset of the first '#'
    end: int  # Offset just past the heading text (end of line, newline excluded)


class BlockInfo(BaseModel):
    """A block anchor (``^id``) and the span of the block it labels."""

    id: str
    start: int
    end: int


class DocumentMetadata(BaseModel):
    """Structural index of one document.

    Offsets are character offsets into the raw file content, frontmatter included.
    """

    headings: list[HeadingInfo] = Field(default_factory=list)
    blocks: dict[str, BlockInfo] = Field(default_factory=dict)
    links: list[LinkRecord] = Field(default_factory=list)
    embeds: list[LinkRecord] = Field(default_factory=list)
    frontmatter: dict[str, Any] = Field(default_factory=dict)


# =============================================================================
# Settings
# =============================================================================


class ConnectionConfig(BaseModel):
    """A named connection to a generation backend."""

    provider: Literal["ollama", "openai-compatible"] = "ollama"
    base_url: str = "http://localhost:11434"
    api_key: str | None = None
    default_model: str | None = None
    keep_alive: str | None = None


class PromptConfig(BaseModel):
    """A prompt registered in the settings file."""

    display_label: str = "prompt"
    prompt_file: str | None = None  # Vault-relative path to the prompt note
    connection: str | None = None


def _default_connections() -> dict[str, ConnectionConfig]:
    return {
        DEFAULT_CONNECTION_KEY: ConnectionConfig(
            provider="ollama",
            base_url="http://localhost:11434",
            default_model=DEFAULT_MODEL,
            keep_alive="10m",
        )
    }


def _default_prompts() -> dict[str, PromptConfig]:
    return {"default": PromptConfig(display_label="prompt")}


class Settings(BaseModel):
    """Vault-wide settings loaded from ``.vpconfig``."""

    default_connection: str = DEFAULT_CONNECTION_KEY
    exclude_patterns: str | list[str] = ""
    debug_logging: bool = False
    connections: dict[str, ConnectionConfig] = Field(default_factory=_default_connections)
    prompts: dict[str, PromptConfig] = Field(default_factory=_default_prompts)


class ResolvedPrompt(BaseModel):
    """Prompt parameters after merging prompt file, settings and defaults."""

    prompt: str
    connection: str | None = None
    model: str | None = None
    num_ctx: int | None = None
    is_continuous: bool | None = None
    include_links: bool | None = None
    exclude_patterns: list[Any] = Field(default_factory=list)  # compiled re.Pattern objects
    exclude_callout_types: list[str] | None = None
    source_path: str | None = None
    temperature: float | None = None
    top_p: float | None = None
    top_k: int | None = None
    repeat_penalty: float | None = None
    filters: list[str] | None = None
    wrap_in_blockquote: bool | None = None
    callout_heading: str | None = None
    replace_selected_text: bool | None = None


# =============================================================================
# Generation
# =============================================================================


class GenerateOptions(BaseModel):
    """Sampling parameters and continuation token for one generation call."""

    num_ctx: int | None = None
    context: str | None = None  # Opaque continuation token from a previous call
    temperature: float | None = None
    top_p: float | None = None
    top_k: int | None = None
    repeat_penalty: float | None = None
    keep_alive: str | None = None


class GenerateResult(BaseModel):
    """Backend response."""

    response: str | None
    context: str | None = None
