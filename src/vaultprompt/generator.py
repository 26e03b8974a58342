"""Generation pipeline: expand, filter, generate, format."""

from __future__ import annotations

import logging
import time
from collections.abc import Callable
from typing import Any

from .config import CONTEXT_TTL_SECONDS
from .expansion import expand_linked_documents
from .llm_providers import GenerationBackend, LLMProviderError, create_backend
from .models import DEFAULT_MODEL, ConnectionConfig, GenerateOptions, ResolvedPrompt, Settings
from .parser.callouts import filter_callouts
from .parser.links import compile_exclude_patterns
from .prompts import PromptResolver, format_as_blockquote
from .vault import Document, Vault

log = logging.getLogger(__name__)

# Named text filters a prompt can apply with ``filters:`` before generation
FILTERS: dict[str, Callable[[str], str]] = {}


def register_filter(name: str) -> Callable[[Callable[[str], str]], Callable[[str], str]]:
    """Register a prefilter under a name.

    Usage:
        @register_filter("strip-tasks")
        def strip_tasks(text: str) -> str:
            ...
    """

    def decorator(fn: Callable[[str], str]) -> Callable[[str], str]:
        FILTERS[name] = fn
        return fn

    return decorator


def apply_prefilters(content: str, filter_names: list[str] | None) -> str:
    """Run the named filters in order.

    Unknown names are skipped. If a filter raises, the unfiltered content is
    returned.
    """
    if not filter_names:
        return content

    processed = content
    for name in filter_names:
        filter_fn = FILTERS.get(name)
        if filter_fn is None:
            log.warning('Filter "%s" is not registered', name)
            continue
        try:
            log.debug("Filtering: %s", name)
            processed = filter_fn(processed)
        except Exception:
            log.exception('Error applying filter "%s"', name)
            return content
    return processed


class ContextStore:
    """Continuation tokens for continuous prompts, expiring after a TTL."""

    def __init__(self, ttl: float = CONTEXT_TTL_SECONDS, clock: Callable[[], float] = time.monotonic) -> None:
        self.ttl = ttl
        self._clock = clock
        self._entries: dict[str, tuple[str, float]] = {}

    @staticmethod
    def build_key(document: Document, resolved: ResolvedPrompt, prompt_key: str) -> str | None:
        if resolved.is_continuous is not True:
            return None
        return f"{document.path}::{resolved.source_path or prompt_key}"

    def get(self, key: str | None) -> str | None:
        if key is None:
            return None
        entry = self._entries.get(key)
        if entry is None:
            return None
        context, stored_at = entry
        if self._clock() - stored_at > self.ttl:
            del self._entries[key]
            return None
        return context

    def store(self, key: str, context: str | None) -> None:
        if not context:
            self._entries.pop(key, None)
            return
        self._entries[key] = (context, self._clock())
        self._cull()

    def _cull(self) -> None:
        now = self._clock()
        for key in [k for k, (_, stored_at) in self._entries.items() if now - stored_at > self.ttl]:
            del self._entries[key]

    def __len__(self) -> int:
        return len(self._entries)


class ContentGenerator:
    """Produce generated text for a note.

    Args:
        vault: The notes folder.
        settings: Vault settings.
        backend_factory: Builds a backend from a connection; replaced in tests.
    """

    def __init__(
        self,
        vault: Vault,
        settings: Settings,
        backend_factory: Callable[[ConnectionConfig], GenerationBackend] = create_backend,
    ) -> None:
        self.vault = vault
        self.settings = settings
        self.backend_factory = backend_factory
        self.prompt_resolver = PromptResolver(vault, settings)
        self.contexts = ContextStore()
        self.exclude_patterns = compile_exclude_patterns(settings.exclude_patterns)

    def get_connection(self, resolved: ResolvedPrompt) -> tuple[str, ConnectionConfig | None]:
        key = resolved.connection or self.settings.default_connection
        return key, self.settings.connections.get(key)

    async def prepare_text(self, document: Document, text: str, resolved: ResolvedPrompt) -> str:
        """Expand linked notes, drop excluded callouts and run prefilters."""
        expanded = await expand_linked_documents(
            document,
            text,
            self.vault,
            self.vault,
            exclude_patterns=[*self.exclude_patterns, *resolved.exclude_patterns],
            include_links=resolved.include_links or False,
        )
        filtered = filter_callouts(expanded, resolved.exclude_callout_types)
        return apply_prefilters(filtered, resolved.filters)

    async def generate(self, document: Document, prompt_key: str, text: str | None = None) -> str | None:
        """Generate and format a response for a note.

        Args:
            document: The note.
            prompt_key: Prompt name from settings.
            text: Current note text; read from disk when omitted.

        Returns:
            Formatted response, or None when nothing could be generated.

        Raises:
            PromptError: If the prompt key is unknown.
            LLMProviderError: If the connection is missing or misconfigured.
        """
        resolved = await self.prompt_resolver.resolve(document, prompt_key)
        log.debug("Resolved prompt parameters for %s: %s", prompt_key, resolved)

        if text is None:
            text = await self.vault.read(document)

        document_text = await self.prepare_text(document, text, resolved)
        if not document_text.strip():
            log.warning("Document is empty. Write something first!")
            return None

        connection_key, connection = self.get_connection(resolved)
        if connection is None:
            raise LLMProviderError(f"Connection '{connection_key}' not found. Please check settings.")

        model = resolved.model or connection.default_model or DEFAULT_MODEL
        backend = self.backend_factory(connection)

        if not await backend.check_connection():
            raise LLMProviderError(f"Cannot connect to {connection_key}. Please check connection settings.")

        context_key = ContextStore.build_key(document, resolved, prompt_key)
        options = GenerateOptions(
            num_ctx=resolved.num_ctx,
            context=self.contexts.get(context_key),
            temperature=resolved.temperature,
            top_p=resolved.top_p,
            top_k=resolved.top_k,
            repeat_penalty=resolved.repeat_penalty,
            keep_alive=connection.keep_alive,
        )
        log.info("Generating %s using %s (%s)", self._display_label(prompt_key), model, connection_key)
        log.debug("Request for %s: %s", document.path, self._describe_request(model, resolved, options))

        try:
            result = await backend.generate(model, resolved.prompt, document_text, options)
        except Exception as e:
            log.error("Failed to generate %s: %s", self._display_label(prompt_key), e)
            return None

        if context_key is not None and result.context:
            self.contexts.store(context_key, result.context)

        if not result.response:
            return None
        if resolved.wrap_in_blockquote is False:
            return result.response
        return format_as_blockquote(result.response, resolved.callout_heading)

    def _display_label(self, prompt_key: str) -> str:
        config = self.settings.prompts.get(prompt_key)
        return config.display_label if config and config.display_label else prompt_key

    @staticmethod
    def _describe_request(model: str, resolved: ResolvedPrompt, options: GenerateOptions) -> dict[str, Any]:
        return {
            "model": model,
            "prompt_source": resolved.source_path,
            "options": options.model_dump(exclude_none=True, exclude={"context"}),
            "continued": options.context is not None,
        }
