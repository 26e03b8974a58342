"""Generation backends for vaultprompt.

Every connection in the settings file maps to one backend. Both supported
providers speak the OpenAI chat-completions protocol:

- ollama: a local Ollama server, through its OpenAI-compatible /v1 endpoint
- openai-compatible: any hosted gateway exposing /v1/chat/completions

Usage:
    backend = create_backend(settings.connections["local-ollama"])
    result = await backend.generate(model, system_prompt, text, GenerateOptions())
"""

from __future__ import annotations

import json
import logging
from typing import Any, Protocol

from .models import ConnectionConfig, GenerateOptions, GenerateResult

log = logging.getLogger(__name__)


class LLMProviderError(Exception):
    """Raised when a backend is misconfigured or unavailable."""

    pass


class GenerationBackend(Protocol):
    async def generate(
        self,
        model: str,
        system_prompt: str,
        document_text: str,
        options: GenerateOptions | None = None,
    ) -> GenerateResult: ...

    async def check_connection(self) -> bool: ...

    async def list_models(self) -> list[str]: ...


# =============================================================================
# Continuation context
# =============================================================================


def encode_context(messages: list[dict[str, str]]) -> str:
    """Encode chat history as an opaque continuation token."""
    return json.dumps(messages)


def decode_context(context: str | None) -> list[dict[str, str]]:
    """Decode a continuation token; malformed tokens yield an empty history."""
    if not context:
        return []
    try:
        messages = json.loads(context)
    except json.JSONDecodeError as e:
        log.debug("Failed to parse context: %s", e)
        return []
    if not isinstance(messages, list):
        return []
    return [
        m
        for m in messages
        if isinstance(m, dict) and m.get("role") in ("user", "assistant") and isinstance(m.get("content"), str)
    ]


# =============================================================================
# OpenAI-compatible backend
# =============================================================================


class OpenAICompatibleBackend:
    """Chat-completions backend built on the openai SDK.

    Args:
        base_url: API base URL including the /v1 prefix.
        api_key: Bearer token. Ollama accepts any non-empty value.
        provider: Provider name from the connection, used for Ollama-only options.
        keep_alive: How long Ollama keeps the model loaded after the call.
        client: Pre-built AsyncOpenAI-like client (tests).
    """

    def __init__(
        self,
        base_url: str,
        api_key: str,
        *,
        provider: str = "openai-compatible",
        keep_alive: str | None = None,
        client: Any = None,
    ) -> None:
        self.base_url = base_url.rstrip("/")
        self.provider = provider
        self.keep_alive = keep_alive
        self._client = client if client is not None else _get_async_openai_client(self.base_url, api_key)

    def _request_kwargs(self, options: GenerateOptions) -> dict[str, Any]:
        kwargs: dict[str, Any] = {}
        if options.temperature is not None:
            kwargs["temperature"] = options.temperature
        if options.top_p is not None:
            kwargs["top_p"] = options.top_p

        if self.provider == "ollama":
            ollama_options: dict[str, Any] = {}
            if options.num_ctx is not None:
                ollama_options["num_ctx"] = options.num_ctx
            if options.top_k is not None:
                ollama_options["top_k"] = options.top_k
            if options.repeat_penalty is not None:
                ollama_options["repeat_penalty"] = options.repeat_penalty
            extra_body: dict[str, Any] = {}
            if ollama_options:
                extra_body["options"] = ollama_options
            keep_alive = options.keep_alive or self.keep_alive
            if keep_alive:
                extra_body["keep_alive"] = keep_alive
            if extra_body:
                kwargs["extra_body"] = extra_body
        elif options.num_ctx is not None:
            kwargs["max_tokens"] = options.num_ctx

        return kwargs

    async def generate(
        self,
        model: str,
        system_prompt: str,
        document_text: str,
        options: GenerateOptions | None = None,
    ) -> GenerateResult:
        """Generate a response for the document text.

        Raises:
            Exception: Whatever the SDK raises on transport or API errors.
        """
        options = options or GenerateOptions()
        history = decode_context(options.context)

        messages: list[dict[str, str]] = []
        if system_prompt.strip():
            messages.append({"role": "system", "content": system_prompt})
        messages.extend(history)
        messages.append({"role": "user", "content": document_text})

        log.debug("Send request to %s", self.base_url)
        response = await self._client.chat.completions.create(
            model=model,
            messages=messages,
            **self._request_kwargs(options),
        )
        text = response.choices[0].message.content if response.choices else None
        text = text.strip() if text else None

        context = None
        if text is not None:
            history.append({"role": "user", "content": document_text})
            history.append({"role": "assistant", "content": text})
            context = encode_context(history)

        return GenerateResult(response=text, context=context)

    async def check_connection(self) -> bool:
        try:
            await self._client.models.list()
        except Exception as e:
            log.debug("Connection check failed for %s: %s", self.base_url, e)
            return False
        return True

    async def list_models(self) -> list[str]:
        page = await self._client.models.list()
        return sorted(model.id for model in page.data)


def _get_async_openai_client(base_url: str, api_key: str):
    """Get an asynchronous OpenAI client for the given endpoint."""
    try:
        from openai import AsyncOpenAI
    except ImportError:
        raise LLMProviderError(
            "openai package is required for generation. "
            "Install with: pip install openai"
        )

    return AsyncOpenAI(base_url=base_url, api_key=api_key)


def create_backend(connection: ConnectionConfig, *, client: Any = None) -> GenerationBackend:
    """Create the backend for a connection.

    Args:
        connection: Connection settings.
        client: Optional pre-built SDK client (tests).

    Raises:
        LLMProviderError: If the connection is incomplete or the provider unknown.
    """
    if not connection.base_url:
        raise LLMProviderError("Connection URL is required")

    base_url = connection.base_url.rstrip("/")

    if connection.provider == "ollama":
        if not base_url.endswith("/v1"):
            base_url = f"{base_url}/v1"
        return OpenAICompatibleBackend(
            base_url,
            connection.api_key or "ollama",
            provider="ollama",
            keep_alive=connection.keep_alive,
            client=client,
        )

    if connection.provider == "openai-compatible":
        if not connection.api_key:
            raise LLMProviderError("API key is required for OpenAI-compatible provider")
        if not base_url.endswith("/v1"):
            base_url = f"{base_url}/v1"
        return OpenAICompatibleBackend(base_url, connection.api_key, client=client)

    raise LLMProviderError(f"Unknown provider: {connection.provider}")
