"""LiteLLM chat providers with retry, streaming, and API key validation.

All chat-completion calls route through a ChatProvider. Two variants exist and
are selected by ``generation.provider`` in the config:

  openai → OpenAICompatibleProvider  (role-based message list; any
           OpenAI-compatible endpoint via ``api_base``)
  local  → LocalModelProvider        (Ollama; the prompt is flattened into a
           single transcript, as plain completion models expect)

Both expose ``complete()`` (blocking, whole text) and ``stream()`` (async
iterator of text deltas). LiteLLM's built-in retry is used; failures surface
as ProviderError.
"""

from __future__ import annotations

import logging
import os
from abc import ABC, abstractmethod
from collections.abc import AsyncIterator
from typing import TYPE_CHECKING, Any

import litellm

from ragcore.errors import ProviderError

if TYPE_CHECKING:
    from ragcore.config import GenerationCfg
    from ragcore.rag.prompt import ChatPrompt

logger = logging.getLogger(__name__)

# Disable LiteLLM verbose logging unless explicitly enabled
litellm.suppress_debug_info = True
litellm.set_verbose = False  # type: ignore[assignment]

_DEFAULT_OLLAMA_BASE = "http://localhost:11434"


# ------------------------------------------------------------------
# Provider → env var mapping for API key validation
# ------------------------------------------------------------------

_PROVIDER_ENV: dict[str, str | None] = {
    "openai": "OPENAI_API_KEY",
    "anthropic": "ANTHROPIC_API_KEY",
    "azure": "AZURE_API_KEY",
    "cohere": "COHERE_API_KEY",
    "mistral": "MISTRAL_API_KEY",
    "groq": "GROQ_API_KEY",
    "together_ai": "TOGETHERAI_API_KEY",
    "ollama": None,  # Local, no key required
    "ollama_chat": None,
}


def validate_api_key(model: str) -> None:
    """Check that the required API key env var is set for *model*.

    Args:
        model: LiteLLM model string in 'provider/model' format.

    Raises:
        EnvironmentError: If the required key is missing from environment.
    """
    provider = model.split("/")[0].lower() if "/" in model else "openai"
    env_var = _PROVIDER_ENV.get(provider)

    if env_var is None:
        return  # No key required (e.g. ollama)

    if not os.getenv(env_var):
        raise EnvironmentError(
            f"API key not found for provider '{provider}'. "
            f"Set the {env_var} environment variable."
        )


def count_tokens(model: str, text: str) -> int:
    """Count tokens in *text* for *model* using LiteLLM's provider-aware counter.

    Falls back to character-based approximation (4 chars ≈ 1 token) if the model
    is not supported by litellm.token_counter().
    """
    if not text:
        return 0
    try:
        return litellm.token_counter(model=model, text=text)
    except Exception:
        return max(1, len(text) // 4)


# ------------------------------------------------------------------
# Providers
# ------------------------------------------------------------------


class ChatProvider(ABC):
    """Chat-completion backend driven by a ChatPrompt."""

    def __init__(
        self,
        model: str,
        api_base: str | None = None,
        num_retries: int = 3,
        timeout: float | None = 60.0,
    ) -> None:
        self.model = model
        self.api_base = api_base
        self.num_retries = num_retries
        self.timeout = timeout

    @abstractmethod
    def build_messages(self, prompt: ChatPrompt) -> list[dict[str, str]]:
        """Render *prompt* into the message list sent to the model."""

    async def complete(self, prompt: ChatPrompt) -> str:
        """Return the full completion text for *prompt*."""
        try:
            response = await litellm.acompletion(**self._request(prompt, stream=False))
        except Exception as exc:
            raise ProviderError(f"Chat completion with '{self.model}' failed: {exc}") from exc
        return response.choices[0].message.content or ""

    async def stream(self, prompt: ChatPrompt) -> AsyncIterator[str]:
        """Yield completion text deltas for *prompt* as they arrive."""
        try:
            response = await litellm.acompletion(**self._request(prompt, stream=True))
            async for chunk in response:
                if not chunk.choices:
                    continue
                delta = chunk.choices[0].delta.content
                if delta:
                    yield delta
        except ProviderError:
            raise
        except Exception as exc:
            raise ProviderError(f"Streaming completion with '{self.model}' failed: {exc}") from exc

    def _request(self, prompt: ChatPrompt, stream: bool) -> dict[str, Any]:
        kwargs: dict[str, Any] = {
            "model": self.model,
            "messages": self.build_messages(prompt),
            "temperature": prompt.temperature,
            "max_tokens": prompt.max_tokens,
            "num_retries": self.num_retries,
            "stream": stream,
        }
        if self.api_base:
            kwargs["api_base"] = self.api_base
        if self.timeout:
            kwargs["timeout"] = self.timeout
        logger.debug(
            "Chat request model=%s stream=%s messages=%d", self.model, stream, len(kwargs["messages"])
        )
        return kwargs


class OpenAICompatibleProvider(ChatProvider):
    """Role-based chat models (OpenAI or any endpoint speaking its protocol)."""

    def build_messages(self, prompt: ChatPrompt) -> list[dict[str, str]]:
        return prompt.to_messages()


class LocalModelProvider(ChatProvider):
    """Locally served Ollama models.

    ``llama3`` and ``ollama/llama3`` are both accepted; the host defaults to
    the standard Ollama port.
    """

    def __init__(
        self,
        model: str,
        api_base: str | None = None,
        num_retries: int = 3,
        timeout: float | None = 60.0,
    ) -> None:
        if not model.startswith(("ollama/", "ollama_chat/")):
            model = f"ollama/{model.split('/', 1)[-1]}"
        super().__init__(model, api_base or _DEFAULT_OLLAMA_BASE, num_retries, timeout)

    def build_messages(self, prompt: ChatPrompt) -> list[dict[str, str]]:
        return [{"role": "user", "content": prompt.to_transcript()}]


def create_provider(cfg: GenerationCfg) -> ChatProvider:
    """Return the provider variant selected by ``cfg.provider``."""
    if cfg.provider == "local":
        cls: type[ChatProvider] = LocalModelProvider
    elif cfg.provider == "openai":
        cls = OpenAICompatibleProvider
    else:
        raise ValueError(f"Unknown generation provider '{cfg.provider}'")
    return cls(
        cfg.model,
        api_base=cfg.api_base,
        num_retries=cfg.num_retries,
        timeout=cfg.timeout_seconds,
    )
