"""Embedding client — async LiteLLM embeddings with shape validation.

All embedding calls (ingestion and query time) route through this module.
LiteLLM's built-in retry is used; any failure that survives the retries is
raised as EmbeddingError so callers only handle one exception type.
"""

from __future__ import annotations

import logging
import math

import litellm

from ragcore.errors import EmbeddingError

logger = logging.getLogger(__name__)

litellm.suppress_debug_info = True


class EmbeddingClient:
    """Turn text into fixed-length vectors via ``litellm.aembedding()``.

    Args:
        model: LiteLLM embedding model string (provider/model format).
        dimensions: Expected vector length; responses of any other length are
            rejected.
        api_base: Optional endpoint override (e.g. a local Ollama host).
        num_retries: Retries on transient provider errors.
    """

    def __init__(
        self,
        model: str = "openai/text-embedding-3-small",
        dimensions: int = 1536,
        api_base: str | None = None,
        num_retries: int = 3,
    ) -> None:
        self.model = model
        self.dimensions = dimensions
        self.api_base = api_base
        self.num_retries = num_retries

    async def embed(self, text: str) -> list[float]:
        """Embed a single text. Raises EmbeddingError on failure."""
        vectors = await self.embed_batch([text])
        return vectors[0]

    async def embed_batch(self, texts: list[str]) -> list[list[float]]:
        """Embed *texts* in one provider call, preserving order."""
        if not texts:
            return []

        kwargs: dict = {"model": self.model, "input": texts, "num_retries": self.num_retries}
        if self.api_base:
            kwargs["api_base"] = self.api_base

        try:
            response = await litellm.aembedding(**kwargs)
        except Exception as exc:
            raise EmbeddingError(f"Embedding request to '{self.model}' failed: {exc}") from exc

        data = response.data
        if len(data) != len(texts):
            raise EmbeddingError(
                f"Embedding model '{self.model}' returned {len(data)} vectors for {len(texts)} inputs."
            )
        return [self._validate(item["embedding"]) for item in data]

    def _validate(self, vector: list[float]) -> list[float]:
        if len(vector) != self.dimensions:
            raise EmbeddingError(
                f"Embedding model '{self.model}' returned {len(vector)} dimensions, "
                f"expected {self.dimensions}. Update embedding.dimensions in ragcore.yaml."
            )
        values = [float(v) for v in vector]
        if not all(math.isfinite(v) for v in values):
            raise EmbeddingError(f"Embedding model '{self.model}' returned non-finite values.")
        return values
