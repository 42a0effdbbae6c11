"""Embedding providers.

The engine only depends on the :class:`EmbeddingProvider` protocol; the
Ollama-backed implementation below is what the API and CLI use.
"""
from typing import Optional, Protocol, Sequence, runtime_checkable

import httpx
import numpy as np
import structlog

from docqa import config
from docqa.errors import EmbeddingFailed, EmbeddingUnavailable
from docqa.llm_client import OllamaClient, ollama_client

logger = structlog.get_logger()


@runtime_checkable
class EmbeddingProvider(Protocol):
    """Maps text to a fixed-length float vector.

    Implementations must be deterministic for identical input. They raise
    ``EmbeddingUnavailable`` when the model is not ready and
    ``EmbeddingFailed`` when a particular text cannot be embedded.
    """

    dimension: Optional[int]

    @property
    def is_ready(self) -> bool:
        ...

    async def embed(self, text: str) -> Sequence[float]:
        ...


def l2_normalize(vector: Sequence[float]) -> np.ndarray:
    """Scale a vector to unit length; zero vectors are returned unchanged."""
    array = np.asarray(vector, dtype=np.float32)
    norm = float(np.linalg.norm(array))
    if norm == 0.0 or not np.isfinite(norm):
        return array
    return array / norm


class OllamaEmbedder:
    """Embedding provider backed by an Ollama embedding model."""

    def __init__(
        self,
        model: str = None,
        client: Optional[OllamaClient] = None,
    ):
        """Initialize the embedder.

        Args:
            model: Embedding model name (default from config)
            client: Ollama client (default: shared client)
        """
        self.model = model or config.EMBEDDING_MODEL
        self.client = client or ollama_client
        self.dimension: Optional[int] = None
        self._ready = False

        logger.info("ollama_embedder_initialized", model=self.model)

    @property
    def is_ready(self) -> bool:
        return self._ready

    async def load(self) -> int:
        """Probe the model once and record its dimensionality.

        Returns:
            Embedding dimension

        Raises:
            EmbeddingUnavailable: If the model cannot be reached or returns nothing
        """
        logger.info("detecting_embedding_dimension", model=self.model)

        try:
            response = await self.client.embeddings(prompt="test", model=self.model)
        except httpx.HTTPError as e:
            logger.error(
                "embedding_dimension_detection_failed",
                model=self.model,
                error=str(e),
            )
            raise EmbeddingUnavailable(
                f"Embedding model {self.model} is not available: {e}"
            ) from e

        embedding = response.get("embedding", [])
        if not embedding:
            raise EmbeddingUnavailable(f"Empty embedding returned from {self.model}")

        self.dimension = len(embedding)
        self._ready = True

        if self.dimension != config.EMBEDDING_DIM:
            logger.warning(
                "embedding_dimension_unexpected",
                model=self.model,
                dimension=self.dimension,
                expected=config.EMBEDDING_DIM,
            )

        logger.info("embedding_dimension_detected", model=self.model, dimension=self.dimension)
        return self.dimension

    async def embed(self, text: str) -> np.ndarray:
        """Embed text into a unit-length vector.

        Raises:
            EmbeddingUnavailable: If load() has not succeeded or Ollama is unreachable
            EmbeddingFailed: If Ollama rejects this text or returns an empty vector
        """
        if not self._ready:
            raise EmbeddingUnavailable(f"Embedding model {self.model} is not loaded")

        try:
            response = await self.client.embeddings(prompt=text, model=self.model)
        except httpx.ConnectError as e:
            raise EmbeddingUnavailable(f"Embedding service unreachable: {e}") from e
        except httpx.HTTPError as e:
            raise EmbeddingFailed(f"Failed to generate embedding: {e}", text=text) from e

        embedding = response.get("embedding", [])
        if not embedding:
            raise EmbeddingFailed("Empty embedding returned for text", text=text)

        return l2_normalize(embedding)
