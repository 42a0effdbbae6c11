"""Pytest configuration and fixtures for docqa tests."""
import asyncio
import zlib
from typing import Dict, List, Sequence

import numpy as np
import pytest

from docqa import config
from docqa.errors import EmbeddingFailed, EmbeddingUnavailable
from docqa.rag.engine import RAGEngine
from docqa.rag.store import VectorStore


# Test configuration
HASH_DIM = 64


class HashEmbedder:
    """Deterministic embedder hashing character bigrams into a fixed vector.

    Texts sharing many bigrams get similar vectors; identical texts always
    get identical vectors.
    """

    def __init__(self, dimension: int = HASH_DIM):
        self.dimension = dimension
        self.ready = True
        self.calls: List[str] = []

    @property
    def is_ready(self) -> bool:
        return self.ready

    async def embed(self, text: str) -> np.ndarray:
        if not self.ready:
            raise EmbeddingUnavailable("hash embedder switched off")
        self.calls.append(text)

        vector = np.zeros(self.dimension, dtype=np.float32)
        padded = f" {text.lower()} "
        for i in range(len(padded) - 1):
            bucket = zlib.crc32(padded[i : i + 2].encode("utf-8")) % self.dimension
            vector[bucket] += 1.0
        return vector


class MappingEmbedder:
    """Returns fixed vectors for known texts."""

    def __init__(self, vectors: Dict[str, Sequence[float]]):
        self.vectors = vectors
        self.dimension = len(next(iter(vectors.values())))

    @property
    def is_ready(self) -> bool:
        return True

    async def embed(self, text: str) -> List[float]:
        if text not in self.vectors:
            raise EmbeddingFailed("unknown text", text=text)
        return list(self.vectors[text])


class PoisonedEmbedder(HashEmbedder):
    """Fails every text containing the marker word."""

    def __init__(self, marker: str = "poison"):
        super().__init__()
        self.marker = marker

    async def embed(self, text: str) -> np.ndarray:
        if self.marker in text:
            raise EmbeddingFailed("tokenizer rejected text", text=text)
        return await super().embed(text)


class GatedEmbedder(HashEmbedder):
    """Blocks on texts containing the marker word until the gate opens."""

    def __init__(self, marker: str = "gate"):
        super().__init__()
        self.marker = marker
        self.gate = asyncio.Event()

    async def embed(self, text: str) -> np.ndarray:
        if self.marker in text:
            await self.gate.wait()
        return await super().embed(text)


@pytest.fixture
def hash_embedder() -> HashEmbedder:
    """Ready, deterministic embedding provider."""
    return HashEmbedder()


@pytest.fixture
def engine(hash_embedder: HashEmbedder) -> RAGEngine:
    """Engine with the default chunking configuration and a hash embedder."""
    return RAGEngine(
        embedder=hash_embedder,
        chunk_size=config.CHUNK_SIZE,
        chunk_overlap=config.CHUNK_OVERLAP,
        min_chunk_chars=config.MIN_CHUNK_CHARS,
    )


@pytest.fixture
def store() -> VectorStore:
    """Empty 4-dimensional store."""
    return VectorStore(dimension=4, min_chunk_chars=20)


@pytest.fixture
def long_text() -> str:
    """Several paragraphs of distinct words (w0 ... w599)."""
    paragraphs = []
    for p in range(6):
        words = [f"w{p * 100 + i}" for i in range(100)]
        sentences = [" ".join(words[i : i + 10]) for i in range(0, 100, 10)]
        paragraphs.append(". ".join(sentences) + ".")
    return "\n\n".join(paragraphs)
