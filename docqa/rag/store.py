"""In-memory vector store with exact cosine-similarity search.

Handles:
- Chunk validation (length, dimensionality, finite non-zero vectors)
- Unit-length normalization of every stored vector
- Serialized appends from concurrent ingestion tasks
- Linear-scan search with deterministic tie-breaking
"""
import threading
import uuid
from dataclasses import dataclass, field
from typing import Any, Dict, List, Mapping, Optional, Sequence

import numpy as np
import structlog

from docqa import config
from docqa.errors import InvalidChunk

logger = structlog.get_logger()


@dataclass(eq=False)
class Chunk:
    """A stored span of document text with its unit-length embedding."""

    text: str
    embedding: np.ndarray
    metadata: Dict[str, str] = field(default_factory=dict)
    id: str = field(default_factory=lambda: uuid.uuid4().hex)
    index: int = 0  # insertion position in the store

    @property
    def page(self) -> Optional[str]:
        return self.metadata.get("page")

    @property
    def source(self) -> str:
        """Get a formatted source string for display."""
        source = self.metadata.get("source", "")
        page = self.metadata.get("page")
        if source and page:
            return f"{source} p.{page}"
        if page:
            return f"p.{page}"
        return source


@dataclass
class SearchResult:
    """A chunk returned by a search, with its similarity score and rank."""

    chunk: Chunk
    score: float
    rank: int


def cosine_similarity(a: Sequence[float], b: Sequence[float]) -> float:
    """Cosine similarity between two vectors.

    Zero-magnitude inputs and non-finite results score 0.0.
    """
    a = np.asarray(a, dtype=np.float64)
    b = np.asarray(b, dtype=np.float64)

    with np.errstate(all="ignore"):
        norm_a = float(np.linalg.norm(a))
        norm_b = float(np.linalg.norm(b))
        if norm_a == 0.0 or norm_b == 0.0:
            return 0.0
        result = float(np.dot(a, b) / (norm_a * norm_b))

    if not np.isfinite(result):
        return 0.0
    return result


def _cosine_scores(matrix: np.ndarray, query: np.ndarray) -> np.ndarray:
    """Cosine similarity of query against every row, with degenerate rows at 0."""
    with np.errstate(all="ignore"):
        dots = matrix @ query
        denominators = np.linalg.norm(matrix, axis=1) * np.linalg.norm(query)
        scores = np.where(denominators > 0, dots / denominators, 0.0)
    return np.nan_to_num(scores, nan=0.0, posinf=0.0, neginf=0.0)


class VectorStore:
    """Append-only chunk store scoped to one document session."""

    def __init__(
        self,
        dimension: Optional[int] = None,
        min_chunk_chars: Optional[int] = None,
        initial_capacity: int = 256,
    ):
        """Initialize an empty store.

        Args:
            dimension: Embedding dimension; if None it is fixed by the first
                accepted chunk
            min_chunk_chars: Shortest chunk text accepted (default from config)
            initial_capacity: Rows preallocated for embeddings
        """
        self.dimension = dimension
        self.min_chunk_chars = (
            config.MIN_CHUNK_CHARS if min_chunk_chars is None else min_chunk_chars
        )
        self._capacity = max(1, initial_capacity)
        self._matrix: Optional[np.ndarray] = None
        self._chunks: List[Chunk] = []
        self._by_id: Dict[str, Chunk] = {}
        self._rejected = 0
        self._lock = threading.Lock()

        logger.info(
            "vector_store_initialized",
            dimension=self.dimension,
            min_chunk_chars=self.min_chunk_chars,
        )

    def __len__(self) -> int:
        return len(self._chunks)

    def _validate(self, text: str, vector: Sequence[float]) -> np.ndarray:
        """Check a chunk against the store invariants.

        Returns:
            The vector scaled to unit length, as float32

        Raises:
            InvalidChunk: If the text is too short or the vector is malformed
        """
        if not isinstance(text, str) or len(text) < self.min_chunk_chars:
            raise InvalidChunk(
                f"text shorter than {self.min_chunk_chars} characters"
            )

        try:
            array = np.asarray(vector, dtype=np.float64)
        except (TypeError, ValueError) as e:
            raise InvalidChunk(f"vector is not numeric: {e}") from e

        if array.ndim != 1 or array.size == 0:
            raise InvalidChunk(f"vector has shape {array.shape}, expected (dim,)")

        if self.dimension is not None and array.shape[0] != self.dimension:
            raise InvalidChunk(
                f"vector dimension {array.shape[0]} != store dimension {self.dimension}"
            )

        if not np.all(np.isfinite(array)):
            raise InvalidChunk("vector contains NaN or infinite values")

        norm = float(np.linalg.norm(array))
        if norm == 0.0 or not np.isfinite(norm):
            raise InvalidChunk("vector has zero magnitude")

        return (array / norm).astype(np.float32)

    def _ensure_capacity(self, dimension: int) -> None:
        count = len(self._chunks)
        if self._matrix is None:
            self._matrix = np.zeros((self._capacity, dimension), dtype=np.float32)
        elif count >= self._matrix.shape[0]:
            # Readers keep views of the old array, so grow into a new one
            grown = np.zeros((self._matrix.shape[0] * 2, dimension), dtype=np.float32)
            grown[:count] = self._matrix[:count]
            self._matrix = grown

    def append(
        self,
        text: str,
        vector: Sequence[float],
        metadata: Optional[Mapping[str, Any]] = None,
    ) -> Optional[Chunk]:
        """Validate, normalize and store a chunk.

        Invalid chunks are logged and skipped so a single bad chunk never
        aborts the ingestion of a document.

        Args:
            text: Chunk text
            vector: Embedding of the text
            metadata: Optional string metadata (values are coerced to str)

        Returns:
            The stored Chunk, or None if it was rejected
        """
        with self._lock:
            try:
                embedding = self._validate(text, vector)
            except InvalidChunk as e:
                self._rejected += 1
                logger.warning(
                    "chunk_rejected",
                    reason=e.reason,
                    text_length=len(text) if isinstance(text, str) else None,
                    text_preview=text[:50] if isinstance(text, str) else None,
                )
                return None

            if self.dimension is None:
                self.dimension = embedding.shape[0]
                logger.info("store_dimension_fixed", dimension=self.dimension)

            self._ensure_capacity(self.dimension)

            index = len(self._chunks)
            self._matrix[index] = embedding
            embedding.setflags(write=False)
            chunk = Chunk(
                text=text,
                embedding=embedding,
                metadata={str(k): str(v) for k, v in (metadata or {}).items()},
                index=index,
            )
            self._chunks.append(chunk)
            self._by_id[chunk.id] = chunk

        logger.debug("chunk_appended", chunk_id=chunk.id, index=index, text_length=len(text))
        return chunk

    def search(self, query_vector: Sequence[float], limit: int = None) -> List[SearchResult]:
        """Rank stored chunks by cosine similarity to the query vector.

        Args:
            query_vector: Query embedding
            limit: Maximum number of results (default from config)

        Returns:
            Up to ``limit`` results by descending score; equal scores keep
            insertion order

        Raises:
            ValueError: If the query dimension does not match the store
        """
        if limit is None:
            limit = config.RETRIEVAL_TOP_K

        # Snapshot: rows below count are never rewritten
        with self._lock:
            count = len(self._chunks)
            if count == 0 or limit <= 0:
                return []
            matrix = self._matrix[:count]
            chunks = self._chunks

        query = np.asarray(query_vector, dtype=np.float32)
        if query.ndim != 1 or query.shape[0] != matrix.shape[1]:
            raise ValueError(
                f"Query dimension mismatch: expected {matrix.shape[1]}, "
                f"got {query.shape}"
            )

        scores = _cosine_scores(matrix, query)
        order = np.argsort(-scores, kind="stable")[:limit]

        results = [
            SearchResult(chunk=chunks[i], score=float(scores[i]), rank=rank)
            for rank, i in enumerate(order.tolist(), 1)
        ]

        logger.debug(
            "vector_search_completed",
            candidates=count,
            limit=limit,
            results_found=len(results),
            top_score=results[0].score if results else None,
        )

        return results

    def chunks(self) -> List[Chunk]:
        """All stored chunks in insertion order."""
        with self._lock:
            return list(self._chunks)

    def get(self, chunk_id: str) -> Optional[Chunk]:
        return self._by_id.get(chunk_id)

    def get_stats(self) -> Dict[str, Any]:
        """Get statistics about the vector store.

        Returns:
            Dictionary with store statistics
        """
        with self._lock:
            return {
                "chunk_count": len(self._chunks),
                "dimension": self.dimension,
                "rejected_count": self._rejected,
                "min_chunk_chars": self.min_chunk_chars,
                "total_chars": sum(len(c.text) for c in self._chunks),
            }
