"""RAG engine: page ingestion and similarity retrieval.

Orchestrates:
- Text normalization and recursive chunking
- Bounded-concurrency embedding of chunks
- Appends to the session's vector store
- Query embedding and ranked retrieval
"""
import asyncio
from enum import Enum
from typing import (
    Any,
    AsyncIterable,
    AsyncIterator,
    Callable,
    Dict,
    Iterable,
    List,
    Mapping,
    Optional,
    Sequence,
    Tuple,
    Union,
)

import structlog

from docqa import config
from docqa.errors import EmbeddingError, EmbeddingUnavailable, RetrievalUnavailable
from docqa.rag.chunker import RecursiveChunker
from docqa.rag.embedder import EmbeddingProvider
from docqa.rag.normalizer import TextNormalizer
from docqa.rag.store import Chunk, SearchResult, VectorStore

logger = structlog.get_logger()

Page = Tuple[int, str]
PageSource = Union[Iterable[Page], AsyncIterable[Page]]


class EngineState(str, Enum):
    """Lifecycle of a document session."""

    EMPTY = "empty"
    INGESTING = "ingesting"
    READY = "ready"


def _new_stats() -> Dict[str, int]:
    return {
        "pages_processed": 0,
        "pages_empty": 0,
        "chunks_created": 0,
        "chunks_skipped": 0,
        "chunks_failed": 0,
        "chunks_rejected": 0,
    }


async def _iterate_pages(pages: PageSource) -> AsyncIterator[Page]:
    if hasattr(pages, "__aiter__"):
        async for page in pages:
            yield page
    else:
        for page in pages:
            yield page


class RAGEngine:
    """Indexes document pages and retrieves the chunks most similar to a query."""

    def __init__(
        self,
        embedder: EmbeddingProvider,
        store: Optional[VectorStore] = None,
        normalizer: Optional[TextNormalizer] = None,
        chunk_size: Optional[int] = None,
        chunk_overlap: Optional[int] = None,
        separators: Optional[Sequence[str]] = None,
        min_chunk_chars: Optional[int] = None,
        search_limit: Optional[int] = None,
        embed_concurrency: Optional[int] = None,
    ):
        """Initialize the engine.

        Args:
            embedder: Embedding provider used for chunks and queries
            store: Vector store (a new empty one by default)
            normalizer: Text normalizer (default boilerplate patterns)
            chunk_size: Target chunk size in characters (default from config)
            chunk_overlap: Chunk overlap in characters (default from config)
            separators: Chunking separator hierarchy (default from config)
            min_chunk_chars: Chunks shorter than this are never indexed
            search_limit: Default number of chunks returned by a query
            embed_concurrency: Maximum concurrent embedding calls

        Raises:
            ValueError: If embed_concurrency is below 1
        """
        self.embedder = embedder
        self.normalizer = normalizer or TextNormalizer()
        self.chunker = RecursiveChunker(
            chunk_size=chunk_size,
            chunk_overlap=chunk_overlap,
            separators=separators,
        )
        self.min_chunk_chars = (
            config.MIN_CHUNK_CHARS if min_chunk_chars is None else min_chunk_chars
        )
        self.search_limit = config.RETRIEVAL_TOP_K if search_limit is None else search_limit
        self.embed_concurrency = (
            config.EMBED_CONCURRENCY if embed_concurrency is None else embed_concurrency
        )
        if self.embed_concurrency < 1:
            raise ValueError(f"embed_concurrency must be at least 1, got {self.embed_concurrency}")
        self.store = store if store is not None else self._new_store()

        self._embed_slots = asyncio.Semaphore(self.embed_concurrency)
        self._active_ingests = 0
        self._ingested = False
        self.stats = _new_stats()

        logger.info(
            "rag_engine_initialized",
            chunk_size=self.chunker.chunk_size,
            chunk_overlap=self.chunker.chunk_overlap,
            min_chunk_chars=self.min_chunk_chars,
            search_limit=self.search_limit,
            embed_concurrency=self.embed_concurrency,
        )

    def _new_store(self) -> VectorStore:
        return VectorStore(
            dimension=getattr(self.embedder, "dimension", None),
            min_chunk_chars=self.min_chunk_chars,
        )

    @property
    def state(self) -> EngineState:
        if self._active_ingests:
            return EngineState.INGESTING
        if self._ingested:
            return EngineState.READY
        return EngineState.EMPTY

    def reset(self) -> None:
        """Discard the current index and start an empty session."""
        previous = len(self.store)
        self.store = self._new_store()
        self._ingested = False
        self.stats = _new_stats()
        logger.info("rag_engine_reset", discarded_chunks=previous)

    async def ensure_embedder_ready(self) -> None:
        """Load the embedding provider if it supports loading and is not ready.

        Raises:
            EmbeddingUnavailable: If loading fails
        """
        if self.embedder.is_ready:
            return
        load = getattr(self.embedder, "load", None)
        if load is None:
            raise EmbeddingUnavailable("Embedding provider is not ready")
        await load()
        if self.store.dimension is None and len(self.store) == 0:
            self.store.dimension = getattr(self.embedder, "dimension", None)

    async def _embed(self, text: str):
        async with self._embed_slots:
            return await self.embedder.embed(text)

    async def ingest(
        self,
        page_text: str,
        metadata: Optional[Mapping[str, Any]] = None,
    ) -> int:
        """Normalize, chunk, embed and store one page of text.

        A chunk that fails to embed is logged and skipped. Cancelling the
        call keeps every chunk appended before the cancellation.

        Args:
            page_text: Raw extracted page text
            metadata: Metadata attached to every chunk of the page

        Returns:
            Number of chunks stored

        Raises:
            EmbeddingUnavailable: If the embedding provider is not ready
        """
        store = self.store
        self._active_ingests += 1
        try:
            text = self.normalizer.normalize(page_text)
            pieces = self.chunker.split(text)
            candidates = [p for p in pieces if len(p) >= self.min_chunk_chars]

            skipped = len(pieces) - len(candidates)
            self.stats["chunks_skipped"] += skipped

            if not candidates:
                logger.info(
                    "no_chunks_created",
                    text_length=len(text),
                    chunks_skipped=skipped,
                    metadata=dict(metadata or {}),
                )
                self._ingested = True
                return 0

            stored = await self._embed_and_store(store, candidates, metadata)
            self._ingested = True

            logger.info(
                "page_ingested",
                text_length=len(text),
                chunks_created=stored,
                chunks_skipped=skipped,
                total_chunks=len(store),
                metadata=dict(metadata or {}),
            )
            return stored

        finally:
            self._active_ingests -= 1

    async def _embed_and_store(
        self,
        store: VectorStore,
        texts: List[str],
        metadata: Optional[Mapping[str, Any]],
    ) -> int:
        # Embeddings run concurrently; appends follow chunk order
        tasks = [asyncio.ensure_future(self._embed(text)) for text in texts]
        stored = 0

        try:
            for text, task in zip(texts, tasks):
                try:
                    vector = await task
                except EmbeddingUnavailable:
                    raise
                except EmbeddingError as e:
                    self.stats["chunks_failed"] += 1
                    logger.warning(
                        "chunk_embedding_failed",
                        error=str(e),
                        text_preview=text[:100],
                    )
                    continue

                if store.append(text, vector, metadata) is None:
                    self.stats["chunks_rejected"] += 1
                else:
                    stored += 1
                    self.stats["chunks_created"] += 1

        finally:
            pending = [task for task in tasks if not task.done()]
            for task in pending:
                task.cancel()
            if pending:
                await asyncio.gather(*pending, return_exceptions=True)
            # Retrieve outstanding exceptions so they are not reported as unhandled
            for task in tasks:
                if task.done() and not task.cancelled():
                    task.exception()

        return stored

    async def ingest_pages(
        self,
        pages: PageSource,
        source: Optional[str] = None,
        progress_callback: Optional[Callable[[int, int], None]] = None,
    ) -> Dict[str, int]:
        """Ingest ``(page_number, text)`` pairs in whatever order they arrive.

        Args:
            pages: Sync or async iterable of (page_number, text)
            source: Document name recorded in chunk metadata
            progress_callback: Optional callback(page_number, chunks_stored)

        Returns:
            Statistics for this run

        Raises:
            EmbeddingUnavailable: If the embedding provider is not ready
        """
        before = dict(self.stats)
        logger.info("ingest_pages_started", source=source)

        async for page_number, text in _iterate_pages(pages):
            metadata = {"page": str(page_number)}
            if source:
                metadata["source"] = source

            stored = await self.ingest(text, metadata)

            self.stats["pages_processed"] += 1
            if stored == 0:
                self.stats["pages_empty"] += 1

            if progress_callback:
                progress_callback(page_number, stored)

        summary = {key: self.stats[key] - before.get(key, 0) for key in self.stats}
        logger.info("ingest_pages_completed", source=source, stats=summary)
        return summary

    async def search(self, text: str, limit: Optional[int] = None) -> List[SearchResult]:
        """Retrieve the chunks most similar to a query, with scores.

        Args:
            text: Query text
            limit: Number of results to return (default: search_limit)

        Returns:
            SearchResult list, best first; empty for a blank query or an
            empty store

        Raises:
            RetrievalUnavailable: If the query cannot be embedded
        """
        limit = self.search_limit if limit is None else limit

        if not text or not text.strip():
            logger.warning("empty_query_provided")
            return []

        store = self.store
        if len(store) == 0:
            logger.info("empty_index_no_results", state=self.state.value)
            return []

        logger.info("retrieval_started", query_length=len(text), limit=limit)

        try:
            vector = await self.embedder.embed(text)
        except EmbeddingError as e:
            logger.error(
                "query_embedding_failed",
                error=str(e),
                error_type=type(e).__name__,
                query_preview=text[:100],
            )
            raise RetrievalUnavailable(f"Query could not be embedded: {e}") from e

        results = store.search(vector, limit)

        logger.info(
            "retrieval_completed",
            query_length=len(text),
            results_returned=len(results),
            top_score=results[0].score if results else None,
        )

        return results

    async def query(self, text: str, limit: Optional[int] = None) -> List[Chunk]:
        """Retrieve the chunks most similar to a query, in rank order."""
        return [result.chunk for result in await self.search(text, limit)]

    def get_stats(self) -> Dict[str, Any]:
        """Get statistics about the current session.

        Returns:
            Dictionary with engine, store and ingestion statistics
        """
        return {
            "state": self.state.value,
            "embedder_ready": self.embedder.is_ready,
            "chunk_size": self.chunker.chunk_size,
            "chunk_overlap": self.chunker.chunk_overlap,
            "store": self.store.get_stats(),
            "ingest": dict(self.stats),
        }
