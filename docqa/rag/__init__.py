"""RAG (Retrieval-Augmented Generation) pipeline components.

This package contains modules for:
- Boilerplate removal and whitespace normalization
- Recursive chunking with overlap
- Embedding providers
- In-memory vector storage and cosine search
- Page ingestion and retrieval orchestration
- Prompt building and answer generation
"""
from docqa.rag.chunker import RecursiveChunker, recursive_split
from docqa.rag.engine import EngineState, RAGEngine
from docqa.rag.normalizer import TextNormalizer, normalize
from docqa.rag.store import Chunk, SearchResult, VectorStore, cosine_similarity

__all__ = [
    "Chunk",
    "EngineState",
    "RAGEngine",
    "RecursiveChunker",
    "SearchResult",
    "TextNormalizer",
    "VectorStore",
    "cosine_similarity",
    "normalize",
    "recursive_split",
]
