"""Exceptions raised by the indexing and retrieval engine."""


class DocQAError(Exception):
    """Base class for all docqa errors."""


class EmbeddingError(DocQAError):
    """The embedding collaborator could not produce a vector."""


class EmbeddingUnavailable(EmbeddingError):
    """The embedding model is not loaded or the service is unreachable."""


class EmbeddingFailed(EmbeddingError):
    """A single text could not be embedded."""

    def __init__(self, message: str, text: str = ""):
        super().__init__(message)
        self.text = text


class InvalidChunk(DocQAError):
    """Chunk text or vector does not satisfy the store invariants."""

    def __init__(self, reason: str):
        super().__init__(reason)
        self.reason = reason


class RetrievalUnavailable(DocQAError):
    """A query was attempted while the embedding provider is not ready."""


class ExtractionError(DocQAError):
    """A document could not be opened or read page by page."""
