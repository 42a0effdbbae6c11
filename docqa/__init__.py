"""Question answering over large documents with retrieval-augmented generation."""

__version__ = "0.1.0"
