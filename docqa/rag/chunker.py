"""Recursive, separator-aware text chunking with overlap.

Text is split on the highest-priority separator first (paragraphs, then
lines, sentences, words and finally single characters). Parts are packed
greedily into chunks of about ``target_size`` characters; when a chunk is
emitted, its trailing parts seed the next chunk so neighbouring chunks share
roughly ``overlap`` characters of context, and a seeded chunk can run past
``target_size`` by the length of that tail. Parts that are too large on
their own are split again with the remaining, lower-priority separators.
"""
from collections import deque
from dataclasses import dataclass
from typing import Deque, List, Optional, Sequence

import structlog

from docqa import config

logger = structlog.get_logger()


def recursive_split(
    text: str,
    target_size: int,
    overlap: int,
    separators: Sequence[str],
    exhaustive_hard_cut: bool = False,
) -> List[str]:
    """Split text into overlapping chunks of about ``target_size`` chars.

    Args:
        text: Text to split
        target_size: Length at which a chunk is emitted, in characters
        overlap: Approximate number of characters carried into the next chunk
        separators: Separators in priority order; "" splits into characters
        exhaustive_hard_cut: When a part is still too long and no separators
            remain, keep cutting it until consumed instead of truncating it

    Returns:
        List of chunk strings, in document order

    Raises:
        ValueError: If target_size is not positive or overlap is negative
    """
    if target_size <= 0:
        raise ValueError(f"target_size must be positive, got {target_size}")
    if overlap < 0:
        raise ValueError(f"overlap must not be negative, got {overlap}")

    if not text:
        return []

    return _split(text, target_size, overlap, tuple(separators), exhaustive_hard_cut)


def _split(
    text: str,
    target_size: int,
    overlap: int,
    separators: tuple,
    exhaustive_hard_cut: bool,
) -> List[str]:
    chunks: List[str] = []
    separator = separators[0] if separators else ""
    remaining = separators[1:]
    sep_len = len(separator)

    parts = list(text) if separator == "" else text.split(separator)

    # buffer_len == len(separator.join(buffer)) at all times
    buffer: Deque[str] = deque()
    buffer_len = 0

    for part in parts:
        part_len = len(part)
        joined_len = buffer_len + (sep_len if buffer else 0) + part_len

        if joined_len <= target_size:
            buffer_len = joined_len
            buffer.append(part)
            continue

        if buffer:
            _emit(chunks, separator.join(buffer))

            # Keep the tail of the emitted chunk as the head of the next one
            while buffer_len > overlap and len(buffer) > 1:
                dropped = buffer.popleft()
                buffer_len -= len(dropped) + sep_len

        if part_len > target_size:
            if remaining:
                chunks.extend(
                    _split(part, target_size, overlap, remaining, exhaustive_hard_cut)
                )
                buffer.clear()
                buffer_len = 0
            else:
                # The retained overlap survives a hard cut
                chunks.extend(_hard_cut(part, target_size, exhaustive_hard_cut))
            continue

        # The part joins the retained tail, which may run past target_size
        buffer_len += (sep_len if buffer else 0) + part_len
        buffer.append(part)

    if buffer:
        tail = separator.join(buffer)
        if not chunks or chunks[-1] != tail:
            _emit(chunks, tail)

    return chunks


def _emit(chunks: List[str], chunk: str) -> None:
    if chunk:
        chunks.append(chunk)


def _hard_cut(part: str, target_size: int, exhaustive: bool) -> List[str]:
    """Cut a part that no separator can break.

    Without ``exhaustive`` only the first ``target_size`` characters survive.
    """
    if exhaustive:
        return [part[i : i + target_size] for i in range(0, len(part), target_size)]

    logger.warning(
        "chunk_hard_cut_truncated",
        part_length=len(part),
        kept_chars=target_size,
        dropped_chars=len(part) - target_size,
    )
    return [part[:target_size]]


@dataclass
class ChunkStats:
    """Summary statistics for a list of chunks."""

    chunk_count: int = 0
    total_chars: int = 0
    avg_chunk_size: int = 0
    min_chunk_size: int = 0
    max_chunk_size: int = 0
    overlap: int = 0


class RecursiveChunker:
    """Configured wrapper around :func:`recursive_split`."""

    def __init__(
        self,
        chunk_size: Optional[int] = None,
        chunk_overlap: Optional[int] = None,
        separators: Optional[Sequence[str]] = None,
        exhaustive_hard_cut: bool = False,
    ):
        """Initialize the chunker.

        Args:
            chunk_size: Target chunk size in characters (default from config)
            chunk_overlap: Overlap between chunks in characters (default from config)
            separators: Separator hierarchy (default from config)
            exhaustive_hard_cut: Cut oversized unbreakable parts completely
                instead of truncating them
        """
        self.chunk_size = config.CHUNK_SIZE if chunk_size is None else chunk_size
        self.chunk_overlap = config.CHUNK_OVERLAP if chunk_overlap is None else chunk_overlap
        self.separators = list(config.CHUNK_SEPARATORS if separators is None else separators)
        self.exhaustive_hard_cut = exhaustive_hard_cut

        if self.chunk_size <= 0:
            raise ValueError(f"Chunk size must be positive, got {self.chunk_size}")
        if self.chunk_overlap < 0:
            raise ValueError(f"Overlap must not be negative, got {self.chunk_overlap}")

        if self.chunk_overlap >= self.chunk_size:
            logger.warning(
                "chunk_overlap_not_below_size",
                chunk_size=self.chunk_size,
                chunk_overlap=self.chunk_overlap,
            )

        logger.info(
            "chunker_initialized",
            chunk_size=self.chunk_size,
            chunk_overlap=self.chunk_overlap,
            separators=self.separators,
        )

    def split(self, text: str) -> List[str]:
        """Split text using the configured size, overlap and separators."""
        chunks = recursive_split(
            text,
            self.chunk_size,
            self.chunk_overlap,
            self.separators,
            exhaustive_hard_cut=self.exhaustive_hard_cut,
        )

        logger.debug(
            "text_chunked",
            text_length=len(text),
            chunk_count=len(chunks),
        )

        return chunks

    def chunk_stats(self, chunks: List[str]) -> ChunkStats:
        """Get statistics about a set of chunks.

        Args:
            chunks: Chunk strings

        Returns:
            ChunkStats for the chunks
        """
        if not chunks:
            return ChunkStats()

        sizes = [len(c) for c in chunks]
        return ChunkStats(
            chunk_count=len(chunks),
            total_chars=sum(sizes),
            avg_chunk_size=sum(sizes) // len(chunks),
            min_chunk_size=min(sizes),
            max_chunk_size=max(sizes),
            overlap=self.chunk_overlap,
        )
