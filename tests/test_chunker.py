"""Tests for recursive chunking with overlap."""
import re

import pytest

from docqa import config
from docqa.rag.chunker import ChunkStats, RecursiveChunker, recursive_split

SEPARATORS = ["\n\n", "\n", ". ", " ", ""]


def _tokens(text: str):
    return re.findall(r"w\d+", text)


def _distinct_words(count: int) -> str:
    return " ".join(f"w{i}" for i in range(count))


def test_short_text_single_chunk():
    """Test that text shorter than the target is returned as one chunk."""
    text = "Employees get 20 days of paid leave. Unused days carry over."
    assert recursive_split(text, 400, 100, SEPARATORS) == [text]


def test_empty_input_returns_no_chunks():
    """Test that empty input produces an empty list."""
    assert recursive_split("", 400, 100, SEPARATORS) == []


def test_chunk_size_grows_only_by_carried_overlap(long_text):
    """Test that a chunk past the target starts with text from the previous chunk."""
    for target, overlap in [(100, 30), (57, 10), (400, 100), (25, 0)]:
        chunks = recursive_split(long_text, target, overlap, SEPARATORS)
        assert chunks
        assert all(0 < len(c) <= target + 2 + max(target, overlap) for c in chunks)
        for previous, current in zip(chunks, chunks[1:]):
            carried = len(current) - target - 2
            if carried > 0:
                assert current[:carried] in previous, (target, overlap)


def test_coverage_reconstructs_every_word_in_order(long_text):
    """Test that dropping overlapped words reconstructs the input."""
    chunks = recursive_split(long_text, 100, 30, SEPARATORS)

    seen = []
    seen_set = set()
    for chunk in chunks:
        for token in _tokens(chunk):
            if token not in seen_set:
                seen.append(token)
                seen_set.add(token)

    assert seen == _tokens(long_text)


def test_consecutive_chunks_overlap():
    """Test that neighbouring chunks from one accumulation phase share words."""
    text = _distinct_words(300)
    chunks = recursive_split(text, 50, 15, SEPARATORS)

    assert len(chunks) > 2
    for previous, current in zip(chunks, chunks[1:]):
        assert set(_tokens(previous)) & set(_tokens(current))


def test_zero_overlap_with_short_parts_keeps_size_bound():
    """Test that overlap 0 over short words produces chunks within the target size."""
    text = _distinct_words(200)
    chunks = recursive_split(text, 30, 0, SEPARATORS)
    assert all(len(c) <= 30 for c in chunks)


def test_prefers_paragraph_boundaries():
    """Test that paragraphs are not split when each fits on its own."""
    paragraphs = [" ".join([word] * 25) for word in ("alpha", "bravo", "delta")]
    text = "\n\n".join(paragraphs)

    assert recursive_split(text, 200, 50, SEPARATORS) == [
        paragraphs[0],
        "\n\n".join(paragraphs[:2]),
        "\n\n".join(paragraphs[1:]),
    ]


def test_sentence_sized_parts_carry_previous_sentence():
    """Test that a retained sentence heads the next chunk even past the target."""
    sentences = ["a" * 250, "b" * 250, "c" * 250]
    chunks = recursive_split(". ".join(sentences), 400, 100, SEPARATORS)

    assert chunks == ["a" * 250, "a" * 250 + ". " + "b" * 250, "b" * 250 + ". " + "c" * 250]
    assert [len(c) for c in chunks] == [250, 502, 502]


def test_hard_cut_keeps_retained_overlap():
    """Test that words retained before a hard cut still head the next chunk."""
    text = "hello world " + "x" * 30 + " tail end here"
    chunks = recursive_split(text, 20, 10, [" "])

    assert chunks == ["hello world", "x" * 20, "world tail end here"]


def test_hard_cut_truncates_part_without_separators():
    """Test the lossy fallback: an unbreakable part keeps only target chars."""
    text = "x" * 500
    chunks = recursive_split(text, 400, 100, ["\n\n", " "])

    assert chunks == ["x" * 400]


def test_exhaustive_hard_cut_consumes_whole_part():
    """Test that exhaustive mode keeps cutting until the part is consumed."""
    text = "x" * 500
    chunks = recursive_split(text, 400, 100, ["\n\n", " "], exhaustive_hard_cut=True)

    assert chunks == ["x" * 400, "x" * 100]
    assert "".join(chunks) == text


def test_character_level_split_needs_no_hard_cut():
    """Test that an unbroken run is split by characters, losing nothing."""
    text = "".join(chr(ord("a") + i % 26) for i in range(1000))
    chunks = recursive_split(text, 400, 100, SEPARATORS)

    assert chunks == [text[:400], text[300:700], text[600:]]
    assert chunks[0] + "".join(c[100:] for c in chunks[1:]) == text


def test_overlap_not_below_target_terminates():
    """Test that a degenerate overlap does not loop forever."""
    text = _distinct_words(200)
    chunks = recursive_split(text, 20, 40, SEPARATORS)

    assert chunks
    # At most overlap chars carried plus one separator and one word
    assert all(len(c) <= 40 + 1 + 4 for c in chunks)
    assert _tokens(chunks[-1])[-1] == "w199"


def test_blank_chunks_are_never_emitted():
    """Test that runs of separators do not produce empty chunks."""
    text = "\n\n\n\nfirst paragraph\n\n\n\n\n\nsecond paragraph\n\n"
    chunks = recursive_split(text, 20, 5, SEPARATORS)

    assert chunks
    assert all(c for c in chunks)


@pytest.mark.parametrize(
    "target, overlap",
    [(0, 0), (-5, 0), (10, -1)],
)
def test_invalid_parameters_raise(target, overlap):
    """Test that a non-positive target or negative overlap is rejected."""
    with pytest.raises(ValueError):
        recursive_split("some text", target, overlap, SEPARATORS)


def test_chunker_defaults_from_config():
    """Test that the chunker picks up configured size and overlap."""
    chunker = RecursiveChunker()
    assert chunker.chunk_size == config.CHUNK_SIZE
    assert chunker.chunk_overlap == config.CHUNK_OVERLAP
    assert chunker.separators == list(config.CHUNK_SEPARATORS)


def test_chunker_rejects_invalid_size():
    """Test that the chunker validates its configuration."""
    with pytest.raises(ValueError):
        RecursiveChunker(chunk_size=0)
    with pytest.raises(ValueError):
        RecursiveChunker(chunk_size=100, chunk_overlap=-1)


def test_chunker_split_matches_function(long_text):
    """Test that split() is recursive_split() with the configured values."""
    chunker = RecursiveChunker(chunk_size=120, chunk_overlap=20)
    assert chunker.split(long_text) == recursive_split(long_text, 120, 20, SEPARATORS)


def test_chunk_stats():
    """Test chunk statistics."""
    chunker = RecursiveChunker(chunk_size=100, chunk_overlap=10)
    stats = chunker.chunk_stats(["a" * 10, "b" * 20, "c" * 30])

    assert stats == ChunkStats(
        chunk_count=3,
        total_chars=60,
        avg_chunk_size=20,
        min_chunk_size=10,
        max_chunk_size=30,
        overlap=10,
    )
    assert chunker.chunk_stats([]) == ChunkStats()
