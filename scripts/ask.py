#!/usr/bin/env python
"""Index a document and ask questions about it.

Usage:
    python scripts/ask.py manual.pdf                         # interactive
    python scripts/ask.py manual.pdf -q "What is the leave policy?"
    python scripts/ask.py manual.pdf --retrieve-only -q "leave policy"
"""
import argparse
import asyncio
import sys
from datetime import datetime
from pathlib import Path

# Add parent directory to path for imports
sys.path.insert(0, str(Path(__file__).parent.parent))

import httpx
import structlog

from docqa import config
from docqa.errors import DocQAError
from docqa.logs import configure_logging
from docqa.rag.embedder import OllamaEmbedder
from docqa.rag.engine import RAGEngine
from docqa.rag.extract import count_pages, iter_pages
from docqa.rag.prompt import Answerer

logger = structlog.get_logger()


class ProgressReporter:
    """Simple progress reporter for CLI."""

    def __init__(self, total_pages: int, verbose: bool = False):
        self.total_pages = total_pages
        self.verbose = verbose
        self.pages_done = 0
        self.start_time = None

    def start(self, message: str):
        """Start progress reporting."""
        self.start_time = datetime.now()
        print(f"\n{'=' * 60}")
        print(f"  {message}")
        print(f"{'=' * 60}\n")

    def update(self, page_number: int, chunks_stored: int):
        """Update progress after a page is indexed."""
        self.pages_done += 1
        total = self.total_pages
        percentage = (self.pages_done / total) * 100 if total > 0 else 0
        bar_length = 40
        filled = int(bar_length * self.pages_done / total) if total > 0 else 0
        bar = "█" * filled + "░" * (bar_length - filled)

        print(
            f"\r  [{bar}] {percentage:5.1f}% ({self.pages_done}/{total}) "
            f"page {page_number:<5} +{chunks_stored} chunks",
            end="",
            flush=True,
        )

        if self.verbose:
            print()

    def finish(self, stats: dict):
        """Finish progress reporting."""
        print("\n")
        elapsed_seconds = (datetime.now() - self.start_time).total_seconds()

        print(f"{'=' * 60}")
        print("  Indexing Complete!")
        print(f"{'=' * 60}\n")
        print(f"  Pages processed:        {stats['pages_processed']}")
        print(f"  Pages without chunks:   {stats['pages_empty']}")
        print(f"  Chunks created:         {stats['chunks_created']}")
        print(f"  Chunks too short:       {stats['chunks_skipped']}")
        print(f"  Chunks failed/rejected: {stats['chunks_failed'] + stats['chunks_rejected']}")
        print(f"  Time elapsed:           {elapsed_seconds:.1f}s")

        if stats["chunks_created"] > 0 and elapsed_seconds > 0:
            rate = stats["chunks_created"] / elapsed_seconds
            print(f"  Indexing rate:          {rate:.1f} chunks/sec")

        print(f"\n{'=' * 60}\n")


async def answer_question(answerer: Answerer, question: str, retrieve_only: bool, limit: int):
    """Print retrieved chunks, then stream the answer unless retrieve_only."""
    sources = await answerer.retrieve(question, limit)

    if not sources:
        print("\n  No relevant passages found.\n")
    for result in sources:
        preview = result.chunk.text[:160]
        print(f"  #{result.rank}  score={result.score:.4f}  {result.chunk.source}")
        print(f"      {preview}...")

    if retrieve_only:
        print()
        return

    print("\nAnswer:\n")
    async for fragment in answerer.stream(question, sources=sources):
        print(fragment, end="", flush=True)
    print("\n")


async def main():
    """Main entry point for the ask script."""
    parser = argparse.ArgumentParser(
        description="Index a document and answer questions about it",
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    parser.add_argument("document", type=Path, help="PDF or plain-text document")
    parser.add_argument("--question", "-q", help="Ask one question and exit")
    parser.add_argument(
        "--limit",
        type=int,
        default=config.ASK_TOP_K,
        help=f"Chunks used as context (default: {config.ASK_TOP_K})",
    )
    parser.add_argument(
        "--retrieve-only",
        action="store_true",
        help="Show retrieved chunks without calling the chat model",
    )
    parser.add_argument("--verbose", "-v", action="store_true", help="Verbose output")

    args = parser.parse_args()

    configure_logging(level="DEBUG" if args.verbose else "WARNING", fmt="console")

    try:
        print("\nConfiguration:")
        print(f"   Document:         {args.document}")
        print(f"   Embedding model:  {config.EMBEDDING_MODEL}")
        print(f"   Chat model:       {config.CHAT_MODEL}")
        print(f"   Chunk size:       {config.CHUNK_SIZE} chars")
        print(f"   Chunk overlap:    {config.CHUNK_OVERLAP} chars")

        engine = RAGEngine(embedder=OllamaEmbedder())
        await engine.ensure_embedder_ready()
        answerer = Answerer(engine)

        progress = ProgressReporter(count_pages(args.document), verbose=args.verbose)
        progress.start(f"Indexing {args.document.name}")

        stats = await engine.ingest_pages(
            iter_pages(args.document),
            source=args.document.name,
            progress_callback=progress.update,
        )
        progress.finish(stats)

        if args.question:
            await answer_question(answerer, args.question, args.retrieve_only, args.limit)
            return

        while True:
            try:
                question = input("Question (empty to quit): ").strip()
            except EOFError:
                break
            if not question:
                break
            await answer_question(answerer, question, args.retrieve_only, args.limit)

    except KeyboardInterrupt:
        print("\n\nCancelled by user.\n")
        sys.exit(1)

    except DocQAError as e:
        print(f"\nError: {e}\n")
        logger.error("ask_script_failed", error=str(e), error_type=type(e).__name__)
        sys.exit(1)

    except httpx.HTTPError as e:
        print(f"\nError talking to Ollama at {config.OLLAMA_BASE_URL}: {e}\n")
        sys.exit(1)


if __name__ == "__main__":
    asyncio.run(main())
