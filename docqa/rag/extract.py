"""Page text extraction feeding the ingestion pipeline.

Pages are produced as ``(page_number, text)`` pairs through an async
iterator. PDF pages are extracted by a small pool of worker threads, at most
``max_concurrency`` pages at a time, so extraction of later pages overlaps
with embedding of earlier ones. Pages are yielded as they finish and
consumers must not rely on page order.
"""
import asyncio
import concurrent.futures
import itertools
import threading
from pathlib import Path
from typing import AsyncIterator, Optional, Set, Tuple, Union

import structlog
from pypdf import PdfReader
from pypdf.errors import PyPdfError

from docqa import config
from docqa.errors import ExtractionError

logger = structlog.get_logger()

TEXT_SUFFIXES = {".txt", ".md", ".text"}
PAGE_BREAK = "\f"


def count_pages(path: Union[str, Path]) -> int:
    """Number of pages the extractor will yield for a document.

    Raises:
        ExtractionError: If the document cannot be opened
    """
    path = check_document(path)
    if path.suffix.lower() in TEXT_SUFFIXES:
        return len(_read_text(path).split(PAGE_BREAK))
    try:
        return len(PdfReader(str(path)).pages)
    except (PyPdfError, OSError, ValueError) as e:
        raise ExtractionError(f"Failed to open PDF {path.name}: {e}") from e


def check_document(path: Union[str, Path]) -> Path:
    """Resolve a document path, rejecting missing or unsupported files.

    Raises:
        ExtractionError: If the file does not exist or has an unsupported type
    """
    path = Path(path)
    if not path.is_file():
        raise ExtractionError(f"Document not found: {path}")
    suffix = path.suffix.lower()
    if suffix != ".pdf" and suffix not in TEXT_SUFFIXES:
        raise ExtractionError(f"Unsupported document type: {suffix or path.name}")
    return path


def _read_text(path: Path) -> str:
    try:
        return path.read_text(encoding="utf-8", errors="replace")
    except OSError as e:
        raise ExtractionError(f"Failed to read {path.name}: {e}") from e


async def iter_pages(
    path: Union[str, Path],
    max_concurrency: Optional[int] = None,
) -> AsyncIterator[Tuple[int, str]]:
    """Yield ``(page_number, text)`` for every page of a document.

    Page numbers are 1-based. PDF pages are yielded as their extraction
    finishes, which is not necessarily page order. Plain-text files are split
    into pages on form feeds. A page whose text cannot be extracted is logged
    and skipped.

    Args:
        path: PDF or plain-text document
        max_concurrency: Pages extracted at the same time (default from config)

    Raises:
        ExtractionError: If the document cannot be opened
        ValueError: If max_concurrency is below 1
    """
    if max_concurrency is None:
        max_concurrency = config.EXTRACT_CONCURRENCY
    if max_concurrency < 1:
        raise ValueError(f"max_concurrency must be at least 1, got {max_concurrency}")

    path = check_document(path)

    if path.suffix.lower() in TEXT_SUFFIXES:
        for number, text in enumerate(_read_text(path).split(PAGE_BREAK), 1):
            yield number, text
        return

    async for page in _iter_pdf_pages(path, max_concurrency):
        yield page


async def _iter_pdf_pages(path: Path, max_concurrency: int) -> AsyncIterator[Tuple[int, str]]:
    loop = asyncio.get_running_loop()
    executor = concurrent.futures.ThreadPoolExecutor(
        max_workers=max_concurrency,
        thread_name_prefix="pdf-extract",
    )
    local = threading.local()

    def open_reader() -> PdfReader:
        # pypdf readers are not thread-safe, so every worker opens its own
        reader = getattr(local, "reader", None)
        if reader is None:
            reader = local.reader = PdfReader(str(path))
        return reader

    def extract(number: int) -> Tuple[int, Optional[str]]:
        try:
            return number, open_reader().pages[number - 1].extract_text() or ""
        except (PyPdfError, ValueError, KeyError) as e:
            logger.warning(
                "page_extraction_failed",
                path=str(path),
                page=number,
                error=str(e),
            )
            return number, None

    pending: Set[asyncio.Future] = set()
    try:
        try:
            reader = await loop.run_in_executor(executor, open_reader)
            total_pages = len(reader.pages)
        except (PyPdfError, OSError, ValueError) as e:
            raise ExtractionError(f"Failed to open PDF {path.name}: {e}") from e

        logger.info(
            "pdf_extraction_started",
            path=str(path),
            total_pages=total_pages,
            max_concurrency=max_concurrency,
        )

        # Sliding window: a finished page frees a worker for the next one
        numbers = iter(range(1, total_pages + 1))
        for number in itertools.islice(numbers, max_concurrency):
            pending.add(loop.run_in_executor(executor, extract, number))

        extracted = 0
        while pending:
            done, pending = await asyncio.wait(pending, return_when=asyncio.FIRST_COMPLETED)
            for future in done:
                number = next(numbers, None)
                if number is not None:
                    pending.add(loop.run_in_executor(executor, extract, number))

                page_number, text = future.result()
                if text is None:
                    continue
                extracted += 1
                yield page_number, text

        logger.info(
            "pdf_extraction_completed",
            path=str(path),
            total_pages=total_pages,
            pages_extracted=extracted,
        )
    finally:
        for future in pending:
            future.cancel()
        executor.shutdown(wait=False, cancel_futures=True)
