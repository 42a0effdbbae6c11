"""Page text cleanup before chunking.

Strips recurring header/footer boilerplate picked up by OCR and collapses
whitespace so chunk lengths reflect real content.
"""
import re
from typing import Iterable, List, Optional

from docqa import config

WHITESPACE_PATTERN = re.compile(r"\s+")


class TextNormalizer:
    """Removes boilerplate patterns and collapses whitespace."""

    def __init__(self, patterns: Optional[Iterable[str]] = None):
        """Initialize the normalizer.

        Args:
            patterns: Regexes to strip, matched case-insensitively
                (default from config)
        """
        if patterns is None:
            patterns = config.BOILERPLATE_PATTERNS
        self.patterns: List[re.Pattern] = [
            re.compile(p, re.IGNORECASE) for p in patterns
        ]

    def normalize(self, raw: str) -> str:
        """Return the cleaned text.

        Each pattern is applied to the output of the previous removal.
        Patterns run before whitespace collapsing so line-scoped patterns
        (e.g. a footer running to end of line) still see the line breaks.
        """
        if not raw:
            return ""

        processed = raw
        for pattern in self.patterns:
            processed = pattern.sub("", processed)

        processed = WHITESPACE_PATTERN.sub(" ", processed)
        return processed.strip()


_normalizer_instance: Optional[TextNormalizer] = None


def normalize(raw: str) -> str:
    """Normalize text with the default pattern set (convenience function)."""
    global _normalizer_instance
    if _normalizer_instance is None:
        _normalizer_instance = TextNormalizer()
    return _normalizer_instance.normalize(raw)
