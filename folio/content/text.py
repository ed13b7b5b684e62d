"""Small text helpers: slugs, word counts, reading time."""

from __future__ import annotations

import math
import re
import unicodedata
from html import unescape

from ..config import READING_WPM

_WORD = re.compile(r"\w+(?:['’]\w+)*", re.UNICODE)
_TAG = re.compile(r"<[^>]+>")


def slugify(text: str) -> str:
    """Convert text to a URL-safe slug.

    Non-ASCII letters are transliterated where NFKD allows it, every run of
    other characters becomes a single dash.

    Args:
        text: Text to convert

    Returns:
        Lowercase slug with dashes, possibly empty
    """
    normalized = unicodedata.normalize("NFKD", text)
    ascii_text = normalized.encode("ascii", "ignore").decode("ascii").lower()
    slug = re.sub(r"[^a-z0-9]+", "-", ascii_text)
    return slug.strip("-")


def count_words(text: str) -> int:
    return len(_WORD.findall(text))


def reading_time(word_count: int, wpm: int = READING_WPM) -> int:
    """Minutes to read `word_count` words, rounded up."""
    if word_count <= 0:
        return 0
    return math.ceil(word_count / wpm)


def strip_html(html: str) -> str:
    """Visible text of an HTML fragment, whitespace collapsed."""
    text = unescape(_TAG.sub(" ", html))
    return re.sub(r"\s+", " ", text).strip()
