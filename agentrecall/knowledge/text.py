"""Text normalization and chunking for knowledge ingestion."""

from __future__ import annotations

import re

__all__ = ["preprocess", "split_chunks"]

# Applied in order; each entry is (pattern, replacement).
_CLEANUP_RULES: list[tuple[re.Pattern[str], str]] = [
    (re.compile(r"```[\s\S]*?```"), ""),  # fenced code
    (re.compile(r"`.*?`"), ""),  # inline code
    (re.compile(r"#{1,6}\s*(.*)"), r"\1"),  # headers
    (re.compile(r"!\[(.*?)\]\(.*?\)"), r"\1"),  # images, keep alt text
    (re.compile(r"\[(.*?)\]\(.*?\)"), r"\1"),  # links, keep text
    (re.compile(r"(https?://)?(www\.)?([^\s]+\.[^\s]+)"), r"\3"),  # bare urls
    (re.compile(r"<@[!&]?\d+>"), ""),  # discord mentions
    (re.compile(r"<[^>]*>"), ""),  # html tags
    (re.compile(r"^\s*[-*_]{3,}\s*$", re.MULTILINE), ""),  # horizontal rules
    (re.compile(r"/\*[\s\S]*?\*/"), ""),  # block comments
    (re.compile(r"//.*"), ""),  # line comments
    (re.compile(r"\s+"), " "),
    (re.compile(r"[^a-zA-Z0-9\s\-_./:?=&]"), ""),
]


def _clean_once(text: str) -> str:
    for pattern, replacement in _CLEANUP_RULES:
        text = pattern.sub(replacement, text)
    return text.strip().lower()


def preprocess(content: str | None) -> str:
    """Strip markup, urls and code from ``content`` and normalize it to lowercase words.

    The cleanup pass is repeated until the text stops changing, which makes
    ``preprocess`` idempotent: removing a character can expose a new match
    (``w!ww.site.com`` becomes ``www.site.com``) that a single pass misses.
    """
    if not content or not isinstance(content, str):
        return ""
    previous, text = None, content
    while text != previous:
        previous, text = text, _clean_once(text)
    return text


def split_chunks(text: str, chunk_size: int = 512, bleed: int = 20) -> list[str]:
    """Split ``text`` into ``chunk_size`` windows overlapping by ``bleed`` characters."""
    if chunk_size <= 0:
        raise ValueError("chunk_size must be positive")
    if bleed < 0 or bleed >= chunk_size:
        raise ValueError("bleed must be in [0, chunk_size)")
    if not text:
        return []

    step = chunk_size - bleed
    chunks = []
    start = 0
    while True:
        chunks.append(text[start : start + chunk_size])
        if start + chunk_size >= len(text):
            return chunks
        start += step
