"""
Ragent - Text Utilities
========================
Helper functions for text cleaning, chunking and category metadata
normalisation.

These utilities are consumed by the ``IngestionPipeline``, the vector
store and the RAG engine, and should remain stateless and
side-effect-free.
"""

from __future__ import annotations

import json
import re
import unicodedata
from typing import Iterable, Mapping

# Control characters (C0/C1) except \n, \r, \t, plus BOM, zero-width
# characters, soft hyphens and directional marks.
_NON_PRINTABLE_RE = re.compile(r"[\x00-\x08\x0b\x0c\x0e-\x1f\x7f-\x9f\ufeff\u200b\u200c\u200d\u200e\u200f\u00ad\u2060\ufffe]")

_SEPARATORS: tuple[str, ...] = ("\n\n", "\n", ". ", " ")

_TOKENS_PER_WORD = 1.3


def clean_text(text: str) -> str:
    """
    Sanitise raw content text for embedding.

    Steps:
        1. Unicode NFC normalisation.
        2. Strip non-printable / zero-width characters.
        3. Collapse runs of horizontal whitespace into a single space,
           *preserving* newlines.
        4. Strip leading / trailing whitespace from every line.
        5. Collapse 3+ consecutive blank lines to 2.
    """
    text = unicodedata.normalize("NFC", text)
    text = _NON_PRINTABLE_RE.sub("", text)
    text = re.sub(r"[^\S\n]+", " ", text)
    lines = [line.strip() for line in text.splitlines()]
    text = "\n".join(lines)
    text = re.sub(r"\n{3,}", "\n\n", text)
    return text.strip()


def chunk_text(text: str, max_size: int) -> list[str]:
    """
    Split *text* into chunks of at most *max_size* characters.

    Uses a separator hierarchy (paragraph, line, sentence, word) and
    finally a character-level split.  Empty chunks are never returned.
    """
    text = text.strip()
    if not text:
        return []
    return [c for c in _recursive_split(text, list(_SEPARATORS), max_size) if c]


def _recursive_split(text: str, separators: list[str], max_size: int) -> list[str]:
    if len(text) <= max_size:
        return [text]

    if not separators:
        return _hard_split(text, max_size)

    sep = separators[0]
    remaining = separators[1:]
    parts = [p.strip() for p in text.split(sep) if p.strip()]

    if len(parts) <= 1:
        return _recursive_split(text, remaining, max_size)

    chunks: list[str] = []
    current = ""

    for part in parts:
        candidate = (current + sep + part).strip() if current else part
        if len(candidate) <= max_size:
            current = candidate
        else:
            if current:
                chunks.append(current)
            if len(part) > max_size:
                chunks.extend(_recursive_split(part, remaining, max_size))
                current = ""
            else:
                current = part

    if current:
        chunks.append(current)
    return chunks


def _hard_split(text: str, max_size: int) -> list[str]:
    """Character-level split at the nearest whitespace."""
    chunks: list[str] = []
    start = 0
    length = len(text)

    while start < length:
        end = start + max_size
        if end >= length:
            chunks.append(text[start:].strip())
            break
        split_at = text.rfind(" ", start, end)
        if split_at <= start:
            split_at = end
        chunks.append(text[start:split_at].strip())
        start = split_at if split_at == end else split_at + 1

    return [c for c in chunks if c]


def normalize_categories(metadata: Mapping[str, object]) -> list[str]:
    """
    Return the category labels of a stored record as a list.

    Records written by different ingestion paths disagree on the field:
    ``categories`` may be a list, a JSON-encoded list or a plain string;
    older records only carry ``category``, ``docType`` or ``type``.

    Examples::

        {"categories": ["fitness", "sleep"]}  → ["fitness", "sleep"]
        {"categories": '["fitness"]'}        → ["fitness"]
        {"categories": "fitness"}            → ["fitness"]
        {"category": "finance"}              → ["finance"]
        {"type": "note"}                     → ["note"]
        {}                                   → []
    """
    raw = metadata.get("categories")
    if raw:
        if isinstance(raw, (list, tuple)):
            return [str(c) for c in raw if c]
        if isinstance(raw, str):
            try:
                parsed = json.loads(raw)
            except json.JSONDecodeError:
                return [raw]
            if isinstance(parsed, list):
                return [str(c) for c in parsed if c]
            return [raw]

    for key in ("category", "docType", "type"):
        value = metadata.get(key)
        if value:
            return [str(value)]
    return []


def clean_labels(labels: Iterable[str], default: str | None = None) -> list[str]:
    """
    Trim and dedupe category labels, keeping their order and spelling.

    The ``categories`` filter matches labels verbatim, so no case folding
    is applied.  *default* is returned alone when nothing survives.
    """
    cleaned = list(dict.fromkeys(label.strip() for label in labels if label and label.strip()))
    if not cleaned and default:
        return [default]
    return cleaned


def estimate_tokens(text: str) -> float:
    """Rough token estimate: whitespace-delimited words × 1.3."""
    return len(text.split()) * _TOKENS_PER_WORD
