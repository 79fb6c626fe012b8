"""Lexical text similarity.

Token-set overlap (Jaccard index) over normalized text.  Deliberately cheap:
it is used for cache retrieval and pattern relevance where recall matters
more than precision.
"""

from __future__ import annotations

import re

_NON_WORD = re.compile(r"[^\w\s]")
_WHITESPACE = re.compile(r"\s+")


def normalize_text(text: str) -> str:
    """Lowercase, replace punctuation with spaces and collapse whitespace."""
    text = _NON_WORD.sub(" ", text.lower())
    return _WHITESPACE.sub(" ", text).strip()


def tokenize(text: str) -> frozenset[str]:
    normalized = normalize_text(text)
    if not normalized:
        return frozenset()
    return frozenset(normalized.split(" "))


def jaccard_similarity(a: str, b: str) -> float:
    """Intersection size over union size of the two token sets.

    Two empty texts have similarity 0.0.
    """
    tokens_a = tokenize(a)
    tokens_b = tokenize(b)
    union = tokens_a | tokens_b
    if not union:
        return 0.0
    return len(tokens_a & tokens_b) / len(union)
