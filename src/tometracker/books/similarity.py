"""Bigram (Dice coefficient) similarity for duplicate detection."""

import re
from collections import Counter

DEFAULT_DUPLICATE_THRESHOLD = 0.82

_NON_ALNUM = re.compile(r"[^a-z0-9\s]")
_WHITESPACE = re.compile(r"\s+")


def normalize_text(value: str) -> str:
    """Lowercase, blank out punctuation and collapse whitespace."""
    value = _NON_ALNUM.sub(" ", value.lower())
    return _WHITESPACE.sub(" ", value).strip()


def bigrams(value: str) -> list[str]:
    """Adjacent-character pairs of the normalized string."""
    normalized = normalize_text(value)
    return [normalized[i : i + 2] for i in range(len(normalized) - 1)]


def similarity(a: str, b: str) -> float:
    """Dice coefficient over character bigrams, in [0, 1]."""
    if not a or not b:
        return 0.0
    if a == b:
        return 1.0

    a_bigrams = bigrams(a)
    b_bigrams = bigrams(b)
    if not a_bigrams or not b_bigrams:
        return 0.0

    # Each bigram of b can be matched once
    b_counts = Counter(b_bigrams)
    matches = 0
    for gram in a_bigrams:
        if b_counts[gram] > 0:
            b_counts[gram] -= 1
            matches += 1

    return (2 * matches) / (len(a_bigrams) + len(b_bigrams))


def combined_score(title_a: str, author_a: str, title_b: str, author_b: str) -> float:
    """Mean of title and author similarity."""
    return (similarity(title_a, title_b) + similarity(author_a, author_b)) / 2


def is_possible_duplicate(
    title_a: str,
    author_a: str,
    title_b: str,
    author_b: str,
    threshold: float = DEFAULT_DUPLICATE_THRESHOLD,
) -> bool:
    """True when two title/author pairs probably describe the same book."""
    return combined_score(title_a, author_a, title_b, author_b) >= threshold
