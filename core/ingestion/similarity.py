"""
Similarity Scorer - Normalised String Similarity for Header Matching

Scores two strings on a 0-1 scale. Rules are applied in priority order:

1. Exact match after trimming and lower-casing -> 1.0
2. One string contains the other -> 0.95
3. Equal once whitespace, underscores and hyphens are removed -> 0.95
4. Normalised Levenshtein distance: max(0, (max_len - distance) / max_len)

Known deviation from a true metric: the containment rule short-circuits
ranking, so "price" scores 0.95 against "list price history" even where a
closer edit-distance candidate exists. Header matching relies on this
behaviour and it is kept as-is.
"""

from __future__ import annotations

import re
from typing import Final


CONTAINS_SCORE: Final[float] = 0.95
COMPACT_MATCH_SCORE: Final[float] = 0.95

_COMPACT_PATTERN: Final = re.compile(r"[\s_\-]+")


def normalise(value: str) -> str:
    """Lower-case and trim a string for comparison."""
    return value.strip().lower()


def levenshtein(a: str, b: str) -> int:
    """
    Edit distance between two strings (insert, delete, substitute).

    Uses a two-row dynamic programming table.
    """
    if a == b:
        return 0
    if not a:
        return len(b)
    if not b:
        return len(a)

    # Keep the shorter string on the inner loop
    if len(a) < len(b):
        a, b = b, a

    previous = list(range(len(b) + 1))
    for i, char_a in enumerate(a, start=1):
        current = [i]
        for j, char_b in enumerate(b, start=1):
            cost = 0 if char_a == char_b else 1
            current.append(
                min(
                    previous[j] + 1,  # deletion
                    current[j - 1] + 1,  # insertion
                    previous[j - 1] + cost,  # substitution
                )
            )
        previous = current
    return previous[-1]


def similarity(a: str, b: str) -> float:
    """
    Compute a normalised 0-1 similarity between two strings.

    Args:
        a: First string (typically an observed spreadsheet header)
        b: Second string (typically a catalog variation)

    Returns:
        Score in [0, 1]. Empty input on either side scores 0.0.
    """
    left = normalise(a)
    right = normalise(b)

    if not left or not right:
        return 0.0

    if left == right:
        return 1.0

    if left in right or right in left:
        return CONTAINS_SCORE

    if _COMPACT_PATTERN.sub("", left) == _COMPACT_PATTERN.sub("", right):
        return COMPACT_MATCH_SCORE

    max_len = max(len(left), len(right))
    distance = levenshtein(left, right)
    return max(0.0, (max_len - distance) / max_len)


def best_match(candidate: str, options: list[str]) -> tuple[str, float]:
    """
    Return the option scoring highest against the candidate.

    Ties keep the first option encountered. Returns ("", 0.0) when
    options is empty.
    """
    best_option = ""
    best_score = 0.0
    for option in options:
        score = similarity(candidate, option)
        if score > best_score:
            best_option, best_score = option, score
    return best_option, best_score
