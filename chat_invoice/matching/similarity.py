"""Normalized Levenshtein similarity."""

import re
from collections.abc import Callable, Iterable
from typing import TypeVar

T = TypeVar("T")


def levenshtein_distance(a: str, b: str) -> int:
    """Edit distance with unit costs for insert, delete and substitute."""
    if len(a) < len(b):
        a, b = b, a
    previous = list(range(len(b) + 1))
    for i, char_a in enumerate(a, start=1):
        current = [i]
        for j, char_b in enumerate(b, start=1):
            cost = 0 if char_a == char_b else 1
            current.append(min(previous[j] + 1, current[j - 1] + 1, previous[j - 1] + cost))
        previous = current
    return previous[-1]


def similarity(a: str, b: str) -> float:
    """Similarity in [0, 1] of two strings, compared case-insensitively.

    ``(max_len - distance) / max_len``; two empty strings are identical.
    """
    a = a.lower()
    b = b.lower()
    max_len = max(len(a), len(b))
    if max_len == 0:
        return 1.0
    return (max_len - levenshtein_distance(a, b)) / max_len


def normalize_name(name: str) -> str:
    """Lowercase and collapse whitespace so spacing differences do not count as edits."""
    return re.sub(r"\s+", " ", name.strip().lower())


def best_match(
    name: str, candidates: Iterable[T], key: Callable[[T], str], threshold: float
) -> T | None:
    """Candidate whose ``key`` is most similar to ``name``.

    Only similarities strictly above ``threshold`` count; ties keep the first
    candidate.
    """
    target = normalize_name(name)
    best: T | None = None
    best_score = threshold
    for candidate in candidates:
        score = similarity(target, normalize_name(key(candidate)))
        if score > best_score:
            best, best_score = candidate, score
    return best
