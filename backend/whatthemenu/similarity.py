"""Dish-name similarity strategies.

Two policies share one interface:

- ``LevenshteinStrategy`` is the authoritative one used by the resolver. It takes the
  better of a whole-string edit-distance ratio and a word-level best-match score, so
  reordered multi-word names ("Lemon Grilled Salmon") still line up.
- ``OverlapStrategy`` is a cheap containment / word-overlap heuristic for interactive
  lookups where a false positive costs nothing.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Protocol

from rapidfuzz.distance import Levenshtein

from .normalize import normalize
from .settings import settings


class SimilarityStrategy(Protocol):
    name: str
    threshold: float

    def score(self, a: str, b: str) -> float: ...


@dataclass(slots=True)
class LevenshteinStrategy:
    threshold: float = 0.80
    word_match_threshold: float = 0.7
    short_length: int = 3
    short_min_similarity: float = 0.8
    name: str = "levenshtein"

    def score(self, a: str, b: str) -> float:
        left = normalize(a)
        right = normalize(b)
        if left == right:
            return 1.0
        direct = self._direct(left, right)
        words = min(self._word_level(left, right), self._word_level(right, left))
        return max(direct, words)

    def _direct(self, left: str, right: str) -> float:
        if left == right:
            return 1.0
        max_len = max(len(left), len(right))
        if max_len == 0:
            return 1.0
        distance = Levenshtein.distance(left, right)
        ratio = (max_len - distance) / max_len
        # short words like "dal"/"dan" differ by one letter but are unrelated dishes
        if max_len <= self.short_length and ratio < self.short_min_similarity:
            return 0.0
        return ratio

    def _word_level(self, left: str, right: str) -> float:
        left_words = left.split()
        right_words = right.split()
        if not left_words or not right_words:
            return 0.0

        total = 0.0
        matched = 0
        for word in left_words:
            best = max(self._direct(word, other) for other in right_words)
            if best > self.word_match_threshold:
                total += best
                matched += 1
        if not matched:
            return 0.0
        coverage = matched / max(len(left_words), len(right_words))
        return (total / matched) * coverage


@dataclass(slots=True)
class OverlapStrategy:
    threshold: float = 0.6
    containment_score: float = 0.8
    name: str = "overlap"

    def score(self, a: str, b: str) -> float:
        left = normalize(a)
        right = normalize(b)
        if left == right:
            return 1.0
        if not left or not right:
            return 0.0
        if left in right or right in left:
            return self.containment_score
        left_words = set(left.split())
        right_words = set(right.split())
        union = left_words | right_words
        if not union:
            return 0.0
        return len(left_words & right_words) / len(union)


def levenshtein_from_settings() -> LevenshteinStrategy:
    return LevenshteinStrategy(
        threshold=settings.MATCH_THRESHOLD,
        word_match_threshold=settings.WORD_MATCH_THRESHOLD,
        short_length=settings.SHORT_STRING_LENGTH,
        short_min_similarity=settings.SHORT_STRING_MIN_SIMILARITY,
    )


def overlap_from_settings() -> OverlapStrategy:
    return OverlapStrategy(threshold=settings.OVERLAP_THRESHOLD)


_FACTORIES = {
    "levenshtein": levenshtein_from_settings,
    "overlap": overlap_from_settings,
}


def get_strategy(name: str = "levenshtein") -> SimilarityStrategy:
    try:
        factory = _FACTORIES[name.strip().lower()]
    except KeyError as exc:
        raise ValueError(
            f"Unknown similarity strategy '{name}'. Choose from: {', '.join(sorted(_FACTORIES))}"
        ) from exc
    return factory()


def similarity(a: str, b: str) -> float:
    """Score two dish names with the default (Levenshtein) policy."""
    return levenshtein_from_settings().score(a, b)


__all__ = [
    "LevenshteinStrategy",
    "OverlapStrategy",
    "SimilarityStrategy",
    "get_strategy",
    "similarity",
]
