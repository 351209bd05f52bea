"""Fuzzy lookup of an incoming dish name against the explained-dish corpus."""

from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass

from .contracts import DishRecord
from .settings import settings
from .similarity import SimilarityStrategy, levenshtein_from_settings


@dataclass(slots=True, frozen=True)
class Match:
    record: DishRecord
    score: float


@dataclass(slots=True, frozen=True)
class MatchOutcome:
    """Best candidate seen plus whether it cleared the threshold."""

    best: Match | None
    threshold: float

    @property
    def hit(self) -> Match | None:
        if self.best is not None and self.best.score >= self.threshold:
            return self.best
        return None

    @property
    def best_score(self) -> float:
        return self.best.score if self.best is not None else 0.0


class CorpusMatcher:
    def __init__(
        self,
        strategy: SimilarityStrategy | None = None,
        *,
        threshold: float | None = None,
        restaurant_bonus: float | None = None,
    ) -> None:
        self.strategy = strategy or levenshtein_from_settings()
        self.threshold = self.strategy.threshold if threshold is None else threshold
        self.restaurant_bonus = (
            settings.RESTAURANT_BONUS if restaurant_bonus is None else restaurant_bonus
        )

    @classmethod
    def from_settings(cls) -> CorpusMatcher:
        return cls(
            levenshtein_from_settings(),
            threshold=settings.MATCH_THRESHOLD,
            restaurant_bonus=settings.RESTAURANT_BONUS,
        )

    def score(self, dish_name: str, candidate: DishRecord, restaurant_id: int | None) -> float:
        value = self.strategy.score(dish_name, candidate.name)
        if restaurant_id is not None and candidate.restaurant_id == restaurant_id:
            value = min(1.0, value + self.restaurant_bonus)
        return value

    def evaluate(
        self,
        dish_name: str,
        display_language: str,
        corpus_slice: Iterable[DishRecord],
        restaurant_id: int | None = None,
    ) -> MatchOutcome:
        best: Match | None = None
        for candidate in corpus_slice:
            # the store pre-filters by language; re-check so a bad slice can never leak across
            if candidate.display_language != display_language or not candidate.name:
                continue
            value = self.score(dish_name, candidate, restaurant_id)
            # strict ">" keeps the first-seen candidate on ties
            if best is None or value > best.score:
                best = Match(record=candidate, score=value)
                if value >= 1.0:
                    break
        return MatchOutcome(best=best, threshold=self.threshold)

    def find_best_match(
        self,
        dish_name: str,
        display_language: str,
        corpus_slice: Iterable[DishRecord],
        restaurant_id: int | None = None,
    ) -> Match | None:
        return self.evaluate(dish_name, display_language, corpus_slice, restaurant_id).hit


def find_best_match(
    dish_name: str,
    display_language: str,
    corpus_slice: Iterable[DishRecord],
    restaurant_id: int | None = None,
) -> Match | None:
    return CorpusMatcher.from_settings().find_best_match(
        dish_name, display_language, corpus_slice, restaurant_id
    )


__all__ = ["CorpusMatcher", "Match", "MatchOutcome", "find_best_match"]
