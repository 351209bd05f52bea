"""Dish explanation resolution: serve from the corpus when an equivalent dish is already
explained in the requested display language, otherwise generate, dedup and store.

Corpus failures never fail a request. A failed read counts as "no match" and a failed
write is logged and dropped; only generation failures reach the caller. The end-to-end
deadline covers lookup and generation; the corpus write and usage counters that follow
have their own, separate timeout.
"""

from __future__ import annotations

import asyncio
import time
from collections.abc import Awaitable
from dataclasses import dataclass
from enum import Enum
from typing import Literal, TypeVar

from .auth import AuthContext
from .contracts import DishExplanation, DishRecord
from .errors import (
    GenerationFailed,
    MissingInput,
    QuotaExceeded,
    StorageDegraded,
    UnsupportedLanguage,
)
from .generator import Generator, generate_explanation
from .logging_config import get_logger
from .matcher import CorpusMatcher, MatchOutcome
from .menu_language import detect_menu_language
from .metrics import (
    corpus_degraded_total,
    dish_corpus_inserts_total,
    dish_explanations_total,
    dish_match_score,
    generator_failures_total,
)
from .normalize import normalize
from .prompts import build_explanation_prompt, is_not_applicable
from .quota import QuotaService
from .settings import SUPPORTED_LANGUAGES, settings
from .storage import CorpusStore

logger = get_logger(__name__)

T = TypeVar("T")


class ResolutionState(str, Enum):
    RECEIVED = "received"
    MATCHED = "matched"
    MISSED = "missed"
    GENERATED = "generated"
    DEDUP_CHECKED = "dedup_checked"
    STORED = "stored"
    RESPONDED = "responded"
    REJECTED = "rejected"
    FAILED = "failed"


@dataclass(slots=True)
class Resolution:
    explanation: DishExplanation
    source: Literal["cache", "generated"]
    language: str
    score: float
    matched_name: str | None = None
    record_id: int | None = None
    stored: bool = False
    elapsed_ms: int = 0

    @property
    def from_cache(self) -> bool:
        return self.source == "cache"


def validate_language(language: str | None) -> str:
    code = (language or "").strip().lower()
    if code not in SUPPORTED_LANGUAGES:
        raise UnsupportedLanguage(language)
    return code


def validate_dish_name(dish_name: str | None) -> str:
    name = (dish_name or "").strip()
    if not name or not normalize(name):
        raise MissingInput()
    return name


class ExplanationResolver:
    def __init__(
        self,
        store: CorpusStore,
        generator: Generator,
        *,
        matcher: CorpusMatcher | None = None,
        quota: QuotaService | None = None,
        deadline_seconds: float | None = None,
        write_timeout_seconds: float | None = None,
        cache_non_food: bool | None = None,
    ) -> None:
        self.store = store
        self.generator = generator
        self.matcher = matcher or CorpusMatcher.from_settings()
        self.quota = quota
        self._deadline_seconds = deadline_seconds
        self._write_timeout_seconds = write_timeout_seconds
        self._cache_non_food = cache_non_food

    @property
    def deadline_seconds(self) -> float:
        if self._deadline_seconds is None:
            return settings.EXPLAIN_DEADLINE_SECONDS
        return self._deadline_seconds

    @property
    def write_timeout_seconds(self) -> float:
        if self._write_timeout_seconds is None:
            return settings.CORPUS_WRITE_TIMEOUT_SECONDS
        return self._write_timeout_seconds

    @property
    def cache_non_food(self) -> bool:
        if self._cache_non_food is None:
            return settings.CACHE_NON_FOOD_RESULTS
        return self._cache_non_food

    async def resolve(
        self,
        dish_name: str | None,
        display_language: str | None,
        restaurant_id: int | None = None,
        restaurant_name: str | None = None,
        auth_context: AuthContext | None = None,
    ) -> Resolution:
        try:
            language = validate_language(display_language)
            name = validate_dish_name(dish_name)
        except (UnsupportedLanguage, MissingInput):
            logger.info("explain_rejected", state=ResolutionState.REJECTED.value)
            raise

        started = time.perf_counter()
        deadline = self.deadline_seconds
        try:
            resolution = await asyncio.wait_for(
                self._answer(name, language, restaurant_id, restaurant_name, auth_context),
                timeout=deadline if deadline > 0 else None,
            )
        except asyncio.TimeoutError as exc:
            generator_failures_total.inc()
            logger.warning(
                "explain_failed", state=ResolutionState.FAILED.value, reason="deadline", dish=name
            )
            raise GenerationFailed(f"timed out after {deadline:g}s") from exc

        await self._settle(resolution, name, restaurant_id, restaurant_name, auth_context)

        resolution.elapsed_ms = int((time.perf_counter() - started) * 1000)
        dish_explanations_total.labels(source=resolution.source, language=language).inc()
        logger.info(
            "explain_responded",
            state=ResolutionState.RESPONDED.value,
            dish=name,
            language=language,
            source=resolution.source,
            score=round(resolution.score, 3),
            elapsed_ms=resolution.elapsed_ms,
        )
        return resolution

    async def _answer(
        self,
        name: str,
        language: str,
        restaurant_id: int | None,
        restaurant_name: str | None,
        auth_context: AuthContext | None,
    ) -> Resolution:
        outcome = await self._lookup(name, language, restaurant_id)
        hit = outcome.hit
        if hit is not None:
            dish_match_score.labels(outcome="hit").observe(hit.score)
            logger.info(
                "explain_cache_hit",
                state=ResolutionState.MATCHED.value,
                dish=name,
                matched=hit.record.name,
                score=round(hit.score, 3),
            )
            return Resolution(
                explanation=DishExplanation.from_record(hit.record),
                source="cache",
                language=language,
                score=hit.score,
                matched_name=hit.record.name,
                record_id=hit.record.id,
            )

        dish_match_score.labels(outcome="miss").observe(outcome.best_score)
        logger.info(
            "explain_cache_miss",
            state=ResolutionState.MISSED.value,
            dish=name,
            best_score=round(outcome.best_score, 3),
        )

        if self.quota is not None and auth_context is not None:
            if not self.quota.can_explain_dish(auth_context):
                logger.info("explain_quota_exceeded", subject=auth_context.quota_key)
                raise QuotaExceeded()

        explanation = await self._generate(name, language, restaurant_name)
        return Resolution(
            explanation=explanation,
            source="generated",
            language=language,
            score=outcome.best_score,
        )

    async def _settle(
        self,
        resolution: Resolution,
        name: str,
        restaurant_id: int | None,
        restaurant_name: str | None,
        auth_context: AuthContext | None,
    ) -> None:
        """Corpus write and usage counters for an answered request.

        Outside the resolution deadline. Each step is bounded by ``write_timeout_seconds``
        and never raises.
        """
        if resolution.source == "generated":
            if self.quota is not None and auth_context is not None:
                self.quota.record_explanation(auth_context)
            record = await self._bounded(
                "write",
                self._store_if_new(
                    name,
                    resolution.language,
                    resolution.explanation,
                    restaurant_id,
                    restaurant_name,
                ),
            )
            if record is not None:
                resolution.record_id = record.id
                resolution.stored = True
        await self._bounded("restaurant_counter", self._bump_restaurant(restaurant_id))

    async def _bounded(self, operation: str, step: Awaitable[T]) -> T | None:
        timeout = self.write_timeout_seconds
        try:
            return await asyncio.wait_for(step, timeout=timeout if timeout > 0 else None)
        except asyncio.TimeoutError:
            exc = StorageDegraded(operation, f"timed out after {timeout:g}s")
            corpus_degraded_total.labels(operation=operation).inc()
            logger.warning("corpus_write_degraded", operation=operation, error=str(exc))
            return None

    async def _lookup(
        self, name: str, language: str, restaurant_id: int | None
    ) -> MatchOutcome:
        try:
            corpus_slice = await self.store.query_by_language(language)
        except StorageDegraded as exc:
            corpus_degraded_total.labels(operation="read").inc()
            logger.warning("corpus_read_degraded", error=str(exc), language=language)
            corpus_slice = []
        return self.matcher.evaluate(name, language, corpus_slice, restaurant_id)

    async def _generate(
        self, name: str, language: str, restaurant_name: str | None
    ) -> DishExplanation:
        prompt = build_explanation_prompt(name, language, restaurant_name)
        try:
            explanation = await generate_explanation(self.generator, prompt)
        except GenerationFailed as exc:
            generator_failures_total.inc()
            logger.warning(
                "explain_failed", state=ResolutionState.FAILED.value, dish=name, error=exc.detail
            )
            raise
        logger.info("explain_generated", state=ResolutionState.GENERATED.value, dish=name)
        return explanation

    async def _store_if_new(
        self,
        name: str,
        language: str,
        explanation: DishExplanation,
        restaurant_id: int | None,
        restaurant_name: str | None,
    ) -> DishRecord | None:
        if is_not_applicable(explanation.cuisine) and not self.cache_non_food:
            dish_corpus_inserts_total.labels(result="skipped_non_food").inc()
            logger.info("explain_non_food_not_cached", dish=name)
            return None

        # Re-check right before writing: a concurrent request may have stored this dish
        # since the lookup. Same slice, same threshold.
        outcome = await self._lookup(name, language, restaurant_id)
        duplicate = outcome.hit
        if duplicate is not None:
            dish_corpus_inserts_total.labels(result="duplicate").inc()
            logger.info(
                "explain_dedup_skip",
                state=ResolutionState.DEDUP_CHECKED.value,
                dish=name,
                existing=duplicate.record.name,
                score=round(duplicate.score, 3),
            )
            return None

        record = DishRecord(
            name=name,
            display_language=language,
            menu_language=detect_menu_language(name),
            explanation=explanation.explanation,
            tags=explanation.tags,
            allergens=explanation.allergens,
            cuisine=explanation.cuisine,
            restaurant_id=restaurant_id,
            restaurant_name=restaurant_name,
        )
        try:
            stored = await self.store.insert(record)
        except StorageDegraded as exc:
            corpus_degraded_total.labels(operation="write").inc()
            dish_corpus_inserts_total.labels(result="failed").inc()
            logger.warning("corpus_write_degraded", error=str(exc), dish=name)
            return None
        dish_corpus_inserts_total.labels(result="inserted").inc()
        logger.info(
            "explain_stored",
            state=ResolutionState.STORED.value,
            dish=name,
            record_id=stored.id,
            menu_language=stored.menu_language,
        )
        return stored

    async def _bump_restaurant(self, restaurant_id: int | None) -> None:
        if restaurant_id is None:
            return
        try:
            await self.store.increment_restaurant_explanation_count(restaurant_id)
        except StorageDegraded as exc:
            corpus_degraded_total.labels(operation="restaurant_counter").inc()
            logger.warning(
                "restaurant_counter_failed", restaurant_id=restaurant_id, error=str(exc)
            )


__all__ = [
    "ExplanationResolver",
    "Resolution",
    "ResolutionState",
    "validate_dish_name",
    "validate_language",
]
