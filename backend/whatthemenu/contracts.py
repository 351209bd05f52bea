from __future__ import annotations

from datetime import datetime
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field, field_validator

DisplayLanguage = Literal["en", "es", "zh", "fr"]

ALLERGEN_PREFIX = "Contains "
MAX_EXPLANATION_CHARS = 300


def _clean_labels(values: list[str] | None) -> list[str]:
    if values is None:
        return []
    if not isinstance(values, (list, tuple)):
        raise ValueError("expected a list of strings")
    seen: set[str] = set()
    out: list[str] = []
    for item in values:
        if not isinstance(item, str):
            continue
        label = item.strip()
        key = label.lower()
        if not label or key in seen:
            continue
        seen.add(key)
        out.append(label)
    return out


# --- Corpus ---
class DishRecord(BaseModel):
    """One known dish explained in one display language."""

    model_config = ConfigDict(from_attributes=True)

    id: int | None = None
    name: str
    display_language: DisplayLanguage
    menu_language: str = "en"
    explanation: str
    tags: list[str] = Field(default_factory=list)
    allergens: list[str] = Field(default_factory=list)
    cuisine: str | None = None
    restaurant_id: int | None = None
    restaurant_name: str | None = None
    created_at: datetime | None = None

    @field_validator("tags", "allergens", mode="before")
    @classmethod
    def _never_null(cls, value: list[str] | None) -> list[str]:
        return _clean_labels(value)


class Restaurant(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    name: str
    cuisine: str | None = None
    location: dict[str, Any] | None = None
    total_dishes_scanned: int = 0
    total_explanations: int = 0


# --- Explanations ---
class DishExplanation(BaseModel):
    explanation: str
    tags: list[str] = Field(default_factory=list)
    allergens: list[str] = Field(default_factory=list)
    cuisine: str | None = None

    @field_validator("explanation", mode="before")
    @classmethod
    def _trim_explanation(cls, value: str | None) -> str:
        if not isinstance(value, str):
            raise ValueError("explanation must be a string")
        text = value.strip()
        if not text:
            raise ValueError("explanation must not be empty")
        if len(text) > MAX_EXPLANATION_CHARS:
            text = text[: MAX_EXPLANATION_CHARS - 1].rstrip() + "…"
        return text

    @field_validator("tags", mode="before")
    @classmethod
    def _clean_tags(cls, value: list[str] | None) -> list[str]:
        return _clean_labels(value)

    @field_validator("allergens", mode="before")
    @classmethod
    def _clean_allergens(cls, value: list[str] | None) -> list[str]:
        labelled = []
        for item in _clean_labels(value):
            if not item.lower().startswith(ALLERGEN_PREFIX.lower()):
                item = ALLERGEN_PREFIX + item
            labelled.append(item)
        return _clean_labels(labelled)

    @classmethod
    def from_record(cls, record: DishRecord) -> DishExplanation:
        return cls(
            explanation=record.explanation,
            tags=record.tags,
            allergens=record.allergens,
            cuisine=record.cuisine,
        )


# --- HTTP ---
class ExplainRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    dish_name: str | None = Field(default=None, alias="dishName", max_length=200)
    # Kept as a plain string so unsupported codes surface as 400 instead of a schema error.
    language: str = "en"
    restaurant_id: str | int | None = Field(default=None, alias="restaurantId")
    restaurant_name: str | None = Field(default=None, alias="restaurantName", max_length=200)


class LanguageOption(BaseModel):
    code: DisplayLanguage
    label: str
    native_label: str
