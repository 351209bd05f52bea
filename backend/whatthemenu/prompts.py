"""Prompt text for dish explanations, one template per display language."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any

NOT_APPLICABLE = {
    "en": "Not applicable",
    "es": "No aplicable",
    "zh": "不适用",
    "fr": "Non applicable",
}

NOT_FOOD_EXPLANATION = {
    "en": "This doesn't appear to be a food item.",
    "es": "Esto no parece ser un alimento.",
    "zh": "这似乎不是一道菜品。",
    "fr": "Cela ne semble pas être un plat.",
}

LANGUAGE_LABELS = {
    "en": ("English", "English"),
    "es": ("Spanish", "Español"),
    "zh": ("Chinese", "中文"),
    "fr": ("French", "Français"),
}

SYSTEM_PROMPT = (
    "You are a culinary expert who explains restaurant dishes to travellers. "
    "Return structured JSON only. No prose outside the JSON object."
)

EXPLANATION_SCHEMA: dict[str, Any] = {
    "type": "object",
    "properties": {
        "explanation": {
            "type": "string",
            "description": "A concise explanation of the dish in under 300 characters.",
        },
        "tags": {
            "type": "array",
            "items": {"type": "string"},
            "description": "Dietary, cooking-method and flavour tags.",
        },
        "allergens": {
            "type": "array",
            "items": {"type": "string"},
            "description": "Allergens, each formatted as 'Contains X'.",
        },
        "cuisine": {
            "type": "string",
            "description": "The specific cuisine, or the not-applicable sentinel for non-food input.",
        },
    },
    "required": ["explanation", "tags", "allergens", "cuisine"],
}


@dataclass(frozen=True, slots=True)
class _Template:
    intro: str
    not_food: str
    tags: str
    allergens: str
    cuisine: str
    closing: str


_TEMPLATES: dict[str, _Template] = {
    "en": _Template(
        intro='You are a culinary expert. Explain the dish "{dish}" for a tourist in English, '
        "in under 300 characters.",
        not_food="First decide whether the input is actually a food or drink item. If it is not, "
        'respond with explanation "{not_food}", empty tags, empty allergens and cuisine '
        '"{sentinel}".',
        tags="For tags, include dietary restrictions (Vegetarian, Vegan, Gluten-Free, Dairy-Free), "
        "cooking methods (Grilled, Fried, Steamed, Raw) and flavour profiles (Spicy, Sweet, "
        "Savory, Mild).",
        allergens='For allergens, list what the dish contains using the format "Contains [allergen]" '
        '(e.g. "Contains Nuts", "Contains Dairy", "Contains Gluten", "Contains Shellfish"). '
        "Return an empty array if there are no common allergens.",
        cuisine='For cuisine, give the most specific classification (e.g. "Sichuan", "Neapolitan", '
        '"Lebanese").',
        closing="Respond in the requested JSON format.",
    ),
    "es": _Template(
        intro='Eres un experto culinario. Explica el plato "{dish}" para un turista en español, '
        "en menos de 300 caracteres.",
        not_food="Primero decide si la entrada es realmente un alimento o bebida. Si no lo es, "
        'responde con la explicación "{not_food}", etiquetas vacías, alérgenos vacíos y cocina '
        '"{sentinel}".',
        tags="Para las etiquetas, incluye restricciones dietéticas (Vegetariano, Vegano, Sin Gluten, "
        "Sin Lácteos), métodos de cocción (A la parrilla, Frito, Al vapor, Crudo) y perfiles de "
        "sabor (Picante, Dulce, Salado, Suave).",
        allergens='Para los alérgenos, usa el formato "Contains [alérgeno]" (p. ej. "Contains Nuts", '
        '"Contains Dairy"). Devuelve un arreglo vacío si no hay alérgenos comunes.',
        cuisine='Para la cocina, da la clasificación más específica (p. ej. "Mexicana", "Peruana", '
        '"Vasca").',
        closing="Responde en el formato JSON solicitado.",
    ),
    "zh": _Template(
        intro='你是一位美食专家。请用中文为游客解释菜品"{dish}"，不超过300个字符。',
        not_food='首先判断输入是否真的是食物或饮品。如果不是，请返回解释"{not_food}"，'
        '标签和过敏原均为空数组，菜系为"{sentinel}"。',
        tags="标签请包括饮食限制（素食、纯素、无麸质、无乳制品）、烹饪方式（烧烤、油炸、清蒸、生食）"
        "和口味（辣、甜、咸鲜、清淡）。",
        allergens='过敏原请使用 "Contains [过敏原]" 格式（例如 "Contains Nuts"、"Contains Dairy"）。'
        "如果没有常见过敏原，返回空数组。",
        cuisine="菜系请给出最具体的分类（例如：川菜、粤菜、意大利菜）。",
        closing="请按要求的JSON格式回答。",
    ),
    "fr": _Template(
        intro='Vous êtes un expert culinaire. Expliquez le plat "{dish}" à un touriste en français, '
        "en moins de 300 caractères.",
        not_food="Déterminez d'abord si l'entrée est réellement un aliment ou une boisson. Sinon, "
        'répondez avec l\'explication "{not_food}", des étiquettes vides, des allergènes vides et '
        'la cuisine "{sentinel}".',
        tags="Pour les étiquettes, indiquez les régimes (Végétarien, Végan, Sans Gluten, Sans "
        "Lactose), les modes de cuisson (Grillé, Frit, Vapeur, Cru) et les saveurs (Épicé, Sucré, "
        "Salé, Doux).",
        allergens='Pour les allergènes, utilisez le format "Contains [allergène]" (ex. "Contains Nuts", '
        '"Contains Dairy"). Renvoyez un tableau vide s\'il n\'y a pas d\'allergènes courants.',
        cuisine='Pour la cuisine, donnez la classification la plus précise (ex. "Provençale", '
        '"Bretonne", "Japonaise").',
        closing="Répondez au format JSON demandé.",
    ),
}


def build_explanation_prompt(
    dish_name: str, language: str, restaurant_name: str | None = None
) -> str:
    template = _TEMPLATES[language]
    parts = [
        template.intro.format(dish=dish_name.strip()),
        template.not_food.format(
            not_food=NOT_FOOD_EXPLANATION[language], sentinel=NOT_APPLICABLE[language]
        ),
        template.tags,
        template.allergens,
        template.cuisine,
    ]
    if restaurant_name:
        parts.append(f'Restaurant context: "{restaurant_name.strip()}".')
    parts.append(template.closing)
    return "\n\n".join(parts)


def is_not_applicable(cuisine: str | None) -> bool:
    if not cuisine:
        return False
    value = cuisine.strip().lower()
    return any(value == sentinel.lower() for sentinel in NOT_APPLICABLE.values())


__all__ = [
    "EXPLANATION_SCHEMA",
    "LANGUAGE_LABELS",
    "NOT_APPLICABLE",
    "NOT_FOOD_EXPLANATION",
    "SYSTEM_PROMPT",
    "build_explanation_prompt",
    "is_not_applicable",
]
