"""Heuristic guess of the language a menu item was written in.

The result is stored as ``menu_language`` metadata on corpus rows. It never takes part in
matching: only the display language the user picked does.
"""

from __future__ import annotations

import re

from .normalize import normalize

DEFAULT_MENU_LANGUAGE = "en"

# Script blocks are unambiguous, so they are tried first.
_SCRIPT_RULES: tuple[tuple[str, re.Pattern[str]], ...] = (
    ("zh", re.compile(r"[\u4e00-\u9fff]")),
    ("ja", re.compile(r"[\u3040-\u309f\u30a0-\u30ff]")),
    ("ko", re.compile(r"[\uac00-\ud7af]")),
    ("ar", re.compile(r"[\u0600-\u06ff\u0750-\u077f]")),
    ("he", re.compile(r"[\u0590-\u05ff]")),
    ("ru", re.compile(r"[\u0400-\u04ff]")),
    ("hi", re.compile(r"[\u0900-\u097f]")),
    ("th", re.compile(r"[\u0e00-\u0e7f]")),
    ("el", re.compile(r"[\u0370-\u03ff]")),
)


def _words(*tokens: str) -> re.Pattern[str]:
    return re.compile(r"\b(?:" + "|".join(tokens) + r")\b", re.IGNORECASE)


def _chars(chars: str) -> re.Pattern[str]:
    return re.compile(f"[{chars}]", re.IGNORECASE)


# Latin-script languages: diacritics OR a stop word. Order matters; first hit wins.
_LATIN_RULES: tuple[tuple[str, re.Pattern[str] | None, re.Pattern[str] | None], ...] = (
    (
        "fr",
        _chars("àáâãäåæçèéêëìíîïðñòóôõöøùúûüýþÿ"),
        _words("du", "de", "la", "le", "les", "au", "aux", "avec", "sur", "dans", "pour", "et",
               "à", "chez", "sous"),
    ),
    (
        "es",
        _chars("ñáéíóúü"),
        _words("con", "del", "de", "la", "el", "los", "las", "y", "en", "al", "por", "para",
               "desde", "hasta"),
    ),
    (
        "pt",
        _chars("ãõç"),
        _words("com", "do", "da", "dos", "das", "no", "na", "nos", "nas", "para", "por", "em"),
    ),
    (
        "it",
        None,
        _words("alla", "con", "di", "al", "del", "della", "dello", "degli", "delle", "nel",
               "nella", "sui", "sulle"),
    ),
    (
        "de",
        _chars("äöüß"),
        _words("mit", "und", "der", "die", "das", "von", "zu", "im", "am", "auf", "für", "bei",
               "über"),
    ),
    (
        "nl",
        None,
        _words("met", "van", "de", "het", "een", "in", "op", "aan", "voor", "bij", "door"),
    ),
    (
        "sv",
        _chars("åøæ"),
        _words("med", "och", "på", "av", "för", "till", "från", "eller", "som"),
    ),
    (
        "pl",
        _chars("ąćęłńóśźż"),
        _words("z", "w", "na", "do", "od", "dla", "przez", "przy", "pod"),
    ),
    (
        "tr",
        _chars("çğıöşü"),
        _words("ile", "ve", "bu", "bir", "için", "gibi", "kadar"),
    ),
    (
        "vi",
        _chars(
            "àáạảãâầấậẩẫăằắặẳẵèéẹẻẽêềếệểễìíịỉĩòóọỏõôồốộổỗơờớợởỡùúụủũưừứựửữỳýỵỷỹđ"
        ),
        None,
    ),
)


def detect_menu_language(text: str) -> str:
    sample = normalize(text)
    if not sample:
        return DEFAULT_MENU_LANGUAGE

    for code, pattern in _SCRIPT_RULES:
        if pattern.search(sample):
            return code

    for code, chars, stop_words in _LATIN_RULES:
        if chars is not None and chars.search(sample):
            return code
        if stop_words is not None and stop_words.search(sample):
            return code

    return DEFAULT_MENU_LANGUAGE


__all__ = ["DEFAULT_MENU_LANGUAGE", "detect_menu_language"]
