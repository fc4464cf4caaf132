"""Script-based language detection for poster input."""
from __future__ import annotations

import re
from typing import Iterable, List

from poster_studio.schemas import DEFAULT_LANGUAGE, Language, MenuForm, PosterForm

_URL_RX = re.compile(r"https?://\S+")
_DIGIT_RX = re.compile(r"[0-9\u0660-\u0669]")
_PUNCT_RX = re.compile(r"[_\-./\\|()\[\]{}<>:;,+*=~`!@#$%^&?\"']")
_SPACE_RX = re.compile(r"\s+")

_ARABIC_RX = re.compile(r"[\u0600-\u06FF]")
_HEBREW_RX = re.compile(r"[\u0590-\u05FF]")
_LATIN_RX = re.compile(r"[A-Za-z]")

# User-typed fields only. Dropdown values follow the UI locale, not the author.
FREE_TEXT_FIELDS = {
    "restaurant": ("restaurant_name", "meal_name", "description", "coverage_areas", "offer_duration"),
    "supermarket": (
        "supermarket_name",
        "product_name",
        "quantity",
        "offer_limit",
        "offer_duration",
    ),
    "ecommerce": (
        "shop_name",
        "product_name",
        "features",
        "color_size",
        "shipping_duration",
    ),
    "services": (
        "business_name",
        "service_name",
        "service_details",
        "coverage_area",
        "quick_features",
        "offer_duration",
    ),
    "fashion": (
        "brand_name",
        "item_name",
        "description",
        "available_sizes",
        "available_colors",
        "offer_note",
        "offer_duration",
    ),
    "beauty": ("salon_name", "service_name", "benefit", "suitable_for", "offer_duration"),
}


def strip_noise(text: str) -> str:
    text = _URL_RX.sub(" ", text)
    text = _DIGIT_RX.sub(" ", text)
    text = _PUNCT_RX.sub(" ", text)
    return _SPACE_RX.sub(" ", text).strip()


def free_text_signals(form: PosterForm) -> List[str]:
    values = []
    for field in FREE_TEXT_FIELDS[form.category]:
        value = getattr(form, field, None)
        if value:
            values.append(value)
    return values


def detect_script_language(texts: Iterable[str]) -> Language:
    """Return the language whose script has the strictly highest letter count.

    Ties and inputs without any Arabic, Hebrew or Latin letters resolve to
    English.
    """

    text = strip_noise(" ".join(texts))
    if not text:
        return DEFAULT_LANGUAGE

    counts = {
        Language.AR: len(_ARABIC_RX.findall(text)),
        Language.HE: len(_HEBREW_RX.findall(text)),
        Language.EN: len(_LATIN_RX.findall(text)),
    }
    best = max(counts.values())
    if best == 0:
        return DEFAULT_LANGUAGE
    leaders = [language for language, count in counts.items() if count == best]
    if len(leaders) > 1:
        return DEFAULT_LANGUAGE
    return leaders[0]


def detect_input_language(form: PosterForm) -> Language:
    """Language the author typed in, ignoring any explicit poster language."""

    return detect_script_language(free_text_signals(form))


def menu_text_signals(menu: MenuForm) -> List[str]:
    values = [menu.business_name]
    if menu.address:
        values.append(menu.address)
    values.extend(item.name for item in menu.items)
    return values


def detect_menu_language(menu: MenuForm) -> Language:
    """Menus are rendered in the language their author typed."""

    return detect_script_language(menu_text_signals(menu))


def resolve_poster_language(form: PosterForm) -> Language:
    """Language the poster is rendered in."""

    if form.poster_language is not None:
        return Language(form.poster_language)
    return detect_input_language(form)


__all__ = [
    "FREE_TEXT_FIELDS",
    "detect_input_language",
    "detect_menu_language",
    "detect_script_language",
    "free_text_signals",
    "menu_text_signals",
    "resolve_poster_language",
    "strip_noise",
]
