"""Field translation and design-brief preparation ahead of image generation."""
from __future__ import annotations

import asyncio
import json
import logging
import re
import time
from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Any, Awaitable, Dict, FrozenSet, Generic, Mapping, Optional, Sequence, TypeVar

from poster_studio.config import GenAIConfig
from poster_studio.constants import CATEGORY_OPTION_FIELDS, CATEGORY_STYLES, option_table
from poster_studio.schemas import Language, PosterForm
from poster_studio.services.genai_client import GenerationBackend, InlineImage
from poster_studio.services.language import detect_input_language
from poster_studio.services.usage import (
    ROUTE_DESIGN_BRIEF,
    ROUTE_PRE_TRANSLATE,
    GenerationUsage,
    UsageRecorder,
    elapsed_ms,
)

logger = logging.getLogger(__name__)

T = TypeVar("T")

# Business names and phone numbers are proper nouns; dropdowns use lookup tables.
# Prices are included because they often carry a currency word.
TRANSLATABLE_FIELDS: Mapping[str, tuple] = MappingProxyType(
    {
        "restaurant": (
            "meal_name",
            "description",
            "new_price",
            "old_price",
            "offer_duration",
            "coverage_areas",
        ),
        "supermarket": (
            "product_name",
            "headline",
            "new_price",
            "old_price",
            "quantity",
            "offer_limit",
            "offer_duration",
        ),
        "ecommerce": (
            "product_name",
            "headline",
            "features",
            "color_size",
            "new_price",
            "old_price",
            "shipping_duration",
        ),
        "services": (
            "service_name",
            "service_details",
            "price",
            "coverage_area",
            "execution_time",
            "warranty",
            "quick_features",
            "offer_duration",
        ),
        "fashion": (
            "item_name",
            "description",
            "new_price",
            "old_price",
            "available_sizes",
            "available_colors",
            "offer_note",
            "offer_duration",
        ),
        "beauty": (
            "service_name",
            "benefit",
            "new_price",
            "old_price",
            "session_duration",
            "suitable_for",
            "offer_duration",
        ),
    }
)

_FENCE_START_RX = re.compile(r"^```(?:json)?\s*\n?", re.IGNORECASE)
_FENCE_END_RX = re.compile(r"\n?```\s*$")
_DIGIT_RX = re.compile(r"[0-9]")
_EASTERN_DIGITS = str.maketrans("٠١٢٣٤٥٦٧٨٩۰۱۲۳۴۵۶۷۸۹", "01234567890123456789")


@dataclass(frozen=True)
class TranslatedContext:
    form: PosterForm
    source_language: Language
    target_language: Language
    was_translated: bool = False
    translated_fields: FrozenSet[str] = frozenset()
    design_brief: Optional[str] = None
    option_overrides: Mapping[str, str] = field(default_factory=dict)


@dataclass(frozen=True)
class Outcome(Generic[T]):
    value: Optional[T] = None
    error: Optional[BaseException] = None

    @property
    def ok(self) -> bool:
        return self.error is None


async def isolated(awaitable: Awaitable[T]) -> Outcome[T]:
    try:
        return Outcome(value=await awaitable)
    except Exception as exc:  # noqa: BLE001
        return Outcome(error=exc)


@dataclass(frozen=True)
class TranslationResult:
    values: Dict[str, str]
    options: Dict[str, str]
    translated_fields: FrozenSet[str]


def extract_translatable_fields(form: PosterForm) -> Dict[str, str]:
    fields: Dict[str, str] = {}
    for name in TRANSLATABLE_FIELDS.get(form.category, ()):
        value = getattr(form, name, None)
        if isinstance(value, str) and value.strip():
            fields[name] = value
    return fields


def untranslated_option_texts(form: PosterForm, target: Language) -> Dict[str, str]:
    """English display texts of selected dropdowns lacking a ``target`` entry."""

    texts: Dict[str, str] = {}
    for name in CATEGORY_OPTION_FIELDS[form.category]:
        key = getattr(form, name, None)
        if not key:
            continue
        entry = option_table(form.category, name)[key]
        if target.value not in entry:
            texts[name] = entry["en"]
    return texts


def strip_code_fences(text: str) -> str:
    cleaned = text.strip()
    if cleaned.startswith("```"):
        cleaned = _FENCE_END_RX.sub("", _FENCE_START_RX.sub("", cleaned))
    return cleaned.strip()


def build_translation_prompt(
    fields: Mapping[str, str],
    options: Mapping[str, str],
    source: Language,
    target: Language,
) -> str:
    target_name = target.display_name
    lines = [
        "You are a professional translator for marketing posters. "
        f"Translate the following text from {source.display_name} to {target_name}.",
        "",
        "## Accuracy rules",
        "",
        f"1. Use real native {target_name} words. Never transliterate (rewrite a word in another script).",
        "2. For price fields keep the number exactly the same and translate only the currency word. "
        "Convert Arabic-Indic digits (٠١٢٣٤٥٦٧٨٩) to Western digits (0123456789).",
        f"3. For food and product names use the common {target_name} name local customers would recognise.",
        "4. Keep translations concise. They must fit on a marketing poster.",
        f"5. If a value is already in {target_name}, return it unchanged.",
        "6. Do not add or remove information.",
        "",
        "## Fields to translate:",
    ]
    entries = list(fields.items())
    for index, (key, value) in enumerate(entries, start=1):
        lines.append(f'{index}. [{key}]: "{value}"')
    if options:
        lines.append("")
        lines.append("## Interface labels (currently English):")
        offset = len(entries)
        for index, (key, value) in enumerate(options.items(), start=offset + 1):
            lines.append(f'{index}. [{key}]: "{value}"')
    lines.extend(
        [
            "",
            "## Response format",
            "Respond with ONLY a valid JSON object mapping field names to translated values. "
            "No markdown, no code blocks, no explanation.",
            'Example: {"field_one": "translated value", "field_two": "translated value"}',
        ]
    )
    return "\n".join(lines)


def _digits(text: str) -> str:
    """Digits of ``text`` in order, Arabic-Indic and Persian numerals read as Western."""

    return "".join(_DIGIT_RX.findall(text.translate(_EASTERN_DIGITS)))


def parse_translation_response(
    text: str,
    fields: Mapping[str, str],
    options: Mapping[str, str],
) -> TranslationResult:
    """Apply per-field fallback to the service's JSON answer.

    A field keeps its original text when the answer is missing, blank or
    alters the field's digits (prices, quantities, durations).
    Raises ``ValueError`` when the answer is not a JSON object.
    """

    parsed: Any = json.loads(strip_code_fences(text))
    if not isinstance(parsed, dict):
        raise ValueError("translation response is not a JSON object")

    values: Dict[str, str] = {}
    translated = set()
    for key, original in fields.items():
        candidate = parsed.get(key)
        if not isinstance(candidate, str) or not candidate.strip():
            values[key] = original
            continue
        if _digits(candidate) != _digits(original):
            logger.warning(
                "context.translate.number_changed",
                extra={"field": key, "original": original, "translated": candidate},
            )
            values[key] = original
            continue
        values[key] = candidate.strip()
        translated.add(key)

    overrides: Dict[str, str] = {}
    for key in options:
        candidate = parsed.get(key)
        if isinstance(candidate, str) and candidate.strip():
            overrides[key] = candidate.strip()

    return TranslationResult(values=values, options=overrides, translated_fields=frozenset(translated))


async def translate_fields(
    backend: GenerationBackend,
    config: GenAIConfig,
    recorder: UsageRecorder,
    fields: Mapping[str, str],
    options: Mapping[str, str],
    source: Language,
    target: Language,
) -> TranslationResult:
    prompt = build_translation_prompt(fields, options, source, target)
    started = time.perf_counter()
    input_tokens = output_tokens = 0
    try:
        response = await backend.generate_text(
            model=config.translation_model,
            prompt=prompt,
            attempts=config.fallback_attempts,
            use_search=config.translation_search,
        )
        input_tokens, output_tokens = response.input_tokens, response.output_tokens
        result = parse_translation_response(response.text, fields, options)
    except Exception as exc:
        recorder.record(
            GenerationUsage(
                route=ROUTE_PRE_TRANSLATE,
                model=config.translation_model,
                input_tokens=input_tokens,
                output_tokens=output_tokens,
                duration_ms=elapsed_ms(started),
                success=False,
                error=str(exc) or exc.__class__.__name__,
            )
        )
        raise

    recorder.record(
        GenerationUsage(
            route=ROUTE_PRE_TRANSLATE,
            model=config.translation_model,
            input_tokens=input_tokens,
            output_tokens=output_tokens,
            duration_ms=elapsed_ms(started),
        )
    )
    return result


def build_brief_prompt(
    category: str,
    inspirations: int,
    products: int,
    has_logo: bool,
    *,
    label: Optional[str] = None,
    subject: str = "marketing poster",
) -> str:
    label = label or CATEGORY_STYLES[category].label
    order = []
    if inspirations:
        order.append(f"the first {inspirations} image(s) are style references from other designs")
    if products:
        order.append(f"the next {products} image(s) are the business's product photos")
    if has_logo:
        order.append("the last image is the business logo")
    described = "; ".join(order) if order else "no images were provided"
    return (
        f"You are the creative director for a {label} {subject}.\n"
        f"Attached images: {described}.\n\n"
        "Write a design brief of 3 to 5 sentences covering:\n"
        "- composition and layout guidance inspired by the style references,\n"
        "- a short, concrete description of the product as it appears in the photos,\n"
        "- the dominant colours of the logo that the poster palette should echo.\n\n"
        f"Do not propose any headline, slogan, label or other text for the {subject}. "
        "Respond with the brief only, in English, as plain prose."
    )


async def generate_design_brief(
    backend: GenerationBackend,
    config: GenAIConfig,
    recorder: UsageRecorder,
    category: str,
    inspirations: Sequence[InlineImage],
    products: Sequence[InlineImage],
    logo: Optional[InlineImage],
    *,
    label: Optional[str] = None,
    subject: str = "marketing poster",
) -> Optional[str]:
    images = [*inspirations, *products, *([logo] if logo is not None else [])]
    prompt = build_brief_prompt(
        category,
        len(inspirations),
        len(products),
        logo is not None,
        label=label,
        subject=subject,
    )
    started = time.perf_counter()
    try:
        response = await backend.generate_text(
            model=config.brief_model,
            prompt=prompt,
            images=images,
            attempts=config.fallback_attempts,
        )
    except Exception as exc:
        recorder.record(
            GenerationUsage(
                route=ROUTE_DESIGN_BRIEF,
                model=config.brief_model,
                duration_ms=elapsed_ms(started),
                success=False,
                error=str(exc) or exc.__class__.__name__,
            )
        )
        raise

    recorder.record(
        GenerationUsage(
            route=ROUTE_DESIGN_BRIEF,
            model=config.brief_model,
            input_tokens=response.input_tokens,
            output_tokens=response.output_tokens,
            duration_ms=elapsed_ms(started),
        )
    )
    brief = response.text.strip()
    return brief or None


async def prepare_context(
    form: PosterForm,
    target_language: Language,
    backend: GenerationBackend,
    recorder: UsageRecorder,
    config: GenAIConfig,
    *,
    inspirations: Sequence[InlineImage] = (),
    products: Sequence[InlineImage] = (),
    logo: Optional[InlineImage] = None,
) -> TranslatedContext:
    """Translate poster text and draft the design brief concurrently.

    Neither step can fail the pipeline: a failed translation keeps the
    original fields and a failed brief leaves ``design_brief`` empty.
    """

    source_language = detect_input_language(form)
    fields = extract_translatable_fields(form) if source_language != target_language else {}
    options = untranslated_option_texts(form, target_language)

    async def _no_translation() -> None:
        return None

    translation_task = (
        translate_fields(backend, config, recorder, fields, options, source_language, target_language)
        if fields or options
        else _no_translation()
    )
    brief_task = generate_design_brief(
        backend, config, recorder, form.category, inspirations, products, logo
    )

    translation, brief = await asyncio.gather(isolated(translation_task), isolated(brief_task))

    updated_form = form
    was_translated = False
    translated_fields: FrozenSet[str] = frozenset()
    overrides: Dict[str, str] = {}
    if not translation.ok:
        logger.warning(
            "context.translate.failed",
            extra={
                "source": source_language.value,
                "target": target_language.value,
                "fields": sorted(fields),
                "error": str(translation.error),
            },
        )
    elif translation.value is not None:
        result = translation.value
        if result.translated_fields:
            updated_form = form.model_copy(update=result.values)
            was_translated = True
            translated_fields = result.translated_fields
        overrides = result.options
        logger.info(
            "context.translate.ok",
            extra={
                "source": source_language.value,
                "target": target_language.value,
                "translated": sorted(translated_fields),
                "options": sorted(overrides),
            },
        )

    if not brief.ok:
        logger.warning("context.brief.failed", extra={"error": str(brief.error)})

    return TranslatedContext(
        form=updated_form,
        source_language=source_language,
        target_language=target_language,
        was_translated=was_translated,
        translated_fields=translated_fields,
        design_brief=brief.value if brief.ok else None,
        option_overrides=MappingProxyType(overrides),
    )


__all__ = [
    "Outcome",
    "isolated",
    "TRANSLATABLE_FIELDS",
    "TranslatedContext",
    "TranslationResult",
    "build_brief_prompt",
    "build_translation_prompt",
    "extract_translatable_fields",
    "generate_design_brief",
    "parse_translation_response",
    "prepare_context",
    "strip_code_fences",
    "translate_fields",
    "untranslated_option_texts",
]
