"""Assemble the system prompt, user prompt and image parts for poster generation."""
from __future__ import annotations

from dataclasses import dataclass
from typing import List, Mapping, Optional, Sequence, Tuple

from poster_studio.constants import (
    CAMPAIGN_GUIDANCE,
    CATEGORY_OPTION_FIELDS,
    CATEGORY_STYLES,
    FORMAT_CONFIGS,
    STANDARD_CAMPAIGN_RULES,
    option_table,
)
from poster_studio.schemas import BrandKit, Language
from poster_studio.services.context import TranslatedContext
from poster_studio.services.genai_client import InlineImage
from poster_studio.services.recipes import Recipe, format_recipe_for_prompt

ROLE_INSPIRATION = "inspiration"
ROLE_PRODUCT = "product"
ROLE_LOGO = "logo"

RENDER_VERBATIM = "render exactly as written"

# Free-text fields printed on the poster, in inventory order, with their role tag.
POSTER_TEXT_FIELDS: Mapping[str, Tuple[Tuple[str, str], ...]] = {
    "restaurant": (
        ("restaurant_name", "business_name"),
        ("meal_name", "product_name"),
        ("description", "description"),
        ("new_price", "new_price"),
        ("old_price", "old_price"),
        ("offer_duration", "offer_duration"),
        ("coverage_areas", "coverage"),
    ),
    "supermarket": (
        ("supermarket_name", "business_name"),
        ("headline", "headline"),
        ("product_name", "product_name"),
        ("quantity", "quantity"),
        ("new_price", "new_price"),
        ("old_price", "old_price"),
        ("offer_limit", "offer_limit"),
        ("offer_duration", "offer_duration"),
    ),
    "ecommerce": (
        ("shop_name", "business_name"),
        ("headline", "headline"),
        ("product_name", "product_name"),
        ("features", "features"),
        ("color_size", "color_size"),
        ("new_price", "new_price"),
        ("old_price", "old_price"),
        ("shipping_duration", "shipping_duration"),
    ),
    "services": (
        ("business_name", "business_name"),
        ("service_name", "product_name"),
        ("service_details", "details"),
        ("quick_features", "features"),
        ("price", "price"),
        ("coverage_area", "coverage"),
        ("execution_time", "execution_time"),
        ("warranty", "warranty"),
        ("offer_duration", "offer_duration"),
    ),
    "fashion": (
        ("brand_name", "business_name"),
        ("item_name", "product_name"),
        ("description", "description"),
        ("new_price", "new_price"),
        ("old_price", "old_price"),
        ("available_sizes", "sizes"),
        ("available_colors", "colors"),
        ("offer_note", "offer_note"),
        ("offer_duration", "offer_duration"),
    ),
    "beauty": (
        ("salon_name", "business_name"),
        ("service_name", "product_name"),
        ("benefit", "benefit"),
        ("new_price", "new_price"),
        ("old_price", "old_price"),
        ("session_duration", "session_duration"),
        ("suitable_for", "suitable_for"),
        ("offer_duration", "offer_duration"),
    ),
}

# Proper nouns and phone numbers are never translated.
_ALWAYS_VERBATIM = {"business_name", "whatsapp"}


@dataclass(frozen=True)
class InventoryLine:
    field: str
    role: str
    text: str
    verbatim: bool

    def instruction(self, target: Language) -> str:
        if self.verbatim:
            return RENDER_VERBATIM
        return f"translate to {target.display_name} before rendering"


@dataclass(frozen=True)
class ImagePart:
    role: str
    data: bytes
    media_type: str


@dataclass(frozen=True)
class PromptBundle:
    system_prompt: str
    user_prompt: str
    inventory: Tuple[InventoryLine, ...]
    image_parts: Tuple[ImagePart, ...]

    def content_parts(self) -> List[object]:
        """Image parts in role order followed by the user prompt."""

        return [*self.image_parts, self.user_prompt]


def resolve_option(
    table_entry: Mapping[str, str],
    language: Language,
    override: Optional[str] = None,
) -> str:
    """Display text for a dropdown value.

    A non-blank AI override wins, then the static entry for ``language``,
    then English.
    """

    if override and override.strip():
        return override.strip()
    return table_entry.get(language.value) or table_entry["en"]


def build_inventory(context: TranslatedContext) -> Tuple[InventoryLine, ...]:
    form = context.form
    target = context.target_language
    same_language = context.source_language == target

    lines: List[InventoryLine] = []
    for field, role in POSTER_TEXT_FIELDS[form.category]:
        value = getattr(form, field, None)
        if not isinstance(value, str) or not value.strip():
            continue
        verbatim = role in _ALWAYS_VERBATIM or same_language or field in context.translated_fields
        lines.append(InventoryLine(field=field, role=role, text=value.strip(), verbatim=verbatim))

    lines.append(InventoryLine(field="whatsapp", role="whatsapp", text=form.whatsapp.strip(), verbatim=True))

    for field in CATEGORY_OPTION_FIELDS[form.category]:
        key = getattr(form, field, None)
        if not key:
            continue
        entry = option_table(form.category, field)[key]
        override = context.option_overrides.get(field)
        text = resolve_option(entry, target, override)
        verbatim = bool(override and override.strip()) or target.value in entry
        lines.append(InventoryLine(field=field, role=field, text=text, verbatim=verbatim))

    return tuple(lines)


def palette_rules(default_palette: str, brand_kit: Optional[BrandKit]) -> str:
    """Brand kit colors when given, otherwise logo-derived colors with ``default_palette`` as a fallback."""

    colors = brand_kit.palette.colors() if brand_kit and brand_kit.palette else {}
    if colors:
        lines = ["## Color palette (brand kit, MUST follow)"]
        lines.extend(f"- {name.capitalize()}: {value}" for name, value in colors.items())
        lines.append("Brand colors override any category or reference-image palette.")
    else:
        lines = [
            "## Color palette",
            "Derive the palette from the colors of the provided logo so the design feels on-brand.",
            f"Only if the logo offers no usable colors, fall back to: {default_palette}.",
        ]
    if brand_kit is not None:
        if brand_kit.style_adjectives:
            lines.append(f"- Style: {', '.join(brand_kit.style_adjectives)}")
        if brand_kit.do_rules:
            lines.append(f"- DO: {'; '.join(brand_kit.do_rules)}")
        if brand_kit.dont_rules:
            lines.append(f"- DON'T: {'; '.join(brand_kit.dont_rules)}")
    return "\n".join(lines)


def build_system_prompt(context: TranslatedContext, brand_kit: Optional[BrandKit] = None) -> str:
    form = context.form
    fmt = FORMAT_CONFIGS[form.format]
    style = CATEGORY_STYLES[form.category]
    target = context.target_language

    if form.campaign_type == "standard":
        campaign = STANDARD_CAMPAIGN_RULES
    else:
        campaign = (
            f"{CAMPAIGN_GUIDANCE[form.campaign_type]}\n"
            "These seasonal motifs are REQUIRED, applied with restraint."
        )

    sections = [
        "You are an expert graphic designer creating a professional social media marketing poster.",
        (
            "Generate a SINGLE high-quality poster IMAGE, "
            f"{fmt.width}x{fmt.height} pixels, aspect ratio {fmt.aspect_ratio}."
        ),
        f"## Category style: {style.label}\n{style.aesthetic}",
        f"## Campaign\n{campaign}",
        palette_rules(style.palette, brand_kit),
        (
            "## Language\n"
            f"- Every piece of text on the poster is in {target.display_name}.\n"
            f"- Text direction: {target.direction.upper()}.\n"
            "- Headlines and prices are large and bold with a strong visual hierarchy."
        ),
        (
            "## Text fidelity (STRICT)\n"
            "- Render ONLY the strings listed in the EXACT TEXT INVENTORY of the user message.\n"
            "- Do NOT invent slogans, taglines, labels, badges, watermarks or decorative text.\n"
            "- Do NOT render the business context block or any instruction text.\n"
            "- Spell every inventory string exactly. Never add, drop or reorder characters."
        ),
        (
            "## Product and logo\n"
            "- Place each product photo unmodified. Do not redraw, restyle or duplicate it.\n"
            "- The logo appears EXACTLY ONCE, unmodified, never recolored or redrawn."
        ),
        (
            "## Reference images\n"
            "Reference posters are STYLE ONLY: take layout, mood and typography cues from them. "
            "Never copy their text, products, logos or brand names."
        ),
    ]
    return "\n\n".join(sections)


def _image_annotations(inspirations: int, products: int, has_logo: bool) -> str:
    lines = ["## Attached images"]
    position = 1
    if inspirations:
        end = position + inspirations - 1
        span = f"Image {position}" if inspirations == 1 else f"Images {position}-{end}"
        lines.append(f"- {span}: reference posters (STYLE ONLY).")
        position = end + 1
    if products:
        end = position + products - 1
        span = f"Image {position}" if products == 1 else f"Images {position}-{end}"
        lines.append(f"- {span}: product photo(s). Feature them prominently, unmodified.")
        position = end + 1
    if has_logo:
        lines.append(f"- Image {position}: business logo. Place it once, unmodified.")
    if len(lines) == 1:
        lines.append("- No images attached.")
    return "\n".join(lines)


def build_user_prompt(
    context: TranslatedContext,
    inventory: Sequence[InventoryLine],
    recipe: Optional[Recipe] = None,
    *,
    inspirations: int = 0,
    products: int = 0,
    has_logo: bool = True,
) -> str:
    form = context.form
    target = context.target_language
    style = CATEGORY_STYLES[form.category]

    sections = [_image_annotations(inspirations, products, has_logo)]
    if context.design_brief:
        sections.append(f"## Creative Director's Brief\n{context.design_brief}")
    if recipe is not None:
        sections.append(format_recipe_for_prompt(recipe, form.campaign_type))

    sections.append(
        "## Business context (for understanding only, do NOT render)\n"
        f"- Category: {style.label}\n"
        f"- Campaign type: {form.campaign_type}\n"
        f"- Business: {form.business_label()}\n"
        f"- Featured product: {form.product_label()}"
    )

    header = ["## EXACT TEXT INVENTORY", "These are the ONLY strings allowed on the poster."]
    if context.was_translated:
        header.append(
            f"The strings are already in {target.display_name}. Render EVERY text string EXACTLY "
            "as written. You are the LAYOUT ENGINE, not the translator."
        )
    numbered = [
        f'{index}. [{line.role}] "{line.text}": {line.instruction(target)}'
        for index, line in enumerate(inventory, start=1)
    ]
    sections.append("\n".join(header + numbered))
    return "\n\n".join(sections)


def build_prompt_bundle(
    context: TranslatedContext,
    recipe: Optional[Recipe] = None,
    brand_kit: Optional[BrandKit] = None,
    *,
    inspirations: Sequence[InlineImage] = (),
    products: Sequence[InlineImage] = (),
    logo: Optional[InlineImage] = None,
) -> PromptBundle:
    inventory = build_inventory(context)
    parts = [ImagePart(ROLE_INSPIRATION, image.data, image.media_type) for image in inspirations]
    parts.extend(ImagePart(ROLE_PRODUCT, image.data, image.media_type) for image in products)
    if logo is not None:
        parts.append(ImagePart(ROLE_LOGO, logo.data, logo.media_type))

    return PromptBundle(
        system_prompt=build_system_prompt(context, brand_kit),
        user_prompt=build_user_prompt(
            context,
            inventory,
            recipe,
            inspirations=len(inspirations),
            products=len(products),
            has_logo=logo is not None,
        ),
        inventory=inventory,
        image_parts=tuple(parts),
    )


__all__ = [
    "ImagePart",
    "InventoryLine",
    "POSTER_TEXT_FIELDS",
    "PromptBundle",
    "ROLE_INSPIRATION",
    "ROLE_LOGO",
    "ROLE_PRODUCT",
    "build_inventory",
    "build_prompt_bundle",
    "build_system_prompt",
    "build_user_prompt",
    "palette_rules",
    "resolve_option",
]
