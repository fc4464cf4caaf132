"""Context and prompt assembly for multi-item menus and product catalogs.

A menu is rendered in the language its author typed, so there is no
translation step: only the design brief runs ahead of generation. Every item
is listed once in the text inventory and once in the image annotations, and
the prompt pins the item count so the model cannot pad or drop cells.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import List, Optional, Sequence, Tuple

from poster_studio.config import GenAIConfig
from poster_studio.constants import (
    CAMPAIGN_GUIDANCE,
    MENU_CATEGORY_STYLES,
    MENU_FORMAT_CONFIG,
    STANDARD_CAMPAIGN_RULES,
)
from poster_studio.schemas import BrandKit, Language, MenuForm
from poster_studio.services.context import generate_design_brief, isolated
from poster_studio.services.genai_client import GenerationBackend, InlineImage
from poster_studio.services.language import detect_menu_language
from poster_studio.services.prompts import (
    ROLE_INSPIRATION,
    ROLE_LOGO,
    ROLE_PRODUCT,
    ImagePart,
    InventoryLine,
    PromptBundle,
    palette_rules,
)
from poster_studio.services.recipes import Recipe, format_menu_recipe_for_prompt
from poster_studio.services.usage import UsageRecorder

logger = logging.getLogger(__name__)

BRIEF_SUBJECT = "menu flyer"


class MenuItemImageError(ValueError):
    """An item photo is unusable, so the menu cannot show every item."""


@dataclass(frozen=True)
class MenuContext:
    menu: MenuForm
    language: Language
    design_brief: Optional[str] = None


def grid_layout_guidance(count: int) -> str:
    if count <= 3:
        return f"  - Use a single row of {count} columns (1x{count} grid), one cell per item."
    if count == 4:
        return "  - Use a 2x2 grid (2 rows, 2 columns)."
    if count == 5:
        return "  - Use a 3+2 layout (3 cells on the top row, 2 on the bottom row)."
    if count == 6:
        return "  - Use a 2x3 or 3x2 grid."
    if count == 7:
        return "  - Use a 3+4 or 3+2+2 layout."
    if count == 8:
        return "  - Use a 2x4 grid or a 3+3+2 layout."
    return "  - Use a 3x3 grid (3 rows, 3 columns)."


def build_menu_inventory(menu: MenuForm) -> Tuple[InventoryLine, ...]:
    lines = [InventoryLine(field="business_name", role="business_name", text=menu.business_name, verbatim=True)]
    for number, item in enumerate(menu.items, start=1):
        prefix = f"items.{number - 1}"
        lines.append(InventoryLine(f"{prefix}.name", f"item_{number}_name", item.name, True))
        lines.append(InventoryLine(f"{prefix}.price", f"item_{number}_price", item.price, True))
        if item.old_price:
            lines.append(InventoryLine(f"{prefix}.old_price", f"item_{number}_old_price", item.old_price, True))
    lines.append(InventoryLine(field="whatsapp", role="whatsapp", text=menu.whatsapp, verbatim=True))
    if menu.address:
        lines.append(InventoryLine(field="address", role="address", text=menu.address, verbatim=True))
    return tuple(lines)


def build_menu_system_prompt(
    menu: MenuForm, language: Language, brand_kit: Optional[BrandKit] = None
) -> str:
    fmt = MENU_FORMAT_CONFIG
    style = MENU_CATEGORY_STYLES[menu.menu_category]
    count = len(menu.items)

    if menu.campaign_type == "standard":
        campaign = STANDARD_CAMPAIGN_RULES
    else:
        campaign = (
            f"{CAMPAIGN_GUIDANCE[menu.campaign_type]}\n"
            "Keep the seasonal motifs subtle so every item stays readable."
        )

    contact = "WhatsApp number and address" if menu.address else "WhatsApp number"
    if menu.has_old_prices:
        pricing = (
            "- Show an old price crossed out ONLY next to the items that have one in the inventory."
        )
    else:
        pricing = (
            "- No item has an old price: style every price as a regular price, "
            "with no discount formatting or percentages."
        )

    sections = [
        "You are an expert graphic designer creating a professional A4 menu / catalog flyer.",
        (
            "Generate a SINGLE high-quality A4 portrait menu IMAGE, "
            f"{fmt.width}x{fmt.height} pixels, aspect ratio {fmt.aspect_ratio}."
        ),
        (
            "## Multi-item menu (NOT a single-product poster)\n"
            f"- You receive {count} item photos, each with a name and a price.\n"
            f"- Display ALL {count} items. Each shows its photo, its name and its price.\n"
            "- Top: business name and logo.\n"
            f"- Main: the {count} items in an organized grid.\n"
            f"{grid_layout_guidance(count)}\n"
            "  - Items have equal visual weight. No item dominates the others.\n"
            f"- Bottom: {contact}. No invented call-to-action text."
        ),
        (
            f"## Item count: EXACTLY {count}\n"
            f"- The design contains EXACTLY {count} product cells, no more and no fewer.\n"
            "- NEVER duplicate an item to fill empty grid space.\n"
            "- NEVER invent products that were not provided.\n"
            f"- If the grid would leave an empty cell, shrink the grid to fit {count} items."
        ),
        (
            "## Product and logo\n"
            "- Place each item photo exactly as provided. Do not redraw, restyle or reinterpret it.\n"
            "- Do not add objects, ingredients or decorations that are not in the photos.\n"
            "- The logo appears EXACTLY ONCE, unmodified, never recolored, cropped or redrawn."
        ),
        f"## Category style: {style.label}\n{style.aesthetic}",
        f"## Campaign\n{campaign}",
        palette_rules(style.palette, brand_kit),
        (
            "## Language\n"
            f"- Every piece of text on the menu is in {language.display_name}, as the author typed it.\n"
            "- Do not mix languages.\n"
            f"- Text direction: {language.direction.upper()}."
        ),
        (
            "## Text fidelity (STRICT)\n"
            "- You are a LAYOUT ENGINE, not a copywriter. Place ONLY the strings listed in the "
            "EXACT TEXT INVENTORY of the user message.\n"
            '- No headlines or titles such as "Our Menu" or "Weekly Offers".\n'
            "- No promotional text, taglines, slogans, hashtags or call-to-action phrases.\n"
            f"{pricing}"
        ),
        (
            "## Design requirements\n"
            "- Fill the entire A4 page with no large empty areas.\n"
            "- Prices are LARGE, bold and easy to read.\n"
            "- Hierarchy: business name, item photos, prices, item names, contact.\n"
            "- Limit the palette to 3-4 colors plus white and black.\n"
            "- Separate items clearly with cards, borders or spacing."
        ),
        (
            "## Reference images\n"
            "Reference menus are STYLE ONLY: take layout quality, spacing and color mood from them. "
            "Never copy their products, item count, names, prices, logos or text, and never reuse "
            f"their grid unless it naturally holds exactly {count} items."
        ),
    ]
    return "\n\n".join(sections)


def _menu_image_annotations(
    menu: MenuForm, inspirations: int, items: int, has_logo: bool
) -> str:
    lines = ["## Attached images"]
    position = 1
    if inspirations:
        end = position + inspirations - 1
        span = f"Image {position}" if inspirations == 1 else f"Images {position}-{end}"
        lines.append(f"- {span}: reference menus (STYLE ONLY).")
        if menu.campaign_type == "standard":
            lines.append("  Ignore any seasonal or religious motifs that appear in the references.")
        position = end + 1
    if items:
        lines.append(f"- The next {items} images are the item photos, in list order:")
        for item in menu.items[:items]:
            lines.append(f'  - Image {position}: "{item.name}", Price: {item.price}')
            position += 1
        lines.append(
            f"  You MUST render EXACTLY {items} menu items (no more, no less), "
            "and each listed item must appear exactly once."
        )
    if has_logo:
        lines.append(f"- Image {position}: business logo. Place it once, unmodified.")
    if len(lines) == 1:
        lines.append("- No images attached.")
    return "\n".join(lines)


def build_menu_user_prompt(
    context: MenuContext,
    inventory: Sequence[InventoryLine],
    recipe: Optional[Recipe] = None,
    *,
    inspirations: int = 0,
    items: int = 0,
    has_logo: bool = True,
) -> str:
    menu = context.menu
    count = len(menu.items)
    style = MENU_CATEGORY_STYLES[menu.menu_category]

    sections = [_menu_image_annotations(menu, inspirations, items, has_logo)]
    if context.design_brief:
        sections.append(f"## Creative Director's Brief\n{context.design_brief}")
    if recipe is not None:
        sections.append(format_menu_recipe_for_prompt(recipe, menu.campaign_type))

    sections.append(
        "## Business context (for understanding only, do NOT render)\n"
        f"- Type: {style.label}\n"
        f"- Campaign type: {menu.campaign_type}\n"
        f"- Items: {count}"
    )

    header = [
        "## EXACT TEXT INVENTORY",
        "These are the ONLY strings allowed on the menu. Render each one exactly as written.",
    ]
    if menu.has_old_prices:
        header.append("Old prices are shown crossed out next to the matching item's price.")
    numbered = [
        f'{index}. [{line.role}] "{line.text}": {line.instruction(context.language)}'
        for index, line in enumerate(inventory, start=1)
    ]
    sections.append("\n".join(header + numbered))
    sections.append(
        "Make this menu professional and visually striking, "
        f"and keep ALL {count} items clearly visible with their prices."
    )
    return "\n\n".join(sections)


def build_menu_prompt_bundle(
    context: MenuContext,
    recipe: Optional[Recipe] = None,
    brand_kit: Optional[BrandKit] = None,
    *,
    inspirations: Sequence[InlineImage] = (),
    items: Sequence[InlineImage] = (),
    logo: Optional[InlineImage] = None,
) -> PromptBundle:
    """Bundle the menu prompts with images in role order.

    Raises ``MenuItemImageError`` unless there is exactly one photo per item.
    """

    expected = len(context.menu.items)
    if len(items) != expected:
        raise MenuItemImageError(f"menu needs {expected} item photos, got {len(items)}")

    inventory = build_menu_inventory(context.menu)
    parts: List[ImagePart] = [
        ImagePart(ROLE_INSPIRATION, image.data, image.media_type) for image in inspirations
    ]
    parts.extend(ImagePart(ROLE_PRODUCT, image.data, image.media_type) for image in items)
    if logo is not None:
        parts.append(ImagePart(ROLE_LOGO, logo.data, logo.media_type))

    return PromptBundle(
        system_prompt=build_menu_system_prompt(context.menu, context.language, brand_kit),
        user_prompt=build_menu_user_prompt(
            context,
            inventory,
            recipe,
            inspirations=len(inspirations),
            items=len(items),
            has_logo=logo is not None,
        ),
        inventory=inventory,
        image_parts=tuple(parts),
    )


async def prepare_menu_context(
    menu: MenuForm,
    backend: GenerationBackend,
    recorder: UsageRecorder,
    config: GenAIConfig,
    *,
    inspirations: Sequence[InlineImage] = (),
    items: Sequence[InlineImage] = (),
    logo: Optional[InlineImage] = None,
) -> MenuContext:
    """Detect the menu language and draft the design brief; a failed brief is dropped."""

    language = detect_menu_language(menu)
    style = MENU_CATEGORY_STYLES[menu.menu_category]
    brief = await isolated(
        generate_design_brief(
            backend,
            config,
            recorder,
            menu.menu_category,
            inspirations,
            items,
            logo,
            label=style.label,
            subject=BRIEF_SUBJECT,
        )
    )
    if not brief.ok:
        logger.warning("menu.brief.failed", extra={"error": str(brief.error)})
    return MenuContext(menu=menu, language=language, design_brief=brief.value if brief.ok else None)


__all__ = [
    "MenuContext",
    "MenuItemImageError",
    "build_menu_inventory",
    "build_menu_prompt_bundle",
    "build_menu_system_prompt",
    "build_menu_user_prompt",
    "grid_layout_guidance",
    "prepare_menu_context",
]
