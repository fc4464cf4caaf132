"""Curated creative recipes and random selection without replacement."""
from __future__ import annotations

import json
import logging
import random
from dataclasses import dataclass, field
from functools import lru_cache
from pathlib import Path
from types import MappingProxyType
from typing import Any, List, Mapping, Optional, Tuple

logger = logging.getLogger(__name__)

DATA_DIR = Path(__file__).resolve().parent.parent / "data"
RECIPES_PATH = DATA_DIR / "recipes.json"
MENU_RECIPES_PATH = DATA_DIR / "menu_recipes.json"


@dataclass(frozen=True)
class Recipe:
    id: str
    name: str
    category: str
    directive: str
    campaign_modifiers: Mapping[str, str] = field(default_factory=dict)
    # Seasonal recipes are never drawn for standard campaigns.
    seasonal: bool = False


RecipeBook = Mapping[str, Tuple[Recipe, ...]]


def build_recipe_book(raw: Mapping[str, Any]) -> RecipeBook:
    """Freeze a ``{category: [recipe, ...]}`` mapping into immutable pools."""

    pools = {}
    for category, entries in raw.items():
        pools[category] = tuple(
            Recipe(
                id=entry["id"],
                name=entry["name"],
                category=category,
                directive=entry["directive"],
                campaign_modifiers=MappingProxyType(dict(entry.get("campaign_modifiers") or {})),
                seasonal=bool(entry.get("seasonal", False)),
            )
            for entry in entries
        )
    return MappingProxyType(pools)


@lru_cache()
def load_recipe_book(path: Path = RECIPES_PATH) -> RecipeBook:
    with path.open("r", encoding="utf-8") as handle:
        raw = json.load(handle)
    book = build_recipe_book(raw)
    logger.debug(
        "recipes.loaded",
        extra={"path": str(path), "pools": {key: len(value) for key, value in book.items()}},
    )
    return book


def load_menu_recipe_book() -> RecipeBook:
    return load_recipe_book(MENU_RECIPES_PATH)


def select_recipes(
    category: str,
    count: int,
    book: Optional[RecipeBook] = None,
    rng: Optional[random.Random] = None,
    campaign_type: Optional[str] = None,
) -> List[Recipe]:
    """Draw up to ``count`` distinct recipes for ``category``.

    The pool is copied and Fisher-Yates shuffled; the book itself is never
    touched. Categories without recipes yield an empty list. For a
    ``standard`` campaign, seasonal recipes are left out of the pool.
    """

    pool = (book if book is not None else load_recipe_book()).get(category, ())
    if campaign_type == "standard":
        pool = tuple(recipe for recipe in pool if not recipe.seasonal)
    if not pool or count <= 0:
        return []

    rng = rng or random
    shuffled = list(pool)
    for index in range(len(shuffled) - 1, 0, -1):
        swap = rng.randint(0, index)
        shuffled[index], shuffled[swap] = shuffled[swap], shuffled[index]
    return shuffled[: min(count, len(shuffled))]


def format_recipe_for_prompt(recipe: Recipe, campaign_type: str) -> str:
    body = recipe.directive
    modifier = recipe.campaign_modifiers.get(campaign_type)
    if campaign_type != "standard" and modifier:
        body = f"{body}\n\nCampaign twist ({campaign_type}): {modifier}"

    return (
        f'## Creative Brief: "{recipe.name}"\n'
        "Use this brief as your creative starting point. Let the reference images guide "
        "your specific aesthetic choices.\n\n"
        f"{body}\n\n"
        "Interpret freely. The brief describes a concept and mood, not a pixel specification."
    )


def format_menu_recipe_for_prompt(recipe: Recipe, campaign_type: str) -> str:
    text = f'## Design Direction: "{recipe.name}"\n{recipe.directive}'
    modifier = recipe.campaign_modifiers.get(campaign_type)
    if campaign_type != "standard" and modifier:
        text += f"\n\n### Campaign Modifier ({campaign_type}):\n{modifier}"
    return text


__all__ = [
    "MENU_RECIPES_PATH",
    "RECIPES_PATH",
    "Recipe",
    "RecipeBook",
    "build_recipe_book",
    "format_menu_recipe_for_prompt",
    "format_recipe_for_prompt",
    "load_menu_recipe_book",
    "load_recipe_book",
    "select_recipes",
]
