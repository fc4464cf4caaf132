"""End-to-end generation of poster variants and A4 menus."""
from __future__ import annotations

import asyncio
import itertools
import logging
import random
from dataclasses import asdict, dataclass
from typing import Any, Dict, Iterable, List, Literal, Optional, Tuple

from poster_studio.config import Settings, get_settings
from poster_studio.constants import FORMAT_CONFIGS, MENU_FORMAT, MENU_FORMAT_CONFIG
from poster_studio.schemas import MenuForm, PosterForm, parse_brand_kit, parse_form_data, parse_menu_form
from poster_studio.services.context import prepare_context
from poster_studio.services.generation import GenerationError, GenerationOrchestrator
from poster_studio.services.genai_client import GenerationBackend
from poster_studio.services.images import (
    CompressedImage,
    InspirationLibrary,
    PostProcessingError,
    compress_image_from_data_url,
    compress_logo_from_data_url,
    default_inspiration_library,
    default_menu_inspiration_library,
    postprocess_image,
)
from poster_studio.services.language import resolve_poster_language
from poster_studio.services.menu import MenuItemImageError, build_menu_prompt_bundle, prepare_menu_context
from poster_studio.services.prompts import build_prompt_bundle
from poster_studio.services.recipes import (
    Recipe,
    RecipeBook,
    load_menu_recipe_book,
    load_recipe_book,
    select_recipes,
)
from poster_studio.services.usage import ROUTE_MENU, GenerationUsage, UsageListener, UsageRecorder

logger = logging.getLogger(__name__)

FALLBACK_DESIGN_NAME = "AI Poster Design"
FALLBACK_MENU_NAME = "Menu Design"


@dataclass(frozen=True)
class GeneratedDesign:
    name: str
    image_data_url: str
    width: int
    height: int
    format: str
    model: str
    recipe_id: Optional[str] = None


@dataclass(frozen=True)
class PosterOutcome:
    index: int
    status: Literal["complete", "error"]
    design: Optional[GeneratedDesign] = None
    error: Optional[str] = None
    usage: Tuple[GenerationUsage, ...] = ()

    @property
    def ok(self) -> bool:
        return self.status == "complete"

    def to_dict(self) -> Dict[str, Any]:
        return {
            "index": self.index,
            "status": self.status,
            "design": None if self.design is None else asdict(self.design),
            "error": self.error,
        }


@dataclass(frozen=True)
class _PreparedImages:
    products: List[CompressedImage]
    logo: Optional[CompressedImage]
    inspirations: List[CompressedImage]


class ActiveRequestGate:
    """Tracks the newest request per scope so stale results can be dropped.

    Superseded work is not cancelled; its usage is still recorded, the caller
    simply does not apply the result.
    """

    def __init__(self) -> None:
        self._latest: Dict[str, int] = {}
        self._tokens = itertools.count(1)

    def begin(self, scope: str) -> int:
        token = next(self._tokens)
        self._latest[scope] = token
        return token

    def is_current(self, scope: str, token: int) -> bool:
        return self._latest.get(scope) == token

    def finish(self, scope: str, token: int) -> None:
        if self._latest.get(scope) == token:
            del self._latest[scope]


class PosterPipeline:
    def __init__(
        self,
        backend: GenerationBackend,
        settings: Optional[Settings] = None,
        *,
        recipe_book: Optional[RecipeBook] = None,
        inspiration_library: Optional[InspirationLibrary] = None,
        menu_recipe_book: Optional[RecipeBook] = None,
        menu_inspiration_library: Optional[InspirationLibrary] = None,
        rng: Optional[random.Random] = None,
    ) -> None:
        self.backend = backend
        self.settings = settings or get_settings()
        self._recipe_book = recipe_book
        self._inspiration_library = inspiration_library
        self._menu_recipe_book = menu_recipe_book
        self._menu_inspiration_library = menu_inspiration_library
        self.rng = rng or random.Random()

    @property
    def recipe_book(self) -> RecipeBook:
        if self._recipe_book is None:
            self._recipe_book = load_recipe_book()
        return self._recipe_book

    @property
    def inspiration_library(self) -> InspirationLibrary:
        if self._inspiration_library is None:
            self._inspiration_library = default_inspiration_library()
        return self._inspiration_library

    @property
    def menu_recipe_book(self) -> RecipeBook:
        if self._menu_recipe_book is None:
            self._menu_recipe_book = load_menu_recipe_book()
        return self._menu_recipe_book

    @property
    def menu_inspiration_library(self) -> InspirationLibrary:
        if self._menu_inspiration_library is None:
            self._menu_inspiration_library = default_menu_inspiration_library()
        return self._menu_inspiration_library

    async def _prepare_images(self, form: PosterForm) -> _PreparedImages:
        count = self.settings.images.inspiration_count
        product_jobs = [
            asyncio.to_thread(compress_image_from_data_url, url) for url in form.product_image_urls()
        ]
        results = await asyncio.gather(
            asyncio.to_thread(compress_logo_from_data_url, form.logo),
            asyncio.to_thread(self.inspiration_library.pick, form.category, count, self.rng),
            *product_jobs,
        )
        logo, inspirations, *products = results
        compressed = [image for image in products if image is not None]
        if len(compressed) != len(products):
            logger.warning(
                "pipeline.images.dropped",
                extra={"category": form.category, "dropped": len(products) - len(compressed)},
            )
        if logo is None:
            logger.warning("pipeline.logo.unreadable", extra={"category": form.category})
        return _PreparedImages(products=compressed, logo=logo, inspirations=list(inspirations))

    async def generate(
        self,
        form: Any,
        *,
        brand_kit: Any = None,
        index: int = 0,
        listeners: Iterable[UsageListener] = (),
    ) -> PosterOutcome:
        """Generate one poster variant.

        Invalid input raises ``FormValidationError`` before any external call.
        Generation failures come back as an ``error`` outcome carrying every
        usage record of this invocation.
        """

        form = parse_form_data(form)
        brand_kit = parse_brand_kit(brand_kit)
        recorder = UsageRecorder(list(listeners))

        recipes = select_recipes(form.category, 1, book=self.recipe_book, rng=self.rng)
        recipe: Optional[Recipe] = recipes[0] if recipes else None
        target = resolve_poster_language(form)
        fmt = FORMAT_CONFIGS[form.format]
        logger.info(
            "pipeline.start",
            extra={
                "index": index,
                "category": form.category,
                "format": form.format,
                "campaign": form.campaign_type,
                "language": target.value,
                "recipe": recipe.id if recipe else None,
            },
        )

        try:
            images = await self._prepare_images(form)
            context = await prepare_context(
                form,
                target,
                self.backend,
                recorder,
                self.settings.genai,
                inspirations=images.inspirations,
                products=images.products,
                logo=images.logo,
            )
            bundle = build_prompt_bundle(
                context,
                recipe,
                brand_kit,
                inspirations=images.inspirations,
                products=images.products,
                logo=images.logo,
            )
            run = await GenerationOrchestrator(self.backend, self.settings.genai, recorder).run(
                bundle, fmt.aspect_ratio
            )
            processed = await asyncio.to_thread(
                postprocess_image,
                run.image,
                fmt.width,
                fmt.height,
                self.settings.images.output_quality,
            )
        except (GenerationError, PostProcessingError) as exc:
            logger.error(
                "pipeline.failed",
                extra={"index": index, "category": form.category, "error": str(exc)},
            )
            return PosterOutcome(index=index, status="error", error=str(exc), usage=recorder.records)

        design = GeneratedDesign(
            name=recipe.name if recipe else FALLBACK_DESIGN_NAME,
            image_data_url=processed.data_url,
            width=processed.width,
            height=processed.height,
            format=form.format,
            model=run.model,
            recipe_id=recipe.id if recipe else None,
        )
        logger.info(
            "pipeline.complete",
            extra={"index": index, "model": run.model, "fallback": run.fallback_used},
        )
        return PosterOutcome(index=index, status="complete", design=design, usage=recorder.records)

    async def generate_batch(
        self,
        form: Any,
        count: int,
        *,
        brand_kit: Any = None,
        listeners: Iterable[UsageListener] = (),
    ) -> List[PosterOutcome]:
        """Run ``count`` independent variants concurrently, ordered by index."""

        form = parse_form_data(form)
        brand_kit = parse_brand_kit(brand_kit)
        listeners = list(listeners)
        if count <= 0:
            return []

        results = await asyncio.gather(
            *(
                self.generate(form, brand_kit=brand_kit, index=index, listeners=listeners)
                for index in range(count)
            ),
            return_exceptions=True,
        )

        outcomes: List[PosterOutcome] = []
        for index, result in enumerate(results):
            if isinstance(result, PosterOutcome):
                outcomes.append(result)
                continue
            if not isinstance(result, Exception):
                raise result
            logger.error(
                "pipeline.variant.crashed",
                exc_info=(type(result), result, result.__traceback__),
                extra={"index": index},
            )
            usage = getattr(result, "usage", ())
            outcomes.append(
                PosterOutcome(
                    index=index,
                    status="error",
                    error=str(result) or type(result).__name__,
                    usage=tuple(usage),
                )
            )
        return sorted(outcomes, key=lambda outcome: outcome.index)

    async def _prepare_menu_images(self, menu: MenuForm) -> _PreparedImages:
        count = self.settings.images.menu_inspiration_count
        item_jobs = [asyncio.to_thread(compress_image_from_data_url, url) for url in menu.item_image_urls()]
        logo, inspirations, *items = await asyncio.gather(
            asyncio.to_thread(compress_logo_from_data_url, menu.logo),
            asyncio.to_thread(self.menu_inspiration_library.pick, menu.menu_category, count, self.rng),
            *item_jobs,
        )
        unreadable = [number for number, image in enumerate(items, start=1) if image is None]
        if unreadable:
            raise MenuItemImageError(
                "item photo could not be decoded: " + ", ".join(f"item {number}" for number in unreadable)
            )
        if logo is None:
            logger.warning("pipeline.menu.logo.unreadable", extra={"category": menu.menu_category})
        return _PreparedImages(products=list(items), logo=logo, inspirations=list(inspirations))

    async def generate_menu(
        self,
        menu: Any,
        *,
        brand_kit: Any = None,
        listeners: Iterable[UsageListener] = (),
    ) -> PosterOutcome:
        """Generate one A4 menu or catalog page showing every item exactly once.

        Invalid input raises ``FormValidationError``. An unreadable item photo
        fails the menu before any model call.
        """

        menu = parse_menu_form(menu)
        brand_kit = parse_brand_kit(brand_kit)
        recorder = UsageRecorder(list(listeners))

        recipes = select_recipes(
            menu.menu_category,
            1,
            book=self.menu_recipe_book,
            rng=self.rng,
            campaign_type=menu.campaign_type,
        )
        recipe: Optional[Recipe] = recipes[0] if recipes else None
        fmt = MENU_FORMAT_CONFIG
        logger.info(
            "pipeline.menu.start",
            extra={
                "category": menu.menu_category,
                "items": len(menu.items),
                "campaign": menu.campaign_type,
                "recipe": recipe.id if recipe else None,
            },
        )

        try:
            images = await self._prepare_menu_images(menu)
            context = await prepare_menu_context(
                menu,
                self.backend,
                recorder,
                self.settings.genai,
                inspirations=images.inspirations,
                items=images.products,
                logo=images.logo,
            )
            bundle = build_menu_prompt_bundle(
                context,
                recipe,
                brand_kit,
                inspirations=images.inspirations,
                items=images.products,
                logo=images.logo,
            )
            orchestrator = GenerationOrchestrator(
                self.backend, self.settings.genai, recorder, route=ROUTE_MENU
            )
            run = await orchestrator.run(bundle, fmt.aspect_ratio)
            processed = await asyncio.to_thread(
                postprocess_image,
                run.image,
                fmt.width,
                fmt.height,
                self.settings.images.output_quality,
            )
        except (GenerationError, PostProcessingError, MenuItemImageError) as exc:
            logger.error(
                "pipeline.menu.failed",
                extra={"category": menu.menu_category, "error": str(exc)},
            )
            return PosterOutcome(index=0, status="error", error=str(exc), usage=recorder.records)

        design = GeneratedDesign(
            name=recipe.name if recipe else FALLBACK_MENU_NAME,
            image_data_url=processed.data_url,
            width=processed.width,
            height=processed.height,
            format=MENU_FORMAT,
            model=run.model,
            recipe_id=recipe.id if recipe else None,
        )
        logger.info(
            "pipeline.menu.complete",
            extra={"model": run.model, "fallback": run.fallback_used, "language": context.language.value},
        )
        return PosterOutcome(index=0, status="complete", design=design, usage=recorder.records)


__all__ = [
    "ActiveRequestGate",
    "FALLBACK_DESIGN_NAME",
    "FALLBACK_MENU_NAME",
    "GeneratedDesign",
    "PosterOutcome",
    "PosterPipeline",
]
