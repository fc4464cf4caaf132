from __future__ import annotations

import base64
import random
from io import BytesIO
from pathlib import Path
from typing import Any, Dict, List

import pytest
from PIL import Image

from poster_studio.config import GenAIConfig, GuardConfig, ImageConfig, Settings
from poster_studio.constants import MENU_INSPIRATION_DIRS
from poster_studio.services.genai_client import ModelResponse
from poster_studio.services.images import InspirationLibrary
from poster_studio.services.pipeline import PosterPipeline
from poster_studio.services.recipes import build_recipe_book


def make_image_bytes(
    color: tuple[int, ...] = (200, 40, 40),
    size: tuple[int, int] = (64, 64),
    fmt: str = "PNG",
    mode: str = "RGB",
) -> bytes:
    image = Image.new(mode, size, color)
    buffer = BytesIO()
    image.save(buffer, format=fmt)
    return buffer.getvalue()


def make_data_url(
    color: tuple[int, ...] = (200, 40, 40),
    size: tuple[int, int] = (64, 64),
    fmt: str = "PNG",
    mode: str = "RGB",
) -> str:
    encoded = base64.b64encode(make_image_bytes(color, size, fmt, mode)).decode()
    return f"data:image/{fmt.lower()};base64,{encoded}"


LOGO = make_data_url((10, 90, 200), mode="RGB")
PHOTO = make_data_url((230, 120, 20))
WHATSAPP = "+966 555 123 456"

_BASE_FORMS: Dict[str, Dict[str, Any]] = {
    "restaurant": {
        "category": "restaurant",
        "restaurant_name": "Burger Hub",
        "meal_name": "Classic Smash Burger",
        "meal_image": PHOTO,
        "new_price": "25 SAR",
        "old_price": "35 SAR",
        "cta": "order_now",
    },
    "supermarket": {
        "category": "supermarket",
        "supermarket_name": "Fresh Mart",
        "product_name": "Red Apples",
        "product_images": [PHOTO],
        "headline": "Weekend Deals",
        "cta": "valid_today",
    },
    "ecommerce": {
        "category": "ecommerce",
        "shop_name": "Gadget Corner",
        "product_name": "Wireless Earbuds",
        "product_image": PHOTO,
        "new_price": "199 SAR",
        "shipping": "free",
        "cta": "buy_now",
    },
    "services": {
        "category": "services",
        "business_name": "CoolAir Experts",
        "service_name": "AC Maintenance",
        "price": "150 SAR",
        "cta": "book_now",
    },
    "fashion": {
        "category": "fashion",
        "brand_name": "Maison Lina",
        "item_name": "Linen Summer Dress",
        "item_image": PHOTO,
        "new_price": "249 SAR",
        "cta": "shop_now",
    },
    "beauty": {
        "category": "beauty",
        "salon_name": "Glow Studio",
        "service_name": "Hydrating Facial",
        "service_image": PHOTO,
        "new_price": "180 SAR",
        "cta": "book_now",
    },
}


def form_payload(category: str = "restaurant", **overrides: Any) -> Dict[str, Any]:
    payload = {"logo": LOGO, "whatsapp": WHATSAPP, **_BASE_FORMS[category]}
    payload.update(overrides)
    return payload


ARABIC_RESTAURANT = {
    "restaurant_name": "مطعم الشام",
    "meal_name": "شاورما دجاج",
    "description": "شاورما طازجة مع صوص الثوم",
    "new_price": "20 ريال",
    "old_price": "30 ريال",
}

RECIPES_RAW = {
    "restaurant": [
        {
            "id": "r-one",
            "name": "Bold Gradient",
            "directive": "A bold diagonal gradient behind the meal.",
            "campaign_modifiers": {"ramadan": "Add a faint lantern glow.", "eid": "Add gold confetti."},
        },
        {"id": "r-two", "name": "Chalk Doodles", "directive": "Chalkboard texture with doodles."},
        {"id": "r-three", "name": "Speed Lines", "directive": "Motion lines behind the burger."},
    ],
    "fashion": [
        {"id": "f-one", "name": "Editorial Cover", "directive": "Magazine cover composition."},
    ],
}


MENU_RECIPES_RAW = {
    "restaurant": [
        {
            "id": "m-grid",
            "name": "Warm Grid",
            "directive": "Warm wood background with rounded item cards.",
            "campaign_modifiers": {"ramadan": "Navy and gold with a crescent watermark."},
        },
        {
            "id": "m-dark",
            "name": "Gilded Night",
            "seasonal": True,
            "directive": "Charcoal page with gold rules between items.",
        },
    ],
    "supermarket": [
        {"id": "m-sale", "name": "Red Tag Sale", "directive": "Red and yellow price badges on white cards."},
    ],
}

MENU_ITEMS = [
    {"image": PHOTO, "name": "Chicken Shawarma", "price": "18 SAR"},
    {"image": make_data_url((40, 160, 60)), "name": "Falafel Wrap", "price": "12 SAR", "old_price": "15 SAR"},
    {"image": make_data_url((90, 60, 30)), "name": "Lentil Soup", "price": "9 SAR"},
]


def menu_payload(**overrides: Any) -> Dict[str, Any]:
    payload: Dict[str, Any] = {
        "menu_category": "restaurant",
        "campaign_type": "standard",
        "business_name": "Al Sham Kitchen",
        "logo": LOGO,
        "whatsapp": WHATSAPP,
        "items": [dict(item) for item in MENU_ITEMS],
    }
    payload.update(overrides)
    return payload


class FakeBackend:
    """Scripted stand-in for the generation service.

    ``images`` is consumed in call order; entries are ``ModelResponse`` objects
    or exceptions to raise. Once exhausted, every image call succeeds.
    """

    def __init__(
        self,
        *,
        images: List[Any] | None = None,
        translation: Any = "{}",
        brief: Any = "Hero burger centered, warm red backdrop, logo colors echoed in the price pill.",
    ) -> None:
        self.images = list(images or [])
        self.translation = translation
        self.brief = brief
        self.image_calls: List[Dict[str, Any]] = []
        self.text_calls: List[Dict[str, Any]] = []

    @property
    def translation_calls(self) -> List[Dict[str, Any]]:
        return [call for call in self.text_calls if "professional translator" in call["prompt"]]

    @property
    def brief_calls(self) -> List[Dict[str, Any]]:
        return [call for call in self.text_calls if "creative director" in call["prompt"]]

    async def generate_image(self, **kwargs: Any) -> ModelResponse:
        self.image_calls.append(kwargs)
        result = self.images.pop(0) if self.images else generated_image()
        if isinstance(result, BaseException):
            raise result
        return result

    async def generate_text(self, **kwargs: Any) -> ModelResponse:
        self.text_calls.append(kwargs)
        result = self.translation if "professional translator" in kwargs["prompt"] else self.brief
        if isinstance(result, BaseException):
            raise result
        if isinstance(result, ModelResponse):
            return result
        return ModelResponse(text=result, input_tokens=40, output_tokens=12)


def generated_image(size: tuple[int, int] = (512, 512)) -> ModelResponse:
    return ModelResponse(
        images=(make_image_bytes((30, 160, 90), size=size),),
        input_tokens=1200,
        output_tokens=1290,
    )


def make_settings(root: Path, **genai: Any) -> Settings:
    return Settings(
        environment="test",
        allowed_origins=["*"],
        genai=GenAIConfig(api_key="test-key", **genai),
        images=ImageConfig(inspiration_root=root),
        guard=GuardConfig(max_body_bytes=1024 * 1024),
    )


@pytest.fixture
def settings(tmp_path: Path) -> Settings:
    return make_settings(tmp_path)


@pytest.fixture
def backend() -> FakeBackend:
    return FakeBackend()


@pytest.fixture
def recipe_book():
    return build_recipe_book(RECIPES_RAW)


@pytest.fixture
def make_pipeline(tmp_path: Path, recipe_book):
    def factory(backend: FakeBackend, pipeline_cls=PosterPipeline, **genai: Any) -> PosterPipeline:
        return pipeline_cls(
            backend,
            make_settings(tmp_path, **genai),
            recipe_book=recipe_book,
            inspiration_library=InspirationLibrary(tmp_path),
            menu_recipe_book=build_recipe_book(MENU_RECIPES_RAW),
            menu_inspiration_library=InspirationLibrary(tmp_path, directories=MENU_INSPIRATION_DIRS),
            rng=random.Random(7),
        )

    return factory
