"""Structured business input for the poster pipeline, one model per category."""
from __future__ import annotations

import math
import re
from enum import Enum
from typing import Annotated, Any, ClassVar, List, Literal, Optional, Union

from pydantic import (
    AfterValidator,
    BaseModel,
    ConfigDict,
    Field,
    TypeAdapter,
    ValidationError,
    constr,
    field_validator,
    model_validator,
)

from poster_studio.constants import MENU_MAX_ITEMS, MENU_MIN_ITEMS

MAX_IMAGE_BYTES = 5 * 1024 * 1024
# Base64 inflates by 4/3 plus the data-URI header.
MAX_IMAGE_DATA_URL_CHARS = math.ceil(MAX_IMAGE_BYTES * 1.37)

IMAGE_DATA_URL_RX = re.compile(r"^data:image/(jpeg|jpg|png|webp);base64,", re.IGNORECASE)
PHONE_RX = r"^[\d+\-\s()]+$"
HEX_COLOR_RX = r"^#(?:[0-9a-fA-F]{3}){1,2}$"


class Language(str, Enum):
    """Poster languages. Only ``ar``, ``he`` and ``en`` are detectable from script."""

    AR = "ar"
    HE = "he"
    EN = "en"
    FR = "fr"
    DE = "de"
    TR = "tr"

    @property
    def display_name(self) -> str:
        return _LANGUAGE_NAMES[self]

    @property
    def is_rtl(self) -> bool:
        return self in (Language.AR, Language.HE)

    @property
    def direction(self) -> str:
        return "rtl" if self.is_rtl else "ltr"


_LANGUAGE_NAMES = {
    Language.AR: "Arabic",
    Language.HE: "Hebrew",
    Language.EN: "English",
    Language.FR: "French",
    Language.DE: "German",
    Language.TR: "Turkish",
}

DEFAULT_LANGUAGE = Language.EN


def _check_image_data_url(value: str) -> str:
    if not IMAGE_DATA_URL_RX.match(value):
        raise ValueError("image must be a base64 data URI (jpeg, png or webp)")
    if len(value) > MAX_IMAGE_DATA_URL_CHARS:
        raise ValueError("image must be smaller than 5MB")
    return value


ImageDataUrl = Annotated[str, AfterValidator(_check_image_data_url)]
Name = constr(strip_whitespace=True, min_length=1, max_length=100)
Text = constr(strip_whitespace=True, max_length=100)
LongText = constr(strip_whitespace=True, max_length=300)
Note = constr(strip_whitespace=True, max_length=50)
Price = constr(strip_whitespace=True, min_length=1, max_length=20)
Phone = constr(strip_whitespace=True, min_length=8, max_length=20, pattern=PHONE_RX)
HexColor = constr(strip_whitespace=True, pattern=HEX_COLOR_RX)

CampaignType = Literal["standard", "ramadan", "eid"]
PosterFormat = Literal[
    "instagram-square",
    "instagram-story",
    "facebook-post",
    "facebook-cover",
    "twitter-post",
    "whatsapp-status",
]
OfferBadge = Literal["discount", "limited_offer", "new", "best_seller", "free_delivery"]


class _FormModel(BaseModel):
    """Base model that ignores unknown fields and treats blank strings as absent."""

    model_config = ConfigDict(extra="ignore")

    @model_validator(mode="before")
    @classmethod
    def _blank_to_none(cls, data: Any) -> Any:
        if not isinstance(data, dict):
            return data
        return {
            key: None if isinstance(value, str) and not value.strip() else value
            for key, value in data.items()
        }


class _PosterForm(_FormModel):
    business_name_field: ClassVar[str]
    product_name_field: ClassVar[str]

    campaign_type: CampaignType = "standard"
    format: PosterFormat = "instagram-square"
    poster_language: Optional[Language] = None
    logo: ImageDataUrl
    whatsapp: Phone
    offer_badge: Optional[OfferBadge] = None

    def business_label(self) -> str:
        return getattr(self, self.business_name_field)

    def product_label(self) -> str:
        return getattr(self, self.product_name_field)

    def product_image_urls(self) -> List[str]:
        return []


class RestaurantForm(_PosterForm):
    business_name_field: ClassVar[str] = "restaurant_name"
    product_name_field: ClassVar[str] = "meal_name"

    category: Literal["restaurant"]
    cta: Literal["order_now", "order_before_end", "fast_delivery"]
    restaurant_name: Name
    meal_name: Name
    meal_image: ImageDataUrl
    new_price: Price
    old_price: Price
    description: Optional[LongText] = None
    offer_duration: Optional[Note] = None
    coverage_areas: Optional[Text] = None
    delivery_type: Optional[Literal["delivery", "pickup", "delivery_and_pickup"]] = None

    def product_image_urls(self) -> List[str]:
        return [self.meal_image]


class SupermarketForm(_PosterForm):
    business_name_field: ClassVar[str] = "supermarket_name"
    product_name_field: ClassVar[str] = "product_name"

    category: Literal["supermarket"]
    cta: Literal["order_now", "add_to_cart_whatsapp", "valid_today"]
    supermarket_name: Name
    product_name: Name
    product_images: List[ImageDataUrl] = Field(..., min_length=1, max_length=5)
    headline: Name
    new_price: Optional[Price] = None
    old_price: Optional[Price] = None
    quantity: Optional[Note] = None
    offer_limit: Optional[Note] = None
    offer_duration: Optional[Note] = None

    def product_image_urls(self) -> List[str]:
        return list(self.product_images)


class EcommerceForm(_PosterForm):
    business_name_field: ClassVar[str] = "shop_name"
    product_name_field: ClassVar[str] = "product_name"

    category: Literal["ecommerce"]
    cta: Literal["buy_now", "shop_now", "view_details"]
    shop_name: Name
    product_name: Name
    product_image: ImageDataUrl
    new_price: Price
    old_price: Optional[Price] = None
    features: Optional[LongText] = None
    color_size: Optional[Text] = None
    shipping: Literal["free", "paid"]
    shipping_duration: Optional[Note] = None
    headline: Optional[Text] = None

    def product_image_urls(self) -> List[str]:
        return [self.product_image]


class ServicesForm(_PosterForm):
    business_name_field: ClassVar[str] = "business_name"
    product_name_field: ClassVar[str] = "service_name"

    category: Literal["services"]
    cta: Literal["book_now", "request_visit", "whatsapp_consultation"]
    business_name: Name
    service_name: Name
    service_image: Optional[ImageDataUrl] = None
    price: Price
    price_type: Optional[Literal["fixed", "starting_from", "per_hour"]] = None
    service_details: Optional[LongText] = None
    coverage_area: Optional[Text] = None
    execution_time: Optional[Note] = None
    warranty: Optional[Note] = None
    quick_features: Optional[LongText] = None
    offer_duration: Optional[Note] = None

    def product_image_urls(self) -> List[str]:
        return [self.service_image] if self.service_image else []


class FashionForm(_PosterForm):
    business_name_field: ClassVar[str] = "brand_name"
    product_name_field: ClassVar[str] = "item_name"

    category: Literal["fashion"]
    cta: Literal["order_now", "shop_now", "message_for_sizes"]
    brand_name: Name
    item_name: Name
    item_image: ImageDataUrl
    new_price: Price
    old_price: Optional[Price] = None
    description: Optional[LongText] = None
    available_sizes: Optional[Text] = None
    available_colors: Optional[Text] = None
    offer_note: Optional[Note] = None
    offer_duration: Optional[Note] = None
    availability: Optional[Literal["in_stock", "limited_stock"]] = None

    def product_image_urls(self) -> List[str]:
        return [self.item_image]


class BeautyForm(_PosterForm):
    business_name_field: ClassVar[str] = "salon_name"
    product_name_field: ClassVar[str] = "service_name"

    category: Literal["beauty"]
    cta: Literal["book_now", "reserve_spot", "order_whatsapp"]
    salon_name: Name
    service_name: Name
    service_image: ImageDataUrl
    new_price: Price
    old_price: Optional[Price] = None
    benefit: Optional[Text] = None
    session_duration: Optional[Note] = None
    suitable_for: Optional[Text] = None
    offer_duration: Optional[Note] = None
    booking_condition: Optional[Literal["appointment_required", "walk_in"]] = None

    def product_image_urls(self) -> List[str]:
        return [self.service_image]


FormData = Annotated[
    Union[RestaurantForm, SupermarketForm, EcommerceForm, ServicesForm, FashionForm, BeautyForm],
    Field(discriminator="category"),
]
PosterForm = _PosterForm

CATEGORIES = ("restaurant", "supermarket", "ecommerce", "services", "fashion", "beauty")

_FORM_ADAPTER: TypeAdapter[Any] = TypeAdapter(FormData)


class BrandPalette(_FormModel):
    primary: Optional[HexColor] = None
    secondary: Optional[HexColor] = None
    accent: Optional[HexColor] = None
    background: Optional[HexColor] = None
    text: Optional[HexColor] = None

    def colors(self) -> dict[str, str]:
        return {name: value for name, value in self.model_dump().items() if value}


class BrandKit(_FormModel):
    """Optional brand constraints that override the category defaults."""

    palette: Optional[BrandPalette] = None
    style_adjectives: List[constr(strip_whitespace=True, min_length=1, max_length=30)] = Field(
        default_factory=list, max_length=5
    )
    do_rules: List[constr(strip_whitespace=True, min_length=1, max_length=200)] = Field(
        default_factory=list, max_length=10
    )
    dont_rules: List[constr(strip_whitespace=True, min_length=1, max_length=200)] = Field(
        default_factory=list, max_length=10
    )

    @field_validator("style_adjectives", "do_rules", "dont_rules", mode="before")
    @classmethod
    def _default_list(cls, value: Any) -> Any:
        return [] if value is None else value



class MenuItem(_FormModel):
    image: ImageDataUrl
    name: Name
    price: Price
    old_price: Optional[Price] = None


class MenuForm(_FormModel):
    """A multi-item menu or product catalog rendered on a single A4 page."""

    menu_category: Literal["restaurant", "supermarket"]
    campaign_type: CampaignType = "standard"
    business_name: Name
    logo: ImageDataUrl
    whatsapp: Phone
    address: Optional[Text] = None
    items: List[MenuItem] = Field(..., min_length=MENU_MIN_ITEMS, max_length=MENU_MAX_ITEMS)

    def item_image_urls(self) -> List[str]:
        return [item.image for item in self.items]

    @property
    def has_old_prices(self) -> bool:
        return any(item.old_price for item in self.items)


class FormValidationError(ValueError):
    """Raised when raw input does not describe a valid poster request."""

    def __init__(self, issues: List[str]):
        self.issues = list(issues)
        super().__init__("invalid poster form: " + "; ".join(self.issues))


def _issues_from(exc: ValidationError) -> List[str]:
    issues = []
    for error in exc.errors():
        location = ".".join(str(item) for item in error.get("loc", ()))
        message = error.get("msg") or error.get("type") or "invalid"
        issues.append(f"{location}:{message}")
    return issues


def parse_form_data(payload: Any) -> _PosterForm:
    """Validate ``payload`` into the category model, raising ``FormValidationError``."""

    if isinstance(payload, _PosterForm):
        return payload
    try:
        return _FORM_ADAPTER.validate_python(payload)
    except ValidationError as exc:
        raise FormValidationError(_issues_from(exc)) from exc


def parse_menu_form(payload: Any) -> MenuForm:
    if isinstance(payload, MenuForm):
        return payload
    try:
        return MenuForm.model_validate(payload)
    except ValidationError as exc:
        raise FormValidationError(_issues_from(exc)) from exc


def parse_brand_kit(payload: Any) -> BrandKit | None:
    if payload is None or isinstance(payload, BrandKit):
        return payload
    try:
        return BrandKit.model_validate(payload)
    except ValidationError as exc:
        raise FormValidationError([f"brand_kit.{issue}" for issue in _issues_from(exc)]) from exc
