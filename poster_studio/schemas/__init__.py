from __future__ import annotations

from typing import Any, Dict, List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field, constr

from .form import (
    CATEGORIES,
    DEFAULT_LANGUAGE,
    BeautyForm,
    BrandKit,
    BrandPalette,
    EcommerceForm,
    FashionForm,
    FormData,
    FormValidationError,
    Language,
    MenuForm,
    MenuItem,
    PosterForm,
    RestaurantForm,
    ServicesForm,
    SupermarketForm,
    parse_brand_kit,
    parse_form_data,
    parse_menu_form,
)


class _ApiModel(BaseModel):
    model_config = ConfigDict(extra="ignore")


class PosterRequest(_ApiModel):
    """Body of ``POST /api/posters``.

    ``form`` stays a plain mapping here so that category validation errors are
    reported through :class:`FormValidationError` with flat ``loc:message``
    issues instead of FastAPI's nested union errors.
    """

    form: Dict[str, Any]
    brand_kit: Optional[Dict[str, Any]] = None
    variants: int = Field(1, ge=1, le=4)
    idempotency_key: constr(strip_whitespace=True, min_length=1, max_length=128)
    session_id: Optional[constr(strip_whitespace=True, min_length=1, max_length=128)] = None


class DesignPayload(_ApiModel):
    name: str
    image_data_url: str
    width: int
    height: int
    format: str
    model: str
    recipe_id: Optional[str] = None


class UsagePayload(_ApiModel):
    route: str
    model: str
    input_tokens: int
    output_tokens: int
    images_generated: int
    duration_ms: int
    success: bool
    error: Optional[str] = None


class PosterResultPayload(_ApiModel):
    index: int
    status: Literal["complete", "error"]
    design: Optional[DesignPayload] = None
    error: Optional[str] = None


class PosterBatchResponse(_ApiModel):
    results: List[PosterResultPayload]
    usage: List[UsagePayload] = Field(default_factory=list)


class MenuRequest(_ApiModel):
    """Body of ``POST /api/menus``. One menu per request."""

    form: Dict[str, Any]
    brand_kit: Optional[Dict[str, Any]] = None
    idempotency_key: constr(strip_whitespace=True, min_length=1, max_length=128)
    session_id: Optional[constr(strip_whitespace=True, min_length=1, max_length=128)] = None


class MenuResponse(_ApiModel):
    result: PosterResultPayload
    usage: List[UsagePayload] = Field(default_factory=list)


__all__ = [
    "BeautyForm",
    "BrandKit",
    "BrandPalette",
    "CATEGORIES",
    "DEFAULT_LANGUAGE",
    "DesignPayload",
    "EcommerceForm",
    "FashionForm",
    "FormData",
    "FormValidationError",
    "Language",
    "MenuForm",
    "MenuItem",
    "MenuRequest",
    "MenuResponse",
    "PosterBatchResponse",
    "PosterForm",
    "PosterRequest",
    "PosterResultPayload",
    "RestaurantForm",
    "ServicesForm",
    "SupermarketForm",
    "UsagePayload",
    "parse_brand_kit",
    "parse_form_data",
    "parse_menu_form",
]
