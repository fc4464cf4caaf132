from __future__ import annotations

import os
from dataclasses import dataclass
from functools import lru_cache
from pathlib import Path
from typing import List
from urllib.parse import urlparse

DEFAULT_INSPIRATION_ROOT = Path(__file__).resolve().parent / "data" / "inspirations"
DEFAULT_MENU_INSPIRATION_ROOT = DEFAULT_INSPIRATION_ROOT.parent / "menu_inspirations"


def _as_bool(value: str | None, default: bool) -> bool:
    """Interpret common truthy / falsy strings while providing a default."""

    if value is None:
        return default
    return value.strip().lower() in {"1", "true", "yes", "on"}


def _as_int(value: str | None, default: int, *, minimum: int = 0) -> int:
    if value is None or not value.strip():
        return default
    try:
        return max(int(value), minimum)
    except (TypeError, ValueError):
        return default


def _parse_allowed_origins(raw: str | None) -> List[str]:
    """Normalise comma-separated origins into values accepted by CORSMiddleware."""

    if not raw:
        return ["*"]

    cleaned: List[str] = []
    for origin in raw.split(","):
        value = origin.strip()
        if not value:
            continue
        if value == "*":
            return ["*"]

        parsed = urlparse(value)
        if parsed.scheme and parsed.netloc:
            normalised = f"{parsed.scheme}://{parsed.netloc}"
        else:
            normalised = value

        if normalised not in cleaned:
            cleaned.append(normalised)

    return cleaned or ["*"]


@dataclass
class GenAIConfig:
    api_key: str | None = None
    primary_model: str = "gemini-3-pro-image-preview"
    fallback_model: str = "gemini-2.5-flash-image"
    translation_model: str = "gemini-2.5-pro"
    brief_model: str = "gemini-2.5-flash"
    image_size: str = "2K"
    fallback_attempts: int = 3
    timeout_ms: int | None = None
    translation_search: bool = True

    @property
    def is_configured(self) -> bool:
        return bool(self.api_key)

    @classmethod
    def from_env(cls) -> "GenAIConfig":
        defaults = cls()
        return cls(
            api_key=os.getenv("GOOGLE_API_KEY") or os.getenv("GEMINI_API_KEY"),
            primary_model=os.getenv("GENAI_PRIMARY_MODEL") or defaults.primary_model,
            fallback_model=os.getenv("GENAI_FALLBACK_MODEL") or defaults.fallback_model,
            translation_model=os.getenv("GENAI_TEXT_MODEL") or defaults.translation_model,
            brief_model=os.getenv("GENAI_BRIEF_MODEL") or defaults.brief_model,
            image_size=os.getenv("GENAI_IMAGE_SIZE") or defaults.image_size,
            fallback_attempts=_as_int(
                os.getenv("GENAI_FALLBACK_ATTEMPTS"), defaults.fallback_attempts, minimum=1
            ),
            timeout_ms=_as_int(os.getenv("GENAI_TIMEOUT_MS"), 0) or None,
            translation_search=_as_bool(os.getenv("TRANSLATION_SEARCH"), True),
        )


@dataclass
class ImageConfig:
    inspiration_root: Path
    inspiration_count: int = 2
    output_quality: int = 92
    menu_inspiration_root: Path = DEFAULT_MENU_INSPIRATION_ROOT
    menu_inspiration_count: int = 3

    @classmethod
    def from_env(cls) -> "ImageConfig":
        root = os.getenv("INSPIRATION_ROOT")
        menu_root = os.getenv("MENU_INSPIRATION_ROOT")
        return cls(
            inspiration_root=Path(root) if root else DEFAULT_INSPIRATION_ROOT,
            inspiration_count=_as_int(os.getenv("INSPIRATION_COUNT"), 2),
            output_quality=min(_as_int(os.getenv("OUTPUT_JPEG_QUALITY"), 92, minimum=1), 100),
            menu_inspiration_root=Path(menu_root) if menu_root else DEFAULT_MENU_INSPIRATION_ROOT,
            menu_inspiration_count=_as_int(os.getenv("MENU_INSPIRATION_COUNT"), 3),
        )


@dataclass
class GuardConfig:
    max_body_bytes: int

    @classmethod
    def from_env(cls) -> "GuardConfig":
        # Up to a dozen 5 MB data-URI images plus the JSON envelope.
        return cls(max_body_bytes=_as_int(os.getenv("MAX_BODY_BYTES"), 40 * 1024 * 1024))


@dataclass
class Settings:
    environment: str
    allowed_origins: List[str]
    genai: GenAIConfig
    images: ImageConfig
    guard: GuardConfig


@lru_cache()
def get_settings() -> Settings:
    return Settings(
        environment=os.getenv("ENVIRONMENT", "development"),
        allowed_origins=_parse_allowed_origins(os.getenv("ALLOWED_ORIGINS", "*")),
        genai=GenAIConfig.from_env(),
        images=ImageConfig.from_env(),
        guard=GuardConfig.from_env(),
    )
