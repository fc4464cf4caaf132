"""Pillow helpers: upload compression, inspiration references and final resize."""
from __future__ import annotations

import base64
import binascii
import logging
import random
import re
import threading
from dataclasses import dataclass
from io import BytesIO
from pathlib import Path
from typing import Dict, List, Mapping, Optional, Sequence, Tuple, Union

from PIL import Image, ImageOps, UnidentifiedImageError

from poster_studio.config import get_settings
from poster_studio.constants import (
    CATEGORY_INSPIRATION_DIRS,
    MENU_INSPIRATION_DIRS,
    MENU_INSPIRATION_SIZE,
)

logger = logging.getLogger(__name__)

DATA_URL_RX = re.compile(r"^data:(image/[^;]+);base64,(.+)$", re.DOTALL)

INSPIRATION_SIZE = (540, 675)
INSPIRATION_QUALITY = 70
INSPIRATION_SUFFIXES = {".jpg", ".jpeg", ".png", ".webp"}
RESAMPLE = Image.Resampling.LANCZOS


class PostProcessingError(RuntimeError):
    """The generated image could not be decoded or re-encoded."""


@dataclass(frozen=True)
class CompressedImage:
    data: bytes
    media_type: str


@dataclass(frozen=True)
class ProcessedImage:
    data_url: str
    width: int
    height: int


def _decode_data_url(data_url: str | None) -> bytes | None:
    if not data_url:
        return None
    match = DATA_URL_RX.match(data_url.strip())
    if not match:
        logger.warning("Unsupported data URL header: %s", data_url[:32])
        return None
    try:
        return base64.b64decode(match.group(2), validate=False)
    except (binascii.Error, ValueError) as exc:
        logger.warning("Failed to decode data URL: %s", exc)
        return None


def _open(raw: bytes) -> Image.Image | None:
    try:
        image = Image.open(BytesIO(raw))
        image.load()
    except (UnidentifiedImageError, Image.DecompressionBombError, OSError, ValueError) as exc:
        logger.warning("Decoded image is invalid: %s", exc)
        return None
    return image


def _flatten(image: Image.Image) -> Image.Image:
    """Composite transparency onto white so JPEG output is predictable."""

    if image.mode in ("RGBA", "LA") or (image.mode == "P" and "transparency" in image.info):
        rgba = image.convert("RGBA")
        background = Image.new("RGB", rgba.size, (255, 255, 255))
        background.paste(rgba, mask=rgba.split()[3])
        return background
    return image.convert("RGB")


def _encode_jpeg(image: Image.Image, quality: int) -> bytes:
    buffer = BytesIO()
    _flatten(image).save(buffer, format="JPEG", quality=quality, optimize=False)
    return buffer.getvalue()


def compress_image_from_data_url(
    data_url: str,
    max_width: int = 600,
    max_height: int = 600,
    quality: int = 70,
) -> Optional[CompressedImage]:
    """Shrink a product photo to fit inside the envelope as JPEG.

    Images already inside the envelope are re-encoded but never enlarged.
    Returns ``None`` when the payload is not a decodable image.
    """

    raw = _decode_data_url(data_url)
    if raw is None:
        return None
    image = _open(raw)
    if image is None:
        return None
    image.thumbnail((max_width, max_height), RESAMPLE)
    return CompressedImage(data=_encode_jpeg(image, quality), media_type="image/jpeg")


def compress_logo_from_data_url(
    data_url: str,
    max_width: int = 400,
    max_height: int = 400,
) -> Optional[CompressedImage]:
    """Shrink a logo as PNG so transparency survives."""

    raw = _decode_data_url(data_url)
    if raw is None:
        return None
    image = _open(raw)
    if image is None:
        return None
    image = image.convert("RGBA")
    image.thumbnail((max_width, max_height), RESAMPLE)
    buffer = BytesIO()
    image.save(buffer, format="PNG", compress_level=1)
    return CompressedImage(data=buffer.getvalue(), media_type="image/png")


class InspirationLibrary:
    """Reference designs per category, decoded once and reused.

    ``directories`` maps a category to one or more folders under ``root``;
    categories missing from it use a folder of their own name.
    """

    def __init__(
        self,
        root: Path,
        size: Tuple[int, int] = INSPIRATION_SIZE,
        quality: int = INSPIRATION_QUALITY,
        directories: Optional[Mapping[str, Union[str, Sequence[str]]]] = None,
    ) -> None:
        self.root = Path(root)
        self.size = size
        self.quality = quality
        self.directories = CATEGORY_INSPIRATION_DIRS if directories is None else directories
        self._cache: Dict[str, Tuple[bytes, ...]] = {}
        self._lock = threading.Lock()

    def _folders(self, category: str) -> List[Path]:
        names = self.directories.get(category, category)
        if isinstance(names, str):
            names = (names,)
        return [self.root / name for name in names]

    def _load_directory(self, directory: Path) -> List[bytes]:
        if not directory.is_dir():
            logger.warning("Inspiration directory missing: %s", directory)
            return []
        loaded = []
        for path in sorted(directory.iterdir()):
            if path.suffix.lower() not in INSPIRATION_SUFFIXES:
                continue
            image = _open(path.read_bytes())
            if image is None:
                continue
            fitted = ImageOps.fit(_flatten(image), self.size, RESAMPLE)
            loaded.append(_encode_jpeg(fitted, self.quality))
        return loaded

    def _load_category(self, category: str) -> Tuple[bytes, ...]:
        with self._lock:
            cached = self._cache.get(category)
            if cached is not None:
                return cached

            folders = self._folders(category)
            buffers = tuple(data for folder in folders for data in self._load_directory(folder))
            logger.info(
                "inspirations.loaded",
                extra={
                    "category": category,
                    "count": len(buffers),
                    "directories": [str(folder) for folder in folders],
                },
            )
            self._cache[category] = buffers
            return buffers

    def pick(
        self, category: str, count: int = 2, rng: Optional[random.Random] = None
    ) -> List[CompressedImage]:
        buffers = self._load_category(category)
        if not buffers or count <= 0:
            return []
        chooser = rng or random
        chosen = chooser.sample(range(len(buffers)), min(count, len(buffers)))
        return [CompressedImage(data=buffers[index], media_type="image/jpeg") for index in chosen]


def load_inspiration_images(
    category: str,
    count: int = 2,
    library: Optional[InspirationLibrary] = None,
    rng: Optional[random.Random] = None,
) -> List[CompressedImage]:
    if library is None:
        library = default_inspiration_library()
    return library.pick(category, count, rng=rng)


_default_library: InspirationLibrary | None = None
_default_library_lock = threading.Lock()


def default_inspiration_library() -> InspirationLibrary:
    global _default_library
    with _default_library_lock:
        if _default_library is None:
            _default_library = InspirationLibrary(get_settings().images.inspiration_root)
        return _default_library


_default_menu_library: InspirationLibrary | None = None


def default_menu_inspiration_library() -> InspirationLibrary:
    """Reference menus and catalogs, fitted to an A4-like portrait."""

    global _default_menu_library
    with _default_library_lock:
        if _default_menu_library is None:
            _default_menu_library = InspirationLibrary(
                get_settings().images.menu_inspiration_root,
                size=MENU_INSPIRATION_SIZE,
                directories=MENU_INSPIRATION_DIRS,
            )
        return _default_menu_library


def postprocess_image(data: bytes, width: int, height: int, quality: int = 92) -> ProcessedImage:
    """Resize to the exact canvas (aspect not preserved) and return a JPEG data URI."""

    try:
        image = Image.open(BytesIO(data))
        image.load()
    except (UnidentifiedImageError, Image.DecompressionBombError, OSError, ValueError) as exc:
        raise PostProcessingError(f"generated image could not be decoded: {exc}") from exc

    resized = image.resize((width, height), RESAMPLE)
    encoded = base64.b64encode(_encode_jpeg(resized, quality)).decode("ascii")
    return ProcessedImage(data_url=f"data:image/jpeg;base64,{encoded}", width=width, height=height)


__all__ = [
    "CompressedImage",
    "InspirationLibrary",
    "PostProcessingError",
    "ProcessedImage",
    "compress_image_from_data_url",
    "compress_logo_from_data_url",
    "default_inspiration_library",
    "default_menu_inspiration_library",
    "load_inspiration_images",
    "postprocess_image",
]
