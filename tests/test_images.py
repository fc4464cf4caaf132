import base64
import random
from io import BytesIO

import pytest
from PIL import Image

from conftest import make_data_url, make_image_bytes
from poster_studio.services.images import (
    InspirationLibrary,
    PostProcessingError,
    compress_image_from_data_url,
    compress_logo_from_data_url,
    load_inspiration_images,
    postprocess_image,
)


def _open(data: bytes) -> Image.Image:
    return Image.open(BytesIO(data))


def test_compress_shrinks_large_photo_within_envelope() -> None:
    result = compress_image_from_data_url(make_data_url(size=(1200, 900)))

    assert result is not None
    assert result.media_type == "image/jpeg"
    image = _open(result.data)
    assert image.format == "JPEG"
    assert image.size == (600, 450)


def test_compress_never_enlarges_small_photo() -> None:
    result = compress_image_from_data_url(make_data_url(size=(120, 80)))

    assert result is not None
    assert _open(result.data).size == (120, 80)


def test_compress_is_deterministic() -> None:
    data_url = make_data_url(size=(800, 800), fmt="WEBP")

    first = compress_image_from_data_url(data_url)
    second = compress_image_from_data_url(data_url)

    assert first is not None and second is not None
    assert len(first.data) == len(second.data)


def test_compress_flattens_transparency_onto_white() -> None:
    result = compress_image_from_data_url(make_data_url((0, 0, 0, 0), mode="RGBA"))

    assert result is not None
    pixel = _open(result.data).convert("RGB").getpixel((10, 10))
    assert all(channel > 240 for channel in pixel)


@pytest.mark.parametrize(
    "data_url",
    [
        "",
        "not a data url",
        "data:image/png;base64," + base64.b64encode(b"definitely not an image").decode(),
    ],
)
def test_compress_returns_none_for_unusable_input(data_url: str) -> None:
    assert compress_image_from_data_url(data_url) is None
    assert compress_logo_from_data_url(data_url) is None


def test_logo_keeps_alpha_as_png() -> None:
    result = compress_logo_from_data_url(make_data_url((255, 0, 0, 128), size=(800, 400), mode="RGBA"))

    assert result is not None
    assert result.media_type == "image/png"
    image = _open(result.data)
    assert image.format == "PNG"
    assert image.mode == "RGBA"
    assert image.size == (400, 200)


def test_postprocess_resizes_to_exact_canvas() -> None:
    processed = postprocess_image(make_image_bytes(size=(1024, 1024)), 1080, 1920, quality=90)

    assert processed.width == 1080 and processed.height == 1920
    assert processed.data_url.startswith("data:image/jpeg;base64,")
    raw = base64.b64decode(processed.data_url.split(",", 1)[1])
    assert _open(raw).size == (1080, 1920)


def test_postprocess_rejects_garbage() -> None:
    with pytest.raises(PostProcessingError):
        postprocess_image(b"garbage", 1080, 1080)


def _write_inspirations(root, folder: str, count: int) -> None:
    directory = root / folder
    directory.mkdir(parents=True)
    for index in range(count):
        (directory / f"ref-{index}.png").write_bytes(make_image_bytes((index * 40, 80, 120), size=(300, 300)))
    (directory / "notes.txt").write_text("ignored")


def test_inspiration_library_fits_and_samples(tmp_path) -> None:
    _write_inspirations(tmp_path, "food", 3)
    library = InspirationLibrary(tmp_path)

    picked = library.pick("restaurant", 2, rng=random.Random(1))

    assert len(picked) == 2
    assert len({image.data for image in picked}) == 2
    for image in picked:
        assert image.media_type == "image/jpeg"
        assert _open(image.data).size == (540, 675)


def test_inspiration_library_caches_per_category(tmp_path) -> None:
    _write_inspirations(tmp_path, "products", 1)
    library = InspirationLibrary(tmp_path)

    first = library.pick("ecommerce", 2)
    (tmp_path / "products" / "ref-0.png").unlink()
    second = library.pick("ecommerce", 2)

    assert len(first) == 1
    assert [image.data for image in second] == [image.data for image in first]


def test_missing_inspiration_directory_yields_nothing(tmp_path) -> None:
    library = InspirationLibrary(tmp_path)

    assert library.pick("beauty", 2) == []
    assert load_inspiration_images("beauty", 2, library=library) == []


def test_decompression_bomb_is_treated_as_unusable(monkeypatch) -> None:
    monkeypatch.setattr(Image, "MAX_IMAGE_PIXELS", 1000)
    data_url = make_data_url(size=(64, 64))

    assert compress_image_from_data_url(data_url) is None
    assert compress_logo_from_data_url(data_url) is None


def test_postprocess_maps_decompression_bomb_to_error(monkeypatch) -> None:
    monkeypatch.setattr(Image, "MAX_IMAGE_PIXELS", 1000)

    with pytest.raises(PostProcessingError):
        postprocess_image(make_image_bytes(size=(64, 64)), 100, 100)
