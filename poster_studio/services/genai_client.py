"""google-genai backed access to the multimodal generation service."""
from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, List, Optional, Protocol, Sequence, Tuple, Union

from google import genai
from google.genai import types

from poster_studio.config import GenAIConfig

logger = logging.getLogger(__name__)


class InlineImage(Protocol):
    data: bytes
    media_type: str


ContentPart = Union[str, InlineImage]


@dataclass(frozen=True)
class ModelResponse:
    text: str = ""
    images: Tuple[bytes, ...] = ()
    input_tokens: int = 0
    output_tokens: int = 0


class GenerationBackend(Protocol):
    """What the pipeline needs from the generation service."""

    async def generate_image(
        self,
        *,
        model: str,
        system_prompt: str,
        parts: Sequence[ContentPart],
        aspect_ratio: str,
        image_size: Optional[str],
        attempts: int,
    ) -> ModelResponse: ...

    async def generate_text(
        self,
        *,
        model: str,
        prompt: str,
        images: Sequence[InlineImage] = (),
        attempts: int = 1,
        use_search: bool = False,
    ) -> ModelResponse: ...


def _to_part(part: ContentPart) -> types.Part:
    if isinstance(part, str):
        return types.Part.from_text(text=part)
    return types.Part.from_bytes(data=part.data, mime_type=part.media_type)


def _response_to_model_response(response: Any) -> ModelResponse:
    texts: List[str] = []
    images: List[bytes] = []
    candidates = getattr(response, "candidates", None) or []
    if candidates:
        content = getattr(candidates[0], "content", None)
        for part in getattr(content, "parts", None) or []:
            inline_data = getattr(part, "inline_data", None)
            if inline_data is not None and getattr(inline_data, "data", None):
                images.append(bytes(inline_data.data))
                continue
            text = getattr(part, "text", None)
            if text and not getattr(part, "thought", False):
                texts.append(text)

    usage = getattr(response, "usage_metadata", None)
    return ModelResponse(
        text="".join(texts).strip(),
        images=tuple(images),
        input_tokens=int(getattr(usage, "prompt_token_count", None) or 0),
        output_tokens=int(getattr(usage, "candidates_token_count", None) or 0),
    )


class GenAIBackend:
    """Gemini models through ``client.aio.models.generate_content``."""

    def __init__(self, config: GenAIConfig, client: Any | None = None) -> None:
        self.config = config
        if client is None:
            if not config.is_configured:
                raise RuntimeError("GOOGLE_API_KEY (or GEMINI_API_KEY) is not configured")
            client = genai.Client(api_key=config.api_key)
        self.client = client

    def _http_options(self, attempts: int) -> types.HttpOptions:
        return types.HttpOptions(
            timeout=self.config.timeout_ms,
            retry_options=types.HttpRetryOptions(attempts=max(1, attempts)),
        )

    async def generate_image(
        self,
        *,
        model: str,
        system_prompt: str,
        parts: Sequence[ContentPart],
        aspect_ratio: str,
        image_size: Optional[str],
        attempts: int,
    ) -> ModelResponse:
        config = types.GenerateContentConfig(
            system_instruction=system_prompt,
            response_modalities=["TEXT", "IMAGE"],
            image_config=types.ImageConfig(aspect_ratio=aspect_ratio, image_size=image_size),
            http_options=self._http_options(attempts),
        )
        logger.debug(
            "genai.image.request",
            extra={"model": model, "parts": len(parts), "aspect_ratio": aspect_ratio, "attempts": attempts},
        )
        response = await self.client.aio.models.generate_content(
            model=model,
            contents=[types.Content(role="user", parts=[_to_part(part) for part in parts])],
            config=config,
        )
        return _response_to_model_response(response)

    async def generate_text(
        self,
        *,
        model: str,
        prompt: str,
        images: Sequence[InlineImage] = (),
        attempts: int = 1,
        use_search: bool = False,
    ) -> ModelResponse:
        config = types.GenerateContentConfig(
            tools=[types.Tool(google_search=types.GoogleSearch())] if use_search else None,
            http_options=self._http_options(attempts),
        )
        parts = [_to_part(image) for image in images]
        parts.append(types.Part.from_text(text=prompt))
        logger.debug(
            "genai.text.request",
            extra={"model": model, "images": len(images), "use_search": use_search},
        )
        response = await self.client.aio.models.generate_content(
            model=model,
            contents=[types.Content(role="user", parts=parts)],
            config=config,
        )
        return _response_to_model_response(response)


__all__ = [
    "ContentPart",
    "GenAIBackend",
    "GenerationBackend",
    "InlineImage",
    "ModelResponse",
]
