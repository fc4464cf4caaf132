import asyncio
from types import SimpleNamespace

import pytest

from poster_studio.config import GenAIConfig
from poster_studio.services.genai_client import GenAIBackend, _response_to_model_response
from poster_studio.services.images import CompressedImage


def _response(parts, prompt_tokens=120, output_tokens=1290):
    return SimpleNamespace(
        candidates=[SimpleNamespace(content=SimpleNamespace(parts=parts))],
        usage_metadata=SimpleNamespace(
            prompt_token_count=prompt_tokens,
            candidates_token_count=output_tokens,
        ),
    )


class FakeModels:
    def __init__(self, response) -> None:
        self.response = response
        self.calls = []

    async def generate_content(self, **kwargs):
        self.calls.append(kwargs)
        return self.response


def _client(response):
    models = FakeModels(response)
    return SimpleNamespace(aio=SimpleNamespace(models=models)), models


def test_response_extracts_images_text_and_tokens() -> None:
    response = _response(
        [
            SimpleNamespace(text="thinking...", thought=True, inline_data=None),
            SimpleNamespace(text="Here is your poster.", thought=False, inline_data=None),
            SimpleNamespace(text=None, inline_data=SimpleNamespace(data=b"\x89PNG", mime_type="image/png")),
        ]
    )

    result = _response_to_model_response(response)

    assert result.images == (b"\x89PNG",)
    assert result.text == "Here is your poster."
    assert result.input_tokens == 120
    assert result.output_tokens == 1290


def test_empty_response_has_no_image() -> None:
    result = _response_to_model_response(SimpleNamespace(candidates=[], usage_metadata=None))

    assert result.images == ()
    assert result.text == ""
    assert result.input_tokens == 0


def test_backend_requires_api_key() -> None:
    with pytest.raises(RuntimeError):
        GenAIBackend(GenAIConfig(api_key=None))


def test_generate_image_sends_config_and_parts() -> None:
    client, models = _client(_response([SimpleNamespace(text=None, inline_data=SimpleNamespace(data=b"img"))]))
    backend = GenAIBackend(GenAIConfig(api_key="k", timeout_ms=60000), client=client)

    result = asyncio.run(
        backend.generate_image(
            model="gemini-3-pro-image-preview",
            system_prompt="You are a designer.",
            parts=[CompressedImage(b"logo", "image/png"), "Render the poster."],
            aspect_ratio="9:16",
            image_size="2K",
            attempts=1,
        )
    )

    assert result.images == (b"img",)
    (call,) = models.calls
    assert call["model"] == "gemini-3-pro-image-preview"
    config = call["config"]
    assert config.system_instruction == "You are a designer."
    assert config.response_modalities == ["TEXT", "IMAGE"]
    assert config.image_config.aspect_ratio == "9:16"
    assert config.image_config.image_size == "2K"
    assert config.http_options.timeout == 60000
    assert config.http_options.retry_options.attempts == 1
    parts = call["contents"][0].parts
    assert parts[0].inline_data.data == b"logo"
    assert parts[0].inline_data.mime_type == "image/png"
    assert parts[1].text == "Render the poster."


def test_generate_text_enables_search_when_asked() -> None:
    client, models = _client(_response([SimpleNamespace(text='{"a": "b"}', inline_data=None)]))
    backend = GenAIBackend(GenAIConfig(api_key="k"), client=client)

    result = asyncio.run(backend.generate_text(model="gemini-2.5-pro", prompt="Translate", attempts=3, use_search=True))

    assert result.text == '{"a": "b"}'
    config = models.calls[0]["config"]
    assert config.tools[0].google_search is not None
    assert config.http_options.retry_options.attempts == 3
    assert models.calls[0]["contents"][0].parts[-1].text == "Translate"


def test_generate_text_without_search_has_no_tools() -> None:
    client, models = _client(_response([SimpleNamespace(text="brief", inline_data=None)]))
    backend = GenAIBackend(GenAIConfig(api_key="k"), client=client)

    asyncio.run(
        backend.generate_text(
            model="gemini-2.5-flash",
            prompt="Describe",
            images=[CompressedImage(b"a", "image/jpeg")],
        )
    )

    call = models.calls[0]
    assert not call["config"].tools
    assert len(call["contents"][0].parts) == 2
