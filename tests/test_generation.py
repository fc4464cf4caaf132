import asyncio

import pytest

from conftest import FakeBackend, form_payload, generated_image
from poster_studio.config import GenAIConfig
from poster_studio.schemas import Language, parse_form_data
from poster_studio.services.context import TranslatedContext
from poster_studio.services.generation import (
    GenerationOrchestrator,
    GenerationState,
    MissingImageError,
    ModelCallError,
    is_capacity_error,
)
from poster_studio.services.genai_client import ModelResponse
from poster_studio.services.prompts import build_prompt_bundle
from poster_studio.services.usage import ROUTE_POSTER, UsageRecorder

CONFIG = GenAIConfig(api_key="test-key", fallback_attempts=2)


class ServiceError(Exception):
    def __init__(self, message: str, code: int) -> None:
        super().__init__(message)
        self.code = code


@pytest.fixture
def bundle():
    form = parse_form_data(form_payload("restaurant"))
    context = TranslatedContext(form=form, source_language=Language.EN, target_language=Language.EN)
    return build_prompt_bundle(context)


def _run(backend, bundle, recorder=None):
    recorder = recorder if recorder is not None else UsageRecorder()
    orchestrator = GenerationOrchestrator(backend, CONFIG, recorder)
    return asyncio.run(orchestrator.run(bundle, "1:1")), recorder


@pytest.mark.parametrize(
    "exc",
    [
        RuntimeError("429 RESOURCE_EXHAUSTED: quota exceeded"),
        RuntimeError("Rate limit reached for requests"),
        RuntimeError("The model is overloaded. Please try again later."),
        ServiceError("try later", 503),
        ServiceError("slow down", 429),
        RuntimeError("upstream replied 503"),
    ],
)
def test_capacity_errors_are_recognised(exc) -> None:
    assert is_capacity_error(exc)


@pytest.mark.parametrize(
    "exc",
    [
        RuntimeError("invalid request: prompt blocked"),
        ValueError("400 INVALID_ARGUMENT"),
        ServiceError("permission denied", 403),
        RuntimeError("request id 15033 rejected: prompt blocked"),
        RuntimeError("invalid argument after 4290 tokens"),
    ],
)
def test_other_errors_are_not_capacity(exc) -> None:
    assert not is_capacity_error(exc)


def test_primary_success(bundle) -> None:
    backend = FakeBackend()

    run, recorder = _run(backend, bundle)

    assert run.model == CONFIG.primary_model
    assert not run.fallback_used
    assert run.states == (GenerationState.IDLE, GenerationState.PRIMARY_ATTEMPT, GenerationState.SUCCESS)
    assert len(backend.image_calls) == 1
    call = backend.image_calls[0]
    assert call["image_size"] == CONFIG.image_size
    assert call["attempts"] == 1
    assert call["aspect_ratio"] == "1:1"
    assert call["system_prompt"] == bundle.system_prompt
    assert call["parts"][-1] == bundle.user_prompt
    (usage,) = recorder.records
    assert usage.route == ROUTE_POSTER
    assert usage.images_generated == 1
    assert usage.input_tokens == 1200
    assert usage.output_tokens == 1290
    assert usage.success


def test_capacity_error_triggers_exactly_one_fallback(bundle) -> None:
    backend = FakeBackend(images=[RuntimeError("rate limit exceeded"), generated_image()])

    run, recorder = _run(backend, bundle)

    assert run.model == CONFIG.fallback_model
    assert run.fallback_used
    assert run.states == (
        GenerationState.IDLE,
        GenerationState.PRIMARY_ATTEMPT,
        GenerationState.PRIMARY_FAILED,
        GenerationState.FALLBACK_ATTEMPT,
        GenerationState.SUCCESS,
    )
    assert [call["model"] for call in backend.image_calls] == [CONFIG.primary_model, CONFIG.fallback_model]
    fallback_call = backend.image_calls[1]
    assert fallback_call["image_size"] is None
    assert fallback_call["attempts"] == 2
    assert [usage.success for usage in recorder.records] == [False, True]
    assert recorder.records[0].error == "rate limit exceeded"


def test_non_capacity_error_is_fatal_without_fallback(bundle) -> None:
    backend = FakeBackend(images=[RuntimeError("invalid request")])
    recorder = UsageRecorder()

    with pytest.raises(ModelCallError) as excinfo:
        _run(backend, bundle, recorder)

    assert len(backend.image_calls) == 1
    assert excinfo.value.capacity is False
    assert excinfo.value.states[-1] is GenerationState.FATAL
    assert GenerationState.FALLBACK_ATTEMPT not in excinfo.value.states
    assert len(recorder) == 1
    assert excinfo.value.usage == recorder.records


def test_fallback_failure_is_fatal(bundle) -> None:
    backend = FakeBackend(images=[RuntimeError("503 UNAVAILABLE"), RuntimeError("503 UNAVAILABLE")])
    recorder = UsageRecorder()

    with pytest.raises(ModelCallError) as excinfo:
        _run(backend, bundle, recorder)

    assert excinfo.value.model == CONFIG.fallback_model
    assert excinfo.value.capacity is True
    assert len(backend.image_calls) == 2
    assert len(recorder) == 2
    assert not any(usage.success for usage in recorder.records)


def test_missing_image_is_fatal_and_keeps_tokens(bundle) -> None:
    backend = FakeBackend(images=[ModelResponse(text="I cannot draw that.", input_tokens=900, output_tokens=15)])
    recorder = UsageRecorder()

    with pytest.raises(MissingImageError) as excinfo:
        _run(backend, bundle, recorder)

    assert len(backend.image_calls) == 1
    (usage,) = recorder.records
    assert usage.success is False
    assert usage.input_tokens == 900
    assert usage.output_tokens == 15
    assert usage.images_generated == 0
    assert excinfo.value.states[-1] is GenerationState.FATAL


def test_missing_image_from_fallback_is_fatal(bundle) -> None:
    backend = FakeBackend(images=[RuntimeError("Too Many Requests"), ModelResponse(text="no image")])

    with pytest.raises(MissingImageError) as excinfo:
        _run(backend, bundle)

    assert excinfo.value.model == CONFIG.fallback_model
    assert len(excinfo.value.usage) == 2


def test_status_digits_inside_longer_numbers_do_not_fail_over(bundle) -> None:
    backend = FakeBackend(images=[RuntimeError("request 15033 rejected by safety filter")])

    with pytest.raises(ModelCallError):
        _run(backend, bundle)

    assert [call["model"] for call in backend.image_calls] == [CONFIG.primary_model]


def test_orchestrator_records_its_route(bundle) -> None:
    recorder = UsageRecorder()
    orchestrator = GenerationOrchestrator(FakeBackend(), CONFIG, recorder, route="menu")

    asyncio.run(orchestrator.run(bundle, "3:4"))

    assert [usage.route for usage in recorder.records] == ["menu"]
