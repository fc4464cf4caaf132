"""Primary/fallback image generation with capacity-aware failover."""
from __future__ import annotations

import logging
import re
import time
from dataclasses import dataclass
from enum import Enum
from typing import Iterable, List, Optional, Tuple

from poster_studio.config import GenAIConfig
from poster_studio.services.genai_client import GenerationBackend
from poster_studio.services.prompts import PromptBundle
from poster_studio.services.usage import ROUTE_POSTER, GenerationUsage, UsageRecorder, elapsed_ms

logger = logging.getLogger(__name__)

# Lower-cased substrings that mark a transient capacity problem on the service side.
CAPACITY_MARKERS = (
    "rate limit",
    "rate-limit",
    "ratelimit",
    "resource exhausted",
    "resource_exhausted",
    "overloaded",
    "unavailable",
    "quota",
    "too many requests",
    "capacity",
    "high demand",
)
# Status codes quoted in the message, as whole words only.
CAPACITY_CODE_RX = re.compile(r"\b(?:429|503)\b")


class GenerationState(str, Enum):
    IDLE = "idle"
    PRIMARY_ATTEMPT = "primary_attempt"
    PRIMARY_FAILED = "primary_failed"
    FALLBACK_ATTEMPT = "fallback_attempt"
    SUCCESS = "success"
    FATAL = "fatal"


class GenerationError(RuntimeError):
    """Base class for fatal generation failures.

    ``usage`` holds every usage record produced by the failed run and
    ``states`` the orchestrator states that were visited.
    """

    def __init__(
        self,
        message: str,
        *,
        model: Optional[str] = None,
        usage: Iterable[GenerationUsage] = (),
        states: Iterable[GenerationState] = (),
    ) -> None:
        super().__init__(message)
        self.model = model
        self.usage: Tuple[GenerationUsage, ...] = tuple(usage)
        self.states: Tuple[GenerationState, ...] = tuple(states)


class ModelCallError(GenerationError):
    """The generation service call itself failed."""

    def __init__(self, message: str, *, capacity: bool = False, **kwargs) -> None:
        super().__init__(message, **kwargs)
        self.capacity = capacity


class MissingImageError(GenerationError):
    """The service answered without an image part."""


def is_capacity_error(exc: BaseException) -> bool:
    message = f"{exc.__class__.__name__} {exc}".lower()
    code = getattr(exc, "code", None) or getattr(exc, "status_code", None)
    if code in (429, 503):
        return True
    if CAPACITY_CODE_RX.search(message):
        return True
    return any(marker in message for marker in CAPACITY_MARKERS)


@dataclass(frozen=True)
class GenerationRun:
    image: bytes
    model: str
    usage: Tuple[GenerationUsage, ...]
    states: Tuple[GenerationState, ...]

    @property
    def fallback_used(self) -> bool:
        return GenerationState.FALLBACK_ATTEMPT in self.states


class GenerationOrchestrator:
    """Run one poster generation against the primary model, failing over once.

    Only capacity errors on the primary model trigger the fallback model. A
    response without an image is fatal on either model.
    """

    def __init__(
        self,
        backend: GenerationBackend,
        config: GenAIConfig,
        recorder: UsageRecorder,
        route: str = ROUTE_POSTER,
    ) -> None:
        self.backend = backend
        self.config = config
        self.recorder = recorder
        self.route = route

    async def _attempt(
        self,
        model: str,
        bundle: PromptBundle,
        aspect_ratio: str,
        image_size: Optional[str],
        attempts: int,
        usage: List[GenerationUsage],
        states: List[GenerationState],
    ) -> bytes:
        started = time.perf_counter()
        try:
            response = await self.backend.generate_image(
                model=model,
                system_prompt=bundle.system_prompt,
                parts=bundle.content_parts(),
                aspect_ratio=aspect_ratio,
                image_size=image_size,
                attempts=attempts,
            )
        except Exception as exc:
            usage.append(
                self.recorder.record(
                    GenerationUsage(
                        route=self.route,
                        model=model,
                        duration_ms=elapsed_ms(started),
                        success=False,
                        error=str(exc) or exc.__class__.__name__,
                    )
                )
            )
            raise

        if not response.images:
            usage.append(
                self.recorder.record(
                    GenerationUsage(
                        route=self.route,
                        model=model,
                        input_tokens=response.input_tokens,
                        output_tokens=response.output_tokens,
                        duration_ms=elapsed_ms(started),
                        success=False,
                        error="no image in response",
                    )
                )
            )
            states.append(GenerationState.FATAL)
            raise MissingImageError(
                f"{model} returned no image",
                model=model,
                usage=usage,
                states=states,
            )

        usage.append(
            self.recorder.record(
                GenerationUsage(
                    route=self.route,
                    model=model,
                    input_tokens=response.input_tokens,
                    output_tokens=response.output_tokens,
                    images_generated=len(response.images),
                    duration_ms=elapsed_ms(started),
                )
            )
        )
        return response.images[0]

    async def run(self, bundle: PromptBundle, aspect_ratio: str) -> GenerationRun:
        primary = self.config.primary_model
        fallback = self.config.fallback_model
        usage: List[GenerationUsage] = []
        states: List[GenerationState] = [GenerationState.IDLE, GenerationState.PRIMARY_ATTEMPT]

        try:
            image = await self._attempt(
                primary, bundle, aspect_ratio, self.config.image_size, 1, usage, states
            )
            model = primary
        except MissingImageError:
            logger.error("generation.primary.no_image", extra={"model": primary})
            raise
        except Exception as exc:
            states.append(GenerationState.PRIMARY_FAILED)
            capacity = is_capacity_error(exc)
            if not capacity:
                states.append(GenerationState.FATAL)
                logger.exception("generation.primary.failed", extra={"model": primary})
                raise ModelCallError(
                    f"{primary} failed: {exc}", model=primary, usage=usage, states=states
                ) from exc

            logger.warning(
                "generation.primary.capacity",
                extra={"model": primary, "fallback": fallback, "error": str(exc)},
            )
            states.append(GenerationState.FALLBACK_ATTEMPT)
            try:
                image = await self._attempt(
                    fallback,
                    bundle,
                    aspect_ratio,
                    None,
                    self.config.fallback_attempts,
                    usage,
                    states,
                )
            except MissingImageError:
                logger.error("generation.fallback.no_image", extra={"model": fallback})
                raise
            except Exception as fallback_exc:
                states.append(GenerationState.FATAL)
                logger.exception("generation.fallback.failed", extra={"model": fallback})
                raise ModelCallError(
                    f"{fallback} failed: {fallback_exc}",
                    capacity=is_capacity_error(fallback_exc),
                    model=fallback,
                    usage=usage,
                    states=states,
                ) from fallback_exc
            model = fallback

        states.append(GenerationState.SUCCESS)
        logger.info(
            "generation.success",
            extra={"model": model, "states": [state.value for state in states]},
        )
        return GenerationRun(image=image, model=model, usage=tuple(usage), states=tuple(states))


__all__ = [
    "CAPACITY_MARKERS",
    "GenerationError",
    "GenerationOrchestrator",
    "GenerationRun",
    "GenerationState",
    "MissingImageError",
    "ModelCallError",
    "is_capacity_error",
]
