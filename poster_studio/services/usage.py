"""Per-call usage records for the external generation service."""
from __future__ import annotations

import logging
import time
from dataclasses import asdict, dataclass
from typing import Any, Callable, Dict, List, Optional, Tuple

logger = logging.getLogger(__name__)

ROUTE_PRE_TRANSLATE = "pre-translate"
ROUTE_DESIGN_BRIEF = "design-brief"
ROUTE_POSTER = "poster"
ROUTE_MENU = "menu"


@dataclass(frozen=True)
class GenerationUsage:
    route: str
    model: str
    input_tokens: int = 0
    output_tokens: int = 0
    images_generated: int = 0
    duration_ms: int = 0
    success: bool = True
    error: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


UsageListener = Callable[[GenerationUsage], None]


class UsageRecorder:
    """Append-only log of usage records for one pipeline invocation.

    Listeners run synchronously on every record and are meant for persistence
    sinks. A failing listener is logged and never breaks generation.
    """

    def __init__(self, listeners: Optional[List[UsageListener]] = None) -> None:
        self._records: List[GenerationUsage] = []
        self._listeners: List[UsageListener] = list(listeners or [])

    def subscribe(self, listener: UsageListener) -> None:
        self._listeners.append(listener)

    def record(self, usage: GenerationUsage) -> GenerationUsage:
        self._records.append(usage)
        logger.info(
            "usage.recorded",
            extra={
                "route": usage.route,
                "model": usage.model,
                "input_tokens": usage.input_tokens,
                "output_tokens": usage.output_tokens,
                "images_generated": usage.images_generated,
                "duration_ms": usage.duration_ms,
                "success": usage.success,
            },
        )
        for listener in self._listeners:
            try:
                listener(usage)
            except Exception:  # noqa: BLE001
                logger.exception("usage.listener.failed", extra={"route": usage.route})
        return usage

    @property
    def records(self) -> Tuple[GenerationUsage, ...]:
        return tuple(self._records)

    def since(self, start: int) -> Tuple[GenerationUsage, ...]:
        return tuple(self._records[start:])

    def __len__(self) -> int:
        return len(self._records)


def elapsed_ms(started: float) -> int:
    return int(round((time.perf_counter() - started) * 1000))


__all__ = [
    "GenerationUsage",
    "ROUTE_DESIGN_BRIEF",
    "ROUTE_MENU",
    "ROUTE_POSTER",
    "ROUTE_PRE_TRANSLATE",
    "UsageListener",
    "UsageRecorder",
    "elapsed_ms",
]
