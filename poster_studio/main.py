from __future__ import annotations

import logging
import os
from functools import lru_cache
from typing import Any

from fastapi import Depends, FastAPI, HTTPException, Response
from fastapi.middleware.cors import CORSMiddleware

from poster_studio import __version__
from poster_studio.config import get_settings
from poster_studio.constants import MENU_CREDIT_COST
from poster_studio.middlewares import BodyLimitMiddleware
from poster_studio.schemas import (
    FormValidationError,
    MenuRequest,
    MenuResponse,
    PosterBatchResponse,
    PosterRequest,
    parse_brand_kit,
    parse_form_data,
    parse_menu_form,
)
from poster_studio.services.credits import CreditGate, UnmeteredCreditGate
from poster_studio.services.genai_client import GenAIBackend
from poster_studio.services.pipeline import ActiveRequestGate, PosterPipeline
from poster_studio.services.usage import GenerationUsage

LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()

logging.basicConfig(
    level=LOG_LEVEL,
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logging.getLogger("uvicorn").setLevel(LOG_LEVEL)
logging.getLogger("uvicorn.error").setLevel(LOG_LEVEL)
logging.getLogger("uvicorn.access").setLevel(LOG_LEVEL)
logging.getLogger("poster_studio").setLevel(LOG_LEVEL)

logger = logging.getLogger("poster_studio")

settings = get_settings()

app = FastAPI(title="Poster Studio API", version=__version__)

allow_all = "*" in settings.allowed_origins
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"] if allow_all else settings.allowed_origins,
    allow_credentials=not allow_all,
    allow_methods=["GET", "POST", "OPTIONS"],
    allow_headers=["*"],
    max_age=86400,
)
app.add_middleware(BodyLimitMiddleware, max_body_bytes=settings.guard.max_body_bytes)
logger.info(
    "app.ready",
    extra={
        "environment": settings.environment,
        "origins": settings.allowed_origins,
        "max_body_bytes": settings.guard.max_body_bytes,
        "genai_configured": settings.genai.is_configured,
    },
)

request_gate = ActiveRequestGate()


@lru_cache(maxsize=1)
def get_pipeline() -> PosterPipeline:
    try:
        backend = GenAIBackend(settings.genai)
    except Exception as exc:
        logger.exception("Failed to initialise generation backend: %s", exc)
        raise HTTPException(status_code=503, detail="Generation service unavailable") from exc
    return PosterPipeline(backend, settings)


@lru_cache(maxsize=1)
def get_credit_gate() -> CreditGate:
    return UnmeteredCreditGate()


def get_request_gate() -> ActiveRequestGate:
    return request_gate


@app.get("/", include_in_schema=False)
def root() -> dict[str, Any]:
    return {"service": "poster-studio", "ok": True}


@app.head("/", include_in_schema=False)
def root_head() -> Response:
    return Response(status_code=200)


@app.get("/health")
def health() -> dict[str, bool]:
    return {"ok": True}


@app.post("/api/posters", response_model=PosterBatchResponse)
async def create_posters(
    payload: PosterRequest,
    pipeline: PosterPipeline = Depends(get_pipeline),
    credits: CreditGate = Depends(get_credit_gate),
    gate: ActiveRequestGate = Depends(get_request_gate),
) -> PosterBatchResponse:
    try:
        form = parse_form_data(payload.form)
        brand_kit = parse_brand_kit(payload.brand_kit)
    except FormValidationError as exc:
        logger.warning("poster.form.invalid", extra={"issues": exc.issues})
        raise HTTPException(status_code=422, detail={"issues": exc.issues}) from exc

    keys = [f"{payload.idempotency_key}:{index}" for index in range(payload.variants)]
    reserved: list[str] = []
    for key in keys:
        if not await credits.reserve(key):
            for held in reserved:
                await credits.release(held)
            logger.info(
                "poster.credits.refused",
                extra={"idempotency_key": payload.idempotency_key, "variants": payload.variants},
            )
            raise HTTPException(status_code=402, detail="Insufficient credits")
        reserved.append(key)

    scope = payload.session_id
    token = gate.begin(scope) if scope else None
    try:
        outcomes = await pipeline.generate_batch(
            form,
            payload.variants,
            brand_kit=brand_kit,
        )
    finally:
        superseded = scope is not None and not gate.is_current(scope, token)
        if scope is not None and not superseded:
            gate.finish(scope, token)

    usage: list[GenerationUsage] = []
    for outcome in outcomes:
        usage.extend(outcome.usage)
        if not outcome.ok:
            await credits.release(keys[outcome.index])

    if superseded:
        logger.info(
            "poster.superseded",
            extra={"session_id": scope, "usage_records": len(usage)},
        )
        raise HTTPException(status_code=409, detail="Superseded by a newer request")

    return PosterBatchResponse(
        results=[outcome.to_dict() for outcome in outcomes],
        usage=[record.to_dict() for record in usage],
    )


@app.post("/api/menus", response_model=MenuResponse)
async def create_menu(
    payload: MenuRequest,
    pipeline: PosterPipeline = Depends(get_pipeline),
    credits: CreditGate = Depends(get_credit_gate),
    gate: ActiveRequestGate = Depends(get_request_gate),
) -> MenuResponse:
    try:
        menu = parse_menu_form(payload.form)
        brand_kit = parse_brand_kit(payload.brand_kit)
    except FormValidationError as exc:
        logger.warning("menu.form.invalid", extra={"issues": exc.issues})
        raise HTTPException(status_code=422, detail={"issues": exc.issues}) from exc

    # One reservation per credit unit.
    keys = [f"{payload.idempotency_key}:menu:{unit}" for unit in range(MENU_CREDIT_COST)]
    reserved: list[str] = []
    for key in keys:
        if not await credits.reserve(key):
            for held in reserved:
                await credits.release(held)
            logger.info(
                "menu.credits.refused",
                extra={"idempotency_key": payload.idempotency_key, "cost": MENU_CREDIT_COST},
            )
            raise HTTPException(status_code=402, detail="Insufficient credits")
        reserved.append(key)

    scope = f"menu:{payload.session_id}" if payload.session_id else None
    token = gate.begin(scope) if scope else None
    try:
        outcome = await pipeline.generate_menu(menu, brand_kit=brand_kit)
    finally:
        superseded = scope is not None and not gate.is_current(scope, token)
        if scope is not None and not superseded:
            gate.finish(scope, token)

    if not outcome.ok:
        for key in keys:
            await credits.release(key)

    if superseded:
        logger.info(
            "menu.superseded",
            extra={"session_id": payload.session_id, "usage_records": len(outcome.usage)},
        )
        raise HTTPException(status_code=409, detail="Superseded by a newer request")

    return MenuResponse(
        result=outcome.to_dict(),
        usage=[record.to_dict() for record in outcome.usage],
    )
