"""FastAPI application for the agrivoice advice service."""

from __future__ import annotations

import logging
import re
from contextlib import asynccontextmanager
from typing import Any, AsyncIterator, Iterable, Optional

from fastapi import APIRouter, FastAPI, Request, status
from fastapi.concurrency import run_in_threadpool
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pydantic import BaseModel, ConfigDict, Field

from ..clients import OpenMeteoClient, UpstreamError
from ..config import load_config
from ..generator import GenerationService, build_generation_service
from ..models import AdviceRequest, Config, Language, LocationSelection

router = APIRouter(prefix="/api")


class HealthResponse(BaseModel):
    status: str = "ok"
    mode: str
    model: Optional[str] = None


class GeneratePayload(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    text: str = ""
    lat: float
    lon: float
    location_name: str = Field("", alias="locationName")
    weather_summary: str = Field("", alias="weatherSummary")
    language: str = "en"


class GenerateResponse(BaseModel):
    result: str
    source: str
    error: Optional[Any] = None


def origin_pattern(allowed: Iterable[str]) -> Optional[str]:
    """Compile allow-list entries into one anchored regular expression.

    Entries are exact origins or origins whose first host label is ``*``,
    which matches exactly one subdomain level. A lone ``*`` allows any origin.
    """

    alternatives = []
    for entry in allowed:
        entry = entry.strip().rstrip("/")
        if not entry:
            continue
        if entry == "*":
            alternatives.append(r"[^\s]+")
            continue
        alternatives.append(re.escape(entry).replace(r"\*", r"[^./:]+"))
    if not alternatives:
        return None
    return "^(?:" + "|".join(alternatives) + ")$"


@asynccontextmanager
async def _lifespan(app: FastAPI) -> AsyncIterator[None]:
    yield
    await run_in_threadpool(app.state.weather.close)


def create_app(
    config: Optional[Config] = None,
    generation: Optional[GenerationService] = None,
    weather: Optional[OpenMeteoClient] = None,
) -> FastAPI:
    config = config or load_config()
    app = FastAPI(
        title="agrivoice API",
        description="Weather lookup and AI agricultural advice for voice questions.",
        version="0.1.0",
        lifespan=_lifespan,
    )
    app.state.config = config
    app.state.generation = generation or build_generation_service(config)
    app.state.weather = weather or OpenMeteoClient.from_config(config)

    app.add_middleware(
        CORSMiddleware,
        allow_origin_regex=origin_pattern(config.allowed_origins),
        allow_credentials=False,
        allow_methods=["GET", "POST", "OPTIONS"],
        allow_headers=["*"],
    )
    app.include_router(router)
    return app


def _error(status_code: int, **body: Any) -> JSONResponse:
    return JSONResponse(status_code=status_code, content=body)


@router.get("/health", response_model=HealthResponse)
async def healthcheck(request: Request) -> HealthResponse:
    generation: GenerationService = request.app.state.generation
    return HealthResponse(mode=generation.mode, model=generation.model)


@router.get("/geocode")
async def geocode(request: Request, q: Optional[str] = None, lang: str = "en") -> Any:
    query = (q or "").strip()
    if not query:
        return _error(status.HTTP_400_BAD_REQUEST, error="q query param required")

    client: OpenMeteoClient = request.app.state.weather
    try:
        results = await run_in_threadpool(client.geocode, query, lang)
    except UpstreamError as exc:
        logging.warning("Geocoding failed for %r: %s", query, exc)
        return _error(status.HTTP_500_INTERNAL_SERVER_ERROR, error="geocoding failed", detail=exc.detail)
    return {"results": results}


@router.get("/weather")
async def weather(request: Request, lat: Optional[str] = None, lon: Optional[str] = None) -> Any:
    if lat is None or lon is None or not lat.strip() or not lon.strip():
        return _error(status.HTTP_400_BAD_REQUEST, error="lat and lon required")
    try:
        latitude, longitude = float(lat), float(lon)
    except ValueError:
        return _error(status.HTTP_400_BAD_REQUEST, error="lat and lon must be numbers")

    client: OpenMeteoClient = request.app.state.weather
    try:
        return await run_in_threadpool(client.forecast, latitude, longitude)
    except UpstreamError as exc:
        logging.warning("Weather fetch failed for %s,%s: %s", lat, lon, exc)
        return _error(
            status.HTTP_502_BAD_GATEWAY,
            error="weather fetch failed",
            detail=exc.detail,
            fallback={"latitude": latitude, "longitude": longitude, "current_weather": None},
        )


@router.post("/generate", response_model=GenerateResponse, response_model_exclude_none=True)
async def generate(request: Request, payload: GeneratePayload) -> Any:
    logging.debug(
        "Generate request: text=%r lat=%s lon=%s language=%s location=%r",
        payload.text[:200],
        payload.lat,
        payload.lon,
        payload.language,
        payload.location_name,
    )
    advice_request = AdviceRequest(
        transcript_text=payload.text,
        location=LocationSelection(lat=payload.lat, lon=payload.lon, name=payload.location_name),
        weather_summary=payload.weather_summary,
        language=Language.parse(payload.language),
    )
    generation: GenerationService = request.app.state.generation
    try:
        result = await run_in_threadpool(generation.generate, advice_request)
    except Exception as exc:
        logging.exception("Advice generation failed unexpectedly")
        return _error(status.HTTP_500_INTERNAL_SERVER_ERROR, error="generation failed", detail=str(exc))
    return GenerateResponse(result=result.text, source=result.source.value, error=result.provider_error)
