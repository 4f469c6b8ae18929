"""HTTP clients for Open-Meteo and for the agrivoice API server."""

from __future__ import annotations

from typing import Any, Dict, List, Optional

import httpx

from .models import AdviceRequest, AdviceResult, AdviceSource, Config, GeocodeResult
from .orchestrator import GenerationError

GEOCODE_COUNT = 10
FORECAST_DAYS = 3
HOURLY_FIELDS = "temperature_2m,precipitation,cloudcover,windspeed_10m"


class UpstreamError(RuntimeError):
    """Raised when an upstream weather service cannot be reached."""

    def __init__(self, message: str, detail: Optional[Any] = None) -> None:
        super().__init__(message)
        self.detail = detail if detail is not None else message


def _response_detail(exc: httpx.HTTPError) -> Any:
    response = getattr(exc, "response", None)
    if response is None:
        return str(exc)
    try:
        return response.json()
    except ValueError:
        return response.text or str(exc)


class OpenMeteoClient:
    """Geocoding and forecast lookups against the public Open-Meteo APIs."""

    def __init__(
        self,
        geocode_url: str = "https://geocoding-api.open-meteo.com/v1/search",
        forecast_url: str = "https://api.open-meteo.com/v1/forecast",
        timeout: float = 30.0,
        transport: Optional[httpx.BaseTransport] = None,
    ) -> None:
        self._geocode_url = geocode_url
        self._forecast_url = forecast_url
        self._client = httpx.Client(timeout=timeout, transport=transport)

    @classmethod
    def from_config(cls, config: Config) -> "OpenMeteoClient":
        return cls(
            geocode_url=config.geocode_url,
            forecast_url=config.forecast_url,
            timeout=config.upstream_timeout,
        )

    def geocode(self, query: str, lang: str = "en") -> List[Dict[str, Any]]:
        params = {"name": query, "count": GEOCODE_COUNT, "language": lang, "format": "json"}
        payload = self._get(self._geocode_url, params)
        return list(payload.get("results") or [])

    def search(self, query: str, lang: str = "en") -> List[GeocodeResult]:
        return [GeocodeResult.from_payload(item) for item in self.geocode(query, lang)]

    def forecast(self, lat: float, lon: float) -> Dict[str, Any]:
        params = {
            "latitude": lat,
            "longitude": lon,
            "hourly": HOURLY_FIELDS,
            "current_weather": "true",
            "timezone": "auto",
            "forecast_days": FORECAST_DAYS,
        }
        return self._get(self._forecast_url, params)

    def fetch(self, lat: float, lon: float) -> Dict[str, Any]:
        return self.forecast(lat, lon)

    def close(self) -> None:
        self._client.close()

    def __enter__(self) -> "OpenMeteoClient":
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()

    def _get(self, url: str, params: Dict[str, Any]) -> Dict[str, Any]:
        try:
            response = self._client.get(url, params=params)
            response.raise_for_status()
            payload = response.json()
        except httpx.HTTPError as exc:
            raise UpstreamError(f"Request to {url} failed: {exc}", detail=_response_detail(exc)) from exc
        except ValueError as exc:
            raise UpstreamError(f"Invalid JSON from {url}") from exc
        if not isinstance(payload, dict):
            raise UpstreamError(f"Unexpected payload from {url}", detail=payload)
        return payload


class ApiClient:
    """Client side collaborators backed by the agrivoice HTTP API."""

    def __init__(
        self,
        base_url: str,
        timeout: float = 90.0,
        verify: bool = True,
        transport: Optional[httpx.BaseTransport] = None,
    ) -> None:
        self._client = httpx.Client(
            base_url=base_url.rstrip("/"),
            timeout=timeout,
            verify=verify,
            transport=transport,
        )

    @classmethod
    def from_config(cls, config: Config) -> "ApiClient":
        if not config.server_url:
            raise ValueError("No API server configured")
        return cls(config.server_url, timeout=config.api_timeout, verify=config.verify_ssl)

    def search(self, query: str, lang: str = "en") -> List[GeocodeResult]:
        response = self._client.get("/api/geocode", params={"q": query, "lang": lang})
        response.raise_for_status()
        return [GeocodeResult.from_payload(item) for item in response.json().get("results") or []]

    def fetch(self, lat: float, lon: float) -> Dict[str, Any]:
        response = self._client.get("/api/weather", params={"lat": lat, "lon": lon})
        response.raise_for_status()
        return response.json()

    def generate(self, request: AdviceRequest) -> AdviceResult:
        body = {
            "text": request.transcript_text,
            "lat": request.location.lat,
            "lon": request.location.lon,
            "locationName": request.location.name,
            "weatherSummary": request.weather_summary,
            "language": request.language.value,
        }
        try:
            response = self._client.post("/api/generate", json=body)
            response.raise_for_status()
            payload = response.json()
        except httpx.HTTPError as exc:
            raise GenerationError(_generation_detail(exc)) from exc
        except ValueError as exc:
            raise GenerationError(f"Invalid response from server: {exc}") from exc

        try:
            source = AdviceSource(payload.get("source"))
        except ValueError:
            source = AdviceSource.LOCAL_FALLBACK if payload.get("error") else AdviceSource.PROVIDER
        return AdviceResult(
            text=str(payload.get("result") or ""),
            source=source,
            provider_error=payload.get("error"),
        )

    def health(self) -> Dict[str, Any]:
        response = self._client.get("/api/health")
        response.raise_for_status()
        return response.json()

    def close(self) -> None:
        self._client.close()

    def __enter__(self) -> "ApiClient":
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()


def _generation_detail(exc: httpx.HTTPError) -> str:
    """Pick the most specific message available for a failed generate call."""

    response = getattr(exc, "response", None)
    if response is not None:
        try:
            payload = response.json()
        except ValueError:
            payload = None
        if isinstance(payload, dict):
            for key in ("error", "detail"):
                if payload.get(key):
                    return str(payload[key])
        if response.text:
            return response.text
    return str(exc) or type(exc).__name__
