"""Dataclasses describing the records exchanged by agrivoice components."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional


class Language(str, Enum):
    EN = "en"
    JA = "ja"
    HI = "hi"

    @classmethod
    def parse(cls, value: Optional[str]) -> "Language":
        """Return the matching language, defaulting to English for unknown codes."""

        try:
            return cls((value or "").strip().lower())
        except ValueError:
            return cls.EN

    @property
    def locale(self) -> str:
        return _LOCALES[self]


_LOCALES = {
    Language.EN: "en-US",
    Language.JA: "ja-JP",
    Language.HI: "hi-IN",
}


class TranscriptSource(str, Enum):
    RECOGNIZED_INTERIM = "recognized_interim"
    RECOGNIZED_FINAL = "recognized_final"
    USER_EDIT = "user_edit"


class ListeningPhase(str, Enum):
    IDLE = "IDLE"
    LISTENING = "LISTENING"
    EDITING = "EDITING"


class SpeechEventKind(str, Enum):
    INTERIM = "interim"
    FINAL = "final"
    END = "end"
    ERROR = "error"


@dataclass(frozen=True, slots=True)
class SpeechEvent:
    """A single notification from the speech capture capability."""

    kind: SpeechEventKind
    text: str = ""
    message: str = ""


@dataclass(frozen=True, slots=True)
class TranscriptState:
    """Snapshot of the transcript shown to the user."""

    text: str = ""
    source: TranscriptSource = TranscriptSource.USER_EDIT
    phase: ListeningPhase = ListeningPhase.IDLE
    lock_enabled: bool = True
    capturing: bool = False
    final_text: str = ""

    @property
    def editing(self) -> bool:
        return self.phase == ListeningPhase.EDITING

    @property
    def locked(self) -> bool:
        return self.editing and self.lock_enabled


@dataclass(frozen=True, slots=True)
class LocationSelection:
    lat: float
    lon: float
    name: str = ""

    @property
    def label(self) -> str:
        return self.name.strip() or f"{self.lat},{self.lon}"


@dataclass(frozen=True, slots=True)
class GeocodeResult:
    """A single place returned by the geocoder, kept in provider order."""

    name: str
    latitude: float
    longitude: float
    admin1: Optional[str] = None
    country: Optional[str] = None
    extra: Dict[str, Any] = field(default_factory=dict, compare=False)

    @classmethod
    def from_payload(cls, payload: Dict[str, Any]) -> "GeocodeResult":
        known = {"name", "latitude", "longitude", "admin1", "country"}
        return cls(
            name=str(payload.get("name") or ""),
            latitude=float(payload["latitude"]),
            longitude=float(payload["longitude"]),
            admin1=payload.get("admin1") or None,
            country=payload.get("country") or None,
            extra={k: v for k, v in payload.items() if k not in known},
        )

    def to_payload(self) -> Dict[str, Any]:
        payload: Dict[str, Any] = dict(self.extra)
        payload.update(
            {
                "name": self.name,
                "latitude": self.latitude,
                "longitude": self.longitude,
                "admin1": self.admin1,
                "country": self.country,
            }
        )
        return payload

    @property
    def display_name(self) -> str:
        parts = [self.name]
        if self.admin1:
            parts.append(self.admin1)
        if self.country:
            parts.append(self.country)
        return ", ".join(parts)

    def to_selection(self) -> LocationSelection:
        return LocationSelection(lat=self.latitude, lon=self.longitude, name=self.display_name)


@dataclass(slots=True)
class SearchSession:
    query: str = ""
    results: List[GeocodeResult] = field(default_factory=list)
    visible: bool = False
    pending: bool = False


@dataclass(frozen=True, slots=True)
class AdviceRequest:
    transcript_text: str
    location: LocationSelection
    weather_summary: str
    language: Language = Language.EN


class AdviceSource(str, Enum):
    PROVIDER = "openrouter"
    LOCAL_FALLBACK = "local"


@dataclass(frozen=True, slots=True)
class AdviceResult:
    text: str
    source: AdviceSource
    provider_error: Optional[Any] = None


@dataclass(slots=True)
class Config:
    """User configuration stored on disk."""

    generator_mode: str = "remote"
    openrouter_api_key: Optional[str] = None
    openrouter_model: str = "openrouter/auto"
    openrouter_url: str = "https://openrouter.ai/api/v1/chat/completions"
    provider_timeout: float = 60.0
    temperature: float = 0.7
    max_tokens: int = 600
    geocode_url: str = "https://geocoding-api.open-meteo.com/v1/search"
    forecast_url: str = "https://api.open-meteo.com/v1/forecast"
    upstream_timeout: float = 30.0
    allowed_origins: List[str] = field(default_factory=lambda: ["http://localhost:5173"])
    server_url: Optional[str] = None
    api_timeout: float = 90.0
    verify_ssl: bool = True
    language: str = "en"
    search_delay: float = 0.4
    host: str = "127.0.0.1"
    port: int = 4000
