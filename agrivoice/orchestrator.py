"""Sequence weather lookup and advice generation for one question."""

from __future__ import annotations

import logging
import threading
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Callable, Dict, List, Optional, Protocol

from . import messages
from .models import AdviceRequest, AdviceResult, AdviceSource, Language, LocationSelection
from .suggestions import parse_suggestions

WEATHER_UNAVAILABLE = "N/A"
MIN_TRANSCRIPT_LENGTH = 2

NoticeCallback = Callable[[str], None]


class GenerationError(RuntimeError):
    """Raised by an advice generator when the request itself failed."""

    def __init__(self, detail: str) -> None:
        super().__init__(detail)
        self.detail = detail


class WeatherSource(Protocol):
    def fetch(self, lat: float, lon: float) -> Dict[str, Any]: ...


class AdviceGenerator(Protocol):
    def generate(self, request: AdviceRequest) -> AdviceResult: ...


class OutcomeStatus(str, Enum):
    COMPLETED = "completed"
    REJECTED = "rejected"
    FAILED = "failed"
    SUPERSEDED = "superseded"


@dataclass
class AdviceOutcome:
    status: OutcomeStatus
    message: Optional[str] = None
    result: Optional[AdviceResult] = None
    suggestions: List[str] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return self.status == OutcomeStatus.COMPLETED


def summarise_weather(weather: Optional[Dict[str, Any]]) -> str:
    if not weather:
        return WEATHER_UNAVAILABLE
    current = weather.get("current_weather")
    if not isinstance(current, dict) or current.get("temperature") is None:
        return WEATHER_UNAVAILABLE
    return f"Now: {current['temperature']}°C"


class AdviceOrchestrator:
    """Validate input, fetch weather, then ask the generator for advice.

    Weather failures are absorbed and replaced by ``"N/A"``. A result that came
    from the local fallback is still shown but triggers a warning notice. Only
    a failing generation call is reported as an error, and it leaves the
    current suggestions untouched.
    """

    def __init__(
        self,
        weather: WeatherSource,
        generator: AdviceGenerator,
        language: Language = Language.EN,
        on_warning: Optional[NoticeCallback] = None,
        on_error: Optional[NoticeCallback] = None,
    ) -> None:
        self._weather_source = weather
        self._generator = generator
        self.language = language
        self._on_warning = on_warning
        self._on_error = on_error

        self._lock = threading.Lock()
        self._request_id = 0
        self._in_flight = 0
        self.location: Optional[LocationSelection] = None
        self.weather: Optional[Dict[str, Any]] = None
        self.suggestions_text = ""

    @property
    def loading(self) -> bool:
        return self._in_flight > 0

    @property
    def suggestions(self) -> List[str]:
        return parse_suggestions(self.suggestions_text)

    def select_location(self, location: Optional[LocationSelection]) -> None:
        self.location = location

    def clear(self) -> None:
        with self._lock:
            self._request_id += 1
        self.location = None
        self.weather = None
        self.suggestions_text = ""

    def validate(self, transcript: Optional[str]) -> Optional[str]:
        """Return the localized rejection message, or ``None`` when ready."""

        rejection = self.check_transcript(transcript)
        if rejection is not None:
            return rejection
        if self.location is None or self.location.lat is None:
            return messages.message(messages.SELECT_LOCATION, self.language)
        return None

    def check_transcript(self, transcript: Optional[str]) -> Optional[str]:
        if len((transcript or "").strip()) < MIN_TRANSCRIPT_LENGTH:
            return messages.message(messages.SPEAK_FIRST, self.language)
        return None

    def generate(self, transcript: Optional[str]) -> AdviceOutcome:
        rejection = self.validate(transcript)
        if rejection is not None:
            self._emit(self._on_error, rejection)
            return AdviceOutcome(status=OutcomeStatus.REJECTED, message=rejection)

        location = self.location
        language = self.language
        with self._lock:
            self._request_id += 1
            request_id = self._request_id
            self._in_flight += 1
        try:
            weather = self._fetch_weather(location)
            if weather is not None and self._is_current(request_id):
                self.weather = weather
            request = AdviceRequest(
                transcript_text=transcript or "",
                location=location,
                weather_summary=summarise_weather(weather),
                language=language,
            )
            try:
                result = self._generator.generate(request)
            except GenerationError as exc:
                return self._fail(request_id, exc.detail)
            except Exception as exc:
                logging.exception("Unexpected error while generating advice")
                return self._fail(request_id, str(exc) or type(exc).__name__)
        finally:
            with self._lock:
                self._in_flight -= 1

        if not self._is_current(request_id):
            logging.debug("Ignoring superseded advice result %d", request_id)
            return AdviceOutcome(status=OutcomeStatus.SUPERSEDED, result=result)

        self.suggestions_text = result.text.strip() or messages.message(messages.NO_SUGGESTION, language)
        notice = None
        if result.source == AdviceSource.LOCAL_FALLBACK:
            logging.warning("Advice generated by local fallback: %s", result.provider_error)
            notice = messages.message(messages.FALLBACK_USED, language)
            self._emit(self._on_warning, notice)
        return AdviceOutcome(
            status=OutcomeStatus.COMPLETED,
            message=notice,
            result=result,
            suggestions=self.suggestions,
        )

    def _fetch_weather(self, location: LocationSelection) -> Optional[Dict[str, Any]]:
        try:
            return self._weather_source.fetch(location.lat, location.lon)
        except Exception as exc:
            logging.warning("Weather fetch failed, continuing without it: %s", exc)
            return None

    def _fail(self, request_id: int, detail: str) -> AdviceOutcome:
        if not self._is_current(request_id):
            return AdviceOutcome(status=OutcomeStatus.SUPERSEDED)
        logging.error("Advice generation failed: %s", detail)
        text = f"{messages.message(messages.GENERATION_FAILED, self.language)}: {detail}"
        self._emit(self._on_error, text)
        return AdviceOutcome(status=OutcomeStatus.FAILED, message=text)

    def _is_current(self, request_id: int) -> bool:
        with self._lock:
            return request_id == self._request_id

    def _emit(self, callback: Optional[NoticeCallback], text: str) -> None:
        if callback:
            callback(text)
