"""Advice generation backends.

``GenerationService`` talks to a remote chat-completion provider and falls back
to :class:`LocalGenerator` whenever the provider fails, so callers always get
usable advice. Provider failures are attached to the result for diagnostics
instead of being raised.
"""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Callable, Dict, List, Optional, Protocol, Union

import httpx

from .models import AdviceRequest, AdviceResult, AdviceSource, Config, Language

REMOTE = "remote"
LOCAL_ONLY = "local-only"

RAW_PAYLOAD_LIMIT = 2000

SYSTEM_PROMPT = (
    "You are an experienced agricultural advisor. "
    "Provide 3-6 concise, actionable bullet suggestions."
)

Message = Dict[str, str]


class ProviderError(RuntimeError):
    """Raised when the remote provider cannot produce advice."""

    def __init__(self, message: str, detail: Optional[Any] = None, status_code: Optional[int] = None) -> None:
        super().__init__(message)
        self.detail = detail if detail is not None else message
        self.status_code = status_code


class ChatProvider(Protocol):
    model: str

    def complete(self, messages: List[Message]) -> Dict[str, Any]:
        """Return the decoded response envelope or raise :class:`ProviderError`."""


def build_messages(request: AdviceRequest) -> List[Message]:
    prompt = (
        f'User question: "{request.transcript_text}"\n'
        f"Location: {request.location.label}\n"
        f"Weather: {request.weather_summary}\n"
        "Please provide 3-6 practical agricultural suggestions in language code: "
        f"{request.language.value}. Use short bullet points."
    )
    return [
        {"role": "system", "content": SYSTEM_PROMPT},
        {"role": "user", "content": prompt},
    ]


@dataclass(frozen=True)
class ChoiceContent:
    """``choices[0].message.content`` of an OpenAI style completion."""

    text: str


@dataclass(frozen=True)
class OutputField:
    """Top-level ``output`` field used by some providers."""

    text: str


@dataclass(frozen=True)
class RawPayload:
    """Unknown envelope, rendered as truncated JSON."""

    text: str


ResponseShape = Union[ChoiceContent, OutputField, RawPayload]


def classify_response(payload: Any) -> ResponseShape:
    """Pick the advice text out of a provider envelope.

    A well-formed choice with blank content yields blank text rather than a
    raw dump, so the caller treats it as an empty completion.
    """

    if isinstance(payload, dict):
        content = None
        choices = payload.get("choices")
        if isinstance(choices, list) and choices and isinstance(choices[0], dict):
            message = choices[0].get("message")
            if isinstance(message, dict):
                content = message.get("content")
                if isinstance(content, str) and content.strip():
                    return ChoiceContent(content)
        output = payload.get("output")
        if isinstance(output, str) and output.strip():
            return OutputField(output)
        if isinstance(content, str):
            return ChoiceContent(content)
    return RawPayload(json.dumps(payload, ensure_ascii=False, default=str)[:RAW_PAYLOAD_LIMIT])


def extract_advice_text(payload: Any) -> str:
    text = classify_response(payload).text.strip()
    if not text or text in ("null", "{}", "[]", '""'):
        raise ProviderError("Provider returned an empty completion", detail=payload)
    return text


class OpenRouterProvider:
    """Chat completions over HTTP against an OpenRouter compatible endpoint."""

    def __init__(
        self,
        api_key: Optional[str],
        model: str,
        url: str = "https://openrouter.ai/api/v1/chat/completions",
        timeout: float = 60.0,
        temperature: float = 0.7,
        max_tokens: int = 600,
        transport: Optional[httpx.BaseTransport] = None,
    ) -> None:
        self._api_key = api_key
        self.model = model
        self._url = url
        self._timeout = timeout
        self._temperature = temperature
        self._max_tokens = max_tokens
        self._transport = transport

    def complete(self, messages: List[Message]) -> Dict[str, Any]:
        if not self._api_key:
            raise ProviderError("OpenRouter API key not configured")
        body = {
            "model": self.model,
            "messages": messages,
            "temperature": self._temperature,
            "max_tokens": self._max_tokens,
        }
        headers = {"Authorization": f"Bearer {self._api_key}"}
        try:
            with httpx.Client(timeout=self._timeout, transport=self._transport) as client:
                response = client.post(self._url, json=body, headers=headers)
                response.raise_for_status()
        except httpx.TimeoutException as exc:
            raise ProviderError(f"Provider request timed out after {self._timeout}s") from exc
        except httpx.HTTPStatusError as exc:
            raise ProviderError(
                f"Provider returned HTTP {exc.response.status_code}",
                detail=_error_body(exc.response),
                status_code=exc.response.status_code,
            ) from exc
        except httpx.HTTPError as exc:
            raise ProviderError(f"Provider request failed: {exc}") from exc

        try:
            return response.json()
        except ValueError as exc:
            raise ProviderError("Provider returned malformed JSON", detail=response.text[:RAW_PAYLOAD_LIMIT]) from exc


def _error_body(response: httpx.Response) -> Any:
    try:
        return response.json()
    except ValueError:
        return response.text[:RAW_PAYLOAD_LIMIT] or f"HTTP {response.status_code}"


_LOCAL_TEMPLATES = {
    Language.EN: ("User: {text}", "First check soil moisture and drainage."),
    Language.JA: ("あなたの相談: {text}", "まず土壌の湿度を確認してください。"),
    Language.HI: ("आपका संदेश: {text}", "पहले मिट्टी की नमी जाँचें।"),
}


class LocalGenerator:
    """Deterministic offline advice used when no provider is reachable."""

    def __init__(self, clock: Optional[Callable[[], datetime]] = None) -> None:
        self._clock = clock or (lambda: datetime.now(timezone.utc))

    def generate(self, request: AdviceRequest) -> str:
        header, advisory = _LOCAL_TEMPLATES.get(request.language, _LOCAL_TEMPLATES[Language.EN])
        lines = [
            header.format(text=request.transcript_text),
            advisory,
            f"Generated at {self._clock().isoformat()}",
        ]
        return "\n".join(f"• {line}" for line in lines)


class GenerationService:
    def __init__(
        self,
        mode: str = REMOTE,
        provider: Optional[ChatProvider] = None,
        local: Optional[LocalGenerator] = None,
    ) -> None:
        if mode not in (REMOTE, LOCAL_ONLY):
            raise ValueError(f"Unknown generation mode: {mode}")
        self.mode = mode
        self._provider = provider
        self._local = local or LocalGenerator()

    @property
    def model(self) -> Optional[str]:
        if self.mode == LOCAL_ONLY or self._provider is None:
            return None
        return self._provider.model

    def generate(self, request: AdviceRequest) -> AdviceResult:
        if self.mode == LOCAL_ONLY:
            return AdviceResult(text=self._local.generate(request), source=AdviceSource.LOCAL_FALLBACK)

        try:
            if self._provider is None:
                raise ProviderError("No advice provider configured")
            payload = self._provider.complete(build_messages(request))
            text = extract_advice_text(payload)
        except Exception as exc:
            detail = exc.detail if isinstance(exc, ProviderError) else f"{type(exc).__name__}: {exc}"
            logging.warning("Advice provider failed, using local fallback: %s (%s)", exc, detail)
            return AdviceResult(
                text=self._local.generate(request),
                source=AdviceSource.LOCAL_FALLBACK,
                provider_error=detail,
            )
        logging.debug("Advice provider returned %d characters", len(text))
        return AdviceResult(text=text, source=AdviceSource.PROVIDER)


def build_generation_service(config: Config) -> GenerationService:
    if config.generator_mode == LOCAL_ONLY:
        return GenerationService(mode=LOCAL_ONLY)
    provider = OpenRouterProvider(
        api_key=config.openrouter_api_key,
        model=config.openrouter_model,
        url=config.openrouter_url,
        timeout=config.provider_timeout,
        temperature=config.temperature,
        max_tokens=config.max_tokens,
    )
    return GenerationService(mode=REMOTE, provider=provider)
