"""Command line interface for agrivoice."""

from __future__ import annotations

import json
from contextlib import contextmanager
from dataclasses import asdict, dataclass
from typing import Any, Callable, Dict, Iterator, List, Optional

import httpx
import typer

from . import __version__
from . import config as config_mod
from .clients import ApiClient, OpenMeteoClient, UpstreamError
from .config import ConfigError
from .generator import build_generation_service
from .models import Language, LocationSelection
from .orchestrator import AdviceGenerator, AdviceOrchestrator, OutcomeStatus, WeatherSource, summarise_weather
from .search import DebouncedSearchCoordinator, Geocoder
from .suggestions import format_suggestions
from .transcript import TranscriptStateMachine

app = typer.Typer(add_completion=False, help="Voice-to-advice farming assistant.")


@dataclass
class _Pipeline:
    geocoder: Geocoder
    weather: WeatherSource
    generator: AdviceGenerator
    remote: bool


def _report_http_error(exc: httpx.HTTPError) -> None:
    detail = str(exc)
    status_text = ""
    response = getattr(exc, "response", None)
    if response is not None:
        status_text = f"{response.status_code} {response.request.method} {response.request.url}"
        try:
            payload = response.json()
            detail = payload.get("error") or payload.get("detail") or detail
        except Exception:
            detail = response.text or detail
    typer.secho(f"Request to API failed ({status_text}): {detail}", fg=typer.colors.RED, err=True)


def _load_config() -> config_mod.Config:
    try:
        return config_mod.load_config()
    except ConfigError as exc:
        typer.secho(str(exc), fg=typer.colors.RED, err=True)
        raise typer.Exit(code=1) from exc


@contextmanager
def _pipeline(cfg: config_mod.Config, offline: bool) -> Iterator[_Pipeline]:
    if offline or not cfg.server_url:
        with OpenMeteoClient.from_config(cfg) as meteo:
            yield _Pipeline(meteo, meteo, build_generation_service(cfg), remote=False)
        return
    with ApiClient.from_config(cfg) as client:
        yield _Pipeline(client, client, client, remote=True)


def _language(value: Optional[str], cfg: config_mod.Config) -> Language:
    return Language.parse(value or cfg.language)


def _version_callback(value: bool) -> None:
    if value:
        typer.echo(f"agrivoice v{__version__}")
        raise typer.Exit()


@app.callback()
def main(
    version: bool = typer.Option(
        False, "--version", "-v", callback=_version_callback, is_eager=True, help="Show version and exit"
    ),
) -> None:
    """Ask farming questions and get weather-aware suggestions."""


@app.command()
def ask(
    question: str = typer.Argument(..., help="The farming question, as you would say it."),
    location: Optional[str] = typer.Option(None, "--location", "-l", help="Place name to search for."),
    lat: Optional[float] = typer.Option(None, "--lat", help="Latitude, instead of a place search."),
    lon: Optional[float] = typer.Option(None, "--lon", help="Longitude, instead of a place search."),
    language: Optional[str] = typer.Option(None, "--language", help="Answer language (en, ja, hi)."),
    offline: bool = typer.Option(False, "--offline", help="Run locally instead of using the API server."),
) -> None:
    """Generate agricultural suggestions for a question and a location."""

    cfg = _load_config()
    lang = _language(language, cfg)

    transcript = TranscriptStateMachine(language=lang)
    transcript.focus()
    transcript.edit(question)
    transcript.blur()

    with _pipeline(cfg, offline) as pipeline:
        orchestrator = AdviceOrchestrator(
            weather=pipeline.weather,
            generator=pipeline.generator,
            language=lang,
            on_warning=lambda text: typer.secho(text, fg=typer.colors.YELLOW, err=True),
        )
        rejection = orchestrator.check_transcript(transcript.text)
        if rejection:
            typer.secho(rejection, fg=typer.colors.RED, err=True)
            raise typer.Exit(code=1)

        if lat is not None and lon is not None:
            orchestrator.select_location(LocationSelection(lat=lat, lon=lon, name=location or ""))
        elif location:
            coordinator = DebouncedSearchCoordinator(
                pipeline.geocoder,
                delay_s=cfg.search_delay,
                language=lang,
                on_select=orchestrator.select_location,
            )
            results = coordinator.search_now(location)
            if not results:
                typer.secho(f"No places found for {location!r}.", fg=typer.colors.RED, err=True)
                raise typer.Exit(code=1)
            selection = coordinator.select(results[0])
            typer.secho(f"Location: {selection.name}", fg=typer.colors.BLUE)

        outcome = orchestrator.generate(transcript.text)

    if outcome.status in (OutcomeStatus.REJECTED, OutcomeStatus.FAILED):
        typer.secho(outcome.message or "Generation failed", fg=typer.colors.RED, err=True)
        raise typer.Exit(code=1)

    if orchestrator.weather:
        typer.secho(f"Weather: {summarise_weather(orchestrator.weather)}", fg=typer.colors.BLUE)
    typer.echo("")
    typer.echo(format_suggestions(outcome.suggestions))


@app.command()
def geocode(
    query: str = typer.Argument(..., help="Place name to look up."),
    language: Optional[str] = typer.Option(None, "--language", help="Result language (en, ja, hi)."),
    offline: bool = typer.Option(False, "--offline", help="Query Open-Meteo directly instead of the API server."),
) -> None:
    """List places matching a name, in relevance order."""

    cfg = _load_config()
    lang = _language(language, cfg)
    with _pipeline(cfg, offline) as pipeline:
        results = _call(lambda: pipeline.geocoder.search(query, lang.value))

    if not results:
        typer.echo("No places found.")
        return
    header = f"{'#':<3}  {'Place':<45}  {'Lat':>8}  {'Lon':>9}"
    typer.echo(header)
    typer.echo("-" * len(header))
    for index, result in enumerate(results, start=1):
        typer.echo(f"{index:<3}  {result.display_name[:45]:<45}  {result.latitude:>8.3f}  {result.longitude:>9.3f}")


@app.command()
def weather(
    lat: float = typer.Option(..., "--lat", help="Latitude."),
    lon: float = typer.Option(..., "--lon", help="Longitude."),
    offline: bool = typer.Option(False, "--offline", help="Query Open-Meteo directly instead of the API server."),
) -> None:
    """Show current weather for coordinates."""

    cfg = _load_config()
    with _pipeline(cfg, offline) as pipeline:
        payload = _call(lambda: pipeline.weather.fetch(lat, lon))

    current = payload.get("current_weather") or {}
    typer.echo(f"Location: {payload.get('latitude', lat)}, {payload.get('longitude', lon)}")
    typer.echo(summarise_weather(payload))
    typer.echo(f"Wind: {current.get('windspeed', '-')}")


@app.command()
def health() -> None:
    """Check connectivity to the configured API server."""

    cfg = _load_config()
    if not cfg.server_url:
        typer.secho(
            "No API server configured. Run `agrivoice config --server-url http://host:4000` first.",
            fg=typer.colors.RED,
            err=True,
        )
        raise typer.Exit(code=1)
    with ApiClient.from_config(cfg) as client:
        payload = _call(client.health)

    typer.echo(f"Status: {payload.get('status', 'unknown')}")
    typer.echo(f"Mode: {payload.get('mode', 'unknown')}")
    typer.echo(f"Model: {payload.get('model') or '-'}")


@app.command()
def serve(
    host: Optional[str] = typer.Option(None, help="Interface to bind."),
    port: Optional[int] = typer.Option(None, help="Port to listen on."),
    log_level: str = typer.Option("info", help="Log level passed to uvicorn."),
) -> None:  # pragma: no cover - starts a server
    """Run the HTTP API."""

    import uvicorn

    cfg = _load_config()
    uvicorn.run(
        "agrivoice.api:create_app",
        factory=True,
        host=host or cfg.host,
        port=port or cfg.port,
        log_level=log_level,
    )


@app.command()
def config(
    generator_mode: Optional[str] = typer.Option(None, help="Advice generator mode (remote or local-only)."),
    openrouter_api_key: Optional[str] = typer.Option(None, help="API key for OpenRouter."),
    openrouter_model: Optional[str] = typer.Option(None, help="OpenRouter model id."),
    provider_timeout: Optional[float] = typer.Option(None, help="Timeout (seconds) for the advice provider."),
    server_url: Optional[str] = typer.Option(None, help="Base URL of the agrivoice API server."),
    api_timeout: Optional[float] = typer.Option(None, help="HTTP client timeout (seconds) for API calls."),
    verify_ssl: Optional[bool] = typer.Option(
        None,
        "--verify-ssl/--no-verify-ssl",
        help="Toggle TLS certificate verification for API calls.",
    ),
    language: Optional[str] = typer.Option(None, help="Default language (en, ja, hi)."),
    allowed_origin: Optional[List[str]] = typer.Option(
        None, "--allowed-origin", help="Origin allowed to call the API; repeat for several."
    ),
    show: bool = typer.Option(False, "--show", help="Display the active configuration."),
) -> None:
    """Update or inspect configuration settings."""

    updates: Dict[str, Any] = {
        key: value
        for key, value in {
            "generator_mode": generator_mode,
            "openrouter_api_key": openrouter_api_key,
            "openrouter_model": openrouter_model,
            "provider_timeout": provider_timeout,
            "server_url": server_url,
            "api_timeout": api_timeout,
            "verify_ssl": verify_ssl,
            "language": Language.parse(language).value if language else None,
            "allowed_origins": list(allowed_origin) if allowed_origin else None,
        }.items()
        if value is not None
    }

    if show or not updates:
        cfg = _load_config()
        data = asdict(cfg)
        if data.get("openrouter_api_key"):
            data["openrouter_api_key"] = "***"
        typer.echo(json.dumps(data, indent=2, default=str))
        return

    try:
        config_mod.update_config(**updates)
    except ConfigError as exc:
        typer.secho(str(exc), fg=typer.colors.RED, err=True)
        raise typer.Exit(code=1) from exc
    typer.secho("Configuration updated.", fg=typer.colors.BLUE)


def _call(func: Callable[[], Any]) -> Any:
    try:
        return func()
    except httpx.HTTPError as exc:
        _report_http_error(exc)
        raise typer.Exit(code=1) from exc
    except UpstreamError as exc:
        typer.secho(f"Upstream request failed: {exc}", fg=typer.colors.RED, err=True)
        raise typer.Exit(code=1) from exc


if __name__ == "__main__":  # pragma: no cover
    app()
