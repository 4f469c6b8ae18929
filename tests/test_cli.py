import json
from datetime import datetime, timezone

import pytest
from typer.testing import CliRunner

from agrivoice import __version__, cli
from agrivoice.clients import UpstreamError
from agrivoice.generator import LOCAL_ONLY, GenerationService, LocalGenerator
from agrivoice.models import GeocodeResult

runner = CliRunner()

PUNE = GeocodeResult(name="Pune", latitude=18.52, longitude=73.85, admin1="Maharashtra", country="India")


class FakeMeteo:
    instances = []

    def __init__(self, places=None, fail=False):
        self.places = places if places is not None else {"Pune": [PUNE]}
        self.fail = fail
        self.searches = []
        self.forecasts = []

    @classmethod
    def from_config(cls, config):
        return cls.instances[-1]

    def __enter__(self):
        return self

    def __exit__(self, *exc):
        return None

    def search(self, query, lang="en"):
        self.searches.append((query, lang))
        if self.fail:
            raise UpstreamError("geocoder down")
        return list(self.places.get(query, []))

    def fetch(self, lat, lon):
        self.forecasts.append((lat, lon))
        if self.fail:
            raise UpstreamError("forecast down")
        return {"latitude": lat, "longitude": lon, "current_weather": {"temperature": 31.2, "windspeed": 9.4}}


@pytest.fixture
def meteo(monkeypatch):
    fake = FakeMeteo()
    FakeMeteo.instances = [fake]
    monkeypatch.setattr(cli, "OpenMeteoClient", FakeMeteo)
    clock = LocalGenerator(clock=lambda: datetime(2024, 6, 1, tzinfo=timezone.utc))
    monkeypatch.setattr(cli, "build_generation_service", lambda cfg: GenerationService(mode=LOCAL_ONLY, local=clock))
    return fake


def test_version():
    result = runner.invoke(cli.app, ["--version"])
    assert result.exit_code == 0
    assert f"agrivoice v{__version__}" in result.output


def test_ask_rejects_short_question_before_network(meteo):
    result = runner.invoke(cli.app, ["ask", "x", "--location", "Pune", "--offline"])
    assert result.exit_code == 1
    assert "Please speak first" in result.output
    assert meteo.searches == []
    assert meteo.forecasts == []


def test_ask_prints_numbered_suggestions(meteo):
    result = runner.invoke(cli.app, ["ask", "When should I sow rice?", "--location", "Pune", "--offline"])

    assert result.exit_code == 0, result.output
    assert "Location: Pune, Maharashtra, India" in result.output
    assert "Weather: Now: 31.2°C" in result.output
    assert "1. User: When should I sow rice?" in result.output
    assert "2. First check soil moisture and drainage." in result.output
    assert "AI generation used fallback due to provider error." in result.output
    assert meteo.searches == [("Pune", "en")]
    assert meteo.forecasts == [(18.52, 73.85)]


def test_ask_with_coordinates_skips_place_search(meteo):
    result = runner.invoke(
        cli.app, ["ask", "धान कब बोएं?", "--lat", "25.3", "--lon", "82.9", "--language", "hi", "--offline"]
    )
    assert result.exit_code == 0, result.output
    assert "1. आपका संदेश: धान कब बोएं?" in result.output
    assert meteo.searches == []
    assert meteo.forecasts == [(25.3, 82.9)]


def test_ask_without_location_is_rejected(meteo):
    result = runner.invoke(cli.app, ["ask", "When should I sow rice?", "--offline"])
    assert result.exit_code == 1
    assert "Select a location" in result.output


def test_ask_with_unknown_place_fails(meteo):
    result = runner.invoke(cli.app, ["ask", "When should I sow rice?", "--location", "Atlantis", "--offline"])
    assert result.exit_code == 1
    assert "No places found" in result.output


def test_geocode_lists_places(meteo):
    result = runner.invoke(cli.app, ["geocode", "Pune", "--offline"])
    assert result.exit_code == 0
    assert "Pune, Maharashtra, India" in result.output
    assert "18.520" in result.output


def test_weather_reports_upstream_failure(meteo):
    meteo.fail = True
    result = runner.invoke(cli.app, ["weather", "--lat", "1", "--lon", "2", "--offline"])
    assert result.exit_code == 1
    assert "Upstream request failed" in result.output


def test_config_show_masks_api_key(isolated_config):
    result = runner.invoke(cli.app, ["config", "--openrouter-api-key", "sk-secret", "--language", "ja"])
    assert result.exit_code == 0
    assert json.loads(isolated_config.read_text())["language"] == "ja"

    shown = runner.invoke(cli.app, ["config", "--show"])
    assert shown.exit_code == 0
    assert "sk-secret" not in shown.output
    assert json.loads(shown.output)["openrouter_api_key"] == "***"


def test_config_rejects_unknown_mode():
    result = runner.invoke(cli.app, ["config", "--generator-mode", "anthropic"])
    assert result.exit_code == 1
    assert "Unknown generator mode 'anthropic'" in result.output


def test_health_requires_server_url():
    result = runner.invoke(cli.app, ["health"])
    assert result.exit_code == 1
    assert "No API server configured" in result.output
