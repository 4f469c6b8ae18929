from agrivoice.models import AdviceResult, AdviceSource, Language, LocationSelection
from agrivoice.orchestrator import (
    AdviceOrchestrator,
    GenerationError,
    OutcomeStatus,
    summarise_weather,
)

PUNE = LocationSelection(lat=18.52, lon=73.85, name="Pune, Maharashtra, India")


class FakeWeather:
    def __init__(self, payload=None, error=None):
        self.payload = payload if payload is not None else {
            "latitude": 18.5,
            "longitude": 73.875,
            "current_weather": {"temperature": 31.2, "windspeed": 9.4},
        }
        self.error = error
        self.calls = []

    def fetch(self, lat, lon):
        self.calls.append((lat, lon))
        if self.error:
            raise self.error
        return self.payload


class FakeGenerator:
    def __init__(self, result=None, error=None):
        self.result = result or AdviceResult(text="- Sow now\n- Mulch", source=AdviceSource.PROVIDER)
        self.error = error
        self.requests = []
        self.on_call = None

    def generate(self, request):
        self.requests.append(request)
        if self.on_call:
            hook, self.on_call = self.on_call, None
            hook()
        if self.error:
            raise self.error
        return self.result


def make(weather=None, generator=None, language=Language.EN):
    warnings, errors = [], []
    orchestrator = AdviceOrchestrator(
        weather or FakeWeather(),
        generator or FakeGenerator(),
        language=language,
        on_warning=warnings.append,
        on_error=errors.append,
    )
    return orchestrator, warnings, errors


def test_short_transcript_is_rejected_without_network_calls():
    weather, generator = FakeWeather(), FakeGenerator()
    orchestrator, _, errors = make(weather, generator)
    orchestrator.select_location(PUNE)

    outcome = orchestrator.generate("x")

    assert outcome.status == OutcomeStatus.REJECTED
    assert outcome.message == "Please speak first"
    assert errors == ["Please speak first"]
    assert weather.calls == []
    assert generator.requests == []


def test_missing_location_is_rejected():
    weather = FakeWeather()
    orchestrator, _, _ = make(weather)
    outcome = orchestrator.generate("When to sow rice?")
    assert outcome.status == OutcomeStatus.REJECTED
    assert outcome.message == "Select a location"
    assert weather.calls == []


def test_rejections_are_localized():
    orchestrator, _, _ = make(language=Language.JA)
    assert orchestrator.generate("  ").message == "まず話してください"
    assert orchestrator.generate("質問です").message == "場所を選択してください"

    orchestrator.language = Language.HI
    assert orchestrator.generate("").message == "कृपया बोलें"
    assert orchestrator.generate("सवाल").message == "कृपया स्थान चुनें"


def test_success_path_builds_request_and_stores_suggestions():
    weather, generator = FakeWeather(), FakeGenerator()
    orchestrator, warnings, errors = make(weather, generator, language=Language.HI)
    orchestrator.select_location(PUNE)

    outcome = orchestrator.generate("धान कब बोएं?")

    assert outcome.ok
    assert weather.calls == [(18.52, 73.85)]
    request = generator.requests[0]
    assert request.transcript_text == "धान कब बोएं?"
    assert request.location == PUNE
    assert request.weather_summary == "Now: 31.2°C"
    assert request.language == Language.HI
    assert orchestrator.suggestions_text == "- Sow now\n- Mulch"
    assert outcome.suggestions == ["Sow now", "Mulch"]
    assert orchestrator.weather == weather.payload
    assert warnings == [] and errors == []
    assert not orchestrator.loading


def test_weather_failure_uses_sentinel_and_continues():
    generator = FakeGenerator()
    orchestrator, warnings, errors = make(FakeWeather(error=ConnectionError("offline")), generator)
    orchestrator.select_location(PUNE)

    outcome = orchestrator.generate("Should I irrigate today?")

    assert outcome.ok
    assert generator.requests[0].weather_summary == "N/A"
    assert orchestrator.suggestions_text == "- Sow now\n- Mulch"
    assert orchestrator.weather is None
    assert errors == [] and warnings == []


def test_local_fallback_result_is_shown_with_warning():
    fallback = AdviceResult(
        text="• User: rice?\n• First check soil moisture and drainage.",
        source=AdviceSource.LOCAL_FALLBACK,
        provider_error="Provider returned HTTP 429",
    )
    orchestrator, warnings, errors = make(generator=FakeGenerator(result=fallback), language=Language.JA)
    orchestrator.select_location(PUNE)

    outcome = orchestrator.generate("rice?")

    assert outcome.ok
    assert outcome.suggestions == ["User: rice?", "First check soil moisture and drainage."]
    assert warnings == ["プロバイダーのエラーのため、代替の提案を表示しています。"]
    assert outcome.message == warnings[0]
    assert errors == []


def test_generation_failure_is_surfaced_and_keeps_previous_state():
    generator = FakeGenerator()
    orchestrator, _, errors = make(generator=generator)
    orchestrator.select_location(PUNE)
    orchestrator.generate("first question")
    previous_weather = orchestrator.weather

    generator.error = GenerationError("generation failed")
    outcome = orchestrator.generate("second question")

    assert outcome.status == OutcomeStatus.FAILED
    assert errors == ["Generation failed: generation failed"]
    assert orchestrator.suggestions_text == "- Sow now\n- Mulch"
    assert orchestrator.location == PUNE
    assert orchestrator.weather == previous_weather


def test_unexpected_generator_exception_is_a_failure():
    orchestrator, _, errors = make(generator=FakeGenerator(error=RuntimeError("boom")))
    orchestrator.select_location(PUNE)
    outcome = orchestrator.generate("question")
    assert outcome.status == OutcomeStatus.FAILED
    assert errors == ["Generation failed: boom"]
    assert orchestrator.suggestions_text == ""


def test_blank_result_shows_placeholder():
    blank = AdviceResult(text="  ", source=AdviceSource.PROVIDER)
    orchestrator, _, _ = make(generator=FakeGenerator(result=blank))
    orchestrator.select_location(PUNE)
    orchestrator.generate("question")
    assert orchestrator.suggestions_text == "No suggestion"


def test_newer_generation_supersedes_older_one():
    generator = FakeGenerator()
    orchestrator, _, _ = make(generator=generator)
    orchestrator.select_location(PUNE)

    newer = AdviceResult(text="- newer", source=AdviceSource.PROVIDER)

    def start_newer():
        generator.result = newer
        orchestrator.generate("second question")

    older_result = generator.result
    generator.on_call = start_newer
    outcome = orchestrator.generate("first question")

    assert outcome.status == OutcomeStatus.SUPERSEDED
    assert generator.result is newer
    assert older_result is not newer
    assert orchestrator.suggestions_text == "- newer"


def test_clear_resets_location_weather_and_suggestions():
    orchestrator, _, _ = make()
    orchestrator.select_location(PUNE)
    orchestrator.generate("question")
    orchestrator.clear()
    assert orchestrator.location is None
    assert orchestrator.weather is None
    assert orchestrator.suggestions == []


def test_summarise_weather():
    assert summarise_weather(None) == "N/A"
    assert summarise_weather({"current_weather": None}) == "N/A"
    assert summarise_weather({"current_weather": {"windspeed": 3}}) == "N/A"
    assert summarise_weather({"current_weather": {"temperature": 0}}) == "Now: 0°C"
