"""Static catalogue of test scenarios per service."""

from collections.abc import Iterable, Mapping, Sequence
from dataclasses import dataclass, field

from aitools_connect.errors import ConfigurationError
from aitools_connect.models.scenario import InputKind, Scenario


def _scenarios(service: str, *rows: tuple[str, str, str, InputKind]) -> Sequence[Scenario]:
    return tuple(
        Scenario(
            id=scenario_id,
            service=service,
            name=name,
            description=description,
            input_kind=input_kind,
        )
        for scenario_id, name, description, input_kind in rows
    )


CATALOGUE: Mapping[str, Sequence[Scenario]] = {
    "speech": _scenarios(
        "speech",
        ("voices_list", "Get Voices List", "Retrieve available TTS voices", "none"),
        (
            "token_exchange",
            "Token Exchange",
            "Exchange the credential for a short-lived token",
            "none",
        ),
        ("tts", "Text-to-Speech", "Synthesize speech from text", "none"),
        (
            "stt_rest",
            "Speech-to-Text (REST API)",
            "Transcribe audio using the short audio REST API",
            "audio",
        ),
    ),
    "translator": _scenarios(
        "translator",
        ("languages", "Supported Languages", "List supported languages", "none"),
        ("detect", "Detect Language", "Detect the language of a sample", "none"),
        ("translate", "Translate Text", "Translate a sample into Spanish", "none"),
    ),
    "language": _scenarios(
        "language",
        (
            "language_detection",
            "Language Detection",
            "Detect the language of a sample",
            "none",
        ),
        ("sentiment", "Sentiment Analysis", "Score the sentiment of a sample", "none"),
        ("key_phrases", "Key Phrase Extraction", "Extract key phrases", "none"),
        ("entities", "Named Entity Recognition", "Recognize named entities", "none"),
    ),
    "vision": _scenarios(
        "vision",
        (
            "analyze_image",
            "Analyze Image",
            "Extract tags, objects and text from an image",
            "none",
        ),
        ("read_text", "Read Text (OCR)", "Extract text from an image", "image"),
    ),
    "document_intelligence": _scenarios(
        "document_intelligence",
        ("read", "Read Model", "Extract text with the prebuilt read model", "document"),
        (
            "layout",
            "Layout Model",
            "Extract structure with the prebuilt layout model",
            "document",
        ),
    ),
}

SERVICE_ALIASES: Mapping[str, str] = {
    "document-intelligence": "document_intelligence",
    "documentintelligence": "document_intelligence",
}


def normalize_service(name: str) -> str:
    lowered = name.strip().lower()
    return SERVICE_ALIASES.get(lowered, lowered)


@dataclass(frozen=True, kw_only=True)
class ScenarioRegistry:
    """Read-only mapping of service name to its ordered scenarios."""

    catalogue: Mapping[str, Sequence[Scenario]] = field(
        default_factory=lambda: CATALOGUE
    )

    @property
    def services(self) -> Sequence[str]:
        return tuple(self.catalogue)

    def list(self, service_filter: Iterable[str] | None = None) -> Sequence[Scenario]:
        """Scenarios of the given services (all when no filter), in order.

        Raises:
            ConfigurationError: If a service name is unknown

        """
        names = self.services if service_filter is None else service_filter
        return [
            scenario
            for name in names
            for scenario in self._scenarios_of(normalize_service(name))
        ]

    def requires_input(self, scenario: Scenario) -> InputKind:
        return scenario.input_kind

    def get(self, service: str, scenario_id: str) -> Scenario:
        for scenario in self._scenarios_of(service):
            if scenario.id == scenario_id:
                return scenario
        available = [s.id for s in self._scenarios_of(service)]
        raise ConfigurationError(
            f"Unknown scenario '{scenario_id}' for service '{service}'. "
            f"Available scenarios: {available}",
            hint="Run 'aitools-connect list-scenarios' to see valid scenario ids.",
        )

    def select(
        self, service: str, scenario_ids: Sequence[str] | None = None
    ) -> Sequence[Scenario]:
        """Scenarios to run for `service`, in catalogue order.

        Raises:
            ConfigurationError: If the service or any scenario id is unknown

        """
        scenarios = self._scenarios_of(service)
        if not scenario_ids:
            return list(scenarios)
        wanted = {self.get(service, scenario_id).id for scenario_id in scenario_ids}
        return [scenario for scenario in scenarios if scenario.id in wanted]

    def _scenarios_of(self, service: str) -> Sequence[Scenario]:
        try:
            return self.catalogue[service]
        except KeyError:
            raise ConfigurationError(
                f"Unknown service '{service}'. Available services: "
                f"{list(self.catalogue)}",
                hint="Run 'aitools-connect list-scenarios' to see valid services.",
            ) from None
