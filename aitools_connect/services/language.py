"""Language service: synchronous text analysis tasks."""

from collections.abc import Mapping
from dataclasses import dataclass

from aitools_connect.clouds import CLOUDS, Cloud
from aitools_connect.services.base import (
    ServiceExecutor,
    TestContext,
    send,
    unexpected_response,
)
from aitools_connect.settings import ServiceSettings

API_VERSION = "2023-04-01"
SAMPLE_TEXT = (
    "The Azure AI services are excellent. Microsoft has done a great job with "
    "their cloud platform in Seattle. The documentation is comprehensive and "
    "the APIs are easy to use."
)

# scenario id -> analysis kind
ANALYSIS_KINDS: Mapping[str, str] = {
    "language_detection": "LanguageDetection",
    "sentiment": "SentimentAnalysis",
    "key_phrases": "KeyPhraseExtraction",
    "entities": "EntityRecognition",
}


@dataclass(frozen=True, kw_only=True)
class LanguageExecutor(ServiceExecutor):
    name = "language"
    display_name = "Language"
    optional_input = "text"
    requires_custom_subdomain = True

    def endpoint(self, settings: ServiceSettings, cloud: Cloud, region: str) -> str:
        if settings.endpoint:
            return settings.endpoint.rstrip("/")
        return CLOUDS[cloud].regional_endpoint(region)

    async def execute(self, scenario_id: str, context: TestContext) -> str:
        if scenario_id not in ANALYSIS_KINDS:
            raise self.unknown_scenario(scenario_id)

        kind = ANALYSIS_KINDS[scenario_id]
        text = context.input.text if context.input else SAMPLE_TEXT
        document: dict[str, str] = {"id": "1", "text": text}
        if kind != "LanguageDetection":
            document["language"] = "en"

        response = await send(
            context,
            "POST",
            f"{context.endpoint}/language/:analyze-text",
            params={"api-version": API_VERSION},
            headers={"Content-Type": "application/json"},
            json_body={"kind": kind, "analysisInput": {"documents": [document]}},
        )
        body = response.json()
        results = body.get("results") if isinstance(body, dict) else None
        documents = results.get("documents") if isinstance(results, dict) else None
        if not isinstance(documents, list) or not documents:
            raise unexpected_response(response, "no documents in results")
        return summarize(scenario_id, documents[0])


def summarize(scenario_id: str, document: Mapping) -> str:
    match scenario_id:
        case "language_detection":
            detected = document.get("detectedLanguage") or {}
            return f"Detected language: {detected.get('name', 'unknown')}"
        case "sentiment":
            return f"Sentiment: {document.get('sentiment', 'unknown')}"
        case "key_phrases":
            return f"Extracted {len(document.get('keyPhrases') or [])} key phrases"
        case _:
            return f"Recognized {len(document.get('entities') or [])} entities"
