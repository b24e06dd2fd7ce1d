"""Translator service: languages, detection and translation."""

from dataclasses import dataclass
from typing import Any

from aitools_connect.clouds import CLOUDS, Cloud
from aitools_connect.services.base import (
    ServiceExecutor,
    ServiceResponse,
    TestContext,
    send,
    unexpected_response,
)
from aitools_connect.settings import ServiceSettings

API_VERSION = "3.0"
SAMPLE_TEXT = "Hello, how are you today?"
TARGET_LANGUAGE = "es"


@dataclass(frozen=True, kw_only=True)
class TranslatorExecutor(ServiceExecutor):
    name = "translator"
    display_name = "Translator"
    optional_input = "text"

    def endpoint(self, settings: ServiceSettings, cloud: Cloud, region: str) -> str:
        if settings.endpoint:
            return f"{settings.endpoint.rstrip('/')}/translator/text/v3.0"
        return CLOUDS[cloud].translator_endpoint

    async def execute(self, scenario_id: str, context: TestContext) -> str:
        match scenario_id:
            case "languages":
                return await self.languages(context)
            case "detect":
                return await self.detect(context)
            case "translate":
                return await self.translate(context)
        raise self.unknown_scenario(scenario_id)

    async def languages(self, context: TestContext) -> str:
        # The languages listing is public.
        response = await send(
            context,
            "GET",
            f"{context.endpoint}/languages",
            params={"api-version": API_VERSION, "scope": "translation"},
            authenticate=False,
        )
        body = response.json()
        if not isinstance(body, dict) or not isinstance(body.get("translation"), dict):
            raise unexpected_response(response, "missing translation languages")
        return f"{len(body['translation'])} translation languages available"

    async def detect(self, context: TestContext) -> str:
        response = await self._post(context, "detect", {})
        first = _first_item(response)
        if "language" not in first:
            raise unexpected_response(response, "missing detected language")
        return f"Detected language: {first['language']}"

    async def translate(self, context: TestContext) -> str:
        response = await self._post(context, "translate", {"to": TARGET_LANGUAGE})
        translations = _first_item(response).get("translations")
        if not isinstance(translations, list) or not translations:
            raise unexpected_response(response, "missing translations")
        if not isinstance(translations[0], dict):
            raise unexpected_response(response, "malformed translation")
        return f"Translated: {translations[0].get('text', '')}"

    async def _post(
        self, context: TestContext, operation: str, params: dict[str, str]
    ) -> ServiceResponse:
        text = context.input.text if context.input else SAMPLE_TEXT
        headers = {"Content-Type": "application/json"}
        if context.credential.is_bearer or context.region != "global":
            headers["Ocp-Apim-Subscription-Region"] = context.region
        return await send(
            context,
            "POST",
            f"{context.endpoint}/{operation}",
            params={"api-version": API_VERSION, **params},
            headers=headers,
            json_body=[{"Text": text}],
        )


def _first_item(response: ServiceResponse) -> dict[str, Any]:
    body = response.json()
    if not isinstance(body, list) or not body or not isinstance(body[0], dict):
        raise unexpected_response(response, "expected a non-empty list")
    return body[0]
