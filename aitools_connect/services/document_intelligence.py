"""Document Intelligence service: asynchronous prebuilt model analysis."""

import asyncio
import logging
from collections.abc import Mapping
from dataclasses import dataclass

from aitools_connect.clouds import CLOUDS, Cloud
from aitools_connect.errors import ServiceError
from aitools_connect.services.base import (
    ServiceExecutor,
    ServiceResponse,
    TestContext,
    send,
    unexpected_response,
)
from aitools_connect.settings import ServiceSettings

log = logging.getLogger(__name__)

API_VERSION = "2024-11-30"

MODELS: Mapping[str, str] = {
    "read": "prebuilt-read",
    "layout": "prebuilt-layout",
}


@dataclass(frozen=True, kw_only=True)
class DocumentIntelligenceExecutor(ServiceExecutor):
    """Submits a document and polls the analysis operation.

    Polling is bounded by `max_polls`; the runner's scenario timeout bounds
    it as well.
    """

    name = "document_intelligence"
    display_name = "Document Intelligence"
    requires_custom_subdomain = True

    poll_interval: float = 1.0
    max_polls: int = 30

    def endpoint(self, settings: ServiceSettings, cloud: Cloud, region: str) -> str:
        if settings.endpoint:
            return settings.endpoint.rstrip("/")
        return CLOUDS[cloud].regional_endpoint(region)

    async def execute(self, scenario_id: str, context: TestContext) -> str:
        if scenario_id not in MODELS:
            raise self.unknown_scenario(scenario_id)
        if context.input is None:
            raise ServiceError("Document analysis needs a document input")

        response = await send(
            context,
            "POST",
            f"{context.endpoint}/documentintelligence/documentModels/"
            f"{MODELS[scenario_id]}:analyze",
            params={"api-version": API_VERSION},
            headers={"Content-Type": context.input.content_type},
            data=context.input.data,
        )
        if response.status != 202:
            return _summarize(response)

        operation_url = _header(response, "operation-location")
        if not operation_url:
            raise unexpected_response(response, "no operation-location header")
        return await self.poll_operation(context, operation_url)

    async def poll_operation(self, context: TestContext, operation_url: str) -> str:
        for _ in range(self.max_polls):
            await asyncio.sleep(self.poll_interval)
            response = await send(context, "GET", operation_url)
            body = response.json()
            status = body.get("status") if isinstance(body, dict) else None
            match status:
                case "succeeded":
                    return _summarize(response)
                case "failed":
                    error = body.get("error")
                    if isinstance(error, dict):
                        error = error.get("message")
                    raise ServiceError(
                        f"Analysis failed: {error or 'unknown error'}",
                        status=response.status,
                        body=response.text[:300],
                    )
                case "running" | "notStarted":
                    log.debug("Analysis operation still %s", status)
                case _:
                    raise unexpected_response(response, f"unknown status {status!r}")
        raise ServiceError(
            f"Analysis did not finish after {self.max_polls} polls",
            hint="The service accepted the document; retry with a smaller file.",
        )


def _header(response: ServiceResponse, name: str) -> str | None:
    for key, value in response.headers.items():
        if key.lower() == name:
            return value
    return None


def _summarize(response: ServiceResponse) -> str:
    body = response.json()
    result = body.get("analyzeResult") if isinstance(body, dict) else None
    if not isinstance(result, dict):
        raise unexpected_response(response, "missing analyzeResult")
    return f"Analysis succeeded: {len(result.get('pages') or [])} page(s) processed"
