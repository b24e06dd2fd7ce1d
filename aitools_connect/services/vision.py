"""Vision service: image analysis and OCR."""

from dataclasses import dataclass

from aitools_connect.clouds import CLOUDS, Cloud
from aitools_connect.services.base import (
    ServiceExecutor,
    TestContext,
    send,
    unexpected_response,
)
from aitools_connect.services.samples import SAMPLE_PNG, SAMPLE_PNG_CONTENT_TYPE
from aitools_connect.settings import ServiceSettings

API_VERSION = "2024-02-01"
# caption/denseCaptions are unavailable in some regions.
ANALYZE_FEATURES = "tags,objects,read"


@dataclass(frozen=True, kw_only=True)
class VisionExecutor(ServiceExecutor):
    name = "vision"
    display_name = "Vision"
    optional_input = "image"
    requires_custom_subdomain = True

    def endpoint(self, settings: ServiceSettings, cloud: Cloud, region: str) -> str:
        if settings.endpoint:
            return settings.endpoint.rstrip("/")
        return CLOUDS[cloud].regional_endpoint(region)

    async def execute(self, scenario_id: str, context: TestContext) -> str:
        match scenario_id:
            case "analyze_image":
                features = ANALYZE_FEATURES
            case "read_text":
                features = "read"
            case _:
                raise self.unknown_scenario(scenario_id)

        if context.input is not None:
            image, content_type = context.input.data, context.input.content_type
        else:
            image, content_type = SAMPLE_PNG, SAMPLE_PNG_CONTENT_TYPE

        response = await send(
            context,
            "POST",
            f"{context.endpoint}/computervision/imageanalysis:analyze",
            params={"api-version": API_VERSION, "features": features},
            headers={"Content-Type": content_type},
            data=image,
        )
        body = response.json()
        if not isinstance(body, dict) or "metadata" not in body:
            raise unexpected_response(response, "missing image metadata")

        if scenario_id == "read_text":
            blocks = (body.get("readResult") or {}).get("blocks") or []
            lines = sum(len(block.get("lines") or []) for block in blocks)
            return f"Read {lines} line(s) of text"
        return (
            "Analysis complete "
            f"(tags: {'tagsResult' in body}, objects: {'objectsResult' in body}, "
            f"read: {'readResult' in body})"
        )
