"""Speech service: voices, token exchange, synthesis and recognition."""

import logging
from dataclasses import dataclass

from aitools_connect.clouds import CLOUDS, Cloud
from aitools_connect.errors import ServiceError
from aitools_connect.services.base import (
    ServiceExecutor,
    TestContext,
    send,
    unexpected_response,
)
from aitools_connect.settings import ServiceSettings

log = logging.getLogger(__name__)

SSML = (
    "<speak version='1.0' xmlns='http://www.w3.org/2001/10/synthesis' "
    "xml:lang='en-US'><voice name='en-US-JennyNeural'>"
    "Hello, this is a connectivity test.</voice></speak>"
)
OUTPUT_FORMAT = "audio-16khz-128kbitrate-mono-mp3"
# A 400 carrying one of these means the endpoint parsed the request and
# rejected only the audio itself.
AUDIO_VALIDATION_MARKERS = ("audio", "InvalidRequest", "duration", "USP")


@dataclass(frozen=True, kw_only=True)
class SpeechExecutor(ServiceExecutor):
    name = "speech"
    display_name = "Speech"

    def endpoint(self, settings: ServiceSettings, cloud: Cloud, region: str) -> str:
        if settings.endpoint:
            return settings.endpoint.rstrip("/")
        return CLOUDS[cloud].regional_endpoint(region)

    async def execute(self, scenario_id: str, context: TestContext) -> str:
        match scenario_id:
            case "voices_list":
                return await self.voices_list(context)
            case "token_exchange":
                return await self.token_exchange(context)
            case "tts":
                return await self.tts(context)
            case "stt_rest":
                return await self.stt_rest(context)
        raise self.unknown_scenario(scenario_id)

    def tts_base(self, context: TestContext) -> str:
        if custom := context.custom_endpoint:
            return f"{custom}/tts"
        return f"https://{context.region}.{CLOUDS[context.cloud].tts_host}"

    def stt_base(self, context: TestContext) -> str:
        if custom := context.custom_endpoint:
            return f"{custom}/stt"
        return f"https://{context.region}.{CLOUDS[context.cloud].stt_host}"

    async def voices_list(self, context: TestContext) -> str:
        url = f"{self.tts_base(context)}/cognitiveservices/voices/list"
        response = await send(context, "GET", url)
        voices = response.json()
        if not isinstance(voices, list):
            raise unexpected_response(response, "expected a list of voices")
        return f"Retrieved {len(voices)} voices"

    async def token_exchange(self, context: TestContext) -> str:
        if custom := context.custom_endpoint:
            url = f"{custom}/sts/v1.0/issueToken"
        else:
            url = CLOUDS[context.cloud].issue_token_url(context.region)
        response = await send(context, "POST", url, headers={"Content-Length": "0"})
        token = response.text.strip()
        if token.count(".") != 2:
            raise unexpected_response(response, "issued token is not a JWT")
        return f"Token received ({len(token)} chars)"

    async def tts(self, context: TestContext) -> str:
        url = f"{self.tts_base(context)}/cognitiveservices/v1"
        response = await send(
            context,
            "POST",
            url,
            headers={
                "Content-Type": "application/ssml+xml",
                "X-Microsoft-OutputFormat": OUTPUT_FORMAT,
                "User-Agent": "aitools-connect",
            },
            data=SSML,
        )
        if not response.body:
            raise unexpected_response(response, "no audio returned")
        return f"Audio synthesized: {len(response.body)} bytes"

    async def stt_rest(self, context: TestContext) -> str:
        if context.input is None:
            raise ServiceError("Speech recognition needs an audio input")
        url = (
            f"{self.stt_base(context)}"
            "/speech/recognition/conversation/cognitiveservices/v1"
        )
        try:
            response = await send(
                context,
                "POST",
                url,
                params={"language": "en-US", "format": "simple"},
                headers={"Content-Type": context.input.content_type},
                data=context.input.data,
            )
        except ServiceError as exc:
            if exc.status == 400 and any(m in exc.body for m in AUDIO_VALIDATION_MARKERS):
                log.info("Speech endpoint rejected the audio sample: %s", exc.body)
                return "Endpoint responsive (audio validation: HTTP 400)"
            raise
        result = response.json()
        if not isinstance(result, dict) or "RecognitionStatus" not in result:
            raise unexpected_response(response, "missing RecognitionStatus")
        return f"Recognition status: {result['RecognitionStatus']}"
