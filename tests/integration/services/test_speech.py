"""Integration tests for the speech executor."""

import aiohttp
import pytest
from aioresponses import aioresponses as aioresponses_cls
from yarl import URL

from aitools_connect.errors import AuthError, NetworkError, ServiceError
from aitools_connect.models.credential import Credential
from aitools_connect.services.speech import SpeechExecutor
from aitools_connect.settings import ServiceSettings
from aitools_connect.testing.factories import InputPayloadFactory
from aitools_connect.testing.payloads import jwt, service_error, voices

CUSTOM_ENDPOINT = "https://my-speech.cognitiveservices.azure.com"
VOICES_URL = "https://eastus.tts.speech.microsoft.com/cognitiveservices/voices/list"
STT_URL = (
    "https://eastus.stt.speech.microsoft.com"
    "/speech/recognition/conversation/cognitiveservices/v1"
    "?format=simple&language=en-US"
)


@pytest.fixture
def executor() -> SpeechExecutor:
    return SpeechExecutor()


class TestVoicesList:
    """Tests for the voices_list scenario."""

    async def test_regional_endpoint(
        self, executor: SpeechExecutor, make_context, aioresponses: aioresponses_cls
    ) -> None:
        """Lists voices from the regional TTS host with the API key."""
        aioresponses.get(VOICES_URL, payload=voices(3))
        context = make_context(executor)

        message = await executor.execute("voices_list", context)

        assert message == "Retrieved 3 voices"
        call = aioresponses.requests[("GET", URL(VOICES_URL))][0]
        assert call.kwargs["headers"]["Ocp-Apim-Subscription-Key"] == (
            context.credential.api_key
        )

    async def test_custom_endpoint_with_bearer(
        self, executor: SpeechExecutor, make_context, aioresponses: aioresponses_cls
    ) -> None:
        """Bearer tokens go to the custom subdomain's TTS path."""
        url = f"{CUSTOM_ENDPOINT}/tts/cognitiveservices/voices/list"
        aioresponses.get(url, payload=voices(1))
        token = jwt()
        context = make_context(
            executor,
            credential=Credential(method="token", bearer_token=token),
            settings=ServiceSettings(endpoint=f"{CUSTOM_ENDPOINT}/"),
        )

        assert await executor.execute("voices_list", context) == "Retrieved 1 voices"
        call = aioresponses.requests[("GET", URL(url))][0]
        assert call.kwargs["headers"] == {"Authorization": f"Bearer {token}"}

    async def test_unauthorized(
        self, executor: SpeechExecutor, make_context, aioresponses: aioresponses_cls
    ) -> None:
        aioresponses.get(
            VOICES_URL, status=401, payload=service_error("401", "Access denied")
        )

        with pytest.raises(AuthError) as exc_info:
            await executor.execute("voices_list", make_context(executor))

        assert exc_info.value.status == 401
        assert "Access denied" in exc_info.value.message

    async def test_server_error(
        self, executor: SpeechExecutor, make_context, aioresponses: aioresponses_cls
    ) -> None:
        aioresponses.get(VOICES_URL, status=503, body="Service Unavailable")

        with pytest.raises(ServiceError) as exc_info:
            await executor.execute("voices_list", make_context(executor))

        assert exc_info.value.status == 503
        assert exc_info.value.body == "Service Unavailable"

    async def test_unexpected_shape(
        self, executor: SpeechExecutor, make_context, aioresponses: aioresponses_cls
    ) -> None:
        aioresponses.get(VOICES_URL, payload={"voices": []})

        with pytest.raises(ServiceError, match="Unexpected response shape"):
            await executor.execute("voices_list", make_context(executor))

    @pytest.mark.parametrize(
        ("exception", "match"),
        [
            (TimeoutError(), "timed out"),
            (aiohttp.ClientConnectionError("reset"), "failed"),
        ],
    )
    async def test_transport_failure(
        self,
        executor: SpeechExecutor,
        make_context,
        aioresponses: aioresponses_cls,
        exception: Exception,
        match: str,
    ) -> None:
        aioresponses.get(VOICES_URL, exception=exception)

        with pytest.raises(NetworkError, match=match):
            await executor.execute("voices_list", make_context(executor))


class TestTokenExchange:
    """Tests for the token_exchange scenario."""

    async def test_issues_token(
        self, executor: SpeechExecutor, make_context, aioresponses: aioresponses_cls
    ) -> None:
        url = "https://eastus.api.cognitive.microsoft.com/sts/v1.0/issueToken"
        token = jwt()
        aioresponses.post(url, body=token)

        message = await executor.execute("token_exchange", make_context(executor))

        assert message == f"Token received ({len(token)} chars)"

    async def test_custom_endpoint(
        self, executor: SpeechExecutor, make_context, aioresponses: aioresponses_cls
    ) -> None:
        aioresponses.post(f"{CUSTOM_ENDPOINT}/sts/v1.0/issueToken", body=jwt())
        context = make_context(
            executor, settings=ServiceSettings(endpoint=CUSTOM_ENDPOINT)
        )

        assert (await executor.execute("token_exchange", context)).startswith(
            "Token received"
        )

    async def test_not_a_jwt(
        self, executor: SpeechExecutor, make_context, aioresponses: aioresponses_cls
    ) -> None:
        aioresponses.post(
            "https://eastus.api.cognitive.microsoft.com/sts/v1.0/issueToken",
            body="<html>Login</html>",
        )

        with pytest.raises(ServiceError, match="not a JWT"):
            await executor.execute("token_exchange", make_context(executor))


async def test_tts(
    executor: SpeechExecutor, make_context, aioresponses: aioresponses_cls
) -> None:
    """Synthesis posts SSML and receives audio bytes."""
    url = "https://eastus.tts.speech.microsoft.com/cognitiveservices/v1"
    aioresponses.post(url, body=b"ID3\x04\x00\x00\x00\x00")

    message = await executor.execute("tts", make_context(executor))

    assert message == "Audio synthesized: 8 bytes"
    call = aioresponses.requests[("POST", URL(url))][0]
    assert call.kwargs["headers"]["Content-Type"] == "application/ssml+xml"
    assert "<speak" in call.kwargs["data"]


class TestSttRest:
    """Tests for the stt_rest scenario."""

    async def test_recognizes_audio(
        self, executor: SpeechExecutor, make_context, aioresponses: aioresponses_cls
    ) -> None:
        aioresponses.post(
            STT_URL, payload={"RecognitionStatus": "Success", "DisplayText": "Hello."}
        )
        context = make_context(executor, input=InputPayloadFactory.build())

        message = await executor.execute("stt_rest", context)

        assert message == "Recognition status: Success"
        call = aioresponses.requests[("POST", URL(STT_URL))][0]
        assert call.kwargs["headers"]["Content-Type"] == "audio/wav"

    async def test_audio_rejected_means_reachable(
        self, executor: SpeechExecutor, make_context, aioresponses: aioresponses_cls
    ) -> None:
        """A 400 about the audio itself still proves the endpoint works."""
        aioresponses.post(
            STT_URL, status=400, body="Audio duration is too short or invalid"
        )
        context = make_context(executor, input=InputPayloadFactory.build())

        message = await executor.execute("stt_rest", context)

        assert message == "Endpoint responsive (audio validation: HTTP 400)"

    async def test_other_bad_request(
        self, executor: SpeechExecutor, make_context, aioresponses: aioresponses_cls
    ) -> None:
        aioresponses.post(STT_URL, status=400, body="Unsupported language")
        context = make_context(executor, input=InputPayloadFactory.build())

        with pytest.raises(ServiceError) as exc_info:
            await executor.execute("stt_rest", context)

        assert exc_info.value.status == 400
