"""Per-cloud endpoints for the login authority and service hosts."""

from collections.abc import Mapping
from dataclasses import dataclass
from typing import Literal

type Cloud = Literal["global", "china"]

# Azure CLI's well-known public client id, used when none is configured.
AZURE_CLI_CLIENT_ID = "04b07795-8ddb-461a-bbee-02f9e1bf7b46"

IMDS_TOKEN_URL = "http://169.254.169.254/metadata/identity/oauth2/token"


@dataclass(frozen=True, kw_only=True)
class CloudEndpoints:
    """Hosts that differ between the global and China clouds."""

    login_authority: str
    cognitive_scope: str
    api_host: str
    tts_host: str
    stt_host: str
    translator_endpoint: str

    @property
    def resource(self) -> str:
        """Resource identifier used by the managed identity endpoints."""
        return self.cognitive_scope.removesuffix("/.default")

    def regional_endpoint(self, region: str) -> str:
        return f"https://{region}.{self.api_host}"

    def token_url(self, tenant_id: str) -> str:
        return f"{self.login_authority}/{tenant_id}/oauth2/v2.0/token"

    def device_code_url(self, tenant_id: str) -> str:
        return f"{self.login_authority}/{tenant_id}/oauth2/v2.0/devicecode"

    def issue_token_url(self, region: str) -> str:
        return f"https://{region}.{self.api_host}/sts/v1.0/issueToken"


CLOUDS: Mapping[Cloud, CloudEndpoints] = {
    "global": CloudEndpoints(
        login_authority="https://login.microsoftonline.com",
        cognitive_scope="https://cognitiveservices.azure.com/.default",
        api_host="api.cognitive.microsoft.com",
        tts_host="tts.speech.microsoft.com",
        stt_host="stt.speech.microsoft.com",
        translator_endpoint="https://api.cognitive.microsofttranslator.com",
    ),
    "china": CloudEndpoints(
        login_authority="https://login.partner.microsoftonline.cn",
        cognitive_scope="https://cognitiveservices.azure.cn/.default",
        api_host="api.cognitive.azure.cn",
        tts_host="tts.speech.azure.cn",
        stt_host="stt.speech.azure.cn",
        translator_endpoint="https://api.translator.azure.cn",
    ),
}
