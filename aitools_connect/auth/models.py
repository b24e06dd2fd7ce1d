"""Pydantic models for login authority and metadata service responses."""

from pydantic import BaseModel


class TokenResponse(BaseModel):
    """Successful OAuth2 token response."""

    access_token: str
    expires_in: int
    token_type: str = "Bearer"


class TokenErrorResponse(BaseModel):
    """OAuth2 error response body."""

    error: str
    error_description: str | None = None


class DeviceCodeResponse(BaseModel):
    """Response from the device authorization endpoint."""

    device_code: str
    user_code: str
    verification_uri: str
    expires_in: int
    interval: int = 5
    message: str | None = None


class ManagedIdentityTokenResponse(BaseModel):
    """Token from IMDS or the App Service identity endpoint.

    Both endpoints send `expires_in` as a string; lax validation coerces it.
    """

    access_token: str
    expires_in: int
    resource: str | None = None
