"""Layered settings: defaults < config file < environment < explicit overrides."""

import logging
from collections.abc import Mapping
from pathlib import Path
from typing import Any

import yaml
from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
    SecretStr,
    ValidationError,
    field_validator,
)

from aitools_connect.auth.factory import AuthRequest
from aitools_connect.clouds import Cloud
from aitools_connect.errors import ConfigurationError
from aitools_connect.models.credential import AuthMethod

log = logging.getLogger(__name__)

DEFAULT_REGION = "eastus"
DEFAULT_TIMEOUT = 30.0

CLOUD_ALIASES: Mapping[str, Cloud] = {
    "global": "global",
    "azure": "global",
    "public": "global",
    "china": "china",
    "mooncake": "china",
    "cn": "china",
}

AUTH_METHOD_ALIASES: Mapping[str, AuthMethod] = {
    "key": "key",
    "apikey": "key",
    "api-key": "key",
    "token": "token",
    "entra": "token",
    "aad": "token",
    "device_code": "device_code",
    "device-code": "device_code",
    "managed_identity": "managed_identity",
    "managed-identity": "managed_identity",
    "mi": "managed_identity",
    "manual_token": "manual_token",
    "manual-token": "manual_token",
    "bearer": "manual_token",
    "both": "both",
}

DEFAULT_SERVICES: Mapping[str, Mapping[str, Any]] = {
    "speech": {},
    "translator": {"region": "global"},
    "language": {},
    "vision": {},
    "document_intelligence": {},
}


class ServiceSettings(BaseModel):
    """Per-service settings. An empty `scenarios` list selects all scenarios."""

    model_config = ConfigDict(extra="forbid")

    enabled: bool = True
    region: str | None = None
    api_key: SecretStr | None = None
    endpoint: str | None = None
    scenarios: list[str] = Field(default_factory=list)


class AuthSettings(BaseModel):
    model_config = ConfigDict(extra="forbid")

    method: AuthMethod = "key"
    tenant_id: str | None = None
    client_id: str | None = None
    client_secret: SecretStr | None = None
    bearer_token: SecretStr | None = None
    managed_identity_client_id: str | None = None
    use_cache: bool = True
    force_refresh: bool = False
    show_token: bool = False

    @field_validator("method", mode="before")
    @classmethod
    def _normalize_method(cls, value: Any) -> Any:
        if isinstance(value, str):
            return AUTH_METHOD_ALIASES.get(value.strip().lower(), value)
        return value


class InputSettings(BaseModel):
    model_config = ConfigDict(extra="forbid")

    audio_file: Path | None = None
    image_file: Path | None = None
    document_file: Path | None = None
    text: str | None = None


class Settings(BaseModel):
    """Fully merged configuration for one invocation."""

    model_config = ConfigDict(extra="forbid")

    cloud: Cloud = "global"
    timeout: float = Field(default=DEFAULT_TIMEOUT, gt=0)
    region: str = DEFAULT_REGION
    verbose: bool = False
    auth: AuthSettings = Field(default_factory=AuthSettings)
    services: dict[str, ServiceSettings] = Field(default_factory=dict)
    inputs: InputSettings = Field(default_factory=InputSettings)

    @field_validator("cloud", mode="before")
    @classmethod
    def _normalize_cloud(cls, value: Any) -> Any:
        if isinstance(value, str):
            return CLOUD_ALIASES.get(value.strip().lower(), value)
        return value

    def service(self, name: str) -> ServiceSettings:
        return self.services.get(name) or ServiceSettings()

    def region_for(self, service: str) -> str:
        return self.service(service).region or self.region

    def enabled_services(self) -> list[str]:
        return [name for name, service in self.services.items() if service.enabled]

    def auth_request(
        self, service: str | None = None, method: AuthMethod | None = None
    ) -> AuthRequest:
        """Auth inputs for `service`; identical inputs compare equal."""
        auth = self.auth
        method = method or auth.method
        uses_key = service is not None and method in ("key", "both")
        return AuthRequest(
            method=method,
            cloud=self.cloud,
            api_key=self.service(service).api_key if uses_key else None,
            tenant_id=auth.tenant_id,
            client_id=auth.client_id,
            client_secret=auth.client_secret,
            bearer_token=auth.bearer_token,
            managed_identity_client_id=auth.managed_identity_client_id,
            timeout=self.timeout,
        )


def deep_merge(base: Mapping[str, Any], layer: Mapping[str, Any]) -> dict[str, Any]:
    """Merge `layer` over `base`; nested mappings merge, None values are ignored."""
    merged = dict(base)
    for key, value in layer.items():
        if value is None:
            continue
        if isinstance(value, Mapping) and isinstance(merged.get(key), Mapping):
            merged[key] = deep_merge(merged[key], value)
        else:
            merged[key] = value
    return merged


def read_config_file(path: Path) -> Mapping[str, Any]:
    """Read a YAML config file into a mapping.

    Raises:
        ConfigurationError: If the file is unreadable, not YAML, or not a mapping

    """
    try:
        text = path.read_text(encoding="utf-8")
    except OSError as exc:
        raise ConfigurationError(
            f"Cannot read config file {path}: {exc.strerror or exc}",
            hint="Check the --config path.",
        ) from exc

    try:
        data = yaml.safe_load(text)
    except yaml.YAMLError as exc:
        raise ConfigurationError(f"Invalid YAML in {path}: {exc}") from exc

    if data is None:
        return {}
    if not isinstance(data, Mapping):
        raise ConfigurationError(f"Config file {path} must contain a mapping")
    return data


def _env_name(service: str, suffix: str) -> str:
    return f"AZURE_{service.upper().replace('-', '_')}_{suffix}"


def environment_layer(
    environ: Mapping[str, str], services: list[str]
) -> dict[str, Any]:
    """Settings contributed by AZURE_* environment variables."""
    layer: dict[str, Any] = {
        "cloud": environ.get("AZURE_CLOUD"),
        "region": environ.get("AZURE_REGION"),
        "auth": {
            "method": environ.get("AZURE_AUTH_METHOD"),
            "tenant_id": environ.get("AZURE_TENANT_ID"),
            "client_id": environ.get("AZURE_CLIENT_ID"),
            "client_secret": environ.get("AZURE_CLIENT_SECRET"),
            "bearer_token": environ.get("AZURE_BEARER_TOKEN"),
            "managed_identity_client_id": environ.get(
                "AZURE_MANAGED_IDENTITY_CLIENT_ID"
            ),
        },
    }
    service_layer: dict[str, Any] = {}
    for name in services:
        values = {
            "api_key": environ.get(_env_name(name, "API_KEY")),
            "region": environ.get(_env_name(name, "REGION")),
        }
        if any(value is not None for value in values.values()):
            service_layer[name] = values
    layer["services"] = service_layer
    return layer


def _with_key(service: Any, api_key: str) -> Any:
    if not isinstance(service, Mapping) or service.get("api_key") is not None:
        return service
    return {**service, "api_key": api_key}


def load_settings(
    path: Path | None = None,
    environ: Mapping[str, str] | None = None,
    overrides: Mapping[str, Any] | None = None,
) -> Settings:
    """Merge every settings layer and validate the result.

    Args:
        path: Optional YAML config file
        environ: Environment variables (empty when None)
        overrides: Explicit values, usually from command-line arguments

    Raises:
        ConfigurationError: If any layer is unreadable or the result is invalid

    """
    environ = environ or {}
    merged: dict[str, Any] = {
        "services": {name: dict(values) for name, values in DEFAULT_SERVICES.items()}
    }

    if path is not None:
        log.debug("Loading config file %s", path)
        merged = deep_merge(merged, read_config_file(path))

    services = list(merged.get("services") or {})
    merged = deep_merge(merged, environment_layer(environ, services))
    merged = deep_merge(merged, overrides or {})

    if shared_key := environ.get("AZURE_AI_API_KEY"):
        merged["services"] = {
            name: _with_key(service, shared_key)
            for name, service in (merged.get("services") or {}).items()
        }

    try:
        return Settings.model_validate(merged)
    except ValidationError as exc:
        problems = "; ".join(
            f"{'.'.join(str(part) for part in error['loc'])}: {error['msg']}"
            for error in exc.errors()
        )
        raise ConfigurationError(f"Invalid settings: {problems}") from exc
