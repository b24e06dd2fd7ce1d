"""Module test for the CLI against services simulated by WireMock."""

import json
import os
import subprocess
import sys
from pathlib import Path

import pytest
from wiremock.client import (
    HttpMethods,
    Mapping,
    MappingRequest,
    MappingResponse,
    Mappings,
)

from aitools_connect.testing.payloads import (
    jwt,
    translator_detect,
    translator_languages,
    voices,
)

pytestmark = pytest.mark.module

API_KEY = "0123456789abcdef0123456789abcdef"


def json_mapping(method: str, url_path: str, body: object, status: int = 200) -> Mapping:
    return Mapping(
        request=MappingRequest(method=method, url_path=url_path),
        response=MappingResponse(
            status=status,
            headers={"Content-Type": "application/json"},
            json_body=body,
        ),
    )


def run_cli(args: list[str], tmp_path: Path) -> subprocess.CompletedProcess[str]:
    env = {
        name: value for name, value in os.environ.items() if not name.startswith("AZURE_")
    }
    env["XDG_CACHE_HOME"] = str(tmp_path / "cache")
    return subprocess.run(
        [sys.executable, "-m", "aitools_connect.cli", *args],
        capture_output=True,
        text=True,
        env=env,
        timeout=120,
    )


def test_speech_and_translator_with_api_key(
    wiremock_url: str, tmp_path: Path
) -> None:
    """Runs selected scenarios end to end and reports them in order."""
    Mappings.delete_all_mappings()
    Mappings.create_mapping(
        json_mapping(HttpMethods.GET, "/tts/cognitiveservices/voices/list", voices(2))
    )
    Mappings.create_mapping(
        Mapping(
            request=MappingRequest(
                method=HttpMethods.POST, url_path="/sts/v1.0/issueToken"
            ),
            response=MappingResponse(status=200, body=jwt()),
        )
    )
    Mappings.create_mapping(
        json_mapping(
            HttpMethods.GET, "/translator/text/v3.0/languages", translator_languages()
        )
    )
    Mappings.create_mapping(
        json_mapping(
            HttpMethods.POST, "/translator/text/v3.0/detect", translator_detect("en")
        )
    )

    result = run_cli(
        [
            "test",
            "--services",
            "speech,translator",
            "--scenarios",
            "speech:voices_list,speech:token_exchange,translator:languages,"
            "translator:detect",
            "--endpoint",
            wiremock_url,
            "--api-key",
            API_KEY,
            "--timeout",
            "10",
        ],
        tmp_path,
    )

    assert result.returncode == 0, result.stderr
    report = json.loads(result.stdout)
    assert report["summary"] == {"total": 4, "passed": 4, "failed": 0, "skipped": 0}
    assert [s["service"] for s in report["services"]] == ["speech", "translator"]
    speech, translator = report["services"]
    assert [r["scenario_id"] for r in speech["results"]] == [
        "voices_list",
        "token_exchange",
    ]
    assert speech["results"][0]["message"] == "Retrieved 2 voices"
    assert translator["results"][1]["message"] == "Detected language: en"
    assert API_KEY not in result.stderr


def test_unauthorized_key_exits_with_auth_code(
    wiremock_url: str, tmp_path: Path
) -> None:
    """A 401 from the service fails the run with the auth exit code."""
    Mappings.delete_all_mappings()
    Mappings.create_mapping(
        json_mapping(
            HttpMethods.GET,
            "/tts/cognitiveservices/voices/list",
            {"error": {"code": "401", "message": "Access denied due to invalid key"}},
            status=401,
        )
    )

    result = run_cli(
        [
            "test",
            "--services",
            "speech",
            "--scenarios",
            "voices_list",
            "--endpoint",
            wiremock_url,
            "--api-key",
            API_KEY,
        ],
        tmp_path,
    )

    assert result.returncode == 2, result.stderr
    report = json.loads(result.stdout)
    (outcome,) = report["services"][0]["results"]
    assert outcome["error_kind"] == "auth"
    assert outcome["http_status"] == 401
