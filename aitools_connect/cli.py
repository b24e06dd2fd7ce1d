"""CLI entry point for AI service connectivity testing."""

import argparse
import asyncio
import json
import logging
import os
import sys
from collections.abc import Mapping, Sequence
from pathlib import Path
from typing import Any

import aiohttp

from aitools_connect.auth.cache import FileTokenCache, TokenCache
from aitools_connect.auth.manager import AuthManager, AuthResolution
from aitools_connect.errors import (
    AppError,
    AuthError,
    ConfigurationError,
    InvalidInputError,
)
from aitools_connect.inputs import load_inputs
from aitools_connect.models.credential import Credential
from aitools_connect.models.result import Report
from aitools_connect.runner import TestRunner
from aitools_connect.scenarios import CATALOGUE, ScenarioRegistry, normalize_service
from aitools_connect.services.loading import load_executors
from aitools_connect.settings import DEFAULT_SERVICES, Settings, load_settings

STATUS_SYMBOLS = {
    "passed": "✅",
    "failed": "❌",
    "skipped": "⏭️",
}

EXIT_OK = 0
EXIT_FAILED = 1
EXIT_AUTH = 2
EXIT_NETWORK = 3
EXIT_CONFIGURATION = 4
EXIT_INVALID_INPUT = 5

LOGIN_METHODS = ("token", "device_code", "managed_identity")


def log_results_summary(log: logging.Logger, report: Report) -> None:
    """Log a formatted summary of scenario results."""
    log.info("=" * 80)
    log.info("Test Results Summary:")
    log.info("=" * 80)

    for service_report in report.services:
        log.info(
            "%s (%s, auth=%s)",
            service_report.service,
            service_report.endpoint,
            service_report.auth_method,
        )
        for result in service_report.results:
            symbol = STATUS_SYMBOLS.get(result.status, "?")
            log.info(
                "  %s %s: %s (%.2fs)",
                symbol,
                result.scenario_id,
                result.status,
                result.duration,
            )
            if result.message:
                log.info("    Message: %s", result.message)
            if result.status == "failed" and result.error_detail:
                log.info("    Hint: %s", result.error_detail)

    summary = report.summary
    log.info(
        "Total: %d, passed: %d, failed: %d, skipped: %d in %.2fs%s",
        summary.total,
        summary.passed,
        summary.failed,
        summary.skipped,
        report.total_duration,
        " (incomplete)" if report.incomplete else "",
    )


def exit_code_for(report: Report) -> int:
    """Map a finished report to the process exit code.

    Precedence: network failure > auth failure > any other failure.
    Skipped results never fail the run.
    """
    failed = [result for result in report.results() if result.status == "failed"]
    if any(result.error_kind == "network" for result in failed):
        return EXIT_NETWORK
    if any(result.error_kind == "auth" for result in failed):
        return EXIT_AUTH
    if failed or report.incomplete:
        return EXIT_FAILED
    return EXIT_OK


def exit_code_for_error(error: AppError) -> int:
    """Exit code for an error raised before any scenario ran."""
    match error:
        case ConfigurationError():
            return EXIT_CONFIGURATION
        case AuthError(reason="missing_tenant"):
            return EXIT_CONFIGURATION
        case AuthError():
            return EXIT_AUTH
        case InvalidInputError():
            return EXIT_INVALID_INPUT
    return EXIT_FAILED


def print_error(error: AppError) -> None:
    print(f"error[{error.kind}]: {error.message}", file=sys.stderr)
    if error.hint:
        print(f"hint: {error.hint}", file=sys.stderr)


def format_output(report: Report) -> dict[str, Any]:
    """Format the report for JSON output."""
    return {
        "timestamp": report.timestamp.isoformat(),
        "total_duration": round(report.total_duration, 3),
        "incomplete": report.incomplete,
        "summary": {
            "total": report.summary.total,
            "passed": report.summary.passed,
            "failed": report.summary.failed,
            "skipped": report.summary.skipped,
        },
        "services": [
            {
                "service": service.service,
                "endpoint": service.endpoint,
                "auth_method": service.auth_method,
                "results": [
                    {
                        "scenario_id": result.scenario_id,
                        "status": result.status,
                        "duration": round(result.duration, 3),
                        "message": result.message,
                        "error_kind": result.error_kind,
                        "error_detail": result.error_detail,
                        "http_status": result.http_status,
                    }
                    for result in service.results
                ],
            }
            for service in report.services
        ],
    }


def parse_csv(value: str | None) -> Sequence[str]:
    """Parse a comma-separated list, ignoring blanks."""
    if not value or not value.strip():
        return ()
    return tuple(item.strip() for item in value.split(",") if item.strip())


def scenario_filter_for(
    settings: Settings, services: Sequence[str], requested: Sequence[str]
) -> Mapping[str, Sequence[str]]:
    """Scenario ids per service.

    `service:scenario` entries target one service; bare ids apply to every
    selected service. Without requested ids the configured lists apply.
    """
    if not requested:
        return {service: settings.service(service).scenarios for service in services}

    selected: dict[str, list[str]] = {service: [] for service in services}
    for entry in requested:
        service, sep, scenario_id = entry.partition(":")
        if not sep:
            for ids in selected.values():
                ids.append(entry)
        elif (service := normalize_service(service)) in selected:
            selected[service].append(scenario_id)
        else:
            raise ConfigurationError(
                f"Scenario '{entry}' targets service '{service}' which is not selected"
            )
    return selected


def build_overrides(args: argparse.Namespace) -> dict[str, Any]:
    """Settings overrides from explicit command-line arguments."""
    services = [normalize_service(s) for s in parse_csv(args.services)] or list(
        DEFAULT_SERVICES
    )
    service_overrides = {"api_key": args.api_key, "endpoint": args.endpoint}
    return {
        "cloud": args.cloud,
        "region": args.region,
        "timeout": args.timeout,
        "verbose": args.verbose or None,
        "auth": {
            "method": args.auth,
            "tenant_id": args.tenant,
            "client_id": args.client_id,
            "bearer_token": args.bearer_token,
            "managed_identity_client_id": args.managed_identity_client_id,
            "use_cache": args.use_cache,
            "force_refresh": args.force_refresh,
            "show_token": args.show_token,
        },
        "services": (
            {service: service_overrides for service in services}
            if any(value is not None for value in service_overrides.values())
            else {}
        ),
        "inputs": {
            "audio_file": getattr(args, "audio_file", None),
            "image_file": getattr(args, "image_file", None),
            "document_file": getattr(args, "document_file", None),
            "text": getattr(args, "text", None),
        },
    }


async def resolve_credentials(
    manager: AuthManager, settings: Settings, services: Sequence[str]
) -> Mapping[str, Credential | AuthError]:
    """Resolve credentials once per distinct auth request.

    Raises:
        AuthError: If a tenant-bound method has no tenant, which no service
            can recover from

    """
    requests = {service: settings.auth_request(service) for service in services}
    resolutions = await manager.resolve_all(requests)
    credentials: dict[str, Credential | AuthError] = {}
    for service, resolution in resolutions.items():
        if isinstance(resolution, AuthResolution):
            credentials[service] = resolution.credential
        elif (
            resolution.reason == "missing_tenant"
            and requests[service].method != "both"
        ):
            raise resolution
        else:
            credentials[service] = resolution
    return credentials


async def run(
    settings: Settings,
    services: Sequence[str],
    requested_scenarios: Sequence[str],
    cache: TokenCache,
) -> int:
    """Run connectivity tests and return exit code."""
    log = logging.getLogger("aitools_connect")

    inputs = load_inputs(settings.inputs)
    executors = load_executors(services)
    scenario_filter = scenario_filter_for(settings, services, requested_scenarios)

    async with aiohttp.ClientSession() as session:
        runner = TestRunner(session=session, settings=settings, executors=executors)
        runner.plan(services, scenario_filter)

        log.info("Resolving credentials (method=%s)", settings.auth.method)
        manager = AuthManager(
            cache=cache,
            session=session,
            use_cache=settings.auth.use_cache,
            force_refresh=settings.auth.force_refresh,
            show_token=settings.auth.show_token,
        )
        credentials = await resolve_credentials(manager, settings, services)

        report = await runner.run(
            services, scenario_filter, credentials, inputs, settings.timeout
        )

    log_results_summary(log, report)
    print(json.dumps(format_output(report), indent=2))
    return exit_code_for(report)


async def login(settings: Settings, cache: TokenCache, clear_cache: bool) -> int:
    """Acquire a token with an interactive or ambient method and show it."""
    log = logging.getLogger("aitools_connect")

    if clear_cache:
        cache.clear_all()

    method = settings.auth.method
    if method not in LOGIN_METHODS:
        method = "device_code"
        log.info(
            "Auth method %s does not issue tokens, using device_code",
            settings.auth.method,
        )

    async with AuthManager.open(
        cache,
        use_cache=settings.auth.use_cache,
        force_refresh=settings.auth.force_refresh,
        show_token=settings.auth.show_token,
    ) as manager:
        resolution = await manager.resolve(settings.auth_request(method=method))

    credential = resolution.credential
    print(
        json.dumps(
            {
                "method": credential.method,
                "source": resolution.source,
                "token": credential.masked,
                "expires_at": (
                    credential.expires_at.isoformat() if credential.expires_at else None
                ),
            },
            indent=2,
        )
    )
    return EXIT_OK


def list_scenarios(services: Sequence[str]) -> int:
    registry = ScenarioRegistry()
    for scenario in registry.list(services or None):
        print(
            f"{scenario.service:<22} {scenario.id:<20} "
            f"{scenario.input_kind:<9} {scenario.description}"
        )
    return EXIT_OK


def build_parser() -> argparse.ArgumentParser:
    common = argparse.ArgumentParser(add_help=False)
    common.add_argument("--config", type=Path, help="YAML configuration file")
    common.add_argument("--cloud", help="Cloud environment (global, china)")
    common.add_argument("--region", help="Default service region")
    common.add_argument("--timeout", type=float, help="Per-scenario timeout in seconds")
    common.add_argument(
        "--auth",
        help="Auth method (key, token, device_code, managed_identity, manual_token, both)",
    )
    common.add_argument("--tenant", help="Tenant id for token-based auth")
    common.add_argument("--client-id", help="Client id for token-based auth")
    common.add_argument(
        "--bearer-token", help="Access token for manual_token auth"
    )
    common.add_argument(
        "--managed-identity-client-id", help="Client id of a user-assigned identity"
    )
    common.add_argument(
        "--no-cache",
        dest="use_cache",
        action="store_const",
        const=False,
        help="Neither read nor write the token cache",
    )
    common.add_argument(
        "--force-refresh",
        action="store_const",
        const=True,
        help="Acquire a new token even when a cached one is valid",
    )
    common.add_argument(
        "--show-token",
        action="store_const",
        const=True,
        help="Write the raw credential to stderr",
    )
    common.add_argument("--cache-file", type=Path, help="Token cache location")
    common.add_argument("--api-key", help="API key for the selected services")
    common.add_argument("--endpoint", help="Custom endpoint for the selected services")
    common.add_argument(
        "--services", help="Comma-separated services, in reporting order"
    )
    verbosity = common.add_mutually_exclusive_group()
    verbosity.add_argument("-v", "--verbose", action="store_true")
    verbosity.add_argument("-q", "--quiet", action="store_true")

    parser = argparse.ArgumentParser(
        description="Test connectivity and authentication against AI services"
    )
    subparsers = parser.add_subparsers(dest="command", required=True)

    test = subparsers.add_parser("test", parents=[common], help="Run scenarios")
    test.add_argument(
        "--scenarios",
        help="Comma-separated scenario ids, optionally as service:scenario",
    )
    test.add_argument("--audio-file", type=Path)
    test.add_argument("--image-file", type=Path)
    test.add_argument("--document-file", type=Path)
    test.add_argument("--text", help="Inline text input")

    login_parser = subparsers.add_parser(
        "login", parents=[common], help="Acquire and cache a token"
    )
    login_parser.add_argument(
        "--clear-cache", action="store_true", help="Remove cached tokens first"
    )

    subparsers.add_parser(
        "list-scenarios", parents=[common], help="List available scenarios"
    )
    return parser


async def dispatch(args: argparse.Namespace) -> int:
    if args.command == "list-scenarios":
        return list_scenarios([normalize_service(s) for s in parse_csv(args.services)])

    settings = load_settings(args.config, os.environ, build_overrides(args))
    cache = FileTokenCache(path=args.cache_file) if args.cache_file else FileTokenCache()

    if args.command == "login":
        return await login(settings, cache, args.clear_cache)

    services = [normalize_service(s) for s in parse_csv(args.services)]
    services = services or [s for s in settings.enabled_services() if s in CATALOGUE]
    if not services:
        raise ConfigurationError("No services selected")
    return await run(settings, services, parse_csv(args.scenarios), cache)


def main(argv: Sequence[str] | None = None) -> None:
    """CLI entry point."""
    args = build_parser().parse_args(argv)

    if args.verbose:
        level = logging.DEBUG
    elif args.quiet:
        level = logging.WARNING
    else:
        level = logging.INFO
    logging.basicConfig(
        level=level,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        stream=sys.stderr,
    )

    try:
        exit_code = asyncio.run(dispatch(args))
    except AppError as exc:
        print_error(exc)
        exit_code = exit_code_for_error(exc)
    sys.exit(exit_code)


if __name__ == "__main__":  # pragma: no cover
    main()
