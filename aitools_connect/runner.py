"""Test runner coordinating scenario execution across services."""

import asyncio
import logging
import time
from collections.abc import Callable, Mapping, Sequence
from dataclasses import dataclass, field

import aiohttp

from aitools_connect.aggregator import build_report
from aitools_connect.auth.base import utc_now
from aitools_connect.errors import AppError, AuthError, ConfigurationError
from aitools_connect.models.credential import Credential
from aitools_connect.models.result import Report, ServiceReport, TestResult
from aitools_connect.models.scenario import InputKind, InputPayload, Scenario
from aitools_connect.scenarios import ScenarioRegistry
from aitools_connect.services.base import ServiceExecutor, TestContext
from aitools_connect.settings import Settings

log = logging.getLogger(__name__)


@dataclass(kw_only=True)
class ServiceRun:
    """Results collected by one service task. Owned by that task alone."""

    service: str
    scenarios: Sequence[Scenario]
    endpoint: str | None = None
    auth_method: str | None = None
    results: list[TestResult] = field(default_factory=list)

    def report(self) -> ServiceReport:
        return ServiceReport(
            service=self.service,
            results=list(self.results),
            endpoint=self.endpoint,
            auth_method=self.auth_method,
        )


def failed_result(scenario: Scenario, error: AppError, duration: float) -> TestResult:
    return TestResult(
        scenario_id=scenario.id,
        status="failed",
        duration=duration,
        message=error.message,
        error_kind=error.kind,
        error_detail=error.hint or None,
        http_status=getattr(error, "status", None),
    )


@dataclass(frozen=True, kw_only=True)
class TestRunner:
    """Runs scenarios: services concurrently, scenarios of a service in order."""

    __test__ = False

    session: aiohttp.ClientSession = field(repr=False)
    settings: Settings
    executors: Mapping[str, ServiceExecutor]
    registry: ScenarioRegistry = field(default_factory=ScenarioRegistry)
    clock: Callable[[], float] = field(default=time.perf_counter, repr=False)

    def plan(
        self,
        services: Sequence[str],
        scenario_filter: Mapping[str, Sequence[str]],
    ) -> Mapping[str, Sequence[Scenario]]:
        """Resolve the scenarios to run per service.

        Raises:
            ConfigurationError: If a service, its executor or a scenario is unknown

        """
        plan: dict[str, Sequence[Scenario]] = {}
        for service in services:
            if service not in self.executors:
                raise ConfigurationError(f"No executor available for '{service}'")
            plan[service] = self.registry.select(service, scenario_filter.get(service))
        return plan

    async def run(
        self,
        services: Sequence[str],
        scenario_filter: Mapping[str, Sequence[str]],
        credentials: Mapping[str, Credential | AuthError],
        inputs: Mapping[InputKind, InputPayload],
        timeout: float,
    ) -> Report:
        """Run the selected scenarios and assemble the report.

        Args:
            services: Services in the order they should be reported
            scenario_filter: Scenario ids per service; absent or empty means all
            credentials: Resolved credential, or the failure, per service
            inputs: Operator-supplied inputs by kind
            timeout: Hard limit per scenario execution, in seconds

        Returns:
            Report with services in requested order, marked incomplete when
            the run was cancelled

        Raises:
            ConfigurationError: If the selection is invalid; nothing runs

        """
        plan = self.plan(services, scenario_filter)
        runs = [ServiceRun(service=s, scenarios=plan[s]) for s in services]
        timestamp = utc_now()
        started = self.clock()

        log.info("Running scenarios for %d service(s)...", len(runs))
        tasks = [
            asyncio.create_task(
                self._run_service(run, credentials.get(run.service), inputs, timeout),
                name=f"service-{run.service}",
            )
            for run in runs
        ]

        incomplete = False
        try:
            outcomes = await asyncio.gather(*tasks, return_exceptions=True)
        except asyncio.CancelledError:
            log.warning("Run interrupted, reporting results collected so far")
            if (current := asyncio.current_task()) is not None:
                current.uncancel()
            outcomes = await asyncio.gather(*tasks, return_exceptions=True)
            incomplete = True

        self._process_outcomes(runs, outcomes)
        return build_report(
            [run.report() for run in runs],
            timestamp=timestamp,
            total_duration=self.clock() - started,
            incomplete=incomplete,
        )

    def _process_outcomes(
        self, runs: Sequence[ServiceRun], outcomes: Sequence[object]
    ) -> None:
        """Convert crashed service tasks into failed results."""
        for run, outcome in zip(runs, outcomes, strict=True):
            if not isinstance(outcome, Exception):
                continue
            log.error(
                "Service %s execution failed: %s", run.service, outcome, exc_info=outcome
            )
            done = {result.scenario_id for result in run.results}
            error = outcome if isinstance(outcome, AppError) else AppError(str(outcome))
            run.results.extend(
                failed_result(scenario, error, 0.0)
                for scenario in run.scenarios
                if scenario.id not in done
            )

    async def _run_service(
        self,
        run: ServiceRun,
        credential: Credential | AuthError | None,
        inputs: Mapping[InputKind, InputPayload],
        timeout: float,
    ) -> None:
        executor = self.executors[run.service]
        service_settings = self.settings.service(run.service)
        region = self.settings.region_for(run.service)
        run.endpoint = executor.endpoint(service_settings, self.settings.cloud, region)

        resolved: Credential | None = None
        setup_error: AppError = AuthError(
            "missing_credential_material", f"No credential resolved for {run.service}"
        )
        match credential:
            case Credential():
                run.auth_method = credential.method
                try:
                    executor.check_credential(credential, service_settings)
                    resolved = credential
                except ConfigurationError as exc:
                    setup_error = exc
            case AuthError():
                setup_error = credential

        log.info("Testing %s at %s", run.service, run.endpoint)
        for scenario in run.scenarios:
            if scenario.requires_input and scenario.input_kind not in inputs:
                result = TestResult(
                    scenario_id=scenario.id,
                    status="skipped",
                    duration=0.0,
                    message=f"Requires {scenario.input_kind} input",
                )
            elif resolved is None:
                result = failed_result(scenario, setup_error, 0.0)
            else:
                context = TestContext(
                    service=run.service,
                    settings=service_settings,
                    credential=resolved,
                    endpoint=run.endpoint,
                    cloud=self.settings.cloud,
                    region=region,
                    timeout=timeout,
                    session=self.session,
                    input=self._input_for(scenario, executor, inputs),
                    verbose=self.settings.verbose,
                )
                result = await self._execute(executor, scenario, context, timeout)

            log.info(
                "Scenario completed: service=%s scenario=%s status=%s duration=%.3fs",
                run.service,
                scenario.id,
                result.status,
                result.duration,
            )
            run.results.append(result)

    @staticmethod
    def _input_for(
        scenario: Scenario,
        executor: ServiceExecutor,
        inputs: Mapping[InputKind, InputPayload],
    ) -> InputPayload | None:
        if scenario.requires_input:
            return inputs[scenario.input_kind]
        if executor.optional_input is not None:
            return inputs.get(executor.optional_input)
        return None

    async def _execute(
        self,
        executor: ServiceExecutor,
        scenario: Scenario,
        context: TestContext,
        timeout: float,
    ) -> TestResult:
        """Run a single attempt under a hard timeout and classify the outcome."""
        started = self.clock()
        try:
            async with asyncio.timeout(timeout):
                message = await executor.execute(scenario.id, context)
        except TimeoutError:
            return TestResult(
                scenario_id=scenario.id,
                status="failed",
                duration=self._elapsed(started),
                message=f"Scenario did not complete within {timeout}s",
                error_kind="network",
                error_detail="Check connectivity to the service endpoint.",
            )
        except AppError as exc:
            return failed_result(scenario, exc, self._elapsed(started))
        except Exception as exc:
            log.exception("Unexpected error in scenario %s", scenario.id)
            return TestResult(
                scenario_id=scenario.id,
                status="failed",
                duration=self._elapsed(started),
                message=f"{type(exc).__name__}: {exc}",
                error_kind="error",
            )

        return TestResult(
            scenario_id=scenario.id,
            status="passed",
            duration=self._elapsed(started),
            message=message,
        )

    def _elapsed(self, started: float) -> float:
        return max(self.clock() - started, 0.0)
