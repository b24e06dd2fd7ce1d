"""Loading of service executors from entry points."""

from collections.abc import Iterable, Mapping
from importlib.metadata import entry_points

from aitools_connect.errors import ConfigurationError
from aitools_connect.services.base import ServiceExecutor

ENTRY_POINT_GROUP = "aitools_connect.services"


def load_executor(name: str) -> ServiceExecutor:
    """Instantiate the executor registered under `name`.

    Raises:
        ConfigurationError: If no executor is registered under `name`

    """
    entries = entry_points(group=ENTRY_POINT_GROUP)

    for entry in entries:
        if entry.name == name:
            executor_cls: type[ServiceExecutor] = entry.load()
            return executor_cls()

    available = [e.name for e in entries]
    raise ConfigurationError(
        f"Service '{name}' not found. Available services: {available}"
    )


def load_executors(names: Iterable[str]) -> Mapping[str, ServiceExecutor]:
    return {name: load_executor(name) for name in names}
