"""Host integration for scheduled applications.

A host (the CLI, or any asyncio service) drives the application:

    app = MyApplication()
    app.initialize(config, diagnostics)
    await app.run(shutdown_event)
    app.close()

Diagnostics registration is optional; when a registry is given, every
action gets an info provider under ("scheduled", <name>) and a health check
named "scheduled (<name>)". Registrations are disposed by close().
"""

import asyncio
import logging
from abc import ABC, abstractmethod
from collections.abc import Callable
from typing import Any, Protocol

from cadence.config.models import CadenceConfig
from cadence.scheduling.builder import ScheduledActionsBuilder
from cadence.scheduling.diagnostics import (
    HealthCheckResult,
    ScheduledActionHealthCheck,
    ScheduledActionInfoProvider,
)
from cadence.scheduling.runners import ScheduledActionsRunner

logger = logging.getLogger(__name__)

# Calling a disposer removes the registration it was returned for
Disposer = Callable[[], None]


class InfoProvider(Protocol):
    def query(self) -> dict[str, Any]: ...


class HealthCheck(Protocol):
    def check(self) -> HealthCheckResult: ...


class DiagnosticsRegistry(Protocol):
    """Host diagnostics surface that scheduled actions register into."""

    def register_info_provider(
        self, entry: tuple[str, str], provider: InfoProvider
    ) -> Disposer: ...

    def register_health_check(self, name: str, check: HealthCheck) -> Disposer: ...


class InMemoryDiagnostics:
    """Minimal DiagnosticsRegistry keeping registrations in dicts."""

    def __init__(self) -> None:
        self.info_providers: dict[tuple[str, str], InfoProvider] = {}
        self.health_checks: dict[str, HealthCheck] = {}

    def register_info_provider(
        self, entry: tuple[str, str], provider: InfoProvider
    ) -> Disposer:
        if entry in self.info_providers:
            raise ValueError(f"Info provider already registered: {entry}")
        self.info_providers[entry] = provider
        return lambda: self.info_providers.pop(entry, None)

    def register_health_check(self, name: str, check: HealthCheck) -> Disposer:
        if name in self.health_checks:
            raise ValueError(f"Health check already registered: {name}")
        self.health_checks[name] = check
        return lambda: self.health_checks.pop(name, None)

    def query_info(self) -> dict[str, dict[str, Any]]:
        return {
            f"{group}/{name}": provider.query()
            for (group, name), provider in self.info_providers.items()
        }

    def check_health(self) -> dict[str, HealthCheckResult]:
        return {name: check.check() for name, check in self.health_checks.items()}


class ScheduledApplication(ABC):
    """Base class for applications made of scheduled actions."""

    def __init__(self) -> None:
        self._runner: ScheduledActionsRunner | None = None
        self._disposers: list[Disposer] = []

    @abstractmethod
    def setup(self, builder: ScheduledActionsBuilder, config: CadenceConfig) -> None:
        """Register the application's actions."""

    @property
    def runner(self) -> ScheduledActionsRunner:
        if self._runner is None:
            raise RuntimeError("Application is not initialized")
        return self._runner

    def initialize(
        self,
        config: CadenceConfig,
        diagnostics: DiagnosticsRegistry | None = None,
    ) -> None:
        builder = ScheduledActionsBuilder()
        self.setup(builder, config)
        self._runner = builder.build()

        if diagnostics is not None:
            self._register_diagnostics(diagnostics)

    async def run(self, shutdown: asyncio.Event) -> None:
        await self.runner.run(shutdown)

    def close(self) -> None:
        for dispose in self._disposers:
            dispose()
        self._disposers.clear()
        self.on_close()

    def on_close(self) -> None:
        """Hook for subclasses to release their own resources."""

    def _register_diagnostics(self, diagnostics: DiagnosticsRegistry) -> None:
        for action_runner in self.runner.runners:
            name = action_runner.name
            self._disposers.append(
                diagnostics.register_info_provider(
                    ("scheduled", name), ScheduledActionInfoProvider(action_runner)
                )
            )
            self._disposers.append(
                diagnostics.register_health_check(
                    f"scheduled ({name})", ScheduledActionHealthCheck(action_runner)
                )
            )
        logger.debug(f"Registered diagnostics for {len(self.runner.runners)} actions")


class ConfiguredApplication(ScheduledApplication):
    """Application whose actions all come from the config file."""

    def setup(self, builder: ScheduledActionsBuilder, config: CadenceConfig) -> None:
        builder.from_config(config)
