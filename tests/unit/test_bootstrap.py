"""Unit tests for the bootstrap sequencer and its host-facing contract."""

from __future__ import annotations

import threading
from collections.abc import Callable
from typing import Any

import pytest

from src.config.settings import BootstrapSettings
from src.infra.di.bootstrap import Bootstrapper, BootstrapState, bootstrap
from src.infra.di.catalog import ModuleCatalog
from src.infra.di.container import DependencyContainer
from src.infra.di.context import RequestContext
from src.infra.di.contracts import ApplicationStartup, Diagnostics, Engine
from src.infra.di.pipelines import Pipelines
from src.infra.di.registrations import (
    CollectionTypeRegistration,
    InstanceRegistration,
    TypeRegistration,
)
from src.infra.errors import (
    BootstrapStateError,
    NotInitializedError,
    StartupTaskFailure,
    UnresolvedKeyError,
)

# =============================================================================
# Collaborators
# =============================================================================


class RouteResolver:
    pass


class DefaultRouteResolver(RouteResolver):
    pass


class DefaultEngine:
    def __init__(self, resolver: RouteResolver) -> None:
        self.resolver = resolver
        self.request_pipelines_factory: Callable[[RequestContext], Pipelines] | None = None


class RecordingDiagnostics:
    def __init__(self) -> None:
        self.initialized_with: Pipelines | None = None

    def initialize(self, pipelines: Pipelines) -> None:
        self.initialized_with = pipelines


class HomeModule:
    pass


class UsersModule:
    def __init__(self, resolver: RouteResolver) -> None:
        self.resolver = resolver


class UnknownModule:
    pass


class AppConfig:
    def __init__(self, name: str) -> None:
        self.name = name


EXECUTED: list[str] = []


class FirstStartup:
    def initialize(self, pipelines: Pipelines) -> None:
        EXECUTED.append("first")
        pipelines.add_before(lambda context: None)


class SecondStartup:
    def __init__(self, resolver: RouteResolver) -> None:
        self.resolver = resolver

    def initialize(self, pipelines: Pipelines) -> None:
        EXECUTED.append("second")


class ExplodingStartup:
    def initialize(self, pipelines: Pipelines) -> None:
        EXECUTED.append("exploding")
        raise RuntimeError("database unreachable")


class NeverRunStartup:
    def initialize(self, pipelines: Pipelines) -> None:
        EXECUTED.append("never")


class FeatureRegistrations:
    """Registration task contributing a type, a collection and an instance."""

    config = AppConfig("from-task")

    @property
    def type_registrations(self) -> list[TypeRegistration]:
        return [TypeRegistration(RouteResolver, DefaultRouteResolver)]

    @property
    def collection_type_registrations(self) -> list[CollectionTypeRegistration]:
        return []

    @property
    def instance_registrations(self) -> list[InstanceRegistration]:
        return [InstanceRegistration(AppConfig, self.config)]


class StartupRegistrations:
    """Registration task adding its own application startup task."""

    type_registrations: list[TypeRegistration] = []
    instance_registrations: list[InstanceRegistration] = []

    @property
    def collection_type_registrations(self) -> list[CollectionTypeRegistration]:
        return [CollectionTypeRegistration(ApplicationStartup, [SecondStartup])]


@pytest.fixture(autouse=True)
def _reset_executed() -> None:
    EXECUTED.clear()


def make_bootstrapper(settings: BootstrapSettings, **options: Any) -> Bootstrapper:
    options.setdefault(
        "type_registrations",
        [
            TypeRegistration(RouteResolver, DefaultRouteResolver),
            TypeRegistration(Engine, DefaultEngine),
        ],
    )
    options.setdefault("modules", [HomeModule, UsersModule])
    return Bootstrapper(settings=settings, **options)


# =============================================================================
# Sequencing
# =============================================================================


@pytest.mark.unit
class TestBootstrapSequence:
    def test_initialize_reaches_ready(self, settings: BootstrapSettings) -> None:
        bootstrapper = make_bootstrapper(settings)
        assert bootstrapper.state is BootstrapState.UNINITIALIZED

        bootstrapper.initialize()

        assert bootstrapper.state is BootstrapState.READY
        assert bootstrapper.is_ready
        assert bootstrapper.container.frozen

    def test_states_advance_in_order(self, settings: BootstrapSettings) -> None:
        seen: list[BootstrapState] = []
        holder: dict[str, Bootstrapper] = {}

        def configure(container: DependencyContainer) -> None:
            seen.append(holder["b"].state)

        def on_startup(container: DependencyContainer, pipelines: Pipelines) -> None:
            seen.append(holder["b"].state)

        bootstrapper = make_bootstrapper(
            settings, configure_container=configure, on_application_startup=on_startup
        )
        holder["b"] = bootstrapper
        bootstrapper.initialize()

        assert seen == [BootstrapState.STORE_CREATED, BootstrapState.INSTANCES_REGISTERED]

    def test_initialize_twice_is_rejected(self, settings: BootstrapSettings) -> None:
        bootstrapper = make_bootstrapper(settings)
        bootstrapper.initialize()

        with pytest.raises(BootstrapStateError, match="already ran"):
            bootstrapper.initialize()
        assert bootstrapper.is_ready

    def test_reentrant_initialize_from_hook_fails(self, settings: BootstrapSettings) -> None:
        holder: dict[str, Bootstrapper] = {}

        def configure(container: DependencyContainer) -> None:
            holder["b"].initialize()

        bootstrapper = make_bootstrapper(settings, configure_container=configure)
        holder["b"] = bootstrapper

        with pytest.raises(BootstrapStateError):
            bootstrapper.initialize()
        assert bootstrapper.state is BootstrapState.FAILED

    def test_catalog_registered_before_user_hook(self, settings: BootstrapSettings) -> None:
        seen: list[bool] = []

        def configure(container: DependencyContainer) -> None:
            seen.append(container.is_registered(ModuleCatalog))

        bootstrapper = make_bootstrapper(settings, configure_container=configure)
        bootstrapper.initialize()

        assert seen == [True]
        assert isinstance(bootstrapper.container.resolve(ModuleCatalog), ModuleCatalog)

    def test_planned_instances_replace_hook_bindings(self, settings: BootstrapSettings) -> None:
        config = AppConfig("from-hook")

        def configure(container: DependencyContainer) -> None:
            container.register_instance(AppConfig, config)

        bootstrapper = bootstrap(
            settings=settings,
            type_registrations=[TypeRegistration(Engine, DefaultEngine)],
            configure_container=configure,
            registration_tasks=[FeatureRegistrations],
        )
        # Planned instance registrations run after the hook.
        assert bootstrapper.container.resolve(AppConfig) is FeatureRegistrations.config

    def test_registration_tasks_contribute(self, settings: BootstrapSettings) -> None:
        task = FeatureRegistrations()
        bootstrapper = make_bootstrapper(
            settings,
            type_registrations=[TypeRegistration(Engine, DefaultEngine)],
            registration_tasks=[task],
        )
        bootstrapper.initialize()

        assert isinstance(bootstrapper.container.resolve(RouteResolver), DefaultRouteResolver)
        assert bootstrapper.container.resolve(AppConfig) is task.config

    def test_strict_settings_reject_duplicates(self, strict_settings: BootstrapSettings) -> None:
        bootstrapper = make_bootstrapper(
            strict_settings,
            type_registrations=[
                TypeRegistration(RouteResolver, DefaultRouteResolver),
                TypeRegistration(RouteResolver, DefaultRouteResolver),
            ],
        )

        with pytest.raises(ValueError, match="already registered"):
            bootstrapper.initialize()
        assert bootstrapper.state is BootstrapState.FAILED


# =============================================================================
# Startup tasks
# =============================================================================


@pytest.mark.unit
class TestStartupTasks:
    def test_tasks_run_once_in_order(self, settings: BootstrapSettings) -> None:
        bootstrapper = make_bootstrapper(settings, startup_tasks=[FirstStartup, SecondStartup])
        bootstrapper.initialize()

        assert EXECUTED == ["first", "second"]
        assert len(bootstrapper.application_pipelines.before_request) == 1
        assert [type(t) for t in bootstrapper.container.resolve_all(ApplicationStartup)] == [
            FirstStartup,
            SecondStartup,
        ]

    def test_registration_task_startups_join_host_startups(
        self, settings: BootstrapSettings
    ) -> None:
        bootstrapper = make_bootstrapper(
            settings, startup_tasks=[FirstStartup], registration_tasks=[StartupRegistrations()]
        )
        bootstrapper.initialize()

        assert EXECUTED == ["first", "second"]

    def test_failing_task_is_fatal(self, settings: BootstrapSettings) -> None:
        bootstrapper = make_bootstrapper(
            settings, startup_tasks=[FirstStartup, ExplodingStartup, NeverRunStartup]
        )

        with pytest.raises(StartupTaskFailure, match="database unreachable") as excinfo:
            bootstrapper.initialize()

        assert isinstance(excinfo.value.cause, RuntimeError)
        assert excinfo.value.context["task"].endswith("ExplodingStartup")
        assert EXECUTED == ["first", "exploding"]
        assert bootstrapper.state is BootstrapState.FAILED

    def test_failed_bootstrapper_refuses_resolution(self, settings: BootstrapSettings) -> None:
        bootstrapper = make_bootstrapper(settings, startup_tasks=[ExplodingStartup])
        with pytest.raises(StartupTaskFailure):
            bootstrapper.initialize()

        with pytest.raises(NotInitializedError):
            bootstrapper.get_engine()
        with RequestContext() as context:
            with pytest.raises(NotInitializedError):
                bootstrapper.get_module(HomeModule, context)
            with pytest.raises(NotInitializedError):
                bootstrapper.get_all_modules(context)
            with pytest.raises(NotInitializedError):
                bootstrapper.initialize_request_pipeline(context)
        with pytest.raises(BootstrapStateError):
            bootstrapper.initialize()

    def test_task_construction_failure_is_fatal(self, settings: BootstrapSettings) -> None:
        bootstrapper = make_bootstrapper(
            settings,
            type_registrations=[TypeRegistration(Engine, DefaultEngine)],
            startup_tasks=[SecondStartup],
        )

        with pytest.raises(StartupTaskFailure, match="could not be constructed"):
            bootstrapper.initialize()
        assert bootstrapper.state is BootstrapState.FAILED

    def test_application_startup_hook_receives_pipelines(
        self, settings: BootstrapSettings
    ) -> None:
        received: list[Pipelines] = []
        bootstrapper = make_bootstrapper(
            settings, on_application_startup=lambda container, pipelines: received.append(pipelines)
        )
        bootstrapper.initialize()

        assert received == [bootstrapper.application_pipelines]


# =============================================================================
# Host-facing resolution
# =============================================================================


@pytest.mark.unit
class TestHostContract:
    def test_resolution_before_initialize_fails(self, settings: BootstrapSettings) -> None:
        bootstrapper = make_bootstrapper(settings)

        with pytest.raises(NotInitializedError, match="not initialised"):
            bootstrapper.get_engine()
        with pytest.raises(NotInitializedError):
            bootstrapper.get_diagnostics()
        with pytest.raises(NotInitializedError):
            bootstrapper.container
        with pytest.raises(NotInitializedError):
            bootstrapper.create_request_context()

    def test_get_engine_is_singleton_and_wired(self, settings: BootstrapSettings) -> None:
        bootstrapper = bootstrap(
            settings=settings,
            type_registrations=[
                TypeRegistration(RouteResolver, DefaultRouteResolver),
                TypeRegistration(Engine, DefaultEngine),
            ],
        )

        engine = bootstrapper.get_engine()
        assert isinstance(engine, DefaultEngine)
        assert bootstrapper.get_engine() is engine
        assert engine.request_pipelines_factory == bootstrapper.initialize_request_pipeline

    def test_get_engine_from_many_threads(self, settings: BootstrapSettings) -> None:
        bootstrapper = make_bootstrapper(settings)
        bootstrapper.initialize()
        engines: list[Any] = []

        threads = [
            threading.Thread(target=lambda: engines.append(bootstrapper.get_engine()))
            for _ in range(8)
        ]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join(timeout=5.0)

        assert len(engines) == 8
        assert all(engine is engines[0] for engine in engines)

    def test_diagnostics_absent_is_not_fatal(self, settings: BootstrapSettings) -> None:
        bootstrapper = make_bootstrapper(settings)
        bootstrapper.initialize()

        assert bootstrapper.is_ready
        with pytest.raises(UnresolvedKeyError):
            bootstrapper.get_diagnostics()

    def test_diagnostics_initialized_with_application_pipelines(
        self, settings: BootstrapSettings
    ) -> None:
        bootstrapper = make_bootstrapper(
            settings,
            type_registrations=[
                TypeRegistration(RouteResolver, DefaultRouteResolver),
                TypeRegistration(Engine, DefaultEngine),
                TypeRegistration(Diagnostics, RecordingDiagnostics),
            ],
        )
        bootstrapper.initialize()

        diagnostics = bootstrapper.get_diagnostics()
        assert isinstance(diagnostics, RecordingDiagnostics)
        assert diagnostics.initialized_with is bootstrapper.application_pipelines

    def test_diagnostics_disabled(self) -> None:
        settings = BootstrapSettings(manage_logging=False, diagnostics_enabled=False)
        bootstrapper = make_bootstrapper(
            settings,
            type_registrations=[
                TypeRegistration(Engine, DefaultEngine),
                TypeRegistration(RouteResolver, DefaultRouteResolver),
                TypeRegistration(Diagnostics, RecordingDiagnostics),
            ],
        )
        bootstrapper.initialize()

        assert bootstrapper.get_diagnostics().initialized_with is None

    def test_get_module_per_request(self, settings: BootstrapSettings) -> None:
        bootstrapper = make_bootstrapper(settings)
        bootstrapper.initialize()

        with bootstrapper.create_request_context() as one, RequestContext() as two:
            users = bootstrapper.get_module(UsersModule, one)
            assert bootstrapper.get_module(UsersModule, one) is users
            assert bootstrapper.get_module(UsersModule, two) is not users
            assert isinstance(users.resolver, DefaultRouteResolver)

    def test_get_module_miss(self, settings: BootstrapSettings) -> None:
        bootstrapper = make_bootstrapper(settings)
        bootstrapper.initialize()

        with RequestContext() as context:
            with pytest.raises(UnresolvedKeyError):
                bootstrapper.get_module(UnknownModule, context)

    def test_get_all_modules(self, settings: BootstrapSettings) -> None:
        bootstrapper = make_bootstrapper(settings)
        bootstrapper.initialize()

        with RequestContext() as context:
            modules = bootstrapper.get_all_modules(context)
            assert [type(m) for m in modules] == [HomeModule, UsersModule]
            assert modules[1] is bootstrapper.get_module(UsersModule, context)

    def test_instance_fidelity(self, settings: BootstrapSettings) -> None:
        config = AppConfig("prebuilt")
        bootstrapper = make_bootstrapper(
            settings, instance_registrations=[InstanceRegistration(AppConfig, config)]
        )
        bootstrapper.initialize()

        resolved = bootstrapper.container.resolve(AppConfig)
        assert resolved is config
        assert resolved.name == "prebuilt"

    def test_dispose_closes_singletons(self, settings: BootstrapSettings) -> None:
        class ClosingResolver(RouteResolver):
            closed = False

            def close(self) -> None:
                type(self).closed = True

        bootstrapper = make_bootstrapper(
            settings,
            type_registrations=[
                TypeRegistration(RouteResolver, ClosingResolver),
                TypeRegistration(Engine, DefaultEngine),
            ],
        )
        bootstrapper.initialize()
        bootstrapper.get_engine()

        bootstrapper.dispose()
        assert ClosingResolver.closed is True
