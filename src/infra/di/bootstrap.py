"""Bootstrap sequencer for setting up the dependency injection container."""

from __future__ import annotations

from collections.abc import Callable, Sequence
from enum import Enum
from typing import Any, TypeVar

import structlog

from src.config.settings import BootstrapSettings, get_settings
from src.infra.di.catalog import ModuleCatalog
from src.infra.di.container import DependencyContainer
from src.infra.di.context import RequestContext
from src.infra.di.contracts import (
    AfterRequestHook,
    ApplicationRegistrations,
    ApplicationStartup,
    BeforeRequestHook,
    Diagnostics,
    Engine,
    ErrorHook,
    RequestStartup,
)
from src.infra.di.lifecycle import Lifecycle
from src.infra.di.pipelines import Pipelines
from src.infra.di.planner import RegistrationPlanner
from src.infra.di.registrations import (
    CollectionTypeRegistration,
    InstanceRegistration,
    ModuleRegistration,
    TypeRegistration,
    type_key,
)
from src.infra.errors import (
    BootstrapStateError,
    NotInitializedError,
    StartupTaskFailure,
)
from src.infra.logging.config import configure_logging, is_configured

LOGGER = structlog.get_logger(__name__)

M = TypeVar("M")

ConfigureContainer = Callable[[DependencyContainer], None]
ApplicationStartupHook = Callable[[DependencyContainer, Pipelines], None]
RequestStartupHook = Callable[[DependencyContainer, Pipelines, RequestContext], None]


class BootstrapState(Enum):
    """Bootstrap progress; transitions only move forward."""

    UNINITIALIZED = "uninitialized"
    STORE_CREATED = "store_created"
    USER_CONFIGURED = "user_configured"
    TYPES_REGISTERED = "types_registered"
    COLLECTIONS_REGISTERED = "collections_registered"
    MODULES_REGISTERED = "modules_registered"
    INSTANCES_REGISTERED = "instances_registered"
    STARTUP_TASKS_EXECUTED = "startup_tasks_executed"
    READY = "ready"
    FAILED = "failed"


_SEQUENCE: tuple[BootstrapState, ...] = (
    BootstrapState.UNINITIALIZED,
    BootstrapState.STORE_CREATED,
    BootstrapState.USER_CONFIGURED,
    BootstrapState.TYPES_REGISTERED,
    BootstrapState.COLLECTIONS_REGISTERED,
    BootstrapState.MODULES_REGISTERED,
    BootstrapState.INSTANCES_REGISTERED,
    BootstrapState.STARTUP_TASKS_EXECUTED,
    BootstrapState.READY,
)


def _configure_nothing(container: DependencyContainer) -> None:
    return None


def _application_startup_nothing(container: DependencyContainer, pipelines: Pipelines) -> None:
    return None


def _request_startup_nothing(
    container: DependencyContainer, pipelines: Pipelines, context: RequestContext
) -> None:
    return None


class Bootstrapper:
    """Wire the binding store once, then resolve per-request modules and services.

    The host supplies everything up front: the four registration lists,
    startup task types, registration tasks and optional callbacks. Each
    callback defaults to a no-op. ``initialize()`` runs exactly once; if any
    step fails the bootstrapper is left in ``FAILED`` and must be replaced.
    """

    def __init__(
        self,
        *,
        type_registrations: Sequence[TypeRegistration] = (),
        collection_registrations: Sequence[CollectionTypeRegistration] = (),
        modules: Sequence[type[Any] | ModuleRegistration] = (),
        instance_registrations: Sequence[InstanceRegistration] = (),
        startup_tasks: Sequence[type[Any]] = (),
        request_startup_tasks: Sequence[type[Any]] = (),
        registration_tasks: Sequence[ApplicationRegistrations | type[Any]] = (),
        configure_container: ConfigureContainer | None = None,
        on_application_startup: ApplicationStartupHook | None = None,
        on_request_startup: RequestStartupHook | None = None,
        settings: BootstrapSettings | None = None,
    ) -> None:
        self._settings = settings if settings is not None else get_settings()
        self._type_registrations = list(type_registrations)
        self._collection_registrations = list(collection_registrations)
        self._module_registrations = [
            ModuleRegistration(module) if isinstance(module, type) else module
            for module in modules
        ]
        self._instance_registrations = list(instance_registrations)
        self._startup_tasks = list(startup_tasks)
        self._request_startup_tasks = list(request_startup_tasks)
        self._registration_tasks = list(registration_tasks)
        self._configure_container = configure_container or _configure_nothing
        self._on_application_startup = on_application_startup or _application_startup_nothing
        self._on_request_startup = on_request_startup or _request_startup_nothing

        self.application_pipelines = Pipelines()
        self._state = BootstrapState.UNINITIALIZED
        self._container: DependencyContainer | None = None
        self._catalog: ModuleCatalog | None = None

    # ------------------------------------------------------------------
    # State
    # ------------------------------------------------------------------
    @property
    def state(self) -> BootstrapState:
        return self._state

    @property
    def is_ready(self) -> bool:
        return self._state is BootstrapState.READY

    @property
    def settings(self) -> BootstrapSettings:
        return self._settings

    @property
    def container(self) -> DependencyContainer:
        """The binding store; available once the store has been created."""
        if self._container is None:
            raise NotInitializedError("Binding store has not been created yet")
        return self._container

    def _advance(self, target: BootstrapState) -> None:
        expected: BootstrapState | None = None
        if self._state in _SEQUENCE[:-1]:
            expected = _SEQUENCE[_SEQUENCE.index(self._state) + 1]
        if target is not expected:
            raise BootstrapStateError(
                f"Illegal bootstrap transition {self._state.value} -> {target.value}",
                context={"from": self._state.value, "to": target.value},
            )
        self._state = target
        LOGGER.debug("bootstrap.state", state=target.value)

    def _require_ready(self) -> DependencyContainer:
        if self._state is not BootstrapState.READY or self._container is None:
            raise NotInitializedError(
                "Bootstrapper is not initialised. Call initialize() before resolving",
                context={"state": self._state.value},
            )
        return self._container

    def _ready_catalog(self) -> ModuleCatalog:
        self._require_ready()
        if self._catalog is None:
            raise NotInitializedError("Module catalog has not been created yet")
        return self._catalog

    # ------------------------------------------------------------------
    # Bootstrap sequence
    # ------------------------------------------------------------------
    def initialize(self) -> None:
        """Run the bootstrap sequence to READY.

        Raises:
            BootstrapStateError: If called on a bootstrapper that already ran.
            StartupTaskFailure: If a startup task fails; the state becomes FAILED.
        """
        if self._state is not BootstrapState.UNINITIALIZED:
            raise BootstrapStateError(
                f"Bootstrapper already ran (state={self._state.value}); create a new one",
                context={"state": self._state.value},
            )

        if self._settings.manage_logging and not is_configured():
            configure_logging(self._settings.log_level)

        try:
            self._run()
        except Exception as exc:
            failed_in = self._state.value
            self._state = BootstrapState.FAILED
            LOGGER.error("bootstrap.failed", state=failed_in, error=str(exc))
            raise

    def _run(self) -> None:
        container = DependencyContainer(allow_override=self._settings.allow_override)
        self._container = container
        self._catalog = ModuleCatalog(container)
        # The catalog is bound before the user hook so the host never has to register it.
        container.register_instance(ModuleCatalog, self._catalog)
        self._advance(BootstrapState.STORE_CREATED)

        self._configure_container(container)
        self._advance(BootstrapState.USER_CONFIGURED)

        types, collections, instances = self._collect_registrations()
        planner = RegistrationPlanner(container)

        planner.register_types(types)
        self._advance(BootstrapState.TYPES_REGISTERED)

        planner.register_collections(collections)
        if self._request_startup_tasks:
            # Rebuilt for every request so they can depend on per-request bindings.
            container.register_collection(
                RequestStartup, self._request_startup_tasks, lifecycle=Lifecycle.PER_REQUEST
            )
        self._advance(BootstrapState.COLLECTIONS_REGISTERED)

        planner.register_modules(self._module_registrations)
        self._advance(BootstrapState.MODULES_REGISTERED)

        planner.register_instances(instances)
        self._advance(BootstrapState.INSTANCES_REGISTERED)

        self._run_startup_tasks(container)
        self._on_application_startup(container, self.application_pipelines)
        self._initialize_diagnostics(container)
        self._advance(BootstrapState.STARTUP_TASKS_EXECUTED)

        container.freeze()
        self._advance(BootstrapState.READY)
        LOGGER.info(
            "bootstrap.ready",
            bindings=len(container.bindings()),
            modules=len(self._module_registrations),
            startup_tasks=len(self._startup_tasks),
        )

    def _collect_registrations(
        self,
    ) -> tuple[
        list[TypeRegistration], list[CollectionTypeRegistration], list[InstanceRegistration]
    ]:
        """Merge the bootstrapper's own lists with those of the registration tasks."""
        types = list(self._type_registrations)
        collections = list(self._collection_registrations)
        instances = list(self._instance_registrations)

        if self._startup_tasks:
            collections.append(CollectionTypeRegistration(ApplicationStartup, self._startup_tasks))

        for task in self._registration_tasks:
            registrations: ApplicationRegistrations = task() if isinstance(task, type) else task
            types.extend(registrations.type_registrations)
            collections.extend(registrations.collection_type_registrations)
            instances.extend(registrations.instance_registrations)
            LOGGER.debug("bootstrap.registration_task.collected", task=type(registrations))

        return types, collections, instances

    def _run_startup_tasks(self, container: DependencyContainer) -> None:
        try:
            tasks = container.resolve_all(ApplicationStartup)
        except Exception as exc:
            raise StartupTaskFailure(
                "Startup tasks could not be constructed", cause=exc
            ) from exc

        for task in tasks:
            name = type_key(type(task))
            try:
                task.initialize(self.application_pipelines)
            except Exception as exc:
                LOGGER.error("bootstrap.startup_task.failed", task=name, error=str(exc))
                raise StartupTaskFailure(
                    f"Startup task {name} failed: {exc}",
                    context={"task": name},
                    cause=exc,
                ) from exc
            LOGGER.debug("bootstrap.startup_task.completed", task=name)

    def _initialize_diagnostics(self, container: DependencyContainer) -> None:
        if not self._settings.diagnostics_enabled:
            return
        if not container.is_registered(Diagnostics):
            LOGGER.info("bootstrap.diagnostics.absent")
            return
        container.resolve(Diagnostics).initialize(self.application_pipelines)

    # ------------------------------------------------------------------
    # Host-facing resolution
    # ------------------------------------------------------------------
    def get_engine(self) -> Engine:
        """Resolve the singleton engine and point it at this bootstrapper's pipelines."""
        container = self._require_ready()
        engine = container.resolve(Engine)
        engine.request_pipelines_factory = self.initialize_request_pipeline
        return engine

    def get_diagnostics(self) -> Diagnostics:
        """Resolve the diagnostics service.

        Raises:
            UnresolvedKeyError: If no diagnostics service was registered.
        """
        container = self._require_ready()
        return container.resolve(Diagnostics)

    def get_module(self, module_type: type[M], context: RequestContext) -> M:
        return self._ready_catalog().get_module(module_type, context)

    def get_all_modules(self, context: RequestContext) -> list[Any]:
        return self._ready_catalog().get_all_modules(context)

    def create_request_context(self, request_id: str | None = None, **items: Any) -> RequestContext:
        self._require_ready()
        return RequestContext(request_id, **items)

    def initialize_request_pipeline(self, context: RequestContext) -> Pipelines:
        """Build the hooks for one request and attach them to ``context``.

        Starts from a copy of the application pipelines, appends hooks bound
        directly in the store, then lets every request startup task and the
        ``on_request_startup`` callback add their own.
        """
        container = self._require_ready()
        pipelines = self.application_pipelines.copy()
        pipelines.extend(
            before=container.resolve_all(BeforeRequestHook, context=context, include_unnamed=True),
            after=container.resolve_all(AfterRequestHook, context=context, include_unnamed=True),
            on_error=container.resolve_all(ErrorHook, context=context, include_unnamed=True),
        )

        for task in container.resolve_all(RequestStartup, context=context):
            task.initialize(pipelines, context)

        self._on_request_startup(container, pipelines, context)
        context.pipelines = pipelines
        return pipelines

    def dispose(self) -> None:
        """Dispose singletons created by the binding store."""
        if self._container is not None:
            self._container.dispose()
            LOGGER.debug("bootstrap.disposed")


def bootstrap(**options: Any) -> Bootstrapper:
    """Create a bootstrapper from keyword options and run it to READY."""
    bootstrapper = Bootstrapper(**options)
    bootstrapper.initialize()
    return bootstrapper


__all__ = ["BootstrapState", "Bootstrapper", "bootstrap"]
