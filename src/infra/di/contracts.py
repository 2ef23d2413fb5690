"""Capability keys and extension contracts shared with the hosting layer."""

from __future__ import annotations

from collections.abc import Callable, Sequence
from typing import TYPE_CHECKING, Any, Protocol, runtime_checkable

if TYPE_CHECKING:
    from src.infra.di.context import RequestContext
    from src.infra.di.pipelines import Pipelines
    from src.infra.di.registrations import (
        CollectionTypeRegistration,
        InstanceRegistration,
        TypeRegistration,
    )


class Module:
    """Capability key under which every request handler module is bound.

    Handler classes may inherit from it, but registration only needs the
    class itself.
    """


@runtime_checkable
class Engine(Protocol):
    """Core dispatch service resolved once per process."""

    request_pipelines_factory: Callable[[RequestContext], Pipelines] | None


@runtime_checkable
class Diagnostics(Protocol):
    def initialize(self, pipelines: Pipelines) -> None: ...


@runtime_checkable
class ApplicationStartup(Protocol):
    """One-shot task executed during bootstrap, before the host is ready."""

    def initialize(self, pipelines: Pipelines) -> None: ...


@runtime_checkable
class RequestStartup(Protocol):
    """Task executed for every request while its pipelines are built."""

    def initialize(self, pipelines: Pipelines, context: RequestContext) -> None: ...


@runtime_checkable
class ApplicationRegistrations(Protocol):
    """Registration task that contributes bindings to the bootstrap plan."""

    @property
    def type_registrations(self) -> Sequence[TypeRegistration]: ...

    @property
    def collection_type_registrations(self) -> Sequence[CollectionTypeRegistration]: ...

    @property
    def instance_registrations(self) -> Sequence[InstanceRegistration]: ...


# Keys for hooks registered straight into the store instead of via a RequestStartup.
class BeforeRequestHook(Protocol):
    def __call__(self, context: RequestContext) -> Any: ...


class AfterRequestHook(Protocol):
    def __call__(self, context: RequestContext) -> None: ...


class ErrorHook(Protocol):
    def __call__(self, context: RequestContext, error: BaseException) -> Any: ...


__all__ = [
    "AfterRequestHook",
    "ApplicationRegistrations",
    "ApplicationStartup",
    "BeforeRequestHook",
    "Diagnostics",
    "Engine",
    "ErrorHook",
    "Module",
    "RequestStartup",
]
