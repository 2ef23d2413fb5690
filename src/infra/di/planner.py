"""Applies categorised registration lists to a container in a fixed order."""

from __future__ import annotations

from collections.abc import Iterable

import structlog

from src.infra.di.container import DependencyContainer
from src.infra.di.contracts import Module
from src.infra.di.lifecycle import Lifecycle
from src.infra.di.registrations import (
    CollectionTypeRegistration,
    InstanceRegistration,
    ModuleRegistration,
    TypeRegistration,
)

LOGGER = structlog.get_logger(__name__)


class RegistrationPlanner:
    """Register types, collections, modules and instances, in that order.

    Later phases win when they share a key with an earlier one (an instance
    registered for a capability replaces a type registration for it), which
    is why the order is fixed. Each phase can be run on its own so the
    bootstrapper can record progress between phases.
    """

    def __init__(self, container: DependencyContainer) -> None:
        self._container = container

    def register_types(self, registrations: Iterable[TypeRegistration]) -> int:
        count = 0
        for registration in registrations:
            self._container.register(
                registration.registration_type,
                registration.implementation_type,
                lifecycle=Lifecycle.SINGLETON,
            )
            count += 1
        LOGGER.debug("planner.types.registered", count=count)
        return count

    def register_collections(self, registrations: Iterable[CollectionTypeRegistration]) -> int:
        count = 0
        for registration in registrations:
            self._container.register_collection(
                registration.registration_type, registration.implementation_types
            )
            count += 1
        LOGGER.debug("planner.collections.registered", count=count)
        return count

    def register_modules(self, registrations: Iterable[ModuleRegistration]) -> int:
        count = 0
        for registration in registrations:
            self._container.register(
                Module,
                registration.module_type,
                name=registration.module_key,
                lifecycle=Lifecycle.PER_REQUEST,
            )
            count += 1
        LOGGER.debug("planner.modules.registered", count=count)
        return count

    def register_instances(self, registrations: Iterable[InstanceRegistration]) -> int:
        count = 0
        for registration in registrations:
            self._container.register_instance(
                registration.registration_type, registration.implementation
            )
            count += 1
        LOGGER.debug("planner.instances.registered", count=count)
        return count

    def apply(
        self,
        *,
        types: Iterable[TypeRegistration] = (),
        collections: Iterable[CollectionTypeRegistration] = (),
        modules: Iterable[ModuleRegistration] = (),
        instances: Iterable[InstanceRegistration] = (),
    ) -> None:
        """Run all four phases."""
        self.register_types(types)
        self.register_collections(collections)
        self.register_modules(modules)
        self.register_instances(instances)


__all__ = ["RegistrationPlanner"]
