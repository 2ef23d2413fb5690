"""Dependency injection container, bootstrap sequencer and request scoping."""

from src.infra.di.bootstrap import Bootstrapper, BootstrapState, bootstrap
from src.infra.di.catalog import ModuleCatalog
from src.infra.di.container import DependencyContainer
from src.infra.di.context import RequestContext
from src.infra.di.lifecycle import Lifecycle
from src.infra.di.pipelines import Pipelines
from src.infra.di.planner import RegistrationPlanner

__all__ = [
    "BootstrapState",
    "Bootstrapper",
    "DependencyContainer",
    "Lifecycle",
    "ModuleCatalog",
    "Pipelines",
    "RegistrationPlanner",
    "RequestContext",
    "bootstrap",
]
