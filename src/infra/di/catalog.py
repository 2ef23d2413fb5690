"""Request-facing module resolution."""

from __future__ import annotations

from typing import Any, TypeVar, cast

from src.infra.di.container import DependencyContainer
from src.infra.di.context import RequestContext
from src.infra.di.contracts import Module
from src.infra.di.registrations import type_key

M = TypeVar("M")


class ModuleCatalog:
    """Resolve request handler modules for one request context.

    Modules are bound per request, so every context receives its own
    instances and repeated lookups inside one context return the same object.
    """

    def __init__(self, container: DependencyContainer) -> None:
        self._container = container

    def get_module(self, module_type: type[M], context: RequestContext) -> M:
        """Resolve one module by type.

        Raises:
            UnresolvedKeyError: If ``module_type`` was never registered as a module.
        """
        return cast(M, self._container.resolve(Module, type_key(module_type), context=context))

    def get_all_modules(self, context: RequestContext) -> list[Any]:
        """Resolve every registered module for ``context``, in registration order."""
        return self._container.resolve_all(Module, context=context)


__all__ = ["ModuleCatalog"]
