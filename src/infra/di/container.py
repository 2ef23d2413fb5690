"""Core dependency injection container implementation."""

from __future__ import annotations

import inspect
import threading
import types
from collections.abc import Callable, Collection, Iterable, Sequence
from dataclasses import dataclass
from typing import Any, TypeVar, Union, cast, get_args, get_origin, get_type_hints

import structlog

from src.infra.di.context import RegistrationKey, RequestContext
from src.infra.di.lifecycle import Lifecycle
from src.infra.di.registrations import type_key
from src.infra.errors import (
    CircularDependencyError,
    DuplicateRegistrationError,
    RegistrationClosedError,
    ScopeRequiredError,
    UnresolvedKeyError,
)

LOGGER = structlog.get_logger(__name__)

T = TypeVar("T")

_Chain = tuple[RegistrationKey, ...]

_COLLECTION_ORIGINS: tuple[Any, ...] = (list, Sequence, Iterable, Collection)


@dataclass(frozen=True, slots=True)
class Binding:
    """One live registration: what to build for a key and how long it lives."""

    key: RegistrationKey
    lifecycle: Lifecycle
    implementation: type[Any] | None = None
    factory: Callable[[], Any] | None = None
    instance: Any = None


def _describe(key: RegistrationKey) -> str:
    service_type, name = key
    if name is None:
        return service_type.__name__
    return f"{service_type.__name__}[{name}]"


class DependencyContainer:
    """Binding store with lifetime policies and constructor injection.

    Bindings are keyed by ``(service_type, name)``; ``name`` is the optional
    secondary key that lets several implementations of one capability coexist.
    Registration happens on a single thread during startup; once the store is
    frozen only resolution is allowed, and resolution is thread safe.
    """

    def __init__(self, *, allow_override: bool = True) -> None:
        """Initialize an empty container.

        Args:
            allow_override: When True a second registration for the same key
                replaces the first. When False it raises
                ``DuplicateRegistrationError``.
        """
        self._bindings: dict[RegistrationKey, Binding] = {}
        self._singletons: dict[RegistrationKey, Any] = {}
        self._lock = threading.RLock()
        self._allow_override = allow_override
        self._frozen = False

    @property
    def allow_override(self) -> bool:
        return self._allow_override

    @property
    def frozen(self) -> bool:
        return self._frozen

    def freeze(self) -> None:
        """Close the registration phase; the set of bindings is fixed from now on."""
        self._frozen = True

    # ------------------------------------------------------------------
    # Registration
    # ------------------------------------------------------------------
    def register(
        self,
        service_type: type[T],
        implementation: type[Any] | None = None,
        *,
        name: str | None = None,
        factory: Callable[[], T] | None = None,
        lifecycle: Lifecycle = Lifecycle.SINGLETON,
    ) -> None:
        """Register a service type with an implementation or factory.

        Args:
            service_type: The capability used as the key.
            implementation: Class to construct. Defaults to ``service_type``;
                its constructor dependencies are injected from the store.
            name: Optional secondary key.
            factory: Zero-argument callable used instead of construction.
            lifecycle: How instances are shared (default: SINGLETON).

        Raises:
            DuplicateRegistrationError: If the key is bound and overrides are off.
            RegistrationClosedError: If the container is frozen.
        """
        if lifecycle is Lifecycle.INSTANCE:
            raise ValueError("Use register_instance() for pre-built instances")
        if factory is not None and implementation is not None:
            raise ValueError("Pass either an implementation or a factory, not both")

        key: RegistrationKey = (service_type, name)
        binding = Binding(
            key=key,
            lifecycle=lifecycle,
            implementation=None if factory is not None else (implementation or service_type),
            factory=factory,
        )
        with self._lock:
            self._put(binding)

    def register_instance(self, service_type: type[T], instance: T, *, name: str | None = None) -> None:
        """Register a pre-created instance; resolution returns this exact object."""
        key: RegistrationKey = (service_type, name)
        with self._lock:
            self._put(Binding(key=key, lifecycle=Lifecycle.INSTANCE, instance=instance))

    def register_collection(
        self,
        service_type: type[Any],
        implementations: Iterable[type[Any]],
        *,
        lifecycle: Lifecycle = Lifecycle.SINGLETON,
    ) -> None:
        """Register an ordered set of implementations for one capability.

        Each element is bound under its stable type identifier, so collections
        for the same capability accumulate. An element bound again is replaced
        and moves to its place in the new collection; ``resolve_all`` returns
        elements in the order they were last registered.

        Raises:
            DuplicateRegistrationError: If overrides are off and an element is
                already bound. Nothing is registered in that case.
        """
        impls = list(dict.fromkeys(implementations))
        keys: list[RegistrationKey] = [(service_type, type_key(impl)) for impl in impls]
        with self._lock:
            self._ensure_open()
            taken = [key for key in keys if key in self._bindings]
            if taken and not self._allow_override:
                raise DuplicateRegistrationError(
                    f"Collection element {_describe(taken[0])} is already registered",
                    context={"service": type_key(service_type), "name": taken[0][1]},
                )

            for key, impl in zip(keys, impls):
                # Popping first puts the key at the end of the insertion order.
                self._drop(key)
                self._bindings[key] = Binding(key=key, lifecycle=lifecycle, implementation=impl)
            if taken:
                LOGGER.debug("di.collection.replaced", service=service_type, replaced=len(taken))

    def _put(self, binding: Binding) -> None:
        self._ensure_open()
        if binding.key in self._bindings:
            if not self._allow_override:
                raise DuplicateRegistrationError(
                    f"Service {_describe(binding.key)} is already registered",
                    context={"service": type_key(binding.key[0]), "name": binding.key[1]},
                )
            LOGGER.debug("di.binding.replaced", service=binding.key[0], name=binding.key[1])
            # A replaced binding must never hand out its predecessor's singleton.
            self._singletons.pop(binding.key, None)
        self._bindings[binding.key] = binding

    def _drop(self, key: RegistrationKey) -> None:
        self._bindings.pop(key, None)
        self._singletons.pop(key, None)

    def _ensure_open(self) -> None:
        if self._frozen:
            raise RegistrationClosedError("Container is frozen; bindings can no longer change")

    # ------------------------------------------------------------------
    # Resolution
    # ------------------------------------------------------------------
    def resolve(
        self,
        service_type: type[T],
        name: str | None = None,
        *,
        context: RequestContext | None = None,
    ) -> T:
        """Resolve a service instance based on its registered lifecycle.

        Args:
            service_type: The type to resolve.
            name: Optional secondary key.
            context: Request scope; required for per-request bindings.

        Raises:
            UnresolvedKeyError: If the service is not registered.
            ScopeRequiredError: If a per-request binding is resolved without a context.
            CircularDependencyError: If constructor injection loops.
        """
        return cast(T, self._resolve((service_type, name), context, ()))

    def resolve_all(
        self,
        service_type: type[T],
        *,
        context: RequestContext | None = None,
        include_unnamed: bool = False,
    ) -> list[T]:
        """Resolve every named binding of ``service_type`` in registration order.

        Returns an empty list when nothing is registered under the capability.
        """
        return cast(list[T], self._resolve_all(service_type, context, (), include_unnamed))

    def _resolve(
        self, key: RegistrationKey, context: RequestContext | None, chain: _Chain
    ) -> Any:
        binding = self._bindings.get(key)
        if binding is None:
            raise UnresolvedKeyError(
                f"Service {_describe(key)} is not registered",
                context={"service": type_key(key[0]), "name": key[1]},
            )

        if key in chain:
            cycle = " -> ".join(_describe(k) for k in (*chain, key))
            raise CircularDependencyError(f"Circular dependency detected: {cycle}")
        chain = (*chain, key)

        lifecycle = binding.lifecycle
        if lifecycle is Lifecycle.INSTANCE:
            return binding.instance
        elif lifecycle is Lifecycle.SINGLETON:
            return self._resolve_singleton(binding, chain)
        elif lifecycle is Lifecycle.PER_REQUEST:
            return self._resolve_per_request(binding, context, chain)
        elif lifecycle is Lifecycle.TRANSIENT:
            return self._create(binding, context, chain)
        else:
            raise ValueError(f"Unknown lifecycle: {lifecycle}")

    def _resolve_all(
        self,
        service_type: type[Any],
        context: RequestContext | None,
        chain: _Chain,
        include_unnamed: bool,
    ) -> list[Any]:
        keys = [
            key
            for key in list(self._bindings)
            if key[0] is service_type and (include_unnamed or key[1] is not None)
        ]
        return [self._resolve(key, context, chain) for key in keys]

    def _resolve_singleton(self, binding: Binding, chain: _Chain) -> Any:
        """Resolve or create a singleton instance."""
        key = binding.key
        if key in self._singletons:
            return self._singletons[key]

        with self._lock:
            # Double-check after acquiring lock
            if key in self._singletons:
                return self._singletons[key]

            # Singletons outlive every request, so they are built without one.
            instance = self._create(binding, None, chain)
            self._singletons[key] = instance
            return instance

    def _resolve_per_request(
        self, binding: Binding, context: RequestContext | None, chain: _Chain
    ) -> Any:
        if context is None:
            raise ScopeRequiredError(
                f"Per-request service {_describe(binding.key)} requires a request context",
                context={"service": type_key(binding.key[0]), "name": binding.key[1]},
            )
        return context.get_or_create(binding.key, lambda: self._create(binding, context, chain))

    def _create(self, binding: Binding, context: RequestContext | None, chain: _Chain) -> Any:
        if binding.factory is not None:
            return binding.factory()
        if binding.implementation is None:
            raise ValueError(f"Binding {_describe(binding.key)} has nothing to build")
        return self._construct(binding.implementation, context, chain)

    def _construct(
        self, implementation: type[Any], context: RequestContext | None, chain: _Chain
    ) -> Any:
        """Instantiate ``implementation``, injecting dependencies from its constructor hints."""
        sig = inspect.signature(implementation.__init__)
        type_hints = get_type_hints(implementation.__init__)

        kwargs: dict[str, Any] = {}

        for param_name, param in sig.parameters.items():
            if param_name == "self":
                continue

            # Skip *args and **kwargs
            if param.kind in (inspect.Parameter.VAR_POSITIONAL, inspect.Parameter.VAR_KEYWORD):
                continue

            has_default = param.default is not inspect.Parameter.empty
            param_type = type_hints.get(param_name)

            # No hint or Any: leave it to the default, or to the constructor to complain.
            if param_type is None or param_type is Any:
                continue

            element_type = self._infer_collection_type(param_type)
            if element_type is not None:
                if has_default and not self._has_named(element_type):
                    continue
                kwargs[param_name] = self._resolve_all(element_type, context, chain, False)
                continue

            injectable_type = self._infer_injectable_type(param_type)
            if injectable_type is None:
                continue

            if (injectable_type, None) not in self._bindings and has_default:
                continue
            kwargs[param_name] = self._resolve((injectable_type, None), context, chain)

        return implementation(**kwargs)

    def _has_named(self, service_type: type[Any]) -> bool:
        return any(key[0] is service_type and key[1] is not None for key in list(self._bindings))

    def _infer_collection_type(self, annotation: Any) -> type[Any] | None:
        """Return ``T`` for ``list[T]``, ``Sequence[T]`` and friends."""
        origin = get_origin(annotation)
        if origin not in _COLLECTION_ORIGINS:
            return None
        args = get_args(annotation)
        if len(args) == 1 and isinstance(args[0], type):
            return args[0]
        return None

    def _infer_injectable_type(self, annotation: Any) -> type[Any] | None:
        """Normalize supported annotations (plain types or Optional[T]) to a type."""

        if isinstance(annotation, type):
            return annotation

        origin = get_origin(annotation)
        union_args: tuple[Any, ...] | None = None

        if origin in (types.UnionType, Union):
            union_args = get_args(annotation)
        elif isinstance(annotation, types.UnionType):
            union_args = getattr(annotation, "__args__", ())

        if union_args:
            non_none = [arg for arg in union_args if arg is not type(None)]
            has_none = len(non_none) < len(union_args)
            if has_none and len(non_none) == 1:
                candidate = non_none[0]
                if isinstance(candidate, type):
                    return candidate
            return None

        return None

    # ------------------------------------------------------------------
    # Introspection and teardown
    # ------------------------------------------------------------------
    def is_registered(self, service_type: type[Any], name: str | None = None) -> bool:
        """Check if a service type is registered under ``name``."""
        return (service_type, name) in self._bindings

    def bindings(self) -> list[Binding]:
        """Snapshot of the live bindings in registration order."""
        return list(self._bindings.values())

    def clear(self) -> None:
        """Clear all registrations and cached singletons.

        Only allowed while the container is still open for registration.
        """
        with self._lock:
            self._ensure_open()
            self._bindings.clear()
            self._singletons.clear()

    def dispose(self) -> None:
        """Dispose cached singletons, most recently created first.

        Pre-built instances belong to whoever registered them and are left alone.
        """
        with self._lock:
            instances = list(self._singletons.values())
            self._singletons.clear()

        for instance in reversed(instances):
            if hasattr(instance, "dispose"):
                instance.dispose()
            elif hasattr(instance, "close"):
                instance.close()


__all__ = ["Binding", "DependencyContainer"]
