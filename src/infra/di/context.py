"""Request context: the scope that bounds per-request instance identity."""

from __future__ import annotations

import threading
import uuid
from collections.abc import Callable
from typing import TYPE_CHECKING, Any, TypeVar, cast

import structlog

from src.infra.errors import ContainerError

if TYPE_CHECKING:
    from src.infra.di.pipelines import Pipelines

LOGGER = structlog.get_logger(__name__)

T = TypeVar("T")

RegistrationKey = tuple[type[Any], str | None]


class RequestContext:
    """Scope token for one inbound unit of work.

    The host creates one per request and disposes it when the request ends.
    The context owns the cache used for per-request bindings; nothing else
    holds a reference to it, so two contexts never share an instance.
    """

    def __init__(self, request_id: str | None = None, **items: Any) -> None:
        self.request_id = request_id or uuid.uuid4().hex
        self.items: dict[str, Any] = dict(items)
        self.pipelines: Pipelines | None = None
        self._instances: dict[RegistrationKey, Any] = {}
        # Re-entrant: a per-request module may depend on another per-request binding.
        self._lock = threading.RLock()
        self._disposed = False

    @property
    def disposed(self) -> bool:
        return self._disposed

    def get_or_create(self, key: RegistrationKey, factory: Callable[[], T]) -> T:
        """Return the cached instance for ``key``, creating it on first use."""
        with self._lock:
            if self._disposed:
                raise ContainerError(
                    f"Request context {self.request_id} has been disposed",
                    context={"request_id": self.request_id},
                )
            if key in self._instances:
                return cast(T, self._instances[key])
            instance = factory()
            self._instances[key] = instance
            return instance

    def cached(self, key: RegistrationKey) -> bool:
        with self._lock:
            return key in self._instances

    def dispose(self) -> None:
        """Release the per-request cache, disposing instances that support it."""
        with self._lock:
            if self._disposed:
                return
            instances = list(self._instances.values())
            self._instances.clear()
            self._disposed = True

        for instance in instances:
            if hasattr(instance, "dispose"):
                instance.dispose()
            elif hasattr(instance, "close"):
                instance.close()
        LOGGER.debug("request_context.disposed", request_id=self.request_id, released=len(instances))

    def __enter__(self) -> RequestContext:
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.dispose()

    def __repr__(self) -> str:
        return f"RequestContext(request_id={self.request_id!r})"


__all__ = ["RegistrationKey", "RequestContext"]
