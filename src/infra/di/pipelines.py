"""Ordered request lifecycle hooks attached to application and request scopes."""

from __future__ import annotations

from collections.abc import Callable, Iterable
from dataclasses import dataclass, field
from typing import Any

Hook = Callable[..., Any]


@dataclass
class Pipelines:
    """Before, after and on-error hook lists, kept in insertion order.

    The application-wide instance is filled by startup tasks during bootstrap;
    every request receives its own copy so per-request hooks never leak into
    the next request.
    """

    before_request: list[Hook] = field(default_factory=list)
    after_request: list[Hook] = field(default_factory=list)
    on_error: list[Hook] = field(default_factory=list)

    def add_before(self, hook: Hook) -> Pipelines:
        self.before_request.append(hook)
        return self

    def add_after(self, hook: Hook) -> Pipelines:
        self.after_request.append(hook)
        return self

    def add_on_error(self, hook: Hook) -> Pipelines:
        self.on_error.append(hook)
        return self

    def extend(
        self,
        *,
        before: Iterable[Hook] = (),
        after: Iterable[Hook] = (),
        on_error: Iterable[Hook] = (),
    ) -> Pipelines:
        self.before_request.extend(before)
        self.after_request.extend(after)
        self.on_error.extend(on_error)
        return self

    def copy(self) -> Pipelines:
        """Shallow copy: new lists, same hook objects."""
        return Pipelines(
            before_request=list(self.before_request),
            after_request=list(self.after_request),
            on_error=list(self.on_error),
        )

    @property
    def hook_count(self) -> int:
        return len(self.before_request) + len(self.after_request) + len(self.on_error)


__all__ = ["Hook", "Pipelines"]
