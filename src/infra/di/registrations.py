"""Plain registration records consumed by the registration planner."""

from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass, field
from typing import Any


def type_key(cls: type[Any]) -> str:
    """Return the stable, fully-qualified identifier of a class."""
    return f"{cls.__module__}.{cls.__qualname__}"


@dataclass(frozen=True, slots=True)
class TypeRegistration:
    """Bind ``registration_type`` to ``implementation_type`` as a singleton."""

    registration_type: type[Any]
    implementation_type: type[Any]


@dataclass(frozen=True, slots=True)
class CollectionTypeRegistration:
    """Bind an ordered set of implementations to one capability."""

    registration_type: type[Any]
    implementation_types: tuple[type[Any], ...] = field(default_factory=tuple)

    def __post_init__(self) -> None:
        # Accept any sequence but store an immutable, ordered copy.
        object.__setattr__(self, "implementation_types", tuple(self.implementation_types))


@dataclass(frozen=True, slots=True)
class ModuleRegistration:
    """A per-request module, keyed by its stable type identifier."""

    module_type: type[Any]

    @property
    def module_key(self) -> str:
        return type_key(self.module_type)

    @classmethod
    def for_types(cls, module_types: Sequence[type[Any]]) -> list[ModuleRegistration]:
        return [cls(module_type) for module_type in module_types]


@dataclass(frozen=True, slots=True)
class InstanceRegistration:
    """Bind a pre-built object; resolution returns this exact object."""

    registration_type: type[Any]
    implementation: Any


__all__ = [
    "CollectionTypeRegistration",
    "InstanceRegistration",
    "ModuleRegistration",
    "TypeRegistration",
    "type_key",
]
