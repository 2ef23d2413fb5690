"""Error hierarchy for the bootstrap and resolution core.

All errors carry a human readable message, an optional context mapping and an
optional cause. Context values whose key looks secret-bearing are masked by
``log_safe_context`` before they are handed to the logger.
"""

from __future__ import annotations

from typing import Any, Mapping, cast

_SENSITIVE_KEYS: tuple[str, ...] = (
    "password",
    "passwd",
    "secret",
    "token",
    "api_key",
    "apikey",
    "authorization",
    "auth",
)


def _sanitize_context(context: Mapping[str, Any] | None) -> dict[str, Any]:
    """Mask secret-bearing keys in an error context, recursing into dicts."""
    if not context:
        return {}

    def _sanitize(value: Any) -> Any:
        if isinstance(value, dict):
            mapping = cast(Mapping[str, Any], value)
            sanitized_inner: dict[str, Any] = {}
            for k, v in mapping.items():
                key_lower = str(k).lower()
                sanitized_inner[k] = _sanitize(
                    "***redacted***" if any(sk in key_lower for sk in _SENSITIVE_KEYS) else v
                )
            return sanitized_inner
        return value

    sanitized: dict[str, Any] = {}
    for key, value in context.items():
        key_lower = str(key).lower()
        if any(sk in key_lower for sk in _SENSITIVE_KEYS):
            sanitized[key] = "***redacted***"
        else:
            sanitized[key] = _sanitize(value)
    return sanitized


class Error(Exception):
    """Base error carrying a message, optional context and cause."""

    def __init__(
        self,
        message: str,
        *,
        context: dict[str, Any] | None = None,
        cause: BaseException | None = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.context: dict[str, Any] = dict(context or {})
        self.cause: BaseException | None = cause

    def to_dict(self) -> dict[str, Any]:
        return {
            "type": type(self).__name__,
            "message": self.message,
            "context": dict(self.context),
            "cause": repr(self.cause) if self.cause is not None else None,
        }

    def __str__(self) -> str:  # pragma: no cover - delegates to message
        return self.message

    def log_safe_context(self) -> dict[str, Any]:
        """Return the context with secret-bearing values masked."""
        return _sanitize_context(self.context)


# --- Binding store errors ---


class ContainerError(Error):
    """Base class for binding store failures."""


class DuplicateRegistrationError(ContainerError, ValueError):
    """A binding already exists and the store does not allow overrides."""


class UnresolvedKeyError(ContainerError, KeyError):
    """The requested capability was never bound."""


class CircularDependencyError(ContainerError, RuntimeError):
    """Constructor injection looped back onto a type already being built."""


class ScopeRequiredError(ContainerError, ValueError):
    """A per-request binding was resolved without a request context."""


class RegistrationClosedError(ContainerError, RuntimeError):
    """The store is frozen; the set of bindings can no longer change."""


# --- Bootstrap errors ---


class BootstrapError(Error):
    """Base class for bootstrap sequencing failures."""


class StartupTaskFailure(BootstrapError):
    """A startup task raised; the bootstrapper can never become ready."""


class NotInitializedError(BootstrapError, RuntimeError):
    """Resolution was requested before the bootstrapper reached ready."""


class BootstrapStateError(BootstrapError, RuntimeError):
    """The bootstrap sequence was re-entered or run out of order."""


__all__ = [
    "BootstrapError",
    "BootstrapStateError",
    "CircularDependencyError",
    "ContainerError",
    "DuplicateRegistrationError",
    "Error",
    "NotInitializedError",
    "RegistrationClosedError",
    "ScopeRequiredError",
    "StartupTaskFailure",
    "UnresolvedKeyError",
]
