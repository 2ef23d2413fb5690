"""structlog setup: one JSON object per line on stdout.

Every line carries ``ts``, ``level``, ``event`` and ``msg``. Class objects
passed as fields (service keys, implementations) are written as their
dotted path, and secret-bearing keys are redacted at any nesting depth.
"""

from __future__ import annotations

import logging
import os
import sys
from typing import Any, Mapping, MutableMapping, cast

import structlog
from structlog.typing import Processor

LEVEL_ENV_VAR = "HOSTKIT_LOG_LEVEL"
REDACTED = "[REDACTED]"

_REDACT_KEYS = frozenset(
    {
        "access_token",
        "api_key",
        "apikey",
        "auth",
        "authorization",
        "client_secret",
        "password",
        "refresh_token",
        "secret",
        "token",
    }
)

_configured = False


def _mirror_event_as_msg(
    _: Any, __: str, event_dict: MutableMapping[str, Any]
) -> Mapping[str, Any]:
    event = event_dict.get("event")
    if isinstance(event, str):
        event_dict.setdefault("msg", event)
    return event_dict


def _dotted_types(_: Any, __: str, event_dict: MutableMapping[str, Any]) -> Mapping[str, Any]:
    for key, value in list(event_dict.items()):
        if isinstance(value, type):
            event_dict[key] = f"{value.__module__}.{value.__qualname__}"
    return event_dict


def _redact(key: str, value: Any) -> Any:
    if isinstance(value, Mapping):
        return {k: _redact(str(k), v) for k, v in cast(Mapping[str, Any], value).items()}
    if isinstance(value, list):
        return [_redact(key, item) for item in cast(list[Any], value)]
    return REDACTED if key.lower() in _REDACT_KEYS else value


def _redact_secrets(_: Any, __: str, event_dict: MutableMapping[str, Any]) -> Mapping[str, Any]:
    return {key: _redact(key, value) for key, value in event_dict.items()}


def _processors() -> list[Processor]:
    return [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.filter_by_level,
        structlog.stdlib.add_log_level,
        structlog.processors.TimeStamper(fmt="iso", utc=True, key="ts"),
        _mirror_event_as_msg,
        _dotted_types,
        _redact_secrets,
        structlog.processors.dict_tracebacks,
        structlog.processors.JSONRenderer(),
    ]


def is_configured() -> bool:
    return _configured


def configure_logging(level: str | None = None) -> None:
    """Route structlog through stdlib logging as JSON lines.

    ``level`` falls back to ``HOSTKIT_LOG_LEVEL`` and then to INFO; unknown
    names also mean INFO. Calling again rebinds the handler to the current
    ``sys.stdout``.
    """
    global _configured

    name = (level or os.getenv(LEVEL_ENV_VAR) or "INFO").upper()
    logging.basicConfig(
        level=getattr(logging, name, logging.INFO),
        format="%(message)s",
        stream=sys.stdout,
        force=True,
    )
    structlog.configure(
        processors=_processors(),
        wrapper_class=structlog.stdlib.BoundLogger,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )
    _configured = True


__all__ = ["LEVEL_ENV_VAR", "REDACTED", "configure_logging", "is_configured"]
