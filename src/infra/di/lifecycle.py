"""Lifecycle management for dependency injection."""

from enum import Enum


class Lifecycle(Enum):
    """Lifecycle strategies for dependency resolution."""

    SINGLETON = "singleton"
    """Single instance shared across all resolutions and threads."""

    PER_REQUEST = "per_request"
    """One instance per request context, never visible to another context."""

    TRANSIENT = "transient"
    """New instance created on each resolution."""

    INSTANCE = "instance"
    """Pre-built object handed in at registration, returned unchanged."""
