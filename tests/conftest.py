from __future__ import annotations

from collections.abc import Iterator

import pytest

from src.config.settings import BootstrapSettings, get_settings
from src.infra.di.container import DependencyContainer
from src.infra.di.context import RequestContext


@pytest.fixture(autouse=True)
def _reset_settings_cache() -> Iterator[None]:
    """Ensure every test reads settings from the environment it sets up."""
    get_settings.cache_clear()
    yield
    get_settings.cache_clear()


@pytest.fixture
def settings() -> BootstrapSettings:
    """Settings for bootstrapper tests; logging is left to the test session."""
    return BootstrapSettings(manage_logging=False)


@pytest.fixture
def strict_settings() -> BootstrapSettings:
    """Settings that turn duplicate registrations into errors."""
    return BootstrapSettings(manage_logging=False, allow_override=False)


@pytest.fixture
def container() -> DependencyContainer:
    """Provide an empty, open dependency injection container."""
    return DependencyContainer()


@pytest.fixture
def request_context() -> Iterator[RequestContext]:
    """Yield a request context that is disposed after the test."""
    context = RequestContext()
    try:
        yield context
    finally:
        context.dispose()
