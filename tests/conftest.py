"""Root conftest.py for the http_platform test suite.

This file contains project-wide fixtures and pytest configuration.
"""

from collections.abc import Generator

import pytest
from pytest_mock import MockerFixture, MockType

from http_platform.core.config import ServerConfig, default_config, get_settings
from http_platform.core.context import RequestContext


def pytest_configure(config: pytest.Config) -> None:
    """Configure pytest with custom markers."""
    config.addinivalue_line(
        "markers", "unit: Unit tests that test individual components in isolation"
    )
    config.addinivalue_line(
        "markers", "integration: Integration tests that test multiple components"
    )


@pytest.fixture
def mock_logger(mocker: MockerFixture) -> MockType:
    """Provide a logger double recording structured calls.

    Returns:
        MockType: Mock with debug/info/warning/error methods.
    """
    return mocker.Mock(spec=["debug", "info", "warning", "error"])


@pytest.fixture
def base_config(mock_logger: MockType) -> ServerConfig:
    """Provide a valid default configuration using the mock logger."""
    return default_config(mock_logger)


@pytest.fixture
def clean_context() -> Generator[None]:
    """Clear the request context before and after a test."""
    RequestContext.clear()
    yield
    RequestContext.clear()


@pytest.fixture
def clear_settings_cache() -> Generator[None]:
    """Clear the cached settings before and after a test."""
    get_settings.cache_clear()
    yield
    get_settings.cache_clear()
