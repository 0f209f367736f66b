"""
Unit Test Fixtures.

Fixtures for unit tests - all external dependencies are mocked or
replaced by in-process fakes. Unit tests never touch a real broker.
"""

from unittest.mock import MagicMock

import pytest

from modules.fabric.rpc.transport import InMemoryTransport


# =============================================================================
# Settings Mock Fixtures
# =============================================================================


@pytest.fixture
def mock_app_config() -> MagicMock:
    """
    Mock YAML application configuration.

    Usage:
        def test_with_config(mock_app_config):
            with patch("modules.fabric.core.config.get_app_config", return_value=mock_app_config):
                # Test code that uses app config
    """
    config = MagicMock()
    config.features.events_publish_enabled = True
    config.features.events_forwarding_enabled = True
    config.application.pagination.default_size = 10
    config.application.pagination.max_size = 100
    config.rpc.timeout = 2.0
    config.rpc.channel_prefix = "rpc"
    config.events.domain_channel = "tasks:events"
    config.events.gateway_channel = "gateway:events"
    config.events.pipeline.resolve_timeout = 1.0
    config.events.pipeline.resolver_retry.max_attempts = 3
    config.events.pipeline.resolver_retry.backoff_multiplier = 0
    config.events.pipeline.resolver_retry.backoff_max = 0
    config.events.pipeline.delivery_circuit_breaker.fail_max = 5
    config.events.pipeline.delivery_circuit_breaker.timeout_duration = 30
    return config


# =============================================================================
# Transport Fixtures
# =============================================================================


@pytest.fixture
def transport() -> InMemoryTransport:
    """In-process transport with an empty route table."""
    return InMemoryTransport()


# =============================================================================
# Logging Mock Fixtures
# =============================================================================


@pytest.fixture
def mock_logger() -> MagicMock:
    """
    Mock logger for testing logging calls.

    Usage:
        def test_logging(mock_logger):
            with patch("module.logger", mock_logger):
                # Test code that logs
                mock_logger.info.assert_called_once()
    """
    logger = MagicMock()
    logger.debug = MagicMock()
    logger.info = MagicMock()
    logger.warning = MagicMock()
    logger.error = MagicMock()
    logger.exception = MagicMock()
    return logger
