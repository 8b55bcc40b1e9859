"""
Shared pytest configuration for transferkit tests.

This module configures pytest and imports all fixtures for use in tests.
"""

import inspect
import sys
from pathlib import Path

import pytest

# Add parent directory to path for imports
sys.path.insert(0, str(Path(__file__).parent.parent))

from transferkit.config import BreakerConfig
from transferkit.transport.channel import HttpChannel
from transferkit.transport.circuit import CircuitBreakerBoundary
from transferkit.transport.retry import RetryingExecutor

# Import all fixtures from transferkit.testing
from transferkit.testing import (
    object_store,
    recording_sleep,
    transfer_metrics,
    transfer_config,
    transfer_client,
)

# Re-export fixtures so they're available to all tests
__all__ = [
    "object_store",
    "recording_sleep",
    "transfer_metrics",
    "transfer_config",
    "transfer_client",
]


def pytest_configure(config):
    """Configure pytest with custom markers and settings."""
    config.addinivalue_line(
        "markers",
        "asyncio: mark test as async (automatically applied to async tests)"
    )


@pytest.fixture
async def channel(object_store):
    """
    HttpChannel whose client talks to the mock object store.
    """
    async with HttpChannel(transport=object_store.transport()) as channel:
        yield channel


@pytest.fixture
def boundary(channel):
    """
    Circuit breaker boundary around ``channel.send`` (opens after 5 failures).
    """
    return CircuitBreakerBoundary(
        channel.send,
        config=BreakerConfig(name="test", fail_max=5, reset_timeout=30.0, call_timeout=5.0),
    )


@pytest.fixture
def executor(channel, boundary, recording_sleep):
    """
    Retrying executor through ``boundary`` whose backoff sleeps are recorded.
    """
    return RetryingExecutor(channel, boundary, sleep=recording_sleep)


@pytest.fixture
def base_url():
    """
    Base URL of the mock object store.

    Returns:
        str: URL prefix for bucket objects
    """
    return "http://store.test/bucket"


@pytest.fixture
def sample_payload():
    """
    Deterministic binary payload spanning several 1 KiB parts.

    Returns:
        bytes: 3000 bytes (parts of 1024, 1024 and 952 bytes)
    """
    return bytes(i % 251 for i in range(3000))


@pytest.fixture
def temp_config_file(tmp_path):
    """
    Create a temporary config file for testing.

    Args:
        tmp_path: pytest temporary path fixture

    Returns:
        Path to temporary config file
    """
    import yaml

    config_file = tmp_path / "transfer.yaml"
    with open(config_file, "w") as f:
        yaml.dump(
            {
                "retry": {"retry_count": 5, "min_delay": 2, "max_delay": 60},
                "breaker": {"name": "store", "fail_max": 3},
                "multipart": {"part_size": 8388608, "upload_concurrency": 4},
                "logging": {"level": "DEBUG", "format": "json"},
            },
            f,
        )

    return config_file


# Hooks for test collection and reporting

def pytest_collection_modifyitems(config, items):
    """
    Modify test items during collection.

    Automatically marks async tests with asyncio marker.
    """
    for item in items:
        if inspect.iscoroutinefunction(getattr(item, "function", None)):
            item.add_marker(pytest.mark.asyncio)

