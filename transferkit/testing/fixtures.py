"""
Pytest fixtures for transferkit testing.

This module provides reusable pytest fixtures for testing transfers.
Import these fixtures in your conftest.py or test files.
"""

import pytest
from prometheus_client import CollectorRegistry

from transferkit.client import TransferClient
from transferkit.config import TransferConfig
from transferkit.observability.metrics import TransferMetrics
from .mocks import MockObjectStore, RecordingSleep


@pytest.fixture
def object_store():
    """
    Provides an empty in-memory object store.

    Returns:
        MockObjectStore to pass to httpx via ``object_store.transport()``

    Example:
        def test_put(object_store):
            object_store.put_object("/bucket/key", b"data")
    """
    return MockObjectStore()


@pytest.fixture
def recording_sleep():
    """
    Provides a sleep replacement that records backoff delays.

    Returns:
        RecordingSleep with an empty ``delays`` list
    """
    return RecordingSleep()


@pytest.fixture
def transfer_metrics():
    """
    Provides metrics bound to a private registry.

    Returns:
        TransferMetrics that does not touch the global Prometheus registry
    """
    return TransferMetrics(registry=CollectorRegistry())


@pytest.fixture
def transfer_config():
    """
    Provides a configuration with small parts and short delays.

    Returns:
        TransferConfig with 1 KiB parts and 1-10 second backoff
    """
    return TransferConfig(
        retry={"retry_count": 3, "min_delay": 1.0, "max_delay": 10.0},
        breaker={"name": "test", "fail_max": 5, "reset_timeout": 30.0, "call_timeout": 5.0},
        multipart={"part_size": 1024, "upload_concurrency": 4, "download_concurrency": 4},
    )


@pytest.fixture
async def transfer_client(transfer_config, object_store, recording_sleep, transfer_metrics):
    """
    Provides a TransferClient talking to ``object_store``.

    Backoff sleeps are recorded by ``recording_sleep`` instead of waiting.

    Example:
        async def test_roundtrip(transfer_client, object_store):
            await transfer_client.put_data("http://store/bucket/key", b"x", options)
    """
    client = TransferClient(
        transfer_config,
        transport=object_store.transport(),
        metrics=transfer_metrics,
        sleep=recording_sleep,
    )
    async with client:
        yield client
