"""
transferkit - Testing Utilities

This module provides mocks and fixtures for testing code built on transferkit.

Export all public testing utilities for easy import:
    from transferkit.testing import MockObjectStore, object_store

"""

from .mocks import (
    MockObjectStore,
    MockRequest,
    RecordingSleep,
    ScriptedFailure,
    StoredObject,
    md5_base64,
    md5_etag,
)

from .fixtures import (
    object_store,
    recording_sleep,
    transfer_metrics,
    transfer_config,
    transfer_client,
)

__all__ = [
    # Mocks
    "MockObjectStore",
    "MockRequest",
    "RecordingSleep",
    "ScriptedFailure",
    "StoredObject",
    "md5_base64",
    "md5_etag",

    # Fixtures
    "object_store",
    "recording_sleep",
    "transfer_metrics",
    "transfer_config",
    "transfer_client",
]
