"""
transferkit - Observability Layer

This module provides observability for transfers:
- Prometheus metrics collection
- Structured JSON logging
"""

from transferkit.observability.metrics import TransferMetrics
from transferkit.observability.logging import (
    JSONFormatter,
    setup_logging,
    setup_logging_from_config,
)

__all__ = [
    "TransferMetrics",
    "JSONFormatter",
    "setup_logging",
    "setup_logging_from_config",
]
