"""Observability helpers for assetflow.

Components:
    - logging: Structured logging with structlog and request correlation IDs

Usage:
    from assetflow.observability import get_logger

    logger = get_logger(__name__)
    logger.info("server_listening", port=3000)
"""

from assetflow.observability.logging import (
    clear_correlation_id,
    configure_logging,
    get_correlation_id,
    get_logger,
    set_correlation_id,
)

__all__ = [
    "get_logger",
    "configure_logging",
    "set_correlation_id",
    "clear_correlation_id",
    "get_correlation_id",
]
