"""
Core utilities — exception taxonomy shared by listener, store and API server.
"""

from solana_indexer.core.exceptions import (
    ConfigError,
    DecodeError,
    IndexerError,
    QueryValidationError,
    StartupError,
    UpstreamError,
    UpstreamNotFound,
    UpstreamTransientError,
)

__all__ = [
    "ConfigError",
    "DecodeError",
    "IndexerError",
    "QueryValidationError",
    "StartupError",
    "UpstreamError",
    "UpstreamNotFound",
    "UpstreamTransientError",
]
