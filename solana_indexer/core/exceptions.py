"""
Application-level exceptions.

- Upstream errors: not-found (the item does not exist / is not available) vs
  transient (network, timeout, rate limit, server error). Transient errors are
  retried at the next poll cycle; neither is ever fatal once ingestion runs.
- Decode errors: one malformed or unsupported transaction entry; skipped.
- Startup errors: no initial cursor; the process aborts.
- Query validation errors: surfaced to HTTP callers as 400.
"""

from __future__ import annotations


class IndexerError(Exception):
    """Base class for all indexer errors."""


class ConfigError(IndexerError):
    """Invalid configuration value."""


class UpstreamError(IndexerError):
    """Failure talking to the Solana RPC service."""

    def __init__(self, method: str, message: str, code: int | None = None) -> None:
        self.method = method
        self.code = code
        super().__init__(f"{method}: {message}" + (f" (code={code})" if code is not None else ""))


class UpstreamNotFound(UpstreamError):
    """Requested block/account does not exist or is not available on the node."""


class UpstreamTransientError(UpstreamError):
    """Network, timeout, rate-limit or server-side failure; safe to retry later."""


class DecodeError(IndexerError):
    """A raw transaction entry could not be turned into a TransactionRecord."""

    def __init__(self, entry_id: str | int, reason: str) -> None:
        self.entry_id = entry_id
        self.reason = reason
        super().__init__(f"entry {entry_id}: {reason}")


class StartupError(IndexerError):
    """Ingestion cannot start (e.g. initial cursor unavailable)."""


class QueryValidationError(IndexerError):
    """Malformed query parameters."""
