"""
Application settings and environment configuration.

Typed, validated view over the environment (see config.env for the RPC URL
resolution). Built once per process by get_settings(); tests build Settings
directly or clear the cache with get_settings.cache_clear().
"""

from __future__ import annotations

import functools
import os
from dataclasses import dataclass

from solana_indexer.config.env import get_solana_rpc_url, load_indexer_env
from solana_indexer.core.exceptions import ConfigError

DEFAULT_POLL_INTERVAL_SEC = 60.0
DEFAULT_BLOCKS_PER_CYCLE = 4
MAX_BLOCKS_PER_CYCLE = 500
DEFAULT_RPC_TIMEOUT_SEC = 30.0
DEFAULT_RPC_MAX_RETRIES = 3
DEFAULT_MAX_TRANSACTIONS = 200_000
DEFAULT_MAX_ACCOUNTS = 200_000
DEFAULT_RETENTION_SEC = 0
DEFAULT_MAX_SAMPLE_SIZE = 1000
DEFAULT_API_HOST = "0.0.0.0"
DEFAULT_API_PORT = 3000


@dataclass(frozen=True)
class Settings:
    """Service configuration. Zero for a store bound means unbounded."""

    rpc_url: str
    poll_interval_sec: float = DEFAULT_POLL_INTERVAL_SEC
    blocks_per_cycle: int = DEFAULT_BLOCKS_PER_CYCLE
    rpc_timeout_sec: float = DEFAULT_RPC_TIMEOUT_SEC
    rpc_max_retries: int = DEFAULT_RPC_MAX_RETRIES
    max_transactions: int = DEFAULT_MAX_TRANSACTIONS
    max_accounts: int = DEFAULT_MAX_ACCOUNTS
    retention_sec: int = DEFAULT_RETENTION_SEC
    max_sample_size: int = DEFAULT_MAX_SAMPLE_SIZE
    api_host: str = DEFAULT_API_HOST
    api_port: int = DEFAULT_API_PORT
    ingestion_enabled: bool = True
    log_level: str = "INFO"

    def __post_init__(self) -> None:
        if not self.rpc_url.strip():
            raise ConfigError("rpc_url must be non-empty")
        if self.poll_interval_sec <= 0:
            raise ConfigError("poll_interval_sec must be positive")
        if not (1 <= self.blocks_per_cycle <= MAX_BLOCKS_PER_CYCLE):
            raise ConfigError(f"blocks_per_cycle must be between 1 and {MAX_BLOCKS_PER_CYCLE}")
        if self.rpc_timeout_sec <= 0:
            raise ConfigError("rpc_timeout_sec must be positive")
        if self.rpc_max_retries < 1:
            raise ConfigError("rpc_max_retries must be >= 1")
        for name in ("max_transactions", "max_accounts", "retention_sec"):
            if getattr(self, name) < 0:
                raise ConfigError(f"{name} must be >= 0")
        if self.max_sample_size < 1:
            raise ConfigError("max_sample_size must be >= 1")


def _env_float(name: str, default: float) -> float:
    raw = (os.getenv(name) or "").strip()
    if not raw:
        return default
    try:
        return float(raw)
    except ValueError as e:
        raise ConfigError(f"{name} must be a number, got {raw!r}") from e


def _env_int(name: str, default: int) -> int:
    raw = (os.getenv(name) or "").strip()
    if not raw:
        return default
    try:
        return int(raw)
    except ValueError as e:
        raise ConfigError(f"{name} must be an integer, got {raw!r}") from e


def _env_bool(name: str, default: bool) -> bool:
    raw = (os.getenv(name) or "").strip().lower()
    if not raw:
        return default
    return raw in ("1", "true", "yes", "on")


def load_settings() -> Settings:
    """Build Settings from the environment (after loading .env)."""
    load_indexer_env()
    return Settings(
        rpc_url=get_solana_rpc_url(),
        poll_interval_sec=_env_float("POLL_INTERVAL_SEC", DEFAULT_POLL_INTERVAL_SEC),
        blocks_per_cycle=_env_int("BLOCKS_PER_CYCLE", DEFAULT_BLOCKS_PER_CYCLE),
        rpc_timeout_sec=_env_float("RPC_TIMEOUT_SEC", DEFAULT_RPC_TIMEOUT_SEC),
        rpc_max_retries=_env_int("RPC_MAX_RETRIES", DEFAULT_RPC_MAX_RETRIES),
        max_transactions=_env_int("MAX_TRANSACTIONS", DEFAULT_MAX_TRANSACTIONS),
        max_accounts=_env_int("MAX_ACCOUNTS", DEFAULT_MAX_ACCOUNTS),
        retention_sec=_env_int("RETENTION_SEC", DEFAULT_RETENTION_SEC),
        max_sample_size=_env_int("MAX_SAMPLE_SIZE", DEFAULT_MAX_SAMPLE_SIZE),
        api_host=(os.getenv("API_HOST") or DEFAULT_API_HOST).strip(),
        api_port=_env_int("API_PORT", DEFAULT_API_PORT),
        ingestion_enabled=_env_bool("INGESTION_ENABLED", True),
        log_level=(os.getenv("LOG_LEVEL") or "INFO").strip().upper(),
    )


@functools.lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Return the process-wide settings (loaded once)."""
    return load_settings()
