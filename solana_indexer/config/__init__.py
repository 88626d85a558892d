"""
Configuration management for the Solana indexer.

Loads and validates settings from environment variables and an optional
.env file. Exposes a single source of truth for all service configuration.
"""

from solana_indexer.config.settings import Settings, get_settings  # noqa: F401

__all__ = ["Settings", "get_settings"]
