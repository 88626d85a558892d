"""
Structured logging for the Solana indexer.

JSON logs with timestamp, event_type and per-event context (slot, signature, ...).
Use get_logger() in every module.
"""

from solana_indexer.indexer_logging.logger import bind_slot, get_logger

__all__ = ["bind_slot", "get_logger"]
