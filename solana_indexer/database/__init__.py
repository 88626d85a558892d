"""
In-memory index store: transaction records by signature, account snapshots by pubkey.
"""

from solana_indexer.database.store import IndexStore, StoreReader

__all__ = ["IndexStore", "StoreReader"]
