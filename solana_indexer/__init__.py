"""
Solana Indexer — in-memory Solana ledger indexer.

Polls the chain for new blocks, normalizes their transactions, enriches
every referenced account with its on-chain state, and serves the resulting
index over a read-only HTTP API.
"""

__version__ = "0.1.0"
