"""
Solana ledger ingestion package.

Polls Solana RPC for new blocks, decodes their transactions into
TransactionRecords, and enriches every referenced account with its
current on-chain snapshot.
"""

from solana_indexer.solana_listener.models import AccountSnapshot, RawBlock, TransactionRecord
from solana_indexer.solana_listener.parser import decode_block, decode_transaction

__all__ = [
    "AccountSnapshot",
    "RawBlock",
    "TransactionRecord",
    "decode_block",
    "decode_transaction",
]
