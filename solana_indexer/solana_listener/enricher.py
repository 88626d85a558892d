"""
Account enricher — fetch the current snapshot of every account a transaction touches.

One transaction's accounts are fetched one at a time, and the poller waits for a
transaction's batch before starting the next, so enrichment never has more than one
getAccountInfo call in flight. A failed account is logged and skipped; the rest of
the batch still runs.

Snapshots are written to the store independently of the transaction record, so a
reader may see a record whose account snapshots are missing or stale.
"""

from __future__ import annotations

from dataclasses import dataclass, field

from solana_indexer.core.exceptions import UpstreamNotFound, UpstreamTransientError
from solana_indexer.database.store import IndexStore
from solana_indexer.indexer_logging import get_logger
from solana_indexer.solana_listener.models import TransactionRecord
from solana_indexer.solana_listener.rpc import SolanaRpcClient

logger = get_logger(__name__)


@dataclass
class EnrichmentResult:
    """Outcome of one transaction's enrichment batch."""

    fetched: list[str] = field(default_factory=list)
    missing: list[str] = field(default_factory=list)
    """Accounts the RPC reported as not existing."""
    failed: list[str] = field(default_factory=list)
    """Accounts whose fetch failed transiently; picked up again when they reappear."""


class AccountEnricher:
    """Fetches account snapshots for a TransactionRecord and upserts them into the store."""

    def __init__(self, rpc: SolanaRpcClient, store: IndexStore) -> None:
        self._rpc = rpc
        self._store = store

    async def enrich(self, record: TransactionRecord) -> EnrichmentResult:
        result = EnrichmentResult()
        signature = record.signatures[0]
        for pubkey in record.ordered_accounts():
            try:
                snapshot = await self._rpc.account_snapshot(pubkey)
            except UpstreamNotFound:
                logger.debug("enricher_account_not_found", account=pubkey, signature=signature)
                result.missing.append(pubkey)
                continue
            except UpstreamTransientError as e:
                logger.error(
                    "enricher_account_fetch_failed",
                    account=pubkey,
                    signature=signature,
                    error=str(e),
                )
                result.failed.append(pubkey)
                continue
            self._store.insert_account(pubkey, snapshot)
            result.fetched.append(pubkey)
        logger.debug(
            "enricher_batch_done",
            signature=signature,
            fetched=len(result.fetched),
            missing=len(result.missing),
            failed=len(result.failed),
        )
        return result
