"""
In-memory index of transaction records and account snapshots.

Two maps behind one lock:
- signature -> TransactionRecord (a record is reachable under every one of its signatures)
- pubkey -> AccountSnapshot (last write wins)

The ingestion side holds the IndexStore (the only handle with write methods); the
API server gets a StoreReader. Writes are single-key inserts, so the lock is held
only briefly; FastAPI sync endpoints read from worker threads while the poller
writes from the event loop thread.

Consistency: the two maps are not updated atomically together. A reader can see a
transaction before (or without) the snapshots of the accounts it references, and a
snapshot may be newer than the transaction. Callers must not assume otherwise.

Retention: records are evicted oldest-first (insertion order) past max_transactions,
and when older than retention_sec relative to the newest block time seen. Snapshots
are evicted least-recently-updated past max_accounts. A bound of 0 disables it.
"""

from __future__ import annotations

import random
import threading
from collections import OrderedDict

from solana_indexer.solana_listener.models import AccountSnapshot, TransactionRecord


class IndexStore:
    """Concurrency-safe keyed storage with point, range and sample reads."""

    def __init__(
        self,
        *,
        max_transactions: int = 0,
        max_accounts: int = 0,
        retention_sec: int = 0,
        rng: random.Random | None = None,
    ) -> None:
        if max_transactions < 0 or max_accounts < 0 or retention_sec < 0:
            raise ValueError("store bounds must be >= 0")
        self._max_transactions = max_transactions
        self._max_accounts = max_accounts
        self._retention_sec = retention_sec
        self._rng = rng or random.Random()
        self._lock = threading.RLock()
        self._by_signature: dict[str, TransactionRecord] = {}
        # Distinct records keyed by their signature tuple, oldest insert first
        self._records: OrderedDict[tuple[str, ...], TransactionRecord] = OrderedDict()
        self._accounts: OrderedDict[str, AccountSnapshot] = OrderedDict()
        self._newest_timestamp: int | None = None
        self._evicted_transactions = 0
        self._evicted_accounts = 0

    # ------------------------------------------------------------------
    # Writes (ingestion only)
    # ------------------------------------------------------------------

    def insert_transaction(self, record: TransactionRecord) -> None:
        """Insert record under each of its signatures; a reinserted signature is overwritten."""
        if not record.signatures:
            raise ValueError("record has no signatures")
        with self._lock:
            for sig in record.signatures:
                previous = self._by_signature.get(sig)
                self._by_signature[sig] = record
                if previous is not None and previous.signatures != record.signatures:
                    self._drop_if_unreachable(previous)
            self._records[record.signatures] = record
            if self._newest_timestamp is None or record.timestamp > self._newest_timestamp:
                self._newest_timestamp = record.timestamp
            self._enforce_transaction_bounds()

    def insert_account(self, pubkey: str, snapshot: AccountSnapshot) -> None:
        """Upsert the snapshot for pubkey, replacing any earlier one."""
        with self._lock:
            self._accounts[pubkey] = snapshot
            self._accounts.move_to_end(pubkey)
            if self._max_accounts:
                while len(self._accounts) > self._max_accounts:
                    self._accounts.popitem(last=False)
                    self._evicted_accounts += 1

    def _drop_if_unreachable(self, record: TransactionRecord) -> None:
        if not any(self._by_signature.get(s) is record for s in record.signatures):
            if self._records.get(record.signatures) is record:
                del self._records[record.signatures]

    def _evict(self, record: TransactionRecord) -> None:
        for sig in record.signatures:
            if self._by_signature.get(sig) is record:
                del self._by_signature[sig]
        self._evicted_transactions += 1

    def _enforce_transaction_bounds(self) -> None:
        if self._max_transactions:
            while len(self._records) > self._max_transactions:
                _, oldest = self._records.popitem(last=False)
                self._evict(oldest)
        if self._retention_sec and self._newest_timestamp is not None:
            cutoff = self._newest_timestamp - self._retention_sec
            # Blocks arrive in ascending slot order, so expired records sit at the front
            while self._records:
                key, oldest = next(iter(self._records.items()))
                if oldest.timestamp >= cutoff:
                    break
                del self._records[key]
                self._evict(oldest)

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def get_transaction_by_signature(self, signature: str) -> TransactionRecord | None:
        with self._lock:
            return self._by_signature.get(signature)

    def get_transactions_in_time_range(self, start: int, end: int) -> list[TransactionRecord]:
        """Every distinct record with start <= timestamp < end, in no particular order."""
        with self._lock:
            return [r for r in self._records.values() if start <= r.timestamp < end]

    def get_transactions_sample(self, n: int) -> list[TransactionRecord]:
        """
        Uniform random sample (without replacement) of up to n distinct records.
        """
        if n < 0:
            raise ValueError("sample size must be >= 0")
        with self._lock:
            population = list(self._records.values())
        return self._rng.sample(population, min(n, len(population)))

    def get_account_by_identifier(self, pubkey: str) -> AccountSnapshot | None:
        with self._lock:
            return self._accounts.get(pubkey)

    def transaction_count(self) -> int:
        """Number of distinct records (not signatures)."""
        with self._lock:
            return len(self._records)

    def account_count(self) -> int:
        with self._lock:
            return len(self._accounts)

    def stats(self) -> dict[str, int]:
        with self._lock:
            return {
                "transactions": len(self._records),
                "signatures": len(self._by_signature),
                "accounts": len(self._accounts),
                "evicted_transactions": self._evicted_transactions,
                "evicted_accounts": self._evicted_accounts,
            }

    def reader(self) -> "StoreReader":
        """Read-only view for the query layer."""
        return StoreReader(self)


class StoreReader:
    """Read-only facade over an IndexStore; exposes no write methods."""

    __slots__ = ("_store",)

    def __init__(self, store: IndexStore) -> None:
        self._store = store

    def get_transaction_by_signature(self, signature: str) -> TransactionRecord | None:
        return self._store.get_transaction_by_signature(signature)

    def get_transactions_in_time_range(self, start: int, end: int) -> list[TransactionRecord]:
        return self._store.get_transactions_in_time_range(start, end)

    def get_transactions_sample(self, n: int) -> list[TransactionRecord]:
        return self._store.get_transactions_sample(n)

    def get_account_by_identifier(self, pubkey: str) -> AccountSnapshot | None:
        return self._store.get_account_by_identifier(pubkey)

    def stats(self) -> dict[str, int]:
        return self._store.stats()


