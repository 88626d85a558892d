"""
Block poller — drives ingestion: cursor → new blocks → decode → enrich + store.

Responsibilities:
- Own the slot cursor (in memory; re-initialized from the node on restart).
- Every cycle, fetch up to `blocks_per_cycle` block slots after the cursor, fetch each
  block body in ascending order, decode its transactions, enrich and index each record.
- Skip-and-log every per-item failure (block fetch, decode, account fetch); never let
  one bad item end the loop.
- Advance the cursor past every slot handled in the cycle, including skipped ones.
- Sleep between cycles; stop cooperatively on stop() or SIGINT/SIGTERM.
"""

from __future__ import annotations

import asyncio
import signal
import time
from dataclasses import dataclass
from typing import Any

from solana_indexer.core.exceptions import (
    StartupError,
    UpstreamError,
    UpstreamNotFound,
    UpstreamTransientError,
)
from solana_indexer.database.store import IndexStore
from solana_indexer.indexer_logging import bind_slot, get_logger
from solana_indexer.solana_listener.enricher import AccountEnricher
from solana_indexer.solana_listener.models import TransactionRecord
from solana_indexer.solana_listener.parser import decode_block
from solana_indexer.solana_listener.rpc import SolanaRpcClient

logger = get_logger(__name__)

DEFAULT_POLL_INTERVAL_SEC = 60.0
DEFAULT_BLOCKS_PER_CYCLE = 4


@dataclass
class CycleStats:
    """Counters for one poll cycle."""

    cursor_before: int
    cursor_after: int
    blocks_fetched: int = 0
    blocks_skipped: int = 0
    transactions_indexed: int = 0
    decode_errors: int = 0
    interrupted: bool = False


class BlockPoller:
    """
    Polling-based block ingester.

    The only writer of the IndexStore (directly for records, via the
    AccountEnricher for snapshots). The cursor is never read or written by
    anything else; `cursor` is exposed read-only for health reporting.
    """

    def __init__(
        self,
        rpc: SolanaRpcClient,
        store: IndexStore,
        *,
        enricher: AccountEnricher | None = None,
        poll_interval_sec: float = DEFAULT_POLL_INTERVAL_SEC,
        blocks_per_cycle: int = DEFAULT_BLOCKS_PER_CYCLE,
    ) -> None:
        """
        Args:
            rpc: Upstream Solana RPC client.
            store: Index store; this poller is its writer.
            enricher: Account enricher; defaults to one over the same rpc/store.
            poll_interval_sec: Seconds to sleep between cycles.
            blocks_per_cycle: Max block slots fetched per cycle (bounds catch-up bursts).
        """
        if poll_interval_sec <= 0:
            raise ValueError("poll_interval_sec must be positive")
        if blocks_per_cycle < 1:
            raise ValueError("blocks_per_cycle must be >= 1")
        self._rpc = rpc
        self._store = store
        self._enricher = enricher or AccountEnricher(rpc, store)
        self._poll_interval_sec = poll_interval_sec
        self._blocks_per_cycle = blocks_per_cycle
        self._cursor: int | None = None
        self._cycles = 0
        self._stop_event = asyncio.Event()

    @property
    def cursor(self) -> int | None:
        return self._cursor

    def reset_cursor(self, position: int) -> None:
        """Explicitly move the cursor (the only way it can go backwards)."""
        logger.warning("poller_cursor_reset", previous=self._cursor, cursor=position)
        self._cursor = position

    def stop(self) -> None:
        """Request shutdown; the loop exits after the transaction in progress."""
        self._stop_event.set()

    @property
    def stopping(self) -> bool:
        return self._stop_event.is_set()

    async def initialize_cursor(self) -> int:
        """Read the node's latest durable slot. Raises StartupError when unreachable."""
        try:
            position = await self._rpc.latest_cursor_position()
        except UpstreamError as e:
            logger.error("poller_initial_cursor_failed", error=str(e))
            raise StartupError(f"cannot obtain initial cursor: {e}") from e
        self._cursor = position
        logger.info("poller_cursor_initialized", cursor=position)
        return position

    async def run(self, cursor0: int | None = None) -> None:
        """
        Poll until stop() is called (or the task is cancelled).

        Raises StartupError if cursor0 is None and the initial cursor cannot be read.
        """
        if cursor0 is None:
            await self.initialize_cursor()
        else:
            self._cursor = cursor0
        logger.info(
            "poller_started",
            cursor=self._cursor,
            poll_interval_sec=self._poll_interval_sec,
            blocks_per_cycle=self._blocks_per_cycle,
        )
        while not self._stop_event.is_set():
            try:
                await self.poll_once()
            except Exception as e:
                logger.exception("poller_cycle_error", cursor=self._cursor, error=str(e))
            if self._stop_event.is_set():
                break
            try:
                await asyncio.wait_for(self._stop_event.wait(), timeout=self._poll_interval_sec)
            except asyncio.TimeoutError:
                pass
        logger.info("poller_stopped", cursor=self._cursor, cycles=self._cycles)

    async def poll_once(self) -> CycleStats:
        """Run one ingestion cycle and advance the cursor."""
        if self._cursor is None:
            raise StartupError("cursor not initialized; call initialize_cursor() or run()")
        self._cycles += 1
        started = time.monotonic()
        stats = CycleStats(cursor_before=self._cursor, cursor_after=self._cursor)

        try:
            # getBlocksWithLimit's start slot is inclusive
            slots = await self._rpc.blocks_since(self._cursor + 1, self._blocks_per_cycle)
        except UpstreamError as e:
            logger.warning("poller_block_list_failed", cursor=self._cursor, error=str(e))
            return stats

        slots = [s for s in slots if s > self._cursor]
        if slots:
            logger.info("poller_slots", cursor=self._cursor, slots=slots)

        last_handled: int | None = None
        for slot in slots:
            if self._stop_event.is_set():
                stats.interrupted = True
                break
            completed = await self._index_block(slot, stats)
            if not completed:
                stats.interrupted = True
                break
            last_handled = slot

        if last_handled is not None:
            self._cursor = max(self._cursor, last_handled)
        stats.cursor_after = self._cursor
        logger.info(
            "poller_cycle_done",
            cycle=self._cycles,
            cursor=self._cursor,
            blocks_fetched=stats.blocks_fetched,
            blocks_skipped=stats.blocks_skipped,
            transactions_indexed=stats.transactions_indexed,
            decode_errors=stats.decode_errors,
            interrupted=stats.interrupted,
            duration_sec=round(time.monotonic() - started, 2),
        )
        return stats

    async def _index_block(self, slot: int, stats: CycleStats) -> bool:
        """
        Fetch, decode and index one block. Returns False if shutdown interrupted it
        (the slot is then left for the next run); a failed fetch counts as handled.
        """
        log = bind_slot(logger, slot)
        try:
            block = await self._rpc.block_body(slot)
        except UpstreamNotFound as e:
            log.warning("poller_block_unavailable", error=str(e))
            stats.blocks_skipped += 1
            return True
        except UpstreamTransientError as e:
            # Skipped for good: the cursor still moves past this slot
            log.error("poller_block_fetch_failed", error=str(e))
            stats.blocks_skipped += 1
            return True
        stats.blocks_fetched += 1

        records, errors = decode_block(block)
        for err in errors:
            log.warning("poller_decode_failed", entry=err.entry_id, error=err.reason)
        stats.decode_errors += len(errors)

        for record in records:
            if self._stop_event.is_set():
                return False
            await self._index_record(record)
            stats.transactions_indexed += 1

        log.info(
            "poller_block_indexed",
            block_time=block.block_time,
            transactions=len(records),
            decode_errors=len(errors),
        )
        return True

    async def _index_record(self, record: TransactionRecord) -> None:
        """Start enrichment, insert the record, then wait for the enrichment batch."""
        enrichment = asyncio.create_task(self._enricher.enrich(record))
        try:
            self._store.insert_transaction(record)
        finally:
            try:
                await enrichment
            except Exception as e:
                logger.exception(
                    "poller_enrichment_failed",
                    signature=record.signatures[0],
                    error=str(e),
                )

    def install_signal_handlers(self) -> None:
        """Stop on SIGINT/SIGTERM where the running loop supports it."""
        def _handle_sig(signum: int, frame: Any = None) -> None:
            sig = "SIGINT" if signum == signal.SIGINT else "SIGTERM"
            logger.info("poller_shutdown_signal", signal=sig)
            self._stop_event.set()

        try:
            loop = asyncio.get_running_loop()
            for signum in (signal.SIGINT, signal.SIGTERM):
                loop.add_signal_handler(signum, _handle_sig, signum)
        except (NotImplementedError, RuntimeError, ValueError):
            # Not in the main thread / not supported on this platform
            pass
