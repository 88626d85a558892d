"""
Tests for the ingestion path: AccountEnricher and BlockPoller.

Uses FakeRpc (conftest) instead of Solana RPC; async code runs via asyncio.run.
"""

from __future__ import annotations

import asyncio

import pytest

from conftest import ACCOUNT_A, ACCOUNT_B, ACCOUNT_C, FakeRpc, json_entry, snapshot
from solana_indexer.core.exceptions import StartupError, UpstreamTransientError
from solana_indexer.database.store import IndexStore
from solana_indexer.solana_listener.enricher import AccountEnricher
from solana_indexer.solana_listener.listener import BlockPoller
from solana_indexer.solana_listener.models import TransactionRecord

BLOCK_TIME = 1_700_000_000


def _poller(rpc: FakeRpc, store: IndexStore, **kwargs) -> BlockPoller:
    kwargs.setdefault("poll_interval_sec", 60.0)
    return BlockPoller(rpc, store, **kwargs)  # type: ignore[arg-type]


# -----------------------------------------------------------------------------
# Enricher
# -----------------------------------------------------------------------------


def test_enricher_fetches_each_account_once_in_order(fake_rpc, store):
    record = TransactionRecord(ACCOUNT_A, (ACCOUNT_B, ACCOUNT_A, ACCOUNT_C), 5000, BLOCK_TIME, ("S1",))
    result = asyncio.run(AccountEnricher(fake_rpc, store).enrich(record))  # type: ignore[arg-type]
    assert fake_rpc.account_calls() == [ACCOUNT_A, ACCOUNT_B, ACCOUNT_C]
    assert result.fetched == [ACCOUNT_A, ACCOUNT_B, ACCOUNT_C]
    for pubkey in (ACCOUNT_A, ACCOUNT_B, ACCOUNT_C):
        assert store.get_account_by_identifier(pubkey) == fake_rpc.accounts[pubkey]


def test_enricher_continues_after_failures(fake_rpc, store):
    fake_rpc.account_errors[ACCOUNT_A] = UpstreamTransientError("getAccountInfo", "timeout")
    del fake_rpc.accounts[ACCOUNT_B]
    record = TransactionRecord(ACCOUNT_A, (ACCOUNT_B, ACCOUNT_C), 5000, BLOCK_TIME, ("S1",))
    result = asyncio.run(AccountEnricher(fake_rpc, store).enrich(record))  # type: ignore[arg-type]
    assert result.failed == [ACCOUNT_A]
    assert result.missing == [ACCOUNT_B]
    assert result.fetched == [ACCOUNT_C]
    assert store.get_account_by_identifier(ACCOUNT_A) is None
    assert store.get_account_by_identifier(ACCOUNT_C) is not None


def test_enricher_refetch_replaces_snapshot(fake_rpc, store):
    enricher = AccountEnricher(fake_rpc, store)  # type: ignore[arg-type]
    record = TransactionRecord(ACCOUNT_A, (), 5000, BLOCK_TIME, ("S1",))
    asyncio.run(enricher.enrich(record))
    fake_rpc.accounts[ACCOUNT_A] = snapshot(ACCOUNT_A, lamports=42)
    asyncio.run(enricher.enrich(record))
    assert store.get_account_by_identifier(ACCOUNT_A).lamports == 42


# -----------------------------------------------------------------------------
# Poller
# -----------------------------------------------------------------------------


def test_single_block_scenario(fake_rpc, store):
    """Block 100, one tx [A, B, C], fee 5000, signature S1 → indexed and enriched."""
    fake_rpc.add_block(100, BLOCK_TIME, [json_entry(["S1"], [ACCOUNT_A, ACCOUNT_B, ACCOUNT_C], fee=5000)])
    poller = _poller(fake_rpc, store)

    async def scenario():
        await poller.initialize_cursor()
        return await poller.poll_once()

    stats = asyncio.run(scenario())
    record = store.get_transaction_by_signature("S1")
    assert record is not None
    assert record.to_dict() == {
        "sender": ACCOUNT_A,
        "receivers": [ACCOUNT_B, ACCOUNT_C],
        "fee": 5000,
        "timestamp": BLOCK_TIME,
        "signatures": ["S1"],
    }
    assert fake_rpc.account_calls() == [ACCOUNT_A, ACCOUNT_B, ACCOUNT_C]
    assert ("blocks_since", (100, 4)) in fake_rpc.calls
    assert stats.transactions_indexed == 1
    assert poller.cursor == 100


def test_transient_account_failure_keeps_record(fake_rpc, store):
    fake_rpc.add_block(100, BLOCK_TIME, [json_entry(["S1"], [ACCOUNT_A, ACCOUNT_B, ACCOUNT_C])])
    fake_rpc.account_errors[ACCOUNT_B] = UpstreamTransientError("getAccountInfo", "HTTP 503")
    poller = _poller(fake_rpc, store)
    poller.reset_cursor(99)
    asyncio.run(poller.poll_once())
    assert store.get_transaction_by_signature("S1") is not None
    assert store.get_account_by_identifier(ACCOUNT_B) is None
    assert store.get_account_by_identifier(ACCOUNT_A) is not None
    assert store.get_account_by_identifier(ACCOUNT_C) is not None

    # A later successful fetch fills it in
    del fake_rpc.account_errors[ACCOUNT_B]
    fake_rpc.add_block(101, BLOCK_TIME + 1, [json_entry(["S2"], [ACCOUNT_B])])
    asyncio.run(poller.poll_once())
    assert store.get_account_by_identifier(ACCOUNT_B) is not None


def test_failed_block_is_skipped_and_cursor_moves_past_it(fake_rpc, store):
    fake_rpc.add_block(100, BLOCK_TIME, [json_entry(["S1"], [ACCOUNT_A])])
    fake_rpc.block_errors[101] = UpstreamTransientError("getBlock", "timeout")
    fake_rpc.add_block(102, BLOCK_TIME + 1, [json_entry(["S3"], [ACCOUNT_C])])
    poller = _poller(fake_rpc, store)
    poller.reset_cursor(99)
    stats = asyncio.run(poller.poll_once())
    assert stats.blocks_fetched == 2
    assert stats.blocks_skipped == 1
    assert poller.cursor == 102
    assert store.get_transaction_by_signature("S1") is not None
    assert store.get_transaction_by_signature("S3") is not None
    # Not retried on the next cycle
    asyncio.run(poller.poll_once())
    assert fake_rpc.block_calls().count(101) == 1


def test_blocks_processed_in_ascending_order_and_limited_per_cycle(fake_rpc, store):
    for slot in (105, 101, 103, 102, 104, 106):
        fake_rpc.add_block(slot, BLOCK_TIME + slot, [json_entry([f"S{slot}"], [ACCOUNT_A])])
    poller = _poller(fake_rpc, store, blocks_per_cycle=4)
    poller.reset_cursor(100)
    asyncio.run(poller.poll_once())
    assert fake_rpc.block_calls() == [101, 102, 103, 104]
    assert poller.cursor == 104
    asyncio.run(poller.poll_once())
    assert fake_rpc.block_calls() == [101, 102, 103, 104, 105, 106]
    assert poller.cursor == 106


def test_cursor_is_non_decreasing(fake_rpc, store):
    poller = _poller(fake_rpc, store)
    poller.reset_cursor(99)
    seen = []
    for slot in (100, 101, 102):
        fake_rpc.add_block(slot, BLOCK_TIME, [json_entry([f"S{slot}"], [ACCOUNT_A])])
        asyncio.run(poller.poll_once())
        seen.append(poller.cursor)
    # Empty cycle leaves the cursor where it is
    asyncio.run(poller.poll_once())
    seen.append(poller.cursor)
    assert seen == [100, 101, 102, 102]
    assert seen == sorted(seen)


def test_block_list_failure_keeps_cursor(fake_rpc, store):
    fake_rpc.add_block(100, BLOCK_TIME, [json_entry(["S1"], [ACCOUNT_A])])
    fake_rpc.list_error = UpstreamTransientError("getBlocksWithLimit", "HTTP 429")
    poller = _poller(fake_rpc, store)
    poller.reset_cursor(99)
    stats = asyncio.run(poller.poll_once())
    assert poller.cursor == 99
    assert stats.blocks_fetched == 0
    # Retried next cycle
    fake_rpc.list_error = None
    asyncio.run(poller.poll_once())
    assert poller.cursor == 100
    assert store.get_transaction_by_signature("S1") is not None


def test_decode_errors_do_not_abort_block(fake_rpc, store):
    fake_rpc.add_block(
        100,
        BLOCK_TIME,
        [
            json_entry(["BAD"], [ACCOUNT_A], with_meta=False),
            json_entry(["GOOD"], [ACCOUNT_B]),
        ],
    )
    poller = _poller(fake_rpc, store)
    poller.reset_cursor(99)
    stats = asyncio.run(poller.poll_once())
    assert stats.decode_errors == 1
    assert stats.transactions_indexed == 1
    assert store.get_transaction_by_signature("BAD") is None
    assert store.get_transaction_by_signature("GOOD") is not None


def test_startup_failure_is_fatal(fake_rpc, store):
    fake_rpc.latest_error = UpstreamTransientError("getHighestSnapshotSlot", "connection refused")
    poller = _poller(fake_rpc, store)
    with pytest.raises(StartupError):
        asyncio.run(poller.run())


def test_run_stops_cooperatively(fake_rpc, store):
    fake_rpc.add_block(100, BLOCK_TIME, [json_entry(["S1"], [ACCOUNT_A])])
    poller = _poller(fake_rpc, store, poll_interval_sec=3600.0)

    async def scenario():
        task = asyncio.create_task(poller.run())
        for _ in range(100):
            if store.get_transaction_by_signature("S1") is not None:
                break
            await asyncio.sleep(0.01)
        poller.stop()
        await asyncio.wait_for(task, timeout=5)

    asyncio.run(scenario())
    assert poller.cursor == 100
    assert poller.stopping


def test_stop_mid_block_finishes_current_transaction(fake_rpc, store):
    fake_rpc.add_block(
        100,
        BLOCK_TIME,
        [json_entry(["S1"], [ACCOUNT_A]), json_entry(["S2"], [ACCOUNT_B])],
    )
    poller = _poller(fake_rpc, store)
    poller.reset_cursor(99)
    fake_rpc.on_account_fetch = lambda pubkey: poller.stop()
    stats = asyncio.run(poller.poll_once())
    assert store.get_transaction_by_signature("S1") is not None
    assert store.get_transaction_by_signature("S2") is None
    assert stats.interrupted
    assert poller.cursor == 99


def test_poll_once_requires_cursor(fake_rpc, store):
    with pytest.raises(StartupError):
        asyncio.run(_poller(fake_rpc, store).poll_once())


def test_invalid_poller_config(fake_rpc, store):
    with pytest.raises(ValueError):
        BlockPoller(fake_rpc, store, poll_interval_sec=0)  # type: ignore[arg-type]
    with pytest.raises(ValueError):
        BlockPoller(fake_rpc, store, blocks_per_cycle=0)  # type: ignore[arg-type]
