"""
Pytest fixtures for indexer tests. Uses an in-memory FakeRpc in place of Solana RPC.
"""

from __future__ import annotations

from typing import Any

import pytest

from solana_indexer.core.exceptions import UpstreamNotFound
from solana_indexer.database.store import IndexStore
from solana_indexer.solana_listener.models import AccountSnapshot, RawBlock

# Valid Solana pubkeys (base58, 32 bytes)
ACCOUNT_A = "9QCfNuQuxct1Xk9ytFYgxc5fThmTzL4pHQnSjjrVUrka"
ACCOUNT_B = "7F1WzVNQ1Qpurqxxdyv3UrFQR3uoNepULVW9A4bAJ5nZ"
ACCOUNT_C = "So11111111111111111111111111111111111111112"
SYSTEM_PROGRAM = "11111111111111111111111111111111"


def json_entry(
    signatures: list[str],
    account_keys: list[Any],
    fee: int | None = 5000,
    *,
    with_meta: bool = True,
    version: Any = "legacy",
) -> dict[str, Any]:
    """Build a getBlock transaction entry in json encoding."""
    entry: dict[str, Any] = {
        "transaction": {
            "signatures": signatures,
            "message": {"accountKeys": account_keys, "instructions": []},
        },
        "version": version,
    }
    if with_meta:
        meta: dict[str, Any] = {"err": None, "preBalances": [], "postBalances": []}
        if fee is not None:
            meta["fee"] = fee
        entry["meta"] = meta
    else:
        entry["meta"] = None
    return entry


def snapshot(pubkey: str, lamports: int = 1_000_000) -> AccountSnapshot:
    return AccountSnapshot(
        pubkey=pubkey,
        lamports=lamports,
        owner=SYSTEM_PROGRAM,
        data="",
        executable=False,
        rent_epoch=0,
        space=0,
        fetched_at=1_700_000_000,
    )


class FakeRpc:
    """
    Duck-typed stand-in for SolanaRpcClient.

    blocks: slot -> RawBlock; accounts: pubkey -> AccountSnapshot.
    *_errors map a key to the exception its fetch raises.
    """

    def __init__(self, latest: int = 99) -> None:
        self.latest = latest
        self.latest_error: Exception | None = None
        self.blocks: dict[int, RawBlock] = {}
        self.extra_slots: set[int] = set()
        self.list_error: Exception | None = None
        self.block_errors: dict[int, Exception] = {}
        self.accounts: dict[str, AccountSnapshot] = {}
        self.account_errors: dict[str, Exception] = {}
        self.calls: list[tuple[str, Any]] = []
        self.on_account_fetch: Any = None
        self.closed = False

    def add_block(self, slot: int, block_time: int, entries: list[dict[str, Any]]) -> None:
        self.blocks[slot] = RawBlock(slot=slot, block_time=block_time, transactions=entries)

    async def latest_cursor_position(self) -> int:
        self.calls.append(("latest_cursor_position", None))
        if self.latest_error is not None:
            raise self.latest_error
        return self.latest

    async def blocks_since(self, start_slot: int, limit: int) -> list[int]:
        self.calls.append(("blocks_since", (start_slot, limit)))
        if self.list_error is not None:
            raise self.list_error
        slots = sorted(set(self.blocks) | self.block_errors.keys() | self.extra_slots)
        return [s for s in slots if s >= start_slot][:limit]

    async def block_body(self, slot: int) -> RawBlock:
        self.calls.append(("block_body", slot))
        if slot in self.block_errors:
            raise self.block_errors[slot]
        if slot not in self.blocks:
            raise UpstreamNotFound("getBlock", f"slot {slot} skipped", -32007)
        return self.blocks[slot]

    async def account_snapshot(self, pubkey: str) -> AccountSnapshot:
        self.calls.append(("account_snapshot", pubkey))
        if self.on_account_fetch is not None:
            self.on_account_fetch(pubkey)
        if pubkey in self.account_errors:
            raise self.account_errors[pubkey]
        if pubkey not in self.accounts:
            raise UpstreamNotFound("getAccountInfo", f"account {pubkey} not found")
        return self.accounts[pubkey]

    async def aclose(self) -> None:
        self.closed = True

    def account_calls(self) -> list[str]:
        return [arg for name, arg in self.calls if name == "account_snapshot"]

    def block_calls(self) -> list[int]:
        return [arg for name, arg in self.calls if name == "block_body"]


@pytest.fixture
def store() -> IndexStore:
    return IndexStore()


@pytest.fixture
def fake_rpc() -> FakeRpc:
    rpc = FakeRpc()
    for pubkey in (ACCOUNT_A, ACCOUNT_B, ACCOUNT_C):
        rpc.accounts[pubkey] = snapshot(pubkey)
    return rpc
