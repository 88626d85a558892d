"""
Data models for Solana listener output.

- TransactionRecord: the normalized unit the indexer stores, one per transaction,
  reachable under every one of its signatures.
- AccountSnapshot: point-in-time state of one account from getAccountInfo.
- RawBlock: a fetched block body; consumed immediately by the decoder, never stored.

Records and snapshots are frozen so the store can share one instance across keys.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any


@dataclass(frozen=True)
class TransactionRecord:
    """
    Normalized transaction: fee payer, remaining static accounts, fee, block time, signatures.
    """

    sender: str
    """Base58 address of the first static account key (fee payer)."""
    receivers: tuple[str, ...]
    """Remaining static account keys in message order (duplicates kept)."""
    fee: int
    """Fee in lamports from the execution metadata."""
    timestamp: int
    """Unix timestamp (seconds) of the containing block."""
    signatures: tuple[str, ...]
    """All base58 signatures; never empty."""

    def accounts(self) -> set[str]:
        """Every account the transaction touches: {sender} ∪ receivers."""
        return {self.sender, *self.receivers}

    def ordered_accounts(self) -> list[str]:
        """accounts() in message order (sender first), duplicates removed."""
        return list(dict.fromkeys((self.sender, *self.receivers)))

    def to_dict(self) -> dict[str, Any]:
        return {
            "sender": self.sender,
            "receivers": list(self.receivers),
            "fee": self.fee,
            "timestamp": self.timestamp,
            "signatures": list(self.signatures),
        }


@dataclass(frozen=True)
class AccountSnapshot:
    """
    Observed state of one account at fetch time. Mirrors getAccountInfo's value object.
    """

    pubkey: str
    lamports: int
    owner: str
    data: str
    """Raw account data, base64-encoded as returned by the RPC."""
    executable: bool
    rent_epoch: int | None
    space: int | None = None
    fetched_at: int | None = None

    @classmethod
    def from_rpc_value(
        cls,
        pubkey: str,
        value: dict[str, Any],
        fetched_at: int | None = None,
    ) -> "AccountSnapshot":
        """Build from getAccountInfo result.value (base64 encoding)."""
        data = value.get("data")
        if isinstance(data, list):
            data = data[0] if data else ""
        rent_epoch = value.get("rentEpoch")
        space = value.get("space")
        return cls(
            pubkey=pubkey,
            lamports=int(value["lamports"]),
            owner=str(value["owner"]),
            data=data if isinstance(data, str) else "",
            executable=bool(value.get("executable", False)),
            rent_epoch=int(rent_epoch) if rent_epoch is not None else None,
            space=int(space) if space is not None else None,
            fetched_at=fetched_at,
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "pubkey": self.pubkey,
            "lamports": self.lamports,
            "owner": self.owner,
            "data": self.data,
            "executable": self.executable,
            "rent_epoch": self.rent_epoch,
            "space": self.space,
            "fetched_at": self.fetched_at,
        }


@dataclass
class RawBlock:
    """Block body from getBlock: slot, block time and raw transaction entries."""

    slot: int
    block_time: int
    transactions: list[dict[str, Any]] = field(default_factory=list)
