"""
Solana transaction decoder — raw getBlock entries to TransactionRecord.

Pure and side-effect free. Handles every encoding getBlock can return for a
transaction entry:

- binary: ["<payload>", "base64"] / ["<payload>", "base58"] or a bare base58 string
  (legacy "binary" encoding); deserialized with solders as a VersionedTransaction,
  which covers both legacy and v0 messages.
- json / jsonParsed: {"signatures": [...], "message": {"accountKeys": [...]}}.

Only static account keys are used (addresses loaded from lookup tables are not part
of the record). A failing entry raises DecodeError; callers log and skip it.
"""

from __future__ import annotations

import base64
import binascii
from typing import Any

import base58
from solders.transaction import VersionedTransaction

from solana_indexer.core.exceptions import DecodeError
from solana_indexer.solana_listener.models import RawBlock, TransactionRecord

# Message versions this decoder understands (getBlock "version" field)
SUPPORTED_VERSIONS = ("legacy", 0)


def _decode_binary(payload: str, encoding: str, entry_id: str | int) -> tuple[list[str], list[str]]:
    """Deserialize a binary-encoded transaction; return (signatures, static account keys)."""
    try:
        if encoding == "base64":
            raw = base64.b64decode(payload, validate=True)
        elif encoding == "base58":
            raw = base58.b58decode(payload)
        else:
            raise DecodeError(entry_id, f"unsupported binary encoding {encoding!r}")
    except (binascii.Error, ValueError) as e:
        raise DecodeError(entry_id, f"invalid {encoding} payload: {e}") from e
    try:
        tx = VersionedTransaction.from_bytes(raw)
    except Exception as e:
        raise DecodeError(entry_id, f"cannot deserialize transaction: {e}") from e
    signatures = [str(s) for s in tx.signatures]
    account_keys = [str(k) for k in tx.message.account_keys]
    return signatures, account_keys


def _decode_json(tx_obj: dict[str, Any], entry_id: str | int) -> tuple[list[str], list[str]]:
    """Read signatures and static account keys from a json / jsonParsed transaction."""
    message = tx_obj.get("message")
    if not isinstance(message, dict):
        raise DecodeError(entry_id, "transaction has no message")
    signatures = tx_obj.get("signatures")
    if not isinstance(signatures, list):
        raise DecodeError(entry_id, "transaction has no signature list")
    keys = message.get("accountKeys") or []
    account_keys: list[str] = []
    for k in keys:
        if isinstance(k, str):
            account_keys.append(k)
        elif isinstance(k, dict):
            # jsonParsed lists lookup-table addresses inline; keep static keys only
            if k.get("source", "transaction") != "transaction":
                continue
            pubkey = k.get("pubkey")
            if not isinstance(pubkey, str):
                raise DecodeError(entry_id, "account key without pubkey")
            account_keys.append(pubkey)
        else:
            raise DecodeError(entry_id, f"unrecognized account key {k!r}")
    return [str(s) for s in signatures], account_keys


def _signatures_and_keys(raw_tx: Any, entry_id: str | int) -> tuple[list[str], list[str]]:
    if isinstance(raw_tx, list):
        if len(raw_tx) != 2 or not all(isinstance(x, str) for x in raw_tx):
            raise DecodeError(entry_id, "malformed binary transaction entry")
        return _decode_binary(raw_tx[0], raw_tx[1], entry_id)
    if isinstance(raw_tx, str):
        return _decode_binary(raw_tx, "base58", entry_id)
    if isinstance(raw_tx, dict):
        return _decode_json(raw_tx, entry_id)
    raise DecodeError(entry_id, "missing or unrecognized transaction payload")


def _first_signature_hint(raw_tx: Any) -> str | None:
    """Best-effort signature for error context on json entries."""
    if isinstance(raw_tx, dict):
        sigs = raw_tx.get("signatures")
        if isinstance(sigs, list) and sigs and isinstance(sigs[0], str):
            return sigs[0]
    return None


def decode_transaction(
    entry: dict[str, Any],
    block_time: int,
    *,
    index: int = 0,
) -> TransactionRecord:
    """
    Decode one getBlock transaction entry into a TransactionRecord.

    Args:
        entry: {"transaction": ..., "meta": {...}, "version": ...} as returned by getBlock.
        block_time: Unix timestamp of the containing block; applied to the record.
        index: Position of the entry in its block; used as error context when the
            entry has no readable signature.

    Raises:
        DecodeError: unsupported version, undecodable payload, no account keys,
            no signatures, or missing execution metadata / fee.
    """
    if not isinstance(entry, dict):
        raise DecodeError(index, "entry is not an object")
    raw_tx = entry.get("transaction")
    entry_id: str | int = _first_signature_hint(raw_tx) or index

    version = entry.get("version", "legacy")
    if version is None:
        version = "legacy"
    if version not in SUPPORTED_VERSIONS:
        raise DecodeError(entry_id, f"unsupported transaction version {version!r}")

    signatures, account_keys = _signatures_and_keys(raw_tx, entry_id)
    if signatures:
        entry_id = signatures[0]
    if not signatures:
        raise DecodeError(entry_id, "transaction has no signatures")
    if not account_keys:
        raise DecodeError(entry_id, "message references no accounts")

    meta = entry.get("meta")
    if not isinstance(meta, dict):
        raise DecodeError(entry_id, "missing execution metadata")
    fee = meta.get("fee")
    if not isinstance(fee, int) or isinstance(fee, bool) or fee < 0:
        raise DecodeError(entry_id, f"invalid fee in metadata: {fee!r}")

    sender, *receivers = account_keys
    return TransactionRecord(
        sender=sender,
        receivers=tuple(receivers),
        fee=fee,
        timestamp=int(block_time),
        signatures=tuple(signatures),
    )


def decode_block(block: RawBlock) -> tuple[list[TransactionRecord], list[DecodeError]]:
    """
    Decode every transaction in a block, preserving order.

    Returns (records, errors); a failing entry never aborts the block.
    """
    records: list[TransactionRecord] = []
    errors: list[DecodeError] = []
    for i, entry in enumerate(block.transactions):
        try:
            records.append(decode_transaction(entry, block.block_time, index=i))
        except DecodeError as e:
            errors.append(e)
    return records, errors
