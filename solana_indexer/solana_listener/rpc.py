"""
Async Solana JSON-RPC client — the indexer's only upstream collaborator.

Exposes the four capabilities ingestion needs:
- latest_cursor_position(): latest durable slot (getHighestSnapshotSlot.full)
- blocks_since(start, limit): confirmed slots from start (inclusive) (getBlocksWithLimit)
- block_body(slot): RawBlock with base64 transaction entries (getBlock)
- account_snapshot(pubkey): AccountSnapshot (getAccountInfo)

Every call has a timeout and bounded retry with exponential backoff for transient
failures. Failures are classified as UpstreamNotFound (block skipped / unavailable,
account missing) or UpstreamTransientError (everything else).
"""

from __future__ import annotations

import asyncio
import itertools
import time
from typing import Any

import httpx

from solana_indexer.config.env import mask_rpc_url
from solana_indexer.core.exceptions import (
    UpstreamError,
    UpstreamNotFound,
    UpstreamTransientError,
)
from solana_indexer.indexer_logging import get_logger
from solana_indexer.solana_listener.models import AccountSnapshot, RawBlock

logger = get_logger(__name__)

DEFAULT_TIMEOUT_SEC = 30.0
DEFAULT_MAX_RETRIES = 3
DEFAULT_RETRY_BACKOFF_SEC = 0.5
MAX_RETRY_DELAY_SEC = 10.0

# JSON-RPC error codes meaning "this slot/block is not there", not "try again"
BLOCK_CLEANED_UP = -32001
BLOCK_NOT_AVAILABLE = -32004
SLOT_SKIPPED = -32007
LONG_TERM_STORAGE_SLOT_SKIPPED = -32009
NOT_FOUND_CODES = frozenset(
    {BLOCK_CLEANED_UP, BLOCK_NOT_AVAILABLE, SLOT_SKIPPED, LONG_TERM_STORAGE_SLOT_SKIPPED}
)

RETRYABLE_STATUS = frozenset({429, 500, 502, 503, 504})


class SolanaRpcClient:
    """
    Thin async JSON-RPC wrapper over httpx.AsyncClient.

    Use as an async context manager, or pass an existing httpx.AsyncClient
    (e.g. one built on httpx.MockTransport in tests); a passed client is not closed.
    """

    def __init__(
        self,
        rpc_url: str,
        *,
        timeout_sec: float = DEFAULT_TIMEOUT_SEC,
        max_retries: int = DEFAULT_MAX_RETRIES,
        retry_backoff_sec: float = DEFAULT_RETRY_BACKOFF_SEC,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        if not rpc_url.strip():
            raise ValueError("rpc_url must be non-empty")
        if max_retries < 1:
            raise ValueError("max_retries must be >= 1")
        self._rpc_url = rpc_url.rstrip("/")
        self._max_retries = max_retries
        self._retry_backoff = retry_backoff_sec
        self._owns_client = client is None
        self._client = client or httpx.AsyncClient(timeout=httpx.Timeout(timeout_sec))
        self._ids = itertools.count(1)

    async def __aenter__(self) -> "SolanaRpcClient":
        return self

    async def __aexit__(self, *exc: Any) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        if self._owns_client:
            await self._client.aclose()

    # ------------------------------------------------------------------
    # Transport
    # ------------------------------------------------------------------

    async def _call_once(self, method: str, params: list[Any]) -> Any:
        body = {"jsonrpc": "2.0", "id": next(self._ids), "method": method, "params": params}
        try:
            resp = await self._client.post(self._rpc_url, json=body)
        except httpx.HTTPError as e:
            raise UpstreamTransientError(method, f"transport error: {e!r}") from e
        if resp.status_code in RETRYABLE_STATUS:
            raise UpstreamTransientError(method, f"HTTP {resp.status_code}")
        try:
            resp.raise_for_status()
            data = resp.json()
        except (httpx.HTTPStatusError, ValueError) as e:
            raise UpstreamTransientError(method, f"bad response: {e}") from e
        if not isinstance(data, dict):
            raise UpstreamTransientError(method, "response is not a JSON object")
        err = data.get("error")
        if err:
            code = err.get("code") if isinstance(err, dict) else None
            message = err.get("message", str(err)) if isinstance(err, dict) else str(err)
            if code in NOT_FOUND_CODES:
                raise UpstreamNotFound(method, message, code)
            raise UpstreamTransientError(method, message, code)
        if "result" not in data:
            raise UpstreamTransientError(method, "response has no result")
        return data["result"]

    async def call(self, method: str, params: list[Any]) -> Any:
        """Perform one JSON-RPC call; retry transient failures with exponential backoff."""
        delay = self._retry_backoff
        for attempt in range(self._max_retries):
            try:
                return await self._call_once(method, params)
            except UpstreamNotFound:
                raise
            except UpstreamTransientError as e:
                if attempt + 1 >= self._max_retries:
                    logger.warning(
                        "rpc_give_up",
                        method=method,
                        attempts=self._max_retries,
                        rpc_url=mask_rpc_url(self._rpc_url),
                        error=str(e),
                    )
                    raise
                logger.debug(
                    "rpc_retry",
                    method=method,
                    attempt=attempt + 1,
                    max_retries=self._max_retries,
                    error=str(e),
                )
                await asyncio.sleep(delay)
                delay = min(delay * 2, MAX_RETRY_DELAY_SEC)
        raise UpstreamTransientError(method, "no attempts made")

    # ------------------------------------------------------------------
    # Capabilities
    # ------------------------------------------------------------------

    async def latest_cursor_position(self) -> int:
        """Latest durable slot: the highest full snapshot slot of the node."""
        result = await self.call("getHighestSnapshotSlot", [])
        try:
            return int(result["full"])
        except (KeyError, TypeError, ValueError) as e:
            raise UpstreamTransientError("getHighestSnapshotSlot", f"unexpected result {result!r}") from e

    async def blocks_since(self, start_slot: int, limit: int) -> list[int]:
        """Up to `limit` confirmed block slots starting at start_slot (inclusive), ascending."""
        result = await self.call("getBlocksWithLimit", [start_slot, limit, {"commitment": "finalized"}])
        if not isinstance(result, list):
            raise UpstreamTransientError("getBlocksWithLimit", f"unexpected result {result!r}")
        try:
            return sorted(int(s) for s in result)
        except (TypeError, ValueError) as e:
            raise UpstreamTransientError("getBlocksWithLimit", f"non-integer slot in {result!r}") from e

    async def block_body(self, slot: int) -> RawBlock:
        """Fetch a full block with base64-encoded transactions (legacy + v0)."""
        config = {
            "encoding": "base64",
            "maxSupportedTransactionVersion": 0,
            "transactionDetails": "full",
            "rewards": False,
            "commitment": "finalized",
        }
        result = await self.call("getBlock", [slot, config])
        if result is None:
            raise UpstreamNotFound("getBlock", f"slot {slot} has no block")
        if not isinstance(result, dict):
            raise UpstreamTransientError("getBlock", f"unexpected result type {type(result).__name__}")
        block_time = result.get("blockTime")
        if block_time is None:
            raise UpstreamNotFound("getBlock", f"slot {slot} has no block time")
        transactions = result.get("transactions") or []
        if not isinstance(transactions, list):
            raise UpstreamTransientError("getBlock", f"slot {slot} transactions is not a list")
        try:
            block_time = int(block_time)
        except (TypeError, ValueError) as e:
            raise UpstreamTransientError("getBlock", f"slot {slot} has malformed block time {block_time!r}") from e
        return RawBlock(slot=slot, block_time=block_time, transactions=transactions)

    async def account_snapshot(self, pubkey: str) -> AccountSnapshot:
        """Fetch current account state; UpstreamNotFound when the account does not exist."""
        result = await self.call("getAccountInfo", [pubkey, {"encoding": "base64"}])
        if not isinstance(result, dict):
            raise UpstreamTransientError("getAccountInfo", f"unexpected result {result!r}")
        value = result.get("value")
        if value is None:
            raise UpstreamNotFound("getAccountInfo", f"account {pubkey} not found")
        if not isinstance(value, dict):
            raise UpstreamTransientError("getAccountInfo", f"malformed account value {value!r}")
        try:
            return AccountSnapshot.from_rpc_value(pubkey, value, fetched_at=int(time.time()))
        except (KeyError, TypeError, ValueError, AttributeError) as e:
            raise UpstreamTransientError("getAccountInfo", f"malformed account value: {e}") from e


__all__ = [
    "SolanaRpcClient",
    "UpstreamError",
    "UpstreamNotFound",
    "UpstreamTransientError",
]
