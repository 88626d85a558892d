"""
FastAPI server — read-only API over the in-memory index.

GET /transaction?id=<signature> | ?day=DD/MM/YYYY | ?random=<n>
GET /account?id=<pubkey>
GET /health

Reads only through a StoreReader. When ingestion is enabled, the lifespan
starts the BlockPoller as a task on the server's event loop and stops it on
shutdown. Failing to read the initial cursor aborts startup.

Consistency: a returned transaction's account snapshots may not be indexed yet
(or may be newer than the transaction); the two indexes are updated separately.
"""

from __future__ import annotations

import asyncio
from contextlib import asynccontextmanager
from typing import Any

from fastapi import Depends, FastAPI, Query, Request
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field

from solana_indexer.api_server import queries
from solana_indexer.config import Settings, get_settings
from solana_indexer.config.env import mask_rpc_url
from solana_indexer.core.exceptions import QueryValidationError
from solana_indexer.database.store import IndexStore, StoreReader
from solana_indexer.indexer_logging import get_logger
from solana_indexer.solana_listener.listener import BlockPoller
from solana_indexer.solana_listener.rpc import SolanaRpcClient

logger = get_logger(__name__)

POLLER_SHUTDOWN_TIMEOUT_SEC = 15.0


# -----------------------------------------------------------------------------
# Response models
# -----------------------------------------------------------------------------

class TransactionResponse(BaseModel):
    """One indexed transaction."""

    sender: str = Field(..., description="Fee payer (first static account key)")
    receivers: list[str] = Field(default_factory=list, description="Remaining static account keys, in order")
    fee: int = Field(..., ge=0, description="Fee in lamports")
    timestamp: int = Field(..., description="Block time (unix seconds)")
    signatures: list[str] = Field(..., min_length=1, description="Transaction signatures (base58)")


class AccountResponse(BaseModel):
    """Latest fetched snapshot of one account."""

    pubkey: str
    lamports: int
    owner: str = Field(..., description="Owning program id")
    data: str = Field(..., description="Account data, base64")
    executable: bool
    rent_epoch: int | None = None
    space: int | None = None
    fetched_at: int | None = Field(None, description="Unix time of the fetch")


class HealthResponse(BaseModel):
    status: str
    cursor: int | None = None
    transactions: int
    accounts: int


# -----------------------------------------------------------------------------
# Ingestion wiring
# -----------------------------------------------------------------------------

def build_store(settings: Settings) -> IndexStore:
    return IndexStore(
        max_transactions=settings.max_transactions,
        max_accounts=settings.max_accounts,
        retention_sec=settings.retention_sec,
    )


def build_poller(settings: Settings, store: IndexStore, rpc: SolanaRpcClient) -> BlockPoller:
    return BlockPoller(
        rpc,
        store,
        poll_interval_sec=settings.poll_interval_sec,
        blocks_per_cycle=settings.blocks_per_cycle,
    )


def build_rpc(settings: Settings) -> SolanaRpcClient:
    return SolanaRpcClient(
        settings.rpc_url,
        timeout_sec=settings.rpc_timeout_sec,
        max_retries=settings.rpc_max_retries,
    )


async def stop_poller(poller: BlockPoller, task: asyncio.Task[None]) -> None:
    """Ask the poller to stop; cancel it if it does not finish in time."""
    poller.stop()
    try:
        await asyncio.wait_for(asyncio.shield(task), timeout=POLLER_SHUTDOWN_TIMEOUT_SEC)
    except asyncio.TimeoutError:
        logger.warning("api_poller_shutdown_timeout", timeout_sec=POLLER_SHUTDOWN_TIMEOUT_SEC)
        task.cancel()
        try:
            await task
        except asyncio.CancelledError:
            pass
    except Exception as e:
        logger.exception("api_poller_failed", error=str(e))


# -----------------------------------------------------------------------------
# App factory
# -----------------------------------------------------------------------------

def create_app(
    store: IndexStore | None = None,
    settings: Settings | None = None,
    *,
    ingestion: bool | None = None,
) -> FastAPI:
    """
    Build the API app.

    Args:
        store: Index to serve; a new one sized from settings when None.
        settings: Defaults to get_settings() (environment).
        ingestion: Run the BlockPoller in the app lifespan; defaults to
            settings.ingestion_enabled.
    """
    settings = settings or get_settings()
    store = store if store is not None else build_store(settings)
    run_ingestion = settings.ingestion_enabled if ingestion is None else ingestion

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        if not run_ingestion:
            yield
            return
        rpc = build_rpc(settings)
        poller = build_poller(settings, store, rpc)
        try:
            # StartupError propagates: no safe cursor, no server
            await poller.initialize_cursor()
        except Exception:
            await rpc.aclose()
            raise
        app.state.poller = poller
        task = asyncio.create_task(poller.run(poller.cursor), name="block-poller")
        app.state.poller_task = task
        logger.info(
            "api_poller_started",
            rpc_url=mask_rpc_url(settings.rpc_url),
            cursor=poller.cursor,
        )
        try:
            yield
        finally:
            await stop_poller(poller, task)
            await rpc.aclose()
            logger.info("api_poller_stopped", cursor=poller.cursor)

    app = FastAPI(
        title="Solana Indexer API",
        description="Read-only API over indexed Solana transactions and account snapshots.",
        version="0.1.0",
        lifespan=lifespan,
    )
    app.state.reader = store.reader()
    app.state.poller = None
    app.state.poller_task = None
    app.state.settings = settings

    @app.exception_handler(QueryValidationError)
    def query_validation_handler(request: Request, exc: QueryValidationError) -> JSONResponse:
        return JSONResponse(status_code=400, content={"detail": str(exc)})

    _register_routes(app)
    return app


def get_reader(request: Request) -> StoreReader:
    """Dependency: the app's read-only store view."""
    return request.app.state.reader


def _register_routes(app: FastAPI) -> None:
    @app.get("/transaction", response_model=list[TransactionResponse])
    def get_transactions(
        request: Request,
        signature: str | None = Query(None, alias="id", description="Transaction signature"),
        day: str | None = Query(None, description="UTC calendar day, DD/MM/YYYY"),
        sample: str | None = Query(None, alias="random", description="Random sample size"),
        reader: StoreReader = Depends(get_reader),
    ) -> list[dict[str, Any]]:
        """
        Look up transactions by exactly one selector: signature, day, or random sample.
        """
        selector = queries.single_selector(id=signature, day=day, random=sample)
        if selector == "id":
            record = reader.get_transaction_by_signature(queries.validate_signature(signature or ""))
            return [record.to_dict()] if record is not None else []
        if selector == "day":
            start, end = queries.day_window(day or "")
            return [r.to_dict() for r in reader.get_transactions_in_time_range(start, end)]
        n = queries.validate_sample_size(sample or "", request.app.state.settings.max_sample_size)
        return [r.to_dict() for r in reader.get_transactions_sample(n)]

    @app.get("/account", response_model=list[AccountResponse])
    def get_account(
        pubkey: str | None = Query(None, alias="id", description="Account address (base58)"),
        reader: StoreReader = Depends(get_reader),
    ) -> list[dict[str, Any]]:
        """Return the latest snapshot of an account as a one-element list, or []."""
        if pubkey is None:
            raise QueryValidationError("id is required")
        snapshot = reader.get_account_by_identifier(queries.validate_pubkey(pubkey))
        return [snapshot.to_dict()] if snapshot is not None else []

    @app.get("/health", response_model=HealthResponse)
    def health(request: Request, reader: StoreReader = Depends(get_reader)) -> HealthResponse:
        """Liveness probe plus ingestion progress."""
        poller = request.app.state.poller
        stats = reader.stats()
        return HealthResponse(
            status="ok",
            cursor=poller.cursor if poller is not None else None,
            transactions=stats["transactions"],
            accounts=stats["accounts"],
        )
