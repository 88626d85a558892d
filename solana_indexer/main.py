"""
Main entrypoint: FastAPI query server with the block poller running in its lifespan.

The poller runs as a task on the server's event loop, so queries are served
while it waits on RPC calls. On SIGINT/SIGTERM uvicorn shuts the app down and
the lifespan stops the poller after the transaction in progress.

Env: SOLANA_RPC_URL, POLL_INTERVAL_SEC, BLOCKS_PER_CYCLE, API_HOST, API_PORT, etc.
(see solana_indexer.config.settings).

Ingestion without the API: python -m solana_indexer --ingest-only
API-only (no poller): INGESTION_ENABLED=0 uvicorn solana_indexer.api_server.app:app --port 3000
"""

import argparse
import asyncio
import sys

# Configure structured JSON logging before other imports that may log
from solana_indexer.indexer_logging import get_logger

logger = get_logger("main")


async def run_ingestion(settings) -> None:
    """Run the poller alone until SIGINT/SIGTERM."""
    from solana_indexer.api_server.server import build_poller, build_rpc, build_store

    store = build_store(settings)
    async with build_rpc(settings) as rpc:
        poller = build_poller(settings, store, rpc)
        poller.install_signal_handlers()
        await poller.run()
    logger.info("main_ingestion_finished", **store.stats())


def main(argv: list[str] | None = None) -> int:
    """Parse args, load settings, run server (default) or ingestion only."""
    parser = argparse.ArgumentParser(description="Solana ledger indexer")
    parser.add_argument("--ingest-only", action="store_true", help="run the poller without the HTTP API")
    args = parser.parse_args(argv)

    from solana_indexer.config import get_settings
    from solana_indexer.config.env import mask_rpc_url
    from solana_indexer.core.exceptions import ConfigError, StartupError

    try:
        settings = get_settings()
    except ConfigError as e:
        logger.error("main_config_error", error=str(e))
        return 1
    logger.info(
        "main_settings_loaded",
        rpc_url=mask_rpc_url(settings.rpc_url),
        poll_interval_sec=settings.poll_interval_sec,
        blocks_per_cycle=settings.blocks_per_cycle,
    )

    if args.ingest_only:
        try:
            asyncio.run(run_ingestion(settings))
        except StartupError as e:
            logger.error("main_startup_failed", error=str(e))
            return 1
        return 0

    from solana_indexer.api_server.server import create_app
    import uvicorn

    app = create_app(settings=settings)
    logger.info("main_server_starting", host=settings.api_host, port=settings.api_port)
    # lifespan="on": a failed startup (no initial cursor) must abort the process
    uvicorn.run(
        app,
        host=settings.api_host,
        port=settings.api_port,
        lifespan="on",
        log_level=settings.log_level.lower(),
    )
    return 0


if __name__ == "__main__":
    sys.exit(main())
