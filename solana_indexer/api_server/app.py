"""
FastAPI/ASGI application entrypoint.

Builds the app from environment settings (ingestion runs in the app lifespan).
Run with: uvicorn solana_indexer.api_server.app:app --host 0.0.0.0 --port 3000
"""

from solana_indexer.api_server.server import create_app

app = create_app()

__all__ = ["app"]
