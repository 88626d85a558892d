"""
Structured logging for the indexer (structlog).

Every event is a snake_case name plus keyword context, e.g.
    logger.info("poller_block_indexed", slot=123, transactions=42)
rendered as one JSON object per line (LOG_FORMAT=json, default) or a colored
console line (LOG_FORMAT=console). Keys are stable so poll cycles, decode
failures and RPC errors can be aggregated: event_type, level, timestamp,
logger, plus slot / signature / account where relevant.

Configured once, on first import. Imports nothing from solana_indexer so any
module can import it without cycles.
"""

from __future__ import annotations

import logging
import os
import sys
from datetime import datetime, timezone
from typing import Any

import structlog

LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").strip().upper()
LOG_FORMAT = os.getenv("LOG_FORMAT", "json").strip().lower()


def _level_value(name: str) -> int:
    level = logging.getLevelName(name)
    return level if isinstance(level, int) else logging.INFO


def _add_timestamp(logger: Any, method_name: str, event_dict: dict[str, Any]) -> dict[str, Any]:
    event_dict.setdefault("timestamp", datetime.now(timezone.utc).isoformat())
    return event_dict


def _event_type(logger: Any, method_name: str, event_dict: dict[str, Any]) -> dict[str, Any]:
    """structlog's positional 'event' becomes event_type."""
    if "event" in event_dict and "event_type" not in event_dict:
        event_dict["event_type"] = event_dict.pop("event")
    return event_dict


def _renderer(fmt: str) -> Any:
    if fmt == "console":
        return structlog.dev.ConsoleRenderer(colors=sys.stderr.isatty())
    return structlog.processors.JSONRenderer()


def configure_structlog() -> None:
    """Set processors, level filter and stdout output; also aligns stdlib logging (uvicorn)."""
    level = _level_value(LOG_LEVEL)
    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.processors.add_log_level,
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            _add_timestamp,
            _event_type,
            _renderer(LOG_FORMAT),
        ],
        wrapper_class=structlog.make_filtering_bound_logger(level),
        context_class=dict,
        logger_factory=structlog.PrintLoggerFactory(file=sys.stdout),
        cache_logger_on_first_use=True,
    )
    logging.basicConfig(level=level, stream=sys.stdout, format="%(levelname)s %(name)s %(message)s")


if not structlog.is_configured():
    configure_structlog()


def get_logger(name: str) -> structlog.BoundLogger:
    """Logger for a module; every event carries logger=<name>."""
    return structlog.get_logger(name).bind(logger=name)


def bind_slot(logger: structlog.BoundLogger, slot: int) -> structlog.BoundLogger:
    """Logger with the block slot bound to every subsequent event."""
    return logger.bind(slot=slot)
