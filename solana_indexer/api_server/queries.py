"""
Query parameter validation for the read API.

Turns raw query strings into store arguments; every failure is a
QueryValidationError (HTTP 400, no partial result).
"""

from __future__ import annotations

from datetime import datetime, timedelta, timezone

from solders.pubkey import Pubkey
from solders.signature import Signature

from solana_indexer.core.exceptions import QueryValidationError

DAY_FORMAT = "%d/%m/%Y"
SECONDS_PER_DAY = int(timedelta(days=1).total_seconds())


def day_window(day: str) -> tuple[int, int]:
    """Return the UTC [day 00:00:00, next day 00:00:00) window as unix seconds."""
    try:
        parsed = datetime.strptime(day.strip(), DAY_FORMAT)
    except ValueError as e:
        raise QueryValidationError(f"day must use format DD/MM/YYYY, got {day!r}") from e
    start = int(parsed.replace(tzinfo=timezone.utc).timestamp())
    return start, start + SECONDS_PER_DAY


def validate_signature(value: str) -> str:
    value = value.strip()
    try:
        Signature.from_string(value)
    except Exception as e:
        raise QueryValidationError(f"invalid transaction signature {value!r}") from e
    return value


def validate_pubkey(value: str) -> str:
    value = value.strip()
    try:
        Pubkey.from_string(value)
    except Exception as e:
        raise QueryValidationError(f"invalid account address {value!r}") from e
    return value


def validate_sample_size(value: str, max_size: int) -> int:
    """Parse a sample size and cap it at max_size."""
    try:
        n = int(value.strip())
    except ValueError as e:
        raise QueryValidationError(f"random must be an integer, got {value!r}") from e
    if n < 0:
        raise QueryValidationError("random must be >= 0")
    return min(n, max_size)


def single_selector(**selectors: object) -> str:
    """Name of the one selector that is set; error when none or several are."""
    present = [name for name, value in selectors.items() if value is not None]
    if not present:
        raise QueryValidationError(f"exactly one of {', '.join(selectors)} is required")
    if len(present) > 1:
        raise QueryValidationError(f"conflicting selectors: {', '.join(present)}")
    return present[0]
