"""Shared record parsing helpers for calendar models."""

import logging
from datetime import date, datetime
from decimal import Decimal, InvalidOperation
from enum import Enum
from typing import Any

logger = logging.getLogger(__name__)


class EntityKind(Enum):
    """Kinds of records owned by the stay record store."""

    STAY = "stay"
    ROOM = "room"


def parse_date(value: Any) -> date | None:
    """Parse a calendar date from a store value.

    Accepts ``date``/``datetime`` objects and ISO strings. Timestamps are
    truncated to their ``YYYY-MM-DD`` prefix so that a value such as
    ``2025-08-18T00:00:00+07:00`` lands on the 18th regardless of offset.
    Returns None for anything that cannot be read as a date.
    """
    if value is None:
        return None
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    if isinstance(value, str):
        try:
            return date.fromisoformat(value.strip()[:10])
        except ValueError:
            logger.debug(f"Unparseable date value: {value!r}")
            return None
    return None


def parse_decimal(value: Any) -> Decimal:
    """Parse a monetary amount, treating missing values as zero."""
    if value is None or value == "":
        return Decimal("0")
    if isinstance(value, Decimal):
        return value
    try:
        # str() first so floats keep their printed value
        return Decimal(str(value))
    except (InvalidOperation, ValueError):
        logger.debug(f"Unparseable amount: {value!r}")
        return Decimal("0")


def parse_int(value: Any, default: int = 0) -> int:
    """Parse a non-negative count."""
    if value is None:
        return default
    try:
        return max(0, int(value))
    except (TypeError, ValueError):
        return default
