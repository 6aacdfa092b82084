"""Environment-driven settings and the database connection."""

from __future__ import annotations

import os
import re
from datetime import timedelta
from fractions import Fraction

from pymongo import MongoClient
from pymongo.errors import PyMongoError

from . import logger

MONGODB_URL = "MONGODB_URL"
MONGODB_DB = "MONGODB_DB"

_NANOSECONDS = {
    "ns": 1,
    "us": 1_000,
    "\u00b5s": 1_000,
    "\u03bcs": 1_000,
    "ms": 1_000_000,
    "s": 1_000_000_000,
    "m": 60 * 1_000_000_000,
    "h": 3600 * 1_000_000_000,
}
_MAX_NANOSECONDS = 2**63 - 1
_COMPONENT = re.compile(r"([0-9]*)(\.([0-9]*))?([^0-9.]*)")
_INTEGER = re.compile(r"[+-]?[0-9]+")


def parse_duration(text: str) -> timedelta:
    """Parse a duration such as "1h30m", "1.5s" or "300ms".

    Raises ValueError for malformed input. Precision below a microsecond is dropped.
    """
    rest = text
    negative = False
    if rest and rest[0] in "+-":
        negative = rest[0] == "-"
        rest = rest[1:]
    if rest == "0":
        return timedelta(0)
    if not rest:
        raise ValueError(f"invalid duration {text!r}")

    total = 0
    position = 0
    while position < len(rest):
        match = _COMPONENT.match(rest, position)
        whole, fraction, unit = match.group(1), match.group(3) or "", match.group(4)
        if not whole and not fraction:
            raise ValueError(f"invalid duration {text!r}")
        if not unit:
            raise ValueError(f"missing unit in duration {text!r}")
        if unit not in _NANOSECONDS:
            raise ValueError(f"unknown unit {unit!r} in duration {text!r}")
        value = Fraction(int(whole or "0"))
        if fraction:
            value += Fraction(int(fraction), 10 ** len(fraction))
        total += int(value * _NANOSECONDS[unit])
        if total > _MAX_NANOSECONDS:
            raise ValueError(f"invalid duration {text!r}")
        position = match.end()

    result = timedelta(microseconds=total // 1000)
    return -result if negative else result


def _duration_from_env(name: str, default: timedelta) -> timedelta:
    try:
        return parse_duration(os.environ.get(name, ""))
    except ValueError:
        return default


def auction_close_interval() -> timedelta:
    """How often the use case sweeps for expired auctions (default 1 minute)."""
    return _duration_from_env("AUCTION_CLOSE_INTERVAL", timedelta(minutes=1))


def auction_max_duration() -> timedelta:
    """How long an auction stays open (default 5 minutes)."""
    return _duration_from_env("AUCTION_MAX_DURATION", timedelta(minutes=5))


def auction_interval() -> timedelta:
    """Auction lifetime used by the repository (default 5 minutes).

    Reads AUCTION_CLOSE_INTERVAL, falling back to AUCTION_INTERVAL when empty.
    """
    value = os.environ.get("AUCTION_CLOSE_INTERVAL", "")
    if not value:
        value = os.environ.get("AUCTION_INTERVAL", "")
    try:
        return parse_duration(value)
    except ValueError as exc:
        logger.error("Invalid auction interval format, using default 5 minutes", exc)
        return timedelta(minutes=5)


def batch_insert_interval() -> timedelta:
    """Longest wait before a pending bid batch is written (default 3 minutes)."""
    return _duration_from_env("BATCH_INSERT_INTERVAL", timedelta(minutes=3))


def max_batch_size() -> int:
    """Number of bids written at once (default 5)."""
    value = os.environ.get("MAX_BATCH_SIZE", "")
    if not _INTEGER.fullmatch(value):
        return 5
    return int(value)


def connect_database():
    """Connect to MongoDB using MONGODB_URL and return the MONGODB_DB database."""
    url = os.environ.get(MONGODB_URL, "")
    name = os.environ.get(MONGODB_DB, "")
    try:
        client = MongoClient(url)
    except PyMongoError as exc:
        logger.error("Error trying to connect to mongodb database", exc)
        raise
    try:
        client.admin.command("ping")
    except PyMongoError as exc:
        logger.error("Error trying to ping mongodb database", exc)
        raise
    return client[name]