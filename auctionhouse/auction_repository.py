"""MongoDB storage for auctions, with automatic closing of expired ones."""

from __future__ import annotations

import math
import threading
from datetime import datetime, timedelta, timezone
from fractions import Fraction
from typing import Any

from pymongo.errors import PyMongoError

from . import logger, settings
from .entities import Auction, AuctionStatus, ProductCondition
from .errors import InternalError, InternalServerError


def _to_unix(moment: datetime) -> int:
    return math.floor(moment.timestamp())


def _from_unix(seconds: int) -> datetime:
    return datetime.fromtimestamp(seconds, tz=timezone.utc)


def _enum_or_int(enum_type, value: int):
    try:
        return enum_type(value)
    except ValueError:
        return value


def _format_duration(duration: timedelta) -> str:
    """Render a duration as e.g. "1m0s", "10s" or "12.5s"."""
    micros = duration // timedelta(microseconds=1)
    if micros == 0:
        return "0s"
    sign = "-" if micros < 0 else ""
    micros = abs(micros)
    if micros < 1_000_000:
        if micros < 1000:
            return f"{sign}{micros}\u00b5s"
        millis = Fraction(micros, 1000)
        return f"{sign}{_trim(millis)}ms"
    hours, rest = divmod(micros, 3_600_000_000)
    minutes, rest = divmod(rest, 60_000_000)
    seconds = _trim(Fraction(rest, 1_000_000))
    if hours:
        return f"{sign}{hours}h{minutes}m{seconds}s"
    if minutes:
        return f"{sign}{minutes}m{seconds}s"
    return f"{sign}{seconds}s"


def _trim(value: Fraction) -> str:
    whole = int(value)
    fraction = value - whole
    if not fraction:
        return str(whole)
    digits = f"{float(fraction):.6f}"[2:].rstrip("0")
    return f"{whole}.{digits}"


class AuctionRepository:
    """Stores auctions in the "auctions" collection and closes them when they expire.

    Each created auction gets its own close timer; start() also launches a
    periodic sweep for auctions whose lifetime has passed.
    """

    def __init__(self, database, auction_interval: timedelta | None = None) -> None:
        self.collection = database["auctions"]
        self.status_map: dict[str, AuctionStatus] = {}
        self.status_lock = threading.Lock()
        self.auction_interval = (
            auction_interval if auction_interval is not None else settings.auction_interval()
        )
        self._stopping = threading.Event()
        self._thread: threading.Thread | None = None
        self._timers: list[threading.Timer] = []
        self._timers_lock = threading.Lock()

    def __enter__(self) -> "AuctionRepository":
        self.start()
        return self

    def __exit__(self, *exc_info) -> None:
        self.stop()

    def _check_interval(self) -> timedelta:
        check = timedelta(minutes=1)
        if self.auction_interval < timedelta(minutes=1):
            check = self.auction_interval / 2
            if check < timedelta(seconds=10):
                check = timedelta(seconds=10)
        return check

    def start(self) -> None:
        """Start the periodic sweep that closes expired auctions."""
        if self._thread is not None and self._thread.is_alive():
            return
        self._stopping.clear()
        check = self._check_interval()
        logger.info("Starting auction closer routine with interval: " + _format_duration(check))
        self._thread = threading.Thread(
            target=self._run, args=(check.total_seconds(),), name="auction-sweeper", daemon=True
        )
        self._thread.start()

    def stop(self) -> None:
        """Stop the sweep and cancel pending close timers."""
        self._stopping.set()
        with self._timers_lock:
            timers, self._timers = self._timers, []
        for timer in timers:
            timer.cancel()
        if self._thread is not None:
            self._thread.join()
            self._thread = None

    def _run(self, seconds: float) -> None:
        while not self._stopping.wait(seconds):
            self.close_expired_auctions()

    def create_auction(self, auction: Auction) -> None:
        """Store an auction and schedule its automatic closing."""
        document = {
            "_id": auction.id,
            "product_name": auction.product_name,
            "category": auction.category,
            "description": auction.description,
            "condition": int(auction.condition),
            "status": int(auction.status),
            "timestamp": _to_unix(auction.timestamp),
        }
        try:
            self.collection.insert_one(document)
        except PyMongoError as exc:
            logger.error("Error trying to insert auction", exc)
            raise InternalServerError("Error trying to insert auction") from exc

        self._schedule_close(auction.id, auction.timestamp)

    def _schedule_close(self, auction_id: str, start_time: datetime) -> None:
        close_time = start_time + self.auction_interval
        wait = (close_time - datetime.now(timezone.utc)).total_seconds()
        timer = threading.Timer(max(wait, 0.0), self._close_automatically, args=(auction_id,))
        timer.daemon = True
        with self._timers_lock:
            self._timers = [t for t in self._timers if t.is_alive()]
            self._timers.append(timer)
        timer.start()

    def _close_automatically(self, auction_id: str) -> None:
        try:
            auction = self.find_auction_by_id(auction_id)
        except InternalError as exc:
            logger.error("Error trying to find auction to close", exc)
            return

        if auction.status == AuctionStatus.ACTIVE:
            try:
                self.close_auction(auction_id)
            except InternalError as exc:
                logger.error("Error trying to close auction automatically", exc)
            else:
                logger.info("Auction closed automatically: " + auction_id)

    def close_auction(self, auction_id: str) -> None:
        """Mark an auction as completed."""
        with self.status_lock:
            try:
                self.collection.update_one(
                    {"_id": auction_id},
                    {"$set": {"status": int(AuctionStatus.COMPLETED)}},
                )
            except PyMongoError as exc:
                logger.error("Error trying to close auction", exc)
                raise InternalServerError("Error trying to close auction") from exc
            self.status_map[auction_id] = AuctionStatus.COMPLETED

    def close_expired_auctions(self) -> int:
        """Close every found auction whose lifetime has passed; return how many closed."""
        try:
            active = self.find_auctions(AuctionStatus.ACTIVE, "", "")
        except InternalError as exc:
            logger.error("Error trying to find active auctions", exc)
            return 0

        now = datetime.now(timezone.utc)
        closed = 0
        for auction in active:
            if now > auction.timestamp + self.auction_interval:
                try:
                    self.close_auction(auction.id)
                except InternalError as exc:
                    logger.error("Error trying to close expired auction", exc)
                else:
                    logger.info("Expired auction closed automatically: " + auction.id)
                    closed += 1

        if active or closed:
            logger.info(f"Auction check completed - Active: {len(active)}, Closed: {closed}")
        return closed

    @staticmethod
    def _to_entity(document: dict[str, Any]) -> Auction:
        return Auction(
            id=document["_id"],
            product_name=document["product_name"],
            category=document["category"],
            description=document["description"],
            condition=_enum_or_int(ProductCondition, document["condition"]),
            status=_enum_or_int(AuctionStatus, document["status"]),
            timestamp=_from_unix(document["timestamp"]),
        )

    def find_auction_by_id(self, auction_id: str) -> Auction:
        """Return the stored auction with the given id."""
        try:
            document = self.collection.find_one({"_id": auction_id})
        except PyMongoError as exc:
            logger.error(f"Error trying to find auction by id = {auction_id}", exc)
            raise InternalServerError("Error trying to find auction by id") from exc
        if document is None:
            logger.error(
                f"Error trying to find auction by id = {auction_id}",
                LookupError("no documents in result"),
            )
            raise InternalServerError("Error trying to find auction by id")
        return self._to_entity(document)

    def find_auctions(self, status: int, category: str, product_name: str) -> list[Auction]:
        """Return auctions filtered by status (0 means any), category and name."""
        query: dict[str, Any] = {}
        if int(status) != 0:
            query["status"] = int(status)
        if category:
            query["category"] = category
        if product_name:
            query["product_name"] = {
                "$regex": _quote_meta(product_name),
                "$options": "i",
            }

        try:
            cursor = self.collection.find(query)
        except PyMongoError as exc:
            logger.error("Error finding auctions", exc)
            raise InternalServerError("Error finding auctions") from exc
        try:
            documents = list(cursor)
        except PyMongoError as exc:
            logger.error("Error decoding auctions", exc)
            raise InternalServerError("Error decoding auctions") from exc
        return [self._to_entity(document) for document in documents]


_SPECIAL = set("\\.+*?()|[]{}^$")


def _quote_meta(text: str) -> str:
    return "".join("\\" + ch if ch in _SPECIAL else ch for ch in text)