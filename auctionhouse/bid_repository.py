"""MongoDB storage for bids."""

from __future__ import annotations

import threading
from concurrent.futures import ThreadPoolExecutor
from datetime import datetime, timedelta, timezone
from typing import Any

from pymongo.errors import PyMongoError

from . import logger, settings
from .auction_repository import AuctionRepository
from .entities import AuctionStatus, Bid
from .errors import InternalError, InternalServerError


def _from_unix(seconds: int) -> datetime:
    return datetime.fromtimestamp(seconds, tz=timezone.utc)


class BidRepository:
    """Stores bids in the "bids" collection, refusing bids on closed auctions."""

    def __init__(
        self,
        database,
        auction_repository: AuctionRepository,
        max_duration: timedelta | None = None,
    ) -> None:
        self.collection = database["bids"]
        self.auction_repository = auction_repository
        self.max_duration = (
            max_duration if max_duration is not None else settings.auction_max_duration()
        )
        self.end_time_map: dict[str, datetime] = {}
        self._end_time_lock = threading.Lock()

    def create_bid(self, bids: list[Bid]) -> None:
        """Store each bid whose auction is still open; failures are logged."""
        if not bids:
            return
        with ThreadPoolExecutor(max_workers=min(len(bids), 16)) as pool:
            list(pool.map(self._store_bid, bids))

    def _store_bid(self, bid: Bid) -> None:
        auctions = self.auction_repository
        with auctions.status_lock:
            status = auctions.status_map.get(bid.auction_id)
        with self._end_time_lock:
            end_time = self.end_time_map.get(bid.auction_id)

        document = {
            "_id": bid.id,
            "user_id": bid.user_id,
            "auction_id": bid.auction_id,
            "amount": bid.amount,
            "timestamp": int(bid.timestamp.timestamp() // 1),
        }

        if status is not None and end_time is not None:
            now = datetime.now(timezone.utc)
            if status == AuctionStatus.COMPLETED or now > end_time:
                return
            self._insert(document)
            return

        try:
            auction = auctions.find_auction_by_id(bid.auction_id)
        except InternalError as exc:
            logger.error("Error trying to find auction by id", exc)
            return
        if auction.status == AuctionStatus.COMPLETED:
            return

        with auctions.status_lock:
            auctions.status_map[bid.auction_id] = auction.status
        with self._end_time_lock:
            self.end_time_map[bid.auction_id] = auction.timestamp + self.max_duration

        self._insert(document)

    def _insert(self, document: dict[str, Any]) -> None:
        try:
            self.collection.insert_one(document)
        except PyMongoError as exc:
            logger.error("Error trying to insert bid", exc)

    @staticmethod
    def _to_entity(document: dict[str, Any]) -> Bid:
        return Bid(
            id=document["_id"],
            user_id=document["user_id"],
            auction_id=document["auction_id"],
            amount=document["amount"],
            timestamp=_from_unix(document["timestamp"]),
        )

    def find_bid_by_auction_id(self, auction_id: str) -> list[Bid]:
        """Return every stored bid for an auction."""
        message = f"Error trying to find bids by auctionId {auction_id}"
        try:
            documents = list(self.collection.find({"auction_id": auction_id}))
        except PyMongoError as exc:
            logger.error(message, exc)
            raise InternalServerError(message) from exc
        return [self._to_entity(document) for document in documents]

    def find_winning_bid_by_auction_id(self, auction_id: str) -> Bid:
        """Return the highest stored bid for an auction."""
        message = "Error trying to find the auction winner"
        try:
            document = self.collection.find_one(
                {"auction_id": auction_id}, sort=[("amount", -1)]
            )
        except PyMongoError as exc:
            logger.error(message, exc)
            raise InternalServerError(message) from exc
        if document is None:
            logger.error(message, LookupError("no documents in result"))
            raise InternalServerError(message)
        return self._to_entity(document)