"""Auction use cases: creation, lookup, winners and automatic closing."""

from __future__ import annotations

import threading
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Any

from . import logger, settings
from .bid_usecase import BidOutput
from .entities import Auction, AuctionStatus, create_auction
from .errors import InternalError


@dataclass
class AuctionInput:
    """Data needed to open an auction."""

    product_name: str
    category: str
    description: str
    condition: int


@dataclass
class AuctionOutput:
    """An auction as returned to callers."""

    id: str
    product_name: str
    category: str
    description: str
    condition: int
    status: int
    timestamp: datetime

    @classmethod
    def from_entity(cls, auction: Auction) -> "AuctionOutput":
        """Build the output from an auction entity."""
        return cls(
            id=auction.id,
            product_name=auction.product_name,
            category=auction.category,
            description=auction.description,
            condition=int(auction.condition),
            status=int(auction.status),
            timestamp=auction.timestamp,
        )

    def to_dict(self) -> dict[str, Any]:
        """Return the JSON body for this auction."""
        return {
            "id": self.id,
            "product_name": self.product_name,
            "category": self.category,
            "description": self.description,
            "condition": int(self.condition),
            "status": int(self.status),
            "timestamp": self.timestamp.isoformat(),
        }


@dataclass
class WinningInfoOutput:
    """An auction together with its highest bid, if any."""

    auction: AuctionOutput
    bid: BidOutput | None = None

    def to_dict(self) -> dict[str, Any]:
        """Return the JSON body; the bid is left out when there is none."""
        body: dict[str, Any] = {"auction": self.auction.to_dict()}
        if self.bid is not None:
            body["bid"] = self.bid.to_dict()
        return body


class AuctionUseCase:
    """Coordinates auction storage and periodically closes expired auctions.

    The closing sweep runs in a background thread once start() is called.
    """

    def __init__(
        self,
        auction_repository,
        bid_repository,
        close_interval: timedelta | None = None,
        max_duration: timedelta | None = None,
    ) -> None:
        self.auction_repository = auction_repository
        self.bid_repository = bid_repository
        self.close_interval = (
            close_interval if close_interval is not None else settings.auction_close_interval()
        )
        self.max_duration = (
            max_duration if max_duration is not None else settings.auction_max_duration()
        )
        self._stopping = threading.Event()
        self._thread: threading.Thread | None = None

    def __enter__(self) -> "AuctionUseCase":
        self.start()
        return self

    def __exit__(self, *exc_info) -> None:
        self.stop()

    def start(self) -> None:
        """Start the background sweep that closes expired auctions."""
        if self._thread is not None and self._thread.is_alive():
            return
        self._stopping.clear()
        self._thread = threading.Thread(
            target=self._run, name="auction-closer", daemon=True
        )
        self._thread.start()

    def stop(self) -> None:
        """Stop the background sweep and wait for it to finish."""
        self._stopping.set()
        if self._thread is not None:
            self._thread.join()
            self._thread = None

    def _run(self) -> None:
        interval = max(self.close_interval.total_seconds(), 0.0)
        while not self._stopping.wait(interval):
            self.close_expired()

    def close_expired(self) -> None:
        """Close every active auction that has outlived the maximum duration."""
        try:
            auctions = self.auction_repository.find_auctions(AuctionStatus.ACTIVE, "", "")
        except InternalError as exc:
            logger.error("error trying to automatically close auctions", exc)
            return

        now = datetime.now(timezone.utc)
        for auction in auctions:
            if now > auction.timestamp + self.max_duration:
                try:
                    self.auction_repository.close_auction(auction.id)
                except InternalError as exc:
                    logger.error("error trying to close auction", exc)

    def create_auction(self, auction_input: AuctionInput) -> AuctionOutput:
        """Validate, store and return a new auction."""
        auction = create_auction(
            auction_input.product_name,
            auction_input.category,
            auction_input.description,
            auction_input.condition,
        )
        self.auction_repository.create_auction(auction)
        return AuctionOutput.from_entity(auction)

    def find_auction_by_id(self, auction_id: str) -> AuctionOutput:
        """Return the auction with the given id."""
        return AuctionOutput.from_entity(
            self.auction_repository.find_auction_by_id(auction_id)
        )

    def find_auctions(
        self, status: int, category: str, product_name: str
    ) -> list[AuctionOutput]:
        """Return the auctions matching status, category and product name."""
        auctions = self.auction_repository.find_auctions(
            int(status), category, product_name
        )
        return [AuctionOutput.from_entity(auction) for auction in auctions]

    def find_winning_bid_by_auction_id(self, auction_id: str) -> WinningInfoOutput:
        """Return the auction and its highest bid; the bid is None if none is found."""
        auction = self.auction_repository.find_auction_by_id(auction_id)
        auction_output = AuctionOutput.from_entity(auction)

        try:
            winning = self.bid_repository.find_winning_bid_by_auction_id(auction.id)
        except InternalError as exc:
            logger.error("", exc)
            return WinningInfoOutput(auction=auction_output, bid=None)

        return WinningInfoOutput(auction=auction_output, bid=BidOutput.from_entity(winning))