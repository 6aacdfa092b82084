"""Bid use cases: batched creation and lookup."""

from __future__ import annotations

import queue
import threading
import time
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Any

from . import logger, settings
from .entities import Bid, create_bid
from .errors import InternalError, InternalServerError

_STOP = object()


@dataclass
class BidInput:
    """Data needed to place a bid."""

    user_id: str
    auction_id: str
    amount: float


@dataclass
class BidOutput:
    """A bid as returned to callers."""

    id: str
    user_id: str
    auction_id: str
    amount: float
    timestamp: datetime

    @classmethod
    def from_entity(cls, bid: Bid) -> "BidOutput":
        """Build the output from a bid entity."""
        return cls(
            id=bid.id,
            user_id=bid.user_id,
            auction_id=bid.auction_id,
            amount=bid.amount,
            timestamp=bid.timestamp,
        )

    def to_dict(self) -> dict[str, Any]:
        """Return the JSON body for this bid."""
        return {
            "id": self.id,
            "user_id": self.user_id,
            "auction_id": self.auction_id,
            "amount": self.amount,
            "timestamp": self.timestamp.isoformat(),
        }


class BidUseCase:
    """Accepts bids and writes them to the repository in batches.

    A batch is written once it holds max_batch_size bids, or when
    batch_insert_interval has passed since the last write. The writer runs
    in a background thread started by start(); close() writes what is left.
    """

    def __init__(
        self,
        bid_repository,
        max_batch_size: int | None = None,
        batch_insert_interval: timedelta | None = None,
    ) -> None:
        self.bid_repository = bid_repository
        self.max_batch_size = (
            max_batch_size if max_batch_size is not None else settings.max_batch_size()
        )
        self.batch_insert_interval = (
            batch_insert_interval
            if batch_insert_interval is not None
            else settings.batch_insert_interval()
        )
        self._queue: queue.Queue = queue.Queue(maxsize=max(self.max_batch_size, 0))
        self._batch: list[Bid] = []
        self._lock = threading.Lock()
        self._closed = False
        self._thread: threading.Thread | None = None

    def __enter__(self) -> "BidUseCase":
        self.start()
        return self

    def __exit__(self, *exc_info) -> None:
        self.close()

    def start(self) -> None:
        """Start the background batch writer."""
        if self._thread is not None and self._thread.is_alive():
            return
        self._thread = threading.Thread(target=self._run, name="bid-writer", daemon=True)
        self._thread.start()

    def close(self) -> None:
        """Stop accepting bids, write the pending ones and stop the writer."""
        if self._closed:
            return
        self._closed = True
        if self._thread is not None:
            self._queue.put(_STOP)
            self._thread.join()
            self._thread = None
        else:
            self.flush()

    def _interval_seconds(self) -> float:
        return max(self.batch_insert_interval.total_seconds(), 0.0)

    def _run(self) -> None:
        deadline = time.monotonic() + self._interval_seconds()
        while True:
            try:
                item = self._queue.get(timeout=max(deadline - time.monotonic(), 0.0))
            except queue.Empty:
                self.flush()
                deadline = time.monotonic() + self._interval_seconds()
                continue

            if item is _STOP:
                self.flush()
                return

            with self._lock:
                self._batch.append(item)
                full = len(self._batch) >= self.max_batch_size
            if full:
                self._write(self._take_batch())
                deadline = time.monotonic() + self._interval_seconds()

    def _take_batch(self) -> list[Bid]:
        with self._lock:
            batch, self._batch = self._batch, []
        return batch

    def _write(self, batch: list[Bid]) -> None:
        if not batch:
            return
        try:
            self.bid_repository.create_bid(batch)
        except InternalError as exc:
            logger.error("error trying to process bid batch list", exc)

    def flush(self) -> None:
        """Write every bid accepted so far but not yet stored."""
        with self._lock:
            while True:
                try:
                    item = self._queue.get_nowait()
                except queue.Empty:
                    break
                if item is _STOP:
                    self._queue.put_nowait(_STOP)
                    break
                self._batch.append(item)
        self._write(self._take_batch())

    def create_bid(self, bid_input: BidInput) -> None:
        """Validate a bid and queue it for the next batch write."""
        if self._closed:
            raise InternalServerError("bid processing is closed")
        bid = create_bid(bid_input.user_id, bid_input.auction_id, bid_input.amount)
        self._queue.put(bid)

    def find_bid_by_auction_id(self, auction_id: str) -> list[BidOutput]:
        """Return all bids stored for an auction."""
        bids = self.bid_repository.find_bid_by_auction_id(auction_id)
        return [BidOutput.from_entity(bid) for bid in bids]

    def find_winning_bid_by_auction_id(self, auction_id: str) -> BidOutput:
        """Return the highest bid stored for an auction."""
        return BidOutput.from_entity(
            self.bid_repository.find_winning_bid_by_auction_id(auction_id)
        )