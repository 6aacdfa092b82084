import re
import uuid
from datetime import datetime, timedelta, timezone

import pytest
from pymongo.errors import PyMongoError

from auctionhouse.auction_repository import AuctionRepository
from auctionhouse.bid_repository import BidRepository
from auctionhouse.entities import AuctionStatus, create_bid
from auctionhouse.errors import InternalServerError


def _matches(document, query):
    for key, condition in query.items():
        value = document.get(key)
        if isinstance(condition, dict) and "$regex" in condition:
            flags = re.IGNORECASE if "i" in condition.get("$options", "") else 0
            if not isinstance(value, str) or not re.search(condition["$regex"], value, flags):
                return False
        elif value != condition:
            return False
    return True


class FakeCollection:
    def __init__(self):
        self.documents = []
        self.fail = False

    def _check(self):
        if self.fail:
            raise PyMongoError("database unavailable")

    def insert_one(self, document):
        self._check()
        self.documents.append(dict(document))

    def update_one(self, query, update):
        self._check()
        for document in self.documents:
            if _matches(document, query):
                document.update(update.get("$set", {}))
                return

    def find(self, query):
        self._check()
        return [dict(d) for d in self.documents if _matches(d, query)]

    def find_one(self, query, sort=None):
        self._check()
        found = self.find(query)
        for key, direction in reversed(sort or []):
            found.sort(key=lambda d: d[key], reverse=direction < 0)
        return found[0] if found else None


class FakeDatabase:
    def __init__(self):
        self.collections = {}

    def __getitem__(self, name):
        return self.collections.setdefault(name, FakeCollection())


USER_ID = str(uuid.uuid4())


@pytest.fixture
def database():
    return FakeDatabase()


@pytest.fixture
def auctions(database):
    repository = AuctionRepository(database, auction_interval=timedelta(minutes=5))
    yield repository
    repository.stop()


@pytest.fixture
def bids(database, auctions):
    return BidRepository(database, auctions, max_duration=timedelta(minutes=5))


def _insert_auction(database, *, status=0, age=timedelta(0)):
    auction_id = str(uuid.uuid4())
    stamp = datetime.now(timezone.utc) - age
    database["auctions"].insert_one({
        "_id": auction_id,
        "product_name": "Phone",
        "category": "electronics",
        "description": "a description long enough",
        "condition": 1,
        "status": status,
        "timestamp": int(stamp.timestamp()),
    })
    return auction_id


def test_bids_on_active_auction_are_stored(bids, auctions, database):
    auction_id = _insert_auction(database)
    placed = [create_bid(USER_ID, auction_id, amount) for amount in (10.0, 20.0, 30.0)]
    bids.create_bid(placed)

    stored = database["bids"].documents
    assert sorted(d["_id"] for d in stored) == sorted(b.id for b in placed)
    assert auctions.status_map[auction_id] == AuctionStatus.ACTIVE
    assert auction_id in bids.end_time_map


def test_bid_on_completed_auction_is_dropped(bids, database):
    auction_id = _insert_auction(database, status=1)
    bids.create_bid([create_bid(USER_ID, auction_id, 10.0)])
    assert bids.find_bid_by_auction_id(auction_id) == []
    assert auction_id not in bids.end_time_map


def test_bid_on_unknown_auction_is_dropped(bids, auctions):
    auction_id = str(uuid.uuid4())
    bids.create_bid([create_bid(USER_ID, auction_id, 10.0)])
    assert bids.find_bid_by_auction_id(auction_id) == []
    assert auction_id not in auctions.status_map
    assert auction_id not in bids.end_time_map


def test_cached_expired_auction_refuses_bids(bids, database):
    auction_id = _insert_auction(database, age=timedelta(minutes=10))
    # The first bid only checks the stored status, then caches the end time.
    bids.create_bid([create_bid(USER_ID, auction_id, 10.0)])
    bids.create_bid([create_bid(USER_ID, auction_id, 20.0)])
    found = bids.find_bid_by_auction_id(auction_id)
    assert [b.amount for b in found] == [10.0]


def test_closed_auction_refuses_further_bids(bids, auctions, database):
    auction_id = _insert_auction(database)
    bids.create_bid([create_bid(USER_ID, auction_id, 10.0)])
    auctions.close_auction(auction_id)
    bids.create_bid([create_bid(USER_ID, auction_id, 20.0)])
    found = bids.find_bid_by_auction_id(auction_id)
    assert [b.amount for b in found] == [10.0]
    assert auctions.status_map[auction_id] == AuctionStatus.COMPLETED


def test_insert_failure_is_swallowed(bids, database):
    auction_id = _insert_auction(database)
    database["bids"].fail = True
    assert bids.create_bid([create_bid(USER_ID, auction_id, 10.0)]) is None
    assert database["bids"].documents == []


def test_find_bids_round_trip(bids, database):
    auction_id = _insert_auction(database)
    other_id = _insert_auction(database)
    placed = create_bid(USER_ID, auction_id, 15.5)
    bids.create_bid([placed, create_bid(USER_ID, other_id, 3.0)])

    found = bids.find_bid_by_auction_id(auction_id)
    assert len(found) == 1
    assert found[0].id == placed.id
    assert found[0].user_id == USER_ID
    assert found[0].amount == 15.5
    assert found[0].timestamp == placed.timestamp.replace(microsecond=0)


def test_find_bids_empty(bids):
    assert bids.find_bid_by_auction_id(str(uuid.uuid4())) == []


def test_find_bids_failure_raises(bids, database):
    database["bids"].fail = True
    with pytest.raises(InternalServerError) as info:
        bids.find_bid_by_auction_id("abc")
    assert str(info.value) == "Error trying to find bids by auctionId abc"


def test_winning_bid_is_highest(bids, database):
    auction_id = _insert_auction(database)
    placed = [create_bid(USER_ID, auction_id, amount) for amount in (5.0, 42.0, 17.0)]
    bids.create_bid(placed)
    winner = bids.find_winning_bid_by_auction_id(auction_id)
    assert winner.amount == max(b.amount for b in placed)
    assert winner.id == placed[1].id


def test_winning_bid_missing_raises(bids):
    with pytest.raises(InternalServerError) as info:
        bids.find_winning_bid_by_auction_id(str(uuid.uuid4()))
    assert str(info.value) == "Error trying to find the auction winner"