import re
import time
from datetime import datetime, timedelta, timezone

import pytest
from pymongo.errors import PyMongoError

from auctionhouse.auction_repository import AuctionRepository
from auctionhouse.entities import AuctionStatus, ProductCondition, create_auction
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


@pytest.fixture
def database():
    return FakeDatabase()


@pytest.fixture
def repo(database):
    repository = AuctionRepository(database, auction_interval=timedelta(minutes=5))
    yield repository
    repository.stop()


def _insert(database, auction_id, *, category="electronics", name="Phone",
            status=0, age=timedelta(0)):
    stamp = datetime.now(timezone.utc) - age
    database["auctions"].insert_one({
        "_id": auction_id,
        "product_name": name,
        "category": category,
        "description": "a description long enough",
        "condition": 1,
        "status": status,
        "timestamp": int(stamp.timestamp()),
    })


def test_create_and_find_round_trip(repo):
    auction = create_auction("Phone", "electronics", "a brand new phone in box", 1)
    repo.create_auction(auction)

    found = repo.find_auction_by_id(auction.id)
    assert found.id == auction.id
    assert found.product_name == "Phone"
    assert found.category == "electronics"
    assert found.condition == ProductCondition.NEW
    assert found.status == AuctionStatus.ACTIVE
    assert found.timestamp == auction.timestamp.replace(microsecond=0)


def test_stored_document_shape(repo, database):
    auction = create_auction("Phone", "electronics", "a brand new phone in box", 2)
    repo.create_auction(auction)

    document = database["auctions"].documents[0]
    assert set(document) == {
        "_id", "product_name", "category", "description",
        "condition", "status", "timestamp",
    }
    assert document["_id"] == auction.id
    assert document["condition"] == 2
    assert document["status"] == 0
    assert document["timestamp"] == int(auction.timestamp.timestamp())


def test_find_missing_auction_raises(repo):
    with pytest.raises(InternalServerError) as info:
        repo.find_auction_by_id("missing")
    assert str(info.value) == "Error trying to find auction by id"


def test_insert_failure_raises(repo, database):
    database["auctions"].fail = True
    auction = create_auction("Phone", "electronics", "a brand new phone in box", 1)
    with pytest.raises(InternalServerError) as info:
        repo.create_auction(auction)
    assert str(info.value) == "Error trying to insert auction"


def test_close_auction_marks_completed(repo, database):
    _insert(database, "a1")
    repo.close_auction("a1")
    assert repo.find_auction_by_id("a1").status == AuctionStatus.COMPLETED
    assert repo.status_map["a1"] == AuctionStatus.COMPLETED


def test_close_auction_failure_raises(repo, database):
    database["auctions"].fail = True
    with pytest.raises(InternalServerError) as info:
        repo.close_auction("a1")
    assert str(info.value) == "Error trying to close auction"
    assert "a1" not in repo.status_map


def test_find_auctions_filters_by_category(repo, database):
    _insert(database, "a1", category="electronics")
    _insert(database, "a2", category="books")
    found = repo.find_auctions(0, "books", "")
    assert [a.id for a in found] == ["a2"]


def test_find_auctions_product_name_is_case_insensitive(repo, database):
    _insert(database, "a1", name="Smart Phone")
    _insert(database, "a2", name="Laptop")
    found = repo.find_auctions(0, "", "phone")
    assert [a.id for a in found] == ["a1"]


def test_find_auctions_escapes_product_name(repo, database):
    _insert(database, "a1", name="abc")
    _insert(database, "a2", name="a.c")
    found = repo.find_auctions(0, "", "a.c")
    assert [a.id for a in found] == ["a2"]


def test_find_auctions_status_filter(repo, database):
    _insert(database, "a1", status=0)
    _insert(database, "a2", status=1)
    assert [a.id for a in repo.find_auctions(AuctionStatus.COMPLETED, "", "")] == ["a2"]
    # status 0 places no filter at all
    assert sorted(a.id for a in repo.find_auctions(AuctionStatus.ACTIVE, "", "")) == ["a1", "a2"]


def test_find_auctions_failure_raises(repo, database):
    database["auctions"].fail = True
    with pytest.raises(InternalServerError) as info:
        repo.find_auctions(0, "", "")
    assert str(info.value) == "Error finding auctions"


def test_close_expired_auctions(repo, database):
    _insert(database, "old", age=timedelta(minutes=10))
    _insert(database, "fresh")
    assert repo.close_expired_auctions() == 1
    assert repo.find_auction_by_id("old").status == AuctionStatus.COMPLETED
    assert repo.find_auction_by_id("fresh").status == AuctionStatus.ACTIVE


def test_close_expired_auctions_survives_lookup_failure(repo, database):
    database["auctions"].fail = True
    assert repo.close_expired_auctions() == 0


def test_auction_closes_automatically_after_interval(database):
    repository = AuctionRepository(database, auction_interval=timedelta(0))
    try:
        auction = create_auction("Phone", "electronics", "a brand new phone in box", 1)
        repository.create_auction(auction)
        deadline = time.monotonic() + 3
        while time.monotonic() < deadline:
            if repository.find_auction_by_id(auction.id).status == AuctionStatus.COMPLETED:
                break
            time.sleep(0.02)
        assert repository.find_auction_by_id(auction.id).status == AuctionStatus.COMPLETED
    finally:
        repository.stop()


def test_start_and_stop_sweeper(repo):
    repo.start()
    assert repo._thread is not None and repo._thread.is_alive()
    repo.stop()
    assert repo._thread is None