"""Core auction, bid and user entities."""

from __future__ import annotations

import re
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import IntEnum

from .errors import BadRequestError


class AuctionStatus(IntEnum):
    ACTIVE = 0
    COMPLETED = 1


class ProductCondition(IntEnum):
    NEW = 1
    USED = 2
    REFURBISHED = 3


_VALID_CONDITIONS = frozenset(c.value for c in ProductCondition)

_HEX = "[0-9a-fA-F]"
_UUID_PATTERNS = (
    re.compile(rf"{_HEX}{{8}}-{_HEX}{{4}}-{_HEX}{{4}}-{_HEX}{{4}}-{_HEX}{{12}}"),
    re.compile(rf"\{{{_HEX}{{8}}-{_HEX}{{4}}-{_HEX}{{4}}-{_HEX}{{4}}-{_HEX}{{12}}\}}"),
    re.compile(
        rf"(?i:urn:uuid:){_HEX}{{8}}-{_HEX}{{4}}-{_HEX}{{4}}-{_HEX}{{4}}-{_HEX}{{12}}"
    ),
    re.compile(rf"{_HEX}{{32}}"),
)


def is_valid_uuid(value: str) -> bool:
    """Tell whether value is a UUID in plain, braced, URN or 32-hex form."""
    return any(pattern.fullmatch(value) for pattern in _UUID_PATTERNS)


def _now() -> datetime:
    return datetime.now(timezone.utc)


def _byte_length(text: str) -> int:
    return len(text.encode("utf-8"))


@dataclass
class Auction:
    id: str
    product_name: str
    category: str
    description: str
    condition: int
    status: AuctionStatus = AuctionStatus.ACTIVE
    timestamp: datetime = field(default_factory=_now)

    def validate(self) -> None:
        """Raise BadRequestError when the auction is not acceptable."""
        if (
            _byte_length(self.product_name) <= 1
            or _byte_length(self.category) <= 2
            or (
                _byte_length(self.description) <= 10
                and self.condition not in _VALID_CONDITIONS
            )
        ):
            raise BadRequestError("invalid auction object")


def create_auction(
    product_name: str, category: str, description: str, condition: int
) -> Auction:
    """Create a new, active auction and validate it."""
    if condition in _VALID_CONDITIONS:
        condition = ProductCondition(condition)
    auction = Auction(
        id=str(uuid.uuid4()),
        product_name=product_name,
        category=category,
        description=description,
        condition=condition,
        status=AuctionStatus.ACTIVE,
        timestamp=_now(),
    )
    auction.validate()
    return auction


@dataclass
class Bid:
    id: str
    user_id: str
    auction_id: str
    amount: float
    timestamp: datetime = field(default_factory=_now)

    def validate(self) -> None:
        """Raise BadRequestError when the bid is not acceptable."""
        if not is_valid_uuid(self.user_id):
            raise BadRequestError("UserId is not a valid id")
        if not is_valid_uuid(self.auction_id):
            raise BadRequestError("AuctionId is not a valid id")
        if self.amount <= 0:
            raise BadRequestError("Amount is not a valid value")


def create_bid(user_id: str, auction_id: str, amount: float) -> Bid:
    """Create a new bid and validate it."""
    bid = Bid(
        id=str(uuid.uuid4()),
        user_id=user_id,
        auction_id=auction_id,
        amount=amount,
        timestamp=_now(),
    )
    bid.validate()
    return bid


@dataclass
class User:
    id: str
    name: str