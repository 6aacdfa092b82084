"""Decoding and validation of JSON request bodies."""

from __future__ import annotations

import json
import math
from typing import Any

from .auction_usecase import AuctionInput
from .bid_usecase import BidInput
from .errors import Cause, RestError, bad_request_error, not_found_error

_INT64_MIN = -(2**63)
_INT64_MAX = 2**63 - 1


class _FloatLiteral(float):
    """A JSON number written with a fraction or an exponent."""


class _TypeMismatch(Exception):
    """A JSON value does not fit the field it is decoded into."""


def _reject_constant(name: str) -> Any:
    raise ValueError(f"invalid JSON constant {name}")


def _decode(data: bytes | str) -> dict[str, Any]:
    try:
        text = data.decode("utf-8") if isinstance(data, (bytes, bytearray)) else data
        value = json.loads(
            text, parse_float=_FloatLiteral, parse_constant=_reject_constant
        )
    except (ValueError, UnicodeDecodeError) as exc:
        raise bad_request_error("Error trying to convert fields") from exc
    if value is None:
        return {}
    if not isinstance(value, dict):
        raise not_found_error("Invalid type error")
    return value


def _lookup(document: dict[str, Any], key: str) -> Any:
    if key in document:
        return document[key]
    folded = key.casefold()
    for name, value in document.items():
        if name.casefold() == folded:
            return value
    return None


def _as_string(value: Any) -> str:
    if value is None:
        return ""
    if not isinstance(value, str):
        raise _TypeMismatch
    return value


def _as_integer(value: Any) -> int:
    if value is None:
        return 0
    if isinstance(value, (bool, float)) or not isinstance(value, int):
        raise _TypeMismatch
    if not _INT64_MIN <= value <= _INT64_MAX:
        raise _TypeMismatch
    return value


def _as_number(value: Any) -> float:
    if value is None:
        return 0.0
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise _TypeMismatch
    try:
        result = float(value)
    except OverflowError as exc:
        raise _TypeMismatch from exc
    if math.isinf(result):
        raise _TypeMismatch
    return result


def _characters(count: int) -> str:
    return f"{count} character" if count == 1 else f"{count} characters"


def _check_text(
    field: str, value: str, minimum: int, maximum: int | None = None
) -> Cause | None:
    if not value:
        return Cause(field, f"{field} is a required field")
    length = len(value)
    if length < minimum:
        return Cause(field, f"{field} must be at least {_characters(minimum)} in length")
    if maximum is not None and length > maximum:
        return Cause(
            field, f"{field} must be a maximum of {_characters(maximum)} in length"
        )
    return None


def parse_auction_input(data: bytes | str) -> AuctionInput:
    """Decode and validate the body of an auction creation request.

    Raises RestError: 404 for a value of the wrong type, 400 with field
    causes for invalid values, and 400 for a body that is not JSON.
    """
    document = _decode(data)
    try:
        auction_input = AuctionInput(
            product_name=_as_string(_lookup(document, "product_name")),
            category=_as_string(_lookup(document, "category")),
            description=_as_string(_lookup(document, "description")),
            condition=_as_integer(_lookup(document, "condition")),
        )
    except _TypeMismatch as exc:
        raise not_found_error("Invalid type error") from exc

    causes = [
        cause
        for cause in (
            _check_text("ProductName", auction_input.product_name, 1),
            _check_text("Category", auction_input.category, 2),
            _check_text("Description", auction_input.description, 10, 200),
        )
        if cause is not None
    ]
    if auction_input.condition not in (1, 2, 3):
        causes.append(Cause("Condition", "Condition must be one of [1 2 3]"))
    if causes:
        raise bad_request_error("Invalid field values", *causes)
    return auction_input


def parse_bid_input(data: bytes | str) -> BidInput:
    """Decode the body of a bid request; missing fields take zero values.

    Raises RestError: 404 for a value of the wrong type, 400 for a body
    that is not JSON.
    """
    document = _decode(data)
    try:
        return BidInput(
            user_id=_as_string(_lookup(document, "user_id")),
            auction_id=_as_string(_lookup(document, "auction_id")),
            amount=_as_number(_lookup(document, "amount")),
        )
    except _TypeMismatch as exc:
        raise not_found_error("Invalid type error") from exc


__all__ = ["RestError", "parse_auction_input", "parse_bid_input"]