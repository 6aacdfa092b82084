"""HTTP routes for auctions, bids and users."""

from __future__ import annotations

import re
from http import HTTPStatus

from flask import Flask, jsonify, request

from .entities import is_valid_uuid
from .errors import Cause, InternalError, RestError, bad_request_error, convert_error
from .validation import parse_auction_input, parse_bid_input

_INTEGER = re.compile(r"[+-]?[0-9]+")
_INT64_MIN = -(2**63)
_INT64_MAX = 2**63 - 1


def _require_uuid(value: str, field: str) -> None:
    if not is_valid_uuid(value):
        raise bad_request_error("Invalid fields", Cause(field, "Invalid UUID value"))


def _parse_status(text: str) -> int:
    if _INTEGER.fullmatch(text):
        value = int(text)
        if _INT64_MIN <= value <= _INT64_MAX:
            return value
    raise bad_request_error("Error trying to validate auction status param")


def _list_body(items):
    return [item.to_dict() for item in items] if items else None


def create_app(user_use_case, bid_use_case, auction_use_case) -> Flask:
    """Build the Flask application serving the auction API."""
    app = Flask(__name__)

    @app.errorhandler(RestError)
    def _rest_error(error: RestError):
        return jsonify(error.to_dict()), error.code

    @app.errorhandler(InternalError)
    def _internal_error(error: InternalError):
        rest = convert_error(error)
        return jsonify(rest.to_dict()), rest.code

    @app.get("/auction")
    def find_auctions():
        status = _parse_status(request.args.get("status", ""))
        auctions = auction_use_case.find_auctions(
            status,
            request.args.get("category", ""),
            request.args.get("productName", ""),
        )
        return jsonify(_list_body(auctions)), HTTPStatus.OK

    @app.get("/auction/<auction_id>")
    def find_auction_by_id(auction_id: str):
        _require_uuid(auction_id, "auctionId")
        auction = auction_use_case.find_auction_by_id(auction_id)
        return jsonify(auction.to_dict()), HTTPStatus.OK

    @app.post("/auction")
    def create_auction():
        auction_input = parse_auction_input(request.get_data())
        auction = auction_use_case.create_auction(auction_input)
        return jsonify(auction.to_dict()), HTTPStatus.CREATED

    @app.get("/auction/winner/<auction_id>")
    def find_winning_bid_by_auction_id(auction_id: str):
        _require_uuid(auction_id, "auctionId")
        winning = auction_use_case.find_winning_bid_by_auction_id(auction_id)
        return jsonify(winning.to_dict()), HTTPStatus.OK

    @app.post("/bid")
    def create_bid():
        bid_input = parse_bid_input(request.get_data())
        bid_use_case.create_bid(bid_input)
        return "", HTTPStatus.CREATED

    @app.get("/bid/<auction_id>")
    def find_bid_by_auction_id(auction_id: str):
        _require_uuid(auction_id, "auctionId")
        bids = bid_use_case.find_bid_by_auction_id(auction_id)
        return jsonify(_list_body(bids)), HTTPStatus.OK

    @app.get("/user/<user_id>")
    def find_user_by_id(user_id: str):
        _require_uuid(user_id, "userId")
        user = user_use_case.find_user_by_id(user_id)
        return jsonify(user.to_dict()), HTTPStatus.OK

    return app