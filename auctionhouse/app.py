"""Application wiring and the server entry point."""

from __future__ import annotations

import argparse
import os

from dotenv import load_dotenv
from flask import Flask
from pymongo.errors import PyMongoError

from . import logger, settings
from .auction_repository import AuctionRepository
from .auction_usecase import AuctionUseCase
from .bid_repository import BidRepository
from .bid_usecase import BidUseCase
from .user_repository import UserRepository
from .user_usecase import UserUseCase
from .web import create_app

DEFAULT_ENV_FILE = "cmd/auction/.env"


def build_app(database) -> Flask:
    """Wire repositories, use cases and routes over a database and start the workers.

    The started components are kept in app.extensions["auctionhouse"].
    """
    auction_repository = AuctionRepository(database)
    bid_repository = BidRepository(database, auction_repository)
    user_repository = UserRepository(database)

    user_use_case = UserUseCase(user_repository)
    auction_use_case = AuctionUseCase(auction_repository, bid_repository)
    bid_use_case = BidUseCase(bid_repository)

    auction_repository.start()
    auction_use_case.start()
    bid_use_case.start()

    app = create_app(user_use_case, bid_use_case, auction_use_case)
    app.extensions["auctionhouse"] = {
        "auction_repository": auction_repository,
        "bid_repository": bid_repository,
        "user_repository": user_repository,
        "auction_use_case": auction_use_case,
        "bid_use_case": bid_use_case,
        "user_use_case": user_use_case,
    }
    return app


def main(argv=None) -> None:
    """Load the environment, connect to MongoDB and serve the API."""
    parser = argparse.ArgumentParser(prog="auctionhouse", description="Run the auction API.")
    parser.add_argument("--env-file", default=DEFAULT_ENV_FILE)
    parser.add_argument("--host", default="0.0.0.0")
    parser.add_argument("--port", type=int, default=8080)
    args = parser.parse_args(argv)

    if not os.path.isfile(args.env_file):
        logger.error(
            "Error trying to load env variables", FileNotFoundError(args.env_file)
        )
        raise SystemExit(1)
    load_dotenv(args.env_file)

    try:
        database = settings.connect_database()
    except PyMongoError as exc:
        logger.error(str(exc), exc)
        raise SystemExit(1) from exc

    app = build_app(database)
    app.run(host=args.host, port=args.port)